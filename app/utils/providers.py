"""
Зовнішні провайдери перевірок: Google SERP (rank tracking) та LLM (visibility).

HTTP-адаптери працюють з DataForSEO-сумісним API:
    POST {base}/serp/google/organic/live/advanced
    POST {base}/ai_optimization/chat_gpt/llm_scraper/live/advanced
    POST {base}/ai_optimization/{provider}/llm_responses/live
"""
from decimal import Decimal
from typing import Dict, List, Optional, Protocol

import httpx
from pydantic import BaseModel

from app.core.config import AppConfig
from app.utils.common import is_domain_match
from app.utils.exceptions import ExternalServiceError
from app.utils.http_client import call_external_api
from app.utils.pricing import LLM_PROVIDERS, ProviderId

TASK_OK = 20000
SERP_ENDPOINT = "/serp/google/organic/live/advanced"
CHATGPT_SCRAPER_ENDPOINT = "/ai_optimization/chat_gpt/llm_scraper/live/advanced"
LLM_RESPONSES_ENDPOINT = "/ai_optimization/{provider}/llm_responses/live"

# model_name обов'язковий для llm_responses, web_search - щоб отримати посилання
LLM_RESPONSES_PARAMS = {
    ProviderId.CLAUDE.value: {"model_name": "claude-sonnet-4-0", "web_search": True},
    ProviderId.GEMINI.value: {"model_name": "gemini-2.0-flash", "web_search": True},
    ProviderId.PERPLEXITY.value: {"model_name": "sonar"},
}

SNIPPET_LENGTH = 500


class RankResult(BaseModel):
    position: Optional[int] = None  # None - домену немає у видачі
    found_url: Optional[str] = None
    cost: Decimal = Decimal("0")


class LLMAnswer(BaseModel):
    cites_domain: bool
    raw: str = ""
    cost: Decimal = Decimal("0")


class RankProvider(Protocol):
    async def check_rank(
        self, keyword: str, location_code: int, target_domain: str, device: str,
        language_code: Optional[str] = None
    ) -> RankResult: ...


class LLMProvider(Protocol):
    async def ask(self, question: str, target_domain: str) -> LLMAnswer: ...


class _DataForSEOClient:
    def __init__(
        self,
        base_url: str,
        login: str,
        password: str,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.auth = httpx.BasicAuth(login, password)
        self.timeout = timeout
        self.transport = transport

    async def _post_task(self, endpoint: str, task: dict) -> dict:
        data = await call_external_api(
            f"{self.base_url}{endpoint}",
            [task],
            auth=self.auth,
            timeout=self.timeout,
            transport=self.transport,
        )
        if data.get("status_code") != TASK_OK:
            raise ExternalServiceError(data.get("status_code"), data.get("status_message", "API error"))

        tasks = data.get("tasks") or []
        if not tasks:
            raise ExternalServiceError(None, "No task returned from API")
        result = tasks[0]
        if result.get("status_code") != TASK_OK:
            raise ExternalServiceError(
                result.get("status_code"),
                f"Task failed: {result.get('status_message')}"
            )
        return result


def _task_cost(task: dict) -> Decimal:
    return Decimal(str(task.get("cost") or 0))


def _first_result(task: dict) -> dict:
    results = task.get("result") or []
    if not results:
        raise ExternalServiceError(None, "No result in task")
    return results[0] or {}


class HttpRankProvider(_DataForSEOClient):
    """Google organic SERP: позиція першого органічного результату з нашим доменом."""

    def __init__(self, *args, language_code: str = "en", depth: int = 100, **kwargs):
        super().__init__(*args, **kwargs)
        self.language_code = language_code
        self.depth = depth

    async def check_rank(
        self, keyword: str, location_code: int, target_domain: str, device: str,
        language_code: Optional[str] = None
    ) -> RankResult:
        task = await self._post_task(SERP_ENDPOINT, {
            "keyword": keyword,
            "location_code": location_code,
            "language_code": language_code or self.language_code,
            "device": device,
            "depth": self.depth,
        })
        cost = _task_cost(task)
        items = (task.get("result") or [{}])[0].get("items") or []

        for item in items:
            if item.get("type") != "organic":
                continue
            if is_domain_match(item.get("domain") or item.get("url"), target_domain):
                return RankResult(
                    position=item.get("rank_absolute"),
                    found_url=item.get("url"),
                    cost=cost,
                )
        return RankResult(cost=cost)


class HttpLLMProvider(_DataForSEOClient):
    """
    Одна модель (chatgpt, claude, gemini, perplexity) або AI Overview у Google.
    cites_domain - чи є наш домен серед джерел відповіді.
    """

    def __init__(self, provider: str, *args, location_code: int = 2840, language_code: str = "en", **kwargs):
        super().__init__(*args, **kwargs)
        self.provider = provider
        self.location_code = location_code
        self.language_code = language_code

    async def ask(self, question: str, target_domain: str) -> LLMAnswer:
        if self.provider == ProviderId.CHATGPT.value:
            task = await self._post_task(CHATGPT_SCRAPER_ENDPOINT, {
                "keyword": question,
                "location_code": self.location_code,
                "language_code": self.language_code,
            })
            result = _first_result(task)
            urls = [s.get("domain") or s.get("url") for s in result.get("sources") or []]
            text = result.get("markdown") or ""
        elif self.provider == ProviderId.AI_OVERVIEW.value:
            task = await self._post_task(SERP_ENDPOINT, {
                "keyword": question,
                "location_code": self.location_code,
                "language_code": self.language_code,
                "load_async_ai_overview": True,
            })
            result = _first_result(task)
            urls, parts = [], []
            for item in result.get("items") or []:
                if item.get("type") != "ai_overview":
                    continue
                parts.append(item.get("markdown") or "")
                urls.extend(r.get("domain") or r.get("url") for r in item.get("references") or [])
            text = "".join(parts)
        elif self.provider in LLM_RESPONSES_PARAMS:
            task = await self._post_task(
                LLM_RESPONSES_ENDPOINT.format(provider=self.provider),
                {"user_prompt": question, **LLM_RESPONSES_PARAMS[self.provider]},
            )
            result = _first_result(task)
            urls, parts = [], []
            # items[].sections[].text + links[]
            for item in result.get("items") or []:
                for section in item.get("sections") or []:
                    parts.append(section.get("text") or "")
                    urls.extend(link.get("url") for link in section.get("links") or [])
            text = "".join(parts)
        else:
            raise ExternalServiceError(None, f"Unsupported LLM provider: {self.provider}")

        return LLMAnswer(
            cites_domain=any(is_domain_match(url, target_domain) for url in urls),
            raw=text[:SNIPPET_LENGTH],
            cost=_task_cost(task),
        )


def build_rank_provider(config: AppConfig, transport: Optional[httpx.AsyncBaseTransport] = None) -> HttpRankProvider:
    return HttpRankProvider(
        config.PROVIDER_BASE_URL,
        config.PROVIDER_LOGIN,
        config.PROVIDER_PASSWORD,
        timeout=config.PROVIDER_TIMEOUT_SECONDS,
        transport=transport,
    )


def build_llm_providers(
    config: AppConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    providers: Optional[List[str]] = None,
) -> Dict[str, HttpLLMProvider]:
    names = providers or LLM_PROVIDERS
    return {
        name: HttpLLMProvider(
            name,
            config.PROVIDER_BASE_URL,
            config.PROVIDER_LOGIN,
            config.PROVIDER_PASSWORD,
            timeout=config.PROVIDER_TIMEOUT_SECONDS,
            transport=transport,
        )
        for name in names
    }
