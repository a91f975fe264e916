import asyncio
import logging
from decimal import Decimal
from typing import Dict, List, Optional, Type

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models import (
    FeatureType, Keyword, LLMVisibilityCheck, LLMVisibilitySchedule,
    RankCheck, RankGroupKeyword, RankKeywordGroup
)
from app.schemas.checks import CheckResult, CheckSubject
from app.utils.clock import utcnow
from app.utils.common import get_target_domain
from app.utils.exceptions import MissingSubjectError
from app.utils.pricing import ProviderId, unique_providers
from app.utils.providers import LLMProvider, RankProvider

logger = logging.getLogger("[CRON]")


def _same_url(left: Optional[str], right: Optional[str]) -> bool:
    if not left or not right:
        return False
    return left.strip().lower().rstrip("/") == right.strip().lower().rstrip("/")


def extract_questions(related_questions) -> List[str]:
    # ["..."] або [{"question": "..."}]
    questions = []
    for item in related_questions or []:
        text = item.get("question") if isinstance(item, dict) else item
        if isinstance(text, str) and text.strip():
            questions.append(text.strip())
    return questions


class CheckExecutor:
    """
    Базовий виконавець перевірок для одного типу розкладу.

    resolve() - збирає все потрібне для запуску (або MissingSubjectError),
    run() - викликає провайдера для кожної одиниці, зберігає кожен
    успішний результат одразу, помилки одиниць збирає у CheckResult.
    """
    feature_type: FeatureType
    model: Type

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], unit_delay_seconds: float = 0.0):
        self.session_factory = session_factory
        self.unit_delay_seconds = unit_delay_seconds

    def subject_id_of(self, schedule) -> str:
        return schedule.id

    async def resolve(self, schedule) -> CheckSubject:
        raise NotImplementedError

    async def run(self, subject: CheckSubject, run_token: str) -> CheckResult:
        raise NotImplementedError

    async def _pause(self, index: int):
        # пауза між викликами провайдера (rate limit), не перед першим
        if index > 0 and self.unit_delay_seconds > 0:
            await asyncio.sleep(self.unit_delay_seconds)

    async def _target_domain(self, session: AsyncSession, account_id: str) -> str:
        target_domain = await get_target_domain(session, account_id)
        if not target_domain:
            raise MissingSubjectError(f"No business website for account {account_id}")
        return target_domain


class RankCheckExecutor(CheckExecutor):
    feature_type = FeatureType.RANK_TRACKING
    model = RankKeywordGroup

    def __init__(self, session_factory, provider: RankProvider, unit_delay_seconds: float = 0.0):
        super().__init__(session_factory, unit_delay_seconds)
        self.provider = provider

    async def resolve(self, schedule: RankKeywordGroup) -> CheckSubject:
        async with self.session_factory() as session:
            group = await session.get(RankKeywordGroup, schedule.id)
            if group is None:
                raise MissingSubjectError(f"Keyword group {schedule.id} not found")

            result = await session.execute(
                select(RankGroupKeyword)
                .where(
                    RankGroupKeyword.group_id == group.id,
                    RankGroupKeyword.is_enabled.is_(True),
                )
                .order_by(RankGroupKeyword.id)
            )
            keywords = list(result.scalars().all())
            if not keywords:
                raise MissingSubjectError(f"Keyword group {group.id} has no enabled keywords")

            target_domain = await self._target_domain(session, group.account_id)

        return CheckSubject(
            schedule_id=group.id,
            subject_id=group.id,
            account_id=group.account_id,
            feature_type=self.feature_type,
            unit_count=len(keywords),
            providers=[ProviderId.GOOGLE_SERP.value],
            target_domain=target_domain,
            units=[
                {
                    "keyword_id": kw.id,
                    "query": kw.search_query or kw.phrase,
                    "target_url": kw.target_url,
                }
                for kw in keywords
            ],
            options={
                "location_code": group.location_code,
                "device": group.device,
                "language_code": group.language_code,
            },
        )

    async def run(self, subject: CheckSubject, run_token: str) -> CheckResult:
        result = CheckResult()
        location_code = subject.options.get("location_code", 2840)
        device = subject.options.get("device", "desktop")
        language_code = subject.options.get("language_code")

        for index, unit in enumerate(subject.units):
            await self._pause(index)
            try:
                rank = await self.provider.check_rank(
                    unit["query"], location_code, subject.target_domain, device,
                    language_code=language_code,
                )
                async with self.session_factory() as session:
                    session.add(RankCheck(
                        account_id=subject.account_id,
                        group_id=subject.subject_id,
                        keyword_id=unit["keyword_id"],
                        search_query_used=unit["query"],
                        device=device,
                        position=rank.position,
                        found_url=rank.found_url,
                        matched_target_url=(
                            _same_url(rank.found_url, unit["target_url"])
                            if unit["target_url"] else None
                        ),
                        api_cost_usd=rank.cost,
                        run_token=run_token,
                        checked_at=utcnow(),
                    ))
                    await session.commit()
            except Exception as exc:
                logger.warning(f"Rank check failed for '{unit['query']}': {exc}")
                result.errors.append(f"{unit['query']}: {exc}")
                continue

            result.checks_performed += 1
            result.api_cost += Decimal(rank.cost)

        if result.checks_performed:
            async with self.session_factory() as session:
                group = await session.get(RankKeywordGroup, subject.subject_id)
                if group is not None:
                    group.last_checked_at = utcnow()
                    await session.commit()

        return result


class LLMVisibilityCheckExecutor(CheckExecutor):
    feature_type = FeatureType.LLM_VISIBILITY
    model = LLMVisibilitySchedule

    def __init__(self, session_factory, providers: Dict[str, LLMProvider], unit_delay_seconds: float = 0.0):
        super().__init__(session_factory, unit_delay_seconds)
        self.providers = providers

    def subject_id_of(self, schedule: LLMVisibilitySchedule) -> str:
        return schedule.keyword_id

    async def resolve(self, schedule: LLMVisibilitySchedule) -> CheckSubject:
        providers = unique_providers(schedule.providers or [])
        if not providers:
            raise MissingSubjectError(f"Schedule {schedule.id} has no providers")

        async with self.session_factory() as session:
            keyword = await session.get(Keyword, schedule.keyword_id)
            if keyword is None:
                raise MissingSubjectError(f"Keyword {schedule.keyword_id} not found")

            questions = extract_questions(keyword.related_questions)
            if not questions:
                raise MissingSubjectError(f"Keyword {keyword.id} has no questions")

            target_domain = await self._target_domain(session, schedule.account_id)

        return CheckSubject(
            schedule_id=schedule.id,
            subject_id=keyword.id,
            account_id=schedule.account_id,
            feature_type=self.feature_type,
            unit_count=len(questions),
            providers=providers,
            target_domain=target_domain,
            units=questions,
        )

    async def run(self, subject: CheckSubject, run_token: str) -> CheckResult:
        result = CheckResult()
        calls = [(q, p) for q in subject.units for p in subject.providers]

        for index, (question, provider_id) in enumerate(calls):
            await self._pause(index)
            provider = self.providers.get(provider_id)
            if provider is None:
                result.errors.append(f"{provider_id}: provider is not configured")
                continue
            try:
                answer = await provider.ask(question, subject.target_domain)
                async with self.session_factory() as session:
                    session.add(LLMVisibilityCheck(
                        account_id=subject.account_id,
                        keyword_id=subject.subject_id,
                        question=question,
                        llm_provider=provider_id,
                        domain_cited=answer.cites_domain,
                        response_snippet=answer.raw or None,
                        api_cost_usd=answer.cost,
                        run_token=run_token,
                        checked_at=utcnow(),
                    ))
                    await session.commit()
            except Exception as exc:
                logger.warning(f"LLM check failed ({provider_id}) for '{question}': {exc}")
                result.errors.append(f"{provider_id}: {question}: {exc}")
                continue

            result.checks_performed += 1
            result.api_cost += Decimal(answer.cost)

        return result
