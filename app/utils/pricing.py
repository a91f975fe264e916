import enum
from typing import Iterable, List

from app.utils.exceptions import CostCalculationError


class ProviderId(str, enum.Enum):
    GOOGLE_SERP = "google_serp"   # rank tracking
    CHATGPT = "chatgpt"
    CLAUDE = "claude"
    GEMINI = "gemini"
    PERPLEXITY = "perplexity"
    AI_OVERVIEW = "ai_overview"


LLM_PROVIDERS = [
    ProviderId.CHATGPT.value,
    ProviderId.CLAUDE.value,
    ProviderId.GEMINI.value,
    ProviderId.PERPLEXITY.value,
    ProviderId.AI_OVERVIEW.value,
]

# вартість у кредитах за одну одиницю (keyword / питання) на провайдера
PROVIDER_CREDIT_COSTS = {
    ProviderId.GOOGLE_SERP.value: 1,
    ProviderId.CHATGPT.value: 1,
    ProviderId.CLAUDE.value: 1,
    ProviderId.GEMINI.value: 1,
    ProviderId.PERPLEXITY.value: 1,
    ProviderId.AI_OVERVIEW.value: 1,
}


def unique_providers(providers: Iterable[str]) -> List[str]:
    # порядок зберігаємо, дублікати не тарифікуємо двічі
    result = []
    for provider in providers:
        value = provider.value if isinstance(provider, ProviderId) else provider
        if value not in result:
            result.append(value)
    return result


def calculate_cost(unit_count: int, providers: Iterable[str]) -> int:
    """
    Вартість запуску: unit_count * сума вартостей провайдерів.
    Rank tracking: providers=["google_serp"] -> 1 кредит на keyword.
    """
    if unit_count is None or unit_count <= 0:
        raise CostCalculationError(f"Unit count must be positive, got {unit_count}")

    provider_ids = unique_providers(providers or [])
    if not provider_ids:
        raise CostCalculationError("At least one provider is required")

    unknown = [p for p in provider_ids if p not in PROVIDER_CREDIT_COSTS]
    if unknown:
        raise CostCalculationError(f"Unknown providers: {', '.join(unknown)}")

    return unit_count * sum(PROVIDER_CREDIT_COSTS[p] for p in provider_ids)
