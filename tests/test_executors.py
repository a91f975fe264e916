from decimal import Decimal

import pytest
from sqlalchemy import select

from app.models import (
    FeatureType, LLMVisibilityCheck, RankCheck, RankGroupKeyword, RankKeywordGroup
)
from app.utils.exceptions import MissingSubjectError
from app.utils.service_checks import (
    LLMVisibilityCheckExecutor, RankCheckExecutor, extract_questions
)

from conftest import (
    FakeLLMProvider, FakeRankProvider, add_business, seed_llm_schedule, seed_rank_group
)


def test_extract_questions_accepts_strings_and_dicts():
    assert extract_questions([
        "What is SEO?",
        {"question": " How to rank? "},
        {"answer": "no question here"},
        "",
        None,
    ]) == ["What is SEO?", "How to rank?"]


@pytest.mark.asyncio
async def test_rank_resolve_builds_subject(session_factory):
    await add_business(session_factory, "acc_1", "https://www.Example.com/about")
    group = await seed_rank_group(session_factory, keywords=3, device="mobile")

    executor = RankCheckExecutor(session_factory, FakeRankProvider())
    subject = await executor.resolve(group)

    assert subject.subject_id == group.id
    assert subject.feature_type == FeatureType.RANK_TRACKING
    assert subject.unit_count == 3
    assert subject.providers == ["google_serp"]
    assert subject.target_domain == "example.com"
    assert subject.options == {"location_code": 2840, "device": "mobile", "language_code": "en"}


@pytest.mark.asyncio
async def test_rank_resolve_skips_disabled_keywords(session_factory):
    await add_business(session_factory, "acc_1")
    group = await seed_rank_group(session_factory, keywords=2)
    async with session_factory() as session:
        result = await session.execute(
            select(RankGroupKeyword).where(RankGroupKeyword.group_id == group.id)
        )
        for keyword in result.scalars():
            keyword.is_enabled = False
        await session.commit()

    executor = RankCheckExecutor(session_factory, FakeRankProvider())
    with pytest.raises(MissingSubjectError):
        await executor.resolve(group)


@pytest.mark.asyncio
async def test_rank_resolve_requires_website(session_factory):
    await add_business(session_factory, "acc_1", website=None)
    group = await seed_rank_group(session_factory)

    executor = RankCheckExecutor(session_factory, FakeRankProvider())
    with pytest.raises(MissingSubjectError):
        await executor.resolve(group)


@pytest.mark.asyncio
async def test_rank_run_persists_each_result(session_factory):
    await add_business(session_factory, "acc_1")
    group = await seed_rank_group(session_factory, keywords=3)
    provider = FakeRankProvider(fail_queries={"keyword 1"})

    executor = RankCheckExecutor(session_factory, provider)
    subject = await executor.resolve(group)
    result = await executor.run(subject, "token-1")

    # усі одиниці спробувано, навіть після помилки
    assert sorted(provider.calls) == ["keyword 0", "keyword 1", "keyword 2"]
    assert result.checks_performed == 2
    assert len(result.errors) == 1
    assert "keyword 1" in result.errors[0]
    assert result.api_cost == Decimal("0.004")

    async with session_factory() as session:
        checks = (await session.execute(select(RankCheck))).scalars().all()
        assert len(checks) == 2
        assert {c.run_token for c in checks} == {"token-1"}
        assert all(c.position == 3 for c in checks)

        stored = await session.get(RankKeywordGroup, group.id)
        assert stored.last_checked_at is not None


@pytest.mark.asyncio
async def test_rank_run_total_failure(session_factory):
    await add_business(session_factory, "acc_1")
    group = await seed_rank_group(session_factory, keywords=2)

    executor = RankCheckExecutor(session_factory, FakeRankProvider(fail_all=True))
    result = await executor.run(await executor.resolve(group), "token-1")

    assert result.checks_performed == 0
    assert len(result.errors) == 2
    assert result.is_total_failure

    async with session_factory() as session:
        stored = await session.get(RankKeywordGroup, group.id)
        assert stored.last_checked_at is None


@pytest.mark.asyncio
async def test_llm_resolve_counts_questions_and_providers(session_factory):
    await add_business(session_factory, "acc_1")
    schedule = await seed_llm_schedule(
        session_factory,
        questions=["Q1", {"question": "Q2"}, "Q3"],
        providers=["chatgpt", "claude", "chatgpt"],
    )

    executor = LLMVisibilityCheckExecutor(session_factory, {})
    subject = await executor.resolve(schedule)

    assert subject.subject_id == schedule.keyword_id
    assert subject.unit_count == 3
    assert subject.providers == ["chatgpt", "claude"]
    assert subject.units == ["Q1", "Q2", "Q3"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "questions, providers",
    [([], ["chatgpt"]), (["Q1"], [])],
)
async def test_llm_resolve_missing_data(session_factory, questions, providers):
    await add_business(session_factory, "acc_1")
    schedule = await seed_llm_schedule(session_factory, questions=questions, providers=providers)

    executor = LLMVisibilityCheckExecutor(session_factory, {})
    with pytest.raises(MissingSubjectError):
        await executor.resolve(schedule)


@pytest.mark.asyncio
async def test_llm_run_calls_each_question_provider_pair(session_factory):
    await add_business(session_factory, "acc_1")
    schedule = await seed_llm_schedule(session_factory, questions=["Q1", "Q2"])
    chatgpt = FakeLLMProvider(cites=True)
    claude = FakeLLMProvider(fail_questions={"Q2"})

    executor = LLMVisibilityCheckExecutor(
        session_factory, {"chatgpt": chatgpt, "claude": claude}
    )
    result = await executor.run(await executor.resolve(schedule), "token-1")

    assert chatgpt.calls == ["Q1", "Q2"]
    assert claude.calls == ["Q1", "Q2"]
    assert result.checks_performed == 3
    assert len(result.errors) == 1

    async with session_factory() as session:
        checks = (await session.execute(select(LLMVisibilityCheck))).scalars().all()
        assert len(checks) == 3
        assert all(c.domain_cited for c in checks)
        assert {c.llm_provider for c in checks} == {"chatgpt", "claude"}


@pytest.mark.asyncio
async def test_llm_run_unconfigured_provider_is_unit_error(session_factory):
    await add_business(session_factory, "acc_1")
    schedule = await seed_llm_schedule(session_factory, questions=["Q1"], providers=["gemini"])

    executor = LLMVisibilityCheckExecutor(session_factory, {})
    result = await executor.run(await executor.resolve(schedule), "token-1")

    assert result.checks_performed == 0
    assert result.errors == ["gemini: provider is not configured"]
