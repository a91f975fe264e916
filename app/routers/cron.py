import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.dependencies import (
    verify_cron_secret, get_session_factory, get_rank_runner, get_llm_runner
)
from app.models import CronRunLog, CronRunStatus
from app.schemas.runner import RunSummary
from app.utils.clock import utcnow
from app.utils.logging import generate_cron_log_id, get_extra_data_log
from app.utils.service_runner import ScheduledRunner

logger = logging.getLogger("[CRON]")


# Cron API (зовнішній планувальник, щогодини)
cron_router = APIRouter(prefix="/api/cron", tags=["Cron"])


CRON_RESPONSES = {
    401: {
        "description": "Unauthorized.",
        "content": {
            "application/json": {
                "example": {"detail": "Unauthorized"}
            },
        },
    },
    500: {
        "description": "Internal Server Error.",
        "content": {
            "application/json": {
                "examples": {
                    "not_configured": {
                        "summary": "Cron secret is not configured",
                        "value": {"detail": "Cron secret is not configured"},
                    },
                    "schedules": {
                        "summary": "Failed to fetch schedules",
                        "value": {"detail": "Failed to fetch schedules"},
                    },
                }
            }
        },
    },
}


async def write_cron_log(
    session_factory: async_sessionmaker[AsyncSession],
    job_name: str,
    started_at,
    run_status: CronRunStatus,
    summary: dict
):
    cron_log = CronRunLog(
        id=generate_cron_log_id(job_name),
        job_name=job_name,
        status=run_status,
        started_at=started_at,
        finished_at=utcnow(),
        summary=summary,
    )
    try:
        async with session_factory() as session:
            session.add(cron_log)
            await session.commit()
    except Exception as exc:
        # запис журналу не впливає на результат проходу
        logger.error(f"Failed to save cron log for {job_name}: {exc}")
        return

    logger.info(f"Cron run {job_name} finished:", extra=get_extra_data_log(cron_log))


async def run_scheduled_job(
    runner: ScheduledRunner,
    session_factory: async_sessionmaker[AsyncSession]
) -> RunSummary:
    started_at = utcnow()
    job_name = runner.job_name

    try:
        schedules = await runner.find_due(started_at)
    except Exception as exc:
        logger.error(f"Failed to fetch {job_name} schedules: {exc}")
        await write_cron_log(
            session_factory, job_name, started_at,
            CronRunStatus.FAILED, {"error": "Failed to fetch schedules"}
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch schedules",
        )

    summary = await runner.run(started_at, schedules=schedules)

    await write_cron_log(
        session_factory, job_name, started_at,
        CronRunStatus.COMPLETED, summary.summary.model_dump()
    )
    return summary


@cron_router.get(
    "/rank-tracking",
    dependencies=[Depends(verify_cron_secret)],
    summary="Запуск запланованих перевірок позицій",
    description="Headers: Authorization: Bearer <CRON_SECRET_TOKEN>",
    response_model=RunSummary,
    status_code=status.HTTP_200_OK,
    responses=CRON_RESPONSES,
)
async def cron_rank_tracking(
    runner: ScheduledRunner = Depends(get_rank_runner),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory)
):
    return await run_scheduled_job(runner, session_factory)


@cron_router.get(
    "/llm-visibility",
    dependencies=[Depends(verify_cron_secret)],
    summary="Запуск запланованих перевірок видимості в LLM",
    description="Headers: Authorization: Bearer <CRON_SECRET_TOKEN>",
    response_model=RunSummary,
    status_code=status.HTTP_200_OK,
    responses=CRON_RESPONSES,
)
async def cron_llm_visibility(
    runner: ScheduledRunner = Depends(get_llm_runner),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory)
):
    return await run_scheduled_job(runner, session_factory)
