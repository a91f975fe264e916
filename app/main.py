from fastapi import FastAPI
from app.routers.cron import cron_router
from app.routers.internal import internal_router

from app.core.logging_config import setup_logging

setup_logging()


app = FastAPI(
    title="Credit Ledger",
    description="Кредитний леджер та запуск запланованих перевірок (rank tracking, LLM visibility)",
    version="1.0.0"
)


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(internal_router)
app.include_router(cron_router)
