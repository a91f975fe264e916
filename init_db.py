# Створення таблиць без alembic (локальна розробка)
import asyncio

from app.core.database import engine, Base
from app.models import *  # noqa: F401,F403


async def init_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(init_db())
