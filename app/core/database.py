from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import declarative_base

from app.core.config import config


# pool_pre_ping: cron-виклики рідкі, з'єднання в пулі можуть "застаріти"
engine = create_async_engine(
	config.DATABASE_URL,
	echo=config.DEBUG_MODE,  # echo=True для debug (!)
	pool_pre_ping=True,
)

# фабрика сесій: ScheduledRunner відкриває окрему сесію на кожну операцію
async_session = async_sessionmaker(
	bind=engine,
	expire_on_commit=False,
	class_=AsyncSession
)

Base = declarative_base()
