import enum
from sqlalchemy import (
	Column, String, DateTime, JSON, Enum as AlchemyEnum
)

from app.core.database import Base
from app.utils.clock import utcnow


class CronRunStatus(enum.Enum):
	COMPLETED = "completed"
	FAILED = "failed"


# CronRunLog зберігає кожен запуск cron-маршруту (summary для моніторингу)
class CronRunLog(Base):
	__tablename__ = "cron_run_logs"

	id = Column(String, primary_key=True)
	job_name = Column(String, nullable=False)  # "rank-tracking", "llm-visibility"
	status = Column(AlchemyEnum(CronRunStatus), nullable=False)
	started_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
	finished_at = Column(DateTime(timezone=True), nullable=True)
	summary = Column(JSON, nullable=False, default=dict)  # {"processed": 3, "errors": 0, ...}
