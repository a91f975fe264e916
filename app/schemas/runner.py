import enum
from typing import List, Optional

from pydantic import BaseModel, Field


class RunStatus(str, enum.Enum):
	SUCCESS = "success"
	PARTIAL = "partial"
	SKIPPED = "skipped"
	INSUFFICIENT_CREDITS = "insufficient_credits"
	ERROR = "error"


class ScheduleRunDetail(BaseModel):
	schedule_id: str
	subject_id: Optional[str] = None
	account_id: str
	credits_used: int = 0
	checks_performed: int = 0
	status: RunStatus
	error: Optional[str] = None
	unit_errors: List[str] = Field(default_factory=list)
	# чи запускались перевірки (було списання)
	executed: bool = Field(default=False, exclude=True)


class RunSummaryCounts(BaseModel):
	total: int = 0
	processed: int = 0  # розклади, для яких запускались перевірки
	successful: int = 0
	partial: int = 0
	skipped: int = 0
	insufficient_credits: int = 0
	errors: int = 0
	total_credits_used: int = 0


class RunSummary(BaseModel):
	success: bool = True
	job: str
	duration_ms: int = 0
	summary: RunSummaryCounts = Field(default_factory=RunSummaryCounts)
	details: List[ScheduleRunDetail] = Field(default_factory=list)

	def add(self, detail: ScheduleRunDetail):
		self.details.append(detail)
		counts = self.summary
		counts.total += 1
		counts.total_credits_used += detail.credits_used

		if detail.executed:
			counts.processed += 1

		if detail.status == RunStatus.SUCCESS:
			counts.successful += 1
		elif detail.status == RunStatus.PARTIAL:
			counts.partial += 1
		elif detail.status == RunStatus.SKIPPED:
			counts.skipped += 1
		elif detail.status == RunStatus.INSUFFICIENT_CREDITS:
			counts.insufficient_credits += 1
		else:
			counts.errors += 1
