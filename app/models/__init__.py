from app.models.business import Business
from app.models.checks import RankCheck, LLMVisibilityCheck
from app.models.credits import CreditBalance
from app.models.cron_log import CronRunLog, CronRunStatus
from app.models.schedule import (
    ScheduleFrequency, RankKeywordGroup, RankGroupKeyword,
    Keyword, LLMVisibilitySchedule
)
from app.models.transaction import (
    CreditTransaction, TransactionType, CreditType, FeatureType
)

__all__ = [
    "Business",
    "RankCheck",
    "LLMVisibilityCheck",
    "CreditBalance",
    "CronRunLog",
    "CronRunStatus",
    "ScheduleFrequency",
    "RankKeywordGroup",
    "RankGroupKeyword",
    "Keyword",
    "LLMVisibilitySchedule",
    "CreditTransaction",
    "TransactionType",
    "CreditType",
    "FeatureType",
]
