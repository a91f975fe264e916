import enum
import uuid

from sqlalchemy import (
	Column, Integer, String, Boolean, DateTime, JSON, ForeignKey, Enum as AlchemyEnum
)
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.utils.clock import utcnow


def generate_uuid() -> str:
	return str(uuid.uuid4())


class ScheduleFrequency(enum.Enum):
	HOURLY = "hourly"
	DAILY = "daily"
	WEEKLY = "weekly"
	MONTHLY = "monthly"


class ScheduleMixin:
	"""Спільні колонки розкладу для груп rank-tracking та LLM-visibility."""
	account_id = Column(String, nullable=False, index=True)
	is_enabled = Column(Boolean, nullable=False, default=True)
	# NULL - розклад вимкнено, такі рядки не опитуються
	schedule_frequency = Column(AlchemyEnum(ScheduleFrequency), nullable=True)
	next_scheduled_at = Column(DateTime(timezone=True), nullable=True, index=True)
	last_scheduled_run_at = Column(DateTime(timezone=True), nullable=True)
	# throttling повторних нотифікацій про нестачу кредитів
	last_credit_warning_sent_at = Column(DateTime(timezone=True), nullable=True)


# Rank tracking: група сама є розкладом
class RankKeywordGroup(ScheduleMixin, Base):
	__tablename__ = "rank_keyword_groups"

	id = Column(String, primary_key=True, default=generate_uuid)
	name = Column(String, nullable=False)
	location_code = Column(Integer, nullable=False, default=2840)  # USA
	device = Column(String(16), nullable=False, default="desktop")
	language_code = Column(String(8), nullable=False, default="en")
	last_checked_at = Column(DateTime(timezone=True), nullable=True)
	created_at = Column(DateTime(timezone=True), default=utcnow)

	keywords = relationship(
		"RankGroupKeyword", back_populates="group", cascade="all, delete-orphan"
	)


class RankGroupKeyword(Base):
	__tablename__ = "rank_group_keywords"

	id = Column(String, primary_key=True, default=generate_uuid)
	group_id = Column(String, ForeignKey("rank_keyword_groups.id", ondelete="CASCADE"), nullable=False)
	account_id = Column(String, nullable=False)
	phrase = Column(String, nullable=False)
	search_query = Column(String, nullable=True)  # якщо задано - шукаємо саме його
	target_url = Column(String, nullable=True)
	is_enabled = Column(Boolean, nullable=False, default=True)

	group = relationship("RankKeywordGroup", back_populates="keywords")


# LLM visibility: розклад прив'язаний до keyword
class Keyword(Base):
	__tablename__ = "keywords"

	id = Column(String, primary_key=True, default=generate_uuid)
	account_id = Column(String, nullable=False, index=True)
	phrase = Column(String, nullable=False)
	# [{"question": "..."}] або ["..."]
	related_questions = Column(JSON, default=list)


class LLMVisibilitySchedule(ScheduleMixin, Base):
	__tablename__ = "llm_visibility_schedules"

	id = Column(String, primary_key=True, default=generate_uuid)
	keyword_id = Column(String, ForeignKey("keywords.id", ondelete="CASCADE"), nullable=False)
	providers = Column(JSON, default=list)  # ["chatgpt", "claude", ...]
	created_at = Column(DateTime(timezone=True), default=utcnow)

	keyword = relationship("Keyword")
