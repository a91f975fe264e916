from sqlalchemy import Column, Integer, String, Boolean, DateTime, DECIMAL, Text

from app.core.database import Base
from app.models.schedule import generate_uuid
from app.utils.clock import utcnow


# результати окремих перевірок, зберігаються одразу після кожного виклику провайдера
class RankCheck(Base):
	__tablename__ = "rank_checks"

	id = Column(String, primary_key=True, default=generate_uuid)
	account_id = Column(String, nullable=False, index=True)
	group_id = Column(String, nullable=False, index=True)
	keyword_id = Column(String, nullable=False)
	search_query_used = Column(String, nullable=False)
	device = Column(String(16), nullable=False)
	position = Column(Integer, nullable=True)  # None - домен не знайдено
	found_url = Column(String, nullable=True)
	matched_target_url = Column(Boolean, nullable=True)
	api_cost_usd = Column(DECIMAL(10, 6), nullable=False, default=0)
	run_token = Column(String, nullable=False)
	checked_at = Column(DateTime(timezone=True), default=utcnow)


class LLMVisibilityCheck(Base):
	__tablename__ = "llm_visibility_checks"

	id = Column(String, primary_key=True, default=generate_uuid)
	account_id = Column(String, nullable=False, index=True)
	keyword_id = Column(String, nullable=False, index=True)
	question = Column(Text, nullable=False)
	llm_provider = Column(String(32), nullable=False)
	domain_cited = Column(Boolean, nullable=False, default=False)
	response_snippet = Column(Text, nullable=True)
	api_cost_usd = Column(DECIMAL(10, 6), nullable=False, default=0)
	run_token = Column(String, nullable=False)
	checked_at = Column(DateTime(timezone=True), default=utcnow)
