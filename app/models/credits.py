from sqlalchemy import Column, Integer, String, DateTime, CheckConstraint

from app.core.database import Base
from app.utils.clock import utcnow


class CreditBalance(Base):
	__tablename__ = "credit_balances"
	__table_args__ = (
		CheckConstraint("included_credits >= 0", name="included_credits_non_negative"),
		CheckConstraint("purchased_credits >= 0", name="purchased_credits_non_negative"),
	)

	id = Column(Integer, primary_key=True)
	account_id = Column(String, unique=True, nullable=False, index=True)
	included_credits = Column(Integer, nullable=False, default=0)  # кредити підписки
	purchased_credits = Column(Integer, nullable=False, default=0)  # докуплені, не згорають
	updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

	@property
	def total_credits(self) -> int:
		return (self.included_credits or 0) + (self.purchased_credits or 0)
