import enum

from sqlalchemy import Column, Integer, String, DateTime, JSON, Enum

from app.core.database import Base
from app.utils.clock import utcnow


class TransactionType(enum.Enum):
    FEATURE_DEBIT = "feature_debit"        # списання за запуск фічі
    FEATURE_REFUND = "feature_refund"      # повернення за невдалий запуск
    PURCHASE = "purchase"                  # покупка кредитів
    MONTHLY_GRANT = "monthly_grant"        # нарахування підписки
    ACCOUNT_CLOSURE = "account_closure"    # обнулення при закритті акаунта


class CreditType(enum.Enum):
    INCLUDED = "included"
    PURCHASED = "purchased"


class FeatureType(enum.Enum):
    RANK_TRACKING = "rank_tracking"
    LLM_VISIBILITY = "llm_visibility"


class CreditTransaction(Base):
    __tablename__ = "credit_transactions"

    id = Column(String, primary_key=True)
    account_id = Column(String, nullable=False, index=True)

    transaction_type = Column(Enum(TransactionType), nullable=False)
    feature_type = Column(Enum(FeatureType), nullable=True)

    idempotency_key = Column(String, unique=True, nullable=False)  # для ідемпотентності
    amount = Column(Integer, nullable=False)  # + або - кількість
    included_amount = Column(Integer, nullable=False, default=0)
    purchased_amount = Column(Integer, nullable=False, default=0)
    balance_after = Column(Integer, nullable=False)

    description = Column(String, nullable=True)
    feature_metadata = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
