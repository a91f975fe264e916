from typing import List, Optional

from pydantic import BaseModel, Field, computed_field

from app.models import CreditType, FeatureType, TransactionType


# **************    Ledger
class CreditsBalance(BaseModel):
	account_id: str
	included_credits: int = 0
	purchased_credits: int = 0

	@computed_field
	@property
	def total_credits(self) -> int:
		return self.included_credits + self.purchased_credits

	class Config:
		from_attributes = True


class CreditsCheck(BaseModel):
	account_id: str
	has_credits: bool
	required: int
	available: int


# **************    Internal API
class CreditsCalculateRequest(BaseModel):
	unit_count: int
	providers: List[str]


class CreditsCalculateResponse(CreditsCalculateRequest):
	credits: int


class CreditsGrantRequest(BaseModel):
	account_id: str
	amount: int = Field(..., gt=0)
	credit_type: CreditType = CreditType.PURCHASED
	transaction_type: TransactionType = TransactionType.PURCHASE
	idempotency_key: str = Field(..., min_length=1)
	description: Optional[str] = None


class CreditsDebitRequest(BaseModel):
	account_id: str
	amount: int = Field(..., gt=0)
	feature_type: FeatureType
	idempotency_key: str = Field(..., min_length=1)
	description: Optional[str] = None
	feature_metadata: dict = Field(default_factory=dict)


class CreditsRefundRequest(CreditsDebitRequest):
	# idempotency_key - ключ оригінального списання
	pass


class CreditsZeroRequest(BaseModel):
	account_id: str
	idempotency_key: str = Field(..., min_length=1)
	description: Optional[str] = None


class CreditsOperationResponse(BaseModel):
	success: bool = True
	replayed: bool = False  # True - операцію вже виконано раніше, повертаємо оригінал
	transaction_id: str
	account_id: str
	idempotency_key: str
	amount: int
	balance_after: int
	balance: CreditsBalance


class CreditsDebitNoSuccessResponse(BaseModel):
	success: bool = False
	error: str
	account_id: str
	required_credits: int
	current_balance: int
	deficit: int
