from datetime import datetime
from typing import List, Optional

from pydantic import (
	BaseModel, Field, ConfigDict, computed_field
)


class TransactionDetail(BaseModel):
	id: str
	type: str
	feature_type: Optional[str] = None
	created_at: datetime = Field(exclude=True)
	amount: int
	included_amount: int
	purchased_amount: int
	balance_after: int
	description: Optional[str] = None
	idempotency_key: str
	feature_metadata: dict = Field(default_factory=dict)

	@computed_field
	@property
	def date(self) -> datetime:
		return self.created_at

	model_config = ConfigDict(
		from_attributes=True,
		use_enum_values=True
	)


class TransactionPaginatedList(BaseModel):
	total: int
	limit: int
	offset: int
	transactions: List[TransactionDetail]
