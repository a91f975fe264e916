from decimal import Decimal
from typing import Any, List

from pydantic import BaseModel, Field

from app.models import FeatureType


class CheckSubject(BaseModel):
	"""Розв'язаний об'єкт перевірки: що і скільки одиниць перевіряємо."""
	schedule_id: str
	subject_id: str
	account_id: str
	feature_type: FeatureType
	unit_count: int
	providers: List[str]
	target_domain: str
	# keywords (rank) або питання (LLM)
	units: List[Any] = Field(default_factory=list)
	# location_code, device для rank tracking
	options: dict = Field(default_factory=dict)


class CheckResult(BaseModel):
	checks_performed: int = 0
	errors: List[str] = Field(default_factory=list)
	api_cost: Decimal = Decimal("0")

	@property
	def is_total_failure(self) -> bool:
		return self.checks_performed == 0
