from typing import Optional


class LedgerError(Exception):
    """Базовий клас помилок кредитного леджера."""


class InsufficientCreditsError(LedgerError):
    """Нормальний бізнес-результат: балансу не вистачає на операцію."""

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(f"Insufficient credits: required {required}, available {available}")

    @property
    def deficit(self) -> int:
        return self.required - self.available


class IdempotencyConflictError(LedgerError):
    """
    Ключ ідемпотентності вже використано.
    Для caller-а це успішний no-op: операцію вже виконано раніше,
    existing - транзакція, яку вона тоді створила.
    """

    def __init__(self, idempotency_key: str, existing=None):
        self.idempotency_key = idempotency_key
        self.existing = existing
        super().__init__(f"Idempotency key '{idempotency_key}' already used")


class CostCalculationError(ValueError):
    pass


class MissingSubjectError(Exception):
    """Немає групи/keyword або потрібних даних: стан конфігурації, не збій."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class ExternalServiceError(Exception):
    def __init__(self, status_code: Optional[int], detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"External service error ({status_code}): {detail}")
