from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import CreditTransaction, FeatureType


REFUND_SUFFIX = ":refund"


def build_idempotency_key(
    feature_type: FeatureType,
    account_id: str,
    subject_id: str,
    run_token: str
) -> str:
    # повтор того самого запуску -> той самий ключ,
    # новий прохід розкладу -> новий run_token і новий ключ
    return f"{feature_type.value}:{account_id}:{subject_id}:{run_token}"


def build_refund_key(idempotency_key: str) -> str:
    return f"{idempotency_key}{REFUND_SUFFIX}"


async def find_transaction(
    db: AsyncSession,
    idempotency_key: str,
) -> Optional[CreditTransaction]:
    """
    Шукає транзакцію з таким idempotency_key.
    Повертає транзакцію або None, якщо операцію ще не виконували.
    """
    result = await db.execute(
        select(CreditTransaction)
        .where(CreditTransaction.idempotency_key == idempotency_key)
    )
    return result.scalar_one_or_none()
