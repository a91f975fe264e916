import logging
from typing import Callable, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import (
    CreditBalance, CreditTransaction, CreditType, FeatureType, TransactionType
)
from app.schemas.credits import CreditsBalance, CreditsCheck
from app.utils.clock import utcnow
from app.utils.exceptions import IdempotencyConflictError, InsufficientCreditsError
from app.utils.idempotency import build_refund_key, find_transaction
from app.utils.logging import generate_transaction_id, get_extra_data_log
from app.utils.redis_cache import BalanceCache

logger = logging.getLogger("[LEDGER]")


def _validate_amount(amount: int):
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise ValueError(f"Amount must be a positive integer, got {amount!r}")


def _validate_key(idempotency_key: str):
    if not idempotency_key:
        raise ValueError("Idempotency key is required")


class CreditLedger:
    """
    Кредитний леджер: один баланс на акаунт + append-only журнал транзакцій.

    Кожна мутація - одна атомарна транзакція БД:
    блокування рядка балансу (SELECT ... FOR UPDATE), повторна перевірка
    балансу, вставка CreditTransaction (unique idempotency_key), оновлення балансу.
    """

    def __init__(self, session: AsyncSession, cache: Optional[BalanceCache] = None):
        self.session = session
        self.cache = cache

    # ---------- читання (advisory) ----------

    async def ensure_balance_exists(self, account_id: str) -> None:
        result = await self.session.execute(
            select(CreditBalance.id).where(CreditBalance.account_id == account_id)
        )
        if result.scalar_one_or_none() is not None:
            return

        self.session.add(CreditBalance(
            account_id=account_id, included_credits=0, purchased_credits=0
        ))
        try:
            await self.session.commit()
        except IntegrityError:
            # паралельний виклик уже створив запис
            await self.session.rollback()

    async def get_balance(self, account_id: str) -> CreditsBalance:
        """Знімок балансу: спочатку Redis, якщо немає - БД. Не гарантує актуальності."""
        if self.cache is not None:
            cached = await self.cache.get(account_id)
            if cached is not None:
                return CreditsBalance(account_id=account_id, **cached)

        balance = await self._read_balance(account_id)

        if self.cache is not None:
            await self.cache.set(
                account_id, balance.included_credits, balance.purchased_credits
            )
        return balance

    async def check_credits(self, account_id: str, required_amount: int) -> CreditsCheck:
        # попередня перевірка, без кешу; авторитетним лишається debit
        balance = await self._read_balance(account_id)
        available = balance.total_credits
        return CreditsCheck(
            account_id=account_id,
            has_credits=available >= required_amount,
            required=required_amount,
            available=available,
        )

    async def list_transactions(
        self,
        account_id: str,
        limit: int = 50,
        offset: int = 0,
        transaction_type: Optional[TransactionType] = None
    ) -> Tuple[int, List[CreditTransaction]]:
        stmt = select(CreditTransaction).where(CreditTransaction.account_id == account_id)
        count_stmt = (
            select(func.count())
            .select_from(CreditTransaction)
            .where(CreditTransaction.account_id == account_id)
        )
        if transaction_type is not None:
            stmt = stmt.where(CreditTransaction.transaction_type == transaction_type)
            count_stmt = count_stmt.where(CreditTransaction.transaction_type == transaction_type)

        total = (await self.session.execute(count_stmt)).scalar_one()

        # пагінація
        stmt = stmt.order_by(CreditTransaction.created_at.desc()).limit(limit).offset(offset)
        result = await self.session.execute(stmt)
        return total, list(result.scalars().all())

    # ---------- мутації ----------

    async def debit(
        self,
        account_id: str,
        amount: int,
        *,
        feature_type: FeatureType,
        idempotency_key: str,
        feature_metadata: Optional[dict] = None,
        description: Optional[str] = None
    ) -> CreditTransaction:
        """
        Списання: спочатку included, потім purchased.
        InsufficientCreditsError - якщо total < amount (нічого не списано).
        IdempotencyConflictError - якщо ключ уже використано.
        """
        _validate_amount(amount)
        _validate_key(idempotency_key)

        def apply(balance: CreditBalance) -> CreditTransaction:
            available = balance.total_credits
            if available < amount:
                raise InsufficientCreditsError(required=amount, available=available)

            from_included = min(balance.included_credits, amount)
            from_purchased = amount - from_included
            balance.included_credits -= from_included
            balance.purchased_credits -= from_purchased

            return CreditTransaction(
                account_id=account_id,
                transaction_type=TransactionType.FEATURE_DEBIT,
                feature_type=feature_type,
                amount=-amount,
                included_amount=-from_included,
                purchased_amount=-from_purchased,
                balance_after=balance.total_credits,
                description=description or f"{feature_type.value} run",
                feature_metadata=feature_metadata or {},
            )

        return await self._apply(account_id, idempotency_key, apply)

    async def refund_feature(
        self,
        account_id: str,
        amount: int,
        idempotency_key: str,
        *,
        feature_type: FeatureType,
        feature_metadata: Optional[dict] = None,
        description: Optional[str] = None
    ) -> CreditTransaction:
        """
        Компенсуюча транзакція для списання з ключем idempotency_key.
        Повертає спочатку в purchased (витрачено останнім), потім в included,
        в межах того, що оригінальне списання забрало з кожного пулу.
        ValueError - якщо списання немає, воно чуже або сума більша за списану.
        """
        _validate_amount(amount)
        _validate_key(idempotency_key)

        original = await find_transaction(self.session, idempotency_key)
        if original is None:
            raise ValueError(
                f"No feature debit recorded for idempotency key '{idempotency_key}'"
            )
        if original.account_id != account_id:
            raise ValueError(
                f"Idempotency key '{idempotency_key}' belongs to another account"
            )
        if original.transaction_type != TransactionType.FEATURE_DEBIT:
            raise ValueError(
                f"Idempotency key '{idempotency_key}' is not a feature debit"
            )
        if amount > -original.amount:
            raise ValueError(
                f"Refund of {amount} exceeds debit of {-original.amount} for '{idempotency_key}'"
            )

        spent_purchased = -original.purchased_amount

        def apply(balance: CreditBalance) -> CreditTransaction:
            to_purchased = min(amount, spent_purchased)
            to_included = amount - to_purchased

            balance.purchased_credits += to_purchased
            balance.included_credits += to_included

            metadata = {"original_idempotency_key": idempotency_key}
            metadata.update(feature_metadata or {})
            return CreditTransaction(
                account_id=account_id,
                transaction_type=TransactionType.FEATURE_REFUND,
                feature_type=feature_type,
                amount=amount,
                included_amount=to_included,
                purchased_amount=to_purchased,
                balance_after=balance.total_credits,
                description=description or f"Refund for failed {feature_type.value} operation",
                feature_metadata=metadata,
            )

        return await self._apply(account_id, build_refund_key(idempotency_key), apply)

    async def grant(
        self,
        account_id: str,
        amount: int,
        *,
        credit_type: CreditType,
        transaction_type: TransactionType,
        idempotency_key: str,
        description: Optional[str] = None
    ) -> CreditTransaction:
        """Нарахування: покупка (purchased) або кредити підписки (included)."""
        _validate_amount(amount)
        _validate_key(idempotency_key)

        def apply(balance: CreditBalance) -> CreditTransaction:
            to_included = amount if credit_type == CreditType.INCLUDED else 0
            to_purchased = amount - to_included
            balance.included_credits += to_included
            balance.purchased_credits += to_purchased

            return CreditTransaction(
                account_id=account_id,
                transaction_type=transaction_type,
                amount=amount,
                included_amount=to_included,
                purchased_amount=to_purchased,
                balance_after=balance.total_credits,
                description=description or f"{transaction_type.value} ({credit_type.value})",
                feature_metadata={"credit_type": credit_type.value},
            )

        return await self._apply(account_id, idempotency_key, apply)

    async def zero_balance(
        self,
        account_id: str,
        *,
        idempotency_key: str,
        description: Optional[str] = None
    ) -> CreditTransaction:
        """Закриття акаунта: баланс обнуляється, рядок не видаляється."""
        _validate_key(idempotency_key)

        def apply(balance: CreditBalance) -> CreditTransaction:
            included = balance.included_credits
            purchased = balance.purchased_credits
            balance.included_credits = 0
            balance.purchased_credits = 0

            return CreditTransaction(
                account_id=account_id,
                transaction_type=TransactionType.ACCOUNT_CLOSURE,
                amount=-(included + purchased),
                included_amount=-included,
                purchased_amount=-purchased,
                balance_after=0,
                description=description or "Account closed",
                feature_metadata={},
            )

        return await self._apply(account_id, idempotency_key, apply)

    # ---------- internal ----------

    async def _read_balance(self, account_id: str) -> CreditsBalance:
        result = await self.session.execute(
            select(CreditBalance).where(CreditBalance.account_id == account_id)
        )
        balance: CreditBalance | None = result.scalar_one_or_none()
        if balance is None:
            return CreditsBalance(account_id=account_id)
        return CreditsBalance(
            account_id=account_id,
            included_credits=balance.included_credits,
            purchased_credits=balance.purchased_credits,
        )

    async def _lock_balance(self, account_id: str) -> CreditBalance:
        result = await self.session.execute(
            select(CreditBalance)
            .where(CreditBalance.account_id == account_id)
            .with_for_update()
        )
        balance: CreditBalance | None = result.scalar_one_or_none()
        if balance is None:
            # якщо акаунт новий - створюємо пустий запис
            balance = CreditBalance(
                account_id=account_id, included_credits=0, purchased_credits=0
            )
            self.session.add(balance)
            await self.session.flush()
        return balance

    async def _apply(
        self,
        account_id: str,
        idempotency_key: str,
        apply: Callable[[CreditBalance], CreditTransaction]
    ) -> CreditTransaction:
        # atomic operation (!) here: balance + transaction
        try:
            existing = await find_transaction(self.session, idempotency_key)
            if existing is not None:
                # rollback нижче не має скидати завантажені атрибути
                self.session.expunge(existing)
                raise IdempotencyConflictError(idempotency_key, existing)

            balance = await self._lock_balance(account_id)
            new_tx = apply(balance)
            new_tx.id = generate_transaction_id()
            new_tx.idempotency_key = idempotency_key
            new_tx.created_at = utcnow()
            balance.updated_at = new_tx.created_at

            self.session.add(new_tx)
            await self.session.flush()
        except IntegrityError:
            # unique(idempotency_key): паралельний запит встиг першим
            await self.session.rollback()
            existing = await find_transaction(self.session, idempotency_key)
            if existing is None:
                raise
            self.session.expunge(existing)
            logger.warning(
                "Found duplicate transaction: ", extra=get_extra_data_log(existing)
            )
            raise IdempotencyConflictError(idempotency_key, existing)
        except IdempotencyConflictError as exc:
            await self.session.rollback()
            logger.warning(
                "Found duplicate transaction: ", extra=get_extra_data_log(exc.existing)
            )
            raise
        except Exception:
            await self.session.rollback()
            raise

        await self.session.commit()

        # після commit - чистка кешу
        if self.cache is not None:
            await self.cache.delete(account_id)

        logger.info("Updated credits. Transaction:", extra=get_extra_data_log(new_tx))
        return new_tx
