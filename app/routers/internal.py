from typing import Optional, Union

from fastapi import APIRouter, Depends, status, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import get_session, access_internal, get_ledger
from app.models import TransactionType
from app.schemas.credits import (
    CreditsBalance, CreditsCheck, CreditsCalculateRequest, CreditsCalculateResponse,
    CreditsGrantRequest, CreditsDebitRequest, CreditsRefundRequest, CreditsZeroRequest,
    CreditsOperationResponse, CreditsDebitNoSuccessResponse
)
from app.schemas.serializers import serialize_operation, serialize_transaction
from app.schemas.transactions import TransactionPaginatedList
from app.utils.common import balance_existing_check
from app.utils.exceptions import (
    CostCalculationError, IdempotencyConflictError, InsufficientCreditsError
)
from app.utils.pricing import calculate_cost, unique_providers
from app.utils.service_ledger import CreditLedger

import logging
logger = logging.getLogger("[INTERNAL]")


# Internal API (для інших внутрішніх сервісів)
internal_router = APIRouter(prefix="/api/internal", tags=["Internal API"])


FORBIDDEN = {
    403: {
        "description": "Forbidden.",
        "content": {
            "application/json": {
                "example": {"detail": "Invalid service token."}
            },
        },
    },
}
CONFLICT = {
    409: {
        "description": "Conflict.",
        "content": {
            "application/json": {
                "example": {
                    "detail": "Idempotency key already used for different operation type"
                }
            },
        },
    },
}
SERVER_ERROR = {
    500: {
        "description": "Internal Server Error.",
        "content": {
            "application/json": {
                "example": {"detail": "Internal Server Error."}
            }
        },
    },
}

GRANT_TYPES = (TransactionType.PURCHASE, TransactionType.MONTHLY_GRANT)


async def replay_operation(
    ledger: CreditLedger,
    exc: IdempotencyConflictError,
    account_id: str,
    expected_type: TransactionType
) -> CreditsOperationResponse:
    """
    Повтор запиту з тим самим ключем: повертаємо оригінальний результат.
    Ключ від іншої операції (або іншого акаунта) - 409.
    """
    existing = exc.existing
    if (
        existing is None
        or existing.transaction_type != expected_type
        or existing.account_id != account_id
    ):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Idempotency key already used for different operation type",
        )
    balance = await ledger.get_balance(account_id)
    return serialize_operation(existing, balance, replayed=True)


@internal_router.get(
    "/credits/balance/{account_id}",
    dependencies=[Depends(access_internal)],
    summary="Отримання балансу акаунта",
    description="Лише внутрішній доступ. Headers: X-Service-Token",
    response_model=CreditsBalance,
    status_code=status.HTTP_200_OK,
    responses={**FORBIDDEN, **SERVER_ERROR},
)
async def account_credits_balance(
    account_id: str,
    ledger: CreditLedger = Depends(get_ledger)
):
    # нового акаунта ще немає в БД: нульовий баланс
    return await ledger.get_balance(account_id)


@internal_router.get(
    "/credits/check/{account_id}",
    dependencies=[Depends(access_internal)],
    summary="Перевірка наявності кредитів",
    description="Лише внутрішній доступ. Headers: X-Service-Token",
    response_model=CreditsCheck,
    status_code=status.HTTP_200_OK,
    responses={**FORBIDDEN, **SERVER_ERROR},
)
async def account_credits_checking(
    account_id: str,
    required_credits: int = Query(0, ge=0),
    ledger: CreditLedger = Depends(get_ledger)
):
    return await ledger.check_credits(account_id, required_credits)


@internal_router.post(
    "/credits/calculate",
    dependencies=[Depends(access_internal)],
    summary="Розрахунок вартості операції, без списання",
    description="Лише внутрішній доступ. Headers: X-Service-Token",
    response_model=CreditsCalculateResponse,
    status_code=status.HTTP_200_OK,
    responses={
        **FORBIDDEN,
        422: {
            "description": "Unprocessable Entity.",
            "content": {
                "application/json": {
                    "examples": {
                        "unknown_provider": {
                            "summary": "Unknown provider",
                            "value": {"detail": "Unknown providers: bing"},
                        },
                        "no_units": {
                            "summary": "No units",
                            "value": {"detail": "Unit count must be positive, got 0"},
                        },
                    }
                },
            },
        },
        **SERVER_ERROR,
    },
)
async def credits_calculate(payload: CreditsCalculateRequest):
    try:
        credits = calculate_cost(payload.unit_count, payload.providers)
    except CostCalculationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        )

    return CreditsCalculateResponse(
        unit_count=payload.unit_count,
        providers=unique_providers(payload.providers),
        credits=credits,
    )


@internal_router.post(
    "/credits/grant",
    dependencies=[Depends(access_internal)],
    summary="Нарахування кредитів: покупка або кредити підписки",
    description="Лише внутрішній доступ. Headers: X-Service-Token",
    response_model=CreditsOperationResponse,
    status_code=status.HTTP_200_OK,
    responses={**FORBIDDEN, **CONFLICT, **SERVER_ERROR},
)
async def credits_grant(
    payload: CreditsGrantRequest,
    ledger: CreditLedger = Depends(get_ledger)
):
    if payload.transaction_type not in GRANT_TYPES:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Transaction type '{payload.transaction_type.value}' is not a grant",
        )

    try:
        new_tx = await ledger.grant(
            payload.account_id,
            payload.amount,
            credit_type=payload.credit_type,
            transaction_type=payload.transaction_type,
            idempotency_key=payload.idempotency_key,
            description=payload.description,
        )
    except IdempotencyConflictError as exc:
        return await replay_operation(
            ledger, exc, payload.account_id, payload.transaction_type
        )

    logger.info(f"Granted {payload.amount} {payload.credit_type.value} credits to {payload.account_id}")
    balance = await ledger.get_balance(payload.account_id)
    return serialize_operation(new_tx, balance)


@internal_router.post(
    "/credits/debit",
    dependencies=[Depends(access_internal)],
    summary="Списання кредитів: atomic операція",
    description="Лише внутрішній доступ. Headers: X-Service-Token",
    response_model=Union[
        CreditsOperationResponse, CreditsDebitNoSuccessResponse
    ],
    status_code=status.HTTP_200_OK,
    responses={**FORBIDDEN, **CONFLICT, **SERVER_ERROR},
)
async def credits_debit(
    payload: CreditsDebitRequest,
    ledger: CreditLedger = Depends(get_ledger)
):
    try:
        new_tx = await ledger.debit(
            payload.account_id,
            payload.amount,
            feature_type=payload.feature_type,
            idempotency_key=payload.idempotency_key,
            feature_metadata=payload.feature_metadata,
            description=payload.description,
        )
    except IdempotencyConflictError as exc:
        return await replay_operation(
            ledger, exc, payload.account_id, TransactionType.FEATURE_DEBIT
        )
    except InsufficientCreditsError as exc:
        # не помилка: бізнес-результат
        return CreditsDebitNoSuccessResponse(
            error="insufficient_credits",
            account_id=payload.account_id,
            required_credits=exc.required,
            current_balance=exc.available,
            deficit=exc.deficit,
        )

    balance = await ledger.get_balance(payload.account_id)
    return serialize_operation(new_tx, balance)


@internal_router.post(
    "/credits/refund",
    dependencies=[Depends(access_internal)],
    summary="Повернення кредитів за операцію, що не відбулась",
    description=(
        "Лише внутрішній доступ. Headers: X-Service-Token. "
        "idempotency_key - ключ оригінального списання."
    ),
    response_model=CreditsOperationResponse,
    status_code=status.HTTP_200_OK,
    responses={**FORBIDDEN, **CONFLICT, **SERVER_ERROR},
)
async def credits_refund(
    payload: CreditsRefundRequest,
    ledger: CreditLedger = Depends(get_ledger)
):
    try:
        new_tx = await ledger.refund_feature(
            payload.account_id,
            payload.amount,
            payload.idempotency_key,
            feature_type=payload.feature_type,
            feature_metadata=payload.feature_metadata,
            description=payload.description,
        )
    except IdempotencyConflictError as exc:
        return await replay_operation(
            ledger, exc, payload.account_id, TransactionType.FEATURE_REFUND
        )
    except ValueError as exc:
        # немає списання, чужий ключ або сума більша за списану
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))

    balance = await ledger.get_balance(payload.account_id)
    return serialize_operation(new_tx, balance)


@internal_router.post(
    "/credits/zero",
    dependencies=[Depends(access_internal)],
    summary="Обнулення балансу: закриття акаунта",
    description="Лише внутрішній доступ. Headers: X-Service-Token",
    response_model=CreditsOperationResponse,
    status_code=status.HTTP_200_OK,
    responses={
        **FORBIDDEN,
        404: {
            "description": "Not found.",
            "content": {
                "application/json": {
                    "example": {"detail": "Balance for account 'acc_1' not found."}
                },
            },
        },
        **CONFLICT,
        **SERVER_ERROR,
    },
)
async def credits_zero(
    payload: CreditsZeroRequest,
    session: AsyncSession = Depends(get_session),
    ledger: CreditLedger = Depends(get_ledger)
):
    # перевірка балансу існує? як що ні: Exception
    await balance_existing_check(session, payload.account_id)

    try:
        new_tx = await ledger.zero_balance(
            payload.account_id,
            idempotency_key=payload.idempotency_key,
            description=payload.description,
        )
    except IdempotencyConflictError as exc:
        return await replay_operation(
            ledger, exc, payload.account_id, TransactionType.ACCOUNT_CLOSURE
        )

    balance = await ledger.get_balance(payload.account_id)
    return serialize_operation(new_tx, balance)


@internal_router.get(
    "/credits/transactions/{account_id}",
    dependencies=[Depends(access_internal)],
    summary="Історія транзакцій акаунта",
    description="Лише внутрішній доступ. Headers: X-Service-Token",
    response_model=TransactionPaginatedList,
    status_code=status.HTTP_200_OK,
    responses={**FORBIDDEN, **SERVER_ERROR},
)
async def account_transactions(
    account_id: str,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    transaction_type: Optional[TransactionType] = Query(None, alias="type"),
    ledger: CreditLedger = Depends(get_ledger)
):
    total, transactions = await ledger.list_transactions(
        account_id, limit=limit, offset=offset, transaction_type=transaction_type
    )
    return TransactionPaginatedList(
        total=total,
        limit=limit,
        offset=offset,
        transactions=[serialize_transaction(tx) for tx in transactions],
    )
