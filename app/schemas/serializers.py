from app.models import CreditTransaction
from app.schemas.credits import CreditsBalance, CreditsOperationResponse
from app.schemas.transactions import TransactionDetail


def serialize_transaction(tx: CreditTransaction) -> TransactionDetail:
    tx_dict = {
        "id": tx.id,
        "type": tx.transaction_type.value,
        "feature_type": tx.feature_type.value if tx.feature_type else None,
        "created_at": tx.created_at,
        "amount": tx.amount,
        "included_amount": tx.included_amount,
        "purchased_amount": tx.purchased_amount,
        "balance_after": tx.balance_after,
        "description": tx.description,
        "idempotency_key": tx.idempotency_key,
        "feature_metadata": tx.feature_metadata or {},
    }
    return TransactionDetail.model_validate(tx_dict)


def serialize_operation(
    tx: CreditTransaction,
    balance: CreditsBalance,
    replayed: bool = False
) -> CreditsOperationResponse:
    return CreditsOperationResponse(
        replayed=replayed,
        transaction_id=tx.id,
        account_id=tx.account_id,
        idempotency_key=tx.idempotency_key,
        amount=tx.amount,
        balance_after=tx.balance_after,
        balance=balance,
    )
