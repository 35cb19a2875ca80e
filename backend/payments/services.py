import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import F

from payments.models import WalletTransaction
from services.exceptions import RideValidationError

User = get_user_model()
logger = logging.getLogger(__name__)


def has_completed_refund(ride_id) -> bool:
    """Durable refund guard: a completed REFUND ledger row exists for the ride."""
    return WalletTransaction.objects.filter(
        ride_id=ride_id,
        transaction_type="REFUND",
        status="COMPLETED",
    ).exists()


@transaction.atomic
def credit_wallet(
    user_id: int,
    amount: Decimal,
    transaction_type: str,
    ride=None,
    payment_method: str = "WALLET",
    description: str = "",
    metadata: Optional[Dict[str, Any]] = None,
) -> WalletTransaction:
    """Add ``amount`` to the user's balance and write the ledger row."""
    user = User.objects.select_for_update().get(pk=user_id)
    balance_before = user.wallet_balance
    User.objects.filter(pk=user_id).update(wallet_balance=F("wallet_balance") + amount)
    user.refresh_from_db(fields=["wallet_balance"])

    txn = WalletTransaction.objects.create(
        user_id=user_id,
        ride=ride,
        transaction_type=transaction_type,
        status="COMPLETED",
        payment_method=payment_method,
        amount=amount,
        balance_before=balance_before,
        balance_after=user.wallet_balance,
        description=description,
        metadata=metadata or {},
    )
    logger.info(
        "Wallet credit %s for user %s (%s): %s -> %s",
        amount, user_id, transaction_type, balance_before, user.wallet_balance,
    )
    return txn


@transaction.atomic
def debit_wallet(
    user_id: int,
    amount: Decimal,
    ride=None,
    description: str = "",
) -> WalletTransaction:
    """
    Take ``amount`` from the user's balance for a ride payment.

    Raises:
        RideValidationError: Balance is too low.
    """
    user = User.objects.select_for_update().get(pk=user_id)
    if user.wallet_balance < amount:
        raise RideValidationError(
            f"Insufficient wallet balance: {user.wallet_balance} available, {amount} required",
            code="insufficient_balance",
        )

    balance_before = user.wallet_balance
    User.objects.filter(pk=user_id).update(wallet_balance=F("wallet_balance") - amount)
    user.refresh_from_db(fields=["wallet_balance"])

    return WalletTransaction.objects.create(
        user_id=user_id,
        ride=ride,
        transaction_type="RIDE_PAYMENT",
        status="COMPLETED",
        payment_method="WALLET",
        amount=amount,
        balance_before=balance_before,
        balance_after=user.wallet_balance,
        description=description,
    )
