"""
Cancellation fees and refunds.

``refund`` is safe to call more than once for the same ride: a completed
REFUND ledger row, checked in the database, turns later calls into no-ops,
and ``payment_status`` moves paid -> refunded through a conditional update
in the same transaction as the ledger rows, so only one caller ever pays
out and a failed credit leaves the ride claimable again. The gateway call
runs after that transaction commits.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Tuple

from django.conf import settings
from django.db import transaction

from payments.services import credit_wallet, has_completed_refund
from rides.models import Ride
from services.exceptions import PaymentGatewayError, PricingUnavailableError
from services.pricing import get_pricing_snapshot, money
from .gateway import RazorpayGateway, get_payment_gateway

logger = logging.getLogger(__name__)

SYSTEM_CANCELLATION_REASONS = frozenset({
    "NO_DRIVER_FOUND",
    "NO_DRIVER_ACCEPTED_TIMEOUT",
    "ALL_DRIVERS_REJECTED",
})

FEE_BEARING_STATUSES = ("accepted", "arrived")
ZERO = Decimal("0.00")


@dataclass
class RefundResult:
    refunded: bool
    refund_amount: Decimal = ZERO
    cancellation_fee: Decimal = ZERO
    wallet_refund: Decimal = ZERO
    gateway_refund: Decimal = ZERO
    gateway_refund_id: str = ""
    gateway_error: str = ""
    already_refunded: bool = False
    skipped_reason: str = ""

    def as_dict(self):
        return {
            "refunded": self.refunded,
            "refund_amount": float(self.refund_amount),
            "cancellation_fee": float(self.cancellation_fee),
            "wallet_refund": float(self.wallet_refund),
            "gateway_refund": float(self.gateway_refund),
            "gateway_refund_id": self.gateway_refund_id,
            "already_refunded": self.already_refunded,
            "skipped_reason": self.skipped_reason,
        }


def compute_cancellation_fee(original_status: str, cancelled_by: str, reason: str = "", fee_amount=None) -> Decimal:
    """
    Fee charged for a cancellation.

    Only a rider cancelling after a driver committed (accepted/arrived), for a
    reason that is not system-attributed, pays ``fee_amount``.
    """
    if original_status not in FEE_BEARING_STATUSES:
        return ZERO
    if cancelled_by != "rider":
        return ZERO
    if (reason or "") in SYSTEM_CANCELLATION_REASONS:
        return ZERO
    if fee_amount is None:
        fee_amount = getattr(settings, "DEFAULT_CANCELLATION_FEE", 50)
    return money(fee_amount)


def paid_portions(ride: Ride) -> Tuple[Decimal, Decimal]:
    """(wallet portion, gateway portion) actually paid for a ride."""
    fare = money(ride.fare)
    if ride.payment_method == "WALLET":
        return money(ride.wallet_amount_used) or fare, ZERO
    if ride.payment_method == "RAZORPAY":
        return ZERO, money(ride.gateway_amount_paid) or fare
    if ride.payment_method == "hybrid":
        return money(ride.wallet_amount_used), money(ride.gateway_amount_paid)
    return ZERO, ZERO


def split_refund(ride: Ride, fee: Decimal) -> Tuple[Decimal, Decimal]:
    """
    Refund per path. Hybrid rides get the whole gateway portion back and the
    fee comes out of the wallet portion only; single-path rides pay the fee
    from the one portion they have.
    """
    wallet_paid, gateway_paid = paid_portions(ride)
    if ride.payment_method == "hybrid":
        return money(max(ZERO, wallet_paid - fee)), money(gateway_paid)
    wallet_refund = max(ZERO, wallet_paid - fee)
    gateway_refund = max(ZERO, gateway_paid - max(ZERO, fee - wallet_paid))
    return money(wallet_refund), money(gateway_refund)


class RefundOrchestrator:
    """
    Refund a cancelled ride to the rider's wallet and/or the payment gateway.

    Args:
        gateway: Payment gateway client; defaults to the configured Razorpay one.
    """

    def __init__(self, gateway: Optional[RazorpayGateway] = None):
        self._gateway = gateway

    @property
    def gateway(self) -> RazorpayGateway:
        if self._gateway is None:
            self._gateway = get_payment_gateway()
        return self._gateway

    def _configured_fee(self) -> Decimal:
        try:
            return get_pricing_snapshot().cancellation_fee
        except PricingUnavailableError:
            return money(getattr(settings, "DEFAULT_CANCELLATION_FEE", 50))

    def refund(
        self,
        ride: Ride,
        original_status: str,
        cancelled_by: str,
        reason: str = "",
        fee_amount=None,
    ) -> RefundResult:
        """
        Refund what the rider paid minus any cancellation fee.

        Args:
            ride: Ride as it was before the cancellation update
            original_status: Status before cancellation (drives the fee)
            cancelled_by: rider, driver or system
            reason: Cancellation reason code/text
            fee_amount: Fee override; defaults to the configured cancellation fee

        Returns:
            RefundResult describing what was paid out
        """
        if original_status == "completed":
            return RefundResult(refunded=False, skipped_reason="Completed rides are not refunded")

        if ride.payment_method == "CASH":
            return RefundResult(refunded=False, skipped_reason="Cash ride, nothing was charged")

        if has_completed_refund(ride.pk):
            logger.warning("Refund already recorded for ride %s, skipping", ride.pk)
            return RefundResult(refunded=False, already_refunded=True, skipped_reason="Refund already processed")

        if fee_amount is None:
            fee_amount = self._configured_fee()
        fee = compute_cancellation_fee(original_status, cancelled_by, reason, fee_amount)
        wallet_refund, gateway_refund = split_refund(ride, fee)
        total = money(wallet_refund + gateway_refund)

        # Claim and ledger rows commit together; a failed credit leaves the ride paid
        gateway_txn = None
        with transaction.atomic():
            claimed = Ride.objects.filter(pk=ride.pk, payment_status="paid").update(
                payment_status="refunded",
                cancellation_fee=fee,
                refund_amount=total,
            )
            if claimed:
                if wallet_refund > ZERO:
                    credit_wallet(
                        ride.rider_id,
                        wallet_refund,
                        "REFUND",
                        ride=ride,
                        payment_method="WALLET",
                        description=f"Refund for cancelled ride #{ride.pk}",
                        metadata={"cancellation_fee": float(fee), "original_status": original_status},
                    )
                if gateway_refund > ZERO:
                    # The wallet credit is the durable record of what the rider is owed
                    gateway_txn = credit_wallet(
                        ride.rider_id,
                        gateway_refund,
                        "REFUND",
                        ride=ride,
                        payment_method="RAZORPAY",
                        description=f"Refund for cancelled ride #{ride.pk} (gateway)",
                        metadata={
                            "gateway_payment_id": ride.gateway_payment_id,
                            "gateway_refund_status": "pending",
                            "cancellation_fee": float(fee),
                        },
                    )

        if not claimed:
            current = Ride.objects.filter(pk=ride.pk).values_list("payment_status", flat=True).first()
            if current == "refunded":
                return RefundResult(refunded=False, already_refunded=True, skipped_reason="Refund already processed")
            Ride.objects.filter(pk=ride.pk).update(cancellation_fee=fee)
            return RefundResult(refunded=False, cancellation_fee=fee, skipped_reason="Ride was not paid")

        logger.info(
            "Refunding ride %s: fee %s, wallet %s, gateway %s (status %s, by %s)",
            ride.pk, fee, wallet_refund, gateway_refund, original_status, cancelled_by,
        )
        result = RefundResult(
            refunded=True,
            refund_amount=total,
            cancellation_fee=fee,
            wallet_refund=wallet_refund,
            gateway_refund=gateway_refund,
        )

        if gateway_txn is not None:
            self._refund_gateway_portion(ride, gateway_refund, gateway_txn, result)

        return result

    def _refund_gateway_portion(self, ride: Ride, amount: Decimal, txn, result: RefundResult) -> None:
        refund_status = "failed"
        if ride.gateway_payment_id:
            try:
                gateway_refund = self.gateway.refund(
                    ride.gateway_payment_id,
                    amount,
                    notes={"ride_id": str(ride.pk), "reason": "ride_cancelled"},
                )
                result.gateway_refund_id = gateway_refund.refund_id
                refund_status = gateway_refund.status
            except PaymentGatewayError as exc:
                result.gateway_error = str(exc)
                logger.error("Gateway refund failed for ride %s, wallet already credited: %s", ride.pk, exc)
        else:
            result.gateway_error = "No gateway payment id"
            logger.warning("Ride %s has no gateway payment id; crediting wallet only", ride.pk)

        Ride.objects.filter(pk=ride.pk).update(
            gateway_refund_id=result.gateway_refund_id,
            gateway_refund_status=refund_status,
        )
        txn.metadata.update({
            "gateway_refund_id": result.gateway_refund_id,
            "gateway_refund_status": refund_status,
        })
        txn.save(update_fields=["metadata"])
