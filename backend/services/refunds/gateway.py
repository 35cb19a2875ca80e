"""
Payment gateway client used for refunds.

Wraps the Razorpay SDK; amounts are passed in rupees and sent in paise.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

import razorpay
from django.conf import settings

from services.exceptions import PaymentGatewayError

logger = logging.getLogger(__name__)


@dataclass
class GatewayRefund:
    refund_id: str
    status: str
    amount: Decimal


class RazorpayGateway:
    """Refund calls against Razorpay."""

    def __init__(self, client: Optional[razorpay.Client] = None):
        self._client = client or razorpay.Client(
            auth=(
                getattr(settings, "RAZORPAY_KEY_ID", ""),
                getattr(settings, "RAZORPAY_KEY_SECRET", ""),
            )
        )

    def refund(self, payment_id: str, amount: Decimal, notes: Optional[Dict[str, Any]] = None) -> GatewayRefund:
        """
        Refund ``amount`` rupees of ``payment_id``.

        Raises:
            PaymentGatewayError: the gateway rejected the call or was unreachable.
        """
        paise = int((Decimal(str(amount)) * 100).to_integral_value())
        try:
            response = self._client.payment.refund(
                payment_id,
                {"amount": paise, "speed": "normal", "notes": notes or {}},
            )
        except Exception as exc:
            logger.exception("Razorpay refund failed for payment %s", payment_id)
            raise PaymentGatewayError(f"Refund failed for payment {payment_id}: {exc}") from exc

        return GatewayRefund(
            refund_id=response.get("id", ""),
            status=response.get("status", "pending"),
            amount=Decimal(response.get("amount", paise)) / 100,
        )


_gateway: Optional[RazorpayGateway] = None


def get_payment_gateway() -> RazorpayGateway:
    """Get singleton gateway configured from settings."""
    global _gateway
    if _gateway is None:
        _gateway = RazorpayGateway()
    return _gateway
