"""
Cancellation fees and idempotent refunds.
"""

from .gateway import GatewayRefund, RazorpayGateway, get_payment_gateway
from .refund_orchestrator import (
    RefundOrchestrator,
    RefundResult,
    SYSTEM_CANCELLATION_REASONS,
    compute_cancellation_fee,
    split_refund,
)

__all__ = [
    "GatewayRefund",
    "RazorpayGateway",
    "get_payment_gateway",
    "RefundOrchestrator",
    "RefundResult",
    "SYSTEM_CANCELLATION_REASONS",
    "compute_cancellation_fee",
    "split_refund",
]
