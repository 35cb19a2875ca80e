from decimal import Decimal
from unittest.mock import patch

from django.db import DatabaseError
from django.test import TestCase

from payments.models import WalletTransaction
from rides.models import Ride
from services.exceptions import PaymentGatewayError
from services.refunds import GatewayRefund, RefundOrchestrator, compute_cancellation_fee, split_refund
from .helpers import make_ride, make_rider


class FakeGateway:
	def __init__(self, fail=False):
		self.fail = fail
		self.calls = []

	def refund(self, payment_id, amount, notes=None):
		self.calls.append((payment_id, amount))
		if self.fail:
			raise PaymentGatewayError("gateway timeout")
		return GatewayRefund(refund_id="rfnd_001", status="processed", amount=amount)


class CancellationFeeTests(TestCase):
	def test_fee_only_for_rider_after_driver_committed(self):
		self.assertEqual(compute_cancellation_fee("accepted", "rider", fee_amount=50), Decimal("50.00"))
		self.assertEqual(compute_cancellation_fee("arrived", "rider", fee_amount=50), Decimal("50.00"))
		self.assertEqual(compute_cancellation_fee("requested", "rider", fee_amount=50), Decimal("0.00"))
		self.assertEqual(compute_cancellation_fee("accepted", "driver", fee_amount=50), Decimal("0.00"))
		self.assertEqual(compute_cancellation_fee("accepted", "system", fee_amount=50), Decimal("0.00"))

	def test_system_reason_waives_fee(self):
		self.assertEqual(
			compute_cancellation_fee("accepted", "rider", "NO_DRIVER_ACCEPTED_TIMEOUT", fee_amount=50),
			Decimal("0.00"),
		)

	def test_hybrid_fee_comes_out_of_wallet_portion_only(self):
		rider = make_rider()
		ride = make_ride(rider, payment_method="hybrid", wallet_amount_used=Decimal("30"), gateway_amount_paid=Decimal("270"))

		self.assertEqual(split_refund(ride, Decimal("50")), (Decimal("0.00"), Decimal("270.00")))

	def test_single_path_ride_pays_fee_from_its_portion(self):
		rider = make_rider()
		gateway_ride = make_ride(rider, payment_method="RAZORPAY", gateway_amount_paid=Decimal("300"))

		self.assertEqual(split_refund(gateway_ride, Decimal("50")), (Decimal("0.00"), Decimal("250.00")))


class RefundOrchestratorTests(TestCase):
	def setUp(self):
		self.rider = make_rider()
		self.gateway = FakeGateway()
		self.refunds = RefundOrchestrator(gateway=self.gateway)

	def paid_ride(self, **fields):
		values = {
			"status": "cancelled",
			"payment_method": "WALLET",
			"payment_status": "paid",
			"wallet_amount_used": Decimal("300"),
		}
		values.update(fields)
		return make_ride(self.rider, **values)

	def wallet_balance(self):
		self.rider.refresh_from_db()
		return self.rider.wallet_balance

	def test_rider_cancel_after_acceptance_keeps_fee(self):
		ride = self.paid_ride()

		result = self.refunds.refund(ride, "accepted", "rider")

		self.assertTrue(result.refunded)
		self.assertEqual(result.cancellation_fee, Decimal("50.00"))
		self.assertEqual(result.refund_amount, Decimal("250.00"))
		self.assertEqual(self.wallet_balance(), Decimal("250.00"))
		ride.refresh_from_db()
		self.assertEqual(ride.payment_status, "refunded")
		self.assertEqual(ride.refund_amount, Decimal("250.00"))

	def test_driver_cancel_refunds_everything(self):
		result = self.refunds.refund(self.paid_ride(), "accepted", "driver")

		self.assertEqual(result.cancellation_fee, Decimal("0.00"))
		self.assertEqual(result.refund_amount, Decimal("300.00"))
		self.assertEqual(self.wallet_balance(), Decimal("300.00"))

	def test_refund_is_idempotent(self):
		ride = self.paid_ride()

		self.refunds.refund(ride, "accepted", "rider")
		second = self.refunds.refund(ride, "accepted", "rider")

		self.assertFalse(second.refunded)
		self.assertTrue(second.already_refunded)
		self.assertEqual(self.wallet_balance(), Decimal("250.00"))
		self.assertEqual(WalletTransaction.objects.filter(ride=ride, transaction_type="REFUND").count(), 1)

	def test_cash_and_completed_rides_are_skipped(self):
		cash = self.paid_ride(payment_method="CASH", wallet_amount_used=Decimal("0"))

		self.assertFalse(self.refunds.refund(cash, "accepted", "rider").refunded)
		self.assertFalse(self.refunds.refund(cash, "completed", "rider").refunded)
		self.assertEqual(self.wallet_balance(), Decimal("0.00"))

	def test_unpaid_ride_records_fee_without_refund(self):
		ride = self.paid_ride(payment_method="RAZORPAY", payment_status="pending", wallet_amount_used=Decimal("0"))

		result = self.refunds.refund(ride, "accepted", "rider")

		self.assertFalse(result.refunded)
		self.assertEqual(Ride.objects.get(pk=ride.pk).cancellation_fee, Decimal("50.00"))

	def test_gateway_portion_is_refunded_and_credited(self):
		ride = self.paid_ride(
			payment_method="RAZORPAY",
			wallet_amount_used=Decimal("0"),
			gateway_amount_paid=Decimal("300"),
			gateway_payment_id="pay_123",
		)

		result = self.refunds.refund(ride, "requested", "rider")

		self.assertEqual(self.gateway.calls, [("pay_123", Decimal("300.00"))])
		self.assertEqual(result.gateway_refund_id, "rfnd_001")
		ride.refresh_from_db()
		self.assertEqual(ride.gateway_refund_status, "processed")
		self.assertEqual(self.wallet_balance(), Decimal("300.00"))

	def test_gateway_failure_still_credits_wallet(self):
		refunds = RefundOrchestrator(gateway=FakeGateway(fail=True))
		ride = self.paid_ride(
			payment_method="RAZORPAY",
			wallet_amount_used=Decimal("0"),
			gateway_amount_paid=Decimal("300"),
			gateway_payment_id="pay_123",
		)

		result = refunds.refund(ride, "accepted", "rider")

		self.assertEqual(result.gateway_error, "gateway timeout")
		self.assertEqual(self.wallet_balance(), Decimal("250.00"))
		ride.refresh_from_db()
		self.assertEqual(ride.gateway_refund_status, "failed")
		self.assertEqual(ride.payment_status, "refunded")

	def test_hybrid_refunds_each_path(self):
		ride = self.paid_ride(
			payment_method="hybrid",
			wallet_amount_used=Decimal("100"),
			gateway_amount_paid=Decimal("200"),
			gateway_payment_id="pay_456",
		)

		result = self.refunds.refund(ride, "accepted", "rider")

		self.assertEqual(result.wallet_refund, Decimal("50.00"))
		self.assertEqual(result.gateway_refund, Decimal("200.00"))
		self.assertEqual(self.gateway.calls, [("pay_456", Decimal("200.00"))])
		self.assertEqual(self.wallet_balance(), Decimal("250.00"))

	def test_hybrid_refunds_whole_gateway_portion(self):
		ride = self.paid_ride(
			payment_method="hybrid",
			wallet_amount_used=Decimal("30"),
			gateway_amount_paid=Decimal("270"),
			gateway_payment_id="pay_1",
		)

		result = self.refunds.refund(ride, "accepted", "rider", fee_amount=50)

		self.assertEqual(self.gateway.calls, [("pay_1", Decimal("270.00"))])
		self.assertEqual(result.wallet_refund, Decimal("0.00"))
		self.assertEqual(result.gateway_refund, Decimal("270.00"))
		self.assertEqual(result.refund_amount, Decimal("270.00"))
		self.assertEqual(self.wallet_balance(), Decimal("270.00"))

	def test_failed_wallet_credit_leaves_ride_refundable(self):
		ride = self.paid_ride()

		with patch("services.refunds.refund_orchestrator.credit_wallet", side_effect=DatabaseError("disk full")):
			with self.assertRaises(DatabaseError):
				self.refunds.refund(ride, "requested", "rider")

		ride.refresh_from_db()
		self.assertEqual(ride.payment_status, "paid")
		self.assertFalse(WalletTransaction.objects.filter(ride=ride).exists())

		result = self.refunds.refund(ride, "requested", "rider")

		self.assertTrue(result.refunded)
		self.assertFalse(result.already_refunded)
		self.assertEqual(self.wallet_balance(), Decimal("300.00"))
		ride.refresh_from_db()
		self.assertEqual(ride.payment_status, "refunded")

	def test_gateway_ledger_row_records_refund_outcome(self):
		ride = self.paid_ride(
			payment_method="RAZORPAY",
			wallet_amount_used=Decimal("0"),
			gateway_amount_paid=Decimal("300"),
			gateway_payment_id="pay_123",
		)

		self.refunds.refund(ride, "requested", "rider")

		txn = WalletTransaction.objects.get(ride=ride, transaction_type="REFUND")
		self.assertEqual(txn.payment_method, "RAZORPAY")
		self.assertEqual(txn.metadata["gateway_refund_id"], "rfnd_001")
		self.assertEqual(txn.metadata["gateway_refund_status"], "processed")

	def test_fee_covering_whole_payment_refunds_nothing(self):
		ride = self.paid_ride(fare=Decimal("50"), wallet_amount_used=Decimal("50"))

		result = self.refunds.refund(ride, "arrived", "rider")

		self.assertTrue(result.refunded)
		self.assertEqual(result.refund_amount, Decimal("0.00"))
		self.assertFalse(WalletTransaction.objects.filter(ride=ride).exists())
		self.assertEqual(self.wallet_balance(), Decimal("0.00"))
