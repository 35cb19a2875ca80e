from django.conf import settings
from django.db import models


class WalletTransaction(models.Model):
    """Wallet ledger. A completed REFUND row for a ride marks it as refunded."""
    TYPE_CHOICES = [
        ('TOP_UP', 'Top up'),
        ('RIDE_PAYMENT', 'Ride payment'),
        ('REFUND', 'Refund'),
    ]

    STATUS_CHOICES = [
        ('PENDING', 'Pending'),
        ('COMPLETED', 'Completed'),
        ('FAILED', 'Failed'),
    ]

    PAYMENT_METHOD_CHOICES = [
        ('WALLET', 'Wallet'),
        ('RAZORPAY', 'Razorpay'),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='wallet_transactions'
    )

    ride = models.ForeignKey(
        'rides.Ride',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='wallet_transactions'
    )

    transaction_type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='COMPLETED')
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES, default='WALLET')

    amount = models.DecimalField(max_digits=12, decimal_places=2)
    balance_before = models.DecimalField(max_digits=12, decimal_places=2)
    balance_after = models.DecimalField(max_digits=12, decimal_places=2)

    description = models.CharField(max_length=255, blank=True)
    metadata = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'wallet_transactions'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['ride', 'transaction_type', 'status'], name='wallet_txn_ride_idx'),
        ]

    def __str__(self):
        return f"{self.transaction_type} {self.amount} for {self.user_id} ({self.status})"
