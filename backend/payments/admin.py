from django.contrib import admin

from payments.models import WalletTransaction


@admin.register(WalletTransaction)
class WalletTransactionAdmin(admin.ModelAdmin):
    """Read-mostly view of the wallet ledger"""

    list_display = [
        "id",
        "user",
        "ride",
        "transaction_type",
        "amount",
        "status",
        "payment_method",
        "created_at",
    ]

    list_filter = [
        "transaction_type",
        "status",
        "payment_method",
    ]

    search_fields = [
        "user__username",
        "ride__id",
    ]

    readonly_fields = [
        "balance_before",
        "balance_after",
        "created_at",
    ]
