from django.contrib import admin

from .models import FinancialTransaction


@admin.register(FinancialTransaction)
class FinancialTransactionAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "agency",
        "type",
        "category",
        "total_value",
        "profit_value",
        "status",
        "launch_date",
        "proposal",
    )
    list_filter = ("type", "status", "category", "launch_date", "agency")
    search_fields = ("description", "category", "details")
    raw_id_fields = ("proposal", "client")

    def has_delete_permission(self, request, obj=None):
        # Lançamentos são cancelados, não apagados.
        return False
