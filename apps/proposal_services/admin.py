from django.contrib import admin

from .models import ProposalService


@admin.register(ProposalService)
class ProposalServiceAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "proposal",
        "type",
        "value",
        "commission_type",
        "commission_value",
        "start_date",
        "end_date",
    )
    list_filter = ("type", "commission_type")
    search_fields = ("description", "proposal__title")
    raw_id_fields = ("proposal",)
