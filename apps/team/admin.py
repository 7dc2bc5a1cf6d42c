from django.contrib import admin

from .models import Collaborator, CollaboratorCommission


@admin.register(Collaborator)
class CollaboratorAdmin(admin.ModelAdmin):
    list_display = (
        "name",
        "agency",
        "user",
        "status",
        "commission_percentage",
        "commission_base",
        "created_at",
    )
    list_filter = ("status", "commission_base", "agency")
    search_fields = ("name", "email", "user__username", "user__email")


@admin.register(CollaboratorCommission)
class CollaboratorCommissionAdmin(admin.ModelAdmin):
    list_display = (
        "collaborator",
        "proposal",
        "sale_value",
        "profit_value",
        "commission_percentage",
        "commission_base",
        "commission_amount",
        "period_month",
        "period_year",
    )
    list_filter = ("period_year", "period_month", "commission_base", "agency")
    search_fields = ("collaborator__name", "proposal__title")
    readonly_fields = [f.name for f in CollaboratorCommission._meta.fields]
