from django.contrib import admin

from .models import Client, Proposal, ProposalHistory, Stage


@admin.register(Stage)
class StageAdmin(admin.ModelAdmin):
    list_display = ("name", "agency", "order", "color", "is_closed", "is_lost")
    list_filter = ("agency", "is_closed", "is_lost")
    ordering = ("agency", "order")


@admin.register(Client)
class ClientAdmin(admin.ModelAdmin):
    list_display = ("name", "agency", "email", "phone", "created_at")
    list_filter = ("agency",)
    search_fields = ("name", "email", "phone", "cpf", "passport")


class ProposalHistoryInline(admin.TabularInline):
    model = ProposalHistory
    extra = 0
    can_delete = False
    fields = ("created_at", "action", "description", "old_value", "new_value", "user")
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Proposal)
class ProposalAdmin(admin.ModelAdmin):
    list_display = ("number", "title", "agency", "stage", "client", "assigned_collaborator", "created_at")
    list_filter = ("agency", "stage", "stage__is_closed")
    search_fields = ("title", "client__name")
    readonly_fields = ("number", "created_at", "updated_at")
    raw_id_fields = ("client", "assigned_collaborator", "created_by")
    inlines = [ProposalHistoryInline]

    def get_readonly_fields(self, request, obj=None):
        # Etapa muda pelo orquestrador (API move/close), não pelo admin.
        if obj is not None:
            return (*self.readonly_fields, "stage")
        return self.readonly_fields


@admin.register(ProposalHistory)
class ProposalHistoryAdmin(admin.ModelAdmin):
    list_display = ("proposal", "action", "old_value", "new_value", "user", "created_at")
    list_filter = ("action",)
    search_fields = ("description", "old_value", "new_value")
    readonly_fields = ("proposal", "user", "action", "description", "old_value", "new_value", "created_at")

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
