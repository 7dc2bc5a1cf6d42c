from decimal import Decimal

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import serializers, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.agencies.api import AgencyScopedMixin
from apps.agencies.permissions import IsAgencyAdminOrReadOnly, IsAgencyMember
from .commissions import summarize_commissions
from .models import Collaborator, CollaboratorCommission


class CollaboratorSerializer(serializers.ModelSerializer):
    class Meta:
        model = Collaborator
        fields = [
            "id",
            "user",
            "name",
            "email",
            "phone",
            "status",
            "commission_percentage",
            "commission_base",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "created_at", "updated_at"]

    def validate_commission_percentage(self, value):
        if value < Decimal("0") or value > Decimal("100"):
            raise serializers.ValidationError("Percentual deve estar entre 0 e 100.")
        return value


class CollaboratorCommissionSerializer(serializers.ModelSerializer):
    collaborator_name = serializers.CharField(source="collaborator.name", read_only=True)
    proposal_number = serializers.IntegerField(source="proposal.number", read_only=True)

    class Meta:
        model = CollaboratorCommission
        fields = [
            "id",
            "collaborator",
            "collaborator_name",
            "proposal",
            "proposal_number",
            "sale_value",
            "profit_value",
            "commission_percentage",
            "commission_base",
            "commission_amount",
            "period_month",
            "period_year",
            "created_at",
        ]
        read_only_fields = fields


class CollaboratorViewSet(AgencyScopedMixin, viewsets.ModelViewSet):
    queryset = Collaborator.objects.select_related("user").all()
    serializer_class = CollaboratorSerializer
    permission_classes = [IsAgencyAdminOrReadOnly]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ["status", "commission_base", "user"]


class CollaboratorCommissionViewSet(AgencyScopedMixin, viewsets.ReadOnlyModelViewSet):
    """
    Comissões são criadas e removidas apenas pelo fechamento/reabertura das propostas.
    """

    queryset = CollaboratorCommission.objects.select_related("collaborator", "proposal").all()
    serializer_class = CollaboratorCommissionSerializer
    permission_classes = [IsAgencyMember]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ["collaborator", "proposal", "period_month", "period_year"]

    @action(detail=False, methods=["get"], url_path="totals")
    def totals(self, request, *args, **kwargs):
        """
        Totais das comissões filtradas (mesmos filtros da listagem).
        """
        qs = self.filter_queryset(self.get_queryset())
        return Response(summarize_commissions(qs))
