
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import serializers, viewsets

from apps.agencies.api import AgencyScopedMixin
from apps.agencies.permissions import IsAgencyMember
from apps.crm.models import Proposal
from apps.team.commissions import money
from .models import ProposalService
from .services import line_commission


class ProposalServiceSerializer(serializers.ModelSerializer):
    proposal_id = serializers.PrimaryKeyRelatedField(
        queryset=Proposal.objects.all(), source="proposal"
    )
    commission_amount = serializers.SerializerMethodField()

    class Meta:
        model = ProposalService
        fields = [
            "id",
            "proposal_id",
            "type",
            "description",
            "value",
            "commission_type",
            "commission_value",
            "commission_amount",
            "details",
            "start_date",
            "end_date",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "start_date", "end_date", "created_at", "updated_at"]

    def get_commission_amount(self, obj):
        amount = line_commission(obj.commission_type, obj.value, obj.commission_value)
        return str(money(amount))

    def validate_proposal_id(self, proposal):
        agency = self.context.get("agency")
        if agency is None or proposal.agency_id != agency.pk:
            raise serializers.ValidationError("Proposta não encontrada.")
        if self.instance is not None and proposal.pk != self.instance.proposal_id:
            raise serializers.ValidationError("Não é possível mover o serviço para outra proposta.")
        return proposal

    def validate_details(self, value):
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise serializers.ValidationError("details deve ser um objeto.")
        return value


class ProposalServiceViewSet(AgencyScopedMixin, viewsets.ModelViewSet):
    """
    Serviços das propostas. Os totais da proposta são recalculados a cada
    leitura (GET /proposals/{id}/totals/), sem cache.
    """

    queryset = ProposalService.objects.select_related("proposal").all()
    serializer_class = ProposalServiceSerializer
    permission_classes = [IsAgencyMember]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ["proposal", "type", "commission_type"]
    agency_field = "proposal__agency"
