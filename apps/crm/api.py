from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import serializers, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.agencies.api import AgencyScopedMixin
from apps.agencies.permissions import IsAgencyAdminOrReadOnly, IsAgencyMember
from apps.proposal_services.services import get_proposal_totals, get_totals_by_proposal
from apps.team.commissions import money
from apps.team.models import Collaborator
from .exceptions import InvalidStage, MissingFinancialChoice, StageConflict
from .models import Client, Proposal, ProposalHistory, Stage
from .services import (
    create_stage,
    delete_stage,
    get_default_stage,
    reorder_stages,
    resolve_closed_won_stage,
    update_stage,
)
from . import transitions


def totals_payload(totals):
    return {"value": str(money(totals.value)), "commission": str(money(totals.commission))}


def pipeline_error_response(exc):
    """
    Resposta HTTP para erros do funil (nada foi alterado).
    """
    if isinstance(exc, StageConflict):
        return Response(
            {
                "detail": str(exc),
                "expected_stage_id": exc.expected_stage_id,
                "current_stage_id": exc.current_stage_id,
            },
            status=status.HTTP_409_CONFLICT,
        )
    if isinstance(exc, MissingFinancialChoice):
        return Response(
            {"detail": str(exc), "requires_financial_choice": True},
            status=status.HTTP_400_BAD_REQUEST,
        )
    return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)


# ---------- Serializers ----------
class StageSerializer(serializers.ModelSerializer):
    order = serializers.IntegerField(required=False, min_value=0)

    class Meta:
        model = Stage
        fields = ["id", "name", "color", "order", "is_closed", "is_lost", "created_at", "updated_at"]
        read_only_fields = ["id", "created_at", "updated_at"]


class StageOrderSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    order = serializers.IntegerField(min_value=0)


class ClientSerializer(serializers.ModelSerializer):
    class Meta:
        model = Client
        fields = ["id", "name", "email", "phone", "cpf", "passport", "notes", "created_at"]
        read_only_fields = ["id", "created_at"]


class ProposalSerializer(serializers.ModelSerializer):
    stage = StageSerializer(read_only=True)

    # etapa só na criação; depois, via /move/
    stage_id = serializers.PrimaryKeyRelatedField(
        queryset=Stage.objects.all(), source="stage", write_only=True, required=False
    )
    client_id = serializers.PrimaryKeyRelatedField(
        queryset=Client.objects.all(), source="client", required=False, allow_null=True
    )
    assigned_collaborator_id = serializers.PrimaryKeyRelatedField(
        queryset=Collaborator.objects.all(),
        source="assigned_collaborator",
        required=False,
        allow_null=True,
    )
    totals = serializers.SerializerMethodField()

    class Meta:
        model = Proposal
        fields = [
            "id",
            "number",
            "title",
            "client_id",
            "assigned_collaborator_id",
            "stage",
            "stage_id",
            "discount_percent",
            "notes",
            "totals",
            "created_by",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "number", "created_by", "created_at", "updated_at"]

    def _check_agency(self, obj):
        agency = self.context.get("agency")
        if obj is not None and (agency is None or obj.agency_id != agency.pk):
            raise serializers.ValidationError("Registro não pertence a esta agência.")
        return obj

    def validate_stage_id(self, stage):
        if self.instance is not None and stage.pk != self.instance.stage_id:
            raise serializers.ValidationError("Use a ação 'move' para trocar a etapa da proposta.")
        return self._check_agency(stage)

    def validate_client_id(self, client):
        return self._check_agency(client)

    def validate_assigned_collaborator_id(self, collaborator):
        return self._check_agency(collaborator)

    def validate_discount_percent(self, value):
        if value < 0 or value > 100:
            raise serializers.ValidationError("Desconto deve estar entre 0 e 100.")
        return value

    def validate(self, attrs):
        if self.instance is None and attrs.get("stage") is None:
            stage = get_default_stage(self.context.get("agency"))
            if stage is None:
                raise serializers.ValidationError(
                    {"stage_id": "A agência não possui etapas no funil."}
                )
            attrs["stage"] = stage
        return attrs

    def get_totals(self, obj):
        totals_map = self.context.get("totals_by_proposal")
        if totals_map is not None and obj.pk in totals_map:
            totals = totals_map[obj.pk]
        else:
            totals = get_proposal_totals(obj.pk)
        return totals_payload(totals)


class ProposalHistorySerializer(serializers.ModelSerializer):
    user_name = serializers.SerializerMethodField()

    class Meta:
        model = ProposalHistory
        fields = ["id", "action", "description", "old_value", "new_value", "user", "user_name", "created_at"]
        read_only_fields = fields

    def get_user_name(self, obj):
        if obj.user is None:
            return None
        return obj.user.get_full_name() or obj.user.get_username()


class MoveSerializer(serializers.Serializer):
    stage_id = serializers.IntegerField()
    from_stage_id = serializers.IntegerField(required=False, allow_null=True)
    financial_choice = serializers.ChoiceField(
        choices=transitions.FinancialChoice.values, required=False, allow_null=True
    )


class FinancialChoiceSerializer(serializers.Serializer):
    financial_choice = serializers.ChoiceField(
        choices=transitions.FinancialChoice.values, required=False, allow_null=True
    )


# ---------- ViewSets ----------
class StageViewSet(AgencyScopedMixin, viewsets.ModelViewSet):
    """
    Etapas do funil da agência. Leitura para membros, escrita para administradores.
    """

    queryset = Stage.objects.all()
    serializer_class = StageSerializer
    permission_classes = [IsAgencyAdminOrReadOnly]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ["is_closed", "is_lost"]

    def perform_create(self, serializer):
        serializer.instance = create_stage(self.get_agency(), **serializer.validated_data)

    def perform_update(self, serializer):
        serializer.instance = update_stage(serializer.instance, **serializer.validated_data)

    def perform_destroy(self, instance):
        try:
            delete_stage(instance)
        except ValueError as exc:
            raise serializers.ValidationError({"detail": str(exc)})

    @action(methods=["post"], detail=False, url_path="reorder")
    def reorder(self, request):
        """
        Reordena as etapas.
        Body: [{"id": <int>, "order": <int>}, ...]
        """
        payload = StageOrderSerializer(data=request.data, many=True)
        payload.is_valid(raise_exception=True)
        try:
            stages = reorder_stages(
                self.get_agency(),
                [(item["id"], item["order"]) for item in payload.validated_data],
            )
        except ValueError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(self.get_serializer(stages, many=True).data)

    @action(methods=["get"], detail=False, url_path="closed-won")
    def closed_won(self, request):
        stage = resolve_closed_won_stage(self.get_agency())
        if stage is None:
            return Response(
                {"detail": "A agência não possui etapa fechada no funil."},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(self.get_serializer(stage).data)


class ClientViewSet(AgencyScopedMixin, viewsets.ModelViewSet):
    queryset = Client.objects.all().order_by("name", "id")
    serializer_class = ClientSerializer
    permission_classes = [IsAgencyMember]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ["email", "cpf"]


class ProposalViewSet(AgencyScopedMixin, viewsets.ModelViewSet):
    """
    Propostas. A etapa muda só pelas ações move / close, que passam pelo
    orquestrador de transições.
    """

    queryset = (
        Proposal.objects.select_related("stage", "client", "assigned_collaborator")
        .all()
        .order_by("-id")
    )
    serializer_class = ProposalSerializer
    permission_classes = [IsAgencyMember]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ["stage", "client", "assigned_collaborator", "stage__is_closed"]

    def list(self, request, *args, **kwargs):
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        objects = page if page is not None else list(queryset)

        context = self.get_serializer_context()
        context["totals_by_proposal"] = get_totals_by_proposal([p.pk for p in objects])
        serializer = self.get_serializer_class()(objects, many=True, context=context)

        if page is not None:
            return self.get_paginated_response(serializer.data)
        return Response(serializer.data)

    def perform_create(self, serializer):
        serializer.save(agency=self.get_agency(), created_by=self.request.user)

    def perform_destroy(self, instance):
        transitions.delete_proposal(instance, actor=self.request.user)

    def _transition_response(self, proposal, result):
        proposal.refresh_from_db()
        data = {
            "proposal": self.get_serializer(proposal).data,
            "transition": result.as_dict(),
            "warnings": [failure.as_dict() for failure in result.failures],
        }
        return Response(data, status=status.HTTP_200_OK)

    @action(methods=["post"], detail=True, url_path="move")
    def move(self, request, pk=None):
        """
        Move a proposta para outra etapa do funil.
        Body: {"stage_id": <int>, "from_stage_id": <int>?, "financial_choice": "add"|"skip"?}
        """
        proposal = self.get_object()
        payload = MoveSerializer(data=request.data)
        payload.is_valid(raise_exception=True)

        try:
            result = transitions.transition_proposal(
                proposal,
                payload.validated_data["stage_id"],
                from_stage_id=payload.validated_data.get("from_stage_id"),
                financial_choice=payload.validated_data.get("financial_choice"),
                actor=request.user,
            )
        except (InvalidStage, MissingFinancialChoice, StageConflict) as exc:
            return pipeline_error_response(exc)
        return self._transition_response(proposal, result)

    @action(methods=["post"], detail=True, url_path="close")
    def close(self, request, pk=None):
        """
        Fecha a proposta na etapa de venda fechada da agência.
        Body: {"financial_choice": "add"|"skip"}
        """
        proposal = self.get_object()
        payload = FinancialChoiceSerializer(data=request.data)
        payload.is_valid(raise_exception=True)

        try:
            result = transitions.close_proposal(
                proposal,
                payload.validated_data.get("financial_choice"),
                actor=request.user,
            )
        except (InvalidStage, MissingFinancialChoice, StageConflict) as exc:
            return pipeline_error_response(exc)
        return self._transition_response(proposal, result)

    @action(methods=["post"], detail=True, url_path="retry-ledgers")
    def retry_ledgers(self, request, pk=None):
        """
        Refaz lançamentos/comissões pendentes depois de uma falha parcial.
        Body (proposta fechada): {"financial_choice": "add"|"skip"}
        """
        proposal = self.get_object()
        payload = FinancialChoiceSerializer(data=request.data)
        payload.is_valid(raise_exception=True)

        try:
            result = transitions.retry_ledgers(
                proposal,
                payload.validated_data.get("financial_choice"),
                actor=request.user,
            )
        except MissingFinancialChoice as exc:
            return pipeline_error_response(exc)
        return self._transition_response(proposal, result)

    @action(methods=["get"], detail=True, url_path="history")
    def history(self, request, pk=None):
        proposal = self.get_object()
        entries = proposal.history.select_related("user").all()
        return Response(ProposalHistorySerializer(entries, many=True).data)

    @action(methods=["get"], detail=True, url_path="totals")
    def totals(self, request, pk=None):
        proposal = self.get_object()
        totals = get_proposal_totals(proposal.pk)
        return Response(totals_payload(totals))
