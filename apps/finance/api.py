import calendar
from datetime import date

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import serializers, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.agencies.api import AgencyScopedMixin
from apps.agencies.permissions import IsFinanceRole, get_user_agency
from .models import FinancialTransaction
from .services import cancel_transaction, get_finance_summary


class FinancialTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = FinancialTransaction
        fields = [
            "id",
            "proposal",
            "client",
            "type",
            "category",
            "description",
            "total_value",
            "profit_value",
            "currency",
            "status",
            "launch_date",
            "due_date",
            "payment_date",
            "details",
            "created_by",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "created_by", "created_at", "updated_at"]
        # receita ativa única por proposta: checada em validate(), com mensagem própria
        validators = []

    def _check_agency(self, obj):
        agency = self.context.get("agency")
        if obj is not None and (agency is None or obj.agency_id != agency.pk):
            raise serializers.ValidationError("Registro não pertence a esta agência.")
        return obj

    def validate_proposal(self, proposal):
        return self._check_agency(proposal)

    def validate_client(self, client):
        return self._check_agency(client)

    def validate(self, attrs):
        instance = self.instance
        proposal = attrs.get("proposal", instance.proposal if instance else None)
        tx_type = attrs.get("type", instance.type if instance else None)
        status = attrs.get(
            "status", instance.status if instance else FinancialTransaction.Status.PENDING
        )
        if proposal is not None and tx_type == FinancialTransaction.TransactionType.INCOME:
            if status != FinancialTransaction.Status.CANCELLED:
                if not proposal.stage.is_closed:
                    raise serializers.ValidationError(
                        {"proposal": "Receita ativa só é permitida para proposta em etapa fechada."}
                    )
                active = FinancialTransaction.objects.filter(
                    proposal=proposal,
                    type=FinancialTransaction.TransactionType.INCOME,
                ).exclude(status=FinancialTransaction.Status.CANCELLED)
                if instance is not None:
                    active = active.exclude(pk=instance.pk)
                if active.exists():
                    raise serializers.ValidationError(
                        {"proposal": "A proposta já possui uma receita ativa."}
                    )
        return attrs


class FinancialTransactionViewSet(AgencyScopedMixin, viewsets.ModelViewSet):
    """
    Lançamentos financeiros. Não há exclusão: lançamentos são cancelados.
    """

    queryset = FinancialTransaction.objects.select_related("proposal", "client").all()
    serializer_class = FinancialTransactionSerializer
    permission_classes = [IsFinanceRole]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = [
        "type",
        "status",
        "category",
        "proposal",
        "client",
        "launch_date",
        "due_date",
    ]
    http_method_names = ["get", "post", "put", "patch", "head", "options"]

    def perform_create(self, serializer):
        serializer.save(agency=self.get_agency(), created_by=self.request.user)

    @action(detail=True, methods=["post"], url_path="cancel")
    def cancel(self, request, pk=None):
        tx = cancel_transaction(self.get_object())
        return Response(self.get_serializer(tx).data)


class FinanceSummaryView(APIView):
    """
    Resumo financeiro da agência por período.

    Query-parâmetros (opcionais):
      - year (int)
      - month (int, 1–12; exige year)
    Sem parâmetros, considera todos os lançamentos.
    """

    permission_classes = [IsFinanceRole]

    def get(self, request, *args, **kwargs):
        year = request.query_params.get("year")
        month = request.query_params.get("month")

        try:
            year_int = int(year) if year else None
            month_int = int(month) if month else None
        except (TypeError, ValueError):
            return Response(
                {"detail": "Os campos 'year' e 'month' devem ser números inteiros."},
                status=400,
            )

        if month_int is not None and (year_int is None or month_int < 1 or month_int > 12):
            return Response(
                {"detail": "O campo 'month' deve estar entre 1 e 12 e exige 'year'."},
                status=400,
            )

        date_from = date_to = None
        if year_int is not None and month_int is not None:
            date_from = date(year_int, month_int, 1)
            date_to = date(year_int, month_int, calendar.monthrange(year_int, month_int)[1])
        elif year_int is not None:
            date_from = date(year_int, 1, 1)
            date_to = date(year_int, 12, 31)

        summary = get_finance_summary(get_user_agency(request.user), date_from, date_to)

        return Response(
            {
                "period": {"year": year_int, "month": month_int},
                "summary": {
                    "income_total": summary.income_total,
                    "expense_total": summary.expense_total,
                    "profit_total": summary.profit_total,
                    "net_total": summary.net_total,
                },
                "by_status": summary.by_status,
            }
        )
