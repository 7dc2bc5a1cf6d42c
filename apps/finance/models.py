from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Q


class FinancialTransaction(models.Model):
    """
    Lançamento financeiro da agência (receita / despesa).

    Receitas ligadas a propostas são criadas no fechamento da proposta e
    canceladas (nunca apagadas) na reabertura.
    """

    class TransactionType(models.TextChoices):
        INCOME = "income", "Receita"
        EXPENSE = "expense", "Despesa"

    class Status(models.TextChoices):
        PENDING = "pending", "Pendente"
        PAID = "paid", "Pago"
        CANCELLED = "cancelled", "Cancelado"
        OVERDUE = "overdue", "Vencido"

    agency = models.ForeignKey(
        "agencies.Agency",
        on_delete=models.CASCADE,
        related_name="financial_transactions",
        verbose_name="Agência",
    )
    proposal = models.ForeignKey(
        "crm.Proposal",
        on_delete=models.SET_NULL,
        related_name="financial_transactions",
        verbose_name="Proposta",
        blank=True,
        null=True,
    )
    client = models.ForeignKey(
        "crm.Client",
        on_delete=models.SET_NULL,
        related_name="financial_transactions",
        verbose_name="Cliente",
        blank=True,
        null=True,
    )
    type = models.CharField(
        "Tipo",
        max_length=20,
        choices=TransactionType.choices,
    )
    category = models.CharField(
        "Categoria",
        max_length=100,
        blank=True,
        help_text="Ex.: Venda, Fornecedor, Marketing.",
    )
    description = models.CharField("Descrição", max_length=255)
    total_value = models.DecimalField("Valor total", max_digits=12, decimal_places=2)
    profit_value = models.DecimalField(
        "Lucro",
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    currency = models.CharField("Moeda", max_length=10, default="BRL")
    status = models.CharField(
        "Status",
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
    )
    launch_date = models.DateField("Data de lançamento")
    due_date = models.DateField("Vencimento", blank=True, null=True)
    payment_date = models.DateField("Data de pagamento", blank=True, null=True)
    details = models.TextField("Observações", blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="financial_transactions",
        verbose_name="Criado por",
        blank=True,
        null=True,
    )
    created_at = models.DateTimeField("Criado", auto_now_add=True)
    updated_at = models.DateTimeField("Atualizado", auto_now=True)

    class Meta:
        verbose_name = "Lançamento financeiro"
        verbose_name_plural = "Lançamentos financeiros"
        ordering = ["-launch_date", "-id"]
        constraints = [
            # No máximo uma receita ativa por proposta.
            models.UniqueConstraint(
                fields=["proposal"],
                condition=Q(type="income") & ~Q(status="cancelled"),
                name="uniq_active_income_per_proposal",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.get_type_display()} {self.total_value} {self.currency} ({self.get_status_display()})"
