from decimal import Decimal

from django.conf import settings
from django.db import models


class CommissionBase(models.TextChoices):
    SALE_VALUE = "sale_value", "Valor da venda"
    PROFIT = "profit", "Lucro"


class Collaborator(models.Model):
    """
    Colaborador da agência (vendedor / agente) com sua política de comissão.
    Pode estar ligado a um usuário do sistema.
    """

    class Status(models.TextChoices):
        ACTIVE = "active", "Ativo"
        INACTIVE = "inactive", "Inativo"

    agency = models.ForeignKey(
        "agencies.Agency",
        on_delete=models.CASCADE,
        related_name="collaborators",
        verbose_name="Agência",
    )
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="collaborator_profile",
        verbose_name="Usuário",
        blank=True,
        null=True,
    )
    name = models.CharField("Nome", max_length=255)
    email = models.EmailField("Email", blank=True)
    phone = models.CharField("Telefone", max_length=32, blank=True)
    status = models.CharField(
        "Status",
        max_length=20,
        choices=Status.choices,
        default=Status.ACTIVE,
    )
    commission_percentage = models.DecimalField(
        "Comissão (%)",
        max_digits=5,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    commission_base = models.CharField(
        "Base da comissão",
        max_length=20,
        choices=CommissionBase.choices,
        default=CommissionBase.SALE_VALUE,
    )
    created_at = models.DateTimeField("Criado", auto_now_add=True)
    updated_at = models.DateTimeField("Atualizado", auto_now=True)

    class Meta:
        verbose_name = "Colaborador"
        verbose_name_plural = "Colaboradores"
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class CollaboratorCommission(models.Model):
    """
    Comissão gerada no fechamento de uma proposta.

    No máximo um registro por proposta: criado ao fechar, removido ao reabrir.
    Os percentuais e a base ficam congelados no momento do fechamento.
    """

    agency = models.ForeignKey(
        "agencies.Agency",
        on_delete=models.CASCADE,
        related_name="commissions",
        verbose_name="Agência",
    )
    collaborator = models.ForeignKey(
        Collaborator,
        on_delete=models.CASCADE,
        related_name="commissions",
        verbose_name="Colaborador",
    )
    proposal = models.ForeignKey(
        "crm.Proposal",
        on_delete=models.CASCADE,
        related_name="commissions",
        verbose_name="Proposta",
    )
    sale_value = models.DecimalField("Valor da venda", max_digits=12, decimal_places=2)
    profit_value = models.DecimalField("Lucro", max_digits=12, decimal_places=2)
    commission_percentage = models.DecimalField("Comissão (%)", max_digits=5, decimal_places=2)
    commission_base = models.CharField(
        "Base da comissão",
        max_length=20,
        choices=CommissionBase.choices,
    )
    commission_amount = models.DecimalField("Valor da comissão", max_digits=12, decimal_places=2)
    period_month = models.PositiveSmallIntegerField("Mês")
    period_year = models.PositiveIntegerField("Ano")
    created_at = models.DateTimeField("Criada", auto_now_add=True)

    class Meta:
        verbose_name = "Comissão"
        verbose_name_plural = "Comissões"
        ordering = ["-period_year", "-period_month", "-created_at"]
        constraints = [
            models.UniqueConstraint(fields=["proposal"], name="uniq_commission_per_proposal"),
        ]

    def __str__(self) -> str:
        return f"{self.collaborator} — proposta #{self.proposal_id}: {self.commission_amount}"
