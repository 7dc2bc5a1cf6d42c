from decimal import Decimal

from django.db import models


class ProposalService(models.Model):
    """
    Serviço (item) da proposta: voo, hotel, carro etc.
    Fonte do valor total e do lucro/comissão da proposta.
    """

    class ServiceType(models.TextChoices):
        FLIGHT = "flight", "Aéreo"
        HOTEL = "hotel", "Hospedagem"
        CAR = "car", "Locação de carro"
        TRANSFER = "transfer", "Transfer"
        CRUISE = "cruise", "Cruzeiro"
        INSURANCE = "insurance", "Seguro viagem"
        PACKAGE = "package", "Pacote"
        TOUR = "tour", "Passeio"
        OTHER = "other", "Outro"

    class CommissionType(models.TextChoices):
        PERCENTAGE = "percentage", "Percentual"
        FIXED = "fixed", "Valor fixo"

    proposal = models.ForeignKey(
        "crm.Proposal",
        on_delete=models.CASCADE,
        related_name="services",
        verbose_name="Proposta",
    )
    type = models.CharField(
        "Tipo",
        max_length=20,
        choices=ServiceType.choices,
        default=ServiceType.OTHER,
    )
    description = models.CharField("Descrição", max_length=255, blank=True)
    value = models.DecimalField(
        "Valor",
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        blank=True,
        null=True,
    )
    commission_type = models.CharField(
        "Tipo de comissão",
        max_length=20,
        choices=CommissionType.choices,
        default=CommissionType.PERCENTAGE,
    )
    commission_value = models.DecimalField(
        "Comissão",
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        blank=True,
        null=True,
        help_text="Percentual sobre o valor ou valor fixo, conforme o tipo de comissão.",
    )
    details = models.JSONField(
        "Detalhes",
        default=dict,
        blank=True,
        help_text="Campos específicos do tipo: segmentos do voo, check-in/out do hotel etc.",
    )
    start_date = models.DateTimeField(
        "Início (agenda)",
        blank=True,
        null=True,
        help_text="Preenchido ao fechar a proposta; limpo ao reabrir.",
    )
    end_date = models.DateTimeField("Fim (agenda)", blank=True, null=True)
    created_at = models.DateTimeField("Criado", auto_now_add=True)
    updated_at = models.DateTimeField("Atualizado", auto_now=True)

    class Meta:
        verbose_name = "Serviço da proposta"
        verbose_name_plural = "Serviços da proposta"
        ordering = ["proposal", "created_at", "id"]

    def __str__(self) -> str:
        return f"{self.get_type_display()} — proposta #{self.proposal_id}"
