from decimal import Decimal

from django.conf import settings
from django.db import models, transaction
from django.db.models import Max

from apps.agencies.models import Agency


class Stage(models.Model):
    """
    Etapa do funil de vendas da agência.

    is_closed: venda fechada (ganha); is_lost: proposta perdida.
    Só is_closed influencia os lançamentos financeiros e comissões.
    """

    agency = models.ForeignKey(
        "agencies.Agency",
        on_delete=models.CASCADE,
        related_name="stages",
        verbose_name="Agência",
    )
    name = models.CharField("Nome", max_length=100)
    color = models.CharField("Cor", max_length=20, default="#6366f1")
    order = models.PositiveIntegerField("Ordem", default=0)
    is_closed = models.BooleanField("Fechada (ganha)", default=False)
    is_lost = models.BooleanField("Perdida", default=False)
    created_at = models.DateTimeField("Criada", auto_now_add=True)
    updated_at = models.DateTimeField("Atualizada", auto_now=True)

    class Meta:
        verbose_name = "Etapa do funil"
        verbose_name_plural = "Etapas do funil"
        ordering = ["agency", "order", "id"]

    def __str__(self) -> str:
        return f"{self.agency.name}: {self.name}"


class Client(models.Model):
    agency = models.ForeignKey(
        "agencies.Agency",
        on_delete=models.CASCADE,
        related_name="clients",
        verbose_name="Agência",
    )
    name = models.CharField("Nome", max_length=255)
    email = models.EmailField(blank=True, null=True)
    phone = models.CharField("Telefone", max_length=32, blank=True, null=True)
    cpf = models.CharField("CPF", max_length=14, blank=True, null=True)
    passport = models.CharField("Passaporte", max_length=32, blank=True, null=True)
    notes = models.TextField("Observações", blank=True)
    created_at = models.DateTimeField("Criado", auto_now_add=True)

    class Meta:
        verbose_name = "Cliente"
        verbose_name_plural = "Clientes"
        ordering = ["name"]

    def __str__(self): return self.name


class Proposal(models.Model):
    """
    Proposta (lead) de viagem. Sempre está em exatamente uma etapa do funil.

    A etapa só deve mudar via apps.crm.transitions, que mantém lançamentos
    financeiros e comissões coerentes com a etapa.
    """

    agency = models.ForeignKey(
        "agencies.Agency",
        on_delete=models.CASCADE,
        related_name="proposals",
        verbose_name="Agência",
    )
    client = models.ForeignKey(
        Client,
        on_delete=models.SET_NULL,
        related_name="proposals",
        verbose_name="Cliente",
        blank=True,
        null=True,
    )
    assigned_collaborator = models.ForeignKey(
        "team.Collaborator",
        on_delete=models.SET_NULL,
        related_name="assigned_proposals",
        verbose_name="Colaborador responsável",
        blank=True,
        null=True,
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="created_proposals",
        verbose_name="Criada por",
        blank=True,
        null=True,
    )
    stage = models.ForeignKey(
        Stage,
        on_delete=models.PROTECT,
        related_name="proposals",
        verbose_name="Etapa",
    )
    number = models.PositiveIntegerField("Número", editable=False)
    title = models.CharField("Título", max_length=255)
    discount_percent = models.DecimalField(
        "Desconto (%)",
        max_digits=5,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    notes = models.TextField("Observações", blank=True)
    created_at = models.DateTimeField("Criada", auto_now_add=True)
    updated_at = models.DateTimeField("Atualizada", auto_now=True)

    class Meta:
        verbose_name = "Proposta"
        verbose_name_plural = "Propostas"
        ordering = ["-created_at", "-id"]
        constraints = [
            models.UniqueConstraint(fields=["agency", "number"], name="uniq_proposal_number_per_agency"),
        ]

    def __str__(self) -> str:
        return f"#{self.number} {self.title}"

    def save(self, *args, **kwargs):
        if self.number is None:
            # Numeração sequencial por agência; a linha da agência serializa a numeração.
            with transaction.atomic():
                Agency.objects.select_for_update().filter(pk=self.agency_id).first()
                last = (
                    Proposal.objects.filter(agency_id=self.agency_id)
                    .aggregate(last=Max("number"))["last"]
                )
                self.number = (last or 0) + 1
                super().save(*args, **kwargs)
            return
        super().save(*args, **kwargs)


class ProposalHistory(models.Model):
    """
    Trilha de auditoria da proposta. Somente inclusão: registros não são
    alterados nem removidos individualmente.
    """

    STAGE_CHANGED = "Etapa alterada"

    proposal = models.ForeignKey(
        Proposal,
        on_delete=models.CASCADE,
        related_name="history",
        verbose_name="Proposta",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="proposal_history",
        verbose_name="Usuário",
        blank=True,
        null=True,
    )
    action = models.CharField("Ação", max_length=100)
    description = models.TextField("Descrição", blank=True, null=True)
    old_value = models.CharField("Valor anterior", max_length=255, blank=True, null=True)
    new_value = models.CharField("Novo valor", max_length=255, blank=True, null=True)
    created_at = models.DateTimeField("Registrado em", auto_now_add=True)

    class Meta:
        verbose_name = "Histórico da proposta"
        verbose_name_plural = "Histórico das propostas"
        ordering = ["-created_at", "-id"]

    def __str__(self) -> str:
        return f"Proposta #{self.proposal_id}: {self.action}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Histórico da proposta não pode ser alterado.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Histórico da proposta não pode ser removido.")
