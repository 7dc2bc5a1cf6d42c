from django.conf import settings
from django.db import models


class Agency(models.Model):
    """
    Agência de viagens (tenant). Todos os dados do CRM pertencem a uma agência.
    """

    name = models.CharField("Nome", max_length=255)
    slug = models.SlugField("Código", max_length=80, unique=True)
    closed_won_stage = models.ForeignKey(
        "crm.Stage",
        on_delete=models.SET_NULL,
        related_name="+",
        verbose_name="Etapa de venda fechada",
        blank=True,
        null=True,
        help_text="Etapa usada ao fechar uma proposta sem escolher a etapa. "
        "Se vazia, usa a primeira etapa fechada do funil.",
    )
    is_active = models.BooleanField("Ativa", default=True)
    created_at = models.DateTimeField("Criada", auto_now_add=True)
    updated_at = models.DateTimeField("Atualizada", auto_now=True)

    class Meta:
        verbose_name = "Agência"
        verbose_name_plural = "Agências"
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class AgencyMember(models.Model):
    """
    Vínculo do usuário Django com a agência e o papel dentro dela.
    """

    class Role(models.TextChoices):
        ADMIN = "admin", "Administrador"
        AGENT = "agent", "Agente"
        FINANCE = "finance", "Financeiro"

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="agency_membership",
        verbose_name="Usuário",
    )
    agency = models.ForeignKey(
        Agency,
        on_delete=models.CASCADE,
        related_name="members",
        verbose_name="Agência",
    )
    role = models.CharField(
        "Papel",
        max_length=20,
        choices=Role.choices,
        default=Role.AGENT,
    )
    is_active = models.BooleanField("Ativo", default=True)
    created_at = models.DateTimeField("Criado", auto_now_add=True)

    class Meta:
        verbose_name = "Membro da agência"
        verbose_name_plural = "Membros da agência"
        ordering = ["agency", "user"]

    def __str__(self) -> str:
        return f"{self.user} @ {self.agency}"
