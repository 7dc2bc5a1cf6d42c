"""
Registro de etapas do funil e trilha de auditoria das propostas.
"""
import logging
from typing import Iterable, List, Optional, Tuple

from django.db import transaction
from django.db.models import Max

from apps.agencies.models import Agency
from .models import Proposal, ProposalHistory, Stage

logger = logging.getLogger(__name__)


DEFAULT_PIPELINE = [
    # (nome, cor, fechada, perdida)
    ("Novo lead", "#6366f1", False, False),
    ("Em contato", "#0ea5e9", False, False),
    ("Proposta enviada", "#f59e0b", False, False),
    ("Negociação", "#8b5cf6", False, False),
    ("Fechado", "#22c55e", True, False),
    ("Perdido", "#94a3b8", False, True),
]


def list_stages(agency: Agency) -> List[Stage]:
    return list(Stage.objects.filter(agency=agency).order_by("order", "id"))


def get_stage(agency: Agency, stage_id) -> Optional[Stage]:
    if stage_id in (None, ""):
        return None
    try:
        return Stage.objects.get(pk=stage_id, agency=agency)
    except (Stage.DoesNotExist, ValueError, TypeError):
        return None


def get_default_stage(agency: Agency) -> Optional[Stage]:
    """
    Etapa inicial de novas propostas: primeira do funil pela ordem.
    """
    return Stage.objects.filter(agency=agency).order_by("order", "id").first()


def create_stage(
    agency: Agency,
    name: str,
    color: str = "#6366f1",
    order: Optional[int] = None,
    is_closed: bool = False,
    is_lost: bool = False,
) -> Stage:
    """
    Cria uma etapa. Sem ordem explícita, a etapa vai para o fim do funil.
    """
    if order is None:
        last = Stage.objects.filter(agency=agency).aggregate(last=Max("order"))["last"]
        order = 0 if last is None else last + 1

    stage = Stage.objects.create(
        agency=agency,
        name=name,
        color=color,
        order=order,
        is_closed=is_closed,
        is_lost=is_lost,
    )
    logger.info("Stage %s (%s) created for agency %s", stage.pk, stage.name, agency.pk)
    return stage


def update_stage(stage: Stage, **fields) -> Stage:
    allowed = {"name", "color", "order", "is_closed", "is_lost"}
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Campos desconhecidos: {', '.join(sorted(unknown))}")

    for name, value in fields.items():
        setattr(stage, name, value)
    stage.save(update_fields=[*fields.keys(), "updated_at"])
    return stage


@transaction.atomic
def reorder_stages(agency: Agency, orders: Iterable[Tuple[int, int]]) -> List[Stage]:
    """
    Aplica a nova ordem [(stage_id, order), ...]. Todas as etapas precisam
    ser da agência.
    """
    orders = list(orders)
    ids = [stage_id for stage_id, _order in orders]
    stages = {s.pk: s for s in Stage.objects.select_for_update().filter(agency=agency, pk__in=ids)}
    missing = [stage_id for stage_id in ids if stage_id not in stages]
    if missing:
        raise ValueError(f"Etapas não encontradas: {missing}")

    for stage_id, order in orders:
        stage = stages[stage_id]
        if stage.order != order:
            stage.order = order
            stage.save(update_fields=["order", "updated_at"])
    return list_stages(agency)


def delete_stage(stage: Stage) -> None:
    """
    Remove a etapa. Etapas com propostas não são removidas.
    """
    if stage.proposals.exists():
        raise ValueError("Não é possível excluir uma etapa que possui propostas.")
    Agency.objects.filter(closed_won_stage=stage).update(closed_won_stage=None)
    stage.delete()
    logger.info("Stage %s deleted", stage.pk)


def resolve_closed_won_stage(agency: Agency) -> Optional[Stage]:
    """
    Etapa canônica de venda fechada.

    1. agency.closed_won_stage, se configurada e ainda fechada;
    2. senão a primeira etapa fechada pela ordem (com aviso se houver várias);
    3. None se o funil não tem etapa fechada.
    """
    configured = agency.closed_won_stage
    if configured is not None and configured.is_closed:
        return configured

    closed = list(Stage.objects.filter(agency=agency, is_closed=True).order_by("order", "id"))
    if not closed:
        return None
    if len(closed) > 1:
        logger.warning(
            "Agency %s has %d closed stages and no closed_won_stage configured; using %s (%s)",
            agency.pk,
            len(closed),
            closed[0].pk,
            closed[0].name,
        )
    return closed[0]


@transaction.atomic
def seed_default_pipeline(agency: Agency) -> List[Stage]:
    """
    Cria/atualiza o funil padrão da agência e define a etapa de venda fechada.
    """
    closed_stage = None
    for order, (name, color, closed, lost) in enumerate(DEFAULT_PIPELINE):
        stage, _created = Stage.objects.update_or_create(
            agency=agency,
            name=name,
            defaults={"color": color, "order": order, "is_closed": closed, "is_lost": lost},
        )
        if closed and closed_stage is None:
            closed_stage = stage

    if agency.closed_won_stage_id is None and closed_stage is not None:
        agency.closed_won_stage = closed_stage
        agency.save(update_fields=["closed_won_stage", "updated_at"])
    return list_stages(agency)


def append_history(
    proposal: Proposal,
    action: str,
    user=None,
    description: Optional[str] = None,
    old_value: Optional[str] = None,
    new_value: Optional[str] = None,
) -> ProposalHistory:
    return ProposalHistory.objects.create(
        proposal=proposal,
        user=user if user is not None and user.is_authenticated else None,
        action=action,
        description=description,
        old_value=old_value,
        new_value=new_value,
    )


def log_stage_change(proposal: Proposal, from_stage: Stage, to_stage: Stage, user=None) -> ProposalHistory:
    return append_history(
        proposal,
        ProposalHistory.STAGE_CHANGED,
        user=user,
        description=f"Proposta movida para {to_stage.name}",
        old_value=from_stage.name,
        new_value=to_stage.name,
    )
