import logging
from datetime import date
from typing import Optional, Tuple

from django.db import transaction
from django.utils import timezone

from .commissions import calculate_commission, money
from .models import Collaborator, CollaboratorCommission

logger = logging.getLogger(__name__)


def resolve_commission_collaborator(proposal, actor=None) -> Optional[Collaborator]:
    """
    Quem recebe a comissão da proposta:
    - o colaborador responsável pela proposta, se houver;
    - senão o colaborador ligado ao usuário que fechou a proposta;
    - senão ninguém.
    """
    if proposal.assigned_collaborator_id:
        return proposal.assigned_collaborator

    if actor is None or not getattr(actor, "is_authenticated", False):
        return None

    return Collaborator.objects.filter(agency_id=proposal.agency_id, user=actor).first()


@transaction.atomic
def create_commission_for_proposal(
    proposal,
    collaborator: Collaborator,
    totals,
    period: Optional[date] = None,
) -> Tuple[CollaboratorCommission, bool]:
    """
    Cria a comissão da proposta. Se já existe uma, devolve a existente
    (created=False); repetir a chamada é seguro.
    """
    existing = (
        CollaboratorCommission.objects.select_for_update()
        .filter(proposal_id=proposal.pk)
        .first()
    )
    if existing is not None:
        logger.info(
            "Commission for proposal %s already exists (%s); skipping",
            proposal.pk,
            existing.pk,
        )
        return existing, False

    period = period or timezone.localdate()
    amount = calculate_commission(collaborator, totals)

    commission = CollaboratorCommission.objects.create(
        agency_id=proposal.agency_id,
        collaborator=collaborator,
        proposal=proposal,
        sale_value=money(totals.value),
        profit_value=money(totals.commission),
        commission_percentage=collaborator.commission_percentage,
        commission_base=collaborator.commission_base,
        commission_amount=amount,
        period_month=period.month,
        period_year=period.year,
    )
    logger.info(
        "Commission %s created: collaborator %s, proposal %s, amount %s",
        commission.pk,
        collaborator.pk,
        proposal.pk,
        amount,
    )
    return commission, True


def delete_commissions_for_proposal(proposal_id) -> int:
    deleted, _per_model = CollaboratorCommission.objects.filter(proposal_id=proposal_id).delete()
    if deleted:
        logger.info("Deleted %d commission(s) of proposal %s", deleted, proposal_id)
    return deleted
