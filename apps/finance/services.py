import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from django.conf import settings
from django.db import transaction
from django.db.models import Count, Sum
from django.utils import timezone

from apps.team.commissions import money
from .models import FinancialTransaction

logger = logging.getLogger(__name__)

SALE_CATEGORY = "Venda"


def list_for_proposal(
    proposal_id,
    transaction_type: Optional[str] = FinancialTransaction.TransactionType.INCOME,
) -> List[FinancialTransaction]:
    qs = FinancialTransaction.objects.filter(proposal_id=proposal_id)
    if transaction_type:
        qs = qs.filter(type=transaction_type)
    return list(qs.order_by("id"))


def active_income_for_proposal(proposal_id) -> Optional[FinancialTransaction]:
    return (
        FinancialTransaction.objects.filter(
            proposal_id=proposal_id,
            type=FinancialTransaction.TransactionType.INCOME,
        )
        .exclude(status=FinancialTransaction.Status.CANCELLED)
        .first()
    )


@transaction.atomic
def create_income_for_proposal(
    proposal,
    totals,
    actor=None,
    launch_date: Optional[date] = None,
) -> Tuple[FinancialTransaction, bool]:
    """
    Lança a receita pendente da proposta fechada.

    Se a proposta já tem receita ativa, devolve a existente (created=False);
    repetir a chamada não duplica lançamentos.
    """
    existing = (
        FinancialTransaction.objects.select_for_update()
        .filter(
            proposal_id=proposal.pk,
            type=FinancialTransaction.TransactionType.INCOME,
        )
        .exclude(status=FinancialTransaction.Status.CANCELLED)
        .first()
    )
    if existing is not None:
        logger.info(
            "Proposal %s already has active income %s; skipping",
            proposal.pk,
            existing.pk,
        )
        return existing, False

    tx = FinancialTransaction.objects.create(
        agency_id=proposal.agency_id,
        proposal=proposal,
        client_id=proposal.client_id,
        type=FinancialTransaction.TransactionType.INCOME,
        category=SALE_CATEGORY,
        description=f"Proposta #{proposal.number} - {proposal.title}"[:255],
        total_value=money(totals.value),
        profit_value=money(totals.commission),
        currency=getattr(settings, "DEFAULT_CURRENCY", "BRL"),
        status=FinancialTransaction.Status.PENDING,
        launch_date=launch_date or timezone.localdate(),
        created_by=actor if actor is not None and actor.is_authenticated else None,
    )
    logger.info(
        "Income %s created for proposal %s: total %s, profit %s",
        tx.pk,
        proposal.pk,
        tx.total_value,
        tx.profit_value,
    )
    return tx, True


def cancel_transaction(tx: FinancialTransaction) -> FinancialTransaction:
    """
    Cancela o lançamento. Lançamentos nunca são apagados.
    """
    if tx.status != FinancialTransaction.Status.CANCELLED:
        tx.status = FinancialTransaction.Status.CANCELLED
        tx.save(update_fields=["status", "updated_at"])
        logger.info("Transaction %s cancelled", tx.pk)
    return tx


@transaction.atomic
def cancel_income_for_proposal(proposal_id) -> int:
    """
    Cancela todas as receitas da proposta. Retorna quantas mudaram de status.
    """
    qs = (
        FinancialTransaction.objects.select_for_update()
        .filter(
            proposal_id=proposal_id,
            type=FinancialTransaction.TransactionType.INCOME,
        )
        .exclude(status=FinancialTransaction.Status.CANCELLED)
    )
    cancelled = 0
    for tx in qs:
        cancel_transaction(tx)
        cancelled += 1
    return cancelled


@dataclass
class FinanceSummary:
    income_total: Decimal
    expense_total: Decimal
    profit_total: Decimal
    net_total: Decimal
    by_status: Dict[str, Dict[str, object]]


def get_finance_summary(agency, date_from: Optional[date] = None, date_to: Optional[date] = None) -> FinanceSummary:
    """
    Resumo por período (data de lançamento). Lançamentos cancelados não entram
    nos totais, só na quebra por status.
    """
    qs = FinancialTransaction.objects.filter(agency=agency)
    if date_from:
        qs = qs.filter(launch_date__gte=date_from)
    if date_to:
        qs = qs.filter(launch_date__lte=date_to)

    active = qs.exclude(status=FinancialTransaction.Status.CANCELLED)
    income = active.filter(type=FinancialTransaction.TransactionType.INCOME).aggregate(
        total=Sum("total_value"), profit=Sum("profit_value")
    )
    expense_total = (
        active.filter(type=FinancialTransaction.TransactionType.EXPENSE).aggregate(
            total=Sum("total_value")
        )["total"]
        or Decimal("0.00")
    )
    income_total = income["total"] or Decimal("0.00")
    profit_total = income["profit"] or Decimal("0.00")

    by_status: Dict[str, Dict[str, object]] = {}
    for row in qs.order_by().values("status").annotate(count=Count("id"), total=Sum("total_value")):
        by_status[row["status"]] = {
            "count": row["count"],
            "total": row["total"] or Decimal("0.00"),
        }

    return FinanceSummary(
        income_total=income_total,
        expense_total=expense_total,
        profit_total=profit_total,
        net_total=income_total - expense_total,
        by_status=by_status,
    )
