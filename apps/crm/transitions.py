"""
Movimentação de propostas entre etapas do funil.

Toda troca de etapa passa por transition_proposal, que classifica o
movimento pelas flags is_closed das etapas e mantém lançamentos financeiros
e comissões coerentes com a etapa:

- neutro (mesma flag): só troca de etapa + histórico;
- fechamento (aberta → fechada): exige financial_choice; com "add" lança a
  receita e a comissão;
- reabertura (fechada → aberta): cancela receitas e remove comissões.

A troca de etapa e o histórico são gravados com a proposta bloqueada
(select_for_update). Cada efeito colateral roda no próprio savepoint: se
falhar, só ele é desfeito e a falha volta em TransitionResult.failures, sem
desfazer a troca de etapa.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from django.db import transaction

from apps.finance import services as finance_services
from apps.finance.models import FinancialTransaction
from apps.proposal_services.services import (
    ServiceTotals,
    get_proposal_totals,
    project_calendar_dates,
)
from apps.team import services as team_services
from apps.team.models import CollaboratorCommission
from .exceptions import InvalidStage, LedgerWriteFailure, MissingFinancialChoice, StageConflict
from .models import Proposal, ProposalHistory, Stage
from .services import get_stage, log_stage_change, resolve_closed_won_stage

logger = logging.getLogger(__name__)


class FinancialChoice:
    ADD = "add"
    SKIP = "skip"

    values = (ADD, SKIP)


class TransitionKind:
    NOOP = "noop"
    NEUTRAL = "neutral"
    CLOSE = "close"
    REOPEN = "reopen"


@dataclass
class TransitionResult:
    proposal: Proposal
    kind: str
    from_stage: Stage
    to_stage: Stage
    history_entry: Optional[ProposalHistory] = None
    transaction: Optional[FinancialTransaction] = None
    commission: Optional[CollaboratorCommission] = None
    cancelled_transactions: int = 0
    deleted_commissions: int = 0
    failures: List[LedgerWriteFailure] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.failures)

    def as_dict(self) -> dict:
        return {
            "proposal_id": self.proposal.pk,
            "kind": self.kind,
            "from_stage_id": self.from_stage.pk,
            "to_stage_id": self.to_stage.pk,
            "history_entry_id": self.history_entry.pk if self.history_entry else None,
            "transaction_id": self.transaction.pk if self.transaction else None,
            "commission_id": self.commission.pk if self.commission else None,
            "cancelled_transactions": self.cancelled_transactions,
            "deleted_commissions": self.deleted_commissions,
            "partial": self.partial,
            "warnings": [failure.as_dict() for failure in self.failures],
        }


def classify_transition(from_stage: Stage, to_stage: Stage) -> str:
    if from_stage.pk == to_stage.pk:
        return TransitionKind.NOOP
    if from_stage.is_closed == to_stage.is_closed:
        return TransitionKind.NEUTRAL
    if to_stage.is_closed:
        return TransitionKind.CLOSE
    return TransitionKind.REOPEN


def _normalize_choice(financial_choice) -> Optional[str]:
    if financial_choice in (None, ""):
        return None
    if financial_choice not in FinancialChoice.values:
        raise MissingFinancialChoice(
            f"financial_choice inválido: {financial_choice!r}. Use 'add' ou 'skip'."
        )
    return financial_choice


def _run_side_effect(result: TransitionResult, step: str, func: Callable, *args, **kwargs):
    """
    Executa um efeito colateral no próprio savepoint. Falha vira
    LedgerWriteFailure em result.failures e a função devolve None.
    """
    try:
        with transaction.atomic():
            return func(*args, **kwargs)
    except Exception as exc:  # noqa: BLE001
        logger.exception(
            "Side effect %r failed for proposal %s (%s → %s)",
            step,
            result.proposal.pk,
            result.from_stage.pk,
            result.to_stage.pk,
        )
        result.failures.append(LedgerWriteFailure(step, exc))
        return None


def _create_commission(proposal: Proposal, totals: ServiceTotals, actor):
    collaborator = team_services.resolve_commission_collaborator(proposal, actor)
    if collaborator is None:
        logger.info("Proposal %s closed without a commission collaborator", proposal.pk)
        return None
    commission, _created = team_services.create_commission_for_proposal(
        proposal, collaborator, totals
    )
    return commission


def _apply_close(
    proposal: Proposal,
    result: TransitionResult,
    totals: Optional[ServiceTotals],
    financial_choice: str,
    actor,
) -> None:
    _run_side_effect(result, "calendar", project_calendar_dates, proposal.pk)

    if financial_choice != FinancialChoice.ADD:
        return

    if totals is None:
        totals = get_proposal_totals(proposal.pk)

    if totals.value > 0:
        created = _run_side_effect(
            result,
            "financial_transaction",
            finance_services.create_income_for_proposal,
            proposal,
            totals,
            actor,
        )
        if created is not None:
            result.transaction = created[0]

    result.commission = _run_side_effect(
        result, "commission", _create_commission, proposal, totals, actor
    )


def _apply_reopen(proposal: Proposal, result: TransitionResult) -> None:
    _run_side_effect(result, "calendar", project_calendar_dates, proposal.pk, clear=True)

    cancelled = _run_side_effect(
        result,
        "financial_transaction",
        finance_services.cancel_income_for_proposal,
        proposal.pk,
    )
    result.cancelled_transactions = cancelled or 0

    deleted = _run_side_effect(
        result,
        "commission",
        team_services.delete_commissions_for_proposal,
        proposal.pk,
    )
    result.deleted_commissions = deleted or 0


def _resolve_stage(proposal: Proposal, stage_id) -> Stage:
    stage = get_stage(proposal.agency, stage_id)
    if stage is None:
        raise InvalidStage(stage_id)
    return stage


def transition_proposal(
    proposal: Proposal,
    to_stage_id,
    *,
    from_stage_id=None,
    totals: Optional[ServiceTotals] = None,
    financial_choice: Optional[str] = None,
    actor=None,
) -> TransitionResult:
    """
    Move a proposta para to_stage_id.

    from_stage_id: etapa que o chamador acredita ser a atual; se diferente
        da etapa gravada, levanta StageConflict sem alterar nada.
    totals: totais dos serviços; se omitido, são lidos do banco.
    financial_choice: "add" ou "skip", obrigatório só no fechamento.
    actor: usuário que fez o movimento (histórico, comissão, lançamento).

    Levanta InvalidStage, MissingFinancialChoice ou StageConflict antes de
    qualquer gravação. Falhas depois da troca de etapa ficam em
    TransitionResult.failures.
    """
    to_stage = _resolve_stage(proposal, to_stage_id)
    expected_from = _resolve_stage(proposal, from_stage_id) if from_stage_id is not None else None
    financial_choice = _normalize_choice(financial_choice)

    with transaction.atomic():
        locked = Proposal.objects.select_for_update().get(pk=proposal.pk)
        from_stage = Stage.objects.get(pk=locked.stage_id)

        if expected_from is not None and expected_from.pk != from_stage.pk:
            raise StageConflict(expected_from.pk, from_stage.pk)

        kind = classify_transition(from_stage, to_stage)
        if kind == TransitionKind.CLOSE and financial_choice is None:
            raise MissingFinancialChoice()

        result = TransitionResult(
            proposal=locked,
            kind=kind,
            from_stage=from_stage,
            to_stage=to_stage,
        )
        if kind == TransitionKind.NOOP:
            return result

        if kind == TransitionKind.CLOSE and financial_choice == FinancialChoice.ADD and totals is None:
            totals = get_proposal_totals(locked.pk)

        locked.stage = to_stage
        locked.save(update_fields=["stage", "updated_at"])

        result.history_entry = _run_side_effect(
            result, "history", log_stage_change, locked, from_stage, to_stage, actor
        )

        if kind == TransitionKind.CLOSE:
            _apply_close(locked, result, totals, financial_choice, actor)
        elif kind == TransitionKind.REOPEN:
            _apply_reopen(locked, result)

    # O objeto do chamador reflete a nova etapa.
    proposal.stage = to_stage
    proposal.updated_at = locked.updated_at

    logger.info(
        "Proposal %s moved %s → %s (%s)%s",
        locked.pk,
        from_stage.pk,
        to_stage.pk,
        kind,
        f" with {len(result.failures)} failed side effect(s)" if result.failures else "",
    )
    return result


def close_proposal(
    proposal: Proposal,
    financial_choice: Optional[str],
    *,
    totals: Optional[ServiceTotals] = None,
    actor=None,
) -> TransitionResult:
    """
    Fecha a proposta na etapa de venda fechada da agência.
    """
    stage = resolve_closed_won_stage(proposal.agency)
    if stage is None:
        raise InvalidStage(None, "A agência não possui etapa fechada no funil.")
    return transition_proposal(
        proposal,
        stage.pk,
        totals=totals,
        financial_choice=financial_choice,
        actor=actor,
    )


def retry_ledgers(
    proposal: Proposal,
    financial_choice: Optional[str] = None,
    *,
    totals: Optional[ServiceTotals] = None,
    actor=None,
) -> TransitionResult:
    """
    Reexecuta só os efeitos financeiros da etapa atual, sem trocar de etapa
    nem gravar histórico. Proposta fechada: lança o que faltar (exige
    financial_choice). Proposta aberta: cancela receitas e remove comissões.
    Chamar várias vezes não duplica registros.
    """
    financial_choice = _normalize_choice(financial_choice)

    with transaction.atomic():
        locked = Proposal.objects.select_for_update().get(pk=proposal.pk)
        stage = Stage.objects.get(pk=locked.stage_id)

        if stage.is_closed:
            if financial_choice is None:
                raise MissingFinancialChoice()
            result = TransitionResult(
                proposal=locked, kind=TransitionKind.CLOSE, from_stage=stage, to_stage=stage
            )
            _apply_close(locked, result, totals, financial_choice, actor)
        else:
            result = TransitionResult(
                proposal=locked, kind=TransitionKind.REOPEN, from_stage=stage, to_stage=stage
            )
            _apply_reopen(locked, result)

    logger.info(
        "Ledgers re-applied for proposal %s (%s), %d failure(s)",
        locked.pk,
        result.kind,
        len(result.failures),
    )
    return result


@transaction.atomic
def delete_proposal(proposal: Proposal, actor=None) -> dict:
    """
    Exclui a proposta. Receitas da proposta são canceladas e mantidas
    (sem vínculo com a proposta); comissões são removidas.
    """
    locked = Proposal.objects.select_for_update().get(pk=proposal.pk)
    cancelled = finance_services.cancel_income_for_proposal(locked.pk)
    deleted_commissions = team_services.delete_commissions_for_proposal(locked.pk)
    pk = locked.pk
    locked.delete()

    logger.info(
        "Proposal %s deleted by %s: %d income cancelled, %d commission(s) deleted",
        pk,
        getattr(actor, "pk", None),
        cancelled,
        deleted_commissions,
    )
    return {
        "proposal_id": pk,
        "cancelled_transactions": cancelled,
        "deleted_commissions": deleted_commissions,
    }
