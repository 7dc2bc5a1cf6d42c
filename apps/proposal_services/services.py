import logging
from dataclasses import dataclass
from datetime import datetime, time
from decimal import Decimal
from typing import Dict, Iterable, Optional, Tuple

from django.db import transaction
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime, parse_time

from .models import ProposalService

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class ServiceTotals:
    """
    Totais da proposta: value é a soma dos valores dos serviços;
    commission é a soma do lucro/comissão da agência por serviço.
    """

    value: Decimal = ZERO
    commission: Decimal = ZERO

    def as_dict(self) -> Dict[str, Decimal]:
        return {"value": self.value, "commission": self.commission}


def _non_negative(raw) -> Decimal:
    if raw is None or raw == "":
        return ZERO
    try:
        number = Decimal(str(raw))
    except ArithmeticError:
        return ZERO
    if not number.is_finite() or number < 0:
        return ZERO
    return number


def line_commission(commission_type: str, value, commission_value) -> Decimal:
    """
    Comissão de um serviço: percentual sobre o valor ou valor fixo.
    Valores negativos ou ausentes contam como zero.
    """
    value = _non_negative(value)
    commission_value = _non_negative(commission_value)
    if commission_type == ProposalService.CommissionType.PERCENTAGE:
        return value * commission_value / HUNDRED
    return commission_value


def _sum_lines(lines: Iterable[Tuple[str, object, object]]) -> ServiceTotals:
    total_value = ZERO
    total_commission = ZERO
    for commission_type, value, commission_value in lines:
        total_value += _non_negative(value)
        total_commission += line_commission(commission_type, value, commission_value)
    return ServiceTotals(value=total_value, commission=total_commission)


def get_proposal_totals(proposal_id) -> ServiceTotals:
    """
    Totais atuais da proposta, sempre lidos do banco (sem cache entre gravações).
    """
    lines = ProposalService.objects.filter(proposal_id=proposal_id).values_list(
        "commission_type", "value", "commission_value"
    )
    return _sum_lines(lines)


def get_totals_by_proposal(proposal_ids: Iterable) -> Dict[int, ServiceTotals]:
    """
    Totais de várias propostas de uma vez (listas / kanban).
    Propostas sem serviços recebem ServiceTotals() zerado.
    """
    proposal_ids = list(proposal_ids)
    grouped: Dict[int, list] = {pk: [] for pk in proposal_ids}
    rows = ProposalService.objects.filter(proposal_id__in=proposal_ids).values_list(
        "proposal_id", "commission_type", "value", "commission_value"
    )
    for proposal_id, commission_type, value, commission_value in rows:
        grouped[proposal_id].append((commission_type, value, commission_value))
    return {pk: _sum_lines(lines) for pk, lines in grouped.items()}


# ---------------------------------------------------------------------------
# Datas para a agenda
# ---------------------------------------------------------------------------

NOON = time(12, 0)


def _aware(value: datetime) -> datetime:
    if timezone.is_naive(value):
        return timezone.make_aware(value, timezone.get_current_timezone())
    return value


def _to_datetime(raw) -> Optional[datetime]:
    if not raw or not isinstance(raw, str):
        return None
    try:
        parsed = parse_datetime(raw)
        day = parse_date(raw[:10]) if parsed is None and len(raw) >= 10 else None
    except ValueError:
        # data bem formada mas inexistente (ex.: 2025-02-30)
        return None
    if parsed is None:
        if day is None:
            return None
        parsed = datetime.combine(day, NOON)
    return _aware(parsed)


def _combine(raw_date, raw_time, default: time = NOON) -> Optional[datetime]:
    if not raw_date or not isinstance(raw_date, str):
        return None
    try:
        day = parse_date(raw_date[:10])
        moment = parse_time(raw_time) if raw_time and isinstance(raw_time, str) else None
    except ValueError:
        return None
    if day is None:
        return None
    return _aware(datetime.combine(day, moment or default))


def derive_service_dates(service: ProposalService) -> Tuple[Optional[datetime], Optional[datetime]]:
    """
    Datas de início/fim do serviço para a agenda, a partir de details.

    - flight: partida do primeiro segmento, chegada do último;
    - hotel: check-in / check-out (horário padrão 12:00);
    - car: retirada / devolução; transfer: horário de busca;
    - package / tour: início 00:00, fim 23:59;
    - demais: datas já gravadas no serviço.
    """
    d = service.details if isinstance(service.details, dict) else {}
    kind = service.type
    types = ProposalService.ServiceType

    if kind == types.FLIGHT:
        segments = d.get("segments") if isinstance(d.get("segments"), list) else []
        segments = [s for s in segments if isinstance(s, dict)]
        first = segments[0] if segments else {}
        last = segments[-1] if segments else {}
        return (
            _to_datetime(first.get("departureAt")) or service.start_date,
            _to_datetime(last.get("arrivalAt")) or service.end_date,
        )
    if kind == types.HOTEL:
        return (
            _combine(d.get("checkIn"), d.get("checkInTime")),
            _combine(d.get("checkOut"), d.get("checkOutTime")),
        )
    if kind == types.CAR:
        return _to_datetime(d.get("pickupAt")), _to_datetime(d.get("dropoffAt"))
    if kind == types.TRANSFER:
        pickup = _to_datetime(d.get("pickupAt"))
        return pickup, pickup
    if kind in (types.PACKAGE, types.TOUR):
        return (
            _combine(d.get("startDate"), None, default=time(0, 0)),
            _combine(d.get("endDate"), None, default=time(23, 59)),
        )
    return service.start_date, service.end_date


@transaction.atomic
def project_calendar_dates(proposal_id, clear: bool = False) -> int:
    """
    Preenche (ou limpa, com clear=True) as datas de agenda dos serviços da proposta.
    Retorna quantos serviços foram alterados.
    """
    updated = 0
    for service in ProposalService.objects.select_for_update().filter(proposal_id=proposal_id):
        if clear:
            start, end = None, None
        else:
            start, end = derive_service_dates(service)
        if service.start_date == start and service.end_date == end:
            continue
        service.start_date = start
        service.end_date = end
        service.save(update_fields=["start_date", "end_date", "updated_at"])
        updated += 1

    logger.debug(
        "Calendar dates %s for %d services of proposal %s",
        "cleared" if clear else "projected",
        updated,
        proposal_id,
    )
    return updated
