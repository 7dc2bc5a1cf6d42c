"""
Cálculo de comissão do colaborador. Funções puras, sem acesso ao banco.
"""
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable

from .models import CommissionBase

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def _decimal(raw) -> Decimal:
    if raw is None:
        return ZERO
    return raw if isinstance(raw, Decimal) else Decimal(str(raw))


def money(raw) -> Decimal:
    """Valor monetário com 2 casas (ROUND_HALF_UP)."""
    return _decimal(raw).quantize(CENT, rounding=ROUND_HALF_UP)


def commission_base_value(commission_base: str, totals) -> Decimal:
    """
    Base de cálculo: lucro (totals.commission) ou valor da venda (totals.value).
    """
    if commission_base == CommissionBase.PROFIT:
        return _decimal(totals.commission)
    return _decimal(totals.value)


def calculate_commission(collaborator, totals) -> Decimal:
    """
    amount = base * commission_percentage / 100, arredondado para 2 casas.

    collaborator: qualquer objeto com commission_base e commission_percentage;
    totals: qualquer objeto com value e commission (ServiceTotals).
    """
    base = commission_base_value(collaborator.commission_base, totals)
    amount = base * _decimal(collaborator.commission_percentage) / Decimal("100")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def summarize_commissions(commissions: Iterable) -> Dict[str, object]:
    """
    Totais para painéis: vendas, lucro, comissões e quantidade.
    """
    summary = {
        "total_sales": ZERO,
        "total_profit": ZERO,
        "total_commissions": ZERO,
        "count": 0,
    }
    for c in commissions:
        summary["total_sales"] += _decimal(c.sale_value)
        summary["total_profit"] += _decimal(c.profit_value)
        summary["total_commissions"] += _decimal(c.commission_amount)
        summary["count"] += 1
    return summary
