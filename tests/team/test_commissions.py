from decimal import Decimal
from types import SimpleNamespace

import pytest

from apps.proposal_services.services import ServiceTotals
from apps.team.commissions import calculate_commission, summarize_commissions
from apps.team.models import Collaborator, CollaboratorCommission, CommissionBase
from apps.team.services import (
    create_commission_for_proposal,
    delete_commissions_for_proposal,
    resolve_commission_collaborator,
)


def _collaborator(base, percentage):
    return SimpleNamespace(commission_base=base, commission_percentage=Decimal(percentage))


def test_commission_on_sale_value():
    totals = ServiceTotals(value=Decimal("500"), commission=Decimal("45"))

    assert calculate_commission(_collaborator(CommissionBase.SALE_VALUE, "10"), totals) == Decimal("50.00")


def test_commission_on_profit():
    totals = ServiceTotals(value=Decimal("500"), commission=Decimal("80"))

    assert calculate_commission(_collaborator(CommissionBase.PROFIT, "25"), totals) == Decimal("20.00")


def test_commission_rounds_half_up():
    totals = ServiceTotals(value=Decimal("0.25"), commission=Decimal("0"))

    # 0.25 * 10% = 0.025 → 0.03
    assert calculate_commission(_collaborator(CommissionBase.SALE_VALUE, "10"), totals) == Decimal("0.03")


def test_summarize_commissions():
    rows = [
        SimpleNamespace(sale_value=Decimal("500"), profit_value=Decimal("45"), commission_amount=Decimal("50")),
        SimpleNamespace(sale_value=Decimal("100"), profit_value=Decimal("10"), commission_amount=Decimal("2.50")),
    ]

    summary = summarize_commissions(rows)

    assert summary == {
        "total_sales": Decimal("600"),
        "total_profit": Decimal("55"),
        "total_commissions": Decimal("52.50"),
        "count": 2,
    }


@pytest.mark.django_db
def test_resolve_prefers_assigned_collaborator(proposal, collaborator, admin_member):
    assert resolve_commission_collaborator(proposal, admin_member) == collaborator


@pytest.mark.django_db
def test_resolve_ignores_collaborator_of_other_agency(proposal, other_agency, outsider):
    proposal.assigned_collaborator = None
    Collaborator.objects.create(agency=other_agency, user=outsider, name="Fora")

    assert resolve_commission_collaborator(proposal, outsider) is None


@pytest.mark.django_db
def test_create_commission_is_idempotent(proposal, collaborator):
    totals = ServiceTotals(value=Decimal("500"), commission=Decimal("45"))

    first, created = create_commission_for_proposal(proposal, collaborator, totals)
    second, created_again = create_commission_for_proposal(proposal, collaborator, totals)

    assert created is True
    assert created_again is False
    assert first.pk == second.pk
    assert CollaboratorCommission.objects.count() == 1
    assert delete_commissions_for_proposal(proposal.pk) == 1


@pytest.mark.django_db
def test_commission_snapshot_keeps_rate_at_closing(proposal, collaborator):
    totals = ServiceTotals(value=Decimal("500"), commission=Decimal("45"))
    commission, _ = create_commission_for_proposal(proposal, collaborator, totals)

    collaborator.commission_percentage = Decimal("15.00")
    collaborator.save()

    commission.refresh_from_db()
    assert commission.commission_percentage == Decimal("10.00")
    assert commission.commission_amount == Decimal("50.00")


@pytest.mark.django_db
def test_commission_totals_endpoint(agent_api, priced_proposal, stages):
    agent_api.post(
        f"/api/v1/proposals/{priced_proposal.pk}/move/",
        {"stage_id": stages["closed"].pk, "financial_choice": "add"},
        format="json",
    )

    resp = agent_api.get("/api/v1/commissions/totals/")

    assert resp.status_code == 200
    assert resp.data["count"] == 1
    assert resp.data["total_commissions"] == Decimal("50.00")


@pytest.mark.django_db
def test_collaborator_percentage_is_validated(admin_api):
    resp = admin_api.post(
        "/api/v1/collaborators/",
        {"name": "Novo", "commission_percentage": "120.00"},
        format="json",
    )

    assert resp.status_code == 400
