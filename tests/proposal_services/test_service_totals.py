from decimal import Decimal

import pytest

from apps.crm.models import Proposal
from apps.proposal_services.models import ProposalService
from apps.proposal_services.services import (
    ServiceTotals,
    get_proposal_totals,
    get_totals_by_proposal,
    line_commission,
)


def test_line_commission_percentage_and_fixed():
    assert line_commission("percentage", Decimal("200"), Decimal("10")) == Decimal("20")
    assert line_commission("fixed", Decimal("200"), Decimal("35")) == Decimal("35")


def test_line_commission_treats_bad_numbers_as_zero():
    assert line_commission("percentage", Decimal("-100"), Decimal("10")) == 0
    assert line_commission("percentage", None, Decimal("10")) == 0
    assert line_commission("fixed", Decimal("100"), "abc") == 0
    assert line_commission("fixed", Decimal("100"), "NaN") == 0


@pytest.mark.django_db
def test_proposal_without_services_totals_zero(proposal):
    assert get_proposal_totals(proposal.pk) == ServiceTotals()


@pytest.mark.django_db
def test_totals_sum_values_and_commissions(priced_proposal):
    totals = get_proposal_totals(priced_proposal.pk)

    assert totals.value == Decimal("500")
    assert totals.commission == Decimal("45")


@pytest.mark.django_db
def test_totals_reflect_latest_write(priced_proposal):
    get_proposal_totals(priced_proposal.pk)
    ProposalService.objects.create(
        proposal=priced_proposal,
        type=ProposalService.ServiceType.INSURANCE,
        value=Decimal("100.00"),
        commission_type=ProposalService.CommissionType.PERCENTAGE,
        commission_value=Decimal("20.00"),
    )

    totals = get_proposal_totals(priced_proposal.pk)
    assert totals.value == Decimal("600")
    assert totals.commission == Decimal("65")


@pytest.mark.django_db
def test_totals_by_proposal_includes_empty_proposals(priced_proposal, agency, stages):
    empty = Proposal.objects.create(agency=agency, stage=stages["new"], title="Vazia")

    totals = get_totals_by_proposal([priced_proposal.pk, empty.pk])

    assert totals[priced_proposal.pk].value == Decimal("500")
    assert totals[empty.pk] == ServiceTotals()


@pytest.mark.django_db
def test_service_api_rejects_foreign_proposal(outsider_api, proposal):
    resp = outsider_api.post(
        "/api/v1/proposal-services/",
        {"proposal_id": proposal.pk, "type": "hotel", "value": "100.00"},
        format="json",
    )

    assert resp.status_code == 400


@pytest.mark.django_db
def test_service_api_creates_line_and_updates_totals(agent_api, proposal):
    resp = agent_api.post(
        "/api/v1/proposal-services/",
        {
            "proposal_id": proposal.pk,
            "type": "car",
            "value": "250.00",
            "commission_type": "percentage",
            "commission_value": "12.50",
            "details": {"pickupAt": "2026-12-20T10:00:00"},
        },
        format="json",
    )

    assert resp.status_code == 201, resp.data
    assert resp.data["commission_amount"] == "31.25"
    totals = agent_api.get(f"/api/v1/proposals/{proposal.pk}/totals/")
    assert totals.data == {"value": "250.00", "commission": "31.25"}
