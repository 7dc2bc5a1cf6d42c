from datetime import date
from decimal import Decimal

import pytest

from apps.finance.models import FinancialTransaction


@pytest.mark.django_db
def test_agent_cannot_access_transactions(agent_api):
    assert agent_api.get("/api/v1/financial-transactions/").status_code == 403


@pytest.mark.django_db
def test_finance_creates_and_cancels_expense(finance_api, finance_member):
    resp = finance_api.post(
        "/api/v1/financial-transactions/",
        {
            "type": "expense",
            "category": "Marketing",
            "description": "Anúncios",
            "total_value": "300.00",
            "launch_date": "2026-05-02",
        },
        format="json",
    )
    assert resp.status_code == 201, resp.data
    tx = FinancialTransaction.objects.get(pk=resp.data["id"])
    assert tx.created_by == finance_member

    cancel = finance_api.post(f"/api/v1/financial-transactions/{tx.pk}/cancel/")
    assert cancel.status_code == 200
    assert cancel.data["status"] == "cancelled"


@pytest.mark.django_db
def test_transactions_cannot_be_deleted(finance_api, agency):
    tx = FinancialTransaction.objects.create(
        agency=agency,
        type=FinancialTransaction.TransactionType.EXPENSE,
        description="Fornecedor",
        total_value=Decimal("50.00"),
        launch_date=date(2026, 5, 2),
    )

    resp = finance_api.delete(f"/api/v1/financial-transactions/{tx.pk}/")

    assert resp.status_code == 405
    assert FinancialTransaction.objects.filter(pk=tx.pk).exists()


@pytest.mark.django_db
def test_second_active_income_is_rejected(finance_api, priced_proposal, stages, agent_api):
    agent_api.post(
        f"/api/v1/proposals/{priced_proposal.pk}/move/",
        {"stage_id": stages["closed"].pk, "financial_choice": "add"},
        format="json",
    )

    resp = finance_api.post(
        "/api/v1/financial-transactions/",
        {
            "proposal": priced_proposal.pk,
            "type": "income",
            "description": "Outra",
            "total_value": "10.00",
            "launch_date": "2026-05-02",
        },
        format="json",
    )

    assert resp.status_code == 400
    assert "receita ativa" in str(resp.data["proposal"][0])
    assert "non_field_errors" not in resp.data


@pytest.mark.django_db
def test_finance_summary_by_month(finance_api, agency):
    FinancialTransaction.objects.create(
        agency=agency,
        type=FinancialTransaction.TransactionType.INCOME,
        description="Venda",
        total_value=Decimal("700.00"),
        profit_value=Decimal("70.00"),
        launch_date=date(2026, 5, 15),
    )
    FinancialTransaction.objects.create(
        agency=agency,
        type=FinancialTransaction.TransactionType.INCOME,
        description="Venda de abril",
        total_value=Decimal("100.00"),
        launch_date=date(2026, 4, 15),
    )

    resp = finance_api.get("/api/v1/finance-summary/", {"year": 2026, "month": 5})

    assert resp.status_code == 200
    assert resp.data["summary"]["income_total"] == Decimal("700.00")
    assert resp.data["summary"]["profit_total"] == Decimal("70.00")


@pytest.mark.django_db
def test_finance_summary_rejects_bad_month(finance_api):
    assert finance_api.get("/api/v1/finance-summary/", {"month": 13, "year": 2026}).status_code == 400
    assert finance_api.get("/api/v1/finance-summary/", {"year": "abc"}).status_code == 400


@pytest.mark.django_db
def test_active_income_needs_closed_proposal(finance_api, priced_proposal):
    payload = {
        "proposal": priced_proposal.pk,
        "type": "income",
        "status": "pending",
        "description": "Receita avulsa",
        "total_value": "500.00",
        "launch_date": "2026-05-02",
    }

    resp = finance_api.post("/api/v1/financial-transactions/", payload, format="json")

    assert resp.status_code == 400
    assert "proposal" in resp.data
    assert not FinancialTransaction.objects.filter(proposal=priced_proposal).exists()

    payload["status"] = "cancelled"
    resp = finance_api.post("/api/v1/financial-transactions/", payload, format="json")
    assert resp.status_code == 201, resp.data


@pytest.mark.django_db
def test_cancelled_income_cannot_be_revived_after_reopen(
    finance_api, agent_api, priced_proposal, stages
):
    agent_api.post(
        f"/api/v1/proposals/{priced_proposal.pk}/move/",
        {"stage_id": stages["closed"].pk, "financial_choice": "add"},
        format="json",
    )
    agent_api.post(
        f"/api/v1/proposals/{priced_proposal.pk}/move/",
        {"stage_id": stages["new"].pk},
        format="json",
    )
    tx = FinancialTransaction.objects.get(proposal=priced_proposal)
    assert tx.status == FinancialTransaction.Status.CANCELLED

    resp = finance_api.patch(
        f"/api/v1/financial-transactions/{tx.pk}/", {"status": "pending"}, format="json"
    )

    assert resp.status_code == 400
    tx.refresh_from_db()
    assert tx.status == FinancialTransaction.Status.CANCELLED
