from datetime import date
from decimal import Decimal
from io import StringIO

import pytest
from django.core.management import CommandError, call_command

from apps.crm.models import Proposal, Stage
from apps.finance.models import FinancialTransaction
from apps.team.models import CollaboratorCommission


@pytest.mark.django_db
def test_seed_pipeline_creates_default_stages(agency):
    out = StringIO()
    call_command("seed_pipeline", agency.slug, stdout=out)

    assert Stage.objects.filter(agency=agency).count() == 6
    agency.refresh_from_db()
    assert agency.closed_won_stage.name == "Fechado"
    assert "venda fechada" in out.getvalue()


@pytest.mark.django_db
def test_seed_pipeline_unknown_agency():
    with pytest.raises(CommandError):
        call_command("seed_pipeline", "nao-existe")


@pytest.fixture
def inconsistent_proposal(priced_proposal, collaborator):
    FinancialTransaction.objects.create(
        agency=priced_proposal.agency,
        proposal=priced_proposal,
        type=FinancialTransaction.TransactionType.INCOME,
        description="Receita órfã",
        total_value=Decimal("500.00"),
        launch_date=date(2026, 3, 1),
    )
    CollaboratorCommission.objects.create(
        agency=priced_proposal.agency,
        collaborator=collaborator,
        proposal=priced_proposal,
        sale_value=Decimal("500.00"),
        profit_value=Decimal("45.00"),
        commission_percentage=Decimal("10.00"),
        commission_base="sale_value",
        commission_amount=Decimal("50.00"),
        period_month=3,
        period_year=2026,
    )
    return priced_proposal


@pytest.mark.django_db
def test_check_ledgers_dry_run_only_reports(inconsistent_proposal):
    out = StringIO()
    call_command("check_ledgers", stdout=out)

    assert f"#{inconsistent_proposal.number}" in out.getvalue()
    assert CollaboratorCommission.objects.count() == 1
    assert FinancialTransaction.objects.get().status == FinancialTransaction.Status.PENDING


@pytest.mark.django_db
def test_check_ledgers_fix_reverses_open_proposals(inconsistent_proposal):
    out = StringIO()
    call_command("check_ledgers", "--fix", stdout=out)

    assert "[FIX]" in out.getvalue()
    assert not CollaboratorCommission.objects.exists()
    assert FinancialTransaction.objects.get().status == FinancialTransaction.Status.CANCELLED


@pytest.mark.django_db
def test_check_ledgers_ignores_closed_proposals(inconsistent_proposal, stages):
    Proposal.objects.filter(pk=inconsistent_proposal.pk).update(stage=stages["closed"])

    out = StringIO()
    call_command("check_ledgers", "--fix", stdout=out)

    assert "Nenhuma inconsistência" in out.getvalue()
    assert CollaboratorCommission.objects.count() == 1
