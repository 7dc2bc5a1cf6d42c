from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from apps.agencies.models import Agency, AgencyMember
from apps.crm.models import Client, Proposal, Stage
from apps.proposal_services.models import ProposalService
from apps.team.models import Collaborator, CommissionBase

User = get_user_model()


@pytest.fixture
def agency(db):
    return Agency.objects.create(name="Agência Teste", slug="agencia-teste")


@pytest.fixture
def other_agency(db):
    return Agency.objects.create(name="Outra Agência", slug="outra-agencia")


def _member(agency, username, role):
    user = User.objects.create_user(
        username=username,
        email=f"{username}@test.com",
        password="testpass123",
    )
    AgencyMember.objects.create(user=user, agency=agency, role=role)
    return user


@pytest.fixture
def admin_member(agency):
    return _member(agency, "gerente", AgencyMember.Role.ADMIN)


@pytest.fixture
def agent_member(agency):
    return _member(agency, "agente", AgencyMember.Role.AGENT)


@pytest.fixture
def finance_member(agency):
    return _member(agency, "financeiro", AgencyMember.Role.FINANCE)


@pytest.fixture
def outsider(other_agency):
    return _member(other_agency, "intruso", AgencyMember.Role.ADMIN)


def _api(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def admin_api(admin_member):
    return _api(admin_member)


@pytest.fixture
def agent_api(agent_member):
    return _api(agent_member)


@pytest.fixture
def finance_api(finance_member):
    return _api(finance_member)


@pytest.fixture
def outsider_api(outsider):
    return _api(outsider)


@pytest.fixture
def stages(agency):
    """
    Funil mínimo: duas etapas abertas, uma fechada (venda) e uma perdida.
    """
    new = Stage.objects.create(agency=agency, name="Novo lead", order=0)
    negotiation = Stage.objects.create(agency=agency, name="Negociação", order=1)
    closed = Stage.objects.create(agency=agency, name="Fechado", order=2, is_closed=True)
    lost = Stage.objects.create(agency=agency, name="Perdido", order=3, is_lost=True)
    agency.closed_won_stage = closed
    agency.save(update_fields=["closed_won_stage"])
    return {"new": new, "negotiation": negotiation, "closed": closed, "lost": lost}


@pytest.fixture
def foreign_stage(other_agency):
    return Stage.objects.create(agency=other_agency, name="Fechado", order=0, is_closed=True)


@pytest.fixture
def client_record(agency):
    return Client.objects.create(agency=agency, name="Maria Souza", email="maria@test.com")


@pytest.fixture
def collaborator(agency, agent_member):
    return Collaborator.objects.create(
        agency=agency,
        user=agent_member,
        name="Ana Agente",
        commission_percentage=Decimal("10.00"),
        commission_base=CommissionBase.SALE_VALUE,
    )


@pytest.fixture
def proposal(agency, stages, client_record, collaborator, admin_member):
    return Proposal.objects.create(
        agency=agency,
        client=client_record,
        assigned_collaborator=collaborator,
        created_by=admin_member,
        stage=stages["new"],
        title="Lua de mel em Lisboa",
    )


@pytest.fixture
def priced_proposal(proposal):
    """
    Proposta com valor total 500 e comissão (lucro) 45.
    """
    ProposalService.objects.create(
        proposal=proposal,
        type=ProposalService.ServiceType.FLIGHT,
        description="GRU → LIS",
        value=Decimal("300.00"),
        commission_type=ProposalService.CommissionType.PERCENTAGE,
        commission_value=Decimal("5.00"),
    )
    ProposalService.objects.create(
        proposal=proposal,
        type=ProposalService.ServiceType.HOTEL,
        description="Hotel Alfama",
        value=Decimal("200.00"),
        commission_type=ProposalService.CommissionType.FIXED,
        commission_value=Decimal("30.00"),
    )
    return proposal
