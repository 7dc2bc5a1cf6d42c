import logging

import pytest
from django.db.models import F

from apps.crm.models import Proposal, Stage
from apps.crm.services import (
    DEFAULT_PIPELINE,
    create_stage,
    delete_stage,
    get_default_stage,
    get_stage,
    list_stages,
    log_stage_change,
    reorder_stages,
    resolve_closed_won_stage,
    seed_default_pipeline,
    update_stage,
)


@pytest.mark.django_db
def test_create_stage_appends_to_the_end(agency, stages):
    stage = create_stage(agency, "Pós-venda", color="#10b981")

    assert stage.order == 4
    assert list_stages(agency)[-1] == stage


@pytest.mark.django_db
def test_first_stage_starts_at_zero(agency):
    assert create_stage(agency, "Novo").order == 0


@pytest.mark.django_db
def test_update_stage_rejects_unknown_fields(stages):
    with pytest.raises(ValueError):
        update_stage(stages["new"], agency=None)

    updated = update_stage(stages["new"], name="Entrada", color="#000000")
    assert Stage.objects.get(pk=updated.pk).name == "Entrada"


@pytest.mark.django_db
def test_reorder_stages(agency, stages):
    reorder_stages(agency, [(stages["lost"].pk, 0), (stages["new"].pk, 3)])

    names = [s.name for s in list_stages(agency)]
    assert names[0] == "Perdido"
    assert names[-1] == "Novo lead"


@pytest.mark.django_db
def test_reorder_refuses_foreign_stage(agency, stages, foreign_stage):
    with pytest.raises(ValueError):
        reorder_stages(agency, [(stages["new"].pk, 1), (foreign_stage.pk, 0)])

    assert Stage.objects.get(pk=stages["new"].pk).order == 0


@pytest.mark.django_db
def test_stage_with_proposals_cannot_be_deleted(proposal, stages):
    with pytest.raises(ValueError):
        delete_stage(stages["new"])
    assert Stage.objects.filter(pk=stages["new"].pk).exists()


@pytest.mark.django_db
def test_deleting_closed_won_stage_clears_agency_setting(agency, stages):
    delete_stage(stages["closed"])

    agency.refresh_from_db()
    assert agency.closed_won_stage is None


@pytest.mark.django_db
def test_get_stage_is_scoped_to_agency(agency, stages, foreign_stage):
    assert get_stage(agency, stages["new"].pk) == stages["new"]
    assert get_stage(agency, foreign_stage.pk) is None
    assert get_stage(agency, "abc") is None
    assert get_stage(agency, None) is None


@pytest.mark.django_db
def test_default_stage_is_first_by_order(agency, stages):
    assert get_default_stage(agency) == stages["new"]


def _closed_stage_first(agency):
    Stage.objects.filter(agency=agency).update(order=F("order") + 1)
    return Stage.objects.create(agency=agency, name="Pago", order=0, is_closed=True)


@pytest.mark.django_db
def test_resolve_closed_won_prefers_configured_stage(agency, stages):
    _closed_stage_first(agency)

    assert resolve_closed_won_stage(agency) == stages["closed"]


@pytest.mark.django_db
def test_resolve_closed_won_falls_back_to_first_closed_stage(agency, stages, caplog, monkeypatch):
    # o logger "apps" não propaga para a raiz, onde o caplog escuta
    monkeypatch.setattr(logging.getLogger("apps"), "propagate", True)
    earlier = _closed_stage_first(agency)
    agency.closed_won_stage = None
    agency.save(update_fields=["closed_won_stage"])

    with caplog.at_level(logging.WARNING, logger="apps.crm.services"):
        assert resolve_closed_won_stage(agency) == earlier

    assert "2 closed stages" in caplog.text


@pytest.mark.django_db
def test_resolve_closed_won_ignores_configured_stage_that_was_reopened(agency, stages):
    update_stage(stages["closed"], is_closed=False)
    agency.refresh_from_db()

    assert resolve_closed_won_stage(agency) is None


@pytest.mark.django_db
def test_seed_default_pipeline_is_repeatable(agency):
    seed_default_pipeline(agency)
    stages = seed_default_pipeline(agency)

    assert [s.name for s in stages] == [row[0] for row in DEFAULT_PIPELINE]
    agency.refresh_from_db()
    assert agency.closed_won_stage.name == "Fechado"
    assert agency.closed_won_stage.is_closed


@pytest.mark.django_db
def test_proposal_numbers_are_sequential_per_agency(agency, other_agency, stages, foreign_stage):
    first = Proposal.objects.create(agency=agency, stage=stages["new"], title="A")
    second = Proposal.objects.create(agency=agency, stage=stages["new"], title="B")
    foreign = Proposal.objects.create(agency=other_agency, stage=foreign_stage, title="C")

    assert (first.number, second.number) == (1, 2)
    assert foreign.number == 1


@pytest.mark.django_db
def test_history_is_append_only(proposal, stages):
    entry = log_stage_change(proposal, stages["new"], stages["negotiation"])
    entry.description = "editado"
    with pytest.raises(ValueError):
        entry.save()
    with pytest.raises(ValueError):
        entry.delete()
    assert entry.user is None
