# tests/visit_scheduling/domain/test_validators.py

from datetime import date

import pytest

from visit_scheduling.domain.entities import GapWarning, Plan, Store, WorkingDay
from visit_scheduling.domain.exceptions import InputError
from visit_scheduling.domain.validators import check_plan_invariants, validate_stores, validate_working_days


def _loja(store_id="A", **kw):
    base = dict(id=store_id, name=store_id, lat=3.0, lng=101.7)
    base.update(kw)
    return Store(**base)


def test_lojas_validas_passam():
    validate_stores([_loja("A"), _loja("B", base_frequency=0.5, priority_class=3)])
    validate_stores([])


@pytest.mark.parametrize("lojas", [
    [_loja("A"), _loja("A")],
    [_loja("A", lat=float("nan"))],
    [_loja("A", lng=200.0)],
    [_loja("A", priority_class=0)],
    [_loja("A", base_frequency=-1.0)],
    [_loja("A", base_frequency=float("nan"))],
    [_loja("")],
    [_loja("A", visit_duration_minutes=0)],
    [_loja("A", base_frequency="2")],
    [_loja("A", base_frequency=None)],
    [_loja("A", visit_duration_minutes="30")],
    [_loja("A", priority_class="1")],
])
def test_lojas_invalidas(lojas):
    with pytest.raises(InputError):
        validate_stores(lojas)


def test_datas_duplicadas():
    dias = [WorkingDay(date=date(2026, 3, 2)), WorkingDay(date=date(2026, 3, 2))]
    with pytest.raises(InputError):
        validate_working_days(dias)
    validate_working_days(dias[:1])


def test_invariantes_do_plano(config, sequencer, make_days, make_store, make_instance):
    loja = make_store("X", 1.0, 1.0, freq=2)
    s1, s2 = make_instance(loja, 1, 2), make_instance(loja, 2, 2)
    dias = [sequencer.sequence_day(d, insts)[0] for d, insts in zip(make_days(3), [[s1], [], [s2]])]

    sem_alerta = Plan(working_days=dias, unassigned_visit_instances=[])
    violacoes = check_plan_invariants(sem_alerta, config, 2)
    assert violacoes == ["intervalo não reportado para X: dias 0→2"]

    com_alerta = Plan(working_days=dias, unassigned_visit_instances=[], gap_warnings=[GapWarning("X", 0, 2, 2, 5)])
    assert check_plan_invariants(com_alerta, config, 2) == []
    assert len(check_plan_invariants(com_alerta, config, 3)) == 1
