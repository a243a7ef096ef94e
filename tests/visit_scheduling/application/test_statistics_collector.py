# tests/visit_scheduling/application/test_statistics_collector.py

from visit_scheduling.application.statistics_collector import StatisticsCollector
from visit_scheduling.domain.entities import Plan
from visit_scheduling.domain.gap_enforcer import gap_violations


def _montar(sequencer, dias, alocacao):
    return [sequencer.sequence_day(d, alocacao.get(i, []))[0] for i, d in enumerate(dias)]


def test_metricas_basicas(sequencer, make_days, make_store, make_instance):
    a, b, c = (make_instance(make_store(n, km, 1.0)) for n, km in (("A", 1.0), ("B", 2.0), ("C", 3.0)))
    filler = make_instance(make_store("P", 1.5, 1.0, priority=3), is_filler=True)
    pendente = make_instance(make_store("D", 4.0, 1.0))
    dias = _montar(sequencer, make_days(3), {0: [a, b, filler], 2: [c]})
    plan = Plan(working_days=dias, unassigned_visit_instances=[pendente])

    stats = StatisticsCollector(5).collect(plan, total_required=4, total_generated=5)

    assert stats.total_planned == 4
    assert stats.filler_planned == 1
    assert stats.required_planned == 3
    assert stats.unassigned_count == 1
    assert stats.coverage_percentage == 75.0
    assert (stats.working_days, stats.active_days, stats.empty_days) == (3, 2, 1)
    assert (stats.min_stores_per_day, stats.max_stores_per_day) == (1, 3)
    assert stats.average_stores_per_day == 2.0
    assert stats.balance_ratio == round(1 / 3, 3)
    assert stats.total_distance_km == round(sum(d.total_distance_km for d in dias), 2)
    assert stats.average_finish_minute is not None
    assert stats.gap_compliance_percentage == 100.0
    assert stats.multi_visit_stores == 0


def test_intervalo_e_diagnosticos(config, sequencer, make_days, make_store, make_instance):
    loja = make_store("X", 1.0, 1.0, freq=2)
    dias = _montar(sequencer, make_days(3), {0: [make_instance(loja, 1, 2)], 2: [make_instance(loja, 2, 2)]})
    plan = Plan(working_days=dias, unassigned_visit_instances=[], gap_warnings=gap_violations(dias, 5))

    stats = StatisticsCollector(5).collect(
        plan, total_required=2, total_generated=2, diagnostics={"relocated_visits": 3, "desconhecido": 1}
    )

    assert stats.multi_visit_stores == 1
    assert (stats.gap_pairs_total, stats.gap_pairs_valid) == (1, 0)
    assert stats.gap_compliance_percentage == 0.0
    assert stats.gap_warning_count == 1
    assert stats.relocated_visits == 3
    assert stats.to_dict()["coverage_percentage"] == 100.0


def test_plano_vazio(make_days):
    plan = Plan(working_days=make_days(2), unassigned_visit_instances=[])

    stats = StatisticsCollector(5).collect(plan, total_required=0, total_generated=0)

    assert stats.coverage_percentage == 0.0
    assert stats.active_days == 0
    assert stats.average_finish_minute is None
    assert stats.balance_ratio == 0.0
