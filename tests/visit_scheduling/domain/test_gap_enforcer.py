# tests/visit_scheduling/domain/test_gap_enforcer.py

from visit_scheduling.application.route_sequencer import RouteSequencer
from visit_scheduling.config.settings import PlannerConfig
from visit_scheduling.domain.entities import GapWarning
from visit_scheduling.domain.gap_enforcer import GapEnforcer, gap_violations, placements_by_store


def _montar(sequencer, dias, alocacao):
    """alocacao: {índice do dia: [instâncias]}"""
    return [sequencer.sequence_day(d, alocacao.get(i, []))[0] for i, d in enumerate(dias)]


def _dias_da_loja(dias, store_id):
    return [idx for idx, _ in placements_by_store(dias)[store_id]]


def test_ocorrencia_proxima_demais_e_movida(config, sequencer, make_days, make_store, make_instance):
    loja = make_store("X", 1.0, 1.0, freq=2)
    s1, s2 = make_instance(loja, 1, 2), make_instance(loja, 2, 2)
    dias = _montar(sequencer, make_days(10), {0: [s1], 2: [s2]})

    novos, alertas, movidas = GapEnforcer(config, sequencer).enforce(dias)

    assert movidas == 1
    assert alertas == []
    assert _dias_da_loja(novos, "X") == [0, 5]
    assert novos[2].scheduled_visits == []
    # entrada intocada
    assert dias[2].store_count == 1


def test_destino_lotado_passa_para_o_proximo(make_days, make_store, make_instance):
    cfg = PlannerConfig(max_stores_per_day=2, min_stores_per_day=1)
    seq = RouteSequencer(cfg)
    loja = make_store("X", 1.0, 1.0, freq=2)
    outras = [make_instance(make_store(f"O{i}", 1.5 + 0.1 * i, 1.0)) for i in range(2)]
    dias = _montar(seq, make_days(10), {0: [make_instance(loja, 1, 2)], 1: [make_instance(loja, 2, 2)], 5: outras})

    novos, alertas, _ = GapEnforcer(cfg, seq).enforce(dias)

    assert alertas == []
    assert _dias_da_loja(novos, "X") == [0, 6]
    assert novos[5].store_count == 2


def test_sem_dia_viavel_gera_alerta(config, sequencer, make_days, make_store, make_instance):
    loja = make_store("X", 1.0, 1.0, freq=2)
    dias = _montar(sequencer, make_days(3), {0: [make_instance(loja, 1, 2)], 1: [make_instance(loja, 2, 2)]})

    novos, alertas, movidas = GapEnforcer(config, sequencer).enforce(dias)

    assert movidas == 0
    assert alertas == [GapWarning("X", 0, 1, 1, 5)]
    assert _dias_da_loja(novos, "X") == [0, 1]


def test_uma_tentativa_por_ocorrencia(config, sequencer, make_days, make_store, make_instance):
    loja = make_store("X", 1.0, 1.0, freq=3)
    s1, s2, s3 = (make_instance(loja, k, 3) for k in (1, 2, 3))
    dias = _montar(sequencer, make_days(10), {0: [s1], 1: [s2], 2: [s3]})

    novos, alertas, movidas = GapEnforcer(config, sequencer).enforce(dias)

    # s2 vai para o dia 7 (longe de 0 e de 2); s3 não tem destino e fica no dia 2
    assert movidas == 1
    assert _dias_da_loja(novos, "X") == [0, 2, 7]
    assert alertas == [GapWarning("X", 0, 2, 2, 5)]


def test_intervalo_zero_desliga(make_days, make_store, make_instance):
    cfg = PlannerConfig(min_visit_gap_days=0)
    seq = RouteSequencer(cfg)
    loja = make_store("X", 1.0, 1.0, freq=2)
    dias = _montar(seq, make_days(3), {0: [make_instance(loja, 1, 2)], 1: [make_instance(loja, 2, 2)]})

    novos, alertas, movidas = GapEnforcer(cfg, seq).enforce(dias)

    assert (alertas, movidas) == ([], 0)
    assert gap_violations(novos, 0) == []
