# tests/visit_scheduling/application/test_route_sequencer.py

from datetime import date

from visit_scheduling.application.route_sequencer import RouteSequencer
from visit_scheduling.config.settings import PlannerConfig
from visit_scheduling.domain.entities import BreakType, WorkingDay
from visit_scheduling.domain.haversine_utils import haversine_km

SEGUNDA = WorkingDay(date=date(2026, 3, 2), break_type=BreakType.LUNCH)
SEXTA = WorkingDay(date=date(2026, 3, 6), break_type=BreakType.FRIDAY)


def _norte(make_store, make_instance, *kms):
    return [make_instance(make_store(f"N{km}", km, 0.0)) for km in kms]


# ============================================================
# 🧭 ORDENAÇÃO
# ============================================================
def test_vizinho_mais_proximo_parte_da_base(sequencer, make_store, make_instance):
    insts = _norte(make_store, make_instance, 3, 1, 2)

    rota = sequencer.nearest_neighbor(insts)

    assert [i.store_id for i in rota] == ["N1", "N2", "N3"]


def test_two_opt_desfaz_cruzamento(sequencer, make_store, make_instance):
    ruim = _norte(make_store, make_instance, 1, 3, 2, 4)

    rota = sequencer.two_opt(ruim)

    assert [i.store_id for i in rota] == ["N1", "N2", "N3", "N4"]
    assert sequencer.route_length(rota) < sequencer.route_length(ruim)


def test_two_opt_nunca_piora(sequencer, make_store, make_instance):
    insts = [
        make_instance(make_store(f"Z{i}", (i * 7) % 5 - 2.0, (i * 3) % 7 - 3.0))
        for i in range(9)
    ]

    base = sequencer.nearest_neighbor(insts)
    melhorada = sequencer.two_opt(base)

    assert sequencer.route_length(melhorada) <= sequencer.route_length(base) + 1e-9
    assert sorted(i.store_id for i in melhorada) == sorted(i.store_id for i in insts)


# ============================================================
# 🕘 LINHA DO TEMPO
# ============================================================
def test_linha_do_tempo_primeira_parada(sequencer, config, make_store, make_instance):
    inst = make_instance(make_store("A", 6.0, 0.0))

    v = sequencer.timeline([inst], BreakType.LUNCH)[0]

    viagem = round(haversine_km(config.home_base, (inst.lat, inst.lng)) * 3.0)
    assert v.order == 1
    assert v.travel_minutes == viagem
    assert v.arrival_minute == 540 + viagem
    assert v.departure_minute == v.arrival_minute + 5 + 30
    assert not v.walking_hop
    assert not v.time_window_violation


def test_duracao_propria_da_loja(sequencer, make_store, make_instance):
    inst = make_instance(make_store("A", 1.0, 0.0, duration=45))

    v = sequencer.timeline([inst], BreakType.LUNCH)[0]

    assert v.departure_minute - v.arrival_minute == 5 + 45


def test_salto_a_pe_no_mesmo_predio(sequencer, make_store, make_instance):
    a = make_instance(make_store("A", 1.0, 0.0))
    b = make_instance(make_store("B", 1.05, 0.0))  # 50 m

    visitas = sequencer.timeline([a, b], BreakType.LUNCH)

    assert visitas[1].walking_hop
    assert visitas[1].travel_minutes == round(visitas[1].distance_km * 12.0)
    assert visitas[1].arrival_minute == visitas[0].departure_minute + visitas[1].travel_minutes


def test_chegada_no_almoco_pula_para_o_fim_da_pausa(make_store, make_instance):
    seq = RouteSequencer(PlannerConfig(lunch_start=545, lunch_end=600))
    inst = make_instance(make_store("A", 2.0, 0.0))  # 6 min de carro

    v = seq.timeline([inst], BreakType.LUNCH)[0]

    assert v.arrival_minute == 600
    assert v.departure_minute == 635


def test_pausa_aplicada_uma_vez_por_dia(make_store, make_instance):
    seq = RouteSequencer(PlannerConfig(lunch_start=545, lunch_end=600))
    a = make_instance(make_store("A", 2.0, 0.0))
    b = make_instance(make_store("B", 4.0, 0.0))

    visitas = seq.timeline([a, b], BreakType.LUNCH)

    assert visitas[0].arrival_minute == 600
    assert visitas[1].arrival_minute == visitas[0].departure_minute + visitas[1].travel_minutes


def test_sexta_usa_pausa_estendida(make_store, make_instance):
    seq = RouteSequencer(PlannerConfig(friday_break_start=545, friday_break_end=610))
    inst = make_instance(make_store("A", 2.0, 0.0))

    assert seq.timeline([inst], BreakType.FRIDAY)[0].arrival_minute == 610
    assert seq.timeline([inst], BreakType.LUNCH)[0].arrival_minute < 600
    assert seq.break_duration(BreakType.FRIDAY) == 65


def test_corte_apos_fim_da_jornada(make_store, make_instance):
    cfg = PlannerConfig(work_end=640)
    seq = RouteSequencer(cfg)
    insts = _norte(make_store, make_instance, 1, 2, 3, 4, 5)

    visitas, cortadas = seq.simulate(insts, BreakType.LUNCH)

    assert cortadas
    assert len(visitas) + len(cortadas) == 5
    assert all(v.departure_minute <= 640 for v in visitas)
    assert not any(v.time_window_violation for v in visitas)
    assert [c.store_id for c in cortadas] == [i.store_id for i in insts[len(visitas):]]


# ============================================================
# 📅 OPERAÇÕES SOBRE O DIA
# ============================================================
def test_sequence_day_devolve_copia(sequencer, make_store, make_instance):
    insts = _norte(make_store, make_instance, 2, 1)

    novo, cortadas = sequencer.sequence_day(SEGUNDA, insts)

    assert cortadas == []
    assert SEGUNDA.scheduled_visits == []
    assert [v.store_id for v in novo.scheduled_visits] == ["N1", "N2"]
    assert [v.order for v in novo.scheduled_visits] == [1, 2]
    assert novo.finish_minute == novo.scheduled_visits[-1].departure_minute


def test_try_insert_respeita_maximo_e_janela(make_store, make_instance):
    cfg = PlannerConfig(max_stores_per_day=2, min_stores_per_day=1)
    seq = RouteSequencer(cfg)
    dia, _ = seq.sequence_day(SEXTA, _norte(make_store, make_instance, 1))

    com_dois = seq.try_insert(dia, make_instance(make_store("B", 2.0, 0.0)))
    assert com_dois is not None
    assert com_dois.store_count == 2
    assert dia.store_count == 1

    assert seq.try_insert(com_dois, make_instance(make_store("C", 3.0, 0.0))) is None

    apertado = RouteSequencer(PlannerConfig(work_end=600))
    dia_cheio, _ = apertado.sequence_day(SEGUNDA, _norte(make_store, make_instance, 1))
    assert apertado.try_insert(dia_cheio, make_instance(make_store("D", 2.0, 0.0))) is None


def test_projected_finish_e_fits(sequencer, make_store, make_instance):
    assert sequencer.projected_finish([], BreakType.LUNCH) is None
    assert sequencer.fits([], BreakType.LUNCH)

    insts = _norte(make_store, make_instance, 1, 2)
    fim = sequencer.projected_finish(insts, BreakType.LUNCH)
    assert fim == sequencer.timeline(sequencer.order(insts), BreakType.LUNCH)[-1].departure_minute
    assert sequencer.fits(insts, BreakType.LUNCH)


def test_retime_day_mantem_ordem(sequencer, make_store, make_instance):
    dia, _ = sequencer.sequence_day(SEGUNDA, _norte(make_store, make_instance, 1, 2, 3))
    invertido = WorkingDay(
        date=dia.date,
        break_type=dia.break_type,
        scheduled_visits=list(reversed(dia.scheduled_visits)),
    )

    novo, cortadas = sequencer.retime_day(invertido)

    assert cortadas == []
    assert [v.store_id for v in novo.scheduled_visits] == ["N3", "N2", "N1"]
    assert [v.order for v in novo.scheduled_visits] == [1, 2, 3]
