# tests/visit_scheduling/domain/test_visit_expander.py

from datetime import date

import pytest

from visit_scheduling.domain.entities import Store
from visit_scheduling.domain.visit_expander import (
    SeededVisitSampler,
    VisitExpander,
    filter_by_home_distance,
    month_epoch_for,
)

EPOCA = 24322  # novembro/2026


def _loja(store_id, freq, priority=1):
    return Store(id=store_id, name=store_id, lat=3.0, lng=101.7, priority_class=priority, base_frequency=freq)


def test_month_epoch():
    assert month_epoch_for(date(2026, 3, 2)) == 24314
    assert month_epoch_for(date(2026, 11, 2)) == EPOCA
    assert month_epoch_for(date(2026, 12, 1)) == EPOCA + 1
    assert month_epoch_for(date(2027, 1, 5)) - month_epoch_for(date(2026, 12, 1)) == 1


def test_frequencias_inteiras_e_decimais_acima_de_um():
    exp = VisitExpander(0.1, EPOCA)
    insts = exp.expand([_loja("A", 4), _loja("B", 2.7), _loja("C", 1.0)])

    por_loja = {}
    for i in insts:
        por_loja.setdefault(i.store_id, []).append(i)

    assert [i.sequence for i in por_loja["A"]] == [1, 2, 3, 4]
    assert all(i.total_occurrences == 4 for i in por_loja["A"])
    assert len(por_loja["B"]) == 2
    assert len(por_loja["C"]) == 1
    assert exp.allotment == {"A": 4, "B": 2, "C": 1}
    assert exp.required_count == 7


def test_abaixo_do_limiar_ou_zero_nao_gera():
    exp = VisitExpander(0.1, EPOCA)
    insts = exp.expand([_loja("A", 0.05), _loja("B", 0.0)])

    assert insts == []
    assert exp.allotment == {"A": 0, "B": 0}


def test_sorteio_deterministico():
    lojas = [_loja(f"S{i:04d}", 0.5, priority=3) for i in range(200)]

    a = VisitExpander(0.1, EPOCA).expand(lojas)
    b = VisitExpander(0.1, EPOCA).expand(lojas)

    assert [i.key for i in a] == [i.key for i in b]
    assert [i.seed_key for i in a] == [i.seed_key for i in b]


@pytest.mark.parametrize("freq", [0.1, 0.25, 0.3, 0.5, 0.79])
def test_sorteio_fracionario_proporcional(freq):
    # === 1000 lojas classe 3, mesma frequência ===
    lojas = [_loja(f"S{i:04d}", freq, priority=3) for i in range(1000)]

    insts = VisitExpander(0.1, EPOCA).expand(lojas)
    share = len(insts) / 1000

    assert abs(share - freq) <= 0.03


def test_sampler_e_seed_key():
    sampler = SeededVisitSampler(EPOCA)
    loja = _loja("X1", 0.5)

    u = sampler.draw(loja)
    assert 0.0 <= u < 1.0
    assert sampler.draw(loja) == u
    assert sampler.seed_key(loja, 1) != sampler.seed_key(loja, 2)
    # prioridade faz parte da chave do sorteio
    assert SeededVisitSampler(EPOCA).draw(_loja("X1", 0.5, priority=2)) != u


def test_preenchimento_registra_gerada():
    exp = VisitExpander(0.1, EPOCA)
    exp.expand([_loja("A", 1)])

    filler = exp.expand_filler(_loja("P1", 0.2, priority=3))

    assert filler.is_filler
    assert filler.key == ("P1", 1)
    assert exp.has_store("P1")
    assert len(exp.generated) == 2
    assert exp.required_count == 1

    with pytest.raises(ValueError):
        exp.expand_filler(_loja("A", 1))


def test_previa_sem_efeito_no_estado():
    lojas = [_loja(f"S{i:04d}", 0.5, priority=3) for i in range(100)]
    exp = VisitExpander(0.1, EPOCA)

    previa = exp.preview_fractional_distribution(lojas, priority_class=3)
    atual = exp.expand(lojas)

    assert previa["stores"] == 100
    assert previa["visited"] == len(atual)
    assert previa["share"] == len(atual) / 100
    assert len(exp.generated) == len(atual)

    seguinte = exp.preview_month(lojas, offset=1)
    assert [i.key for i in seguinte] == [i.key for i in VisitExpander(0.1, EPOCA + 1).expand(lojas)]
    assert len(exp.generated) == len(atual)


def test_filtro_por_distancia_da_base():
    base = (3.0, 101.7)
    perto = Store(id="P", name="P", lat=3.05, lng=101.7)
    longe = Store(id="L", name="L", lat=3.5, lng=101.7)  # ~55 km

    dentro, fora = filter_by_home_distance([perto, longe], base, 40.0)

    assert dentro == [perto]
    assert fora == [longe]
