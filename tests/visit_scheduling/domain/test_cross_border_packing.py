# tests/visit_scheduling/domain/test_cross_border_packing.py

from visit_scheduling.config.settings import PlannerConfig
from visit_scheduling.domain.cross_border_packing import (
    GridCell,
    classify_cells,
    cross_border_groups,
    grid_compatibility,
)
from visit_scheduling.domain.entities import Store, VisitInstance


def _inst(store_id, lat, lng):
    return VisitInstance(store=Store(id=store_id, name=store_id, lat=lat, lng=lng), sequence=1, total_occurrences=1)


def test_classificacao_das_celulas():
    cells = [
        GridCell((0, 0), [_inst(f"a{i}", 3.0, 101.7) for i in range(2)]),
        GridCell((0, 1), [_inst(f"b{i}", 3.0, 101.75) for i in range(8)]),
        GridCell((0, 2), [_inst(f"c{i}", 3.0, 101.8) for i in range(14)]),
    ]

    analise = classify_cells(cells, min_per_day=6, capacity=11)

    assert [c.key for c in analise["underutilized"]] == [(0, 0)]
    assert [c.key for c in analise["optimal"]] == [(0, 1)]
    assert [c.key for c in analise["overloaded"]] == [(0, 2)]


def test_compatibilidade():
    a = GridCell((0, 0), [_inst("a", 3.0, 101.70)])
    b = GridCell((0, 1), [_inst("b", 3.0, 101.71)])  # ~1,1 km

    compat, dist = grid_compatibility(a, b, 5.0)

    assert 1.0 < dist < 1.2
    assert 0.8 < compat <= 1.0


def test_celula_sobrecarregada_vira_blocos_do_dia():
    cfg = PlannerConfig()
    insts = [_inst(f"S{i:02d}", 3.0 + 0.001 * (i % 6), 101.70 + 0.001 * (i // 6)) for i in range(30)]

    grupos = cross_border_groups(insts, cfg, capacity=10)

    assert len(grupos) >= 3
    assert all(len(g) <= 10 for g in grupos)
    assert sorted(m.store_id for g in grupos for m in g) == sorted(i.store_id for i in insts)


def test_celulas_vizinhas_subutilizadas_sao_unidas():
    # fronteira de célula (5,5 km) em lat ≈ 3,0225: duas lojas de cada lado, ~1 km entre centros
    cfg = PlannerConfig()
    insts = [
        _inst("S1", 3.0180, 101.760),
        _inst("S2", 3.0180, 101.762),
        _inst("N1", 3.0270, 101.760),
        _inst("N2", 3.0270, 101.762),
    ]

    grupos = cross_border_groups(insts, cfg, capacity=11)

    assert len(grupos) == 1
    assert sorted(m.store_id for m in grupos[0]) == ["N1", "N2", "S1", "S2"]


def test_cross_border_vazio():
    assert cross_border_groups([], PlannerConfig(), capacity=10) == []
