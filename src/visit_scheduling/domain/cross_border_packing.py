# ============================================================
# 📦 src/visit_scheduling/domain/cross_border_packing.py
# ============================================================

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

from loguru import logger

from visit_scheduling.config.settings import PlannerConfig
from visit_scheduling.domain.capacitated_sweep import sweep_split
from visit_scheduling.domain.entities import VisitInstance
from visit_scheduling.domain.haversine_utils import centroid, grid_key, haversine_km, km_to_degrees

COMPATIBILITY_MIN = 0.3


@dataclass
class GridCell:
    key: Tuple[int, int]
    members: List[VisitInstance] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.members)

    @property
    def center(self) -> Tuple[float, float]:
        return centroid((m.lat, m.lng) for m in self.members)

    @property
    def neighbours(self) -> List[Tuple[int, int]]:
        gx, gy = self.key
        return [(gx + dx, gy + dy) for dx in (-1, 0, 1) for dy in (-1, 0, 1) if dx or dy]


# ============================================================
# 📊 Classificação das células
# ============================================================
def classify_cells(cells: Sequence[GridCell], min_per_day: int, capacity: int) -> Dict[str, List[GridCell]]:
    analise = {"underutilized": [], "optimal": [], "overloaded": []}
    for cell in cells:
        if cell.size < min_per_day:
            analise["underutilized"].append(cell)
        elif cell.size <= capacity:
            analise["optimal"].append(cell)
        else:
            analise["overloaded"].append(cell)
    return analise


def grid_compatibility(a: GridCell, b: GridCell, max_distance_km: float) -> Tuple[float, float]:
    """0.4 * razão de tamanhos + 0.6 * proximidade dos centros. Retorna (compatibilidade, distância)."""
    razao = min(a.size, b.size) / max(a.size, b.size)
    dist = haversine_km(a.center, b.center)
    score_dist = max(0.0, 1 - dist / max_distance_km)
    return razao * 0.4 + score_dist * 0.6, dist


def _fill_priority(cell: GridCell, cells: Dict, home: Tuple[float, float], max_home_km: float) -> float:
    vendas = sum(m.store.sales_volume for m in cell.members) / max(cell.size, 1)
    centralidade = max(0.0, 1 - haversine_km(home, cell.center) / max_home_km)
    acessibilidade = sum(1 for k in cell.neighbours if k in cells) / 8
    return vendas / 100000 + centralidade + acessibilidade * 0.5


# ============================================================
# 🚀 Empacotamento entre células vizinhas
# ============================================================
def cross_border_groups(
    instances: Sequence[VisitInstance], config: PlannerConfig, capacity: int
) -> List[List[VisitInstance]]:
    """
    Agrupa ocorrências em grupos do tamanho de um dia a partir da grade:
    - células sobrecarregadas são fatiadas pela varredura polar;
    - células subutilizadas absorvem lojas das vizinhas compatíveis
      (distância entre centros <= CROSS_BORDER_DISTANCE_KM e compatibilidade > 0.3),
      as mais próximas primeiro.
    """
    if not instances:
        return []
    capacity = max(1, int(capacity))
    cell_deg = km_to_degrees(config.grid_cell_km)

    cells: Dict[Tuple[int, int], GridCell] = OrderedDict()
    for inst in instances:
        chave = grid_key(inst.lat, inst.lng, cell_deg)
        cells.setdefault(chave, GridCell(chave)).members.append(inst)

    analise = classify_cells(list(cells.values()), config.min_stores_per_day, capacity)
    logger.info(
        f"🧱 Grade cross-border | células={len(cells)} | subutilizadas={len(analise['underutilized'])} | "
        f"ótimas={len(analise['optimal'])} | sobrecarregadas={len(analise['overloaded'])}"
    )

    grupos: List[List[VisitInstance]] = []

    # 1️⃣ Sobrecarregadas → blocos do tamanho de um dia
    for cell in analise["overloaded"]:
        blocos = sweep_split(cell.members, capacity, config.mall_proximity_km)
        grupos.extend(blocos)

    # 2️⃣ Ótimas permanecem como estão
    for cell in analise["optimal"]:
        grupos.append(list(cell.members))

    # 3️⃣ Subutilizadas absorvem vizinhas compatíveis
    pendentes = sorted(
        analise["underutilized"],
        key=lambda c: (-_fill_priority(c, cells, config.home_base, config.max_distance_from_home_km), c.key),
    )
    processadas = set()
    transferidas = 0

    for primaria in pendentes:
        if primaria.key in processadas or primaria.size == 0:
            continue
        processadas.add(primaria.key)
        centro = primaria.center
        dia = list(primaria.members)

        candidatas = []
        for outra in pendentes:
            if outra.key in processadas or outra.size == 0:
                continue
            compat, dist = grid_compatibility(primaria, outra, config.cross_border_distance_km)
            if dist <= config.cross_border_distance_km and compat > COMPATIBILITY_MIN:
                candidatas.append((compat, outra))
        candidatas.sort(key=lambda t: (-t[0], t[1].key))

        for _, vizinha in candidatas:
            livre = capacity - len(dia)
            if livre <= 0:
                break
            ordenadas = sorted(
                vizinha.members,
                key=lambda m: (haversine_km(centro, (m.lat, m.lng)), m.store_id, m.sequence),
            )
            levar = ordenadas[:livre]
            dia.extend(levar)
            transferidas += len(levar)
            vizinha.members = [m for m in vizinha.members if not any(m is t for t in levar)]
            if vizinha.size == 0:
                processadas.add(vizinha.key)

        grupos.append(dia)

    logger.success(
        f"✅ Cross-border concluído | grupos={len(grupos)} | transferências={transferidas} | "
        f"tamanho médio={sum(len(g) for g in grupos) / max(len(grupos), 1):.1f}"
    )
    return [g for g in grupos if g]

