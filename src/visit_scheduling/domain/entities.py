# ==========================================================
# 📦 src/visit_scheduling/domain/entities.py
# ==========================================================

from dataclasses import dataclass, field, asdict
from datetime import date
from enum import Enum
from typing import Optional, Dict, List, Tuple, Any


# ==========================================================
# 🏪 Loja (entrada somente leitura)
# ==========================================================
@dataclass(frozen=True)
class Store:
    """Representa uma loja com cadência mensal de visitas."""
    id: str
    name: str
    lat: float
    lng: float
    priority_class: int = 1
    base_frequency: float = 1.0
    visit_duration_minutes: Optional[int] = None
    retailer: str = ""
    district: str = ""
    sales_volume: float = 0.0

    @property
    def coord(self) -> Tuple[float, float]:
        return (self.lat, self.lng)


# ==========================================================
# 🔁 Ocorrência de visita exigida no mês
# ==========================================================
@dataclass(frozen=True)
class VisitInstance:
    store: Store
    sequence: int                 # 1..k
    total_occurrences: int        # k
    is_filler: bool = False       # criada pelo back-fill a partir de um pool
    seed_key: int = 0             # derivada de (id, prioridade, época, sequência)

    @property
    def store_id(self) -> str:
        return self.store.id

    @property
    def key(self) -> Tuple[str, int]:
        return (self.store.id, self.sequence)

    @property
    def is_multi_visit(self) -> bool:
        return self.total_occurrences > 1

    @property
    def priority_class(self) -> int:
        return self.store.priority_class

    @property
    def lat(self) -> float:
        return self.store.lat

    @property
    def lng(self) -> float:
        return self.store.lng

    @property
    def coord(self) -> Tuple[float, float]:
        return self.store.coord


# ==========================================================
# ⏱️ Visita agendada (posição + linha do tempo)
# ==========================================================
@dataclass(frozen=True)
class ScheduledVisit:
    instance: VisitInstance
    order: int
    distance_km: float
    travel_minutes: int
    arrival_minute: int
    departure_minute: int
    time_window_violation: bool = False
    walking_hop: bool = False

    @property
    def store_id(self) -> str:
        return self.instance.store_id


# ==========================================================
# 📅 Dia útil
# ==========================================================
class BreakType(str, Enum):
    LUNCH = "lunch"
    FRIDAY = "friday"


@dataclass
class WorkingDay:
    """
    Dia útil do mês, criado pelo calendário externo.
    O núcleo só devolve cópias com a lista de visitas preenchida.
    """
    date: date
    break_type: BreakType = BreakType.LUNCH
    week: int = 0
    scheduled_visits: List[ScheduledVisit] = field(default_factory=list)

    @property
    def store_count(self) -> int:
        return len(self.scheduled_visits)

    @property
    def finish_minute(self) -> Optional[int]:
        if not self.scheduled_visits:
            return None
        return self.scheduled_visits[-1].departure_minute

    @property
    def total_distance_km(self) -> float:
        return sum(v.distance_km for v in self.scheduled_visits)


# ==========================================================
# 🗺️ Cluster geográfico transitório
# ==========================================================
@dataclass
class Cluster:
    label: int
    members: List[VisitInstance]
    centroid_lat: float
    centroid_lng: float
    radius_median_km: float = 0.0
    radius_p95_km: float = 0.0
    metrics: Dict[str, Any] = field(default_factory=dict)

    @property
    def size(self) -> int:
        return len(self.members)

    @property
    def best_priority(self) -> int:
        return min((m.priority_class for m in self.members), default=999)


# ==========================================================
# ⚠️ Alerta de intervalo mínimo não atendido
# ==========================================================
@dataclass(frozen=True)
class GapWarning:
    store_id: str
    previous_day_index: int
    day_index: int
    gap_days: int
    required_gap_days: int


# ==========================================================
# 📊 Estatísticas do plano
# ==========================================================
@dataclass
class Statistics:
    total_required: int = 0
    total_generated: int = 0
    total_planned: int = 0
    required_planned: int = 0
    filler_planned: int = 0
    unassigned_count: int = 0
    coverage_percentage: float = 0.0

    working_days: int = 0
    active_days: int = 0
    empty_days: int = 0
    min_stores_per_day: int = 0
    max_stores_per_day: int = 0
    average_stores_per_day: float = 0.0
    balance_ratio: float = 0.0

    total_distance_km: float = 0.0
    average_distance_km: float = 0.0
    average_finish_minute: Optional[float] = None

    multi_visit_stores: int = 0
    gap_pairs_total: int = 0
    gap_pairs_valid: int = 0
    gap_compliance_percentage: float = 100.0
    gap_warning_count: int = 0

    out_of_range_count: int = 0
    time_window_trims: int = 0
    relocated_visits: int = 0
    duplicates_removed: int = 0
    dedup_shortfalls: int = 0
    days_merged: int = 0
    mall_groups: int = 0
    stores_in_malls: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ==========================================================
# 📦 Plano mensal (saída do pipeline)
# ==========================================================
@dataclass
class Plan:
    working_days: List[WorkingDay]
    unassigned_visit_instances: List[VisitInstance]
    statistics: Statistics = field(default_factory=Statistics)
    out_of_range_stores: List[Store] = field(default_factory=list)
    gap_warnings: List[GapWarning] = field(default_factory=list)

    def scheduled_visits(self) -> List[Tuple[int, ScheduledVisit]]:
        return [
            (idx, visit)
            for idx, day in enumerate(self.working_days)
            for visit in day.scheduled_visits
        ]

    @property
    def scheduled_count(self) -> int:
        return sum(len(d.scheduled_visits) for d in self.working_days)

    @property
    def unassigned_count(self) -> int:
        return len(self.unassigned_visit_instances)
