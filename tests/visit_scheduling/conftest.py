# tests/visit_scheduling/conftest.py

import math
from datetime import date

import pytest

from visit_scheduling.application.route_sequencer import RouteSequencer
from visit_scheduling.config.settings import PlannerConfig
from visit_scheduling.domain.entities import BreakType, Store, VisitInstance, WorkingDay
from visit_scheduling.infrastructure.calendar_builder import build_working_days

HOME = (3.006902971094009, 101.76718109065438)


def offset_km(norte_km: float, leste_km: float, origem=HOME):
    """Coordenada deslocada a partir da base (aproximação plana, suficiente para poucos km)."""
    lat = origem[0] + norte_km / 111.0
    lng = origem[1] + leste_km / (111.0 * math.cos(math.radians(origem[0])))
    return lat, lng


@pytest.fixture
def config():
    return PlannerConfig()


@pytest.fixture
def sequencer(config):
    return RouteSequencer(config)


@pytest.fixture
def make_store():
    def _make(store_id, norte_km=1.0, leste_km=1.0, priority=1, freq=1.0, duration=None, **extra):
        lat, lng = offset_km(norte_km, leste_km)
        return Store(
            id=store_id,
            name=f"Loja {store_id}",
            lat=lat,
            lng=lng,
            priority_class=priority,
            base_frequency=freq,
            visit_duration_minutes=duration,
            **extra,
        )
    return _make


@pytest.fixture
def make_instance():
    def _make(store, sequence=1, total=1, is_filler=False):
        return VisitInstance(store=store, sequence=sequence, total_occurrences=total, is_filler=is_filler)
    return _make


@pytest.fixture
def march_days():
    # março/2026: 22 dias úteis, sextas 6, 13, 20 e 27
    return build_working_days(2026, 3)


@pytest.fixture
def make_days():
    def _make(n, break_type=BreakType.LUNCH):
        return [WorkingDay(date=date(2026, 1, 1 + i), break_type=break_type) for i in range(n)]
    return _make
