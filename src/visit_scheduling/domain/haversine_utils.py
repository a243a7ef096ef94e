# ============================================================
# 📦 src/visit_scheduling/domain/haversine_utils.py
# ============================================================

import math
from typing import Iterable, Sequence, Tuple

import numpy as np
from sklearn.metrics.pairwise import haversine_distances

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE = 111.0


def haversine_km(coord1, coord2) -> float:
    """
    Calcula a distância entre dois pontos (lat, lng) em quilômetros.
    """
    lat1, lon1 = coord1
    lat2, lon2 = coord2

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def haversine_matrix_km(coords_a: Sequence[Tuple[float, float]], coords_b=None) -> np.ndarray:
    """Matriz de distâncias Haversine (km) entre dois conjuntos de pontos (lat, lng)."""
    a = np.radians(np.asarray(coords_a, dtype=np.float64).reshape(-1, 2))
    b = a if coords_b is None else np.radians(np.asarray(coords_b, dtype=np.float64).reshape(-1, 2))
    if len(a) == 0 or len(b) == 0:
        return np.zeros((len(a), len(b)))
    return haversine_distances(a, b) * EARTH_RADIUS_KM


def centroid(coords: Iterable[Tuple[float, float]]) -> Tuple[float, float]:
    pts = list(coords)
    if not pts:
        raise ValueError("Centróide de conjunto vazio.")
    lat = sum(p[0] for p in pts) / len(pts)
    lng = sum(p[1] for p in pts) / len(pts)
    return (lat, lng)


def radius_stats(center: Tuple[float, float], coords: Sequence[Tuple[float, float]]):
    """Mediana e percentil 95 das distâncias dos pontos ao centro."""
    if not coords:
        return 0.0, 0.0
    dists = sorted(haversine_km(center, p) for p in coords)
    med = dists[len(dists) // 2]
    p95 = dists[int(0.95 * len(dists)) - 1] if len(dists) >= 2 else dists[-1]
    return med, p95


def travel_minutes(distance_km: float, driving_minutes_per_km: float,
                   walking_minutes_per_km: float, walking_threshold_km: float) -> int:
    """
    Tempo de deslocamento linear na distância.
    Saltos curtos entre lojas do mesmo prédio usam a taxa de caminhada.
    """
    if distance_km <= walking_threshold_km:
        return int(round(distance_km * walking_minutes_per_km))
    return int(round(distance_km * driving_minutes_per_km))


def km_to_degrees(km: float) -> float:
    return km / KM_PER_DEGREE


def grid_key(lat: float, lng: float, cell_deg: float) -> Tuple[int, int]:
    return (int(math.floor(lat / cell_deg)), int(math.floor(lng / cell_deg)))


def polar_angle(lat: float, lng: float, lat_ref: float, lng_ref: float) -> float:
    """Ângulo polar (rad, 0..2π) em relação a um ponto de referência."""
    dlon = math.radians(lng - lng_ref)
    y = math.sin(dlon) * math.cos(math.radians(lat))
    x = math.cos(math.radians(lat_ref)) * math.sin(math.radians(lat)) - \
        math.sin(math.radians(lat_ref)) * math.cos(math.radians(lat)) * math.cos(dlon)
    ang = math.atan2(y, x)
    return ang if ang >= 0 else ang + 2 * math.pi


def valid_coordinate(lat, lng) -> bool:
    try:
        lat_f, lng_f = float(lat), float(lng)
    except (TypeError, ValueError):
        return False
    if math.isnan(lat_f) or math.isnan(lng_f) or math.isinf(lat_f) or math.isinf(lng_f):
        return False
    return -90.0 <= lat_f <= 90.0 and -180.0 <= lng_f <= 180.0
