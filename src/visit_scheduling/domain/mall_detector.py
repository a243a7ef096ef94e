# ============================================================
# 📦 src/visit_scheduling/domain/mall_detector.py
# ============================================================

from typing import List, Sequence

import numpy as np
from loguru import logger
from sklearn.neighbors import NearestNeighbors

from visit_scheduling.domain.haversine_utils import EARTH_RADIUS_KM


def detect_mall_groups(points: Sequence, proximity_km: float) -> List[List[int]]:
    """
    Agrupa pontos co-localizados (mesmo shopping / prédio).
    Dois pontos a até `proximity_km` ficam no mesmo grupo; a relação é transitiva.
    Retorna apenas grupos com 2+ pontos, como listas de índices ordenadas.
    """
    n = len(points)
    if n < 2:
        return []

    coords = np.radians(np.array([[p.lat, p.lng] for p in points], dtype=np.float64))
    nn = NearestNeighbors(metric="haversine", algorithm="ball_tree")
    nn.fit(coords)
    vizinhos = nn.radius_neighbors(coords, radius=proximity_km / EARTH_RADIUS_KM, return_distance=False)

    # union-find simples sobre os pares vizinhos
    pai = list(range(n))

    def raiz(i):
        while pai[i] != i:
            pai[i] = pai[pai[i]]
            i = pai[i]
        return i

    for i, idxs in enumerate(vizinhos):
        for j in idxs:
            ri, rj = raiz(i), raiz(int(j))
            if ri != rj:
                pai[max(ri, rj)] = min(ri, rj)

    grupos = {}
    for i in range(n):
        grupos.setdefault(raiz(i), []).append(i)

    resultado = sorted((sorted(g) for g in grupos.values() if len(g) >= 2), key=lambda g: g[0])
    if resultado:
        logger.debug(
            f"🏬 {len(resultado)} grupo(s) co-localizado(s) | "
            f"{sum(len(g) for g in resultado)} pontos a até {proximity_km * 1000:.0f} m"
        )
    return resultado
