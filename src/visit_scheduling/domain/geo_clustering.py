# ============================================================
# 📦 src/visit_scheduling/domain/geo_clustering.py
# ============================================================

from collections import OrderedDict
from typing import Dict, List, Sequence, Tuple

import numpy as np
from loguru import logger

from visit_scheduling.config.settings import PlannerConfig
from visit_scheduling.domain.entities import Cluster, VisitInstance
from visit_scheduling.domain.haversine_utils import (
    grid_key,
    haversine_matrix_km,
    km_to_degrees,
    radius_stats,
)
from visit_scheduling.domain.k_estimator import estimate_k

SEED_MASK = (1 << 64) - 1


# ============================================================
# 🌱 Semente derivada das ocorrências
# ============================================================
def derive_seed(instances: Sequence[VisitInstance]) -> int:
    """Xor das seed_keys das ocorrências: mesma entrada, mesma semente."""
    seed = 0
    for inst in instances:
        seed ^= int(inst.seed_key) & SEED_MASK
    return seed


# ============================================================
# 🔲 Partição por grade
# ============================================================
def grid_partition(instances: Sequence[VisitInstance], cell_km: float) -> np.ndarray:
    """Agrupa por células fixas de lat/lng. Labels seguem a ordem da primeira aparição."""
    cell_deg = km_to_degrees(cell_km)
    chaves: Dict[Tuple[int, int], int] = OrderedDict()
    labels = np.zeros(len(instances), dtype=int)

    for i, inst in enumerate(instances):
        chave = grid_key(inst.lat, inst.lng, cell_deg)
        if chave not in chaves:
            chaves[chave] = len(chaves)
        labels[i] = chaves[chave]

    logger.debug(f"🔲 Grade {cell_km:.1f} km → {len(chaves)} células ocupadas")
    return labels


# ============================================================
# 🎯 K-means (inicialização k-means++) em distância Haversine
# ============================================================
def _kmeans_plus_plus(coords_rad: np.ndarray, k: int, rng: np.random.Generator) -> np.ndarray:
    n = len(coords_rad)
    escolhidos = [int(rng.integers(n))]

    for _ in range(1, k):
        dist = haversine_matrix_km(np.degrees(coords_rad), np.degrees(coords_rad[escolhidos])).min(axis=1)
        pesos = dist ** 2
        total = pesos.sum()
        if total <= 0:
            # pontos coincidentes: escolhe entre os ainda não usados
            livres = [i for i in range(n) if i not in escolhidos]
            escolhidos.append(int(livres[int(rng.integers(len(livres)))]))
            continue
        escolhidos.append(int(rng.choice(n, p=pesos / total)))

    return np.degrees(coords_rad[escolhidos])


def kmeans_partition(
    instances: Sequence[VisitInstance], k: int, max_iter: int, seed: int
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Lloyd com número fixo de iterações (max_iter).
    Não há teste de convergência: o tempo de execução depende apenas do tamanho da entrada.
    """
    coords = np.array([[inst.lat, inst.lng] for inst in instances], dtype=np.float64)
    n = len(coords)
    if n == 0:
        return np.zeros(0, dtype=int), np.zeros((0, 2))

    k = max(1, min(k, n))
    rng = np.random.default_rng(seed)
    centros = _kmeans_plus_plus(np.radians(coords), k, rng)
    labels = np.zeros(n, dtype=int)

    for _ in range(max_iter):
        dist = haversine_matrix_km(coords, centros)
        labels = dist.argmin(axis=1)
        for c in range(k):
            membros = coords[labels == c]
            if len(membros):
                centros[c] = membros.mean(axis=0)

    return labels, centros


# ============================================================
# 🧩 Clusterizador com verificação de partição
# ============================================================
class GeographicClusterer:

    def __init__(self, config: PlannerConfig):
        self.config = config

    def cluster(self, instances: Sequence[VisitInstance], n_days: int) -> List[Cluster]:
        instances = list(instances)
        if not instances:
            return []

        estrategia = self.config.clustering_strategy
        if estrategia == "grid":
            labels = grid_partition(instances, self.config.grid_cell_km)
        else:
            k, _ = estimate_k(len(instances), self.config.target_stores_per_day, n_days)
            seed = derive_seed(instances)
            labels, _ = kmeans_partition(instances, k, self.config.kmeans_max_iter, seed)

        clusters = build_clusters(instances, labels)
        clusters = verify_partition(instances, clusters)

        tamanhos = [c.size for c in clusters]
        logger.success(
            f"✅ Clusterização '{estrategia}' concluída | clusters={len(clusters)} | "
            f"média={np.mean(tamanhos):.1f} ocorrências/cluster"
        )
        logger.debug(f"Tamanhos={tamanhos}")
        return clusters


def build_clusters(instances: Sequence[VisitInstance], labels) -> List[Cluster]:
    """Monta os clusters a partir dos labels; clusters vazios são descartados."""
    grupos: Dict[int, List[VisitInstance]] = OrderedDict()
    for inst, label in zip(instances, labels):
        grupos.setdefault(int(label), []).append(inst)

    clusters = []
    for novo_label, membros in enumerate(grupos.values()):
        clusters.append(make_cluster(novo_label, membros))
    return clusters


def make_cluster(label: int, members: List[VisitInstance]) -> Cluster:
    pts = [(m.lat, m.lng) for m in members]
    lat_c = float(np.mean([p[0] for p in pts]))
    lng_c = float(np.mean([p[1] for p in pts]))
    med, p95 = radius_stats((lat_c, lng_c), pts)
    return Cluster(
        label=label,
        members=list(members),
        centroid_lat=lat_c,
        centroid_lng=lng_c,
        radius_median_km=med,
        radius_p95_km=p95,
    )


def verify_partition(instances: Sequence[VisitInstance], clusters: List[Cluster]) -> List[Cluster]:
    """
    Garante que a união dos clusters é exatamente a entrada.
    Ocorrências duplicadas ficam só no primeiro cluster; ausentes vão para o centróide mais próximo.
    """
    esperados = {id(inst) for inst in instances}
    vistos = set()
    reconstruir = False
    membros_limpos: List[List[VisitInstance]] = []

    for c in clusters:
        limpos = []
        for m in c.members:
            if id(m) in vistos or id(m) not in esperados:
                reconstruir = True
                continue
            vistos.add(id(m))
            limpos.append(m)
        membros_limpos.append(limpos)

    faltantes = [inst for inst in instances if id(inst) not in vistos]
    if faltantes:
        reconstruir = True
        centros = [(c.centroid_lat, c.centroid_lng) for c in clusters]
        if not centros:
            membros_limpos = [[]]
            centros = [(faltantes[0].lat, faltantes[0].lng)]
        dist = haversine_matrix_km([(f.lat, f.lng) for f in faltantes], centros)
        for f, idx in zip(faltantes, dist.argmin(axis=1)):
            membros_limpos[int(idx)].append(f)

    if not reconstruir:
        return clusters

    logger.warning(f"⚠️ Partição inconsistente corrigida ({len(faltantes)} ocorrência(s) ausente(s)).")
    membros_limpos = [m for m in membros_limpos if m]
    return [make_cluster(i, m) for i, m in enumerate(membros_limpos)]
