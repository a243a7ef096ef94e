# ============================================================
# 📦 src/visit_scheduling/domain/capacitated_sweep.py
# ============================================================

import math
from typing import List, Optional, Sequence

import numpy as np
from loguru import logger

from visit_scheduling.domain.entities import VisitInstance
from visit_scheduling.domain.haversine_utils import haversine_km, polar_angle
from visit_scheduling.domain.mall_detector import detect_mall_groups


# ============================================================
# 🚀 Varredura polar com capacidade
# ============================================================
def sweep_split(
    members: Sequence[VisitInstance],
    capacity: int,
    mall_proximity_km: Optional[float] = None,
) -> List[List[VisitInstance]]:
    """
    Divide um cluster grande em ceil(n / capacidade) pedaços contínuos.
    Ordena por ângulo polar e distância ao centro (varredura radial) e fatia
    em blocos de tamanho equilibrado. Lojas co-localizadas andam juntas
    sempre que o grupo couber num bloco.
    """
    members = list(members)
    n = len(members)
    if n == 0:
        return []
    capacity = max(1, int(capacity))
    if n <= capacity:
        return [members]

    # 1️⃣ Centro de referência
    lat_ref = float(np.mean([m.lat for m in members]))
    lng_ref = float(np.mean([m.lng for m in members]))

    # 2️⃣ Unidades de varredura (loja isolada ou grupo co-localizado)
    unidades: List[List[int]] = []
    agrupados = set()
    if mall_proximity_km:
        for grupo in detect_mall_groups(members, mall_proximity_km):
            for i in range(0, len(grupo), capacity):
                unidades.append(grupo[i:i + capacity])
            agrupados.update(grupo)
    unidades.extend([i] for i in range(n) if i not in agrupados)

    # 3️⃣ Ordena por ângulo polar e distância radial
    angulos = [polar_angle(members[u[0]].lat, members[u[0]].lng, lat_ref, lng_ref) for u in unidades]
    distancias = [haversine_km((lat_ref, lng_ref), members[u[0]].coord) for u in unidades]
    ordem = np.lexsort((np.array(distancias), np.array(angulos)))

    # 4️⃣ Blocos equilibrados
    n_blocos = math.ceil(n / capacity)
    base, resto = divmod(n, n_blocos)
    alvos = [base + (1 if b < resto else 0) for b in range(n_blocos)]

    blocos: List[List[VisitInstance]] = []
    atual: List[VisitInstance] = []
    for pos in ordem:
        unidade = [members[i] for i in unidades[int(pos)]]
        alvo = alvos[min(len(blocos), n_blocos - 1)]
        if atual and len(atual) + len(unidade) > alvo:
            blocos.append(atual)
            atual = []
        atual.extend(unidade)
    if atual:
        blocos.append(atual)

    logger.debug(f"🧭 Varredura: {n} ocorrências → {len(blocos)} bloco(s) {[len(b) for b in blocos]}")
    return blocos
