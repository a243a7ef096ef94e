# ============================================================
# 📦 src/visit_scheduling/domain/k_estimator.py
# ============================================================

import math
from typing import Dict, Tuple

from loguru import logger


# ============================================================
# 💡 K do k-means (clusters do tamanho de um dia)
# ============================================================
def estimate_k(n_instances: int, target_per_day: float, n_days: int) -> Tuple[int, Dict]:
    """
    K = min(ceil(n / alvo_por_dia), dias_uteis, n).
    Nunca menor que 1 quando há ocorrências.
    """
    if n_instances <= 0:
        return 0, {"n_instances": 0, "k": 0}

    alvo = max(float(target_per_day), 1.0)
    k_bruto = math.ceil(n_instances / alvo)
    k = max(1, min(k_bruto, max(n_days, 1), n_instances))

    diag = {
        "n_instances": n_instances,
        "target_per_day": alvo,
        "n_days": n_days,
        "k_bruto": k_bruto,
        "k": k,
        "criterio": "min(ceil(n / alvo), dias, n)",
    }

    logger.info(f"🧮 K estimado = {k} (ocorrências={n_instances}, alvo={alvo:.1f}/dia, dias={n_days})")
    return k, diag
