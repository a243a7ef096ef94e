# ============================================================
# 📦 src/visit_scheduling/infrastructure/store_loader.py
# ============================================================

import math
import os
import re
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import pandas as pd
from loguru import logger

from visit_scheduling.domain.entities import Store
from visit_scheduling.domain.exceptions import InputError

COLUNAS_OBRIGATORIAS = ["id", "name", "lat", "lng"]
COLUNAS_OPCIONAIS = [
    "retailer",
    "district",
    "sales_volume",
    "priority_class",
    "base_frequency",
    "visit_duration_minutes",
    "should_visit",
]

# nomes alternativos encontrados nas planilhas de campo
ALIASES = {
    "store_id": "id",
    "store": "name",
    "store_name": "name",
    "latitude": "lat",
    "longitude": "lng",
    "lon": "lng",
    "priority": "priority_class",
    "frequency": "base_frequency",
    "visit_frequency": "base_frequency",
    "duration": "visit_duration_minutes",
    "sales": "sales_volume",
    "sales_l6m": "sales_volume",
    "area": "district",
}

VALORES_VERDADEIROS = {"1", "true", "yes", "y", "sim", "s", "x"}


# ============================================================
# 📄 Leitura
# ============================================================
def read_store_table(path: str, sep: str = ";") -> pd.DataFrame:
    if not os.path.exists(path):
        raise InputError(f"Arquivo de lojas não encontrado: {path}")

    logger.info(f"📄 Lendo arquivo: {path}")
    ext = os.path.splitext(path)[1].lower()
    try:
        if ext in (".xlsx", ".xlsm", ".xls"):
            df = pd.read_excel(path, dtype=str, engine="openpyxl")
        else:
            df = pd.read_csv(path, sep=sep, dtype=str, encoding="utf-8-sig", engine="python")
    except (OSError, ValueError) as e:
        raise InputError(f"Falha ao ler {path}: {e}") from e

    return df.fillna("")


def normalizar_colunas(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df.columns = (
        df.columns.astype(str)
        .str.strip()
        .str.lower()
        .str.normalize("NFC")
        .str.replace(r"\s+", "_", regex=True)
    )
    return df.rename(columns={c: ALIASES[c] for c in df.columns if c in ALIASES})


def normalizar_numero(valor) -> Optional[float]:
    """Aceita '1.234,5', '1234.5', 'R$ 10' e vazio."""
    if valor is None or (isinstance(valor, float) and math.isnan(valor)):
        return None
    v = str(valor).strip().replace("R$", "").replace("r$", "").strip()
    if v == "":
        return None
    if "," in v and "." in v:
        v = v.replace(".", "").replace(",", ".")
    elif "," in v:
        v = v.replace(",", ".")
    v = re.sub(r"[^0-9.\-eE+]", "", v)
    try:
        num = float(v)
    except ValueError:
        return None
    if math.isnan(num) or math.isinf(num):
        return None
    return num


# ============================================================
# 🏪 DataFrame → Store
# ============================================================
def stores_from_dataframe(
    df: pd.DataFrame,
    frequency_overrides: Optional[Mapping[int, float]] = None,
    default_priority: int = 1,
) -> List[Store]:
    df = normalizar_colunas(df)

    faltantes = [c for c in COLUNAS_OBRIGATORIAS if c not in df.columns]
    if faltantes:
        raise InputError(f"Colunas ausentes: {', '.join(faltantes)}")

    if "should_visit" in df.columns:
        antes = len(df)
        marcadas = df["should_visit"].astype(str).str.strip().str.lower().isin(VALORES_VERDADEIROS)
        df = df[marcadas]
        logger.info(f"🧾 Coluna should_visit: {len(df)}/{antes} linha(s) mantida(s).")

    overrides = {int(k): float(v) for k, v in (frequency_overrides or {}).items()}
    stores: List[Store] = []
    erros = []

    for pos, row in enumerate(df.to_dict(orient="records"), start=1):
        store_id = str(row.get("id", "")).strip()
        lat = normalizar_numero(row.get("lat"))
        lng = normalizar_numero(row.get("lng"))
        if not store_id or lat is None or lng is None:
            erros.append(f"linha {pos}: id/coordenadas inválidos")
            continue

        prioridade = normalizar_numero(row.get("priority_class"))
        prioridade = int(prioridade) if prioridade is not None else default_priority

        freq = overrides.get(prioridade)
        if freq is None:
            freq = normalizar_numero(row.get("base_frequency"))
        if freq is None:
            freq = 1.0

        duracao = normalizar_numero(row.get("visit_duration_minutes"))

        stores.append(
            Store(
                id=store_id,
                name=str(row.get("name", "")).strip(),
                lat=lat,
                lng=lng,
                priority_class=prioridade,
                base_frequency=float(freq),
                visit_duration_minutes=int(duracao) if duracao else None,
                retailer=str(row.get("retailer", "")).strip(),
                district=str(row.get("district", "")).strip(),
                sales_volume=normalizar_numero(row.get("sales_volume")) or 0.0,
            )
        )

    if erros:
        raise InputError("Planilha de lojas inválida: " + "; ".join(erros[:10]))

    logger.success(f"✅ {len(stores)} loja(s) carregada(s).")
    return stores


def split_candidate_pools(
    stores: Iterable[Store], pool_priorities: Iterable[int]
) -> Tuple[List[Store], Dict[int, List[Store]]]:
    """Separa as lojas principais dos pools de preenchimento por classe de prioridade."""
    classes_pool = {int(p) for p in pool_priorities}
    principais: List[Store] = []
    pools: Dict[int, List[Store]] = {}
    for s in stores:
        if s.priority_class in classes_pool:
            pools.setdefault(s.priority_class, []).append(s)
        else:
            principais.append(s)

    if pools:
        resumo = ", ".join(f"P{p}={len(lst)}" for p, lst in sorted(pools.items()))
        logger.info(f"🧺 Pools de preenchimento: {resumo}")
    return principais, pools


def load_stores(
    path: str,
    sep: str = ";",
    pool_priorities: Iterable[int] = (),
    frequency_overrides: Optional[Mapping[int, float]] = None,
) -> Tuple[List[Store], Dict[int, List[Store]]]:
    df = read_store_table(path, sep=sep)
    stores = stores_from_dataframe(df, frequency_overrides=frequency_overrides)
    return split_candidate_pools(stores, pool_priorities)
