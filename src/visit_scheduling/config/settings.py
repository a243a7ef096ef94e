# ============================================================
# 📦 src/visit_scheduling/config/settings.py
# ============================================================

import os
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Mapping, Optional

from loguru import logger

from visit_scheduling.domain.exceptions import InputError


CLUSTERING_STRATEGIES = ("grid", "kmeans")
BIN_PACKING_STRATEGIES = ("best_fit", "cross_border")

# Campos de horário aceitam minutos desde a meia-noite ou "HH:MM"
TIME_FIELDS = (
    "work_start",
    "work_end",
    "lunch_start",
    "lunch_end",
    "friday_break_start",
    "friday_break_end",
)


def parse_minutes(value: Any) -> int:
    """Converte 540, "540" ou "09:00" em minutos desde a meia-noite."""
    if isinstance(value, bool):
        raise InputError(f"Horário inválido: {value!r}")
    if isinstance(value, (int, float)):
        return int(value)

    texto = str(value).strip()
    if ":" in texto:
        horas, minutos = texto.split(":", 1)
        try:
            h, m = int(horas), int(minutos)
        except ValueError:
            raise InputError(f"Horário inválido: {value!r}") from None
        if not (0 <= h <= 23 and 0 <= m <= 59):
            raise InputError(f"Horário fora do intervalo: {value!r}")
        return h * 60 + m

    try:
        return int(float(texto))
    except ValueError:
        raise InputError(f"Horário inválido: {value!r}") from None


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


@dataclass(frozen=True)
class PlannerConfig:
    """
    Parâmetros operacionais do planejamento mensal de visitas.
    Os valores padrão reproduzem a operação de campo (jornada 09:00–18:20,
    almoço 12:00–13:00, pausa estendida de sexta 11:30–13:00).
    """

    # 🔹 Capacidade diária
    max_stores_per_day: int = 15
    min_stores_per_day: int = 6
    max_cluster_radius_km: float = 18.0

    # 🔹 Janela de trabalho e pausas (minutos desde 00:00)
    work_start: int = 9 * 60
    work_end: int = 18 * 60 + 20
    lunch_start: int = 12 * 60
    lunch_end: int = 13 * 60
    friday_break_start: int = 11 * 60 + 30
    friday_break_end: int = 13 * 60

    # 🔹 Tempo de atendimento
    buffer_minutes: int = 5
    default_visit_minutes: int = 30

    # 🔹 Frequência e recorrência
    min_visit_gap_days: int = 5
    min_frequency_threshold: float = 0.1
    month_epoch: Optional[int] = None

    # 🔹 Base domiciliar
    home_base_lat: float = 3.006902971094009
    home_base_lng: float = 101.76718109065438
    max_distance_from_home_km: float = 40.0

    # 🔹 Estratégias
    clustering_strategy: str = "kmeans"
    bin_packing_strategy: str = "best_fit"

    # 🔹 Deslocamento
    driving_minutes_per_km: float = 3.0
    walking_minutes_per_km: float = 12.0
    mall_proximity_km: float = 0.15
    estimated_travel_minutes_per_stop: int = 10

    # 🔹 Limites dos algoritmos iterativos
    kmeans_max_iter: int = 50
    two_opt_max_passes: int = 50

    # 🔹 Agrupamento por área / consolidação / back-fill
    grid_cell_km: float = 5.5
    merge_distance_km: float = 10.0
    backfill_radius_km: float = 8.0
    backfill_max_radius_km: float = 15.0
    cross_border_distance_km: float = 5.0

    # ============================================================
    # 🧮 Derivados
    # ============================================================
    @property
    def home_base(self):
        return (self.home_base_lat, self.home_base_lng)

    @property
    def target_stores_per_day(self) -> float:
        return (self.min_stores_per_day + self.max_stores_per_day) / 2

    # ============================================================
    # ✅ Validação
    # ============================================================
    def validate(self) -> "PlannerConfig":
        erros = []
        if self.max_stores_per_day < 1:
            erros.append("MAX_STORES_PER_DAY deve ser >= 1")
        if self.min_stores_per_day < 0 or self.min_stores_per_day > self.max_stores_per_day:
            erros.append("MIN_STORES_PER_DAY deve estar entre 0 e MAX_STORES_PER_DAY")
        if self.work_end <= self.work_start:
            erros.append("WORK_END deve ser posterior a WORK_START")
        if self.lunch_end < self.lunch_start:
            erros.append("LUNCH_END deve ser posterior a LUNCH_START")
        if self.friday_break_end < self.friday_break_start:
            erros.append("FRIDAY_BREAK_END deve ser posterior a FRIDAY_BREAK_START")
        if self.buffer_minutes < 0 or self.default_visit_minutes <= 0:
            erros.append("BUFFER_MINUTES/DEFAULT_VISIT_MINUTES inválidos")
        if self.min_visit_gap_days < 0:
            erros.append("MIN_VISIT_GAP_DAYS deve ser >= 0")
        if not (0 <= self.min_frequency_threshold <= 1):
            erros.append("MIN_FREQUENCY_THRESHOLD deve estar entre 0 e 1")
        if not (-90 <= self.home_base_lat <= 90 and -180 <= self.home_base_lng <= 180):
            erros.append("HOME_BASE_LAT/LNG fora do intervalo")
        if self.max_distance_from_home_km <= 0:
            erros.append("MAX_DISTANCE_FROM_HOME_KM deve ser > 0")
        if self.clustering_strategy not in CLUSTERING_STRATEGIES:
            erros.append(f"CLUSTERING_STRATEGY deve ser um de {CLUSTERING_STRATEGIES}")
        if self.bin_packing_strategy not in BIN_PACKING_STRATEGIES:
            erros.append(f"BIN_PACKING_STRATEGY deve ser um de {BIN_PACKING_STRATEGIES}")
        if self.kmeans_max_iter < 1 or self.two_opt_max_passes < 1:
            erros.append("Limites de iteração devem ser >= 1")
        if self.grid_cell_km <= 0 or self.backfill_radius_km <= 0:
            erros.append("GRID_CELL_KM/BACKFILL_RADIUS_KM devem ser > 0")
        if self.backfill_max_radius_km < self.backfill_radius_km:
            erros.append("BACKFILL_MAX_RADIUS_KM deve ser >= BACKFILL_RADIUS_KM")

        if erros:
            raise InputError("Configuração inválida: " + "; ".join(erros))
        return self

    # ============================================================
    # 🏗️ Construção a partir de dicionário / ambiente
    # ============================================================
    @classmethod
    def from_mapping(cls, values: Optional[Mapping[str, Any]] = None, **overrides) -> "PlannerConfig":
        """
        Aceita chaves no formato da planilha de parâmetros (MAX_STORES_PER_DAY, WORK_START...)
        ou no formato dos campos (max_stores_per_day...).
        """
        base = cls()
        return base.with_overrides({**dict(values or {}), **overrides})

    @classmethod
    def from_env(cls, prefix: str = "") -> "PlannerConfig":
        valores: Dict[str, Any] = {}
        for f in fields(cls):
            raw = os.getenv(f"{prefix}{f.name.upper()}")
            if raw is not None and raw.strip() != "":
                valores[f.name] = raw
        if valores:
            logger.debug(f"⚙️ Configuração lida do ambiente: {sorted(valores)}")
        return cls.from_mapping(valores)

    def with_overrides(self, values: Mapping[str, Any]) -> "PlannerConfig":
        conhecidos = {f.name: f for f in fields(self)}
        convertidos: Dict[str, Any] = {}

        for chave, valor in values.items():
            nome = str(chave).strip().lower()
            if nome not in conhecidos:
                raise InputError(f"Opção de configuração desconhecida: {chave}")
            convertidos[nome] = self._coerce(nome, valor)

        return replace(self, **convertidos).validate()

    def _coerce(self, nome: str, valor: Any) -> Any:
        if nome in TIME_FIELDS:
            return parse_minutes(valor)
        if nome == "month_epoch":
            return None if valor is None or valor == "" else int(valor)
        if nome in ("clustering_strategy", "bin_packing_strategy"):
            return str(valor).strip().lower()

        atual = getattr(self, nome)
        try:
            if isinstance(atual, int) and not isinstance(atual, bool):
                return int(float(valor))
            if isinstance(atual, float):
                return float(valor)
        except (TypeError, ValueError):
            raise InputError(f"Valor inválido para {nome.upper()}: {valor!r}") from None
        return valor

    def as_dict(self) -> Dict[str, Any]:
        return {f.name.upper(): getattr(self, f.name) for f in fields(self)}
