# ============================================================
# 📦 src/visit_scheduling/infrastructure/calendar_builder.py
# ============================================================

import calendar
from datetime import date
from typing import Iterable, List, Optional

from loguru import logger

from visit_scheduling.domain.entities import BreakType, WorkingDay
from visit_scheduling.domain.exceptions import InputError

FRIDAY = 4


def build_working_days(year: int, month: int, holidays: Optional[Iterable[date]] = None) -> List[WorkingDay]:
    """
    Dias de segunda a sexta do mês, com número da semana (1 = primeira semana com dia útil).
    Sextas recebem a pausa estendida.
    """
    if not (1 <= int(month) <= 12):
        raise InputError(f"Mês inválido: {month}")

    feriados = set(holidays or [])
    dias: List[WorkingDay] = []
    semana, ultima_iso = 0, None

    _, n_dias = calendar.monthrange(year, month)
    for d in range(1, n_dias + 1):
        dia = date(year, month, d)
        if dia.weekday() >= 5 or dia in feriados:
            continue
        iso = dia.isocalendar()[1]
        if iso != ultima_iso:
            semana += 1
            ultima_iso = iso
        dias.append(
            WorkingDay(
                date=dia,
                break_type=BreakType.FRIDAY if dia.weekday() == FRIDAY else BreakType.LUNCH,
                week=semana,
            )
        )

    logger.info(f"📆 {len(dias)} dia(s) útil(eis) em {month:02d}/{year} ({semana} semana(s))")
    return dias


def next_month(year: int, month: int):
    return (year + 1, 1) if month == 12 else (year, month + 1)
