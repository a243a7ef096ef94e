#visit_scheduling/domain/validators.py

import math
import numbers
from typing import List, Sequence

from .entities import Plan, Store, WorkingDay
from .exceptions import InputError
from .haversine_utils import valid_coordinate


# ==========================================================
# 🚪 Validação de entrada (erros fatais)
# ==========================================================
def _is_number(valor) -> bool:
    return isinstance(valor, numbers.Real) and not isinstance(valor, bool)


def validate_stores(stores: Sequence[Store]) -> None:
    erros = []
    vistos = set()
    for s in stores:
        if not s.id:
            erros.append("loja sem id")
            continue
        if s.id in vistos:
            erros.append(f"id duplicado: {s.id}")
        vistos.add(s.id)
        if not valid_coordinate(s.lat, s.lng):
            erros.append(f"coordenadas inválidas em {s.id}: ({s.lat}, {s.lng})")
        if not isinstance(s.priority_class, int) or s.priority_class < 1:
            erros.append(f"classe de prioridade inválida em {s.id}: {s.priority_class!r}")
        freq = s.base_frequency
        if not _is_number(freq) or math.isnan(freq) or freq < 0:
            erros.append(f"frequência inválida em {s.id}: {freq!r}")
        duracao = s.visit_duration_minutes
        if duracao is not None and (not _is_number(duracao) or math.isnan(duracao) or duracao <= 0):
            erros.append(f"duração de visita inválida em {s.id}: {duracao!r}")

    if erros:
        resumo = "; ".join(erros[:10])
        extra = f" (+{len(erros) - 10})" if len(erros) > 10 else ""
        raise InputError(f"Lojas inválidas: {resumo}{extra}")


def validate_working_days(days: Sequence[WorkingDay]) -> None:
    datas = [d.date for d in days]
    if len(set(datas)) != len(datas):
        raise InputError("Dias úteis com datas duplicadas.")


# ==========================================================
# ✅ Invariantes do plano (funções puras sobre o snapshot)
# ==========================================================
def check_plan_invariants(plan: Plan, config, generated_count: int) -> List[str]:
    violacoes = []

    chaves = set()
    for idx, day in enumerate(plan.working_days):
        for v in day.scheduled_visits:
            if v.instance.key in chaves:
                violacoes.append(f"ocorrência duplicada {v.instance.key} (dia {idx})")
            chaves.add(v.instance.key)

        if len(day.scheduled_visits) > config.max_stores_per_day:
            violacoes.append(f"dia {idx} excede capacidade ({len(day.scheduled_visits)})")
        if day.scheduled_visits and day.scheduled_visits[-1].departure_minute > config.work_end:
            violacoes.append(f"dia {idx} termina após WORK_END")

    avisados = {(w.store_id, w.previous_day_index, w.day_index) for w in plan.gap_warnings}
    por_loja = {}
    for idx, v in plan.scheduled_visits():
        por_loja.setdefault(v.store_id, []).append(idx)
    for store_id, idxs in por_loja.items():
        idxs.sort()
        for a, b in zip(idxs, idxs[1:]):
            if b - a < config.min_visit_gap_days and (store_id, a, b) not in avisados:
                violacoes.append(f"intervalo não reportado para {store_id}: dias {a}→{b}")

    if plan.scheduled_count + plan.unassigned_count != generated_count:
        violacoes.append(
            f"contabilidade: agendadas={plan.scheduled_count} + não alocadas={plan.unassigned_count} "
            f"!= geradas={generated_count}"
        )
    return violacoes
