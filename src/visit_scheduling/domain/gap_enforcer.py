# ============================================================
# 📦 src/visit_scheduling/domain/gap_enforcer.py
# ============================================================

from collections import defaultdict
from dataclasses import replace
from typing import Dict, List, Sequence, Tuple

from loguru import logger

from visit_scheduling.domain.entities import GapWarning, ScheduledVisit, WorkingDay


def placements_by_store(days: Sequence[WorkingDay]) -> Dict[str, List[Tuple[int, ScheduledVisit]]]:
    """Posições (índice do dia, visita) de cada loja, em ordem de dia e de parada."""
    grupos: Dict[str, List[Tuple[int, ScheduledVisit]]] = defaultdict(list)
    for idx, day in enumerate(days):
        for v in day.scheduled_visits:
            grupos[v.store_id].append((idx, v))
    for lista in grupos.values():
        lista.sort(key=lambda t: (t[0], t[1].order))
    return grupos


def gap_violations(days: Sequence[WorkingDay], min_gap: int) -> List[GapWarning]:
    """Pares consecutivos de ocorrências da mesma loja com intervalo abaixo do mínimo."""
    alertas = []
    grupos = placements_by_store(days)
    for store_id in sorted(grupos):
        lista = grupos[store_id]
        for (ia, _), (ib, _) in zip(lista, lista[1:]):
            if ib - ia < min_gap:
                alertas.append(GapWarning(store_id, ia, ib, ib - ia, min_gap))
    return alertas


class GapEnforcer:
    """
    Realoca ocorrências repetidas que ficaram próximas demais da anterior.
    A ocorrência posterior sai do dia por identidade e entra no primeiro dia
    a partir de (anterior + intervalo) com capacidade e janela viáveis.
    Cada ocorrência tem uma única tentativa; o que não couber vira GapWarning.
    """

    def __init__(self, config, sequencer):
        self.config = config
        self.sequencer = sequencer

    def enforce(self, days: Sequence[WorkingDay]) -> Tuple[List[WorkingDay], List[GapWarning], int]:
        dias = list(days)
        gap = self.config.min_visit_gap_days
        tentadas = set()
        movidas = 0

        if gap <= 0:
            return dias, [], 0

        while True:
            alvo = self._next_violation(dias, gap, tentadas)
            if alvo is None:
                break
            anterior_idx, atual_idx, visita = alvo
            tentadas.add(id(visita.instance))

            destino = self._find_target(dias, visita, anterior_idx + gap)
            if destino is None:
                continue

            novo_dia_destino, t = destino
            origem = dias[atual_idx]
            restantes = [v for v in origem.scheduled_visits if v is not visita]
            origem_sem, cortadas = self.sequencer.retime_day(replace(origem, scheduled_visits=restantes))
            if cortadas:
                # re-temporização cortou paradas: mantém o dia original
                continue

            dias[atual_idx] = origem_sem
            dias[t] = novo_dia_destino
            movidas += 1
            logger.debug(f"↪️ {visita.store_id}: dia {atual_idx} → dia {t} (intervalo mínimo {gap})")

        alertas = gap_violations(dias, gap)
        if movidas:
            logger.info(f"↪️ {movidas} ocorrência(s) realocada(s) para respeitar o intervalo mínimo.")
        for a in alertas:
            logger.warning(
                f"⚠️ Intervalo não atendido | loja={a.store_id} | dias {a.previous_day_index}→{a.day_index} "
                f"({a.gap_days} < {a.required_gap_days})"
            )
        return dias, alertas, movidas

    def _next_violation(self, dias, gap, tentadas):
        grupos = placements_by_store(dias)
        for store_id in sorted(grupos):
            lista = grupos[store_id]
            for (ia, _), (ib, vb) in zip(lista, lista[1:]):
                if ib - ia < gap and id(vb.instance) not in tentadas:
                    return ia, ib, vb
        return None

    def _find_target(self, dias, visita: ScheduledVisit, inicio: int):
        ocupados = [
            idx for idx, d in enumerate(dias)
            for v in d.scheduled_visits
            if v.store_id == visita.store_id and v is not visita
        ]
        for t in range(max(inicio, 0), len(dias)):
            if any(abs(t - o) < self.config.min_visit_gap_days for o in ocupados):
                continue
            novo = self.sequencer.try_insert(dias[t], visita.instance)
            if novo is not None:
                return novo, t
        return None
