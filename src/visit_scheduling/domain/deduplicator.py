# ============================================================
# 📦 src/visit_scheduling/domain/deduplicator.py
# ============================================================

from dataclasses import dataclass, field, replace
from typing import Dict, List, Mapping, Sequence, Tuple

from loguru import logger

from visit_scheduling.domain.entities import ScheduledVisit, VisitInstance, WorkingDay
from visit_scheduling.domain.gap_enforcer import placements_by_store


@dataclass
class DedupResult:
    working_days: List[WorkingDay]
    unassigned: List[VisitInstance]
    duplicates_removed: int = 0
    shortfalls: Dict[str, int] = field(default_factory=dict)
    trimmed: List[Tuple[int, VisitInstance]] = field(default_factory=list)


def keep_order_key(item: Tuple[int, ScheduledVisit]):
    """Dia mais cedo, prioridade mais alta (classe menor), sem violação de janela, posição no dia."""
    idx, v = item
    return (idx, v.instance.priority_class, v.time_window_violation, v.order)


class Deduplicator:
    """
    Reconciliação final do plano: cada loja fica com no máximo a sua cota de
    ocorrências, numeradas 1..k por ordem de dia. A lista de não alocadas é
    reconstruída como (geradas − agendadas). Rodar duas vezes não muda nada.
    """

    def __init__(self, config, sequencer):
        self.config = config
        self.sequencer = sequencer

    def deduplicate(
        self,
        days: Sequence[WorkingDay],
        allotment: Mapping[str, int],
        generated: Sequence[VisitInstance],
    ) -> DedupResult:
        dias = list(days)
        por_chave = {inst.key: inst for inst in generated}
        remover = set()
        faltas: Dict[str, int] = {}

        # 1️⃣ Seleção das ocorrências mantidas
        grupos = placements_by_store(dias)
        mantidas: Dict[str, List[Tuple[int, ScheduledVisit]]] = {}
        for store_id in sorted(grupos):
            lista = grupos[store_id]
            cota = int(allotment.get(store_id, len(lista)))
            if len(lista) <= cota:
                mantidas[store_id] = lista
                continue

            escolhidas, falta = self._select(lista, cota)
            if falta:
                faltas[store_id] = falta
            ids = {id(v) for _, v in escolhidas}
            remover.update(id(v) for _, v in lista if id(v) not in ids)
            mantidas[store_id] = sorted(escolhidas, key=lambda t: (t[0], t[1].order))

        # 2️⃣ Renumeração 1..k por ordem de dia
        trocas: Dict[int, VisitInstance] = {}
        for store_id, lista in mantidas.items():
            for seq, (_, v) in enumerate(lista, start=1):
                alvo = por_chave.get((store_id, seq))
                if alvo is None:
                    alvo = replace(v.instance, sequence=seq)
                if alvo is not v.instance:
                    trocas[id(v)] = alvo

        # 3️⃣ Novos snapshots dos dias afetados
        cortadas: List[Tuple[int, VisitInstance]] = []
        for idx, day in enumerate(dias):
            tocado = any(id(v) in remover for v in day.scheduled_visits)
            renumerado = any(id(v) in trocas for v in day.scheduled_visits)
            if not tocado and not renumerado:
                continue
            visitas = [
                replace(v, instance=trocas[id(v)]) if id(v) in trocas else v
                for v in day.scheduled_visits
                if id(v) not in remover
            ]
            novo = replace(day, scheduled_visits=visitas)
            if tocado:
                novo, cortes = self.sequencer.retime_day(novo)
                cortadas.extend((idx, c) for c in cortes)
            dias[idx] = novo

        # 4️⃣ Não alocadas = geradas − agendadas
        agendadas = {v.instance.key for d in dias for v in d.scheduled_visits}
        nao_alocadas = [inst for inst in generated if inst.key not in agendadas]

        if remover:
            logger.warning(f"🧹 {len(remover)} ocorrência(s) duplicada(s) removida(s) na reconciliação.")
        for store_id, falta in faltas.items():
            logger.warning(f"⚠️ Loja {store_id}: {falta} ocorrência(s) mantida(s) sem intervalo mínimo.")
        if cortadas:
            logger.warning(
                f"⏰ {len(cortadas)} parada(s) fora da janela após a reconciliação: "
                f"{[(c.store_id, c.sequence) for _, c in cortadas]}"
            )

        return DedupResult(
            working_days=dias,
            unassigned=nao_alocadas,
            duplicates_removed=len(remover),
            shortfalls=faltas,
            trimmed=cortadas,
        )

    def _select(
        self, lista: List[Tuple[int, ScheduledVisit]], cota: int
    ) -> Tuple[List[Tuple[int, ScheduledVisit]], int]:
        candidatas = sorted(lista, key=keep_order_key)
        if cota <= 0:
            return [], 0
        if cota == 1:
            return candidatas[:1], 0

        # guloso: a mais cedo e, em seguida, as que respeitam o intervalo da última mantida
        gap = self.config.min_visit_gap_days
        escolhidas = [candidatas[0]]
        for item in candidatas[1:]:
            if len(escolhidas) == cota:
                break
            if item[0] - escolhidas[-1][0] >= gap and not self._same_instance(item, escolhidas):
                escolhidas.append(item)

        falta = 0
        if len(escolhidas) < cota:
            restantes = [c for c in candidatas if not any(c[1] is e[1] for e in escolhidas)]
            completar = restantes[: cota - len(escolhidas)]
            falta = len(completar)
            escolhidas.extend(completar)

        return escolhidas, falta

    @staticmethod
    def _same_instance(item, escolhidas) -> bool:
        return any(item[1].instance is e[1].instance for e in escolhidas)

