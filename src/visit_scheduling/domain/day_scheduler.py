# ============================================================
# 📦 src/visit_scheduling/domain/day_scheduler.py
# ============================================================

import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from loguru import logger

from visit_scheduling.config.settings import PlannerConfig
from visit_scheduling.domain.capacitated_sweep import sweep_split
from visit_scheduling.domain.cross_border_packing import cross_border_groups
from visit_scheduling.domain.entities import Cluster, Store, VisitInstance, WorkingDay
from visit_scheduling.domain.geo_clustering import make_cluster
from visit_scheduling.domain.haversine_utils import centroid, grid_key, haversine_km, km_to_degrees

W_CAPACITY = 0.4
W_GEO = 0.4
W_BALANCE = 0.2
EMPTY_DAY_GEO_SCORE = 0.5


@dataclass
class DayAssignment:
    """Resultado da alocação: ocorrências por dia (ainda sem horários)."""
    day_instances: List[List[VisitInstance]]
    unassigned: List[VisitInstance] = field(default_factory=list)
    capacities: List[int] = field(default_factory=list)
    deferred: int = 0
    days_merged: int = 0
    filler_added: int = 0


class DayScheduler:
    """
    Distribui clusters nos dias úteis respeitando capacidade e viabilidade estimada.
    Etapas: alocação por pontuação (best-fit ou cross-border), ocorrências repetidas
    com intervalo mínimo, consolidação de dias subutilizados e back-fill a partir
    dos pools de prioridade inferior.
    """

    def __init__(self, config: PlannerConfig, sequencer, expander=None):
        self.config = config
        self.sequencer = sequencer
        self.expander = expander

    # ============================================================
    # 📏 Capacidade efetiva por dia
    # ============================================================
    def effective_capacity(self, day: WorkingDay, mean_visit_minutes: float) -> int:
        janela = self.config.work_end - self.config.work_start - self.sequencer.break_duration(day.break_type)
        atendimento = (
            self.config.buffer_minutes
            + mean_visit_minutes
            + self.config.estimated_travel_minutes_per_stop
        )
        estimada = int(math.floor(janela / atendimento)) if atendimento > 0 else self.config.max_stores_per_day
        return max(1, min(self.config.max_stores_per_day, estimada))

    def _mean_visit_minutes(self, instances: Sequence[VisitInstance]) -> float:
        if not instances:
            return float(self.config.default_visit_minutes)
        return sum(self.sequencer.visit_duration(i) for i in instances) / len(instances)

    # ============================================================
    # 🚀 Fluxo principal
    # ============================================================
    def schedule(
        self,
        clusters: Sequence[Cluster],
        working_days: Sequence[WorkingDay],
        candidate_pools: Optional[Mapping[int, Sequence[Store]]] = None,
    ) -> DayAssignment:
        todas = [m for c in clusters for m in c.members]
        self._load(working_days, [[] for _ in working_days], todas)
        resultado = DayAssignment(day_instances=self.plan, capacities=self.caps)

        if not self.days:
            resultado.unassigned = list(todas)
            if todas:
                logger.warning(f"📭 Nenhum dia útil disponível: {len(todas)} ocorrência(s) sem alocação.")
            return resultado

        logger.info(
            f"📅 Alocação diária | dias={len(self.days)} | clusters={len(clusters)} | "
            f"capacidades={sorted(set(self.caps))} | estratégia={self.config.bin_packing_strategy}"
        )

        # 1️⃣ Blocos do tamanho de um dia
        if self.config.bin_packing_strategy == "cross_border":
            grupos = cross_border_groups(todas, self.config, min(self.caps))
            clusters = [make_cluster(i, g) for i, g in enumerate(grupos)]

        ordenados = sorted(clusters, key=lambda c: (c.best_priority, -c.size, c.label))

        # 2️⃣ Alocação por pontuação
        adiadas: List[VisitInstance] = []
        for cluster in ordenados:
            membros, repetidas = self._split_repeats(cluster.members)
            adiadas.extend(repetidas)
            for bloco in self._chunks(membros):
                adiadas.extend(self._place_chunk(bloco, resultado))

        # 3️⃣ Ocorrências repetidas (intervalo mínimo)
        resultado.deferred = len(adiadas)
        for inst in sorted(adiadas, key=lambda i: (i.store_id, i.sequence)):
            if not self._place_single(inst):
                resultado.unassigned.append(inst)

        # 4️⃣ Consolidação de dias subutilizados
        resultado.days_merged = self._consolidate()

        # 5️⃣ Back-fill
        if candidate_pools and self.expander is not None:
            resultado.filler_added = self._backfill(candidate_pools)

        if resultado.unassigned:
            logger.warning(f"📦 Capacidade esgotada: {len(resultado.unassigned)} ocorrência(s) sem dia.")

        ocupados = [len(p) for p in self.plan if p]
        logger.success(
            f"✅ Alocação concluída | dias ativos={len(ocupados)}/{len(self.days)} | "
            f"alocadas={sum(ocupados)} | consolidados={resultado.days_merged} | "
            f"preenchimento={resultado.filler_added}"
        )
        return resultado

    # ============================================================
    # 🧰 Etapas isoladas sobre uma distribuição existente
    # ============================================================
    def consolidate_days(
        self, working_days: Sequence[WorkingDay], day_instances: Sequence[Sequence[VisitInstance]]
    ) -> Tuple[List[List[VisitInstance]], int]:
        """Funde dias subutilizados próximos numa distribuição já pronta."""
        self._load(working_days, day_instances)
        return self.plan, self._consolidate()

    def backfill_days(
        self,
        working_days: Sequence[WorkingDay],
        day_instances: Sequence[Sequence[VisitInstance]],
        candidate_pools: Mapping[int, Sequence[Store]],
    ) -> Tuple[List[List[VisitInstance]], int]:
        """Completa dias abaixo do mínimo com lojas dos pools (exige expander)."""
        if self.expander is None:
            raise ValueError("backfill_days exige um VisitExpander")
        self._load(working_days, day_instances)
        return self.plan, self._backfill(candidate_pools)

    def _load(self, working_days, day_instances, all_instances=None):
        self.days = list(working_days)
        self.plan: List[List[VisitInstance]] = [list(d) for d in day_instances]
        self.store_days: Dict[str, List[int]] = {}
        for idx, membros in enumerate(self.plan):
            for m in membros:
                self.store_days.setdefault(m.store_id, []).append(idx)
        if all_instances is None:
            all_instances = [m for d in self.plan for m in d]
        media_visita = self._mean_visit_minutes(all_instances)
        self.caps = [self.effective_capacity(d, media_visita) for d in self.days]

    # ============================================================
    # 🔧 Auxiliares de alocação
    # ============================================================
    def _split_repeats(self, members: Sequence[VisitInstance]) -> Tuple[List[VisitInstance], List[VisitInstance]]:
        """Um bloco nunca leva duas ocorrências da mesma loja."""
        vistos, unicos, repetidas = set(), [], []
        for m in sorted(members, key=lambda x: (x.sequence, x.store_id)):
            if m.store_id in vistos:
                repetidas.append(m)
            else:
                vistos.add(m.store_id)
                unicos.append(m)
        return unicos, repetidas

    def _chunks(self, members: List[VisitInstance]) -> List[List[VisitInstance]]:
        if not members:
            return []
        cap = min(self.caps)
        if len(members) <= cap:
            return [members]
        return sweep_split(members, cap, self.config.mall_proximity_km)

    def _day_center(self, idx: int) -> Optional[Tuple[float, float]]:
        if not self.plan[idx]:
            return None
        return centroid((m.lat, m.lng) for m in self.plan[idx])

    def _residual(self, idx: int) -> int:
        return self.caps[idx] - len(self.plan[idx])

    def _gap_ok(self, store_id: str, idx: int) -> bool:
        gap = self.config.min_visit_gap_days
        for outro in self.store_days.get(store_id, []):
            if outro == idx or abs(outro - idx) < gap:
                return False
        return True

    def _score(self, idx: int, members: Sequence[VisitInstance]) -> float:
        cap = self.caps[idx]
        capacidade = (cap - len(self.plan[idx]) - len(members)) / cap

        centro_dia = self._day_center(idx)
        if centro_dia is None:
            geo = EMPTY_DAY_GEO_SCORE
        else:
            centro_bloco = centroid((m.lat, m.lng) for m in members)
            geo = max(0.0, 1 - haversine_km(centro_dia, centro_bloco) / self.config.max_cluster_radius_km)

        prioridades = Counter(m.priority_class for m in self.plan[idx])
        prioridades.update(m.priority_class for m in members)
        total = sum(prioridades.values())
        equilibrio = 1 - max(prioridades.values()) / total if total else 0.0

        return W_CAPACITY * capacidade + W_GEO * geo + W_BALANCE * equilibrio

    def _best_day(self, members: Sequence[VisitInstance], require_gap: bool = True) -> Optional[int]:
        melhor, melhor_score = None, None
        for idx in range(len(self.days)):
            if self._residual(idx) < len(members):
                continue
            if require_gap and not all(self._gap_ok(m.store_id, idx) for m in members):
                continue
            if not require_gap and any(m.store_id == x.store_id for m in members for x in self.plan[idx]):
                continue
            score = self._score(idx, members)
            if melhor_score is None or score > melhor_score:
                melhor, melhor_score = idx, score
        return melhor

    def _assign(self, idx: int, inst: VisitInstance):
        self.plan[idx].append(inst)
        self.store_days.setdefault(inst.store_id, []).append(idx)

    def _unassign(self, idx: int, inst: VisitInstance):
        self.plan[idx] = [m for m in self.plan[idx] if m is not inst]
        self.store_days[inst.store_id].remove(idx)

    def _place_chunk(self, bloco: List[VisitInstance], resultado: DayAssignment) -> List[VisitInstance]:
        """
        Coloca o bloco inteiro no melhor dia. Ocorrências que violariam o intervalo
        daquele dia são devolvidas como adiadas. Sem dia para o bloco inteiro, as
        ocorrências são distribuídas uma a uma, as mais próximas do centro primeiro.
        """
        idx = self._best_day(bloco, require_gap=False)
        if idx is not None:
            adiadas = []
            for m in bloco:
                if self._gap_ok(m.store_id, idx):
                    self._assign(idx, m)
                else:
                    adiadas.append(m)
            logger.debug(f"📌 Bloco de {len(bloco)} → dia {idx} ({self.days[idx].date})")
            return adiadas

        centro = centroid((m.lat, m.lng) for m in bloco)
        for m in sorted(bloco, key=lambda x: (haversine_km(centro, (x.lat, x.lng)), x.store_id, x.sequence)):
            if not self._place_single(m):
                resultado.unassigned.append(m)
        return []

    def _place_single(self, inst: VisitInstance) -> bool:
        idx = self._best_day([inst], require_gap=True)
        if idx is None:
            # sem dia compatível com o intervalo: o GapEnforcer tenta de novo depois
            idx = self._best_day([inst], require_gap=False)
        if idx is None:
            return False
        self._assign(idx, inst)
        return True

    # ============================================================
    # 🔗 Consolidação de dias subutilizados
    # ============================================================
    def _consolidate(self) -> int:
        minimo = self.config.min_stores_per_day
        fundidos = 0

        for origem in range(len(self.days)):
            qtd = len(self.plan[origem])
            if qtd == 0 or qtd >= minimo:
                continue
            centro_origem = self._day_center(origem)

            candidatos = []
            for destino in range(len(self.days)):
                if destino == origem or not (0 < len(self.plan[destino]) < minimo):
                    continue
                dist = haversine_km(centro_origem, self._day_center(destino))
                if dist <= self.config.merge_distance_km:
                    candidatos.append((dist, destino))

            for dist, destino in sorted(candidatos):
                if self._try_merge(origem, destino):
                    fundidos += 1
                    logger.debug(f"🔗 Dia {origem} fundido ao dia {destino} ({dist:.1f} km)")
                    break

        if fundidos:
            logger.info(f"🔗 {fundidos} dia(s) subutilizado(s) consolidado(s).")
        return fundidos

    def _try_merge(self, origem: int, destino: int) -> bool:
        mover = list(self.plan[origem])
        combinados = self.plan[destino] + mover
        if len(combinados) > self.caps[destino]:
            return False
        if len({m.store_id for m in combinados}) < len(combinados):
            return False
        for m in mover:
            outros = [d for d in self.store_days.get(m.store_id, []) if d != origem]
            if any(abs(d - destino) < self.config.min_visit_gap_days for d in outros):
                return False
        fim = self.sequencer.projected_finish(combinados, self.days[destino].break_type)
        if fim is not None and fim > self.config.work_end:
            return False

        for m in mover:
            self._unassign(origem, m)
            self._assign(destino, m)
        return True

    # ============================================================
    # 🧺 Back-fill a partir dos pools de prioridade inferior
    # ============================================================
    def _backfill(self, candidate_pools: Mapping[int, Sequence[Store]]) -> int:
        minimo = self.config.min_stores_per_day
        usados = set()
        adicionados = 0

        for prioridade in sorted(candidate_pools):
            pool = [
                s for s in candidate_pools[prioridade]
                if not self.expander.has_store(s.id) and s.id not in usados
            ]
            if not pool:
                continue

            for idx in range(len(self.days)):
                alvo = min(minimo, self.caps[idx])
                if len(self.plan[idx]) >= alvo:
                    continue
                disponiveis = [s for s in pool if s.id not in usados]
                if not disponiveis:
                    break

                ancora = self._day_center(idx) or self._densest_area(disponiveis)
                raio = self.config.backfill_radius_km
                while len(self.plan[idx]) < alvo:
                    aceitos = self._fill_day(idx, ancora, raio, disponiveis, usados, alvo)
                    adicionados += aceitos
                    if aceitos == 0:
                        if raio >= self.config.backfill_max_radius_km:
                            break
                        raio = self.config.backfill_max_radius_km
                    disponiveis = [s for s in disponiveis if s.id not in usados]

        if adicionados:
            logger.info(f"🧺 Back-fill adicionou {adicionados} loja(s) de preenchimento.")
        return adicionados

    def _fill_day(self, idx, ancora, raio, disponiveis, usados, alvo) -> int:
        proximas = sorted(
            (s for s in disponiveis if haversine_km(ancora, s.coord) <= raio),
            key=lambda s: (haversine_km(ancora, s.coord), s.id),
        )
        aceitos = 0
        for store in proximas:
            if len(self.plan[idx]) >= alvo:
                break
            tentativa = VisitInstance(store=store, sequence=1, total_occurrences=1, is_filler=True)
            fim = self.sequencer.projected_finish(self.plan[idx] + [tentativa], self.days[idx].break_type)
            if fim is not None and fim > self.config.work_end:
                continue
            self._assign(idx, self.expander.expand_filler(store))
            usados.add(store.id)
            aceitos += 1
        return aceitos

    def _densest_area(self, stores: Sequence[Store]) -> Tuple[float, float]:
        """Centro da célula de grade com mais candidatos restantes."""
        cell_deg = km_to_degrees(self.config.grid_cell_km)
        celulas: Dict[Tuple[int, int], List[Store]] = {}
        for s in stores:
            celulas.setdefault(grid_key(s.lat, s.lng, cell_deg), []).append(s)
        chave = min(celulas, key=lambda k: (-len(celulas[k]), k))
        return centroid(s.coord for s in celulas[chave])
