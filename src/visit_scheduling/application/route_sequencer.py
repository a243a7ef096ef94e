# ============================================================
# 📦 src/visit_scheduling/application/route_sequencer.py
# ============================================================

from dataclasses import replace
from typing import List, Optional, Sequence, Tuple

from loguru import logger

from visit_scheduling.config.settings import PlannerConfig, format_minutes
from visit_scheduling.domain.entities import BreakType, ScheduledVisit, VisitInstance, WorkingDay
from visit_scheduling.domain.haversine_utils import haversine_km, haversine_matrix_km, travel_minutes

IMPROVEMENT_EPS = 1e-9


class RouteSequencer:
    """
    Ordenação intra-dia e simulação da linha do tempo.
    Vizinho mais próximo a partir da base, 2-opt no caminho aberto
    (a base fica fixa no início) e relógio com pausa de almoço/sexta.
    """

    def __init__(self, config: PlannerConfig):
        self.config = config

    # ============================================================
    # ⏱️ Parâmetros do dia
    # ============================================================
    def visit_duration(self, inst: VisitInstance) -> int:
        dur = inst.store.visit_duration_minutes
        return int(dur) if dur else self.config.default_visit_minutes

    def break_window(self, break_type: BreakType) -> Tuple[int, int]:
        if BreakType(break_type) == BreakType.FRIDAY:
            return self.config.friday_break_start, self.config.friday_break_end
        return self.config.lunch_start, self.config.lunch_end

    def break_duration(self, break_type: BreakType) -> int:
        inicio, fim = self.break_window(break_type)
        return fim - inicio

    def hop_minutes(self, distance_km: float) -> int:
        return travel_minutes(
            distance_km,
            self.config.driving_minutes_per_km,
            self.config.walking_minutes_per_km,
            self.config.mall_proximity_km,
        )

    # ============================================================
    # 🧭 Heurísticas de ordenação
    # ============================================================
    def nearest_neighbor(self, instances: Sequence[VisitInstance]) -> List[VisitInstance]:
        """Vizinho mais próximo a partir da base. Empates ficam com a ordem de entrada."""
        restantes = list(instances)
        if len(restantes) <= 1:
            return restantes

        rota = []
        atual = self.config.home_base
        while restantes:
            dists = [haversine_km(atual, (p.lat, p.lng)) for p in restantes]
            idx = dists.index(min(dists))
            prox = restantes.pop(idx)
            rota.append(prox)
            atual = (prox.lat, prox.lng)
        return rota

    def two_opt(self, rota: Sequence[VisitInstance]) -> List[VisitInstance]:
        """
        2-opt no caminho aberto base → paradas (sem retorno).
        Inverte o trecho i..j apenas quando o comprimento diminui estritamente;
        para no ótimo local ou após TWO_OPT_MAX_PASSES passadas.
        """
        rota = list(rota)
        n = len(rota)
        if n < 3:
            return rota

        pontos = [self.config.home_base] + [(p.lat, p.lng) for p in rota]
        dist = haversine_matrix_km(pontos)
        # posições 1..n de `ordem` indexam a matriz; a base (0) nunca se move
        ordem = list(range(n + 1))

        for _ in range(self.config.two_opt_max_passes):
            melhorou = False
            for i in range(1, n):
                for j in range(i + 1, n + 1):
                    a, b = ordem[i - 1], ordem[i]
                    c = ordem[j]
                    delta = dist[a][c] - dist[a][b]
                    if j < n:
                        d = ordem[j + 1]
                        delta += dist[b][d] - dist[c][d]
                    if delta < -IMPROVEMENT_EPS:
                        ordem[i:j + 1] = reversed(ordem[i:j + 1])
                        melhorou = True
            if not melhorou:
                break

        return [rota[k - 1] for k in ordem[1:]]

    def order(self, instances: Sequence[VisitInstance]) -> List[VisitInstance]:
        return self.two_opt(self.nearest_neighbor(instances))

    def route_length(self, rota: Sequence[VisitInstance]) -> float:
        total, atual = 0.0, self.config.home_base
        for p in rota:
            total += haversine_km(atual, (p.lat, p.lng))
            atual = (p.lat, p.lng)
        return total

    # ============================================================
    # 🕘 Simulação da linha do tempo
    # ============================================================
    def timeline(self, ordered: Sequence[VisitInstance], break_type: BreakType) -> List[ScheduledVisit]:
        """Simula o dia completo, sem cortes. Paradas após WORK_END saem marcadas."""
        inicio_pausa, fim_pausa = self.break_window(break_type)
        relogio = self.config.work_start
        pausa_feita = False
        atual = self.config.home_base
        visitas: List[ScheduledVisit] = []

        for ordem, inst in enumerate(ordered, start=1):
            dist = haversine_km(atual, (inst.lat, inst.lng))
            viagem = self.hop_minutes(dist)
            chegada = relogio + viagem
            if not pausa_feita and inicio_pausa <= chegada < fim_pausa:
                chegada = fim_pausa
                pausa_feita = True
            saida = chegada + self.config.buffer_minutes + self.visit_duration(inst)

            visitas.append(
                ScheduledVisit(
                    instance=inst,
                    order=ordem,
                    distance_km=round(dist, 4),
                    travel_minutes=viagem,
                    arrival_minute=chegada,
                    departure_minute=saida,
                    time_window_violation=saida > self.config.work_end,
                    walking_hop=dist <= self.config.mall_proximity_km,
                )
            )
            relogio = saida
            atual = (inst.lat, inst.lng)

        return visitas

    def simulate(
        self, ordered: Sequence[VisitInstance], break_type: BreakType
    ) -> Tuple[List[ScheduledVisit], List[VisitInstance]]:
        """
        Linha do tempo comprometida: a primeira parada que sai depois de WORK_END
        e todas as seguintes são removidas e devolvidas para realocação.
        """
        visitas = self.timeline(ordered, break_type)
        for pos, v in enumerate(visitas):
            if v.time_window_violation:
                return visitas[:pos], [x.instance for x in visitas[pos:]]
        return visitas, []

    def projected_finish(
        self, instances: Sequence[VisitInstance], break_type: BreakType, already_ordered: bool = False
    ) -> Optional[int]:
        if not instances:
            return None
        rota = list(instances) if already_ordered else self.order(instances)
        return self.timeline(rota, break_type)[-1].departure_minute

    def fits(self, instances: Sequence[VisitInstance], break_type: BreakType) -> bool:
        fim = self.projected_finish(instances, break_type)
        return fim is None or fim <= self.config.work_end

    # ============================================================
    # 📅 Operações sobre WorkingDay (sempre devolvem cópias)
    # ============================================================
    def sequence_day(
        self, day: WorkingDay, instances: Sequence[VisitInstance]
    ) -> Tuple[WorkingDay, List[VisitInstance]]:
        visitas, cortadas = self.simulate(self.order(instances), day.break_type)
        if cortadas:
            logger.warning(
                f"⏰ {day.date} | {len(cortadas)} parada(s) cortada(s) por exceder "
                f"{format_minutes(self.config.work_end)}"
            )
        return replace(day, scheduled_visits=visitas), cortadas

    def retime_day(self, day: WorkingDay) -> Tuple[WorkingDay, List[VisitInstance]]:
        """Recalcula horários mantendo a ordem atual das paradas."""
        ordem = [v.instance for v in day.scheduled_visits]
        visitas, cortadas = self.simulate(ordem, day.break_type)
        return replace(day, scheduled_visits=visitas), cortadas

    def try_insert(self, day: WorkingDay, inst: VisitInstance) -> Optional[WorkingDay]:
        """Re-sequencia o dia com a nova parada; devolve None se algo sairia da janela."""
        if len(day.scheduled_visits) + 1 > self.config.max_stores_per_day:
            return None
        instancias = [v.instance for v in day.scheduled_visits] + [inst]
        visitas, cortadas = self.simulate(self.order(instancias), day.break_type)
        if cortadas:
            return None
        return replace(day, scheduled_visits=visitas)
