# ============================================================
# 📦 src/visit_scheduling/application/plan_optimizer.py
# ============================================================

import time
from dataclasses import replace
from typing import List, Mapping, Optional, Sequence, Tuple, Union

from loguru import logger

from visit_scheduling.application.route_sequencer import RouteSequencer
from visit_scheduling.application.statistics_collector import StatisticsCollector
from visit_scheduling.config.settings import PlannerConfig
from visit_scheduling.domain.day_scheduler import DayScheduler
from visit_scheduling.domain.deduplicator import Deduplicator
from visit_scheduling.domain.entities import Plan, Store, VisitInstance, WorkingDay
from visit_scheduling.domain.exceptions import InputError
from visit_scheduling.domain.gap_enforcer import GapEnforcer, gap_violations
from visit_scheduling.domain.geo_clustering import GeographicClusterer
from visit_scheduling.domain.haversine_utils import centroid, haversine_km
from visit_scheduling.domain.mall_detector import detect_mall_groups
from visit_scheduling.domain.validators import check_plan_invariants, validate_stores, validate_working_days
from visit_scheduling.domain.visit_expander import VisitExpander, filter_by_home_distance, month_epoch_for

ConfigLike = Union[PlannerConfig, Mapping, None]


def optimize(
    stores: Sequence[Store],
    working_days: Sequence[WorkingDay],
    config: ConfigLike = None,
    candidate_pools: Optional[Mapping[int, Sequence[Store]]] = None,
) -> Plan:
    """
    Ponto de entrada único do planejamento mensal.
    Levanta InputError para entrada estruturalmente inválida; qualquer outra
    situação degrada para um plano menor, sempre consistente, com diagnósticos.
    """
    return PlanOptimizer(config).optimize(stores, working_days, candidate_pools)


class PlanOptimizer:
    """
    Pipeline: validação → filtro por distância da base → expansão → clusterização →
    alocação diária → sequenciamento (+ realocação de cortes) → intervalo mínimo →
    reconciliação → estatísticas.
    """

    def __init__(self, config: ConfigLike = None):
        if config is None:
            config = PlannerConfig()
        elif isinstance(config, Mapping):
            config = PlannerConfig.from_mapping(config)
        self.config = config.validate()
        self.sequencer = RouteSequencer(self.config)

    # ============================================================
    # 🚀 Execução
    # ============================================================
    def optimize(
        self,
        stores: Sequence[Store],
        working_days: Sequence[WorkingDay],
        candidate_pools: Optional[Mapping[int, Sequence[Store]]] = None,
    ) -> Plan:
        inicio = time.time()
        cfg = self.config
        stores = list(stores or [])
        pools = {int(p): list(lst) for p, lst in (candidate_pools or {}).items()}

        # 1️⃣ Validação estrutural
        validate_stores(stores)
        validate_stores([s for lst in pools.values() for s in lst])
        validate_working_days(working_days)
        if stores and all(float(s.base_frequency) < cfg.min_frequency_threshold for s in stores):
            raise InputError(
                f"Nenhuma loja atinge a frequência mínima ({cfg.min_frequency_threshold})."
            )

        dias = [replace(d, scheduled_visits=[]) for d in sorted(working_days, key=lambda d: d.date)]
        logger.info(f"🚀 Planejamento iniciado | lojas={len(stores)} | dias úteis={len(dias)}")

        # 2️⃣ Filtro por distância da base
        em_alcance, fora = filter_by_home_distance(stores, cfg.home_base, cfg.max_distance_from_home_km)
        pools = {
            p: filter_by_home_distance(lst, cfg.home_base, cfg.max_distance_from_home_km)[0]
            for p, lst in pools.items()
        }

        # 3️⃣ Expansão
        epoca = cfg.month_epoch
        if epoca is None:
            epoca = month_epoch_for(dias[0].date) if dias else 0
        expander = VisitExpander(cfg.min_frequency_threshold, epoca)
        instancias = expander.expand(em_alcance)

        # 4️⃣ Clusterização + alocação diária
        clusters = GeographicClusterer(cfg).cluster(instancias, len(dias))
        alocacao = DayScheduler(cfg, self.sequencer, expander).schedule(clusters, dias, pools)

        # 5️⃣ Sequenciamento e realocação de cortes
        sequenciados, cortadas = [], []
        for idx, (day, insts) in enumerate(zip(dias, alocacao.day_instances)):
            novo, cortes = self.sequencer.sequence_day(day, insts)
            sequenciados.append(novo)
            cortadas.extend((idx, c) for c in cortes)
        sequenciados, realocadas = self._relocate(sequenciados, cortadas)

        # 6️⃣ Intervalo mínimo
        sequenciados, _, _ = GapEnforcer(cfg, self.sequencer).enforce(sequenciados)

        # 7️⃣ Reconciliação final
        deduplicador = Deduplicator(cfg, self.sequencer)
        dedup = deduplicador.deduplicate(sequenciados, expander.allotment, expander.generated)
        cortes_dedup = len(dedup.trimmed)
        if dedup.trimmed:
            dias_dedup, extra = self._relocate(list(dedup.working_days), dedup.trimmed)
            realocadas += extra
            removidas = dedup.duplicates_removed
            dedup = deduplicador.deduplicate(dias_dedup, expander.allotment, expander.generated)
            dedup.duplicates_removed += removidas
        alertas = gap_violations(dedup.working_days, cfg.min_visit_gap_days)

        plan = Plan(
            working_days=dedup.working_days,
            unassigned_visit_instances=dedup.unassigned,
            out_of_range_stores=fora,
            gap_warnings=alertas,
        )

        # 8️⃣ Estatísticas
        grupos_mall = detect_mall_groups(em_alcance, cfg.mall_proximity_km)
        diagnosticos = {
            "time_window_trims": len(cortadas) + cortes_dedup,
            "relocated_visits": realocadas,
            "duplicates_removed": dedup.duplicates_removed,
            "dedup_shortfalls": sum(dedup.shortfalls.values()),
            "days_merged": alocacao.days_merged,
            "mall_groups": len(grupos_mall),
            "stores_in_malls": sum(len(g) for g in grupos_mall),
        }
        plan.statistics = StatisticsCollector(cfg.min_visit_gap_days).collect(
            plan,
            total_required=expander.required_count,
            total_generated=len(expander.generated),
            diagnostics=diagnosticos,
        )

        for v in check_plan_invariants(plan, cfg, len(expander.generated)):
            logger.error(f"❌ Invariante violada: {v}")

        logger.success(
            f"✅ Planejamento concluído em {time.time() - inicio:.2f}s | "
            f"agendadas={plan.scheduled_count} | não alocadas={plan.unassigned_count} | "
            f"fora do raio={len(fora)}"
        )
        return plan

    # ============================================================
    # 🔁 Realocação das paradas cortadas pela janela de trabalho
    # ============================================================
    def _relocate(
        self, dias: List[WorkingDay], cortadas: List[Tuple[int, VisitInstance]]
    ) -> Tuple[List[WorkingDay], int]:
        if not cortadas:
            return dias, 0

        gap = self.config.min_visit_gap_days
        realocadas = 0
        for origem, inst in cortadas:
            ocupados = [
                idx for idx, d in enumerate(dias)
                for v in d.scheduled_visits if v.store_id == inst.store_id
            ]
            candidatos = []
            for idx, d in enumerate(dias):
                if idx == origem or any(abs(idx - o) < max(gap, 1) for o in ocupados):
                    continue
                centro = (
                    centroid((v.instance.lat, v.instance.lng) for v in d.scheduled_visits)
                    if d.scheduled_visits else self.config.home_base
                )
                candidatos.append((haversine_km(centro, (inst.lat, inst.lng)), idx))

            for _, idx in sorted(candidatos):
                novo = self.sequencer.try_insert(dias[idx], inst)
                if novo is not None:
                    dias[idx] = novo
                    realocadas += 1
                    logger.debug(f"🔁 {inst.store_id} realocada do dia {origem} para o dia {idx}")
                    break
            else:
                logger.warning(f"📭 {inst.store_id} (ocorrência {inst.sequence}) sem dia viável após corte.")

        logger.info(f"🔁 Paradas cortadas: {len(cortadas)} | realocadas: {realocadas}")
        return dias, realocadas

