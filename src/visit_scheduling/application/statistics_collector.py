# ============================================================
# 📦 src/visit_scheduling/application/statistics_collector.py
# ============================================================

from typing import Dict, List, Optional, Sequence

from loguru import logger

from visit_scheduling.domain.entities import Plan, Statistics
from visit_scheduling.domain.gap_enforcer import placements_by_store


class StatisticsCollector:
    """Agregação pura sobre o plano final. Nenhuma decisão é tomada aqui."""

    def __init__(self, min_visit_gap_days: int):
        self.min_visit_gap_days = min_visit_gap_days

    def collect(
        self,
        plan: Plan,
        total_required: int,
        total_generated: int,
        diagnostics: Optional[Dict[str, int]] = None,
    ) -> Statistics:
        stats = Statistics()
        dias = plan.working_days

        # 🔹 Cobertura
        agendadas = [v for _, v in plan.scheduled_visits()]
        stats.total_required = total_required
        stats.total_generated = total_generated
        stats.total_planned = len(agendadas)
        stats.filler_planned = sum(1 for v in agendadas if v.instance.is_filler)
        stats.required_planned = stats.total_planned - stats.filler_planned
        stats.unassigned_count = len(plan.unassigned_visit_instances)
        stats.coverage_percentage = (
            round(100.0 * stats.required_planned / total_required, 2) if total_required else 0.0
        )

        # 🔹 Equilíbrio diário
        contagens = [len(d.scheduled_visits) for d in dias]
        ativos = [c for c in contagens if c > 0]
        stats.working_days = len(dias)
        stats.active_days = len(ativos)
        stats.empty_days = len(dias) - len(ativos)
        if ativos:
            stats.min_stores_per_day = min(ativos)
            stats.max_stores_per_day = max(ativos)
            stats.average_stores_per_day = round(sum(ativos) / len(ativos), 2)
            stats.balance_ratio = round(min(ativos) / max(ativos), 3)

        # 🔹 Distâncias e horários
        stats.total_distance_km = round(sum(d.total_distance_km for d in dias), 2)
        stats.average_distance_km = round(stats.total_distance_km / len(ativos), 2) if ativos else 0.0
        fins = [d.finish_minute for d in dias if d.scheduled_visits]
        stats.average_finish_minute = round(sum(fins) / len(fins), 1) if fins else None

        # 🔹 Intervalo entre repetições
        total_pares, validos, multi = self._gap_pairs(dias)
        stats.multi_visit_stores = multi
        stats.gap_pairs_total = total_pares
        stats.gap_pairs_valid = validos
        stats.gap_compliance_percentage = round(100.0 * validos / total_pares, 2) if total_pares else 100.0
        stats.gap_warning_count = len(plan.gap_warnings)

        stats.out_of_range_count = len(plan.out_of_range_stores)

        for chave, valor in (diagnostics or {}).items():
            if hasattr(stats, chave):
                setattr(stats, chave, valor)

        logger.info(
            f"📊 Cobertura={stats.coverage_percentage:.1f}% | agendadas={stats.total_planned} | "
            f"não alocadas={stats.unassigned_count} | dias ativos={stats.active_days}/{stats.working_days} | "
            f"equilíbrio={stats.balance_ratio:.2f} | intervalo={stats.gap_compliance_percentage:.1f}%"
        )
        return stats

    def _gap_pairs(self, dias: Sequence) -> tuple:
        total, validos, multi = 0, 0, 0
        for lista in placements_by_store(dias).values():
            if len(lista) < 2:
                continue
            multi += 1
            idxs: List[int] = [idx for idx, _ in lista]
            for a, b in zip(idxs, idxs[1:]):
                total += 1
                if b - a >= self.min_visit_gap_days:
                    validos += 1
        return total, validos, multi
