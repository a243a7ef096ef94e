# ============================================================
# 📦 src/visit_scheduling/reporting/plan_exporter.py
# ============================================================

import os
from dataclasses import asdict
from typing import Dict, Optional, Tuple

import pandas as pd
from loguru import logger

from visit_scheduling.config.settings import PlannerConfig, format_minutes
from visit_scheduling.domain.entities import Plan
from visit_scheduling.reporting.exporters.csv_exporter import CSVExporter
from visit_scheduling.reporting.exporters.json_exporter import JSONExporter

COLUNAS_PLANO = [
    "day_index", "date", "weekday", "week", "break_type", "order",
    "store_id", "store_name", "retailer", "district", "priority_class",
    "sequence", "total_occurrences", "is_filler", "lat", "lng",
    "distance_km", "travel_minutes", "arrival", "departure", "walking_hop",
    "navigation_from", "navigation_url",
]

ROTULO_BASE = "Da base"


def maps_link(origem: Tuple[float, float], destino: Tuple[float, float]) -> str:
    """Link de rota do Google Maps entre dois pontos (lat, lng)."""
    return f"https://www.google.com/maps/dir/{origem[0]},{origem[1]}/{destino[0]},{destino[1]}"


def plan_to_dataframe(plan: Plan, home_base: Optional[Tuple[float, float]] = None) -> pd.DataFrame:
    """
    Uma linha por visita agendada, na ordem do dia.
    A primeira parada de cada dia navega a partir da base; as demais, a partir da parada anterior.
    """
    if home_base is None:
        home_base = PlannerConfig().home_base
    linhas = []
    for idx, day in enumerate(plan.working_days):
        anterior = None
        for v in day.scheduled_visits:
            s = v.instance.store
            if anterior is None:
                origem, rotulo = home_base, ROTULO_BASE
            else:
                origem, rotulo = anterior.coord, f"De {anterior.name[:15]}"
            anterior = s
            linhas.append({
                "day_index": idx,
                "date": day.date.isoformat(),
                "weekday": day.date.strftime("%a"),
                "week": day.week,
                "break_type": day.break_type.value,
                "order": v.order,
                "store_id": s.id,
                "store_name": s.name,
                "retailer": s.retailer,
                "district": s.district,
                "priority_class": s.priority_class,
                "sequence": v.instance.sequence,
                "total_occurrences": v.instance.total_occurrences,
                "is_filler": v.instance.is_filler,
                "lat": s.lat,
                "lng": s.lng,
                "distance_km": v.distance_km,
                "travel_minutes": v.travel_minutes,
                "arrival": format_minutes(v.arrival_minute),
                "departure": format_minutes(v.departure_minute),
                "walking_hop": v.walking_hop,
                "navigation_from": rotulo,
                "navigation_url": maps_link(origem, s.coord),
            })
    return pd.DataFrame(linhas, columns=COLUNAS_PLANO)


def days_to_dataframe(plan: Plan) -> pd.DataFrame:
    linhas = []
    for idx, day in enumerate(plan.working_days):
        linhas.append({
            "day_index": idx,
            "date": day.date.isoformat(),
            "break_type": day.break_type.value,
            "stores": len(day.scheduled_visits),
            "distance_km": round(day.total_distance_km, 2),
            "finish": format_minutes(day.finish_minute) if day.finish_minute is not None else "",
        })
    return pd.DataFrame(linhas)


def unassigned_to_dataframe(plan: Plan) -> pd.DataFrame:
    linhas = [
        {
            "store_id": inst.store_id,
            "store_name": inst.store.name,
            "priority_class": inst.priority_class,
            "sequence": inst.sequence,
            "total_occurrences": inst.total_occurrences,
            "is_filler": inst.is_filler,
            "reason": "capacity",
        }
        for inst in plan.unassigned_visit_instances
    ]
    linhas.extend(
        {
            "store_id": s.id,
            "store_name": s.name,
            "priority_class": s.priority_class,
            "sequence": 0,
            "total_occurrences": 0,
            "is_filler": False,
            "reason": "out_of_range",
        }
        for s in plan.out_of_range_stores
    )
    return pd.DataFrame(linhas)


def plan_summary(plan: Plan) -> Dict:
    return {
        "statistics": plan.statistics.to_dict(),
        "days": days_to_dataframe(plan).to_dict(orient="records"),
        "gap_warnings": [asdict(w) for w in plan.gap_warnings],
        "out_of_range_stores": [s.id for s in plan.out_of_range_stores],
    }


def export_plan(
    plan: Plan,
    output_dir: str,
    nome_base: str = "plano_visitas",
    home_base: Optional[Tuple[float, float]] = None,
) -> Dict[str, Optional[str]]:
    """Grava visitas, pendências (CSV) e resumo (JSON) em `output_dir`."""
    os.makedirs(output_dir, exist_ok=True)
    caminhos = {
        "visits": CSVExporter.export(
            plan_to_dataframe(plan, home_base), os.path.join(output_dir, f"{nome_base}.csv")
        ),
        "unassigned": CSVExporter.export(
            unassigned_to_dataframe(plan), os.path.join(output_dir, f"{nome_base}_pendentes.csv")
        ),
        "summary": JSONExporter.export(plan_summary(plan), os.path.join(output_dir, f"{nome_base}_resumo.json")),
    }
    logger.info(f"📁 Exportação concluída em {output_dir}")
    return caminhos
