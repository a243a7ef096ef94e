#visit_scheduling/cli/run_visit_plan.py

# ============================================================
# 📦 src/visit_scheduling/cli/run_visit_plan.py
# ============================================================

import argparse
import sys
from datetime import date

from loguru import logger

from visit_scheduling.application.plan_optimizer import optimize
from visit_scheduling.config.settings import PlannerConfig
from visit_scheduling.domain.exceptions import InputError
from visit_scheduling.domain.visit_expander import month_epoch_for
from visit_scheduling.infrastructure.calendar_builder import build_working_days, next_month
from visit_scheduling.infrastructure.store_loader import load_stores
from visit_scheduling.reporting.plan_exporter import export_plan


def aplicar_default(valor, default):
    """Aplica default apenas se o valor não tiver sido passado."""
    return default if valor is None else valor


def _parse_overrides(valores):
    """'3=0.5' → {3: 0.5}"""
    overrides = {}
    for item in valores or []:
        try:
            prioridade, freq = item.split("=", 1)
            overrides[int(prioridade)] = float(freq)
        except ValueError:
            raise InputError(f"Override de frequência inválido: {item!r} (use CLASSE=FREQ)") from None
    return overrides


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Gera o plano mensal de visitas (dias, rotas e horários) a partir da planilha de lojas."
    )

    # ======================================================
    # ENTRADA / SAÍDA
    # ======================================================
    parser.add_argument("--input", required=True, help="CSV (;) ou XLSX com as lojas")
    parser.add_argument("--sep", type=str, default=";")
    parser.add_argument("--output", type=str, default="output/plans")
    parser.add_argument("--ano", type=int, default=None)
    parser.add_argument("--mes", type=int, default=None)

    # ======================================================
    # FREQUÊNCIA / POOLS
    # ======================================================
    parser.add_argument("--pool_priorities", type=int, nargs="*", default=None,
                        help="Classes de prioridade usadas apenas para preenchimento")
    parser.add_argument("--freq", type=str, nargs="*", default=None,
                        help="Frequência por classe, ex.: 1=4 2=2 3=0.5")
    parser.add_argument("--preview_next_month", action="store_true",
                        help="Simula o mês seguinte avançando apenas a época")

    # ======================================================
    # PARÂMETROS OPERACIONAIS
    # ======================================================
    parser.add_argument("--max_stores", type=int, default=None)
    parser.add_argument("--min_stores", type=int, default=None)
    parser.add_argument("--gap_days", type=int, default=None)
    parser.add_argument("--clustering", choices=["grid", "kmeans"], default=None)
    parser.add_argument("--bin_packing", choices=["best_fit", "cross_border"], default=None)
    parser.add_argument("--verbose", action="store_true")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    logger.remove()
    logger.add(
        sys.stdout,
        colorize=True,
        level="DEBUG" if args.verbose else "INFO",
        format="<green>{time:HH:mm:ss}</green> | <level>{message}</level>",
    )

    hoje = date.today()
    ano = aplicar_default(args.ano, hoje.year)
    mes = aplicar_default(args.mes, hoje.month)

    try:
        if not 1 <= mes <= 12:
            raise InputError(f"Mês inválido: {mes}")

        # ======================================================
        # CONFIGURAÇÃO (ambiente + argumentos)
        # ======================================================
        config = PlannerConfig.from_env()
        overrides = {}
        if args.max_stores is not None:
            overrides["max_stores_per_day"] = args.max_stores
        if args.min_stores is not None:
            overrides["min_stores_per_day"] = args.min_stores
        if args.gap_days is not None:
            overrides["min_visit_gap_days"] = args.gap_days
        if args.clustering:
            overrides["clustering_strategy"] = args.clustering
        if args.bin_packing:
            overrides["bin_packing_strategy"] = args.bin_packing

        epoca = aplicar_default(config.month_epoch, month_epoch_for(date(ano, mes, 1)))
        if args.preview_next_month:
            epoca += 1
            ano, mes = next_month(ano, mes)
            logger.info(f"🔮 Prévia do mês seguinte: {mes:02d}/{ano} (época {epoca})")
        overrides["month_epoch"] = epoca
        config = config.with_overrides(overrides)

        # ======================================================
        # DADOS
        # ======================================================
        stores, pools = load_stores(
            args.input,
            sep=args.sep,
            pool_priorities=args.pool_priorities or (),
            frequency_overrides=_parse_overrides(args.freq),
        )
        dias = build_working_days(ano, mes)

        logger.info(
            f"⚙️ Parâmetros: máx={config.max_stores_per_day}/dia | mín={config.min_stores_per_day}/dia | "
            f"intervalo={config.min_visit_gap_days} dias | época={config.month_epoch}"
        )

        plan = optimize(stores, dias, config, candidate_pools=pools)

    except InputError as e:
        logger.error(f"❌ Entrada inválida: {e}")
        return 2

    # ======================================================
    # RESULTADO
    # ======================================================
    stats = plan.statistics
    print("\n=== RESULTADO FINAL ===")
    for idx, day in enumerate(plan.working_days):
        fim = day.finish_minute
        print(
            f"{day.date} ({day.break_type.value:<6}) → {len(day.scheduled_visits):>2} lojas | "
            f"{day.total_distance_km:6.1f} km | fim={'--:--' if fim is None else f'{fim // 60:02d}:{fim % 60:02d}'}"
        )
    print(
        f"\nCobertura={stats.coverage_percentage:.1f}% | agendadas={stats.total_planned} | "
        f"pendentes={stats.unassigned_count} | fora do raio={stats.out_of_range_count}"
    )

    nome_base = f"plano_{ano}_{mes:02d}"
    export_plan(plan, args.output, nome_base=nome_base, home_base=config.home_base)
    return 0


if __name__ == "__main__":
    sys.exit(main())
