#visit_scheduling/reporting/exporters/csv_exporter.py

from pathlib import Path

import pandas as pd
from loguru import logger


class CSVExporter:
    """
    Grava tabelas do plano em CSV que o Excel abre direto (';' e utf-8-sig).
    Colunas decimais saem com duas casas; inteiros, textos e links ficam intactos.
    """

    @staticmethod
    def export(df: pd.DataFrame, output_path: str):
        if df.empty:
            logger.warning(f"⚠️ Tabela vazia — {Path(output_path).name} não gerado.")
            return None

        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        tabela = df.round({c: 2 for c in df.select_dtypes(include=["float"]).columns})
        tabela.to_csv(output_path, index=False, sep=";", encoding="utf-8-sig", float_format="%.2f")

        logger.success(f"✅ Plano CSV salvo em {output_path} ({len(tabela)} linhas)")
        return output_path
