#visit_scheduling/reporting/exporters/json_exporter.py

import json
from datetime import date
from enum import Enum
from pathlib import Path

import numpy as np
from loguru import logger


def _default(obj):
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, np.generic):
        return obj.item()
    raise TypeError(f"Tipo não serializável: {type(obj).__name__}")


class JSONExporter:
    @staticmethod
    def export(data, output_path: str):
        if not data:
            logger.warning("⚠️ Nenhum dado para exportar.")
            return None

        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2, default=_default)
        logger.success(f"✅ Resumo JSON salvo em {output_path}")
        return output_path
