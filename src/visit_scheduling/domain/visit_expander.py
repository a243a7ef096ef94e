# ============================================================
# 📦 src/visit_scheduling/domain/visit_expander.py
# ============================================================

import hashlib
import math
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from loguru import logger

from visit_scheduling.domain.entities import Store, VisitInstance
from visit_scheduling.domain.haversine_utils import haversine_km

HASH_DIGITS = 13
HASH_SCALE = float(16 ** HASH_DIGITS)


def month_epoch_for(day: date) -> int:
    """Época mensal = ano * 12 + (mês - 1). Avançar 1 equivale ao mês seguinte."""
    return day.year * 12 + (day.month - 1)


# ============================================================
# 🎲 Gerador determinístico (um por execução)
# ============================================================
class SeededVisitSampler:
    """
    Sorteio determinístico para frequências fracionárias.
    O valor de cada loja depende apenas de (id, prioridade, época):
    a mesma entrada gera sempre o mesmo sorteio, em qualquer processo.
    """

    def __init__(self, month_epoch: int):
        self.month_epoch = int(month_epoch)

    def _digest(self, *parts) -> str:
        texto = "|".join(str(p) for p in parts)
        return hashlib.sha256(texto.encode("utf-8")).hexdigest()

    def draw(self, store: Store) -> float:
        """Valor uniforme em [0, 1)."""
        digest = self._digest(store.id, store.priority_class, self.month_epoch)
        return int(digest[:HASH_DIGITS], 16) / HASH_SCALE

    def seed_key(self, store: Store, sequence: int) -> int:
        """Chave estável de 64 bits para a ocorrência (usada como semente do k-means++)."""
        digest = self._digest(store.id, store.priority_class, self.month_epoch, sequence)
        return int(digest[:16], 16)


# ============================================================
# 🔁 Expansão de lojas em ocorrências do mês
# ============================================================
class VisitExpander:
    """
    Transforma cada loja em zero ou mais VisitInstances para o mês.
    Mantém a cota por loja (allotment) e a lista completa de ocorrências geradas,
    incluindo as lojas de preenchimento criadas no back-fill.
    """

    def __init__(self, min_frequency_threshold: float, month_epoch: int):
        self.min_frequency_threshold = float(min_frequency_threshold)
        self.month_epoch = int(month_epoch)
        self._sampler = SeededVisitSampler(self.month_epoch)
        self._allotment: Dict[str, int] = {}
        self._generated: List[VisitInstance] = []

    # ------------------------------------------------------------
    # Cota
    # ------------------------------------------------------------
    def effective_frequency(self, store: Store) -> float:
        freq = float(store.base_frequency or 0.0)
        if freq < self.min_frequency_threshold:
            return 0.0
        return freq

    def occurrences_for(self, store: Store) -> int:
        freq = self.effective_frequency(store)
        if freq >= 1:
            return int(math.floor(freq))
        if freq <= 0:
            return 0
        return 1 if self._sampler.draw(store) < freq else 0

    # ------------------------------------------------------------
    # Expansão
    # ------------------------------------------------------------
    def expand(self, stores: Iterable[Store]) -> List[VisitInstance]:
        instancias: List[VisitInstance] = []
        fracionarias, sorteadas = 0, 0

        for store in stores:
            k = self.occurrences_for(store)
            freq = self.effective_frequency(store)
            if 0 < freq < 1:
                fracionarias += 1
                sorteadas += k

            self._allotment[store.id] = k
            for seq in range(1, k + 1):
                instancias.append(
                    VisitInstance(
                        store=store,
                        sequence=seq,
                        total_occurrences=k,
                        seed_key=self._sampler.seed_key(store, seq),
                    )
                )

        self._generated.extend(instancias)
        logger.info(
            f"🔁 Expansão concluída | época={self.month_epoch} | ocorrências={len(instancias)} | "
            f"fracionárias sorteadas={sorteadas}/{fracionarias}"
        )
        return instancias

    def expand_filler(self, store: Store) -> VisitInstance:
        """Gera uma única ocorrência de preenchimento (back-fill) e a registra como gerada."""
        if store.id in self._allotment:
            raise ValueError(f"Loja {store.id} já possui ocorrências geradas neste mês.")
        inst = VisitInstance(
            store=store,
            sequence=1,
            total_occurrences=1,
            is_filler=True,
            seed_key=self._sampler.seed_key(store, 1),
        )
        self._allotment[store.id] = 1
        self._generated.append(inst)
        return inst

    def has_store(self, store_id: str) -> bool:
        return store_id in self._allotment

    @property
    def allotment(self) -> Dict[str, int]:
        return dict(self._allotment)

    @property
    def generated(self) -> List[VisitInstance]:
        return list(self._generated)

    @property
    def required_count(self) -> int:
        return sum(1 for v in self._generated if not v.is_filler)

    # ------------------------------------------------------------
    # Prévia (sem efeito no estado)
    # ------------------------------------------------------------
    def preview_fractional_distribution(
        self,
        stores: Sequence[Store],
        priority_class: Optional[int] = None,
        month_epoch: Optional[int] = None,
    ) -> Dict[str, float]:
        """
        Percentual de lojas fracionárias que recebem visita numa época.
        Não altera cota nem lista de geradas.
        """
        epoca = self.month_epoch if month_epoch is None else int(month_epoch)
        sampler = SeededVisitSampler(epoca)

        total, visitadas, esperado = 0, 0, 0.0
        for store in stores:
            if priority_class is not None and store.priority_class != priority_class:
                continue
            freq = self.effective_frequency(store)
            if not (0 < freq < 1):
                continue
            total += 1
            esperado += freq
            if sampler.draw(store) < freq:
                visitadas += 1

        return {
            "month_epoch": epoca,
            "stores": total,
            "visited": visitadas,
            "expected": round(esperado, 2),
            "share": (visitadas / total) if total else 0.0,
        }

    def preview_month(self, stores: Sequence[Store], offset: int = 1) -> List[VisitInstance]:
        """Simula a expansão de outro mês apenas avançando a época."""
        previa = VisitExpander(self.min_frequency_threshold, self.month_epoch + offset)
        return previa.expand(stores)


# ============================================================
# 🏠 Filtro por distância da base
# ============================================================
def filter_by_home_distance(
    stores: Iterable[Store], home: Tuple[float, float], max_km: float
) -> Tuple[List[Store], List[Store]]:
    dentro, fora = [], []
    for store in stores:
        if haversine_km(home, store.coord) > max_km:
            fora.append(store)
        else:
            dentro.append(store)

    if fora:
        logger.warning(f"🏠 {len(fora)} loja(s) fora do raio de {max_km:.1f} km da base foram excluídas.")
    return dentro, fora
