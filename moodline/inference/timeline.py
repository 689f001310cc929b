"""
Probability Timeline
====================

History acotado de vectores estabilizados para visualización (timeline).

Buffer separado del history interno del estabilizador: distinta capacidad
(default 75 = 5 segundos @ 15fps) y distinto propósito (solo dibujo).
"""
from collections import deque
from threading import Lock
from typing import Deque, List, Sequence

import numpy as np


class ProbabilityTimeline:
    """Ring buffer de vectores estabilizados, oldest → newest"""

    def __init__(self, history_limit: int = 75):
        self.history_limit = history_limit
        self._entries: Deque[np.ndarray] = deque(maxlen=history_limit)
        self._lock = Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, probabilities: Sequence[float]) -> None:
        with self._lock:
            self._entries.append(np.array(probabilities, dtype=np.float64))

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def snapshot(self) -> List[List[float]]:
        """Copia JSON-friendly del timeline"""
        with self._lock:
            return [[float(v) for v in entry] for entry in self._entries]

    def series(self, class_index: int) -> List[float]:
        """Serie temporal de una clase (0.0 si el vector no tiene ese índice)"""
        with self._lock:
            return [
                float(entry[class_index]) if class_index < entry.size else 0.0
                for entry in self._entries
            ]
