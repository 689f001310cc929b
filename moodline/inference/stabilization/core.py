"""
Probability Stabilization Strategies
====================================

Estabilización temporal de vectores de probabilidad (7 clases FER).

Problema resuelto:
- El clasificador produce vectores ruidosos frame a frame (parpadeo de la
  clase dominante, timeline con jitter)
- La clase neutral queda sub-representada en la salida cruda del modelo

Solución (por frame, en orden):
1. Boost: multiplica la clase neutral por neutral_boost
2. Renormalize: divide por la suma (si suma > 0)
3. EMA: ema = alpha * adjusted + (1 - alpha) * ema (bootstrap en el primer frame)
4. History: agrega copia del EMA a un ring buffer de capacidad history_window_size
5. Aggregate: media o mediana por clase sobre los últimos frames_for_aggregate

Estrategias:
- TemporalProbabilityStabilizer: pipeline completo (mode='temporal')
- PassThroughStabilizer: baseline sin suavizado (mode='none')

Degenerate inputs (vector vacío, suma cero, NaN) NO lanzan excepción:
se propagan como salida degenerada y se loggean en DEBUG.
"""

from abc import ABC, abstractmethod
from collections import deque
from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Any, Deque, Dict, Iterable, Optional, Sequence, Tuple, Type
import logging

import numpy as np

from ...emotions import NEUTRAL_INDEX

logger = logging.getLogger(__name__)


# ============================================================================
# Configuration
# ============================================================================

class AggregatePolicy(str, Enum):
    """Función de agregación por clase sobre la ventana de history"""
    MEAN = "mean"
    MEDIAN = "median"


@dataclass(frozen=True)
class SmoothingConfig:
    """
    Snapshot inmutable de configuración de smoothing.

    Se reemplaza entero (por referencia), nunca se muta campo a campo:
    una llamada a smooth() ve siempre un único snapshot consistente.
    La validación de rangos vive en la capa de config (pydantic).
    """
    neutral_boost: float = 2.0
    neutral_index: int = NEUTRAL_INDEX
    ema_alpha: float = 0.15
    history_window_size: int = 3
    frames_for_aggregate: int = 3
    aggregate_policy: AggregatePolicy = AggregatePolicy.MEAN

    def with_changes(self, **changes: Any) -> 'SmoothingConfig':
        """Retorna un nuevo snapshot con los campos indicados reemplazados"""
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['aggregate_policy'] = AggregatePolicy(self.aggregate_policy).value
        return data


# ============================================================================
# Numerical helpers
# ============================================================================

def boost_and_renormalize(
    raw: Sequence[float],
    neutral_index: int,
    neutral_boost: float,
) -> np.ndarray:
    """
    Aplica boost a la clase neutral y renormaliza a suma 1.

    - Si neutral_index está fuera de rango, el boost se omite
    - Si la suma es 0 (o no es positiva), el vector se deja como está

    Returns:
        Nuevo array float64 (el input nunca se modifica)
    """
    adjusted = np.array(raw, dtype=np.float64).reshape(-1)

    if 0 <= neutral_index < adjusted.size:
        adjusted[neutral_index] *= neutral_boost

    total = adjusted.sum()
    if total > 0:
        adjusted /= total

    return adjusted


def aggregate_window(
    history: Iterable[np.ndarray],
    frames_for_aggregate: int,
    policy: AggregatePolicy = AggregatePolicy.MEAN,
) -> np.ndarray:
    """
    Agrega por clase los últimos frames del history.

    window = clamp(frames_for_aggregate, 1, len(history))

    MEDIAN usa sorted[window // 2] (división entera): para ventanas pares
    retorna el elemento medio superior, nunca un promedio de los dos medios.
    """
    frames = list(history)
    if not frames:
        return np.zeros(0, dtype=np.float64)

    window = max(1, min(frames_for_aggregate, len(frames)))
    recent = np.stack(frames[-window:])

    if AggregatePolicy(policy) is AggregatePolicy.MEDIAN:
        return np.sort(recent, axis=0)[window // 2]

    return recent.mean(axis=0)


# ============================================================================
# Base Stabilizer (Abstract)
# ============================================================================

class BaseProbabilityStabilizer(ABC):
    """
    Clase base abstracta para estrategias de estabilización de probabilidades.

    Interface contract:
    - smooth(): Recibe vector crudo, retorna vector estabilizado
    - reconfigure(): Reemplaza snapshot de config (sin tocar estado)
    - reset(): Limpia estado interno
    - get_stats(): Estadísticas para observabilidad
    """

    def __init__(self, config: Optional[SmoothingConfig] = None):
        self._config = config or SmoothingConfig()

    @property
    def config(self) -> SmoothingConfig:
        return self._config

    def reconfigure(self, config: SmoothingConfig) -> None:
        """
        Reemplaza la configuración para las próximas llamadas.

        No recalcula EMA ni history: las entradas ya almacenadas se
        calcularon con el alpha/boost anterior y envejecen naturalmente.
        """
        self._config = config

    @abstractmethod
    def smooth(self, raw: Sequence[float]) -> np.ndarray:
        """
        Procesa un vector crudo y retorna el vector estabilizado.

        Args:
            raw: Vector de probabilidades del clasificador (no necesariamente normalizado)

        Returns:
            Vector estabilizado (numpy float64)
        """
        pass

    @abstractmethod
    def reset(self) -> None:
        """Resetea estado interno (el próximo smooth() hace bootstrap)"""
        pass

    @abstractmethod
    def get_stats(self) -> Dict[str, Any]:
        """Retorna estadísticas de estabilización"""
        pass


# ============================================================================
# Temporal Stabilizer (boost + renormalize + EMA + windowed aggregate)
# ============================================================================

class TemporalProbabilityStabilizer(BaseProbabilityStabilizer):
    """
    Estabilizador temporal por cara: EMA + ring buffer + agregado por ventana.

    Ejemplo (boost=2.0, neutral_index=4, alpha=1.0, window=3, MEAN):

    raw = [0.1, 0.1, 0.1, 0.1, 0.2, 0.2, 0.2]
    boost  → neutral = 0.4, suma = 1.2
    renorm → [0.0833, 0.0833, 0.0833, 0.0833, 0.3333, 0.1667, 0.1667]
    alpha=1.0 → EMA == renormalizado (sin suavizado)
    MEAN de 3 frames idénticos → mismo vector

    Complejidad: O(C * window) por llamada (C=7, window≤history_window_size)
    """

    def __init__(self, config: Optional[SmoothingConfig] = None):
        super().__init__(config)
        self._ema: Optional[np.ndarray] = None
        self._history: Deque[np.ndarray] = deque()
        self._stats: Dict[str, int] = {
            'frames_processed': 0,
            'degenerate_frames': 0,
            'length_mismatches': 0,
            'resets': 0,
        }

    @property
    def ema_state(self) -> Optional[np.ndarray]:
        """Copia del acumulador EMA (None si no inicializado)"""
        return None if self._ema is None else self._ema.copy()

    @property
    def history(self) -> Tuple[np.ndarray, ...]:
        """Copia del ring buffer, oldest → newest"""
        return tuple(entry.copy() for entry in self._history)

    @property
    def is_initialized(self) -> bool:
        return self._ema is not None and self._ema.size > 0

    def smooth(self, raw: Sequence[float]) -> np.ndarray:
        # Snapshot único para toda la llamada
        config = self._config

        adjusted = boost_and_renormalize(raw, config.neutral_index, config.neutral_boost)
        self._stats['frames_processed'] += 1
        self._check_degenerate(adjusted)

        # EMA (vector vacío cuenta como no inicializado)
        if not self.is_initialized:
            if self._history and self._history[-1].shape != adjusted.shape:
                logger.debug(
                    "History dropped on bootstrap: class count changed",
                    extra={
                        "component": "stabilization",
                        "event": "history_dropped",
                        "previous_length": int(self._history[-1].size),
                        "new_length": int(adjusted.size),
                    }
                )
                self._history.clear()
            self._ema = adjusted.copy()
        else:
            if adjusted.size != self._ema.size:
                self._stats['length_mismatches'] += 1
                logger.debug(
                    f"Input length {adjusted.size} != established length {self._ema.size}",
                    extra={
                        "component": "stabilization",
                        "event": "length_mismatch",
                        "input_length": int(adjusted.size),
                        "ema_length": int(self._ema.size),
                    }
                )
            n = min(adjusted.size, self._ema.size)
            alpha = config.ema_alpha
            self._ema[:n] = alpha * adjusted[:n] + (1.0 - alpha) * self._ema[:n]

        # Ring buffer con capacidad estricta
        self._history.append(self._ema.copy())
        capacity = max(1, config.history_window_size)
        while len(self._history) > capacity:
            self._history.popleft()

        return aggregate_window(
            self._history,
            config.frames_for_aggregate,
            config.aggregate_policy,
        )

    def _check_degenerate(self, adjusted: np.ndarray) -> None:
        """Registra inputs degenerados sin alterar el control de flujo"""
        reason = None
        if adjusted.size == 0:
            reason = "empty"
        elif np.isnan(adjusted).any():
            reason = "nan"
        elif not adjusted.sum() > 0:
            reason = "zero_sum"

        if reason is not None:
            self._stats['degenerate_frames'] += 1
            logger.debug(
                f"Degenerate probability vector ({reason})",
                extra={
                    "component": "stabilization",
                    "event": "degenerate_input",
                    "reason": reason,
                }
            )

    def reset(self) -> None:
        self._ema = None
        self._history.clear()
        self._stats['resets'] += 1

    def get_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = dict(self._stats)
        stats['mode'] = 'temporal'
        stats['history_length'] = len(self._history)
        stats['ema_initialized'] = self.is_initialized
        return stats


# ============================================================================
# Pass-through Stabilizer (Baseline)
# ============================================================================

class PassThroughStabilizer(BaseProbabilityStabilizer):
    """
    Pass-through sin estabilización (baseline para comparación).
    """

    def __init__(self, config: Optional[SmoothingConfig] = None):
        super().__init__(config)
        self._frames_processed = 0

    def smooth(self, raw: Sequence[float]) -> np.ndarray:
        self._frames_processed += 1
        return np.array(raw, dtype=np.float64).reshape(-1)

    def reset(self) -> None:
        """No-op"""
        pass

    def get_stats(self) -> Dict[str, Any]:
        return {'mode': 'none', 'frames_processed': self._frames_processed}


# ============================================================================
# Factory
# ============================================================================

STABILIZER_MODES: Dict[str, Type[BaseProbabilityStabilizer]] = {
    'temporal': TemporalProbabilityStabilizer,
    'none': PassThroughStabilizer,
}


def validate_smoothing_config(config: SmoothingConfig) -> None:
    """
    Valida rangos de SmoothingConfig.

    Raises:
        ValueError: Si algún parámetro está fuera de rango
    """
    if config.neutral_boost < 1.0:
        raise ValueError(f"neutral_boost must be >= 1.0, got {config.neutral_boost}")
    if not (0.0 < config.ema_alpha <= 1.0):
        raise ValueError(f"ema_alpha must be in (0.0, 1.0], got {config.ema_alpha}")
    if config.history_window_size < 1:
        raise ValueError(f"history_window_size must be >= 1, got {config.history_window_size}")
    if config.frames_for_aggregate < 1:
        raise ValueError(f"frames_for_aggregate must be >= 1, got {config.frames_for_aggregate}")
    AggregatePolicy(config.aggregate_policy)


def resolve_stabilizer_class(mode: str) -> Type[BaseProbabilityStabilizer]:
    """
    Retorna la clase de estabilizador para un modo.

    Raises:
        ValueError: Si el modo no existe
    """
    normalized = mode.lower()
    if normalized not in STABILIZER_MODES:
        raise ValueError(
            f"Invalid stabilization mode: '{mode}'. "
            f"Supported: {', '.join(sorted(STABILIZER_MODES))}"
        )
    return STABILIZER_MODES[normalized]


def create_stabilization_strategy(
    config: SmoothingConfig,
    mode: str = 'temporal',
) -> BaseProbabilityStabilizer:
    """
    Factory: valida configuración y crea estrategia de estabilización.

    Args:
        config: Snapshot de configuración
        mode: 'temporal' o 'none'

    Returns:
        Instancia de BaseProbabilityStabilizer

    Raises:
        ValueError: Si modo o configuración inválidos
    """
    stabilizer_cls = resolve_stabilizer_class(mode)

    if stabilizer_cls is PassThroughStabilizer:
        logger.info("🔲 Stabilization: NONE (baseline, no smoothing)")
        return PassThroughStabilizer(config)

    validate_smoothing_config(config)
    logger.info(
        f"⏱️ Stabilization: TEMPORAL "
        f"(alpha={config.ema_alpha:.2f}, boost={config.neutral_boost:.2f}, "
        f"history={config.history_window_size}, aggregate={config.frames_for_aggregate} "
        f"{AggregatePolicy(config.aggregate_policy).value})"
    )
    return stabilizer_cls(config)
