"""
Stabilizer Registry
===================

Mantiene un estabilizador por cara trackeada.

Dos variantes:
- StabilizerRegistry: slots por índice (0..slot_count-1), rebuild completo
  cuando cambia la cantidad de caras. Suficiente cuando solo se trackea la
  cara más grande.
- TrackedStabilizerRegistry: slots por track_id persistente, create-on-first-seen
  y evict tras max_missed_frames frames sin ver la cara (hysteresis de pérdida).

Concurrencia:
- update_config()/reset() pueden llegar desde el Control Plane (thread de paho)
  mientras el frame loop llama route()
- Mutaciones del mapa de slots y del config compartido bajo Lock
- smooth() corre fuera del lock sobre el estabilizador obtenido dentro
"""
from threading import Lock
from typing import Any, Dict, Hashable, List, Optional, Sequence, Type
import logging

import numpy as np

from .core import (
    BaseProbabilityStabilizer,
    SmoothingConfig,
    TemporalProbabilityStabilizer,
)

logger = logging.getLogger(__name__)


class SlotNotAvailableError(IndexError):
    """Slot no existe tras el último ensure()."""
    pass


def _aggregate_stats(stabilizers: Sequence[BaseProbabilityStabilizer]) -> Dict[str, Any]:
    frames = 0
    degenerate = 0
    for stabilizer in stabilizers:
        stats = stabilizer.get_stats()
        frames += stats.get('frames_processed', 0)
        degenerate += stats.get('degenerate_frames', 0)
    return {
        'active_stabilizers': len(stabilizers),
        'frames_processed': frames,
        'degenerate_frames': degenerate,
    }


class StabilizerRegistry:
    """
    Registry de estabilizadores indexado por slot.

    Usage:
        registry = StabilizerRegistry(SmoothingConfig())

        # Cada frame
        registry.ensure(1)  # rebuild solo si cambia la cantidad
        stable = registry.route(0, raw_probabilities)

        # Desde settings / control plane
        registry.update_config(new_config)
    """

    def __init__(
        self,
        config: Optional[SmoothingConfig] = None,
        stabilizer_cls: Type[BaseProbabilityStabilizer] = TemporalProbabilityStabilizer,
    ):
        self._config = config or SmoothingConfig()
        self._stabilizer_cls = stabilizer_cls
        self._stabilizers: Dict[int, BaseProbabilityStabilizer] = {}
        self._rebuilds = 0
        self._lock = Lock()

    @property
    def config(self) -> SmoothingConfig:
        return self._config

    def __len__(self) -> int:
        return len(self._stabilizers)

    def ensure(self, slot_count: int) -> None:
        """
        Garantiza slot_count estabilizadores.

        Si la cantidad difiere, descarta TODOS y crea slot_count nuevos
        (rebuild completo, no diff incremental): la identidad de slot no es
        estable entre cambios de cantidad.
        """
        with self._lock:
            previous = self._rebuild_locked(slot_count)

        if previous is not None:
            self._log_rebuild(previous, slot_count)

    def _rebuild_locked(self, slot_count: int) -> Optional[int]:
        """Rebuild con el lock tomado. Retorna la cantidad previa, o None si no hubo rebuild"""
        if len(self._stabilizers) == slot_count:
            return None

        previous = len(self._stabilizers)
        self._stabilizers = {
            idx: self._stabilizer_cls(self._config)
            for idx in range(slot_count)
        }
        self._rebuilds += 1
        return previous

    def _log_rebuild(self, previous: int, slot_count: int) -> None:
        logger.debug(
            f"Stabilizer slots rebuilt: {previous} → {slot_count}",
            extra={
                "component": "stabilizer_registry",
                "event": "slots_rebuilt",
                "previous_count": previous,
                "slot_count": slot_count,
            }
        )

    def update_config(self, config: SmoothingConfig) -> None:
        """Aplica reconfigure() a cada estabilizador vivo (sin reset)"""
        with self._lock:
            self._config = config
            for stabilizer in self._stabilizers.values():
                stabilizer.reconfigure(config)
            count = len(self._stabilizers)

        logger.info(
            "Smoothing config updated",
            extra={
                "component": "stabilizer_registry",
                "event": "config_updated",
                "active_stabilizers": count,
                "config": config.to_dict(),
            }
        )

    def route(self, slot_index: int, raw: Sequence[float]) -> np.ndarray:
        """
        Delega el vector crudo al smooth() del slot.

        Raises:
            SlotNotAvailableError: Si slot_index no está en [0, slot_count)
        """
        with self._lock:
            stabilizer = self._stabilizers.get(slot_index)
            available = len(self._stabilizers)

        if stabilizer is None:
            raise SlotNotAvailableError(
                f"Slot {slot_index} not available (slot_count={available}). "
                f"Call ensure() when the face count changes."
            )

        return stabilizer.smooth(raw)

    def ensure_and_route(self, slot_count: int, slot_index: int, raw: Sequence[float]) -> np.ndarray:
        """
        ensure(slot_count) + route(slot_index) con una sola toma del lock.

        Un reset() desde el Control Plane no puede colarse entre el rebuild
        y el fetch del slot.

        Raises:
            SlotNotAvailableError: Si slot_index no está en [0, slot_count)
        """
        with self._lock:
            previous = self._rebuild_locked(slot_count)
            stabilizer = self._stabilizers.get(slot_index)

        if previous is not None:
            self._log_rebuild(previous, slot_count)

        if stabilizer is None:
            raise SlotNotAvailableError(
                f"Slot {slot_index} not available (slot_count={slot_count})"
            )

        return stabilizer.smooth(raw)

    def reset(self) -> None:
        """Descarta todos los estabilizadores"""
        with self._lock:
            self._stabilizers = {}
        logger.info(
            "🔄 Stabilizer slots reset",
            extra={"component": "stabilizer_registry", "event": "slots_reset"}
        )

    def get(self, slot_index: int) -> Optional[BaseProbabilityStabilizer]:
        with self._lock:
            return self._stabilizers.get(slot_index)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            stabilizers = list(self._stabilizers.values())
        stats = _aggregate_stats(stabilizers)
        stats['rebuilds'] = self._rebuilds
        stats['config'] = self._config.to_dict()
        return stats


class TrackedStabilizerRegistry:
    """
    Registry de estabilizadores indexado por track_id persistente.

    Lifecycle por track:
    1. Primer route(track_id) → crea estabilizador nuevo (bootstrap)
    2. Cada end_frame() sin route → missed += 1
    3. missed > max_missed_frames → evict (re-adquisición arranca de cero)

    Ejemplo (max_missed_frames=2):

    Frame 1: route(7) → CREATED
    Frame 2: (sin cara 7) → missed 1/2
    Frame 3: (sin cara 7) → missed 2/2
    Frame 4: (sin cara 7) → EVICTED
    """

    def __init__(
        self,
        config: Optional[SmoothingConfig] = None,
        max_missed_frames: int = 15,
        stabilizer_cls: Type[BaseProbabilityStabilizer] = TemporalProbabilityStabilizer,
    ):
        self._config = config or SmoothingConfig()
        self._stabilizer_cls = stabilizer_cls
        self.max_missed_frames = max_missed_frames

        self._stabilizers: Dict[Hashable, BaseProbabilityStabilizer] = {}
        self._missed: Dict[Hashable, int] = {}
        self._seen_this_frame: set = set()
        self._total_created = 0
        self._total_evicted = 0
        self._lock = Lock()

    @property
    def config(self) -> SmoothingConfig:
        return self._config

    @property
    def track_ids(self) -> List[Hashable]:
        with self._lock:
            return list(self._stabilizers.keys())

    def __len__(self) -> int:
        return len(self._stabilizers)

    def route(self, track_id: Hashable, raw: Sequence[float]) -> np.ndarray:
        """Crea el estabilizador si es la primera vez que se ve track_id y suaviza"""
        created = False
        with self._lock:
            stabilizer = self._stabilizers.get(track_id)
            if stabilizer is None:
                stabilizer = self._stabilizer_cls(self._config)
                self._stabilizers[track_id] = stabilizer
                self._total_created += 1
                created = True
            self._missed[track_id] = 0
            self._seen_this_frame.add(track_id)

        if created:
            logger.debug(
                f"🆕 Stabilizer created for track {track_id}",
                extra={
                    "component": "stabilizer_registry",
                    "event": "track_created",
                    "track_id": str(track_id),
                }
            )

        return stabilizer.smooth(raw)

    def end_frame(self) -> List[Hashable]:
        """
        Cierra el frame: incrementa missed de tracks no vistos y evicta expirados.

        Returns:
            Lista de track_ids evictados en este frame
        """
        evicted: List[Hashable] = []
        with self._lock:
            for track_id in list(self._stabilizers.keys()):
                if track_id in self._seen_this_frame:
                    continue
                self._missed[track_id] = self._missed.get(track_id, 0) + 1
                if self._missed[track_id] > self.max_missed_frames:
                    del self._stabilizers[track_id]
                    del self._missed[track_id]
                    evicted.append(track_id)
            self._seen_this_frame = set()
            self._total_evicted += len(evicted)

        if evicted:
            logger.debug(
                f"🗑️ Evicted {len(evicted)} stabilizers (missed > {self.max_missed_frames})",
                extra={
                    "component": "stabilizer_registry",
                    "event": "tracks_evicted",
                    "track_ids": [str(t) for t in evicted],
                }
            )
        return evicted

    def update_config(self, config: SmoothingConfig) -> None:
        """Aplica reconfigure() a cada estabilizador vivo (sin reset)"""
        with self._lock:
            self._config = config
            for stabilizer in self._stabilizers.values():
                stabilizer.reconfigure(config)
            count = len(self._stabilizers)

        logger.info(
            "Smoothing config updated",
            extra={
                "component": "stabilizer_registry",
                "event": "config_updated",
                "active_stabilizers": count,
                "config": config.to_dict(),
            }
        )

    def reset(self) -> None:
        """Descarta todos los tracks"""
        with self._lock:
            self._stabilizers = {}
            self._missed = {}
            self._seen_this_frame = set()
        logger.info(
            "🔄 Tracked stabilizers reset",
            extra={"component": "stabilizer_registry", "event": "tracks_reset"}
        )

    def get(self, track_id: Hashable) -> Optional[BaseProbabilityStabilizer]:
        with self._lock:
            return self._stabilizers.get(track_id)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            stabilizers = list(self._stabilizers.values())
        stats = _aggregate_stats(stabilizers)
        stats['total_created'] = self._total_created
        stats['total_evicted'] = self._total_evicted
        stats['max_missed_frames'] = self.max_missed_frames
        stats['config'] = self._config.to_dict()
        return stats
