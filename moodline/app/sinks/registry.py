"""
Sink Registry
=============

Sinks del frame loop ordenados por priority (menor = primero).

Cada sink es un callable sink(predictions, frame). Se registra una factory
factory(config, **kwargs) -> sink | None; None significa que el sink no
aplica a esta config (ej. mqtt sin data plane).
"""
from dataclasses import dataclass
from typing import Callable, List, Optional
import logging

logger = logging.getLogger(__name__)

Sink = Callable[..., None]
SinkFactoryFn = Callable[..., Optional[Sink]]


@dataclass(frozen=True)
class _SinkEntry:
    name: str
    factory: SinkFactoryFn
    priority: int


class SinkRegistry:
    """
    Usage:
        registry = SinkRegistry()
        registry.register('mqtt', mqtt_factory, priority=1)
        registry.register('log', log_factory, priority=100)

        sinks = registry.create_all(config=config, data_plane=data_plane)
    """

    def __init__(self):
        self._entries: List[_SinkEntry] = []

    def register(self, name: str, factory: SinkFactoryFn, priority: int = 100) -> None:
        self._entries.append(_SinkEntry(name, factory, priority))
        logger.debug(
            f"Sink '{name}' registrado (priority={priority})",
            extra={
                "component": "sink_registry",
                "event": "sink_registered",
                "sink_name": name,
                "priority": priority,
            }
        )

    def _ordered(self) -> List[_SinkEntry]:
        # sorted() es estable: mismo priority respeta orden de registro
        return sorted(self._entries, key=lambda entry: entry.priority)

    @property
    def names(self) -> List[str]:
        """Nombres registrados, en orden de priority"""
        return [entry.name for entry in self._ordered()]

    def create_all(self, config, **kwargs) -> List[Sink]:
        """
        Instancia los sinks en orden de priority, salteando factories que
        retornan None. Un error en una factory se loguea y se propaga.
        """
        sinks: List[Sink] = []
        skipped: List[str] = []

        for entry in self._ordered():
            try:
                sink = entry.factory(config=config, **kwargs)
            except Exception as e:
                logger.error(
                    f"❌ Error creando sink '{entry.name}'",
                    extra={
                        "component": "sink_registry",
                        "event": "sink_creation_failed",
                        "sink_name": entry.name,
                        "error": str(e),
                    }
                )
                raise

            if sink is None:
                skipped.append(entry.name)
                continue
            sinks.append(sink)

        logger.info(
            f"✅ Sinks activos: {len(sinks)}",
            extra={
                "component": "sink_registry",
                "event": "sinks_created",
                "sinks": [getattr(s, '__name__', repr(s)) for s in sinks],
                "skipped": skipped,
            }
        )
        return sinks
