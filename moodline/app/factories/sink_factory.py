"""
Sink Factory
============

Factory para crear y componer sinks del loop de frames.

Diseño: Registry-based desacoplamiento
- Factory usa SinkRegistry internamente
- Priority explícito: MQTT(1) → Log(100)
- Factory function retorna None si el sink no aplica
"""
from typing import Callable, List, Optional
import logging

from ..sinks import SinkRegistry
from ...emotions import EmotionPrediction
from ...inference.observations import FaceFrame

logger = logging.getLogger(__name__)


# ============================================================================
# Sink Factory Functions
# ============================================================================

def _create_mqtt_sink_factory(config, data_plane=None, **kwargs):
    """Factory para MQTT sink (solo si hay data plane)."""
    if data_plane is None:
        return None

    from ...data import create_mqtt_sink
    sink = create_mqtt_sink(data_plane)
    logger.info("✅ MQTT sink added")
    return sink


def create_log_sink(sink_logger: Optional[logging.Logger] = None) -> Callable:
    """
    Sink que loguea la emoción dominante de la cara principal (DEBUG).

    Reemplaza al overlay de UI cuando se corre sin broker.
    """
    sink_logger = sink_logger or logger

    def log_sink(predictions: List[EmotionPrediction], frame: Optional[FaceFrame] = None):
        if not predictions or not sink_logger.isEnabledFor(logging.DEBUG):
            return
        primary = predictions[0]
        sink_logger.debug(
            f"{primary.dominant_emoji} {primary.dominant_emotion} ({primary.confidence:.2f})",
            extra={
                "component": "log_sink",
                "event": "prediction",
                "frame_id": frame.frame_id if frame is not None else None,
                "face_count": len(predictions),
                "class_index": primary.class_index,
            }
        )

    log_sink.__name__ = 'log_sink'
    return log_sink


def _create_log_sink_factory(config, **kwargs):
    """Factory para log sink (siempre presente)."""
    return create_log_sink()


class SinkFactory:
    """
    Factory para crear sinks usando SinkRegistry.

    Returns:
        Lista de callables sink(predictions, frame)
    """

    @staticmethod
    def create_sinks(config, data_plane=None) -> List[Callable]:
        """
        Crea lista de sinks según configuración usando registry.

        Args:
            config: MoodlineConfig
            data_plane: MQTTDataPlane | None (None = MQTT deshabilitado)
        """
        registry = SinkRegistry()

        registry.register(
            name='mqtt',
            factory=_create_mqtt_sink_factory,
            priority=1
        )

        registry.register(
            name='log',
            factory=_create_log_sink_factory,
            priority=100
        )

        return registry.create_all(config=config, data_plane=data_plane)
