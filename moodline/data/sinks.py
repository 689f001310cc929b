"""
MQTT Sink Factory
=================

Factory function para crear sinks del loop de frames.
"""
from typing import Callable, List, Optional

from .plane import MQTTDataPlane
from ..emotions import EmotionPrediction
from ..inference.observations import FaceFrame


def create_mqtt_sink(data_plane: MQTTDataPlane) -> Callable:
    """
    Crea un sink function que publica predicciones vía MQTT.

    Args:
        data_plane: Instancia de MQTTDataPlane

    Returns:
        Función sink(predictions, frame)

    Note:
        La función retornada tiene __name__ = 'mqtt_sink' para identificación
        explícita en el SinkRegistry.
    """
    def mqtt_sink(
        predictions: List[EmotionPrediction],
        frame: Optional[FaceFrame] = None,
    ):
        """Sink que publica predicciones vía MQTT"""
        data_plane.publish_predictions(predictions, frame)

    mqtt_sink.__name__ = 'mqtt_sink'

    return mqtt_sink
