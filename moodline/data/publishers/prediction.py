"""
Prediction Publisher
====================

Publisher especializado en formatear mensajes de predicciones de emoción.

Responsabilidad:
- Conoce estructura de predicciones (emoción dominante, vector, bbox)
- Formatea EmotionPrediction + FaceFrame para MQTT
- NO conoce MQTT (eso es del DataPlane)
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from ...emotions import EmotionPrediction
from ...inference.observations import FaceFrame


class PredictionPublisher:
    """
    Publisher de predicciones.

    Formatea predicciones estabilizadas en mensajes MQTT.
    """

    def __init__(self):
        """Inicializa publisher."""
        self._message_count = 0

    def format_message(
        self,
        predictions: List[EmotionPrediction],
        frame: Optional[FaceFrame] = None,
    ) -> Dict[str, Any]:
        """
        Formatea predicciones en mensaje MQTT.

        Args:
            predictions: Predicciones estabilizadas (cara principal primero)
            frame: Frame de origen (opcional)

        Returns:
            Diccionario con mensaje formateado
        """
        frame_info = {}
        if frame is not None:
            frame_info = {
                "frame_id": frame.frame_id,
                "timestamp": frame.timestamp,
                "faces_detected": len(frame.faces),
            }

        primary = predictions[0] if predictions else None

        message = {
            "timestamp": datetime.now().isoformat(),
            "face_count": len(predictions),
            "dominant_emotion": primary.dominant_emotion if primary else None,
            "dominant_emoji": primary.dominant_emoji if primary else None,
            "predictions": [p.to_dict() for p in predictions],
            "frame": frame_info,
        }

        self._message_count += 1
        message["message_id"] = self._message_count
        return message

    @property
    def message_count(self) -> int:
        """Retorna contador de mensajes formateados."""
        return self._message_count
