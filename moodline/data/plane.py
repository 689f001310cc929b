"""
MQTT Data Plane
===============

Data Plane para publicar predicciones de emoción vía MQTT (QoS 0).
Fire-and-forget para máxima performance.

Diseño:
- MQTTDataPlane = infraestructura MQTT (canal/orquestador)
- Publishers = lógica de negocio (formateo de mensajes)
"""
import json
import logging
from threading import Event, Lock
from typing import Any, Dict, List, Optional, Sequence

import paho.mqtt.client as mqtt

from .publishers import PredictionPublisher, TimelinePublisher
from ..emotions import EMOTION_CLASSES, EmotionPrediction
from ..inference.observations import FaceFrame
from ..logging import log_mqtt_publish, log_error_with_context

logger = logging.getLogger(__name__)


class MQTTDataPlane:
    """
    Data Plane para publicar predicciones vía MQTT.

    Responsabilidad: Infraestructura MQTT (canal/orquestador)
    - Conecta/desconecta de broker MQTT
    - Publica mensajes formateados por publishers
    - NO conoce estructura de mensajes (delega a publishers)
    """

    def __init__(
        self,
        broker_host: str,
        broker_port: int = 1883,
        data_topic: str = "moodline/data/predictions",
        timeline_topic: str = "moodline/data/timeline",
        client_id: str = "moodline_data",
        username: Optional[str] = None,
        password: Optional[str] = None,
        qos: int = 0,
        labels: Sequence[str] = EMOTION_CLASSES,
    ):
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.data_topic = data_topic
        self.timeline_topic = timeline_topic
        self.client_id = client_id
        self.qos = qos

        self.prediction_publisher = PredictionPublisher()
        self.timeline_publisher = TimelinePublisher(labels)

        self.client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
            protocol=mqtt.MQTTv5,
        )
        if username and password:
            self.client.username_pw_set(username, password)

        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect

        self._connected = Event()
        self._lock = Lock()
        self._dropped = 0

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        """Callback cuando se conecta al broker"""
        if reason_code.is_failure:
            log_error_with_context(
                logger,
                message=f"❌ Error conectando Data Plane al broker MQTT: {reason_code}",
                component="data_plane",
                event="connection_failed",
                broker_host=self.broker_host,
                broker_port=self.broker_port,
                reason_code=str(reason_code),
            )
            return

        logger.info(
            "✅ Data Plane conectado",
            extra={
                "component": "data_plane",
                "event": "connected",
                "broker_host": self.broker_host,
                "broker_port": self.broker_port,
            }
        )
        self._connected.set()

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties=None):
        """Callback cuando se desconecta del broker"""
        logger.warning(
            "⚠️ Data Plane desconectado",
            extra={
                "component": "data_plane",
                "event": "disconnected",
                "reason_code": str(reason_code),
            }
        )
        self._connected.clear()

    def connect(self, timeout: float = 5.0) -> bool:
        """Conecta al broker MQTT"""
        try:
            logger.info(
                "🔌 Conectando Data Plane",
                extra={
                    "component": "data_plane",
                    "event": "connecting",
                    "broker_host": self.broker_host,
                    "broker_port": self.broker_port,
                    "timeout": timeout,
                }
            )
            self.client.connect(self.broker_host, self.broker_port, keepalive=60)
            self.client.loop_start()
            return self._connected.wait(timeout=timeout)
        except Exception as e:
            log_error_with_context(
                logger,
                message="❌ Error conectando Data Plane",
                exception=e,
                component="data_plane",
                event="connection_error",
                broker_host=self.broker_host,
                broker_port=self.broker_port,
            )
            return False

    def disconnect(self):
        """Desconecta del broker MQTT"""
        logger.info(
            "🔌 Desconectando Data Plane",
            extra={
                "component": "data_plane",
                "event": "disconnecting",
            }
        )
        self.client.loop_stop()
        self.client.disconnect()

    def _publish(self, topic: str, message: Dict[str, Any], num_predictions: Optional[int] = None) -> bool:
        if not self._connected.is_set():
            with self._lock:
                self._dropped += 1
            logger.debug(
                "⚠️ Data Plane no conectado, mensaje descartado",
                extra={
                    "component": "data_plane",
                    "event": "publish_skipped",
                    "reason": "not_connected",
                    "topic": topic,
                }
            )
            return False

        payload = json.dumps(message, default=str)
        result = self.client.publish(topic, payload, qos=self.qos)
        success = result.rc == mqtt.MQTT_ERR_SUCCESS
        log_mqtt_publish(
            logger,
            topic=topic,
            qos=self.qos,
            payload_size=len(payload),
            success=success,
            error_code=None if success else result.rc,
            num_predictions=num_predictions,
        )
        return success

    def publish_predictions(
        self,
        predictions: List[EmotionPrediction],
        frame: Optional[FaceFrame] = None,
    ) -> bool:
        """
        Publica predicciones estabilizadas.

        Delega formateo a PredictionPublisher, solo publica.

        Returns:
            True si el mensaje se entregó al cliente MQTT
        """
        try:
            message = self.prediction_publisher.format_message(predictions, frame)
            return self._publish(self.data_topic, message, num_predictions=len(predictions))
        except Exception as e:
            log_error_with_context(
                logger,
                message="❌ Error en publish_predictions",
                exception=e,
                component="data_plane",
                event="publish_exception",
                topic=self.data_topic,
            )
            return False

    def publish_timeline(self, snapshot: List[List[float]]) -> bool:
        """Publica snapshot del timeline (comando 'timeline')"""
        try:
            message = self.timeline_publisher.format_message(snapshot)
            return self._publish(self.timeline_topic, message)
        except Exception as e:
            log_error_with_context(
                logger,
                message="❌ Error en publish_timeline",
                exception=e,
                component="data_plane",
                event="publish_timeline_exception",
                topic=self.timeline_topic,
            )
            return False

    def get_stats(self) -> Dict[str, Any]:
        """Retorna estadísticas del data plane"""
        with self._lock:
            return {
                "messages_published": self.prediction_publisher.message_count,
                "messages_dropped": self._dropped,
                "connected": self._connected.is_set(),
                "topic": self.data_topic,
            }
