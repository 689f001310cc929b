"""
MQTT Control Plane
==================

Comandos JSON (QoS 1) sobre moodline/control/commands:

    {"command": "set_config", "config": {"ema_alpha": 0.3}}

El comando se resuelve contra un CommandRegistry que arma el controller.
El estado se publica retained en moodline/control/status.
"""
import json
import logging
from datetime import datetime
from threading import Event
from typing import Any, Dict, Optional

import paho.mqtt.client as mqtt

from .registry import CommandRegistry, CommandNotAvailableError
from ..logging import (
    trace_context,
    generate_trace_id,
    log_mqtt_command,
    log_error_with_context
)

logger = logging.getLogger(__name__)


class MQTTControlPlane:
    """
    Control Plane para el pipeline vía MQTT.

    Comandos típicos:
    - pause / resume / stop: ciclo de vida del loop de frames
    - status: publica el estado actual
    - reset: limpia estado de estabilizadores y timeline
    - set_config: aplica nueva configuración de smoothing (payload "config")
    - timeline: publica snapshot del timeline
    - stabilization_stats: loguea estadísticas (solo si mode='temporal')

    Usage:
        control_plane = MQTTControlPlane(...)
        control_plane.command_registry.register('pause', handler.pause, "Pausa el procesamiento")
        control_plane.connect()
    """

    def __init__(
        self,
        broker_host: str,
        broker_port: int = 1883,
        command_topic: str = "moodline/control/commands",
        status_topic: str = "moodline/control/status",
        client_id: str = "moodline_control",
        username: Optional[str] = None,
        password: Optional[str] = None,
        qos: int = 1,
    ):
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.command_topic = command_topic
        self.status_topic = status_topic
        self.client_id = client_id
        self.qos = qos

        self.command_registry = CommandRegistry()

        self.client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
            protocol=mqtt.MQTTv5,
        )
        if username and password:
            self.client.username_pw_set(username, password)

        self.client.on_connect = self._on_connect
        self.client.on_message = self._on_message
        self.client.on_disconnect = self._on_disconnect

        self._connected = Event()

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        """Callback cuando se conecta al broker"""
        if reason_code.is_failure:
            logger.error(
                "Failed to connect to MQTT broker",
                extra={
                    "component": "control_plane",
                    "event": "connection_error",
                    "broker_host": self.broker_host,
                    "broker_port": self.broker_port,
                    "reason_code": str(reason_code)
                }
            )
            return

        logger.info(
            "Control Plane connected to broker",
            extra={
                "component": "control_plane",
                "event": "broker_connected",
                "broker_host": self.broker_host,
                "broker_port": self.broker_port
            }
        )
        self.client.subscribe(self.command_topic, qos=self.qos)
        logger.info(
            "Subscribed to command topic",
            extra={
                "component": "control_plane",
                "event": "topic_subscribed",
                "topic": self.command_topic,
                "qos": self.qos
            }
        )
        self._connected.set()
        self.publish_status("connected")

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties=None):
        """Callback cuando se desconecta del broker"""
        logger.warning(
            "Control Plane disconnected from broker",
            extra={
                "component": "control_plane",
                "event": "broker_disconnected",
                "reason_code": str(reason_code)
            }
        )
        self._connected.clear()

    @staticmethod
    def _decode_command(raw: bytes) -> Dict[str, Any]:
        """
        bytes → dict del comando.

        Raises:
            ValueError: payload no UTF-8, JSON inválido o no es un objeto
        """
        command_data = json.loads(raw.decode('utf-8'))
        if not isinstance(command_data, dict):
            raise ValueError("Command message must be a JSON object")
        return command_data

    def _dispatch(self, command: str, command_data: Dict[str, Any], topic: str) -> None:
        """Ejecuta el comando dentro de su propio trace_context"""
        trace_id = generate_trace_id(prefix=f"cmd-{command}")

        with trace_context(trace_id):
            log_mqtt_command(logger, command=command, topic=topic, payload=command_data, trace_id=trace_id)
            try:
                self.command_registry.execute(command, command_data)
            except CommandNotAvailableError as e:
                logger.warning(
                    f"⚠️ {e}",
                    extra={
                        "component": "control_plane",
                        "event": "command_not_available",
                        "command": command,
                        "available_commands": sorted(self.command_registry.available_commands),
                    }
                )
                return

            logger.debug(
                f"✅ Comando '{command}' ejecutado",
                extra={"component": "control_plane", "event": "command_executed", "command": command}
            )

    def _on_message(self, client, userdata, msg):
        """
        Callback de paho (thread de red): decode + dispatch.

        Ningún error sale de acá: un comando roto no puede tirar el loop de red.
        """
        try:
            command_data = self._decode_command(msg.payload)
        except ValueError:
            # JSONDecodeError y UnicodeDecodeError son ValueError
            logger.error(
                f"❌ Error decodificando comando: {msg.payload!r}",
                extra={
                    "component": "control_plane",
                    "event": "command_decode_error",
                    "mqtt_topic": msg.topic,
                    "raw_payload": str(msg.payload)
                }
            )
            return

        command = str(command_data.get('command', '')).lower()
        try:
            self._dispatch(command, command_data, msg.topic)
        except Exception as e:
            log_error_with_context(
                logger,
                message="Error procesando mensaje MQTT",
                exception=e,
                component="control_plane",
                event="message_processing_error",
                mqtt_topic=msg.topic,
                command=command,
            )

    def publish_status(self, status: str, details: Optional[Dict[str, Any]] = None):
        """
        Publica {status, timestamp, client_id, **details} retained.

        details se mezcla en el nivel raíz (ej. frames_processed, config aplicada).
        """
        message = {
            "status": status,
            "timestamp": datetime.now().isoformat(),
            "client_id": self.client_id
        }
        if details:
            message.update(details)

        self.client.publish(
            self.status_topic,
            json.dumps(message, default=str),
            qos=self.qos,
            retain=True
        )
        logger.info(
            "Status published",
            extra={
                "component": "control_plane",
                "event": "status_published",
                "status": status,
                "topic": self.status_topic
            }
        )

    def connect(self, timeout: float = 5.0) -> bool:
        """Conecta al broker MQTT"""
        try:
            logger.info(
                "Connecting to MQTT broker",
                extra={
                    "component": "control_plane",
                    "event": "connection_attempt",
                    "broker_host": self.broker_host,
                    "broker_port": self.broker_port
                }
            )
            self.client.connect(self.broker_host, self.broker_port, keepalive=60)
            self.client.loop_start()
            return self._connected.wait(timeout=timeout)
        except Exception as e:
            log_error_with_context(
                logger,
                message="Failed to connect to MQTT",
                exception=e,
                component="control_plane",
                event="connection_exception",
                broker_host=self.broker_host,
                broker_port=self.broker_port,
            )
            return False

    def disconnect(self):
        """Desconecta del broker MQTT"""
        logger.info("🔌 Desconectando Control Plane...")
        self.publish_status("disconnected")
        self.client.loop_stop()
        self.client.disconnect()
