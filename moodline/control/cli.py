#!/usr/bin/env python3
"""
CLI para enviar comandos MQTT al pipeline
==========================================

Uso:
    moodline-control pause
    moodline-control resume
    moodline-control reset
    moodline-control set_config --config-json '{"ema_alpha": 0.3, "aggregate_policy": "median"}'

Nota: El pipeline se inicia automáticamente al ejecutar `python -m moodline`
"""
import sys
import json
import argparse
from typing import Any, Dict, Optional

import paho.mqtt.client as mqtt

COMMANDS = [
    "pause",
    "resume",
    "stop",
    "status",
    "reset",
    "set_config",
    "timeline",
    "stabilization_stats",
]


def build_message(command: str, config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Construye el mensaje JSON de un comando"""
    message: Dict[str, Any] = {"command": command}
    if config is not None:
        message["config"] = config
    return message


def send_command(
    broker: str,
    port: int,
    topic: str,
    command: str,
    config: Optional[Dict[str, Any]] = None,
) -> bool:
    """Envía un comando MQTT al pipeline"""
    client = mqtt.Client(
        mqtt.CallbackAPIVersion.VERSION2,
        client_id="moodline_control_cli",
        protocol=mqtt.MQTTv5,
    )

    print(f"🔌 Conectando a {broker}:{port}...")
    try:
        client.connect(broker, port, keepalive=60)
    except Exception as e:
        print(f"❌ Error conectando: {e}")
        return False

    client.loop_start()
    payload = json.dumps(build_message(command, config))

    print(f"📤 Enviando comando: {command}")
    result = client.publish(topic, payload, qos=1)
    result.wait_for_publish(timeout=5.0)

    ok = result.rc == mqtt.MQTT_ERR_SUCCESS
    if ok:
        print("✅ Comando enviado exitosamente")
    else:
        print(f"❌ Error enviando comando: {result.rc}")

    client.loop_stop()
    client.disconnect()
    return ok


def main():
    parser = argparse.ArgumentParser(
        description="CLI para controlar el pipeline de emociones vía MQTT"
    )
    parser.add_argument(
        "command",
        choices=COMMANDS,
        help="Comando a enviar (el pipeline auto-inicia, no hay comando 'start')"
    )
    parser.add_argument(
        "--config-json",
        default=None,
        help="Config de smoothing para set_config (JSON object)"
    )
    parser.add_argument(
        "--broker",
        default="localhost",
        help="MQTT broker host (default: localhost)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=1883,
        help="MQTT broker port (default: 1883)"
    )
    parser.add_argument(
        "--topic",
        default="moodline/control/commands",
        help="MQTT topic (default: moodline/control/commands)"
    )

    args = parser.parse_args()

    config = None
    if args.config_json is not None:
        try:
            config = json.loads(args.config_json)
        except json.JSONDecodeError as e:
            parser.error(f"--config-json no es JSON válido: {e}")
        if not isinstance(config, dict):
            parser.error("--config-json debe ser un objeto JSON")
    elif args.command == "set_config":
        parser.error("set_config requiere --config-json")

    success = send_command(args.broker, args.port, args.topic, args.command, config)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
