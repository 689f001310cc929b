"""
MQTT Command Tests
==================

Tests de comandos críticos del Control Plane.

Invariantes testeadas:
1. Registry básico: register, execute, is_available
2. CommandNotAvailableError cuando comando no existe
3. Comandos con payload (set_config) reciben el mensaje
4. Control plane: dispatch de mensajes JSON, errores no matan el thread de red
5. Controller: stop activa shutdown_event, set_config valida antes de aplicar
"""
import json
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from moodline.app.controller import MoodlineController
from moodline.config import MoodlineConfig
from moodline.control import CommandNotAvailableError, CommandRegistry, MQTTControlPlane
from moodline.control.cli import build_message
from moodline.inference import FaceFrame, FaceObservation


def _message(payload, topic="moodline/control/commands"):
    if not isinstance(payload, bytes):
        payload = json.dumps(payload).encode('utf-8')
    return SimpleNamespace(payload=payload, topic=topic)


@pytest.mark.unit
@pytest.mark.mqtt
class TestCommandRegistry:
    """Tests de CommandRegistry (infraestructura)"""

    def test_register_and_execute(self):
        """
        Invariante: Comando registrado debe ejecutarse correctamente.
        """
        registry = CommandRegistry()
        executed = []

        registry.register('test_cmd', lambda: executed.append(True), "Test command")
        registry.execute('test_cmd')

        assert len(executed) == 1, "Handler debe ejecutarse una vez"

    def test_execute_unregistered_raises_error(self):
        """
        Invariante: Ejecutar comando no registrado debe lanzar CommandNotAvailableError.
        """
        registry = CommandRegistry()
        registry.register('pause', lambda: None, "Pause")

        with pytest.raises(CommandNotAvailableError) as exc_info:
            registry.execute('nonexistent_command')

        assert 'nonexistent_command' in str(exc_info.value)
        assert 'Available commands: pause' in str(exc_info.value)

    def test_is_available(self):
        registry = CommandRegistry()

        assert not registry.is_available('test_cmd')
        registry.register('test_cmd', lambda: None, "Test")
        assert registry.is_available('test_cmd')

    def test_available_commands_and_help(self):
        registry = CommandRegistry()
        registry.register('cmd1', lambda: None, "Description 1")
        registry.register('cmd2', lambda: None, "Description 2")

        assert registry.available_commands == {'cmd1', 'cmd2'}
        assert registry.get_help() == {'cmd1': "Description 1", 'cmd2': "Description 2"}

    def test_payload_command_receives_message(self):
        """
        Propiedad: accepts_payload=True → handler recibe el payload completo.
        """
        registry = CommandRegistry()
        received = []
        registry.register('set_config', received.append, "Set config", accepts_payload=True)

        registry.execute('set_config', {"command": "set_config", "config": {"ema_alpha": 0.3}})

        assert received == [{"command": "set_config", "config": {"ema_alpha": 0.3}}]

    def test_payload_command_without_payload_gets_empty_dict(self):
        registry = CommandRegistry()
        received = []
        registry.register('set_config', received.append, "Set config", accepts_payload=True)

        registry.execute('set_config')

        assert received == [{}]

    def test_plain_command_ignores_payload(self):
        registry = CommandRegistry()
        registry.register('pause', lambda: "paused", "Pause")

        assert registry.execute('pause', {"command": "pause"}) == "paused"

    def test_overwrite_command_logs_warning(self, caplog):
        registry = CommandRegistry()
        registry.register('cmd', lambda: None, "First")

        with caplog.at_level('WARNING'):
            registry.register('cmd', lambda: None, "Second")

        assert any("sobrescribiendo" in record.message.lower() for record in caplog.records)

    def test_execute_on_empty_registry_raises_error(self):
        with pytest.raises(CommandNotAvailableError):
            CommandRegistry().execute('any_command')


@pytest.fixture
def control_plane():
    with patch('moodline.control.plane.mqtt.Client') as client_cls:
        plane = MQTTControlPlane(broker_host="localhost")
        plane.client = client_cls.return_value
        yield plane


@pytest.mark.unit
@pytest.mark.mqtt
class TestControlPlaneDispatch:
    """Tests de MQTTControlPlane._on_message() (cliente MQTT mockeado)"""

    def test_message_dispatches_command(self, control_plane):
        handler = MagicMock()
        control_plane.command_registry.register('pause', handler, "Pause")

        control_plane._on_message(None, None, _message({"command": "PAUSE"}))

        handler.assert_called_once_with()

    def test_set_config_receives_payload(self, control_plane):
        handler = MagicMock()
        control_plane.command_registry.register('set_config', handler, "Set", accepts_payload=True)
        payload = {"command": "set_config", "config": {"ema_alpha": 0.5}}

        control_plane._on_message(None, None, _message(payload))

        handler.assert_called_once_with(payload)

    def test_unknown_command_logs_warning(self, control_plane, caplog):
        control_plane.command_registry.register('pause', lambda: None, "Pause")

        with caplog.at_level('WARNING'):
            control_plane._on_message(None, None, _message({"command": "explode"}))

        assert any("explode" in record.message for record in caplog.records)

    def test_invalid_json_does_not_raise(self, control_plane, caplog):
        with caplog.at_level('ERROR'):
            control_plane._on_message(None, None, _message(b"{not json"))

        assert any(record.levelname == 'ERROR' for record in caplog.records)

    def test_non_object_json_does_not_raise(self, control_plane):
        control_plane._on_message(None, None, _message(b"[1, 2, 3]"))

    def test_handler_exception_does_not_propagate(self, control_plane, caplog):
        """
        Invariante: excepción en handler se loguea, no mata el thread de paho.
        """
        control_plane.command_registry.register('boom', MagicMock(side_effect=RuntimeError("boom")), "Boom")

        with caplog.at_level('ERROR'):
            control_plane._on_message(None, None, _message({"command": "boom"}))

        assert any("Error procesando mensaje MQTT" in record.message for record in caplog.records)

    def test_on_connect_subscribes_and_publishes_status(self, control_plane):
        reason_code = SimpleNamespace(is_failure=False)

        control_plane._on_connect(control_plane.client, None, {}, reason_code, None)

        control_plane.client.subscribe.assert_called_once_with("moodline/control/commands", qos=1)
        topic, body = control_plane.client.publish.call_args[0][:2]
        assert topic == "moodline/control/status"
        assert json.loads(body)["status"] == "connected"
        assert control_plane.is_connected

    def test_on_connect_failure_does_not_subscribe(self, control_plane):
        reason_code = SimpleNamespace(is_failure=True)

        control_plane._on_connect(control_plane.client, None, {}, reason_code, None)

        control_plane.client.subscribe.assert_not_called()
        assert not control_plane.is_connected

    def test_publish_status_details_retained(self, control_plane):
        control_plane.publish_status("paused", {"frames_processed": 10})

        args, kwargs = control_plane.client.publish.call_args
        message = json.loads(args[1])
        assert message["status"] == "paused"
        assert message["frames_processed"] == 10
        assert kwargs["retain"] is True


@pytest.fixture
def controller():
    config = MoodlineConfig(mqtt={"enabled": False}, smoothing={"ema_alpha": 1.0})
    controller = MoodlineController(config)
    controller.pipeline = controller.builder.build_pipeline()
    controller.control_plane = MagicMock()
    controller.is_running = True
    return controller


def _published_statuses(controller):
    return [c.args[0] for c in controller.control_plane.publish_status.call_args_list]


@pytest.mark.integration
@pytest.mark.mqtt
class TestControllerCommands:
    """Tests de los handlers del controller (pipeline real, MQTT mockeado)"""

    def test_stop_command_sets_shutdown_event(self, controller):
        """
        Invariante CRÍTICO: Comando STOP debe activar shutdown_event.
        """
        controller._handle_stop()

        assert controller.shutdown_event.is_set()
        assert not controller.is_running
        assert _published_statuses(controller) == ["stopped"]

    def test_pause_resume_toggle_pause_event(self, controller):
        controller._handle_pause()
        assert controller.is_paused

        controller._handle_resume()
        assert not controller.is_paused
        assert _published_statuses(controller) == ["paused", "running"]

    def test_set_config_applies_valid_update(self, controller):
        controller._handle_set_config({"config": {"ema_alpha": 0.4, "aggregate_policy": "median"}})

        assert controller.config.smoothing.ema_alpha == 0.4
        assert controller.pipeline.registry.config.ema_alpha == 0.4
        assert controller.pipeline.registry.config.aggregate_policy.value == "median"
        assert _published_statuses(controller) == ["config_updated"]

    def test_set_config_partial_update_keeps_other_fields(self, controller):
        controller._handle_set_config({"config": {"history_window_size": 5}})

        assert controller.config.smoothing.history_window_size == 5
        assert controller.config.smoothing.ema_alpha == 1.0

    def test_set_config_preserves_stabilizer_state(self, controller):
        frame = FaceFrame(1, 0.0, [FaceObservation(np.array([0, 0, 0, 1.0, 0, 0, 0]), bbox=(0, 0, 1, 1))])
        controller.pipeline.process(frame)
        stabilizer = controller.pipeline.registry.get(0)

        controller._handle_set_config({"config": {"ema_alpha": 0.2}})

        assert controller.pipeline.registry.get(0) is stabilizer
        assert stabilizer.is_initialized

    @pytest.mark.parametrize("updates", [
        {"ema_alpha": 0.0},
        {"neutral_boost": 0.5},
        {"history_window_size": 0},
        {"aggregate_policy": "mode"},
        {"neutral_index": 9},
        {"mode": "none"},
        {"ema_alpah": 0.3},
    ])
    def test_set_config_rejects_invalid_without_changes(self, controller, updates):
        """
        Invariante: config inválida se rechaza y el estado queda intacto.
        """
        before = controller.pipeline.registry.config

        controller._handle_set_config({"config": updates})

        assert controller.pipeline.registry.config is before
        assert controller.config.smoothing.ema_alpha == 1.0
        assert _published_statuses(controller) == ["config_rejected"]

    def test_set_config_without_config_object_rejected(self, controller):
        controller._handle_set_config({"command": "set_config"})

        assert _published_statuses(controller) == ["config_rejected"]

    def test_reset_clears_timeline(self, controller):
        frame = FaceFrame(1, 0.0, [FaceObservation(np.ones(7), bbox=(0, 0, 1, 1))])
        controller.pipeline.process(frame)

        controller._handle_reset()

        assert len(controller.pipeline.timeline) == 0
        assert len(controller.pipeline.registry) == 0

    def test_status_reports_paused(self, controller):
        controller.pause_event.set()

        controller._handle_status()

        assert _published_statuses(controller) == ["paused"]

    def test_timeline_without_data_plane_logs(self, controller):
        controller.data_plane = None

        controller._handle_timeline()

    def test_timeline_published_through_data_plane(self, controller):
        controller.data_plane = MagicMock()
        controller.pipeline.timeline.append([0.5, 0.5])

        controller._handle_timeline()

        controller.data_plane.publish_timeline.assert_called_once_with([[0.5, 0.5]])

    def test_stabilization_stats_registered_only_in_temporal_mode(self):
        for mode, expected in (("temporal", True), ("none", False)):
            controller = MoodlineController(MoodlineConfig(smoothing={"mode": mode}))
            controller.control_plane = SimpleNamespace(command_registry=CommandRegistry())

            controller._setup_control_callbacks()

            assert controller.control_plane.command_registry.is_available('stabilization_stats') is expected
            assert controller.control_plane.command_registry.is_available('set_config')


@pytest.mark.unit
@pytest.mark.mqtt
class TestControlCli:

    def test_build_message_plain(self):
        assert build_message("pause") == {"command": "pause"}

    def test_build_message_with_config(self):
        assert build_message("set_config", {"ema_alpha": 0.3}) == {
            "command": "set_config",
            "config": {"ema_alpha": 0.3},
        }
