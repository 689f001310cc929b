"""
Data Plane Tests
================

Invariantes testeadas:
1. PredictionPublisher: estructura del mensaje + message_id incremental
2. TimelinePublisher: series por label
3. MQTTDataPlane: descarta si no conectado, publica JSON con QoS configurado
4. Sinks: mqtt_sink identificable por __name__, SinkRegistry respeta priority
"""
import json
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import numpy as np
import paho.mqtt.client as mqtt
import pytest

from moodline.app.factories import SinkFactory, create_log_sink
from moodline.app.sinks import SinkRegistry
from moodline.config import MoodlineConfig
from moodline.data import MQTTDataPlane, create_mqtt_sink
from moodline.data.publishers import PredictionPublisher, TimelinePublisher
from moodline.emotions import derive_prediction
from moodline.inference import FaceFrame, FaceObservation


def _prediction(track_id=None):
    return derive_prediction(
        np.array([0.05, 0.05, 0.05, 0.6, 0.15, 0.05, 0.05]),
        bbox=(0.1, 0.2, 0.3, 0.4),
        track_id=track_id,
    )


@pytest.fixture
def data_plane():
    with patch('moodline.data.plane.mqtt.Client') as client_cls:
        plane = MQTTDataPlane(broker_host="localhost")
        plane.client = client_cls.return_value
        plane.client.publish.return_value = SimpleNamespace(rc=mqtt.MQTT_ERR_SUCCESS)
        yield plane


@pytest.mark.unit
@pytest.mark.mqtt
class TestPublishers:

    def test_prediction_message_structure(self):
        publisher = PredictionPublisher()
        frame = FaceFrame(frame_id=12, timestamp=0.8, faces=[FaceObservation(np.ones(7))])

        message = publisher.format_message([_prediction(track_id=4)], frame)

        assert message["face_count"] == 1
        assert message["dominant_emotion"] == "happy"
        assert message["frame"] == {"frame_id": 12, "timestamp": 0.8, "faces_detected": 1}
        assert message["predictions"][0]["track_id"] == 4
        assert message["predictions"][0]["bbox"]["width"] == 0.3
        json.dumps(message)

    def test_message_id_increments(self):
        publisher = PredictionPublisher()

        first = publisher.format_message([])
        second = publisher.format_message([])

        assert (first["message_id"], second["message_id"]) == (1, 2)
        assert publisher.message_count == 2
        assert first["dominant_emotion"] is None

    def test_timeline_series_per_label(self):
        publisher = TimelinePublisher(["a", "b"])

        message = publisher.format_message([[0.1, 0.9], [0.3, 0.7]])

        assert message["length"] == 2
        assert message["series"] == {"a": [0.1, 0.3], "b": [0.9, 0.7]}


@pytest.mark.unit
@pytest.mark.mqtt
class TestMQTTDataPlane:

    def test_publish_skipped_when_not_connected(self, data_plane):
        assert data_plane.publish_predictions([_prediction()]) is False

        data_plane.client.publish.assert_not_called()
        assert data_plane.get_stats()["messages_dropped"] == 1

    def test_publish_predictions(self, data_plane):
        data_plane._connected.set()

        assert data_plane.publish_predictions([_prediction()]) is True

        topic, payload = data_plane.client.publish.call_args[0]
        assert topic == "moodline/data/predictions"
        assert json.loads(payload)["predictions"][0]["emotion"] == "happy"
        assert data_plane.client.publish.call_args[1]["qos"] == 0

    def test_publish_failure_returns_false(self, data_plane):
        data_plane._connected.set()
        data_plane.client.publish.return_value = SimpleNamespace(rc=mqtt.MQTT_ERR_NO_CONN)

        assert data_plane.publish_predictions([_prediction()]) is False

    def test_publish_timeline_topic(self, data_plane):
        data_plane._connected.set()

        data_plane.publish_timeline([[0.1] * 7])

        topic = data_plane.client.publish.call_args[0][0]
        assert topic == "moodline/data/timeline"

    def test_stats(self, data_plane):
        data_plane._connected.set()
        data_plane.publish_predictions([])

        stats = data_plane.get_stats()

        assert stats["messages_published"] == 1
        assert stats["connected"] is True


@pytest.mark.unit
class TestSinks:

    def test_mqtt_sink_named_and_delegates(self):
        plane = MagicMock()
        sink = create_mqtt_sink(plane)
        predictions = [_prediction()]

        sink(predictions, None)

        assert sink.__name__ == 'mqtt_sink'
        plane.publish_predictions.assert_called_once_with(predictions, None)

    def test_sink_registry_orders_by_priority_and_skips_none(self):
        registry = SinkRegistry()
        registry.register('late', lambda config, **kw: 'late_sink', priority=100)
        registry.register('skipped', lambda config, **kw: None, priority=50)
        registry.register('early', lambda config, **kw: 'early_sink', priority=1)

        sinks = registry.create_all(config=None)

        assert sinks == ['early_sink', 'late_sink']
        assert registry.names == ['early', 'skipped', 'late']

    def test_sink_factory_without_data_plane_only_logs(self):
        sinks = SinkFactory.create_sinks(MoodlineConfig(), data_plane=None)

        assert [s.__name__ for s in sinks] == ['log_sink']

    def test_sink_factory_with_data_plane(self):
        sinks = SinkFactory.create_sinks(MoodlineConfig(), data_plane=MagicMock())

        assert [s.__name__ for s in sinks] == ['mqtt_sink', 'log_sink']

    def test_log_sink_logs_primary_face(self, caplog):
        sink = create_log_sink()

        with caplog.at_level('DEBUG', logger='moodline.app.factories.sink_factory'):
            sink([_prediction()], FaceFrame(1, 0.0))

        assert any("happy" in record.message for record in caplog.records)
