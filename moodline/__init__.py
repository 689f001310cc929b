"""
Moodline - Facial Expression Stabilization with MQTT Control
=============================================================

Post-procesamiento temporal de probabilidades de emoción (FER) con control
remoto MQTT. Un clasificador externo entrega un vector de 7 clases por cara
por frame; Moodline lo estabiliza (neutral boost + EMA + ventana MEAN/MEDIAN)
y publica la emoción dominante.

Public API:
- MoodlineConfig: Configuración del sistema (pydantic)
- SmoothingConfig / TemporalProbabilityStabilizer / StabilizerRegistry: core
- EmotionPipeline: Glue por frame
- MoodlineController: Controlador principal
- MQTTControlPlane: Control plane (QoS 1)
- MQTTDataPlane: Data plane (QoS 0)

Usage:
    # Run main service
    python -m moodline --source recordings/session.jsonl

    # Or programmatically
    from moodline import SmoothingConfig, StabilizerRegistry

    registry = StabilizerRegistry(SmoothingConfig())
    registry.ensure(1)
    stable = registry.route(0, raw_probabilities)
"""

__version__ = "1.0.0"

from .config import MoodlineConfig
from .emotions import EMOTION_CLASSES, EmotionPrediction
from .inference import EmotionPipeline, FaceFrame, FaceObservation
from .inference.stabilization import (
    AggregatePolicy,
    SmoothingConfig,
    StabilizerRegistry,
    TemporalProbabilityStabilizer,
    TrackedStabilizerRegistry,
)
from .app import MoodlineController, main
from .control import MQTTControlPlane
from .data import MQTTDataPlane, create_mqtt_sink

__all__ = [
    # Config
    "MoodlineConfig",
    # Core
    "AggregatePolicy",
    "SmoothingConfig",
    "TemporalProbabilityStabilizer",
    "StabilizerRegistry",
    "TrackedStabilizerRegistry",
    # Domain
    "EMOTION_CLASSES",
    "EmotionPrediction",
    "FaceFrame",
    "FaceObservation",
    "EmotionPipeline",
    # App
    "MoodlineController",
    "main",
    # Control Plane
    "MQTTControlPlane",
    # Data Plane
    "MQTTDataPlane",
    "create_mqtt_sink",
]
