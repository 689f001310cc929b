"""
Inference Post-processing - Observations, Stabilization, Timeline, Pipeline
"""
from .observations import FaceFrame, FaceObservation, select_target_face
from .pipeline import EmotionPipeline
from .timeline import ProbabilityTimeline

__all__ = [
    "FaceFrame",
    "FaceObservation",
    "select_target_face",
    "EmotionPipeline",
    "ProbabilityTimeline",
]
