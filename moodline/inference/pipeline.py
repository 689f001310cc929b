"""
Emotion Pipeline
================

Glue por frame entre las caras observadas y el registry de estabilizadores.

Flujo:
    FaceFrame → selección de cara(s) → registry.route() → derive_prediction()
              → timeline.append() (cara principal) → List[EmotionPrediction]

Modos de tracking:
- 'largest': solo la cara más grande, un único slot (ensure_and_route(1, 0))
- 'multi': todas las caras, un estabilizador por track_id persistente
"""
from typing import Any, Dict, Hashable, List, Optional, Sequence, Tuple, Union
import logging

from ..emotions import EMOTION_CLASSES, EMOTION_EMOJIS, EmotionPrediction, derive_prediction
from .observations import FaceFrame, select_target_face
from .stabilization import SmoothingConfig, StabilizerRegistry, TrackedStabilizerRegistry
from .timeline import ProbabilityTimeline

logger = logging.getLogger(__name__)

AnyRegistry = Union[StabilizerRegistry, TrackedStabilizerRegistry]


class EmotionPipeline:
    """
    Pipeline de post-procesamiento de emociones por frame.

    Usage:
        pipeline = EmotionPipeline(StabilizerRegistry(config), ProbabilityTimeline())
        predictions = pipeline.process(frame)
    """

    def __init__(
        self,
        registry: AnyRegistry,
        timeline: Optional[ProbabilityTimeline] = None,
        labels: Sequence[str] = EMOTION_CLASSES,
        emojis: Sequence[str] = EMOTION_EMOJIS,
    ):
        self.registry = registry
        self.timeline = timeline or ProbabilityTimeline()
        self.labels = tuple(labels)
        self.emojis = tuple(emojis)

        self._frames_processed = 0
        self._frames_without_face = 0

    @property
    def tracking_mode(self) -> str:
        return 'multi' if isinstance(self.registry, TrackedStabilizerRegistry) else 'largest'

    def process(self, frame: FaceFrame) -> List[EmotionPrediction]:
        """
        Procesa un frame y retorna predicciones estabilizadas.

        Sin caras: retorna [] y no toca el estado de los estabilizadores
        (la pérdida de cara la maneja el tracked registry por hysteresis).
        """
        self._frames_processed += 1

        if self.tracking_mode == 'multi':
            predictions = self._process_tracked(frame)
        else:
            predictions = self._process_largest(frame)

        if not predictions:
            self._frames_without_face += 1
            return predictions

        self.timeline.append(predictions[0].probabilities)
        return predictions

    def _process_largest(self, frame: FaceFrame) -> List[EmotionPrediction]:
        target = select_target_face(frame.faces)
        if target is None:
            return []

        stable = self.registry.ensure_and_route(1, 0, target.probabilities)

        prediction = derive_prediction(
            stable,
            labels=self.labels,
            emojis=self.emojis,
            bbox=target.bbox,
            track_id=target.track_id,
            slot=0,
        )
        return [prediction] if prediction is not None else []

    def _process_tracked(self, frame: FaceFrame) -> List[EmotionPrediction]:
        """
        Cara principal (más grande) primero, resto en orden de frame.

        Claves del registry:
        - track_id del tracker si viene y no se repite en el frame
        - ('index', idx) si no hay track_id, o si el track_id ya lo usó una
          cara anterior del mismo frame (la primera en orden de frame se lo queda)
        """
        predictions: List[EmotionPrediction] = []
        target = select_target_face(frame.faces)
        claimed = set()

        for idx, face in enumerate(frame.faces):
            key, track_id = self._tracking_key(face.track_id, idx, claimed)
            stable = self.registry.route(key, face.probabilities)
            prediction = derive_prediction(
                stable,
                labels=self.labels,
                emojis=self.emojis,
                bbox=face.bbox,
                track_id=track_id,
                slot=idx,
            )
            if prediction is None:
                continue
            if face is target:
                predictions.insert(0, prediction)
            else:
                predictions.append(prediction)

        self.registry.end_frame()
        return predictions

    @staticmethod
    def _tracking_key(track_id: Optional[int], idx: int, claimed: set) -> Tuple[Hashable, Optional[int]]:
        if track_id is not None and track_id not in claimed:
            claimed.add(track_id)
            return track_id, track_id

        if track_id is not None:
            logger.debug(
                f"Duplicate track_id {track_id} in frame, face {idx} tracked by index",
                extra={
                    "component": "emotion_pipeline",
                    "event": "duplicate_track_id",
                    "track_id": track_id,
                    "face_index": idx,
                }
            )
        return ('index', idx), None

    def update_config(self, config: SmoothingConfig) -> None:
        self.registry.update_config(config)

    def reset(self) -> None:
        """Resetea estabilizadores y timeline"""
        self.registry.reset()
        self.timeline.clear()
        logger.info(
            "🔄 Emotion pipeline reset",
            extra={"component": "emotion_pipeline", "event": "pipeline_reset"}
        )

    def get_stats(self) -> Dict[str, Any]:
        stats = self.registry.get_stats()
        stats['tracking_mode'] = self.tracking_mode
        stats['pipeline_frames'] = self._frames_processed
        stats['frames_without_face'] = self._frames_without_face
        stats['timeline_length'] = len(self.timeline)
        return stats
