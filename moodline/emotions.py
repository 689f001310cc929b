"""
Emotion Vocabulary
==================

Clases de emoción en el orden de entrenamiento del modelo FER, emojis
asociados y helpers para convertir la salida del clasificador en
ProbabilityVectors y derivar la clase dominante.

Orden de clases (índice estable):
    0 angry, 1 disgust, 2 fear, 3 happy, 4 neutral, 5 sad, 6 surprise
"""
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence, Tuple
import logging

import numpy as np

logger = logging.getLogger(__name__)


EMOTION_CLASSES: Tuple[str, ...] = (
    "angry", "disgust", "fear", "happy", "neutral", "sad", "surprise",
)
EMOTION_EMOJIS: Tuple[str, ...] = ("😠", "🤢", "😨", "😊", "😐", "😢", "😲")
NEUTRAL_INDEX = EMOTION_CLASSES.index("neutral")


@dataclass
class EmotionPrediction:
    """
    Predicción estabilizada para una cara en un frame.

    bbox en coordenadas normalizadas (x, y, width, height).
    """
    probabilities: np.ndarray
    class_index: int
    dominant_emotion: str
    dominant_emoji: str
    confidence: float
    bbox: Optional[Tuple[float, float, float, float]] = None
    track_id: Optional[int] = None
    slot: int = 0

    def to_dict(self) -> Dict[str, object]:
        """Serializa a dict JSON-friendly (para data plane)"""
        return {
            "emotion": self.dominant_emotion,
            "emoji": self.dominant_emoji,
            "class_index": self.class_index,
            "confidence": float(self.confidence),
            "probabilities": [float(p) for p in self.probabilities],
            "bbox": {
                "x": self.bbox[0],
                "y": self.bbox[1],
                "width": self.bbox[2],
                "height": self.bbox[3],
            } if self.bbox is not None else None,
            "track_id": self.track_id,
            "slot": self.slot,
        }


def softmax(logits: Sequence[float]) -> np.ndarray:
    """
    Softmax numéricamente estable (resta el máximo antes de exp).

    Salida del modelo como MultiArray = logits crudos.
    """
    values = np.asarray(logits, dtype=np.float64)
    if values.size == 0:
        return values
    exps = np.exp(values - np.max(values))
    return exps / np.sum(exps)


def probabilities_from_classifications(
    classifications: Mapping[str, float],
    labels: Sequence[str] = EMOTION_CLASSES,
) -> np.ndarray:
    """
    Convierte observaciones {label: confidence} en vector ordenado por labels.

    Labels desconocidos se ignoran (log debug). Clases ausentes quedan en 0.
    """
    index_by_label = {label.lower(): idx for idx, label in enumerate(labels)}
    probabilities = np.zeros(len(labels), dtype=np.float64)

    for label, confidence in classifications.items():
        idx = index_by_label.get(label.lower())
        if idx is None:
            logger.debug(
                f"Unknown classification label ignored: {label}",
                extra={"component": "emotions", "event": "unknown_label", "label": label}
            )
            continue
        probabilities[idx] = float(confidence)

    return probabilities


def dominant_index(probabilities: Sequence[float]) -> Optional[int]:
    """Índice arg-max (primer máximo en empate). None si vector vacío."""
    values = np.asarray(probabilities, dtype=np.float64)
    if values.size == 0:
        return None
    return int(np.argmax(values))


def derive_prediction(
    probabilities: Sequence[float],
    labels: Sequence[str] = EMOTION_CLASSES,
    emojis: Sequence[str] = EMOTION_EMOJIS,
    bbox: Optional[Tuple[float, float, float, float]] = None,
    track_id: Optional[int] = None,
    slot: int = 0,
) -> Optional[EmotionPrediction]:
    """
    Deriva clase dominante, confianza, label y emoji de un vector estabilizado.

    Returns:
        EmotionPrediction o None si el vector está vacío
    """
    values = np.asarray(probabilities, dtype=np.float64)
    idx = dominant_index(values)
    if idx is None:
        return None

    label = labels[idx] if idx < len(labels) else f"class_{idx}"
    emoji = emojis[idx] if idx < len(emojis) else ""

    return EmotionPrediction(
        probabilities=values,
        class_index=idx,
        dominant_emotion=label,
        dominant_emoji=emoji,
        confidence=float(values[idx]),
        bbox=bbox,
        track_id=track_id,
        slot=slot,
    )


__all__ = [
    "EMOTION_CLASSES",
    "EMOTION_EMOJIS",
    "NEUTRAL_INDEX",
    "EmotionPrediction",
    "softmax",
    "probabilities_from_classifications",
    "dominant_index",
    "derive_prediction",
]
