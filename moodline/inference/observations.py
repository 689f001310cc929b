"""
Face Observations
=================

Entradas por frame desde el colaborador externo (detector + clasificador):
una FaceObservation por cara detectada con su vector crudo de probabilidades.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..emotions import EMOTION_CLASSES, probabilities_from_classifications, softmax

BBox = Tuple[float, float, float, float]


@dataclass
class FaceObservation:
    """
    Cara detectada en un frame.

    Attributes:
        probabilities: Vector crudo del clasificador (orden de EMOTION_CLASSES)
        bbox: (x, y, width, height) normalizados, opcional
        track_id: ID persistente del tracker externo, opcional
    """
    probabilities: np.ndarray
    bbox: Optional[BBox] = None
    track_id: Optional[int] = None

    @property
    def area(self) -> float:
        if self.bbox is None:
            return 0.0
        return max(0.0, float(self.bbox[2])) * max(0.0, float(self.bbox[3]))

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        labels: Sequence[str] = EMOTION_CLASSES,
    ) -> 'FaceObservation':
        """
        Construye desde un dict de salida del clasificador.

        Formatos aceptados (en orden de prioridad):
        - "probabilities": [floats] → se usa tal cual
        - "logits": [floats] → softmax
        - "classifications": {label: confidence} → vector ordenado por labels

        Raises:
            ValueError: Si no hay ninguno de los tres campos
        """
        if 'probabilities' in data:
            probabilities = np.asarray(data['probabilities'], dtype=np.float64)
        elif 'logits' in data:
            probabilities = softmax(data['logits'])
        elif 'classifications' in data:
            probabilities = probabilities_from_classifications(data['classifications'], labels)
        else:
            raise ValueError(
                "Face entry needs one of 'probabilities', 'logits' or 'classifications'"
            )

        bbox = data.get('bbox')
        if bbox is not None:
            if len(bbox) != 4:
                raise ValueError(f"bbox must have 4 values (x, y, width, height), got {len(bbox)}")
            bbox = tuple(float(v) for v in bbox)

        track_id = data.get('track_id')
        return cls(
            probabilities=probabilities,
            bbox=bbox,
            track_id=int(track_id) if track_id is not None else None,
        )


@dataclass
class FaceFrame:
    """Un frame procesado por el clasificador externo"""
    frame_id: int
    timestamp: float
    faces: List[FaceObservation] = field(default_factory=list)


def select_target_face(faces: Sequence[FaceObservation]) -> Optional[FaceObservation]:
    """
    Selecciona la cara con bounding box más grande (primera en empate).

    Returns:
        FaceObservation o None si no hay caras
    """
    if not faces:
        return None
    return max(faces, key=lambda face: face.area)
