"""
Replay Source
=============

Fuente de frames desde JSON Lines (salida grabada del clasificador externo).

Una línea = un frame:
    {"frame_id": 1, "timestamp": 0.066,
     "faces": [{"probabilities": [...], "bbox": [x, y, w, h], "track_id": 3}]}

Cada cara acepta "probabilities", "logits" (softmax) o "classifications"
({label: confidence}). Líneas vacías se ignoran; líneas malformadas se loguean
y se saltean (no detienen la replay).
"""
import json
import logging
from pathlib import Path
from typing import Iterator, Optional, Sequence

from ..emotions import EMOTION_CLASSES
from ..inference.observations import FaceFrame, FaceObservation

logger = logging.getLogger(__name__)


def parse_frame_line(
    line: str,
    default_frame_id: int,
    labels: Sequence[str] = EMOTION_CLASSES,
) -> Optional[FaceFrame]:
    """
    Parsea una línea JSONL en un FaceFrame.

    Returns:
        FaceFrame, o None si la línea está vacía

    Raises:
        ValueError: Si la línea no es un frame válido (JSON inválido incluido)
    """
    line = line.strip()
    if not line:
        return None

    data = json.loads(line)
    if not isinstance(data, dict):
        raise ValueError("Frame line must be a JSON object")

    faces_data = data.get('faces', [])
    if not isinstance(faces_data, list):
        raise ValueError("'faces' must be a list")

    faces = [FaceObservation.from_dict(face, labels) for face in faces_data]
    return FaceFrame(
        frame_id=int(data.get('frame_id', default_frame_id)),
        timestamp=float(data.get('timestamp', 0.0)),
        faces=faces,
    )


class ReplaySource:
    """
    Itera FaceFrames desde un archivo JSONL.

    Usage:
        source = ReplaySource("recordings/session.jsonl", loop=False)
        for frame in source:
            pipeline.process(frame)
    """

    def __init__(
        self,
        path: str,
        loop: bool = False,
        labels: Sequence[str] = EMOTION_CLASSES,
    ):
        self.path = Path(path)
        self.loop = loop
        self.labels = tuple(labels)
        self.frames_read = 0
        self.lines_skipped = 0

        if not self.path.exists():
            raise FileNotFoundError(f"Replay source not found: {path}")

    def _read_once(self) -> Iterator[FaceFrame]:
        with open(self.path, 'r', encoding='utf-8') as f:
            for line_number, line in enumerate(f, start=1):
                try:
                    frame = parse_frame_line(line, default_frame_id=self.frames_read + 1, labels=self.labels)
                except (ValueError, TypeError, AttributeError) as e:
                    # json.JSONDecodeError es subclase de ValueError
                    self.lines_skipped += 1
                    logger.warning(
                        f"⚠️ Línea malformada en replay, salteando: {e}",
                        extra={
                            "component": "replay_source",
                            "event": "line_skipped",
                            "line_number": line_number,
                            "path": str(self.path),
                        }
                    )
                    continue

                if frame is None:
                    continue

                self.frames_read += 1
                yield frame

    def __iter__(self) -> Iterator[FaceFrame]:
        while True:
            produced = 0
            for frame in self._read_once():
                produced += 1
                yield frame

            if not self.loop or produced == 0:
                return

            logger.info(
                "🔁 Replay reiniciada",
                extra={
                    "component": "replay_source",
                    "event": "replay_looped",
                    "path": str(self.path),
                    "frames_read": self.frames_read,
                }
            )
