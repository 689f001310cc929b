"""
Timeline Publisher
==================

Publisher del snapshot del timeline de probabilidades (para dashboards).
"""
from datetime import datetime
from typing import Any, Dict, List, Sequence


class TimelinePublisher:
    """Formatea el snapshot del timeline en un mensaje por clase"""

    def __init__(self, labels: Sequence[str]):
        self.labels = tuple(labels)

    def format_message(self, snapshot: List[List[float]]) -> Dict[str, Any]:
        """
        Args:
            snapshot: Vectores oldest → newest (ver ProbabilityTimeline.snapshot)

        Returns:
            {"series": {label: [p_0, p_1, ...]}, "length": N, ...}
        """
        series = {
            label: [entry[idx] if idx < len(entry) else 0.0 for entry in snapshot]
            for idx, label in enumerate(self.labels)
        }
        return {
            "timestamp": datetime.now().isoformat(),
            "length": len(snapshot),
            "labels": list(self.labels),
            "series": series,
        }
