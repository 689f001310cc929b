"""
Strategy Factory
================

Factory unificado para estrategias de stabilization.

Responsabilidad:
- Traducir MoodlineConfig (pydantic) a SmoothingConfig (snapshot del core)
- Validar configuración vía create_stabilization_strategy()
- Elegir registry según tracking.mode ('largest' → slots, 'multi' → track_ids)
- Construir EmotionPipeline
"""
from typing import TYPE_CHECKING, Union
import logging

from ..pipeline import EmotionPipeline
from ..stabilization import (
    StabilizerRegistry,
    TrackedStabilizerRegistry,
    create_stabilization_strategy,
)
from ..timeline import ProbabilityTimeline

if TYPE_CHECKING:
    from ...config import MoodlineConfig

logger = logging.getLogger(__name__)


class StrategyFactory:
    """
    Factory unificado para estrategias.

    Usage:
        registry = StrategyFactory.create_registry(config)
        pipeline = StrategyFactory.create_pipeline(config)
    """

    @staticmethod
    def create_registry(
        config: 'MoodlineConfig',
    ) -> Union[StabilizerRegistry, TrackedStabilizerRegistry]:
        """
        Crea el registry de estabilizadores.

        Raises:
            ValueError: Si la configuración de smoothing es inválida
        """
        smoothing = config.smoothing.to_smoothing_config()

        logger.info(
            "Creating stabilization strategy",
            extra={
                "component": "strategy_factory",
                "event": "stabilization_create_start",
                "mode": config.smoothing.mode,
                "tracking_mode": config.tracking.mode,
            }
        )

        # Valida una vez; el registry instancia la misma clase por slot
        prototype = create_stabilization_strategy(smoothing, mode=config.smoothing.mode)
        stabilizer_cls = type(prototype)

        if config.tracking.mode == 'multi':
            registry = TrackedStabilizerRegistry(
                smoothing,
                max_missed_frames=config.tracking.max_missed_frames,
                stabilizer_cls=stabilizer_cls,
            )
        else:
            registry = StabilizerRegistry(smoothing, stabilizer_cls=stabilizer_cls)

        logger.info(
            "Stabilization strategy created",
            extra={
                "component": "strategy_factory",
                "event": "stabilization_created",
                "mode": config.smoothing.mode,
                "tracking_mode": config.tracking.mode,
                "registry": type(registry).__name__,
                "config": smoothing.to_dict(),
            }
        )
        return registry

    @staticmethod
    def create_pipeline(config: 'MoodlineConfig') -> EmotionPipeline:
        """Crea EmotionPipeline con registry + timeline según config"""
        return EmotionPipeline(
            registry=StrategyFactory.create_registry(config),
            timeline=ProbabilityTimeline(history_limit=config.timeline.history_limit),
            labels=config.emotions.labels,
            emojis=config.emotions.emojis,
        )
