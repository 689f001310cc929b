"""
Pipeline Builder
================

Builder pattern para construir el pipeline de emociones con sus dependencias.

Responsabilidad:
- Orquestar factories para construir componentes
- Construir EmotionPipeline (registry + timeline)
- Construir data plane (si MQTT habilitado) y sinks
- Construir la fuente de frames (replay)

Diseño:
- Builder orquesta, Factories construyen
- Controller solo usa Builder (no conoce detalles)
"""
from typing import Callable, List, Optional, TYPE_CHECKING
import logging

from ..config import MoodlineConfig
from ..inference import EmotionPipeline
from ..inference.factories import StrategyFactory
from .factories import SinkFactory
from .source import ReplaySource

if TYPE_CHECKING:
    from ..data import MQTTDataPlane

logger = logging.getLogger(__name__)


class PipelineBuilder:
    """
    Builder para el pipeline de emociones.

    Usage:
        builder = PipelineBuilder(config)

        pipeline = builder.build_pipeline()
        data_plane = builder.build_data_plane()
        sinks = builder.build_sinks(data_plane)
        source = builder.build_source()
    """

    def __init__(self, config: MoodlineConfig):
        """
        Args:
            config: MoodlineConfig validado
        """
        self.config = config

    def build_pipeline(self) -> EmotionPipeline:
        """
        Construye EmotionPipeline.

        Delega a StrategyFactory.
        """
        logger.info(
            "Building emotion pipeline",
            extra={"component": "builder", "event": "pipeline_build_start"}
        )
        pipeline = StrategyFactory.create_pipeline(self.config)
        logger.info(
            "Pipeline build complete",
            extra={
                "component": "builder",
                "event": "pipeline_build_complete",
                "tracking_mode": pipeline.tracking_mode,
                "smoothing_mode": self.config.smoothing.mode,
            }
        )
        return pipeline

    def build_data_plane(self) -> Optional['MQTTDataPlane']:
        """
        Construye MQTTDataPlane (sin conectar).

        Returns:
            MQTTDataPlane, o None si mqtt.enabled=False
        """
        mqtt_config = self.config.mqtt
        if not mqtt_config.enabled:
            logger.info(
                "Data plane skipped",
                extra={"component": "builder", "event": "data_plane_skipped", "reason": "mqtt_disabled"}
            )
            return None

        from ..data import MQTTDataPlane

        return MQTTDataPlane(
            broker_host=mqtt_config.broker.host,
            broker_port=mqtt_config.broker.port,
            data_topic=mqtt_config.topics.data,
            timeline_topic=mqtt_config.topics.timeline,
            username=mqtt_config.broker.username,
            password=mqtt_config.broker.password,
            qos=mqtt_config.qos.data,
            labels=self.config.emotions.labels,
        )

    def build_sinks(self, data_plane: Optional['MQTTDataPlane'] = None) -> List[Callable]:
        """
        Construye sinks según configuración.

        Delega a SinkFactory.
        """
        logger.info(
            "Building sinks",
            extra={"component": "builder", "event": "sinks_build_start"}
        )
        return SinkFactory.create_sinks(config=self.config, data_plane=data_plane)

    def build_source(self, source_override: Optional[str] = None) -> ReplaySource:
        """
        Construye la fuente de frames.

        Args:
            source_override: Path que reemplaza pipeline.source (ej: --source del CLI)

        Raises:
            ValueError: Si no hay source configurado
            FileNotFoundError: Si el archivo no existe
        """
        path = source_override or self.config.pipeline.source
        if not path:
            raise ValueError(
                "No replay source configured. Set pipeline.source in config.yaml "
                "or pass --source PATH"
            )

        logger.info(
            "Building replay source",
            extra={
                "component": "builder",
                "event": "source_build",
                "path": path,
                "loop": self.config.pipeline.loop,
            }
        )
        return ReplaySource(
            path,
            loop=self.config.pipeline.loop,
            labels=self.config.emotions.labels,
        )
