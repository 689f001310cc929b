"""
Pydantic Configuration Schemas
================================

Type-safe configuration validation usando Pydantic v2.

Benefits:
- Validación en load time (no en runtime)
- Type safety con IDE autocomplete
- Mejores mensajes de error
- El core de smoothing recibe snapshots ya validados

Usage:
    config = MoodlineConfig.from_yaml("config/moodline/config.yaml")
    smoothing = config.smoothing.to_smoothing_config()
"""
from typing import Literal, Optional, List
from pathlib import Path
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..emotions import EMOTION_CLASSES, EMOTION_EMOJIS, NEUTRAL_INDEX
from ..inference.stabilization import AggregatePolicy, SmoothingConfig


DEFAULT_CONFIG_PATH = "config/moodline/config.yaml"


# ============================================================================
# Pipeline Configuration
# ============================================================================

class PipelineSettings(BaseModel):
    """Frame loop settings"""
    source: Optional[str] = Field(
        default=None,
        description="Replay source (JSON Lines de salida del clasificador)"
    )
    max_fps: int = Field(
        default=15,
        ge=1,
        le=120,
        description="Maximum frames per second"
    )
    loop: bool = Field(
        default=False,
        description="Reiniciar la replay al llegar al final"
    )
    metrics_interval: int = Field(
        default=150,
        ge=1,
        description="Frames entre logs de métricas del pipeline"
    )


# ============================================================================
# Smoothing Configuration
# ============================================================================

class SmoothingSettings(BaseModel):
    """Probability smoothing configuration"""
    model_config = ConfigDict(extra='forbid')

    mode: Literal['temporal', 'none'] = Field(
        default='temporal',
        description="Stabilization mode"
    )
    neutral_boost: float = Field(
        default=2.0,
        ge=1.0,
        description="Multiplicador de la clase neutral antes de renormalizar"
    )
    neutral_index: int = Field(
        default=NEUTRAL_INDEX,
        ge=0,
        description="Posición de la clase neutral en el vector"
    )
    ema_alpha: float = Field(
        default=0.15,
        gt=0.0,
        le=1.0,
        description="EMA alpha (alto = responsivo, bajo = estable)"
    )
    history_window_size: int = Field(
        default=3,
        ge=1,
        le=600,
        description="Capacidad del ring buffer de EMA outputs"
    )
    frames_for_aggregate: int = Field(
        default=3,
        ge=1,
        le=600,
        description="Frames recientes usados para el agregado"
    )
    aggregate_policy: Literal['mean', 'median'] = Field(
        default='mean',
        description="Agregado por clase sobre la ventana"
    )

    def to_smoothing_config(self) -> SmoothingConfig:
        """Snapshot inmutable para el core de smoothing"""
        return SmoothingConfig(
            neutral_boost=self.neutral_boost,
            neutral_index=self.neutral_index,
            ema_alpha=self.ema_alpha,
            history_window_size=self.history_window_size,
            frames_for_aggregate=self.frames_for_aggregate,
            aggregate_policy=AggregatePolicy(self.aggregate_policy),
        )


class TrackingSettings(BaseModel):
    """Face tracking configuration"""
    mode: Literal['largest', 'multi'] = Field(
        default='largest',
        description="'largest' = solo la cara más grande, 'multi' = una por track_id"
    )
    max_missed_frames: int = Field(
        default=15,
        ge=0,
        description="Frames sin ver un track antes de descartar su estado (modo multi)"
    )


class TimelineSettings(BaseModel):
    """Display timeline configuration"""
    history_limit: int = Field(
        default=75,
        ge=1,
        description="Vectores retenidos para el timeline (75 = 5s @ 15fps)"
    )


class EmotionSettings(BaseModel):
    """Emotion labels (orden de entrenamiento del modelo)"""
    labels: List[str] = Field(
        default_factory=lambda: list(EMOTION_CLASSES),
        min_length=1,
        description="Labels en orden de índice"
    )
    emojis: List[str] = Field(
        default_factory=lambda: list(EMOTION_EMOJIS),
        description="Emoji por label (mismo orden)"
    )

    @model_validator(mode='after')
    def validate_same_length(self):
        """labels y emojis deben tener la misma longitud"""
        if len(self.labels) != len(self.emojis):
            raise ValueError(
                f"labels ({len(self.labels)}) and emojis ({len(self.emojis)}) "
                f"must have the same length"
            )
        return self


# ============================================================================
# MQTT Configuration
# ============================================================================

class MQTTBrokerSettings(BaseModel):
    """MQTT broker connection settings"""
    host: str = Field(
        default="localhost",
        description="MQTT broker hostname"
    )
    port: int = Field(
        default=1883,
        ge=1,
        le=65535,
        description="MQTT broker port"
    )
    username: Optional[str] = Field(
        default=None,
        description="MQTT username (optional, from env)"
    )
    password: Optional[str] = Field(
        default=None,
        description="MQTT password (optional, from env)"
    )


class MQTTTopicsSettings(BaseModel):
    """MQTT topic configuration"""
    control_commands: str = Field(
        default="moodline/control/commands",
        description="Control commands topic (QoS 1)"
    )
    control_status: str = Field(
        default="moodline/control/status",
        description="Control status topic"
    )
    data: str = Field(
        default="moodline/data/predictions",
        description="Predictions topic (QoS 0)"
    )
    timeline: str = Field(
        default="moodline/data/timeline",
        description="Timeline snapshot topic"
    )


class MQTTQoSSettings(BaseModel):
    """MQTT QoS levels"""
    control: Literal[0, 1, 2] = Field(
        default=1,
        description="Control plane QoS (recommended: 1 for reliability)"
    )
    data: Literal[0, 1, 2] = Field(
        default=0,
        description="Data plane QoS (recommended: 0 for performance)"
    )


class MQTTSettings(BaseModel):
    """Complete MQTT configuration"""
    enabled: bool = Field(
        default=True,
        description="Deshabilitar para correr solo con logs (sin broker)"
    )
    broker: MQTTBrokerSettings = Field(default_factory=MQTTBrokerSettings)
    topics: MQTTTopicsSettings = Field(default_factory=MQTTTopicsSettings)
    qos: MQTTQoSSettings = Field(default_factory=MQTTQoSSettings)


# ============================================================================
# Logging Configuration
# ============================================================================

class LoggingSettings(BaseModel):
    """Logging configuration (JSON structured logging)"""
    level: Literal['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'] = Field(
        default='INFO',
        description="Log level"
    )
    json_indent: Optional[int] = Field(
        default=None,
        ge=0,
        le=4,
        description="JSON indent for pretty-print (None=compact, 2=readable)"
    )
    paho_level: Literal['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'] = Field(
        default='WARNING',
        description="Paho MQTT library log level"
    )
    file: Optional[str] = Field(
        default=None,
        description="Path to log file (None=stdout). If specified, enables file rotation."
    )
    max_bytes: int = Field(
        default=10485760,  # 10 MB
        ge=1024,
        description="Maximum bytes per log file before rotation (default 10 MB)"
    )
    backup_count: int = Field(
        default=5,
        ge=0,
        description="Number of backup log files to keep"
    )


# ============================================================================
# Environment Overrides
# ============================================================================

class EnvironmentSettings(BaseSettings):
    """
    Overrides desde variables de entorno (.env se carga con python-dotenv en main).

    MQTT_USERNAME / MQTT_PASSWORD: credenciales del broker
    MOODLINE_CONFIG: path alternativo al config.yaml
    """
    model_config = SettingsConfigDict(extra='ignore')

    mqtt_username: Optional[str] = None
    mqtt_password: Optional[str] = None
    moodline_config: Optional[str] = None


# ============================================================================
# Root Configuration
# ============================================================================

class MoodlineConfig(BaseModel):
    """
    Root Moodline configuration with full validation.

    Loads from YAML and validates all settings.
    Environment variables override YAML for sensitive data.
    """
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    smoothing: SmoothingSettings = Field(default_factory=SmoothingSettings)
    tracking: TrackingSettings = Field(default_factory=TrackingSettings)
    timeline: TimelineSettings = Field(default_factory=TimelineSettings)
    emotions: EmotionSettings = Field(default_factory=EmotionSettings)
    mqtt: MQTTSettings = Field(default_factory=MQTTSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @model_validator(mode='after')
    def validate_neutral_index_in_labels(self):
        """neutral_index debe apuntar a un label existente"""
        if self.smoothing.neutral_index >= len(self.emotions.labels):
            raise ValueError(
                f"smoothing.neutral_index ({self.smoothing.neutral_index}) must be < "
                f"number of emotion labels ({len(self.emotions.labels)})"
            )
        return self

    @classmethod
    def from_yaml(cls, config_path: str) -> 'MoodlineConfig':
        """
        Load and validate configuration from YAML file.

        Args:
            config_path: Path to config.yaml

        Returns:
            Validated MoodlineConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValidationError: If config is invalid

        Example:
            config = MoodlineConfig.from_yaml("config/moodline/config.yaml")
            print(config.smoothing.ema_alpha)  # Type-safe access
        """
        import yaml

        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create it from config/moodline/config.yaml.example"
            )

        with open(config_file, 'r') as f:
            config_dict = yaml.safe_load(f) or {}

        return cls(**config_dict).with_environment()

    def with_environment(self, env: Optional[EnvironmentSettings] = None) -> 'MoodlineConfig':
        """
        Aplica overrides de credenciales MQTT desde el entorno.

        Returns:
            Nueva instancia (self no se modifica)
        """
        env = env or EnvironmentSettings()
        broker_updates = {}
        if env.mqtt_username:
            broker_updates['username'] = env.mqtt_username
        if env.mqtt_password:
            broker_updates['password'] = env.mqtt_password

        if not broker_updates:
            return self

        broker = self.mqtt.broker.model_copy(update=broker_updates)
        mqtt = self.mqtt.model_copy(update={'broker': broker})
        return self.model_copy(update={'mqtt': mqtt})
