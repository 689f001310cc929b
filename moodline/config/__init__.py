"""
Configuration Module
====================

Provides configuration loading with Pydantic validation.

Usage:
    from moodline.config import MoodlineConfig
    config = MoodlineConfig.from_yaml("config/moodline/config.yaml")
    smoothing = config.smoothing.to_smoothing_config()
"""
from .schemas import (
    DEFAULT_CONFIG_PATH,
    MoodlineConfig,
    PipelineSettings,
    SmoothingSettings,
    TrackingSettings,
    TimelineSettings,
    EmotionSettings,
    MQTTSettings,
    LoggingSettings,
    EnvironmentSettings,
)

__all__ = [
    'DEFAULT_CONFIG_PATH',
    'MoodlineConfig',
    'PipelineSettings',
    'SmoothingSettings',
    'TrackingSettings',
    'TimelineSettings',
    'EmotionSettings',
    'MQTTSettings',
    'LoggingSettings',
    'EnvironmentSettings',
]
