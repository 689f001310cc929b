"""
App - Controller, Builder, Replay Source
"""
from .builder import PipelineBuilder
from .controller import MoodlineController, main
from .source import ReplaySource

__all__ = ["PipelineBuilder", "MoodlineController", "ReplaySource", "main"]
