"""
Inference Factories
===================

Factory pattern para creación de registries y pipeline.
Centraliza lógica de construcción dispersa en Controller.
"""
from .strategy_factory import StrategyFactory

__all__ = [
    "StrategyFactory",
]
