"""
Probability Stabilization - Temporal smoothing de vectores de emoción

Package:
- core.py: SmoothingConfig, estrategias (temporal, pass-through), factory
- registry.py: Un estabilizador por cara (por slot o por track_id)

Public API:
- Strategies: TemporalProbabilityStabilizer, PassThroughStabilizer
- Registries: StabilizerRegistry, TrackedStabilizerRegistry
- Factory: create_stabilization_strategy
"""

from .core import (
    AggregatePolicy,
    BaseProbabilityStabilizer,
    SmoothingConfig,
    TemporalProbabilityStabilizer,
    PassThroughStabilizer,
    aggregate_window,
    boost_and_renormalize,
    create_stabilization_strategy,
    resolve_stabilizer_class,
    validate_smoothing_config,
)
from .registry import (
    SlotNotAvailableError,
    StabilizerRegistry,
    TrackedStabilizerRegistry,
)

__all__ = [
    # Config
    "AggregatePolicy",
    "SmoothingConfig",

    # Core classes
    "BaseProbabilityStabilizer",
    "TemporalProbabilityStabilizer",
    "PassThroughStabilizer",

    # Registries
    "StabilizerRegistry",
    "TrackedStabilizerRegistry",
    "SlotNotAvailableError",

    # Factory / helpers
    "create_stabilization_strategy",
    "resolve_stabilizer_class",
    "validate_smoothing_config",
    "aggregate_window",
    "boost_and_renormalize",
]
