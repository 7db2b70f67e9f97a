"""
Simulation engine for city dynamics.

Provides the tick clock, state snapshots, statistics and the engine facade.
"""

from .clock import ClockState, Phase, SimulationClock, TickContext
from .engine import SimulationConfig, SimulationEngine, build_state, run_simulation
from .state import SimulationState, Snapshot
from .statistics import (
    CORE_METRICS,
    MetricSeries,
    StatisticsCollector,
    TickSample,
    population_metric,
    workers_metric,
)

__all__ = [
    # Engine
    "SimulationConfig",
    "SimulationEngine",
    "build_state",
    "run_simulation",
    # Clock
    "ClockState",
    "Phase",
    "SimulationClock",
    "TickContext",
    # State
    "SimulationState",
    "Snapshot",
    # Statistics
    "CORE_METRICS",
    "MetricSeries",
    "StatisticsCollector",
    "TickSample",
    "population_metric",
    "workers_metric",
]
