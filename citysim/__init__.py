"""
City dynamics simulation engine.

Models population distribution across zones, employment and commuting
flows over a congestion-aware transport network, stepped forward in
discrete ticks with reproducible results.
"""

from .config import CityConfig, SimulationConfig, load_config, parse_config
from .errors import (
    CapacityExceeded,
    CitySimError,
    ClockStateError,
    ConfigurationError,
    EngineFault,
    Unreachable,
    ZoneNotFound,
)
from .simulation import SimulationEngine, Snapshot, run_simulation

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "CityConfig",
    "SimulationConfig",
    "load_config",
    "parse_config",
    # Engine
    "SimulationEngine",
    "Snapshot",
    "run_simulation",
    # Errors
    "CitySimError",
    "ConfigurationError",
    "ZoneNotFound",
    "CapacityExceeded",
    "Unreachable",
    "EngineFault",
    "ClockStateError",
]
