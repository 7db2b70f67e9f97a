"""
Error taxonomy for the city simulation engine.

Configuration problems fail before any tick runs, capacity conflicts and
unreachable routes are recovered locally by the population model, and
engine faults abort the in-progress tick and stop the clock.
"""

from __future__ import annotations

from typing import Optional


class CitySimError(Exception):
    """Base class for all simulation errors."""


class ConfigurationError(CitySimError, ValueError):
    """Invalid configuration, raised before any tick runs."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.reason = message
        self.field = field
        if field:
            message = f"{field}: {message}"
        super().__init__(message)


class ZoneNotFound(ConfigurationError, LookupError):
    """A zone reference does not match any zone in the map."""

    def __init__(self, zone_ref: object, field: Optional[str] = None):
        self.zone_ref = zone_ref
        super().__init__(f"unknown zone {zone_ref!r}", field)


class CapacityExceeded(CitySimError):
    """An assignment would push a zone counter above its capacity."""

    def __init__(self, zone_id: int, counter: str, capacity: int):
        self.zone_id = zone_id
        self.counter = counter
        self.capacity = capacity
        super().__init__(f"zone {zone_id} {counter} already at capacity {capacity}")


class Unreachable(CitySimError):
    """No route exists between two zones."""

    def __init__(self, origin: int, destination: int):
        self.origin = origin
        self.destination = destination
        super().__init__(f"zone {destination} is unreachable from zone {origin}")


class EngineFault(CitySimError):
    """Invariant violation during a tick. Fatal: the clock stops."""

    def __init__(self, message: str, tick: Optional[int] = None):
        self.tick = tick
        if tick is not None:
            message = f"tick {tick}: {message}"
        super().__init__(message)


class ClockStateError(CitySimError):
    """Invalid simulation clock transition."""
