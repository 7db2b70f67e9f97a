"""
Tick-based city simulation engine.

The engine owns the live state and every component. Each tick runs four
phases in order (transport recompute, population update, statistics,
publish) on a working copy of the state; the copy replaces the live state
only when the publish phase completes. Viewers interact exclusively through
the control methods and immutable snapshots.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Union

import pandas as pd

from ..city.transport import TransportModel, link_loads_from_routes
from ..city.zones import ZoneMap
from ..config import CityConfig, SimulationConfig, load_config, parse_config
from ..errors import (
    CapacityExceeded,
    ClockStateError,
    ConfigurationError,
    Unreachable,
    ZoneNotFound,
)
from ..population.model import PopulationModel, PopulationRules
from ..population.residents import Resident, generate_residents
from .clock import ClockState, Phase, SimulationClock, TickContext
from .state import SimulationState, Snapshot
from .statistics import MetricSeries, StatisticsCollector

logger = logging.getLogger(__name__)


def build_state(config: CityConfig) -> SimulationState:
    """
    Build the initial (tick 0) state from a validated configuration.

    Configured work zones are assigned immediately and must be reachable
    from the resident's home zone under uncongested costs.

    Raises:
        ConfigurationError: on unknown zones, overfull zones or unreachable jobs
    """
    zone_map = ZoneMap(default_link_capacity=config.simulation.default_link_capacity)

    for i, spec in enumerate(config.zones):
        try:
            zone_map.add_zone(spec.capacity, spec.name)
        except ConfigurationError as e:
            raise ConfigurationError(e.reason, f"zones[{i}].{e.field}") from e

    for i, spec in enumerate(config.links):
        try:
            zone_map.add_link(spec.origin, spec.destination, spec.base_cost, spec.capacity)
        except ZoneNotFound as e:
            raise ZoneNotFound(e.zone_ref, f"links[{i}].{e.field}") from e
        except ConfigurationError as e:
            raise ConfigurationError(e.reason, f"links[{i}].{e.field}") from e

    transport = TransportModel()
    transport.recompute(zone_map)

    residents: dict[int, Resident] = {}
    for i, spec in enumerate(config.residents):
        path = f"residents[{i}]"
        home = zone_map.resolve(spec.home_zone, f"{path}.home_zone")
        work = None
        if spec.work_zone is not None:
            work = zone_map.resolve(spec.work_zone, f"{path}.work_zone")

        try:
            zone_map.add_resident(home)
        except CapacityExceeded as e:
            raise ConfigurationError(f"home zone {e.zone_id} is full", f"{path}.home_zone") from e

        resident = Resident(resident_id=i, home_zone=home, income=spec.income)
        if work is not None:
            try:
                route = transport.cheapest_route(home, work)
            except Unreachable as e:
                raise ConfigurationError(str(e), f"{path}.work_zone") from e
            try:
                zone_map.assign_worker(work)
            except CapacityExceeded as e:
                raise ConfigurationError(
                    f"work zone {e.zone_id} has no free job slot", f"{path}.work_zone"
                ) from e
            resident = resident.hired(work, route.links, route.cost)
        residents[i] = resident

    if config.population is not None:
        generated = generate_residents(zone_map, config.population, first_id=len(residents))
        for resident in generated:
            zone_map.add_resident(resident.home_zone)
            residents[resident.resident_id] = resident
        logger.info("Generated %d residents", len(generated))

    state = SimulationState(zone_map=zone_map, residents=residents, tick=0)
    state.validate()
    return state


class SimulationEngine:
    """
    Facade over the city simulation.

    Lifecycle: ``configure`` -> ``run``* -> ``shutdown``. The control
    surface for viewers is run/start, pause, resume, stop and
    latest_snapshot.
    """

    def __init__(self, config: CityConfig):
        self.config = config
        self._state = build_state(config)

        sim = config.simulation
        self.transport = TransportModel()
        self.population = PopulationModel(
            rules=PopulationRules(
                commute_threshold=sim.commute_threshold,
                allow_home_zone_jobs=sim.allow_home_zone_jobs,
            ),
            workers=sim.workers,
        )
        self.statistics = StatisticsCollector()

        self.clock = SimulationClock(
            phases=[
                Phase("transport", self._transport_phase),
                Phase("population", self._population_phase),
                Phase("statistics", self._statistics_phase),
                Phase("publish", self._publish_phase),
            ],
            begin_tick=self._begin_tick,
            start_tick=self._state.tick,
        )
        self._snapshot_lock = threading.Lock()
        self._snapshot = self._initial_snapshot()
        self._closed = False

        logger.info(
            "Configured city: %d zones, %d links, %d residents",
            len(self._state.zone_map),
            len(self._state.zone_map.links),
            len(self._state.residents),
        )

    @classmethod
    def configure(cls, config: Union[CityConfig, Mapping[str, Any]]) -> SimulationEngine:
        """
        Create an engine from a configuration.

        Raises:
            ConfigurationError: if the configuration is malformed
        """
        return cls(parse_config(config))

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> SimulationEngine:
        return cls(load_config(path))

    # Phases

    def _begin_tick(self, tick: int) -> TickContext:
        state = self._state.copy()
        state.tick = tick
        return TickContext(tick=tick, state=state)

    def _transport_phase(self, ctx: TickContext) -> None:
        loads = link_loads_from_routes(ctx.state.commuter_routes())
        self.transport.recompute(ctx.state.zone_map, loads)

    def _population_phase(self, ctx: TickContext) -> None:
        ctx.changes = self.population.update_all(ctx.tick, ctx.state, self.transport)
        ctx.state.validate()

    def _statistics_phase(self, ctx: TickContext) -> None:
        ctx.sample = self.statistics.prepare(ctx.state, ctx.changes, self.transport)

    def _publish_phase(self, ctx: TickContext) -> None:
        self.statistics.record(ctx.sample)
        ctx.snapshot = Snapshot.capture(
            ctx.state,
            congestion=self.transport.congestion_by_link,
            metrics=ctx.sample.values,
            series=self.statistics.all_series(),
        )
        with self._snapshot_lock:
            self._state = ctx.state
            self._snapshot = ctx.snapshot
        logger.debug(
            "Tick %d published: employment rate %.3f",
            ctx.tick,
            ctx.sample.values["employment_rate"],
        )

    def _initial_snapshot(self) -> Snapshot:
        transport = TransportModel()
        transport.recompute(
            self._state.zone_map, link_loads_from_routes(self._state.commuter_routes())
        )
        return Snapshot.capture(
            self._state,
            congestion=transport.congestion_by_link,
            metrics={},
            series={},
        )

    # Control surface

    def run(self, ticks: Optional[int] = None) -> Snapshot:
        """
        Run ticks in the calling thread.

        Args:
            ticks: Number of ticks, or None to run until stop() is called

        Returns:
            Latest snapshot after the run
        """
        self._check_open()
        self.clock.run(ticks)
        return self.latest_snapshot()

    def start(self, ticks: Optional[int] = None) -> threading.Thread:
        """Run ticks in a background thread."""
        self._check_open()
        return self.clock.start(ticks)

    def join(self, timeout: Optional[float] = None) -> Snapshot:
        """Wait for a background run; re-raises its fault."""
        self.clock.join(timeout)
        return self.latest_snapshot()

    def pause(self) -> bool:
        return self.clock.pause()

    def resume(self) -> bool:
        return self.clock.resume()

    def stop(self) -> None:
        self.clock.stop()

    @property
    def state(self) -> ClockState:
        return self.clock.state

    @property
    def tick(self) -> int:
        return self.latest_snapshot().tick

    def latest_snapshot(self) -> Snapshot:
        """Most recent published snapshot (tick 0 before any run)."""
        with self._snapshot_lock:
            return self._snapshot

    def add_listener(self, listener: Callable[[Snapshot], None]) -> None:
        """Call listener with every published snapshot, in the clock's thread."""
        self.clock.add_listener(listener)

    def series(self, metric_name: str) -> MetricSeries:
        return self.statistics.series(metric_name)

    def metrics_frame(self) -> pd.DataFrame:
        return self.statistics.to_dataframe()

    def shutdown(self) -> None:
        """Stop the clock and release worker threads. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self.clock.stop()
        try:
            self.clock.join()
        finally:
            self.population.close()
        logger.info("Engine shut down at tick %d", self.tick)

    def _check_open(self) -> None:
        if self._closed:
            raise ClockStateError("engine has been shut down")

    def __enter__(self) -> SimulationEngine:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()


def run_simulation(
    config: Union[CityConfig, Mapping[str, Any]],
    ticks: int,
) -> tuple[Snapshot, pd.DataFrame]:
    """
    Convenience function to run a simulation.

    Args:
        config: City configuration (mapping or CityConfig)
        ticks: Number of ticks to run

    Returns:
        (final snapshot, long metrics table)
    """
    with SimulationEngine.configure(config) as engine:
        snapshot = engine.run(ticks)
        frame = engine.metrics_frame()
    return snapshot, frame
