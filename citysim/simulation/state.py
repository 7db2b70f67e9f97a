"""
Simulation state and published snapshots.

The live state is owned by the engine and only mutated by the clock's phase
sequence. Viewers receive Snapshots: frozen copies that can be read from
any thread without locking.
"""

from __future__ import annotations

import json
from bisect import bisect_left
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Iterator, Mapping

from ..city.zones import TransportLink, Zone, ZoneMap
from ..errors import EngineFault
from ..population.residents import EmploymentState, Resident

if TYPE_CHECKING:
    from .statistics import MetricSeries


@dataclass
class SimulationState:
    """Zones, links and residents of the city at a given tick."""

    zone_map: ZoneMap
    residents: dict[int, Resident] = field(default_factory=dict)
    tick: int = 0

    def copy(self) -> SimulationState:
        """Independent working copy. Entities are immutable and shared."""
        return SimulationState(
            zone_map=self.zone_map.copy(),
            residents=dict(self.residents),
            tick=self.tick,
        )

    def iter_residents(self) -> Iterator[Resident]:
        """Residents in ascending identifier order."""
        for rid in sorted(self.residents):
            yield self.residents[rid]

    def commuter_routes(self) -> Iterator[tuple[int, ...]]:
        for resident in self.residents.values():
            if resident.is_commuting:
                yield resident.route

    def validate(self) -> None:
        """
        Check the zone counter invariants against the resident collection.

        Raises:
            EngineFault: on any inconsistency
        """
        residents_per_zone: dict[int, int] = {}
        workers_per_zone: dict[int, int] = {}
        for resident in self.residents.values():
            if resident.home_zone not in self.zone_map:
                raise EngineFault(
                    f"resident {resident.resident_id} lives in unknown zone", self.tick
                )
            residents_per_zone[resident.home_zone] = (
                residents_per_zone.get(resident.home_zone, 0) + 1
            )
            if resident.state.has_job != (resident.work_zone is not None):
                raise EngineFault(
                    f"resident {resident.resident_id} state {resident.state.value} "
                    f"inconsistent with work zone {resident.work_zone}",
                    self.tick,
                )
            if resident.work_zone is not None:
                workers_per_zone[resident.work_zone] = (
                    workers_per_zone.get(resident.work_zone, 0) + 1
                )

        for zone in self.zone_map.zones:
            for counter, expected in (
                ("residents", residents_per_zone.get(zone.zone_id, 0)),
                ("workers", workers_per_zone.get(zone.zone_id, 0)),
            ):
                value = getattr(zone, counter)
                if not 0 <= value <= zone.capacity:
                    raise EngineFault(
                        f"zone {zone.label} {counter}={value} outside [0, {zone.capacity}]",
                        self.tick,
                    )
                if value != expected:
                    raise EngineFault(
                        f"zone {zone.label} {counter}={value} but {expected} residents match",
                        self.tick,
                    )


@dataclass(frozen=True)
class Snapshot:
    """
    Read-only view of the city after a completed tick.

    Series handles are truncated at this snapshot's tick, so an old snapshot
    keeps yielding the same samples while the simulation moves on.
    """

    tick: int
    zones: tuple[Zone, ...]
    links: tuple[TransportLink, ...]
    residents: tuple[Resident, ...]
    congestion: Mapping[int, float]
    metrics: Mapping[str, float]
    series: Mapping[str, "MetricSeries"] = field(compare=False)

    @classmethod
    def capture(
        cls,
        state: SimulationState,
        congestion: Mapping[int, float],
        metrics: Mapping[str, float],
        series: Mapping[str, "MetricSeries"],
    ) -> Snapshot:
        return cls(
            tick=state.tick,
            zones=tuple(state.zone_map.zones),
            links=tuple(state.zone_map.links),
            residents=tuple(state.iter_residents()),
            congestion=MappingProxyType(dict(congestion)),
            metrics=MappingProxyType(dict(metrics)),
            series=MappingProxyType(dict(series)),
        )

    @property
    def zone_populations(self) -> dict[str, int]:
        return {zone.label: zone.residents for zone in self.zones}

    @property
    def zone_workers(self) -> dict[str, int]:
        return {zone.label: zone.workers for zone in self.zones}

    def count(self, state: EmploymentState) -> int:
        return sum(1 for r in self.residents if r.state is state)

    def resident(self, resident_id: int) -> Resident:
        """Resident by identifier. Residents are held in ascending id order."""
        i = bisect_left(self.residents, resident_id, key=lambda r: r.resident_id)
        if i < len(self.residents) and self.residents[i].resident_id == resident_id:
            return self.residents[i]
        raise KeyError(resident_id)

    def to_dict(self) -> dict[str, Any]:
        """Plain-data form of the snapshot (series handles excluded)."""
        return {
            "tick": self.tick,
            "zones": [
                {
                    "id": z.zone_id,
                    "name": z.name,
                    "capacity": z.capacity,
                    "residents": z.residents,
                    "workers": z.workers,
                }
                for z in self.zones
            ],
            "links": [
                {
                    "id": link.link_id,
                    "origin": link.origin,
                    "destination": link.destination,
                    "base_cost": link.base_cost,
                    "capacity": link.capacity,
                    "congestion": self.congestion.get(link.link_id, 0.0),
                }
                for link in self.links
            ],
            "residents": [
                {
                    "id": r.resident_id,
                    "home_zone": r.home_zone,
                    "work_zone": r.work_zone,
                    "state": r.state.value,
                    "income": r.income,
                    "route": list(r.route),
                    "commute_cost": r.commute_cost,
                    "wealth": r.wealth,
                }
                for r in self.residents
            ],
            "metrics": dict(sorted(self.metrics.items())),
        }

    def to_json(self) -> str:
        """Canonical JSON: identical states give identical bytes."""
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
