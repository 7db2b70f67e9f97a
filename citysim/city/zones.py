"""
Zone map for the city simulation.

Holds the slow-changing topology of the city: zones with their capacities
and the directed transport links connecting them. Resident and worker
counters are only changed through the controlled accessors, which enforce
the capacity invariant.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Iterator, Optional, Union

from ..errors import CapacityExceeded, ConfigurationError, EngineFault, ZoneNotFound

DEFAULT_LINK_CAPACITY = 100

ZoneRef = Union[int, str]


@dataclass(frozen=True)
class Zone:
    """A city zone (district) with residential and job capacity."""

    zone_id: int
    capacity: int
    name: Optional[str] = None
    residents: int = 0
    workers: int = 0

    @property
    def label(self) -> str:
        """Name used in metric keys and reports."""
        return self.name if self.name is not None else str(self.zone_id)

    @property
    def vacancies(self) -> int:
        """Free job slots."""
        return self.capacity - self.workers

    def has_vacancy(self) -> bool:
        return self.workers < self.capacity


@dataclass(frozen=True)
class TransportLink:
    """A directed transport line between two zones."""

    link_id: int
    origin: int
    destination: int
    base_cost: float
    capacity: int = DEFAULT_LINK_CAPACITY


@dataclass
class ZoneMap:
    """
    Zones and transport links of a city.

    Zones and links are kept in flat collections indexed by identifier.
    Identifiers are assigned in insertion order, starting at zero.
    """

    zones_by_id: dict[int, Zone] = field(default_factory=dict)
    links_by_id: dict[int, TransportLink] = field(default_factory=dict)
    default_link_capacity: int = DEFAULT_LINK_CAPACITY

    _names: dict[str, int] = field(default_factory=dict, repr=False)
    _outgoing: dict[int, list[int]] = field(default_factory=dict, repr=False)

    # Construction

    def add_zone(self, capacity: int, name: Optional[str] = None) -> int:
        """
        Add a zone to the map.

        Args:
            capacity: Maximum number of residents (and of workers)
            name: Optional unique display name

        Returns:
            Identifier of the new zone
        """
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity <= 0:
            raise ConfigurationError(
                f"capacity must be a positive integer, got {capacity!r}", "capacity"
            )
        if name is not None:
            name = str(name)
            if name in self._names:
                raise ConfigurationError(f"duplicate zone name {name!r}", "name")

        zone_id = len(self.zones_by_id)
        self.zones_by_id[zone_id] = Zone(zone_id=zone_id, capacity=capacity, name=name)
        self._outgoing[zone_id] = []
        if name is not None:
            self._names[name] = zone_id
        return zone_id

    def add_link(
        self,
        origin: ZoneRef,
        destination: ZoneRef,
        base_cost: float,
        capacity: Optional[int] = None,
    ) -> int:
        """
        Add a directed transport link.

        Args:
            origin: Origin zone id or name
            destination: Destination zone id or name
            base_cost: Travel cost without congestion
            capacity: Commuter load at which the cost doubles

        Returns:
            Identifier of the new link
        """
        origin_id = self.resolve(origin, "origin")
        destination_id = self.resolve(destination, "destination")
        if origin_id == destination_id:
            raise ConfigurationError("link must connect two different zones", "destination")

        try:
            cost = float(base_cost)
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"base_cost must be a number, got {base_cost!r}", "base_cost"
            ) from None
        if not cost > 0 or cost == float("inf"):
            raise ConfigurationError(f"base_cost must be positive, got {base_cost!r}", "base_cost")

        if capacity is None:
            capacity = self.default_link_capacity
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity <= 0:
            raise ConfigurationError(
                f"capacity must be a positive integer, got {capacity!r}", "capacity"
            )

        link_id = len(self.links_by_id)
        self.links_by_id[link_id] = TransportLink(
            link_id=link_id,
            origin=origin_id,
            destination=destination_id,
            base_cost=cost,
            capacity=capacity,
        )
        self._outgoing[origin_id].append(link_id)
        return link_id

    # Lookup

    def zone_by_id(self, zone_id: int) -> Zone:
        """Get a zone by identifier, raising ZoneNotFound if missing."""
        try:
            return self.zones_by_id[zone_id]
        except (KeyError, TypeError):
            raise ZoneNotFound(zone_id) from None

    def zone_by_name(self, name: str) -> Zone:
        """Get a zone by display name."""
        if name not in self._names:
            raise ZoneNotFound(name)
        return self.zones_by_id[self._names[name]]

    def resolve(self, ref: ZoneRef, field_name: Optional[str] = None) -> int:
        """Resolve a zone name or identifier to an identifier."""
        if isinstance(ref, str) and ref in self._names:
            return self._names[ref]
        if isinstance(ref, int) and not isinstance(ref, bool) and ref in self.zones_by_id:
            return ref
        raise ZoneNotFound(ref, field_name)

    def link(self, link_id: int) -> TransportLink:
        return self.links_by_id[link_id]

    def links_from(self, zone_id: int) -> list[TransportLink]:
        """Outgoing links of a zone, in link id order."""
        return [self.links_by_id[lid] for lid in self._outgoing.get(zone_id, [])]

    @property
    def zones(self) -> list[Zone]:
        return [self.zones_by_id[zid] for zid in sorted(self.zones_by_id)]

    @property
    def links(self) -> list[TransportLink]:
        return [self.links_by_id[lid] for lid in sorted(self.links_by_id)]

    def __len__(self) -> int:
        return len(self.zones_by_id)

    def __contains__(self, zone_id: object) -> bool:
        return zone_id in self.zones_by_id

    def __iter__(self) -> Iterator[Zone]:
        return iter(self.zones)

    # Controlled counter accessors

    def add_resident(self, zone_id: int) -> Zone:
        """Register a resident living in the zone."""
        return self._adjust(zone_id, "residents", 1)

    def remove_resident(self, zone_id: int) -> Zone:
        return self._adjust(zone_id, "residents", -1)

    def assign_worker(self, zone_id: int) -> Zone:
        """Occupy a job slot in the zone, raising CapacityExceeded when full."""
        return self._adjust(zone_id, "workers", 1)

    def release_worker(self, zone_id: int) -> Zone:
        """Free a job slot in the zone."""
        return self._adjust(zone_id, "workers", -1)

    def _adjust(self, zone_id: int, counter: str, delta: int) -> Zone:
        zone = self.zone_by_id(zone_id)
        value = getattr(zone, counter) + delta
        if value > zone.capacity:
            raise CapacityExceeded(zone_id, counter, zone.capacity)
        if value < 0:
            raise EngineFault(f"zone {zone_id} {counter} would become negative")
        updated = replace(zone, **{counter: value})
        self.zones_by_id[zone_id] = updated
        return updated

    def copy(self) -> ZoneMap:
        """
        Copy the map for a new tick.

        Zones and links are immutable, so only the containers are copied.
        """
        return ZoneMap(
            zones_by_id=dict(self.zones_by_id),
            links_by_id=dict(self.links_by_id),
            default_link_capacity=self.default_link_capacity,
            _names=dict(self._names),
            _outgoing={zid: list(lids) for zid, lids in self._outgoing.items()},
        )
