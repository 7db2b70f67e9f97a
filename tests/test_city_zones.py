"""
Tests for citysim/city/zones.py module.

Tests cover:
- Zone and TransportLink dataclasses
- ZoneMap construction and validation
- ZoneMap lookups
- Controlled counter accessors and the capacity invariant
"""

import dataclasses

import pytest

from citysim.city.zones import DEFAULT_LINK_CAPACITY, TransportLink, Zone, ZoneMap
from citysim.errors import CapacityExceeded, ConfigurationError, EngineFault, ZoneNotFound


@pytest.fixture
def zone_map():
    """Three zones with a small link chain A -> B -> C."""
    zm = ZoneMap()
    zm.add_zone(10, "A")
    zm.add_zone(5, "B")
    zm.add_zone(3, "C")
    zm.add_link("A", "B", 1.0)
    zm.add_link("B", "C", 2.0, capacity=4)
    return zm


class TestZone:
    """Tests for Zone dataclass."""

    def test_default_counters(self):
        """New zones start empty."""
        zone = Zone(zone_id=0, capacity=4)
        assert zone.residents == 0
        assert zone.workers == 0
        assert zone.vacancies == 4
        assert zone.has_vacancy()

    def test_label_falls_back_to_id(self):
        """Unnamed zones are labelled by identifier."""
        assert Zone(zone_id=3, capacity=1).label == "3"
        assert Zone(zone_id=3, capacity=1, name="port").label == "port"

    def test_zone_is_immutable(self):
        """Zones cannot be mutated directly."""
        zone = Zone(zone_id=0, capacity=4)
        with pytest.raises(dataclasses.FrozenInstanceError):
            zone.workers = 2


class TestZoneMapConstruction:
    """Tests for adding zones and links."""

    def test_zone_ids_assigned_in_order(self):
        """add_zone returns consecutive identifiers."""
        zm = ZoneMap()
        assert zm.add_zone(1) == 0
        assert zm.add_zone(2) == 1
        assert len(zm) == 2

    @pytest.mark.parametrize("capacity", [0, -3, 1.5, True, "10"])
    def test_invalid_capacity(self, capacity):
        """Capacity must be a positive integer."""
        with pytest.raises(ConfigurationError) as exc_info:
            ZoneMap().add_zone(capacity)
        assert exc_info.value.field == "capacity"

    def test_duplicate_name(self):
        """Zone names must be unique."""
        zm = ZoneMap()
        zm.add_zone(1, "A")
        with pytest.raises(ConfigurationError, match="duplicate"):
            zm.add_zone(1, "A")

    def test_link_defaults(self, zone_map):
        """Links get the default capacity when none is given."""
        link = zone_map.link(0)
        assert link == TransportLink(
            link_id=0, origin=0, destination=1, base_cost=1.0, capacity=DEFAULT_LINK_CAPACITY
        )
        assert zone_map.link(1).capacity == 4

    def test_map_default_link_capacity(self):
        """The map-level default capacity applies to new links."""
        zm = ZoneMap(default_link_capacity=7)
        zm.add_zone(1)
        zm.add_zone(1)
        zm.add_link(0, 1, 1.0)
        assert zm.link(0).capacity == 7

    def test_link_to_unknown_zone(self, zone_map):
        """Links must reference existing zones."""
        with pytest.raises(ZoneNotFound) as exc_info:
            zone_map.add_link("A", "Z", 1.0)
        assert exc_info.value.field == "destination"
        assert isinstance(exc_info.value, ConfigurationError)

    def test_self_link_rejected(self, zone_map):
        """A link cannot start and end in the same zone."""
        with pytest.raises(ConfigurationError):
            zone_map.add_link("A", "A", 1.0)

    @pytest.mark.parametrize("cost", [0, -1.0, "cheap", float("inf")])
    def test_invalid_base_cost(self, zone_map, cost):
        """Base cost must be a positive finite number."""
        with pytest.raises(ConfigurationError) as exc_info:
            zone_map.add_link("A", "C", cost)
        assert exc_info.value.field == "base_cost"

    def test_invalid_link_capacity(self, zone_map):
        """Link capacity must be positive."""
        with pytest.raises(ConfigurationError):
            zone_map.add_link("A", "C", 1.0, capacity=0)


class TestZoneMapLookup:
    """Tests for zone and link lookups."""

    def test_zone_by_id(self, zone_map):
        assert zone_map.zone_by_id(1).name == "B"

    def test_zone_by_id_not_found(self, zone_map):
        """Unknown ids raise ZoneNotFound, a LookupError."""
        with pytest.raises(ZoneNotFound):
            zone_map.zone_by_id(42)
        with pytest.raises(LookupError):
            zone_map.zone_by_id(42)

    def test_zone_by_name(self, zone_map):
        assert zone_map.zone_by_name("C").zone_id == 2
        with pytest.raises(ZoneNotFound):
            zone_map.zone_by_name("nowhere")

    def test_resolve_name_or_id(self, zone_map):
        """resolve accepts names and identifiers."""
        assert zone_map.resolve("B") == 1
        assert zone_map.resolve(2) == 2
        with pytest.raises(ZoneNotFound):
            zone_map.resolve(True)

    def test_links_from(self, zone_map):
        """Outgoing links are listed in id order."""
        zone_map.add_link("A", "C", 5.0)
        assert [link.link_id for link in zone_map.links_from(0)] == [0, 2]
        assert zone_map.links_from(2) == []

    def test_contains_and_iter(self, zone_map):
        assert 0 in zone_map
        assert 9 not in zone_map
        assert [z.name for z in zone_map] == ["A", "B", "C"]


class TestCounters:
    """Tests for the controlled counter accessors."""

    def test_assign_and_release_worker(self, zone_map):
        """Counters move through replaced zone values."""
        before = zone_map.zone_by_id(1)
        after = zone_map.assign_worker(1)
        assert after.workers == 1
        assert before.workers == 0
        assert zone_map.release_worker(1).workers == 0

    def test_worker_capacity_enforced(self, zone_map):
        """Assigning past capacity raises CapacityExceeded."""
        for _ in range(3):
            zone_map.assign_worker(2)
        with pytest.raises(CapacityExceeded) as exc_info:
            zone_map.assign_worker(2)
        assert exc_info.value.zone_id == 2
        assert zone_map.zone_by_id(2).workers == 3

    def test_resident_capacity_enforced(self, zone_map):
        for _ in range(3):
            zone_map.add_resident(2)
        with pytest.raises(CapacityExceeded):
            zone_map.add_resident(2)

    def test_negative_counter_is_fault(self, zone_map):
        """Releasing from an empty zone is an invariant breach."""
        with pytest.raises(EngineFault):
            zone_map.release_worker(0)
        with pytest.raises(EngineFault):
            zone_map.remove_resident(0)

    def test_copy_is_independent(self, zone_map):
        """Changes on a copy do not leak into the original."""
        copy = zone_map.copy()
        copy.assign_worker(0)
        copy.add_zone(2, "D")
        copy.add_link("C", "D", 1.0)

        assert zone_map.zone_by_id(0).workers == 0
        assert len(zone_map) == 3
        assert zone_map.links_from(2) == []
        assert copy.zone_by_id(0).workers == 1
