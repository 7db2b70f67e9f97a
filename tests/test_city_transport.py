"""
Tests for citysim/city/transport.py module.

Tests cover:
- congestion_factor and link_loads_from_routes helpers
- TransportModel cost recomputation
- Cheapest route search and Unreachable handling
"""

import math

import numpy as np
import pytest

from citysim.city.transport import (
    Route,
    TransportModel,
    congestion_factor,
    link_loads_from_routes,
)
from citysim.city.zones import ZoneMap
from citysim.errors import EngineFault, Unreachable, ZoneNotFound


@pytest.fixture
def zone_map():
    """
    Four zones:

        A --5--> B
        A --1--> C --1--> B
        D isolated
    """
    zm = ZoneMap()
    for name in ("A", "B", "C", "D"):
        zm.add_zone(10, name)
    zm.add_link("A", "B", 5.0, capacity=10)  # link 0
    zm.add_link("A", "C", 1.0, capacity=2)  # link 1
    zm.add_link("C", "B", 1.0, capacity=2)  # link 2
    return zm


@pytest.fixture
def transport(zone_map):
    model = TransportModel()
    model.recompute(zone_map)
    return model


class TestHelpers:
    """Tests for module-level helpers."""

    def test_congestion_factor(self):
        load = np.array([0.0, 5.0, 20.0])
        capacity = np.array([10.0, 10.0, 10.0])
        np.testing.assert_allclose(congestion_factor(load, capacity), [0.0, 0.5, 2.0])

    def test_link_loads_from_routes(self):
        """Each route counts once per link it uses."""
        loads = link_loads_from_routes([(0, 1), (1,), ()])
        assert loads == {0: 1, 1: 2}


class TestRecompute:
    """Tests for per-tick cost recomputation."""

    def test_uncongested_costs_equal_base(self, transport):
        assert transport.link_cost(0) == pytest.approx(5.0)
        assert transport.congestion(0) == 0.0
        assert transport.average_congestion() == 0.0

    def test_cost_grows_with_load(self, zone_map):
        """cost = base * (1 + load / capacity)."""
        model = TransportModel()
        model.recompute(zone_map, {0: 5, 1: 2})
        assert model.link_cost(0) == pytest.approx(7.5)
        assert model.link_cost(1) == pytest.approx(2.0)
        assert model.congestion(1) == pytest.approx(1.0)
        assert model.load(1) == 2

    def test_cost_is_monotone_in_load(self, zone_map):
        model = TransportModel()
        costs = []
        for load in range(0, 10):
            model.recompute(zone_map, {1: load})
            costs.append(model.link_cost(1))
        assert costs == sorted(costs)
        assert costs[0] < costs[-1]

    def test_congestion_not_carried_over(self, zone_map):
        """A recompute without load clears the previous tick's congestion."""
        model = TransportModel()
        model.recompute(zone_map, {0: 10})
        assert model.congestion(0) == pytest.approx(1.0)
        model.recompute(zone_map)
        assert model.congestion(0) == 0.0
        assert model.link_cost(0) == pytest.approx(5.0)

    def test_read_before_recompute_is_fault(self):
        """Costs are undefined until the first recompute."""
        model = TransportModel()
        assert not model.is_ready
        with pytest.raises(EngineFault):
            model.link_cost(0)
        with pytest.raises(EngineFault):
            model.cheapest_route(0, 1)

    def test_empty_network(self):
        zm = ZoneMap()
        zm.add_zone(1)
        model = TransportModel()
        model.recompute(zm)
        assert model.costs_by_link == {}
        assert model.average_congestion() == 0.0


class TestRouting:
    """Tests for cheapest route search."""

    def test_cheapest_route_prefers_detour(self, transport):
        """Two cheap hops beat one expensive link."""
        route = transport.cheapest_route(0, 1)
        assert route == Route(origin=0, destination=1, links=(1, 2), cost=2.0)
        assert len(route) == 2

    def test_route_follows_congestion(self, zone_map):
        """Congestion on the detour switches the route to the direct link."""
        model = TransportModel()
        model.recompute(zone_map, {1: 6, 2: 6})
        route = model.cheapest_route(0, 1)
        assert route.links == (0,)
        assert route.cost == pytest.approx(5.0)

    def test_route_to_self_is_empty(self, transport):
        route = transport.cheapest_route(2, 2)
        assert route.links == ()
        assert route.cost == 0.0

    def test_unreachable(self, transport):
        """No path raises Unreachable with both endpoints."""
        with pytest.raises(Unreachable) as exc_info:
            transport.cheapest_route(0, 3)
        assert exc_info.value.origin == 0
        assert exc_info.value.destination == 3

    def test_links_are_directed(self, transport):
        with pytest.raises(Unreachable):
            transport.cheapest_route(1, 0)

    def test_travel_cost(self, transport):
        """travel_cost is infinite when unreachable."""
        assert transport.travel_cost(0, 1) == pytest.approx(2.0)
        assert math.isinf(transport.travel_cost(3, 0))

    def test_unknown_zone(self, transport):
        with pytest.raises(ZoneNotFound):
            transport.cheapest_route(0, 99)

    def test_shortest_costs(self, transport):
        costs = transport.shortest_costs(0)
        assert costs == pytest.approx({0: 0.0, 1: 2.0, 2: 1.0})

    def test_equal_cost_routes_are_deterministic(self):
        """Equal-cost paths resolve the same way every time."""
        zm = ZoneMap()
        for _ in range(4):
            zm.add_zone(5)
        zm.add_link(0, 1, 1.0)  # link 0
        zm.add_link(1, 3, 1.0)  # link 1
        zm.add_link(0, 2, 1.0)  # link 2
        zm.add_link(2, 3, 1.0)  # link 3

        routes = set()
        for _ in range(5):
            model = TransportModel()
            model.recompute(zm)
            routes.add(model.cheapest_route(0, 3).links)
        assert routes == {(0, 1)}

    def test_parallel_links_pick_cheapest(self, zone_map):
        """Between the same two zones the cheaper link carries the route."""
        zone_map.add_link("A", "C", 0.5, capacity=2)  # link 3
        model = TransportModel()
        model.recompute(zone_map)
        assert model.cheapest_route(0, 2).links == (3,)

        # Congest the new link past the old one
        model.recompute(zone_map, {3: 4})
        assert model.cheapest_route(0, 2).links == (1,)

    def test_parallel_links_equal_cost_use_lowest_id(self, zone_map):
        zone_map.add_link("A", "C", 1.0, capacity=2)  # link 3, same cost as link 1
        model = TransportModel()
        model.recompute(zone_map)
        assert model.cheapest_route(0, 2).links == (1,)
        assert model.cheapest_route(0, 1).links == (1, 2)

    def test_unknown_origin(self, transport):
        with pytest.raises(ZoneNotFound):
            transport.shortest_costs(99)
