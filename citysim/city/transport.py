"""
Transport model: congestion-dependent travel costs between zones.

Costs are tick-local. They are recomputed from the current per-link load at
the start of every tick and are never carried over to the next one.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional

import networkx as nx
import numpy as np

from ..errors import EngineFault, Unreachable, ZoneNotFound
from .zones import ZoneMap


@dataclass(frozen=True)
class Route:
    """A path through the link graph with its total cost."""

    origin: int
    destination: int
    links: tuple[int, ...]
    cost: float

    def __len__(self) -> int:
        return len(self.links)


def congestion_factor(load: np.ndarray, capacity: np.ndarray) -> np.ndarray:
    """Load relative to link capacity. Zero for an empty link."""
    return np.maximum(load, 0) / np.maximum(capacity, 1)


def link_loads_from_routes(routes: Iterable[tuple[int, ...]]) -> dict[int, int]:
    """
    Count commuters on each link.

    Args:
        routes: Link id sequences, one per commuting resident

    Returns:
        Mapping of link id to number of commuters traversing it
    """
    loads: dict[int, int] = {}
    for route in routes:
        for link_id in route:
            loads[link_id] = loads.get(link_id, 0) + 1
    return loads


class TransportModel:
    """
    Computes effective travel costs and cheapest routes.

    Effective cost of a link is ``base_cost * (1 + load / capacity)``, which
    grows monotonically with the number of commuters using it.
    """

    def __init__(self) -> None:
        self._zone_map: Optional[ZoneMap] = None
        self._link_ids: list[int] = []
        self._costs: dict[int, float] = {}
        self._congestion: dict[int, float] = {}
        self._loads: dict[int, int] = {}
        self._graph = nx.MultiDiGraph()
        self._tree_cache: dict[int, tuple[dict[int, float], dict[int, list[int]]]] = {}

    @property
    def is_ready(self) -> bool:
        return self._zone_map is not None

    def recompute(self, zone_map: ZoneMap, loads: Optional[dict[int, int]] = None) -> None:
        """
        Recompute all link costs for the current tick.

        Args:
            zone_map: Zone map of the state being advanced
            loads: Commuter count per link id (missing links carry no load)
        """
        loads = loads or {}
        links = zone_map.links
        self._zone_map = zone_map
        self._link_ids = [link.link_id for link in links]
        self._loads = {lid: int(loads.get(lid, 0)) for lid in self._link_ids}
        self._tree_cache = {}

        if not links:
            self._costs = {}
            self._congestion = {}
            self._graph = self._build_graph(zone_map)
            return

        base = np.array([link.base_cost for link in links], dtype=float)
        capacity = np.array([link.capacity for link in links], dtype=float)
        load = np.array([self._loads[lid] for lid in self._link_ids], dtype=float)

        factors = congestion_factor(load, capacity)
        costs = base * (1.0 + factors)

        self._congestion = {lid: float(f) for lid, f in zip(self._link_ids, factors)}
        self._costs = {lid: float(c) for lid, c in zip(self._link_ids, costs)}
        self._graph = self._build_graph(zone_map)

    def _build_graph(self, zone_map: ZoneMap) -> nx.MultiDiGraph:
        """One node per zone and one edge per link, keyed by link id."""
        graph = nx.MultiDiGraph()
        graph.add_nodes_from(zone.zone_id for zone in zone_map.zones)
        for link in zone_map.links:
            graph.add_edge(
                link.origin, link.destination, key=link.link_id, cost=self._costs[link.link_id]
            )
        return graph

    def _require_ready(self) -> ZoneMap:
        if self._zone_map is None:
            raise EngineFault("transport costs read before recompute")
        return self._zone_map

    def link_cost(self, link_id: int) -> float:
        self._require_ready()
        return self._costs[link_id]

    def congestion(self, link_id: int) -> float:
        """Congestion factor (load / capacity) of a link for this tick."""
        self._require_ready()
        return self._congestion[link_id]

    def load(self, link_id: int) -> int:
        self._require_ready()
        return self._loads[link_id]

    @property
    def congestion_by_link(self) -> dict[int, float]:
        return dict(self._congestion)

    @property
    def costs_by_link(self) -> dict[int, float]:
        return dict(self._costs)

    def average_congestion(self) -> float:
        """Mean congestion factor across all links."""
        if not self._congestion:
            return 0.0
        return float(np.mean(list(self._congestion.values())))

    def _shortest_tree(self, origin: int) -> tuple[dict[int, float], dict[int, list[int]]]:
        """Dijkstra from origin. Returns (distance, zone path) maps."""
        # Concurrent readers may build the same tree twice; both results are equal.
        if origin in self._tree_cache:
            return self._tree_cache[origin]

        self._require_ready()
        try:
            dist, paths = nx.single_source_dijkstra(self._graph, origin, weight="cost")
        except nx.NodeNotFound as e:
            raise ZoneNotFound(origin) from e

        self._tree_cache[origin] = (dist, paths)
        return dist, paths

    def _hop(self, origin: int, destination: int) -> int:
        """Cheapest parallel link between two adjacent zones, lowest id on ties."""
        edges = self._graph[origin][destination]
        return min(edges, key=lambda link_id: (edges[link_id]["cost"], link_id))

    def shortest_costs(self, origin: int) -> dict[int, float]:
        """Cost of the cheapest route from origin to every reachable zone."""
        dist, _ = self._shortest_tree(origin)
        return {zone_id: float(cost) for zone_id, cost in dist.items()}

    def cheapest_route(self, origin: int, destination: int) -> Route:
        """
        Find the cheapest route under the current tick's costs.

        Args:
            origin: Origin zone id
            destination: Destination zone id

        Returns:
            Route with link ids in travel order

        Raises:
            Unreachable: if no path exists
        """
        zone_map = self._require_ready()
        zone_map.zone_by_id(destination)
        dist, paths = self._shortest_tree(origin)
        if destination not in dist:
            raise Unreachable(origin, destination)

        path = paths[destination]
        links = tuple(self._hop(u, v) for u, v in zip(path, path[1:]))
        return Route(
            origin=origin,
            destination=destination,
            links=links,
            cost=float(dist[destination]),
        )

    def travel_cost(self, origin: int, destination: int) -> float:
        """Cost of the cheapest route, or infinity when unreachable."""
        dist, _ = self._shortest_tree(origin)
        return float(dist.get(destination, math.inf))
