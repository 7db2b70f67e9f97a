"""City topology: zones, transport links and travel costs."""

from .transport import Route, TransportModel, congestion_factor, link_loads_from_routes
from .zones import DEFAULT_LINK_CAPACITY, TransportLink, Zone, ZoneMap

__all__ = [
    # Zones
    "Zone",
    "TransportLink",
    "ZoneMap",
    "DEFAULT_LINK_CAPACITY",
    # Transport
    "Route",
    "TransportModel",
    "congestion_factor",
    "link_loads_from_routes",
]
