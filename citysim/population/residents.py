"""
Resident entities and population generation.

Residents reference their home and work zones by identifier only; zones
and residents live in flat collections owned by the simulation state.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

import numpy as np

from ..city.zones import ZoneMap


class EmploymentState(Enum):
    """Employment status of a resident."""

    EMPLOYED = "employed"  # Works in the home zone, no travel
    UNEMPLOYED = "unemployed"
    COMMUTING = "commuting"  # Works in another zone, travels every tick

    @property
    def has_job(self) -> bool:
        return self is not EmploymentState.UNEMPLOYED


@dataclass(frozen=True)
class Resident:
    """A resident/worker bound to a home zone."""

    resident_id: int
    home_zone: int
    income: float = 0.0
    work_zone: Optional[int] = None
    state: EmploymentState = EmploymentState.UNEMPLOYED
    route: tuple[int, ...] = ()
    commute_cost: float = 0.0
    wealth: float = 0.0  # Accumulated pay

    @property
    def is_commuting(self) -> bool:
        return self.state is EmploymentState.COMMUTING

    def hired(self, work_zone: int, route: tuple[int, ...], cost: float) -> Resident:
        """Copy of this resident holding a job in work_zone."""
        state = (
            EmploymentState.EMPLOYED if work_zone == self.home_zone else EmploymentState.COMMUTING
        )
        return replace(
            self,
            work_zone=work_zone,
            state=state,
            route=tuple(route) if state is EmploymentState.COMMUTING else (),
            commute_cost=float(cost) if state is EmploymentState.COMMUTING else 0.0,
        )

    def rerouted(self, route: tuple[int, ...], cost: float) -> Resident:
        return replace(self, route=tuple(route), commute_cost=float(cost))

    def paid(self) -> Resident:
        """Copy of this resident credited with one tick of income."""
        return replace(self, wealth=self.wealth + self.income)

    def dismissed(self) -> Resident:
        """Copy of this resident without a job."""
        return replace(
            self,
            work_zone=None,
            state=EmploymentState.UNEMPLOYED,
            route=(),
            commute_cost=0.0,
        )


@dataclass(frozen=True)
class StateChange:
    """A work-zone transition produced by one population update."""

    resident_id: int
    old_work_zone: Optional[int]
    new_work_zone: Optional[int]
    employment_state: EmploymentState


@dataclass
class PopulationParameters:
    """Parameters for generating a resident population."""

    total: int = 100
    income_min: float = 800.0
    income_max: float = 2500.0
    seed: int = 42


def generate_residents(
    zone_map: ZoneMap,
    params: PopulationParameters,
    first_id: int = 0,
    rng: Optional[np.random.Generator] = None,
) -> list[Resident]:
    """
    Create residents spread over zones in proportion to free housing.

    Each zone receives a share of ``params.total`` proportional to its free
    residential capacity (largest remainder rounding, never above the free
    capacity). Incomes are uniform in ``[income_min, income_max)``.

    Args:
        zone_map: Zones to populate (counters are not modified)
        params: Population parameters
        first_id: Identifier of the first generated resident
        rng: Random number generator (defaults to one seeded from params)

    Returns:
        Residents ordered by identifier, homes grouped by zone id
    """
    if rng is None:
        rng = np.random.default_rng(params.seed)

    zones = zone_map.zones
    free = np.array([z.capacity - z.residents for z in zones], dtype=float)
    total = int(min(params.total, free.sum()))
    if total <= 0 or not zones:
        return []

    shares = free / free.sum() * total
    counts = np.floor(shares).astype(int)
    remainder = total - counts.sum()
    if remainder > 0:
        # Largest fractional parts first, lowest zone id on ties
        order = sorted(range(len(zones)), key=lambda i: (-(shares[i] - counts[i]), i))
        for i in order:
            if remainder == 0:
                break
            if counts[i] < free[i]:
                counts[i] += 1
                remainder -= 1

    incomes = rng.uniform(params.income_min, params.income_max, size=total)

    residents = []
    next_id = first_id
    for zone, count in zip(zones, counts):
        for _ in range(int(count)):
            residents.append(
                Resident(
                    resident_id=next_id,
                    home_zone=zone.zone_id,
                    income=round(float(incomes[next_id - first_id]), 2),
                )
            )
            next_id += 1

    return residents
