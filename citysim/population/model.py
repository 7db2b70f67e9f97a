"""
Population model: per-tick employment and commute decisions.

Each update runs in two steps. Decisions are computed read-only, possibly
in parallel, against the tick's transport costs and the pre-update zone
vacancies. The resulting intents are then applied one at a time in
ascending resident id through the zone map's controlled accessors, so the
outcome does not depend on the number of workers or on thread scheduling.
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING, Optional

from ..city.transport import TransportModel
from ..errors import CapacityExceeded, Unreachable
from .residents import EmploymentState, Resident, StateChange

if TYPE_CHECKING:
    from ..simulation.state import SimulationState

logger = logging.getLogger(__name__)


class Action(Enum):
    """What a resident intends to do this tick."""

    TAKE_JOB = auto()
    KEEP_JOB = auto()  # Stay, possibly on a new route
    QUIT_JOB = auto()


@dataclass(frozen=True)
class Intent:
    """A resident's decision, computed without touching shared state."""

    resident_id: int
    action: Action
    work_zone: Optional[int] = None
    route: tuple[int, ...] = ()
    cost: float = 0.0


@dataclass
class PopulationRules:
    """Decision rule parameters."""

    commute_threshold: float = 2.0
    allow_home_zone_jobs: bool = False


class PopulationModel:
    """
    Decides and applies employment transitions for all residents.

    Rule: an unemployed resident takes a job in the zone with available
    capacity whose route cost is lowest and strictly below the threshold
    (lowest zone id on equal cost). Residents are served in ascending id,
    so the lowest identifiers win contested slots. A commuter keeps the job
    while the route stays reachable and its cost does not exceed the
    threshold; otherwise the job is released. Everyone holding a job once
    the transitions are applied is paid one tick of income.
    """

    def __init__(self, rules: Optional[PopulationRules] = None, workers: int = 1):
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")
        self.rules = rules or PopulationRules()
        self.workers = workers
        self._executor: Optional[ThreadPoolExecutor] = None

    # Decision step (read-only)

    def decide(
        self,
        resident: Resident,
        state: SimulationState,
        transport: TransportModel,
    ) -> Optional[Intent]:
        """
        Compute a resident's intent for this tick.

        Returns:
            Intent, or None when no rule applies
        """
        match resident.state:
            case EmploymentState.UNEMPLOYED:
                return self._seek_job(resident, state, transport)
            case EmploymentState.COMMUTING:
                return self._review_commute(resident, transport)
            case _:
                return None

    def _seek_job(
        self,
        resident: Resident,
        state: SimulationState,
        transport: TransportModel,
    ) -> Optional[Intent]:
        costs = transport.shortest_costs(resident.home_zone)
        threshold = self.rules.commute_threshold

        best: Optional[tuple[float, int]] = None
        for zone in state.zone_map.zones:
            if zone.zone_id == resident.home_zone and not self.rules.allow_home_zone_jobs:
                continue
            if not zone.has_vacancy():
                continue
            cost = costs.get(zone.zone_id, math.inf)
            if not cost < threshold:
                continue
            if best is None or (cost, zone.zone_id) < best:
                best = (cost, zone.zone_id)

        if best is None:
            return None

        cost, zone_id = best
        if zone_id == resident.home_zone:
            return Intent(resident.resident_id, Action.TAKE_JOB, zone_id)
        route = transport.cheapest_route(resident.home_zone, zone_id)
        return Intent(resident.resident_id, Action.TAKE_JOB, zone_id, route.links, route.cost)

    def _review_commute(self, resident: Resident, transport: TransportModel) -> Intent:
        try:
            route = transport.cheapest_route(resident.home_zone, resident.work_zone)
        except Unreachable:
            return Intent(resident.resident_id, Action.QUIT_JOB)

        if route.cost > self.rules.commute_threshold:
            return Intent(resident.resident_id, Action.QUIT_JOB)
        return Intent(
            resident.resident_id,
            Action.KEEP_JOB,
            resident.work_zone,
            route.links,
            route.cost,
        )

    def decide_all(
        self,
        state: SimulationState,
        transport: TransportModel,
    ) -> list[Intent]:
        """Intents of all residents, ordered by resident id."""
        residents = list(state.iter_residents())
        if self.workers == 1 or len(residents) < 2:
            intents = [self.decide(r, state, transport) for r in residents]
        else:
            chunk_size = math.ceil(len(residents) / self.workers)
            chunks = [
                residents[i : i + chunk_size] for i in range(0, len(residents), chunk_size)
            ]

            def decide_chunk(chunk: list[Resident]) -> list[Optional[Intent]]:
                return [self.decide(r, state, transport) for r in chunk]

            # map() preserves chunk order, so intents stay in resident id order
            intents = []
            for chunk_result in self._pool().map(decide_chunk, chunks):
                intents.extend(chunk_result)

        return [intent for intent in intents if intent is not None]

    # Apply step (sequential)

    def apply(self, state: SimulationState, intents: list[Intent]) -> list[StateChange]:
        """
        Apply intents in ascending resident id order.

        A capacity conflict leaves the resident in its prior state.
        """
        changes: list[StateChange] = []
        zone_map = state.zone_map

        for intent in sorted(intents, key=lambda i: i.resident_id):
            resident = state.residents[intent.resident_id]
            old_zone = resident.work_zone

            match intent.action:
                case Action.TAKE_JOB:
                    try:
                        zone_map.assign_worker(intent.work_zone)
                    except CapacityExceeded as e:
                        logger.debug("Resident %d keeps prior state: %s", resident.resident_id, e)
                        continue
                    updated = resident.hired(intent.work_zone, intent.route, intent.cost)

                case Action.QUIT_JOB:
                    zone_map.release_worker(old_zone)
                    updated = resident.dismissed()

                case Action.KEEP_JOB:
                    state.residents[resident.resident_id] = resident.rerouted(
                        intent.route, intent.cost
                    )
                    continue

            state.residents[resident.resident_id] = updated
            changes.append(
                StateChange(
                    resident_id=resident.resident_id,
                    old_work_zone=old_zone,
                    new_work_zone=updated.work_zone,
                    employment_state=updated.state,
                )
            )

        return changes

    def update_all(
        self,
        tick: int,
        state: SimulationState,
        transport: TransportModel,
    ) -> list[StateChange]:
        """
        Run one population update on the given (working) state.

        Args:
            tick: Tick being computed
            state: State to update in place
            transport: Transport model already recomputed for this tick

        Returns:
            State changes, in resident id order
        """
        intents = self.decide_all(state, transport)
        changes = self.apply(state, intents)
        paid = self.pay(state)
        logger.debug(
            "Tick %d: %d intents, %d transitions, %d paid",
            tick,
            len(intents),
            len(changes),
            paid,
        )
        return changes

    def pay(self, state: SimulationState) -> int:
        """
        Credit every resident holding a job with one tick of income.

        Runs after the transitions of the tick, in ascending resident id.

        Returns:
            Number of residents paid
        """
        paid = 0
        for resident in list(state.iter_residents()):
            if resident.state.has_job:
                state.residents[resident.resident_id] = resident.paid()
                paid += 1
        return paid

    def _pool(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.workers, thread_name_prefix="citysim-decide"
            )
        return self._executor

    def close(self) -> None:
        """Release the worker threads."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
