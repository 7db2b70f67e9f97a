"""
Simulation clock: tick scheduling and phase ordering.

A tick runs its phases strictly in order. Pause and stop requests are only
honoured between phases, so a phase is never interrupted. A tick works on
its own context; nothing becomes visible until the final phase publishes.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, NamedTuple, Optional, Sequence

from ..errors import ClockStateError, EngineFault

logger = logging.getLogger(__name__)


class ClockState(Enum):
    """Lifecycle of the simulation clock."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"


@dataclass
class TickContext:
    """Scratch data shared by the phases of a single tick."""

    tick: int
    state: Any = None
    changes: list = field(default_factory=list)
    sample: Any = None
    snapshot: Any = None


class Phase(NamedTuple):
    name: str
    run: Callable[[TickContext], None]


class SimulationClock:
    """
    Drives ticks through an ordered list of phases.

    State machine: IDLE -> RUNNING -> (PAUSED | STOPPED). A bounded run
    returns to IDLE when its last tick completes. STOPPED is terminal.
    """

    def __init__(
        self,
        phases: Sequence[Phase],
        begin_tick: Callable[[int], TickContext],
        start_tick: int = 0,
    ):
        """
        Initialize the clock.

        Args:
            phases: Phases executed in order for every tick
            begin_tick: Creates the context of a tick from its number
            start_tick: Number of the last completed tick
        """
        if not phases:
            raise ValueError("clock needs at least one phase")
        self.phases = list(phases)
        self._begin_tick = begin_tick
        self.current_tick = start_tick

        self._cond = threading.Condition()
        self._state = ClockState.IDLE
        self._listeners: list[Callable[[Any], None]] = []
        self._thread: Optional[threading.Thread] = None
        self._fault: Optional[BaseException] = None

    @property
    def state(self) -> ClockState:
        with self._cond:
            return self._state

    @property
    def fault(self) -> Optional[BaseException]:
        return self._fault

    def add_listener(self, listener: Callable[[Any], None]) -> None:
        """Call listener with every published snapshot. Its errors are logged."""
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[Any], None]) -> None:
        self._listeners.remove(listener)

    # Control

    def run(self, max_ticks: Optional[int] = None) -> int:
        """
        Run ticks in the calling thread.

        Args:
            max_ticks: Number of ticks to run, or None to run until stopped

        Returns:
            Number of ticks completed
        """
        if max_ticks is not None and max_ticks < 0:
            raise ValueError(f"max_ticks must be >= 0, got {max_ticks}")

        with self._cond:
            if self._state is ClockState.STOPPED:
                raise ClockStateError("clock is stopped")
            if self._state is not ClockState.IDLE:
                raise ClockStateError(f"clock is already {self._state.value}")
            self._state = ClockState.RUNNING
            self._cond.notify_all()

        completed = 0
        try:
            while max_ticks is None or completed < max_ticks:
                if not self._checkpoint():
                    break
                if not self._run_tick():
                    break
                completed += 1
        finally:
            with self._cond:
                if self._state in (ClockState.RUNNING, ClockState.PAUSED):
                    self._state = ClockState.IDLE
                self._cond.notify_all()

        logger.debug("Clock ran %d ticks, now at tick %d", completed, self.current_tick)
        return completed

    def start(self, max_ticks: Optional[int] = None) -> threading.Thread:
        """Run ticks in a background thread."""
        with self._cond:
            if self._thread is not None and self._thread.is_alive():
                raise ClockStateError("clock already has a running thread")
            if self._state is ClockState.STOPPED:
                raise ClockStateError("clock is stopped")

        def target() -> None:
            try:
                self.run(max_ticks)
            except BaseException as e:  # re-raised by join()
                self._fault = e

        self._thread = threading.Thread(target=target, name="citysim-clock", daemon=True)
        self._thread.start()
        return self._thread

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the background run and re-raise its fault, if any."""
        if self._thread is not None:
            self._thread.join(timeout)
        if self._fault is not None:
            fault, self._fault = self._fault, None
            raise fault

    def pause(self) -> bool:
        """
        Request a pause at the next phase boundary.

        Returns:
            True if the clock was running
        """
        with self._cond:
            if self._state is not ClockState.RUNNING:
                logger.debug("pause() ignored in state %s", self._state.value)
                return False
            self._state = ClockState.PAUSED
            self._cond.notify_all()
            return True

    def resume(self) -> bool:
        """Resume a paused clock. Returns True if it was paused."""
        with self._cond:
            if self._state is not ClockState.PAUSED:
                logger.debug("resume() ignored in state %s", self._state.value)
                return False
            self._state = ClockState.RUNNING
            self._cond.notify_all()
            return True

    def stop(self) -> None:
        """Stop the clock for good. An in-progress tick is discarded."""
        with self._cond:
            self._state = ClockState.STOPPED
            self._cond.notify_all()

    def wait_for(self, *states: ClockState, timeout: Optional[float] = None) -> bool:
        """Block until the clock is in one of the given states."""
        with self._cond:
            return self._cond.wait_for(lambda: self._state in states, timeout)

    # Tick execution

    def _checkpoint(self) -> bool:
        """Phase boundary. Waits while paused; False once stopped."""
        with self._cond:
            self._cond.wait_for(lambda: self._state is not ClockState.PAUSED)
            return self._state is not ClockState.STOPPED

    def _run_tick(self) -> bool:
        tick = self.current_tick + 1
        try:
            context = self._begin_tick(tick)
            for index, phase in enumerate(self.phases):
                if index and not self._checkpoint():
                    logger.info("Tick %d discarded before phase %s", tick, phase.name)
                    return False
                phase.run(context)

            self.current_tick = tick
        except Exception as e:
            with self._cond:
                self._state = ClockState.STOPPED
                self._cond.notify_all()
            logger.error("Tick %d failed: %s", tick, e)
            if isinstance(e, EngineFault):
                if e.tick is not None:
                    raise
                raise EngineFault(str(e), tick) from e
            raise EngineFault(f"{type(e).__name__}: {e}", tick) from e

        self._notify(context.snapshot)
        return True

    def _notify(self, snapshot: Any) -> None:
        """Hand a published snapshot to listeners. A failing listener does not fail the tick."""
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Listener %r failed at tick %d", listener, self.current_tick)
