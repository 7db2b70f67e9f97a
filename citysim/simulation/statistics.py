"""
Per-tick statistics and metric time series.

One sample is recorded for every completed tick, computed from that tick's
state only. Series are exposed as restartable iterables of (tick, value)
pairs for external plotting.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Optional

import numpy as np
import pandas as pd

from ..city.transport import TransportModel
from ..errors import EngineFault
from ..population.residents import EmploymentState, StateChange
from .state import SimulationState

CORE_METRICS = (
    "employment_rate",
    "average_commute_cost",
    "employed",
    "commuting",
    "unemployed",
    "average_income",
    "average_wealth",
    "average_congestion",
    "transitions",
)


def population_metric(zone_label: str) -> str:
    return f"population[{zone_label}]"


def workers_metric(zone_label: str) -> str:
    return f"workers[{zone_label}]"


@dataclass
class TickSample:
    """Metric values of one completed tick."""

    tick: int
    values: dict[str, float] = field(default_factory=dict)

    def __getitem__(self, metric: str) -> float:
        return self.values[metric]


class MetricSeries:
    """
    A finite, restartable view over one metric's samples.

    Iteration is lazy; each call to ``iter()`` starts from the first sample.
    The view is bounded by the number of samples recorded when it was made.
    """

    def __init__(self, name: str, ticks: list[int], values: list[float], length: int):
        self.name = name
        self._ticks = ticks
        self._values = values
        self._length = length

    def __iter__(self) -> Iterator[tuple[int, float]]:
        for i in range(self._length):
            yield self._ticks[i], self._values[i]

    def __len__(self) -> int:
        return self._length

    def __repr__(self) -> str:
        return f"MetricSeries({self.name!r}, samples={self._length})"

    @property
    def values(self) -> list[float]:
        return self._values[: self._length]

    @property
    def ticks(self) -> list[int]:
        return self._ticks[: self._length]


class StatisticsCollector:
    """Aggregates simulation state into metric time series."""

    def __init__(self) -> None:
        self.samples: list[TickSample] = []
        self._ticks: list[int] = []
        self._series: dict[str, list[float]] = {}

    def aggregate(
        self,
        state: SimulationState,
        changes: list[StateChange],
        transport: TransportModel,
    ) -> TickSample:
        """
        Compute and record the metrics of a completed tick.

        Args:
            state: State at the end of the tick
            changes: Transitions produced during the tick
            transport: Transport model used during the tick

        Returns:
            The recorded sample
        """
        sample = self.prepare(state, changes, transport)
        self.record(sample)
        return sample

    def prepare(
        self,
        state: SimulationState,
        changes: list[StateChange],
        transport: TransportModel,
    ) -> TickSample:
        """Compute a tick's sample without recording it."""
        self._check_next(state.tick)
        return TickSample(tick=state.tick, values=self.compute(state, changes, transport))

    def _check_next(self, tick: int) -> None:
        if self._ticks and tick != self._ticks[-1] + 1:
            raise EngineFault(f"statistics expected tick {self._ticks[-1] + 1}", tick)

    @staticmethod
    def compute(
        state: SimulationState,
        changes: list[StateChange],
        transport: TransportModel,
    ) -> dict[str, float]:
        residents = list(state.residents.values())
        total = len(residents)

        states = np.array([r.state.value for r in residents], dtype=object)
        employed = int(np.sum(states == EmploymentState.EMPLOYED.value))
        commuting = int(np.sum(states == EmploymentState.COMMUTING.value))
        unemployed = total - employed - commuting

        commute_costs = [r.commute_cost for r in residents if r.is_commuting]
        incomes = [r.income for r in residents if r.state.has_job]
        wealth = [r.wealth for r in residents]

        values: dict[str, float] = {
            "employment_rate": (employed + commuting) / total if total else 0.0,
            "average_commute_cost": float(np.mean(commute_costs)) if commute_costs else 0.0,
            "employed": float(employed),
            "commuting": float(commuting),
            "unemployed": float(unemployed),
            "average_income": float(np.mean(incomes)) if incomes else 0.0,
            "average_wealth": float(np.mean(wealth)) if wealth else 0.0,
            "average_congestion": transport.average_congestion(),
            "transitions": float(len(changes)),
        }
        for zone in state.zone_map.zones:
            values[population_metric(zone.label)] = float(zone.residents)
            values[workers_metric(zone.label)] = float(zone.workers)

        return values

    def record(self, sample: TickSample) -> None:
        """Append a sample. Ticks must be consecutive."""
        self._check_next(sample.tick)
        if self._ticks and set(sample.values) != set(self._series):
            raise EngineFault("metric set changed mid-run", sample.tick)
        for name, value in sample.values.items():
            self._series.setdefault(name, []).append(value)
        self._ticks.append(sample.tick)
        self.samples.append(sample)

    @property
    def metric_names(self) -> list[str]:
        return list(self._series)

    def __len__(self) -> int:
        return len(self._ticks)

    def latest(self) -> Optional[TickSample]:
        return self.samples[-1] if self.samples else None

    def series(self, metric_name: str) -> MetricSeries:
        """
        Time series of a metric.

        Raises:
            KeyError: if the metric is unknown
        """
        if metric_name not in self._series:
            raise KeyError(f"Unknown metric: {metric_name}")
        return MetricSeries(
            metric_name, self._ticks, self._series[metric_name], len(self._ticks)
        )

    def all_series(self) -> dict[str, MetricSeries]:
        return {name: self.series(name) for name in self._series}

    def to_dataframe(self) -> pd.DataFrame:
        """All samples as a long (tick, metric, value) table."""
        if not self.samples:
            return pd.DataFrame(columns=["tick", "metric", "value"])

        records = [
            {"tick": sample.tick, "metric": name, "value": value}
            for sample in self.samples
            for name, value in sample.values.items()
        ]
        return pd.DataFrame(records)

    def reset(self) -> None:
        """Drop all samples."""
        self.samples = []
        self._ticks = []
        self._series = {}
