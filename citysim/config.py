"""
Configuration loading and validation.

A city is described by a mapping (usually read from YAML) with zones,
links, residents and simulation settings. Parsing fails fast with a
ConfigurationError naming the offending field, before any tick runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import pandas as pd
import yaml

from .city.zones import DEFAULT_LINK_CAPACITY, ZoneRef
from .errors import ConfigurationError
from .population.residents import PopulationParameters

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class SimulationConfig:
    """Rule and scheduling settings for a simulation run."""

    commute_threshold: float = 2.0
    workers: int = 1
    default_link_capacity: int = DEFAULT_LINK_CAPACITY
    allow_home_zone_jobs: bool = False


@dataclass
class ZoneSpec:
    capacity: int
    name: Optional[str] = None


@dataclass
class LinkSpec:
    origin: ZoneRef
    destination: ZoneRef
    base_cost: float
    capacity: Optional[int] = None


@dataclass
class ResidentSpec:
    home_zone: ZoneRef
    work_zone: Optional[ZoneRef] = None
    income: float = 0.0


@dataclass
class CityConfig:
    """Validated description of a city and its simulation settings."""

    zones: list[ZoneSpec]
    links: list[LinkSpec] = field(default_factory=list)
    residents: list[ResidentSpec] = field(default_factory=list)
    population: Optional[PopulationParameters] = None
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    logging: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Mapping form, accepted back by parse_config."""
        data: dict[str, Any] = {
            "zones": [
                {k: v for k, v in {"name": z.name, "capacity": z.capacity}.items() if v is not None}
                for z in self.zones
            ],
            "links": [
                {
                    k: v
                    for k, v in {
                        "origin": link.origin,
                        "destination": link.destination,
                        "base_cost": link.base_cost,
                        "capacity": link.capacity,
                    }.items()
                    if v is not None
                }
                for link in self.links
            ],
            "residents": [
                {
                    k: v
                    for k, v in {
                        "home_zone": r.home_zone,
                        "work_zone": r.work_zone,
                        "income": r.income,
                    }.items()
                    if v is not None
                }
                for r in self.residents
            ],
            "simulation": {
                "commute_threshold": self.simulation.commute_threshold,
                "workers": self.simulation.workers,
                "default_link_capacity": self.simulation.default_link_capacity,
                "allow_home_zone_jobs": self.simulation.allow_home_zone_jobs,
            },
        }
        if self.population is not None:
            data["population"] = {
                "total": self.population.total,
                "income": [self.population.income_min, self.population.income_max],
                "seed": self.population.seed,
            }
        if self.logging:
            data["logging"] = dict(self.logging)
        return data


def load_config(config_path: Union[str, Path]) -> CityConfig:
    """Load and validate a configuration from a YAML file."""
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"invalid YAML: {e}") from e

    logger.debug("Loaded configuration from %s", config_path)
    return parse_config(raw)


# Field helpers


def _require_mapping(value: Any, path: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"expected a mapping, got {type(value).__name__}", path)
    return value


def _require_list(value: Any, path: str) -> list:
    if not isinstance(value, list):
        raise ConfigurationError(f"expected a list, got {type(value).__name__}", path)
    return value


def _positive_int(value: Any, path: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigurationError(f"must be a positive integer, got {value!r}", path)
    return value


def _number(value: Any, path: str, minimum: Optional[float] = None, strict: bool = False) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"must be a number, got {value!r}", path)
    value = float(value)
    if value != value or value in (float("inf"), float("-inf")):
        raise ConfigurationError("must be finite", path)
    if minimum is not None and (value <= minimum if strict else value < minimum):
        op = ">" if strict else ">="
        raise ConfigurationError(f"must be {op} {minimum}, got {value}", path)
    return value


def _zone_ref(value: Any, path: str) -> ZoneRef:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ConfigurationError(f"must be a zone name or index, got {value!r}", path)
    return value


def _check_keys(entry: Mapping[str, Any], allowed: set[str], path: str) -> None:
    unknown = sorted(set(entry) - allowed)
    if unknown:
        raise ConfigurationError(f"unknown keys {unknown}", path)


# Parsing


def parse_config(raw: Any) -> CityConfig:
    """
    Validate a configuration mapping.

    Args:
        raw: Mapping with ``zones``, ``links``, ``residents``, ``population``,
            ``simulation`` and ``logging`` keys

    Returns:
        CityConfig ready for the engine

    Raises:
        ConfigurationError: naming the first offending field
    """
    if isinstance(raw, CityConfig):
        return raw
    data = _require_mapping(raw, "config")
    _check_keys(
        data, {"zones", "links", "residents", "population", "simulation", "logging"}, "config"
    )

    if "zones" not in data:
        raise ConfigurationError("required", "zones")
    zones_raw = _require_list(data["zones"], "zones")
    if not zones_raw:
        raise ConfigurationError("at least one zone is required", "zones")

    zones = []
    for i, entry in enumerate(zones_raw):
        path = f"zones[{i}]"
        if isinstance(entry, int) and not isinstance(entry, bool):
            entry = {"capacity": entry}
        entry = _require_mapping(entry, path)
        _check_keys(entry, {"name", "capacity"}, path)
        if "capacity" not in entry:
            raise ConfigurationError("required", f"{path}.capacity")
        name = entry.get("name")
        zones.append(
            ZoneSpec(
                capacity=_positive_int(entry["capacity"], f"{path}.capacity"),
                name=str(name) if name is not None else None,
            )
        )

    links = []
    for i, entry in enumerate(_require_list(data.get("links") or [], "links")):
        path = f"links[{i}]"
        entry = _require_mapping(entry, path)
        _check_keys(entry, {"origin", "destination", "base_cost", "capacity"}, path)
        for key in ("origin", "destination", "base_cost"):
            if key not in entry:
                raise ConfigurationError("required", f"{path}.{key}")
        capacity = entry.get("capacity")
        links.append(
            LinkSpec(
                origin=_zone_ref(entry["origin"], f"{path}.origin"),
                destination=_zone_ref(entry["destination"], f"{path}.destination"),
                base_cost=_number(entry["base_cost"], f"{path}.base_cost", 0.0, strict=True),
                capacity=(
                    _positive_int(capacity, f"{path}.capacity") if capacity is not None else None
                ),
            )
        )

    residents = []
    for i, entry in enumerate(_require_list(data.get("residents") or [], "residents")):
        path = f"residents[{i}]"
        entry = _require_mapping(entry, path)
        _check_keys(entry, {"home_zone", "work_zone", "income"}, path)
        if "home_zone" not in entry:
            raise ConfigurationError("required", f"{path}.home_zone")
        work_zone = entry.get("work_zone")
        residents.append(
            ResidentSpec(
                home_zone=_zone_ref(entry["home_zone"], f"{path}.home_zone"),
                work_zone=(
                    _zone_ref(work_zone, f"{path}.work_zone") if work_zone is not None else None
                ),
                income=_number(entry.get("income", 0.0), f"{path}.income", 0.0),
            )
        )

    population = None
    if data.get("population") is not None:
        pop = _require_mapping(data["population"], "population")
        _check_keys(pop, {"total", "income", "seed"}, "population")
        if "total" not in pop:
            raise ConfigurationError("required", "population.total")
        total = pop["total"]
        if isinstance(total, bool) or not isinstance(total, int) or total < 0:
            raise ConfigurationError(
                f"must be a non-negative integer, got {total!r}", "population.total"
            )
        income = pop.get("income", [800.0, 2500.0])
        income = _require_list(list(income) if isinstance(income, tuple) else income,
                               "population.income")
        if len(income) != 2:
            raise ConfigurationError("must be [min, max]", "population.income")
        low = _number(income[0], "population.income[0]", 0.0)
        high = _number(income[1], "population.income[1]", low)
        seed = pop.get("seed", 42)
        if isinstance(seed, bool) or not isinstance(seed, int):
            raise ConfigurationError(f"must be an integer, got {seed!r}", "population.seed")
        population = PopulationParameters(total=total, income_min=low, income_max=high, seed=seed)

    sim = _require_mapping(data.get("simulation") or {}, "simulation")
    _check_keys(
        sim,
        {"commute_threshold", "workers", "default_link_capacity", "allow_home_zone_jobs"},
        "simulation",
    )
    defaults = SimulationConfig()
    allow_home = sim.get("allow_home_zone_jobs", defaults.allow_home_zone_jobs)
    if not isinstance(allow_home, bool):
        raise ConfigurationError(
            f"must be a boolean, got {allow_home!r}", "simulation.allow_home_zone_jobs"
        )
    simulation = SimulationConfig(
        commute_threshold=_number(
            sim.get("commute_threshold", defaults.commute_threshold),
            "simulation.commute_threshold",
            0.0,
        ),
        workers=_positive_int(sim.get("workers", defaults.workers), "simulation.workers"),
        default_link_capacity=_positive_int(
            sim.get("default_link_capacity", defaults.default_link_capacity),
            "simulation.default_link_capacity",
        ),
        allow_home_zone_jobs=allow_home,
    )

    log_config = dict(_require_mapping(data.get("logging") or {}, "logging"))
    _check_keys(log_config, {"level", "file"}, "logging")
    level = log_config.get("level", "INFO")
    if level not in LOG_LEVELS:
        raise ConfigurationError(
            f"must be one of {list(LOG_LEVELS)}, got {level!r}", "logging.level"
        )
    if "file" in log_config and not isinstance(log_config["file"], str):
        raise ConfigurationError(
            f"must be a path string, got {log_config['file']!r}", "logging.file"
        )

    return CityConfig(
        zones=zones,
        links=links,
        residents=residents,
        population=population,
        simulation=simulation,
        logging=log_config,
    )


def export_series(frame: pd.DataFrame, path: Union[str, Path]) -> Path:
    """
    Write a long (tick, metric, value) table as CSV.

    Returns:
        Path written
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(path, index=False, columns=["tick", "metric", "value"])
    return path
