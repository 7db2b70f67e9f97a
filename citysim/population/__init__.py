"""Residents and the per-tick employment/commute decision model."""

from .model import Action, Intent, PopulationModel, PopulationRules
from .residents import (
    EmploymentState,
    PopulationParameters,
    Resident,
    StateChange,
    generate_residents,
)

__all__ = [
    # Residents
    "EmploymentState",
    "Resident",
    "StateChange",
    "PopulationParameters",
    "generate_residents",
    # Decision model
    "Action",
    "Intent",
    "PopulationModel",
    "PopulationRules",
]
