"""
Tests for citysim/population/residents.py module.

Tests cover:
- EmploymentState enum
- Resident transitions (hired, rerouted, paid, dismissed)
- generate_residents function
"""

import dataclasses

import numpy as np
import pytest

from citysim.city.zones import ZoneMap
from citysim.population.residents import (
    EmploymentState,
    PopulationParameters,
    Resident,
    StateChange,
    generate_residents,
)


class TestEmploymentState:
    """Tests for EmploymentState enum."""

    def test_all_states_exist(self):
        for name in ("EMPLOYED", "UNEMPLOYED", "COMMUTING"):
            assert hasattr(EmploymentState, name)

    def test_has_job(self):
        assert EmploymentState.EMPLOYED.has_job
        assert EmploymentState.COMMUTING.has_job
        assert not EmploymentState.UNEMPLOYED.has_job


class TestResident:
    """Tests for Resident dataclass."""

    @pytest.fixture
    def resident(self):
        return Resident(resident_id=3, home_zone=0, income=1200.0)

    def test_default_values(self, resident):
        """New residents are unemployed with no route."""
        assert resident.work_zone is None
        assert resident.state == EmploymentState.UNEMPLOYED
        assert resident.route == ()
        assert resident.commute_cost == 0.0
        assert not resident.is_commuting
        assert resident.wealth == 0.0

    def test_hired_elsewhere_commutes(self, resident):
        hired = resident.hired(1, (4, 7), 2.5)
        assert hired.state == EmploymentState.COMMUTING
        assert hired.work_zone == 1
        assert hired.route == (4, 7)
        assert hired.commute_cost == 2.5
        # Original is untouched
        assert resident.state == EmploymentState.UNEMPLOYED

    def test_hired_at_home_is_employed(self, resident):
        """Working in the home zone needs no route."""
        hired = resident.hired(0, (4,), 1.0)
        assert hired.state == EmploymentState.EMPLOYED
        assert hired.route == ()
        assert hired.commute_cost == 0.0

    def test_rerouted(self, resident):
        moved = resident.hired(1, (4,), 1.0).rerouted((5, 6), 1.8)
        assert moved.route == (5, 6)
        assert moved.commute_cost == 1.8
        assert moved.work_zone == 1

    def test_paid_adds_income(self, resident):
        """Each payment credits one tick of income."""
        paid = resident.hired(1, (4,), 1.0).paid().paid()
        assert paid.wealth == pytest.approx(2400.0)
        assert resident.wealth == 0.0

    def test_dismissal_keeps_wealth(self, resident):
        dismissed = resident.paid().dismissed()
        assert dismissed.wealth == pytest.approx(1200.0)

    def test_dismissed(self, resident):
        dismissed = resident.hired(1, (4,), 1.0).dismissed()
        assert dismissed.state == EmploymentState.UNEMPLOYED
        assert dismissed.work_zone is None
        assert dismissed.route == ()
        assert dismissed.income == 1200.0

    def test_immutable(self, resident):
        with pytest.raises(dataclasses.FrozenInstanceError):
            resident.work_zone = 1

    def test_state_change_record(self):
        change = StateChange(1, None, 2, EmploymentState.COMMUTING)
        assert change.resident_id == 1
        assert change.old_work_zone is None
        assert change.new_work_zone == 2


class TestGenerateResidents:
    """Tests for generate_residents function."""

    @pytest.fixture
    def zone_map(self):
        zm = ZoneMap()
        zm.add_zone(30, "A")
        zm.add_zone(10, "B")
        zm.add_zone(10, "C")
        return zm

    def test_total_and_ids(self, zone_map):
        """Identifiers are consecutive from first_id."""
        residents = generate_residents(
            zone_map, PopulationParameters(total=20, seed=1), first_id=5
        )
        assert len(residents) == 20
        assert [r.resident_id for r in residents] == list(range(5, 25))

    def test_proportional_to_free_capacity(self, zone_map):
        residents = generate_residents(zone_map, PopulationParameters(total=25))
        homes = [r.home_zone for r in residents]
        assert homes.count(0) == 15
        assert homes.count(1) == 5
        assert homes.count(2) == 5

    def test_rounding_fills_total(self, zone_map):
        """Largest remainders make up the rounded-down shortfall."""
        residents = generate_residents(zone_map, PopulationParameters(total=7))
        homes = [r.home_zone for r in residents]
        # Shares 4.2, 1.4, 1.4: zone 1 wins the tie on the remainder
        assert len(homes) == 7
        assert homes.count(0) == 4
        assert homes.count(1) == 2
        assert homes.count(2) == 1

    def test_capped_at_free_capacity(self, zone_map):
        """Never more residents than free housing."""
        zone_map.add_resident(1)
        residents = generate_residents(zone_map, PopulationParameters(total=1000))
        assert len(residents) == 49
        homes = [r.home_zone for r in residents]
        assert homes.count(1) == 9

    def test_incomes_in_range(self, zone_map):
        params = PopulationParameters(total=40, income_min=100.0, income_max=200.0)
        residents = generate_residents(zone_map, params)
        incomes = np.array([r.income for r in residents])
        assert incomes.min() >= 100.0
        assert incomes.max() <= 200.0

    def test_reproducible_with_seed(self, zone_map):
        params = PopulationParameters(total=30, seed=7)
        assert generate_residents(zone_map, params) == generate_residents(zone_map, params)

    def test_zero_total(self, zone_map):
        assert generate_residents(zone_map, PopulationParameters(total=0)) == []

    def test_all_unemployed(self, zone_map):
        residents = generate_residents(zone_map, PopulationParameters(total=10))
        assert all(r.state == EmploymentState.UNEMPLOYED for r in residents)
