"""
Test suite for the macro allocation engine.

Validates protein strategies, per-profile carb/fat splits, split rejection,
and cycle-level calorie and weight-change aggregates.
"""

import unittest

from macro_planning import (
    MacroAllocationError,
    MacroAllocator,
    SplitValidationError,
    allocate_macros,
)
from shared_models import (
    EngineConstants,
    InvalidInputError,
    MacroPlan,
    MacroProfile,
    ProteinStrategy,
)


def make_plan(**overrides):
    plan = dict(
        protein_strategy=ProteinStrategy.GRAMS_PER_KG,
        protein_value=2.0,
        rest_profile=MacroProfile(carb_percent=40, fat_percent=60),
        activity_profile=MacroProfile(carb_percent=60, fat_percent=40),
        cycle_length_days=7,
        activity_days=3,
        calorie_offset_percent=0.0,
    )
    plan.update(overrides)
    return MacroPlan(**plan)


class TestProteinStrategies(unittest.TestCase):
    """Test protein gram targets for each strategy"""

    def setUp(self):
        self.allocator = MacroAllocator()

    def test_grams_per_kg(self):
        grams = self.allocator.protein_grams(ProteinStrategy.GRAMS_PER_KG, 2.0, 80, 2500)
        self.assertAlmostEqual(grams, 160.0)

    def test_grams_per_lb(self):
        grams = self.allocator.protein_grams(ProteinStrategy.GRAMS_PER_LB, 1.0, 80, 2500)
        self.assertAlmostEqual(grams, 176.3696)

    def test_percent_of_calories(self):
        grams = self.allocator.protein_grams(
            ProteinStrategy.PERCENT_OF_CALORIES, 30, 80, 2500
        )
        self.assertAlmostEqual(grams, 187.5)

    def test_fixed_grams(self):
        grams = self.allocator.protein_grams(ProteinStrategy.FIXED_GRAMS, 150, 80, 2500)
        self.assertEqual(grams, 150)

    def test_high_values_accepted(self):
        self.assertAlmostEqual(
            self.allocator.protein_grams(ProteinStrategy.GRAMS_PER_KG, 6.0, 80, 2500), 480.0
        )

    def test_negative_or_non_finite_value_rejected(self):
        with self.assertRaises(MacroAllocationError):
            self.allocator.protein_grams(ProteinStrategy.FIXED_GRAMS, -10, 80, 2500)
        with self.assertRaises(MacroAllocationError):
            self.allocator.protein_grams(ProteinStrategy.GRAMS_PER_KG, float("nan"), 80, 2500)


class TestProfileAllocation(unittest.TestCase):
    """Test per-profile macro grams and calorie totals"""

    def test_rest_and_activity_profiles(self):
        result = allocate_macros(2500, 80, make_plan())

        # 160 g protein = 640 kcal, leaving 1860 kcal
        self.assertAlmostEqual(result.rest.protein_g, 160.0)
        self.assertAlmostEqual(result.rest.carb_g, 1860 * 0.4 / 4)
        self.assertAlmostEqual(result.rest.fat_g, 1860 * 0.6 / 9)
        self.assertAlmostEqual(result.activity.carb_g, 1860 * 0.6 / 4)
        self.assertAlmostEqual(result.activity.fat_g, 1860 * 0.4 / 9)

    def test_calories_sum_to_target_when_split_is_complete(self):
        for offset in (-25.0, -10.0, 0.0, 15.0):
            result = allocate_macros(2500, 80, make_plan(calorie_offset_percent=offset))
            for profile in (result.rest, result.activity):
                self.assertAlmostEqual(profile.total_calories, profile.target_calories, places=6)
                self.assertAlmostEqual(profile.target_calories, 2500 * (1 + offset / 100))

    def test_partial_split_leaves_calories_unallocated(self):
        plan = make_plan(rest_profile=MacroProfile(carb_percent=30, fat_percent=30))
        result = allocate_macros(2500, 80, plan)
        self.assertAlmostEqual(result.rest.total_calories, 640 + 1860 * 0.6)
        self.assertLess(result.rest.total_calories, result.rest.target_calories)

    def test_custom_energy_density(self):
        constants = EngineConstants(kcal_per_gram_fat=8.0)
        result = allocate_macros(2500, 80, make_plan(), constants)
        self.assertAlmostEqual(result.rest.fat_g, 1860 * 0.6 / 8)


class TestCycleAggregates(unittest.TestCase):
    """Test rest/activity day cycle totals and weight change"""

    def test_maintenance_cycle(self):
        result = allocate_macros(2500, 80, make_plan())
        self.assertEqual(result.rest_days, 4)
        self.assertEqual(result.activity_days, 3)
        self.assertAlmostEqual(result.cycle_total_calories, 17500)
        self.assertAlmostEqual(result.cycle_tdee, 17500)
        self.assertAlmostEqual(result.cycle_deficit, 0.0, places=6)
        self.assertAlmostEqual(result.cycle_weight_change_kg, 0.0, places=9)

    def test_deficit_cycle(self):
        result = allocate_macros(2500, 80, make_plan(calorie_offset_percent=-20))
        self.assertAlmostEqual(result.adjusted_calories, 2000)
        self.assertAlmostEqual(result.cycle_total_calories, 14000)
        self.assertAlmostEqual(result.cycle_deficit, -3500)
        self.assertAlmostEqual(result.cycle_weight_change_kg, -3500 / 7700)

    def test_all_activity_days(self):
        result = allocate_macros(2500, 80, make_plan(activity_days=7))
        self.assertEqual(result.rest_days, 0)
        self.assertAlmostEqual(result.cycle_total_calories, result.activity.total_calories * 7)


class TestValidation(unittest.TestCase):
    """Test rejection of invalid plans"""

    def test_split_above_hundred_rejected(self):
        plan = make_plan(rest_profile=MacroProfile(carb_percent=60, fat_percent=50))
        with self.assertRaises(SplitValidationError) as ctx:
            allocate_macros(2500, 80, plan)
        self.assertIn("rest", str(ctx.exception))

    def test_negative_split_rejected(self):
        plan = make_plan(activity_profile=MacroProfile(carb_percent=-10, fat_percent=50))
        with self.assertRaises(SplitValidationError):
            allocate_macros(2500, 80, plan)

    def test_activity_days_exceed_cycle(self):
        with self.assertRaises(MacroAllocationError):
            allocate_macros(2500, 80, make_plan(activity_days=8))

    def test_zero_cycle_length(self):
        with self.assertRaises(MacroAllocationError):
            allocate_macros(2500, 80, make_plan(cycle_length_days=0, activity_days=0))

    def test_protein_exhausts_budget(self):
        plan = make_plan(protein_strategy=ProteinStrategy.FIXED_GRAMS, protein_value=700)
        with self.assertRaises(MacroAllocationError) as ctx:
            allocate_macros(2500, 80, plan)
        self.assertIn("fixedGrams", str(ctx.exception))

    def test_protein_using_whole_budget_leaves_no_carbs_or_fat(self):
        plan = make_plan(
            protein_strategy=ProteinStrategy.PERCENT_OF_CALORIES, protein_value=100
        )
        result = allocate_macros(2500, 80, plan)
        for profile in (result.rest, result.activity):
            self.assertAlmostEqual(profile.protein_g, 625.0)
            self.assertEqual(profile.carb_g, 0)
            self.assertEqual(profile.fat_g, 0)
            self.assertAlmostEqual(profile.total_calories, 2500.0)

    def test_offset_at_minus_hundred(self):
        with self.assertRaises(MacroAllocationError):
            allocate_macros(2500, 80, make_plan(calorie_offset_percent=-100))

    def test_invalid_tdee_and_weight(self):
        with self.assertRaises(InvalidInputError):
            allocate_macros(0, 80, make_plan())
        with self.assertRaises(InvalidInputError):
            allocate_macros(2500, -1, make_plan())

    def test_split_error_is_allocation_error(self):
        self.assertTrue(issubclass(SplitValidationError, MacroAllocationError))
        self.assertTrue(issubclass(MacroAllocationError, ValueError))


if __name__ == "__main__":
    unittest.main()
