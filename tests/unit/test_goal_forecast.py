"""
Comprehensive test suite for the goal projection engine

Covers weekly fat/lean partitioning, the weight = lean + fat invariant,
direction and stopping rules, achievability, seeding, dates, and the
tabular export.
"""

import unittest
from datetime import date, timedelta

import numpy as np

from core import calculate_bmi
from goal_forecast import (
    GoalProjectionEngine,
    ProjectionConfig,
    ProjectionError,
    create_projection_engine,
)
from shared_models import (
    EngineConstants,
    Gender,
    GoalSpec,
    GoalType,
    MetricsModel,
    StopReason,
)

START = date(2024, 1, 1)


class ProjectionTestCase(unittest.TestCase):
    """Shared fixtures: 80 kg, 180 cm, 30 y male at 20% body fat"""

    def setUp(self):
        self.metrics = MetricsModel(
            weight_kg=80, height_cm=180, age=30, gender=Gender.MALE, body_fat_pct=20
        )
        self.tdee = 2500.0

    def project(self, goal_type, target, weeks=12, metrics=None, **goal_kwargs):
        goal = GoalSpec(
            goal_type=goal_type,
            target_weight_kg=target,
            timeframe_weeks=weeks,
            **goal_kwargs,
        )
        engine = create_projection_engine(
            metrics or self.metrics, goal, self.tdee, start_date=START
        )
        return engine.run_projection()


class TestWeeklyPartitioning(ProjectionTestCase):
    """Test conversion of calorie change into fat and lean mass"""

    def test_500_kcal_deficit_first_week(self):
        projection = self.project(GoalType.LOSE, 70)
        start, week1 = projection.points[0], projection.points[1]

        self.assertAlmostEqual(projection.weekly_weight_change, -0.4545, places=4)
        self.assertAlmostEqual(week1.weight - start.weight, -0.4545, places=4)
        self.assertAlmostEqual(week1.fat_mass - start.fat_mass, -0.3864, places=4)
        self.assertAlmostEqual(week1.lean_mass - start.lean_mass, -0.0682, places=4)

    def test_gain_defaults_to_even_split(self):
        projection = self.project(GoalType.GAIN, 90)
        start, week1 = projection.points[0], projection.points[1]
        self.assertAlmostEqual(week1.lean_mass - start.lean_mass, 3500 / 7700 / 2)
        self.assertAlmostEqual(week1.fat_mass - start.fat_mass, 3500 / 7700 / 2)

    def test_gain_lean_percent_override(self):
        projection = self.project(GoalType.GAIN, 90, gain_lean_percent=75)
        start, week1 = projection.points[0], projection.points[1]
        self.assertAlmostEqual(week1.lean_mass - start.lean_mass, 3500 / 7700 * 0.75)

    def test_gain_fraction_from_constants(self):
        goal = GoalSpec(goal_type=GoalType.GAIN, target_weight_kg=90, timeframe_weeks=4)
        engine = create_projection_engine(
            self.metrics,
            goal,
            self.tdee,
            start_date=START,
            constants=EngineConstants(gain_lean_fraction=0.25),
        )
        points = engine.run_projection().points
        self.assertAlmostEqual(points[1].lean_mass - points[0].lean_mass, 3500 / 7700 * 0.25)

    def test_full_fat_loss_percent(self):
        projection = self.project(GoalType.LOSE, 70, fat_loss_percent=100)
        self.assertTrue(
            all(np.isclose(p.lean_mass, 64.0) for p in projection.points)
        )


class TestInvariants(ProjectionTestCase):
    """Test properties that hold for every projected point"""

    def test_weight_equals_lean_plus_fat(self):
        for goal_type, target in [
            (GoalType.LOSE, 70),
            (GoalType.GAIN, 90),
            (GoalType.MAINTAIN, 80),
        ]:
            projection = self.project(goal_type, target, weeks=20)
            for point in projection.points:
                self.assertEqual(point.weight, point.lean_mass + point.fat_mass)
                self.assertAlmostEqual(point.body_fat_pct, point.fat_mass / point.weight * 100)

    def test_lose_is_non_increasing(self):
        weights = [p.weight for p in self.project(GoalType.LOSE, 70).points]
        self.assertTrue(all(b <= a for a, b in zip(weights, weights[1:])))

    def test_gain_is_non_decreasing(self):
        weights = [p.weight for p in self.project(GoalType.GAIN, 90).points]
        self.assertTrue(all(b >= a for a, b in zip(weights, weights[1:])))

    def test_maintain_is_constant(self):
        projection = self.project(GoalType.MAINTAIN, 80, weeks=4)
        self.assertEqual(len(projection.points), 5)
        for point in projection.points:
            self.assertAlmostEqual(point.weight, 80.0)
            self.assertAlmostEqual(point.calories, self.tdee)

    def test_constant_tdee_and_calories(self):
        projection = self.project(GoalType.LOSE, 70)
        self.assertTrue(all(p.tdee == self.tdee for p in projection.points))
        self.assertTrue(all(p.calories == self.tdee - 500 for p in projection.points))

    def test_final_point_seeds_a_new_projection(self):
        """A projection seeded from a final point starts where the first one ended"""
        final = self.project(GoalType.LOSE, 70).final_point
        metrics = MetricsModel(
            weight_kg=final.weight,
            height_cm=180,
            age=30,
            gender=Gender.MALE,
            body_fat_pct=final.body_fat_pct,
        )
        goal = GoalSpec(goal_type=GoalType.LOSE, target_weight_kg=65, timeframe_weeks=4)

        from_masses = create_projection_engine(
            metrics,
            goal,
            self.tdee,
            lean_mass=final.lean_mass,
            fat_mass=final.fat_mass,
            start_date=START,
        ).run_projection().start_point
        self.assertEqual(from_masses.weight, final.weight)
        self.assertEqual(from_masses.body_fat_pct, final.body_fat_pct)
        self.assertEqual(calculate_bmi(from_masses.weight, 180), calculate_bmi(final.weight, 180))

        from_body_fat = create_projection_engine(
            metrics, goal, self.tdee, start_date=START
        ).run_projection().start_point
        self.assertAlmostEqual(from_body_fat.lean_mass, final.lean_mass)
        self.assertAlmostEqual(from_body_fat.fat_mass, final.fat_mass)
        self.assertAlmostEqual(from_body_fat.body_fat_pct, final.body_fat_pct)
        self.assertAlmostEqual(
            calculate_bmi(from_body_fat.weight, 180), calculate_bmi(final.weight, 180)
        )

    def test_dates_advance_weekly(self):
        projection = self.project(GoalType.LOSE, 70, weeks=5)
        for point in projection.points:
            self.assertEqual(point.date, START + timedelta(weeks=point.week))


class TestStoppingAndAchievability(ProjectionTestCase):
    """Test early stop, timeframe exhaustion and the achievable flag"""

    def test_stops_when_target_reached(self):
        projection = self.project(GoalType.LOSE, 76)
        self.assertTrue(projection.goal_reached)
        self.assertTrue(projection.achievable)
        self.assertEqual(projection.stop_reason, StopReason.TARGET_REACHED)
        self.assertEqual(projection.weeks_projected, 9)
        self.assertLessEqual(projection.final_point.weight, 76)
        self.assertGreater(projection.points[-2].weight, 76)

    def test_gain_stops_when_target_reached(self):
        projection = self.project(GoalType.GAIN, 81)
        self.assertEqual(projection.stop_reason, StopReason.TARGET_REACHED)
        self.assertEqual(projection.weeks_projected, 3)

    def test_unachievable_runs_full_timeframe(self):
        with self.assertLogs("goal_forecast", level="WARNING"):
            projection = self.project(GoalType.LOSE, 70)
        self.assertFalse(projection.achievable)
        self.assertFalse(projection.goal_reached)
        self.assertEqual(projection.stop_reason, StopReason.TIMEFRAME_EXHAUSTED)
        self.assertEqual(len(projection.points), 13)
        self.assertAlmostEqual(projection.weight_change_needed, -10.0)
        self.assertAlmostEqual(projection.total_weight_change, -12 * 3500 / 7700)

    def test_target_equal_to_current_still_projects_week_one(self):
        projection = self.project(GoalType.LOSE, 80)
        self.assertEqual(len(projection.points), 2)
        self.assertTrue(projection.goal_reached)
        self.assertEqual(projection.stop_reason, StopReason.TARGET_REACHED)
        self.assertEqual(projection.weeks_projected, 1)
        self.assertLess(projection.final_point.weight, 80)

    def test_maintain_always_achievable(self):
        projection = self.project(GoalType.MAINTAIN, 75)
        self.assertTrue(projection.achievable)
        self.assertFalse(projection.goal_reached)

    def test_check_achievability(self):
        goal = GoalSpec(goal_type=GoalType.LOSE, target_weight_kg=75, timeframe_weeks=11)
        engine = create_projection_engine(self.metrics, goal, self.tdee)
        achievable, needed = engine.check_achievability(80)
        self.assertTrue(achievable)
        self.assertAlmostEqual(needed, -5.0)


class TestSeeding(ProjectionTestCase):
    """Test starting lean/fat mass selection"""

    def test_seed_from_body_fat(self):
        start = self.project(GoalType.LOSE, 70).start_point
        self.assertAlmostEqual(start.lean_mass, 64.0)
        self.assertAlmostEqual(start.fat_mass, 16.0)
        self.assertAlmostEqual(start.body_fat_pct, 20.0)

    def test_seed_from_default_body_fat(self):
        metrics = MetricsModel(weight_kg=80, height_cm=180, age=30, gender=Gender.MALE)
        with self.assertLogs("goal_forecast", level="WARNING") as logs:
            start = self.project(GoalType.LOSE, 76, metrics=metrics).start_point
        self.assertAlmostEqual(start.fat_mass, 16.0)
        self.assertTrue(any("default" in message for message in logs.output))

    def test_seed_from_supplied_masses(self):
        goal = GoalSpec(goal_type=GoalType.LOSE, target_weight_kg=76, timeframe_weeks=12)
        engine = create_projection_engine(
            self.metrics, goal, self.tdee, lean_mass=60.0, fat_mass=20.0, start_date=START
        )
        start = engine.run_projection().start_point
        self.assertEqual(start.lean_mass, 60.0)
        self.assertEqual(start.fat_mass, 20.0)
        self.assertEqual(start.weight, 80.0)

    def test_start_date_defaults_to_today(self):
        goal = GoalSpec(goal_type=GoalType.LOSE, target_weight_kg=76, timeframe_weeks=12)
        engine = GoalProjectionEngine(
            ProjectionConfig(metrics=self.metrics, goal=goal, tdee=self.tdee)
        )
        self.assertEqual(engine.run_projection().start_point.date, date.today())


class TestProjectionErrors(ProjectionTestCase):
    """Test handling of inconsistent goals"""

    def test_lose_with_higher_target_stops_after_week_one(self):
        with self.assertLogs("goal_forecast", level="WARNING") as logs:
            projection = self.project(GoalType.LOSE, 85)
        self.assertEqual(projection.weeks_projected, 1)
        self.assertEqual(projection.stop_reason, StopReason.TARGET_REACHED)
        self.assertTrue(any("not below current weight" in message for message in logs.output))

    def test_gain_with_lower_target_stops_after_week_one(self):
        with self.assertLogs("goal_forecast", level="WARNING") as logs:
            projection = self.project(GoalType.GAIN, 75)
        self.assertEqual(projection.weeks_projected, 1)
        self.assertGreater(projection.final_point.weight, 80)
        self.assertEqual(projection.stop_reason, StopReason.TARGET_REACHED)
        self.assertTrue(any("not above current weight" in message for message in logs.output))

    def test_zero_daily_change(self):
        with self.assertRaises(ProjectionError):
            self.project(GoalType.LOSE, 75, daily_calorie_change=0)

    def test_fat_mass_cannot_go_negative(self):
        lean = MetricsModel(weight_kg=50, height_cm=170, age=30, gender=Gender.MALE, body_fat_pct=2)
        with self.assertRaises(ProjectionError):
            self.project(GoalType.LOSE, 40, metrics=lean, daily_calorie_change=4000)

    def test_invalid_tdee(self):
        goal = GoalSpec(goal_type=GoalType.LOSE, target_weight_kg=76, timeframe_weeks=12)
        with self.assertRaises(ProjectionError):
            create_projection_engine(self.metrics, goal, 0)

    def test_projection_error_is_value_error(self):
        with self.assertRaises(ValueError):
            self.project(GoalType.GAIN, 90, daily_calorie_change=0)


class TestDataFrameExport(ProjectionTestCase):
    """Test the tabular projection view"""

    def test_columns_and_rounding(self):
        projection = self.project(GoalType.LOSE, 76)
        df = projection.to_dataframe()

        self.assertEqual(len(df), len(projection.points))
        self.assertEqual(
            list(df.columns),
            [
                "week",
                "date",
                "date_str",
                "weight",
                "lean_mass",
                "fat_mass",
                "body_fat_pct",
                "tdee",
                "calories",
            ],
        )
        self.assertEqual(df.loc[1, "date_str"], "Jan 8, 2024")
        self.assertEqual(df.loc[1, "weight"], round(projection.points[1].weight, 1))

    def test_unrounded_export(self):
        projection = self.project(GoalType.LOSE, 76)
        df = projection.to_dataframe(decimals=None)
        self.assertEqual(df.loc[1, "fat_mass"], projection.points[1].fat_mass)


if __name__ == "__main__":
    unittest.main()
