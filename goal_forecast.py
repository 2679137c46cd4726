"""
Goal Projection Engine for Week-by-Week Body Composition Forecasting

This module simulates how weight, lean mass and fat mass change under a
constant daily calorie deficit or surplus. Each week converts the calorie
change to mass through the shared kcal/kg constant, partitions it between fat
and lean tissue, and records an immutable snapshot.

Key Features:
- Deterministic weekly simulation (no hidden timers or randomness)
- Fat/lean partitioning: user fat-loss percentage when losing, configurable
  lean fraction (default 50/50) when gaining
- Early stop when the target weight is reached or crossed
- Explicit achievability signal, separate from the truncated series
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import List, Optional, Tuple

import numpy as np

from shared_models import (
    DEFAULT_CONSTANTS,
    EngineConstants,
    GoalSpec,
    GoalType,
    InvalidInputError,
    MetricsModel,
    ProjectionDataPoint,
    ProjectionResult,
    StopReason,
)

logger = logging.getLogger(__name__)


class ProjectionError(InvalidInputError):
    """Raised when goal parameters cannot produce a meaningful projection"""

    pass


@dataclass(frozen=True)
class ProjectionConfig:
    """Inputs for a single projection run"""

    metrics: MetricsModel
    goal: GoalSpec
    tdee: float
    lean_mass: Optional[float] = None  # Seed directly when both are supplied
    fat_mass: Optional[float] = None
    start_date: Optional[date] = None  # Defaults to today
    constants: EngineConstants = field(default_factory=lambda: DEFAULT_CONSTANTS)


@dataclass
class _WeekState:
    """Running state inside one invocation; never exposed to callers"""

    week: int
    lean_mass: float
    fat_mass: float

    @property
    def weight(self) -> float:
        return self.lean_mass + self.fat_mass

    @property
    def body_fat_pct(self) -> float:
        return self.fat_mass / self.weight * 100


class GoalProjectionEngine:
    """Week-by-week goal projection simulator"""

    def __init__(self, config: ProjectionConfig):
        """Validate configuration and derive the constant weekly rates"""
        self.config = config
        self.goal = config.goal
        self.constants = config.constants

        if not np.isfinite(config.tdee) or config.tdee <= 0:
            raise ProjectionError(f"TDEE must be greater than 0, got {config.tdee}")

        self.start_date = config.start_date or date.today()
        self.daily_calorie_change = self._calculate_daily_calorie_change()
        self.weekly_weight_change = self.daily_calorie_change * 7 / self.constants.kcal_per_kg
        self.lean_fraction_on_gain = self._calculate_gain_lean_fraction()
        self.planned_calories = config.tdee + self.daily_calorie_change

        self._check_goal_direction()

        logger.info(
            f"Initialized projection: {self.goal.goal_type.value} to "
            f"{self.goal.target_weight_kg:.1f} kg over {self.goal.timeframe_weeks} weeks "
            f"({self.weekly_weight_change:+.3f} kg/week)"
        )

    def run_projection(self) -> ProjectionResult:
        """Execute the projection and return the full, immutable series"""
        state = self._create_initial_state()
        points: List[ProjectionDataPoint] = [self._snapshot(state)]

        achievable, weight_change_needed = self.check_achievability(state.weight)
        if not achievable:
            logger.warning(
                f"Target {self.goal.target_weight_kg:.1f} kg not reachable in "
                f"{self.goal.timeframe_weeks} weeks at {self.weekly_weight_change:+.3f} kg/week "
                f"(needs {weight_change_needed:+.2f} kg)"
            )

        stop_reason = StopReason.TIMEFRAME_EXHAUSTED
        goal_reached = False
        for week in range(1, self.goal.timeframe_weeks + 1):
            state = self._simulate_week(state, week)
            points.append(self._snapshot(state))

            if self._goal_achieved(state):
                stop_reason = StopReason.TARGET_REACHED
                goal_reached = True
                logger.info(f"Target reached at week {week}: {state.weight:.2f} kg")
                break

        return self._build_result(points, achievable, goal_reached, stop_reason, weight_change_needed)

    def check_achievability(self, current_weight: float) -> Tuple[bool, float]:
        """
        Compare the total possible change over the timeframe with the change needed.

        Returns:
            (achievable, weight_change_needed) where weight_change_needed is signed
        """
        weight_change_needed = self.goal.target_weight_kg - current_weight
        if self.goal.goal_type == GoalType.MAINTAIN:
            return True, weight_change_needed

        possible = abs(self.weekly_weight_change * self.goal.timeframe_weeks)
        # Tolerance keeps exact-boundary cases from failing on float noise
        return bool(possible + 1e-9 >= abs(weight_change_needed)), weight_change_needed

    def _calculate_daily_calorie_change(self) -> float:
        magnitude = abs(self.goal.daily_calorie_change)
        if self.goal.goal_type == GoalType.MAINTAIN:
            return 0.0
        if magnitude == 0:
            raise ProjectionError(
                f"A {self.goal.goal_type.value} goal needs a non-zero daily calorie change"
            )
        if self.goal.goal_type == GoalType.LOSE:
            return -magnitude
        return magnitude

    def _calculate_gain_lean_fraction(self) -> float:
        if self.goal.gain_lean_percent is not None:
            return self.goal.gain_lean_percent / 100
        return self.constants.gain_lean_fraction

    def _check_goal_direction(self) -> None:
        """Warn when the target is already on the far side of the current weight"""
        current = self.config.metrics.weight_kg
        target = self.goal.target_weight_kg
        if self.goal.goal_type == GoalType.LOSE and target >= current:
            logger.warning(
                f"Lose goal target ({target:.1f} kg) is not below current weight "
                f"({current:.1f} kg); projection stops after week 1"
            )
        if self.goal.goal_type == GoalType.GAIN and target <= current:
            logger.warning(
                f"Gain goal target ({target:.1f} kg) is not above current weight "
                f"({current:.1f} kg); projection stops after week 1"
            )

    def _create_initial_state(self) -> _WeekState:
        """
        Seed week 0 from supplied masses, the user's body fat, or the default.

        Weight is always recomputed as lean + fat so the invariant holds from
        the first point on.
        """
        metrics = self.config.metrics
        lean, fat = self.config.lean_mass, self.config.fat_mass

        if lean is not None and fat is not None:
            if lean <= 0 or fat < 0:
                raise ProjectionError("Starting lean mass must be positive and fat mass non-negative")
            return _WeekState(week=0, lean_mass=float(lean), fat_mass=float(fat))

        if metrics.body_fat_pct is not None:
            body_fat_pct = metrics.body_fat_pct
        else:
            body_fat_pct = self.constants.default_body_fat_pct
            logger.warning(
                f"Body fat unknown; seeding projection with default {body_fat_pct}%"
            )

        fat = metrics.weight_kg * body_fat_pct / 100
        return _WeekState(week=0, lean_mass=metrics.weight_kg - fat, fat_mass=fat)

    def _partition_change(self, weight_change: float) -> Tuple[float, float]:
        """Split a weekly weight change into (lean_change, fat_change)"""
        if weight_change < 0:
            fat_change = weight_change * (self.goal.fat_loss_percent / 100)
            return weight_change - fat_change, fat_change
        if weight_change > 0:
            lean_change = weight_change * self.lean_fraction_on_gain
            return lean_change, weight_change - lean_change
        return 0.0, 0.0

    def _simulate_week(self, state: _WeekState, week: int) -> _WeekState:
        """Apply one week of change and return a new state"""
        lean_change, fat_change = self._partition_change(self.weekly_weight_change)
        next_state = _WeekState(
            week=week,
            lean_mass=state.lean_mass + lean_change,
            fat_mass=state.fat_mass + fat_change,
        )
        if next_state.fat_mass < 0 or next_state.lean_mass <= 0:
            raise ProjectionError(
                f"Projection exhausted body mass at week {week}; the target is not physiologically reachable"
            )

        logger.debug(
            f"Week {week}: weight={next_state.weight:.3f}, lean={next_state.lean_mass:.3f}, "
            f"fat={next_state.fat_mass:.3f}"
        )
        return next_state

    def _goal_achieved(self, state: _WeekState) -> bool:
        if self.goal.goal_type == GoalType.LOSE:
            return state.weight <= self.goal.target_weight_kg
        if self.goal.goal_type == GoalType.GAIN:
            return state.weight >= self.goal.target_weight_kg
        return False

    def _snapshot(self, state: _WeekState) -> ProjectionDataPoint:
        return ProjectionDataPoint(
            week=state.week,
            date=self.start_date + timedelta(weeks=state.week),
            weight=state.weight,
            lean_mass=state.lean_mass,
            fat_mass=state.fat_mass,
            body_fat_pct=state.body_fat_pct,
            tdee=self.config.tdee,
            calories=self.planned_calories,
        )

    def _build_result(
        self,
        points: List[ProjectionDataPoint],
        achievable: bool,
        goal_reached: bool,
        stop_reason: StopReason,
        weight_change_needed: float,
    ) -> ProjectionResult:
        return ProjectionResult(
            points=tuple(points),
            goal_type=self.goal.goal_type,
            target_weight_kg=self.goal.target_weight_kg,
            achievable=achievable,
            goal_reached=goal_reached,
            stop_reason=stop_reason,
            weekly_weight_change=self.weekly_weight_change,
            weight_change_needed=weight_change_needed,
        )


# Factory function for easy instantiation
def create_projection_engine(
    metrics: MetricsModel,
    goal: GoalSpec,
    tdee: float,
    lean_mass: Optional[float] = None,
    fat_mass: Optional[float] = None,
    start_date: Optional[date] = None,
    constants: Optional[EngineConstants] = None,
) -> GoalProjectionEngine:
    """Create a configured projection engine"""
    config = ProjectionConfig(
        metrics=metrics,
        goal=goal,
        tdee=tdee,
        lean_mass=lean_mass,
        fat_mass=fat_mass,
        start_date=start_date,
        constants=constants or DEFAULT_CONSTANTS,
    )
    return GoalProjectionEngine(config)
