"""
Macro Allocation Engine for Rest/Activity Day Cycles

This module turns a TDEE estimate into per-day macronutrient targets. Protein
is fixed first from the selected strategy, then the remaining calories are
split between carbohydrate and fat independently for a "rest day" profile and
an "activity day" profile. Cycle-level totals aggregate both profiles over a
repeating block of days and estimate the resulting weight change.

Energy densities:
- Protein and carbohydrate: 4 kcal/g
- Fat: 9 kcal/g
- Body weight: 7700 kcal/kg (shared EngineConstants bridge)
"""

import logging
from typing import Optional

import numpy as np

from shared_models import (
    DEFAULT_CONSTANTS,
    EngineConstants,
    InvalidInputError,
    MacroPlan,
    MacroProfile,
    MacroResult,
    ProfileMacros,
    ProteinStrategy,
)

logger = logging.getLogger(__name__)


class MacroAllocationError(InvalidInputError):
    """Raised when a macro plan cannot be allocated against the calorie budget"""

    pass


class SplitValidationError(MacroAllocationError):
    """Raised when a profile's carb + fat split exceeds 100%"""

    pass


class MacroAllocator:
    """
    Allocates protein, carbohydrate and fat grams for a macro cycle.

    Split policy: carb + fat percentages above 100 are rejected with
    SplitValidationError; they are never clamped.
    """

    def __init__(self, constants: Optional[EngineConstants] = None):
        self.constants = constants or DEFAULT_CONSTANTS

    def adjusted_calories(self, tdee: float, calorie_offset_percent: float) -> float:
        """TDEE shifted by the offset percentage (negative for a deficit)."""
        if not np.isfinite(calorie_offset_percent) or calorie_offset_percent <= -100:
            raise MacroAllocationError(
                f"Calorie offset must be greater than -100%, got {calorie_offset_percent}"
            )
        return tdee * (1 + calorie_offset_percent / 100)

    def protein_grams(
        self,
        strategy: ProteinStrategy,
        value: float,
        weight_kg: float,
        adjusted_calories: float,
    ) -> float:
        """
        Daily protein target in grams for the selected strategy.

        Args:
            strategy: How the protein value is interpreted
            value: g/kg, g/lb, percent of calories, or fixed grams
            weight_kg: Canonical body weight
            adjusted_calories: TDEE after the calorie offset

        Returns:
            Protein grams per day

        Raises:
            MacroAllocationError: If the strategy is unknown or the value is
                negative or non-finite
        """
        if not isinstance(strategy, ProteinStrategy):
            raise MacroAllocationError(f"Invalid protein strategy: {strategy}")

        if not np.isfinite(value) or value < 0:
            raise MacroAllocationError(
                f"Protein value for {strategy.value} must be non-negative, got {value}"
            )

        if strategy == ProteinStrategy.GRAMS_PER_KG:
            grams = weight_kg * value
        elif strategy == ProteinStrategy.GRAMS_PER_LB:
            grams = weight_kg * self.constants.lbs_per_kg * value
        elif strategy == ProteinStrategy.PERCENT_OF_CALORIES:
            grams = adjusted_calories * (value / 100) / self.constants.kcal_per_gram_protein
        else:  # FIXED_GRAMS
            grams = value

        logger.debug(f"Protein ({strategy.value} {value}): {grams:.1f} g")
        return grams

    def validate_profile(self, name: str, profile: MacroProfile) -> None:
        """Reject negative percentages and splits above 100%."""
        for label, pct in (("carb", profile.carb_percent), ("fat", profile.fat_percent)):
            if not np.isfinite(pct) or pct < 0:
                raise SplitValidationError(
                    f"{name} profile {label} percentage must be non-negative, got {pct}"
                )
        total = profile.carb_percent + profile.fat_percent
        if total > 100:
            raise SplitValidationError(
                f"{name} profile carb + fat = {total}% exceeds 100%"
            )

    def validate_plan(self, plan: MacroPlan) -> None:
        """Check cycle shape and both profile splits before allocation."""
        if (
            isinstance(plan.cycle_length_days, bool)
            or not isinstance(plan.cycle_length_days, int)
            or plan.cycle_length_days < 1
        ):
            raise MacroAllocationError("Cycle length must be a positive whole number of days")
        if (
            isinstance(plan.activity_days, bool)
            or not isinstance(plan.activity_days, int)
            or plan.activity_days < 0
        ):
            raise MacroAllocationError("Activity days must be a non-negative whole number")
        if plan.activity_days > plan.cycle_length_days:
            raise MacroAllocationError(
                f"Activity days ({plan.activity_days}) exceed cycle length "
                f"({plan.cycle_length_days})"
            )
        self.validate_profile("rest", plan.rest_profile)
        self.validate_profile("activity", plan.activity_profile)

    def _allocate_profile(
        self,
        profile: MacroProfile,
        protein_g: float,
        remaining_calories: float,
        target_calories: float,
    ) -> ProfileMacros:
        c = self.constants
        carb_kcal = remaining_calories * profile.carb_percent / 100
        fat_kcal = remaining_calories * profile.fat_percent / 100
        protein_kcal = protein_g * c.kcal_per_gram_protein
        return ProfileMacros(
            protein_g=protein_g,
            carb_g=carb_kcal / c.kcal_per_gram_carb,
            fat_g=fat_kcal / c.kcal_per_gram_fat,
            protein_kcal=protein_kcal,
            carb_kcal=carb_kcal,
            fat_kcal=fat_kcal,
            total_calories=protein_kcal + carb_kcal + fat_kcal,
            target_calories=target_calories,
        )

    def allocate(self, tdee: float, weight_kg: float, plan: MacroPlan) -> MacroResult:
        """
        Allocate macros for both day profiles and aggregate over the cycle.

        Args:
            tdee: Total daily energy expenditure (kcal)
            weight_kg: Canonical body weight, used by per-weight protein strategies
            plan: Macro strategy and cycle shape

        Returns:
            MacroResult with per-profile grams and cycle totals

        Raises:
            MacroAllocationError: If protein calories exceed the adjusted budget,
                or the cycle shape is invalid
            SplitValidationError: If a profile's carb + fat exceeds 100%
        """
        if not np.isfinite(tdee) or tdee <= 0:
            raise InvalidInputError(f"TDEE must be greater than 0, got {tdee}")
        if not np.isfinite(weight_kg) or weight_kg <= 0:
            raise InvalidInputError(f"weight_kg must be greater than 0, got {weight_kg}")

        self.validate_plan(plan)

        adjusted = self.adjusted_calories(tdee, plan.calorie_offset_percent)
        protein_g = self.protein_grams(
            plan.protein_strategy, plan.protein_value, weight_kg, adjusted
        )
        protein_kcal = protein_g * self.constants.kcal_per_gram_protein
        remaining = adjusted - protein_kcal
        if remaining < -1e-9:
            raise MacroAllocationError(
                f"Protein target ({protein_kcal:.0f} kcal via {plan.protein_strategy.value}) "
                f"exceeds the {adjusted:.0f} kcal budget; lower the protein "
                f"value or the calorie offset"
            )
        remaining = max(remaining, 0.0)

        rest = self._allocate_profile(plan.rest_profile, protein_g, remaining, adjusted)
        activity = self._allocate_profile(
            plan.activity_profile, protein_g, remaining, adjusted
        )

        rest_days = plan.cycle_length_days - plan.activity_days
        cycle_total = rest.total_calories * rest_days + activity.total_calories * plan.activity_days
        cycle_tdee = tdee * plan.cycle_length_days
        cycle_deficit = cycle_total - cycle_tdee
        weight_change = cycle_deficit / self.constants.kcal_per_kg

        logger.info(
            f"Macro cycle ({rest_days} rest / {plan.activity_days} activity days): "
            f"{cycle_total:.0f} kcal vs {cycle_tdee:.0f} TDEE, "
            f"change {weight_change:+.3f} kg"
        )

        return MacroResult(
            adjusted_calories=adjusted,
            rest=rest,
            activity=activity,
            rest_days=rest_days,
            activity_days=plan.activity_days,
            cycle_total_calories=cycle_total,
            cycle_tdee=cycle_tdee,
            cycle_deficit=cycle_deficit,
            cycle_weight_change_kg=weight_change,
        )


def allocate_macros(
    tdee: float,
    weight_kg: float,
    plan: MacroPlan,
    constants: Optional[EngineConstants] = None,
) -> MacroResult:
    """Convenience wrapper around MacroAllocator.allocate"""
    return MacroAllocator(constants).allocate(tdee, weight_kg, plan)
