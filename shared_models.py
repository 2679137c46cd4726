"""
Shared Data Models for the Metabolic Engine

This module contains all shared dataclasses and enums used throughout the
metabolic calculation engine, including the BMR/TDEE calculators, the macro
allocator, and the goal projection simulator.

Unified data models provide:
- Validation at construction time
- Immutable result structures that are rebuilt, never patched
- A single source of truth for tunable constants
"""

import math
import numbers
from dataclasses import dataclass, field, fields
from datetime import date
from enum import Enum
from typing import Dict, Optional, Tuple

import pandas as pd

# ============================================================================
# EXCEPTIONS
# ============================================================================


class InvalidInputError(ValueError):
    """Raised when a numeric input is missing, non-finite or physically impossible"""

    pass


class MissingInputError(InvalidInputError):
    """Raised when a formula or strategy precondition is not supplied"""

    pass


# ============================================================================
# ENUMS
# ============================================================================


class Gender(Enum):
    """Formula selector for sex-specific equations"""

    MALE = "male"
    FEMALE = "female"


class Units(Enum):
    """Display unit preference (presentation only)"""

    METRIC = "metric"
    IMPERIAL = "imperial"


class BMRFormula(Enum):
    """Basal metabolic rate equations"""

    MIFFLIN_ST_JEOR = "mifflinStJeor"
    HARRIS_BENEDICT = "harrisBenedict"
    KATCH_MCARDLE = "katchMcArdle"
    SCHOFIELD = "schofield"


class ActivityLevel(Enum):
    """Activity level selector for TDEE"""

    SEDENTARY = "sedentary"  # Little or no exercise
    LIGHTLY_ACTIVE = "lightlyActive"  # Light exercise 1-3 days/week
    MODERATELY_ACTIVE = "moderatelyActive"  # Moderate exercise 3-5 days/week
    VERY_ACTIVE = "veryActive"  # Hard exercise 6-7 days a week
    EXTREMELY_ACTIVE = "extremelyActive"  # Physical job or 2x training


class ProteinStrategy(Enum):
    """How the protein target is derived"""

    GRAMS_PER_KG = "gramsPerKg"
    GRAMS_PER_LB = "gramsPerLb"
    PERCENT_OF_CALORIES = "percentOfCalories"
    FIXED_GRAMS = "fixedGrams"


class GoalType(Enum):
    """Direction of the weight goal"""

    LOSE = "lose"
    MAINTAIN = "maintain"
    GAIN = "gain"


class StopReason(Enum):
    """Why a projection ended"""

    TARGET_REACHED = "target_reached"
    TIMEFRAME_EXHAUSTED = "timeframe_exhausted"


# ============================================================================
# CONSTANTS AND CONFIGURATIONS
# ============================================================================


def _default_activity_factors() -> Dict[ActivityLevel, float]:
    return {
        ActivityLevel.SEDENTARY: 1.2,
        ActivityLevel.LIGHTLY_ACTIVE: 1.375,
        ActivityLevel.MODERATELY_ACTIVE: 1.55,
        ActivityLevel.VERY_ACTIVE: 1.725,
        ActivityLevel.EXTREMELY_ACTIVE: 1.9,
    }


@dataclass(frozen=True)
class EngineConstants:
    """
    Named, overridable constants used across the engine.

    Every calculation accepts an optional EngineConstants instance so values
    can be audited and tuned independently of the formulas that use them.
    """

    # Energy-to-mass bridge: 1 kg of body weight ~ 7700 kcal
    kcal_per_kg: float = 7700.0
    activity_factors: Dict[ActivityLevel, float] = field(
        default_factory=_default_activity_factors
    )

    # Projection seeding and partitioning
    default_body_fat_pct: float = 20.0
    gain_lean_fraction: float = 0.5

    # Body composition references
    ideal_bmi: float = 22.0
    female_calorie_floor: float = 1200.0
    male_calorie_floor: float = 1500.0
    min_calorie_bmr_fraction: float = 0.7
    min_calorie_tdee_margin: float = 1000.0
    fat_oxidation_kcal_per_lb: float = 31.0  # Max daily kcal drawn per lb of fat

    # Units and macro energy density
    lbs_per_kg: float = 2.20462
    kcal_per_gram_protein: float = 4.0
    kcal_per_gram_carb: float = 4.0
    kcal_per_gram_fat: float = 9.0

    def __post_init__(self):
        """Validate constants that act as denominators or fractions"""
        for name in (
            "kcal_per_kg",
            "lbs_per_kg",
            "kcal_per_gram_protein",
            "kcal_per_gram_carb",
            "kcal_per_gram_fat",
            "ideal_bmi",
        ):
            if not getattr(self, name) > 0:
                raise InvalidInputError(f"{name} must be positive")
        if not 0 <= self.gain_lean_fraction <= 1:
            raise InvalidInputError("gain_lean_fraction must be between 0 and 1")
        if not 0 < self.default_body_fat_pct < 100:
            raise InvalidInputError("default_body_fat_pct must be between 0 and 100")
        missing = [level.value for level in ActivityLevel if level not in self.activity_factors]
        if missing:
            raise InvalidInputError(f"activity_factors missing levels: {missing}")

    def activity_factor(self, level: ActivityLevel) -> float:
        return self.activity_factors[level]


DEFAULT_CONSTANTS = EngineConstants()


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================


def require_positive(name: str, value) -> float:
    """Return value as a float, or raise unless it is a finite number greater than zero"""
    if value is None:
        raise MissingInputError(f"{name} is required")
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InvalidInputError(f"{name} must be numeric, got {value!r}")
    if not math.isfinite(value) or value <= 0:
        raise InvalidInputError(f"{name} must be greater than 0, got {value}")
    return float(value)


@dataclass(frozen=True)
class MetricsModel:
    """Snapshot of a user's body metrics (canonical metric units)"""

    weight_kg: float
    height_cm: float
    age: float
    gender: Gender
    body_fat_pct: Optional[float] = None
    units: Units = Units.METRIC  # Display preference only

    def __post_init__(self):
        """Validate metrics; weight/height/age must be physically possible"""
        require_positive("weight_kg", self.weight_kg)
        require_positive("height_cm", self.height_cm)
        require_positive("age", self.age)
        if not isinstance(self.gender, Gender):
            raise InvalidInputError(f"gender must be a Gender, got {self.gender!r}")
        if self.body_fat_pct is not None:
            require_positive("body_fat_pct", self.body_fat_pct)
            if self.body_fat_pct >= 100:
                raise InvalidInputError("body_fat_pct must be less than 100")

    @property
    def has_body_fat(self) -> bool:
        return self.body_fat_pct is not None

    @classmethod
    def from_display(
        cls,
        weight: float,
        height: float,
        age: float,
        gender: Gender,
        units: Units = Units.METRIC,
        body_fat_pct: Optional[float] = None,
        constants: Optional["EngineConstants"] = None,
    ) -> "MetricsModel":
        """
        Build a MetricsModel from values entered in the user's display units.

        Imperial weight is in pounds and imperial height in inches. Values are
        converted to kg/cm here so nothing downstream ever sees imperial units.
        """
        constants = constants or DEFAULT_CONSTANTS
        if units == Units.IMPERIAL:
            require_positive("weight", weight)
            require_positive("height", height)
            weight = weight / constants.lbs_per_kg
            height = height * 2.54
        return cls(
            weight_kg=weight,
            height_cm=height,
            age=age,
            gender=gender,
            body_fat_pct=body_fat_pct,
            units=units,
        )


@dataclass(frozen=True)
class CalculationSettings:
    """Formula and activity selection, plus optional manual overrides"""

    bmr_formula: BMRFormula = BMRFormula.MIFFLIN_ST_JEOR
    activity_level: ActivityLevel = ActivityLevel.MODERATELY_ACTIVE
    custom_bmr: Optional[float] = None
    custom_tdee: Optional[float] = None

    def __post_init__(self):
        """Validate overrides when supplied"""
        if self.custom_bmr is not None:
            require_positive("custom_bmr", self.custom_bmr)
        if self.custom_tdee is not None:
            require_positive("custom_tdee", self.custom_tdee)


@dataclass(frozen=True)
class CalculationResults:
    """Derived metabolic metrics; always rebuilt from metrics + settings"""

    bmr: float
    tdee: float
    bmi: float
    bmi_category: str
    ideal_weight: float
    min_calories: float

    # Present only when body fat was supplied
    lbm: Optional[float] = None
    fat_mass: Optional[float] = None
    max_fat_loss: Optional[float] = None  # kcal/day

    @property
    def has_body_composition(self) -> bool:
        return self.lbm is not None


@dataclass(frozen=True)
class MacroProfile:
    """Carb/fat split of the calories left after protein"""

    carb_percent: float
    fat_percent: float


@dataclass(frozen=True)
class MacroPlan:
    """User-selected macro strategy for a rest/activity day cycle"""

    protein_strategy: ProteinStrategy
    protein_value: float
    rest_profile: MacroProfile
    activity_profile: MacroProfile
    cycle_length_days: int = 7
    activity_days: int = 0
    calorie_offset_percent: float = 0.0


@dataclass(frozen=True)
class ProfileMacros:
    """Grams and calories for one day profile"""

    protein_g: float
    carb_g: float
    fat_g: float
    protein_kcal: float
    carb_kcal: float
    fat_kcal: float
    total_calories: float
    target_calories: float


@dataclass(frozen=True)
class MacroResult:
    """Per-profile macros plus cycle-level aggregates"""

    adjusted_calories: float
    rest: ProfileMacros
    activity: ProfileMacros
    rest_days: int
    activity_days: int
    cycle_total_calories: float
    cycle_tdee: float
    cycle_deficit: float  # Negative = deficit, positive = surplus
    cycle_weight_change_kg: float


@dataclass(frozen=True)
class GoalSpec:
    """Weight goal configuration for a projection"""

    goal_type: GoalType
    target_weight_kg: float
    timeframe_weeks: int
    fat_loss_percent: float = 85.0
    daily_calorie_change: float = 500.0  # Magnitude; sign comes from goal_type
    gain_lean_percent: Optional[float] = None  # Defaults to constants.gain_lean_fraction

    def __post_init__(self):
        """Validate goal parameters"""
        if not isinstance(self.goal_type, GoalType):
            raise InvalidInputError(f"goal_type must be a GoalType, got {self.goal_type!r}")
        require_positive("target_weight_kg", self.target_weight_kg)
        if (
            isinstance(self.timeframe_weeks, bool)
            or not isinstance(self.timeframe_weeks, int)
            or self.timeframe_weeks < 1
        ):
            raise InvalidInputError("timeframe_weeks must be a positive integer")
        if not 0 <= self.fat_loss_percent <= 100:
            raise InvalidInputError("fat_loss_percent must be between 0 and 100")
        if not math.isfinite(self.daily_calorie_change) or self.daily_calorie_change < 0:
            raise InvalidInputError("daily_calorie_change must be a non-negative magnitude")
        if self.gain_lean_percent is not None and not 0 <= self.gain_lean_percent <= 100:
            raise InvalidInputError("gain_lean_percent must be between 0 and 100")


@dataclass(frozen=True)
class ProjectionDataPoint:
    """Body composition snapshot for one projected week"""

    week: int
    date: date
    weight: float
    lean_mass: float
    fat_mass: float
    body_fat_pct: float
    tdee: float
    calories: float


@dataclass(frozen=True)
class ProjectionResult:
    """Ordered, immutable projection plus goal-achievement signals"""

    points: Tuple[ProjectionDataPoint, ...]
    goal_type: GoalType
    target_weight_kg: float
    achievable: bool
    goal_reached: bool
    stop_reason: StopReason
    weekly_weight_change: float
    weight_change_needed: float

    @property
    def start_point(self) -> ProjectionDataPoint:
        return self.points[0]

    @property
    def final_point(self) -> ProjectionDataPoint:
        return self.points[-1]

    @property
    def weeks_projected(self) -> int:
        return self.final_point.week

    @property
    def total_weight_change(self) -> float:
        return self.final_point.weight - self.start_point.weight

    def to_dataframe(self, decimals: Optional[int] = 1):
        """
        Tabular view of the projection, one row per week.

        Rounding is applied to the copy only; the underlying points keep full
        precision so weight == lean_mass + fat_mass holds exactly.
        """
        df = pd.DataFrame(
            [
                {
                    "week": p.week,
                    "date": p.date,
                    "date_str": f"{p.date:%b} {p.date.day}, {p.date.year}",
                    "weight": p.weight,
                    "lean_mass": p.lean_mass,
                    "fat_mass": p.fat_mass,
                    "body_fat_pct": p.body_fat_pct,
                    "tdee": p.tdee,
                    "calories": p.calories,
                }
                for p in self.points
            ]
        )
        if decimals is not None:
            mass_cols = ["weight", "lean_mass", "fat_mass", "body_fat_pct"]
            df[mass_cols] = df[mass_cols].round(decimals)
            df[["tdee", "calories"]] = df[["tdee", "calories"]].round(0)
        return df


# ============================================================================
# UTILITY FUNCTIONS
# ============================================================================


def convert_dict_to_metrics(
    user_info: dict, constants: Optional[EngineConstants] = None
) -> MetricsModel:
    """Convert a config-style dict (display units) to a MetricsModel"""
    units = Units(user_info.get("units", "metric").lower())
    return MetricsModel.from_display(
        weight=user_info["weight"],
        height=user_info["height"],
        age=user_info["age"],
        gender=Gender(user_info["gender"]),
        units=units,
        body_fat_pct=user_info.get("body_fat_pct"),
        constants=constants,
    )


def convert_dict_to_settings(settings_dict: dict) -> CalculationSettings:
    """Convert a config-style dict to CalculationSettings"""
    return CalculationSettings(
        bmr_formula=BMRFormula(settings_dict.get("bmr_formula", "mifflinStJeor")),
        activity_level=ActivityLevel(
            settings_dict.get("activity_level", "moderatelyActive")
        ),
        custom_bmr=settings_dict.get("custom_bmr"),
        custom_tdee=settings_dict.get("custom_tdee"),
    )


def convert_dict_to_macro_plan(plan_dict: dict) -> MacroPlan:
    """Convert a config-style dict to a MacroPlan"""
    return MacroPlan(
        protein_strategy=ProteinStrategy(plan_dict["protein_strategy"]),
        protein_value=plan_dict["protein_value"],
        rest_profile=MacroProfile(**plan_dict["rest_profile"]),
        activity_profile=MacroProfile(
            **plan_dict.get("activity_profile", plan_dict["rest_profile"])
        ),
        cycle_length_days=plan_dict.get("cycle_length_days", 7),
        activity_days=plan_dict.get("activity_days", 0),
        calorie_offset_percent=plan_dict.get("calorie_offset_percent", 0.0),
    )


def convert_dict_to_goal_spec(
    goal_dict: dict,
    units: Units = Units.METRIC,
    constants: Optional[EngineConstants] = None,
) -> GoalSpec:
    """Convert a config-style dict to a GoalSpec (target weight in display units)"""
    constants = constants or DEFAULT_CONSTANTS
    target = goal_dict["target_weight"]
    if units == Units.IMPERIAL:
        target = target / constants.lbs_per_kg
    return GoalSpec(
        goal_type=GoalType(goal_dict["goal_type"]),
        target_weight_kg=target,
        timeframe_weeks=goal_dict.get("timeframe_weeks", 12),
        fat_loss_percent=goal_dict.get("fat_loss_percent", 85.0),
        daily_calorie_change=goal_dict.get("daily_calorie_change", 500.0),
        gain_lean_percent=goal_dict.get("gain_lean_percent"),
    )


def convert_dict_to_constants(constants_dict: Optional[dict]) -> EngineConstants:
    """Build EngineConstants from a partial override dict"""
    if not constants_dict:
        return DEFAULT_CONSTANTS
    overrides = dict(constants_dict)
    unknown = sorted(set(overrides) - {f.name for f in fields(EngineConstants)})
    if unknown:
        raise InvalidInputError(f"Unknown constants: {', '.join(unknown)}")
    for name, value in overrides.items():
        if name != "activity_factors" and (
            isinstance(value, bool) or not isinstance(value, numbers.Real)
        ):
            raise InvalidInputError(f"Constant {name} must be numeric, got {value!r}")
    if "activity_factors" in overrides:
        factors = _default_activity_factors()
        valid_levels = {level.value for level in ActivityLevel}
        for key, value in overrides["activity_factors"].items():
            if key not in valid_levels:
                raise InvalidInputError(f"Unknown activity level in activity_factors: {key}")
            require_positive(f"activity_factors.{key}", value)
            factors[ActivityLevel(key)] = value
        overrides["activity_factors"] = factors
    return EngineConstants(**overrides)
