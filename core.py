"""
Core Metabolic Calculation Logic

This module contains the pure calculation functions that power the engine:
basal metabolic rate, total daily energy expenditure, body composition
metrics, the combined result pipeline, unit conversion helpers used at the
input/output boundary, and the JSON configuration loader.

Sections:
- Unit conversion (boundary only)
- BMR and TDEE
- Body composition analysis
- Result pipeline
- Configuration loading and validation
"""

import json
import logging
import os
from datetime import date
from typing import Tuple

import numpy as np
from jsonschema import FormatChecker, validate

from shared_models import (
    DEFAULT_CONSTANTS,
    ActivityLevel,
    BMRFormula,
    CalculationResults,
    Gender,
    InvalidInputError,
    MissingInputError,
    Units,
    convert_dict_to_constants,
    convert_dict_to_goal_spec,
    convert_dict_to_macro_plan,
    convert_dict_to_metrics,
    convert_dict_to_settings,
    require_positive,
)

logger = logging.getLogger(__name__)

# Schofield (WHO/FAO/UNU 1985) adult equations: (max_age_exclusive, slope, intercept)
SCHOFIELD_BANDS = {
    Gender.MALE: [(30, 15.057, 692.2), (60, 11.472, 873.1), (None, 11.711, 587.7)],
    Gender.FEMALE: [(30, 14.818, 486.6), (60, 8.126, 845.6), (None, 9.082, 658.5)],
}

# Revised Harris-Benedict (Roza & Shizgal, 1984): (intercept, weight, height, age)
HARRIS_BENEDICT_COEFFICIENTS = {
    Gender.MALE: (88.362, 13.397, 4.799, 5.677),
    Gender.FEMALE: (447.593, 9.247, 3.098, 4.330),
}

BMI_CATEGORIES = [
    (18.5, "underweight"),
    (25.0, "normal"),
    (30.0, "overweight"),
]

OBESITY_CLASSES = [(35.0, "I"), (40.0, "II")]

CM_PER_INCH = 2.54


# ---------------------------------------------------------------------------
# INPUT GUARDS
# ---------------------------------------------------------------------------


def _require_percentage(name, value):
    """Raise InvalidInputError unless 0 < value < 100."""
    value = require_positive(name, value)
    if value >= 100:
        raise InvalidInputError(f"{name} must be less than 100, got {value}")
    return value


# ---------------------------------------------------------------------------
# UNIT CONVERSION (BOUNDARY ONLY)
# ---------------------------------------------------------------------------


def kg_to_lbs(kg, constants=None):
    """Convert kilograms to pounds."""
    constants = constants or DEFAULT_CONSTANTS
    return kg * constants.lbs_per_kg


def lbs_to_kg(lbs, constants=None):
    """Convert pounds to kilograms."""
    constants = constants or DEFAULT_CONSTANTS
    return lbs / constants.lbs_per_kg


def ft_in_to_cm(feet, inches):
    """Convert a feet + inches height to centimeters."""
    return (feet * 12 + inches) * CM_PER_INCH


def cm_to_ft_in(cm):
    """
    Convert centimeters to a (feet, inches) tuple with whole inches.

    Rounding 11.5+ inches up carries into the next foot so the result never
    reads as 5'12".
    """
    total_inches = int(round(cm / CM_PER_INCH))
    return total_inches // 12, total_inches % 12


def format_weight(kg, units):
    """Format a canonical kg weight for display in the user's units."""
    if units == Units.METRIC:
        return f"{kg:.1f} kg"
    return f"{kg_to_lbs(kg):.1f} lbs"


def format_height(cm, units):
    """Format a canonical cm height for display in the user's units."""
    if units == Units.METRIC:
        return f"{cm:.0f} cm"
    feet, inches = cm_to_ft_in(cm)
    return f"{feet}'{inches}\""


# ---------------------------------------------------------------------------
# BMR AND TDEE
# ---------------------------------------------------------------------------


def calculate_bmr(
    weight_kg,
    height_cm,
    age,
    gender,
    formula=BMRFormula.MIFFLIN_ST_JEOR,
    body_fat_pct=None,
    lean_body_mass=None,
):
    """
    Calculates basal metabolic rate with the selected equation.

    Args:
        weight_kg (float): Body weight in kilograms
        height_cm (float): Height in centimeters
        age (float): Age in years
        gender (Gender): Formula selector
        formula (BMRFormula): Equation to apply
        body_fat_pct (float): Body fat percentage, used to derive lean mass
        lean_body_mass (float): Lean body mass in kg (takes precedence over body_fat_pct)

    Returns:
        float: BMR in kcal/day

    Raises:
        InvalidInputError: If weight, height or age is not positive, or the
            formula produces a non-positive result.
        MissingInputError: If Katch-McArdle is selected without body fat or lean mass.
    """
    weight_kg = require_positive("weight_kg", weight_kg)
    height_cm = require_positive("height_cm", height_cm)
    age = require_positive("age", age)
    if not isinstance(gender, Gender):
        raise InvalidInputError(f"gender must be a Gender, got {gender!r}")

    if formula == BMRFormula.MIFFLIN_ST_JEOR:
        bmr = 10 * weight_kg + 6.25 * height_cm - 5 * age
        bmr += 5 if gender == Gender.MALE else -161

    elif formula == BMRFormula.HARRIS_BENEDICT:
        intercept, w, h, a = HARRIS_BENEDICT_COEFFICIENTS[gender]
        bmr = intercept + w * weight_kg + h * height_cm - a * age

    elif formula == BMRFormula.KATCH_MCARDLE:
        if lean_body_mass is None:
            if body_fat_pct is None:
                raise MissingInputError(
                    "Body fat percentage is required for the Katch-McArdle formula"
                )
            lean_body_mass = calculate_lbm(weight_kg, body_fat_pct)
        lean_body_mass = require_positive("lean_body_mass", lean_body_mass)
        bmr = 370 + 21.6 * lean_body_mass

    elif formula == BMRFormula.SCHOFIELD:
        for max_age, slope, intercept in SCHOFIELD_BANDS[gender]:
            if max_age is None or age < max_age:
                bmr = slope * weight_kg + intercept
                break

    else:
        raise InvalidInputError(f"Unknown BMR formula: {formula!r}")

    if not np.isfinite(bmr) or bmr <= 0:
        raise InvalidInputError(
            f"{formula.value} produced an implausible BMR ({bmr:.1f}) for "
            f"weight={weight_kg}, height={height_cm}, age={age}"
        )

    logger.debug(f"BMR ({formula.value}, {gender.value}): {bmr:.1f} kcal/day")
    return bmr


def calculate_tdee(bmr, activity_level, custom_tdee=None, constants=None):
    """
    Scales BMR by the activity factor.

    A manual TDEE override, when supplied, is returned as-is and the formula
    is skipped entirely.
    """
    if custom_tdee is not None:
        return require_positive("custom_tdee", custom_tdee)

    constants = constants or DEFAULT_CONSTANTS
    bmr = require_positive("bmr", bmr)
    if not isinstance(activity_level, ActivityLevel):
        raise InvalidInputError(f"Unknown activity level: {activity_level!r}")
    factor = constants.activity_factor(activity_level)
    tdee = bmr * factor
    logger.debug(f"TDEE: {bmr:.1f} x {factor} ({activity_level.value}) = {tdee:.1f}")
    return tdee


# ---------------------------------------------------------------------------
# BODY COMPOSITION ANALYSIS
# ---------------------------------------------------------------------------


def calculate_bmi(weight_kg, height_cm):
    """BMI = weight(kg) / height(m)^2."""
    weight_kg = require_positive("weight_kg", weight_kg)
    height_m = require_positive("height_cm", height_cm) / 100
    return weight_kg / (height_m**2)


def get_bmi_category(bmi):
    """
    Maps a BMI value to its WHO category.

    Returns:
        str: One of 'underweight', 'normal', 'overweight', 'obese'
    """
    bmi = require_positive("bmi", bmi)
    for upper, label in BMI_CATEGORIES:
        if bmi < upper:
            return label
    return "obese"


def get_obesity_class(bmi):
    """Obesity class ('I', 'II', 'III') for BMI >= 30, otherwise None."""
    if get_bmi_category(bmi) != "obese":
        return None
    for upper, label in OBESITY_CLASSES:
        if bmi < upper:
            return label
    return "III"


def calculate_lbm(weight_kg, body_fat_pct):
    """Lean body mass in kg."""
    weight_kg = require_positive("weight_kg", weight_kg)
    body_fat_pct = _require_percentage("body_fat_pct", body_fat_pct)
    return weight_kg * (1 - body_fat_pct / 100)


def calculate_fat_mass(weight_kg, body_fat_pct):
    """Fat mass in kg."""
    weight_kg = require_positive("weight_kg", weight_kg)
    body_fat_pct = _require_percentage("body_fat_pct", body_fat_pct)
    return weight_kg * body_fat_pct / 100


def calculate_ideal_weight(height_cm, constants=None):
    """Reference weight at the ideal BMI (22 by default) for this height."""
    constants = constants or DEFAULT_CONSTANTS
    height_m = require_positive("height_cm", height_cm) / 100
    return constants.ideal_bmi * height_m**2


def calculate_min_calories(bmr, tdee, gender, constants=None):
    """
    Minimum safe daily calories.

    The larger of 70% of BMR and TDEE - 1000, and never below the fixed
    sex-specific floor (1200 female / 1500 male).
    """
    constants = constants or DEFAULT_CONSTANTS
    bmr = require_positive("bmr", bmr)
    tdee = require_positive("tdee", tdee)
    floor = (
        constants.male_calorie_floor
        if gender == Gender.MALE
        else constants.female_calorie_floor
    )
    return max(
        floor,
        bmr * constants.min_calorie_bmr_fraction,
        tdee - constants.min_calorie_tdee_margin,
    )


def calculate_max_fat_calories(fat_mass_kg, constants=None):
    """
    Theoretical ceiling on daily kcal that can be drawn from stored fat.

    Uses ~31 kcal per lb of fat per day, capped at the total energy content
    of the fat mass (fat_mass x 7700).
    """
    constants = constants or DEFAULT_CONSTANTS
    fat_mass_kg = require_positive("fat_mass_kg", fat_mass_kg)
    daily_ceiling = (
        kg_to_lbs(fat_mass_kg, constants) * constants.fat_oxidation_kcal_per_lb
    )
    return min(daily_ceiling, fat_mass_kg * constants.kcal_per_kg)


# ---------------------------------------------------------------------------
# RESULT PIPELINE
# ---------------------------------------------------------------------------


def calculate_results(metrics, settings, constants=None):
    """
    Computes a fresh CalculationResults from metrics and settings.

    Args:
        metrics (MetricsModel): Validated body metrics
        settings (CalculationSettings): Formula/activity selection and overrides
        constants (EngineConstants): Optional constant overrides

    Returns:
        CalculationResults: New immutable result set

    Raises:
        MissingInputError: If the selected formula needs body fat and none was given.
    """
    constants = constants or DEFAULT_CONSTANTS

    if settings.custom_bmr is not None:
        bmr = settings.custom_bmr
        logger.info(f"Using manual BMR override: {bmr:.1f}")
    else:
        bmr = calculate_bmr(
            metrics.weight_kg,
            metrics.height_cm,
            metrics.age,
            metrics.gender,
            formula=settings.bmr_formula,
            body_fat_pct=metrics.body_fat_pct,
        )

    tdee = calculate_tdee(
        bmr, settings.activity_level, custom_tdee=settings.custom_tdee, constants=constants
    )

    bmi = calculate_bmi(metrics.weight_kg, metrics.height_cm)
    composition = {}
    if metrics.has_body_fat:
        fat_mass = calculate_fat_mass(metrics.weight_kg, metrics.body_fat_pct)
        composition = {
            "lbm": calculate_lbm(metrics.weight_kg, metrics.body_fat_pct),
            "fat_mass": fat_mass,
            "max_fat_loss": calculate_max_fat_calories(fat_mass, constants),
        }

    results = CalculationResults(
        bmr=bmr,
        tdee=tdee,
        bmi=bmi,
        bmi_category=get_bmi_category(bmi),
        ideal_weight=calculate_ideal_weight(metrics.height_cm, constants),
        min_calories=calculate_min_calories(bmr, tdee, metrics.gender, constants),
        **composition,
    )
    logger.info(
        f"Calculated results: BMR={bmr:.0f}, TDEE={tdee:.0f}, BMI={bmi:.1f} "
        f"({results.bmi_category})"
    )
    return results


# ---------------------------------------------------------------------------
# CONFIGURATION LOADING AND VALIDATION
# ---------------------------------------------------------------------------

_PROFILE_SCHEMA = {
    "type": "object",
    "required": ["carb_percent", "fat_percent"],
    "properties": {
        "carb_percent": {"type": "number", "minimum": 0, "maximum": 100},
        "fat_percent": {"type": "number", "minimum": 0, "maximum": 100},
    },
    "additionalProperties": False,
}

_CONSTANTS_SCHEMA = {
    "type": "object",
    "properties": {
        "kcal_per_kg": {"type": "number", "exclusiveMinimum": 0},
        "activity_factors": {
            "type": "object",
            "properties": {
                level.value: {"type": "number", "exclusiveMinimum": 0}
                for level in ActivityLevel
            },
            "additionalProperties": False,
        },
        "default_body_fat_pct": {
            "type": "number",
            "exclusiveMinimum": 0,
            "exclusiveMaximum": 100,
        },
        "gain_lean_fraction": {"type": "number", "minimum": 0, "maximum": 1},
        "ideal_bmi": {"type": "number", "exclusiveMinimum": 0},
        "female_calorie_floor": {"type": "number", "minimum": 0},
        "male_calorie_floor": {"type": "number", "minimum": 0},
        "min_calorie_bmr_fraction": {"type": "number", "minimum": 0},
        "min_calorie_tdee_margin": {"type": "number", "minimum": 0},
        "fat_oxidation_kcal_per_lb": {"type": "number", "exclusiveMinimum": 0},
        "lbs_per_kg": {"type": "number", "exclusiveMinimum": 0},
        "kcal_per_gram_protein": {"type": "number", "exclusiveMinimum": 0},
        "kcal_per_gram_carb": {"type": "number", "exclusiveMinimum": 0},
        "kcal_per_gram_fat": {"type": "number", "exclusiveMinimum": 0},
    },
    "additionalProperties": False,
}

CONFIG_SCHEMA = {
    "type": "object",
    "required": ["user_info"],
    "properties": {
        "user_info": {
            "type": "object",
            "required": ["weight", "height", "age", "gender"],
            "properties": {
                "weight": {"type": "number", "exclusiveMinimum": 0},
                "height": {"type": "number", "exclusiveMinimum": 0},
                "age": {"type": "number", "exclusiveMinimum": 0, "maximum": 120},
                "gender": {
                    "type": "string",
                    "pattern": "^(m|f|male|female|M|F|Male|Female|MALE|FEMALE)$",
                },
                "units": {"type": "string", "enum": ["metric", "imperial"]},
                "body_fat_pct": {
                    "type": "number",
                    "exclusiveMinimum": 0,
                    "exclusiveMaximum": 100,
                },
            },
        },
        "settings": {
            "type": "object",
            "properties": {
                "bmr_formula": {"enum": [f.value for f in BMRFormula]},
                "activity_level": {
                    "enum": [
                        "sedentary",
                        "lightlyActive",
                        "moderatelyActive",
                        "veryActive",
                        "extremelyActive",
                    ]
                },
                "custom_bmr": {"type": "number", "exclusiveMinimum": 0},
                "custom_tdee": {"type": "number", "exclusiveMinimum": 0},
            },
        },
        "macro_plan": {
            "type": "object",
            "required": ["protein_strategy", "protein_value", "rest_profile"],
            "properties": {
                "protein_strategy": {
                    "enum": ["gramsPerKg", "gramsPerLb", "percentOfCalories", "fixedGrams"]
                },
                "protein_value": {"type": "number", "minimum": 0},
                "rest_profile": _PROFILE_SCHEMA,
                "activity_profile": _PROFILE_SCHEMA,
                "cycle_length_days": {"type": "integer", "minimum": 1},
                "activity_days": {"type": "integer", "minimum": 0},
                "calorie_offset_percent": {"type": "number", "exclusiveMinimum": -100},
            },
        },
        "goal": {
            "type": "object",
            "required": ["goal_type", "target_weight"],
            "properties": {
                "goal_type": {"enum": ["lose", "maintain", "gain"]},
                "target_weight": {"type": "number", "exclusiveMinimum": 0},
                "timeframe_weeks": {"type": "integer", "minimum": 1},
                "fat_loss_percent": {"type": "number", "minimum": 0, "maximum": 100},
                "daily_calorie_change": {"type": "number", "minimum": 0},
                "gain_lean_percent": {"type": "number", "minimum": 0, "maximum": 100},
                "start_date": {"type": "string", "format": "date"},
            },
        },
        "constants": _CONSTANTS_SCHEMA,
    },
}


def load_config_json(config_path, quiet=False):
    """
    Loads and validates a JSON configuration file.

    Args:
        config_path (str): Path to the JSON configuration file.
        quiet (bool): If True, only log at DEBUG level

    Returns:
        dict: Configuration dictionary with user_info and optional settings,
            macro_plan, goal and constants sections.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        json.JSONDecodeError: If the JSON is malformed.
        jsonschema.ValidationError: If the JSON doesn't match CONFIG_SCHEMA.
    """
    log = logger.debug if quiet else logger.info
    log(f"Loading configuration from {config_path}...")

    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r") as f:
        config = json.load(f)

    validate(config, CONFIG_SCHEMA, format_checker=FormatChecker())

    log(f"Successfully loaded config with sections: {', '.join(sorted(config))}")
    return config


def parse_gender(gender_str):
    """
    Converts a user-friendly gender string to the Gender formula selector.

    Raises:
        InvalidInputError: If the string is not recognized
    """
    gender_lower = gender_str.lower()
    if gender_lower in ["m", "male"]:
        return Gender.MALE
    elif gender_lower in ["f", "female"]:
        return Gender.FEMALE
    raise InvalidInputError(
        f"Unrecognized gender: {gender_str}. Use 'm', 'f', 'male', or 'female'."
    )


def extract_data_from_config(config):
    """
    Converts a validated configuration dict into model objects.

    Returns:
        tuple: (metrics, settings, macro_plan or None, goal or None, constants)
    """
    constants = convert_dict_to_constants(config.get("constants"))

    user_info = dict(config["user_info"])
    user_info["gender"] = parse_gender(user_info["gender"]).value
    metrics = convert_dict_to_metrics(user_info, constants)
    settings = convert_dict_to_settings(config.get("settings", {}))

    macro_plan = None
    if "macro_plan" in config:
        macro_plan = convert_dict_to_macro_plan(config["macro_plan"])

    goal = None
    if "goal" in config:
        goal = convert_dict_to_goal_spec(config["goal"], metrics.units, constants)

    return metrics, settings, macro_plan, goal, constants


def extract_start_date(config):
    """
    Returns the projection start date from the goal section, or None if unset.

    Raises:
        InvalidInputError: If start_date is not an ISO YYYY-MM-DD date
    """
    raw = config.get("goal", {}).get("start_date")
    if raw is None:
        return None
    try:
        return date.fromisoformat(raw)
    except (TypeError, ValueError):
        raise InvalidInputError(f"start_date must be a YYYY-MM-DD date, got {raw!r}") from None


def validate_user_input(field_name, value, user_data=None) -> Tuple[bool, str]:
    """
    Validates a single user input for real-time form feedback.

    Args:
        field_name (str): Name of the field being validated
        value: The raw value to validate
        user_data (dict): Other user data for cross-field validation

    Returns:
        tuple: (is_valid, error_message)
    """
    numeric_ranges = {
        "weight": (0, 700, "Weight"),
        "height": (0, 300, "Height"),
        "age": (0, 120, "Age"),
        "target_weight": (0, 700, "Target weight"),
    }

    if field_name in numeric_ranges:
        low, high, label = numeric_ranges[field_name]
        try:
            number = float(value)
        except (ValueError, TypeError):
            return False, "Please enter a valid number"
        if not np.isfinite(number) or number <= low:
            return False, f"{label} must be greater than {low}"
        if number > high:
            return False, f"{label} seems unreasonably high"
        return True, ""

    elif field_name in ["body_fat_pct", "gain_lean_percent"] and value in (None, ""):
        return True, ""

    elif field_name == "body_fat_pct":
        try:
            pct = float(value)
        except (ValueError, TypeError):
            return False, "Please enter a valid number"
        # Open range, as in MetricsModel
        if not np.isfinite(pct) or pct <= 0 or pct >= 100:
            return False, "Body fat must be greater than 0 and less than 100"
        return True, ""

    elif field_name in [
        "fat_loss_percent",
        "gain_lean_percent",
        "carb_percent",
        "fat_percent",
    ]:
        try:
            pct = float(value)
        except (ValueError, TypeError):
            return False, "Please enter a valid number"
        if not np.isfinite(pct) or pct < 0 or pct > 100:
            return False, "Percentage must be between 0 and 100"
        if field_name in ["carb_percent", "fat_percent"] and user_data:
            other = "fat_percent" if field_name == "carb_percent" else "carb_percent"
            if other in user_data and pct + float(user_data[other]) > 100:
                return False, "Carb and fat percentages cannot exceed 100% combined"
        return True, ""

    elif field_name == "timeframe_weeks":
        try:
            weeks = int(value)
        except (ValueError, TypeError):
            return False, "Please enter a whole number of weeks"
        if weeks < 1:
            return False, "Timeframe must be at least 1 week"
        return True, ""

    return True, ""
