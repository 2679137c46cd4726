#!/usr/bin/env python3
"""
Metabolic Engine - Main CLI Script

This is the command-line entry point for metabolic analysis. It loads a JSON
configuration, runs the full plan (BMR/TDEE, body composition, macro cycle and
goal projection), prints a summary and optionally writes the week-by-week
projection to CSV.
"""

import argparse
import json
import logging
import os

from jsonschema import ValidationError

from core import (
    extract_data_from_config,
    extract_start_date,
    format_height,
    format_weight,
    load_config_json,
)
from plan_api import PlanError, get_plan
from shared_models import InvalidInputError

logger = logging.getLogger(__name__)


def run_analysis(config_path="example_config.json", csv_path=None, return_results=False):
    """
    Loads a configuration, computes the plan and reports it.

    Args:
        config_path (str): Path to JSON configuration file
        csv_path (str): Optional path for the projection CSV
        return_results (bool): If True, returns the PlanSnapshot instead of printing

    Returns:
        int or PlanSnapshot: Exit code (0 for success, 1 for error) if
            return_results=False, otherwise the computed snapshot
    """
    try:
        config = load_config_json(config_path, quiet=return_results)
        metrics, settings, macro_plan, goal, constants = extract_data_from_config(config)
        start_date = extract_start_date(config)
        snapshot = get_plan(metrics, settings, macro_plan, goal, constants, start_date)
    except (FileNotFoundError, json.JSONDecodeError, ValidationError) as e:
        if return_results:
            raise
        print(f"Error: Invalid configuration: {e}")
        return 1
    except (InvalidInputError, PlanError) as e:
        if return_results:
            raise
        print(f"Error: {e}")
        return 1

    if return_results:
        return snapshot

    units = metrics.units
    results = snapshot.results

    print("Metabolic Analysis")
    print("=" * 65)
    print("User Info:")
    print(f"  - Weight: {format_weight(metrics.weight_kg, units)}")
    print(f"  - Height: {format_height(metrics.height_cm, units)}")
    print(f"  - Age: {metrics.age}")
    print(f"  - Gender: {metrics.gender.value}")
    if metrics.has_body_fat:
        print(f"  - Body Fat: {metrics.body_fat_pct:.1f}%")
    print(f"  - Formula: {settings.bmr_formula.value}, Activity: {settings.activity_level.value}")

    print("\n--- Metabolic Results ---")
    print(f"  BMR:            {results.bmr:.0f} kcal/day")
    print(f"  TDEE:           {results.tdee:.0f} kcal/day")
    print(f"  BMI:            {results.bmi:.1f} ({results.bmi_category})")
    print(f"  Ideal Weight:   {format_weight(results.ideal_weight, units)}")
    print(f"  Min Calories:   {results.min_calories:.0f} kcal/day")
    if results.has_body_composition:
        print(f"  Lean Mass:      {format_weight(results.lbm, units)}")
        print(f"  Fat Mass:       {format_weight(results.fat_mass, units)}")
        print(f"  Max Fat Loss:   {results.max_fat_loss:.0f} kcal/day")

    if snapshot.macros is not None:
        macros = snapshot.macros
        print("\n--- Macro Cycle ---")
        print(f"  Target Calories: {macros.adjusted_calories:.0f} kcal/day")
        for label, profile in (("Rest", macros.rest), ("Activity", macros.activity)):
            print(
                f"  {label:<9} P {profile.protein_g:.0f} g | C {profile.carb_g:.0f} g | "
                f"F {profile.fat_g:.0f} g  ({profile.total_calories:.0f} kcal)"
            )
        print(
            f"  Cycle: {macros.rest_days} rest / {macros.activity_days} activity days, "
            f"{macros.cycle_deficit:+.0f} kcal vs TDEE "
            f"({format_weight(abs(macros.cycle_weight_change_kg), units)} "
            f"{'gain' if macros.cycle_weight_change_kg > 0 else 'loss'} per cycle)"
        )

    if snapshot.projection is not None:
        projection = snapshot.projection
        print("\n--- Goal Projection ---")
        print(
            f"  Goal: {projection.goal_type.value} to "
            f"{format_weight(projection.target_weight_kg, units)} "
            f"({projection.weekly_weight_change:+.3f} kg/week)"
        )
        if not projection.achievable:
            print("  Warning: target is not reachable within the selected timeframe")

        df = projection.to_dataframe()
        display_cols = ["week", "date_str", "weight", "lean_mass", "fat_mass", "body_fat_pct"]
        print(df[display_cols].to_string(index=False))
        print(
            f"  Stopped after week {projection.weeks_projected}: "
            f"{projection.stop_reason.value.replace('_', ' ')}"
        )

        if csv_path:
            df.to_csv(csv_path, index=False)
            logger.info(f"Wrote {len(df)} projection rows to {csv_path}")
            print(f"\nProjection written to {csv_path}")

    return 0


def main():
    """Main CLI function with comprehensive argument parsing."""
    parser = argparse.ArgumentParser(
        description="Metabolic calculations, macro cycles and goal projection",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_analysis.py                           # Use example_config.json
  python run_analysis.py my_config.json            # Use custom config
  python run_analysis.py --config my_config.json   # Alternative syntax
  python run_analysis.py --csv projection.csv      # Also export the projection
  python run_analysis.py --help-config             # Show config format
        """,
    )

    parser.add_argument(
        "config_file",
        nargs="?",
        default="example_config.json",
        help="Path to JSON configuration file (default: example_config.json)",
    )

    parser.add_argument(
        "--config",
        "-c",
        dest="config_file_alt",
        help="Alternative way to specify config file path",
    )

    parser.add_argument(
        "--csv",
        dest="csv_path",
        help="Write the week-by-week goal projection to this CSV file",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    parser.add_argument(
        "--help-config",
        action="store_true",
        help="Show detailed help about the JSON configuration format",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.help_config:
        show_config_help()
        return 0

    # Determine which config file to use
    config_file = args.config_file_alt if args.config_file_alt else args.config_file

    if not os.path.exists(config_file):
        print(f"Error: Configuration file not found: {config_file}")
        print()
        print("Run with --help-config to see the expected JSON format.")
        return 1

    try:
        return run_analysis(config_path=config_file, csv_path=args.csv_path)
    except KeyboardInterrupt:
        print("\nAnalysis interrupted by user.")
        return 1


def show_config_help():
    """Show detailed help about the JSON configuration format."""
    help_text = """
JSON Configuration Format
=========================

{
  "user_info": {
    "weight": <weight in kg, or lbs when units is imperial>,
    "height": <height in cm, or inches when units is imperial>,
    "age": <age in years>,
    "gender": "<male|female|m|f>",
    "units": "<metric|imperial>",          // optional, default metric
    "body_fat_pct": <percentage>           // optional
  },
  "settings": {                            // optional
    "bmr_formula": "<mifflinStJeor|harrisBenedict|katchMcArdle|schofield>",
    "activity_level": "<sedentary|lightlyActive|moderatelyActive|veryActive|extremelyActive>",
    "custom_bmr": <kcal>,                  // optional override
    "custom_tdee": <kcal>                  // optional override
  },
  "macro_plan": {                          // optional
    "protein_strategy": "<gramsPerKg|gramsPerLb|percentOfCalories|fixedGrams>",
    "protein_value": <number>,
    "rest_profile": {"carb_percent": <0-100>, "fat_percent": <0-100>},
    "activity_profile": {"carb_percent": <0-100>, "fat_percent": <0-100>},
    "cycle_length_days": <days>,           // default 7
    "activity_days": <days>,               // default 0
    "calorie_offset_percent": <percent>    // default 0, negative for a deficit
  },
  "goal": {                                // optional
    "goal_type": "<lose|maintain|gain>",
    "target_weight": <weight in the user's units>,
    "timeframe_weeks": <weeks>,            // default 12
    "fat_loss_percent": <0-100>,           // default 85
    "daily_calorie_change": <kcal>,        // default 500
    "gain_lean_percent": <0-100>,          // optional, default 50
    "start_date": "YYYY-MM-DD"             // optional, default today
  },
  "constants": {}                          // optional overrides, e.g. {"kcal_per_kg": 7700}
}

Notes:
- Only user_info is required; each other section enables its part of the report
- Carb + fat percentages apply to calories left after protein and may not exceed 100
- Katch-McArdle requires body_fat_pct
    """
    print(help_text)


if __name__ == "__main__":
    exit(main())
