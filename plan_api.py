"""
Plan API Layer for the Metabolic Engine

This module provides a single entry point that runs the full calculation chain
(metabolic results, macro allocation, goal projection) and returns one
immutable snapshot. It also coordinates repeated recomputation when inputs
change quickly, so only the most recent request's result is ever published.

Key Features:
- One-call orchestration with no partially updated state
- Stable cache keys over the core inputs
- Last-request-wins recompute coordination
- Input errors propagate unchanged; unexpected failures are wrapped
"""

import hashlib
import json
import logging
import threading
from dataclasses import asdict, dataclass
from datetime import date
from enum import Enum
from typing import Optional

from core import calculate_results
from goal_forecast import create_projection_engine
from macro_planning import allocate_macros
from shared_models import (
    DEFAULT_CONSTANTS,
    CalculationResults,
    CalculationSettings,
    EngineConstants,
    GoalSpec,
    MacroPlan,
    MacroResult,
    MetricsModel,
    ProjectionResult,
)

logger = logging.getLogger(__name__)


# ============================================================================
# CUSTOM EXCEPTIONS
# ============================================================================


class PlanError(Exception):
    """Raised when plan generation fails for a reason other than bad input"""

    pass


# ============================================================================
# SNAPSHOT
# ============================================================================


@dataclass(frozen=True)
class PlanSnapshot:
    """Complete, consistent output of one plan computation"""

    results: CalculationResults
    macros: Optional[MacroResult]
    projection: Optional[ProjectionResult]
    cache_key: str


# ============================================================================
# CORE API FUNCTION
# ============================================================================


def get_plan(
    metrics: MetricsModel,
    settings: CalculationSettings,
    macro_plan: Optional[MacroPlan] = None,
    goal: Optional[GoalSpec] = None,
    constants: Optional[EngineConstants] = None,
    start_date: Optional[date] = None,
) -> PlanSnapshot:
    """
    Run the full chain and return an immutable plan snapshot.

    Args:
        metrics: Validated body metrics
        settings: Formula, activity level and overrides
        macro_plan: Optional macro strategy; skipped when None
        goal: Optional weight goal; skipped when None
        constants: Optional constant overrides
        start_date: Projection week 0 date (defaults to today)

    Returns:
        PlanSnapshot: results plus optional macros and projection

    Raises:
        InvalidInputError: If any input is invalid (including its subclasses)
        PlanError: If computation fails unexpectedly
    """
    constants = constants or DEFAULT_CONSTANTS
    cache_key = generate_cache_key(metrics, settings, macro_plan, goal, constants, start_date)
    logger.info(f"Generating plan {cache_key[:12]}")

    try:
        results = calculate_results(metrics, settings, constants)

        macros = None
        if macro_plan is not None:
            macros = allocate_macros(results.tdee, metrics.weight_kg, macro_plan, constants)

        projection = None
        if goal is not None:
            engine = create_projection_engine(
                metrics,
                goal,
                results.tdee,
                lean_mass=results.lbm,
                fat_mass=results.fat_mass,
                start_date=start_date,
                constants=constants,
            )
            projection = engine.run_projection()

    except ValueError:
        raise
    except Exception as e:
        logger.error(f"Plan generation failed: {str(e)}")
        raise PlanError(f"Unexpected error during plan generation: {str(e)}") from e

    return PlanSnapshot(
        results=results, macros=macros, projection=projection, cache_key=cache_key
    )


# ============================================================================
# CACHE KEY GENERATION
# ============================================================================


def _serialize(value):
    """Convert model objects into JSON-friendly primitives"""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(_serialize(k)): _serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize(v) for v in value]
    return value


def generate_cache_key(
    metrics: MetricsModel,
    settings: CalculationSettings,
    macro_plan: Optional[MacroPlan] = None,
    goal: Optional[GoalSpec] = None,
    constants: Optional[EngineConstants] = None,
    start_date: Optional[date] = None,
) -> str:
    """
    Generate a stable hash for cache invalidation.

    Display units are excluded since they never change computed values.
    """
    metrics_data = asdict(metrics)
    metrics_data.pop("units", None)

    key_data = {
        "metrics": metrics_data,
        "settings": asdict(settings),
        "macro_plan": asdict(macro_plan) if macro_plan is not None else None,
        "goal": asdict(goal) if goal is not None else None,
        "constants": asdict(constants or DEFAULT_CONSTANTS),
        "start_date": start_date.isoformat() if start_date else None,
    }

    # Create stable JSON representation
    json_str = json.dumps(_serialize(key_data), sort_keys=True, default=str)
    return hashlib.sha256(json_str.encode()).hexdigest()


# ============================================================================
# RECOMPUTE COORDINATION
# ============================================================================


class RecomputeCoordinator:
    """
    Publishes plan snapshots with last-request-wins semantics.

    Every recompute request takes a ticket from begin(). A snapshot is only
    published if its ticket is still the newest one issued, so a slow,
    superseded computation can never overwrite a newer result.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._issued = 0
        self._latest: Optional[PlanSnapshot] = None

    @property
    def latest(self) -> Optional[PlanSnapshot]:
        """Most recently published snapshot, or None before the first publish"""
        with self._lock:
            return self._latest

    def begin(self) -> int:
        """Issue a new ticket, superseding every earlier one"""
        with self._lock:
            self._issued += 1
            return self._issued

    def publish(self, ticket: int, snapshot: PlanSnapshot) -> bool:
        """Publish the snapshot if the ticket is current; returns whether it was kept"""
        with self._lock:
            if ticket != self._issued:
                logger.debug(f"Discarding superseded plan (ticket {ticket}, current {self._issued})")
                return False
            self._latest = snapshot
            return True

    def recompute(
        self,
        metrics: MetricsModel,
        settings: CalculationSettings,
        macro_plan: Optional[MacroPlan] = None,
        goal: Optional[GoalSpec] = None,
        constants: Optional[EngineConstants] = None,
        start_date: Optional[date] = None,
    ) -> Optional[PlanSnapshot]:
        """
        Compute and publish a plan for the given inputs.

        Returns the published snapshot, or None if a newer request superseded
        this one while it was computing. When the inputs hash to the currently
        published key the existing snapshot is reused.
        """
        ticket = self.begin()

        cache_key = generate_cache_key(metrics, settings, macro_plan, goal, constants, start_date)
        current = self.latest
        if current is not None and current.cache_key == cache_key:
            logger.debug(f"Inputs unchanged, reusing plan {cache_key[:12]}")
            snapshot = current
        else:
            snapshot = get_plan(metrics, settings, macro_plan, goal, constants, start_date)

        if self.publish(ticket, snapshot):
            return snapshot
        return None
