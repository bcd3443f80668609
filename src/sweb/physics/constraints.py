"""
Physical constraints on the daily soil water state.
Checked after every simulated day; violations are recorded and, for
severe ones, raised.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import numpy as np

from sweb.core.exceptions import ErrorContext, PhysicalConstraintError

logger = logging.getLogger(__name__)


@dataclass
class PhysicalConstraint:
    """Definition of a physical constraint"""
    name: str
    description: str
    check_function: Callable[[Dict], bool]
    severity: str = "warning"  # "warning" or "error"
    tolerance: float = 1e-6


class LayerConstraintChecker:
    """
    Checks layer water contents and the water balance of one day.

    The context passed to ``check`` holds ``swc``, ``swc_sat`` and
    ``swc_min`` arrays, the day's ``balance_error`` and a ``date`` label.
    """

    def __init__(self, balance_tolerance: float = 1e-6):
        self.balance_tolerance = balance_tolerance
        self.constraints = self._initialize_constraints()
        self.violation_history: List[Dict] = []

    def _initialize_constraints(self) -> List[PhysicalConstraint]:
        return [
            PhysicalConstraint(
                name="non_negative",
                description="Layer water content cannot be negative",
                check_function=self._check_non_negative,
                severity="error",
            ),
            PhysicalConstraint(
                name="saturation_limit",
                description="Layer water content cannot exceed saturation",
                check_function=self._check_saturation_limit,
                severity="error",
            ),
            PhysicalConstraint(
                name="residual_limit",
                description="Layer water content should not drop below the residual content",
                check_function=self._check_residual_limit,
            ),
            PhysicalConstraint(
                name="water_balance",
                description="Inputs must equal outputs plus the change in storage",
                check_function=self._check_water_balance,
                tolerance=self.balance_tolerance * 10.0,
            ),
        ]

    def check(self, context: Dict) -> List[str]:
        """
        Check all constraints.

        Returns:
            Names of the violated constraints

        Raises:
            PhysicalConstraintError: for a violated constraint of severity "error"
        """
        violated = []
        for constraint in self.constraints:
            context["tolerance"] = constraint.tolerance
            if constraint.check_function(context):
                continue

            violated.append(constraint.name)
            self._log_violation(constraint, context)
            if constraint.severity == "error":
                raise PhysicalConstraintError(
                    f"Violated constraint: {constraint.name} - {constraint.description}",
                    ErrorContext(
                        date=context.get("date"),
                        component="constraints",
                        details={"swc": np.asarray(context.get("swc", [])).tolist()},
                    ),
                )
            logger.warning(f"{context.get('date')}: {constraint.description}")
        return violated

    def _check_non_negative(self, context: Dict) -> bool:
        return bool(np.all(np.asarray(context["swc"]) >= -context["tolerance"]))

    def _check_saturation_limit(self, context: Dict) -> bool:
        excess = np.asarray(context["swc"]) - np.asarray(context["swc_sat"])
        return bool(np.all(excess <= context["tolerance"]))

    def _check_residual_limit(self, context: Dict) -> bool:
        deficit = np.asarray(context["swc_min"]) - np.asarray(context["swc"])
        return bool(np.all(deficit <= context["tolerance"]))

    def _check_water_balance(self, context: Dict) -> bool:
        return abs(context.get("balance_error", 0.0)) <= context["tolerance"]

    def _log_violation(self, constraint: PhysicalConstraint, context: Dict):
        """Record a constraint violation"""
        self.violation_history.append({
            "constraint": constraint.name,
            "description": constraint.description,
            "severity": constraint.severity,
            "date": context.get("date"),
            "balance_error": context.get("balance_error"),
        })

    def get_violation_summary(self, n_recent: Optional[int] = 10) -> Dict:
        """Get summary of constraint violations; ``n_recent=None`` lists all of them"""
        if not self.violation_history:
            return {"total_violations": 0, "by_constraint": {}, "recent_violations": []}

        by_constraint: Dict[str, int] = {}
        for violation in self.violation_history:
            name = violation["constraint"]
            by_constraint[name] = by_constraint.get(name, 0) + 1

        if n_recent is None:
            recent = list(self.violation_history)
        else:
            recent = self.violation_history[-n_recent:] if n_recent > 0 else []

        return {
            "total_violations": len(self.violation_history),
            "by_constraint": by_constraint,
            "recent_violations": recent,
        }
