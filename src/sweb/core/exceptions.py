"""
Custom exception hierarchy for the sweb system.
Errors carry a machine-readable kind alongside the message so that a batch
driver can decide whether to abort one column or the whole run.
"""
from typing import Optional, Any, Dict
from dataclasses import dataclass, asdict


@dataclass
class ErrorContext:
    """Context information for errors"""
    site_id: Optional[str] = None
    date: Optional[str] = None
    component: Optional[str] = None
    operation: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class SwebError(Exception):
    """Base exception for all sweb errors"""

    kind: str = "error"

    def __init__(self, message: str, context: Optional[ErrorContext] = None):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()

    def __str__(self) -> str:
        context_str = ""
        if self.context.site_id:
            context_str += f" [Site: {self.context.site_id}]"
        if self.context.date:
            context_str += f" [Date: {self.context.date}]"
        if self.context.component:
            context_str += f" [Component: {self.context.component}]"

        return f"{self.__class__.__name__}: {self.message}{context_str}"

    def to_dict(self) -> Dict[str, Any]:
        """Structured (kind, message) representation"""
        return {
            "kind": self.kind,
            "error": self.__class__.__name__,
            "message": self.message,
            "context": asdict(self.context),
        }


# Setup errors
class ConfigurationError(SwebError):
    """Invalid configuration, fatal at setup"""
    kind = "configuration"


class SiteConfigurationError(ConfigurationError):
    """Site-specific configuration error"""
    pass


# Input errors
class InputDataError(SwebError):
    """Base class for input-quality errors"""
    kind = "input"


class MissingDataError(InputDataError):
    """Required data is missing"""
    pass


class DataValidationError(InputDataError):
    """Data validation failed"""
    pass


class InvalidSoilStateError(SwebError):
    """Soil water content or potential outside the valid domain"""
    kind = "invalid_soil_state"


# Physics model errors
class PhysicsModelError(SwebError):
    """Base class for physics model errors"""
    kind = "physics"


class WaterBalanceError(PhysicsModelError):
    """Water balance violation"""
    kind = "invariant"


class ConvergenceError(PhysicsModelError):
    """Iterative scheme failed to converge"""
    kind = "numerical"


class PhysicalConstraintError(PhysicsModelError):
    """Physical constraint violation"""
    kind = "invariant"


def handle_exception(exc: Exception, context: Optional[ErrorContext] = None) -> SwebError:
    """
    Wrap generic exceptions in SwebError hierarchy.
    Useful for catching and categorizing third-party exceptions.
    """
    if isinstance(exc, SwebError):
        return exc

    error_map = {
        FileNotFoundError: MissingDataError,
        ValueError: DataValidationError,
        KeyError: DataValidationError,
        ArithmeticError: PhysicsModelError,
        RuntimeError: PhysicsModelError,
    }

    for exc_type, sweb_exc_type in error_map.items():
        if isinstance(exc, exc_type):
            return sweb_exc_type(str(exc), context)

    return SwebError(str(exc), context)
