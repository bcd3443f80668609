"""
Soil water retention curves (SWRC) relating water content to matric potential.

Three families are supported, each as one subclass of ``SWRC`` chosen once at
setup:

1. Campbell (1974): power-law retention curve
2. van Genuchten (1980): sigmoidal retention curve with residual water content
3. FXW: Fredlund & Xing (1994) curve with the Wang et al. (2018) residual
   correction, reaching zero water content at finite suction

Water content passed to and returned from the layer-level functions is the
amount of water in the layer (cm); the curves themselves work on the
volumetric content of the matric (gravel-free) soil. Potentials are in bar
and reported as positive "-bar" magnitudes (0 at saturation).

References:
- Campbell, G.S. (1974). A simple method for determining unsaturated
  conductivity from moisture retention data. Soil Science 117:311-314.
- van Genuchten, M.Th. (1980). A closed-form equation for predicting the
  hydraulic conductivity of unsaturated soils. Soil Sci. Soc. Am. J. 44:892-898.
- Fredlund, D.G., Xing, A. (1994). Equations for the soil-water
  characteristic curve. Canadian Geotechnical Journal 31:521-532.
- Wang, Y., Ma, R., Zhu, G. (2022). Improved prediction of hydraulic
  conductivity with a soil water retention curve that accounts for both
  capillary and adsorption forces. Water Resources Research 58.
"""

import logging
import math
from abc import ABC, abstractmethod
from typing import ClassVar, Dict, Sequence, Tuple, Type

from scipy.optimize import brentq

from sweb.core import tolerance as tol
from sweb.core.constants import (
    CM_PER_BAR,
    CM_PER_BAR_VG,
    FXW_H0_CM,
    FXW_HR_CM,
    FXW_LOG_H0_HR,
    FXW_SOLVER_XTOL,
    SW_MISSING,
)
from sweb.core.exceptions import ConfigurationError, InvalidSoilStateError
from sweb.core.types import SWRCType

logger = logging.getLogger(__name__)


class SWRC(ABC):
    """
    Base class of the retention curve families.

    Subclasses implement the volumetric relationships ``theta_to_swp`` and
    ``swp_to_theta``; the layer-level conversions in this module apply the
    gravel correction and precondition checks.
    """

    swrc_type: ClassVar[SWRCType]
    param_names: ClassVar[Tuple[str, ...]]

    def __init__(self, params: Sequence[float]):
        if len(params) != len(self.param_names):
            raise ConfigurationError(
                f"{self.swrc_type.value} expects {len(self.param_names)} parameters "
                f"({', '.join(self.param_names)}), got {len(params)}"
            )
        self.params = tuple(float(p) for p in params)
        self.check_parameters()

    def __repr__(self) -> str:
        values = ", ".join(f"{n}={v:.4g}" for n, v in zip(self.param_names, self.params))
        return f"{self.__class__.__name__}({values})"

    def _param(self, name: str) -> float:
        return self.params[self.param_names.index(name)]

    def _require(self, condition: bool, message: str) -> None:
        if not condition or any(not math.isfinite(p) for p in self.params):
            raise ConfigurationError(f"{self.swrc_type.value}: {message} {self!r}")

    @property
    @abstractmethod
    def theta_sat(self) -> float:
        """Volumetric water content at saturation"""

    @property
    @abstractmethod
    def k_sat(self) -> float:
        """Saturated hydraulic conductivity (cm/day)"""

    @abstractmethod
    def check_parameters(self) -> None:
        """Raise ConfigurationError if parameters are outside their domain"""

    @abstractmethod
    def theta_to_swp(self, theta: float) -> float:
        """Matric potential (-bar) at volumetric content ``theta``"""

    @abstractmethod
    def swp_to_theta(self, swp: float) -> float:
        """Volumetric content at matric potential ``swp`` (-bar)"""


class Campbell1974(SWRC):
    """Campbell (1974); parameters are air-entry suction (cm), theta_sat, b and k_sat"""

    swrc_type = SWRCType.CAMPBELL_1974
    param_names = ("psis_cm", "theta_sat", "b", "k_sat")

    @property
    def theta_sat(self) -> float:
        return self._param("theta_sat")

    @property
    def k_sat(self) -> float:
        return self._param("k_sat")

    def check_parameters(self) -> None:
        psis, theta_s, b, k_sat = self.params
        self._require(psis > 0.0, "psis must be > 0")
        self._require(0.0 < theta_s <= 1.0, "theta_sat must be in (0, 1]")
        self._require(b != 0.0, "b must not be 0")
        self._require(k_sat > 0.0, "k_sat must be > 0")

    def theta_to_swp(self, theta: float) -> float:
        psis, theta_s, b, _ = self.params
        if theta > theta_s:
            return 0.0
        if theta <= 0.0:
            raise InvalidSoilStateError(f"Campbell1974 potential undefined at theta = {theta}")
        return psis / (theta / theta_s) ** b / CM_PER_BAR

    def swp_to_theta(self, swp: float) -> float:
        psis, theta_s, b, _ = self.params
        phi = swp * CM_PER_BAR
        if phi < psis:
            return theta_s
        return theta_s * (psis / phi) ** (1.0 / b)


class VanGenuchten1980(SWRC):
    """van Genuchten (1980) with m = 1 - 1/n; alpha in 1/cm"""

    swrc_type = SWRCType.VAN_GENUCHTEN_1980
    param_names = ("theta_r", "theta_s", "alpha", "n", "k_sat")

    @property
    def theta_sat(self) -> float:
        return self._param("theta_s")

    @property
    def k_sat(self) -> float:
        return self._param("k_sat")

    def check_parameters(self) -> None:
        theta_r, theta_s, alpha, n, k_sat = self.params
        self._require(0.0 < theta_r <= 1.0, "theta_r must be in (0, 1]")
        self._require(0.0 < theta_s <= 1.0, "theta_s must be in (0, 1]")
        self._require(theta_r < theta_s, "theta_r must be smaller than theta_s")
        self._require(alpha > 0.0, "alpha must be > 0")
        self._require(n > 1.0, "n must be > 1")
        self._require(k_sat > 0.0, "k_sat must be > 0")

    def theta_to_swp(self, theta: float) -> float:
        theta_r, theta_s, alpha, n, _ = self.params
        if tol.ge(theta, theta_s):
            if tol.gt(theta, theta_s):
                raise InvalidSoilStateError(
                    f"vanGenuchten1980: theta = {theta} exceeds theta_s = {theta_s}"
                )
            return 0.0
        if theta <= theta_r:
            raise InvalidSoilStateError(
                f"vanGenuchten1980: theta = {theta} at or below theta_r = {theta_r}"
            )
        tmp = ((theta_s - theta_r) / (theta - theta_r)) ** (1.0 / (1.0 - 1.0 / n))
        return (tmp - 1.0) ** (1.0 / n) / alpha / CM_PER_BAR_VG

    def swp_to_theta(self, swp: float) -> float:
        theta_r, theta_s, alpha, n, _ = self.params
        phi = swp * CM_PER_BAR_VG
        return theta_r + (theta_s - theta_r) / (1.0 + (alpha * phi) ** n) ** (1.0 - 1.0 / n)


class FXW(SWRC):
    """
    Fredlund-Xing curve with the Wang et al. residual correction.

    theta(h) = theta_s * S_e(h) * C_f(h), reaching zero at h0 = 6.3e6 cm.
    The curve has no closed-form inverse; potentials are found with Brent's
    method on [0, h0].
    """

    swrc_type = SWRCType.FXW
    param_names = ("theta_s", "alpha", "n", "m", "k_sat", "L")

    @property
    def theta_sat(self) -> float:
        return self._param("theta_s")

    @property
    def k_sat(self) -> float:
        return self._param("k_sat")

    def check_parameters(self) -> None:
        theta_s, alpha, n, m, k_sat, pore_l = self.params
        self._require(0.0 < theta_s <= 1.0, "theta_s must be in (0, 1]")
        self._require(alpha > 0.0, "alpha must be > 0")
        self._require(1.0 < n <= 10.0, "n must be in (1, 10]")
        self._require(0.0 < m <= 1.5, "m must be in (0, 1.5]")
        self._require(k_sat > 0.0, "k_sat must be > 0")
        self._require(pore_l > 0.0, "L must be > 0")

    def phi_to_theta(self, phi: float) -> float:
        """Volumetric content at suction ``phi`` (cm)"""
        theta_s, alpha, n, m, _, _ = self.params
        if phi >= FXW_H0_CM:
            return 0.0
        s_e = math.log(math.e + abs(alpha * phi) ** n) ** (-m)
        c_f = 1.0 - math.log(1.0 + phi / FXW_HR_CM) / FXW_LOG_H0_HR
        return theta_s * s_e * c_f

    def theta_to_swp(self, theta: float) -> float:
        theta_s = self.theta_sat
        if tol.ge(theta, theta_s):
            if tol.gt(theta, theta_s):
                raise InvalidSoilStateError(f"FXW: theta = {theta} exceeds theta_s = {theta_s}")
            return 0.0
        if theta < 0.0:
            raise InvalidSoilStateError(f"FXW: theta = {theta} is negative")
        if theta == 0.0:
            return FXW_H0_CM / CM_PER_BAR_VG

        phi = brentq(
            lambda h: self.phi_to_theta(h) - theta,
            0.0,
            FXW_H0_CM,
            xtol=FXW_SOLVER_XTOL,
            maxiter=500,
        )
        return phi / CM_PER_BAR_VG

    def swp_to_theta(self, swp: float) -> float:
        return self.phi_to_theta(swp * CM_PER_BAR_VG)


SWRC_REGISTRY: Dict[SWRCType, Type[SWRC]] = {
    SWRCType.CAMPBELL_1974: Campbell1974,
    SWRCType.VAN_GENUCHTEN_1980: VanGenuchten1980,
    SWRCType.FXW: FXW,
}


def create_swrc(swrc_type, params: Sequence[float]) -> SWRC:
    """Select and validate a retention curve once at setup."""
    try:
        cls = SWRC_REGISTRY[SWRCType(swrc_type)]
    except ValueError as exc:
        raise ConfigurationError(f"Unknown retention curve '{swrc_type}'") from exc
    return cls(params)


# =============================================================================
# LAYER-LEVEL CONVERSIONS
# =============================================================================

def _invalid(message: str, strict: bool) -> float:
    if strict:
        raise InvalidSoilStateError(message)
    logger.warning(message)
    return SW_MISSING


def _matric_volume(layer) -> float:
    return layer.width * (1.0 - layer.gravel_fraction)


def swc_to_swp(swc: float, layer, strict: bool = True) -> float:
    """
    Convert the water amount of a layer (cm) to its matric potential (-bar).

    ``layer`` needs ``width``, ``gravel_fraction`` and ``swrc`` attributes.
    With ``strict=False`` invalid states log a warning and return
    ``SW_MISSING`` instead of raising ``InvalidSoilStateError``.
    """
    if swc < 0.0 or layer.width <= 0.0 or not (0.0 <= layer.gravel_fraction < 1.0):
        return _invalid(
            f"swc_to_swp: invalid state swc={swc}, width={layer.width}, "
            f"gravel={layer.gravel_fraction} (layer {getattr(layer, 'index', '?')})",
            strict,
        )

    theta = swc / _matric_volume(layer)
    try:
        return layer.swrc.theta_to_swp(theta)
    except InvalidSoilStateError as exc:
        return _invalid(str(exc), strict)


def swp_to_swc(swp: float, layer, strict: bool = True) -> float:
    """Convert a matric potential (-bar) to the water amount of a layer (cm)."""
    if swp < 0.0 or layer.width <= 0.0 or not (0.0 <= layer.gravel_fraction < 1.0):
        return _invalid(
            f"swp_to_swc: invalid state swp={swp}, width={layer.width}, "
            f"gravel={layer.gravel_fraction} (layer {getattr(layer, 'index', '?')})",
            strict,
        )

    return layer.swrc.swp_to_theta(swp) * _matric_volume(layer)
