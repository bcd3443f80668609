"""
Saturated infiltration into the soil profile.

Water arriving at the surface (throughfall, snowmelt and yesterday's ponding)
enters the top layer; every layer then passes its water above field capacity
to the layer below, reduced by its impermeability, and the bottom layer
drains out of the profile. Water exceeding saturation is pushed back up;
excess at the surface becomes ponded (standing) water.
"""
import logging
from dataclasses import dataclass

import numpy as np

from sweb.core import tolerance as tol

logger = logging.getLogger(__name__)

# Relative saturated conductivity of a frozen layer (Parton et al. 1998)
FROZEN_KSAT_REL: float = 0.01


@dataclass
class InfiltrationResult:
    drain: np.ndarray  # cm passed from each layer into the one below
    drainout: float  # cm leaving the bottom of the profile
    standing: float  # cm ponded on the surface after infiltration


def push_excess_upward(swc: np.ndarray, swc_sat: np.ndarray, flux: np.ndarray) -> float:
    """
    Move water above saturation into the layer above, bottom-up.

    ``swc`` and ``flux`` are modified in place; returns the excess leaving
    the top layer.
    """
    surface_excess = 0.0
    for j in range(len(swc) - 1, -1, -1):
        if tol.gt(swc[j], swc_sat[j]):
            push = swc[j] - swc_sat[j]
            swc[j] -= push
            if j > 0:
                flux[j - 1] -= push
                swc[j - 1] += push
            else:
                surface_excess = push
    return surface_excess


def infiltrate_water_high(
    swc: np.ndarray,
    water_in: float,
    standing: float,
    swc_fc: np.ndarray,
    swc_sat: np.ndarray,
    impermeability: np.ndarray,
    frozen: np.ndarray,
) -> InfiltrationResult:
    """
    Infiltrate surface water and percolate saturated flow downward.

    Args:
        swc: Layer water contents [cm], updated in place
        water_in: Water reaching the soil surface today [cm]
        standing: Ponded water from before [cm], infiltrates as well
        swc_fc: Field capacity per layer [cm]
        swc_sat: Saturation per layer [cm]
        impermeability: Fraction of flow blocked per layer
        frozen: Frozen flag per layer

    Returns:
        InfiltrationResult with per-layer drainage, deep drainage and
        the ponded water left on the surface
    """
    n = len(swc)
    drain = np.zeros(n)
    drainout = 0.0

    swc[0] += water_in + standing

    for i in range(n):
        ksat_rel = FROZEN_KSAT_REL if frozen[i] else 1.0
        d = max(0.0, ksat_rel * (1.0 - impermeability[i]) * (swc[i] - swc_fc[i]))
        drain[i] = d
        swc[i] -= d
        if i < n - 1:
            swc[i + 1] += d
        else:
            drainout = d

    standing = push_excess_upward(swc, swc_sat, drain)
    return InfiltrationResult(drain=drain, drainout=drainout, standing=standing)
