"""
Unsaturated (slow) percolation between soil layers.

Modified from Parton (1978), eq. 2.9: the drainage rate scales from 0 at
the residual water content to ``slow_drain_coeff`` at field capacity,
using water content relative to the residual instead of absolute content.
"""
import logging
import math

import numpy as np

from sweb.core import tolerance as tol
from sweb.core.constants import SLOW_DRAIN_DEPTH
from sweb.physics.infiltration import FROZEN_KSAT_REL, push_excess_upward

logger = logging.getLogger(__name__)


def slow_drainage_potential(
    swc: float,
    swc_fc: float,
    swc_min: float,
    width: float,
    slow_drain_coeff: float,
    slow_drain_depth: float = SLOW_DRAIN_DEPTH,
) -> float:
    """Potential unsaturated drainage rate of one layer [cm/day]"""
    drainpot = slow_drain_coeff
    if tol.lt(swc, swc_fc):
        swc_avail = max(0.0, swc - swc_min)
        swcrel = max(0.0, min(1.0, swc_avail / (swc_fc - swc_min)))
        tmp1 = slow_drain_depth * swc_fc / width
        tmp2 = math.exp(-tmp1)
        if tol.lt(tmp2, 1.0):
            drainpot *= (math.exp(tmp1 * (swcrel - 1.0)) - tmp2) / (1.0 - tmp2)
        else:
            drainpot = 0.0
    return drainpot


def percolate_unsaturated(
    swc: np.ndarray,
    percolate: np.ndarray,
    layers,
    frozen: np.ndarray,
    slow_drain_coeff: float,
    slow_drain_depth: float = SLOW_DRAIN_DEPTH,
):
    """
    Drain each layer into the next at the slow-drainage rate.

    ``swc`` and ``percolate`` are updated in place.

    Returns:
        Tuple of (deep drainage [cm], water pushed to the surface [cm])
    """
    n = len(swc)
    drainout = 0.0

    for i, layer in enumerate(layers):
        swc_avail = max(0.0, swc[i] - layer.swc_min)
        if tol.le(swc_avail, 0.0):
            d = 0.0
        else:
            drainpot = slow_drainage_potential(
                swc[i], layer.swc_fc, layer.swc_min, layer.width, slow_drain_coeff, slow_drain_depth
            )
            kunsat_rel = FROZEN_KSAT_REL if frozen[i] else 1.0
            d = kunsat_rel * (1.0 - layer.impermeability) * min(swc_avail, max(0.0, drainpot))

        percolate[i] += d
        swc[i] -= d
        if i < n - 1:
            swc[i + 1] += d
        else:
            drainout += max(d, 0.0)

    swc_sat = np.array([layer.swc_sat for layer in layers])
    surface_excess = push_excess_upward(swc, swc_sat, percolate)
    return drainout, surface_excess
