"""
Water extraction from soil layers and hydraulic redistribution by roots.

Hydraulic redistribution follows Ryel et al. (2002): roots move water
from wetter (lower potential) layers into drier ones at night, at a rate
proportional to the potential difference, the relative soil-root
conductance and the rooting fractions of the two layers.
"""
import logging
import math
from typing import Sequence

import numpy as np

from sweb.core import tolerance as tol
from sweb.core.exceptions import ConvergenceError, ErrorContext
from sweb.core.types import VegType
from sweb.physics.evapotranspiration import extraction_weights
from sweb.physics.soil_hydraulics import swc_to_swp

logger = logging.getLogger(__name__)

NIGHT_FRACTION: float = 10.0 / 24.0  # fixed 10-hour night


def remove_from_soil(
    swc: np.ndarray,
    qty: np.ndarray,
    layers: Sequence,
    n_layers: int,
    coeffs: Sequence[float],
    rate: float,
    swc_floor: Sequence[float],
    frozen: Sequence[bool],
) -> float:
    """
    Remove ``rate`` cm of water from the top ``n_layers`` layers.

    Each layer's share is its coefficient divided by its potential, so
    drier layers give up less; no layer drops below ``swc_floor`` and
    frozen layers give up nothing. ``swc`` and ``qty`` are updated in place.

    Returns:
        Water actually removed [cm]
    """
    if n_layers == 0 or tol.le(rate, 0.0):
        return 0.0

    weights = extraction_weights(layers, swc, np.asarray(coeffs[:n_layers], dtype=float))
    sumswp = weights.sum()
    if tol.is_zero(sumswp):
        return 0.0

    removed = 0.0
    for i in range(n_layers):
        if frozen[i]:
            continue
        q = weights[i] / sumswp * rate
        d = min(q, max(0.0, swc[i] - swc_floor[i]))
        swc[i] -= d
        qty[i] += d
        removed += d
    return removed


def relative_root_conductance(swp: np.ndarray, swp50: float, shape: float) -> np.ndarray:
    """Ryel et al. (2002), eq. 7"""
    return np.clip(1.0 / (1.0 + (swp / swp50) ** shape), 0.0, 1.0)


def hydraulic_redistribution(
    swc: np.ndarray,
    layers: Sequence,
    veg: VegType,
    frozen: Sequence[bool],
    max_cond_root: float,
    swp50: float,
    shape_cond: float,
    scale: float,
    day: str = "",
) -> np.ndarray:
    """
    Redistribute water between layers through the root system of ``veg``.

    The top layer takes no part. Moves are limited so that no layer loses
    more than its water above min(wilting point, critical water content);
    the limit is applied iteratively because restricting one layer's
    outflow changes the inflow of others.

    Returns:
        Net redistribution per layer [cm], already added to ``swc``

    Raises:
        ConvergenceError: when the restriction does not settle within one
            iteration per layer
    """
    n = len(swc)
    hydred = np.zeros(n)
    if n < 2:
        return hydred

    swc_wp = np.array([layer.swc_wp for layer in layers])
    swa = np.array([
        max(0.0, swc[i] - min(layer.swc_wp, layer.swc_crit[veg])) for i, layer in enumerate(layers)
    ])
    swp = np.array([swc_to_swp(swc[i], layer) for i, layer in enumerate(layers)])
    rel_cond = relative_root_conductance(swp, swp50, shape_cond)

    # mat[i, j] > 0: layer i receives water from layer j; mat is antisymmetric
    mat = np.zeros((n, n))
    for i in range(1, n):
        for j in range(i + 1, n):
            wet = tol.gt(swc[i], swc_wp[i]) or tol.gt(swc[j], swc_wp[j])
            if not wet or frozen[i] or frozen[j]:
                continue

            source = i if tol.lt(swp[i], swp[j]) else j
            recipient = j if source == i else i

            co_source = layers[source].transp_coeff[veg]
            co_recipient = layers[recipient].transp_coeff[veg]
            if tol.lt(layers[source].width, layers[recipient].width):
                co_recipient *= layers[source].width / layers[recipient].width

            if tol.ge(co_source, 1.0):
                continue

            tmp = (
                NIGHT_FRACTION * max_cond_root * (swp[i] - swp[j])
                * max(rel_cond[i], rel_cond[j])
                * co_source * co_recipient / (1.0 - co_source)
            )
            tmp = math.copysign(min(abs(tmp), swa[source]), tmp)
            mat[i, j] = tmp
            mat[j, i] = -tmp

    adjusted = True
    nit = 0
    while nit < n and adjusted:
        nit += 1
        adjusted = False
        for i in range(n):
            if not tol.gt(swa[i], 0.0):
                continue
            row = mat[i]
            hdin = row[row > 0.0].sum()
            hdout = row[row <= 0.0].sum()
            hdnet = hdin + hdout
            if tol.lt(hdnet, 0.0) and tol.gt(-hdnet, swa[i]):
                factor = -(swa[i] + hdin) / hdout
                adjusted = True
                outgoing = mat[i] < 0.0
                mat[i, outgoing] *= factor
                mat[outgoing, i] *= factor

    if adjusted:
        raise ConvergenceError(
            f"Hydraulic redistribution of {veg.value} failed to constrain to the extraction limit",
            ErrorContext(date=day, component="root_uptake", operation="hydraulic_redistribution"),
        )

    hydred[1:] = mat[1:, 1:].sum(axis=1) * scale
    swc += hydred
    return hydred
