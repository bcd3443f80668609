"""
Pedotransfer functions estimating retention-curve parameters from texture.

Used when a layer's retention parameters are not given explicitly.
"""
import logging
from typing import List

import numpy as np

from sweb.core.exceptions import ConfigurationError
from sweb.core.types import SWRCType

logger = logging.getLogger(__name__)


def estimate_campbell_parameters_cosby(sand: float, clay: float) -> List[float]:
    """
    Campbell (1974) parameters from Cosby et al. (1984), table 4 multivariate fits.

    Reference: Cosby, B.J., Hornberger, G.M., Clapp, R.B., Ginn, T.R., 1984.
               A statistical exploration of the relationships of soil moisture
               characteristics to the physical properties of soils.
               Water Resources Research 20:682-690.

    Args:
        sand: Sand content (fraction)
        clay: Clay content (fraction)

    Returns:
        [psis (cm), theta_sat (-), b (-), k_sat (cm/day)]
    """
    psis = 10.0 ** (-1.58 * sand - 0.63 * clay + 2.17)
    theta_sat = -0.142 * sand - 0.037 * clay + 0.505
    b = -0.3 * sand + 15.7 * clay + 3.10
    # inches/hour -> cm/day
    k_sat = 2.54 * 24.0 * 10.0 ** (1.26 * sand - 0.64 * clay - 0.60)

    return [psis, theta_sat, b, k_sat]


def estimate_theta_sat_saxton(sand: float, clay: float, organic_matter_percent: float = 2.0) -> float:
    """
    Saturated water content from Saxton & Rawls (2006).

    Reference: Saxton, K.E., Rawls, W.J., 2006. Soil Water Characteristic Estimates by
               Texture and Organic Matter for Hydrologic Solutions.
    """
    sand_percent = 100.0 * sand
    clay_for_log = max(1.0, 100.0 * clay)  # Avoid log10(0)
    om = organic_matter_percent / 100.0

    porosity = (
        0.332 -
        7.251e-4 * sand_percent +
        0.1276 * np.log10(clay_for_log) +
        0.002 * om
    )
    return float(np.clip(porosity, 0.30, 0.60))


def estimate_van_genuchten_parameters(sand: float, clay: float) -> List[float]:
    """
    van Genuchten (1980) parameters from simplified ROSETTA-style relationships
    (Schaap et al., 2001).

    Returns:
        [theta_r, theta_s, alpha (1/cm), n, k_sat (cm/day)]
    """
    sand_percent = 100.0 * sand
    clay_percent = 100.0 * clay

    theta_s = estimate_theta_sat_saxton(sand, clay)
    theta_r = float(np.clip(0.01 + 0.003 * clay_percent, 0.01, 0.5 * theta_s))
    # alpha: inversely related to clay content
    alpha = float(np.clip(0.1 * np.exp(-0.05 * clay_percent), 0.001, 0.5))
    # n: related to pore size distribution
    n = float(np.clip(1.2 + 0.02 * sand_percent - 0.01 * clay_percent, 1.1, 2.5))
    k_sat = estimate_campbell_parameters_cosby(sand, clay)[3]

    return [theta_r, theta_s, alpha, n, k_sat]


def estimate_fxw_parameters(sand: float, clay: float) -> List[float]:
    """
    FXW parameters mapped from the van Genuchten estimate (m = 1 - 1/n, L = 0.5).

    Returns:
        [theta_s, alpha (1/cm), n, m, k_sat (cm/day), L]
    """
    _, theta_s, alpha, n, k_sat = estimate_van_genuchten_parameters(sand, clay)
    return [theta_s, alpha, n, 1.0 - 1.0 / n, k_sat, 0.5]


def estimate_swrc_parameters(swrc_type, sand: float, clay: float) -> List[float]:
    """Dispatch to the estimator matching the retention curve family."""
    if sand < 0 or clay < 0 or sand + clay > 1.0:
        raise ConfigurationError(f"Invalid texture: sand={sand}, clay={clay}")

    swrc_type = SWRCType(swrc_type)
    if swrc_type == SWRCType.CAMPBELL_1974:
        params = estimate_campbell_parameters_cosby(sand, clay)
    elif swrc_type == SWRCType.VAN_GENUCHTEN_1980:
        params = estimate_van_genuchten_parameters(sand, clay)
    else:
        params = estimate_fxw_parameters(sand, clay)

    logger.debug(f"Estimated {swrc_type.value} parameters from texture: {params}")
    return params
