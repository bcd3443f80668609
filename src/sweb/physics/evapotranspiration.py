"""
Atmospheric demand, interception and evapotranspiration partitioning.

This module provides:

1. Potential evapotranspiration after Penman (1948), with the Huang (2018)
   saturation vapour pressure curve
2. Shortwave radiation estimated from latitude and cloud cover when not observed
3. The Parton (1978) tangent response functions limiting evaporation and
   transpiration by soil water potential
4. Canopy and litter interception storage models
5. Potential bare-soil evaporation and transpiration rates per vegetation type

Units: water amounts and rates in cm and cm/day, potentials in -bar,
temperature in °C, radiation in MJ/m²/day.

References:
- Penman, H.L. (1948). Natural evaporation from open water, bare soil and
  grass. Proc. R. Soc. Lond. A 193:120-145.
- Huang, J. (2018). A simple accurate formula for calculating saturation vapor
  pressure of water and ice. J. Appl. Meteorol. Climatol. 57:1265-1272.
- Allen, R.G. et al. (1998). Crop evapotranspiration. FAO Irrigation and
  Drainage Paper 56.
- Parton, W.J. (1978). Abiotic section of ELM. Grassland simulation model.
- Vegas Galdos, F. et al. (2012). Simulation of rainfall interception.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Sequence, Tuple

import numpy as np

from sweb.core import tolerance as tol
from sweb.core.constants import SWP_FIELD_CAPACITY
from sweb.core.types import VegType
from sweb.physics.soil_hydraulics import swc_to_swp

logger = logging.getLogger(__name__)

# Unit conversion factors used by the Penman equation
KPA_TO_MMHG = 7.5006168
M_PER_S_TO_MILES_PER_DAY = 53.686471
W_PER_M2_TO_MM_PER_DAY = 0.0346988
MJ_PER_M2_TO_MM_PER_DAY = 0.4016063

SOLAR_CONSTANT_MJ = 0.0820  # MJ/m²/min
BARE_SOIL_EVAP_MAX = 0.995


def tanfunc(z: float, a: float, b: float, c: float, d: float) -> float:
    """
    Parton's generalized arctangent.

    a: x-value of the inflection point, b: y-value of the inflection point,
    c: range between the asymptotes, d: slope at the inflection point.
    """
    return b + (c / math.pi) * math.atan(math.pi * d * (z - a))


# =============================================================================
# RADIATION & POTENTIAL EVAPOTRANSPIRATION
# =============================================================================

def extraterrestrial_radiation(latitude_deg: float, doy: int) -> float:
    """Daily extraterrestrial radiation Ra (MJ/m²/day), FAO-56 eq. 21"""
    lat = math.radians(latitude_deg)
    dr = 1.0 + 0.033 * math.cos(2.0 * math.pi * doy / 365.0)
    declination = 0.409 * math.sin(2.0 * math.pi * doy / 365.0 - 1.39)
    ws = math.acos(max(-1.0, min(1.0, -math.tan(lat) * math.tan(declination))))

    ra = (24.0 * 60.0 / math.pi) * SOLAR_CONSTANT_MJ * dr * (
        ws * math.sin(lat) * math.sin(declination)
        + math.cos(lat) * math.cos(declination) * math.sin(ws)
    )
    return max(ra, 0.0)


def shortwave_radiation(latitude_deg: float, doy: int, elevation_m: float, cloud_cover_pct: float) -> float:
    """
    Global horizontal irradiation (MJ/m²/day) from clear-sky radiation
    attenuated by cloud cover with the Angstrom (1924) relationship.
    """
    clear_sky = (0.75 + 2e-5 * elevation_m) * extraterrestrial_radiation(latitude_deg, doy)
    sunshine_fraction = 1.0 - cloud_cover_pct / 100.0
    attenuation = max(0.0, min(1.0, 0.25 + 0.75 * sunshine_fraction))
    return clear_sky * attenuation


def blackbody_radiation(temp_c: float) -> float:
    """Stefan-Boltzmann emission (W/m²)"""
    return 5.670374 * (0.01 * (temp_c + 273.15)) ** 4


def atmospheric_pressure(elevation_m: float) -> float:
    """Atmospheric pressure (kPa), FAO-56 eq. 7"""
    return 101.3 * ((293.0 - 0.0065 * elevation_m) / 293.0) ** 5.26


def psychrometric_constant(pressure_kpa: float) -> float:
    """Psychrometric constant (kPa/K), FAO-56 eq. 8"""
    return 0.000665 * pressure_kpa


def saturation_vapor_pressure(temp_c: float) -> Tuple[float, float]:
    """
    Saturation vapour pressure over water (T > 0) or ice, Huang (2018).

    Returns:
        Tuple of (svp [kPa], slope of svp-temperature curve [kPa/K])
    """
    if temp_c > 0:
        tmp0 = temp_c + 105.0
        tmp1 = tmp0 ** 1.57
        tmp = temp_c + 237.1
        tmp2 = 4924.99 / tmp ** 2
        tmp3 = math.exp(34.494 - 4924.99 / tmp)
        dp = 1.57 * tmp0 ** 0.57
    else:
        tmp0 = temp_c + 868.0
        tmp1 = tmp0 ** 2
        tmp = temp_c + 278.0
        tmp2 = 6545.8 / tmp ** 2
        tmp3 = math.exp(43.494 - 6545.8 / tmp)
        dp = 2.0 * tmp0

    svp = tmp3 / tmp1
    slope = (svp * tmp2 - tmp3 / tmp1 ** 2 * dp) * 1e-3
    return 1e-3 * svp, slope


def penman_pet(
    radiation_mj_m2: float,
    temp_avg_c: float,
    elevation_m: float,
    albedo: float,
    relative_humidity_pct: float,
    wind_speed_m_s: float,
    cloud_cover_pct: float,
) -> float:
    """
    Potential evapotranspiration (cm/day) after Penman (1948).

    Args:
        radiation_mj_m2: Global horizontal irradiation
        temp_avg_c: Mean daily air temperature
        elevation_m: Site elevation
        albedo: Surface reflectance (cover-weighted)
        relative_humidity_pct: Mean daily relative humidity
        wind_speed_m_s: Wind speed at 2 m
        cloud_cover_pct: Cloud cover

    Returns:
        PET, floored at 0.01 cm/day
    """
    clear_sky = 1.0 - cloud_cover_pct / 100.0
    wind = wind_speed_m_s * M_PER_S_TO_MILES_PER_DAY
    rc = radiation_mj_m2 * MJ_PER_M2_TO_MM_PER_DAY
    rbb = blackbody_radiation(temp_avg_c) * W_PER_M2_TO_MM_PER_DAY

    gamma = psychrometric_constant(atmospheric_pressure(elevation_m))
    svp, delta = saturation_vapor_pressure(temp_avg_c)

    ea = svp * KPA_TO_MMHG
    ed = relative_humidity_pct * ea / 100.0  # vapour pressure at dewpoint
    aerodynamic = 0.35 * (ea - ed) * (1.0 + 0.0098 * wind)
    net_radiation = (1.0 - albedo) * rc - rbb * (0.56 - 0.092 * math.sqrt(ed)) * (0.10 + 0.90 * clear_sky)

    pet = (delta * net_radiation + gamma * aerodynamic) / (delta + gamma)
    return max(0.1 * pet, 0.01)


# =============================================================================
# SOIL WATER RESPONSE FUNCTIONS
# =============================================================================

def watrate(swp: float, pet: float, shift: float, shape: float, inflec: float, rng: float) -> float:
    """
    Ratio of actual to potential evaporation (or transpiration) as a function
    of soil water potential, bounded to [0, 1].
    """
    if tol.lt(pet, 0.2):
        par1 = 3.0
    elif tol.lt(pet, 0.4):
        par1 = (0.4 - pet) * -10.0 + 5.0
    elif tol.lt(pet, 0.6):
        par1 = (0.6 - pet) * -15.0 + 8.0
    else:
        par1 = 8.0

    result = tanfunc(shift - swp, par1, inflec, rng, shape)
    return min(max(result, 0.0), 1.0)


def es_t_partitioning(lai_live: float, lai_param: float) -> Tuple[float, float]:
    """
    Split of potential demand into bare-soil evaporation and transpiration.

    Returns:
        Tuple of (fraction to soil evaporation, fraction to transpiration)
    """
    fbse = min(math.exp(-lai_param * lai_live), BARE_SOIL_EVAP_MAX)
    return fbse, 1.0 - fbse


def _evap_weighted_swp(layers: Sequence, swc: Sequence[float], n_evap_layers: int, stop_at_zero: bool) -> float:
    avswp = 0.0
    sumwidth = 0.0
    for i in range(n_evap_layers):
        layer = layers[i]
        if stop_at_zero and tol.is_zero(layer.evap_coeff):
            break
        x = layer.width * layer.evap_coeff
        sumwidth += x
        avswp += x * swc_to_swp(swc[i], layer)
    return avswp / sumwidth if not tol.is_zero(sumwidth) else avswp


def pot_soil_evap_bare(layers, swc, n_evap_layers: int, pet: float, shift, shape, inflec, rng) -> float:
    """Potential evaporation rate (cm/day) from bare ground"""
    if n_evap_layers == 0:
        return 0.0
    avswp = _evap_weighted_swp(layers, swc, n_evap_layers, stop_at_zero=False)
    return pet * watrate(avswp, pet, shift, shape, inflec, rng)


def pot_soil_evap(
    layers,
    swc,
    n_evap_layers: int,
    total_agb: float,
    fbse: float,
    pet: float,
    shift: float,
    shape: float,
    inflec: float,
    rng: float,
    es_param_limit: float,
) -> float:
    """
    Potential soil evaporation rate (cm/day) below a vegetation type.

    Above-ground biomass (live plus litter) at or above ``es_param_limit``
    fully inhibits evaporation.
    """
    if n_evap_layers == 0:
        return 0.0
    avswp = _evap_weighted_swp(layers, swc, n_evap_layers, stop_at_zero=True)

    if tol.ge(total_agb, es_param_limit) or tol.is_zero(avswp):
        return 0.0
    return pet * watrate(avswp, pet, shift, shape, inflec, rng) * (1.0 - total_agb / es_param_limit) * fbse


def transp_weighted_avg(layers, swc, veg: VegType, n_transp_layers: int, n_regions: int) -> float:
    """
    Transpiration-coefficient weighted soil water potential, taken as the
    minimum (wettest) across transpiration regions.
    """
    swp_avg = 0.0
    for r in range(n_regions):
        swp = 0.0
        sumco = 0.0
        for i in range(n_transp_layers):
            layer = layers[i]
            if layer.transp_region[veg] == r:
                swp += layer.transp_coeff[veg] * swc_to_swp(swc[i], layer)
                sumco += layer.transp_coeff[veg]
        swp /= sumco if tol.gt(sumco, 0.0) else 1.0
        swp_avg = swp if r == 0 else min(swp, swp_avg)
    return swp_avg


def pot_transp(
    swp_avg: float,
    biolive: float,
    biodead: float,
    fbst: float,
    pet: float,
    veg_cfg,
    co2_wue: float = 1.0,
) -> float:
    """Potential transpiration rate (cm/day) of one vegetation type"""
    if tol.le(biolive, 0.0):
        return 0.0

    if tol.ge(biodead, veg_cfg.shade_deadmax):
        par1 = tanfunc(biolive, veg_cfg.shade_xinflec, veg_cfg.shade_yinflec, veg_cfg.shade_range, veg_cfg.shade_slope)
        par2 = tanfunc(biodead, veg_cfg.shade_xinflec, veg_cfg.shade_yinflec, veg_cfg.shade_range, veg_cfg.shade_slope)
        shadeaf = min((par1 / par2) * (1.0 - veg_cfg.shade_scale) + veg_cfg.shade_scale, 1.0)
    else:
        shadeaf = 1.0

    rate = watrate(
        swp_avg, pet, veg_cfg.transp_shift, veg_cfg.transp_shape, veg_cfg.transp_inflec, veg_cfg.transp_range
    )
    return rate * shadeaf * pet * fbst * veg_cfg.wue_multiplier * co2_wue


# =============================================================================
# INTERCEPTION
# =============================================================================

def canopy_interception(
    ppt: float, storage: float, events_per_day: float, k_smax: float, lai: float, scale: float
) -> Tuple[float, float, float]:
    """
    Rain intercepted by a canopy (Vegas Galdos et al. 2012).

    Returns:
        Tuple of (throughfall, intercepted amount, updated storage) in cm
    """
    if not (tol.gt(lai, 0.0) and tol.gt(ppt, 0.0) and tol.gt(scale, 0.0)):
        return ppt, 0.0, storage

    threshold = events_per_day * k_smax * math.log10(1.0 + lai) / 10.0
    intercepted = scale * min(ppt, max(0.0, threshold - storage / scale))
    return ppt - intercepted, intercepted, storage + intercepted


def litter_interception(
    ppt: float, storage: float, events_per_day: float, k_smax: float, litter: float, scale: float
) -> Tuple[float, float, float]:
    """Rain intercepted by the litter layer; same storage model as the canopy."""
    if not (tol.gt(litter, 0.0) and tol.gt(ppt, 0.0) and tol.gt(scale, 0.0)):
        return ppt, 0.0, storage

    threshold = events_per_day * k_smax * math.log10(1.0 + litter) / 10.0
    intercepted = scale * min(ppt, max(0.0, threshold - storage / scale))
    return ppt - intercepted, intercepted, storage + intercepted


def evap_from_surface(pool: float, rate: float) -> Tuple[float, float]:
    """
    Evaporate from one surface pool (intercepted or ponded water).

    Returns:
        Tuple of (remaining pool, actual evaporation)
    """
    if tol.gt(pool, rate):
        return pool - rate, rate
    return 0.0, max(pool, 0.0)


@dataclass
class PotentialRates:
    """Potential evaporation and transpiration rates of one day [cm/day]"""
    soil_evap_bare: float = 0.0
    soil_evap: Dict[VegType, float] = field(default_factory=lambda: dict.fromkeys(VegType, 0.0))
    transp: Dict[VegType, float] = field(default_factory=lambda: dict.fromkeys(VegType, 0.0))
    veg_surface_evap: Dict[VegType, float] = field(default_factory=lambda: dict.fromkeys(VegType, 0.0))
    litter_evap: float = 0.0
    standing_evap: float = 0.0

    @property
    def total_surface(self) -> float:
        return sum(self.veg_surface_evap.values()) + self.litter_evap + self.standing_evap

    @property
    def total(self) -> float:
        return (
            self.soil_evap_bare
            + sum(self.soil_evap.values())
            + sum(self.transp.values())
            + self.total_surface
        )

    def scale(self, factor: float) -> None:
        """Scale all rates proportionally"""
        self.soil_evap_bare *= factor
        self.litter_evap *= factor
        self.standing_evap *= factor
        for veg in VegType:
            self.soil_evap[veg] *= factor
            self.transp[veg] *= factor
            self.veg_surface_evap[veg] *= factor


def extraction_weights(layers, swc, coeffs: np.ndarray) -> np.ndarray:
    """
    Relative share of each layer in a removal, proportional to
    coefficient / potential (coefficient / field-capacity potential when wet).
    """
    weights = np.zeros(len(coeffs))
    for i, coeff in enumerate(coeffs):
        swp = swc_to_swp(swc[i], layers[i])
        weights[i] = coeff / swp if tol.gt(swp, 0.0) else coeff / SWP_FIELD_CAPACITY
    return weights
