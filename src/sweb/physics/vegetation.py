"""
Vegetation composition and daily canopy state.

Monthly trajectories of litter, biomass, live fraction and LAI conversion
are interpolated to daily values once per calendar year.
"""
import calendar
import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Optional

import numpy as np

from sweb.core import tolerance as tol
from sweb.core.config import VegetationConfig
from sweb.core.exceptions import ConfigurationError
from sweb.core.types import VegType
from sweb.physics.carbon import CarbonEffects
from sweb.physics.evapotranspiration import tanfunc

logger = logging.getLogger(__name__)


def interpolate_monthly(values, year: int) -> np.ndarray:
    """
    Interpolate 12 monthly values, taken to represent mid-month, linearly
    to every day of ``year``; wraps around the year boundary.
    """
    days_in_month = [calendar.monthrange(year, m)[1] for m in range(1, 13)]
    n_days = sum(days_in_month)
    starts = np.cumsum([0] + days_in_month[:-1])
    mid_month = starts + (np.asarray(days_in_month) + 1) / 2.0

    doy = np.arange(1, n_days + 1, dtype=float)
    return np.interp(doy, mid_month, np.asarray(values, dtype=float), period=n_days)


@dataclass(frozen=True)
class DailyVegetation:
    """Canopy state of one vegetation type on one day"""
    cover: float
    litter: float  # g/m²
    biomass: float  # g/m²
    biolive: float  # g/m²
    biodead: float  # g/m²
    lai_live: float  # m²/m²
    lai_total: float  # m²/m², live plus dead biomass acting as leaf area
    total_agb: float  # g/m², above-ground biomass including litter
    height: float  # cm


class VegetationType:
    """One vegetation type with its parameters and daily trajectories"""

    def __init__(self, veg: VegType, cfg: VegetationConfig):
        self.veg = veg
        self.cfg = cfg
        self._year: Optional[int] = None
        self._daily: Dict[str, np.ndarray] = {}

    @property
    def cover(self) -> float:
        return self.cfg.cover

    def interpolate_year(self, year: int, co2_bio: float = 1.0) -> None:
        """
        Daily trajectories of ``year``. The CO2 biomass multiplier scales the
        live fraction of trees, whose total biomass stays constant, and the
        total biomass of every other type.
        """
        if self._year == year:
            return
        monthly_biomass = np.asarray(self.cfg.biomass_g_m2, dtype=float)
        monthly_live = np.asarray(self.cfg.pct_live, dtype=float)
        if self.veg == VegType.TREES:
            monthly_live = np.minimum(monthly_live * co2_bio, 1.0)
        else:
            monthly_biomass = monthly_biomass * co2_bio

        litter = interpolate_monthly(self.cfg.litter_g_m2, year)
        biomass = interpolate_monthly(monthly_biomass, year)
        pct_live = interpolate_monthly(monthly_live, year)
        lai_conv = interpolate_monthly(self.cfg.lai_conv, year)

        biolive = biomass * pct_live
        biodead = biomass - biolive
        lai_live = np.divide(biolive, lai_conv, out=np.zeros_like(biolive), where=lai_conv > 0)
        lai_dead = np.divide(biodead, lai_conv, out=np.zeros_like(biodead), where=lai_conv > 0)

        if self.cfg.canopy_height_const_cm > 0:
            height = np.full_like(biomass, self.cfg.canopy_height_const_cm)
        else:
            height = np.array([
                max(0.0, tanfunc(b, self.cfg.canopy_xinflec, self.cfg.canopy_yinflec,
                                 self.cfg.canopy_range, self.cfg.canopy_slope))
                for b in biomass
            ])

        self._daily = {
            "litter": litter,
            "biomass": biomass,
            "biolive": biolive,
            "biodead": biodead,
            "lai_live": lai_live,
            "lai_total": lai_live + self.cfg.dead_lai_factor * lai_dead,
            "total_agb": litter + (biolive if self.veg == VegType.TREES else biomass),
            "height": height,
        }
        self._year = year

    def daily(self, year: int, doy: int, co2_bio: float = 1.0) -> DailyVegetation:
        self.interpolate_year(year, co2_bio)
        i = doy - 1
        return DailyVegetation(cover=self.cover, **{k: float(v[i]) for k, v in self._daily.items()})


class VegetationComposition:
    """All vegetation types of a site plus bare ground"""

    def __init__(
        self,
        vegetation: Mapping[VegType, VegetationConfig],
        bare_cover: float,
        bare_albedo: float = 0.15,
        carbon: Optional[CarbonEffects] = None,
    ):
        self.types: Dict[VegType, VegetationType] = {
            veg: VegetationType(veg, vegetation.get(veg, VegetationConfig(cover=0.0)))
            for veg in VegType
        }
        self.bare_cover = bare_cover
        self.bare_albedo = bare_albedo
        self.carbon = carbon

        total = bare_cover + sum(v.cover for v in self.types.values())
        if not tol.eq(total, 1.0):
            raise ConfigurationError(f"Vegetation covers plus bare ground sum to {total:.4f}, not 1")

    def __getitem__(self, veg: VegType) -> VegetationType:
        return self.types[veg]

    @property
    def albedo(self) -> float:
        """Cover-weighted surface albedo"""
        return self.bare_cover * self.bare_albedo + sum(
            v.cover * v.cfg.albedo for v in self.types.values()
        )

    def daily(self, year: int, doy: int) -> Dict[VegType, DailyVegetation]:
        if self.carbon is None:
            return {veg: vt.daily(year, doy) for veg, vt in self.types.items()}
        return {
            veg: vt.daily(year, doy, self.carbon.biomass(veg, year))
            for veg, vt in self.types.items()
        }

    @staticmethod
    def surface_biomass(daily: Mapping[VegType, DailyVegetation]) -> float:
        """Cover-weighted biomass shading the soil surface (g/m²)"""
        total = 0.0
        for veg, d in daily.items():
            total += (d.biolive if veg.uses_live_biomass else d.biomass) * d.cover
        return total
