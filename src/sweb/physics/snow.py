"""
Snow accumulation, melt and sublimation after the SWAT2K routines.

Reference: Neitsch, S.L. et al. (2005). Soil and Water Assessment Tool
theoretical documentation, version 2005, section 1:2.5.
"""
import logging
import math
from dataclasses import dataclass

from sweb.core import tolerance as tol
from sweb.core.config import SnowConfig
from sweb.core.constants import SNOW_MELT_DAY_OFFSET, SNOW_MELT_DAY_PERIOD

logger = logging.getLogger(__name__)


@dataclass
class SnowResult:
    """Partitioning of one day's precipitation [cm]"""
    rain: float
    snow: float
    snowmelt: float


class SnowPack:
    """Snow water equivalent and lagged snow temperature of one column"""

    def __init__(self, config: SnowConfig, swe: float = 0.0):
        self.config = config
        self.swe = swe  # cm water equivalent
        self.temp_snow = 0.0  # °C, lagged

    def adjust(self, doy: int, temp_min: float, temp_max: float, ppt: float) -> SnowResult:
        """Split precipitation into rain and snow, then melt the pack."""
        cfg = self.config
        temp_avg = (temp_min + temp_max) / 2.0

        snow_accu = ppt if tol.le(temp_avg, cfg.temp_min_accu_c) else 0.0
        rain = max(0.0, ppt - snow_accu)
        snow = max(0.0, snow_accu)
        self.swe += snow_accu

        rmelt = (cfg.rmelt_max + cfg.rmelt_min) / 2.0 + math.sin(
            (doy - SNOW_MELT_DAY_OFFSET) / SNOW_MELT_DAY_PERIOD
        ) * (cfg.rmelt_max - cfg.rmelt_min) / 2.0

        self.temp_snow = self.temp_snow * (1.0 - cfg.lambda_snow) + temp_avg * cfg.lambda_snow

        if tol.gt(self.temp_snow, cfg.temp_max_crit_c):
            melt = min(self.swe, rmelt * ((self.temp_snow + temp_max) / 2.0 - cfg.temp_max_crit_c))
        else:
            melt = 0.0

        if tol.gt(self.swe, 0.0):
            snowmelt = max(0.0, melt)
            self.swe = max(0.0, self.swe - snowmelt)
        else:
            snowmelt = 0.0

        return SnowResult(rain=rain, snow=snow, snowmelt=snowmelt)

    def sublimate(self, pet: float) -> float:
        """Remove sublimation, capped at half of PET and at the pack (cm)."""
        if not tol.gt(self.swe, 0.0):
            return 0.0
        loss = max(0.0, min(self.swe, 0.5 * pet))
        self.swe -= loss
        return loss

    def depth_cm(self, month: int) -> float:
        """Snow depth from water equivalent and the month's snow density"""
        density = self.config.density_kg_m3[month - 1]
        if tol.gt(self.swe, 0.0) and density > 0:
            return self.swe / density * 10.0 * 100.0
        return 0.0

    @property
    def has_snow(self) -> bool:
        return tol.gt(self.swe, 0.0)
