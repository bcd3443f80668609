"""
Yearly atmospheric CO2 effects on vegetation.

Each vegetation type responds to the concentration of a calendar year
through two power-law multipliers, ``coeff1 * ppm ** coeff2``: one on
biomass and one on water-use efficiency (transpiration).
"""
import logging
from typing import Dict, Mapping, Tuple

from sweb.core.config import CarbonConfig, VegetationConfig
from sweb.core.exceptions import MissingDataError
from sweb.core.types import VegType

BIO = 0
WUE = 1


def co2_multiplier(coeff1: float, coeff2: float, ppm: float) -> float:
    return coeff1 * ppm ** coeff2


class CarbonEffects:
    """Per-year biomass and water-use efficiency multipliers"""

    def __init__(self, config: CarbonConfig, vegetation: Mapping[VegType, VegetationConfig]):
        self.config = config
        self.vegetation = dict(vegetation)
        self._cache: Dict[int, Dict[VegType, Tuple[float, float]]] = {}
        self._setup_logging()

    def _setup_logging(self):
        self.logger = logging.getLogger(f"{__name__}.CarbonEffects")

    def ppm(self, year: int) -> float:
        try:
            return self.config.co2_ppm[year]
        except KeyError:
            raise MissingDataError(f"No CO2 ppm data was provided for year {year}") from None

    def multipliers(self, veg: VegType, year: int) -> Tuple[float, float]:
        """(biomass, WUE) multipliers of ``veg``; 1.0 where an effect is off"""
        if not self.config.enabled:
            return 1.0, 1.0
        if year not in self._cache:
            self._cache[year] = self._for_year(year)
        return self._cache[year].get(veg, (1.0, 1.0))

    def biomass(self, veg: VegType, year: int) -> float:
        return self.multipliers(veg, year)[BIO]

    def wue(self, veg: VegType, year: int) -> float:
        return self.multipliers(veg, year)[WUE]

    def _for_year(self, year: int) -> Dict[VegType, Tuple[float, float]]:
        ppm = self.ppm(year)
        out = {}
        for veg, cfg in self.vegetation.items():
            bio = co2_multiplier(cfg.co2_bio_coeff1, cfg.co2_bio_coeff2, ppm) if self.config.use_bio_mult else 1.0
            wue = co2_multiplier(cfg.co2_wue_coeff1, cfg.co2_wue_coeff2, ppm) if self.config.use_wue_mult else 1.0
            out[veg] = (bio, wue)
        self.logger.debug(f"CO2 {ppm:.1f} ppm in {year}: {out}")
        return out
