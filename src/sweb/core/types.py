"""
Type definitions and type aliases for the sweb system.
"""
from enum import Enum
from typing import List, Protocol, Tuple, runtime_checkable

from typing_extensions import TypeAlias


DayOfYear: TypeAlias = int  # 1..366


class VegType(str, Enum):
    """Vegetation types, listed top-down in canopy order"""
    TREES = "trees"
    SHRUBS = "shrubs"
    FORBS = "forbs"
    GRASSES = "grasses"

    @classmethod
    def bottom_up(cls) -> List["VegType"]:
        """Order used for hydraulic redistribution"""
        return list(reversed(list(cls)))

    @property
    def uses_live_biomass(self) -> bool:
        """Woody types count only live biomass toward above-ground biomass"""
        return self in (VegType.TREES, VegType.SHRUBS)


class SWRCType(str, Enum):
    """Soil water retention curve families"""
    CAMPBELL_1974 = "Campbell1974"
    VAN_GENUCHTEN_1980 = "vanGenuchten1980"
    FXW = "FXW"


class WeatherSourceType(str, Enum):
    HISTORICAL = "historical"
    GENERATED = "generated"
    GAP_FILLED = "gap_filled"


@runtime_checkable
class DailyGenerator(Protocol):
    """Anything able to synthesize one day of weather"""

    def generate_day(self, doy: DayOfYear, yesterday_precip: float) -> Tuple[float, float, float]:
        ...
