"""
Day-to-day state carried by the water flow engine.
"""
import copy
from dataclasses import dataclass, field
from typing import Dict

import numpy as np

from sweb.core.types import VegType


@dataclass
class ColumnState:
    """Snapshot of the storages and temperatures of one soil column"""
    swc: np.ndarray  # cm per layer
    soil_temp: np.ndarray  # °C per layer
    snowpack: float = 0.0  # cm water equivalent
    standing_water: float = 0.0  # cm ponded
    veg_intercepted: Dict[VegType, float] = field(default_factory=lambda: dict.fromkeys(VegType, 0.0))
    litter_intercepted: float = 0.0

    @property
    def surface_water(self) -> float:
        """Water held above the soil"""
        return (
            self.snowpack
            + self.standing_water
            + sum(self.veg_intercepted.values())
            + self.litter_intercepted
        )

    @property
    def total_water(self) -> float:
        return float(np.sum(self.swc)) + self.surface_water


class DailyStateBuffer:
    """
    Two named snapshots, ``today`` and ``yesterday``.

    ``yesterday`` is read during the day; ``roll`` copies ``today`` into
    ``yesterday`` once the day is complete.
    """

    def __init__(self, initial: ColumnState):
        self.today = initial
        self.yesterday = copy.deepcopy(initial)

    def roll(self) -> None:
        self.yesterday = copy.deepcopy(self.today)

    def reset(self, initial: ColumnState) -> None:
        self.today = initial
        self.yesterday = copy.deepcopy(initial)
