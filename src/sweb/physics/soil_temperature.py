"""
Soil temperature profile.

Heat diffusion is solved with an explicit finite-difference scheme on a
regular grid of nodes spaced ``delta_x_cm`` apart, from the soil surface
down to ``max_depth_cm`` where temperature is held at a long-term constant.
Soil properties (bulk density, field capacity, wilting point, moisture) are
aggregated from the soil layers onto the grid; node temperatures are
interpolated back onto the layers.

The upper boundary is the daily mean surface temperature, estimated from
air temperature, biomass and the PET/AET ratio, or damped by snow cover.

References:
- Parton, W.J. (1978). Abiotic section of ELM.
- Parton, W.J. (1984). Predicting soil temperatures in a shortgrass
  steppe. Soil Science 138:93-101.
- Parton, W.J. et al. (1998). Impact of snow cover on soil temperature.
- Eitzinger, J., Parton, W.J., Hartman, M. (2000). Improvement and
  validation of a daily soil temperature submodel for freezing/thawing
  periods. Soil Science 165:525-534.
"""
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

import numpy as np

from sweb.core import tolerance as tol
from sweb.core.config import SoilTemperatureConfig
from sweb.core.constants import (
    FREEZING_TEMP_C,
    FUSION_HEAT_H2O,
    MAX_ST_RGR,
    MAX_ST_SUBSTEPS,
    MIN_VWC_TO_FREEZE,
    REALISTIC_TEMP_LIMIT_C,
    SECONDS_PER_DAY,
    TEMP_CORRECTION,
)
from sweb.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class SoilTemperatureState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    STEP_OK = "step_ok"
    STEP_ERROR = "step_error"


@dataclass
class SoilTemperatureResult:
    """Soil temperatures of one day"""
    temp_avg: np.ndarray  # per layer, °C
    temp_min: np.ndarray
    temp_max: np.ndarray
    frozen: np.ndarray  # per layer, bool
    surface_avg: float
    surface_min: float
    surface_max: float
    st_error: bool = False
    n_substeps: int = 1


def surface_temperature_under_snow(air_temp_avg: float, snow_swe: float) -> float:
    """
    Mean soil surface temperature below a snowpack (Parton et al. 1998,
    eqs. 5 and 6).
    """
    if not tol.gt(snow_swe, 0.0):
        return 0.0
    if air_temp_avg >= 0.0:
        return -2.0
    k_snow = max(-0.15 * snow_swe + 1.0, 0.0)
    return 0.3 * air_temp_avg * k_snow - 2.0


def surface_temperatures(
    cfg: SoilTemperatureConfig,
    air_temp_avg: float,
    air_temp_max: float,
    air_temp_min: float,
    radiation_mj_m2: float,
    pet: float,
    aet: float,
    biomass: float,
    snow_swe: float,
    snow_depth: float,
):
    """
    Daily (mean, min, max) soil surface temperature.

    Without snow the extremes follow Parton (1984), eqs. 4 and 5, and the
    mean is an energy-balance approximation driven by the evaporative
    deficit (low biomass) or by canopy shading (high biomass).
    """
    if tol.gt(snow_depth, 0.0):
        avg = surface_temperature_under_snow(air_temp_avg, snow_swe)
        return avg, avg, avg

    t_max = (math.exp(-0.0048 * biomass) - 0.13) * (
        0.35 * air_temp_max + 24.07 * (1.0 - math.exp(-0.000038 * radiation_mj_m2 * 1000.0))
    ) + air_temp_max
    t_min = air_temp_min + 0.006 * biomass - 1.82

    if tol.le(biomass, cfg.biomass_limiter_g_m2):
        deficit = 1.0 - aet / pet if tol.gt(pet, 0.0) else 0.0
        t_avg = air_temp_avg + cfg.t1_param1 * pet * deficit * (1.0 - biomass / cfg.biomass_limiter_g_m2)
    else:
        t_avg = air_temp_avg + cfg.t1_param2 * (biomass - cfg.biomass_limiter_g_m2) / cfg.t1_param3

    return t_avg, t_min, t_max


@dataclass
class SoilTemperatureGrid:
    """
    Regular node grid below the surface.

    Interior node ``k`` lies at depth ``(k + 1) * delta_x``; the lower
    boundary node lies at ``max_depth``. Property arrays hold one value per
    interior node.
    """
    delta_x: float
    max_depth: float
    depths: np.ndarray
    overlap: np.ndarray  # (n_nodes, n_layers) cm of each layer within each node interval
    bulk_density: np.ndarray = field(default_factory=lambda: np.zeros(0))
    vwc_fc: np.ndarray = field(default_factory=lambda: np.zeros(0))
    vwc_wp: np.ndarray = field(default_factory=lambda: np.zeros(0))

    @property
    def n_nodes(self) -> int:
        return len(self.depths)

    @classmethod
    def build(cls, layer_depths: np.ndarray, delta_x: float, max_depth: float) -> "SoilTemperatureGrid":
        n_nodes = int(round(max_depth / delta_x)) - 1
        if n_nodes < 1:
            raise ConfigurationError(
                f"Soil temperature max depth {max_depth} cm allows no grid node at spacing {delta_x} cm"
            )
        if n_nodes + 1 >= MAX_ST_RGR:
            raise ConfigurationError(
                f"Too many soil temperature nodes ({n_nodes}); increase delta_x_cm or reduce max_depth_cm"
            )
        if tol.lt(max_depth, layer_depths[-1]):
            raise ConfigurationError(
                f"Soil temperature max depth ({max_depth} cm) is shallower than the "
                f"deepest soil layer ({layer_depths[-1]} cm)"
            )

        depths = delta_x * np.arange(1, n_nodes + 1, dtype=float)
        tops = np.concatenate(([0.0], layer_depths[:-1]))

        # Nodes below the profile take the properties of the deepest layer
        overlap = np.zeros((n_nodes, len(layer_depths)))
        for k, bottom in enumerate(depths):
            top = bottom - delta_x
            overlap[k] = np.clip(np.minimum(bottom, layer_depths) - np.maximum(top, tops), 0.0, None)
            below = bottom - max(top, layer_depths[-1])
            if below > 0:
                overlap[k, -1] += below

        return cls(delta_x=delta_x, max_depth=max_depth, depths=depths, overlap=overlap)

    def to_nodes(self, values: np.ndarray, widths: np.ndarray) -> np.ndarray:
        """Aggregate per-layer values onto the nodes, weighted by layer share"""
        weights = self.overlap / widths
        return (weights @ values) / weights.sum(axis=1)

    def temperatures_to_nodes(self, layer_depths, layer_temps, t_const: float) -> np.ndarray:
        """Interpolate layer temperatures onto the nodes; lower boundary at ``t_const``"""
        xp = np.concatenate((layer_depths, [self.max_depth]))
        fp = np.concatenate((layer_temps, [t_const]))
        return np.interp(self.depths, xp, fp)

    def nodes_to_layers(self, layer_depths, surface: float, nodes: np.ndarray, bottom: float) -> np.ndarray:
        """Interpolate node values (with surface and bottom boundary) onto the layer depths"""
        xp = np.concatenate(([0.0], self.depths, [self.max_depth]))
        fp = np.concatenate(([surface], nodes, [bottom]))
        return np.interp(layer_depths, xp, fp)


class SoilTemperatureSolver:
    """
    Daily soil temperature of one soil column.

    A day whose solution cannot be stabilised, or produces temperatures
    beyond ±100 °C, is flagged with ``st_error``: layer temperatures keep
    yesterday's values and no layer counts as frozen. The next day starts
    again from yesterday's grid temperatures.
    """

    def __init__(self, config: SoilTemperatureConfig):
        self.config = config
        self.state = SoilTemperatureState.UNINITIALIZED
        self.grid: Optional[SoilTemperatureGrid] = None
        self.node_temps: Optional[np.ndarray] = None
        self.fusion_pool: Optional[np.ndarray] = None
        self.n_errors = 0
        self.surface: Tuple[float, float, float] = (0.0, 0.0, 0.0)
        self._profile = None
        self._setup_logging()

    def _setup_logging(self):
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def initialize(self, profile) -> None:
        """Build the grid from the soil profile and seed node temperatures."""
        cfg = self.config
        self._profile = profile
        widths = profile.widths
        depths = profile.depths

        grid = SoilTemperatureGrid.build(depths, cfg.delta_x_cm, cfg.max_depth_cm)
        bulk_density = np.array([layer.bulk_density for layer in profile])
        grid.bulk_density = grid.to_nodes(bulk_density, widths)
        grid.vwc_fc = grid.to_nodes(profile.swc_fc / widths, widths)
        grid.vwc_wp = grid.to_nodes(profile.swc_wp / widths, widths)

        self.grid = grid
        self.node_temps = grid.temperatures_to_nodes(depths, profile.temperatures, cfg.t_const_c)
        self.fusion_pool = np.zeros(len(profile))
        top = float(profile.temperatures[0])
        self.surface = (top, top, top)
        self.state = SoilTemperatureState.INITIALIZED
        self.logger.info(
            f"Soil temperature grid: {grid.n_nodes} nodes every {grid.delta_x} cm to {grid.max_depth} cm"
        )

    def _diffusivity(self, vwc_nodes: np.ndarray) -> np.ndarray:
        cfg = self.config
        grid = self.grid
        pe = (vwc_nodes - grid.vwc_wp) / (grid.vwc_fc - grid.vwc_wp)
        cs = cfg.cs_param1 + pe * cfg.cs_param2
        sh = vwc_nodes + cfg.sh_param * (1.0 - vwc_nodes)
        return cs / (sh * grid.bulk_density)

    def _diffuse(self, surface_temp: float, alpha: np.ndarray):
        """
        Explicit daily update of node temperatures.

        Returns:
            Tuple of (new node temperatures or None on failure, sub-steps used)
        """
        dx2 = self.grid.delta_x ** 2
        t_const = self.config.t_const_c
        n_steps = 1

        while n_steps <= MAX_ST_SUBSTEPS:
            dt = SECONDS_PER_DAY / n_steps
            ratio = alpha * dt / dx2
            if np.any(ratio >= 0.5):
                n_steps *= 2
                continue

            old = self.node_temps.copy()
            new = old.copy()
            for _ in range(n_steps):
                for i in range(len(new)):
                    upper = surface_temp if i == 0 else new[i - 1]
                    lower = t_const if i == len(new) - 1 else old[i + 1]
                    new[i] = old[i] + ratio[i] * (upper - 2.0 * old[i] + lower)
                    if abs(new[i]) > REALISTIC_TEMP_LIMIT_C:
                        return None, n_steps
                old = new.copy()
            return new, n_steps

        return None, n_steps

    def _temperature_range(self, surface_range: float, alpha: np.ndarray) -> np.ndarray:
        """Daily temperature range per node, damped by the running mean diffusivity"""
        mean_alpha = np.cumsum(alpha) / np.arange(1, len(alpha) + 1)
        return surface_range * np.exp(-self.grid.depths * np.sqrt(math.pi / (SECONDS_PER_DAY * mean_alpha)))

    def _adjust_for_fusion(self, old_temps, new_temps, vwc, bulk_density) -> bool:
        """
        Hold layers at yesterday's temperature while the latent heat of
        fusion (Eitzinger et al. 2000, eq. 3) is not yet exhausted.
        """
        adjusted = False
        sh_param = self.config.sh_param
        for i in range(len(new_temps)):
            actual = 0.0
            crossing = (
                tol.eq(old_temps[i], FREEZING_TEMP_C)
                or (tol.gt(old_temps[i], FREEZING_TEMP_C) and tol.lt(new_temps[i], FREEZING_TEMP_C))
                or (tol.lt(old_temps[i], FREEZING_TEMP_C) and tol.gt(new_temps[i], FREEZING_TEMP_C))
            )
            if crossing:
                heat_capacity = (vwc[i] + sh_param * (1.0 - vwc[i])) * bulk_density[i]
                pool = -FUSION_HEAT_H2O * vwc[i] / heat_capacity * TEMP_CORRECTION
                if tol.gt(old_temps[i], FREEZING_TEMP_C) and tol.le(new_temps[i], FREEZING_TEMP_C):
                    actual = new_temps[i]
                elif tol.lt(self.fusion_pool[i], FREEZING_TEMP_C):
                    actual = self.fusion_pool[i] + (new_temps[i] - old_temps[i])

                if tol.lt(actual, 0.0) and tol.lt(pool, actual):
                    new_temps[i] = old_temps[i]
                    adjusted = True
            self.fusion_pool[i] = actual
        return adjusted

    @staticmethod
    def frozen_layers(temps: np.ndarray, swc: np.ndarray, swc_sat: np.ndarray, widths: np.ndarray) -> np.ndarray:
        """A layer is frozen when cold enough and wet enough"""
        return np.array([
            tol.le(temps[i], FREEZING_TEMP_C) and tol.gt(swc[i], swc_sat[i] - widths[i] * MIN_VWC_TO_FREEZE)
            for i in range(len(temps))
        ], dtype=bool)

    def step_one_day(
        self,
        swc: np.ndarray,
        air_temp_avg: float,
        air_temp_max: float,
        air_temp_min: float,
        radiation_mj_m2: float,
        pet: float,
        aet: float,
        biomass: float,
        snow_swe: float = 0.0,
        snow_depth: float = 0.0,
    ) -> SoilTemperatureResult:
        """
        Advance soil temperatures by one day.

        Args:
            swc: Today's layer water contents [cm]
            air_temp_avg, air_temp_max, air_temp_min: Air temperatures [°C]
            radiation_mj_m2: Global horizontal irradiation
            pet, aet: Today's potential and actual evapotranspiration [cm]
            biomass: Cover-weighted surface biomass [g/m²]
            snow_swe: Snow water equivalent [cm]
            snow_depth: Snow depth [cm]

        Raises:
            ConfigurationError: when called before ``initialize``
        """
        if self.state == SoilTemperatureState.UNINITIALIZED:
            raise ConfigurationError("Soil temperature solver used before initialization")

        cfg = self.config
        profile = self._profile
        widths = profile.widths
        depths = profile.depths
        yesterday = profile.temperatures

        surface_avg, surface_min, surface_max = surface_temperatures(
            cfg, air_temp_avg, air_temp_max, air_temp_min, radiation_mj_m2,
            pet, aet, biomass, snow_swe, snow_depth,
        )

        vwc = np.asarray(swc) / widths
        alpha = self._diffusivity(self.grid.to_nodes(vwc, widths))
        nodes, n_steps = self._diffuse(surface_avg, alpha)

        if nodes is None:
            self.logger.warning(
                f"Soil temperature unstable with {n_steps} sub-steps; "
                "keeping yesterday's temperatures for today"
            )
            return self._error_result(yesterday, n_steps)

        node_range = self._temperature_range(surface_max - surface_min, alpha)
        temps = self.grid.nodes_to_layers(depths, surface_avg, nodes, cfg.t_const_c)
        temp_range = np.maximum(
            0.0, self.grid.nodes_to_layers(depths, surface_max - surface_min, node_range, 0.0)
        )
        temp_min = temps - temp_range / 2.0
        temp_max = temps + temp_range / 2.0

        if not self._within_limits(temps, temp_min, temp_max, [surface_avg, surface_min, surface_max]):
            self.logger.error(
                f"Soil temperature beyond ±{REALISTIC_TEMP_LIMIT_C} °C "
                f"(surface {surface_min:.1f}..{surface_max:.1f} °C, "
                f"layers {temp_min.min():.1f}..{temp_max.max():.1f} °C); "
                "keeping yesterday's temperatures for today"
            )
            return self._error_result(yesterday, n_steps)

        if cfg.use_fusion_pool:
            bulk_density = np.array([layer.bulk_density for layer in profile])
            if self._adjust_for_fusion(yesterday, temps, vwc, bulk_density):
                nodes = self.grid.temperatures_to_nodes(depths, temps, cfg.t_const_c)
                temp_min = temps - temp_range / 2.0
                temp_max = temps + temp_range / 2.0

        self.node_temps = nodes
        self.surface = (surface_avg, surface_min, surface_max)
        self.state = SoilTemperatureState.STEP_OK

        return SoilTemperatureResult(
            temp_avg=temps,
            temp_min=temp_min,
            temp_max=temp_max,
            frozen=self.frozen_layers(temps, np.asarray(swc), profile.swc_sat, widths),
            surface_avg=surface_avg,
            surface_min=surface_min,
            surface_max=surface_max,
            n_substeps=n_steps,
        )

    @staticmethod
    def _within_limits(*values) -> bool:
        return all(
            np.all(np.isfinite(v)) and np.all(np.abs(v) <= REALISTIC_TEMP_LIMIT_C) for v in values
        )

    def _error_result(self, yesterday: np.ndarray, n_steps: int) -> SoilTemperatureResult:
        """Today's result when the solution is rejected: yesterday's values, nothing frozen"""
        self.state = SoilTemperatureState.STEP_ERROR
        self.n_errors += 1
        surface_avg, surface_min, surface_max = self.surface
        return SoilTemperatureResult(
            temp_avg=yesterday.copy(),
            temp_min=yesterday.copy(),
            temp_max=yesterday.copy(),
            frozen=np.zeros(len(yesterday), dtype=bool),
            surface_avg=surface_avg,
            surface_min=surface_min,
            surface_max=surface_max,
            st_error=True,
            n_substeps=n_steps,
        )
