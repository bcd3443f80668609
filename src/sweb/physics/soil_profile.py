"""
Soil layers and the soil profile of one column.

Layer limits (saturation, field capacity, wilting point, residual and
half-wilting-point water amounts, water at each vegetation's critical
potential) are derived from the layer's retention curve at construction.
All water amounts are in cm of water per layer.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np

from sweb.core import tolerance as tol
from sweb.core.config import LayerConfig, SiteConfig
from sweb.core.constants import (
    SWP_FIELD_CAPACITY,
    SWP_HALF_WILT_LIMIT,
    SWP_RESIDUAL,
    SWP_WILTING_POINT,
)
from sweb.core.exceptions import SiteConfigurationError
from sweb.core.types import SWRCType, VegType
from sweb.physics.pedotransfer import estimate_swrc_parameters
from sweb.physics.soil_hydraulics import SWRC, VanGenuchten1980, create_swrc, swc_to_swp, swp_to_swc

logger = logging.getLogger(__name__)

PARTICLE_DENSITY_GRAVEL: float = 2.65  # g/cm³


@dataclass
class SoilLayer:
    """One soil layer with its derived water limits and daily state"""

    index: int  # zero-based position from the surface
    width: float  # cm
    depth: float  # cm, lower boundary
    bulk_density_matric: float  # g/cm³ of the fine-earth fraction
    gravel_fraction: float  # volumetric
    evap_coeff: float
    transp_coeff: Dict[VegType, float]
    impermeability: float
    swrc: SWRC
    sand_fraction: float = 0.0
    clay_fraction: float = 0.0
    initial_temp_c: float = 4.0

    # Derived limits [cm]
    swc_sat: float = field(init=False, default=0.0)
    swc_fc: float = field(init=False, default=0.0)
    swc_wp: float = field(init=False, default=0.0)
    swc_min: float = field(init=False, default=0.0)
    swc_halfwilt: float = field(init=False, default=0.0)
    swc_crit: Dict[VegType, float] = field(init=False, default_factory=dict)
    transp_region: Dict[VegType, int] = field(init=False, default_factory=dict)

    # Daily state
    swc: float = field(init=False, default=0.0)
    temp_avg: float = field(init=False, default=0.0)
    temp_min: float = field(init=False, default=0.0)
    temp_max: float = field(init=False, default=0.0)
    frozen: bool = field(init=False, default=False)

    @property
    def bulk_density(self) -> float:
        """Bulk density of the whole soil including gravel"""
        return (
            self.bulk_density_matric * (1.0 - self.gravel_fraction)
            + PARTICLE_DENSITY_GRAVEL * self.gravel_fraction
        )

    @property
    def top(self) -> float:
        return self.depth - self.width

    @property
    def vwc(self) -> float:
        """Volumetric water content of the whole layer"""
        return self.swc / self.width

    @property
    def swp(self) -> float:
        return swc_to_swp(self.swc, self)

    def derive_limits(self, critical_swp: Mapping[VegType, float], swc_min_swp: float = SWP_RESIDUAL) -> None:
        """Compute water limits from the retention curve."""
        matric_volume = self.width * (1.0 - self.gravel_fraction)

        self.swc_sat = self.swrc.theta_sat * matric_volume
        self.swc_fc = swp_to_swc(SWP_FIELD_CAPACITY, self)
        self.swc_wp = swp_to_swc(SWP_WILTING_POINT, self)

        theoretical_min = 0.0
        if isinstance(self.swrc, VanGenuchten1980):
            theoretical_min = self.swrc.params[0] * matric_volume
        self.swc_min = max(swp_to_swc(swc_min_swp, self), theoretical_min)

        self.swc_halfwilt = max(
            0.5 * self.swc_wp,
            swp_to_swc(SWP_HALF_WILT_LIMIT, self),
        )
        if self.swc_halfwilt < self.swc_min:
            logger.warning(
                f"Layer {self.index}: half-wilting point {self.swc_halfwilt:.4f} cm "
                f"below residual {self.swc_min:.4f} cm; using residual"
            )
            self.swc_halfwilt = self.swc_min

        if not (tol.le(self.swc_wp, self.swc_fc) and tol.le(self.swc_fc, self.swc_sat)):
            raise SiteConfigurationError(
                f"Layer {self.index}: limits out of order "
                f"(wp={self.swc_wp:.4f}, fc={self.swc_fc:.4f}, sat={self.swc_sat:.4f}) with {self.swrc!r}"
            )

        self.swc_crit = {}
        for veg, swp_crit in critical_swp.items():
            crit = swp_to_swc(swp_crit, self)
            if crit < self.swc_min:
                logger.warning(
                    f"Layer {self.index} - {veg.value}: water at critical potential "
                    f"{crit:.4f} cm below residual {self.swc_min:.4f} cm; using residual"
                )
                crit = self.swc_min
            self.swc_crit[veg] = crit

    @classmethod
    def from_config(
        cls,
        index: int,
        top_depth: float,
        cfg: LayerConfig,
        swrc_type: SWRCType,
    ) -> "SoilLayer":
        params = cfg.swrc_params
        if params is None:
            params = estimate_swrc_parameters(swrc_type, cfg.sand_fraction, cfg.clay_fraction)

        return cls(
            index=index,
            width=cfg.depth_cm - top_depth,
            depth=cfg.depth_cm,
            bulk_density_matric=cfg.bulk_density_g_cm3,
            gravel_fraction=cfg.gravel_fraction,
            evap_coeff=cfg.evap_coeff,
            transp_coeff={veg: cfg.transp_coeff.get(veg, 0.0) for veg in VegType},
            impermeability=cfg.impermeability,
            swrc=create_swrc(swrc_type, params),
            sand_fraction=cfg.sand_fraction,
            clay_fraction=cfg.clay_fraction,
            initial_temp_c=cfg.initial_temp_c,
        )


class SoilProfile:
    """
    Ordered soil layers of one column.

    The profile is partitioned into per-vegetation transpiration regions
    (given as 1-based lower layer numbers, strictly increasing from the
    surface) and a number of evaporation layers counted from the surface.
    """

    def __init__(
        self,
        layers: Sequence[SoilLayer],
        transp_regions: Sequence[int],
        critical_swp: Mapping[VegType, float],
        swc_min_swp: float = SWP_RESIDUAL,
        initial_swc: Optional[Sequence[Optional[float]]] = None,
    ):
        if not layers:
            raise SiteConfigurationError("A soil profile needs at least one layer")
        self.layers: List[SoilLayer] = list(layers)
        self.transp_regions = self._check_regions(transp_regions)

        for layer in self.layers:
            layer.derive_limits(critical_swp, swc_min_swp)

        self._normalize_coefficients()
        self.n_evap_layers = self._count_leading(lambda lyr: lyr.evap_coeff)
        self.n_transp_layers: Dict[VegType, int] = {
            veg: self._count_leading(lambda lyr, v=veg: lyr.transp_coeff[v]) for veg in VegType
        }
        self._assign_regions()
        self._set_initial_state(initial_swc)

    def __len__(self) -> int:
        return len(self.layers)

    def __iter__(self):
        return iter(self.layers)

    def __getitem__(self, i: int) -> SoilLayer:
        return self.layers[i]

    def _check_regions(self, regions: Sequence[int]) -> List[int]:
        regions = list(regions) or [len(self.layers)]
        if any(b <= a for a, b in zip(regions, regions[1:])):
            raise SiteConfigurationError(f"Transpiration regions must increase from the surface: {regions}")
        if regions[0] < 1 or regions[-1] > len(self.layers):
            raise SiteConfigurationError(
                f"Transpiration regions {regions} exceed the {len(self.layers)}-layer profile"
            )
        return regions

    def _normalize_coefficients(self) -> None:
        evap_sum = sum(layer.evap_coeff for layer in self.layers)
        if evap_sum > 0 and not tol.eq(evap_sum, 1.0):
            logger.warning(f"Evaporation coefficients sum to {evap_sum:.4f}; normalizing to 1")
            for layer in self.layers:
                layer.evap_coeff /= evap_sum

        for veg in VegType:
            tr_sum = sum(layer.transp_coeff[veg] for layer in self.layers)
            if tr_sum > 0 and not tol.eq(tr_sum, 1.0):
                logger.warning(
                    f"Transpiration coefficients of {veg.value} sum to {tr_sum:.4f}; normalizing to 1"
                )
                for layer in self.layers:
                    layer.transp_coeff[veg] /= tr_sum

    def _count_leading(self, coeff) -> int:
        """Number of layers down to the deepest one with a positive coefficient"""
        n = 0
        for i, layer in enumerate(self.layers):
            if coeff(layer) > 0.0:
                n = i + 1
        return n

    def _assign_regions(self) -> None:
        for layer in self.layers:
            region = next(
                (r for r, bound in enumerate(self.transp_regions) if layer.index < bound),
                len(self.transp_regions) - 1,
            )
            for veg in VegType:
                layer.transp_region[veg] = region

    def _set_initial_state(self, initial_swc: Optional[Sequence[Optional[float]]]) -> None:
        for layer in self.layers:
            value = None if initial_swc is None else initial_swc[layer.index]
            layer.swc = layer.swc_fc if value is None else float(value)
            if layer.swc < layer.swc_min or tol.gt(layer.swc, layer.swc_sat):
                raise SiteConfigurationError(
                    f"Layer {layer.index}: initial water {layer.swc:.4f} cm outside "
                    f"[{layer.swc_min:.4f}, {layer.swc_sat:.4f}]"
                )
            layer.temp_avg = layer.temp_min = layer.temp_max = layer.initial_temp_c
            layer.frozen = False

    # ------------------------------------------------------------------
    # Array views
    # ------------------------------------------------------------------

    @property
    def swc(self) -> np.ndarray:
        return np.array([layer.swc for layer in self.layers])

    @swc.setter
    def swc(self, values: Sequence[float]) -> None:
        for layer, value in zip(self.layers, values):
            layer.swc = float(value)

    @property
    def widths(self) -> np.ndarray:
        return np.array([layer.width for layer in self.layers])

    @property
    def depths(self) -> np.ndarray:
        return np.array([layer.depth for layer in self.layers])

    @property
    def swc_sat(self) -> np.ndarray:
        return np.array([layer.swc_sat for layer in self.layers])

    @property
    def swc_fc(self) -> np.ndarray:
        return np.array([layer.swc_fc for layer in self.layers])

    @property
    def swc_wp(self) -> np.ndarray:
        return np.array([layer.swc_wp for layer in self.layers])

    @property
    def frozen(self) -> np.ndarray:
        return np.array([layer.frozen for layer in self.layers], dtype=bool)

    @property
    def temperatures(self) -> np.ndarray:
        return np.array([layer.temp_avg for layer in self.layers])

    @property
    def total_water(self) -> float:
        return float(sum(layer.swc for layer in self.layers))

    @property
    def max_depth(self) -> float:
        return self.layers[-1].depth

    @classmethod
    def from_site_config(cls, site: SiteConfig, swc_min_swp: float = SWP_RESIDUAL) -> "SoilProfile":
        layers = []
        top = 0.0
        for i, layer_cfg in enumerate(site.layers):
            layers.append(SoilLayer.from_config(i, top, layer_cfg, site.swrc))
            top = layer_cfg.depth_cm

        critical_swp = {
            veg: (site.vegetation[veg].critical_swp_bar if veg in site.vegetation else 30.0)
            for veg in VegType
        }
        return cls(
            layers,
            site.transp_regions,
            critical_swp,
            swc_min_swp=swc_min_swp,
            initial_swc=[layer_cfg.initial_swc_cm for layer_cfg in site.layers],
        )
