"""
Configuration system with validation and environment awareness.
Based on Pydantic Settings; every section can be overridden through
SWEB_<SECTION>__<FIELD> environment variables or loaded from YAML.
"""
from datetime import date
from pathlib import Path
from typing import Dict, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings

from sweb.core.types import SWRCType, VegType


class LayerConfig(BaseModel):
    """One soil layer as read from the site description"""

    depth_cm: float = Field(..., gt=0, description="Lower boundary of the layer")
    bulk_density_g_cm3: float = Field(1.43, gt=0, le=2.65, description="Matric bulk density")
    gravel_fraction: float = Field(0.0, ge=0, lt=1, description="Volumetric gravel content")
    sand_fraction: float = Field(0.51, ge=0, le=1)
    clay_fraction: float = Field(0.15, ge=0, le=1)
    evap_coeff: float = Field(0.0, ge=0, le=1, description="Bare-soil evaporation coefficient")
    transp_coeff: Dict[VegType, float] = Field(
        default_factory=lambda: {veg: 0.0 for veg in VegType},
        description="Transpiration coefficient per vegetation type",
    )
    impermeability: float = Field(0.0, ge=0, le=1)
    initial_temp_c: float = Field(4.0, ge=-100, le=100)
    initial_swc_cm: Optional[float] = Field(None, ge=0, description="Defaults to field capacity")
    swrc_params: Optional[List[float]] = Field(
        None, description="Retention-curve parameters; estimated from texture if omitted"
    )

    @model_validator(mode="after")
    def check_texture(self):
        if self.sand_fraction + self.clay_fraction > 1.0 + 1e-9:
            raise ValueError("sand + clay fractions exceed 1")
        return self


def _default_layers() -> List[LayerConfig]:
    depths = [5, 10, 20, 30, 40, 60, 80, 100]
    evap = [0.812, 0.153, 0.034, 0.001, 0.0, 0.0, 0.0, 0.0]
    transp = {
        VegType.TREES: [0.033, 0.033, 0.067, 0.067, 0.067, 0.133, 0.2, 0.4],
        VegType.SHRUBS: [0.134, 0.094, 0.176, 0.175, 0.130, 0.111, 0.112, 0.068],
        VegType.FORBS: [0.134, 0.094, 0.176, 0.175, 0.130, 0.111, 0.112, 0.068],
        VegType.GRASSES: [0.133, 0.133, 0.267, 0.267, 0.1, 0.05, 0.03, 0.02],
    }
    return [
        LayerConfig(
            depth_cm=depth,
            evap_coeff=evap[i],
            transp_coeff={veg: coeffs[i] for veg, coeffs in transp.items()},
        )
        for i, depth in enumerate(depths)
    ]


class VegetationConfig(BaseModel):
    """Parameters of one vegetation type"""

    cover: float = Field(0.0, ge=0, le=1, description="Fractional cover")
    albedo: float = Field(0.167, ge=0, le=1)

    # Monthly trajectories (January..December)
    litter_g_m2: List[float] = Field(default_factory=lambda: [0.0] * 12)
    biomass_g_m2: List[float] = Field(default_factory=lambda: [0.0] * 12)
    pct_live: List[float] = Field(default_factory=lambda: [0.0] * 12)
    lai_conv: List[float] = Field(
        default_factory=lambda: [300.0] * 12, description="g/m2 biomass per unit LAI"
    )

    # Canopy height [cm]: constant if > 0, otherwise tanfunc of biomass
    canopy_height_const_cm: float = Field(0.0, ge=0)
    canopy_xinflec: float = 300.0
    canopy_yinflec: float = 29.5
    canopy_range: float = 85.0
    canopy_slope: float = 0.002

    # Interception
    k_smax: float = Field(1.0, ge=0, description="Canopy storage per unit log LAI")
    litter_k_smax: float = Field(0.113, ge=0, description="Litter storage per unit log biomass")

    # Evapotranspiration partitioning
    es_tr_partition: float = Field(0.01, ge=0, description="Es = exp(-param * LAI)")
    es_param_limit: float = Field(999.0, gt=0, description="Biomass limiting bare-soil evaporation")
    dead_lai_factor: float = Field(0.0, ge=0, description="Share of dead biomass acting as LAI")
    shade_scale: float = Field(0.3, ge=0, le=1)
    shade_deadmax: float = Field(150.0, ge=0)
    shade_xinflec: float = 100.0
    shade_yinflec: float = 0.5
    shade_range: float = 0.4
    shade_slope: float = 0.01
    transp_shift: float = 45.0
    transp_shape: float = 0.1
    transp_inflec: float = 0.25
    transp_range: float = 0.5
    wue_multiplier: float = Field(1.0, gt=0, description="Water-use efficiency multiplier")

    # CO2 response: multiplier = coeff1 * ppm ** coeff2
    co2_bio_coeff1: float = Field(1.0, gt=0)
    co2_bio_coeff2: float = 0.0
    co2_wue_coeff1: float = Field(1.0, gt=0)
    co2_wue_coeff2: float = 0.0

    # Water uptake limits
    critical_swp_bar: float = Field(30.0, gt=0)

    # Hydraulic redistribution
    hydraulic_redistribution: bool = True
    max_cond_root: float = Field(0.2328, ge=0, description="cm/(-bar * day)")
    swp50: float = Field(10.0, gt=0, description="SWP at which conductance halves, -bar")
    shape_cond: float = Field(3.22, gt=0)

    @field_validator("litter_g_m2", "biomass_g_m2", "pct_live", "lai_conv")
    @classmethod
    def check_monthly(cls, v):
        if len(v) != 12:
            raise ValueError("monthly trajectories need 12 values")
        if any(x < 0 for x in v):
            raise ValueError("monthly trajectories must be non-negative")
        return v


def _default_vegetation() -> Dict[VegType, VegetationConfig]:
    return {
        VegType.TREES: VegetationConfig(
            cover=0.0, albedo=0.106, canopy_height_const_cm=1500.0,
            litter_g_m2=[2000.0] * 12, biomass_g_m2=[15000.0] * 12,
            pct_live=[0.083] * 12, lai_conv=[500.0] * 12,
            k_smax=2.0, es_tr_partition=0.41, es_param_limit=2099.0,
            critical_swp_bar=33.0,
        ),
        VegType.SHRUBS: VegetationConfig(
            cover=0.2, albedo=0.143, canopy_xinflec=0.0, canopy_yinflec=5.0,
            canopy_range=4.6, canopy_slope=0.0002,
            litter_g_m2=[85.0, 88.0, 90.0, 92.0, 95.0, 95.0, 90.0, 88.0, 88.0, 85.0, 85.0, 85.0],
            biomass_g_m2=[210.0, 212.0, 228.0, 372.0, 403.0, 380.0, 340.0, 320.0, 290.0, 250.0, 220.0, 210.0],
            pct_live=[0.06, 0.06, 0.08, 0.2, 0.3, 0.25, 0.2, 0.15, 0.12, 0.1, 0.08, 0.06],
            lai_conv=[372.0] * 12,
            k_smax=2.6, dead_lai_factor=0.2, critical_swp_bar=39.0,
        ),
        VegType.FORBS: VegetationConfig(
            cover=0.2, albedo=0.167,
            litter_g_m2=[75.0, 80.0, 85.0, 90.0, 50.0, 50.0, 50.0, 55.0, 60.0, 65.0, 70.0, 75.0],
            biomass_g_m2=[85.0, 88.0, 120.0, 170.0, 190.0, 180.0, 150.0, 120.0, 110.0, 95.0, 90.0, 85.0],
            pct_live=[0.0, 0.0, 0.1, 0.3, 0.5, 0.5, 0.4, 0.3, 0.2, 0.1, 0.0, 0.0],
            lai_conv=[300.0] * 12,
            critical_swp_bar=31.0,
        ),
        VegType.GRASSES: VegetationConfig(
            cover=0.4, albedo=0.167,
            litter_g_m2=[75.0, 80.0, 85.0, 90.0, 50.0, 50.0, 50.0, 55.0, 60.0, 65.0, 70.0, 75.0],
            biomass_g_m2=[150.0, 150.0, 150.0, 170.0, 190.0, 220.0, 250.0, 230.0, 210.0, 180.0, 160.0, 150.0],
            pct_live=[0.0, 0.0, 0.1, 0.2, 0.4, 0.5, 0.4, 0.3, 0.2, 0.1, 0.0, 0.0],
            lai_conv=[300.0] * 12,
            critical_swp_bar=35.0,
        ),
    }


class SoilTemperatureConfig(BaseSettings):
    """Configuration for the soil temperature solver"""

    enabled: bool = Field(True, description="Simulate soil temperature")
    delta_x_cm: float = Field(15.0, gt=0, description="Grid spacing")
    max_depth_cm: float = Field(990.0, gt=0, description="Depth of the constant-temperature boundary")
    t_const_c: float = Field(4.15, ge=-100, le=100, description="Lower boundary temperature")
    biomass_limiter_g_m2: float = Field(300.0, gt=0)
    t1_param1: float = Field(15.0, description="Surface temp response to PET below limiter")
    t1_param2: float = Field(-4.0, description="Surface temp response to biomass above limiter")
    t1_param3: float = Field(600.0, gt=0)
    cs_param1: float = Field(0.0007, gt=0, description="Thermal conductivity of dry soil")
    cs_param2: float = Field(0.0003, ge=0, description="Conductivity gain at field capacity")
    sh_param: float = Field(0.18, gt=0, description="Specific heat of dry soil")
    use_fusion_pool: bool = Field(True, description="Account for latent heat of fusion")


class WaterFlowConfig(BaseSettings):
    """Configuration for the water flow engine"""

    slow_drain_coeff: float = Field(0.02, ge=0, description="cm/day at the reference depth")
    percent_runoff: float = Field(0.0, ge=0, le=1, description="Fraction of ponded water lost daily")
    percent_runon: float = Field(0.0, ge=0, description="Fraction of upslope ponding received")
    pet_scale: float = Field(1.0, ge=0)
    bare_albedo: float = Field(0.15, ge=0, le=1)
    swc_min_swp_bar: float = Field(300.0, gt=0, description="Potential defining residual swc")

    # Bare-soil evaporation response to soil potential
    evap_shift: float = 45.0
    evap_shape: float = 0.1
    evap_inflec: float = 0.25
    evap_range: float = 0.5

    # Monthly number of rain events per day used by canopy interception
    rain_events_per_day: List[float] = Field(default_factory=lambda: [1.0] * 12)

    balance_tolerance_cm: float = Field(1e-6, gt=0)
    strict_balance: bool = Field(False, description="Raise on water balance violations")


class SnowConfig(BaseSettings):
    """SWAT2K snow parameters"""

    temp_min_accu_c: float = Field(0.0, description="Air temperature below which precip is snow")
    temp_max_crit_c: float = Field(1.0, description="Snow temperature above which melt occurs")
    lambda_snow: float = Field(0.1, ge=0, le=1, description="Snow temperature lag factor")
    rmelt_min: float = Field(0.0, ge=0, description="Minimum melt rate, cm/(°C day)")
    rmelt_max: float = Field(0.27, ge=0, description="Maximum melt rate, cm/(°C day)")
    pct_snow_runoff: float = Field(0.0, ge=0, le=100)
    density_kg_m3: List[float] = Field(default_factory=lambda: [300.0] * 12)

    @model_validator(mode="after")
    def check_rates(self):
        if self.rmelt_min > self.rmelt_max:
            raise ValueError("rmelt_min must not exceed rmelt_max")
        return self


class WeatherConfig(BaseSettings):
    """Configuration for weather inputs and the Markov generator"""

    use_generator: bool = Field(True, description="Fill missing days with the Markov generator")
    markov_prob_file: Optional[Path] = Field(None, description="Daily wet/dry probability table")
    markov_cov_file: Optional[Path] = Field(None, description="Weekly temperature covariance table")

    # Climatological defaults when a forcing is absent
    relative_humidity_pct: float = Field(61.0, ge=0, le=100)
    wind_speed_m_s: float = Field(1.5, ge=0)
    cloud_cover_pct: float = Field(50.0, ge=0, le=100)


class SiteConfig(BaseSettings):
    """Soil column description"""

    site_id: str = "default"
    latitude_deg: float = Field(40.0, ge=-90, le=90)
    elevation_m: float = Field(1000.0, ge=-500, le=9000)
    swrc: SWRCType = SWRCType.CAMPBELL_1974
    layers: List[LayerConfig] = Field(default_factory=_default_layers)
    transp_regions: List[int] = Field(
        default_factory=lambda: [3, 6, 8], description="1-based last layer of each region"
    )
    bare_cover: float = Field(0.2, ge=0, le=1)
    vegetation: Dict[VegType, VegetationConfig] = Field(default_factory=_default_vegetation)

    @field_validator("layers")
    @classmethod
    def check_depths(cls, v):
        if not v:
            raise ValueError("at least one soil layer is required")
        depths = [layer.depth_cm for layer in v]
        if any(b <= a for a, b in zip(depths, depths[1:])):
            raise ValueError("layer depths must increase with depth")
        return v

    @model_validator(mode="after")
    def check_site(self):
        regions = self.transp_regions
        if any(b <= a for a, b in zip(regions, regions[1:])):
            raise ValueError("transpiration regions must be strictly increasing")
        if regions and (regions[0] < 1 or regions[-1] > len(self.layers)):
            raise ValueError("transpiration regions exceed the soil profile")

        total = self.bare_cover + sum(v.cover for v in self.vegetation.values())
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"vegetation covers plus bare ground sum to {total:.4f}, not 1")
        return self

    @property
    def max_layer_depth_cm(self) -> float:
        return self.layers[-1].depth_cm


class CarbonConfig(BaseSettings):
    """Atmospheric CO2 effects on vegetation"""

    use_bio_mult: bool = Field(False, description="Scale biomass with yearly CO2")
    use_wue_mult: bool = Field(False, description="Scale transpiration with yearly CO2")
    co2_ppm: Dict[int, float] = Field(default_factory=dict, description="Calendar year -> ppm")

    @field_validator("co2_ppm")
    @classmethod
    def check_ppm(cls, v):
        if any(ppm < 0 for ppm in v.values()):
            raise ValueError("CO2 concentrations must be non-negative")
        return v

    @property
    def enabled(self) -> bool:
        return self.use_bio_mult or self.use_wue_mult


class MonitoringConfig(BaseSettings):
    """Configuration for logging and diagnostics"""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    track_constraint_violations: bool = Field(True)


class SwebConfig(BaseSettings):
    """Main configuration for the sweb system"""

    random_seed: int = Field(42, description="Seed of the weather generator")
    start_date: date = Field(date(2000, 1, 1))
    end_date: date = Field(date(2000, 12, 31))

    site: SiteConfig = Field(default_factory=SiteConfig)
    water_flow: WaterFlowConfig = Field(default_factory=WaterFlowConfig)
    soil_temperature: SoilTemperatureConfig = Field(default_factory=SoilTemperatureConfig)
    snow: SnowConfig = Field(default_factory=SnowConfig)
    weather: WeatherConfig = Field(default_factory=WeatherConfig)
    carbon: CarbonConfig = Field(default_factory=CarbonConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = ConfigDict(
        env_prefix="SWEB_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_config(self):
        """Cross-field validation"""
        if self.end_date < self.start_date:
            raise ValueError("end_date precedes start_date")

        if self.soil_temperature.enabled and (
            self.soil_temperature.max_depth_cm < self.site.max_layer_depth_cm
        ):
            raise ValueError(
                "soil temperature max depth is shallower than the deepest soil layer"
            )

        if self.carbon.enabled:
            missing = [
                year for year in range(self.start_date.year, self.end_date.year + 1)
                if year not in self.carbon.co2_ppm
            ]
            if missing:
                raise ValueError(f"no CO2 ppm provided for years {missing}")

        return self

    @classmethod
    def from_yaml(cls, yaml_path: Union[str, Path]) -> "SwebConfig":
        """Load configuration from YAML file"""
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Config file not found: {yaml_path}")

        with open(yaml_path, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

        return cls(**yaml_config)

    def to_yaml(self, yaml_path: Union[str, Path]):
        """Save configuration to YAML file"""
        yaml_path = Path(yaml_path)
        yaml_path.parent.mkdir(parents=True, exist_ok=True)

        with open(yaml_path, "w", encoding="utf-8") as f:
            yaml.dump(self.model_dump(mode="json"), f, default_flow_style=False)
