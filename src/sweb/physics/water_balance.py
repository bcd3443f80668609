"""
Daily water flow of one soil column.

The day proceeds in a fixed order:

1. Snow accumulation and melt, potential evapotranspiration
2. Canopy and litter interception of rain
3. Snowmelt, run-on and saturated infiltration; runoff of ponded water
4. Potential soil evaporation and transpiration rates
5. Snow sublimation, then evaporation of intercepted and ponded water
6. Extraction of soil evaporation and transpiration from the layers
7. Hydraulic redistribution by roots
8. Unsaturated percolation
9. Soil temperature

Mass is conserved: precipitation and run-on equal evapotranspiration,
deep drainage, runoff and snowmelt runoff plus the change in storage
(soil, snowpack, ponded and intercepted water).
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Optional

import numpy as np
import pandas as pd

from sweb.core import tolerance as tol
from sweb.core.config import SwebConfig
from sweb.core.exceptions import (
    ErrorContext,
    PhysicsModelError,
    SwebError,
    WaterBalanceError,
)
from sweb.core.types import VegType
from sweb.physics.carbon import CarbonEffects
from sweb.physics.constraints import LayerConstraintChecker
from sweb.physics.evapotranspiration import (
    PotentialRates,
    canopy_interception,
    es_t_partitioning,
    evap_from_surface,
    litter_interception,
    penman_pet,
    pot_soil_evap,
    pot_soil_evap_bare,
    pot_transp,
    shortwave_radiation,
    transp_weighted_avg,
)
from sweb.physics.infiltration import infiltrate_water_high
from sweb.physics.root_uptake import hydraulic_redistribution, remove_from_soil
from sweb.physics.snow import SnowPack
from sweb.physics.soil_profile import SoilProfile
from sweb.physics.soil_temperature import SoilTemperatureSolver
from sweb.physics.state import ColumnState, DailyStateBuffer
from sweb.physics.vegetation import DailyVegetation, VegetationComposition
from sweb.physics.vertical_flux import percolate_unsaturated
from sweb.physics.weather import REQUIRED_COLUMNS, HistoricalWeather, WeatherRecord

logger = logging.getLogger(__name__)


@dataclass
class DailyFluxes:
    """Water fluxes [cm] and end-of-day state of one simulated day"""
    day: date
    precipitation: float = 0.0
    rain: float = 0.0
    snow: float = 0.0
    snowmelt: float = 0.0
    snow_runoff: float = 0.0
    snowloss: float = 0.0
    runon: float = 0.0
    runoff: float = 0.0
    infiltration: float = 0.0
    deep_drainage: float = 0.0
    pet: float = 0.0
    aet: float = 0.0
    intercepted_veg: Dict[VegType, float] = field(default_factory=lambda: dict.fromkeys(VegType, 0.0))
    intercepted_litter: float = 0.0
    evap_veg: Dict[VegType, float] = field(default_factory=lambda: dict.fromkeys(VegType, 0.0))
    evap_litter: float = 0.0
    evap_standing: float = 0.0
    evap_soil: np.ndarray = field(default_factory=lambda: np.zeros(0))
    transpiration: Dict[VegType, np.ndarray] = field(default_factory=dict)
    hydred: Dict[VegType, np.ndarray] = field(default_factory=dict)
    percolation: np.ndarray = field(default_factory=lambda: np.zeros(0))

    # End-of-day state
    swc: np.ndarray = field(default_factory=lambda: np.zeros(0))
    soil_temp: np.ndarray = field(default_factory=lambda: np.zeros(0))
    soil_temp_min: np.ndarray = field(default_factory=lambda: np.zeros(0))
    soil_temp_max: np.ndarray = field(default_factory=lambda: np.zeros(0))
    frozen: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=bool))
    surface_temp: float = 0.0
    snowpack: float = 0.0
    snowdepth: float = 0.0
    standing_water: float = 0.0
    temp_error: bool = False
    water_balance_error: float = 0.0

    @property
    def total_transpiration(self) -> float:
        return float(sum(t.sum() for t in self.transpiration.values()))

    @property
    def total_soil_evaporation(self) -> float:
        return float(self.evap_soil.sum())

    def to_record(self) -> Dict[str, float]:
        """Flat, unit-suffixed representation for DataFrame output"""
        record = {
            "precipitation_cm": self.precipitation,
            "rain_cm": self.rain,
            "snowfall_cm": self.snow,
            "snowmelt_cm": self.snowmelt,
            "snow_runoff_cm": self.snow_runoff,
            "sublimation_cm": self.snowloss,
            "runon_cm": self.runon,
            "runoff_cm": self.runoff,
            "infiltration_cm": self.infiltration,
            "deep_drainage_cm": self.deep_drainage,
            "pet_cm": self.pet,
            "aet_cm": self.aet,
            "transpiration_cm": self.total_transpiration,
            "soil_evaporation_cm": self.total_soil_evaporation,
            "surface_evaporation_cm": sum(self.evap_veg.values()) + self.evap_litter + self.evap_standing,
            "snowpack_cm": self.snowpack,
            "snowdepth_cm": self.snowdepth,
            "standing_water_cm": self.standing_water,
            "surface_temp_c": self.surface_temp,
            "temp_valid": not self.temp_error,
            "water_balance_error_cm": self.water_balance_error,
        }
        for i, value in enumerate(self.swc):
            record[f"swc_cm_L{i + 1}"] = float(value)
        for i, value in enumerate(self.soil_temp):
            record[f"soil_temp_c_L{i + 1}"] = float(value)
        return record


class SoilWaterFlow:
    """
    Daily water and energy balance of one soil column.

    The engine owns the soil profile, vegetation, snowpack, soil
    temperature solver and the today/yesterday state buffer; one call to
    ``run_daily`` advances all of them by one day.
    """

    def __init__(self, config: SwebConfig, profile: Optional[SoilProfile] = None):
        self.config = config
        self._setup_logging()

        self.profile = profile or SoilProfile.from_site_config(
            config.site, swc_min_swp=config.water_flow.swc_min_swp_bar
        )
        self.carbon = CarbonEffects(config.carbon, config.site.vegetation)
        self.vegetation = VegetationComposition(
            config.site.vegetation, config.site.bare_cover, config.water_flow.bare_albedo, self.carbon
        )
        self.snow = SnowPack(config.snow)
        self.constraints = LayerConstraintChecker(config.water_flow.balance_tolerance_cm)

        self.temperature: Optional[SoilTemperatureSolver] = None
        if config.soil_temperature.enabled:
            self.temperature = SoilTemperatureSolver(config.soil_temperature)
            self.temperature.initialize(self.profile)

        self._initial_swc = self.profile.swc.copy()
        self.state = DailyStateBuffer(self._snapshot())

        self.cumulative_error = 0.0
        self.iteration_count = 0
        self.n_temp_errors = 0

    def _setup_logging(self):
        """Configure model-specific logging"""
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def _snapshot(self) -> ColumnState:
        today = getattr(getattr(self, "state", None), "today", None)
        return ColumnState(
            swc=self.profile.swc,
            soil_temp=self.profile.temperatures,
            snowpack=self.snow.swe,
            standing_water=today.standing_water if today else 0.0,
            veg_intercepted=dict(today.veg_intercepted) if today else dict.fromkeys(VegType, 0.0),
            litter_intercepted=today.litter_intercepted if today else 0.0,
        )

    # ------------------------------------------------------------------
    # Daily step
    # ------------------------------------------------------------------

    def run_daily(self, doy: int, month: int, weather: WeatherRecord) -> DailyFluxes:
        """
        Run the water and energy balance for one day.

        Args:
            doy: Day of year (1-366)
            month: Month (1-12)
            weather: The day's forcing

        Returns:
            DailyFluxes with the day's fluxes and end-of-day state
        """
        self.logger.debug(
            f"{weather.day}: P={weather.precipitation_cm:.3f}cm, "
            f"T={weather.temp_min_c:.1f}..{weather.temp_max_c:.1f}°C"
        )
        initial_storage = self._total_storage()

        try:
            fluxes = self._water_flow(doy, month, weather)
            fluxes.water_balance_error = self._check_water_balance(initial_storage, fluxes)
            if self.config.monitoring.track_constraint_violations:
                self.constraints.check({
                    "date": str(weather.day),
                    "swc": fluxes.swc,
                    "swc_sat": self.profile.swc_sat,
                    "swc_min": np.array([layer.swc_min for layer in self.profile]),
                    "balance_error": fluxes.water_balance_error,
                })
        except SwebError:
            self.logger.error(f"{weather.day}: daily step failed")
            raise
        except Exception as e:
            self.logger.error(f"Error in daily step: {e}")
            raise PhysicsModelError(
                f"Failed to run daily step: {e}",
                ErrorContext(site_id=self.config.site.site_id, date=str(weather.day), operation="run_daily"),
            ) from e

        self.state.roll()
        return fluxes

    def _scale_veg(self, veg: DailyVegetation, snowdepth: float) -> float:
        """Cover of a vegetation type not buried in snow"""
        scale = veg.cover
        if tol.gt(veg.height, 0.0):
            scale *= 1.0 - snowdepth / veg.height
        return max(0.0, scale)

    def _water_flow(self, doy: int, month: int, weather: WeatherRecord) -> DailyFluxes:
        site = self.config.site
        wf = self.config.water_flow
        profile = self.profile
        layers = profile.layers
        n = len(profile)
        today = self.state.today
        yesterday = self.state.yesterday
        veg_cfg = {veg: self.vegetation[veg].cfg for veg in VegType}

        fluxes = DailyFluxes(day=weather.day, precipitation=weather.precipitation_cm)
        veg_today = self.vegetation.daily(weather.day.year, doy)
        swc = profile.swc
        frozen = profile.frozen

        # Snow
        snow = self.snow.adjust(doy, weather.temp_min_c, weather.temp_max_c, weather.precipitation_cm)
        fluxes.rain, fluxes.snow = snow.rain, snow.snow
        no_snow = not self.snow.has_snow

        # Potential evapotranspiration
        radiation = weather.shortwave_radiation_mj_m2
        if radiation is None:
            radiation = shortwave_radiation(site.latitude_deg, doy, site.elevation_m, weather.cloud_cover_pct)
        pet = wf.pet_scale * penman_pet(
            radiation,
            weather.temp_avg_c,
            site.elevation_m,
            self.vegetation.albedo,
            weather.relative_humidity_pct,
            weather.wind_speed_m_s,
            weather.cloud_cover_pct,
        )
        fluxes.pet = pet

        # Interception, scaled by the part of each canopy above the snow
        snowdepth0 = self.snow.depth_cm(month)
        scale = {veg: self._scale_veg(veg_today[veg], snowdepth0) for veg in VegType}
        events = wf.rain_events_per_day[month - 1]

        h2o = snow.rain
        for veg in VegType:
            if tol.gt(h2o, 0.0) and tol.gt(scale[veg], 0.0):
                h2o, fluxes.intercepted_veg[veg], today.veg_intercepted[veg] = canopy_interception(
                    h2o, today.veg_intercepted[veg], events,
                    veg_cfg[veg].k_smax, veg_today[veg].lai_total, scale[veg],
                )

        if tol.gt(h2o, 0.0) and no_snow:
            for veg in VegType:
                if tol.gt(veg_today[veg].cover, 0.0):
                    h2o, intercepted, today.litter_intercepted = litter_interception(
                        h2o, today.litter_intercepted, events,
                        veg_cfg[veg].litter_k_smax, veg_today[veg].litter, veg_today[veg].cover,
                    )
                    fluxes.intercepted_litter += intercepted

        # Surface water
        standing = yesterday.standing_water
        snowmelt = max(0.0, snow.snowmelt * (1.0 - self.config.snow.pct_snow_runoff / 100.0))
        fluxes.snowmelt = snow.snowmelt
        fluxes.snow_runoff = snow.snowmelt - snowmelt
        h2o += snowmelt

        swc_fc = profile.swc_fc
        swc_sat = profile.swc_sat
        impermeability = np.array([layer.impermeability for layer in layers])

        if tol.gt(wf.percent_runon, 0.0):
            # Identical upslope neighbour receiving the same water
            neighbour = infiltrate_water_high(
                swc.copy(), h2o, standing, swc_fc, swc_sat, impermeability, frozen
            )
            fluxes.runon = max(0.0, (neighbour.standing - yesterday.standing_water) * wf.percent_runon)
            standing += fluxes.runon

        soil_inf = h2o + standing
        infiltrated = infiltrate_water_high(swc, h2o, standing, swc_fc, swc_sat, impermeability, frozen)
        standing = infiltrated.standing
        drain = infiltrated.drain
        drainout = infiltrated.drainout
        soil_inf -= standing

        if tol.gt(wf.percent_runoff, 0.0):
            fluxes.runoff = standing * wf.percent_runoff
            standing = max(0.0, standing - fluxes.runoff)

        # Potential rates
        rates = PotentialRates()
        evap_params = (wf.evap_shift, wf.evap_shape, wf.evap_inflec, wf.evap_range)
        if tol.gt(site.bare_cover, 0.0) and no_snow:
            rates.soil_evap_bare = site.bare_cover * pot_soil_evap_bare(
                layers, swc, profile.n_evap_layers, pet, *evap_params
            )

        for veg in VegType:
            if not tol.gt(scale[veg], 0.0):
                continue
            daily = veg_today[veg]
            fbse, fbst = es_t_partitioning(daily.lai_live, veg_cfg[veg].es_tr_partition)
            if no_snow:
                rates.soil_evap[veg] = daily.cover * pot_soil_evap(
                    layers, swc, profile.n_evap_layers, daily.total_agb, fbse, pet,
                    *evap_params, veg_cfg[veg].es_param_limit,
                )
            swp_avg = transp_weighted_avg(
                layers, swc, veg, profile.n_transp_layers[veg], len(profile.transp_regions)
            )
            rates.transp[veg] = scale[veg] * pot_transp(
                swp_avg, daily.biolive, daily.biodead, fbst, pet, veg_cfg[veg],
                self.carbon.wue(veg, weather.day.year),
            )

        # Sublimation takes precedence over all other evapotranspiration
        fluxes.snowloss = self.snow.sublimate(pet)
        fluxes.snowdepth = self.snow.depth_cm(month)
        pet2 = max(0.0, pet - fluxes.snowloss)

        peti = pet2
        for veg in VegType:
            if tol.gt(scale[veg], 0.0):
                rate = max(0.0, min(peti * scale[veg], today.veg_intercepted[veg]))
                rates.veg_surface_evap[veg] = rate
                peti -= rate / scale[veg]
        rates.litter_evap = max(0.0, min(peti, today.litter_intercepted))
        peti -= rates.litter_evap
        rates.standing_evap = max(0.0, min(peti, standing))

        total_rate = rates.total
        if tol.gt(total_rate, pet2):
            rates.scale(pet2 / total_rate)

        aet = fluxes.snowloss
        for veg in VegType:
            today.veg_intercepted[veg], fluxes.evap_veg[veg] = evap_from_surface(
                today.veg_intercepted[veg], rates.veg_surface_evap[veg]
            )
            aet += fluxes.evap_veg[veg]
        today.litter_intercepted, fluxes.evap_litter = evap_from_surface(
            today.litter_intercepted, rates.litter_evap
        )
        standing, fluxes.evap_standing = evap_from_surface(standing, rates.standing_evap)
        aet += fluxes.evap_litter + fluxes.evap_standing

        # Soil evaporation and transpiration
        evap_coeffs = [layer.evap_coeff for layer in layers]
        halfwilt = [layer.swc_halfwilt for layer in layers]
        evap_soil = np.zeros(n)
        if tol.gt(site.bare_cover, 0.0) and no_snow:
            aet += remove_from_soil(
                swc, evap_soil, layers, profile.n_evap_layers, evap_coeffs,
                rates.soil_evap_bare, halfwilt, frozen,
            )

        for veg in VegType:
            fluxes.transpiration[veg] = np.zeros(n)
            if not tol.gt(scale[veg], 0.0):
                continue
            aet += remove_from_soil(
                swc, evap_soil, layers, profile.n_evap_layers, evap_coeffs,
                rates.soil_evap[veg], halfwilt, frozen,
            )
            aet += remove_from_soil(
                swc, fluxes.transpiration[veg], layers, profile.n_transp_layers[veg],
                [layer.transp_coeff[veg] for layer in layers], rates.transp[veg],
                [layer.swc_crit[veg] for layer in layers], frozen,
            )
        fluxes.evap_soil = evap_soil
        fluxes.aet = aet

        # Hydraulic redistribution
        for veg in VegType.bottom_up():
            daily = veg_today[veg]
            if veg_cfg[veg].hydraulic_redistribution and tol.gt(daily.cover, 0.0) and tol.gt(daily.biolive, 0.0):
                fluxes.hydred[veg] = hydraulic_redistribution(
                    swc, layers, veg, frozen,
                    veg_cfg[veg].max_cond_root, veg_cfg[veg].swp50, veg_cfg[veg].shape_cond,
                    daily.cover, day=str(weather.day),
                )
            else:
                fluxes.hydred[veg] = np.zeros(n)

        # Unsaturated percolation is the last change to soil water
        soil_inf += standing
        slow_drainout, pushed_up = percolate_unsaturated(swc, drain, layers, frozen, wf.slow_drain_coeff)
        drainout += slow_drainout
        standing += pushed_up
        soil_inf -= standing

        fluxes.infiltration = soil_inf
        fluxes.deep_drainage = drainout
        fluxes.percolation = drain
        fluxes.standing_water = standing
        fluxes.snowpack = self.snow.swe
        profile.swc = swc

        self._soil_temperature(fluxes, weather, radiation, veg_today)

        today.swc = profile.swc
        today.soil_temp = profile.temperatures
        today.snowpack = self.snow.swe
        today.standing_water = standing
        fluxes.swc = profile.swc
        return fluxes

    def _soil_temperature(self, fluxes: DailyFluxes, weather: WeatherRecord, radiation: float, veg_today) -> None:
        profile = self.profile
        if self.temperature is None:
            fluxes.soil_temp = profile.temperatures
            fluxes.soil_temp_min = profile.temperatures
            fluxes.soil_temp_max = profile.temperatures
            fluxes.frozen = profile.frozen
            return

        result = self.temperature.step_one_day(
            profile.swc,
            weather.temp_avg_c,
            weather.temp_max_c,
            weather.temp_min_c,
            radiation,
            fluxes.pet,
            fluxes.aet,
            VegetationComposition.surface_biomass(veg_today),
            snow_swe=self.snow.swe,
            snow_depth=fluxes.snowdepth,
        )
        if result.st_error:
            self.n_temp_errors += 1

        for i, layer in enumerate(profile):
            layer.temp_avg = float(result.temp_avg[i])
            layer.temp_min = float(result.temp_min[i])
            layer.temp_max = float(result.temp_max[i])
            layer.frozen = bool(result.frozen[i])

        fluxes.soil_temp = result.temp_avg
        fluxes.soil_temp_min = result.temp_min
        fluxes.soil_temp_max = result.temp_max
        fluxes.frozen = result.frozen
        fluxes.surface_temp = result.surface_avg
        fluxes.temp_error = result.st_error

    # ------------------------------------------------------------------
    # Water balance
    # ------------------------------------------------------------------

    def _check_water_balance(self, initial_storage: float, fluxes: DailyFluxes) -> float:
        """
        Check water balance closure.

        Returns:
            Water balance error in cm (should be near zero)
        """
        final_storage = self._total_storage()
        inputs = fluxes.precipitation + fluxes.runon
        outputs = fluxes.aet + fluxes.deep_drainage + fluxes.runoff + fluxes.snow_runoff

        delta_storage = final_storage - initial_storage
        water_balance_error = delta_storage - (inputs - outputs)

        self.cumulative_error += abs(water_balance_error)
        self.iteration_count += 1

        tolerance = self.config.water_flow.balance_tolerance_cm
        if abs(water_balance_error) > tolerance * 10:
            message = (
                f"Large water balance error: {water_balance_error:.6f}cm\n"
                f"  Initial S: {initial_storage:.4f}cm\n"
                f"  Final S: {final_storage:.4f}cm\n"
                f"  Inputs: {inputs:.4f}cm\n"
                f"  Outputs: {outputs:.4f}cm"
            )
            self.logger.warning(message)
            if self.config.water_flow.strict_balance:
                raise WaterBalanceError(
                    message,
                    ErrorContext(site_id=self.config.site.site_id, date=str(fluxes.day), component="water_balance"),
                )

        return water_balance_error

    def _total_storage(self) -> float:
        """Soil water plus snowpack, ponded and intercepted water (cm)"""
        today = self.state.today
        return (
            self.profile.total_water
            + self.snow.swe
            + today.standing_water
            + sum(today.veg_intercepted.values())
            + today.litter_intercepted
        )

    # ------------------------------------------------------------------
    # Periods
    # ------------------------------------------------------------------

    def run_period(self, forcings: pd.DataFrame) -> pd.DataFrame:
        """
        Run the model over every day of a forcing DataFrame.

        Args:
            forcings: DataFrame indexed by date with columns:
                - precipitation_cm, temp_max_c, temp_min_c (required)
                - relative_humidity_pct, wind_speed_m_s, cloud_cover_pct,
                  shortwave_radiation_mj_m2 (optional)

        Returns:
            DataFrame of daily results indexed by date
        """
        self._validate_forcings(forcings)
        self.logger.info(f"Running model for {len(forcings)} days")

        source = HistoricalWeather(forcings, self.config.weather)
        records = []
        yesterday_precip = 0.0
        for ts in source.data.index:
            day = ts.date()
            weather = source.get(day, yesterday_precip)
            fluxes = self.run_daily(weather.doy, day.month, weather)
            records.append(fluxes.to_record())
            yesterday_precip = weather.precipitation_cm

        self.logger.info(
            f"Model run complete. "
            f"Avg water balance error: {self.cumulative_error / max(self.iteration_count, 1):.2e}cm"
        )
        return pd.DataFrame(records, index=pd.DatetimeIndex(source.data.index, name="date"))

    def _validate_forcings(self, forcings: pd.DataFrame):
        """Validate input forcings DataFrame"""
        for col in REQUIRED_COLUMNS:
            if col not in forcings.columns:
                raise ValueError(f"Missing required column: {col}")

        if not forcings.index.is_monotonic_increasing:
            raise ValueError("Forcings must be sorted by date")

        if (forcings["precipitation_cm"] < 0).any():
            self.logger.warning("Negative values found in precipitation_cm")

    def reset(self) -> None:
        """Reset the column to its initial state"""
        self.profile.swc = self._initial_swc
        for layer in self.profile:
            layer.temp_avg = layer.temp_min = layer.temp_max = layer.initial_temp_c
            layer.frozen = False

        self.snow = SnowPack(self.config.snow)
        if self.temperature is not None:
            self.temperature = SoilTemperatureSolver(self.config.soil_temperature)
            self.temperature.initialize(self.profile)

        self.state.reset(ColumnState(swc=self.profile.swc, soil_temp=self.profile.temperatures))
        self.cumulative_error = 0.0
        self.iteration_count = 0
        self.n_temp_errors = 0

        self.logger.info("Model reset to initial state")

    def get_diagnostic_info(self) -> Dict:
        """Get diagnostic information about model state"""
        return {
            "current_states": {
                f"L{layer.index + 1}": {
                    "swc_cm": layer.swc,
                    "vwc": layer.vwc,
                    "swc_fc_cm": layer.swc_fc,
                    "swc_sat_cm": layer.swc_sat,
                    "temperature_c": layer.temp_avg,
                    "frozen": layer.frozen,
                }
                for layer in self.profile
            },
            "surface": {
                "snowpack_cm": self.snow.swe,
                "standing_water_cm": self.state.today.standing_water,
                "intercepted_cm": self.state.today.surface_water - self.state.today.snowpack,
            },
            "parameters": {
                "site_id": self.config.site.site_id,
                "swrc": self.config.site.swrc.value,
                "n_layers": len(self.profile),
                "n_evap_layers": self.profile.n_evap_layers,
                "soil_temperature": self.temperature is not None,
            },
            "performance": {
                "cumulative_water_balance_error_cm": self.cumulative_error,
                "iteration_count": self.iteration_count,
                "avg_water_balance_error_cm": (
                    self.cumulative_error / self.iteration_count
                    if self.iteration_count > 0 else 0.0
                ),
                "soil_temperature_errors": self.n_temp_errors,
                "constraint_violations": self.constraints.get_violation_summary(n_recent=None),
            },
        }
