"""
Tests for the daily water flow engine: mass conservation, layer limits,
drying and the engine's bookkeeping.
"""
from datetime import date

import numpy as np
import pandas as pd
import pytest

from sweb.core.config import LayerConfig, SwebConfig, WaterFlowConfig
from sweb.core.exceptions import SiteConfigurationError, WaterBalanceError
from sweb.physics.soil_profile import SoilProfile
from sweb.physics.water_balance import DailyFluxes, SoilWaterFlow

from conftest import bare_site, weather_frame


def swc_columns(results):
    return [c for c in results.columns if c.startswith("swc_cm_L")]


def seasonal_forcing(start, n_days, seed=7):
    """Random showers over a cold-winter climate"""
    rng = np.random.default_rng(seed)
    index = pd.date_range(start, periods=n_days, freq="D")
    doy = index.dayofyear.to_numpy()
    temp_max = 10.0 - 15.0 * np.cos(2.0 * np.pi * (doy - 15) / 365.0) + rng.normal(0.0, 3.0, n_days)
    wet = rng.random(n_days) < 0.3
    return pd.DataFrame({
        "precipitation_cm": np.where(wet, rng.gamma(0.8, 0.6, n_days), 0.0),
        "temp_max_c": temp_max,
        "temp_min_c": temp_max - 11.0,
        "relative_humidity_pct": 55.0,
        "wind_speed_m_s": 2.5,
        "cloud_cover_pct": 40.0,
    }, index=index)


@pytest.fixture
def single_layer_config():
    """One 20 cm bare layer, half way between wilting point and field capacity"""
    preliminary = SoilProfile.from_site_config(bare_site([20]))
    start = (preliminary.swc_fc[0] + preliminary.swc_wp[0]) / 2.0
    site = bare_site([20])
    site.layers = [LayerConfig(depth_cm=20, evap_coeff=1.0, initial_swc_cm=start)]
    return SwebConfig(site=site)


class TestSingleLayer:
    """A shower on one bare layer followed by drying"""

    def test_shower_then_drying(self, single_layer_config):
        engine = SoilWaterFlow(single_layer_config)
        initial = engine.profile.swc[0]
        swc_sat = engine.profile.swc_sat[0]

        precipitation = [1.0, 0.0, 0.0, 0.0, 0.0, 0.0]
        forcing = weather_frame("2020-07-01", 6, temp_max=28.0, temp_min=14.0)
        forcing["precipitation_cm"] = precipitation
        results = engine.run_period(forcing)

        swc = results["swc_cm_L1"].to_numpy()
        assert swc[0] > initial
        assert swc[0] <= swc_sat + 1e-9
        assert np.all(np.diff(swc) <= 1e-9)
        assert results["soil_evaporation_cm"].iloc[1] > 0.0
        assert results["water_balance_error_cm"].abs().max() < 1e-6

    def test_large_storm_drains_and_ponds_nothing(self, single_layer_config):
        engine = SoilWaterFlow(single_layer_config)
        forcing = weather_frame("2020-07-01", 1, precipitation=15.0)
        results = engine.run_period(forcing)

        assert results["deep_drainage_cm"].iloc[0] > 0.0
        assert results["swc_cm_L1"].iloc[0] <= engine.profile.swc_sat[0] + 1e-9
        assert abs(results["water_balance_error_cm"].iloc[0]) < 1e-6


class TestDryingProfile:
    """A month without rain under grass"""

    def test_layers_dry_within_limits(self, grass_config):
        engine = SoilWaterFlow(grass_config)
        swc_min = np.array([layer.swc_min for layer in engine.profile])
        initial_total = engine.profile.total_water

        results = engine.run_period(weather_frame("2020-07-01", 30, temp_max=30.0, temp_min=15.0))

        swc = results[swc_columns(results)].to_numpy()
        assert np.all(swc >= swc_min - 1e-9)
        totals = swc.sum(axis=1)
        assert np.all(np.diff(totals) <= 1e-9)
        assert totals[-1] < initial_total
        assert results["transpiration_cm"].sum() > 0.0
        assert results["water_balance_error_cm"].abs().max() < 1e-6

    def test_no_constraint_violations(self, grass_config):
        engine = SoilWaterFlow(grass_config)
        engine.run_period(weather_frame("2020-07-01", 10, temp_max=30.0, temp_min=15.0))
        summary = engine.get_diagnostic_info()["performance"]["constraint_violations"]
        assert summary["total_violations"] == 0


class TestMultiYearBalance:
    """Closure of the daily water balance over seasons with snow"""

    def test_balance_closes_every_day(self, default_config):
        engine = SoilWaterFlow(default_config)
        initial_storage = engine._total_storage()
        results = engine.run_period(seasonal_forcing("2019-01-01", 2 * 365))

        assert results["water_balance_error_cm"].abs().max() < 1e-6
        assert results["snowpack_cm"].max() > 0.0
        assert results["snowfall_cm"].sum() > 0.0
        assert results["deep_drainage_cm"].min() >= 0.0

        net_input = (
            results["precipitation_cm"].sum() + results["runon_cm"].sum()
            - results["aet_cm"].sum() - results["deep_drainage_cm"].sum()
            - results["runoff_cm"].sum() - results["snow_runoff_cm"].sum()
        )
        assert engine._total_storage() - initial_storage == pytest.approx(net_input, abs=1e-5)

    def test_snow_on_cold_day(self, default_config):
        engine = SoilWaterFlow(default_config)
        results = engine.run_period(
            weather_frame("2020-01-10", 1, precipitation=1.0, temp_max=-5.0, temp_min=-15.0)
        )
        assert results["rain_cm"].iloc[0] == 0.0
        assert results["snowpack_cm"].iloc[0] > 0.5


class TestEngineBookkeeping:
    """Balance checks, reset and diagnostics"""

    def test_strict_balance_raises(self):
        config = SwebConfig(site=bare_site([20]), water_flow=WaterFlowConfig(strict_balance=True))
        engine = SoilWaterFlow(config)
        storage = engine._total_storage()

        with pytest.raises(WaterBalanceError):
            engine._check_water_balance(storage + 1.0, DailyFluxes(day=date(2020, 1, 1)))

    def test_lenient_balance_reports_error(self):
        engine = SoilWaterFlow(SwebConfig(site=bare_site([20])))
        storage = engine._total_storage()

        error = engine._check_water_balance(storage + 1.0, DailyFluxes(day=date(2020, 1, 1)))
        assert error == pytest.approx(-1.0)
        assert engine.iteration_count == 1
        assert engine.cumulative_error == pytest.approx(1.0)

    def test_reset_reproduces_run(self, default_config):
        engine = SoilWaterFlow(default_config)
        forcing = weather_frame("2020-06-01", 5, precipitation=0.3)
        first = engine.run_period(forcing)

        engine.reset()
        np.testing.assert_allclose(engine.profile.swc, engine._initial_swc)
        assert engine.iteration_count == 0

        second = engine.run_period(forcing)
        pd.testing.assert_frame_equal(first, second)

    def test_missing_forcing_column(self, default_config):
        engine = SoilWaterFlow(default_config)
        forcing = weather_frame("2020-06-01", 5).drop(columns="temp_min_c")
        with pytest.raises(ValueError, match="temp_min_c"):
            engine.run_period(forcing)

    def test_diagnostics(self, default_config):
        engine = SoilWaterFlow(default_config)
        engine.run_period(weather_frame("2020-06-01", 3))
        info = engine.get_diagnostic_info()

        assert info["parameters"]["n_layers"] == len(default_config.site.layers)
        assert info["parameters"]["soil_temperature"] is True
        assert info["performance"]["iteration_count"] == 3
        assert set(info["current_states"]) == {f"L{i + 1}" for i in range(len(default_config.site.layers))}

    def test_initial_water_above_saturation(self):
        site = bare_site([20])
        site.layers[0].initial_swc_cm = 50.0
        with pytest.raises(SiteConfigurationError):
            SoilWaterFlow(SwebConfig(site=site))


class TestSurfaceWater:
    """Ponding, run-on from upslope and runoff"""

    @pytest.fixture
    def ponding_config(self):
        """One sealed 10 cm layer that ponds once saturated"""
        site = bare_site([10])
        site.layers[0].impermeability = 1.0
        water_flow = WaterFlowConfig(percent_runon=0.5, percent_runoff=0.4)
        return SwebConfig(site=site, water_flow=water_flow)

    def test_runon_and_runoff_close_balance(self, ponding_config):
        engine = SoilWaterFlow(ponding_config)
        initial_storage = engine._total_storage()
        forcing = weather_frame("2020-06-01", 6, temp_max=22.0, temp_min=10.0)
        forcing["precipitation_cm"] = [6.0, 0.0, 4.0, 0.0, 0.0, 0.0]

        results = engine.run_period(forcing)

        assert results["runon_cm"].iloc[0] > 0.0
        assert results["runoff_cm"].iloc[0] > 0.0
        assert results["deep_drainage_cm"].sum() == pytest.approx(0.0)
        assert results["standing_water_cm"].min() >= 0.0
        assert results["water_balance_error_cm"].abs().max() < 1e-6

        net_input = (
            results["precipitation_cm"].sum() + results["runon_cm"].sum()
            - results["aet_cm"].sum() - results["runoff_cm"].sum()
        )
        assert engine._total_storage() - initial_storage == pytest.approx(net_input, abs=1e-6)

    def test_no_runon_without_ponding(self, ponding_config):
        engine = SoilWaterFlow(ponding_config)
        results = engine.run_period(weather_frame("2020-06-01", 3, precipitation=0.0))

        assert results["runon_cm"].sum() == 0.0
        assert results["runoff_cm"].sum() == 0.0
