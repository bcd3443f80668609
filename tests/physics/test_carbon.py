"""
Tests for yearly CO2 effects on biomass and transpiration.
"""
import pytest

from sweb.core.config import CarbonConfig, SwebConfig, VegetationConfig
from sweb.core.exceptions import MissingDataError
from sweb.core.types import VegType
from sweb.physics.carbon import CarbonEffects, co2_multiplier
from sweb.physics.vegetation import VegetationComposition
from sweb.physics.water_balance import SoilWaterFlow

from conftest import weather_frame


@pytest.fixture
def responsive_vegetation():
    """Grasses and trees with a biomass multiplier of 1.2 at 400 ppm"""
    grass = VegetationConfig(
        cover=0.5, biomass_g_m2=[100.0] * 12, pct_live=[0.5] * 12,
        co2_bio_coeff1=0.06, co2_bio_coeff2=0.5, co2_wue_coeff1=0.1, co2_wue_coeff2=0.5,
    )
    trees = VegetationConfig(
        cover=0.5, biomass_g_m2=[1000.0] * 12, pct_live=[0.5] * 12,
        co2_bio_coeff1=0.06, co2_bio_coeff2=0.5,
    )
    return {VegType.GRASSES: grass, VegType.TREES: trees}


class TestCarbonEffects:
    """Per-year multipliers from the CO2 series"""

    def test_power_law(self):
        assert co2_multiplier(0.06, 0.5, 400.0) == pytest.approx(1.2)
        assert co2_multiplier(1.0, 0.0, 400.0) == pytest.approx(1.0)

    def test_disabled_effects_are_neutral(self, responsive_vegetation):
        carbon = CarbonEffects(CarbonConfig(), responsive_vegetation)
        assert carbon.multipliers(VegType.GRASSES, 2000) == (1.0, 1.0)

    def test_multipliers_by_year(self, responsive_vegetation):
        config = CarbonConfig(use_bio_mult=True, use_wue_mult=True, co2_ppm={2000: 400.0, 2001: 100.0})
        carbon = CarbonEffects(config, responsive_vegetation)

        assert carbon.biomass(VegType.GRASSES, 2000) == pytest.approx(1.2)
        assert carbon.wue(VegType.GRASSES, 2000) == pytest.approx(2.0)
        assert carbon.biomass(VegType.GRASSES, 2001) == pytest.approx(0.6)
        assert carbon.wue(VegType.TREES, 2000) == pytest.approx(1.0)

    def test_only_enabled_effect_applies(self, responsive_vegetation):
        config = CarbonConfig(use_wue_mult=True, co2_ppm={2000: 400.0})
        carbon = CarbonEffects(config, responsive_vegetation)
        assert carbon.multipliers(VegType.GRASSES, 2000) == pytest.approx((1.0, 2.0))

    def test_missing_year(self, responsive_vegetation):
        config = CarbonConfig(use_bio_mult=True, co2_ppm={2000: 400.0})
        carbon = CarbonEffects(config, responsive_vegetation)
        with pytest.raises(MissingDataError):
            carbon.biomass(VegType.GRASSES, 1999)

    def test_negative_concentration_rejected(self):
        with pytest.raises(ValueError):
            CarbonConfig(co2_ppm={2000: -1.0})

    def test_simulated_years_need_concentrations(self):
        with pytest.raises(ValueError):
            SwebConfig(carbon=CarbonConfig(use_bio_mult=True, co2_ppm={2000: 400.0}),
                       start_date="2000-01-01", end_date="2001-12-31")


class TestBiomassResponse:
    """CO2 biomass multiplier in the daily vegetation trajectories"""

    def test_grass_biomass_and_tree_live_fraction(self, responsive_vegetation):
        config = CarbonConfig(use_bio_mult=True, co2_ppm={2000: 400.0})
        carbon = CarbonEffects(config, responsive_vegetation)
        plain = VegetationComposition(responsive_vegetation, bare_cover=0.0).daily(2000, 180)
        enriched = VegetationComposition(responsive_vegetation, bare_cover=0.0, carbon=carbon).daily(2000, 180)

        grass, grass_co2 = plain[VegType.GRASSES], enriched[VegType.GRASSES]
        assert grass_co2.biomass == pytest.approx(1.2 * grass.biomass)
        assert grass_co2.biolive == pytest.approx(1.2 * grass.biolive)

        trees, trees_co2 = plain[VegType.TREES], enriched[VegType.TREES]
        assert trees_co2.biomass == pytest.approx(trees.biomass)
        assert trees_co2.biolive == pytest.approx(1.2 * trees.biolive)

    def test_tree_live_fraction_capped(self, responsive_vegetation):
        config = CarbonConfig(use_bio_mult=True, co2_ppm={2000: 1600.0})
        carbon = CarbonEffects(config, responsive_vegetation)
        trees = VegetationComposition(responsive_vegetation, bare_cover=0.0, carbon=carbon).daily(2000, 180)[
            VegType.TREES
        ]
        assert trees.biolive == pytest.approx(trees.biomass)
        assert trees.biodead == pytest.approx(0.0)


class TestTranspirationResponse:
    """CO2 water-use efficiency multiplier in the engine"""

    def test_lower_wue_multiplier_lowers_transpiration(self, grass_config):
        forcing = weather_frame("2020-07-01", 5, temp_max=30.0, temp_min=15.0)

        baseline = SoilWaterFlow(grass_config).run_period(forcing)

        vegetation = dict(grass_config.site.vegetation)
        vegetation[VegType.GRASSES] = vegetation[VegType.GRASSES].model_copy(
            update={"co2_wue_coeff1": 0.025, "co2_wue_coeff2": 0.5}
        )
        reduced_config = grass_config.model_copy(update={
            "site": grass_config.site.model_copy(update={"vegetation": vegetation}),
            "carbon": CarbonConfig(use_wue_mult=True, co2_ppm={2020: 400.0}),
        })
        engine = SoilWaterFlow(reduced_config)
        assert engine.carbon.wue(VegType.GRASSES, 2020) == pytest.approx(0.5)
        reduced = engine.run_period(forcing)

        assert reduced["transpiration_cm"].sum() < baseline["transpiration_cm"].sum()
        assert reduced["water_balance_error_cm"].abs().max() < 1e-6
