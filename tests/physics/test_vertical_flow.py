"""
Tests for infiltration, unsaturated percolation, extraction from layers
and hydraulic redistribution.
"""
import numpy as np
import pytest

from sweb.core.config import LayerConfig, SiteConfig, VegetationConfig
from sweb.core.types import VegType
from sweb.physics.infiltration import FROZEN_KSAT_REL, infiltrate_water_high, push_excess_upward
from sweb.physics.root_uptake import hydraulic_redistribution, remove_from_soil
from sweb.physics.soil_profile import SoilProfile
from sweb.physics.vertical_flux import percolate_unsaturated, slow_drainage_potential

from conftest import bare_site


def arrays(profile):
    impermeability = np.array([layer.impermeability for layer in profile])
    return profile.swc_fc, profile.swc_sat, impermeability


@pytest.fixture
def profile():
    return SoilProfile.from_site_config(bare_site([10, 20, 40]))


@pytest.fixture
def grass_profile():
    """Four grass-rooted layers below a thin top layer"""
    layers = [
        LayerConfig(depth_cm=d, evap_coeff=1.0 if i == 0 else 0.0, transp_coeff={VegType.GRASSES: 0.25})
        for i, d in enumerate([5, 15, 30, 50, 80])
    ]
    vegetation = {veg: VegetationConfig(cover=0.0) for veg in VegType}
    vegetation[VegType.GRASSES] = VegetationConfig(cover=1.0, critical_swp_bar=35.0)
    site = SiteConfig(layers=layers, transp_regions=[5], bare_cover=0.0, vegetation=vegetation)
    return SoilProfile.from_site_config(site)


class TestInfiltration:
    """Saturated flow from the surface downward"""

    def test_water_passes_profile_at_field_capacity(self, profile):
        swc = profile.swc
        fc, sat, imperm = arrays(profile)
        result = infiltrate_water_high(swc, 2.0, 0.0, fc, sat, imperm, profile.frozen)

        assert result.drainout == pytest.approx(2.0)
        assert result.standing == pytest.approx(0.0)
        np.testing.assert_allclose(swc, fc)

    def test_water_stored_in_dry_profile(self, profile):
        swc = profile.swc_wp.copy()
        fc, sat, imperm = arrays(profile)
        result = infiltrate_water_high(swc, 1.0, 0.0, fc, sat, imperm, profile.frozen)

        assert result.drainout == pytest.approx(0.0)
        assert swc.sum() == pytest.approx(profile.swc_wp.sum() + 1.0)

    def test_impermeable_layer_ponds_water(self, profile):
        swc = profile.swc
        fc, sat, _ = arrays(profile)
        imperm = np.array([1.0, 0.0, 0.0])
        result = infiltrate_water_high(swc, 10.0, 0.5, fc, sat, imperm, profile.frozen)

        assert swc[0] == pytest.approx(sat[0])
        assert result.standing == pytest.approx(fc[0] + 10.5 - sat[0])
        assert result.drainout == pytest.approx(0.0)

    def test_frozen_layer_restricts_flow(self, profile):
        swc = profile.swc
        fc, sat, imperm = arrays(profile)
        frozen = np.array([True, False, False])
        result = infiltrate_water_high(swc, 1.0, 0.0, fc, sat, imperm, frozen)

        assert result.drain[0] == pytest.approx(FROZEN_KSAT_REL * 1.0)

    def test_push_excess_upward(self):
        swc = np.array([1.0, 2.5, 3.5])
        flux = np.array([0.5, 0.5, 0.5])
        excess = push_excess_upward(swc, np.array([1.2, 2.0, 3.0]), flux)

        np.testing.assert_allclose(swc, [1.2, 2.0, 3.0])
        assert excess == pytest.approx(0.8)
        np.testing.assert_allclose(flux, [-0.5, 0.0, 0.5])


class TestPercolation:
    """Slow drainage below field capacity"""

    def test_drainage_potential_range(self):
        assert slow_drainage_potential(3.0, 3.0, 0.5, 10.0, 0.02) == pytest.approx(0.02)
        assert slow_drainage_potential(0.5, 3.0, 0.5, 10.0, 0.02) == pytest.approx(0.0)
        mid = slow_drainage_potential(2.0, 3.0, 0.5, 10.0, 0.02)
        assert 0.0 < mid < 0.02

    def test_mass_conserved(self, profile):
        swc = profile.swc
        before = swc.sum()
        percolate = np.zeros(len(swc))
        drainout, excess = percolate_unsaturated(swc, percolate, profile.layers, profile.frozen, 0.02)

        assert drainout > 0.0
        assert excess == pytest.approx(0.0)
        assert swc.sum() + drainout + excess == pytest.approx(before)
        assert np.all(percolate >= 0.0)

    def test_residual_floor(self, profile):
        swc = np.array([layer.swc_min for layer in profile])
        percolate = np.zeros(len(swc))
        drainout, _ = percolate_unsaturated(swc, percolate, profile.layers, profile.frozen, 0.02)

        assert drainout == pytest.approx(0.0)
        np.testing.assert_allclose(swc, [layer.swc_min for layer in profile])


class TestExtraction:
    """Removal of evaporation and transpiration from layers"""

    def test_full_demand_met_when_wet(self, grass_profile):
        swc = grass_profile.swc
        removed_by_layer = np.zeros(len(swc))
        coeffs = [layer.transp_coeff[VegType.GRASSES] for layer in grass_profile]
        floors = [layer.swc_crit[VegType.GRASSES] for layer in grass_profile]

        removed = remove_from_soil(
            swc, removed_by_layer, grass_profile.layers, 5, coeffs, 0.3, floors, grass_profile.frozen
        )

        assert removed == pytest.approx(0.3)
        assert removed_by_layer.sum() == pytest.approx(0.3)
        assert swc.sum() == pytest.approx(grass_profile.swc.sum() - 0.3)

    def test_floor_respected(self, grass_profile):
        floors = np.array([layer.swc_crit[VegType.GRASSES] for layer in grass_profile])
        swc = floors + 0.01
        coeffs = [layer.transp_coeff[VegType.GRASSES] for layer in grass_profile]

        removed = remove_from_soil(
            swc, np.zeros(len(swc)), grass_profile.layers, 5, coeffs, 10.0, floors, grass_profile.frozen
        )

        assert removed <= 0.05 + 1e-12
        assert np.all(swc >= floors - 1e-12)

    def test_frozen_layers_give_nothing(self, grass_profile):
        swc = grass_profile.swc
        coeffs = [layer.transp_coeff[VegType.GRASSES] for layer in grass_profile]
        floors = [layer.swc_wp for layer in grass_profile]
        frozen = np.ones(5, dtype=bool)

        removed = remove_from_soil(swc, np.zeros(5), grass_profile.layers, 5, coeffs, 0.5, floors, frozen)

        assert removed == pytest.approx(0.0)
        np.testing.assert_allclose(swc, grass_profile.swc)


class TestHydraulicRedistribution:
    """Root-mediated flow between wet and dry layers"""

    @pytest.fixture
    def swc(self, grass_profile):
        swc = grass_profile.swc
        swc[2] = grass_profile[2].swc_wp * 1.02
        return swc

    def run(self, grass_profile, swc, frozen=None):
        cfg = VegetationConfig()
        frozen = np.zeros(len(swc), dtype=bool) if frozen is None else frozen
        return hydraulic_redistribution(
            swc, grass_profile.layers, VegType.GRASSES, frozen,
            cfg.max_cond_root, cfg.swp50, cfg.shape_cond, 1.0,
        )

    def test_water_moves_to_dry_layer(self, grass_profile, swc):
        before = swc.copy()
        hydred = self.run(grass_profile, swc)

        assert hydred[0] == 0.0
        assert hydred[2] > 0.0
        assert hydred.sum() == pytest.approx(0.0, abs=1e-12)
        np.testing.assert_allclose(swc, before + hydred)

    def test_frozen_layers_excluded(self, grass_profile, swc):
        frozen = np.array([False, False, True, False, False])
        hydred = self.run(grass_profile, swc, frozen)
        assert hydred[2] == 0.0

    def test_no_flow_between_equal_layers(self, grass_profile):
        swc = np.array([layer.swc_fc for layer in grass_profile])
        swc[1:] = [layer.swc_wp * 1.5 for layer in grass_profile.layers[1:]]
        # Identical texture and potential everywhere below the top layer
        hydred = self.run(grass_profile, swc)
        np.testing.assert_allclose(hydred, 0.0, atol=1e-12)
