"""
Tests for the configuration system and the error hierarchy.
"""
from datetime import date

import pytest
from pydantic import ValidationError

from sweb.core.config import LayerConfig, SiteConfig, SwebConfig, VegetationConfig
from sweb.core.exceptions import (
    ConfigurationError,
    DataValidationError,
    ErrorContext,
    MissingDataError,
    PhysicsModelError,
    SwebError,
    WaterBalanceError,
    handle_exception,
)
from sweb.core.types import SWRCType, VegType


class TestSwebConfig:
    """Configuration defaults and validation"""

    def test_defaults_are_valid(self):
        """Default configuration describes a usable site"""
        config = SwebConfig()
        site = config.site

        covers = site.bare_cover + sum(v.cover for v in site.vegetation.values())
        assert covers == pytest.approx(1.0)
        assert site.swrc == SWRCType.CAMPBELL_1974
        assert len(site.layers) == 8
        assert site.transp_regions[-1] <= len(site.layers)
        assert config.soil_temperature.max_depth_cm >= site.max_layer_depth_cm

    def test_covers_must_sum_to_one(self):
        """Vegetation covers plus bare ground must sum to 1"""
        with pytest.raises(ValidationError):
            SiteConfig(bare_cover=0.5)

    def test_layer_depths_must_increase(self):
        with pytest.raises(ValidationError):
            SiteConfig(layers=[LayerConfig(depth_cm=10), LayerConfig(depth_cm=5)], transp_regions=[1])

    def test_texture_fractions_checked(self):
        with pytest.raises(ValidationError):
            LayerConfig(depth_cm=10, sand_fraction=0.8, clay_fraction=0.4)

    def test_monthly_trajectories_need_twelve_values(self):
        with pytest.raises(ValidationError):
            VegetationConfig(biomass_g_m2=[100.0] * 11)

    def test_end_date_after_start(self):
        with pytest.raises(ValidationError):
            SwebConfig(start_date=date(2001, 1, 1), end_date=date(2000, 1, 1))

    def test_temperature_depth_below_profile(self):
        """Temperature grid must reach below the deepest layer"""
        with pytest.raises(ValidationError):
            SwebConfig(soil_temperature={"max_depth_cm": 50.0})

    def test_environment_override(self, monkeypatch):
        """Top-level settings can be overridden with SWEB_ variables"""
        monkeypatch.setenv("SWEB_RANDOM_SEED", "7")
        assert SwebConfig().random_seed == 7

    def test_yaml_round_trip(self, tmp_path):
        """Saved YAML loads back into an equal configuration"""
        config = SwebConfig(random_seed=11)
        config.site.latitude_deg = 45.5
        path = tmp_path / "config" / "site.yaml"

        config.to_yaml(path)
        loaded = SwebConfig.from_yaml(path)

        assert loaded.random_seed == 11
        assert loaded.site.latitude_deg == pytest.approx(45.5)
        assert loaded.site.vegetation[VegType.GRASSES].cover == pytest.approx(
            config.site.vegetation[VegType.GRASSES].cover
        )

    def test_missing_yaml(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            SwebConfig.from_yaml(tmp_path / "missing.yaml")


class TestExceptions:
    """Structured error reporting"""

    def test_kind_and_dict(self):
        error = ConfigurationError("bad covariance", ErrorContext(site_id="s1", component="markov"))

        info = error.to_dict()
        assert info["kind"] == "configuration"
        assert info["error"] == "ConfigurationError"
        assert info["context"]["site_id"] == "s1"
        assert "[Site: s1]" in str(error)

    def test_hierarchy(self):
        assert issubclass(WaterBalanceError, PhysicsModelError)
        assert issubclass(MissingDataError, SwebError)
        assert WaterBalanceError("x").kind == "invariant"

    def test_handle_exception_maps_builtins(self):
        assert isinstance(handle_exception(ValueError("v")), DataValidationError)
        assert isinstance(handle_exception(ZeroDivisionError("z")), PhysicsModelError)
        assert isinstance(handle_exception(FileNotFoundError("f")), MissingDataError)

        original = ConfigurationError("c")
        assert handle_exception(original) is original
