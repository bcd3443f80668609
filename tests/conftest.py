"""
Shared fixtures: weather generator parameters and small site configurations.
"""
import numpy as np
import pandas as pd
import pytest

from sweb.core.config import LayerConfig, SiteConfig, SwebConfig, VegetationConfig
from sweb.core.constants import MAX_DAYS, MAX_WEEKS
from sweb.core.types import VegType
from sweb.physics.markov import MarkovParameters


def seasonal_markov_parameters(wet_prob=0.4, dry_prob=0.2, avg_ppt=0.6, std_ppt=0.4):
    """Mid-latitude climate: cold winters, warm summers"""
    weeks = np.arange(MAX_WEEKS)
    tmax = 12.0 - 14.0 * np.cos(2.0 * np.pi * weeks / 52.0)
    temp_mean = np.column_stack((tmax, tmax - 12.0))
    temp_cov = np.tile(np.array([[9.0, 4.0], [4.0, 6.0]]), (MAX_WEEKS, 1, 1))
    return MarkovParameters(
        wet_prob=np.full(MAX_DAYS, wet_prob),
        dry_prob=np.full(MAX_DAYS, dry_prob),
        avg_ppt=np.full(MAX_DAYS, avg_ppt),
        std_ppt=np.full(MAX_DAYS, std_ppt),
        temp_mean=temp_mean,
        temp_cov=temp_cov,
    )


def bare_site(depths, evap_coeff=None, **kwargs) -> SiteConfig:
    """Site without vegetation"""
    evap_coeff = evap_coeff or [1.0] + [0.0] * (len(depths) - 1)
    layers = [LayerConfig(depth_cm=d, evap_coeff=e) for d, e in zip(depths, evap_coeff)]
    return SiteConfig(
        layers=layers,
        transp_regions=[len(depths)],
        bare_cover=1.0,
        vegetation={veg: VegetationConfig(cover=0.0) for veg in VegType},
        **kwargs,
    )


def weather_frame(start, n_days, precipitation=0.0, temp_max=24.0, temp_min=10.0):
    """Constant daily forcing"""
    index = pd.date_range(start, periods=n_days, freq="D")
    return pd.DataFrame({
        "precipitation_cm": precipitation,
        "temp_max_c": temp_max,
        "temp_min_c": temp_min,
        "relative_humidity_pct": 50.0,
        "wind_speed_m_s": 2.0,
        "cloud_cover_pct": 30.0,
    }, index=index)


@pytest.fixture
def markov_params():
    return seasonal_markov_parameters()


@pytest.fixture
def default_config():
    return SwebConfig()


@pytest.fixture
def grass_config():
    """25 layers of 4 cm under a full grass cover"""
    grass = SiteConfig().vegetation[VegType.GRASSES].model_copy(update={"cover": 1.0})
    vegetation = {veg: VegetationConfig(cover=0.0) for veg in VegType}
    vegetation[VegType.GRASSES] = grass
    layers = [
        LayerConfig(
            depth_cm=4.0 * (i + 1),
            evap_coeff=0.5 if i < 2 else 0.0,
            transp_coeff={VegType.GRASSES: 1.0 / 25.0},
        )
        for i in range(25)
    ]
    site = SiteConfig(layers=layers, transp_regions=[8, 16, 25], bare_cover=0.0, vegetation=vegetation)
    return SwebConfig(site=site)
