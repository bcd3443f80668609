"""
Tests for weather records and weather sources.
"""
from datetime import date

import numpy as np
import pytest

from sweb.core.config import WeatherConfig
from sweb.core.exceptions import ConfigurationError, DataValidationError, MissingDataError
from sweb.physics.markov import MarkovWeatherGenerator
from sweb.physics.weather import (
    GapFilledWeather,
    GeneratedWeather,
    HistoricalWeather,
    WeatherRecord,
    create_weather_source,
)

from conftest import weather_frame


class TestWeatherRecord:
    """Validation of one day of forcing"""

    def test_derived_values(self):
        record = WeatherRecord(date(2001, 2, 1), 0.0, 10.0, 2.0, 50.0, 1.0, 20.0)
        assert record.temp_avg_c == pytest.approx(6.0)
        assert record.doy == 32

    @pytest.mark.parametrize("kwargs", [
        {"precipitation_cm": -0.1},
        {"temp_max_c": 150.0},
        {"relative_humidity_pct": 120.0},
        {"temp_max_c": 1.0, "temp_min_c": 5.0},
    ])
    def test_out_of_range(self, kwargs):
        values = dict(
            day=date(2001, 1, 1), precipitation_cm=0.0, temp_max_c=10.0, temp_min_c=0.0,
            relative_humidity_pct=50.0, wind_speed_m_s=1.0, cloud_cover_pct=50.0,
        )
        values.update(kwargs)
        with pytest.raises(DataValidationError):
            WeatherRecord(**values).validate()


class TestWeatherSources:
    """Historical, generated and gap-filled weather"""

    @pytest.fixture
    def history(self):
        df = weather_frame("2001-01-01", 10, precipitation=0.2)
        df.loc["2001-01-05", "temp_max_c"] = np.nan
        df = df.drop(columns=["cloud_cover_pct"])
        return df

    @pytest.fixture
    def generator(self, markov_params):
        return MarkovWeatherGenerator(markov_params, np.random.default_rng(1))

    def test_historical_record(self, history):
        source = HistoricalWeather(history, WeatherConfig(cloud_cover_pct=40.0))
        record = source.get(date(2001, 1, 2), 0.0)

        assert record.precipitation_cm == pytest.approx(0.2)
        assert record.cloud_cover_pct == pytest.approx(40.0)
        assert record.shortwave_radiation_mj_m2 is None
        assert not record.generated

    def test_historical_missing_value(self, history):
        source = HistoricalWeather(history, WeatherConfig())
        with pytest.raises(MissingDataError):
            source.get(date(2001, 1, 5), 0.0)
        with pytest.raises(MissingDataError):
            source.get(date(2002, 1, 1), 0.0)

    def test_required_columns(self, history):
        with pytest.raises(ConfigurationError):
            HistoricalWeather(history.drop(columns=["temp_min_c"]), WeatherConfig())

    def test_gap_filling(self, history, generator):
        source = GapFilledWeather(history, generator, WeatherConfig())

        observed = source.get(date(2001, 1, 4), 0.2)
        filled = source.get(date(2001, 1, 5), 0.2)

        assert not observed.generated
        assert filled.generated
        assert filled.precipitation_cm == pytest.approx(0.2)
        assert filled.temp_max_c >= filled.temp_min_c
        assert source.n_filled == 1

    def test_generated(self, generator):
        source = GeneratedWeather(generator, WeatherConfig())
        record = source.get(date(2001, 7, 1), 0.0)
        assert record.generated
        assert record.precipitation_cm >= 0.0

    def test_source_selection(self, history, generator):
        config = WeatherConfig()
        assert isinstance(create_weather_source(config, None, generator), GeneratedWeather)
        assert isinstance(create_weather_source(config, history, generator), GapFilledWeather)
        assert isinstance(create_weather_source(config, history, None), HistoricalWeather)
        assert type(create_weather_source(WeatherConfig(use_generator=False), history, generator)) is HistoricalWeather

        with pytest.raises(ConfigurationError):
            create_weather_source(config, None, None)
