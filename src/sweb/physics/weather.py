"""
Daily weather records and the sources producing them.

A source is selected once at setup:

- ``HistoricalWeather``: observed records from a DataFrame; any missing
  required value is an input error
- ``GeneratedWeather``: every day synthesized by the Markov generator
- ``GapFilledWeather``: observed records, with missing required values
  filled from the Markov generator
"""
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Optional

import pandas as pd

from sweb.core.config import WeatherConfig
from sweb.core.constants import WEATHER_RANGES
from sweb.core.exceptions import ConfigurationError, DataValidationError, ErrorContext, MissingDataError
from sweb.core.types import DailyGenerator, WeatherSourceType

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["precipitation_cm", "temp_max_c", "temp_min_c"]
OPTIONAL_COLUMNS = [
    "relative_humidity_pct",
    "wind_speed_m_s",
    "cloud_cover_pct",
    "shortwave_radiation_mj_m2",
]


def _is_missing(value) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


@dataclass(frozen=True)
class WeatherRecord:
    """One day of weather forcing"""
    day: date
    precipitation_cm: float
    temp_max_c: float
    temp_min_c: float
    relative_humidity_pct: float
    wind_speed_m_s: float
    cloud_cover_pct: float
    shortwave_radiation_mj_m2: Optional[float] = None  # estimated from cloud cover if absent
    generated: bool = False

    @property
    def temp_avg_c(self) -> float:
        return (self.temp_max_c + self.temp_min_c) / 2.0

    @property
    def doy(self) -> int:
        return self.day.timetuple().tm_yday

    def validate(self) -> None:
        """Raise DataValidationError for out-of-range forcing"""
        context = ErrorContext(date=str(self.day), component="weather", operation="validate")
        for name, (low, high) in WEATHER_RANGES.items():
            value = getattr(self, name)
            if value is None:
                continue
            if not math.isfinite(value) or value < low or value > high:
                raise DataValidationError(f"{name}={value} outside [{low}, {high}]", context)
        if self.temp_max_c < self.temp_min_c:
            raise DataValidationError(
                f"temp_max_c={self.temp_max_c} below temp_min_c={self.temp_min_c}", context
            )


class WeatherSource(ABC):
    """Produces one WeatherRecord per simulated day"""

    def __init__(self, config: WeatherConfig):
        self.config = config

    @abstractmethod
    def get(self, day: date, yesterday_precip: float) -> WeatherRecord:
        ...

    def _record(self, day: date, values: dict, generated: bool = False) -> WeatherRecord:
        def _value(name: str, default: Optional[float]) -> Optional[float]:
            value = values.get(name)
            return default if _is_missing(value) else float(value)

        record = WeatherRecord(
            day=day,
            precipitation_cm=float(values["precipitation_cm"]),
            temp_max_c=float(values["temp_max_c"]),
            temp_min_c=float(values["temp_min_c"]),
            relative_humidity_pct=_value("relative_humidity_pct", self.config.relative_humidity_pct),
            wind_speed_m_s=_value("wind_speed_m_s", self.config.wind_speed_m_s),
            cloud_cover_pct=_value("cloud_cover_pct", self.config.cloud_cover_pct),
            shortwave_radiation_mj_m2=_value("shortwave_radiation_mj_m2", None),
            generated=generated,
        )
        record.validate()
        return record


class HistoricalWeather(WeatherSource):
    """Observed weather indexed by date"""

    def __init__(self, data: pd.DataFrame, config: WeatherConfig):
        super().__init__(config)
        missing_cols = [c for c in REQUIRED_COLUMNS if c not in data.columns]
        if missing_cols:
            raise ConfigurationError(f"Weather data lacks required columns: {missing_cols}")
        self.data = data.copy()
        self.data.index = pd.DatetimeIndex(self.data.index).normalize()

    def _lookup(self, day: date) -> dict:
        ts = pd.Timestamp(day)
        if ts not in self.data.index:
            return {}
        return self.data.loc[ts].to_dict()

    def get(self, day: date, yesterday_precip: float) -> WeatherRecord:
        values = self._lookup(day)
        missing = [c for c in REQUIRED_COLUMNS if _is_missing(values.get(c))]
        if missing:
            raise MissingDataError(
                f"Missing weather values {missing} and weather generator disabled",
                ErrorContext(date=str(day), component="weather"),
            )
        return self._record(day, values)


class GeneratedWeather(WeatherSource):
    """Every day synthesized by the Markov generator"""

    def __init__(self, generator: DailyGenerator, config: WeatherConfig):
        super().__init__(config)
        self.generator = generator

    def get(self, day: date, yesterday_precip: float) -> WeatherRecord:
        doy = day.timetuple().tm_yday
        ppt, tmax, tmin = self.generator.generate_day(doy, yesterday_precip)
        return self._record(
            day, {"precipitation_cm": ppt, "temp_max_c": tmax, "temp_min_c": tmin}, generated=True
        )


class GapFilledWeather(HistoricalWeather):
    """Observed weather with missing required values generated"""

    def __init__(self, data: pd.DataFrame, generator: DailyGenerator, config: WeatherConfig):
        super().__init__(data, config)
        self.generator = generator
        self.n_filled = 0

    def get(self, day: date, yesterday_precip: float) -> WeatherRecord:
        values = self._lookup(day)
        missing = [c for c in REQUIRED_COLUMNS if _is_missing(values.get(c))]
        if not missing:
            return self._record(day, values)

        doy = day.timetuple().tm_yday
        ppt, tmax, tmin = self.generator.generate_day(doy, yesterday_precip)
        generated = {"precipitation_cm": ppt, "temp_max_c": tmax, "temp_min_c": tmin}
        for name in missing:
            values[name] = generated[name]

        # A partially observed day can end up with tmin above tmax
        if values["temp_min_c"] > values["temp_max_c"]:
            values["temp_min_c"], values["temp_max_c"] = values["temp_max_c"], values["temp_min_c"]

        self.n_filled += 1
        logger.debug(f"{day}: generated missing weather values {missing}")
        return self._record(day, values, generated=True)


def create_weather_source(
    config: WeatherConfig,
    data: Optional[pd.DataFrame] = None,
    generator: Optional[DailyGenerator] = None,
) -> WeatherSource:
    """Pick the weather source variant once at setup."""
    if data is None:
        if generator is None:
            raise ConfigurationError("No weather data and no weather generator configured")
        source_type = WeatherSourceType.GENERATED
    elif config.use_generator and generator is not None:
        source_type = WeatherSourceType.GAP_FILLED
    else:
        source_type = WeatherSourceType.HISTORICAL

    logger.info(f"Using {source_type.value} weather")
    if source_type == WeatherSourceType.GENERATED:
        return GeneratedWeather(generator, config)
    if source_type == WeatherSourceType.GAP_FILLED:
        return GapFilledWeather(data, generator, config)
    return HistoricalWeather(data, config)
