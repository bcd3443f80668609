"""
Simulation context driving one soil column over a period of days.

The context owns everything a run needs: the configuration, the random
number generator, the weather source and the water flow engine. Nothing
is shared between contexts, so independent columns can be run side by
side with reproducible results.

    with SimulationContext(config, weather=df) as sim:
        results = sim.run()
"""
import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterator, Optional

import numpy as np
import pandas as pd

from sweb.core.config import SwebConfig
from sweb.core.exceptions import (
    ConfigurationError,
    ErrorContext,
    MissingDataError,
    SwebError,
    handle_exception,
)
from sweb.physics.markov import MarkovParameters, MarkovWeatherGenerator
from sweb.physics.water_balance import DailyFluxes, SoilWaterFlow
from sweb.physics.weather import WeatherSource, create_weather_source


def daterange(start: date, end: date) -> Iterator[date]:
    """Every day from start to end, inclusive"""
    for n in range((end - start).days + 1):
        yield start + timedelta(days=n)


class SimulationContext:
    """
    Owned state of one simulation run.

    ``init`` builds the components and ``close`` releases them; the
    context manager protocol calls both.
    """

    def __init__(
        self,
        config: Optional[SwebConfig] = None,
        weather: Optional[pd.DataFrame] = None,
        markov_params: Optional[MarkovParameters] = None,
    ):
        self.config = config or SwebConfig()
        self.weather_data = weather
        self.markov_params = markov_params
        self.logger = logging.getLogger("sweb.pipeline.simulation")

        self.rng: Optional[np.random.Generator] = None
        self.generator: Optional[MarkovWeatherGenerator] = None
        self.weather: Optional[WeatherSource] = None
        self.engine: Optional[SoilWaterFlow] = None

        self.metrics: Dict[str, Any] = {
            "days_simulated": 0,
            "generated_days": 0,
            "run_time_ms": 0,
        }

    def __enter__(self) -> "SimulationContext":
        self.init()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    @property
    def is_initialized(self) -> bool:
        return self.engine is not None

    def init(self) -> None:
        """Build the generator, weather source and water flow engine"""
        self.rng = np.random.default_rng(self.config.random_seed)
        self.generator = self._create_generator()
        self.weather = create_weather_source(self.config.weather, self.weather_data, self.generator)
        self.engine = SoilWaterFlow(self.config)

        self.logger.info(
            f"Initialized simulation for site {self.config.site.site_id} "
            f"({len(self.engine.profile)} layers, seed {self.config.random_seed})"
        )

    def close(self) -> None:
        """Release all components; the context can be initialized again"""
        if self.engine is not None:
            self.logger.info(
                f"Closing simulation for site {self.config.site.site_id} "
                f"after {self.metrics['days_simulated']} days"
            )
        self.engine = None
        self.weather = None
        self.generator = None
        self.rng = None

    def _create_generator(self) -> Optional[MarkovWeatherGenerator]:
        """Markov generator from explicit parameters, parameter files or history"""
        weather_cfg = self.config.weather
        params = self.markov_params

        if params is None and weather_cfg.markov_prob_file and weather_cfg.markov_cov_file:
            params = MarkovParameters.from_files(weather_cfg.markov_prob_file, weather_cfg.markov_cov_file)
        elif params is None and weather_cfg.use_generator and self.weather_data is not None:
            self.logger.info("Estimating weather generator parameters from historical weather")
            try:
                params = MarkovParameters.from_history(self.weather_data)
            except MissingDataError as e:
                self.logger.warning(f"Weather generator disabled: {e}")

        if params is None:
            if self.weather_data is None:
                raise ConfigurationError(
                    "No weather data and no weather generator parameters",
                    ErrorContext(site_id=self.config.site.site_id, component="simulation", operation="init"),
                )
            return None
        return MarkovWeatherGenerator(params, self.rng)

    def step(self, day: date, yesterday_precip: float) -> DailyFluxes:
        """Simulate one day"""
        if not self.is_initialized:
            raise ConfigurationError("Simulation context used before init()")

        if day.month == 1 and day.day == 1 and self.generator is not None:
            self.generator.reset_year()

        weather = self.weather.get(day, yesterday_precip)
        if weather.generated:
            self.metrics["generated_days"] += 1

        fluxes = self.engine.run_daily(weather.doy, day.month, weather)
        self.metrics["days_simulated"] += 1
        return fluxes

    def run(self, start_date: Optional[date] = None, end_date: Optional[date] = None) -> pd.DataFrame:
        """
        Simulate every day of a period.

        Args:
            start_date: First day (inclusive), defaults to the configured start
            end_date: Last day (inclusive), defaults to the configured end

        Returns:
            DataFrame of daily results indexed by date
        """
        start_date = start_date or self.config.start_date
        end_date = end_date or self.config.end_date
        if end_date < start_date:
            raise ConfigurationError(f"End date {end_date} precedes start date {start_date}")

        started = datetime.now()
        self.logger.info(f"Simulating {self.config.site.site_id} from {start_date} to {end_date}")

        days = []
        records = []
        yesterday_precip = 0.0
        try:
            for day in daterange(start_date, end_date):
                fluxes = self.step(day, yesterday_precip)
                yesterday_precip = fluxes.precipitation
                days.append(day)
                records.append(fluxes.to_record())
        except SwebError:
            raise
        except Exception as e:
            self.logger.error(f"Simulation failed: {e}")
            raise handle_exception(
                e, ErrorContext(site_id=self.config.site.site_id, component="simulation", operation="run")
            ) from e

        self.metrics["run_time_ms"] = (datetime.now() - started).total_seconds() * 1000
        diagnostics = self.engine.get_diagnostic_info()["performance"]
        self.logger.info(
            f"Simulated {len(records)} days in {self.metrics['run_time_ms']:.0f}ms. "
            f"Avg water balance error: {diagnostics['avg_water_balance_error_cm']:.2e}cm, "
            f"soil temperature errors: {diagnostics['soil_temperature_errors']}"
        )
        return pd.DataFrame(records, index=pd.DatetimeIndex(days, name="date"))
