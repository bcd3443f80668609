"""Physics modules of the soil water and energy balance."""
from sweb.physics.water_balance import (
    SoilWaterFlow,
    DailyFluxes,
)
from sweb.physics.soil_profile import (
    SoilLayer,
    SoilProfile,
)
from sweb.physics.soil_hydraulics import (
    SWRC,
    create_swrc,
)
from sweb.physics.soil_temperature import (
    SoilTemperatureSolver,
    SoilTemperatureResult,
)
from sweb.physics.markov import (
    MarkovParameters,
    MarkovWeatherGenerator,
)
from sweb.physics.weather import (
    WeatherRecord,
    create_weather_source,
)

__all__ = [
    "SoilWaterFlow",
    "DailyFluxes",
    # Soil
    "SoilLayer",
    "SoilProfile",
    "SWRC",
    "create_swrc",
    # Temperature
    "SoilTemperatureSolver",
    "SoilTemperatureResult",
    # Weather
    "MarkovParameters",
    "MarkovWeatherGenerator",
    "WeatherRecord",
    "create_weather_source",
]
