"""
Physical constants, default values, and system-wide constants.
"""
from typing import Dict, Final, Tuple

# Unit conversions
CM_PER_BAR: Final[float] = 1024.0  # Campbell (1974) convention, cm H2O per bar
CM_PER_BAR_VG: Final[float] = 1019.716  # cm H2O per bar at 4 °C
SECONDS_PER_DAY: Final[float] = 86400.0

# Soil water potentials used to derive layer limits [bar]
SWP_FIELD_CAPACITY: Final[float] = 0.333
SWP_WILTING_POINT: Final[float] = 15.0
SWP_HALF_WILT_LIMIT: Final[float] = 100.0
SWP_RESIDUAL: Final[float] = 300.0

# Sentinel for undefined values
SW_MISSING: Final[float] = 999.0

# Drainage
SLOW_DRAIN_DEPTH: Final[float] = 15.0  # cm, reference depth for slow drainage

# Soil temperature
MAX_ST_RGR: Final[int] = 100  # maximum number of temperature grid nodes
FREEZING_TEMP_C: Final[float] = -1.0
MIN_VWC_TO_FREEZE: Final[float] = 0.13
FUSION_HEAT_H2O: Final[float] = 80.0  # cal/cm³
TEMP_CORRECTION: Final[float] = 0.02
MAX_ST_SUBSTEPS: Final[int] = 16
REALISTIC_TEMP_LIMIT_C: Final[float] = 100.0

# FXW retention curve
FXW_H0_CM: Final[float] = 6.3e6  # suction at zero water content
FXW_HR_CM: Final[float] = 1500.0  # residual suction
FXW_LOG_H0_HR: Final[float] = 8.34307787116938  # ln(1 + h0 / hr)
FXW_SOLVER_XTOL: Final[float] = 2e-9

# Snow
SNOW_MELT_DAY_OFFSET: Final[int] = 81
SNOW_MELT_DAY_PERIOD: Final[float] = 58.09

# Calendar
MAX_DAYS: Final[int] = 366
MAX_WEEKS: Final[int] = 53
DAYS_PER_WEEK: Final[int] = 7

# Numerical stability
TOLERANCE_ABS: Final[float] = 1e-9
TOLERANCE_REL: Final[float] = 1e-9

# Physical ranges used to validate forcing inputs
WEATHER_RANGES: Final[Dict[str, Tuple[float, float]]] = {
    "temp_max_c": (-100.0, 100.0),
    "temp_min_c": (-100.0, 100.0),
    "precipitation_cm": (0.0, 100.0),
    "relative_humidity_pct": (0.0, 100.0),
    "wind_speed_m_s": (0.0, 100.0),
    "cloud_cover_pct": (0.0, 100.0),
    "shortwave_radiation_mj_m2": (0.0, 60.0),
}
