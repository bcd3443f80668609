"""
First-order two-state (wet/dry) Markov weather generator.

Daily precipitation occurrence follows wet->wet / dry->wet transition
probabilities per day of year; wet-day amounts are normally distributed and
floored at zero. Daily maximum and minimum temperatures are drawn from a
bivariate normal distribution parameterized per calendar week, then
adjusted by wet/dry correction factors.

Parameter tables use the classic whitespace-delimited layout:

- probability table, one row per day of year:
  ``doy  p_wet_wet  p_wet_dry  ppt_mean_cm  ppt_sd_cm``
- covariance table, one row per week:
  ``week  tmax_mean  tmin_mean  var_tmax  cov_12  cov_21  var_tmin  cfxw  cfxd  cfnw  cfnd``
"""
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Tuple, Union

import numpy as np
import pandas as pd

from sweb.core import tolerance as tol
from sweb.core.constants import DAYS_PER_WEEK, MAX_DAYS, MAX_WEEKS
from sweb.core.exceptions import ConfigurationError, MissingDataError

logger = logging.getLogger(__name__)

PROB_COLUMNS = ["doy", "wet_prob", "dry_prob", "avg_ppt", "std_ppt"]
COV_COLUMNS = [
    "week", "tmax_mean", "tmin_mean", "var_tmax", "cov_12", "cov_21", "var_tmin",
    "cf_tmax_wet", "cf_tmax_dry", "cf_tmin_wet", "cf_tmin_dry",
]


def doy_to_week(doy: int) -> int:
    """Zero-based calendar week of a 1-based day of year"""
    return (doy - 1) // DAYS_PER_WEEK


def decompose_covariance(var_tmax: float, var_tmin: float, cov: float) -> Tuple[float, float, float]:
    """
    Cholesky-style factors of the 2x2 temperature covariance matrix.

    Returns:
        Tuple of (sd of tmax, cross term, residual sd of tmin)

    Raises:
        ConfigurationError: if the matrix is not positive semi-definite
    """
    if tol.lt(var_tmax, 0.0) or tol.lt(var_tmin, 0.0):
        raise ConfigurationError(
            f"Bad covariance matrix: negative variance (var_tmax={var_tmax}, var_tmin={var_tmin})"
        )
    s = math.sqrt(max(var_tmax, 0.0))
    if tol.is_zero(s) and not tol.is_zero(cov):
        raise ConfigurationError(
            f"Bad covariance matrix: cov={cov} with zero tmax variance"
        )
    cross = cov / s if s > 0 else 0.0
    residual = var_tmin - cross * cross
    if tol.lt(residual, 0.0):
        raise ConfigurationError(
            f"Bad covariance matrix: var_tmax={var_tmax}, var_tmin={var_tmin}, cov={cov}"
        )
    return s, cross, math.sqrt(max(residual, 0.0))


@dataclass
class MarkovParameters:
    """Daily precipitation and weekly temperature parameters of the generator"""

    wet_prob: np.ndarray  # (366,) P(wet today | wet yesterday)
    dry_prob: np.ndarray  # (366,) P(wet today | dry yesterday)
    avg_ppt: np.ndarray  # (366,) cm
    std_ppt: np.ndarray  # (366,) cm
    temp_mean: np.ndarray  # (53, 2) tmax, tmin mean °C
    temp_cov: np.ndarray  # (53, 2, 2)
    correction: np.ndarray = field(  # (53, 4) tmax-wet, tmax-dry, tmin-wet, tmin-dry
        default_factory=lambda: np.ones((MAX_WEEKS, 4))
    )

    def __post_init__(self):
        self.wet_prob = np.asarray(self.wet_prob, dtype=float)
        self.dry_prob = np.asarray(self.dry_prob, dtype=float)
        self.avg_ppt = np.asarray(self.avg_ppt, dtype=float)
        self.std_ppt = np.asarray(self.std_ppt, dtype=float)
        self.temp_mean = np.asarray(self.temp_mean, dtype=float)
        self.temp_cov = np.asarray(self.temp_cov, dtype=float)
        self.correction = np.asarray(self.correction, dtype=float)
        self.validate()

    def validate(self) -> None:
        """Check shapes and ranges; fatal at setup"""
        for name in ("wet_prob", "dry_prob", "avg_ppt", "std_ppt"):
            if getattr(self, name).shape != (MAX_DAYS,):
                raise ConfigurationError(f"Markov '{name}' needs {MAX_DAYS} daily values")
        if self.temp_mean.shape != (MAX_WEEKS, 2) or self.temp_cov.shape != (MAX_WEEKS, 2, 2):
            raise ConfigurationError(f"Markov temperature parameters need {MAX_WEEKS} weekly rows")
        if self.correction.shape != (MAX_WEEKS, 4):
            raise ConfigurationError(f"Markov correction factors need {MAX_WEEKS} rows of 4 values")

        arrays = [self.wet_prob, self.dry_prob, self.avg_ppt, self.std_ppt,
                  self.temp_mean, self.temp_cov, self.correction]
        if not all(np.all(np.isfinite(a)) for a in arrays):
            raise ConfigurationError("Markov parameters contain non-finite values")

        for name in ("wet_prob", "dry_prob"):
            p = getattr(self, name)
            if np.any(p < 0) or np.any(p > 1):
                raise ConfigurationError(f"Markov '{name}' outside [0, 1]")
        if np.any(self.avg_ppt < 0) or np.any(self.std_ppt < 0):
            raise ConfigurationError("Markov precipitation mean and sd must be >= 0")
        if np.any(self.correction <= 0):
            raise ConfigurationError("Markov correction factors must be > 0")

        for week in range(MAX_WEEKS):
            cov = self.temp_cov[week]
            try:
                decompose_covariance(cov[0, 0], cov[1, 1], cov[1, 0])
            except ConfigurationError as exc:
                raise ConfigurationError(f"{exc.message} (week {week + 1})") from exc

    @classmethod
    def from_files(cls, prob_path: Union[str, Path], cov_path: Union[str, Path]) -> "MarkovParameters":
        """Read the probability and covariance tables"""
        prob = read_table(prob_path, PROB_COLUMNS, "doy", MAX_DAYS)
        cov = read_table(cov_path, COV_COLUMNS, "week", MAX_WEEKS)

        temp_cov = np.stack(
            [cov[["var_tmax", "cov_12"]].to_numpy(), cov[["cov_21", "var_tmin"]].to_numpy()],
            axis=1,
        )
        params = cls(
            wet_prob=prob["wet_prob"].to_numpy(),
            dry_prob=prob["dry_prob"].to_numpy(),
            avg_ppt=prob["avg_ppt"].to_numpy(),
            std_ppt=prob["std_ppt"].to_numpy(),
            temp_mean=cov[["tmax_mean", "tmin_mean"]].to_numpy(),
            temp_cov=temp_cov,
            correction=cov[["cf_tmax_wet", "cf_tmax_dry", "cf_tmin_wet", "cf_tmin_dry"]].to_numpy(),
        )
        logger.info(f"Loaded Markov parameters from {prob_path} and {cov_path}")
        return params

    def to_files(self, prob_path: Union[str, Path], cov_path: Union[str, Path]) -> None:
        prob = pd.DataFrame({
            "doy": np.arange(1, MAX_DAYS + 1),
            "wet_prob": self.wet_prob,
            "dry_prob": self.dry_prob,
            "avg_ppt": self.avg_ppt,
            "std_ppt": self.std_ppt,
        })
        cov = pd.DataFrame({
            "week": np.arange(1, MAX_WEEKS + 1),
            "tmax_mean": self.temp_mean[:, 0],
            "tmin_mean": self.temp_mean[:, 1],
            "var_tmax": self.temp_cov[:, 0, 0],
            "cov_12": self.temp_cov[:, 0, 1],
            "cov_21": self.temp_cov[:, 1, 0],
            "var_tmin": self.temp_cov[:, 1, 1],
            "cf_tmax_wet": self.correction[:, 0],
            "cf_tmax_dry": self.correction[:, 1],
            "cf_tmin_wet": self.correction[:, 2],
            "cf_tmin_dry": self.correction[:, 3],
        })
        prob.to_csv(prob_path, sep="\t", header=False, index=False, float_format="%.6f")
        cov.to_csv(cov_path, sep="\t", header=False, index=False, float_format="%.6f")

    @classmethod
    def from_history(cls, weather: pd.DataFrame) -> "MarkovParameters":
        """
        Estimate parameters from a daily weather history indexed by date with
        columns precipitation_cm, temp_max_c and temp_min_c.
        """
        df = weather[["precipitation_cm", "temp_max_c", "temp_min_c"]].dropna()
        if len(df) < 2 * MAX_DAYS:
            raise MissingDataError(f"Need at least two years of weather to estimate Markov parameters, got {len(df)} days")

        index = pd.DatetimeIndex(df.index)
        wet = df["precipitation_cm"] > 0
        wet_yesterday = wet.shift(1)
        doy = pd.Series(index.dayofyear, index=df.index)

        transitions = pd.DataFrame({"doy": doy, "wet": wet, "wet_yesterday": wet_yesterday}).dropna()
        transitions["wet"] = transitions["wet"].astype(float)
        after_wet = transitions[transitions["wet_yesterday"].astype(bool)].groupby("doy")["wet"].mean()
        after_dry = transitions[~transitions["wet_yesterday"].astype(bool)].groupby("doy")["wet"].mean()

        wet_amounts = df.loc[wet, "precipitation_cm"].groupby(doy[wet]).agg(["mean", "std"])

        days = pd.RangeIndex(1, MAX_DAYS + 1)

        def _daily(series: pd.Series, fallback: float) -> np.ndarray:
            return series.reindex(days).fillna(fallback).to_numpy()

        week = (doy - 1) // DAYS_PER_WEEK
        temps = df[["temp_max_c", "temp_min_c"]]
        temp_mean = temps.groupby(week).mean().reindex(range(MAX_WEEKS)).ffill().bfill().to_numpy()
        temp_cov = np.zeros((MAX_WEEKS, 2, 2))
        for w, group in temps.groupby(week):
            if len(group) > 2:
                temp_cov[int(w)] = np.cov(group.to_numpy(), rowvar=False)

        return cls(
            wet_prob=np.clip(_daily(after_wet, float(after_wet.mean())), 0.0, 1.0),
            dry_prob=np.clip(_daily(after_dry, float(after_dry.mean())), 0.0, 1.0),
            avg_ppt=_daily(wet_amounts["mean"], float(wet_amounts["mean"].mean())),
            std_ppt=_daily(wet_amounts["std"], 0.0),
            temp_mean=temp_mean,
            temp_cov=temp_cov,
        )


def read_table(path: Union[str, Path], columns, key: str, n_rows: int) -> pd.DataFrame:
    """Read a whitespace-delimited parameter table keyed by a 1-based index."""
    path = Path(path)
    if not path.exists():
        raise MissingDataError(f"Markov parameter file not found: {path}")

    df = pd.read_csv(path, sep=r"\s+", comment="#", header=None, engine="python")
    if df.shape[1] < len(columns):
        raise ConfigurationError(f"Too few values per line in {path}: expected {len(columns)}")
    df = df.iloc[:, :len(columns)]
    df.columns = columns

    keys = df[key].astype(int)
    if keys.min() < 1 or keys.max() > n_rows:
        raise ConfigurationError(f"'{key}' out of range [1, {n_rows}] in {path}")

    df = df.set_index(keys).drop(columns=key).sort_index()
    missing = sorted(set(range(1, n_rows + 1)) - set(df.index))
    if missing:
        raise ConfigurationError(f"{path}: missing {key} values {missing[:5]}")
    return df


class MarkovWeatherGenerator:
    """
    Generates one day of weather at a time.

    Random numbers come from the ``numpy.random.Generator`` passed in, so
    independent columns with their own generators are reproducible.
    """

    def __init__(self, params: MarkovParameters, rng: np.random.Generator):
        self.params = params
        self.rng = rng
        self.ppt_events = 0
        self._setup_logging()

    def _setup_logging(self):
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def reset_year(self) -> None:
        """Reset the annual precipitation-event counter"""
        self.ppt_events = 0

    def generate_day(self, doy: int, yesterday_precip: float) -> Tuple[float, float, float]:
        """
        Args:
            doy: Day of year, 1..366
            yesterday_precip: Yesterday's precipitation (cm)

        Returns:
            Tuple of (precipitation cm, tmax °C, tmin °C)
        """
        i = doy - 1
        p = self.params

        prob = p.wet_prob[i] if tol.gt(yesterday_precip, 0.0) else p.dry_prob[i]
        if self.rng.uniform() <= prob:
            precip = max(0.0, float(self.rng.normal(p.avg_ppt[i], p.std_ppt[i])))
        else:
            precip = 0.0

        if tol.gt(precip, 0.0):
            self.ppt_events += 1

        week = doy_to_week(doy)
        tmax, tmin = self._draw_temperatures(week)
        tmax, tmin = self._correct_wet_dry(tmax, tmin, precip, week)
        return precip, tmax, tmin

    def _draw_temperatures(self, week: int) -> Tuple[float, float]:
        mean = self.params.temp_mean[week]
        cov = self.params.temp_cov[week]
        s, cross, residual = decompose_covariance(cov[0, 0], cov[1, 1], cov[1, 0])

        z1 = self.rng.standard_normal()
        z2 = self.rng.standard_normal()
        tmax = s * z1 + mean[0]
        tmin = cross * z1 + residual * z2 + mean[1]
        return float(tmax), float(tmin)

    def _correct_wet_dry(self, tmax: float, tmin: float, precip: float, week: int) -> Tuple[float, float]:
        cf_tmax_wet, cf_tmax_dry, cf_tmin_wet, cf_tmin_dry = self.params.correction[week]
        if tol.gt(precip, 0.0):
            cf_max, cf_min = cf_tmax_wet, cf_tmin_wet
        else:
            cf_max, cf_min = cf_tmax_dry, cf_tmin_dry

        # Non-negative temperatures are multiplied, negative ones divided
        tmax = tmax * cf_max if tmax >= 0.0 else tmax / cf_max
        tmin = tmin * cf_min if tmin >= 0.0 else tmin / cf_min
        return tmax, min(tmax, tmin)
