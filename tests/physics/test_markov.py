"""
Tests for the Markov weather generator.
"""
import numpy as np
import pandas as pd
import pytest

from sweb.core.constants import MAX_DAYS, MAX_WEEKS
from sweb.core.exceptions import ConfigurationError, MissingDataError
from sweb.physics.markov import (
    MarkovParameters,
    MarkovWeatherGenerator,
    decompose_covariance,
    doy_to_week,
)

from conftest import seasonal_markov_parameters


def flat_parameters(temp_mean=(10.0, 10.0), cov=((0.0, 0.0), (0.0, 0.0)), correction=(1.0, 1.0, 1.0, 1.0), **ppt):
    return MarkovParameters(
        wet_prob=np.full(MAX_DAYS, ppt.get("wet_prob", 0.0)),
        dry_prob=np.full(MAX_DAYS, ppt.get("dry_prob", 0.0)),
        avg_ppt=np.full(MAX_DAYS, ppt.get("avg_ppt", 0.5)),
        std_ppt=np.full(MAX_DAYS, ppt.get("std_ppt", 0.2)),
        temp_mean=np.tile(temp_mean, (MAX_WEEKS, 1)),
        temp_cov=np.tile(np.array(cov), (MAX_WEEKS, 1, 1)),
        correction=np.tile(correction, (MAX_WEEKS, 1)),
    )


class TestCovariance:
    """Decomposition of the weekly temperature covariance"""

    def test_weeks(self):
        assert doy_to_week(1) == 0
        assert doy_to_week(7) == 0
        assert doy_to_week(8) == 1
        assert doy_to_week(366) == 52

    def test_decomposition_reproduces_matrix(self):
        s, cross, residual = decompose_covariance(9.0, 6.0, 4.0)
        assert s * s == pytest.approx(9.0)
        assert s * cross == pytest.approx(4.0)
        assert cross * cross + residual * residual == pytest.approx(6.0)

    def test_cross_term_too_large(self):
        """Covariance above sqrt(var_tmax * var_tmin) is rejected at setup"""
        with pytest.raises(ConfigurationError):
            flat_parameters(cov=((4.0, 5.0), (5.0, 4.0)))

    @pytest.mark.parametrize("cov", [
        ((-4.0, 0.0), (0.0, 1.0)),
        ((4.0, 0.0), (0.0, -1.0)),
        ((0.0, 2.0), (2.0, 1.0)),
    ])
    def test_malformed_covariance_rejected(self, cov):
        """Negative variances or covariance without tmax variance fail at setup"""
        with pytest.raises(ConfigurationError):
            flat_parameters(cov=cov)

    def test_negative_variance_in_decomposition(self):
        with pytest.raises(ConfigurationError):
            decompose_covariance(-4.0, 1.0, 0.0)

    def test_invalid_probabilities(self):
        with pytest.raises(ConfigurationError):
            flat_parameters(wet_prob=1.5)

    def test_wrong_shape(self):
        with pytest.raises(ConfigurationError):
            MarkovParameters(
                wet_prob=np.zeros(365), dry_prob=np.zeros(MAX_DAYS),
                avg_ppt=np.zeros(MAX_DAYS), std_ppt=np.zeros(MAX_DAYS),
                temp_mean=np.zeros((MAX_WEEKS, 2)), temp_cov=np.zeros((MAX_WEEKS, 2, 2)),
            )


class TestMarkovWeatherGenerator:
    """Daily precipitation and temperature draws"""

    def test_zero_covariance_gives_mean(self):
        """Zero covariance and equal means give tmax == tmin == mean"""
        generator = MarkovWeatherGenerator(flat_parameters(), np.random.default_rng(1))
        for doy in (1, 100, 366):
            _, tmax, tmin = generator.generate_day(doy, 0.0)
            assert tmax == pytest.approx(10.0)
            assert tmin == pytest.approx(10.0)

    def test_never_wet(self):
        generator = MarkovWeatherGenerator(flat_parameters(), np.random.default_rng(1))
        for doy in range(1, 30):
            precip, _, _ = generator.generate_day(doy, 0.0)
            assert precip == 0.0
        assert generator.ppt_events == 0

    def test_always_wet_and_yearly_reset(self):
        params = flat_parameters(wet_prob=1.0, dry_prob=1.0, avg_ppt=1.0, std_ppt=0.0)
        generator = MarkovWeatherGenerator(params, np.random.default_rng(1))

        precip = [generator.generate_day(doy, 0.5)[0] for doy in range(1, 11)]
        assert precip == pytest.approx([1.0] * 10)
        assert generator.ppt_events == 10

        generator.reset_year()
        assert generator.ppt_events == 0

    def test_precipitation_never_negative(self):
        params = flat_parameters(wet_prob=1.0, dry_prob=1.0, avg_ppt=0.1, std_ppt=1.0)
        generator = MarkovWeatherGenerator(params, np.random.default_rng(3))
        assert all(generator.generate_day(doy, 1.0)[0] >= 0.0 for doy in range(1, 200))

    def test_wet_yesterday_selects_wet_probability(self):
        """The wet->wet probability applies only after a wet day"""
        params = flat_parameters(wet_prob=1.0, dry_prob=0.0, avg_ppt=1.0, std_ppt=0.0)
        generator = MarkovWeatherGenerator(params, np.random.default_rng(5))
        assert generator.generate_day(10, 0.0)[0] == 0.0
        assert generator.generate_day(10, 0.2)[0] == pytest.approx(1.0)

    def test_sign_dependent_correction(self):
        """Non-negative temperatures are multiplied by the factor, negative ones divided"""
        warm = flat_parameters(temp_mean=(10.0, 10.0), correction=(1.0, 2.0, 1.0, 2.0))
        cold = flat_parameters(temp_mean=(-10.0, -10.0), correction=(1.0, 2.0, 1.0, 2.0))

        _, tmax, tmin = MarkovWeatherGenerator(warm, np.random.default_rng(1)).generate_day(50, 0.0)
        assert (tmax, tmin) == pytest.approx((20.0, 20.0))

        _, tmax, tmin = MarkovWeatherGenerator(cold, np.random.default_rng(1)).generate_day(50, 0.0)
        assert (tmax, tmin) == pytest.approx((-5.0, -5.0))

    def test_reproducible_with_seed(self, markov_params):
        def draw(seed):
            generator = MarkovWeatherGenerator(markov_params, np.random.default_rng(seed))
            yesterday = 0.0
            out = []
            for doy in range(1, 60):
                day = generator.generate_day(doy, yesterday)
                yesterday = day[0]
                out.append(day)
            return out

        assert draw(42) == draw(42)
        assert draw(42) != draw(43)

    def test_temperature_statistics(self, markov_params):
        """Draws follow the weekly means and covariance"""
        generator = MarkovWeatherGenerator(markov_params, np.random.default_rng(0))
        temps = np.array([generator.generate_day(200, 0.0)[1:] for _ in range(4000)])
        mean = markov_params.temp_mean[doy_to_week(200)]

        assert temps.mean(axis=0) == pytest.approx(mean, abs=0.25)
        assert np.cov(temps, rowvar=False)[0, 1] == pytest.approx(4.0, abs=0.6)


class TestParameterSources:
    """Parameter tables and estimation from history"""

    def test_tables_written_and_read(self, tmp_path, markov_params):
        prob, cov = tmp_path / "mkv_prob.in", tmp_path / "mkv_covar.in"
        markov_params.to_files(prob, cov)
        loaded = MarkovParameters.from_files(prob, cov)

        np.testing.assert_allclose(loaded.temp_cov, markov_params.temp_cov, atol=1e-6)
        np.testing.assert_allclose(loaded.wet_prob, markov_params.wet_prob, atol=1e-6)

    def test_missing_table(self, tmp_path):
        with pytest.raises(MissingDataError):
            MarkovParameters.from_files(tmp_path / "none.in", tmp_path / "none2.in")

    def test_estimate_from_history(self):
        """Parameters estimated from generated weather resemble the source"""
        source = seasonal_markov_parameters(wet_prob=0.5, dry_prob=0.2)
        generator = MarkovWeatherGenerator(source, np.random.default_rng(7))
        days = pd.date_range("2000-01-01", "2009-12-31", freq="D")
        rows = []
        yesterday = 0.0
        for day in days:
            precip, tmax, tmin = generator.generate_day(day.dayofyear, yesterday)
            rows.append((precip, tmax, tmin))
            yesterday = precip
        history = pd.DataFrame(rows, index=days, columns=["precipitation_cm", "temp_max_c", "temp_min_c"])

        estimated = MarkovParameters.from_history(history)

        assert estimated.wet_prob.mean() == pytest.approx(0.5, abs=0.05)
        assert estimated.dry_prob.mean() == pytest.approx(0.2, abs=0.05)
        assert estimated.temp_mean[26, 0] == pytest.approx(source.temp_mean[26, 0], abs=1.5)

    def test_short_history(self):
        days = pd.date_range("2000-01-01", periods=100, freq="D")
        history = pd.DataFrame(
            {"precipitation_cm": 0.0, "temp_max_c": 20.0, "temp_min_c": 5.0}, index=days
        )
        with pytest.raises(MissingDataError):
            MarkovParameters.from_history(history)
