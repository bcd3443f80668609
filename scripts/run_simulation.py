#!/usr/bin/env python

from __future__ import annotations

import argparse
import logging
import sys
from datetime import date

import pandas as pd

from sweb.core.config import SwebConfig
from sweb.core.exceptions import SwebError
from sweb.pipeline import SimulationContext


def main(argv: list[str]) -> int:
    parser = argparse.ArgumentParser(
        description="Run the daily soil water and temperature balance of one site")
    parser.add_argument("--config", default=None,
                        help="YAML site/model configuration (defaults are used if omitted)")
    parser.add_argument("--weather", default=None,
                        help="CSV with a 'date' column and daily forcings; "
                             "omit to generate all weather")
    parser.add_argument("--out", required=True,
                        help="Output CSV path for daily results")
    parser.add_argument("--start", type=date.fromisoformat, default=None)
    parser.add_argument("--end", type=date.fromisoformat, default=None)
    parser.add_argument("--seed", type=int, default=None)

    args = parser.parse_args(argv)

    config = SwebConfig.from_yaml(args.config) if args.config else SwebConfig()
    if args.seed is not None:
        config.random_seed = args.seed

    logging.basicConfig(level=config.monitoring.log_level,
                        format=config.monitoring.log_format)

    weather = None
    if args.weather:
        df = pd.read_csv(args.weather)
        if "date" not in df.columns:
            raise SystemExit("CSV must include a 'date' column")
        weather = df.set_index(pd.to_datetime(df["date"])).drop(columns="date")

    try:
        with SimulationContext(config, weather=weather) as sim:
            results = sim.run(args.start, args.end)
            diagnostics = sim.engine.get_diagnostic_info()
    except SwebError as e:
        print(f"Simulation failed [{e.kind}]: {e}", file=sys.stderr)
        return 1

    results.to_csv(args.out)
    performance = diagnostics["performance"]
    print(f"Simulated {len(results)} days -> {args.out}")
    print(f"  Mean AET: {results['aet_cm'].mean():.4f} cm/day")
    print(f"  Deep drainage: {results['deep_drainage_cm'].sum():.3f} cm")
    print(f"  Avg water balance error: {performance['avg_water_balance_error_cm']:.2e} cm")
    print(f"  Soil temperature errors: {performance['soil_temperature_errors']}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
