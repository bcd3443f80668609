"""
Sweb Pipeline Module.

Drives the water flow engine over a period of days.
"""
from sweb.pipeline.simulation import SimulationContext, daterange

__all__ = [
    "SimulationContext",
    "daterange",
]
