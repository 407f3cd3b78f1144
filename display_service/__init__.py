"""Display de temperaturas: mínimo, máximo y actual desde medianoche local."""

from .queries import QueryError, TemperatureQueries
from .report import LOCATIONS, TemperatureReporter
from .temperatures import Temperatures, TemperatureScale, to_fahrenheit

__all__ = [
    "QueryError",
    "TemperatureQueries",
    "LOCATIONS",
    "TemperatureReporter",
    "Temperatures",
    "TemperatureScale",
    "to_fahrenheit",
]
