"""Escala de temperatura y formato de salida."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class TemperatureScale(str, Enum):
    CELSIUS = "celsius"
    FAHRENHEIT = "fahrenheit"

    @classmethod
    def parse(cls, text: str) -> "TemperatureScale":
        try:
            return cls(text.strip().lower())
        except ValueError:
            raise ValueError(f"{text} is not celsius or fahrenheit") from None

    @property
    def symbol(self) -> str:
        return "°C" if self is TemperatureScale.CELSIUS else "°F"


def to_fahrenheit(celsius: float) -> float:
    return (celsius * 1.8) + 32


@dataclass(frozen=True)
class Temperatures:
    """Resumen del día para una ubicación, en °C."""

    current: Optional[float]
    high: Optional[float]
    low: Optional[float]

    def render(self, scale: TemperatureScale) -> str:
        return "currently {}, with high of {} and low of {}".format(
            _format(self.current, scale),
            _format(self.high, scale),
            _format(self.low, scale),
        )


def _format(celsius: Optional[float], scale: TemperatureScale) -> str:
    if celsius is None:
        return "n/a"
    value = celsius if scale is TemperatureScale.CELSIUS else to_fahrenheit(celsius)
    return f"{value:.2f}{scale.symbol}"
