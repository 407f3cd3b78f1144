"""Reporte de texto: una línea por ubicación."""

from __future__ import annotations

import logging
from typing import Sequence

from filter_service.allowlist import DEFAULT_ALLOWLIST

from .queries import TemperatureQueries
from .temperatures import TemperatureScale

logger = logging.getLogger(__name__)

LOCATIONS = tuple(DEFAULT_ALLOWLIST.locations())


class TemperatureReporter:
    """Arma el reporte en la escala elegida al arrancar."""

    def __init__(
        self,
        queries: TemperatureQueries,
        scale: TemperatureScale = TemperatureScale.CELSIUS,
        locations: Sequence[str] = LOCATIONS,
    ):
        self._queries = queries
        self._scale = scale
        self._locations = tuple(locations)

    @property
    def scale(self) -> TemperatureScale:
        return self._scale

    def report_lines(self) -> list[str]:
        lines = []
        for location in self._locations:
            temps = self._queries.fetch(location)
            lines.append(f"The {location} is {temps.render(self._scale)}")
        return lines

    def report(self) -> str:
        return "".join(f"{line}\n" for line in self.report_lines())
