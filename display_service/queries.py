"""Consultas Flux de resumen diario (min / max / last desde medianoche local)."""

from __future__ import annotations

import logging
from datetime import datetime, timezone, tzinfo
from typing import Any, Callable, Optional

from .temperatures import Temperatures

logger = logging.getLogger(__name__)

AGGREGATES = ("min", "last", "max")


class QueryError(Exception):
    """La consulta devolvió un resultado inesperado."""


def local_midnight(tz: tzinfo, now: Optional[datetime] = None) -> datetime:
    """Medianoche de hoy en ``tz``."""
    now = now.astimezone(tz) if now is not None else datetime.now(tz)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def build_flux_query(
    bucket: str,
    measurement: str,
    location: str,
    aggregate: str,
    start: datetime,
) -> str:
    if aggregate not in AGGREGATES:
        raise ValueError(f"Unsupported aggregate: {aggregate}")
    start_utc = start.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    return (
        f'from(bucket: "{bucket}")\n'
        f"  |> range(start: {start_utc}, stop: now())\n"
        f'  |> filter(fn: (r) => r._measurement == "{measurement}" and\n'
        f'                       r.location == "{location}" and\n'
        f'                       r._field == "Temperature")\n'
        f'  |> {aggregate}(column: "_value")'
    )


class TemperatureQueries:
    """Lee el resumen del día de InfluxDB.

    ``query_api`` es ``InfluxDBClient.query_api()`` (o cualquier objeto con
    ``query(query) -> tablas``).
    """

    def __init__(
        self,
        query_api: Any,
        bucket: str,
        measurement: str,
        tz: tzinfo,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._query_api = query_api
        self._bucket = bucket
        self._measurement = measurement
        self._tz = tz
        self._clock = clock

    def fetch(self, location: str) -> Temperatures:
        start = local_midnight(self._tz, self._clock())
        logger.debug("[DISPLAY] Midnight is %s", start.isoformat())
        values = {agg: self._aggregate(location, agg, start) for agg in AGGREGATES}
        return Temperatures(current=values["last"], high=values["max"], low=values["min"])

    def _aggregate(self, location: str, aggregate: str, start: datetime) -> Optional[float]:
        query = build_flux_query(self._bucket, self._measurement, location, aggregate, start)
        logger.debug("[DISPLAY] query: %s", query)
        try:
            tables = self._query_api.query(query)
        except Exception as e:
            logger.warning("[DISPLAY] Query %s for %s failed: %s", aggregate, location, e)
            return None

        records = [record for table in tables for record in table.records]
        if len(records) > 1:
            raise QueryError(f"Multiple rows returned for {aggregate} at {location}")
        if not records:
            return None

        value = records[0].get_value()
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise QueryError(f"Non-numeric {aggregate} for {location}: {value!r}")
        logger.debug("[DISPLAY] @ %s, %s[%s] = %f", records[0].get_time(), aggregate, location, value)
        return float(value)
