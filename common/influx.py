from __future__ import annotations

import logging

from influxdb_client import InfluxDBClient

from .config import Settings


logger = logging.getLogger(__name__)


def create_influx_client(settings: Settings) -> InfluxDBClient:
    # Log básico de parámetros de conexión (sin token)
    logger.info(
        "[INFLUX] Crear cliente url=%s org=%s bucket=%s timeout_ms=%d",
        settings.influx_url,
        settings.influx_org,
        settings.influx_bucket,
        settings.influx_timeout_ms,
    )

    return InfluxDBClient(
        url=settings.influx_url,
        token=settings.influx_token,
        org=settings.influx_org,
        timeout=settings.influx_timeout_ms,
    )
