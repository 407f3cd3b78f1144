import json
from typing import Any, Dict

import pytest

from common.config import Settings


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def settings() -> Settings:
    """Settings de prueba con timeouts cortos."""
    return Settings(
        mqtt_host="broker.test",
        mqtt_port=1883,
        mqtt_username=None,
        mqtt_password=None,
        mqtt_client_id="acurite_filterer",
        mqtt_topic="rtl_433/#",
        influx_url="http://influx.test:8086",
        influx_token="temperature:temperature",
        influx_org="raspberry",
        influx_bucket="Temperatures/a_year",
        influx_measurement="sample",
        influx_timeout_ms=1000,
        sensor_timezone="UTC",
        display_timezone="America/Chicago",
        write_queue_size=100,
        write_num_workers=2,
        write_drop_oldest=True,
        intake_queue_size=100,
        connect_timeout=1.0,
        teardown_timeout=0.3,
        shutdown_timeout=3.0,
        metrics_port=0,
    )


@pytest.fixture
def acurite_record() -> Dict[str, Any]:
    """Registro rtl_433 válido de un sensor permitido (Garage)."""
    return {
        "time": "2021-12-31 08:00:14",
        "model": "Acurite-Tower",
        "id": 9788,
        "channel": "A",
        "battery_ok": 1,
        "temperature_C": 20.5,
        "humidity": 54,
        "mic": "CHECKSUM",
    }


@pytest.fixture
def make_payload(acurite_record):
    """Construye payloads JSON a partir del registro base."""
    def _make(**overrides) -> bytes:
        return json.dumps({**acurite_record, **overrides}).encode("utf-8")
    return _make
