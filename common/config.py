from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _default_env_file() -> str:
    return str(Path.cwd() / ".env")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class Settings:
    mqtt_host: str
    mqtt_port: int
    mqtt_username: Optional[str]
    mqtt_password: Optional[str]
    mqtt_client_id: str
    mqtt_topic: str

    influx_url: str
    influx_token: str
    influx_org: str
    influx_bucket: str
    influx_measurement: str
    influx_timeout_ms: int

    # rtl_433 timestamps carry no zone; they are read in this one.
    sensor_timezone: str
    display_timezone: str

    write_queue_size: int
    write_num_workers: int
    write_drop_oldest: bool
    intake_queue_size: int

    connect_timeout: float
    teardown_timeout: float
    shutdown_timeout: float

    metrics_port: int


def get_settings() -> Settings:
    # Load env file (if present) but still allow overriding via real environment variables.
    env_file = os.getenv("TEMP_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    return Settings(
        mqtt_host=os.getenv("MQTT_BROKER_HOST", "localhost"),
        mqtt_port=int(os.getenv("MQTT_BROKER_PORT", "1883")),
        mqtt_username=os.getenv("MQTT_USERNAME") or None,
        mqtt_password=os.getenv("MQTT_PASSWORD") or None,
        mqtt_client_id=os.getenv("MQTT_CLIENT_ID", "acurite_filterer"),
        mqtt_topic=os.getenv("MQTT_TOPIC", "rtl_433/#"),
        influx_url=os.getenv("INFLUX_URL", "http://localhost:8086"),
        # InfluxDB 1.8 compatibility endpoints accept "user:password" as token.
        influx_token=os.getenv("INFLUX_TOKEN", "temperature:temperature"),
        influx_org=os.getenv("INFLUX_ORG", "raspberry"),
        influx_bucket=os.getenv("INFLUX_BUCKET", "Temperatures/a_year"),
        influx_measurement=os.getenv("INFLUX_MEASUREMENT", "sample"),
        influx_timeout_ms=int(os.getenv("INFLUX_TIMEOUT_MS", "10000")),
        sensor_timezone=os.getenv("SENSOR_TIMEZONE", "UTC"),
        display_timezone=os.getenv("DISPLAY_TIMEZONE", "America/Chicago"),
        write_queue_size=int(os.getenv("WRITE_QUEUE_SIZE", "1000")),
        write_num_workers=int(os.getenv("WRITE_NUM_WORKERS", "4")),
        write_drop_oldest=_env_bool("WRITE_DROP_OLDEST", "true"),
        intake_queue_size=int(os.getenv("INTAKE_QUEUE_SIZE", "1000")),
        connect_timeout=float(os.getenv("CONNECT_TIMEOUT_SECONDS", "5")),
        teardown_timeout=float(os.getenv("TEARDOWN_TIMEOUT_SECONDS", "2")),
        shutdown_timeout=float(os.getenv("SHUTDOWN_TIMEOUT_SECONDS", "10")),
        metrics_port=int(os.getenv("METRICS_PORT", "0")),
    )
