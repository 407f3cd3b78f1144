"""Decodificación de mensajes rtl_433 (AcuRite) a lecturas de dominio.

Formato esperado (JSON publicado por rtl_433 en ``rtl_433/#``):
{
    "time": "2021-12-31 08:00:14",
    "model": "Acurite-Tower",
    "id": 9788,
    "channel": "A",
    "battery_ok": 1,
    "temperature_C": 20.5,
    "humidity": 54,
    "mic": "CHECKSUM"
}

Campos extra se ignoran. El timestamp no trae zona; se interpreta en la
zona configurada (SENSOR_TIMEZONE).
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, tzinfo
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import MessageDecodeError

logger = logging.getLogger(__name__)

EVENT_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def parse_event_time(text: str, tz: tzinfo) -> datetime:
    """Parsea ``YYYY-MM-DD HH:MM:SS`` como hora local en ``tz``."""
    try:
        naive = datetime.strptime(text.strip(), EVENT_TIME_FORMAT)
    except ValueError as e:
        raise MessageDecodeError(f"Invalid time format: {text!r}") from e
    return naive.replace(tzinfo=tz)


def format_event_time(moment: datetime, tz: Optional[tzinfo] = None) -> str:
    """Inverse of parse_event_time, to one-second resolution."""
    if tz is not None and moment.tzinfo is not None:
        moment = moment.astimezone(tz)
    return moment.strftime(EVENT_TIME_FORMAT)


class SensorReading(BaseModel):
    """Lectura decodificada de un sensor AcuRite. Inmutable."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    time: datetime
    model: str
    sensor_id: int = Field(..., alias="id")
    channel: str = ""
    battery_ok: int = Field(default=1, ge=0, le=1)
    temperature_c: float = Field(..., alias="temperature_C")
    humidity: float
    mic: str = ""

    @field_validator("temperature_c", "humidity")
    @classmethod
    def validate_finite(cls, v: float) -> float:
        if v != v:  # NaN check
            raise ValueError("Value is NaN")
        if v == float("inf") or v == float("-inf"):
            raise ValueError("Value is infinite")
        return v

    @field_validator("channel", "mic", mode="before")
    @classmethod
    def coerce_text(cls, v):
        # rtl_433 publica channel numérico en algunos modelos
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @property
    def battery_low(self) -> bool:
        return self.battery_ok == 0


def decode_message(payload: bytes, tz: tzinfo) -> SensorReading:
    """Decodifica un payload crudo a SensorReading.

    Raises:
        MessageDecodeError: si el payload no es un registro válido.
    """
    try:
        data = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MessageDecodeError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MessageDecodeError(f"Expected JSON object, got {type(data).__name__}")

    raw_time = data.get("time")
    if not isinstance(raw_time, str):
        raise MessageDecodeError("Field 'time' is required and must be text")

    data = {**data, "time": parse_event_time(raw_time, tz)}

    try:
        return SensorReading.model_validate(data)
    except ValidationError as e:
        raise MessageDecodeError(str(e)) from e
