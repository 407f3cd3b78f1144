"""Statistics for the ingestion pipeline.

Counters are kept locally (for health checks and shutdown logs) and
mirrored to Prometheus.
"""

from __future__ import annotations

import threading
import time

from prometheus_client import Counter

MESSAGES_TOTAL = Counter(
    "temp_filter_messages_total",
    "MQTT messages handled by the ingestion pipeline",
    ["outcome"],  # submitted, duplicate, decode_error, unknown_sensor, dropped, error
)
WRITES_TOTAL = Counter(
    "temp_filter_writes_total",
    "InfluxDB point writes",
    ["status"],  # ok, error, dropped
)


class PipelineStats:
    """Estadísticas del pipeline de ingesta.

    Se actualiza desde el network thread de paho (drops de la cola de
    entrada), el loop de recepción y el drainer de errores.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.received = 0
        self.duplicates = 0
        self.decode_errors = 0
        self.unknown_sensors = 0
        self.submitted = 0
        self.dropped = 0
        self.failed = 0
        self.write_errors = 0
        self.last_message_at: float = 0

    def mark_received(self) -> None:
        with self._lock:
            self.received += 1
            self.last_message_at = time.time()

    def mark(self, outcome: str) -> None:
        attr = {
            "duplicate": "duplicates",
            "decode_error": "decode_errors",
            "unknown_sensor": "unknown_sensors",
            "submitted": "submitted",
            "dropped": "dropped",
            "error": "failed",
        }[outcome]
        with self._lock:
            setattr(self, attr, getattr(self, attr) + 1)
        MESSAGES_TOTAL.labels(outcome=outcome).inc()

    def mark_write_error(self) -> None:
        with self._lock:
            self.write_errors += 1

    def __str__(self) -> str:
        return (
            f"Stats: received={self.received} submitted={self.submitted} "
            f"duplicates={self.duplicates} decode_errors={self.decode_errors} "
            f"unknown={self.unknown_sensors} dropped={self.dropped} "
            f"failed={self.failed} write_errors={self.write_errors}"
        )

    def to_dict(self) -> dict:
        """Convert stats to dictionary."""
        with self._lock:
            return {
                "received": self.received,
                "duplicates": self.duplicates,
                "decode_errors": self.decode_errors,
                "unknown_sensors": self.unknown_sensors,
                "submitted": self.submitted,
                "dropped": self.dropped,
                "failed": self.failed,
                "write_errors": self.write_errors,
                "last_message_at": self.last_message_at,
            }
