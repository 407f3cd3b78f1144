"""Escritura asíncrona de lecturas a InfluxDB.

Desacopla el loop de recepción de la latencia de red: submit() solo
encola el punto (~0.01ms) y un pool fijo de workers hace el write.

- Capacidad acotada (WRITE_QUEUE_SIZE, default 1000 puntos pendientes)
- Política al llenarse: drop oldest (default) o drop newest
- Los errores de escritura NO se reintentan ni se propagan al pipeline;
  se publican en un stream (errors()) que consume el drainer
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

from influxdb_client import Point, WritePrecision

from .backpressure import BackpressureConfig, BackpressureQueue
from .decoder import SensorReading
from .stats import WRITES_TOTAL

logger = logging.getLogger(__name__)

DEFAULT_MEASUREMENT = "sample"
DEFAULT_QUEUE_SIZE = 1000
DEFAULT_NUM_WORKERS = 4

_CLOSED = object()


@dataclass(frozen=True)
class TimeSeriesPoint:
    """Un punto de escritura: measurement + tags + fields + timestamp."""

    measurement: str
    time: datetime
    tags: Dict[str, str] = field(default_factory=dict)
    fields: Dict[str, float] = field(default_factory=dict)

    def to_influx(self) -> Point:
        point = Point(self.measurement)
        for key, value in self.tags.items():
            point = point.tag(key, value)
        for key, value in self.fields.items():
            point = point.field(key, value)
        return point.time(self.time, WritePrecision.S)


@dataclass(frozen=True)
class WriteFailure:
    point: TimeSeriesPoint
    error: BaseException
    occurred_at: datetime


def build_point(
    reading: SensorReading,
    location: str,
    measurement: str = DEFAULT_MEASUREMENT,
) -> TimeSeriesPoint:
    """Convierte una lectura aceptada en un punto de series temporales."""
    return TimeSeriesPoint(
        measurement=measurement,
        time=reading.time,
        tags={"location": location},
        fields={
            "Temperature": float(reading.temperature_c),
            "Humidity": float(reading.humidity),
        },
    )


class PersistenceWriter:
    """Bounded worker pool in front of an InfluxDB write API.

    ``write_api`` is anything with ``write(bucket=..., org=..., record=...)``,
    normally ``InfluxDBClient.write_api(write_options=SYNCHRONOUS)``.
    """

    def __init__(
        self,
        write_api: Any,
        bucket: str,
        org: str,
        measurement: str = DEFAULT_MEASUREMENT,
        max_queue_size: int = DEFAULT_QUEUE_SIZE,
        num_workers: int = DEFAULT_NUM_WORKERS,
        drop_oldest: bool = True,
    ):
        self._write_api = write_api
        self._bucket = bucket
        self._org = org
        self._measurement = measurement
        self._num_workers = num_workers

        self._queue: BackpressureQueue[TimeSeriesPoint] = BackpressureQueue(
            BackpressureConfig(
                max_queue_size=max_queue_size,
                drop_oldest=drop_oldest,
                name="write-queue",
            ),
            on_drop=self._on_drop,
        )
        self._errors: queue.Queue = queue.Queue()
        self._stop_event = threading.Event()
        self._workers: List[threading.Thread] = []
        self._closed = False

        # Metrics
        self._lock = threading.Lock()
        self._submitted = 0
        self._written = 0
        self._failed = 0
        self._dropped = 0
        self._in_flight = 0

    def start(self) -> None:
        """Start worker threads."""
        self._stop_event.clear()
        for i in range(self._num_workers):
            t = threading.Thread(
                target=self._worker_loop,
                args=(i,),
                daemon=True,
                name=f"influx-writer-{i}",
            )
            t.start()
            self._workers.append(t)
        logger.info(
            "[WRITER] Started workers=%d bucket=%s measurement=%s",
            self._num_workers, self._bucket, self._measurement,
        )

    def submit(self, reading: SensorReading, location: str) -> bool:
        """Encola un punto para escritura. Nunca espera a la red.

        Returns:
            False si el writer está cerrado o el punto fue descartado
        """
        if self._closed:
            return False

        point = build_point(reading, location, self._measurement)
        accepted = self._queue.put(point)
        if accepted:
            with self._lock:
                self._submitted += 1
        return accepted

    def errors(self) -> Iterator[WriteFailure]:
        """Stream de fallos de escritura; termina cuando el writer se cierra.

        Pensado para un único consumidor.
        """
        while True:
            item = self._errors.get()
            if item is _CLOSED:
                return
            yield item

    def close(self, timeout: float = 5.0) -> int:
        """Drena lo pendiente dentro de ``timeout`` y detiene los workers.

        Returns:
            Cantidad de puntos abandonados (no escritos) al cerrar
        """
        with self._lock:
            if self._closed:
                return 0
            self._closed = True

        deadline = time.monotonic() + timeout
        drained = self._queue.join(timeout)
        self._stop_event.set()
        for t in self._workers:
            t.join(timeout=max(0.0, deadline - time.monotonic()))

        abandoned = self._queue.clear()
        with self._lock:
            abandoned += self._in_flight
        if not drained or abandoned:
            logger.warning(
                "[WRITER] Closed with %d point(s) not acknowledged within %.1fs",
                abandoned, timeout,
            )

        self._workers.clear()
        self._errors.put(_CLOSED)
        logger.info("[WRITER] Stopped. %s", self.stats)
        return abandoned

    @property
    def closed(self) -> bool:
        return self._closed

    def _on_drop(self, point: TimeSeriesPoint) -> None:
        with self._lock:
            self._dropped += 1
        WRITES_TOTAL.labels(status="dropped").inc()
        logger.warning(
            "[WRITER] Dropped point location=%s time=%s",
            point.tags.get("location"), point.time.isoformat(),
        )

    def _worker_loop(self, worker_id: int) -> None:
        while not self._stop_event.is_set():
            point = self._queue.get(timeout=0.2)
            if point is None:
                continue

            with self._lock:
                self._in_flight += 1
            try:
                self._write_api.write(
                    bucket=self._bucket,
                    org=self._org,
                    record=point.to_influx(),
                )
                with self._lock:
                    self._written += 1
                WRITES_TOTAL.labels(status="ok").inc()
            except Exception as e:
                with self._lock:
                    self._failed += 1
                WRITES_TOTAL.labels(status="error").inc()
                logger.debug("[WRITER] Worker %d write failed: %s", worker_id, e)
                self._errors.put(
                    WriteFailure(point=point, error=e, occurred_at=datetime.now(timezone.utc))
                )
            finally:
                with self._lock:
                    self._in_flight -= 1
                self._queue.task_done()

    @property
    def stats(self) -> dict:
        with self._lock:
            return {
                "pending": self._queue.size,
                "in_flight": self._in_flight,
                "queue_max": self._queue.get_stats()["max_size"],
                "submitted": self._submitted,
                "written": self._written,
                "failed": self._failed,
                "dropped": self._dropped,
            }
