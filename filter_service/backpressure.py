"""Cola acotada con backpressure explícito.

Se usa para la cola de entrada (callback paho → loop de recepción) y para
la cola de escritura (pipeline → workers de InfluxDB). Cuando la cola
está llena se aplica la política configurada:

- drop_oldest=True: se descarta el item más viejo y se acepta el nuevo
- drop_oldest=False: se descarta el item nuevo
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class BackpressureConfig:
    """Configuración de backpressure."""
    max_queue_size: int = 1000
    drop_oldest: bool = True  # True = drop oldest, False = drop newest
    name: str = "queue"


@dataclass
class BackpressureStats:
    """Estadísticas de backpressure."""
    enqueued: int = 0
    dequeued: int = 0
    dropped: int = 0
    current_size: int = 0
    max_size: int = 0


class BackpressureQueue(Generic[T]):
    """Cola FIFO thread-safe con límite de tamaño.

    Igual que queue.Queue, cada item obtenido con get() debe confirmarse
    con task_done() para que join() pueda detectar el drenado completo.

    Uso:
        queue = BackpressureQueue[bytes](BackpressureConfig(max_queue_size=100))

        # Productor (nunca bloquea)
        queue.put(payload)

        # Consumidor
        payload = queue.get(timeout=0.5)
        ...
        queue.task_done()
    """

    def __init__(
        self,
        config: Optional[BackpressureConfig] = None,
        on_drop: Optional[Callable[[T], None]] = None,
    ):
        self._config = config or BackpressureConfig()
        if self._config.max_queue_size < 1:
            raise ValueError("max_queue_size must be >= 1")
        self._on_drop = on_drop
        self._queue: deque[T] = deque()  # Manejamos límite manualmente
        self._lock = threading.Lock()
        self._not_empty = threading.Condition(self._lock)
        self._all_done = threading.Condition(self._lock)
        self._unfinished = 0

        self._stats = BackpressureStats(max_size=self._config.max_queue_size)

        logger.info(
            "[BACKPRESSURE] %s initialized: max_size=%d, drop_oldest=%s",
            self._config.name,
            self._config.max_queue_size,
            self._config.drop_oldest,
        )

    def put(self, item: T) -> bool:
        """Agrega un item a la cola sin bloquear.

        Returns:
            True si el item nuevo quedó en la cola, False si fue descartado
        """
        dropped: Optional[T] = None
        accepted = True
        with self._lock:
            if len(self._queue) >= self._config.max_queue_size:
                self._stats.dropped += 1
                if self._config.drop_oldest:
                    dropped = self._queue.popleft()
                    self._unfinished -= 1
                else:
                    dropped = item
                    accepted = False

            if accepted:
                self._queue.append(item)
                self._unfinished += 1
                self._stats.enqueued += 1
                self._stats.current_size = len(self._queue)
                self._not_empty.notify()

        if dropped is not None:
            logger.warning(
                "[BACKPRESSURE] %s full: dropped %s item",
                self._config.name,
                "oldest" if accepted else "newest",
            )
            if self._on_drop is not None:
                self._on_drop(dropped)
        return accepted

    def get(self, timeout: Optional[float] = None) -> Optional[T]:
        """Obtiene un item de la cola.

        Args:
            timeout: Segundos a esperar (None = bloquear indefinidamente)

        Returns:
            Item o None si timeout
        """
        with self._not_empty:
            if timeout is None:
                while not self._queue:
                    self._not_empty.wait()
            elif not self._queue:
                self._not_empty.wait(timeout)

            if not self._queue:
                return None

            item = self._queue.popleft()
            self._stats.dequeued += 1
            self._stats.current_size = len(self._queue)
            return item

    def task_done(self) -> None:
        """Marca como terminado un item obtenido con get()."""
        with self._lock:
            self._unfinished = max(0, self._unfinished - 1)
            if self._unfinished == 0:
                self._all_done.notify_all()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Espera a que todos los items sean procesados.

        Returns:
            True si la cola quedó drenada, False si venció el timeout
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._all_done:
            while self._unfinished > 0:
                if deadline is None:
                    self._all_done.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._all_done.wait(remaining)
            return True

    def clear(self) -> int:
        """Limpia la cola.

        Returns:
            Número de items eliminados
        """
        with self._lock:
            count = len(self._queue)
            self._queue.clear()
            self._unfinished = max(0, self._unfinished - count)
            self._stats.current_size = 0
            if self._unfinished == 0:
                self._all_done.notify_all()
            return count

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._queue)

    @property
    def is_empty(self) -> bool:
        with self._lock:
            return len(self._queue) == 0

    def get_stats(self) -> dict:
        """Estadísticas de la cola."""
        with self._lock:
            return {
                "enqueued": self._stats.enqueued,
                "dequeued": self._stats.dequeued,
                "dropped": self._stats.dropped,
                "current_size": len(self._queue),
                "max_size": self._config.max_queue_size,
                "utilization_pct": len(self._queue) / self._config.max_queue_size * 100,
            }
