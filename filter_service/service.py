"""AcuRite Temperature Filter - servicio en background.

start() no bloquea: lanza el pipeline en su propio thread.
stop() hace el teardown ordenado y retorna dentro del presupuesto de
shutdown (SHUTDOWN_TIMEOUT_SECONDS); si no alcanza, lo reporta.

Ejecutar:
    python -m filter_service
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from typing import Optional

from prometheus_client import start_http_server

from common.config import Settings, get_settings

from .errors import FilterServiceError, ShutdownTimeoutError
from .pipeline import IngestionPipeline, PipelineState

logger = logging.getLogger(__name__)

SERVICE_NAME = "AcuRiteTemperatureFilter"
SERVICE_DESCRIPTION = "AcuRite Temperature Filter"


class FilterService:
    """Start/stop contract between the pipeline and the host process."""

    def __init__(self, pipeline: IngestionPipeline, shutdown_timeout: float = 10.0):
        self._pipeline = pipeline
        self._shutdown_timeout = shutdown_timeout
        self._stop_event = threading.Event()
        self._done = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._error: Optional[BaseException] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "FilterService":
        return cls(IngestionPipeline(settings), shutdown_timeout=settings.shutdown_timeout)

    def start(self) -> None:
        """Inicia el pipeline en background y retorna inmediatamente."""
        if self._thread is not None:
            return
        self._stop_event.clear()
        self._done.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name="pipeline-runner")
        self._thread.start()
        logger.info("[SERVICE] %s started", SERVICE_NAME)

    def stop(self) -> None:
        """Detiene el pipeline: unsubscribe, disconnect, cierre de writer y store.

        Raises:
            ShutdownTimeoutError: el teardown no terminó dentro del presupuesto
            FilterServiceError: el pipeline falló (arranque o unsubscribe)
        """
        if self._thread is None:
            return
        self._stop_event.set()
        if not self._done.wait(self._shutdown_timeout):
            raise ShutdownTimeoutError(
                f"Pipeline still {self._pipeline.state.value} after {self._shutdown_timeout:.1f}s"
            )
        logger.info("[SERVICE] %s stopped", SERVICE_NAME)
        if self._error is not None:
            raise self._error

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Bloquea hasta que el pipeline termine.

        Returns:
            True si terminó, False si venció el timeout
        """
        finished = self._done.wait(timeout)
        if finished and self._error is not None:
            raise self._error
        return finished

    def _run(self) -> None:
        try:
            self._pipeline.run(self._stop_event)
        except FilterServiceError as e:
            self._error = e
            logger.critical("[SERVICE] Pipeline failed: %s", e)
        except Exception as e:
            self._error = e
            logger.exception("[SERVICE] Pipeline crashed: %s", e)
        finally:
            self._done.set()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and not self._done.is_set()

    @property
    def state(self) -> PipelineState:
        return self._pipeline.state

    def health_check(self) -> dict:
        return self._pipeline.health_check()


def main(argv: Optional[list] = None) -> int:
    p = argparse.ArgumentParser(description=SERVICE_DESCRIPTION)
    p.add_argument("--log-level", default="INFO", help="DEBUG, INFO, WARNING, ...")
    p.add_argument("--metrics-port", type=int, default=None, help="expose Prometheus metrics on this port")
    args = p.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    settings = get_settings()
    metrics_port = args.metrics_port if args.metrics_port is not None else settings.metrics_port
    if metrics_port:
        start_http_server(metrics_port)
        logger.info("[SERVICE] Metrics on :%d", metrics_port)

    service = FilterService.from_settings(settings)
    stop_requested = threading.Event()

    def _handle_signal(signum, frame):
        logger.info("[SERVICE] Signal %d received, stopping", signum)
        stop_requested.set()

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    service.start()
    try:
        while not stop_requested.is_set():
            if service.wait(timeout=0.5):
                # El pipeline terminó sin que se pidiera stop
                logger.error("[SERVICE] Pipeline exited unexpectedly")
                return 1
        service.stop()
    except FilterServiceError as e:
        logger.error("[SERVICE] %s", e)
        return 1
    except Exception:
        logger.exception("[SERVICE] Fatal error")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
