"""Excepciones del servicio de filtrado.

Solo los errores de conexión (arranque / parada) escalan hasta el proceso.
Los errores por mensaje se registran y el mensaje se descarta.
"""

from __future__ import annotations


class FilterServiceError(Exception):
    """Base de errores fatales del servicio."""


class PipelineStartupError(FilterServiceError):
    """Broker connect/subscribe or store client construction failed."""


class PipelineShutdownError(FilterServiceError):
    """Unsubscribe failed during teardown."""


class ShutdownTimeoutError(FilterServiceError):
    """Teardown did not finish within SHUTDOWN_TIMEOUT_SECONDS."""


class MessageDecodeError(ValueError):
    """Payload is not a valid sensor record. Never fatal."""
