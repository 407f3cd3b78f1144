"""Deduplicación de retransmisiones.

Los sensores AcuRite repiten cada trama varias veces seguidas; rtl_433
publica cada repetición. Este filtro solo recuerda el ÚLTIMO payload:
un payload idéntico byte a byte al inmediatamente anterior se descarta.
A, B, A son tres mensajes nuevos (ventana de un solo slot).
"""

from __future__ import annotations

import logging
from typing import Optional

logger = logging.getLogger(__name__)


class LastPayloadFilter:
    """Filtro de duplicados consecutivos.

    No usa lock: solo el loop de recepción (un único thread) lo toca.
    """

    def __init__(self):
        self._last: Optional[bytes] = None

        # Stats
        self._total_checked = 0
        self._duplicates_found = 0

    def is_duplicate(self, payload: bytes) -> bool:
        """Compara con el payload anterior y lo reemplaza.

        Returns:
            True si es idéntico al mensaje inmediatamente anterior.
        """
        self._total_checked += 1
        duplicate = self._last is not None and payload == self._last
        self._last = bytes(payload)

        if duplicate:
            self._duplicates_found += 1
            logger.debug("DEDUP duplicate payload len=%d", len(payload))
        return duplicate

    def reset(self) -> None:
        self._last = None

    @property
    def stats(self) -> dict:
        return {
            "total_checked": self._total_checked,
            "duplicates_found": self._duplicates_found,
        }
