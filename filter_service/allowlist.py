"""Allowlist de sensores: id AcuRite → ubicación.

Actúa a la vez como filtro (ids desconocidos se descartan) y como tabla
de nombres para el tag ``location``. Cambiarla requiere un nuevo deploy.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Optional


class IdentityAllowlist:
    """Mapa de solo lectura sensor_id → location."""

    def __init__(self, entries: Mapping[int, str]):
        self._entries = MappingProxyType(dict(entries))

    def lookup(self, sensor_id: int) -> Optional[str]:
        """Retorna la ubicación del sensor, o None si no está permitido."""
        return self._entries.get(sensor_id)

    def __contains__(self, sensor_id: object) -> bool:
        return sensor_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> Mapping[int, str]:
        return self._entries

    def locations(self) -> list[str]:
        return list(self._entries.values())


DEFAULT_ALLOWLIST = IdentityAllowlist({
    9788: "Garage",
    12869: "Porch",
    13875: "Outside",
})
