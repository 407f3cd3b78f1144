"""AcuRite Temperature Filter.

Recibe lecturas rtl_433 por MQTT y las persiste en InfluxDB.

Estructura modular:
- allowlist.py: sensores permitidos y su ubicación
- decoder.py: payload JSON → SensorReading
- deduplication.py: filtro de retransmisiones consecutivas
- backpressure.py: colas acotadas
- writer.py: escritura asíncrona a InfluxDB
- pipeline.py: conexión MQTT, loop de recepción y teardown
- service.py: start/stop y punto de entrada
"""

from .allowlist import DEFAULT_ALLOWLIST, IdentityAllowlist
from .decoder import SensorReading, decode_message
from .deduplication import LastPayloadFilter
from .pipeline import IngestionPipeline, PipelineState
from .service import FilterService
from .writer import PersistenceWriter, TimeSeriesPoint

__all__ = [
    "DEFAULT_ALLOWLIST",
    "IdentityAllowlist",
    "SensorReading",
    "decode_message",
    "LastPayloadFilter",
    "IngestionPipeline",
    "PipelineState",
    "FilterService",
    "PersistenceWriter",
    "TimeSeriesPoint",
]
