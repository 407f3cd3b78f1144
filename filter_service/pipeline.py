"""Pipeline de ingesta: MQTT → dedup → decode → allowlist → InfluxDB.

Flujo:
  rtl_433/# (paho network thread)
  → _on_message: solo encola el payload (cola de entrada acotada)
  → loop de recepción (un único thread, orden de entrega)
  → LastPayloadFilter → decode_message → IdentityAllowlist
  → PersistenceWriter.submit (pool acotado de workers)

Estados: DISCONNECTED → CONNECTING → SUBSCRIBED → RECEIVING → STOPPING → STOPPED

Las conexiones (broker e InfluxDB) se adquieren dentro de un ExitStack
ligado a run(): se liberan en cualquier camino de salida, en el orden
unsubscribe, disconnect, cierre del writer, cierre del cliente InfluxDB.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import ExitStack
from enum import Enum
from typing import Any, Callable, List, Optional
from zoneinfo import ZoneInfo

import paho.mqtt.client as mqtt
from influxdb_client.client.write_api import SYNCHRONOUS

from common.config import Settings
from common.influx import create_influx_client

from .allowlist import DEFAULT_ALLOWLIST, IdentityAllowlist
from .backpressure import BackpressureConfig, BackpressureQueue
from .decoder import decode_message
from .deduplication import LastPayloadFilter
from .errors import MessageDecodeError, PipelineShutdownError, PipelineStartupError
from .stats import PipelineStats
from .writer import PersistenceWriter, WriteFailure

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.25


class PipelineState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    RECEIVING = "receiving"
    STOPPING = "stopping"
    STOPPED = "stopped"


def create_mqtt_client(client_id: str) -> mqtt.Client:
    return mqtt.Client(
        callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        client_id=client_id,
        protocol=mqtt.MQTTv311,
    )


def _is_failure(code: Any) -> bool:
    is_failure = getattr(code, "is_failure", None)
    if is_failure is not None:
        return bool(is_failure)
    return int(code) >= 0x80


class IngestionPipeline:
    """Owns the broker subscription, the receive loop and the writer."""

    def __init__(
        self,
        settings: Settings,
        allowlist: IdentityAllowlist = DEFAULT_ALLOWLIST,
        mqtt_client_factory: Callable[[str], Any] = create_mqtt_client,
        influx_client_factory: Callable[[Settings], Any] = create_influx_client,
    ):
        self._settings = settings
        self._allowlist = allowlist
        self._mqtt_client_factory = mqtt_client_factory
        self._influx_client_factory = influx_client_factory
        self._tz = ZoneInfo(settings.sensor_timezone)

        self._state = PipelineState.DISCONNECTED
        self._dedup = LastPayloadFilter()
        self._intake: BackpressureQueue[bytes] = BackpressureQueue(
            BackpressureConfig(
                max_queue_size=settings.intake_queue_size,
                drop_oldest=True,
                name="intake-queue",
            ),
            on_drop=lambda _payload: self._stats.mark("dropped"),
        )
        self._stats = PipelineStats()

        # Conexiones (propiedad exclusiva del pipeline)
        self._client: Optional[Any] = None
        self._store: Optional[Any] = None
        self._writer: Optional[PersistenceWriter] = None
        self._drainer: Optional[threading.Thread] = None

        # Acks del broker
        self._connack = threading.Event()
        self._connected = False
        self._connect_reason: Any = None
        self._suback = threading.Event()
        self._suback_codes: List[Any] = []
        self._unsuback = threading.Event()
        self._unsuback_codes: List[Any] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self, stop_event: threading.Event) -> None:
        """Conecta, recibe hasta que se setea ``stop_event`` y hace teardown.

        Raises:
            PipelineStartupError: fallo al conectar/suscribir o al crear el cliente InfluxDB
            PipelineShutdownError: fallo al desuscribir
        """
        try:
            with ExitStack() as stack:
                try:
                    self._transition(PipelineState.CONNECTING)
                    self._open_store(stack)
                    self._connect_broker(stack)
                    self._subscribe(stack)
                    self._receive(stop_event)
                finally:
                    self._transition(PipelineState.STOPPING)
        finally:
            self._intake.clear()
            self._dedup.reset()
            self._transition(PipelineState.STOPPED)
            logger.info("[PIPELINE] Stopped. %s", self._stats)

    def _open_store(self, stack: ExitStack) -> None:
        try:
            store = self._influx_client_factory(self._settings)
            write_api = store.write_api(write_options=SYNCHRONOUS)
        except Exception as e:
            raise PipelineStartupError(f"InfluxDB client construction failed: {e}") from e

        self._store = store
        stack.callback(self._close_store)

        writer = PersistenceWriter(
            write_api,
            bucket=self._settings.influx_bucket,
            org=self._settings.influx_org,
            measurement=self._settings.influx_measurement,
            max_queue_size=self._settings.write_queue_size,
            num_workers=self._settings.write_num_workers,
            drop_oldest=self._settings.write_drop_oldest,
        )
        writer.start()
        self._writer = writer
        self._drainer = threading.Thread(
            target=self._drain_errors,
            args=(writer,),
            daemon=True,
            name="write-error-drainer",
        )
        self._drainer.start()
        stack.callback(self._close_writer)

    def _connect_broker(self, stack: ExitStack) -> None:
        settings = self._settings
        client = self._mqtt_client_factory(settings.mqtt_client_id)
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        client.on_subscribe = self._on_subscribe
        client.on_unsubscribe = self._on_unsubscribe

        if settings.mqtt_username and settings.mqtt_password:
            client.username_pw_set(settings.mqtt_username, settings.mqtt_password)

        logger.info("[PIPELINE] Connecting to %s:%d", settings.mqtt_host, settings.mqtt_port)
        self._connack.clear()
        try:
            client.connect(settings.mqtt_host, settings.mqtt_port, keepalive=60)
        except Exception as e:
            raise PipelineStartupError(
                f"MQTT connect to {settings.mqtt_host}:{settings.mqtt_port} failed: {e}"
            ) from e

        self._client = client
        client.loop_start()
        stack.callback(self._disconnect)

        if not self._connack.wait(settings.connect_timeout):
            raise PipelineStartupError("MQTT connection timeout")
        if not self._connected:
            raise PipelineStartupError(f"MQTT connection refused: {self._connect_reason}")

    def _subscribe(self, stack: ExitStack) -> None:
        topic = self._settings.mqtt_topic
        self._suback.clear()
        result, _mid = self._client.subscribe(topic, qos=0)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise PipelineStartupError(f"Subscribe to {topic} failed: rc={result}")

        if not self._suback.wait(self._settings.connect_timeout):
            raise PipelineStartupError(f"No SUBACK for {topic}")
        if any(_is_failure(code) for code in self._suback_codes):
            raise PipelineStartupError(f"Subscribe to {topic} refused: {self._suback_codes}")
        # Solo se desuscribe lo que el broker confirmó
        stack.callback(self._unsubscribe)

        self._transition(PipelineState.SUBSCRIBED)
        logger.info("[PIPELINE] Subscribed to %s", topic)

    def _receive(self, stop_event: threading.Event) -> None:
        self._transition(PipelineState.RECEIVING)
        while not stop_event.is_set():
            payload = self._intake.get(timeout=POLL_INTERVAL)
            if payload is None:
                continue
            try:
                self.process_payload(payload)
            finally:
                self._intake.task_done()

    # ------------------------------------------------------------------
    # Teardown (registrado en el ExitStack)
    # ------------------------------------------------------------------

    def _unsubscribe(self) -> None:
        topic = self._settings.mqtt_topic
        self._unsuback.clear()
        result, _mid = self._client.unsubscribe(topic)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise PipelineShutdownError(f"Unsubscribe from {topic} failed: rc={result}")
        if not self._unsuback.wait(self._settings.teardown_timeout):
            raise PipelineShutdownError(
                f"No UNSUBACK for {topic} within {self._settings.teardown_timeout:.1f}s"
            )
        if any(_is_failure(code) for code in self._unsuback_codes):
            raise PipelineShutdownError(f"Unsubscribe from {topic} refused: {self._unsuback_codes}")
        logger.info("[PIPELINE] Unsubscribed from %s", topic)

    def _disconnect(self) -> None:
        try:
            self._client.disconnect()
            self._client.loop_stop()
        except Exception as e:
            logger.warning("[PIPELINE] Disconnect error: %s", e)
        self._connected = False

    def _close_writer(self) -> None:
        self._writer.close(timeout=self._settings.teardown_timeout)
        if self._drainer is not None:
            self._drainer.join(timeout=self._settings.teardown_timeout)

    def _close_store(self) -> None:
        try:
            self._store.close()
        except Exception as e:
            logger.warning("[PIPELINE] InfluxDB close error: %s", e)

    # ------------------------------------------------------------------
    # Procesamiento
    # ------------------------------------------------------------------

    def process_payload(self, payload: bytes) -> bool:
        """Procesa un mensaje crudo. Nunca lanza excepciones.

        Returns:
            True si se encoló un punto para escritura
        """
        self._stats.mark_received()
        try:
            if self._dedup.is_duplicate(payload):
                self._stats.mark("duplicate")
                return False

            try:
                reading = decode_message(payload, self._tz)
            except MessageDecodeError as e:
                logger.warning("[PIPELINE] Dropping undecodable message: %s", e)
                self._stats.mark("decode_error")
                return False

            location = self._allowlist.lookup(reading.sensor_id)
            if location is None:
                logger.debug("[PIPELINE] Ignoring sensor id=%d model=%s", reading.sensor_id, reading.model)
                self._stats.mark("unknown_sensor")
                return False

            if not self._writer.submit(reading, location):
                self._stats.mark("dropped")
                return False

            self._stats.mark("submitted")
            logger.debug(
                "[PIPELINE] Good message to %s: temp=%.1f humidity=%.0f",
                location, reading.temperature_c, reading.humidity,
            )
            if self._stats.submitted % 100 == 0:
                logger.info("[PIPELINE] %s", self._stats)
            return True

        except Exception as e:
            logger.exception("[PIPELINE] Processing error: %s", e)
            self._stats.mark("error")
            return False

    def _drain_errors(self, writer: PersistenceWriter) -> None:
        for failure in writer.errors():
            self._report_write_failure(failure)

    def _report_write_failure(self, failure: WriteFailure) -> None:
        self._stats.mark_write_error()
        logger.error(
            "[PIPELINE] DB write error: %s (location=%s time=%s)",
            failure.error,
            failure.point.tags.get("location"),
            failure.point.time.isoformat(),
        )

    # ------------------------------------------------------------------
    # Callbacks paho (network thread: no bloquear)
    # ------------------------------------------------------------------

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        self._connect_reason = reason_code
        self._connected = not _is_failure(reason_code)
        if self._connected:
            logger.info("[PIPELINE] Connected to MQTT broker")
            if self._state in (PipelineState.SUBSCRIBED, PipelineState.RECEIVING):
                # Reconexión automática de paho: la sesión limpia perdió la suscripción
                topic = self._settings.mqtt_topic
                client.subscribe(topic, qos=0)
                logger.info("[PIPELINE] Resubscribed to %s", topic)
        else:
            logger.error("[PIPELINE] Connection failed: rc=%s", reason_code)
        self._connack.set()

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        self._connected = False
        if self._state == PipelineState.RECEIVING:
            logger.warning("[PIPELINE] Disconnected (rc=%s)", reason_code)

    def _on_message(self, client, userdata, msg):
        self._intake.put(bytes(msg.payload))

    def _on_subscribe(self, client, userdata, mid, reason_code_list, properties=None):
        self._suback_codes = list(reason_code_list)
        self._suback.set()

    def _on_unsubscribe(self, client, userdata, mid, reason_code_list, properties=None):
        self._unsuback_codes = list(reason_code_list)
        self._unsuback.set()

    # ------------------------------------------------------------------

    def _transition(self, state: PipelineState) -> None:
        if state != self._state:
            logger.info("[PIPELINE] %s -> %s", self._state.value, state.value)
            self._state = state

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def stats(self) -> dict:
        return {
            "state": self._state.value,
            "connected": self._connected,
            "broker": f"{self._settings.mqtt_host}:{self._settings.mqtt_port}",
            "topic": self._settings.mqtt_topic,
            "intake": self._intake.get_stats(),
            "writer": self._writer.stats if self._writer else None,
            **self._stats.to_dict(),
        }

    def health_check(self) -> dict:
        last = self._stats.last_message_at
        return {
            "healthy": self._state == PipelineState.RECEIVING and self._connected,
            "state": self._state.value,
            "connected": self._connected,
            "submitted": self._stats.submitted,
            "write_errors": self._stats.write_errors,
            "last_message_age_seconds": time.time() - last if last > 0 else None,
        }
