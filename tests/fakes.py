"""Dobles de prueba para paho-mqtt e InfluxDB."""

from __future__ import annotations

import threading
import time
from types import SimpleNamespace
from typing import Callable, List, Optional, Sequence


def wait_for(predicate: Callable[[], bool], timeout: float = 3.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


class FakeMQTTClient:
    """Cliente paho falso: los acks se entregan de forma síncrona."""

    def __init__(
        self,
        client_id: str = "test",
        *,
        connect_error: Optional[Exception] = None,
        connack_rc: int = 0,
        suback_codes: Sequence[int] = (0,),
        unsubscribe_rc: int = 0,
        unsuback_codes: Sequence[int] = (0,),
        ack_unsubscribe: bool = True,
    ):
        self.client_id = client_id
        self.connect_error = connect_error
        self.connack_rc = connack_rc
        self.suback_codes = list(suback_codes)
        self.unsubscribe_rc = unsubscribe_rc
        self.unsuback_codes = list(unsuback_codes)
        self.ack_unsubscribe = ack_unsubscribe

        self.on_connect = None
        self.on_disconnect = None
        self.on_message = None
        self.on_subscribe = None
        self.on_unsubscribe = None

        self.calls: List = []
        self.credentials = None

    def username_pw_set(self, username, password):
        self.credentials = (username, password)

    def connect(self, host, port, keepalive=60):
        self.calls.append(("connect", host, port))
        if self.connect_error is not None:
            raise self.connect_error

    def loop_start(self):
        self.calls.append("loop_start")
        self.on_connect(self, None, {}, self.connack_rc, None)

    def loop_stop(self):
        self.calls.append("loop_stop")

    def subscribe(self, topic, qos=0):
        self.calls.append(("subscribe", topic, qos))
        self.on_subscribe(self, None, 1, list(self.suback_codes), None)
        return (0, 1)

    def unsubscribe(self, topic):
        self.calls.append(("unsubscribe", topic))
        if self.unsubscribe_rc:
            return (self.unsubscribe_rc, None)
        if self.ack_unsubscribe:
            self.on_unsubscribe(self, None, 2, list(self.unsuback_codes), None)
        return (0, 2)

    def disconnect(self):
        self.calls.append("disconnect")

    def deliver(self, payload: bytes, topic: str = "rtl_433/events"):
        self.on_message(self, None, SimpleNamespace(topic=topic, payload=payload))


class FakeWriteApi:
    def __init__(self, fail_with: Optional[Exception] = None, block: Optional[threading.Event] = None):
        self.fail_with = fail_with
        self.block = block
        self.records: List = []
        self.attempts = 0
        self._lock = threading.Lock()

    def write(self, bucket, org, record):
        with self._lock:
            self.attempts += 1
        if self.block is not None:
            self.block.wait()
        if self.fail_with is not None:
            raise self.fail_with
        with self._lock:
            self.records.append((bucket, org, record))

    def lines(self) -> List[str]:
        with self._lock:
            return [record.to_line_protocol() for _, _, record in self.records]


class FakeInfluxClient:
    def __init__(self, write_api: Optional[FakeWriteApi] = None):
        self.write_api_instance = write_api or FakeWriteApi()
        self.write_options = None
        self.closed = False

    def write_api(self, write_options=None):
        self.write_options = write_options
        return self.write_api_instance

    def close(self):
        self.closed = True


class FakeRecord:
    def __init__(self, value, time=None):
        self._value = value
        self._time = time

    def get_value(self):
        return self._value

    def get_time(self):
        return self._time


def tables_of(*values) -> list:
    """Simula el TableList de query_api.query(): una tabla por valor."""
    return [SimpleNamespace(records=[FakeRecord(v)]) for v in values]
