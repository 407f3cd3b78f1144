"""Tests del contrato start/stop del servicio."""

import threading
import time

import pytest

from filter_service.errors import PipelineStartupError, ShutdownTimeoutError
from filter_service.pipeline import IngestionPipeline, PipelineState
from filter_service.service import FilterService
from tests.fakes import FakeInfluxClient, FakeMQTTClient, FakeWriteApi, wait_for


def _service(settings, mqtt_client=None, write_api=None):
    mqtt_client = mqtt_client or FakeMQTTClient()
    store = FakeInfluxClient(write_api)
    pipeline = IngestionPipeline(
        settings,
        mqtt_client_factory=lambda _cid: mqtt_client,
        influx_client_factory=lambda _settings: store,
    )
    return FilterService(pipeline, shutdown_timeout=settings.shutdown_timeout), mqtt_client, store


class StuckPipeline:
    """Pipeline cuyo teardown no termina hasta que se libera."""

    state = PipelineState.STOPPING

    def __init__(self):
        self.release = threading.Event()

    def run(self, stop_event):
        stop_event.wait()
        self.release.wait()


class TestFilterService:

    def test_start_returns_immediately(self, settings):
        service, mqtt_client, _store = _service(settings)

        started = time.monotonic()
        service.start()
        assert time.monotonic() - started < 0.5

        assert wait_for(lambda: service.state == PipelineState.RECEIVING)
        assert service.is_running is True
        service.stop()
        assert service.is_running is False

    def test_stop_with_write_in_flight(self, settings, make_payload):
        block = threading.Event()
        api = FakeWriteApi(block=block)
        service, mqtt_client, store = _service(settings, write_api=api)
        service.start()
        try:
            assert wait_for(lambda: service.state == PipelineState.RECEIVING)
            mqtt_client.deliver(make_payload())
            assert wait_for(lambda: api.attempts == 1)

            started = time.monotonic()
            service.stop()
            elapsed = time.monotonic() - started

            assert elapsed < settings.shutdown_timeout
            assert ("unsubscribe", "rtl_433/#") in mqtt_client.calls
            assert "disconnect" in mqtt_client.calls
            assert store.closed is True
            assert service.state == PipelineState.STOPPED
        finally:
            block.set()

    def test_startup_error_surfaces(self, settings):
        service, _mqtt, store = _service(
            settings, FakeMQTTClient(connect_error=OSError("no route to host"))
        )
        service.start()

        with pytest.raises(PipelineStartupError):
            service.wait(timeout=2.0)
        with pytest.raises(PipelineStartupError):
            service.stop()
        assert store.closed is True

    def test_shutdown_timeout(self):
        pipeline = StuckPipeline()
        service = FilterService(pipeline, shutdown_timeout=0.1)
        service.start()
        try:
            with pytest.raises(ShutdownTimeoutError):
                service.stop()
        finally:
            pipeline.release.set()
        assert service.wait(timeout=1.0) is True

    def test_stop_without_start_is_noop(self, settings):
        service, _mqtt, _store = _service(settings)
        service.stop()
        assert service.state == PipelineState.DISCONNECTED

    def test_health_check(self, settings):
        service, _mqtt, _store = _service(settings)
        service.start()
        assert wait_for(lambda: service.health_check()["healthy"])
        service.stop()
        assert service.health_check()["state"] == "stopped"
