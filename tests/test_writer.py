"""Tests del writer asíncrono hacia InfluxDB."""

import threading
import time
from datetime import timezone

import pytest

from filter_service.decoder import decode_message
from filter_service.writer import PersistenceWriter, WriteFailure, build_point
from tests.fakes import FakeWriteApi, wait_for

UTC = timezone.utc


@pytest.fixture
def reading(make_payload):
    return decode_message(make_payload(), UTC)


def _writer(write_api, **kwargs) -> PersistenceWriter:
    kwargs.setdefault("num_workers", 1)
    return PersistenceWriter(
        write_api,
        bucket="Temperatures/a_year",
        org="raspberry",
        **kwargs,
    )


# =============================================================================
# PUNTOS
# =============================================================================

class TestBuildPoint:

    def test_tags_and_fields(self, reading):
        point = build_point(reading, "Garage")

        assert point.measurement == "sample"
        assert point.time == reading.time
        assert point.tags == {"location": "Garage"}
        assert point.fields == {"Temperature": 20.5, "Humidity": 54.0}

    def test_no_sensor_id_tag(self, reading):
        assert set(build_point(reading, "Garage").tags) == {"location"}

    def test_line_protocol(self, reading):
        line = build_point(reading, "Garage").to_influx().to_line_protocol()

        assert line.startswith("sample,location=Garage ")
        assert "Temperature=20.5" in line
        assert line.endswith(" 1640937614")


# =============================================================================
# WRITER
# =============================================================================

class TestPersistenceWriter:

    def test_point_written_to_bucket(self, reading):
        api = FakeWriteApi()
        writer = _writer(api)
        writer.start()

        assert writer.submit(reading, "Garage") is True
        assert wait_for(lambda: len(api.records) == 1)
        assert writer.close(timeout=1.0) == 0

        bucket, org, _record = api.records[0]
        assert (bucket, org) == ("Temperatures/a_year", "raspberry")
        assert api.lines()[0].startswith("sample,location=Garage ")
        assert writer.stats["written"] == 1

    def test_drop_oldest_when_full(self, make_payload):
        writer = _writer(FakeWriteApi(), max_queue_size=2, drop_oldest=True)
        for temp in (1.0, 2.0, 3.0):
            assert writer.submit(decode_message(make_payload(temperature_C=temp), UTC), "Garage")

        stats = writer.stats
        assert stats["pending"] == 2
        assert stats["dropped"] == 1
        writer.close(timeout=0.1)

    def test_drop_newest_when_full(self, reading):
        writer = _writer(FakeWriteApi(), max_queue_size=2, drop_oldest=False)
        assert writer.submit(reading, "Garage") is True
        assert writer.submit(reading, "Porch") is True
        assert writer.submit(reading, "Outside") is False
        assert writer.stats["dropped"] == 1
        writer.close(timeout=0.1)

    def test_write_failure_published_on_error_stream(self, reading):
        writer = _writer(FakeWriteApi(fail_with=RuntimeError("influx down")))
        writer.start()
        writer.submit(reading, "Porch")

        assert wait_for(lambda: writer.stats["failed"] == 1)
        writer.close(timeout=1.0)

        failures = list(writer.errors())
        assert len(failures) == 1
        assert isinstance(failures[0], WriteFailure)
        assert str(failures[0].error) == "influx down"
        assert failures[0].point.tags == {"location": "Porch"}

    def test_failed_write_not_retried(self, reading):
        api = FakeWriteApi(fail_with=RuntimeError("boom"))
        writer = _writer(api)
        writer.start()
        writer.submit(reading, "Garage")
        assert wait_for(lambda: writer.stats["failed"] == 1)
        writer.close(timeout=1.0)

        assert api.attempts == 1

    def test_close_bounded_with_hung_write(self, reading):
        block = threading.Event()
        api = FakeWriteApi(block=block)
        writer = _writer(api)
        writer.start()
        try:
            writer.submit(reading, "Garage")
            assert wait_for(lambda: api.attempts == 1)

            started = time.monotonic()
            abandoned = writer.close(timeout=0.2)
            elapsed = time.monotonic() - started

            assert elapsed < 1.0
            assert abandoned >= 1
        finally:
            block.set()

    def test_submit_after_close_rejected(self, reading):
        writer = _writer(FakeWriteApi())
        writer.start()
        writer.close(timeout=0.5)

        assert writer.closed is True
        assert writer.submit(reading, "Garage") is False

    def test_close_is_idempotent(self):
        writer = _writer(FakeWriteApi())
        writer.start()
        writer.close(timeout=0.5)
        assert writer.close(timeout=0.5) == 0
