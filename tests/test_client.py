"""Tests for the dispatch client."""

import json

import pytest
from conftest import RecordingTransport

from analytics_client import AnalyticsClient
from analytics_client.batcher import BatcherConfig, BatchingQueue
from analytics_client.exceptions import ConfigurationError
from analytics_client.transport import WindowedFileTransport


class RaisingConsumer:
    name = "Raising"

    def submit(self, event):
        raise RuntimeError("consumer blew up")

    def flush(self):
        raise RuntimeError("consumer blew up")

    def close(self):
        pass


def test_zero_transports_gives_empty_mapping(make_config, shutdown_manager):
    client = AnalyticsClient("key", make_config(transports=[]), shutdown_manager=shutdown_manager)

    assert client.track("u1", "a.b") == {}
    assert client.identify("u1", {"email": "a@b.c"}) == {}
    assert client.alias("x", "y") == {}
    assert client.flush() == {}
    client.close()


def test_single_transport_still_returns_mapping(make_config, shutdown_manager, tmp_path):
    client = AnalyticsClient("key", make_config(transports="file"), shutdown_manager=shutdown_manager)

    assert client.track("u1", "auth.signup") == {"File": True}
    client.close()

    assert json.loads((tmp_path / "analytics.log").read_text())["event"] == "auth.signup"


def test_fans_out_to_every_configured_transport(make_config, shutdown_manager, collector, tmp_path):
    host, port = collector.server_address
    config = make_config(transports=["file", "socket"], host=host, port=port, use_ssl=False, timeout_seconds=5.0)
    client = AnalyticsClient("write-key", config, shutdown_manager=shutdown_manager)

    outcomes = client.track("u1", "auth.signup", {"plan": "pro"})
    assert list(outcomes) == ["File", "Socket"]
    assert all(outcomes.values())

    client.close()

    file_record = json.loads((tmp_path / "analytics.log").read_text())
    socket_record = collector.requests[0]["body"]["batch"][0]
    assert file_record == socket_record, "Every transport receives the same record"


@pytest.mark.parametrize("transports", [["carrier-pigeon"], ["file", "file"], ["file", "FILE"]])
def test_bad_transport_names_fail_construction(make_config, shutdown_manager, transports):
    with pytest.raises(ConfigurationError):
        AnalyticsClient("key", make_config(transports=transports), shutdown_manager=shutdown_manager)


def test_duplicate_injected_consumer_names_fail(make_config, shutdown_manager):
    consumers = [RecordingTransport(), RecordingTransport()]

    with pytest.raises(ConfigurationError):
        AnalyticsClient("key", make_config(), consumers=consumers, shutdown_manager=shutdown_manager)


def test_unusable_sink_fails_construction(make_config, shutdown_manager, tmp_path):
    errors = []
    config = make_config(transports=["windowed_file"], windowed_base_path=tmp_path / "missing", error_handler=errors.append)

    with pytest.raises(ConfigurationError):
        AnalyticsClient("key", config, shutdown_manager=shutdown_manager)
    assert errors


def test_invalid_config_is_rejected(make_config, shutdown_manager):
    with pytest.raises(ConfigurationError):
        AnalyticsClient("key", make_config(batch_size=0), shutdown_manager=shutdown_manager)


def test_failing_consumer_does_not_affect_others(make_config, shutdown_manager):
    recording = RecordingTransport()
    client = AnalyticsClient("key", make_config(), consumers=[RaisingConsumer(), recording], shutdown_manager=shutdown_manager)

    assert client.track("u1", "a.b") == {"Raising": False, "Recording": True}
    assert client.flush() == {"Raising": False, "Recording": True}
    assert len(recording.events) == 1
    client.close()


def test_transport_failure_is_false_outcome(make_config, shutdown_manager):
    errors = []
    failing = RecordingTransport(name="Failing", always_fail=True)
    failing._error_handler = errors.append
    client = AnalyticsClient("key", make_config(), consumers=[failing], shutdown_manager=shutdown_manager)

    assert client.track("u1", "a.b") == {"Failing": False}
    assert len(errors) == 1
    client.close()


def test_library_context_and_empty_properties(make_config, shutdown_manager):
    recording = RecordingTransport()
    client = AnalyticsClient("key", make_config(library_name="shop-sdk"), consumers=[recording], shutdown_manager=shutdown_manager)

    client.track("u1", "a.b", properties={}, context={"library": "spoofed", "ip": "10.0.0.1"})

    record = recording.events[0].to_dict()
    assert "properties" not in record
    assert record["context"] == {"library": "shop-sdk", "ip": "10.0.0.1"}
    client.close()


def test_millisecond_timestamp_does_not_crash_caller(make_config, shutdown_manager):
    recording = RecordingTransport()
    client = AnalyticsClient("key", make_config(), consumers=[recording], shutdown_manager=shutdown_manager)

    assert client.track("u1", "a.b", timestamp=1_700_000_000_000) == {"Recording": True}
    assert client.identify("u1", {"email": "a@b.c"}, timestamp=float("nan")) == {"Recording": True}
    assert client.alias("x", "y", timestamp=10**20) == {"Recording": True}

    assert all(event.timestamp for event in recording.events)
    client.close()


def test_windowed_enrichment_is_invisible_to_other_transports(make_config, shutdown_manager, tmp_path):
    windowed = WindowedFileTransport(tmp_path, default_properties={"source": "web"}, anonymous_id="anon")
    recording = RecordingTransport()
    client = AnalyticsClient("key", make_config(), consumers=[windowed, recording], shutdown_manager=shutdown_manager)

    client.track("u1", "signup")
    windowed_record = json.loads(windowed.current_path.read_text())
    client.close()

    assert windowed_record["event"] == "MissingDomain.signup"
    assert windowed_record["properties"] == {"source": "web"}

    plain_record = recording.events[0].to_dict()
    assert plain_record["event"] == "signup"
    assert "properties" not in plain_record
    assert "anonymousId" not in plain_record


def test_close_flushes_queued_events(make_config, shutdown_manager):
    recording = RecordingTransport()
    queue = BatchingQueue(recording, BatcherConfig(flush_interval_seconds=60.0))
    client = AnalyticsClient("key", make_config(), consumers=[queue], shutdown_manager=shutdown_manager)

    assert client.track("u1", "a.b") == {"Recording": True}
    assert recording.events == []

    client.close()
    assert len(recording.events) == 1
    assert recording.close_calls == 1


def test_closed_client_rejects_calls(make_config, shutdown_manager):
    recording = RecordingTransport()
    client = AnalyticsClient("key", make_config(), consumers=[recording], shutdown_manager=shutdown_manager)
    client.close()
    client.close()

    assert client.closed
    assert client.track("u1", "a.b") == {"Recording": False}
    assert recording.close_calls == 1


def test_context_manager_closes(make_config, shutdown_manager):
    recording = RecordingTransport()

    with AnalyticsClient("key", make_config(), consumers=[recording], shutdown_manager=shutdown_manager) as client:
        client.identify("u1", {"email": "a@b.c"})

    assert client.closed
    assert recording.closed


def test_stats_per_consumer(make_config, shutdown_manager):
    client = AnalyticsClient("key", make_config(), consumers=[RecordingTransport()], shutdown_manager=shutdown_manager)
    client.track("u1", "a.b")

    assert client.get_stats()["Recording"]["total_events_sent"] == 1
    client.close()
