"""Tests for the windowed file transport: rotation and enrichment rules."""

import json
import shutil
from pathlib import Path

import pytest

from analytics_client.core.messages import build_alias, build_identify, build_track
from analytics_client.core.records import read_records
from analytics_client.exceptions import ConfigurationError, LocalIOError
from analytics_client.transport import WindowedFileTransport, window_filename, window_start


class FakeClock:
    def __init__(self, now: float):
        self.now = now

    def __call__(self) -> float:
        return self.now


def read_lines(path: Path) -> list:
    return [json.loads(line) for line in path.read_text().splitlines()]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(1_700_000_100.0)


@pytest.fixture
def make_transport(tmp_path, clock):
    created = []

    def _make(**kwargs):
        transport = WindowedFileTransport(tmp_path, clock=clock, pid=4242, **kwargs)
        created.append(transport)
        return transport

    yield _make
    for transport in created:
        transport.close()


def test_window_start_rounds_down():
    assert window_start(1000, 300) == 900
    assert window_start(899.99, 300) == 600
    assert window_start(900, 300) == 900
    assert window_start(59, 60) == 0


def test_window_filename_is_pid_and_window_start(tmp_path):
    path = window_filename(tmp_path, 4242, 1_700_000_100.0, 300)
    assert path == tmp_path / "4242_1700000100.ldjson"


def test_same_window_appends_to_one_file(make_transport, clock, tmp_path):
    transport = make_transport()

    assert transport.send(build_track("u1", "auth.signup"))
    clock.now += 100  # still inside the same 300 second window
    assert transport.send(build_track("u2", "auth.login"))

    files = sorted(tmp_path.glob("*.ldjson"))
    assert len(files) == 1
    assert len(read_lines(files[0])) == 2


def test_new_window_starts_new_file(make_transport, clock, tmp_path):
    transport = make_transport()

    assert transport.send(build_track("u1", "auth.signup"))
    first_path = transport.current_path
    clock.now += 300
    assert transport.send(build_track("u1", "auth.login"))

    files = sorted(tmp_path.glob("*.ldjson"))
    assert len(files) == 2
    assert transport.current_path != first_path
    assert all(len(read_lines(path)) == 1 for path in files)


def test_event_without_namespace_is_prefixed(make_transport):
    transport = make_transport()

    transport.send(build_track("u1", "signup"))
    transport.send(build_track("u1", "auth.signup"))

    events = [line["event"] for line in read_lines(transport.current_path)]
    assert events == ["MissingDomain.signup", "auth.signup"]


def test_enrichment_does_not_mutate_shared_event(make_transport):
    transport = make_transport(default_properties={"source": "web"})
    event = build_track("u1", "signup")

    transport.send(event)

    assert event.event == "signup"
    assert event.properties is None


def test_default_properties_and_context_do_not_override_caller(make_transport):
    transport = make_transport(
        default_properties={"source": "web", "plan": "free"},
        default_context={"app": "shop", "ip": "0.0.0.0"},
    )

    transport.send(build_track("u1", "auth.signup", {"plan": "pro"}, context={"ip": "10.0.0.1"}))

    record = read_lines(transport.current_path)[0]
    assert record["properties"] == {"source": "web", "plan": "pro"}
    assert record["context"] == {"app": "shop", "ip": "10.0.0.1", "library": "analytics-client"}


def test_anonymous_id_is_added_to_every_action(make_transport):
    transport = make_transport(anonymous_id="anon-123")

    transport.send(build_track("u1", "a.b"))
    transport.send(build_identify("u1", {"email": "a@b.c"}))
    transport.send(build_alias("anon-123", "u1"))

    assert {line["anonymousId"] for line in read_lines(transport.current_path)} == {"anon-123"}


def test_non_mapping_properties_are_coerced(make_transport):
    transport = make_transport()

    transport.send(build_track("u1", "a.b", ["red", "blue"]))

    assert read_lines(transport.current_path)[0]["properties"] == {"value": ["red", "blue"]}


def test_identify_event_is_not_renamed_or_given_properties(make_transport):
    transport = make_transport(default_properties={"source": "web"})

    transport.send(build_identify("u1", {"email": "a@b.c"}))

    record = read_lines(transport.current_path)[0]
    assert "event" not in record
    assert "properties" not in record
    assert record["traits"] == {"email": "a@b.c"}


def test_written_records_round_trip(make_transport):
    transport = make_transport()
    track = build_track("u1", "auth.signup", timestamp=1_700_000_000)
    alias = build_alias("anon", "u1", timestamp=1_700_000_000)

    transport.send(track)
    transport.send(alias)

    records = read_records(transport.current_path)
    assert records[0].action == "track"
    assert records[0].user_id == "u1"
    assert records[0].timestamp == track.timestamp
    assert records[1].action == "alias"
    assert (records[1].from_id, records[1].to_id) == ("anon", "u1")
    assert records[1].timestamp == alias.timestamp


def test_unusable_base_path_fails_construction(tmp_path, clock):
    errors = []

    with pytest.raises(ConfigurationError):
        WindowedFileTransport(tmp_path / "does-not-exist", clock=clock, error_handler=errors.append)

    assert len(errors) == 1
    assert isinstance(errors[0], ConfigurationError)


def test_rotation_failure_is_a_failed_send(tmp_path, clock):
    base = tmp_path / "sink"
    base.mkdir()
    errors = []
    transport = WindowedFileTransport(base, clock=clock, pid=1, error_handler=errors.append)

    shutil.rmtree(base)
    clock.now += 600

    assert transport.send(build_track("u1", "a.b")) is False
    assert isinstance(errors[-1], LocalIOError)
    transport.close()
