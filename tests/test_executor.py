import os
import time

import pytest

from hhinject.core import (
    MAX_NAME_LENGTH,
    ArtifactNamer,
    HostHeader,
    RequestExecutor,
    RequestSpec,
    dump_response,
    normalize_url,
    parse_meta,
    safe_name,
)


@pytest.mark.parametrize("target, expected", [
    ("example.com", "http://example.com"),
    ("example.com:8080/path", "http://example.com:8080/path"),
    ("http://example.com", "http://example.com"),
    ("https://example.com", "https://example.com"),
    ("HTTPS://example.com", "HTTPS://example.com"),
])
def test_normalize_url(target, expected):
    assert normalize_url(target) == expected


def test_safe_name():
    assert safe_name("https://a.b-c:8080/x?y=1") == "a.b-c_8080_x_y_1"
    assert safe_name("http://host.test") == "host.test"
    assert safe_name("plain_host") == "plain_host"


def test_host_header_tri_state():
    assert not HostHeader.parse(None).is_set
    assert not HostHeader.parse("").is_set
    omit = HostHeader.parse("none")
    assert omit.is_set and omit.is_omit and omit.label == "none"
    value = HostHeader.parse("evil.test")
    assert value.is_set and not value.is_omit and value.label == "evil.test"
    with pytest.raises(ValueError):
        HostHeader.of("")


def test_request_spec_headers():
    assert "Host" not in RequestSpec("http://x", HostHeader.omit(), 1, "ua").headers()
    assert "Host" not in RequestSpec("http://x", HostHeader.unset(), 1, "ua").headers()
    hdrs = RequestSpec("http://x", HostHeader.of("evil.test"), 1, "ua").headers()
    assert hdrs == {"User-Agent": "ua", "Host": "evil.test"}


def test_parse_meta_status_and_server():
    raw = b"HTTP/1.1 301 Moved Permanently\r\nsErVeR:  nginx/1.25 \r\nLocation: /\r\n\r\nbody"
    assert parse_meta(raw) == ("301", "nginx/1.25")


def test_parse_meta_defaults():
    assert parse_meta(b"") == ("N/A", "N/A")
    assert parse_meta(b"garbage\r\n\r\n") == ("N/A", "N/A")
    assert parse_meta(b"HTTP/1.1 abc Broken\r\n\r\n") == ("N/A", "N/A")


def test_parse_meta_ignores_server_line_in_body():
    raw = b"HTTP/2 200\r\nContent-Type: text/plain\r\n\r\nServer: fake-in-body\n"
    assert parse_meta(raw) == ("200", "N/A")


def test_dump_response_layout():
    raw = dump_response("HTTP/1.1", 200, "OK", [("Server", "x")], b"hello")
    assert raw == b"HTTP/1.1 200 OK\r\nServer: x\r\n\r\nhello"


def test_injected_host_reaches_server(echo_server, tmp_path):
    executor = RequestExecutor()
    artifact = str(tmp_path / "inject.resp")
    capture = executor.execute(echo_server, HostHeader.of("evil.test"), artifact, timeout=5)
    executor.close()
    assert capture.reachable
    assert capture.status == "200"
    assert capture.server == "EchoTest/1.0"
    assert b"host=evil.test" in capture.raw
    with open(artifact, "rb") as f:
        assert f.read() == capture.raw
    assert capture.size == len(capture.raw) > 0


def test_omitted_host_lets_transport_derive_it(echo_server, tmp_path):
    executor = RequestExecutor()
    capture = executor.execute(echo_server, HostHeader.omit(), str(tmp_path / "base.resp"), timeout=5)
    executor.close()
    assert f"host={echo_server}".encode() in capture.raw


def test_unreachable_target_is_captured_not_raised(closed_port_target, tmp_path):
    executor = RequestExecutor()
    artifact = str(tmp_path / "down.resp")
    capture = executor.execute(closed_port_target, HostHeader.of("evil.test"), artifact, timeout=2)
    executor.close()
    assert not capture.reachable
    assert capture.status == "N/A"
    assert capture.server == "N/A"
    assert capture.size == 0 and capture.raw == b""
    assert os.path.isfile(artifact) and os.path.getsize(artifact) == 0


def test_invalid_host_value_is_captured(echo_server, tmp_path):
    executor = RequestExecutor()
    capture = executor.execute(echo_server, HostHeader.of("bad\r\nX-Injected: 1"), str(tmp_path / "bad.resp"), timeout=2)
    executor.close()
    assert capture.status == "N/A"
    assert capture.error


def test_artifact_names_never_collide(tmp_path):
    namer = ArtifactNamer(str(tmp_path))
    paths = {namer.path_for("https://same.test", "inject") for _ in range(200)}
    assert len(paths) == 200
    assert all(os.path.basename(p).startswith("same.test_inject_") for p in paths)


def test_artifact_namer_skips_existing_files(tmp_path, monkeypatch):
    namer = ArtifactNamer(str(tmp_path))
    first = namer.path_for("a.test", "baseline")
    open(first, "wb").close()
    other = ArtifactNamer(str(tmp_path))

    class _FrozenDatetime:
        @staticmethod
        def now():
            import datetime as _dt
            stamp = os.path.basename(first)[len("a.test_baseline_"):-len(".resp")]
            return _dt.datetime.strptime(stamp, "%Y%m%d_%H%M%S_%f")

    monkeypatch.setattr("hhinject.core.datetime", _FrozenDatetime)
    second = other.path_for("a.test", "baseline")
    assert second != first
    assert second.endswith("-1.resp")


def test_safe_name_caps_long_targets():
    long_a = "http://example.test/" + "a" * 300
    long_b = "http://example.test/" + "a" * 299 + "b"
    name_a, name_b = safe_name(long_a), safe_name(long_b)
    assert len(name_a) == len(name_b) == MAX_NAME_LENGTH
    assert name_a != name_b
    assert name_a.startswith("example.test_aaaa")
    assert safe_name(long_a) == name_a


def test_long_target_artifact_is_written(echo_server, tmp_path):
    namer = ArtifactNamer(str(tmp_path))
    target = echo_server + "/" + "a" * 300
    artifact = namer.path_for(target, "inject")
    executor = RequestExecutor()
    capture = executor.execute(target, HostHeader.of("evil.test"), artifact, timeout=5)
    executor.close()
    assert capture.status == "200"
    assert capture.error is None
    assert os.path.isfile(artifact)


def test_artifact_write_failure_is_captured(echo_server, tmp_path):
    artifact = str(tmp_path / "missing-dir" / "inject.resp")
    executor = RequestExecutor()
    capture = executor.execute(echo_server, HostHeader.of("evil.test"), artifact, timeout=5)
    executor.close()
    assert capture.status == "200"
    assert b"host=evil.test" in capture.raw
    assert "artifact not written" in capture.error
    assert not os.path.exists(artifact)


def test_timeout_bounds_the_whole_request(drip_server, tmp_path):
    executor = RequestExecutor()
    artifact = str(tmp_path / "slow.resp")
    started = time.monotonic()
    capture = executor.execute(drip_server, HostHeader.of("evil.test"), artifact, timeout=0.5)
    elapsed = time.monotonic() - started
    executor.close()
    assert elapsed < 1.5
    assert capture.status == "N/A"
    assert capture.size == 0
    assert "RequestDeadlineExceeded" in capture.error
    assert os.path.getsize(artifact) == 0


def test_timeout_bounds_the_whole_request_over_http2_client(drip_server, tmp_path):
    executor = RequestExecutor(http2=True)
    started = time.monotonic()
    capture = executor.execute(drip_server, HostHeader.of("evil.test"), str(tmp_path / "slow.resp"), timeout=0.5)
    elapsed = time.monotonic() - started
    executor.close()
    assert elapsed < 1.5
    assert capture.status == "N/A"
    assert "RequestDeadlineExceeded" in capture.error
