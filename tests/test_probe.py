from __future__ import annotations

import socket
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer

import pytest

from edgenode.probe import http_probe, make_http_probe, wait_until_ready


def _run(probe, clock, *, interval=1.0, timeout=30.0):
    return wait_until_ready(probe, interval=interval, timeout=timeout,
                            clock=clock, sleep=clock.sleep)


def test_never_ready_gives_up_at_deadline(clock):
    calls = []

    def probe():
        calls.append(clock.now)
        return False

    assert _run(probe, clock) is False
    assert clock.now == pytest.approx(30.0)
    assert len(calls) == 31
    assert calls[0] == 0.0


def test_ready_at_five_seconds_stops_polling(clock):
    calls = []

    def probe():
        calls.append(clock.now)
        return clock.now >= 5

    assert _run(probe, clock) is True
    assert clock.now == pytest.approx(5.0)
    assert len(calls) == 6


def test_probe_runs_at_least_once_when_immediately_ready(clock):
    assert _run(lambda: True, clock, timeout=0.5) is True
    assert clock.sleeps == []


def test_sleeps_are_clipped_to_deadline(clock):
    assert _run(lambda: False, clock, interval=0.7, timeout=2.0) is False
    assert max(clock.sleeps) <= 0.7
    assert any(s == pytest.approx(0.6) for s in clock.sleeps)
    assert clock.now == pytest.approx(2.0)


@pytest.mark.parametrize("interval,timeout", [(0, 30), (-1, 30), (1, 0), (1, -5)])
def test_rejects_non_positive_bounds(clock, interval, timeout):
    with pytest.raises(ValueError):
        _run(lambda: True, clock, interval=interval, timeout=timeout)


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class _NotFoundHandler(BaseHTTPRequestHandler):
    def do_GET(self):  # noqa: N802
        self.send_response(404)
        self.end_headers()

    def log_message(self, *args):
        pass


@pytest.fixture
def http_server():
    server = HTTPServer(("127.0.0.1", 0), _NotFoundHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}/process"
    server.shutdown()
    server.server_close()


def test_http_probe_treats_error_status_as_up(http_server):
    assert http_probe(http_server, timeout=2.0) is True
    assert make_http_probe(http_server)() is True


def test_http_probe_refused_connection_is_down():
    assert http_probe(f"http://127.0.0.1:{_free_port()}/process", timeout=1.0) is False


def test_http_probe_malformed_url_is_down():
    assert http_probe("not a url") is False
