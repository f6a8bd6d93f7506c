#!/usr/bin/env python3
# edgenode/probe.py
from __future__ import annotations

"""
Readiness probing.

`wait_until_ready` is a bounded fixed-interval loop over any zero-argument
probe; `http_probe` is the reachability check used for the prover.
"""

import logging
import time
import urllib.error
import urllib.request
from typing import Callable

log = logging.getLogger(__name__)

Probe = Callable[[], bool]


def http_probe(url: str, *, timeout: float = 2.0) -> bool:
    """
    True if anything answers HTTP at `url`.

    Status and body are not inspected: an HTTP error response still means
    the service is up and listening.
    """
    try:
        request = urllib.request.Request(url, method="GET")
        with urllib.request.urlopen(request, timeout=timeout) as response:
            response.read(0)
        return True
    except urllib.error.HTTPError:
        return True
    except (urllib.error.URLError, OSError, ValueError):
        return False


def make_http_probe(url: str, *, timeout: float = 2.0) -> Probe:
    return lambda: http_probe(url, timeout=timeout)


def wait_until_ready(
    probe: Probe,
    *,
    interval: float = 1.0,
    timeout: float = 30.0,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """
    Call `probe` every `interval` seconds until it returns True or
    `timeout` seconds have elapsed.

    The probe runs at least once. Sleeps are clipped to the deadline.
    Returns True on success, False on timeout.
    """
    if interval <= 0:
        raise ValueError("interval must be > 0")
    if timeout <= 0:
        raise ValueError("timeout must be > 0")

    deadline = clock() + timeout
    attempts = 0
    while True:
        attempts += 1
        if probe():
            log.debug("Probe succeeded after %d attempt(s)", attempts)
            return True
        remaining = deadline - clock()
        if remaining <= 0:
            log.debug("Probe timed out after %d attempt(s)", attempts)
            return False
        sleep(min(interval, remaining))
