"""Shared fixtures and fakes for scionlat tests."""

import dataclasses
import os
import signal

import pytest

from scionlat.core.errors import MeasurementCancelled, ReceiveTimeout, TransportError
from scionlat.net.addr import Endpoint
from scionlat.net.packet import (InfoEcho, decode_packet, echo_reply_packet, encode_packet,
                                 scmp_payload)

NS_PER_MS = 1_000_000

LOCAL = Endpoint.parse("1-ff00:0:111,[127.0.0.1]:40001")
REMOTE = Endpoint.parse("1-ff00:0:110,[127.0.0.2]:30041")


def reply_with_id(request, correlation_id):
    """Well-formed echo reply to ``request`` carrying another id."""
    reply = echo_reply_packet(request)
    return dataclasses.replace(reply, payload=scmp_payload(InfoEcho(id=correlation_id)))


def ok(ms):
    """Correctly correlated reply after ``ms`` milliseconds."""
    return ('reply', int(ms * NS_PER_MS))


def stale(ms=1):
    """Well-formed reply belonging to some other probe."""
    return ('stale', int(ms * NS_PER_MS))


def timeout():
    return ('timeout', 0)


def raw(data, ms=1):
    return (data, int(ms * NS_PER_MS))


def packet(pkt, ms=1):
    return ('packet', int(ms * NS_PER_MS), pkt)


def interrupt(signum=signal.SIGINT):
    """Deliver ``signum`` to this process while the receive is blocked."""
    return ('signal', 0, signum)


class FakeClock:
    """Nanosecond clock that only moves when told to."""

    def __init__(self, start=1_000_000_000):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, ns):
        self.now += ns


class FakeSession:
    """Session that answers each probe according to a script.

    Every receive pops the next script entry, advances the clock by its delay
    and returns (or raises) what the entry describes.
    """

    def __init__(self, script, clock=None, local=LOCAL, remote=REMOTE):
        self.script = list(script)
        self.clock = clock
        self.local = local
        self.remote = remote
        self.sent = []
        self.receive_calls = []
        self.closed = False
        self.send_error = None
        # Number of datagrams sent when each discard_pending call happened
        self.discards = []

    def send(self, data):
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(decode_packet(data))

    def discard_pending(self):
        self.discards.append(len(self.sent))
        return 0

    def receive(self, timeout=None, cancel=None):
        self.receive_calls.append((timeout, cancel))
        if not self.script:
            raise TransportError("script exhausted")

        entry = self.script.pop(0)
        action, delay = entry[0], entry[1]
        if self.clock is not None:
            self.clock.advance(delay)

        request = self.sent[-1]
        if action == 'reply':
            return encode_packet(echo_reply_packet(request))
        if action == 'stale':
            other = request.payload.info.id ^ 0xFFFFFFFFFFFFFFFF
            return encode_packet(reply_with_id(request, other))
        if action == 'timeout':
            raise ReceiveTimeout(timeout or 0.0)
        if action == 'packet':
            return encode_packet(entry[2])
        if action == 'signal':
            if signal.getsignal(entry[2]) in (signal.SIG_DFL, signal.SIG_IGN, None):
                raise TransportError("no handler installed for the signal")
            os.kill(os.getpid(), entry[2])
            if cancel is not None and cancel.wait(1.0):
                raise MeasurementCancelled("Receive cancelled")
            raise TransportError("signal did not cancel the receive")
        if isinstance(action, Exception):
            raise action
        return action

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


@pytest.fixture
def clock():
    return FakeClock()
