"""
Datagram sessions between two SCION endpoints.

Packets are carried over a plain UDP underlay straight to the remote host's
IP and port; no dispatcher or path lookup is involved.
"""

import logging
import select
import socket
import threading
import time
from typing import Optional, Protocol

from ..core.errors import MeasurementCancelled, ReceiveTimeout, TransportError
from .addr import Endpoint

DEFAULT_RECV_BUFFER = 2500

# Granularity at which a blocked receive notices cancellation
POLL_INTERVAL = 0.1


class Session(Protocol):
    """A bidirectional datagram session bound to one local and one remote endpoint."""

    local: Endpoint
    remote: Endpoint

    def send(self, data: bytes) -> None:
        ...

    def receive(self, timeout: Optional[float] = None,
                cancel: Optional[threading.Event] = None) -> bytes:
        ...

    def discard_pending(self) -> int:
        ...

    def close(self) -> None:
        ...


class UdpSession:
    """Session over a connected UDP socket."""

    def __init__(self, local: Endpoint, remote: Endpoint,
                 recv_buffer: int = DEFAULT_RECV_BUFFER):
        self.logger = logging.getLogger(__name__)
        self.remote = remote
        self._recv_buffer = recv_buffer

        family = socket.AF_INET if local.host.version == 4 else socket.AF_INET6
        self._sock = socket.socket(family, socket.SOCK_DGRAM)
        try:
            self._sock.bind(local.underlay)
            self._sock.connect(remote.underlay)
        except OSError as e:
            self._sock.close()
            raise TransportError(f"Failed to open session {local} -> {remote}: {e}")

        # An unspecified source port is chosen by the OS on bind
        self.local = local.with_port(self._sock.getsockname()[1])
        self.logger.debug(f"Session opened {self.local} -> {self.remote}")

    def send(self, data: bytes) -> None:
        try:
            self._sock.send(data)
        except OSError as e:
            raise TransportError(f"Write to {self.remote} failed: {e}")

    def receive(self, timeout: Optional[float] = None,
                cancel: Optional[threading.Event] = None) -> bytes:
        """Block for one datagram.

        Raises ReceiveTimeout once ``timeout`` seconds pass without data and
        MeasurementCancelled as soon as ``cancel`` is set.
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        while True:
            if cancel is not None and cancel.is_set():
                raise MeasurementCancelled("Receive cancelled")

            wait = POLL_INTERVAL if cancel is not None else None
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise ReceiveTimeout(timeout)
                wait = remaining if wait is None else min(wait, remaining)

            try:
                readable, _, _ = select.select([self._sock], [], [], wait)
                if readable:
                    return self._sock.recv(self._recv_buffer)
            except OSError as e:
                raise TransportError(f"Read from {self.remote} failed: {e}")

    def discard_pending(self) -> int:
        """Drop every datagram already queued on the socket without blocking."""
        discarded = 0
        while True:
            try:
                readable, _, _ = select.select([self._sock], [], [], 0)
                if not readable:
                    break
                self._sock.recv(self._recv_buffer)
            except OSError as e:
                raise TransportError(f"Read from {self.remote} failed: {e}")
            discarded += 1

        if discarded:
            self.logger.debug(f"Discarded {discarded} late datagrams from {self.remote}")
        return discarded

    def close(self) -> None:
        self._sock.close()
        self.logger.debug(f"Session closed {self.local} -> {self.remote}")

    def __enter__(self) -> 'UdpSession':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def open_session(local: Endpoint, remote: Endpoint,
                 recv_buffer: int = DEFAULT_RECV_BUFFER) -> UdpSession:
    """Open a session from ``local`` to ``remote``."""
    return UdpSession(local, remote, recv_buffer=recv_buffer)
