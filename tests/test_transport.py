"""Loopback tests for the UDP session and the echo responder."""

import logging
import random
import socket
import threading
import time

import pytest

from scionlat.core.errors import MeasurementCancelled, ReceiveTimeout, TransportError
from scionlat.net.addr import Endpoint
from scionlat.net.packet import decode_packet, echo_request_packet, encode_packet
from scionlat.net.transport import UdpSession, open_session
from scionlat.probe.builder import EchoRequest, ProbeBuilder
from scionlat.probe.measurement import MeasurementLoop
from scionlat.responder import EchoResponder, dispatch_packet


SOURCE = Endpoint.parse("1-ff00:0:111,[127.0.0.1]")
RESPONDER = Endpoint.parse("1-ff00:0:110,[127.0.0.1]")


@pytest.fixture
def responder():
    with EchoResponder(RESPONDER) as running:
        yield running


@pytest.fixture
def peer_socket():
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    yield sock
    sock.close()


@pytest.fixture
def silent_peer(peer_socket):
    """Address of a bound UDP socket that never answers."""
    return RESPONDER.with_port(peer_socket.getsockname()[1])


@pytest.fixture
def lagging_responder():
    """Echo peer whose first reply arrives 0.4s late, the rest at once."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    sock.settimeout(0.1)
    stop = threading.Event()

    def serve():
        delay = 0.4
        while not stop.is_set():
            try:
                data, addr = sock.recvfrom(2500)
            except socket.timeout:
                continue
            reply = dispatch_packet(data, logging.getLogger(__name__))
            if reply is None:
                continue
            time.sleep(delay)
            delay = 0
            sock.sendto(reply, addr)

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()
    yield RESPONDER.with_port(sock.getsockname()[1])
    stop.set()
    thread.join(timeout=5)
    sock.close()


class TestUdpSession:

    def test_ephemeral_source_port(self, silent_peer):
        with open_session(SOURCE, silent_peer) as session:
            assert session.local.port != 0
            assert session.local.ia == SOURCE.ia
            assert session.remote == silent_peer

    def test_receive_timeout(self, silent_peer):
        with UdpSession(SOURCE, silent_peer) as session:
            session.send(b"probe")
            started = time.monotonic()
            with pytest.raises(ReceiveTimeout):
                session.receive(timeout=0.2)
            assert time.monotonic() - started >= 0.19

    def test_receive_cancelled(self, silent_peer):
        cancel = threading.Event()
        timer = threading.Timer(0.2, cancel.set)

        with UdpSession(SOURCE, silent_peer) as session:
            timer.start()
            with pytest.raises(MeasurementCancelled):
                session.receive(timeout=None, cancel=cancel)
            timer.join()

    def test_discard_pending(self, peer_socket, silent_peer):
        with UdpSession(SOURCE, silent_peer) as session:
            assert session.discard_pending() == 0

            for data in (b"late-1", b"late-2"):
                peer_socket.sendto(data, session.local.underlay)
            time.sleep(0.05)

            assert session.discard_pending() == 2
            with pytest.raises(ReceiveTimeout):
                session.receive(timeout=0.1)

    def test_bind_failure(self):
        unroutable = Endpoint.parse("1-1,[192.0.2.1]:1")
        with pytest.raises(TransportError):
            open_session(unroutable, RESPONDER.with_port(9))

    def test_echo_exchange(self, responder):
        request = echo_request_packet(SOURCE, responder.local, EchoRequest(correlation_id=77))

        with open_session(SOURCE, responder.local) as session:
            session.send(encode_packet(request))
            reply = decode_packet(session.receive(timeout=2.0))

        assert reply.payload.info.id == 77
        assert reply.src_ia == RESPONDER.ia
        assert reply.dst_ia == SOURCE.ia


class TestEchoResponder:

    def test_ignores_garbage(self):
        assert dispatch_packet(b"not a packet", logging.getLogger(__name__)) is None

    def test_ignores_replies(self):
        request = echo_request_packet(SOURCE, RESPONDER, EchoRequest(correlation_id=5))
        reply = dispatch_packet(encode_packet(request), logging.getLogger(__name__))

        assert reply is not None
        assert dispatch_packet(reply, logging.getLogger(__name__)) is None

    def test_serve_once_timeout(self):
        responder = EchoResponder(RESPONDER)
        try:
            assert responder.serve_once(timeout=0.05) is None
        finally:
            responder.stop()

    def test_full_measurement(self, responder):
        with open_session(SOURCE, responder.local) as session:
            result = MeasurementLoop(session, builder=ProbeBuilder(random.Random(3)),
                                     timeout=2.0).run()

        assert result.successful_samples == 5
        assert result.attempts == 5
        assert all(sample >= 0 for sample in result.samples_ns)

    def test_late_reply_does_not_shift_later_attempts(self, lagging_responder):
        with open_session(SOURCE, lagging_responder) as session:
            result = MeasurementLoop(session, builder=ProbeBuilder(random.Random(7)),
                                     target_samples=5, max_attempts=20, timeout=0.3).run()

        assert result.successful_samples == 5
        assert result.attempts > 5
        assert all(sample < 300_000_000 for sample in result.samples_ns)

    def test_serve_once_answers_request(self):
        responder = EchoResponder(RESPONDER)
        try:
            with open_session(SOURCE, responder.local) as session:
                request = echo_request_packet(session.local, responder.local,
                                              EchoRequest(correlation_id=0xABC))
                session.send(encode_packet(request))

                assert responder.serve_once(timeout=2.0) == 0xABC
                assert responder.replies_sent == 1

                reply = decode_packet(session.receive(timeout=2.0))
                assert reply.payload.info.id == 0xABC
        finally:
            responder.stop()
