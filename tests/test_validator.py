"""Tests for echo reply validation."""

import dataclasses

import pytest

from conftest import LOCAL, REMOTE
from scionlat.core.errors import (NotEchoInfoError, NotScmpHeaderError, NotScmpPayloadError,
                                  ValidationError)
from scionlat.net.addr import IA
from scionlat.net.packet import (InfoEcho, InfoKind, InfoTraceRoute, L4Kind, PayloadKind,
                                 RawPayload, ScmpHeader, ScmpClass, ScmpType, UdpHeader,
                                 echo_reply_packet, echo_request_packet, scmp_payload)
from scionlat.probe.builder import EchoRequest
from scionlat.probe.validator import validate_reply

CORRELATION_ID = 0x0123456789ABCDEF


@pytest.fixture
def reply():
    request = echo_request_packet(LOCAL, REMOTE, EchoRequest(correlation_id=CORRELATION_ID))
    return echo_reply_packet(request)


class TestValidateReply:

    def test_returns_correlation_id(self, reply):
        assert validate_reply(reply) == CORRELATION_ID

    def test_does_not_compare_ids(self, reply):
        other = dataclasses.replace(reply, payload=scmp_payload(InfoEcho(id=42)))
        assert validate_reply(other) == 42

    def test_echo_request_also_passes(self):
        # Only the shape is checked, not the direction
        request = echo_request_packet(LOCAL, REMOTE, EchoRequest(correlation_id=9))
        assert validate_reply(request) == 9

    def test_rejects_non_scmp_header(self, reply):
        udp = dataclasses.replace(
            reply,
            l4=UdpHeader(src_port=30041, dst_port=40001, length=12),
            payload=RawPayload(b"ping"),
        )

        with pytest.raises(NotScmpHeaderError) as exc_info:
            validate_reply(udp)

        assert exc_info.value.expected == L4Kind.SCMP.value
        assert exc_info.value.actual == L4Kind.UDP.value
        assert "Not an SCMP header" in str(exc_info.value)

    def test_rejects_non_scmp_payload(self, reply):
        raw = dataclasses.replace(reply, payload=RawPayload(b"\x00" * 24))

        with pytest.raises(NotScmpPayloadError) as exc_info:
            validate_reply(raw)

        assert exc_info.value.actual == PayloadKind.RAW.value
        assert "Not an SCMP payload" in str(exc_info.value)

    def test_rejects_non_echo_info(self, reply):
        traceroute = dataclasses.replace(
            reply,
            l4=ScmpHeader(ScmpClass.GENERAL, ScmpType.TRACEROUTE_REPLY, 40),
            payload=scmp_payload(InfoTraceRoute(IA(1, 0xff0000000110), 3, 2, True)),
        )

        with pytest.raises(NotEchoInfoError) as exc_info:
            validate_reply(traceroute)

        assert exc_info.value.expected == InfoKind.ECHO.value
        assert exc_info.value.actual == InfoKind.TRACEROUTE.value
        assert "Not an Info Echo" in str(exc_info.value)

    def test_error_kinds_are_distinct(self):
        kinds = {NotScmpHeaderError, NotScmpPayloadError, NotEchoInfoError}

        assert len(kinds) == 3
        for kind in kinds:
            assert issubclass(kind, ValidationError)
        assert not issubclass(NotScmpHeaderError, NotScmpPayloadError)
        assert not issubclass(NotEchoInfoError, NotScmpPayloadError)

    def test_header_checked_before_payload(self, reply):
        both_wrong = dataclasses.replace(
            reply,
            l4=UdpHeader(src_port=1, dst_port=2, length=8),
            payload=RawPayload(b""),
        )

        with pytest.raises(NotScmpHeaderError):
            validate_reply(both_wrong)
