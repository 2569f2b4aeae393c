"""
Structured SCION packet model and its wire codec.

Only the pieces needed for echo probing are modelled: a common header with
ISD-AS and host addresses, an opaque forwarding path, an SCMP or UDP layer-4
header and either an SCMP payload (meta + info record) or raw bytes.

Every header, payload and info record carries a ``kind`` tag so callers can
tell the variants apart without inspecting Python types.

Wire layout (big endian)::

    common header   version:u8 l4_proto:u8 total_len:u16
                    dst_type:u8 src_type:u8 path_len:u16
    addresses       dst_ia:u64 src_ia:u64 dst_host src_host
    path            path_len bytes
    l4 header       4 x u16 (SCMP: class type length checksum,
                             UDP: src_port dst_port length checksum)
    scmp payload    meta (info_len:u8 l4_proto:u8 pad:6) + info_len * 8 bytes
"""

import enum
import ipaddress
import struct
from dataclasses import dataclass
from typing import ClassVar, Dict, Tuple, Type, Union

from ..core.errors import PacketDecodeError, PacketEncodeError
from .addr import IA, Endpoint, IPAddress

MIN_MTU = 1280
LINE_LEN = 8

PROTO_SCMP = 1
PROTO_UDP = 17

HOST_IPV4 = 1
HOST_IPV6 = 2
_HOST_LEN = {HOST_IPV4: 4, HOST_IPV6: 16}

_COMMON_HDR = struct.Struct('!BBHBBH')
_IA_PAIR = struct.Struct('!QQ')
_L4_HDR = struct.Struct('!HHHH')
_SCMP_META = struct.Struct('!BB6x')

VERSION = 0


class L4Kind(enum.Enum):
    SCMP = 'SCMP'
    UDP = 'UDP'


class PayloadKind(enum.Enum):
    SCMP = 'SCMP'
    RAW = 'RAW'


class InfoKind(enum.Enum):
    ECHO = 'ECHO'
    TRACEROUTE = 'TRACEROUTE'
    PKT_SIZE = 'PKT_SIZE'


class ScmpClass(enum.IntEnum):
    GENERAL = 0
    ROUTING = 1
    CMNHDR = 2


class ScmpType(enum.IntEnum):
    # General class
    ECHO_REQUEST = 1
    ECHO_REPLY = 2
    TRACEROUTE_REQUEST = 3
    TRACEROUTE_REPLY = 4
    # Common header class
    BAD_PKT_LEN = 5


@dataclass(frozen=True)
class InfoEcho:
    kind: ClassVar[InfoKind] = InfoKind.ECHO
    _struct: ClassVar[struct.Struct] = struct.Struct('!QH6x')

    id: int
    seq: int = 0

    def pack(self) -> bytes:
        return self._struct.pack(self.id, self.seq)

    @classmethod
    def unpack(cls, data: bytes) -> 'InfoEcho':
        return cls(*cls._struct.unpack(data))


@dataclass(frozen=True)
class InfoTraceRoute:
    kind: ClassVar[InfoKind] = InfoKind.TRACEROUTE
    _struct: ClassVar[struct.Struct] = struct.Struct('!QQB?6x')

    ia: IA
    if_id: int
    hop_off: int
    ingress: bool

    def pack(self) -> bytes:
        return self._struct.pack(self.ia.to_int(), self.if_id, self.hop_off, self.ingress)

    @classmethod
    def unpack(cls, data: bytes) -> 'InfoTraceRoute':
        ia, if_id, hop_off, ingress = cls._struct.unpack(data)
        return cls(IA.from_int(ia), if_id, hop_off, ingress)


@dataclass(frozen=True)
class InfoPktSize:
    kind: ClassVar[InfoKind] = InfoKind.PKT_SIZE
    _struct: ClassVar[struct.Struct] = struct.Struct('!HH4x')

    size: int
    mtu: int

    def pack(self) -> bytes:
        return self._struct.pack(self.size, self.mtu)

    @classmethod
    def unpack(cls, data: bytes) -> 'InfoPktSize':
        return cls(*cls._struct.unpack(data))


Info = Union[InfoEcho, InfoTraceRoute, InfoPktSize]

# (class, type) -> info record carried in the SCMP payload
INFO_TYPES: Dict[Tuple[int, int], Type] = {
    (ScmpClass.GENERAL, ScmpType.ECHO_REQUEST): InfoEcho,
    (ScmpClass.GENERAL, ScmpType.ECHO_REPLY): InfoEcho,
    (ScmpClass.GENERAL, ScmpType.TRACEROUTE_REQUEST): InfoTraceRoute,
    (ScmpClass.GENERAL, ScmpType.TRACEROUTE_REPLY): InfoTraceRoute,
    (ScmpClass.CMNHDR, ScmpType.BAD_PKT_LEN): InfoPktSize,
}


@dataclass(frozen=True)
class ScmpHeader:
    kind: ClassVar[L4Kind] = L4Kind.SCMP

    scmp_class: int
    scmp_type: int
    length: int
    checksum: int = 0


@dataclass(frozen=True)
class UdpHeader:
    kind: ClassVar[L4Kind] = L4Kind.UDP

    src_port: int
    dst_port: int
    length: int
    checksum: int = 0


@dataclass(frozen=True)
class ScmpMeta:
    info_len: int  # in 8-byte lines
    l4_proto: int = PROTO_SCMP


@dataclass(frozen=True)
class ScmpPayload:
    kind: ClassVar[PayloadKind] = PayloadKind.SCMP

    meta: ScmpMeta
    info: Info

    def pack(self) -> bytes:
        return _SCMP_META.pack(self.meta.info_len, self.meta.l4_proto) + self.info.pack()


@dataclass(frozen=True)
class RawPayload:
    kind: ClassVar[PayloadKind] = PayloadKind.RAW

    data: bytes

    def pack(self) -> bytes:
        return self.data


L4Header = Union[ScmpHeader, UdpHeader]
Payload = Union[ScmpPayload, RawPayload]


@dataclass(frozen=True)
class ScionPacket:
    dst_ia: IA
    src_ia: IA
    dst_host: IPAddress
    src_host: IPAddress
    path: bytes
    l4: L4Header
    payload: Payload


def scmp_payload(info: Info) -> ScmpPayload:
    return ScmpPayload(ScmpMeta(info_len=len(info.pack()) // LINE_LEN), info)


def echo_request_packet(local: Endpoint, remote: Endpoint, request) -> ScionPacket:
    """Wrap an echo request into a packet from ``local`` to ``remote``.

    ``request`` is anything with ``correlation_id`` and ``seq`` attributes.
    The forwarding path is taken from the resolved remote endpoint.
    """
    payload = scmp_payload(InfoEcho(id=request.correlation_id, seq=request.seq))
    header = ScmpHeader(
        scmp_class=ScmpClass.GENERAL,
        scmp_type=ScmpType.ECHO_REQUEST,
        length=_L4_HDR.size + len(payload.pack()),
    )
    return ScionPacket(
        dst_ia=remote.ia,
        src_ia=local.ia,
        dst_host=remote.host,
        src_host=local.host,
        path=remote.path,
        l4=header,
        payload=payload,
    )


def echo_reply_packet(request: ScionPacket) -> ScionPacket:
    """Build the reply to an echo request, echoing its info record back."""
    if not is_echo_request(request):
        raise ValueError("Not an SCMP echo request")

    header = ScmpHeader(
        scmp_class=ScmpClass.GENERAL,
        scmp_type=ScmpType.ECHO_REPLY,
        length=request.l4.length,
    )
    return ScionPacket(
        dst_ia=request.src_ia,
        src_ia=request.dst_ia,
        dst_host=request.src_host,
        src_host=request.dst_host,
        path=request.path,
        l4=header,
        payload=request.payload,
    )


def is_echo_request(pkt: ScionPacket) -> bool:
    return (pkt.l4.kind is L4Kind.SCMP
            and pkt.l4.scmp_class == ScmpClass.GENERAL
            and pkt.l4.scmp_type == ScmpType.ECHO_REQUEST
            and pkt.payload.kind is PayloadKind.SCMP
            and pkt.payload.info.kind is InfoKind.ECHO)


def _host_type(host: IPAddress) -> int:
    return HOST_IPV4 if host.version == 4 else HOST_IPV6


def encode_packet(pkt: ScionPacket, max_len: int = MIN_MTU) -> bytes:
    """Serialize ``pkt``; raises PacketEncodeError if it does not fit ``max_len``."""
    payload = pkt.payload.pack()
    l4_len = _L4_HDR.size + len(payload)

    if pkt.l4.kind is L4Kind.SCMP:
        proto = PROTO_SCMP
        l4 = _L4_HDR.pack(pkt.l4.scmp_class, pkt.l4.scmp_type, l4_len, pkt.l4.checksum)
    else:
        proto = PROTO_UDP
        l4 = _L4_HDR.pack(pkt.l4.src_port, pkt.l4.dst_port, l4_len, pkt.l4.checksum)

    addrs = (_IA_PAIR.pack(pkt.dst_ia.to_int(), pkt.src_ia.to_int())
             + pkt.dst_host.packed + pkt.src_host.packed)
    total = _COMMON_HDR.size + len(addrs) + len(pkt.path) + len(l4) + len(payload)
    if total > max_len:
        raise PacketEncodeError(f"Packet of {total} bytes exceeds limit of {max_len} bytes")

    try:
        common = _COMMON_HDR.pack(VERSION, proto, total, _host_type(pkt.dst_host),
                                  _host_type(pkt.src_host), len(pkt.path))
    except struct.error as e:
        raise PacketEncodeError(f"Cannot encode common header: {e}")

    return common + addrs + pkt.path + l4 + payload


def decode_packet(data: bytes) -> ScionPacket:
    """Parse wire bytes into a ScionPacket."""
    if len(data) < _COMMON_HDR.size + _IA_PAIR.size:
        raise PacketDecodeError(f"Packet too short: {len(data)} bytes")

    version, proto, total, dst_type, src_type, path_len = _COMMON_HDR.unpack_from(data)
    if version != VERSION:
        raise PacketDecodeError(f"Unsupported version {version}")
    if total != len(data):
        raise PacketDecodeError(f"Length mismatch: header says {total}, got {len(data)}")
    if dst_type not in _HOST_LEN or src_type not in _HOST_LEN:
        raise PacketDecodeError(f"Unknown host address type {dst_type}/{src_type}")

    offset = _COMMON_HDR.size
    dst_ia, src_ia = _IA_PAIR.unpack_from(data, offset)
    offset += _IA_PAIR.size

    dst_host, offset = _read_host(data, offset, dst_type)
    src_host, offset = _read_host(data, offset, src_type)

    path = bytes(data[offset:offset + path_len])
    offset += path_len

    if len(data) - offset < _L4_HDR.size:
        raise PacketDecodeError("Truncated layer-4 header")
    a, b, l4_len, checksum = _L4_HDR.unpack_from(data, offset)
    if l4_len != len(data) - offset:
        raise PacketDecodeError(
            f"Layer-4 length mismatch: header says {l4_len}, got {len(data) - offset}"
        )
    body = bytes(data[offset + _L4_HDR.size:])

    if proto == PROTO_SCMP:
        l4 = ScmpHeader(scmp_class=a, scmp_type=b, length=l4_len, checksum=checksum)
        payload = _decode_scmp_payload(l4, body)
    elif proto == PROTO_UDP:
        l4 = UdpHeader(src_port=a, dst_port=b, length=l4_len, checksum=checksum)
        payload = RawPayload(body)
    else:
        raise PacketDecodeError(f"Unsupported layer-4 protocol {proto}")

    return ScionPacket(
        dst_ia=IA.from_int(dst_ia),
        src_ia=IA.from_int(src_ia),
        dst_host=dst_host,
        src_host=src_host,
        path=path,
        l4=l4,
        payload=payload,
    )


def _read_host(data: bytes, offset: int, host_type: int) -> Tuple[IPAddress, int]:
    end = offset + _HOST_LEN[host_type]
    if end > len(data):
        raise PacketDecodeError("Truncated host address")
    return ipaddress.ip_address(bytes(data[offset:end])), end


def _decode_scmp_payload(header: ScmpHeader, body: bytes) -> ScmpPayload:
    if len(body) < _SCMP_META.size:
        raise PacketDecodeError("Truncated SCMP meta")
    info_len, l4_proto = _SCMP_META.unpack_from(body)

    info_cls = INFO_TYPES.get((header.scmp_class, header.scmp_type))
    if info_cls is None:
        raise PacketDecodeError(
            f"Unknown SCMP class/type {header.scmp_class}/{header.scmp_type}"
        )

    expected = _SCMP_META.size + info_len * LINE_LEN
    if len(body) != expected:
        raise PacketDecodeError(
            f"SCMP body is {len(body)} bytes, info length {info_len} needs {expected}"
        )

    info_bytes = body[_SCMP_META.size:]
    if len(info_bytes) != info_cls._struct.size:
        raise PacketDecodeError(
            f"Bad info length {len(info_bytes)} for {info_cls.kind.value} record"
        )

    return ScmpPayload(ScmpMeta(info_len=info_len, l4_proto=l4_proto),
                       info_cls.unpack(info_bytes))
