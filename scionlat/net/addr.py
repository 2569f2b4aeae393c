"""
SCION endpoint addressing.

Endpoints are written as ``ISD-AS,[IP]:Port``, for example
``1-ff00:0:110,[127.0.0.1]:30041``. The port is optional and defaults to 0,
which lets the operating system pick an ephemeral port.
"""

import ipaddress
import re
from dataclasses import dataclass
from typing import Tuple, Union

from ..core.errors import AddressParseError

MAX_ISD = (1 << 16) - 1
MAX_BGP_AS = (1 << 32) - 1
MAX_AS = (1 << 48) - 1

_ENDPOINT_RE = re.compile(r'^(?P<ia>[^,\s]+),\[(?P<host>[^\]]+)\](?::(?P<port>\d+))?$')
_HEX_GROUP_RE = re.compile(r'^[0-9a-fA-F]{1,4}$')

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


@dataclass(frozen=True)
class IA:
    """ISD-AS pair identifying an autonomous system."""
    isd: int
    as_: int

    @classmethod
    def parse(cls, text: str) -> 'IA':
        isd_text, sep, as_text = text.partition('-')
        if not sep or not isd_text or not as_text:
            raise AddressParseError(f"Invalid ISD-AS {text!r}")

        if not isd_text.isdigit() or int(isd_text) > MAX_ISD:
            raise AddressParseError(f"Invalid ISD {isd_text!r} in {text!r}")

        return cls(int(isd_text), _parse_as(as_text, text))

    def to_int(self) -> int:
        return (self.isd << 48) | self.as_

    @classmethod
    def from_int(cls, value: int) -> 'IA':
        return cls(value >> 48, value & MAX_AS)

    def __str__(self) -> str:
        if self.as_ <= MAX_BGP_AS:
            return f"{self.isd}-{self.as_}"
        return "{}-{:x}:{:x}:{:x}".format(
            self.isd, self.as_ >> 32, (self.as_ >> 16) & 0xffff, self.as_ & 0xffff
        )


def _parse_as(as_text: str, full: str) -> int:
    if ':' not in as_text:
        if not as_text.isdigit() or int(as_text) > MAX_BGP_AS:
            raise AddressParseError(f"Invalid AS {as_text!r} in {full!r}")
        return int(as_text)

    groups = as_text.split(':')
    if len(groups) != 3 or not all(_HEX_GROUP_RE.match(g) for g in groups):
        raise AddressParseError(f"Invalid AS {as_text!r} in {full!r}")

    value = 0
    for group in groups:
        value = (value << 16) | int(group, 16)
    return value


@dataclass(frozen=True)
class Endpoint:
    """A SCION host address: ISD-AS, host IP, port and the raw forwarding path."""
    ia: IA
    host: IPAddress
    port: int = 0
    path: bytes = b""

    @classmethod
    def parse(cls, text: str) -> 'Endpoint':
        match = _ENDPOINT_RE.match(text.strip())
        if not match:
            raise AddressParseError(
                f"Invalid SCION address {text!r}, expected ISD-AS,[IP]:Port"
            )

        ia = IA.parse(match.group('ia'))

        try:
            host = ipaddress.ip_address(match.group('host'))
        except ValueError:
            raise AddressParseError(f"Invalid host {match.group('host')!r} in {text!r}")

        port = int(match.group('port')) if match.group('port') else 0
        if port > 0xffff:
            raise AddressParseError(f"Invalid port {port} in {text!r}")

        return cls(ia=ia, host=host, port=port)

    @property
    def underlay(self) -> Tuple[str, int]:
        return str(self.host), self.port

    def with_port(self, port: int) -> 'Endpoint':
        return Endpoint(ia=self.ia, host=self.host, port=port, path=self.path)

    def __str__(self) -> str:
        return f"{self.ia},[{self.host}]:{self.port}"
