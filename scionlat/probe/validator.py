"""
Echo reply validation.
"""

from ..core.errors import NotEchoInfoError, NotScmpHeaderError, NotScmpPayloadError
from ..net.packet import InfoKind, L4Kind, PayloadKind, ScionPacket


def validate_reply(packet: ScionPacket) -> int:
    """Check that ``packet`` is an SCMP echo and return its correlation id.

    The id is not compared against anything here; matching a reply to the
    outstanding request is left to the caller.
    """
    if packet.l4.kind is not L4Kind.SCMP:
        raise NotScmpHeaderError(packet.l4.kind.value)

    if packet.payload.kind is not PayloadKind.SCMP:
        raise NotScmpPayloadError(packet.payload.kind.value)

    info = packet.payload.info
    if info.kind is not InfoKind.ECHO:
        raise NotEchoInfoError(info.kind.value)

    return info.id
