"""
Exception hierarchy for scionlat.
"""

from typing import Optional


class ScionLatError(Exception):
    """Base class for all scionlat errors."""


class UsageError(ScionLatError, ValueError):
    """A required command line argument is missing."""


class ConfigError(ScionLatError, ValueError):
    """Configuration file could not be loaded or holds invalid values."""


class AddressParseError(ScionLatError, ValueError):
    """Textual SCION address is malformed."""


class TransportError(ScionLatError):
    """Opening, writing to or reading from the datagram session failed."""


class ReceiveTimeout(ScionLatError):
    """No datagram arrived within the per-attempt timeout."""

    def __init__(self, timeout: float):
        super().__init__(f"No reply within {timeout:.3f}s")
        self.timeout = timeout


class MeasurementCancelled(ScionLatError):
    """The run was cancelled from outside while waiting."""


class PacketEncodeError(ScionLatError):
    """A packet could not be serialized."""


class PacketDecodeError(ScionLatError):
    """Received bytes are not a well-formed packet."""


class ValidationError(ScionLatError):
    """A decoded packet is not a well-formed echo reply."""

    def __init__(self, message: str, expected: str, actual: Optional[str]):
        super().__init__(f"{message} (type={actual})")
        self.expected = expected
        self.actual = actual


class NotScmpHeaderError(ValidationError):
    def __init__(self, actual: Optional[str]):
        super().__init__("Not an SCMP header", "SCMP", actual)


class NotScmpPayloadError(ValidationError):
    def __init__(self, actual: Optional[str]):
        super().__init__("Not an SCMP payload", "SCMP", actual)


class NotEchoInfoError(ValidationError):
    def __init__(self, actual: Optional[str]):
        super().__init__("Not an Info Echo", "ECHO", actual)


class BudgetExhaustedError(ScionLatError):
    """Too few correlated replies were collected within the attempt budget."""

    def __init__(self, samples: int, attempts: int, target: int):
        super().__init__(
            f"Exceeded maximum number of attempts: {samples}/{target} samples "
            f"after {attempts} attempts"
        )
        self.samples = samples
        self.attempts = attempts
        self.target = target
