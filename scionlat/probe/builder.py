"""
Echo probe construction.
"""

import random
import time
from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class EchoRequest:
    """An echo request; one request per correlation id, so seq stays 0."""
    correlation_id: int
    seq: int = 0


class ProbeBuilder:
    """Creates echo requests with fresh 64-bit correlation ids.

    The random source is seeded once, when the builder is created, unless a
    generator is passed in.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng if rng is not None else random.Random(time.time_ns())

    def build_probe(self) -> Tuple[int, EchoRequest]:
        correlation_id = self._rng.getrandbits(64)
        return correlation_id, EchoRequest(correlation_id=correlation_id, seq=0)
