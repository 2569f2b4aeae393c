"""
RTT measurement loop.

One probe is in flight at a time: build, send, wait for a reply, validate,
correlate. Replies carrying another probe's id are discarded and the attempt
counts against the budget. A receive timeout is handled the same way. Any
transport, decode or validation failure aborts the run.
"""

import enum
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

import numpy as np

from ..core.errors import BudgetExhaustedError, MeasurementCancelled, ReceiveTimeout
from ..net.packet import MIN_MTU, decode_packet, echo_request_packet, encode_packet
from ..net.transport import Session
from .builder import ProbeBuilder
from .validator import validate_reply

DEFAULT_TARGET_SAMPLES = 5
DEFAULT_MAX_ATTEMPTS = 20

NS_PER_MS = 1e6


class TrialOutcome(enum.Enum):
    SUCCESS = 'success'
    MISMATCH = 'mismatch'
    TIMEOUT = 'timeout'


@dataclass(frozen=True)
class Trial:
    """Outcome of a single probe/reply cycle."""
    correlation_id: int
    sent_at: int
    received_at: Optional[int]
    outcome: TrialOutcome

    @property
    def elapsed_ns(self) -> Optional[int]:
        if self.outcome is not TrialOutcome.SUCCESS:
            return None
        return self.received_at - self.sent_at


@dataclass(frozen=True)
class MeasurementResult:
    """Round trip samples of a finished run, in nanoseconds."""
    samples_ns: Tuple[int, ...]
    attempts: int

    @property
    def successful_samples(self) -> int:
        return len(self.samples_ns)

    @property
    def total_elapsed_ns(self) -> int:
        return sum(self.samples_ns)

    @property
    def average_rtt_ns(self) -> float:
        return self.total_elapsed_ns / self.successful_samples

    @property
    def average_latency_ns(self) -> float:
        # One-way estimate assumes a symmetric path
        return self.average_rtt_ns / 2

    @property
    def average_rtt_ms(self) -> float:
        return self.average_rtt_ns / NS_PER_MS

    @property
    def average_latency_ms(self) -> float:
        return self.average_latency_ns / NS_PER_MS

    def summary(self) -> Dict[str, float]:
        """Spread of the samples in milliseconds."""
        samples = np.asarray(self.samples_ns, dtype=np.float64) / NS_PER_MS
        return {
            'min_ms': float(np.min(samples)),
            'max_ms': float(np.max(samples)),
            'mean_ms': float(np.mean(samples)),
            'jitter_ms': float(np.std(samples)),
        }


class MeasurementLoop:
    """Collects ``target_samples`` correlated round trips over ``session``."""

    def __init__(self, session: Session, builder: Optional[ProbeBuilder] = None,
                 target_samples: int = DEFAULT_TARGET_SAMPLES,
                 max_attempts: int = DEFAULT_MAX_ATTEMPTS,
                 timeout: Optional[float] = None,
                 clock: Callable[[], int] = time.monotonic_ns,
                 cancel: Optional[threading.Event] = None,
                 max_packet_len: int = MIN_MTU):
        if target_samples < 1:
            raise ValueError("target_samples must be at least 1")
        if max_attempts < target_samples:
            raise ValueError("max_attempts must not be less than target_samples")
        if timeout is not None and timeout <= 0:
            raise ValueError("timeout must be positive or None")

        self.logger = logging.getLogger(__name__)
        self.session = session
        self.builder = builder if builder is not None else ProbeBuilder()
        self.target_samples = target_samples
        self.max_attempts = max_attempts
        self.timeout = timeout
        self.clock = clock
        self.cancel = cancel
        self.max_packet_len = max_packet_len

    def run(self) -> MeasurementResult:
        samples = []
        attempts = 0

        while len(samples) < self.target_samples and attempts < self.max_attempts:
            if self.cancel is not None and self.cancel.is_set():
                raise MeasurementCancelled("Measurement cancelled")

            attempts += 1
            trial = self._attempt()

            if trial.outcome is TrialOutcome.SUCCESS:
                samples.append(trial.elapsed_ns)
                self.logger.debug(
                    f"Attempt {attempts}: id={trial.correlation_id:#018x} "
                    f"rtt={trial.elapsed_ns / NS_PER_MS:.3f}ms"
                )
            else:
                self.logger.debug(
                    f"Attempt {attempts}: id={trial.correlation_id:#018x} "
                    f"discarded ({trial.outcome.value})"
                )

        if len(samples) < self.target_samples:
            self.logger.warning(
                f"Attempt budget exhausted: {len(samples)}/{self.target_samples} "
                f"samples after {attempts} attempts"
            )
            raise BudgetExhaustedError(len(samples), attempts, self.target_samples)

        result = MeasurementResult(samples_ns=tuple(samples), attempts=attempts)
        self.logger.info(
            f"Collected {result.successful_samples} samples in {attempts} attempts, "
            f"average RTT {result.average_rtt_ms:.3f}ms"
        )
        return result

    def _attempt(self) -> Trial:
        correlation_id, request = self.builder.build_probe()
        packet = echo_request_packet(self.session.local, self.session.remote, request)
        data = encode_packet(packet, max_len=self.max_packet_len)

        # A reply that missed an earlier deadline must not be read as this one's
        self.session.discard_pending()

        sent_at = self.clock()
        self.session.send(data)

        try:
            reply = self.session.receive(self.timeout, self.cancel)
        except ReceiveTimeout:
            return Trial(correlation_id, sent_at, None, TrialOutcome.TIMEOUT)
        received_at = self.clock()

        reply_id = validate_reply(decode_packet(reply))

        if reply_id != correlation_id:
            return Trial(correlation_id, sent_at, received_at, TrialOutcome.MISMATCH)
        return Trial(correlation_id, sent_at, received_at, TrialOutcome.SUCCESS)


def run(session: Session, target_samples: int = DEFAULT_TARGET_SAMPLES,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS, **kwargs) -> MeasurementResult:
    """Run a single measurement batch over ``session``."""
    return MeasurementLoop(session, target_samples=target_samples,
                           max_attempts=max_attempts, **kwargs).run()
