"""
scionlat - SCION RTT and latency probe

Sends SCMP echo requests between two SCION endpoints, correlates the replies
by their 64-bit id and averages the round trip over a fixed number of samples.
"""

__version__ = "1.0.0"
__author__ = "scionlat Authors"
__license__ = "MIT"

from .core.config import Config
from .core.logger import setup_logging
from .probe.measurement import MeasurementLoop, MeasurementResult, run

__all__ = ["Config", "setup_logging", "MeasurementLoop", "MeasurementResult", "run"]
