from .builder import EchoRequest, ProbeBuilder
from .measurement import MeasurementLoop, MeasurementResult, Trial, TrialOutcome, run
from .validator import validate_reply

__all__ = [
    "EchoRequest",
    "ProbeBuilder",
    "MeasurementLoop",
    "MeasurementResult",
    "Trial",
    "TrialOutcome",
    "run",
    "validate_reply",
]
