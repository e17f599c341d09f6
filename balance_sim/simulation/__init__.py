from .cache import ChainStateCache
from .outcome import (
    ExecutionOutcome,
    OutcomeKind,
    ResultSource,
    SimulationResult,
    SimulationStatus,
)
from .params import SimulationParams
from .simulator import Simulator, simulate

__all__ = [
    "ChainStateCache",
    "ExecutionOutcome",
    "OutcomeKind",
    "ResultSource",
    "SimulationParams",
    "SimulationResult",
    "SimulationStatus",
    "Simulator",
    "simulate",
]
