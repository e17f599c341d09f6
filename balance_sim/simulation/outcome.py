# simulation/outcome.py
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from eth_utils import to_checksum_address

from ..core.vm import ExecutionResult
from ..errors import PathError
from ..ethereum.erc20 import decode_revert_reason
from ..slots.recorder import SlotWithAddress


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    REVERTED = "reverted"


class ResultSource(str, Enum):
    REMOTE = "remote"
    LOCAL = "local"


class SimulationStatus(str, Enum):
    REMOTE_SUCCESS = "remote_success"
    REMOTE_REVERTED = "remote_reverted"
    REMOTE_FAILED_LOCAL_SUCCESS = "remote_failed_local_success"
    REMOTE_FAILED_LOCAL_REVERTED = "remote_failed_local_reverted"


@dataclass(frozen=True)
class ExecutionOutcome:
    """Result of the target call: returned bytes or a revert reason."""

    kind: OutcomeKind
    return_data: bytes = b""
    reason: Optional[str] = None

    @classmethod
    def success(cls, return_data: bytes) -> "ExecutionOutcome":
        return cls(OutcomeKind.SUCCESS, return_data=return_data)

    @classmethod
    def reverted(cls, reason: str) -> "ExecutionOutcome":
        return cls(OutcomeKind.REVERTED, reason=reason)

    @classmethod
    def from_result(cls, result: ExecutionResult) -> "ExecutionOutcome":
        if result.success:
            return cls.success(result.output)
        if result.halt_reason is not None:
            return cls.reverted(f"halted: {result.halt_reason}")
        return cls.reverted(decode_revert_reason(result.output))

    @property
    def is_success(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        if self.is_success:
            return {"kind": self.kind.value, "return_data": "0x" + self.return_data.hex()}
        return {"kind": self.kind.value, "reason": self.reason}


@dataclass
class SimulationResult:
    outcome: ExecutionOutcome
    source: ResultSource
    slot: SlotWithAddress
    block_number: int
    # set when the remote path failed and the outcome came from local execution
    remote_error: Optional[PathError] = None

    @property
    def status(self) -> SimulationStatus:
        if self.source is ResultSource.REMOTE:
            if self.outcome.is_success:
                return SimulationStatus.REMOTE_SUCCESS
            return SimulationStatus.REMOTE_REVERTED
        if self.outcome.is_success:
            return SimulationStatus.REMOTE_FAILED_LOCAL_SUCCESS
        return SimulationStatus.REMOTE_FAILED_LOCAL_REVERTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "source": self.source.value,
            "outcome": self.outcome.to_dict(),
            "slot": {
                "address": to_checksum_address(self.slot.address),
                "slot": hex(self.slot.slot),
            },
            "block_number": self.block_number,
            "remote_error": str(self.remote_error) if self.remote_error else None,
        }
