# slots/recorder.py
from dataclasses import dataclass
from typing import Dict, Iterable, List

from eth_utils import to_checksum_address

from ..core.opcodes import Opcode
from ..core.trace import CallContexts, stack_item, step_opcode


@dataclass(frozen=True)
class SlotWithAddress:
    """A single persistent storage cell: contract address plus 256-bit slot key."""

    address: bytes
    slot: int

    def __str__(self) -> str:
        return f"{to_checksum_address(self.address)}:{self.slot:#x}"


class SloadRecorder:
    """
    Records every SLOAD target of a traced execution, attributed to the
    account whose storage is being read.

    The storage context is kept per call depth: CALL and STATICCALL move the
    next depth to the callee, DELEGATECALL and CALLCODE keep the caller's
    storage, and steps back at a shallower depth read the caller's storage
    again once a nested call returns.
    """

    def __init__(self):
        # insertion-ordered set
        self.slots: Dict[SlotWithAddress, None] = {}
        self.sload_count = 0

    @property
    def candidates(self) -> List[SlotWithAddress]:
        return list(self.slots)

    def record(self, steps: Iterable[dict], top: bytes) -> None:
        """
        Args:
            steps: EIP-3155 steps of one transaction
            top: Address the transaction was sent to
        """
        contexts = CallContexts(top)
        for step in steps:
            opcode = step_opcode(step)
            address = contexts.current(step)
            if opcode == Opcode.SLOAD:
                slot = stack_item(step)
                if address is not None and slot is not None:
                    self.sload_count += 1
                    self.slots.setdefault(SlotWithAddress(address, slot), None)
            contexts.enter(step, opcode)
