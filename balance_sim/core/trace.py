# core/trace.py
"""
EIP-3155 step traces printed by pyrevm.

With ``tracing=True`` pyrevm prints one JSON object per executed
instruction: ``pc``, ``op``, ``opName``, ``depth`` and the stack (bottom
first, values as hex strings), followed by a summary object without a
stack. pyrevm writes through Python's ``print``; the stdout file descriptor
is captured as well so a tracer writing to the process's stdout is read the
same way. Both are process-wide, so captures are serialized by a module lock.
"""

import io
import json
import os
import sys
import tempfile
import threading
from contextlib import contextmanager, redirect_stdout
from typing import IO, Dict, Iterable, Iterator, List, Optional, Set, Tuple

from .opcodes import OPCODE_NAMES, Opcode, opcode_from_name

ADDRESS_MASK = 2**160 - 1

CALL_OPCODES = (Opcode.CALL, Opcode.CALLCODE, Opcode.DELEGATECALL, Opcode.STATICCALL)
# opcodes whose top stack item is an account address
ACCOUNT_OPCODES = (
    Opcode.BALANCE,
    Opcode.EXTCODESIZE,
    Opcode.EXTCODECOPY,
    Opcode.EXTCODEHASH,
    Opcode.SELFDESTRUCT,
)
STORAGE_OPCODES = (Opcode.SLOAD, Opcode.SSTORE)

_capture_lock = threading.Lock()

STDOUT_FD = 1


def parse_trace(text: str) -> List[dict]:
    """Keep the per-instruction objects of a captured trace, in order."""
    steps = []
    for line in text.splitlines():
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            step = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(step, dict) and "stack" in step:
            steps.append(step)
    return steps


@contextmanager
def _redirect_fd(fd: int, sink: IO[bytes]) -> Iterator[None]:
    sys.stdout.flush()
    saved = os.dup(fd)
    os.dup2(sink.fileno(), fd)
    try:
        yield
    finally:
        os.dup2(saved, fd)
        os.close(saved)


@contextmanager
def capture_trace() -> Iterator[List[dict]]:
    """
    Collect the steps pyrevm prints inside the block.

    The yielded list is filled when the block exits.
    """
    steps: List[dict] = []
    buffer = io.StringIO()
    with _capture_lock, tempfile.TemporaryFile() as sink:
        with _redirect_fd(STDOUT_FD, sink), redirect_stdout(buffer):
            yield steps
        sink.seek(0)
        raw = sink.read().decode("utf-8", errors="replace")
    steps.extend(parse_trace(buffer.getvalue() + "\n" + raw))


def step_opcode(step: dict) -> Optional[Opcode]:
    op = step.get("op")
    if isinstance(op, int):
        return Opcode(op) if op in OPCODE_NAMES else None
    name = step.get("opName") or op
    if isinstance(name, str):
        return opcode_from_name(name.upper())
    return None


def stack_item(step: dict, index: int = 0) -> Optional[int]:
    """Stack word ``index`` positions below the top, or None when the stack is shorter."""
    stack = step.get("stack") or []
    if index >= len(stack):
        return None
    value = stack[-(index + 1)]
    if isinstance(value, int):
        return value
    return int(value, 16)


def word_to_address(word: int) -> bytes:
    return (word & ADDRESS_MASK).to_bytes(20, "big")


class CallContexts:
    """
    Storage address of each call depth of one transaction.

    The first step seen is the top-level frame and runs in ``top``'s storage.
    CALL and STATICCALL switch the next depth to the callee; DELEGATECALL and
    CALLCODE keep the caller's storage; the storage address of a CREATE
    frame is unknown before it runs and is left unset.
    """

    def __init__(self, top: bytes):
        self.top = top
        self._by_depth: Dict[int, Optional[bytes]] = {}

    def current(self, step: dict) -> Optional[bytes]:
        depth = step.get("depth", 1)
        if not self._by_depth:
            self._by_depth[depth] = self.top
        return self._by_depth.get(depth)

    def enter(self, step: dict, opcode: Optional[Opcode]) -> None:
        depth = step.get("depth", 1)
        if opcode in (Opcode.CALL, Opcode.STATICCALL):
            target = stack_item(step, 1)
            self._by_depth[depth + 1] = None if target is None else word_to_address(target)
        elif opcode in (Opcode.DELEGATECALL, Opcode.CALLCODE):
            self._by_depth[depth + 1] = self._by_depth.get(depth)
        elif opcode in (Opcode.CREATE, Opcode.CREATE2):
            self._by_depth[depth + 1] = None


def touched_state(
    steps: Iterable[dict], top: bytes
) -> Tuple[Set[bytes], Set[Tuple[bytes, int]]]:
    """
    Accounts and storage cells one transaction's trace depends on.

    Args:
        steps: Trace steps of a single transaction
        top: Address the transaction was sent to

    Returns:
        (accounts whose code or balance was used, (address, slot) pairs read or written)
    """
    accounts: Set[bytes] = set()
    slots: Set[Tuple[bytes, int]] = set()
    contexts = CallContexts(top)

    for step in steps:
        opcode = step_opcode(step)
        address = contexts.current(step)

        if opcode in STORAGE_OPCODES:
            slot = stack_item(step)
            if address is not None and slot is not None:
                slots.add((address, slot))
        elif opcode in CALL_OPCODES:
            target = stack_item(step, 1)
            if target is not None:
                accounts.add(word_to_address(target))
        elif opcode in ACCOUNT_OPCODES:
            target = stack_item(step)
            if target is not None:
                accounts.add(word_to_address(target))

        contexts.enter(step, opcode)

    return accounts, slots
