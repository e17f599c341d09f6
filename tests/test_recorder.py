# tests/test_recorder.py
from balance_sim.core.opcodes import Opcode
from balance_sim.core.state import StateView
from balance_sim.slots.recorder import SloadRecorder, SlotWithAddress
from balance_sim.slots.tester import run_balance_query

from . import contracts
from .chain import FRONT, HOLDER, LEDGER, PROXY, TOKEN


def record(view: StateView, token: bytes) -> SloadRecorder:
    recorder = SloadRecorder()
    run = run_balance_query(view, token, HOLDER, trace=True)
    assert run.result.success
    recorder.record(run.traces[0], token)
    return recorder


def step(opcode: Opcode, depth: int, *stack: int) -> dict:
    # EIP-3155 layout: bottom of the stack first
    return {
        "op": int(opcode),
        "opName": opcode.name,
        "depth": depth,
        "stack": [hex(item) for item in reversed(stack)],
    }


def test_records_every_read_of_plain_token(remote_view):
    recorder = record(remote_view, TOKEN)
    holder_slot = contracts.mapping_slot(HOLDER, contracts.BALANCES_SLOT)
    assert recorder.candidates == [
        SlotWithAddress(TOKEN, 0),
        SlotWithAddress(TOKEN, 1),
        SlotWithAddress(TOKEN, holder_slot),
    ]
    assert recorder.sload_count == 3


def test_delegated_reads_are_attributed_to_proxy_storage(remote_view):
    recorder = record(remote_view, PROXY)
    addresses = {candidate.address for candidate in recorder.candidates}
    assert addresses == {PROXY}
    assert SlotWithAddress(PROXY, contracts.EIP1967_IMPLEMENTATION_SLOT) in recorder.slots


def test_reads_after_nested_call_return_to_caller(remote_view):
    recorder = record(remote_view, FRONT)
    holder_slot = contracts.mapping_slot(HOLDER, contracts.BALANCES_SLOT)
    assert recorder.candidates == [
        SlotWithAddress(FRONT, contracts.LEDGER_ADDRESS_SLOT),
        SlotWithAddress(LEDGER, 0),
        SlotWithAddress(LEDGER, 1),
        SlotWithAddress(LEDGER, holder_slot),
        SlotWithAddress(FRONT, contracts.FRONT_TRAILING_SLOT),
    ]


def test_duplicate_reads_collapse(remote_view):
    recorder = SloadRecorder()
    for _ in range(2):
        run = run_balance_query(remote_view, TOKEN, HOLDER, trace=True)
        recorder.record(run.traces[0], TOKEN)
    assert len(recorder.candidates) == 3
    assert recorder.sload_count == 6
    assert len(recorder.candidates) <= recorder.sload_count


def test_tracing_does_not_change_the_answer(remote_view):
    plain = run_balance_query(remote_view, LEDGER, HOLDER).result
    traced = run_balance_query(remote_view, LEDGER, HOLDER, trace=True).result
    assert plain.output == traced.output
    assert int.from_bytes(traced.output, "big") == 7


def test_synthetic_trace_follows_call_depths():
    callee = int.from_bytes(LEDGER, "big")
    steps = [
        step(Opcode.SLOAD, 1, 5),
        # CALL: gas, address, ...
        step(Opcode.CALL, 1, 50_000, callee, 0, 0, 0, 0, 0),
        step(Opcode.SLOAD, 2, 6),
        step(Opcode.DELEGATECALL, 2, 50_000, int.from_bytes(TOKEN, "big"), 0, 0, 0, 0),
        step(Opcode.SLOAD, 3, 7),
        step(Opcode.SLOAD, 1, 8),
    ]
    recorder = SloadRecorder()
    recorder.record(steps, FRONT)
    assert recorder.candidates == [
        SlotWithAddress(FRONT, 5),
        SlotWithAddress(LEDGER, 6),
        SlotWithAddress(LEDGER, 7),
        SlotWithAddress(FRONT, 8),
    ]


def test_keccak_spelling_and_short_stacks_are_tolerated():
    steps = [
        {"op": "KECCAK256", "depth": 1, "stack": ["0x0", "0x40"]},
        {"opName": "SLOAD", "depth": 1, "stack": []},
        {"opName": "SLOAD", "depth": 1, "stack": ["0x1"]},
    ]
    recorder = SloadRecorder()
    recorder.record(steps, TOKEN)
    assert recorder.candidates == [SlotWithAddress(TOKEN, 1)]
    assert recorder.sload_count == 1
