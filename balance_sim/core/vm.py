# core/vm.py
"""
Local execution on pyrevm.

Every run builds a fresh pyrevm ``EVM`` on its in-memory database and loads
the materialized accounts of a ``StateView`` into it. pyrevm cannot call
back into Python for missing state, so a remote-backed view is served by
re-execution: the run is traced, accounts and storage cells the trace used
but the view has not materialized are fetched through the view's provider,
and the run repeats until it touches nothing new. The view only ever gains
fetched pre-state; what the transactions write stays inside the discarded
``EVM``.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import structlog
from eth_utils import keccak, to_checksum_address
from pyrevm import EVM, AccountInfo, BlockEnv as RevmBlockEnv, Env

from ..errors import StateFetchError
from .state import StateView, ZERO_ADDRESS
from .trace import capture_trace, touched_state

logger = structlog.get_logger()

DEFAULT_GAS_LIMIT = 30_000_000
MAX_FETCH_ROUNDS = 64

# pyrevm raises RuntimeError with revm's Debug rendering of a failed result
_REVERT_PATTERN = re.compile(r"Revert \{.*?output: 0x([0-9a-fA-F]*)")
_HALT_PATTERN = re.compile(r"Halt \{ reason: (\w+)")


class VMError(Exception):
    """pyrevm rejected the transaction or failed outside EVM semantics."""


@dataclass
class BlockEnv:
    number: int = 0
    timestamp: int = 0
    coinbase: bytes = ZERO_ADDRESS
    gas_limit: int = DEFAULT_GAS_LIMIT
    prev_randao: int = 0


@dataclass
class Transaction:
    caller: bytes
    to: bytes
    data: bytes = b""
    value: int = 0
    gas_limit: int = DEFAULT_GAS_LIMIT


@dataclass
class ExecutionResult:
    success: bool
    output: bytes = b""
    halt_reason: Optional[str] = None

    @property
    def reverted(self) -> bool:
        return not self.success and self.halt_reason is None


@dataclass
class Run:
    """Results of one sequence of transactions, one entry per transaction."""

    results: List[ExecutionResult]
    traces: List[List[dict]] = field(default_factory=list)
    rounds: int = 1

    @property
    def result(self) -> ExecutionResult:
        return self.results[-1]


def result_from_error(message: str) -> ExecutionResult:
    """
    Turn pyrevm's error for a failed call into a result.

    Raises:
        VMError: the message is neither a revert nor an exceptional halt
    """
    revert = _REVERT_PATTERN.search(message)
    if revert:
        return ExecutionResult(success=False, output=bytes.fromhex(revert.group(1)))
    halt = _HALT_PATTERN.search(message)
    if halt:
        return ExecutionResult(success=False, halt_reason=halt.group(1))
    raise VMError(message)


class LocalVM:
    """
    Args:
        view: Accounts to execute against; remote-backed views are extended with fetched state
        block: Block context; the base fee is always zero, as for eth_call
    """

    def __init__(self, view: StateView, block: Optional[BlockEnv] = None):
        self.view = view
        self.block = block or BlockEnv()

    def run(self, transactions: Sequence[Transaction], trace: bool = False) -> Run:
        """
        Execute ``transactions`` in order; each sees the writes of the ones before.

        Args:
            transactions: Calls to execute
            trace: Keep the step trace of each transaction on the returned run

        Raises:
            StateFetchError: state could not be fetched or did not settle
            VMError: pyrevm rejected a transaction
        """
        for tx in transactions:
            self.view.load_account(tx.caller)
            self.view.load_account(tx.to)

        if not self.view.is_remote_backed:
            return self._execute(transactions, trace)

        for rounds in range(1, MAX_FETCH_ROUNDS + 1):
            run = self._execute(transactions, True)
            fetched = self._materialize(transactions, run.traces)
            if not fetched:
                run.rounds = rounds
                if not trace:
                    run.traces = []
                return run
            logger.debug("Fetched state touched by local run", round=rounds, fetched=fetched)

        raise StateFetchError(
            f"state touched by local execution did not settle after {MAX_FETCH_ROUNDS} rounds"
        )

    def _execute(self, transactions: Sequence[Transaction], trace: bool) -> Run:
        evm = self._load_evm(trace)
        run = Run(results=[])
        for tx in transactions:
            if trace:
                with capture_trace() as steps:
                    result = self._message_call(evm, tx)
                run.traces.append(steps)
            else:
                result = self._message_call(evm, tx)
            run.results.append(result)
        return run

    def _message_call(self, evm: EVM, tx: Transaction) -> ExecutionResult:
        try:
            output = evm.message_call(
                caller=to_checksum_address(tx.caller),
                to=to_checksum_address(tx.to),
                calldata=tx.data,
                value=tx.value,
                gas=min(tx.gas_limit, self.block.gas_limit),
            )
        except RuntimeError as e:
            return result_from_error(str(e))
        return ExecutionResult(success=True, output=bytes(output))

    def _load_evm(self, tracing: bool) -> EVM:
        block = self.block
        evm = EVM(
            env=Env(
                block=RevmBlockEnv(
                    number=block.number,
                    coinbase=to_checksum_address(block.coinbase),
                    timestamp=block.timestamp,
                    prevrandao=block.prev_randao.to_bytes(32, "big"),
                    basefee=0,
                    gas_limit=block.gas_limit,
                    excess_blob_gas=0,
                )
            ),
            tracing=tracing,
        )
        for address, account in self.view.accounts.items():
            checksummed = to_checksum_address(address)
            evm.insert_account_info(
                checksummed,
                AccountInfo(
                    balance=account.balance,
                    nonce=account.nonce,
                    code_hash=keccak(account.code),
                    code=account.code,
                ),
            )
            for slot, value in account.storage.items():
                evm.insert_account_storage(checksummed, slot, value)
        return evm

    def _materialize(self, transactions: Sequence[Transaction], traces: List[List[dict]]) -> int:
        """Fetch what the traces used but the view lacks. Returns the number of fetches."""
        fetched = 0
        for tx, steps in zip(transactions, traces):
            accounts, slots = touched_state(steps, tx.to)
            for address in sorted(accounts):
                if address not in self.view:
                    fetched += 1
                # hits are marked as recently used
                self.view.load_account(address)
            for address, slot in sorted(slots):
                if self.view.peek_storage(address, slot) is None:
                    self.view.get_storage(address, slot)
                    fetched += 1
        return fetched
