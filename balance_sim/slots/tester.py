# slots/tester.py
"""
Confirms balance slot candidates by mutation.

A candidate is confirmed when writing the marker value into it makes
``balanceOf(holder)`` return exactly the marker. Every test restores the
slot to its prior state, including the difference between "absent" and
"present with value zero", so candidates are never tested cumulatively.
"""

from typing import Optional

import structlog

from ..core.state import StateView, ZERO_ADDRESS
from ..core.vm import BlockEnv, ExecutionResult, LocalVM, Run, Transaction
from ..ethereum.erc20 import decode_uint256, encode_balance_of
from .recorder import SlotWithAddress

logger = structlog.get_logger()

# Far outside any plausible real balance and not a round number
MARKER_VALUE = 1234567890


def run_balance_query(
    view: StateView,
    token: bytes,
    holder: bytes,
    block: Optional[BlockEnv] = None,
    trace: bool = False,
) -> Run:
    """Execute ``token.balanceOf(holder)`` from the zero address."""
    tx = Transaction(caller=ZERO_ADDRESS, to=token, data=encode_balance_of(holder))
    return LocalVM(view, block).run([tx], trace=trace)


def returned_balance(result: ExecutionResult) -> Optional[int]:
    """Balance reported by a balance query, or None unless it returned at least one word."""
    if not result.success:
        return None
    return decode_uint256(result.output)


def check_candidate(
    candidate: SlotWithAddress,
    token: bytes,
    holder: bytes,
    replica: StateView,
    block: Optional[BlockEnv] = None,
) -> bool:
    """
    Test one candidate against an isolated replica.

    Args:
        candidate: Storage cell to mutate
        token: Token contract the balance query is sent to
        holder: Account whose balance is queried
        replica: Isolated (non remote-backed) state; restored before returning
        block: Block context for the query

    Returns:
        True if the query returned exactly the marker value
    """
    prior = replica.peek_storage(candidate.address, candidate.slot)
    replica.set_storage(candidate.address, candidate.slot, MARKER_VALUE)
    try:
        balance = returned_balance(run_balance_query(replica, token, holder, block).result)
    except Exception as e:
        logger.debug("Candidate query failed", candidate=str(candidate), error=str(e))
        return False
    finally:
        if prior is None:
            replica.remove_storage(candidate.address, candidate.slot)
        else:
            replica.set_storage(candidate.address, candidate.slot, prior)

    confirmed = balance == MARKER_VALUE
    logger.debug("Tested candidate", candidate=str(candidate), balance=balance, confirmed=confirmed)
    return confirmed
