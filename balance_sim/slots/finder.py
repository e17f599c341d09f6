# slots/finder.py
from typing import Optional

import structlog
from eth_utils import to_checksum_address

from ..core.state import StateView
from ..core.vm import BlockEnv, VMError
from ..errors import InspectionError, SlotNotFoundError, StateFetchError
from ..ethereum.erc20 import decode_revert_reason
from .recorder import SloadRecorder, SlotWithAddress
from .tester import check_candidate, returned_balance, run_balance_query

logger = structlog.get_logger()


def find_balance_slot(
    token: bytes,
    holder: bytes,
    view: StateView,
    block: Optional[BlockEnv] = None,
) -> SlotWithAddress:
    """
    Discover the storage cell that holds ``holder``'s balance of ``token``.

    The balance query runs once, traced, against ``view`` (fetching
    whatever it needs). Every recorded read is then tested on an isolated
    copy of the materialized accounts, so testing never touches the network
    or ``view`` itself.

    Args:
        token: ERC20 contract address
        holder: Account whose balance slot is wanted
        view: Remote-backed (or fully materialized) state
        block: Block context for the balance queries

    Returns:
        The first candidate that reflects the marker value

    Raises:
        InspectionError: the recorded query failed or returned no balance
        SlotNotFoundError: no candidate reflected the marker
    """
    token_label = to_checksum_address(token)
    holder_label = to_checksum_address(holder)

    try:
        run = run_balance_query(view, token, holder, block, trace=True)
    except (StateFetchError, VMError) as e:
        raise InspectionError(token_label, str(e)) from e

    result = run.result
    if returned_balance(result) is None:
        if result.halt_reason is not None:
            reason = f"halted: {result.halt_reason}"
        elif not result.success:
            reason = decode_revert_reason(result.output)
        else:
            reason = "balanceOf returned no value"
        raise InspectionError(token_label, reason)

    recorder = SloadRecorder()
    recorder.record(run.traces[0], token)
    candidates = recorder.candidates
    logger.debug(
        "Recorded balance query",
        token=token_label,
        holder=holder_label,
        sloads=recorder.sload_count,
        candidates=len(candidates),
        rounds=run.rounds,
    )

    replica = view.isolated_copy()
    for candidate in candidates:
        if check_candidate(candidate, token, holder, replica, block):
            logger.info(
                "Found balance slot",
                token=token_label,
                holder=holder_label,
                address=to_checksum_address(candidate.address),
                slot=hex(candidate.slot),
            )
            return candidate

    raise SlotNotFoundError(token_label, holder_label, len(candidates))
