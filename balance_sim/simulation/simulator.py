# simulation/simulator.py
"""
Simulation orchestrator.

One simulation runs strictly in sequence: check out the chain's cached
accounts, discover the token's balance slot for the user, override it with
the requested amount, then try the remote eth_callMany path and fall back
to local execution when the remote path fails for infrastructural reasons.
A reverted target call is a normal outcome on either path; only the failure
of both paths is raised.
"""

import asyncio
from typing import Any, Callable, Optional, TypeVar, Union

import structlog
from eth_utils import to_checksum_address

from ..config import SimulatorConfig
from ..core.state import StateView
from ..core.vm import BlockEnv, LocalVM, Transaction, VMError
from ..errors import (
    ApproveFailedError,
    BothPathsFailedError,
    LocalSimulationError,
    PathError,
    RemoteSimulationError,
    StateFetchError,
)
from ..ethereum.call_many import (
    Bundle,
    CallManyError,
    CallManyTransaction,
    EthCallMany,
    SimulationContext,
    StateOverride,
)
from ..ethereum.erc20 import decode_bool, encode_approve
from ..ethereum.provider import RpcStateProvider
from ..slots.finder import find_balance_slot
from ..slots.recorder import SlotWithAddress
from .cache import ChainStateCache
from .outcome import ExecutionOutcome, ResultSource, SimulationResult
from .params import SimulationParams

logger = structlog.get_logger()

T = TypeVar("T")


async def run_in_worker(func: Callable[..., T], *args: Any) -> T:
    """
    Run ``func`` in a worker thread and wait for it.

    A worker thread cannot be stopped, so cancelling the caller still waits
    for ``func`` to return before the cancellation propagates. State the
    worker writes to is therefore never released while it is in use.
    """
    future = asyncio.ensure_future(asyncio.to_thread(func, *args))
    try:
        return await asyncio.shield(future)
    except asyncio.CancelledError:
        while not future.done():
            try:
                await asyncio.wait({future})
            except asyncio.CancelledError:
                continue
        if not future.cancelled():
            # consumed so a failure after cancellation is not reported as unhandled
            future.exception()
        raise


class Simulator:
    """
    Args:
        config: Timeouts, gas budget and cache bound
        cache: Shared per-chain account cache; one is created when omitted
        provider_factory: rpc_url -> state provider used for discovery and local execution
        call_many_factory: rpc_url -> eth_callMany client used for the remote path
    """

    def __init__(
        self,
        config: Optional[SimulatorConfig] = None,
        cache: Optional[ChainStateCache] = None,
        provider_factory: Optional[Callable[[str], RpcStateProvider]] = None,
        call_many_factory: Optional[Callable[[str], EthCallMany]] = None,
    ):
        self.config = config or SimulatorConfig()
        self.cache = cache or ChainStateCache(self.config.max_cached_accounts)
        self.provider_factory = provider_factory or (
            lambda url: RpcStateProvider(url, self.config.rpc_timeout_seconds)
        )
        self.call_many_factory = call_many_factory or EthCallMany

    async def simulate(
        self,
        user: str,
        token_in: str,
        spender_or_target: str,
        calldata: str,
        amount_in: Union[str, int],
        chain_id: Union[str, int],
        rpc_url: str,
    ) -> SimulationResult:
        """Validate string inputs and run the simulation."""
        params = SimulationParams.parse(
            user, token_in, spender_or_target, calldata, amount_in, chain_id, rpc_url
        )
        return await self.run(params)

    async def run(self, params: SimulationParams) -> SimulationResult:
        log = logger.bind(
            chain_id=params.chain_id,
            token=to_checksum_address(params.token_in),
            user=to_checksum_address(params.user),
            target=to_checksum_address(params.spender_or_target),
        )
        provider = self.provider_factory(params.rpc_url)
        call_many = self.call_many_factory(params.rpc_url)

        async with self.cache.checkout(params.chain_id) as accounts:
            block = await run_in_worker(provider.get_latest_block)
            view = StateView(accounts, provider, block.number)
            log.info("Simulation started", block=block.number, cached_accounts=len(accounts))

            slot = await run_in_worker(
                find_balance_slot, params.token_in, params.user, view, block
            )
            view.set_storage(slot.address, slot.slot, params.amount_in)

            try:
                outcome = await self._simulate_remote(call_many, params, slot, block)
            except PathError as e:
                remote_error = e
                log.warning(
                    "Remote simulation failed, falling back to local execution",
                    error=str(e),
                )
            else:
                log.info("Remote simulation finished", outcome=outcome.kind.value)
                return SimulationResult(outcome, ResultSource.REMOTE, slot, block.number)

            try:
                outcome = await run_in_worker(self._simulate_local, view, params, block)
            except PathError as local_error:
                log.error(
                    "Both simulation paths failed",
                    remote_error=str(remote_error),
                    local_error=str(local_error),
                )
                raise BothPathsFailedError(remote_error, local_error) from local_error

            log.info("Local simulation finished", outcome=outcome.kind.value)
            return SimulationResult(
                outcome, ResultSource.LOCAL, slot, block.number, remote_error=remote_error
            )

    async def _simulate_remote(
        self,
        call_many: EthCallMany,
        params: SimulationParams,
        slot: SlotWithAddress,
        block: BlockEnv,
    ) -> ExecutionOutcome:
        """
        Submit [approve(max), target] as one bundle with the balance override
        passed as a state diff.

        Raises:
            RemoteSimulationError: transport error, timeout or malformed reply
            ApproveFailedError: the approve transaction reported an error
        """
        bundle = Bundle(
            transactions=[
                CallManyTransaction(
                    from_address=params.user,
                    to=params.token_in,
                    data=encode_approve(params.spender_or_target),
                ),
                CallManyTransaction(
                    from_address=params.user,
                    to=params.spender_or_target,
                    data=params.calldata,
                ),
            ]
        )
        overrides = {slot.address: StateOverride(state_diff={slot.slot: params.amount_in})}
        context = SimulationContext(block_number=block.number)
        wait = self.config.remote_wait_seconds

        try:
            results = await asyncio.wait_for(
                call_many.call_many([bundle], context, overrides, self.config.remote_timeout_ms),
                timeout=wait,
            )
        except asyncio.TimeoutError:
            raise RemoteSimulationError(f"no reply within {wait:.1f}s") from None
        except CallManyError as e:
            raise RemoteSimulationError(str(e)) from e

        if len(results) != 1 or len(results[0]) != 2:
            raise RemoteSimulationError(
                f"expected one bundle with two responses, got {[len(r) for r in results]}"
            )
        approve_response, target_response = results[0]
        if approve_response.is_error:
            raise ApproveFailedError("remote", approve_response.error)
        if target_response.is_error:
            return ExecutionOutcome.reverted(target_response.error)
        return ExecutionOutcome.success(target_response.value)

    def _simulate_local(
        self, view: StateView, params: SimulationParams, block: BlockEnv
    ) -> ExecutionOutcome:
        """
        Run approve(max) and then the target call in one local EVM, so the
        target sees the allowance. Neither transaction writes to ``view``.

        Raises:
            LocalSimulationError: state could not be fetched or pyrevm rejected a transaction
            ApproveFailedError: approve reverted, halted or returned false
        """
        gas_limit = self.config.gas_limit
        transactions = [
            Transaction(
                caller=params.user,
                to=params.token_in,
                data=encode_approve(params.spender_or_target),
                gas_limit=gas_limit,
            ),
            Transaction(
                caller=params.user,
                to=params.spender_or_target,
                data=params.calldata,
                gas_limit=gas_limit,
            ),
        ]
        try:
            run = LocalVM(view, block).run(transactions)
        except StateFetchError as e:
            raise LocalSimulationError(str(e)) from e
        except VMError as e:
            raise LocalSimulationError(f"transaction rejected: {e}") from e
        except Exception as e:
            logger.exception("Local execution failed", error=str(e))
            raise LocalSimulationError(f"local engine error: {e}") from e

        approve, result = run.results
        if not approve.success:
            raise ApproveFailedError("local", ExecutionOutcome.from_result(approve).reason)
        if decode_bool(approve.output) is False:
            raise ApproveFailedError("local", "approve returned false")
        return ExecutionOutcome.from_result(result)


_default_simulator: Optional[Simulator] = None


def get_default_simulator() -> Simulator:
    """Process-wide simulator configured from the environment."""
    global _default_simulator
    if _default_simulator is None:
        _default_simulator = Simulator(SimulatorConfig.from_env())
    return _default_simulator


async def simulate(
    user: str,
    token_in: str,
    spender_or_target: str,
    calldata: str,
    amount_in: Union[str, int],
    chain_id: Union[str, int],
    rpc_endpoint: str,
) -> SimulationResult:
    """
    Give ``user`` ``amount_in`` of ``token_in`` and simulate approve + target call.

    Returns:
        SimulationResult whose ``status`` tells which path produced the outcome

    Raises:
        ValidationError: malformed input
        StateFetchError: the latest block could not be fetched
        DiscoveryError: the balance slot could not be discovered
        BothPathsFailedError: neither path produced an outcome
    """
    return await get_default_simulator().simulate(
        user, token_in, spender_or_target, calldata, amount_in, chain_id, rpc_endpoint
    )
