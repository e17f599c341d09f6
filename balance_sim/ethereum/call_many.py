# ethereum/call_many.py
"""
Client for the ``eth_callMany`` batch simulation endpoint.

The endpoint executes bundles of transactions in sequence on top of a block,
with optional per-account state overrides, and returns one response per
transaction without committing anything.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import structlog
from eth_utils import to_bytes, to_checksum_address, to_hex
from web3 import AsyncWeb3

logger = structlog.get_logger()

DEFAULT_TIMEOUT_MS = 5000


class CallManyError(Exception):
    """Transport failure, RPC error or malformed reply from eth_callMany."""


def _hex32(value: int) -> str:
    return "0x" + value.to_bytes(32, "big").hex()


def _drop_none(values: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


@dataclass
class CallManyTransaction:
    from_address: Optional[bytes] = None
    to: Optional[bytes] = None
    gas: Optional[int] = None
    gas_price: Optional[int] = None
    value: Optional[int] = None
    data: Optional[bytes] = None

    def to_rpc(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "from": to_checksum_address(self.from_address) if self.from_address else None,
                "to": to_checksum_address(self.to) if self.to else None,
                "gas": to_hex(self.gas) if self.gas is not None else None,
                "gasPrice": to_hex(self.gas_price) if self.gas_price is not None else None,
                "value": to_hex(self.value) if self.value is not None else None,
                "data": to_hex(self.data) if self.data is not None else None,
            }
        )


@dataclass
class BlockOverride:
    block_number: Optional[int] = None
    block_hash: Optional[str] = None
    coinbase: Optional[bytes] = None
    timestamp: Optional[int] = None
    difficulty: Optional[int] = None
    gas_limit: Optional[int] = None
    base_fee: Optional[int] = None

    def to_rpc(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "blockNumber": self.block_number,
                "blockHash": self.block_hash,
                "coinbase": to_checksum_address(self.coinbase) if self.coinbase else None,
                "timestamp": self.timestamp,
                "difficulty": to_hex(self.difficulty) if self.difficulty is not None else None,
                "gasLimit": to_hex(self.gas_limit) if self.gas_limit is not None else None,
                "baseFee": to_hex(self.base_fee) if self.base_fee is not None else None,
            }
        )


@dataclass
class Bundle:
    transactions: List[CallManyTransaction]
    block_override: Optional[BlockOverride] = None

    def to_rpc(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"transactions": [tx.to_rpc() for tx in self.transactions]}
        if self.block_override is not None:
            payload["blockOverride"] = self.block_override.to_rpc()
        return payload


@dataclass
class StateOverride:
    balance: Optional[int] = None
    nonce: Optional[int] = None
    code: Optional[bytes] = None
    # slot -> value, serialized as 32-byte hex on both sides
    state: Optional[Dict[int, int]] = None
    state_diff: Optional[Dict[int, int]] = None

    def to_rpc(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "balance": to_hex(self.balance) if self.balance is not None else None,
                "nonce": self.nonce,
                "code": to_hex(self.code) if self.code is not None else None,
                "state": (
                    {_hex32(k): _hex32(v) for k, v in self.state.items()}
                    if self.state is not None
                    else None
                ),
                "stateDiff": (
                    {_hex32(k): _hex32(v) for k, v in self.state_diff.items()}
                    if self.state_diff is not None
                    else None
                ),
            }
        )


@dataclass
class SimulationContext:
    block_number: Union[int, str] = "latest"
    transaction_index: Optional[int] = None

    def to_rpc(self) -> Dict[str, Any]:
        block = to_hex(self.block_number) if isinstance(self.block_number, int) else self.block_number
        payload: Dict[str, Any] = {"blockNumber": block}
        if self.transaction_index is not None:
            payload["transactionIndex"] = self.transaction_index
        return payload


@dataclass
class TransactionResponse:
    """Either a hex return value or an error string, never both."""

    value: Optional[bytes] = None
    error: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @classmethod
    def from_rpc(cls, raw: Any) -> "TransactionResponse":
        if isinstance(raw, dict):
            if "value" in raw:
                try:
                    return cls(value=to_bytes(hexstr=raw["value"] or "0x"))
                except (TypeError, ValueError) as e:
                    raise CallManyError(f"malformed return value: {raw['value']!r}") from e
            if "error" in raw:
                error = raw["error"]
                return cls(error=error if isinstance(error, str) else str(error))
        raise CallManyError(f"malformed transaction response: {raw!r}")


class EthCallMany:
    """
    Async eth_callMany client.

    Args:
        rpc_url: HTTP(S) endpoint of a node exposing eth_callMany
    """

    def __init__(self, rpc_url: str):
        self.rpc_url = rpc_url
        self.web3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))

    async def call_many(
        self,
        bundles: List[Bundle],
        context: SimulationContext,
        overrides: Optional[Dict[bytes, StateOverride]] = None,
        timeout_ms: Optional[int] = DEFAULT_TIMEOUT_MS,
    ) -> List[List[TransactionResponse]]:
        """
        Execute bundles in sequence.

        Returns:
            One list per bundle, one TransactionResponse per transaction
        """
        params = [
            [bundle.to_rpc() for bundle in bundles],
            context.to_rpc(),
            (
                {to_checksum_address(a): o.to_rpc() for a, o in overrides.items()}
                if overrides is not None
                else None
            ),
            timeout_ms,
        ]
        logger.debug(
            "Submitting eth_callMany",
            rpc_url=self.rpc_url,
            bundles=len(bundles),
            transactions=sum(len(b.transactions) for b in bundles),
        )

        try:
            response = await self.web3.provider.make_request("eth_callMany", params)
        except Exception as e:
            raise CallManyError(f"eth_callMany transport error: {e}") from e

        if "error" in response:
            raise CallManyError(f"eth_callMany error: {response['error']}")
        if "result" not in response or not isinstance(response["result"], list):
            raise CallManyError("unexpected eth_callMany reply: 'result' list missing")

        results = []
        for bundle_result in response["result"]:
            if not isinstance(bundle_result, list):
                raise CallManyError(f"malformed bundle result: {bundle_result!r}")
            results.append([TransactionResponse.from_rpc(item) for item in bundle_result])
        return results
