# ethereum/provider.py
from typing import Any, Callable

import structlog
from eth_utils import to_canonical_address, to_checksum_address
from web3 import Web3

from ..core.state import Account
from ..core.vm import BlockEnv
from ..errors import StateFetchError

logger = structlog.get_logger()


class RpcStateProvider:
    """
    Reads chain state over JSON-RPC. Every read is pinned to an explicit
    block number so a remote-backed view sees one consistent snapshot.
    """

    def __init__(self, rpc_url: str, timeout: float = 10.0):
        self.rpc_url = rpc_url
        self.web3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))

    def _fetch(self, what: str, fn: Callable[..., Any], *args, **kwargs) -> Any:
        try:
            return fn(*args, **kwargs)
        except Exception as e:
            logger.warning(
                "State fetch failed", what=what, rpc_url=self.rpc_url, error=str(e)
            )
            raise StateFetchError(f"failed to fetch {what} from {self.rpc_url}: {e}") from e

    def get_latest_block(self) -> BlockEnv:
        """Fetch the latest block and turn it into an execution context."""
        block = self._fetch("latest block", self.web3.eth.get_block, "latest")

        mix_hash = block.get("mixHash")
        env = BlockEnv(
            number=block["number"],
            timestamp=block["timestamp"],
            coinbase=to_canonical_address(block["miner"]),
            gas_limit=block["gasLimit"],
            prev_randao=int.from_bytes(bytes(mix_hash), "big") if mix_hash else 0,
        )
        logger.debug("Fetched latest block", number=env.number)
        return env

    def get_account(self, address: bytes, block_number: int) -> Account:
        checksum = to_checksum_address(address)
        eth = self.web3.eth
        balance = self._fetch("balance", eth.get_balance, checksum, block_identifier=block_number)
        nonce = self._fetch(
            "nonce", eth.get_transaction_count, checksum, block_identifier=block_number
        )
        code = self._fetch("code", eth.get_code, checksum, block_identifier=block_number)
        return Account(balance=balance, nonce=nonce, code=bytes(code))

    def get_storage_at(self, address: bytes, slot: int, block_number: int) -> int:
        value = self._fetch(
            "storage",
            self.web3.eth.get_storage_at,
            to_checksum_address(address),
            slot,
            block_identifier=block_number,
        )
        return int.from_bytes(bytes(value), "big")
