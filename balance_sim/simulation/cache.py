# simulation/cache.py
"""
Per-chain cache of fetched account data.

Each chain id owns one account map that a simulation checks out
exclusively, populates through a remote-backed view, and hands back. On
release every storage entry is dropped so slot values (including balance
overrides and marker writes) never reach the next request, while code,
nonce and balance stay to save refetching contract code.

Maps are kept in recency order: a ``StateView`` moves every account it
serves to the end, so the size bound evicts the least recently used
accounts first.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

import structlog

from ..core.state import Account

logger = structlog.get_logger()

AccountMap = Dict[bytes, Account]


class ChainStateCache:
    def __init__(self, max_accounts: int = 10_000):
        self.max_accounts = max_accounts
        self._accounts: Dict[int, AccountMap] = {}
        self._locks: Dict[int, asyncio.Lock] = {}
        self._checked_out: Dict[int, AccountMap] = {}

    def _lock(self, chain_id: int) -> asyncio.Lock:
        lock = self._locks.get(chain_id)
        if lock is None:
            lock = self._locks[chain_id] = asyncio.Lock()
        return lock

    def peek(self, chain_id: int) -> AccountMap:
        """The stored map for ``chain_id`` (empty while checked out)."""
        return self._accounts.get(chain_id, {})

    async def acquire(self, chain_id: int) -> AccountMap:
        """
        Take exclusive ownership of the chain's account map.

        Waits while another simulation holds the same chain id. The stored
        entry is replaced by an empty placeholder until ``release``.
        """
        await self._lock(chain_id).acquire()
        accounts = self._accounts.pop(chain_id, {})
        self._accounts[chain_id] = {}
        self._checked_out[chain_id] = accounts
        logger.debug("Checked out chain state", chain_id=chain_id, accounts=len(accounts))
        return accounts

    def release(self, chain_id: int, accounts: AccountMap) -> None:
        """
        Strip storage, evict the least recently used accounts over the bound
        and store ``accounts`` for the next request.

        Raises:
            RuntimeError: ``accounts`` is not the map checked out by ``acquire``
        """
        if self._checked_out.get(chain_id) is not accounts:
            raise RuntimeError(f"chain {chain_id} state released without being checked out")
        del self._checked_out[chain_id]

        for account in accounts.values():
            account.storage.clear()

        overflow = len(accounts) - self.max_accounts
        if overflow > 0:
            for address in list(accounts)[:overflow]:
                del accounts[address]
            logger.debug("Evicted cached accounts", chain_id=chain_id, evicted=overflow)

        self._accounts[chain_id] = accounts
        self._lock(chain_id).release()
        logger.debug("Released chain state", chain_id=chain_id, accounts=len(accounts))

    @asynccontextmanager
    async def checkout(self, chain_id: int) -> AsyncIterator[AccountMap]:
        accounts = await self.acquire(chain_id)
        try:
            yield accounts
        finally:
            self.release(chain_id, accounts)
