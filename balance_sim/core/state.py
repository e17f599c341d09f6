# core/state.py
"""
Account state model shared by the local VM, the slot finder and the
per-chain cache.

A ``StateView`` is an in-memory map of accounts. When a provider is attached
it is a *remote-backed* view: accounts and storage slots missing from the map
are fetched on first access and kept for the lifetime of the view. Without a
provider it is an *isolated replica*: missing accounts are empty and missing
slots read as zero, and nothing is ever fetched.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional, Protocol

import structlog
from eth_utils import to_checksum_address

logger = structlog.get_logger()

ZERO_ADDRESS = b"\x00" * 20


class StateProvider(Protocol):
    """Source of on-chain state at a fixed block."""

    def get_account(self, address: bytes, block_number: int) -> "Account":
        ...

    def get_storage_at(self, address: bytes, slot: int, block_number: int) -> int:
        ...


@dataclass
class Account:
    balance: int = 0
    nonce: int = 0
    code: bytes = b""
    # slot -> value; a missing key means "never loaded / never written"
    storage: Dict[int, int] = field(default_factory=dict)

    def clone(self) -> "Account":
        return Account(
            balance=self.balance,
            nonce=self.nonce,
            code=self.code,
            storage=dict(self.storage),
        )


class StateView:
    """Materialized account map, optionally backed by a remote provider."""

    def __init__(
        self,
        accounts: Optional[Dict[bytes, Account]] = None,
        provider: Optional[StateProvider] = None,
        block_number: Optional[int] = None,
    ):
        if provider is not None and block_number is None:
            raise ValueError("a remote-backed view needs a block number")
        self.accounts: Dict[bytes, Account] = accounts if accounts is not None else {}
        self.provider = provider
        self.block_number = block_number

    @property
    def is_remote_backed(self) -> bool:
        return self.provider is not None

    def load_account(self, address: bytes) -> Account:
        """
        Return the account, fetching it (remote) or creating it (isolated).

        A hit moves the account to the end of the map, so the map stays in
        least-recently-used order for eviction.
        """
        account = self.accounts.pop(address, None)
        if account is not None:
            self.accounts[address] = account
            return account

        if self.provider is not None:
            logger.debug(
                "Fetching account",
                address=to_checksum_address(address),
                block=self.block_number,
            )
            account = self.provider.get_account(address, self.block_number)
        else:
            account = Account()
        self.accounts[address] = account
        return account

    def get_storage(self, address: bytes, slot: int) -> int:
        account = self.load_account(address)
        value = account.storage.get(slot)
        if value is not None:
            return value
        if self.provider is None:
            return 0

        value = self.provider.get_storage_at(address, slot, self.block_number)
        account.storage[slot] = value
        return value

    def peek_storage(self, address: bytes, slot: int) -> Optional[int]:
        """
        Return the materialized value of a slot, or None when the slot is
        absent from the map. Never fetches.
        """
        account = self.accounts.get(address)
        if account is None:
            return None
        return account.storage.get(slot)

    def set_storage(self, address: bytes, slot: int, value: int) -> None:
        self.load_account(address).storage[slot] = value

    def remove_storage(self, address: bytes, slot: int) -> None:
        account = self.accounts.get(address)
        if account is not None:
            account.storage.pop(slot, None)

    def isolated_copy(self) -> "StateView":
        """Deep-copy the materialized accounts into a view with no provider."""
        return StateView(
            accounts={address: account.clone() for address, account in self.accounts.items()}
        )

    def __contains__(self, address: bytes) -> bool:
        return address in self.accounts

    def __iter__(self) -> Iterator[bytes]:
        return iter(self.accounts)

    def __len__(self) -> int:
        return len(self.accounts)
