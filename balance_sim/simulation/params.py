# simulation/params.py
from dataclasses import dataclass
from typing import Union
from urllib.parse import urlparse

from eth_utils import decode_hex, is_address, is_checksum_address, to_canonical_address

from ..errors import ValidationError

UINT256_CEILING = 2**256
RPC_SCHEMES = ("http", "https")


def parse_address(field: str, value: str) -> bytes:
    if not isinstance(value, str) or not is_address(value):
        raise ValidationError(field, f"not an address: {value!r}")
    body = value[2:] if value[:2].lower() == "0x" else value
    # mixed case is a checksum and has to match
    if body != body.lower() and body != body.upper() and not is_checksum_address("0x" + body):
        raise ValidationError(field, f"bad checksum: {value!r}")
    return to_canonical_address(value)


def parse_amount(field: str, value: Union[str, int]) -> int:
    """Accepts an int, a decimal string or a 0x-prefixed hex string."""
    if isinstance(value, bool):
        raise ValidationError(field, f"not an amount: {value!r}")
    if isinstance(value, int):
        amount = value
    elif isinstance(value, str):
        text = value.strip()
        try:
            if text[:2].lower() == "0x":
                amount = int(text[2:], 16)
            elif text.isdigit():
                amount = int(text)
            else:
                raise ValueError(text)
        except ValueError:
            raise ValidationError(field, f"not a decimal or hex integer: {value!r}") from None
    else:
        raise ValidationError(field, f"not an amount: {value!r}")

    if not 0 <= amount < UINT256_CEILING:
        raise ValidationError(field, "out of uint256 range")
    return amount


def parse_calldata(field: str, value: str) -> bytes:
    if not isinstance(value, str):
        raise ValidationError(field, f"not a hex string: {value!r}")
    try:
        return decode_hex(value.strip())
    except ValueError as e:
        raise ValidationError(field, f"not a hex string: {e}") from e


def parse_chain_id(value: Union[str, int]) -> int:
    if isinstance(value, bool):
        raise ValidationError("chain_id", f"not a chain id: {value!r}")
    try:
        chain_id = int(value)
    except (TypeError, ValueError):
        raise ValidationError("chain_id", f"not a chain id: {value!r}") from None
    if chain_id <= 0:
        raise ValidationError("chain_id", "must be positive")
    return chain_id


def parse_rpc_url(value: str) -> str:
    if not isinstance(value, str):
        raise ValidationError("rpc_url", f"not a URL: {value!r}")
    parsed = urlparse(value.strip())
    if parsed.scheme not in RPC_SCHEMES or not parsed.netloc:
        raise ValidationError("rpc_url", f"expected an http(s) URL, got {value!r}")
    return value.strip()


@dataclass(frozen=True)
class SimulationParams:
    user: bytes
    token_in: bytes
    spender_or_target: bytes
    calldata: bytes
    amount_in: int
    chain_id: int
    rpc_url: str

    @classmethod
    def parse(
        cls,
        user: str,
        token_in: str,
        spender_or_target: str,
        calldata: str,
        amount_in: Union[str, int],
        chain_id: Union[str, int],
        rpc_url: str,
    ) -> "SimulationParams":
        """
        Parse caller-supplied strings into binary and numeric form.

        Raises:
            ValidationError: on the first malformed field
        """
        return cls(
            user=parse_address("user", user),
            token_in=parse_address("token_in", token_in),
            spender_or_target=parse_address("spender_or_target", spender_or_target),
            calldata=parse_calldata("calldata", calldata),
            amount_in=parse_amount("amount_in", amount_in),
            chain_id=parse_chain_id(chain_id),
            rpc_url=parse_rpc_url(rpc_url),
        )
