# ethereum/erc20.py
"""
ERC20 call encoding and return / revert data decoding.
"""

from typing import Optional

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import function_signature_to_4byte_selector

MAX_UINT256 = 2**256 - 1

BALANCE_OF_SELECTOR = function_signature_to_4byte_selector("balanceOf(address)")
APPROVE_SELECTOR = function_signature_to_4byte_selector("approve(address,uint256)")
TRANSFER_SELECTOR = function_signature_to_4byte_selector("transfer(address,uint256)")

# Solidity revert payload selectors
ERROR_SELECTOR = function_signature_to_4byte_selector("Error(string)")
PANIC_SELECTOR = function_signature_to_4byte_selector("Panic(uint256)")


def encode_balance_of(holder: bytes) -> bytes:
    return BALANCE_OF_SELECTOR + encode(["address"], [holder])


def encode_approve(spender: bytes, amount: int = MAX_UINT256) -> bytes:
    return APPROVE_SELECTOR + encode(["address", "uint256"], [spender, amount])


def encode_transfer(recipient: bytes, amount: int) -> bytes:
    return TRANSFER_SELECTOR + encode(["address", "uint256"], [recipient, amount])


def decode_uint256(output: bytes) -> Optional[int]:
    """First ABI word of ``output``, or None when fewer than 32 bytes were returned."""
    if len(output) < 32:
        return None
    return int.from_bytes(output[:32], "big")


def decode_bool(output: bytes) -> Optional[bool]:
    """
    Decode an ERC20 boolean return.

    Tokens that return nothing from approve/transfer (USDT and friends) are
    treated as successful, so empty output decodes to True.
    """
    if not output:
        return True
    value = decode_uint256(output)
    if value is None:
        return None
    return value != 0


def decode_revert_reason(output: bytes) -> str:
    """
    Turn revert data into a human readable reason.

    Args:
        output: Raw revert payload of the failed frame

    Returns:
        The Error(string) message, ``Panic(0x..)`` for panics,
        ``execution reverted`` for empty data, otherwise the hex payload
    """
    if not output:
        return "execution reverted"

    selector, payload = output[:4], output[4:]
    try:
        if selector == ERROR_SELECTOR:
            (message,) = decode(["string"], payload)
            return message
        if selector == PANIC_SELECTOR:
            (code,) = decode(["uint256"], payload)
            return f"Panic(0x{code:02x})"
    except (DecodingError, UnicodeDecodeError):
        pass
    return "0x" + output.hex()
