# tests/contracts.py
"""Hand-assembled contracts for offline discovery and simulation tests."""

from eth_utils import keccak

from .evm_asm import assemble, revert_with_reason

BALANCES_SLOT = 3
ALLOWANCES_SLOT = 4
EIP1967_IMPLEMENTATION_SLOT = 0x360894A13BA1A3210667C828492DB98DCA3E2076CC3735A920A3CA505D382BBC
LEDGER_ADDRESS_SLOT = 7
FRONT_TRAILING_SLOT = 8

INSUFFICIENT_BALANCE = "ERC20: transfer amount exceeds balance"


def mapping_slot(key: bytes, slot: int) -> int:
    """Storage slot of ``mapping[key]`` for a mapping declared at ``slot``."""
    return int.from_bytes(keccak(key.rjust(32, b"\x00") + slot.to_bytes(32, "big")), "big")


def allowance_slot(owner: bytes, spender: bytes) -> int:
    inner = mapping_slot(owner, ALLOWANCES_SLOT)
    return int.from_bytes(keccak(spender.rjust(32, b"\x00") + inner.to_bytes(32, "big")), "big")


_MAPPING_KEY_TO_SLOT = """
PUSH 0
MSTORE
PUSH {slot}
PUSH 0x20
MSTORE
PUSH 0x40
PUSH 0
SHA3
"""

_RETURN_TRUE = """
PUSH 1
PUSH 0
MSTORE
PUSH 0x20
PUSH 0
RETURN
"""

# ERC20 subset: balanceOf reads slots 0 and 1 before balances[holder] (slot 3).
SIMPLE_TOKEN_ASM = f"""
PUSH 0
CALLDATALOAD
PUSH 0xe0
SHR
DUP1
PUSH4 0x70a08231
EQ
PUSH @balance_of
JUMPI
DUP1
PUSH4 0xa9059cbb
EQ
PUSH @transfer
JUMPI
DUP1
PUSH4 0x095ea7b3
EQ
PUSH @approve
JUMPI
PUSH 0
DUP1
REVERT

balance_of:
JUMPDEST
POP
PUSH 0
SLOAD
POP
PUSH 1
SLOAD
POP
PUSH 4
CALLDATALOAD
{_MAPPING_KEY_TO_SLOT.format(slot=BALANCES_SLOT)}
SLOAD
PUSH 0
MSTORE
PUSH 0x20
PUSH 0
RETURN

transfer:
JUMPDEST
POP
CALLER
{_MAPPING_KEY_TO_SLOT.format(slot=BALANCES_SLOT)}
DUP1
SLOAD
PUSH 0x24
CALLDATALOAD
DUP1
DUP3
LT
PUSH @insufficient
JUMPI
SWAP1
SUB
SWAP1
SSTORE
PUSH 4
CALLDATALOAD
{_MAPPING_KEY_TO_SLOT.format(slot=BALANCES_SLOT)}
DUP1
SLOAD
PUSH 0x24
CALLDATALOAD
ADD
SWAP1
SSTORE
{_RETURN_TRUE}

insufficient:
JUMPDEST
{revert_with_reason(INSUFFICIENT_BALANCE)}

approve:
JUMPDEST
POP
CALLER
{_MAPPING_KEY_TO_SLOT.format(slot=ALLOWANCES_SLOT)}
PUSH 0x20
MSTORE
PUSH 4
CALLDATALOAD
PUSH 0
MSTORE
PUSH 0x40
PUSH 0
SHA3
PUSH 0x24
CALLDATALOAD
SWAP1
SSTORE
{_RETURN_TRUE}
"""

# Forwards everything to the EIP-1967 implementation with DELEGATECALL.
PROXY_ASM = f"""
CALLDATASIZE
PUSH 0
PUSH 0
CALLDATACOPY
PUSH 0
PUSH 0
CALLDATASIZE
PUSH 0
PUSH32 {hex(EIP1967_IMPLEMENTATION_SLOT)}
SLOAD
GAS
DELEGATECALL
RETURNDATASIZE
PUSH 0
PUSH 0
RETURNDATACOPY
PUSH @ok
JUMPI
RETURNDATASIZE
PUSH 0
REVERT
ok:
JUMPDEST
RETURNDATASIZE
PUSH 0
RETURN
"""

# Answers any call with ledger.balanceOf(calldata[4:36]) via STATICCALL.
# Reads its own slot 7 (ledger address) before the call and slot 8 after it.
FRONT_ASM = f"""
PUSH4 0x70a08231
PUSH 0xe0
SHL
PUSH 0
MSTORE
PUSH 4
CALLDATALOAD
PUSH 4
MSTORE
PUSH 0x20
PUSH 0
PUSH 0x24
PUSH 0
PUSH {LEDGER_ADDRESS_SLOT}
SLOAD
GAS
STATICCALL
ISZERO
PUSH @fail
JUMPI
PUSH {FRONT_TRAILING_SLOT}
SLOAD
POP
PUSH 0x20
PUSH 0
RETURN
fail:
JUMPDEST
PUSH 0
DUP1
REVERT
"""

# Reads storage but always reports 1000.
CONSTANT_TOKEN_ASM = """
PUSH 0
SLOAD
POP
PUSH 1000
PUSH 0
MSTORE
PUSH 0x20
PUSH 0
RETURN
"""

REVERTING_TOKEN_ASM = f"""
PUSH 0
SLOAD
POP
{revert_with_reason("balance queries disabled")}
"""

SILENT_TOKEN_ASM = """
PUSH 0
SLOAD
POP
STOP
"""

SIMPLE_TOKEN = assemble(SIMPLE_TOKEN_ASM)
PROXY = assemble(PROXY_ASM)
FRONT = assemble(FRONT_ASM)
CONSTANT_TOKEN = assemble(CONSTANT_TOKEN_ASM)
REVERTING_TOKEN = assemble(REVERTING_TOKEN_ASM)
SILENT_TOKEN = assemble(SILENT_TOKEN_ASM)
