# tests/evm_asm.py
"""
Two-pass assembler for the hand-written contracts used in tests.

One instruction per line: ``MNEMONIC [argument]``. ``name:`` defines a
label and ``PUSH @name`` pushes its offset as a PUSH2. A bare ``PUSH``
picks the smallest push width for its argument. Arguments are decimal or
0x hex. ``;`` starts a comment.
"""

from typing import Dict, List, Tuple

from balance_sim.core.opcodes import Opcode


def _parse(source: str) -> List[Tuple[str, str]]:
    items = []
    for raw in source.splitlines():
        line = raw.split(";", 1)[0].strip()
        if not line:
            continue
        if line.endswith(":"):
            items.append(("label", line[:-1]))
            continue
        parts = line.split()
        items.append((parts[0].upper(), parts[1] if len(parts) > 1 else ""))
    return items


def _push_width(mnemonic: str, arg: str) -> int:
    if arg.startswith("@"):
        return 2
    if mnemonic == "PUSH":
        return max(1, (int(arg, 0).bit_length() + 7) // 8)
    return int(mnemonic[4:])


def assemble(source: str) -> bytes:
    items = _parse(source)

    labels: Dict[str, int] = {}
    offset = 0
    for mnemonic, arg in items:
        if mnemonic == "label":
            labels[arg] = offset
        elif mnemonic.startswith("PUSH") and mnemonic != "PUSH0":
            offset += 1 + _push_width(mnemonic, arg)
        else:
            offset += 1

    code = bytearray()
    for mnemonic, arg in items:
        if mnemonic == "label":
            continue
        if mnemonic.startswith("PUSH") and mnemonic != "PUSH0":
            width = _push_width(mnemonic, arg)
            value = labels[arg[1:]] if arg.startswith("@") else int(arg, 0)
            code.append(Opcode.PUSH1 + width - 1)
            code += value.to_bytes(width, "big")
        else:
            code.append(Opcode[mnemonic])
    return bytes(code)


def revert_with_reason(message: str) -> str:
    """Assembly that reverts with a Solidity ``Error(string)`` payload."""
    data = message.encode()
    chunks = [data[i : i + 32].ljust(32, b"\x00") for i in range(0, len(data), 32)] or [b""]
    lines = [
        "PUSH4 0x08c379a0",
        "PUSH 0xe0",
        "SHL",
        "PUSH 0",
        "MSTORE",
        "PUSH 0x20",
        "PUSH 4",
        "MSTORE",
        f"PUSH {len(data)}",
        "PUSH 0x24",
        "MSTORE",
    ]
    for index, chunk in enumerate(chunks):
        if chunk:
            lines += [f"PUSH32 0x{chunk.hex()}", f"PUSH {0x44 + 32 * index}", "MSTORE"]
    size = 4 + 32 + 32 + 32 * len([c for c in chunks if c])
    lines += [f"PUSH {size}", "PUSH 0", "REVERT"]
    return "\n".join(lines)
