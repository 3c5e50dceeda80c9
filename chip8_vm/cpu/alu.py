"""
CHIP-8 VM: ALU Operations

Each flag-producing function returns a tuple (result_byte, vf). The
caller writes the result to VX first and VF second, so an instruction
whose destination is VF ends up holding the flag.

Flag conventions (all 0 or 1):
  add8   VF = 1 on carry out of bit 7
  sub8   VF = 0 on borrow (a < b), else 1
  shr8   VF = bit 0 of the source before the shift
  shl8   VF = bit 7 of the source before the shift
"""


def add8(a: int, b: int) -> tuple:
    """VX + VY with explicit carry (8XY4)."""
    total = a + b
    if total > 0xFF:
        return (total - 0x100, 1)
    return (total, 0)


def sub8(a: int, b: int) -> tuple:
    """a - b; VF is NOT borrow (8XY5, and 8XY7 with operands swapped)."""
    diff = a - b
    return (diff & 0xFF, 0 if diff < 0 else 1)


def shr8(value: int) -> tuple:
    return (value >> 1, value & 0x01)


def shl8(value: int) -> tuple:
    return ((value << 1) & 0xFF, (value >> 7) & 0x01)


def wrap8(value: int) -> int:
    """Truncate to a byte (7XNN has no carry)."""
    return value & 0xFF


def wrap16(value: int) -> int:
    return value & 0xFFFF


def bcd(value: int) -> tuple:
    """Decimal digits of a byte: (hundreds, tens, units)."""
    return (value // 100, (value // 10) % 10, value % 10)
