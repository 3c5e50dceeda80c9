"""
CHIP-8 VM: 4K Memory

Flat bytearray of MEMORY_SIZE cells. The font table is resident at
FONT_BASE from construction (and after reset). Every access is
bounds-checked: addresses outside $000-$FFF raise MemoryFault rather
than wrapping, so a runaway I register is caught where it happens.

Bulk operations (load_binary, read_block, write_block) check the whole
range before touching anything, which keeps a faulting instruction from
leaving a half-written block behind.
"""

import logging
from pathlib import Path
from typing import Dict

from ..config import MEMORY_SIZE, FONT, FONT_BASE, FONT_GLYPH_SIZE
from ..errors import MemoryFault

log = logging.getLogger(__name__)


class Memory:
    """4096 byte-addressable cells with the font preloaded."""

    def __init__(self):
        self._mem = bytearray(MEMORY_SIZE)
        self.load_font()

    def __len__(self) -> int:
        return MEMORY_SIZE

    # --- Bounds ---

    @staticmethod
    def check_range(addr: int, length: int = 1):
        """Raise MemoryFault unless addr..addr+length-1 is addressable."""
        if addr < 0 or length < 0 or addr + length > MEMORY_SIZE:
            last = addr + max(length, 1) - 1
            raise MemoryFault(
                f"Access ${addr:04X}-${last:04X} outside 4K address space",
                address=addr)

    # --- Core read/write ---

    def read8(self, addr: int) -> int:
        self.check_range(addr)
        return self._mem[addr]

    def write8(self, addr: int, value: int):
        self.check_range(addr)
        self._mem[addr] = value & 0xFF

    def read16(self, addr: int) -> int:
        """Read a big-endian word (instruction fetch byte order)."""
        self.check_range(addr, 2)
        return (self._mem[addr] << 8) | self._mem[addr + 1]

    def read_block(self, addr: int, length: int) -> bytes:
        self.check_range(addr, length)
        return bytes(self._mem[addr:addr + length])

    def write_block(self, addr: int, data):
        data = bytes(data)
        self.check_range(addr, len(data))
        self._mem[addr:addr + len(data)] = data

    # --- Bulk load ---

    def load_binary(self, data, base_addr: int):
        """Copy a program image into memory at base_addr."""
        data = bytes(data)
        self.write_block(base_addr, data)
        log.info("Loaded %d bytes at $%03X-$%03X", len(data), base_addr,
                 base_addr + max(len(data), 1) - 1)

    def load_font(self):
        self._mem[FONT_BASE:FONT_BASE + len(FONT)] = FONT

    @staticmethod
    def font_address(digit: int) -> int:
        """Address of the 5-byte sprite for hex digit 0-F."""
        return FONT_BASE + (digit & 0x0F) * FONT_GLYPH_SIZE

    def clear(self):
        """Zero everything and reload the font (power-on state)."""
        self._mem[:] = bytes(MEMORY_SIZE)
        self.load_font()

    # --- Snapshots ---

    def snapshot(self, start: int = 0x000, end: int = MEMORY_SIZE - 1) -> bytes:
        """Copy of memory start..end inclusive, for later diffing."""
        self.check_range(start, end - start + 1)
        return bytes(self._mem[start:end + 1])

    @staticmethod
    def diff_snapshots(snap_a: bytes, snap_b: bytes,
                       base_addr: int = 0x000) -> Dict[int, tuple]:
        """Return {addr: (old, new)} for every byte that changed."""
        changes = {}
        for i in range(min(len(snap_a), len(snap_b))):
            if snap_a[i] != snap_b[i]:
                changes[base_addr + i] = (snap_a[i], snap_b[i])
        return changes

    def save_image(self, filepath, start: int = 0x000, end: int = MEMORY_SIZE - 1):
        """Write a raw memory image to disk (debug aid, not state persistence)."""
        Path(filepath).write_bytes(self.snapshot(start, end))

    # --- Hex dump ---

    def hexdump(self, start: int, length: int = 256) -> str:
        """Hex + ASCII dump, 16 bytes per line, clipped at the top of memory."""
        lines = []
        end = min(start + length, MEMORY_SIZE)
        for addr in range(start, end, 16):
            row = self._mem[addr:min(addr + 16, end)]
            hex_bytes = ' '.join(f'{b:02X}' for b in row)
            ascii_bytes = ''.join(chr(b) if 0x20 <= b < 0x7F else '.' for b in row)
            lines.append(f'{addr:03X}  {hex_bytes:<47s}  {ascii_bytes}')
        return '\n'.join(lines)
