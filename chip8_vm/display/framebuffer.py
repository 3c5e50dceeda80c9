"""
CHIP-8 VM: Display Buffer + Sprite Blit

64x32 monochrome cells, stored row-major in a bytearray (0 = unlit,
1 = lit) and addressed as row * WIDTH + column.

Sprite blit (DXYN):
  - one sprite byte per row, MSB is the leftmost pixel
  - each pixel is XORed into the cell at ((x + col) mod WIDTH, y + row)
  - collision = any lit cell turned unlit
  - columns always wrap; rows past the bottom edge follow the vertical
    policy: clip (skip), wrap (mod HEIGHT) or reject (SpriteOutOfBounds,
    raised before any cell changes)
"""

from typing import Iterator, List, Sequence

from ..config import (
    DISPLAY_WIDTH, DISPLAY_HEIGHT, SPRITE_WIDTH,
    VERTICAL_CLIP, VERTICAL_WRAP, VERTICAL_REJECT,
)
from ..errors import SpriteOutOfBounds


class FramebufferView:
    """Read-only boolean view handed to presentation code.

    Indexing accepts a linear cell index or an (x, y) pair. The view is
    live: it reflects later draws without being re-fetched.
    """

    __slots__ = ('_cells', 'width', 'height')

    def __init__(self, cells: memoryview, width: int, height: int):
        self._cells = cells
        self.width = width
        self.height = height

    def __len__(self) -> int:
        return len(self._cells)

    def __getitem__(self, key) -> bool:
        if isinstance(key, tuple):
            x, y = key
            if not (0 <= x < self.width and 0 <= y < self.height):
                raise IndexError(f"pixel ({x}, {y}) outside {self.width}x{self.height}")
            return bool(self._cells[y * self.width + x])
        return bool(self._cells[key])

    def __iter__(self) -> Iterator[bool]:
        return (bool(c) for c in self._cells)

    def rows(self) -> List[List[bool]]:
        w = self.width
        return [[bool(c) for c in self._cells[r * w:(r + 1) * w]]
                for r in range(self.height)]

    def lit_count(self) -> int:
        return sum(self._cells)

    def to_text(self, on: str = '#', off: str = '.') -> str:
        return '\n'.join(''.join(on if c else off for c in row)
                         for row in self.rows())


class Framebuffer:
    """Mutable display owned by the emulator."""

    def __init__(self, width: int = DISPLAY_WIDTH, height: int = DISPLAY_HEIGHT):
        self.width = width
        self.height = height
        self._cells = bytearray(width * height)

    def clear(self):
        self._cells[:] = bytes(len(self._cells))

    def get(self, x: int, y: int) -> bool:
        return bool(self._cells[y * self.width + x])

    def view(self) -> FramebufferView:
        return FramebufferView(memoryview(self._cells).toreadonly(),
                               self.width, self.height)

    def blit(self, sprite: Sequence[int], x: int, y: int,
             vertical: str = VERTICAL_CLIP) -> bool:
        """XOR an 8-pixel-wide sprite onto the display at (x, y).

        Returns True if any lit pixel was turned off.
        """
        rows = len(sprite)
        if vertical == VERTICAL_REJECT and y + rows > self.height:
            raise SpriteOutOfBounds(
                f"Sprite rows {y}-{y + rows - 1} extend below row {self.height - 1}",
                address=y)

        collision = False
        cells = self._cells
        for row, bits in enumerate(sprite):
            py = y + row
            if py >= self.height:
                if vertical == VERTICAL_WRAP:
                    py %= self.height
                else:
                    continue
            base = py * self.width
            for col in range(SPRITE_WIDTH):
                if not (bits >> (SPRITE_WIDTH - 1 - col)) & 1:
                    continue
                idx = base + (x + col) % self.width
                if cells[idx]:
                    collision = True
                cells[idx] ^= 1
        return collision
