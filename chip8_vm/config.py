"""
CHIP-8 VM: Machine Constants and Interpreter Quirks

Layout constants follow the classic COSMAC VIP interpreter:
  $000-$04F  Font sprites (16 digits x 5 bytes)
  $050-$1FF  Free (interpreter area on the original hardware)
  $200-$FFF  Program image and data

Quirks cover the points where historical interpreters disagree. The
defaults reproduce the original two-operand shift form and clip sprites
at the bottom edge of the display.
"""

from dataclasses import dataclass

# =============================================================================
#  MEMORY MAP
# =============================================================================
MEMORY_SIZE = 0x1000        # 4K address space
FONT_BASE = 0x000           # Font table resident at the bottom of memory
FONT_GLYPH_SIZE = 5         # Bytes per hex digit sprite
PROGRAM_START = 0x200       # ROM images load here and PC resets here

# =============================================================================
#  REGISTERS
# =============================================================================
NUM_REGISTERS = 16
FLAG_REGISTER = 0xF         # VF: carry / borrow / collision
INSTRUCTION_SIZE = 2        # Every instruction is one big-endian word

# =============================================================================
#  DISPLAY
# =============================================================================
DISPLAY_WIDTH = 64
DISPLAY_HEIGHT = 32
SPRITE_WIDTH = 8            # One byte per sprite row, MSB = leftmost pixel

# =============================================================================
#  FONT TABLE (80 bytes, digits 0-F)
# =============================================================================
FONT = bytes([
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
])

# =============================================================================
#  QUIRKS
# =============================================================================
VERTICAL_CLIP = 'clip'      # Rows past the bottom edge are not drawn
VERTICAL_WRAP = 'wrap'      # Rows wrap to the top, like columns do
VERTICAL_REJECT = 'reject'  # Any row past the bottom edge is a fatal fault
VERTICAL_POLICIES = (VERTICAL_CLIP, VERTICAL_WRAP, VERTICAL_REJECT)


@dataclass(frozen=True)
class Quirks:
    """Interpreter behavior switches.

    shift_uses_vy:      8XY6/8XYE shift VY into VX (COSMAC VIP). When
                        False, VX is shifted in place (CHIP-48/SCHIP).
    vertical_overflow:  what DXYN does with rows below the display.
    """
    shift_uses_vy: bool = True
    vertical_overflow: str = VERTICAL_CLIP

    def __post_init__(self):
        if self.vertical_overflow not in VERTICAL_POLICIES:
            raise ValueError(
                f"vertical_overflow must be one of {VERTICAL_POLICIES}, "
                f"got {self.vertical_overflow!r}")


DEFAULT_QUIRKS = Quirks()
