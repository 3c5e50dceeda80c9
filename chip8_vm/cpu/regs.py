"""
CHIP-8 VM: Register File

  V0-VE  8-bit general purpose registers
  VF     8-bit flag register: carry (8XY4), NOT borrow (8XY5/8XY7),
         shifted-out bit (8XY6/8XYE), sprite collision (DXYN)
  I      16-bit address register
  PC     program counter (reset to $200)
"""

from ..config import NUM_REGISTERS, FLAG_REGISTER, PROGRAM_START


class Registers:
    """CHIP-8 register file.

    V is a plain list; callers store 8-bit values only (the engine masks
    every write). I is kept to 16 bits by the I-modifying handlers.
    """

    __slots__ = ('V', 'I', 'PC')

    def __init__(self):
        self.V = [0] * NUM_REGISTERS
        self.I: int = 0
        self.PC: int = PROGRAM_START

    # --- Flag register ---

    @property
    def VF(self) -> int:
        return self.V[FLAG_REGISTER]

    @VF.setter
    def VF(self, value: int):
        self.V[FLAG_REGISTER] = value & 0xFF

    # --- Display ---

    def display(self) -> str:
        """Format register state for trace/debug output."""
        vregs = ' '.join(f"V{i:X}={v:02X}" for i, v in enumerate(self.V))
        return f"PC={self.PC:03X} I={self.I:04X} {vregs}"

    def reset(self):
        """Reset to power-on state."""
        self.V = [0] * NUM_REGISTERS
        self.I = 0
        self.PC = PROGRAM_START
