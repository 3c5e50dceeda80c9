"""
CHIP-8 VM: Fault Hierarchy

Every condition that halts the machine derives from Chip8Fault. The
engine raises these internally; Chip8Emulator.step() turns them into a
StepResult so the host decides what to do (log, stop, restart).

  Chip8Fault
    IllegalOpcode            word matches no known operation
    UnimplementedOperation   operation recognized, no behavior in this core
    StackUnderflow           RET with an empty call stack
    MemoryFault              address outside $000-$FFF
      SpriteOutOfBounds      sprite row below the display ('reject' policy)
"""

from typing import Optional


class Chip8Fault(Exception):
    """Base class for fatal machine conditions.

    pc and word are filled in by the engine when the fault is raised
    while executing an instruction; they stay None for faults raised
    directly by a component (e.g. Memory.load_binary).
    """

    def __init__(self, message: str, pc: Optional[int] = None,
                 word: Optional[int] = None):
        super().__init__(message)
        self.pc = pc
        self.word = word

    def locate(self, pc: int, word: Optional[int]) -> 'Chip8Fault':
        """Attach the faulting instruction's address and raw word."""
        if self.pc is None:
            self.pc = pc
        if self.word is None:
            self.word = word
        return self


class IllegalOpcode(Chip8Fault):
    """Raised when an instruction word decodes to no CHIP-8 operation."""
    pass


class UnimplementedOperation(Chip8Fault):
    """Raised for recognized operations this core does not execute
    (timers, key input, font lookup, random, offset jump)."""
    pass


class StackUnderflow(Chip8Fault):
    pass


class MemoryFault(Chip8Fault):
    """Raised on any read/write outside the 4K address space."""

    def __init__(self, message: str, address: int, pc: Optional[int] = None,
                 word: Optional[int] = None):
        super().__init__(message, pc, word)
        self.address = address


class SpriteOutOfBounds(MemoryFault):
    pass
