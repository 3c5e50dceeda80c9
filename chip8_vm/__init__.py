"""
chip8_vm: CHIP-8 Virtual Machine Core
======================================
A deterministic CHIP-8 interpreter core: 4K memory with resident font,
V0-VF + I + PC register file, call stack, 64x32 XOR framebuffer.

Architecture:
    ┌──────────┐    ┌──────────┐    ┌──────────┐    ┌─────────────┐
    │  Memory  │───>│ Decoder  │───>│  Engine  │───>│ Framebuffer │
    │ (fetch)  │    │  (Op)    │    │ (handler)│    │   (blit)    │
    └──────────┘    └──────────┘    └──────────┘    └─────────────┘

    - mem/memory.py:              bounds-checked 4K address space
    - mem/stack.py:               return address stack
    - cpu/regs.py:                V0-VF, I, PC
    - cpu/decoder.py:             word -> Instruction(Op, fields)
    - cpu/alu.py:                 8-bit arithmetic with VF results
    - display/framebuffer.py:     XOR sprite blit + collision
    - emu.py:                     Chip8Emulator.step() -> StepResult

Windowing, input, timers and sound belong to the host. The core only
loads bytes, steps, and exposes the framebuffer.
"""

__version__ = "0.1.0"

from .config import Quirks, DEFAULT_QUIRKS
from .cpu.decoder import Instruction, Op, decode
from .display.framebuffer import FramebufferView
from .emu import Chip8Emulator, StepResult, StopReason
from .errors import (
    Chip8Fault, IllegalOpcode, UnimplementedOperation, StackUnderflow,
    MemoryFault, SpriteOutOfBounds,
)


def run_rom(data, max_steps: int = Chip8Emulator.DEFAULT_MAX_STEPS,
            quirks: Quirks = DEFAULT_QUIRKS):
    """Load data at $200 on a fresh machine and run it.

    Returns (emulator, stop_reason) so callers can inspect the final
    registers and framebuffer.
    """
    emu = Chip8Emulator(quirks=quirks)
    emu.load(data)
    reason = emu.run(max_steps=max_steps)
    return emu, reason
