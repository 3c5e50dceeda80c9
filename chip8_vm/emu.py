"""
CHIP-8 VM: Main Emulator Class

Integrates:
  - Register file (cpu/regs.py)
  - 4K memory with resident font (mem/memory.py)
  - Call stack (mem/stack.py)
  - Instruction decoder (cpu/decoder.py)
  - ALU helpers (cpu/alu.py)
  - Display buffer + sprite blit (display/framebuffer.py)

Execution model, one step():
  1. Stop if a fault is latched or PC sits on a breakpoint
  2. Fetch the big-endian word at PC
  3. Decode it to an Op
  4. Execute the handler (control transfers set PC to target - 2)
  5. PC += 2

Stop reasons:
  - BREAK:            breakpoint address hit (instruction not executed)
  - TIMEOUT:          run() step budget exhausted
  - ILLEGAL:          word decodes to no operation
  - UNIMPLEMENTED:    timers, key input, font lookup, RND, JP V0
  - STACK_UNDERFLOW:  RET with nothing to return to
  - MEMORY_FAULT:     access outside $000-$FFF, or sprite rejected

Faults are fatal. The first one is latched and every later step()
returns the same result until reset(). Handlers validate before they
mutate, so the state after a fault is the state before the faulting
instruction.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set

from .config import DEFAULT_QUIRKS, FLAG_REGISTER, INSTRUCTION_SIZE, PROGRAM_START, Quirks
from .cpu.regs import Registers
from .cpu.decoder import Instruction, Op, decode, fetch_word
from .cpu import alu
from .display.framebuffer import Framebuffer, FramebufferView
from .errors import (
    Chip8Fault, IllegalOpcode, MemoryFault, StackUnderflow, UnimplementedOperation,
)
from .mem.memory import Memory
from .mem.stack import CallStack

log = logging.getLogger(__name__)


class StopReason(Enum):
    BREAK = 'BREAK'
    TIMEOUT = 'TIMEOUT'
    ILLEGAL = 'ILLEGAL'
    UNIMPLEMENTED = 'UNIMPLEMENTED'
    STACK_UNDERFLOW = 'STACK_UNDERFLOW'
    MEMORY_FAULT = 'MEMORY_FAULT'


# Most specific class first; SpriteOutOfBounds is a MemoryFault
_FAULT_REASONS = (
    (IllegalOpcode, StopReason.ILLEGAL),
    (UnimplementedOperation, StopReason.UNIMPLEMENTED),
    (StackUnderflow, StopReason.STACK_UNDERFLOW),
    (MemoryFault, StopReason.MEMORY_FAULT),
)


def reason_for(fault: Chip8Fault) -> StopReason:
    for cls, reason in _FAULT_REASONS:
        if isinstance(fault, cls):
            return reason
    raise TypeError(f"No stop reason for {type(fault).__name__}")


@dataclass(frozen=True)
class StepResult:
    """Outcome of one step().

    reason is None when the instruction executed. word and op are None
    when the fault happened before they were known (fetch outside
    memory, or an undecodable word for op).
    """
    pc: int
    word: Optional[int] = None
    op: Optional[Op] = None
    reason: Optional[StopReason] = None
    error: Optional[Chip8Fault] = None

    @property
    def ok(self) -> bool:
        return self.reason is None

    @property
    def fatal(self) -> bool:
        return self.error is not None

    def describe(self) -> str:
        word = f"{self.word:04X}" if self.word is not None else "----"
        if self.ok:
            return f"${self.pc:03X}: {word} ok"
        detail = f" ({self.error})" if self.error is not None else ""
        return f"${self.pc:03X}: {word} {self.reason.value}{detail}"


class Chip8Emulator:
    """CHIP-8 virtual machine.

    Usage:
        emu = Chip8Emulator()
        emu.load(rom_bytes)                 # at $200
        while True:
            result = emu.step()
            if not result.ok:
                break
            present(emu.framebuffer())
    """

    DEFAULT_MAX_STEPS = 1_000_000

    def __init__(self, quirks: Quirks = DEFAULT_QUIRKS):
        self.quirks = quirks

        # Machine state aggregate
        self.regs = Registers()
        self.mem = Memory()
        self.stack = CallStack()
        self.display = Framebuffer()

        self.steps = 0
        self._fault: Optional[StepResult] = None

        # Breakpoints: PC addresses that stop execution before the fetch
        self._breakpoints: Set[int] = set()
        self._break_resume: Optional[int] = None

        self._trace = False
        self._trace_output: List[str] = []

        self._dispatch = self._build_dispatch()

    # ══════════════════════════════════════════════
    # Loading
    # ══════════════════════════════════════════════

    def load(self, data, base_address: int = PROGRAM_START):
        """Copy a program image into memory. Raises MemoryFault if it
        does not fit below $1000."""
        self.mem.load_binary(data, base_address)

    def load_binary(self, path_or_data, base_address: int = PROGRAM_START):
        """Load a ROM file (str/Path) or raw bytes into memory."""
        if isinstance(path_or_data, (str, Path)):
            data = Path(path_or_data).read_bytes()
            log.info("Read ROM %s (%d bytes)", path_or_data, len(data))
        else:
            data = bytes(path_or_data)
        self.load(data, base_address)

    # ══════════════════════════════════════════════
    # Execution
    # ══════════════════════════════════════════════

    @property
    def halted(self) -> bool:
        return self._fault is not None

    @property
    def fault(self) -> Optional[StepResult]:
        return self._fault

    def step(self) -> StepResult:
        """Execute one instruction and report the outcome."""
        if self._fault is not None:
            return self._fault

        pc = self.regs.PC

        if pc in self._breakpoints and self._break_resume != pc:
            self._break_resume = pc
            log.debug("Breakpoint at $%03X", pc)
            return StepResult(pc=pc, reason=StopReason.BREAK)
        self._break_resume = None

        word = None
        ins = None
        try:
            word = fetch_word(self.mem, pc)
            ins = decode(word)

            if self._trace:
                self._trace_output.append(f"${pc:03X}: {ins}  {self.regs.display()}")
            log.debug("$%03X: %04X  %s", pc, word, ins.disasm())

            self._dispatch[ins.op](ins)
        except Chip8Fault as e:
            return self._halt(e.locate(pc, word), pc, word, ins)

        self.regs.PC += INSTRUCTION_SIZE
        self.steps += 1
        return StepResult(pc=pc, word=word, op=ins.op)

    def run(self, max_steps: Optional[int] = None) -> StopReason:
        """Step until a fault, a breakpoint, or max_steps instructions."""
        if max_steps is None:
            max_steps = self.DEFAULT_MAX_STEPS

        for _ in range(max_steps):
            result = self.step()
            if result.reason is not None:
                return result.reason
        return StopReason.TIMEOUT

    def framebuffer(self) -> FramebufferView:
        return self.display.view()

    def _halt(self, fault: Chip8Fault, pc: int, word: Optional[int],
              ins: Optional[Instruction]) -> StepResult:
        reason = reason_for(fault)
        word_text = f"{word:04X}" if word is not None else "----"
        log.error("Halted at $%03X (%s): %s: %s", pc, word_text, reason.value, fault)
        if self._trace:
            self._trace_output.append(f"  FAULT: {reason.value}: {fault}")
        self._fault = StepResult(pc=pc, word=word, op=ins.op if ins else None,
                                 reason=reason, error=fault)
        return self._fault

    # ══════════════════════════════════════════════
    # Instruction handlers
    # ══════════════════════════════════════════════
    # Handler signature: handler(ins). PC still holds the address of the
    # executing instruction; step() adds 2 afterwards.

    def _build_dispatch(self) -> Dict[Op, Callable[[Instruction], None]]:
        """Build the Op -> handler table and check it covers every Op."""
        table = {
            # ── Flow control ──
            Op.SYS:        self._op_sys,
            Op.CLS:        self._op_cls,
            Op.RET:        self._op_ret,
            Op.JP:         self._op_jp,
            Op.CALL:       self._op_call,
            Op.SE_VX_NN:   self._op_se_vx_nn,
            Op.SNE_VX_NN:  self._op_sne_vx_nn,
            Op.SE_VX_VY:   self._op_se_vx_vy,
            Op.SNE_VX_VY:  self._op_sne_vx_vy,

            # ── Register loads / immediate arithmetic ──
            Op.LD_VX_NN:   self._op_ld_vx_nn,
            Op.ADD_VX_NN:  self._op_add_vx_nn,
            Op.LD_VX_VY:   self._op_ld_vx_vy,

            # ── 8XY_ ALU ──
            Op.OR:         self._op_or,
            Op.AND:        self._op_and,
            Op.XOR:        self._op_xor,
            Op.ADD_VX_VY:  self._op_add_vx_vy,
            Op.SUB:        self._op_sub,
            Op.SUBN:       self._op_subn,
            Op.SHR:        self._op_shr,
            Op.SHL:        self._op_shl,

            # ── Address register / memory ──
            Op.LD_I:       self._op_ld_i,
            Op.ADD_I_VX:   self._op_add_i_vx,
            Op.LD_B_VX:    self._op_ld_b_vx,
            Op.LD_MEM_VX:  self._op_ld_mem_vx,
            Op.LD_VX_MEM:  self._op_ld_vx_mem,

            # ── Display ──
            Op.DRW:        self._op_drw,

            # ── Recognized, not executed by this core ──
            Op.JP_V0:      self._op_unimplemented,
            Op.RND:        self._op_unimplemented,
            Op.SKP:        self._op_unimplemented,
            Op.SKNP:       self._op_unimplemented,
            Op.LD_VX_DT:   self._op_unimplemented,
            Op.LD_VX_K:    self._op_unimplemented,
            Op.LD_DT_VX:   self._op_unimplemented,
            Op.LD_ST_VX:   self._op_unimplemented,
            Op.LD_F_VX:    self._op_unimplemented,
        }
        missing = [op.name for op in Op if op not in table]
        if missing:
            raise NotImplementedError(f"No handler for {', '.join(missing)}")
        return table

    # ── Flow control ──

    def _op_sys(self, ins):
        raise IllegalOpcode(f"Machine code routine call ${ins.word:04X} not supported")

    def _op_cls(self, ins):
        self.display.clear()

    def _op_ret(self, ins):
        target = self.stack.pop()
        log.debug("RET $%03X -> $%03X", self.regs.PC, target + INSTRUCTION_SIZE)
        self.regs.PC = target

    def _op_jp(self, ins):
        self.regs.PC = ins.nnn - INSTRUCTION_SIZE

    def _op_call(self, ins):
        log.debug("CALL $%03X from $%03X (depth %d)", ins.nnn, self.regs.PC,
                  self.stack.depth + 1)
        self.stack.push(self.regs.PC)
        self.regs.PC = ins.nnn - INSTRUCTION_SIZE

    def _skip_if(self, cond: bool):
        if cond:
            self.regs.PC += INSTRUCTION_SIZE

    def _op_se_vx_nn(self, ins):
        self._skip_if(self.regs.V[ins.x] == ins.nn)

    def _op_sne_vx_nn(self, ins):
        self._skip_if(self.regs.V[ins.x] != ins.nn)

    def _op_se_vx_vy(self, ins):
        self._skip_if(self.regs.V[ins.x] == self.regs.V[ins.y])

    def _op_sne_vx_vy(self, ins):
        self._skip_if(self.regs.V[ins.x] != self.regs.V[ins.y])

    # ── Register loads ──

    def _op_ld_vx_nn(self, ins):
        self.regs.V[ins.x] = ins.nn

    def _op_add_vx_nn(self, ins):
        self.regs.V[ins.x] = alu.wrap8(self.regs.V[ins.x] + ins.nn)

    def _op_ld_vx_vy(self, ins):
        self.regs.V[ins.x] = self.regs.V[ins.y]

    # ── ALU ──

    def _op_or(self, ins):
        self.regs.V[ins.x] |= self.regs.V[ins.y]

    def _op_and(self, ins):
        self.regs.V[ins.x] &= self.regs.V[ins.y]

    def _op_xor(self, ins):
        self.regs.V[ins.x] ^= self.regs.V[ins.y]

    def _set_with_flag(self, x: int, result: int, flag: int):
        # Result first: when X is F the flag wins
        self.regs.V[x] = result
        self.regs.V[FLAG_REGISTER] = flag

    def _op_add_vx_vy(self, ins):
        result, carry = alu.add8(self.regs.V[ins.x], self.regs.V[ins.y])
        self._set_with_flag(ins.x, result, carry)

    def _op_sub(self, ins):
        result, no_borrow = alu.sub8(self.regs.V[ins.x], self.regs.V[ins.y])
        self._set_with_flag(ins.x, result, no_borrow)

    def _op_subn(self, ins):
        result, no_borrow = alu.sub8(self.regs.V[ins.y], self.regs.V[ins.x])
        self._set_with_flag(ins.x, result, no_borrow)

    def _shift_source(self, ins) -> int:
        return self.regs.V[ins.y] if self.quirks.shift_uses_vy else self.regs.V[ins.x]

    def _op_shr(self, ins):
        result, bit = alu.shr8(self._shift_source(ins))
        self._set_with_flag(ins.x, result, bit)

    def _op_shl(self, ins):
        result, bit = alu.shl8(self._shift_source(ins))
        self._set_with_flag(ins.x, result, bit)

    # ── Address register / memory ──

    def _op_ld_i(self, ins):
        self.regs.I = ins.nnn

    def _op_add_i_vx(self, ins):
        self.regs.I = alu.wrap16(self.regs.I + self.regs.V[ins.x])

    def _op_ld_b_vx(self, ins):
        self.mem.write_block(self.regs.I, alu.bcd(self.regs.V[ins.x]))

    def _op_ld_mem_vx(self, ins):
        count = ins.x + 1
        self.mem.write_block(self.regs.I, self.regs.V[:count])
        self.regs.I = alu.wrap16(self.regs.I + count)

    def _op_ld_vx_mem(self, ins):
        count = ins.x + 1
        data = self.mem.read_block(self.regs.I, count)
        self.regs.V[:count] = list(data)
        self.regs.I = alu.wrap16(self.regs.I + count)

    # ── Display ──

    def _op_drw(self, ins):
        sprite = self.mem.read_block(self.regs.I, ins.n)
        x = self.regs.V[ins.x]
        y = self.regs.V[ins.y]
        collision = self.display.blit(sprite, x, y, self.quirks.vertical_overflow)
        self.regs.V[FLAG_REGISTER] = 1 if collision else 0

    # ── Unimplemented ──

    def _op_unimplemented(self, ins):
        raise UnimplementedOperation(
            f"{ins.mnemonic} ({ins.op.value}) is not implemented by this core")

    # ══════════════════════════════════════════════
    # Breakpoint API
    # ══════════════════════════════════════════════

    def add_breakpoint(self, addr: int):
        """Stop before executing the instruction at addr. Stepping again
        from the breakpoint executes it."""
        self._breakpoints.add(addr)

    def remove_breakpoint(self, addr: int):
        self._breakpoints.discard(addr)

    def clear_breakpoints(self):
        self._breakpoints.clear()

    # ══════════════════════════════════════════════
    # Trace / Debug
    # ══════════════════════════════════════════════

    def enable_trace(self, enable: bool = True):
        self._trace = enable

    def get_trace(self) -> str:
        return '\n'.join(self._trace_output)

    def clear_trace(self):
        self._trace_output.clear()

    def reset(self):
        """Power-on reset. The loaded program stays in memory; the font
        is restored in case the program overwrote it."""
        self.regs.reset()
        self.mem.load_font()
        self.stack.clear()
        self.display.clear()
        self.steps = 0
        self._fault = None
        self._break_resume = None
        self._trace_output.clear()
