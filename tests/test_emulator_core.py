"""
CHIP-8 VM: Core Integration Tests

Tests that prove the engine executes real CHIP-8 machine code. Every
program is hand-assembled bytes loaded at $200; no ROM files needed.

Cross-references:
  - Cowgod's CHIP-8 Technical Reference (opcode semantics)
  - chip8_vm/cpu/decoder.py opcode table
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from chip8_vm.config import Quirks, FONT
from chip8_vm.cpu.decoder import Op
from chip8_vm.emu import Chip8Emulator, StepResult, StopReason
from chip8_vm.errors import (
    IllegalOpcode, UnimplementedOperation, StackUnderflow, MemoryFault,
    SpriteOutOfBounds,
)


def _emu(program, quirks=None) -> Chip8Emulator:
    emu = Chip8Emulator(quirks=quirks) if quirks else Chip8Emulator()
    emu.load(bytes(program), 0x200)
    return emu


def _run(program, steps, quirks=None) -> Chip8Emulator:
    emu = _emu(program, quirks)
    for _ in range(steps):
        result = emu.step()
        assert result.ok, result.describe()
    return emu


# ═══════════════════════════════════════════════
# Test Group 1: Individual Instructions
# ═══════════════════════════════════════════════

class TestLoadAdd:

    def test_ld_then_add_immediate(self):
        """6005; 7003 -> V0 = 8"""
        emu = _run([0x60, 0x05, 0x70, 0x03], 2)
        assert emu.regs.V[0] == 8
        assert emu.regs.PC == 0x204

    def test_add_immediate_wraps_without_flag(self):
        """6AFF; 6F07; 7A02 -> VA = $01, VF untouched"""
        emu = _run([0x6A, 0xFF, 0x6F, 0x07, 0x7A, 0x02], 3)
        assert emu.regs.V[0xA] == 0x01
        assert emu.regs.VF == 0x07

    def test_ld_vx_vy(self):
        """6142; 8010 -> V0 = V1"""
        emu = _run([0x61, 0x42, 0x80, 0x10], 2)
        assert emu.regs.V[0] == 0x42
        assert emu.regs.V[1] == 0x42


class TestBitwise:

    def test_or(self):
        """60F0; 610F; 8011 -> V0 = $FF"""
        emu = _run([0x60, 0xF0, 0x61, 0x0F, 0x80, 0x11], 3)
        assert emu.regs.V[0] == 0xFF

    def test_and(self):
        """603C; 610F; 8012 -> V0 = $0C"""
        emu = _run([0x60, 0x3C, 0x61, 0x0F, 0x80, 0x12], 3)
        assert emu.regs.V[0] == 0x0C

    def test_xor(self):
        """60FF; 610F; 8013 -> V0 = $F0"""
        emu = _run([0x60, 0xFF, 0x61, 0x0F, 0x80, 0x13], 3)
        assert emu.regs.V[0] == 0xF0


class TestArithmetic:
    """8XY4/8XY5/8XY7: result in VX, flag in VF."""

    @pytest.mark.parametrize("a,b,result,carry", [
        (0x10, 0x20, 0x30, 0),
        (0xFF, 0x01, 0x00, 1),
        (0x80, 0x80, 0x00, 1),
        (0xC8, 0x64, 0x2C, 1),   # 200 + 100 = 300 -> 44
        (0x7F, 0x80, 0xFF, 0),
    ])
    def test_add_registers(self, a, b, result, carry):
        """8014: V0 = V0 + V1, VF = carry"""
        emu = _run([0x60, a, 0x61, b, 0x80, 0x14], 3)
        assert emu.regs.V[0] == result
        assert emu.regs.VF == carry

    @pytest.mark.parametrize("a,b,result,flag", [
        (10, 5, 5, 1),
        (5, 10, 251, 0),
        (7, 7, 0, 1),
        (0, 255, 1, 0),
    ])
    def test_sub(self, a, b, result, flag):
        """8015: V0 = V0 - V1, VF = NOT borrow"""
        emu = _run([0x60, a, 0x61, b, 0x80, 0x15], 3)
        assert emu.regs.V[0] == result
        assert emu.regs.VF == flag

    @pytest.mark.parametrize("a,b,result,flag", [
        (5, 10, 5, 1),
        (10, 5, 251, 0),
        (9, 9, 0, 1),
    ])
    def test_subn(self, a, b, result, flag):
        """8017: V0 = V1 - V0, VF = NOT borrow"""
        emu = _run([0x60, a, 0x61, b, 0x80, 0x17], 3)
        assert emu.regs.V[0] == result
        assert emu.regs.VF == flag

    def test_flag_register_as_destination_holds_flag(self):
        """6FFF; 6101; 8F14 -> VF = carry (1), not the sum"""
        emu = _run([0x6F, 0xFF, 0x61, 0x01, 0x8F, 0x14], 3)
        assert emu.regs.VF == 1


class TestShifts:

    def test_shr_uses_vy(self):
        """6105; 8016 -> V0 = $02, VF = 1, V1 unchanged"""
        emu = _run([0x61, 0x05, 0x80, 0x16], 2)
        assert emu.regs.V[0] == 0x02
        assert emu.regs.VF == 1
        assert emu.regs.V[1] == 0x05

    def test_shr_even_clears_flag(self):
        """6104; 8016 -> V0 = $02, VF = 0"""
        emu = _run([0x61, 0x04, 0x80, 0x16], 2)
        assert emu.regs.V[0] == 0x02
        assert emu.regs.VF == 0

    def test_shl_flag_is_msb(self):
        """6181; 801E -> V0 = $02, VF = 1 (bit 7 only, not the whole byte)"""
        emu = _run([0x61, 0x81, 0x80, 0x1E], 2)
        assert emu.regs.V[0] == 0x02
        assert emu.regs.VF == 1

    def test_shl_without_msb(self):
        """6141; 801E -> V0 = $82, VF = 0"""
        emu = _run([0x61, 0x41, 0x80, 0x1E], 2)
        assert emu.regs.V[0] == 0x82
        assert emu.regs.VF == 0

    def test_shift_in_place_quirk(self):
        """With shift_uses_vy=False, 8016 shifts V0 and ignores V1"""
        quirks = Quirks(shift_uses_vy=False)
        emu = _run([0x60, 0x07, 0x61, 0xF0, 0x80, 0x16], 3, quirks)
        assert emu.regs.V[0] == 0x03
        assert emu.regs.VF == 1


class TestSkips:

    def test_se_immediate_taken(self):
        """6005; 3005 -> skip, PC = $206"""
        emu = _run([0x60, 0x05, 0x30, 0x05], 2)
        assert emu.regs.PC == 0x206

    def test_se_immediate_not_taken(self):
        """6005; 3006 -> no skip, PC = $204"""
        emu = _run([0x60, 0x05, 0x30, 0x06], 2)
        assert emu.regs.PC == 0x204

    def test_sne_immediate(self):
        """6005; 4006 -> skip"""
        emu = _run([0x60, 0x05, 0x40, 0x06], 2)
        assert emu.regs.PC == 0x206

    def test_se_registers(self):
        """6009; 6109; 5010 -> skip"""
        emu = _run([0x60, 0x09, 0x61, 0x09, 0x50, 0x10], 3)
        assert emu.regs.PC == 0x208

    def test_sne_registers_not_taken(self):
        """6009; 6109; 9010 -> no skip"""
        emu = _run([0x60, 0x09, 0x61, 0x09, 0x90, 0x10], 3)
        assert emu.regs.PC == 0x206

    def test_skipped_instruction_does_not_run(self):
        """3000 skips 6042 (V0 == 0 at power-on)"""
        emu = _run([0x30, 0x00, 0x60, 0x42, 0x61, 0x01], 2)
        assert emu.regs.V[0] == 0
        assert emu.regs.V[1] == 1


class TestFlowControl:

    def test_jump(self):
        """1208 -> PC = $208"""
        emu = _run([0x12, 0x08], 1)
        assert emu.regs.PC == 0x208

    def test_call_and_return(self):
        """CALL $300 at $200, RET at $300 -> resumes at $202"""
        emu = _emu([0x23, 0x00])
        emu.mem.write_block(0x300, [0x00, 0xEE])
        assert emu.step().ok
        assert emu.regs.PC == 0x300
        assert emu.stack.frames() == [0x200]
        assert emu.step().ok
        assert emu.regs.PC == 0x202
        assert emu.stack.depth == 0

    def test_nested_calls(self):
        """$200 CALL $300; $300 CALL $400; $400 RET; $302 RET -> $202"""
        emu = _emu([0x23, 0x00, 0x60, 0x01])
        emu.mem.write_block(0x300, [0x24, 0x00, 0x00, 0xEE])
        emu.mem.write_block(0x400, [0x00, 0xEE])
        for _ in range(4):
            assert emu.step().ok
        assert emu.regs.PC == 0x202
        assert emu.step().ok
        assert emu.regs.V[0] == 1

    def test_cls(self):
        """A000; D005; 00E0 -> screen blank"""
        emu = _run([0xA0, 0x00, 0xD0, 0x05, 0x00, 0xE0], 2)
        assert emu.framebuffer().lit_count() > 0
        assert emu.step().ok
        assert emu.framebuffer().lit_count() == 0


class TestAddressRegister:

    def test_ld_i(self):
        """A2F0 -> I = $2F0"""
        emu = _run([0xA2, 0xF0], 1)
        assert emu.regs.I == 0x2F0

    def test_add_i(self):
        """A100; 6020; F01E -> I = $120"""
        emu = _run([0xA1, 0x00, 0x60, 0x20, 0xF0, 0x1E], 3)
        assert emu.regs.I == 0x120
        assert emu.regs.VF == 0

    def test_add_i_wraps_16_bits(self):
        """I = $FFFF; V0 = 2; F01E -> I = $0001"""
        emu = _emu([0x60, 0x02, 0xF0, 0x1E])
        emu.regs.I = 0xFFFF
        emu.step()
        emu.step()
        assert emu.regs.I == 0x0001

    def test_bcd(self):
        """V0 = 157; I = $300; F033 -> [1, 5, 7]"""
        emu = _run([0x60, 157, 0xA3, 0x00, 0xF0, 0x33], 3)
        assert emu.mem.read_block(0x300, 3) == bytes([1, 5, 7])
        assert emu.regs.I == 0x300

    @pytest.mark.parametrize("value,digits", [(0, [0, 0, 0]), (9, [0, 0, 9]),
                                              (40, [0, 4, 0]), (255, [2, 5, 5])])
    def test_bcd_digits(self, value, digits):
        emu = _run([0x65, value, 0xA3, 0x00, 0xF5, 0x33], 3)
        assert list(emu.mem.read_block(0x300, 3)) == digits

    def test_register_dump_load_round_trip(self):
        """F355 then F365 restores V0..V3; I ends 4 past the base"""
        program = [
            0x60, 0x11, 0x61, 0x22, 0x62, 0x33, 0x63, 0x44,   # V0..V3
            0xA3, 0x00,                                       # I = $300
            0xF3, 0x55,                                       # dump V0..V3
            0x60, 0x00, 0x61, 0x00, 0x62, 0x00, 0x63, 0x00,   # clear
            0xA3, 0x00,                                       # I = $300
            0xF3, 0x65,                                       # load V0..V3
        ]
        emu = _emu(program)
        for _ in range(6):
            emu.step()
        assert emu.mem.read_block(0x300, 4) == bytes([0x11, 0x22, 0x33, 0x44])
        assert emu.regs.I == 0x304
        for _ in range(6):
            emu.step()
        assert emu.regs.V[:4] == [0x11, 0x22, 0x33, 0x44]
        assert emu.regs.I == 0x304

    def test_dump_only_touches_v0_to_vx(self):
        """F155 writes V0, V1 and leaves $302 alone"""
        emu = _emu([0x60, 0x01, 0x61, 0x02, 0x62, 0x03, 0xA3, 0x00, 0xF1, 0x55])
        emu.mem.write8(0x302, 0xEE)
        for _ in range(5):
            emu.step()
        assert emu.mem.read_block(0x300, 3) == bytes([0x01, 0x02, 0xEE])
        assert emu.regs.I == 0x302


class TestDraw:

    def test_draw_font_zero(self):
        """A000; D005 -> glyph '0' in the top-left 8x5 cells"""
        emu = _run([0xA0, 0x00, 0xD0, 0x05], 2)
        view = emu.framebuffer()
        for row, bits in enumerate(FONT[0:5]):
            for col in range(8):
                assert view[col, row] == bool((bits >> (7 - col)) & 1)
        assert view.lit_count() == 4 + 2 + 2 + 2 + 4
        assert emu.regs.VF == 0

    def test_draw_sprite_from_program_area(self):
        """Glyph copied to $300; A300; D005 draws the same '0'"""
        emu = _emu([0xA3, 0x00, 0xD0, 0x05])
        emu.mem.write_block(0x300, FONT[0:5])
        emu.step()
        emu.step()
        assert emu.framebuffer().to_text().splitlines()[0].startswith("####....")

    def test_draw_twice_erases_and_collides(self):
        """D005 twice -> blank screen, VF = 1"""
        emu = _run([0xA0, 0x00, 0xD0, 0x05, 0xD0, 0x05], 3)
        assert emu.framebuffer().lit_count() == 0
        assert emu.regs.VF == 1

    def test_draw_uses_register_coordinates(self):
        """V1 = 10, V2 = 4; A000; D125 -> top-left of glyph at (10, 4)"""
        emu = _run([0x61, 10, 0x62, 4, 0xA0, 0x00, 0xD1, 0x25], 4)
        view = emu.framebuffer()
        assert view[10, 4]
        assert not view[9, 4]
        assert view[13, 5]

    def test_draw_clears_stale_flag(self):
        """VF = 7 before a non-colliding draw -> VF = 0"""
        emu = _run([0x6F, 0x07, 0xA0, 0x00, 0xD0, 0x05], 3)
        assert emu.regs.VF == 0

    def test_draw_clips_bottom_by_default(self):
        """V1 = 30 -> only two rows drawn"""
        emu = _run([0x61, 30, 0xA0, 0x00, 0xD0, 0x15], 3)
        assert emu.framebuffer().lit_count() == 4 + 2

    def test_draw_wrap_policy(self):
        """vertical_overflow='wrap' -> rows 32-34 land on rows 0-2"""
        quirks = Quirks(vertical_overflow='wrap')
        emu = _run([0x61, 30, 0xA0, 0x00, 0xD0, 0x15], 3, quirks)
        view = emu.framebuffer()
        assert view.lit_count() == 4 + 2 + 2 + 2 + 4
        assert view[0, 2] and view[3, 2]

    def test_draw_reject_policy_is_fatal_and_atomic(self):
        """vertical_overflow='reject' -> MEMORY_FAULT, nothing drawn, VF kept"""
        quirks = Quirks(vertical_overflow='reject')
        emu = _emu([0x6F, 0x05, 0x61, 30, 0xA0, 0x00, 0xD0, 0x15], quirks)
        for _ in range(3):
            emu.step()
        result = emu.step()
        assert result.reason == StopReason.MEMORY_FAULT
        assert isinstance(result.error, SpriteOutOfBounds)
        assert emu.framebuffer().lit_count() == 0
        assert emu.regs.VF == 0x05
        assert emu.regs.PC == 0x206


# ═══════════════════════════════════════════════
# Test Group 2: Faults
# ═══════════════════════════════════════════════

class TestFaults:

    def test_illegal_opcode(self):
        """0123 (machine code call) -> ILLEGAL"""
        emu = _emu([0x01, 0x23])
        result = emu.step()
        assert not result.ok
        assert result.reason == StopReason.ILLEGAL
        assert result.pc == 0x200
        assert result.word == 0x0123
        assert result.op is None
        assert isinstance(result.error, IllegalOpcode)
        assert result.error.pc == 0x200
        assert emu.regs.PC == 0x200

    def test_fault_is_latched(self):
        """After a fault, step() keeps returning it without executing"""
        emu = _emu([0x80, 0x08])
        first = emu.step()
        second = emu.step()
        assert second is first
        assert emu.halted
        assert emu.steps == 0

    def test_return_with_empty_stack(self):
        """00EE at power-on -> STACK_UNDERFLOW"""
        emu = _emu([0x00, 0xEE])
        result = emu.step()
        assert result.reason == StopReason.STACK_UNDERFLOW
        assert result.op == Op.RET
        assert isinstance(result.error, StackUnderflow)

    @pytest.mark.parametrize("word", [0xF007, 0xF00A, 0xF015, 0xF018, 0xF029,
                                      0xE09E, 0xE0A1, 0xB200, 0xC0FF])
    def test_unimplemented_operations(self, word):
        emu = _emu([word >> 8, word & 0xFF])
        result = emu.step()
        assert result.reason == StopReason.UNIMPLEMENTED
        assert isinstance(result.error, UnimplementedOperation)
        assert result.word == word

    def test_fetch_outside_memory(self):
        """PC = $FFF -> word straddles the top of memory"""
        emu = Chip8Emulator()
        emu.regs.PC = 0xFFF
        result = emu.step()
        assert result.reason == StopReason.MEMORY_FAULT
        assert result.word is None
        assert isinstance(result.error, MemoryFault)

    def test_dump_past_end_is_atomic(self):
        """I = $FFE; F255 needs 3 bytes -> fault, memory and I untouched"""
        emu = _emu([0x60, 0xAA, 0xAF, 0xFE, 0xF2, 0x55])
        emu.step()
        emu.step()
        before = emu.mem.snapshot()
        result = emu.step()
        assert result.reason == StopReason.MEMORY_FAULT
        assert emu.mem.snapshot() == before
        assert emu.regs.I == 0xFFE

    def test_fault_describe(self):
        emu = _emu([0x00, 0xEE])
        text = emu.step().describe()
        assert "$200" in text
        assert "00EE" in text
        assert "STACK_UNDERFLOW" in text


# ═══════════════════════════════════════════════
# Test Group 3: Run loop / debug surface
# ═══════════════════════════════════════════════

class TestRunLoop:

    def test_step_result_ok(self):
        emu = _emu([0x60, 0x01])
        result = emu.step()
        assert isinstance(result, StepResult)
        assert result.ok
        assert result.op == Op.LD_VX_NN
        assert result.word == 0x6001

    def test_run_timeout(self):
        """1200 loops forever -> TIMEOUT after the budget"""
        emu = _emu([0x12, 0x00])
        assert emu.run(max_steps=10) == StopReason.TIMEOUT
        assert emu.steps == 10
        assert emu.regs.PC == 0x200

    def test_run_stops_on_fault(self):
        emu = _emu([0x60, 0x01, 0x00, 0xEE])
        assert emu.run(max_steps=10) == StopReason.STACK_UNDERFLOW
        assert emu.steps == 1

    def test_breakpoint_then_resume(self):
        emu = _emu([0x60, 0x01, 0x61, 0x02, 0x12, 0x04])
        emu.add_breakpoint(0x202)
        assert emu.run(max_steps=10) == StopReason.BREAK
        assert emu.regs.PC == 0x202
        assert emu.regs.V[1] == 0
        assert emu.step().ok
        assert emu.regs.V[1] == 2
        emu.remove_breakpoint(0x202)
        assert emu.run(max_steps=5) == StopReason.TIMEOUT

    def test_trace(self):
        emu = _emu([0x60, 0x05])
        emu.enable_trace()
        emu.step()
        trace = emu.get_trace()
        assert "$200" in trace
        assert "LD    V0, $05" in trace
        emu.clear_trace()
        assert emu.get_trace() == ""

    def test_reset_clears_fault_and_keeps_program(self):
        emu = _emu([0x60, 0x05, 0x00, 0xEE])
        emu.run(max_steps=5)
        assert emu.halted
        emu.reset()
        assert not emu.halted
        assert emu.regs.PC == 0x200
        assert emu.regs.V[0] == 0
        assert emu.step().ok
        assert emu.regs.V[0] == 5

    def test_independent_instances(self):
        a = _run([0x60, 0x01], 1)
        b = _run([0x60, 0x02], 1)
        assert a.regs.V[0] == 1
        assert b.regs.V[0] == 2

    def test_dispatch_covers_every_op(self):
        emu = Chip8Emulator()
        assert set(emu._dispatch) == set(Op)

    def test_load_binary_from_path(self, tmp_path):
        rom = tmp_path / "add.ch8"
        rom.write_bytes(bytes([0x60, 0x05, 0x70, 0x03]))
        emu = Chip8Emulator()
        emu.load_binary(rom)
        emu.run(max_steps=2)
        assert emu.regs.V[0] == 8

    def test_load_too_large(self):
        emu = Chip8Emulator()
        with pytest.raises(MemoryFault):
            emu.load(bytes(0xE01))
