"""
CHIP-8 VM: Instruction Decoder

Maps a 16-bit instruction word to (Op, operand fields). Stateless: the
decoder never touches memory or registers, it only splits the word.

Word layout (big-endian, high byte fetched first):

    F X Y N        family nibble, register X, register Y, 4-bit N
    . . N N        8-bit immediate NN
    . N N N        12-bit address NNN

Families 0, 8, E and F need a second dispatch on the low nibble or low
byte; 5 and 9 require a zero low nibble. Everything else is decided by
the family nibble alone.

Opcode table (35 operations, Cowgod naming):

    00E0 CLS            8XY0 LD Vx, Vy      ANNN LD I, addr
    00EE RET            8XY1 OR Vx, Vy      BNNN JP V0, addr
    0NNN SYS addr       8XY2 AND Vx, Vy     CXNN RND Vx, byte
    1NNN JP addr        8XY3 XOR Vx, Vy     DXYN DRW Vx, Vy, n
    2NNN CALL addr      8XY4 ADD Vx, Vy     EX9E SKP Vx
    3XNN SE Vx, byte    8XY5 SUB Vx, Vy     EXA1 SKNP Vx
    4XNN SNE Vx, byte   8XY6 SHR Vx, Vy     FX07 LD Vx, DT
    5XY0 SE Vx, Vy      8XY7 SUBN Vx, Vy    FX0A LD Vx, K
    6XNN LD Vx, byte    8XYE SHL Vx, Vy     FX15 LD DT, Vx
    7XNN ADD Vx, byte   9XY0 SNE Vx, Vy     FX18 LD ST, Vx
                                            FX1E ADD I, Vx
                                            FX29 LD F, Vx
                                            FX33 LD B, Vx
                                            FX55 LD [I], Vx
                                            FX65 LD Vx, [I]

0NNN (SYS) is a tag in Op so the enum is complete, but decode() rejects
it: machine-code routines cannot run on an interpreter.
"""

from dataclasses import dataclass
from enum import Enum

from ..errors import IllegalOpcode


class Op(Enum):
    """Closed set of CHIP-8 operations, valued by their opcode pattern."""
    SYS = '0NNN'
    CLS = '00E0'
    RET = '00EE'
    JP = '1NNN'
    CALL = '2NNN'
    SE_VX_NN = '3XNN'
    SNE_VX_NN = '4XNN'
    SE_VX_VY = '5XY0'
    LD_VX_NN = '6XNN'
    ADD_VX_NN = '7XNN'
    LD_VX_VY = '8XY0'
    OR = '8XY1'
    AND = '8XY2'
    XOR = '8XY3'
    ADD_VX_VY = '8XY4'
    SUB = '8XY5'
    SHR = '8XY6'
    SUBN = '8XY7'
    SHL = '8XYE'
    SNE_VX_VY = '9XY0'
    LD_I = 'ANNN'
    JP_V0 = 'BNNN'
    RND = 'CXNN'
    DRW = 'DXYN'
    SKP = 'EX9E'
    SKNP = 'EXA1'
    LD_VX_DT = 'FX07'
    LD_VX_K = 'FX0A'
    LD_DT_VX = 'FX15'
    LD_ST_VX = 'FX18'
    ADD_I_VX = 'FX1E'
    LD_F_VX = 'FX29'
    LD_B_VX = 'FX33'
    LD_MEM_VX = 'FX55'
    LD_VX_MEM = 'FX65'


# ──────────────────────────────────────────────
# Disassembly templates: Op -> format string over the Instruction fields
# ──────────────────────────────────────────────

MNEMONICS = {
    Op.SYS:        'SYS   ${nnn:03X}',
    Op.CLS:        'CLS',
    Op.RET:        'RET',
    Op.JP:         'JP    ${nnn:03X}',
    Op.CALL:       'CALL  ${nnn:03X}',
    Op.SE_VX_NN:   'SE    V{x:X}, ${nn:02X}',
    Op.SNE_VX_NN:  'SNE   V{x:X}, ${nn:02X}',
    Op.SE_VX_VY:   'SE    V{x:X}, V{y:X}',
    Op.LD_VX_NN:   'LD    V{x:X}, ${nn:02X}',
    Op.ADD_VX_NN:  'ADD   V{x:X}, ${nn:02X}',
    Op.LD_VX_VY:   'LD    V{x:X}, V{y:X}',
    Op.OR:         'OR    V{x:X}, V{y:X}',
    Op.AND:        'AND   V{x:X}, V{y:X}',
    Op.XOR:        'XOR   V{x:X}, V{y:X}',
    Op.ADD_VX_VY:  'ADD   V{x:X}, V{y:X}',
    Op.SUB:        'SUB   V{x:X}, V{y:X}',
    Op.SHR:        'SHR   V{x:X}, V{y:X}',
    Op.SUBN:       'SUBN  V{x:X}, V{y:X}',
    Op.SHL:        'SHL   V{x:X}, V{y:X}',
    Op.SNE_VX_VY:  'SNE   V{x:X}, V{y:X}',
    Op.LD_I:       'LD    I, ${nnn:03X}',
    Op.JP_V0:      'JP    V0, ${nnn:03X}',
    Op.RND:        'RND   V{x:X}, ${nn:02X}',
    Op.DRW:        'DRW   V{x:X}, V{y:X}, {n}',
    Op.SKP:        'SKP   V{x:X}',
    Op.SKNP:       'SKNP  V{x:X}',
    Op.LD_VX_DT:   'LD    V{x:X}, DT',
    Op.LD_VX_K:    'LD    V{x:X}, K',
    Op.LD_DT_VX:   'LD    DT, V{x:X}',
    Op.LD_ST_VX:   'LD    ST, V{x:X}',
    Op.ADD_I_VX:   'ADD   I, V{x:X}',
    Op.LD_F_VX:    'LD    F, V{x:X}',
    Op.LD_B_VX:    'LD    B, V{x:X}',
    Op.LD_MEM_VX:  'LD    [I], V{x:X}',
    Op.LD_VX_MEM:  'LD    V{x:X}, [I]',
}


# ──────────────────────────────────────────────
# Dispatch tables
# ──────────────────────────────────────────────

# Families decided by the high nibble alone
FAMILY_OPS = {
    0x1: Op.JP,
    0x2: Op.CALL,
    0x3: Op.SE_VX_NN,
    0x4: Op.SNE_VX_NN,
    0x6: Op.LD_VX_NN,
    0x7: Op.ADD_VX_NN,
    0xA: Op.LD_I,
    0xB: Op.JP_V0,
    0xC: Op.RND,
    0xD: Op.DRW,
}

# 8XY_ by low nibble
ALU_OPS = {
    0x0: Op.LD_VX_VY,
    0x1: Op.OR,
    0x2: Op.AND,
    0x3: Op.XOR,
    0x4: Op.ADD_VX_VY,
    0x5: Op.SUB,
    0x6: Op.SHR,
    0x7: Op.SUBN,
    0xE: Op.SHL,
}

# EX__ by low byte
KEY_OPS = {
    0x9E: Op.SKP,
    0xA1: Op.SKNP,
}

# FX__ by low byte
MISC_OPS = {
    0x07: Op.LD_VX_DT,
    0x0A: Op.LD_VX_K,
    0x15: Op.LD_DT_VX,
    0x18: Op.LD_ST_VX,
    0x1E: Op.ADD_I_VX,
    0x29: Op.LD_F_VX,
    0x33: Op.LD_B_VX,
    0x55: Op.LD_MEM_VX,
    0x65: Op.LD_VX_MEM,
}

# Both 0x0 family operations need the second nibble to be zero
SYSTEM_OPS = {
    0xE0: Op.CLS,
    0xEE: Op.RET,
}


@dataclass(frozen=True)
class Instruction:
    """A decoded word. All operand fields are always populated; each
    operation reads only the ones its pattern names."""
    word: int
    op: Op

    @property
    def family(self) -> int:
        return (self.word >> 12) & 0xF

    @property
    def x(self) -> int:
        return (self.word >> 8) & 0xF

    @property
    def y(self) -> int:
        return (self.word >> 4) & 0xF

    @property
    def n(self) -> int:
        return self.word & 0xF

    @property
    def nn(self) -> int:
        return self.word & 0xFF

    @property
    def nnn(self) -> int:
        return self.word & 0xFFF

    @property
    def mnemonic(self) -> str:
        return MNEMONICS[self.op].split()[0]

    def disasm(self) -> str:
        """Assembly text, e.g. 'DRW   V0, V1, 5'."""
        return MNEMONICS[self.op].format(x=self.x, y=self.y, n=self.n,
                                         nn=self.nn, nnn=self.nnn)

    def __str__(self) -> str:
        return f"{self.word:04X} {self.disasm()}"


def decode(word: int) -> Instruction:
    """Decode a 16-bit instruction word.

    Raises IllegalOpcode for machine-code calls (0NNN), unknown 8XY_,
    EX__ and FX__ sub-opcodes, and 5XY_/9XY_ with a nonzero low nibble.
    """
    word &= 0xFFFF
    family = word >> 12
    low_nibble = word & 0xF
    low_byte = word & 0xFF

    if family in FAMILY_OPS:
        return Instruction(word, FAMILY_OPS[family])

    op = None
    if family == 0x0:
        if (word & 0x0F00) == 0:
            op = SYSTEM_OPS.get(low_byte)
        if op is None:
            raise IllegalOpcode(
                f"Machine code routine call ${word:04X} not supported", word=word)
    elif family == 0x5 and low_nibble == 0:
        op = Op.SE_VX_VY
    elif family == 0x9 and low_nibble == 0:
        op = Op.SNE_VX_VY
    elif family == 0x8:
        op = ALU_OPS.get(low_nibble)
    elif family == 0xE:
        op = KEY_OPS.get(low_byte)
    elif family == 0xF:
        op = MISC_OPS.get(low_byte)

    if op is None:
        raise IllegalOpcode(f"Unknown opcode ${word:04X}", word=word)
    return Instruction(word, op)


def fetch_word(memory, pc: int) -> int:
    """Read the big-endian instruction word at pc."""
    return memory.read16(pc)
