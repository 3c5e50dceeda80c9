"""
CHIP-8 VM: Disassembler

Walks a ROM image two bytes at a time. Words that do not decode become
'DW' data directives, and 0NNN machine-code calls are listed as SYS so a
listing still shows where a ROM expects native code. A trailing odd byte
is listed as 'DB'.

Line format:  $ADDR  WORD  MNEMONIC OPERANDS
"""

from dataclasses import dataclass, field
from typing import Dict, List

from .config import PROGRAM_START
from .cpu.decoder import Instruction, Op, decode
from .errors import IllegalOpcode

# Ops that decode but halt the core when executed
UNIMPLEMENTED_OPS = frozenset({
    Op.JP_V0, Op.RND, Op.SKP, Op.SKNP,
    Op.LD_VX_DT, Op.LD_VX_K, Op.LD_DT_VX, Op.LD_ST_VX, Op.LD_F_VX,
})


def disassemble_word(word: int) -> str:
    try:
        return decode(word).disasm()
    except IllegalOpcode:
        if word >> 12 == 0:
            return Instruction(word, Op.SYS).disasm()
        return f"DW    ${word:04X}"


def disassemble_bytes(data: bytes, base_addr: int = PROGRAM_START) -> List[str]:
    """Disassemble raw bytes into listing lines."""
    lines = []
    data = bytes(data)
    for i in range(0, len(data) - 1, 2):
        word = (data[i] << 8) | data[i + 1]
        lines.append(f"${base_addr + i:03X}  {word:04X}  {disassemble_word(word)}")
    if len(data) % 2:
        last = len(data) - 1
        lines.append(f"${base_addr + last:03X}  {data[last]:02X}    DB    ${data[last]:02X}")
    return lines


@dataclass
class RomSummary:
    size: int
    words: int
    op_counts: Dict[Op, int] = field(default_factory=dict)
    illegal: List[int] = field(default_factory=list)        # addresses
    unimplemented: List[int] = field(default_factory=list)  # addresses

    @property
    def runnable(self) -> bool:
        """True when no word in the image would halt the core if reached.

        Data embedded in a ROM (sprites) often decodes as an illegal or
        unimplemented word, so False is a hint rather than a verdict.
        """
        return not self.illegal and not self.unimplemented


def summarize(data: bytes, base_addr: int = PROGRAM_START) -> RomSummary:
    data = bytes(data)
    summary = RomSummary(size=len(data), words=len(data) // 2)
    for i in range(0, len(data) - 1, 2):
        word = (data[i] << 8) | data[i + 1]
        try:
            op = decode(word).op
        except IllegalOpcode:
            summary.illegal.append(base_addr + i)
            continue
        summary.op_counts[op] = summary.op_counts.get(op, 0) + 1
        if op in UNIMPLEMENTED_OPS:
            summary.unimplemented.append(base_addr + i)
    return summary
