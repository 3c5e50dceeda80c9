#!/usr/bin/env python3
"""
chip8kit: Headless CHIP-8 Toolkit
==================================

One CLI for the VM core:
    chip8kit run     Run a ROM headless, print stop reason, registers, screen
    chip8kit disasm  Disassemble a ROM image
    chip8kit info    ROM summary: size, opcode mix, words the core cannot run

Usage:
    python chip8kit.py <command> [options]
    python chip8kit.py <command> --help

Examples:
    python chip8kit.py run roms/ibm_logo.ch8 --steps 500
    python chip8kit.py run game.ch8 --break 0x24A --trace -v
    python chip8kit.py disasm game.ch8 -o game.lst
    python chip8kit.py info game.ch8
"""

import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from chip8_vm import __version__
from chip8_vm.config import PROGRAM_START, Quirks, VERTICAL_POLICIES
from chip8_vm.disasm import disassemble_bytes, summarize
from chip8_vm.emu import Chip8Emulator, StopReason
from chip8_vm.errors import Chip8Fault
from chip8_vm.log_setup import setup_logging, level_from_verbosity

log = logging.getLogger("chip8_vm.chip8kit")

# Stop reasons that mean the ROM ran as far as asked without a fault
CLEAN_STOPS = (StopReason.TIMEOUT, StopReason.BREAK)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chip8kit",
        description="Headless CHIP-8 toolkit: run, disassemble, inspect",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""commands:
  run      Run a ROM without a window and dump the final machine state
  disasm   Disassemble a ROM to CHIP-8 mnemonics
  info     Summarize a ROM image
""",
    )
    parser.add_argument("--version", action="version", version=f"chip8kit {__version__}")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Increase console logging (-v info, -vv debug)")
    parser.add_argument("-q", "--quiet", action="store_true",
                        help="Only log errors")
    parser.add_argument("--log-file", help="Also write a DEBUG log to this file")
    sub = parser.add_subparsers(dest="command", metavar="command")

    # ── run ──────────────────────────────────────────────────────────────
    p_run = sub.add_parser("run", help="Run a ROM headless")
    p_run.add_argument("rom", help="ROM image (.ch8)")
    p_run.add_argument("--steps", type=int, default=10_000,
                       help="Instruction budget (default: 10000)")
    p_run.add_argument("--base", type=_parse_hex, default=PROGRAM_START,
                       help="Load address (hex, default: 0x200)")
    p_run.add_argument("--break", dest="breakpoints", action="append", default=[],
                       type=_parse_hex, metavar="ADDR",
                       help="Stop before executing ADDR (hex, repeatable)")
    p_run.add_argument("--trace", action="store_true",
                       help="Print the instruction trace after the run")
    p_run.add_argument("--quirk-vx", action="store_true",
                       help="Shift VX in place for 8XY6/8XYE instead of VY")
    p_run.add_argument("--vertical", choices=VERTICAL_POLICIES, default="clip",
                       help="Sprite rows below the screen: clip, wrap or reject")
    p_run.add_argument("--hexdump", type=_parse_hex, default=None, metavar="ADDR",
                       help="Also dump 64 bytes of memory from ADDR")

    # ── disasm ───────────────────────────────────────────────────────────
    p_dis = sub.add_parser("disasm", help="Disassemble a ROM")
    p_dis.add_argument("rom", help="ROM image (.ch8)")
    p_dis.add_argument("--base", type=_parse_hex, default=PROGRAM_START,
                       help="Address of the first byte (hex, default: 0x200)")
    p_dis.add_argument("-o", "--output", help="Output file (default: stdout)")

    # ── info ─────────────────────────────────────────────────────────────
    p_info = sub.add_parser("info", help="Summarize a ROM image")
    p_info.add_argument("rom", help="ROM image (.ch8)")
    p_info.add_argument("--base", type=_parse_hex, default=PROGRAM_START)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(console_level=level_from_verbosity(args.verbose, args.quiet),
                  log_file=args.log_file)

    handler = COMMANDS[args.command]
    try:
        return handler(args)
    except OSError as e:
        log.error("Cannot read %s: %s", getattr(args, "rom", "?"), e)
        return 1
    except Chip8Fault as e:
        log.error("%s", e)
        return 1


# ═════════════════════════════════════════════════════════════════════════════
# COMMAND IMPLEMENTATIONS
# ═════════════════════════════════════════════════════════════════════════════

def _parse_hex(s):
    """Parse hex string with optional 0x or $ prefix."""
    s = s.strip()
    if s.startswith("0x") or s.startswith("0X"):
        return int(s, 16)
    if s.startswith("$"):
        return int(s[1:], 16)
    return int(s, 16)


# ── run ──────────────────────────────────────────────────────────────────
def cmd_run(args):
    console = Console()
    quirks = Quirks(shift_uses_vy=not args.quirk_vx, vertical_overflow=args.vertical)
    emu = Chip8Emulator(quirks=quirks)
    emu.load_binary(Path(args.rom), args.base)
    emu.regs.PC = args.base
    for addr in args.breakpoints:
        emu.add_breakpoint(addr)
    emu.enable_trace(args.trace)

    reason = emu.run(max_steps=args.steps)

    console.print(f"[bold]Stopped:[/bold] {reason.value} after {emu.steps} instructions")
    if emu.fault is not None:
        console.print(f"[red]{emu.fault.describe()}[/red]")

    console.print(_register_table(emu))
    if emu.stack.depth:
        frames = ' '.join(f"${a:03X}" for a in emu.stack.frames())
        console.print(f"Stack: {frames}")
    console.print(emu.framebuffer().to_text(), highlight=False)

    if args.hexdump is not None:
        console.print(emu.mem.hexdump(args.hexdump, 64), highlight=False)
    if args.trace:
        console.print(emu.get_trace(), highlight=False)

    return 0 if reason in CLEAN_STOPS else 1


def _register_table(emu) -> Table:
    table = Table(title=f"PC=${emu.regs.PC:03X}  I=${emu.regs.I:04X}")
    for i in range(16):
        table.add_column(f"V{i:X}", justify="right")
    table.add_row(*(f"{v:02X}" for v in emu.regs.V))
    return table


# ── disasm ───────────────────────────────────────────────────────────────
def cmd_disasm(args):
    data = Path(args.rom).read_bytes()
    lines = disassemble_bytes(data, args.base)
    output = "\n".join(lines)
    if args.output:
        Path(args.output).write_text(output + "\n", encoding="utf-8")
        print(f"Disassembled {len(data)} bytes -> {args.output}")
    else:
        print(output)
    return 0


# ── info ─────────────────────────────────────────────────────────────────
def cmd_info(args):
    data = Path(args.rom).read_bytes()
    summary = summarize(data, args.base)
    print(f"File:           {args.rom}")
    print(f"Size:           {summary.size} bytes ({summary.words} words)")
    print(f"Load range:     ${args.base:03X}-${args.base + max(summary.size, 1) - 1:03X}")
    print(f"Illegal words:  {len(summary.illegal)}")
    print(f"Unimplemented:  {len(summary.unimplemented)}")
    for op, count in sorted(summary.op_counts.items(), key=lambda kv: -kv[1]):
        print(f"  {op.value}  {op.name:10s} {count}")
    if not summary.runnable:
        first = sorted(summary.illegal + summary.unimplemented)[:8]
        print("Words the core would halt on (may be sprite data): "
              + ", ".join(f"${a:03X}" for a in first))
    return 0


COMMANDS = {
    "run": cmd_run,
    "disasm": cmd_disasm,
    "info": cmd_info,
}


if __name__ == "__main__":
    sys.exit(main())
