"""CHIP-8 VM: Memory side (4K address space, call stack)."""
