"""CHIP-8 VM: CPU side (registers, decoder, ALU)."""
