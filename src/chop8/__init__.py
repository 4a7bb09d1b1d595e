"""CHOP-8: CHIP-8 Interpreter Core.

This package implements an interpreter for the CHIP-8 virtual machine:
16 8-bit registers, 4KB of memory, a 64x32 monochrome display, a 16-entry
call stack, two 60Hz countdown timers and a 16-key keypad.

Architecture:
    MEMORY -> FETCH -> DECODE -> KEY -> REGISTRY -> EXECUTE -> STATE
               |         |        |        |           |
           [PC-based] [Nibbles]  [Op]  [Verified]  [MachineState]
                                        Primitives

Ambiguous instructions (shifts, block transfers, key waits) follow the
legacy interpretation unless the matching Quirks flag is set.

Modules:
    state: MachineState dataclass, memory layout and font
    display: Boolean framebuffer with XOR sprite blitting
    keypad: Edge-triggered input synchronizer
    decoder: Instruction word decoder emitting Op keys
    registry: Verified instruction primitives (OP_CLS, OP_DRW, etc.)
    cpu: Main Chip8CPU orchestrator
    config: Quirks flags and InterpreterConfig
    loader: ROM file and hex listing loaders
    errors: Exception hierarchy
"""

__version__ = "0.1.0"
__author__ = "CHOP-8 Project"

from .config import InterpreterConfig, Quirks
from .cpu import Chip8CPU
from .decoder import Decoder, DecodeResult, Op
from .errors import Chip8Error
from .loader import load_rom_file, parse_program
from .registry import InstructionRegistry
from .state import MachineState

__all__ = [
    "Chip8CPU",
    "Chip8Error",
    "Decoder",
    "DecodeResult",
    "InstructionRegistry",
    "InterpreterConfig",
    "MachineState",
    "Op",
    "Quirks",
    "load_rom_file",
    "parse_program",
]
