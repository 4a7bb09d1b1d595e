"""MachineState: memory image, register file and timers for CHOP-8.

State Components:
    - Memory: 4KB byte array, font glyphs in [0, 0x200), program from 0x200
    - Registers: V0-VF (16 x 8-bit), VF doubling as the flag register
    - Index: 16-bit address register (I)
    - PC: Program counter
    - Stack: Up to 16 return addresses (stack pointer == len(stack))
    - Timers: Delay and sound countdowns, real-valued, clamped at zero
    - Keys: Held/released state of the 16 keys
    - Run state: RUNNING or AWAITING_KEY (plus the awaited register)
    - Display: Boolean framebuffer

Unlike a snapshot, the state is mutated in place by the instruction
primitives; snapshot() produces the copy used by the execution trace.
"""

import math
from copy import deepcopy
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .display import Framebuffer
from .errors import ProgramSizeError


# Memory layout
MEMORY_SIZE = 0x1000
PROGRAM_START = 0x200
PROGRAM_CAPACITY = MEMORY_SIZE - PROGRAM_START
BYTES_PER_OPCODE = 2

# Register file
NUM_REGISTERS = 0x10
FLAG_REGISTER = 0xF
STACK_DEPTH = 16
NUM_KEYS = 0x10

# Delay and sound timers count down at 60Hz
TIMER_HZ = 60.0

# Hexadecimal digit glyphs, 5 rows of 4 pixels each (high nibble)
FONT_GLYPH_SIZE = 5
FONT = bytes([
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
])


def font_address(digit: int) -> int:
    """Address of the font glyph for a hexadecimal digit."""
    return FONT_GLYPH_SIZE * digit


class RunState(Enum):
    """Execution state of the interpreter."""
    RUNNING = "running"
    AWAITING_KEY = "awaiting_key"


@dataclass
class MachineState:
    """Complete mutable state of one CHOP-8 machine.

    Attributes:
        memory: 4096-byte memory image
        registers: V0-VF, each 0-255
        index: Address register I (16-bit)
        pc: Program counter
        stack: Return addresses, innermost last
        delay_timer: Delay timer (real-valued, >= 0)
        sound_timer: Sound timer (real-valued, >= 0)
        keys: Held state of keys 0-F
        run_state: RUNNING or AWAITING_KEY
        awaited_register: Register Fx0A will write once a key arrives
        display: Boolean framebuffer
        halted: Set once a fault escapes step(); cleared by reset
        cycle_count: Number of step() calls completed
    """
    memory: bytearray = field(default_factory=lambda: bytearray(MEMORY_SIZE))
    registers: List[int] = field(default_factory=lambda: [0] * NUM_REGISTERS)
    index: int = 0
    pc: int = PROGRAM_START
    stack: List[int] = field(default_factory=list)
    delay_timer: float = 0.0
    sound_timer: float = 0.0
    keys: List[bool] = field(default_factory=lambda: [False] * NUM_KEYS)
    run_state: RunState = RunState.RUNNING
    awaited_register: Optional[int] = None
    display: Framebuffer = field(default_factory=Framebuffer)
    halted: bool = False
    cycle_count: int = 0

    @property
    def sp(self) -> int:
        """Stack pointer (number of return addresses on the stack)."""
        return len(self.stack)

    @property
    def paused(self) -> bool:
        return self.run_state is RunState.AWAITING_KEY

    @property
    def sound_active(self) -> bool:
        return self.sound_timer > 0

    @property
    def delay_value(self) -> int:
        """Delay timer as seen by Fx07 (rounded up)."""
        return math.ceil(self.delay_timer)

    def snapshot(self) -> dict:
        """Create a copy of the register-level state for tracing.

        Memory and display are excluded; they are too large to copy
        on every cycle.
        """
        return {
            "registers": self.dump_registers(),
            "index": self.index,
            "pc": self.pc,
            "stack": list(self.stack),
            "delay_timer": self.delay_timer,
            "sound_timer": self.sound_timer,
            "run_state": self.run_state.value,
            "halted": self.halted,
            "cycle_count": self.cycle_count,
        }

    def validate(self) -> bool:
        """Validate state integrity.

        Checks:
            - Memory size, register count and 8-bit register values
            - I is 16-bit, PC within memory
            - Stack depth within bounds
            - Timers non-negative
            - Awaited register recorded iff AWAITING_KEY

        Returns:
            True if state is valid, False otherwise
        """
        if len(self.memory) != MEMORY_SIZE:
            return False

        if len(self.registers) != NUM_REGISTERS:
            return False
        for value in self.registers:
            if not isinstance(value, int) or not 0 <= value <= 0xFF:
                return False

        if not 0 <= self.index <= 0xFFFF:
            return False
        if not 0 <= self.pc < MEMORY_SIZE:
            return False
        if len(self.stack) > STACK_DEPTH:
            return False

        if self.delay_timer < 0 or self.sound_timer < 0:
            return False

        if len(self.keys) != NUM_KEYS:
            return False

        if self.paused != (self.awaited_register is not None):
            return False

        return True

    def get_register(self, reg: int) -> int:
        """Get value of register V[reg].

        Raises:
            IndexError: If reg is not a nibble
        """
        if not 0 <= reg < NUM_REGISTERS:
            raise IndexError(f"Invalid register: {reg}")
        return self.registers[reg]

    def set_register(self, reg: int, value: int) -> None:
        """Set V[reg], truncating the value to 8 bits.

        Raises:
            IndexError: If reg is not a nibble
        """
        if not 0 <= reg < NUM_REGISTERS:
            raise IndexError(f"Invalid register: {reg}")
        self.registers[reg] = value & 0xFF

    def set_flag(self, value: bool) -> None:
        self.registers[FLAG_REGISTER] = 1 if value else 0

    def advance_pc(self) -> None:
        self.pc += BYTES_PER_OPCODE

    def rewind_pc(self) -> None:
        self.pc -= BYTES_PER_OPCODE

    def read_word(self, address: int) -> int:
        """Read a big-endian 16-bit word."""
        return (self.memory[address] << 8) | self.memory[address + 1]

    def tick_timers(self, ticks: float) -> None:
        """Count both timers down by `ticks`, clamping at zero."""
        self.delay_timer = max(0.0, self.delay_timer - ticks)
        self.sound_timer = max(0.0, self.sound_timer - ticks)

    def dump_registers(self) -> Dict[str, int]:
        """Get a copy of all register values, keyed V0-VF."""
        return {f"V{i:X}": value for i, value in enumerate(self.registers)}

    def copy(self) -> "MachineState":
        return deepcopy(self)

    def __str__(self) -> str:
        """Human-readable state representation."""
        regs = " ".join(f"{k}={v:02X}" for k, v in self.dump_registers().items())
        status = "AWAITING_KEY" if self.paused else ""
        if self.halted:
            status = "HALTED"
        return (
            f"[Cycle {self.cycle_count}] PC={self.pc:03X} I={self.index:03X} "
            f"SP={self.sp} {regs} DT={self.delay_value} {status}"
        ).rstrip()


def create_initial_state(program: bytes) -> MachineState:
    """Create initial machine state with the font and a program loaded.

    Args:
        program: Raw program image, loaded verbatim at PROGRAM_START

    Returns:
        Fresh MachineState

    Raises:
        ProgramSizeError: If the program does not fit in memory
    """
    program = bytes(program)
    if len(program) > PROGRAM_CAPACITY:
        raise ProgramSizeError(
            f"Program too large: {len(program)} bytes (max {PROGRAM_CAPACITY})"
        )

    memory = bytearray(MEMORY_SIZE)
    memory[0:len(FONT)] = FONT
    memory[PROGRAM_START:PROGRAM_START + len(program)] = program

    return MachineState(memory=memory)
