"""Chip8CPU: Main interpreter orchestrator for CHOP-8.

This module implements the full execution pipeline:
    TIMERS -> FETCH -> DECODE -> KEY -> REGISTRY -> EXECUTE -> STATE

An external driver calls step() at the configured clock rate and
forwards key events through pump_input(). The interpreter itself never
blocks: waiting for a key is expressed as the AWAITING_KEY run state,
during which step() keeps ticking the timers but fetches nothing.
"""

import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np

from .config import (
    DEFAULT_CLOCK_SPEED_HZ,
    DEFAULT_MAX_CYCLES,
    DEFAULT_NO_PIXEL,
    DEFAULT_PIXEL,
    InterpreterConfig,
    Quirks,
)
from .decoder import Decoder, DecodeResult
from .errors import Chip8Error, ClockRateError, InvalidProgramCounterError
from .keypad import InputSynchronizer
from .registry import InstructionRegistry
from .state import (
    BYTES_PER_OPCODE,
    MEMORY_SIZE,
    PROGRAM_START,
    TIMER_HZ,
    MachineState,
    create_initial_state,
)


logger = logging.getLogger(__name__)


@dataclass
class ExecutionTraceEntry:
    """Single entry in the execution trace.

    Attributes:
        cycle: Cycle number (0-indexed)
        address: Address the instruction was fetched from
        opcode: Raw instruction word
        mnemonic: Disassembled instruction
        decode_result: Result from the decoder
        pre_state: State before execution
        post_state: State after execution
        error: Error message if execution failed
    """
    cycle: int
    address: int
    opcode: int
    mnemonic: str
    decode_result: DecodeResult
    pre_state: dict
    post_state: dict
    error: Optional[str] = None


class Chip8CPU:
    """CHOP-8 interpreter.

    Attributes:
        quirks: Compatibility flags, fixed at construction
        decoder: Decoder for fetched words
        keypad: Input synchronizer
        registry: InstructionRegistry with verified primitives
        state: Current machine state
        trace: List of execution trace entries (when tracing)
        max_cycles: Default cycle budget for run()
    """

    DEFAULT_MAX_CYCLES = DEFAULT_MAX_CYCLES

    def __init__(
        self,
        program: bytes = b"",
        quirks: Quirks = Quirks.NONE,
        clock_speed_hz: int = DEFAULT_CLOCK_SPEED_HZ,
        seed: Optional[int] = None,
        rng: Optional[random.Random] = None,
        pixel: Any = DEFAULT_PIXEL,
        no_pixel: Any = DEFAULT_NO_PIXEL,
        trace: bool = False,
        max_cycles: int = DEFAULT_MAX_CYCLES,
    ):
        """Initialize the interpreter with a program loaded.

        Args:
            program: Raw program image (at most 3584 bytes)
            quirks: Compatibility flags
            clock_speed_hz: Instructions per second the driver runs at
            seed: Seed for the instance random generator
            rng: Random generator to use instead of a seeded one
            pixel: Color of lit pixels in framebuffer()
            no_pixel: Color of unlit pixels in framebuffer()
            trace: Record an ExecutionTraceEntry for every executed step
            max_cycles: Default cycle budget for run()

        Raises:
            ProgramSizeError: If the program is too large
            ClockRateError: If clock_speed_hz is not positive
        """
        self.quirks = Quirks(quirks)
        self.decoder = Decoder()
        self.keypad = InputSynchronizer(
            on_release=bool(self.quirks & Quirks.AWAIT_KEY_ON_RELEASE)
        )
        self.registry = InstructionRegistry(
            self.quirks,
            rng if rng is not None else random.Random(seed),
            self.keypad,
        )
        self.trace_enabled = trace
        self.trace: List[ExecutionTraceEntry] = []
        self.max_cycles = max_cycles

        self._clock_speed_hz = DEFAULT_CLOCK_SPEED_HZ
        self.clock_speed_hz = clock_speed_hz
        self._pixel = pixel
        self._no_pixel = no_pixel
        if pixel == no_pixel:
            raise ValueError("Pixel colors must be distinguishable")

        self._program = b""
        self.state: MachineState
        self.load_program(program)

    @classmethod
    def from_config(cls, config: InterpreterConfig, program: bytes = b"", **kwargs) -> "Chip8CPU":
        """Build an interpreter from an InterpreterConfig."""
        return cls(
            program,
            quirks=config.quirks,
            clock_speed_hz=config.clock_speed_hz,
            seed=config.seed,
            pixel=config.pixel,
            no_pixel=config.no_pixel,
            max_cycles=config.max_cycles,
            **kwargs,
        )

    def load_program(self, program: bytes) -> None:
        """Load a program image, resetting the whole machine.

        Raises:
            ProgramSizeError: If the program is too large
        """
        self.state = create_initial_state(program)
        self._program = bytes(program)
        self.trace = []
        logger.debug("Loaded %d byte program at 0x%03X", len(self._program), PROGRAM_START)

    def reset(self) -> None:
        """Reload the current program. Quirks and settings are kept."""
        self.load_program(self._program)

    # =========================================================================
    # Execution
    # =========================================================================

    def step(self) -> Optional[DecodeResult]:
        """Advance the machine by one instruction slot.

        Ticks both timers, then, unless awaiting a key, fetches, decodes
        and executes one instruction.

        Returns:
            The executed instruction, or None while awaiting a key

        Raises:
            RuntimeError: If the CPU halted on an earlier fault
            Chip8Error: If the instruction faults (the CPU halts)
        """
        state = self.state
        if state.halted:
            raise RuntimeError("CPU is halted")

        state.tick_timers(TIMER_HZ / self._clock_speed_hz)

        if state.paused:
            state.cycle_count += 1
            return None

        pre_state = state.snapshot() if self.trace_enabled else None
        address = state.pc
        instr = None

        try:
            # FETCH
            if address < PROGRAM_START or address >= MEMORY_SIZE - 1:
                raise InvalidProgramCounterError(
                    "PC address is invalid, opcode can't be fetched", address
                )
            opcode = state.read_word(address)
            state.advance_pc()

            # DECODE
            instr = self.decoder.decode(opcode, address)

            # EXECUTE
            self.registry.execute(state, instr)
        except Chip8Error as e:
            state.halted = True
            state.cycle_count += 1
            logger.warning("Execution fault: %s", e)
            self._record(instr, address, pre_state, str(e))
            raise

        state.cycle_count += 1
        self._record(instr, address, pre_state)
        return instr

    def _record(
        self,
        instr: Optional[DecodeResult],
        address: int,
        pre_state: Optional[dict],
        error: Optional[str] = None,
    ) -> None:
        if not self.trace_enabled or instr is None:
            return
        self.trace.append(ExecutionTraceEntry(
            cycle=self.state.cycle_count - 1,
            address=address,
            opcode=instr.opcode,
            mnemonic=self.decoder.mnemonic(instr),
            decode_result=instr,
            pre_state=pre_state,
            post_state=self.state.snapshot(),
            error=error,
        ))

    def run(self, cycles: Optional[int] = None) -> List[ExecutionTraceEntry]:
        """Step the machine a fixed number of times.

        Args:
            cycles: Number of step() calls (uses max_cycles if None)

        Returns:
            Execution trace (empty unless tracing is enabled)

        Raises:
            Chip8Error: If an instruction faults
        """
        limit = cycles if cycles is not None else self.max_cycles
        for _ in range(limit):
            self.step()
        return self.trace

    # =========================================================================
    # Input
    # =========================================================================

    def pump_input(self, key: int, held: bool) -> bool:
        """Report a key's held/released state.

        Args:
            key: Key index (0-15)
            held: Whether the key is held down

        Returns:
            True if the report released the machine from AWAITING_KEY

        Raises:
            ValueError: If key is not in 0-15
        """
        return self.keypad.report(self.state, key, held)

    report_key = pump_input

    # =========================================================================
    # Settings
    # =========================================================================

    @property
    def clock_speed_hz(self) -> int:
        return self._clock_speed_hz

    @clock_speed_hz.setter
    def clock_speed_hz(self, value: int) -> None:
        if value <= 0:
            raise ClockRateError(f"Clock speed must be positive, got {value}")
        self._clock_speed_hz = int(value)
        logger.debug("Clock speed set to %d Hz", self._clock_speed_hz)

    @property
    def pixel(self) -> Any:
        return self._pixel

    @pixel.setter
    def pixel(self, value: Any) -> None:
        if value == self._no_pixel:
            raise ValueError("Pixel colors must be distinguishable")
        self._pixel = value

    @property
    def no_pixel(self) -> Any:
        return self._no_pixel

    @no_pixel.setter
    def no_pixel(self, value: Any) -> None:
        if value == self._pixel:
            raise ValueError("Pixel colors must be distinguishable")
        self._no_pixel = value

    # =========================================================================
    # Inspection
    # =========================================================================

    def framebuffer(self) -> np.ndarray:
        """Display contents in the configured colors (see Framebuffer.render)."""
        return self.state.display.render(self._pixel, self._no_pixel)

    def is_sound_active(self) -> bool:
        return self.state.sound_active

    def is_paused(self) -> bool:
        return self.state.paused

    def is_halted(self) -> bool:
        return self.state.halted

    def get_register(self, reg: int) -> int:
        return self.state.get_register(reg)

    def dump_registers(self) -> Dict[str, int]:
        return self.state.dump_registers()

    def get_pc(self) -> int:
        return self.state.pc

    def get_index(self) -> int:
        return self.state.index

    def get_cycle_count(self) -> int:
        return self.state.cycle_count

    def disassemble(self, address: int = PROGRAM_START, count: int = 16) -> List[str]:
        """Disassemble `count` words starting at `address`.

        Returns:
            Lines of the form "0x200: 00E0  CLS"
        """
        lines = []
        for addr in range(address, min(address + count * BYTES_PER_OPCODE, MEMORY_SIZE - 1),
                          BYTES_PER_OPCODE):
            result = self.decoder.decode(self.state.read_word(addr), addr)
            lines.append(f"0x{addr:03X}: {result.opcode:04X}  {self.decoder.mnemonic(result)}")
        return lines

    def print_trace(self) -> None:
        """Print execution trace in human-readable format."""
        print("=" * 70)
        print("CHOP-8 EXECUTION TRACE")
        print("=" * 70)

        for entry in self.trace:
            status = "OK" if not entry.error else f"ERROR: {entry.error}"
            print(f"\n[Cycle {entry.cycle}] 0x{entry.address:03X}: "
                  f"{entry.opcode:04X}  {entry.mnemonic}  {status}")

            pre_regs = entry.pre_state["registers"]
            post_regs = entry.post_state["registers"]
            changes = [
                f"{reg}: {pre_regs[reg]} -> {post_regs[reg]}"
                for reg in pre_regs
                if pre_regs[reg] != post_regs[reg]
            ]
            if entry.pre_state["index"] != entry.post_state["index"]:
                changes.append(
                    f"I: 0x{entry.pre_state['index']:03X} -> 0x{entry.post_state['index']:03X}"
                )
            if changes:
                print(f"  Changes: {', '.join(changes)}")

            if entry.post_state["pc"] != entry.address + BYTES_PER_OPCODE:
                print(f"  PC: 0x{entry.address:03X} -> 0x{entry.post_state['pc']:03X}")

        print("\n" + "=" * 70)
        print("FINAL STATE")
        print("=" * 70)
        print(f"  {self.state}")

    def get_summary(self) -> Dict:
        """Get execution summary.

        Returns:
            Dictionary with execution statistics and final state
        """
        state = self.state
        return {
            "cycles": state.cycle_count,
            "halted": state.halted,
            "paused": state.paused,
            "pc": state.pc,
            "index": state.index,
            "registers": state.dump_registers(),
            "stack": list(state.stack),
            "delay_timer": state.delay_value,
            "sound_active": state.sound_active,
            "lit_pixels": state.display.lit_count(),
            "trace_length": len(self.trace),
            "errors": [e.error for e in self.trace if e.error],
        }
