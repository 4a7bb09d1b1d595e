"""InstructionRegistry: Verified instruction primitives for CHOP-8.

This module implements the registry pattern for machine operations:
each operation key emitted by the decoder maps onto one primitive that
mutates the machine state in a predictable, auditable way.

Registry Keys:
    OP_CLS, OP_RET                      00E0, 00EE
    OP_JP, OP_CALL, OP_JP_V0            1nnn, 2nnn, Bnnn
    OP_SE_IMM, OP_SNE_IMM               3xkk, 4xkk
    OP_SE_REG, OP_SNE_REG               5xy0, 9xy0
    OP_LD_IMM, OP_ADD_IMM               6xkk, 7xkk
    OP_LD_REG .. OP_SHL                 8xy0-8xy7, 8xyE
    OP_LD_I, OP_RND, OP_DRW             Annn, Cxkk, Dxyn
    OP_SKP, OP_SKNP                     Ex9E, ExA1
    OP_LD_VX_DT .. OP_LD_VX_I           Fx07-Fx65
    OP_INVALID                          anything else

Each primitive has the signature (MachineState, DecodeResult) -> None.
The program counter has already been advanced past the instruction when
a primitive runs. Faults are raised with the instruction's own address.
"""

import logging
import random
from typing import Callable, Dict, Optional

from .config import Quirks
from .decoder import DecodeResult, Op
from .errors import (
    IllegalMemoryAccessError,
    InvalidKeyOperandError,
    InvalidOpcodeError,
    StackOverflowError,
    StackUnderflowError,
)
from .keypad import InputSynchronizer
from .state import (
    MEMORY_SIZE,
    NUM_KEYS,
    PROGRAM_START,
    STACK_DEPTH,
    MachineState,
    RunState,
    font_address,
)


logger = logging.getLogger(__name__)

Primitive = Callable[[MachineState, DecodeResult], None]


class InstructionRegistry:
    """Verified registry of instruction primitives.

    The registry is frozen after initialization to ensure no runtime
    modifications can occur. Quirk-dependent primitives read the flags
    the registry was built with.

    Attributes:
        quirks: Compatibility flags
        rng: Random generator used by Cxkk
        keypad: Input synchronizer consulted by Fx0A in poll mode
        _primitives: Dictionary mapping operation keys to handlers
        _frozen: Whether the registry is locked against modifications
    """

    def __init__(
        self,
        quirks: Quirks = Quirks.NONE,
        rng: Optional[random.Random] = None,
        keypad: Optional[InputSynchronizer] = None,
    ):
        self.quirks = Quirks(quirks)
        self.rng = rng if rng is not None else random.Random()
        self.keypad = keypad if keypad is not None else InputSynchronizer(
            on_release=bool(self.quirks & Quirks.AWAIT_KEY_ON_RELEASE)
        )
        self._primitives: Dict[Op, Primitive] = {}
        self._frozen = False
        self._register_all_primitives()
        self.freeze()

    def _register_all_primitives(self) -> None:
        """Register all instruction primitives."""
        # Flow control
        self.register(Op.CLS, self._op_cls)
        self.register(Op.RET, self._op_ret)
        self.register(Op.JP, self._op_jp)
        self.register(Op.CALL, self._op_call)
        self.register(Op.JP_V0, self._op_jp_v0)

        # Conditional skips
        self.register(Op.SE_IMM, self._op_se_imm)
        self.register(Op.SNE_IMM, self._op_sne_imm)
        self.register(Op.SE_REG, self._op_se_reg)
        self.register(Op.SNE_REG, self._op_sne_reg)

        # Immediate loads
        self.register(Op.LD_IMM, self._op_ld_imm)
        self.register(Op.ADD_IMM, self._op_add_imm)
        self.register(Op.LD_I, self._op_ld_i)
        self.register(Op.RND, self._op_rnd)

        # Register arithmetic
        self.register(Op.LD_REG, self._op_ld_reg)
        self.register(Op.OR, self._op_or)
        self.register(Op.AND, self._op_and)
        self.register(Op.XOR, self._op_xor)
        self.register(Op.ADD_REG, self._op_add_reg)
        self.register(Op.SUB, self._op_sub)
        self.register(Op.SHR, self._op_shr)
        self.register(Op.SUBN, self._op_subn)
        self.register(Op.SHL, self._op_shl)

        # Display and keys
        self.register(Op.DRW, self._op_drw)
        self.register(Op.SKP, self._op_skp)
        self.register(Op.SKNP, self._op_sknp)

        # Timers, index register and memory
        self.register(Op.LD_VX_DT, self._op_ld_vx_dt)
        self.register(Op.LD_VX_K, self._op_ld_vx_k)
        self.register(Op.LD_DT_VX, self._op_ld_dt_vx)
        self.register(Op.LD_ST_VX, self._op_ld_st_vx)
        self.register(Op.ADD_I, self._op_add_i)
        self.register(Op.LD_F, self._op_ld_f)
        self.register(Op.LD_B, self._op_ld_b)
        self.register(Op.LD_I_VX, self._op_ld_i_vx)
        self.register(Op.LD_VX_I, self._op_ld_vx_i)

        self.register(Op.INVALID, self._op_invalid)

    def register(self, key: Op, handler: Primitive) -> None:
        """Register a primitive operation.

        Raises:
            RuntimeError: If registry is frozen
            ValueError: If key already registered
        """
        if self._frozen:
            raise RuntimeError("Cannot register primitives: registry is frozen")
        if key in self._primitives:
            raise ValueError(f"Primitive already registered: {key.value}")
        self._primitives[key] = handler

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        return self._frozen

    def get_valid_keys(self) -> set:
        """Get set of all valid operation keys."""
        return set(self._primitives.keys())

    def execute(self, state: MachineState, instr: DecodeResult) -> None:
        """Execute the primitive registered for a decoded instruction.

        Raises:
            KeyError: If the key is not in the registry
            Chip8Error: If the instruction faults
        """
        if instr.key not in self._primitives:
            raise KeyError(f"Unknown operation key: {instr.key}")
        self._primitives[instr.key](state, instr)

    # =========================================================================
    # Flow Control
    # =========================================================================

    def _op_cls(self, state: MachineState, instr: DecodeResult) -> None:
        """00E0 CLS - Clear the display."""
        state.display.clear()

    def _op_ret(self, state: MachineState, instr: DecodeResult) -> None:
        """00EE RET - Return from subroutine."""
        if not state.stack:
            raise StackUnderflowError("00EE: Call stack underflow", instr.address)
        state.pc = state.stack.pop()

    def _op_jp(self, state: MachineState, instr: DecodeResult) -> None:
        """1nnn JP - Jump to nnn."""
        state.pc = instr.nnn

    def _op_call(self, state: MachineState, instr: DecodeResult) -> None:
        """2nnn CALL - Push the return address, jump to nnn."""
        if len(state.stack) >= STACK_DEPTH:
            raise StackOverflowError("2nnn: Call stack overflow", instr.address)
        state.stack.append(state.pc)
        state.pc = instr.nnn

    def _op_jp_v0(self, state: MachineState, instr: DecodeResult) -> None:
        """Bnnn JP V0 - Jump to nnn + V0."""
        state.pc = instr.nnn + state.registers[0x0]

    # =========================================================================
    # Conditional Skips
    # =========================================================================

    def _op_se_imm(self, state: MachineState, instr: DecodeResult) -> None:
        """3xkk SE - Skip next instruction if Vx == kk."""
        if state.registers[instr.x] == instr.kk:
            state.advance_pc()

    def _op_sne_imm(self, state: MachineState, instr: DecodeResult) -> None:
        """4xkk SNE - Skip next instruction if Vx != kk."""
        if state.registers[instr.x] != instr.kk:
            state.advance_pc()

    def _op_se_reg(self, state: MachineState, instr: DecodeResult) -> None:
        """5xy0 SE - Skip next instruction if Vx == Vy."""
        if state.registers[instr.x] == state.registers[instr.y]:
            state.advance_pc()

    def _op_sne_reg(self, state: MachineState, instr: DecodeResult) -> None:
        """9xy0 SNE - Skip next instruction if Vx != Vy."""
        if state.registers[instr.x] != state.registers[instr.y]:
            state.advance_pc()

    # =========================================================================
    # Immediate Loads
    # =========================================================================

    def _op_ld_imm(self, state: MachineState, instr: DecodeResult) -> None:
        """6xkk LD - Vx := kk."""
        state.set_register(instr.x, instr.kk)

    def _op_add_imm(self, state: MachineState, instr: DecodeResult) -> None:
        """7xkk ADD - Vx := Vx + kk, no carry flag."""
        state.set_register(instr.x, state.registers[instr.x] + instr.kk)

    def _op_ld_i(self, state: MachineState, instr: DecodeResult) -> None:
        """Annn LD I - I := nnn."""
        state.index = instr.nnn

    def _op_rnd(self, state: MachineState, instr: DecodeResult) -> None:
        """Cxkk RND - Vx := random byte AND kk."""
        state.set_register(instr.x, self.rng.randrange(0x100) & instr.kk)

    # =========================================================================
    # Register Arithmetic
    # =========================================================================

    def _op_ld_reg(self, state: MachineState, instr: DecodeResult) -> None:
        """8xy0 LD - Vx := Vy."""
        state.set_register(instr.x, state.registers[instr.y])

    def _op_or(self, state: MachineState, instr: DecodeResult) -> None:
        """8xy1 OR - Vx := Vx OR Vy."""
        state.set_register(instr.x, state.registers[instr.x] | state.registers[instr.y])

    def _op_and(self, state: MachineState, instr: DecodeResult) -> None:
        """8xy2 AND - Vx := Vx AND Vy."""
        state.set_register(instr.x, state.registers[instr.x] & state.registers[instr.y])

    def _op_xor(self, state: MachineState, instr: DecodeResult) -> None:
        """8xy3 XOR - Vx := Vx XOR Vy."""
        state.set_register(instr.x, state.registers[instr.x] ^ state.registers[instr.y])

    def _op_add_reg(self, state: MachineState, instr: DecodeResult) -> None:
        """8xy4 ADD - Vx := Vx + Vy, VF := carry."""
        total = state.registers[instr.x] + state.registers[instr.y]
        state.set_register(instr.x, total)
        state.set_flag(total > 0xFF)

    def _op_sub(self, state: MachineState, instr: DecodeResult) -> None:
        """8xy5 SUB - Vx := Vx - Vy, VF := NOT borrow."""
        vx = state.registers[instr.x]
        vy = state.registers[instr.y]
        state.set_register(instr.x, vx - vy)
        state.set_flag(vx >= vy)

    def _op_subn(self, state: MachineState, instr: DecodeResult) -> None:
        """8xy7 SUBN - Vx := Vy - Vx, VF := NOT borrow."""
        vx = state.registers[instr.x]
        vy = state.registers[instr.y]
        state.set_register(instr.x, vy - vx)
        state.set_flag(vy >= vx)

    def _shift_source(self, state: MachineState, instr: DecodeResult) -> int:
        if self.quirks & Quirks.SHIFT_USES_X:
            return state.registers[instr.x]
        return state.registers[instr.y]

    def _op_shr(self, state: MachineState, instr: DecodeResult) -> None:
        """8xy6 SHR - Vx := Vu >> 1, VF := bit shifted out.

        u is x with Quirks.SHIFT_USES_X, y otherwise.
        """
        value = self._shift_source(state, instr)
        state.set_register(instr.x, value >> 1)
        state.set_flag(value & 0x01)

    def _op_shl(self, state: MachineState, instr: DecodeResult) -> None:
        """8xyE SHL - Vx := Vu << 1, VF := bit shifted out."""
        value = self._shift_source(state, instr)
        state.set_register(instr.x, value << 1)
        state.set_flag(value & 0x80)

    # =========================================================================
    # Display and Keys
    # =========================================================================

    def _op_drw(self, state: MachineState, instr: DecodeResult) -> None:
        """Dxyn DRW - Draw an n-byte sprite from [I] at (Vx, Vy), VF := collision."""
        height = instr.n
        if height > 0 and state.index + height - 1 >= MEMORY_SIZE:
            raise IllegalMemoryAccessError("Dxyn: Illegal RAM access", instr.address)

        rows = state.memory[state.index:state.index + height]
        collision = state.display.draw_sprite(
            state.registers[instr.x], state.registers[instr.y], rows
        )
        state.set_flag(collision)

    def _key_operand(self, state: MachineState, instr: DecodeResult) -> int:
        key = state.registers[instr.x]
        if key >= NUM_KEYS:
            raise InvalidKeyOperandError(
                f"Ex{instr.kk:02X}: V{instr.x:X}={key} has no equivalent key",
                instr.address,
            )
        return key

    def _op_skp(self, state: MachineState, instr: DecodeResult) -> None:
        """Ex9E SKP - Skip next instruction if key Vx is held."""
        if state.keys[self._key_operand(state, instr)]:
            state.advance_pc()

    def _op_sknp(self, state: MachineState, instr: DecodeResult) -> None:
        """ExA1 SKNP - Skip next instruction if key Vx is not held."""
        if not state.keys[self._key_operand(state, instr)]:
            state.advance_pc()

    # =========================================================================
    # Timers, Index Register and Memory
    # =========================================================================

    def _op_ld_vx_dt(self, state: MachineState, instr: DecodeResult) -> None:
        """Fx07 LD - Vx := delay timer (rounded up)."""
        state.set_register(instr.x, state.delay_value)

    def _op_ld_vx_k(self, state: MachineState, instr: DecodeResult) -> None:
        """Fx0A LD - Await a key, store it in Vx.

        Poll mode (Quirks.AWAIT_KEY_POLL) checks the keys as they are now
        and re-executes the instruction until one matches. Otherwise the
        machine enters AWAITING_KEY and the input synchronizer completes
        the instruction on the next qualifying key edge.
        """
        if self.quirks & Quirks.AWAIT_KEY_POLL:
            key = self.keypad.poll(state)
            if key is None:
                state.rewind_pc()
            else:
                state.set_register(instr.x, key)
            return

        state.run_state = RunState.AWAITING_KEY
        state.awaited_register = instr.x
        logger.debug("Awaiting key for V%X at 0x%03X", instr.x, instr.address)

    def _op_ld_dt_vx(self, state: MachineState, instr: DecodeResult) -> None:
        """Fx15 LD - delay timer := Vx."""
        state.delay_timer = float(state.registers[instr.x])

    def _op_ld_st_vx(self, state: MachineState, instr: DecodeResult) -> None:
        """Fx18 LD - sound timer := Vx."""
        state.sound_timer = float(state.registers[instr.x])

    def _op_add_i(self, state: MachineState, instr: DecodeResult) -> None:
        """Fx1E ADD - I := I + Vx."""
        state.index = (state.index + state.registers[instr.x]) & 0xFFFF

    def _op_ld_f(self, state: MachineState, instr: DecodeResult) -> None:
        """Fx29 LD F - I := address of the font glyph for digit Vx."""
        state.index = font_address(state.registers[instr.x])

    def _op_ld_b(self, state: MachineState, instr: DecodeResult) -> None:
        """Fx33 LD B - Store the decimal digits of Vx at I, I+1, I+2."""
        i = state.index
        if i < PROGRAM_START or i + 2 >= MEMORY_SIZE:
            raise IllegalMemoryAccessError("Fx33: Illegal RAM access", instr.address)

        value = state.registers[instr.x]
        state.memory[i] = value // 100 % 10
        state.memory[i + 1] = value // 10 % 10
        state.memory[i + 2] = value % 10

    def _advance_index(self, state: MachineState, instr: DecodeResult) -> None:
        if not self.quirks & Quirks.BLOCK_TRANSFER_NO_ADVANCE:
            state.index = (state.index + instr.x + 1) & 0xFFFF

    def _op_ld_i_vx(self, state: MachineState, instr: DecodeResult) -> None:
        """Fx55 LD [I] - Store V0..Vx at I..I+x.

        I advances by x + 1 unless Quirks.BLOCK_TRANSFER_NO_ADVANCE.
        """
        i, x = state.index, instr.x
        if i + x >= MEMORY_SIZE or (x > 0 and i < PROGRAM_START):
            raise IllegalMemoryAccessError("Fx55: Illegal RAM access", instr.address)

        state.memory[i:i + x + 1] = bytes(state.registers[:x + 1])
        self._advance_index(state, instr)

    def _op_ld_vx_i(self, state: MachineState, instr: DecodeResult) -> None:
        """Fx65 LD Vx - Load V0..Vx from I..I+x.

        I advances by x + 1 unless Quirks.BLOCK_TRANSFER_NO_ADVANCE.
        """
        i, x = state.index, instr.x
        if i + x >= MEMORY_SIZE:
            raise IllegalMemoryAccessError("Fx65: Illegal RAM access", instr.address)

        state.registers[:x + 1] = list(state.memory[i:i + x + 1])
        self._advance_index(state, instr)

    # =========================================================================
    # Special Primitives
    # =========================================================================

    def _op_invalid(self, state: MachineState, instr: DecodeResult) -> None:
        """INVALID - No instruction matches the fetched word."""
        raise InvalidOpcodeError(instr.opcode, instr.address)
