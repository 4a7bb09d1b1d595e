"""Tests for instruction semantics."""

import random
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from chop8 import Chip8CPU, Quirks, parse_program
from chop8.errors import (
    IllegalMemoryAccessError,
    InvalidOpcodeError,
    InvalidProgramCounterError,
    StackOverflowError,
    StackUnderflowError,
)


def make_cpu(listing: str, quirks: Quirks = Quirks.NONE, **kwargs) -> Chip8CPU:
    return Chip8CPU(parse_program(listing), quirks=quirks, **kwargs)


def run(listing: str, steps: int, quirks: Quirks = Quirks.NONE, **kwargs) -> Chip8CPU:
    cpu = make_cpu(listing, quirks, **kwargs)
    cpu.run(steps)
    return cpu


class TestArithmetic:
    """Test 7xkk and the 8xyN family."""

    def test_add_with_carry(self):
        """250 + 10 wraps to 4 and sets the carry flag."""
        cpu = run("60FA 610A 8014", 3)
        assert cpu.get_register(0x0) == 4
        assert cpu.get_register(0xF) == 1

    def test_add_without_carry(self):
        cpu = run("600A 6114 8014", 3)
        assert cpu.get_register(0x0) == 30
        assert cpu.get_register(0xF) == 0

    def test_sub_with_borrow(self):
        """5 - 10 wraps to 251, VF = 0 (borrow occurred)."""
        cpu = run("6005 610A 8015", 3)
        assert cpu.get_register(0x0) == 251
        assert cpu.get_register(0xF) == 0

    def test_sub_without_borrow(self):
        cpu = run("600A 6105 8015", 3)
        assert cpu.get_register(0x0) == 5
        assert cpu.get_register(0xF) == 1

    def test_sub_equal_operands(self):
        """Equal operands do not borrow."""
        cpu = run("6007 6107 8015", 3)
        assert cpu.get_register(0x0) == 0
        assert cpu.get_register(0xF) == 1

    def test_subn(self):
        """8xy7 computes Vy - Vx."""
        cpu = run("600A 6105 8017", 3)
        assert cpu.get_register(0x0) == 251
        assert cpu.get_register(0xF) == 0

        cpu = run("6005 610A 8017", 3)
        assert cpu.get_register(0x0) == 5
        assert cpu.get_register(0xF) == 1

    def test_flag_register_as_destination(self):
        """The flag write lands after the result write."""
        cpu = run("6FFF 6101 8F14", 3)
        assert cpu.get_register(0xF) == 1

    def test_bitwise_ops_leave_flag(self):
        cpu = run("6F05 60F0 610F 8011", 4)
        assert cpu.get_register(0x0) == 0xFF
        assert cpu.get_register(0xF) == 5

        cpu = run("60F0 613C 8012", 3)
        assert cpu.get_register(0x0) == 0x30

        cpu = run("60F0 613C 8013", 3)
        assert cpu.get_register(0x0) == 0xCC

    def test_load_register(self):
        cpu = run("612A 8010", 2)
        assert cpu.get_register(0x0) == 0x2A

    def test_add_immediate_wraps_without_flag(self):
        cpu = run("60FF 7002", 2)
        assert cpu.get_register(0x0) == 1
        assert cpu.get_register(0xF) == 0


class TestShiftQuirk:
    """8xy6/8xyE operand selection."""

    def test_shr_legacy_uses_y(self):
        cpu = run("6001 6103 8016", 3)
        assert cpu.get_register(0x0) == 1
        assert cpu.get_register(0xF) == 1

    def test_shr_modern_uses_x(self):
        cpu = run("6002 6103 8016", 3, Quirks.SHIFT_USES_X)
        assert cpu.get_register(0x0) == 1
        assert cpu.get_register(0xF) == 0

    def test_shl_legacy_uses_y(self):
        cpu = run("6081 6140 801E", 3)
        assert cpu.get_register(0x0) == 0x80
        assert cpu.get_register(0xF) == 0

    def test_shl_modern_uses_x(self):
        cpu = run("6081 6140 801E", 3, Quirks.SHIFT_USES_X)
        assert cpu.get_register(0x0) == 0x02
        assert cpu.get_register(0xF) == 1

    def test_legacy_shift_leaves_y(self):
        cpu = run("6103 8016", 2)
        assert cpu.get_register(0x1) == 3


class TestSkips:
    """Test the conditional skip instructions."""

    def test_se_imm_skips(self):
        cpu = run("6005 3005 6001 6102", 3)
        assert cpu.get_register(0x0) == 5
        assert cpu.get_register(0x1) == 2
        assert cpu.get_pc() == 0x208

    def test_se_imm_no_skip(self):
        cpu = run("6005 3006 6001", 3)
        assert cpu.get_register(0x0) == 1

    def test_sne_imm(self):
        cpu = run("6005 4006 6001", 2)
        assert cpu.get_register(0x0) == 5
        assert cpu.get_pc() == 0x206

    def test_se_reg_and_sne_reg(self):
        cpu = make_cpu("6005 6105 5010 9010")
        cpu.run(3)
        assert cpu.get_pc() == 0x208

        cpu = make_cpu("6005 6106 9010")
        cpu.run(3)
        assert cpu.get_pc() == 0x208


class TestFlowControl:
    """Test jumps, calls and returns."""

    def test_jump(self):
        cpu = run("1208", 1)
        assert cpu.get_pc() == 0x208

    def test_jump_with_offset(self):
        cpu = run("6004 B300", 2)
        assert cpu.get_pc() == 0x304

    def test_call_and_return(self):
        cpu = make_cpu("""
            2206    ; call 0x206
            6101
            1204    ; loop
            6202    ; subroutine
            00EE
        """)
        cpu.run(2)
        assert cpu.state.stack == [0x202]
        assert cpu.get_register(0x2) == 2
        cpu.run(2)
        assert cpu.state.stack == []
        assert cpu.get_register(0x1) == 1
        assert cpu.get_pc() == 0x204

    def test_sixteen_nested_calls(self):
        """Sixteen calls fill the stack; the seventeenth overflows."""
        cpu = make_cpu("2200")
        cpu.run(16)
        assert cpu.state.sp == 16

        with pytest.raises(StackOverflowError) as exc:
            cpu.step()
        assert exc.value.address == 0x200

    def test_return_on_empty_stack(self):
        cpu = make_cpu("00EE")
        with pytest.raises(StackUnderflowError) as exc:
            cpu.step()
        assert exc.value.address == 0x200


class TestIndexAndMemory:
    """Test Annn and the Fx memory instructions."""

    def test_load_index(self):
        cpu = run("A123", 1)
        assert cpu.get_index() == 0x123

    def test_add_index(self):
        cpu = run("A0FF 6001 F01E", 3)
        assert cpu.get_index() == 0x100

    def test_font_address(self):
        cpu = run("600A F029", 2)
        assert cpu.get_index() == 50

    def test_bcd(self):
        """157 stores as 1, 5, 7."""
        cpu = run("609D A300 F033", 3)
        assert list(cpu.state.memory[0x300:0x303]) == [1, 5, 7]

    def test_bcd_small_value(self):
        cpu = run("6007 A300 F033", 3)
        assert list(cpu.state.memory[0x300:0x303]) == [0, 0, 7]

    def test_bcd_below_program_region(self):
        cpu = make_cpu("A100 F033")
        cpu.step()
        with pytest.raises(IllegalMemoryAccessError) as exc:
            cpu.step()
        assert exc.value.address == 0x202

    def test_bcd_past_end_of_memory(self):
        cpu = make_cpu("AFFE F033")
        cpu.step()
        with pytest.raises(IllegalMemoryAccessError):
            cpu.step()

    def test_block_store_advances_index(self):
        cpu = run("6001 6102 6203 A300 F255", 5)
        assert list(cpu.state.memory[0x300:0x303]) == [1, 2, 3]
        assert cpu.get_index() == 0x303

    def test_block_store_no_advance_quirk(self):
        cpu = run("6001 6102 6203 A300 F255", 5, Quirks.BLOCK_TRANSFER_NO_ADVANCE)
        assert list(cpu.state.memory[0x300:0x303]) == [1, 2, 3]
        assert cpu.get_index() == 0x300

    def test_block_load(self):
        cpu = run("A206 F165 1204 AB CD", 2)
        assert cpu.get_register(0x0) == 0xAB
        assert cpu.get_register(0x1) == 0xCD
        assert cpu.get_index() == 0x208

    def test_block_load_no_advance_quirk(self):
        cpu = run("A206 F165 1204 AB CD", 2, Quirks.MODERN)
        assert cpu.get_index() == 0x206

    def test_block_store_out_of_range(self):
        cpu = make_cpu("AFFF F155")
        cpu.step()
        with pytest.raises(IllegalMemoryAccessError):
            cpu.step()

    def test_block_store_below_program_region(self):
        cpu = make_cpu("A100 F155")
        cpu.step()
        with pytest.raises(IllegalMemoryAccessError):
            cpu.step()

    def test_single_register_store_skips_region_check(self):
        """With x == 0 only the end of memory is checked."""
        cpu = run("602A A100 F055", 3)
        assert cpu.state.memory[0x100] == 0x2A

    def test_block_load_from_font(self):
        cpu = run("A000 F465", 2)
        assert cpu.state.registers[:5] == [0xF0, 0x90, 0x90, 0x90, 0xF0]

    def test_block_load_out_of_range(self):
        cpu = make_cpu("AFFE F265")
        cpu.step()
        with pytest.raises(IllegalMemoryAccessError):
            cpu.step()


class TestRandom:
    """Test Cxkk."""

    class FixedRandom(random.Random):
        def randrange(self, *args, **kwargs):
            return 0xAB

    def test_random_masked(self):
        cpu = make_cpu("C00F C1F0", rng=self.FixedRandom())
        cpu.run(2)
        assert cpu.get_register(0x0) == 0x0B
        assert cpu.get_register(0x1) == 0xA0

    def test_seed_is_reproducible(self):
        listing = "C0FF C1FF C2FF C3FF"
        first = run(listing, 4, seed=1234)
        second = run(listing, 4, seed=1234)
        assert first.state.registers[:4] == second.state.registers[:4]

    def test_instances_do_not_share_generator(self):
        expected = random.Random(99).randrange(0x100)
        a = make_cpu("C0FF", seed=99)
        b = make_cpu("C0FF", seed=99)
        a.step()
        b.step()
        assert a.get_register(0x0) == expected
        assert b.get_register(0x0) == expected


class TestTimerInstructions:
    """Test Fx07, Fx15 and Fx18."""

    def test_set_and_read_delay(self):
        """Fx07 sees the delay timer rounded up after one tick."""
        cpu = run("600A F015 F107", 3)
        assert cpu.state.delay_timer == pytest.approx(10 - 0.12)
        assert cpu.get_register(0x1) == 10

    def test_set_sound(self):
        cpu = run("6005 F018", 2)
        assert cpu.is_sound_active() is True


class TestFaults:
    """Test fetch and decode faults."""

    def test_invalid_opcode(self):
        cpu = make_cpu("6001 5121")
        cpu.step()
        with pytest.raises(InvalidOpcodeError) as exc:
            cpu.step()
        assert exc.value.address == 0x202
        assert exc.value.opcode == 0x5121
        assert "0x202" in str(exc.value)

    def test_jump_below_program_region(self):
        cpu = make_cpu("1100")
        cpu.step()
        with pytest.raises(InvalidProgramCounterError) as exc:
            cpu.step()
        assert exc.value.address == 0x100

    def test_jump_to_last_byte(self):
        """A word cannot be fetched from 0xFFF."""
        cpu = make_cpu("1FFF")
        cpu.step()
        with pytest.raises(InvalidProgramCounterError):
            cpu.step()

    def test_jump_to_last_word(self):
        """0xFFE is fetchable; the empty word there is invalid."""
        cpu = make_cpu("1FFE")
        cpu.step()
        with pytest.raises(InvalidOpcodeError):
            cpu.step()

    def test_fault_halts_cpu(self):
        cpu = make_cpu("00EE")
        with pytest.raises(StackUnderflowError):
            cpu.step()
        assert cpu.is_halted() is True
        with pytest.raises(RuntimeError, match="halted"):
            cpu.step()

    def test_reset_after_fault(self):
        cpu = make_cpu("6001 00EE")
        with pytest.raises(StackUnderflowError):
            cpu.run(2)
        cpu.reset()
        assert cpu.is_halted() is False
        assert cpu.get_pc() == 0x200
        assert cpu.get_register(0x0) == 0
        cpu.step()
        assert cpu.get_register(0x0) == 1
