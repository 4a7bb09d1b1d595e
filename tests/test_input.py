"""Tests for key input: Ex9E/ExA1 and the Fx0A wait."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from chop8 import Chip8CPU, Quirks, parse_program
from chop8.errors import InvalidKeyOperandError
from chop8.keypad import DEFAULT_KEY_LAYOUT, InputSynchronizer, check_key
from chop8.state import MachineState, RunState


def make_cpu(listing: str, quirks: Quirks = Quirks.NONE, **kwargs) -> Chip8CPU:
    return Chip8CPU(parse_program(listing), quirks=quirks, **kwargs)


class TestKeySkips:
    """Test SKP and SKNP."""

    def test_skp_held(self):
        cpu = make_cpu("6003 E09E 6101 6202")
        cpu.pump_input(3, True)
        cpu.run(2)
        assert cpu.get_pc() == 0x206

    def test_skp_not_held(self):
        cpu = make_cpu("6003 E09E 6101 6202")
        cpu.run(3)
        assert cpu.get_register(0x1) == 1

    def test_sknp(self):
        cpu = make_cpu("6003 E0A1 6101 6202")
        cpu.run(2)
        assert cpu.get_pc() == 0x206

        cpu = make_cpu("6003 E0A1 6101 6202")
        cpu.pump_input(3, True)
        cpu.run(2)
        assert cpu.get_pc() == 0x204

    def test_key_operand_out_of_range(self):
        """Vx >= 16 names no key."""
        cpu = make_cpu("6010 E09E")
        cpu.step()
        with pytest.raises(InvalidKeyOperandError) as exc:
            cpu.step()
        assert exc.value.address == 0x202
        assert cpu.is_halted()

    def test_pump_invalid_key(self):
        cpu = make_cpu("")
        with pytest.raises(ValueError):
            cpu.pump_input(16, True)
        with pytest.raises(ValueError):
            cpu.report_key(-1, False)


class TestAwaitKey:
    """Test Fx0A with the default wait-for-press policy."""

    @pytest.fixture
    def cpu(self):
        return make_cpu("F50A 1202")

    def test_enters_awaiting_state(self, cpu):
        cpu.step()
        assert cpu.is_paused()
        assert cpu.state.run_state is RunState.AWAITING_KEY
        assert cpu.state.awaited_register == 0x5
        assert cpu.get_pc() == 0x202

    def test_step_while_paused_does_nothing(self, cpu):
        cpu.step()
        assert cpu.step() is None
        assert cpu.get_pc() == 0x202
        assert cpu.get_cycle_count() == 2

    def test_press_resumes(self, cpu):
        cpu.step()
        assert cpu.pump_input(3, True) is True
        assert not cpu.is_paused()
        assert cpu.get_register(0x5) == 3
        assert cpu.get_pc() == 0x202
        assert cpu.state.awaited_register is None

        result = cpu.step()
        assert result.opcode == 0x1202

    def test_release_does_not_resume(self, cpu):
        cpu.step()
        assert cpu.pump_input(3, False) is False
        assert cpu.is_paused()

    def test_key_held_before_wait_needs_new_press(self, cpu):
        """A key already down when the wait starts is not an edge."""
        cpu.pump_input(3, True)
        cpu.step()
        assert cpu.pump_input(3, True) is False
        assert cpu.pump_input(3, False) is False
        assert cpu.is_paused()
        assert cpu.pump_input(3, True) is True
        assert cpu.get_register(0x5) == 3

    def test_first_edge_wins(self, cpu):
        cpu.step()
        cpu.pump_input(0xA, True)
        cpu.pump_input(0xB, True)
        assert cpu.get_register(0x5) == 0xA
        assert cpu.state.keys[0xB] is True

    def test_timers_tick_while_paused(self):
        """At 60 Hz each slot takes one tick off the delay timer."""
        cpu = make_cpu("6A3C FA15 F50A", clock_speed_hz=60)
        cpu.run(3)
        assert cpu.is_paused()
        assert cpu.state.delay_value == 59
        cpu.step()
        assert cpu.state.delay_value == 58
        assert cpu.get_cycle_count() == 4

    def test_report_while_running_only_records(self):
        cpu = make_cpu("E09E")
        assert cpu.pump_input(0, True) is False
        assert cpu.state.keys[0] is True


class TestAwaitKeyOnRelease:
    """Test Fx0A with Quirks.AWAIT_KEY_ON_RELEASE."""

    def test_release_resumes(self):
        cpu = make_cpu("F50A 1202", Quirks.AWAIT_KEY_ON_RELEASE)
        cpu.step()
        assert cpu.pump_input(3, True) is False
        assert cpu.is_paused()
        assert cpu.pump_input(3, False) is True
        assert cpu.get_register(0x5) == 3


class TestAwaitKeyPoll:
    """Test Fx0A with Quirks.AWAIT_KEY_POLL."""

    def test_no_key_rewinds(self):
        cpu = make_cpu("F50A 1202", Quirks.AWAIT_KEY_POLL)
        cpu.step()
        assert not cpu.is_paused()
        assert cpu.get_pc() == 0x200

    def test_held_key_matches(self):
        cpu = make_cpu("F50A 1202", Quirks.AWAIT_KEY_POLL)
        cpu.step()
        cpu.pump_input(7, True)
        cpu.step()
        assert cpu.get_register(0x5) == 7
        assert cpu.get_pc() == 0x202

    def test_lowest_key_wins(self):
        cpu = make_cpu("F50A", Quirks.AWAIT_KEY_POLL)
        cpu.pump_input(9, True)
        cpu.pump_input(4, True)
        cpu.step()
        assert cpu.get_register(0x5) == 4

    def test_poll_on_release_matches_unheld_key(self):
        """With both quirks the first key not held matches at once."""
        cpu = make_cpu("F50A", Quirks.AWAIT_KEY_POLL | Quirks.AWAIT_KEY_ON_RELEASE)
        cpu.pump_input(0, True)
        cpu.step()
        assert cpu.get_register(0x5) == 1
        assert cpu.get_pc() == 0x202


class TestInputSynchronizer:
    """Test the synchronizer on a bare state."""

    def test_idle_state(self):
        assert InputSynchronizer().idle_state is False
        assert InputSynchronizer(on_release=True).idle_state is True

    def test_resume_writes_awaited_register(self):
        state = MachineState()
        state.run_state = RunState.AWAITING_KEY
        state.awaited_register = 0xE
        assert InputSynchronizer().report(state, 0xC, True) is True
        assert state.registers[0xE] == 0xC
        assert state.run_state is RunState.RUNNING

    def test_poll_none(self):
        assert InputSynchronizer().poll(MachineState()) is None

    def test_check_key(self):
        assert check_key(15) == 15
        with pytest.raises(ValueError):
            check_key(16)

    def test_default_layout_covers_keypad(self):
        assert sorted(DEFAULT_KEY_LAYOUT) == list(range(16))
        assert len(set(DEFAULT_KEY_LAYOUT.values())) == 16
