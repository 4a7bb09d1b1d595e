"""Input synchronizer for the 16-key CHOP-8 keypad.

Key events reach the machine as held/released reports. While the machine
is awaiting a key (Fx0A), a report resumes it only on a transition out
of the idle state: a press by default, a release when the machine was
built with Quirks.AWAIT_KEY_ON_RELEASE. A key that is already in the
qualifying state when the wait begins does not count.
"""

import logging
from typing import Dict, Optional

from .state import NUM_KEYS, MachineState, RunState


logger = logging.getLogger(__name__)


# Customary layout of the hex keypad on a QWERTY keyboard:
#   1 2 3 C        1 2 3 4
#   4 5 6 D   <-   Q W E R
#   7 8 9 E        A S D F
#   A 0 B F        Z X C V
DEFAULT_KEY_LAYOUT: Dict[int, str] = {
    0x1: "1", 0x2: "2", 0x3: "3", 0xC: "4",
    0x4: "q", 0x5: "w", 0x6: "e", 0xD: "r",
    0x7: "a", 0x8: "s", 0x9: "d", 0xE: "f",
    0xA: "z", 0x0: "x", 0xB: "c", 0xF: "v",
}


def check_key(key: int) -> int:
    """Validate a key index.

    Raises:
        ValueError: If key is not in 0-15
    """
    if not 0 <= key < NUM_KEYS:
        raise ValueError(f"Invalid key: {key}")
    return key


class InputSynchronizer:
    """Tracks key state and releases the machine from AWAITING_KEY.

    Attributes:
        on_release: Whether the awaited edge is a release instead of a press
    """

    def __init__(self, on_release: bool = False):
        self.on_release = on_release

    @property
    def idle_state(self) -> bool:
        """Held state a key must leave for the edge to count."""
        return self.on_release

    def report(self, state: MachineState, key: int, held: bool) -> bool:
        """Record a key's new state, resuming an Fx0A wait on a qualifying edge.

        Args:
            state: Machine state to update
            key: Key index (0-15)
            held: Whether the key is now held down

        Returns:
            True if this report resumed the machine
        """
        check_key(key)
        held = bool(held)
        resumed = False

        if (state.run_state is RunState.AWAITING_KEY
                and state.keys[key] == self.idle_state
                and held != self.idle_state):
            state.set_register(state.awaited_register, key)
            state.run_state = RunState.RUNNING
            state.awaited_register = None
            resumed = True
            logger.debug("Key %X resumed execution at PC=0x%03X", key, state.pc)

        state.keys[key] = held
        return resumed

    def poll(self, state: MachineState) -> Optional[int]:
        """Find the first key currently in the awaited state (legacy Fx0A).

        Returns:
            Lowest matching key index, or None
        """
        target = not self.on_release
        for key, held in enumerate(state.keys):
            if held == target:
                return key
        return None
