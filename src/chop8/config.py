"""Interpreter configuration for CHOP-8.

Quirks select between the two historically attested behaviors of the
ambiguous instructions. They are fixed when a machine is built. The
remaining settings (clock rate, colors) can also be changed later on
the CPU itself.
"""

import json
from dataclasses import dataclass, field
from enum import IntFlag
from typing import Optional


DEFAULT_CLOCK_SPEED_HZ = 500
DEFAULT_PIXEL = 0xFFFFFFFF
DEFAULT_NO_PIXEL = 0xFF000000
DEFAULT_MAX_CYCLES = 10000


class Quirks(IntFlag):
    """Compatibility flags. Unset bits select the legacy behavior."""
    NONE = 0
    AWAIT_KEY_ON_RELEASE = 1 << 0       # Fx0A waits for a key release
    AWAIT_KEY_POLL = 1 << 1             # Fx0A polls the current key state
    SHIFT_USES_X = 1 << 2               # 8xy6/8xyE shift Vx, not Vy
    BLOCK_TRANSFER_NO_ADVANCE = 1 << 3  # Fx55/Fx65 leave I unchanged
    MODERN = SHIFT_USES_X | BLOCK_TRANSFER_NO_ADVANCE

    @classmethod
    def from_names(cls, names) -> "Quirks":
        """Build a flag set from flag names (case insensitive).

        Raises:
            ValueError: If a name is not a known quirk
        """
        quirks = cls.NONE
        for name in names:
            try:
                quirks |= cls[name.strip().upper()]
            except KeyError:
                raise ValueError(f"Unknown quirk: {name}") from None
        return quirks

    def to_names(self) -> list:
        """Names of the individual flags that are set."""
        return [
            quirk.name for quirk in (
                Quirks.AWAIT_KEY_ON_RELEASE,
                Quirks.AWAIT_KEY_POLL,
                Quirks.SHIFT_USES_X,
                Quirks.BLOCK_TRANSFER_NO_ADVANCE,
            )
            if self & quirk
        ]


@dataclass
class InterpreterConfig:
    """Settings used to build a Chip8CPU."""
    clock_speed_hz: int = DEFAULT_CLOCK_SPEED_HZ
    quirks: Quirks = field(default=Quirks.NONE)
    pixel: int = DEFAULT_PIXEL
    no_pixel: int = DEFAULT_NO_PIXEL
    seed: Optional[int] = None
    max_cycles: int = DEFAULT_MAX_CYCLES

    def to_dict(self) -> dict:
        return {
            "clock_speed_hz": self.clock_speed_hz,
            "quirks": self.quirks.to_names(),
            "pixel": f"0x{self.pixel:08X}",
            "no_pixel": f"0x{self.no_pixel:08X}",
            "seed": self.seed,
            "max_cycles": self.max_cycles,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "InterpreterConfig":
        def color(value, default):
            if value is None:
                return default
            return int(value, 16) if isinstance(value, str) else value

        quirks = data.get("quirks", [])
        if isinstance(quirks, int):
            quirks = Quirks(quirks)
        elif isinstance(quirks, str):
            quirks = Quirks.from_names([quirks])
        else:
            quirks = Quirks.from_names(quirks)

        return cls(
            clock_speed_hz=data.get("clock_speed_hz", DEFAULT_CLOCK_SPEED_HZ),
            quirks=quirks,
            pixel=color(data.get("pixel"), DEFAULT_PIXEL),
            no_pixel=color(data.get("no_pixel"), DEFAULT_NO_PIXEL),
            seed=data.get("seed"),
            max_cycles=data.get("max_cycles", DEFAULT_MAX_CYCLES),
        )

    def create_cpu(self, program: bytes = b"", **kwargs):
        """Build a Chip8CPU from these settings."""
        from .cpu import Chip8CPU
        return Chip8CPU.from_config(self, program, **kwargs)

    def save(self, path: str) -> None:
        """Save configuration to JSON file."""
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: str) -> "InterpreterConfig":
        """Load configuration from JSON file."""
        with open(path, "r") as f:
            data = json.load(f)
        return cls.from_dict(data)
