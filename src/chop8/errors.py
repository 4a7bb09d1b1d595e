"""Exception hierarchy for the CHOP-8 interpreter.

Every error raised by the machine derives from Chip8Error and carries the
address of the instruction that faulted (or None when no instruction is
involved, e.g. a bad setting).
"""

from typing import Optional


class Chip8Error(RuntimeError):
    """Base class for all interpreter faults.

    Attributes:
        address: Address of the faulting instruction, if any
    """

    def __init__(self, message: str, address: Optional[int] = None):
        self.address = address
        if address is not None:
            message = f"{message} (at 0x{address:03X})"
        super().__init__(message)


class ProgramSizeError(Chip8Error):
    """Program image does not fit in the program region."""


class ClockRateError(Chip8Error, ValueError):
    """Clock rate set to a non-positive value."""


class InvalidProgramCounterError(Chip8Error):
    """PC points outside the program region, so no opcode can be fetched."""


class InvalidOpcodeError(Chip8Error):
    """Fetched word matches no instruction."""

    def __init__(self, opcode: int, address: Optional[int] = None):
        self.opcode = opcode
        super().__init__(f"Invalid opcode 0x{opcode:04X}", address)


class StackOverflowError(Chip8Error):
    """CALL with a full call stack."""


class StackUnderflowError(Chip8Error):
    """RET with an empty call stack."""


class IllegalMemoryAccessError(Chip8Error):
    """Sprite, BCD or block transfer touches memory out of range."""


class InvalidKeyOperandError(Chip8Error):
    """Register used as a key index holds a value with no matching key."""
