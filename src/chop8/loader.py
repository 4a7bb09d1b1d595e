"""Program loading for CHOP-8.

Two sources are supported:
    - ROM files: raw bytes, no header, loaded verbatim at 0x200
    - Hex listings: whitespace/comma separated words such as "00E0 A22A",
      handy for tests and for inline programs on the command line
"""

import logging
import re
from pathlib import Path
from typing import Union

from .state import PROGRAM_CAPACITY


logger = logging.getLogger(__name__)

_TOKEN = re.compile(r"^(?:0[xX])?([0-9a-fA-F]{2}|[0-9a-fA-F]{4})$")


def load_rom_file(path: Union[str, Path], max_size: int = PROGRAM_CAPACITY) -> bytes:
    """Read a raw ROM image.

    Files larger than max_size are truncated.

    Args:
        path: Path to the ROM file
        max_size: Maximum number of bytes to keep

    Returns:
        Program bytes

    Raises:
        FileNotFoundError: If the file does not exist
    """
    data = Path(path).read_bytes()
    if len(data) > max_size:
        logger.warning(
            "ROM %s is %d bytes, truncating to %d", path, len(data), max_size
        )
        data = data[:max_size]
    logger.debug("Read %d bytes from %s", len(data), path)
    return data


def parse_program(source: str) -> bytes:
    """Parse a hex listing into program bytes.

    Handles:
        - Comments (starting with ; or #)
        - 4-digit tokens: one big-endian instruction word
        - 2-digit tokens: one raw byte (sprite data)
        - Optional 0x prefix, commas and blank lines

    Args:
        source: Listing text

    Returns:
        Program bytes

    Raises:
        ValueError: If a token is not a 2- or 4-digit hex number
    """
    program = bytearray()

    for line in source.split("\n"):
        # Remove comments
        line = re.sub(r"[;#].*$", "", line).strip()
        if not line:
            continue

        for token in re.split(r"[\s,]+", line):
            if not token:
                continue
            match = _TOKEN.match(token)
            if not match:
                raise ValueError(f"Invalid listing token: {token}")
            digits = match.group(1)
            program += bytes.fromhex(digits)

    return bytes(program)
