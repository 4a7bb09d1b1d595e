"""Framebuffer: monochrome display compositor for CHOP-8.

Cells are plain booleans (lit / unlit). Sprites are XOR-blitted with
wraparound on both axes; there is no clipping and no scrolling. Colors
only come into play when the buffer is exported through render().
"""

from typing import Any

import numpy as np


WIDTH = 64
HEIGHT = 32

SPRITE_WIDTH = 8


class Framebuffer:
    """WIDTH x HEIGHT grid of boolean pixels.

    Attributes:
        cells: numpy bool array of shape (HEIGHT, WIDTH), indexed [y, x]
    """

    def __init__(self):
        self.cells = np.zeros((HEIGHT, WIDTH), dtype=bool)

    def clear(self) -> None:
        self.cells[:, :] = False

    def get(self, x: int, y: int) -> bool:
        return bool(self.cells[y % HEIGHT, x % WIDTH])

    def lit_count(self) -> int:
        return int(np.count_nonzero(self.cells))

    def draw_sprite(self, x: int, y: int, rows: bytes) -> bool:
        """XOR a sprite onto the display.

        Each byte of `rows` is one horizontal line of 8 pixels, most
        significant bit leftmost. The sprite origin wraps around the
        screen edges, as does every pixel of the sprite.

        Args:
            x: Column of the sprite's left edge
            y: Row of the sprite's top edge
            rows: Sprite bytes, one per line

        Returns:
            True if any lit pixel was turned off (collision)
        """
        if not rows:
            return False

        bits = np.unpackbits(np.frombuffer(bytes(rows), dtype=np.uint8))
        bits = bits.reshape(len(rows), SPRITE_WIDTH).astype(bool)

        ys = (y + np.arange(len(rows))) % HEIGHT
        xs = (x + np.arange(SPRITE_WIDTH)) % WIDTH
        region = np.ix_(ys, xs)

        # Sprites are at most 15 rows high, so no cell is hit twice
        current = self.cells[region]
        collision = bool(np.any(current & bits))
        self.cells[region] = current ^ bits
        return collision

    def render(self, pixel: Any, no_pixel: Any) -> np.ndarray:
        """Export the display with colors applied.

        Scalar colors give a (HEIGHT, WIDTH) array of those values. Colors
        of the same non-scalar shape, such as RGB tuples, are laid out
        along trailing axes, giving (HEIGHT, WIDTH, 3) for RGB. Anything
        else is stored as-is in an object array of shape (HEIGHT, WIDTH).

        Args:
            pixel: Value for lit cells (e.g. 0xFFFFFFFF ARGB, or (r, g, b))
            no_pixel: Value for unlit cells

        Returns:
            Array holding only the two colors, indexed [y, x]
        """
        on = np.asarray(pixel) if not isinstance(pixel, str) else None
        off = np.asarray(no_pixel) if not isinstance(no_pixel, str) else None

        if on is not None and off is not None and on.dtype != object and off.dtype != object:
            if on.ndim == 0 and off.ndim == 0:
                return np.where(self.cells, on, off)
            if on.shape == off.shape:
                mask = self.cells.reshape(self.cells.shape + (1,) * on.ndim)
                return np.where(mask, on, off)

        image = np.empty(self.cells.shape, dtype=object)
        for y, x in np.ndindex(*self.cells.shape):
            image[y, x] = pixel if self.cells[y, x] else no_pixel
        return image

    def to_text(self, on: str = "#", off: str = ".") -> str:
        """Render the display as lines of characters."""
        return "\n".join(
            "".join(on if cell else off for cell in row) for row in self.cells
        )

    def __deepcopy__(self, memo):
        clone = Framebuffer()
        clone.cells = self.cells.copy()
        return clone
