# ABOUTME: Per-pixel sample references and gutter padding
# ABOUTME: Grows populated texture regions outward one pixel ring per iteration

import logging
import numpy as np
from enum import IntEnum


class PixelState(IntEnum):
    """What a texture pixel reads its color from."""

    UNPOPULATED = 0  # No sample, default color
    DIRECT = 1  # Reads the accumulator at `source`
    ALIAS = 2  # Copies the pixel at `source` once aliases are resolved


class PixelMap:
    """
    Tagged sample reference for every pixel of a square texture.

    Pixels are indexed row-major in image order (row 0 at the top).
    """

    def __init__(self, side: int):
        self.side = side
        self.state = np.full(side * side, PixelState.UNPOPULATED, dtype=np.uint8)
        index_type = np.int32 if side * side <= np.iinfo(np.int32).max else np.int64
        self.source = np.full(side * side, -1, dtype=index_type)

    def mark_direct(self, indices: np.ndarray):
        """Mark pixels as reading their own accumulator."""
        self.state[indices] = PixelState.DIRECT
        self.source[indices] = indices

    def alias(self, indices: np.ndarray, targets: np.ndarray):
        """Mark pixels as copies of other pixels."""
        self.state[indices] = PixelState.ALIAS
        self.source[indices] = targets

    def resolve_aliases(self):
        """Replace every alias by the sample index of the pixel it points to."""
        aliased = np.flatnonzero(self.state == PixelState.ALIAS)
        if len(aliased) == 0:
            return
        targets = self.source[aliased]
        self.source[aliased] = self.source[targets]
        self.state[aliased] = self.state[targets]

    @property
    def populated(self) -> np.ndarray:
        """(side * side,) bool mask of pixels with a sample."""
        return self.state == PixelState.DIRECT

    def sample_indices(self) -> np.ndarray:
        """Accumulator index per pixel, -1 where unpopulated."""
        return np.where(self.populated, self.source, -1)


def pad_gutter(pixel_map: PixelMap, padding: int) -> None:
    """
    Dilate populated regions by `padding` pixels.

    Each iteration scans interior pixels (the outer 1-pixel border is never
    written). An unpopulated pixel becomes an alias of its first populated
    neighbor in the order left, right, down, up. All decisions of one iteration
    use the state from before it, then aliases are resolved.
    """
    logger = logging.getLogger('mesh_texturing')
    side = pixel_map.side
    if padding <= 0 or side < 3:
        return

    logger.info("Edge padding (%d pixels).", padding)

    grid_index = np.arange(side * side, dtype=np.int64).reshape(side, side)
    interior = grid_index[1:-1, 1:-1]

    # Neighbor offsets in priority order: left, right, down (next row), up
    neighbors = [
        grid_index[1:-1, :-2],
        grid_index[1:-1, 2:],
        grid_index[2:, 1:-1],
        grid_index[:-2, 1:-1],
    ]

    for _ in range(padding):
        populated = pixel_map.populated.reshape(side, side)
        pending = ~populated[1:-1, 1:-1]
        target = np.full(interior.shape, -1, dtype=np.int64)

        for neighbor in neighbors:
            candidate = pending & (target < 0) & populated.reshape(-1)[neighbor]
            target[candidate] = neighbor[candidate]

        chosen = target >= 0
        if not chosen.any():
            break
        pixel_map.alias(interior[chosen], target[chosen])
        pixel_map.resolve_aliases()
