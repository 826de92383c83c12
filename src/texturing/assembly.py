# ABOUTME: Final texture image assembly
# ABOUTME: Averages accumulated colors, fills holes, downscales and writes images

import logging
import numpy as np
from pathlib import Path
from typing import Optional, Tuple, Union

from PIL import Image
from scipy.ndimage import distance_transform_edt

from .padding import PixelMap
from .rasterizer import ColorAccumulator


logger = logging.getLogger('mesh_texturing')


def assemble_colors(accumulator: ColorAccumulator,
                    pixel_map: PixelMap,
                    with_alpha: bool = False) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    """
    Resolve every pixel to its averaged color.

    Args:
        accumulator: Per-pixel color sums and counts
        pixel_map: Sample reference of each pixel (after padding)
        with_alpha: Also return an opacity mask (1 populated, 0 elsewhere)

    Returns:
        (colors (side, side, 3) float32, alpha (side, side) float32 or None)
    """
    side = pixel_map.side
    sample_ids = pixel_map.sample_indices()
    populated = sample_ids >= 0

    colors = np.zeros((side * side, accumulator.sums.shape[1]), dtype=np.float32)
    colors[populated] = accumulator.average(sample_ids[populated])

    alpha = None
    if with_alpha:
        alpha = populated.astype(np.float32).reshape(side, side)

    return colors.reshape(side, side, -1), alpha


def fill_holes(colors: np.ndarray, alpha: np.ndarray) -> np.ndarray:
    """
    Give every unpainted pixel the color of the nearest painted one.

    Args:
        colors: (H, W, C) texture
        alpha: (H, W) opacity mask, painted where > 0

    Returns:
        Filled copy of colors
    """
    painted = alpha > 0
    if painted.all() or not painted.any():
        return colors.copy()

    # Indices of the nearest painted pixel for every pixel
    _, nearest = distance_transform_edt(~painted, return_indices=True)
    return colors[nearest[0], nearest[1]]


def downscale(colors: np.ndarray, factor: int) -> np.ndarray:
    """
    Shrink a texture by an integer factor with box filtering.

    Args:
        colors: (H, W, C) float texture
        factor: Downscale factor (> 1)

    Returns:
        (H // factor, W // factor, C) float32 texture
    """
    height, width = colors.shape[:2]
    new_size = (max(1, width // factor), max(1, height // factor))

    channels = []
    for c in range(colors.shape[2]):
        img = Image.fromarray(np.ascontiguousarray(colors[:, :, c], dtype=np.float32))
        resized = img.resize(new_size, Image.Resampling.BOX)
        channels.append(np.asarray(resized, dtype=np.float32))

    return np.stack(channels, axis=2)


def write_image(path: Union[str, Path], colors: np.ndarray) -> Path:
    """Write an (H, W, 3) texture with 0-255 float values as an 8-bit image."""
    path = Path(path)
    data = np.clip(np.rint(colors), 0, 255).astype(np.uint8)
    Image.fromarray(data).save(path)
    return path


def build_texture(accumulator: ColorAccumulator,
                  pixel_map: PixelMap,
                  fill: bool,
                  downscale_factor: int) -> np.ndarray:
    """
    Turn an accumulated atlas into its final color buffer.

    Holes are filled first (when enabled), then the buffer is downscaled.
    """
    colors, alpha = assemble_colors(accumulator, pixel_map, with_alpha=fill)

    if fill:
        logger.info("Filling texture holes.")
        colors = fill_holes(colors, alpha)

    if downscale_factor > 1:
        logger.info("Downscaling texture (%dx).", downscale_factor)
        colors = downscale(colors, downscale_factor)

    return colors
