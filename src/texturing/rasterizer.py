# ABOUTME: UV-space rasterization and multi-camera color accumulation
# ABOUTME: Back-projects texture pixels into source photos and averages their colors

"""
Rasterization and color accumulation.

Work is driven camera by camera: the visibility index lists, for one atlas, the
triangles each camera saw, so every source image is fetched once per atlas. For
each triangle the UV footprint's bounding box is scanned, pixels are classified
with the half-pixel point-in-triangle test, their surface point is recovered by
barycentric interpolation and projected into the camera, and the bilinear sample
is added to that pixel's running sum.
"""

import logging
import numpy as np
from collections import OrderedDict
from typing import Dict, List, Sequence

from .cameras import ImageCache, ViewSet
from .geometry import barycentric_to_cartesian, points_in_triangle
from .mesh import Mesh, PointsVisibility
from .padding import PixelMap


def build_camera_triangles(mesh: Mesh,
                           visibilities: PointsVisibility,
                           triangle_ids: Sequence[int]) -> Dict[int, List[int]]:
    """
    Invert point visibility into per-camera triangle lists for one atlas.

    A triangle is assigned to every camera that sees at least one of its corners.

    Returns:
        Camera id -> triangle ids, cameras in ascending order and triangles in
        atlas order
    """
    cam_triangles: Dict[int, List[int]] = {}
    for triangle_id in triangle_ids:
        tri_cams = set()
        for point_id in mesh.triangles[triangle_id]:
            tri_cams.update(visibilities[point_id])
        for cam_id in tri_cams:
            cam_triangles.setdefault(cam_id, []).append(int(triangle_id))

    return OrderedDict(sorted(cam_triangles.items()))


# Samples projected and accumulated at once by accumulate_camera
BATCH_SAMPLES = 1 << 18


class ColorAccumulator:
    """Running color sum and sample count per texture pixel."""

    def __init__(self, side: int, channels: int = 3):
        self.side = side
        self.sums = np.zeros((side * side, channels), dtype=np.float32)
        self.counts = np.zeros(side * side, dtype=np.int32)

    def add(self, indices: np.ndarray, colors: np.ndarray):
        """Add one sample per index (indices may repeat)."""
        np.add.at(self.sums, indices, np.asarray(colors, dtype=np.float32))
        np.add.at(self.counts, indices, 1)

    def average(self, indices: np.ndarray = None) -> np.ndarray:
        """Mean color per pixel (zero where no sample was added)."""
        sums = self.sums if indices is None else self.sums[indices]
        counts = self.counts if indices is None else self.counts[indices]
        result = np.zeros_like(sums)
        sampled = counts > 0
        result[sampled] = sums[sampled] / counts[sampled, None]
        return result


def rasterize_triangle(tri_pixels: np.ndarray,
                       tri_points: np.ndarray,
                       texture_side: int):
    """
    Covered pixels of one UV triangle and their surface points.

    Args:
        tri_pixels: (3, 2) UV corners in atlas pixels
        tri_points: (3, 3) world-space corners
        texture_side: Atlas side in pixels

    Returns:
        (offsets (K,), points (K, 3)) where offsets are row-major image indices
    """
    lu = np.clip(np.floor(tri_pixels.min(axis=0)).astype(int), 0, texture_side)
    rd = np.clip(np.ceil(tri_pixels.max(axis=0)).astype(int), 0, texture_side)
    if lu[0] >= rd[0] or lu[1] >= rd[1]:
        return np.zeros(0, dtype=np.int64), np.zeros((0, 3))

    xs, ys = np.meshgrid(np.arange(lu[0], rd[0]), np.arange(lu[1], rd[1]))
    pixels = np.stack([xs.ravel(), ys.ravel()], axis=1)

    inside, coords = points_in_triangle(tri_pixels, pixels)
    pixels = pixels[inside]
    coords = coords[inside]

    # Unwrap space has its origin at the bottom; images store the top row first
    rows = (texture_side - 1) - pixels[:, 1]
    offsets = rows.astype(np.int64) * texture_side + pixels[:, 0]

    return offsets, barycentric_to_cartesian(tri_points, coords)


def accumulate_camera(accumulator: ColorAccumulator,
                      pixel_map: PixelMap,
                      mesh: Mesh,
                      uv_coords: np.ndarray,
                      tris_uv_ids: np.ndarray,
                      triangle_ids: Sequence[int],
                      cam_id: int,
                      views: ViewSet,
                      image_cache: ImageCache,
                      batch_samples: int = BATCH_SAMPLES) -> int:
    """
    Add one camera's contribution to an atlas texture.

    Covered pixels are gathered triangle by triangle and flushed (projected,
    sampled and accumulated) once `batch_samples` of them are pending.

    Returns:
        Number of samples added
    """
    side = accumulator.side
    pending_offsets = []
    pending_points = []
    pending = 0
    added = 0

    def flush() -> int:
        offsets = np.concatenate(pending_offsets)
        points = np.concatenate(pending_points)
        pending_offsets.clear()
        pending_points.clear()

        pix = views.project(cam_id, points)
        visible = views.is_pixel_in_image(cam_id, pix)
        if not visible.any():
            return 0

        offsets = offsets[visible]
        accumulator.add(offsets, image_cache.sample_bilinear(cam_id, pix[visible]))
        pixel_map.mark_direct(offsets)
        return len(offsets)

    for triangle_id in triangle_ids:
        tri_pixels = uv_coords[tris_uv_ids[triangle_id]] * side
        tri_points = mesh.points[mesh.triangles[triangle_id]]
        offsets, points = rasterize_triangle(tri_pixels, tri_points, side)
        if len(offsets) == 0:
            continue

        pending_offsets.append(offsets)
        pending_points.append(points)
        pending += len(offsets)
        if pending >= batch_samples:
            added += flush()
            pending = 0

    if pending:
        added += flush()
    return added


def accumulate_atlas(mesh: Mesh,
                     visibilities: PointsVisibility,
                     uv_coords: np.ndarray,
                     tris_uv_ids: np.ndarray,
                     triangle_ids: Sequence[int],
                     views: ViewSet,
                     image_cache: ImageCache,
                     texture_side: int):
    """
    Accumulate every camera's colors for one atlas.

    Returns:
        (ColorAccumulator, PixelMap)
    """
    logger = logging.getLogger('mesh_texturing')

    cam_triangles = build_camera_triangles(mesh, visibilities, triangle_ids)
    accumulator = ColorAccumulator(texture_side)
    pixel_map = PixelMap(texture_side)

    logger.info("Reading pixel color.")
    for i, (cam_id, triangles) in enumerate(cam_triangles.items()):
        logger.debug(" - camera %d/%d (%d triangles)", i + 1, len(cam_triangles), len(triangles))
        if cam_id not in views:
            logger.warning("Camera %d is referenced by visibilities but not calibrated, skipping", cam_id)
            continue
        accumulate_camera(accumulator, pixel_map, mesh, uv_coords, tris_uv_ids,
                          triangles, cam_id, views, image_cache)

    return accumulator, pixel_map
