# ABOUTME: Geometric predicates for UV-space rasterization
# ABOUTME: Point-in-triangle classification and barycentric interpolation

import numpy as np
from typing import Tuple


# Squared-distance tolerance for pixels on triangle edges. A pixel center closer
# than this to the closed triangle counts as inside, so adjacent triangles leave
# no gap along their shared edge.
EDGE_TOLERANCE = 0.5 + np.finfo(np.float64).eps


def _closest_on_segment(p: np.ndarray, a: np.ndarray, b: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Closest point of segment [a, b] to each point of p.

    Returns:
        (t, squared distance) where the closest point is a + t * (b - a)
    """
    ab = b - a
    length_sq = float(ab @ ab)
    if length_sq > 0.0:
        t = np.clip(((p - a) @ ab) / length_sq, 0.0, 1.0)
    else:
        t = np.zeros(len(p))
    closest = a + t[:, None] * ab
    diff = p - closest
    return t, np.einsum('ij,ij->i', diff, diff)


def points_in_triangle(triangle: np.ndarray, pixels: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Classify many pixels against one 2D triangle.

    Each pixel is sampled at its center (x + 0.5, y + 0.5). The squared distance
    from the center to the closed triangle decides membership, and the barycentric
    coordinates of the closest point on the triangle are returned for every pixel,
    including the ones classified outside.

    Args:
        triangle: (3, 2) triangle corners in pixel space
        pixels: (N, 2) integer pixel coordinates (x, y)

    Returns:
        Tuple of (inside (N,) bool, coords (N, 2)) where coords[:, 0] weights the
        third corner and coords[:, 1] weights the second one, as expected by
        barycentric_to_cartesian.
    """
    triangle = np.asarray(triangle, dtype=np.float64)
    p = np.asarray(pixels, dtype=np.float64).reshape(-1, 2) + 0.5
    n = len(p)
    v0, v1, v2 = triangle[0], triangle[1], triangle[2]

    # Barycentrics of the point itself (valid for non-degenerate triangles)
    e1 = v1 - v0
    e2 = v2 - v0
    d = p - v0
    det = e1[0] * e2[1] - e1[1] * e2[0]
    if abs(det) > 1e-12:
        l2 = (d[:, 0] * e2[1] - d[:, 1] * e2[0]) / det
        l3 = (e1[0] * d[:, 1] - e1[1] * d[:, 0]) / det
        l1 = 1.0 - l2 - l3
        interior = (l1 >= 0.0) & (l2 >= 0.0) & (l3 >= 0.0)
    else:
        l1 = l2 = l3 = np.zeros(n)
        interior = np.zeros(n, dtype=bool)

    # Closest point on each edge, expressed as barycentric weights (l1, l2, l3)
    t01, dist01 = _closest_on_segment(p, v0, v1)
    t12, dist12 = _closest_on_segment(p, v1, v2)
    t20, dist20 = _closest_on_segment(p, v2, v0)

    edge_dists = np.stack([dist01, dist12, dist20], axis=1)
    edge_bary = np.stack([
        np.stack([1.0 - t01, t01, np.zeros(n)], axis=1),
        np.stack([np.zeros(n), 1.0 - t12, t12], axis=1),
        np.stack([t20, np.zeros(n), 1.0 - t20], axis=1),
    ], axis=1)

    nearest_edge = np.argmin(edge_dists, axis=1)
    rows = np.arange(n)
    dist = edge_dists[rows, nearest_edge]
    bary = edge_bary[rows, nearest_edge]

    dist = np.where(interior, 0.0, dist)
    bary[interior] = np.stack([l1, l2, l3], axis=1)[interior]

    inside = dist < EDGE_TOLERANCE
    coords = np.stack([bary[:, 2], bary[:, 1]], axis=1)
    return inside, coords


def point_in_triangle(triangle: np.ndarray, pixel) -> Tuple[bool, np.ndarray]:
    """
    Return whether a pixel is contained in or touched by a 2D triangle.

    Args:
        triangle: (3, 2) triangle corners in pixel space
        pixel: (x, y) integer pixel, top-left corner

    Returns:
        Tuple of (is_inside, barycentric coordinates (2,))
    """
    inside, coords = points_in_triangle(triangle, np.asarray(pixel).reshape(1, 2))
    return bool(inside[0]), coords[0]


def barycentric_to_cartesian(triangle: np.ndarray, coords: np.ndarray) -> np.ndarray:
    """
    Map barycentric coordinates back onto a 2D or 3D triangle.

    Computes P0 + (P2 - P0) * coords[0] + (P1 - P0) * coords[1].

    Args:
        triangle: (3, D) triangle corners
        coords: (2,) or (N, 2) coordinates from point_in_triangle

    Returns:
        (D,) or (N, D) points
    """
    triangle = np.asarray(triangle, dtype=np.float64)
    coords = np.asarray(coords, dtype=np.float64)
    p0, p1, p2 = triangle[0], triangle[1], triangle[2]
    a = coords[..., 0:1]
    b = coords[..., 1:2]
    return p0 + (p2 - p0) * a + (p1 - p0) * b
