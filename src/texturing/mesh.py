# ABOUTME: Mesh and per-point visibility containers
# ABOUTME: Immutable-by-convention geometry plus visibility remapping between meshes

import logging
import numpy as np
import trimesh
from dataclasses import dataclass
from typing import List, Sequence
from scipy.spatial import cKDTree


# One list of camera IDs per mesh point (empty when the point was never observed)
PointsVisibility = List[List[int]]


@dataclass(frozen=True)
class Mesh:
    """
    Triangle mesh as used by the texturing session.

    Attributes:
        points: (N, 3) float64 vertex positions
        triangles: (M, 3) int64 indices into points
    """
    points: np.ndarray
    triangles: np.ndarray

    def __post_init__(self):
        points = np.asarray(self.points, dtype=np.float64).reshape(-1, 3)
        triangles = np.asarray(self.triangles, dtype=np.int64).reshape(-1, 3)

        if len(triangles) and (triangles.min() < 0 or triangles.max() >= len(points)):
            raise ValueError(
                f"Triangle indices out of range for a mesh with {len(points)} points"
            )

        object.__setattr__(self, 'points', points)
        object.__setattr__(self, 'triangles', triangles)

    @property
    def num_points(self) -> int:
        return len(self.points)

    @property
    def num_triangles(self) -> int:
        return len(self.triangles)

    def flipped(self) -> 'Mesh':
        """Return a copy with every triangle's orientation inverted."""
        return Mesh(self.points.copy(), self.triangles[:, ::-1].copy())

    @classmethod
    def from_trimesh(cls, mesh: trimesh.Trimesh) -> 'Mesh':
        return cls(np.array(mesh.vertices, dtype=np.float64),
                   np.array(mesh.faces, dtype=np.int64))


def copy_visibilities(visibilities: Sequence[Sequence[int]]) -> PointsVisibility:
    """Deep copy a visibility table so the result owns every inner list."""
    return [list(cams) if cams is not None else [] for cams in visibilities]


def remap_mesh_visibilities(ref_mesh: Mesh,
                            ref_visibilities: PointsVisibility,
                            mesh: Mesh) -> PointsVisibility:
    """
    Transfer per-point visibilities from a reference mesh onto another mesh.

    Each point of `mesh` takes a copy of the visibility list of its nearest
    point in `ref_mesh`.

    Args:
        ref_mesh: Mesh the visibilities belong to
        ref_visibilities: Visibility table parallel to ref_mesh.points
        mesh: Mesh to transfer visibilities onto

    Returns:
        New visibility table parallel to mesh.points
    """
    logger = logging.getLogger('mesh_texturing')

    if len(ref_visibilities) != ref_mesh.num_points:
        raise ValueError(
            f"Reference visibilities ({len(ref_visibilities)}) don't match "
            f"reference mesh points ({ref_mesh.num_points})"
        )
    if mesh.num_points == 0:
        return []
    if ref_mesh.num_points == 0:
        return [[] for _ in range(mesh.num_points)]

    tree = cKDTree(ref_mesh.points)
    distances, nearest = tree.query(mesh.points, k=1)

    logger.debug("Remapped visibilities for %d points (max distance: %.4f)",
                 mesh.num_points, float(np.max(distances)))

    return [list(ref_visibilities[i]) for i in nearest]
