# ABOUTME: Chart packing input and atlas triangle remapping
# ABOUTME: Builds the post-atlas mesh, UV table and visibilities from packed charts

"""
Atlas triangle remapping.

A chart packer (external) partitions the triangles of a mesh into charts, each
placed in one of several square atlases. Every chart carries the offset from its
source rectangle (in its reference camera image) to its target rectangle (in the
atlas), so a corner's UV is its projection in the reference camera shifted by
that offset.

Remapping walks atlases, then charts, then triangles in order. Vertices are
deduplicated globally by source index; UVs are deduplicated per vertex within a
chart only, since a vertex shared by two charts sits at two atlas positions.
"""

import json
import logging
import numpy as np
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from .cameras import ViewSet
from .mesh import Mesh, PointsVisibility


@dataclass
class Chart:
    """
    One packed chart.

    Attributes:
        triangle_ids: Source triangle indices, in placement order
        ref_camera: Camera whose projection seeds the chart's UVs (None if absent)
        source_lu: Top-left corner of the chart in the reference image
        target_lu: Top-left corner of the chart in the atlas
    """
    triangle_ids: List[int]
    ref_camera: Optional[int] = None
    source_lu: Tuple[int, int] = (0, 0)
    target_lu: Tuple[int, int] = (0, 0)

    @property
    def offset(self) -> np.ndarray:
        """Source-to-target translation in atlas pixels."""
        return (np.asarray(self.target_lu, dtype=np.float64) -
                np.asarray(self.source_lu, dtype=np.float64))


Atlases = List[List[Chart]]


@dataclass
class AtlasRemap:
    """Result of remapping a mesh through a chart packing."""
    mesh: Mesh
    visibilities: PointsVisibility
    uv_coords: np.ndarray
    tris_uv_ids: np.ndarray
    atlases: List[List[int]] = field(default_factory=list)


def load_chart_layout(path: Union[str, Path]) -> Atlases:
    """
    Load a chart packing from JSON.

    Layout:
        {"atlases": [[{"triangle_ids": [...], "ref_camera": 0,
                       "source_lu": [x, y], "target_lu": [x, y]}, ...], ...]}
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Chart layout not found: {path}")

    with open(path, 'r') as f:
        data = json.load(f)

    atlases: Atlases = []
    for charts in data.get('atlases', []):
        atlas = []
        for entry in charts:
            if 'triangle_ids' not in entry:
                raise ValueError(f"Chart without triangle_ids in {path}")
            ref_camera = entry.get('ref_camera')
            if ref_camera is not None and int(ref_camera) < 0:
                ref_camera = None
            atlas.append(Chart(
                triangle_ids=[int(t) for t in entry['triangle_ids']],
                ref_camera=int(ref_camera) if ref_camera is not None else None,
                source_lu=tuple(entry.get('source_lu', (0, 0))),
                target_lu=tuple(entry.get('target_lu', (0, 0))),
            ))
        atlases.append(atlas)

    return atlases


def validate_atlases(atlases: Atlases, num_triangles: int) -> None:
    """Check that every chart triangle exists in the mesh."""
    for atlas_id, charts in enumerate(atlases):
        for chart in charts:
            for triangle_id in chart.triangle_ids:
                if triangle_id < 0 or triangle_id >= num_triangles:
                    raise ValueError(
                        f"Atlas {atlas_id}: triangle {triangle_id} out of range "
                        f"(mesh has {num_triangles} triangles)"
                    )


def _chart_uvs(chart: Chart, corners: np.ndarray, mesh: Mesh,
               views: ViewSet, texture_side: int) -> np.ndarray:
    """Normalized UVs of every chart corner, the origin where none can be computed."""
    uvs = np.zeros((len(corners), 2), dtype=np.float64)
    if chart.ref_camera is None:
        return uvs

    pix = views.project(chart.ref_camera, mesh.points[corners])
    in_image = views.is_pixel_in_image(chart.ref_camera, pix)

    uv = (pix[in_image] + chart.offset) / float(texture_side)
    uv[:, 1] = 1.0 - uv[:, 1]

    # Degenerate placements collapse to the origin
    out_of_range = np.any((uv < 0.0) | (uv > 1.0), axis=1)
    uv[out_of_range] = 0.0

    uvs[in_image] = uv
    return uvs


def remap_atlas(mesh: Mesh,
                visibilities: PointsVisibility,
                atlases: Atlases,
                views: ViewSet,
                texture_side: int) -> AtlasRemap:
    """
    Rebuild a mesh following a chart packing.

    Args:
        mesh: Source mesh
        visibilities: Visibility table parallel to mesh.points
        atlases: Chart packing, atlases of charts
        views: Cameras used to project chart corners
        texture_side: Atlas side in pixels

    Returns:
        AtlasRemap with the new mesh, its visibilities, UV table, per-triangle UV
        ids and, per atlas, the new triangle indices it holds
    """
    logger = logging.getLogger('mesh_texturing')

    if len(visibilities) != mesh.num_points:
        raise ValueError(
            f"Visibilities ({len(visibilities)}) don't match mesh points ({mesh.num_points})"
        )
    validate_atlases(atlases, mesh.num_triangles)

    points: List[np.ndarray] = []
    new_visibilities: PointsVisibility = []
    triangles: List[List[int]] = []
    uv_coords: List[np.ndarray] = []
    tris_uv_ids: List[List[int]] = []
    atlas_triangles: List[List[int]] = [[] for _ in atlases]

    vertex_cache: Dict[int, int] = {}

    for atlas_id, charts in enumerate(atlases):
        for chart in charts:
            uv_cache: Dict[int, int] = {}
            if not chart.triangle_ids:
                continue

            corners = mesh.triangles[chart.triangle_ids].reshape(-1)
            corner_uvs = _chart_uvs(chart, corners, mesh, views, texture_side)

            for i in range(len(chart.triangle_ids)):
                atlas_triangles[atlas_id].append(len(triangles))

                triangle = []
                triangle_uvs = []
                for k in range(3):
                    point_id = int(corners[3 * i + k])

                    new_point_id = vertex_cache.get(point_id)
                    if new_point_id is None:
                        new_point_id = len(points)
                        points.append(mesh.points[point_id])
                        new_visibilities.append(list(visibilities[point_id]))
                        vertex_cache[point_id] = new_point_id
                    triangle.append(new_point_id)

                    uv_id = uv_cache.get(new_point_id)
                    if uv_id is None:
                        uv_id = len(uv_coords)
                        uv_coords.append(corner_uvs[3 * i + k])
                        uv_cache[new_point_id] = uv_id
                    triangle_uvs.append(uv_id)

                triangles.append(triangle)
                tris_uv_ids.append(triangle_uvs)

    logger.debug("Atlas remap: %d -> %d points, %d triangles, %d UVs in %d atlases",
                 mesh.num_points, len(points), len(triangles), len(uv_coords), len(atlases))

    return AtlasRemap(
        mesh=Mesh(np.array(points, dtype=np.float64).reshape(-1, 3),
                  np.array(triangles, dtype=np.int64).reshape(-1, 3)),
        visibilities=new_visibilities,
        uv_coords=np.array(uv_coords, dtype=np.float64).reshape(-1, 2),
        tris_uv_ids=np.array(tris_uv_ids, dtype=np.int64).reshape(-1, 3),
        atlases=atlas_triangles,
    )
