# ABOUTME: Global UV parameterization through xatlas
# ABOUTME: Cuts, flattens and packs a mesh into one atlas, in memory

import logging
import numpy as np
from typing import Tuple

from .mesh import Mesh
from .params import UnwrapMethod


def parameterize(mesh: Mesh,
                 method: UnwrapMethod,
                 texture_side: int,
                 padding: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Compute a packed UV layout for a mesh.

    xatlas may split vertices along chart seams, so the output has at least as
    many vertices as the input.

    Args:
        mesh: Mesh to unwrap
        method: ABF or LSCM
        texture_side: Packing resolution in pixels
        padding: Gutter between charts in pixels

    Returns:
        (vmapping (V,) source vertex of each output vertex,
         triangles (M, 3) indices into the output vertices,
         uvs (V, 2) normalized texture coordinates)
    """
    import xatlas

    logger = logging.getLogger('mesh_texturing')

    if method == UnwrapMethod.BASIC:
        raise ValueError("Basic unwrapping uses chart placement, not global parameterization")

    chart_options = xatlas.ChartOptions()
    pack_options = xatlas.PackOptions()
    pack_options.resolution = texture_side
    pack_options.padding = padding

    # xatlas requires float32 positions and uint32 face indices.
    positions = mesh.points.astype(np.float32)
    faces = mesh.triangles.astype(np.uint32)

    logger.info("Start mesh atlasing (using xatlas, %s).", method)
    atlas = xatlas.Atlas()
    atlas.add_mesh(positions, faces)
    atlas.generate(chart_options=chart_options, pack_options=pack_options)
    vmapping, indices, uvs = atlas[0]
    logger.info("Mesh atlasing done: %d -> %d vertices.", mesh.num_points, len(vmapping))

    return (np.asarray(vmapping, dtype=np.int64),
            np.asarray(indices, dtype=np.int64).reshape(-1, 3),
            np.asarray(uvs, dtype=np.float64).reshape(-1, 2))
