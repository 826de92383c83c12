# ABOUTME: File I/O for meshes, visibility tables and textured OBJ/MTL output
# ABOUTME: Loads dense meshes with trimesh and reads/writes the visibility array format

import logging
import struct
import numpy as np
import trimesh
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from .mesh import Mesh, PointsVisibility


logger = logging.getLogger('mesh_texturing')


def load_mesh(path: Union[str, Path]) -> Mesh:
    """
    Load a dense mesh (any format trimesh understands).

    Vertices are kept in file order, since visibility tables index them.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file holds no triangles
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Unable to load: {path}")

    loaded = trimesh.load(str(path), force='mesh', process=False)
    mesh = Mesh.from_trimesh(loaded)

    if mesh.num_triangles == 0:
        raise ValueError(f"Mesh has no faces: {path}")

    logger.debug("Loaded mesh %s: %d points, %d triangles",
                 path.name, mesh.num_points, mesh.num_triangles)
    return mesh


def load_visibilities(path: Union[str, Path]) -> PointsVisibility:
    """
    Read a per-point visibility file.

    Layout (little-endian int32): number of points, then for each point the
    number of cameras followed by the camera IDs. A count of -1 marks a point
    without visibility information.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Unable to load: {path}")

    data = np.fromfile(path, dtype='<i4')
    if len(data) == 0:
        raise ValueError(f"Empty visibility file: {path}")

    count = int(data[0])
    visibilities: PointsVisibility = []
    pos = 1
    for i in range(count):
        if pos >= len(data):
            raise ValueError(f"Truncated visibility file {path} at point {i}")
        size = int(data[pos])
        pos += 1
        if size <= 0:
            visibilities.append([])
            continue
        if pos + size > len(data):
            raise ValueError(f"Truncated visibility file {path} at point {i}")
        visibilities.append(data[pos:pos + size].tolist())
        pos += size

    logger.debug("Loaded visibilities for %d points from %s", count, path.name)
    return visibilities


def save_visibilities(visibilities: Sequence[Sequence[int]], path: Union[str, Path]) -> None:
    """Write a visibility table in the layout read by load_visibilities."""
    with open(path, 'wb') as f:
        f.write(struct.pack('<i', len(visibilities)))
        for cams in visibilities:
            f.write(struct.pack('<i', len(cams)))
            if cams:
                f.write(struct.pack(f'<{len(cams)}i', *cams))


@dataclass
class ObjData:
    """Geometry, UVs and material grouping read from a Wavefront OBJ."""
    mesh: Mesh
    uv_coords: np.ndarray
    tris_uv_ids: Optional[np.ndarray]
    tris_material_ids: np.ndarray
    material_names: List[str] = field(default_factory=list)


def _parse_face_vertex(token: str, n_points: int, n_uvs: int) -> Tuple[int, Optional[int]]:
    parts = token.split('/')
    vertex = int(parts[0])
    vertex = vertex - 1 if vertex > 0 else n_points + vertex
    uv = None
    if len(parts) > 1 and parts[1]:
        uv = int(parts[1])
        uv = uv - 1 if uv > 0 else n_uvs + uv
    return vertex, uv


def read_obj(path: Union[str, Path]) -> ObjData:
    """
    Read an OBJ mesh keeping its texture coordinates and material groups.

    Polygons are fan-triangulated. Triangles are assigned to materials in order
    of first `usemtl` appearance; faces before any `usemtl` go to material 0.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Unable to load: {path}")

    points = []
    uvs = []
    triangles = []
    tri_uvs = []
    tri_mtls = []
    materials = {}
    current_mtl = 0
    missing_uv = False

    with open(path, 'r') as f:
        for line in f:
            parts = line.strip().split()
            if not parts or parts[0].startswith('#'):
                continue

            if parts[0] == 'v':
                points.append([float(parts[1]), float(parts[2]), float(parts[3])])

            elif parts[0] == 'vt':
                uvs.append([float(parts[1]), float(parts[2])])

            elif parts[0] == 'usemtl':
                name = parts[1] if len(parts) > 1 else ''
                if name not in materials:
                    materials[name] = len(materials)
                current_mtl = materials[name]

            elif parts[0] == 'f':
                corners = [_parse_face_vertex(tok, len(points), len(uvs)) for tok in parts[1:]]
                if len(corners) < 3:
                    raise ValueError(f"Invalid face in {path}: {line.strip()}")
                for k in range(1, len(corners) - 1):
                    tri = (corners[0], corners[k], corners[k + 1])
                    triangles.append([c[0] for c in tri])
                    if any(c[1] is None for c in tri):
                        missing_uv = True
                        tri_uvs.append([0, 0, 0])
                    else:
                        tri_uvs.append([c[1] for c in tri])
                    tri_mtls.append(current_mtl)

    mesh = Mesh(np.array(points, dtype=np.float64).reshape(-1, 3),
                np.array(triangles, dtype=np.int64).reshape(-1, 3))

    uv_coords = np.array(uvs, dtype=np.float64).reshape(-1, 2)
    tris_uv_ids = None
    if len(uv_coords) and not missing_uv:
        tris_uv_ids = np.array(tri_uvs, dtype=np.int64).reshape(-1, 3)
        if tris_uv_ids.size and (tris_uv_ids.min() < 0 or tris_uv_ids.max() >= len(uv_coords)):
            raise ValueError(f"Texture coordinate index out of range in {path}")

    logger.debug("Read OBJ %s: %d points, %d triangles, %d UVs, %d materials",
                 path.name, mesh.num_points, mesh.num_triangles, len(uv_coords), len(materials))

    return ObjData(
        mesh=mesh,
        uv_coords=uv_coords if tris_uv_ids is not None else np.zeros((0, 2)),
        tris_uv_ids=tris_uv_ids,
        tris_material_ids=np.array(tri_mtls, dtype=np.int64),
        material_names=list(materials),
    )


def obj_has_uvs(path: Union[str, Path]) -> bool:
    """Whether an OBJ file's faces reference texture coordinates, without loading it."""
    seen_uvs = False
    with open(path, 'r') as f:
        for line in f:
            if line.startswith('vt '):
                seen_uvs = True
            elif line.startswith('f '):
                corner = line.split()[1].split('/')
                return seen_uvs and len(corner) > 1 and bool(corner[1])
    return False


def texture_filename(atlas_id: int, extension: str) -> str:
    """Deterministic texture image name for an atlas."""
    return f"texture_{atlas_id}.{extension}"


def write_obj(directory: Union[str, Path],
              basename: str,
              mesh: Mesh,
              uv_coords: np.ndarray,
              tris_uv_ids: np.ndarray,
              atlases: Sequence[Sequence[int]],
              extension: str) -> Tuple[Path, Path]:
    """
    Write a textured mesh as OBJ plus its MTL material library.

    One material per atlas, named TextureAtlas_<i>, referencing
    texture_<i>.<extension>.

    Returns:
        (obj path, mtl path)
    """
    directory = Path(directory)
    obj_path = directory / f"{basename}.obj"
    mtl_name = f"{basename}.mtl"
    mtl_path = directory / mtl_name

    with open(obj_path, 'w') as f:
        f.write("# \n")
        f.write("# Wavefront OBJ file\n")
        f.write("# Created with mesh-texturing\n")
        f.write("# \n")
        f.write(f"mtllib {mtl_name}\n\n")
        f.write("g TexturedMesh\n")

        for x, y, z in mesh.points:
            f.write(f"v {x:f} {y:f} {z:f}\n")

        for u, v in uv_coords:
            f.write(f"vt {u:f} {v:f}\n")

        for atlas_id, triangle_ids in enumerate(atlases):
            f.write(f"usemtl TextureAtlas_{atlas_id}\n")
            for triangle_id in triangle_ids:
                v1, v2, v3 = mesh.triangles[triangle_id] + 1
                t1, t2, t3 = tris_uv_ids[triangle_id] + 1
                f.write(f"f {v1}/{t1} {v2}/{t2} {v3}/{t3}\n")

    with open(mtl_path, 'w') as f:
        f.write("# \n")
        f.write("# Wavefront material file\n")
        f.write("# Created with mesh-texturing\n")
        f.write("# \n\n")

        for atlas_id in range(len(atlases)):
            f.write("\n")
            f.write(f"newmtl TextureAtlas_{atlas_id}\n")
            f.write("Ka  0.6 0.6 0.6\n")
            f.write("Kd  0.6 0.6 0.6\n")
            f.write("Ks  0.0 0.0 0.0\n")
            f.write("d  1.0\n")
            f.write("Ns  0.0\n")
            f.write("illum 2\n")
            f.write(f"map_Kd {texture_filename(atlas_id, extension)}\n")

    logger.info("Writing done: obj file: %s, mtl file: %s", obj_path, mtl_path)
    return obj_path, mtl_path
