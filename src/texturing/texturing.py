# ABOUTME: Texturing session owning the mesh, visibilities, UVs and atlases
# ABOUTME: Unwraps meshes and bakes one texture image per atlas from calibrated photos

import logging
import numpy as np
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .assembly import build_texture, write_image
from .cameras import ImageCache, ViewSet
from .mesh import Mesh, PointsVisibility, copy_visibilities, remap_mesh_visibilities
from .mesh_io import load_mesh, load_visibilities, read_obj, texture_filename, write_obj
from .padding import pad_gutter
from .parameterization import parameterize
from .params import ImageFileType, TexturingParams, UnwrapMethod
from .rasterizer import accumulate_atlas
from .uv_atlas import Atlases, remap_atlas


@dataclass(frozen=True)
class MeshState:
    """
    Everything the session knows about its current mesh.

    Replaced as a whole; never modified once installed.
    """
    mesh: Mesh
    visibilities: PointsVisibility
    uv_coords: np.ndarray
    tris_uv_ids: Optional[np.ndarray]
    atlases: Tuple[Tuple[int, ...], ...]

    @property
    def has_uvs(self) -> bool:
        return self.tris_uv_ids is not None and len(self.uv_coords) > 0


class Texturing:
    """Texture baking session for one reconstructed mesh."""

    def __init__(self, params: Optional[TexturingParams] = None):
        self.params = params or TexturingParams()
        self.logger = logging.getLogger('mesh_texturing')
        self._state: Optional[MeshState] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def has_mesh(self) -> bool:
        return self._state is not None

    @property
    def state(self) -> Optional[MeshState]:
        return self._state

    @property
    def mesh(self) -> Optional[Mesh]:
        return self._state.mesh if self._state else None

    @property
    def visibilities(self) -> PointsVisibility:
        return self._state.visibilities if self._state else []

    @property
    def uv_coords(self) -> np.ndarray:
        return self._state.uv_coords if self._state else np.zeros((0, 2))

    @property
    def tris_uv_ids(self) -> Optional[np.ndarray]:
        return self._state.tris_uv_ids if self._state else None

    @property
    def atlases(self) -> List[List[int]]:
        return [list(a) for a in self._state.atlases] if self._state else []

    @property
    def has_uvs(self) -> bool:
        return self._state is not None and self._state.has_uvs

    def _require_mesh(self, action: str) -> MeshState:
        if self._state is None:
            raise RuntimeError(f"Can't {action} without a mesh")
        return self._state

    def _install(self, state: MeshState):
        if len(state.visibilities) != state.mesh.num_points:
            raise ValueError(
                f"Visibilities ({len(state.visibilities)}) don't match "
                f"mesh points ({state.mesh.num_points})"
            )
        self._state = state

    def clear(self):
        """Forget the current mesh and everything derived from it."""
        self._state = None

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_from_meshing(self, mesh_path: Union[str, Path], visibilities_path: Union[str, Path]):
        """
        Load a reconstructed mesh and its per-point visibilities.

        Raises:
            FileNotFoundError: If either file is missing
            ValueError: If the visibilities don't match the mesh points
        """
        mesh = load_mesh(mesh_path)
        visibilities = load_visibilities(visibilities_path)
        if len(visibilities) != mesh.num_points:
            raise ValueError(
                "Reference mesh and associated visibilities don't have the same size "
                f"({mesh.num_points} points, {len(visibilities)} visibilities)."
            )

        self._install(MeshState(mesh, visibilities, np.zeros((0, 2)), None, ()))
        self.logger.info("Loaded mesh: %d points, %d triangles",
                         mesh.num_points, mesh.num_triangles)

    def _state_from_obj(self, path: Union[str, Path], flip_normals: bool,
                        visibilities: Optional[PointsVisibility]) -> MeshState:
        obj = read_obj(path)
        mesh = obj.mesh.flipped() if flip_normals else obj.mesh
        tris_uv_ids = obj.tris_uv_ids
        if flip_normals and tris_uv_ids is not None:
            tris_uv_ids = tris_uv_ids[:, ::-1].copy()

        # One atlas per material, a single one when there are none
        n_atlases = max(1, len(obj.material_names))
        atlases = [[] for _ in range(n_atlases)]
        for triangle_id, material_id in enumerate(obj.tris_material_ids):
            atlases[int(material_id)].append(triangle_id)

        if visibilities is None:
            visibilities = [[] for _ in range(mesh.num_points)]

        return MeshState(mesh, visibilities, obj.uv_coords, tris_uv_ids,
                         tuple(tuple(a) for a in atlases))

    def load_from_obj(self, path: Union[str, Path], flip_normals: bool = False):
        """Load an OBJ mesh with its UVs; points start without visibility."""
        self._install(self._state_from_obj(path, flip_normals, None))
        self.logger.info("Loaded OBJ mesh: %d points, %d triangles, %d atlases",
                         self.mesh.num_points, self.mesh.num_triangles, len(self._state.atlases))

    def replace_mesh(self, path: Union[str, Path], flip_normals: bool = False):
        """
        Swap the current mesh for an OBJ mesh, keeping visibility information.

        Every point of the new mesh receives the visibilities of its nearest
        point in the current mesh.
        """
        ref = self._require_mesh("replace the mesh")
        obj_state = self._state_from_obj(path, flip_normals, None)
        visibilities = remap_mesh_visibilities(ref.mesh, ref.visibilities, obj_state.mesh)

        self._install(MeshState(obj_state.mesh, visibilities, obj_state.uv_coords,
                                obj_state.tris_uv_ids, obj_state.atlases))
        self.logger.info("Replaced mesh: %d points, %d triangles",
                         self.mesh.num_points, self.mesh.num_triangles)

    # ------------------------------------------------------------------
    # UV generation
    # ------------------------------------------------------------------

    def generate_uvs(self, views: ViewSet, atlases: Atlases):
        """
        Remap the mesh through a chart packing, assigning UVs from the charts'
        reference cameras.
        """
        state = self._require_mesh("generate UVs")
        self.logger.info("Generating UVs (textureSide: %d; padding: %d).",
                         self.params.texture_side, self.params.padding)

        remap = remap_atlas(state.mesh, state.visibilities, atlases, views,
                            self.params.texture_side)

        self._install(MeshState(remap.mesh, remap.visibilities, remap.uv_coords,
                                remap.tris_uv_ids, tuple(tuple(a) for a in remap.atlases)))

    def unwrap(self, views: ViewSet, method: UnwrapMethod, atlases: Optional[Atlases] = None):
        """
        Generate UVs with the given method.

        Basic uses the chart packing in `atlases`; ABF and LSCM run a global
        parameterization and produce a single atlas.
        """
        state = self._require_mesh("unwrap")

        if method == UnwrapMethod.BASIC:
            if atlases is None:
                raise ValueError("Basic unwrapping requires a chart layout")
            self.generate_uvs(views, atlases)
            return

        vmapping, triangles, uvs = parameterize(state.mesh, method,
                                                self.params.texture_side,
                                                self.params.padding)
        mesh = Mesh(state.mesh.points[vmapping], triangles)
        visibilities = copy_visibilities([state.visibilities[i] for i in vmapping])

        self._install(MeshState(mesh, visibilities, uvs, triangles.copy(),
                                (tuple(range(mesh.num_triangles)),)))

    # ------------------------------------------------------------------
    # Texture generation
    # ------------------------------------------------------------------

    def generate_textures(self, views: ViewSet, out_dir: Union[str, Path],
                          file_type: ImageFileType = ImageFileType.PNG,
                          image_cache: Optional[ImageCache] = None) -> List[Path]:
        """Bake every atlas. Returns the written texture paths."""
        state = self._require_mesh("generate textures")
        image_cache = image_cache or ImageCache(views)

        paths = []
        for atlas_id in range(len(state.atlases)):
            paths.append(self.generate_texture(views, atlas_id, image_cache, out_dir, file_type))
        return paths

    def generate_texture(self, views: ViewSet, atlas_id: int, image_cache: ImageCache,
                         out_dir: Union[str, Path],
                         file_type: ImageFileType = ImageFileType.PNG) -> Path:
        """
        Bake one atlas into texture_<atlas_id>.<ext> under out_dir.

        Raises:
            RuntimeError: Without a mesh, without UVs or for an invalid atlas id
        """
        state = self._require_mesh("generate textures")
        if atlas_id < 0 or atlas_id >= len(state.atlases):
            raise RuntimeError(f"Invalid atlas ID {atlas_id}")
        if not state.has_uvs:
            raise RuntimeError("Can't generate textures without UV coordinates")

        params = self.params
        triangle_ids = state.atlases[atlas_id]
        self.logger.info("Generating texture for atlas %d/%d (%d triangles).",
                         atlas_id + 1, len(state.atlases), len(triangle_ids))

        accumulator, pixel_map = accumulate_atlas(
            state.mesh, state.visibilities, state.uv_coords, state.tris_uv_ids,
            triangle_ids, views, image_cache, params.texture_side
        )

        if not params.fill_holes and params.padding > 0:
            pad_gutter(pixel_map, params.padding)

        self.logger.info("Computing final (average) color.")
        colors = build_texture(accumulator, pixel_map, params.fill_holes, params.downscale)

        texture_path = Path(out_dir) / texture_filename(atlas_id, file_type.value)
        self.logger.info("Writing texture file: %s", texture_path)
        return write_image(texture_path, colors)

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def save_as_obj(self, directory: Union[str, Path], basename: str,
                    file_type: ImageFileType = ImageFileType.PNG) -> Tuple[Path, Path]:
        """Write the textured mesh as <basename>.obj and <basename>.mtl."""
        state = self._require_mesh("save a mesh")
        if not state.has_uvs:
            raise RuntimeError("Can't save a textured mesh without UV coordinates")

        self.logger.info("Writing obj and mtl file.")
        return write_obj(directory, basename, state.mesh, state.uv_coords,
                         state.tris_uv_ids, state.atlases, file_type.value)
