# ABOUTME: Configuration dataclass for pipeline settings
# ABOUTME: Validates user inputs and provides defaults

from dataclasses import dataclass
from typing import Optional
from pathlib import Path

from texturing.mesh_io import obj_has_uvs
from texturing.params import ImageFileType, TexturingParams, UnwrapMethod


VALID_DOWNSCALE_FACTORS = {1, 2, 4, 8}


@dataclass
class PipelineConfig:
    """Configuration for the texturing pipeline."""

    input_mesh: Path
    visibilities_file: Path
    views_file: Path
    output_dir: Path
    replacement_mesh: Optional[Path] = None  # OBJ to texture instead of the dense mesh
    chart_layout: Optional[Path] = None  # Chart packing for Basic unwrapping
    unwrap_method: str = 'Basic'  # 'Basic', 'ABF' or 'LSCM'
    texture_side: int = 8192
    padding: int = 15
    downscale: int = 2
    fill_holes: bool = False
    texture_file_type: str = 'png'  # 'png', 'jpg' or 'tif'
    flip_normals: bool = False
    image_cache_size: int = 8  # Decoded source images kept in memory
    output_basename: str = 'texturedMesh'

    def __post_init__(self):
        """Validate configuration after initialization."""
        self.input_mesh = Path(self.input_mesh)
        self.visibilities_file = Path(self.visibilities_file)
        self.views_file = Path(self.views_file)
        self.output_dir = Path(self.output_dir)
        if self.replacement_mesh is not None:
            self.replacement_mesh = Path(self.replacement_mesh)
        if self.chart_layout is not None:
            self.chart_layout = Path(self.chart_layout)

        # Check inputs exist
        for label, path in [('Input mesh', self.input_mesh),
                            ('Visibilities file', self.visibilities_file),
                            ('Views file', self.views_file),
                            ('Replacement mesh', self.replacement_mesh),
                            ('Chart layout', self.chart_layout)]:
            if path is not None and not path.exists():
                raise FileNotFoundError(f"{label} not found: {path}")

        if self.replacement_mesh is not None and self.replacement_mesh.suffix.lower() != '.obj':
            raise ValueError(
                f"Unsupported replacement mesh type: {self.replacement_mesh.suffix}\n"
                "Supported: {'.obj'}"
            )

        # Validate enumerations (raises ValueError on unknown names)
        method = UnwrapMethod.from_string(self.unwrap_method)
        ImageFileType.from_string(self.texture_file_type)

        if method == UnwrapMethod.BASIC and self.chart_layout is None:
            if self.replacement_mesh is None:
                raise ValueError("Basic unwrapping requires a chart layout")
            if not obj_has_uvs(self.replacement_mesh):
                raise ValueError(
                    "Basic unwrapping requires a chart layout when the replacement "
                    f"mesh has no UV coordinates: {self.replacement_mesh}"
                )

        # Validate texture parameters
        if self.texture_side < 16 or self.texture_side > 65536:
            raise ValueError("Texture side must be between 16 and 65536")

        if self.padding < 0:
            raise ValueError("Padding must be non-negative")

        if self.downscale not in VALID_DOWNSCALE_FACTORS:
            raise ValueError(
                f"Invalid downscale factor: {self.downscale} "
                f"(supported: {sorted(VALID_DOWNSCALE_FACTORS)})"
            )

        if self.image_cache_size < 0:
            raise ValueError("Image cache size must be non-negative")

        # Create output directory
        self.output_dir.mkdir(parents=True, exist_ok=True)

    @property
    def method(self) -> UnwrapMethod:
        return UnwrapMethod.from_string(self.unwrap_method)

    @property
    def file_type(self) -> ImageFileType:
        return ImageFileType.from_string(self.texture_file_type)

    def to_texturing_params(self) -> TexturingParams:
        """Texture generation parameters for the texturing session."""
        return TexturingParams(
            texture_side=self.texture_side,
            padding=self.padding,
            downscale=self.downscale,
            fill_holes=self.fill_holes,
        )
