# ABOUTME: Texturing parameters and enumerated options
# ABOUTME: Unwrap methods and output image types with string conversion

from dataclasses import dataclass
from enum import Enum


class UnwrapMethod(Enum):
    """How UV coordinates are generated for a mesh without them."""

    BASIC = 'Basic'  # Chart placement from reference camera projections
    ABF = 'ABF'      # Angle-based global parameterization
    LSCM = 'LSCM'    # Least-squares conformal global parameterization

    @classmethod
    def from_string(cls, name: str) -> 'UnwrapMethod':
        for method in cls:
            if method.value == name:
                return method
        raise ValueError(f"Invalid unwrap method: {name}")

    def __str__(self) -> str:
        return self.value


class ImageFileType(Enum):
    """Output texture image formats."""

    PNG = 'png'
    JPEG = 'jpg'
    TIFF = 'tif'

    @classmethod
    def from_string(cls, name: str) -> 'ImageFileType':
        lowered = name.lower()
        aliases = {'jpeg': 'jpg', 'tiff': 'tif'}
        lowered = aliases.get(lowered, lowered)
        for file_type in cls:
            if file_type.value == lowered:
                return file_type
        raise ValueError(f"Invalid texture file type: {name}")

    def __str__(self) -> str:
        return self.value


@dataclass
class TexturingParams:
    """Parameters of texture generation."""

    texture_side: int = 8192  # Atlas width and height in pixels
    padding: int = 15  # Gutter width in pixels
    downscale: int = 2  # Integer output downscale factor
    fill_holes: bool = False  # Fill unpainted pixels instead of padding

    def __post_init__(self):
        if self.texture_side <= 0:
            raise ValueError(f"Texture side must be positive, got {self.texture_side}")
        if self.padding < 0:
            raise ValueError(f"Padding must be non-negative, got {self.padding}")
        if self.downscale < 1:
            raise ValueError(f"Downscale must be a positive integer, got {self.downscale}")
