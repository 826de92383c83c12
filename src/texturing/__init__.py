"""Texture atlas baking for reconstructed meshes."""

from .cameras import Camera, ViewSet, ImageCache, load_views
from .mesh import Mesh
from .params import TexturingParams, UnwrapMethod, ImageFileType
from .texturing import Texturing
from .uv_atlas import Chart, load_chart_layout

__all__ = [
    'Camera',
    'ViewSet',
    'ImageCache',
    'load_views',
    'Mesh',
    'TexturingParams',
    'UnwrapMethod',
    'ImageFileType',
    'Texturing',
    'Chart',
    'load_chart_layout',
]
