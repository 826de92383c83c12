# ABOUTME: Shared fixtures for the texturing test suite
# ABOUTME: Builds small synthetic scenes (mesh, visibilities, cameras, photos) on disk

import json
import logging
import sys
from pathlib import Path

import numpy as np
import pytest
import trimesh
from PIL import Image

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from texturing.mesh_io import save_visibilities


# Maps world (x, y, z) to pixel (8x, 8y): the unit square lands on [0, 8]^2
SQUARE_PROJECTION = [[8.0, 0.0, 0.0, 0.0],
                     [0.0, 8.0, 0.0, 0.0],
                     [0.0, 0.0, 0.0, 1.0]]

SQUARE_POINTS = np.array([[0.0, 0.0, 0.0],
                          [1.0, 0.0, 0.0],
                          [1.0, 1.0, 0.0],
                          [0.0, 1.0, 0.0]])

SQUARE_TRIANGLES = np.array([[0, 1, 2],
                             [0, 2, 3]])


def bilinear(image: np.ndarray, x: float, y: float) -> np.ndarray:
    """Reference bilinear sample of an (H, W, 3) image at pixel coordinates."""
    x0, y0 = int(np.floor(x)), int(np.floor(y))
    x1 = min(x0 + 1, image.shape[1] - 1)
    y1 = min(y0 + 1, image.shape[0] - 1)
    fx, fy = x - x0, y - y0
    top = image[y0, x0] * (1 - fx) + image[y0, x1] * fx
    bottom = image[y1, x0] * (1 - fx) + image[y1, x1] * fx
    return top * (1 - fy) + bottom * fy


def diagonal_ramp_image(size: int = 16) -> np.ndarray:
    """
    uint8 image whose value is affine in (column + row).

    Bilinear sampling of it is exact, and moving perpendicular to the x = y
    diagonal does not change the sampled value.
    """
    rows, cols = np.mgrid[0:size, 0:size]
    base = 40 + 6 * (cols + rows)
    return np.stack([base, base + 20, 255 - base], axis=2).astype(np.uint8)


def write_scene(directory: Path, points, triangles, visibilities, images,
                projection=SQUARE_PROJECTION, image_size: int = 16):
    """
    Write mesh, visibility, views and photos for a synthetic scene.

    Args:
        images: One uint8 (H, W, 3) photo per camera; camera i gets images[i]

    Returns:
        dict with 'mesh', 'visibilities' and 'views' paths
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    mesh_path = directory / "dense.ply"
    trimesh.Trimesh(vertices=np.asarray(points), faces=np.asarray(triangles),
                    process=False).export(str(mesh_path))

    vis_path = directory / "dense.vis"
    save_visibilities(visibilities, vis_path)

    cameras = []
    for cam_id, image in enumerate(images):
        image_name = f"view_{cam_id}.png"
        Image.fromarray(image).save(directory / image_name)
        cameras.append({
            "id": cam_id,
            "width": image_size,
            "height": image_size,
            "image": image_name,
            "P": projection,
        })

    views_path = directory / "views.json"
    views_path.write_text(json.dumps({"cameras": cameras}))

    return {'mesh': mesh_path, 'visibilities': vis_path, 'views': views_path}


@pytest.fixture(autouse=True)
def reset_logger():
    """Undo setup_logging so later tests still see records through caplog."""
    yield
    logger = logging.getLogger('mesh_texturing')
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def square_scene(tmp_path):
    """Unit square seen by one camera on every vertex."""
    image = diagonal_ramp_image()
    paths = write_scene(tmp_path / "scene", SQUARE_POINTS, SQUARE_TRIANGLES,
                        [[0], [0], [0], [0]], [image])
    paths['image'] = image
    return paths
