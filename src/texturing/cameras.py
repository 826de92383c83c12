# ABOUTME: Calibrated camera views and cached source image sampling
# ABOUTME: Projects 3D points into views and samples photos with bilinear filtering

import json
import logging
import numpy as np
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from PIL import Image


@dataclass
class Camera:
    """
    Pinhole camera with a 3x4 projection matrix.

    Attributes:
        id: Camera identifier used by visibility tables
        width: Image width in pixels
        height: Image height in pixels
        P: (3, 4) projection matrix K [R | t]
        image_path: Source photograph, if any
    """
    id: int
    width: int
    height: int
    P: np.ndarray
    image_path: Optional[Path] = None

    def __post_init__(self):
        self.P = np.asarray(self.P, dtype=np.float64)
        if self.P.shape != (3, 4):
            raise ValueError(f"Camera {self.id}: projection matrix must be 3x4, got {self.P.shape}")
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Camera {self.id}: invalid image size {self.width}x{self.height}")
        if self.image_path is not None:
            self.image_path = Path(self.image_path)

    @classmethod
    def from_krt(cls, id: int, width: int, height: int,
                 K: np.ndarray, R: np.ndarray, t: np.ndarray,
                 image_path: Optional[Path] = None) -> 'Camera':
        """Build a camera from intrinsics and world-to-camera rotation/translation."""
        Rt = np.hstack([np.asarray(R, dtype=np.float64),
                        np.asarray(t, dtype=np.float64).reshape(3, 1)])
        return cls(id, width, height, np.asarray(K, dtype=np.float64) @ Rt, image_path)

    def project(self, points: np.ndarray) -> np.ndarray:
        """
        Project 3D points to pixel coordinates.

        Points on or behind the camera plane map to NaN.

        Args:
            points: (N, 3) or (3,) world-space points

        Returns:
            (N, 2) or (2,) pixel coordinates
        """
        pts = np.asarray(points, dtype=np.float64)
        single = pts.ndim == 1
        pts = pts.reshape(-1, 3)

        homogeneous = np.hstack([pts, np.ones((len(pts), 1))]) @ self.P.T
        depth = homogeneous[:, 2]
        with np.errstate(divide='ignore', invalid='ignore'):
            pix = homogeneous[:, :2] / depth[:, None]
        pix[depth <= 0] = np.nan

        return pix[0] if single else pix

    def is_pixel_in_image(self, pixels: np.ndarray, border: int = 0) -> np.ndarray:
        """Whether pixel coordinates fall inside the image, `border` pixels from its edges."""
        pix = np.asarray(pixels, dtype=np.float64)
        x = pix[..., 0]
        y = pix[..., 1]
        # NaN compares False, so invalid projections are rejected
        return ((x >= border) & (x < self.width - border) &
                (y >= border) & (y < self.height - border))


class ViewSet:
    """Ordered collection of calibrated cameras addressed by id."""

    def __init__(self, cameras: List[Camera], border: int = 0):
        self._cameras: Dict[int, Camera] = {}
        for camera in sorted(cameras, key=lambda c: c.id):
            if camera.id in self._cameras:
                raise ValueError(f"Duplicate camera id: {camera.id}")
            self._cameras[camera.id] = camera
        self.border = border

    def __len__(self) -> int:
        return len(self._cameras)

    def __iter__(self) -> Iterator[Camera]:
        return iter(self._cameras.values())

    def __contains__(self, cam_id: int) -> bool:
        return cam_id in self._cameras

    @property
    def ncams(self) -> int:
        return len(self._cameras)

    def camera(self, cam_id: int) -> Camera:
        try:
            return self._cameras[cam_id]
        except KeyError:
            raise ValueError(f"Unknown camera id: {cam_id}") from None

    def project(self, cam_id: int, points: np.ndarray) -> np.ndarray:
        return self.camera(cam_id).project(points)

    def is_pixel_in_image(self, cam_id: int, pixels: np.ndarray) -> np.ndarray:
        return self.camera(cam_id).is_pixel_in_image(pixels, self.border)


def load_views(path: Union[str, Path]) -> ViewSet:
    """
    Load camera calibration from a JSON file.

    Expected layout:
        {"border": 0,
         "cameras": [{"id": 0, "width": 640, "height": 480, "image": "img0.png",
                      "P": [[...], [...], [...]]}, ...]}

    Each camera gives either "P" or "K", "R" and "t". Image paths are relative
    to the JSON file.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Views file not found: {path}")

    with open(path, 'r') as f:
        data = json.load(f)

    cameras = []
    for entry in data.get('cameras', []):
        try:
            cam_id = int(entry['id'])
            width = int(entry['width'])
            height = int(entry['height'])
        except KeyError as e:
            raise ValueError(f"Camera entry missing field {e} in {path}") from None

        image_path = entry.get('image')
        if image_path is not None:
            image_path = path.parent / image_path

        if 'P' in entry:
            cameras.append(Camera(cam_id, width, height, np.array(entry['P']), image_path))
        elif all(k in entry for k in ('K', 'R', 't')):
            cameras.append(Camera.from_krt(cam_id, width, height,
                                           np.array(entry['K']), np.array(entry['R']),
                                           np.array(entry['t']), image_path))
        else:
            raise ValueError(f"Camera {cam_id} needs either 'P' or 'K', 'R', 't' in {path}")

    return ViewSet(cameras, border=int(data.get('border', 0)))


class ImageCache:
    """
    LRU cache of decoded source images, keyed by camera id.

    Evicted images are reloaded transparently on the next access.
    """

    def __init__(self, views: ViewSet, max_size: int = 8):
        """
        Args:
            views: Cameras whose images are served
            max_size: Maximum number of decoded images kept in memory
                      (0 disables caching)
        """
        self.logger = logging.getLogger('mesh_texturing')
        self.views = views
        self.max_size = max_size
        self._cache: 'OrderedDict[int, np.ndarray]' = OrderedDict()

    def _load(self, cam_id: int) -> np.ndarray:
        camera = self.views.camera(cam_id)
        if camera.image_path is None:
            raise ValueError(f"Camera {cam_id} has no source image")
        if not camera.image_path.exists():
            raise FileNotFoundError(f"Source image not found: {camera.image_path}")

        with Image.open(camera.image_path) as img:
            image = np.asarray(img.convert('RGB'), dtype=np.float32)

        self.logger.debug("Loaded image for camera %d: %s (%dx%d)",
                          cam_id, camera.image_path.name, image.shape[1], image.shape[0])
        return image

    def get(self, cam_id: int) -> np.ndarray:
        """Return the (H, W, 3) float32 image of a camera."""
        if cam_id in self._cache:
            self._cache.move_to_end(cam_id)
            return self._cache[cam_id]

        image = self._load(cam_id)
        if self.max_size > 0:
            self._cache[cam_id] = image
            while len(self._cache) > self.max_size:
                evicted, _ = self._cache.popitem(last=False)
                self.logger.debug("Evicted image of camera %d from cache", evicted)
        return image

    def sample_bilinear(self, cam_id: int, pixels: np.ndarray) -> np.ndarray:
        """
        Sample a camera image at continuous pixel coordinates.

        Args:
            cam_id: Camera to sample
            pixels: (N, 2) pixel coordinates (x, y)

        Returns:
            (N, 3) float32 colors
        """
        texture = self.get(cam_id)
        height, width = texture.shape[:2]
        pix = np.asarray(pixels, dtype=np.float64).reshape(-1, 2)

        x = np.clip(pix[:, 0], 0.0, width - 1)
        y = np.clip(pix[:, 1], 0.0, height - 1)

        x0 = np.floor(x).astype(int)
        y0 = np.floor(y).astype(int)
        x1 = np.minimum(x0 + 1, width - 1)
        y1 = np.minimum(y0 + 1, height - 1)

        fx = (x - x0)[:, None]
        fy = (y - y0)[:, None]

        c00 = texture[y0, x0]  # Top-left
        c10 = texture[y0, x1]  # Top-right
        c01 = texture[y1, x0]  # Bottom-left
        c11 = texture[y1, x1]  # Bottom-right

        c0 = c00 * (1 - fx) + c10 * fx
        c1 = c01 * (1 - fx) + c11 * fx
        return (c0 * (1 - fy) + c1 * fy).astype(np.float32)

    def clear(self):
        """Drop every cached image."""
        if self._cache:
            total_memory = sum(arr.nbytes for arr in self._cache.values()) / (1024 * 1024)
            self.logger.debug("Clearing image cache (freeing %.1f MB)", total_memory)
            self._cache.clear()
