# ABOUTME: Tests for camera projection, view loading and the source image cache
# ABOUTME: Covers behind-camera points, image borders, LRU eviction and bilinear sampling

import json

import numpy as np
import pytest
from PIL import Image

from texturing.cameras import Camera, ImageCache, ViewSet, load_views

from conftest import SQUARE_PROJECTION, bilinear


@pytest.fixture
def pinhole():
    """Camera at the origin looking down +z, focal 100, principal point (50, 40)."""
    K = np.array([[100.0, 0.0, 50.0], [0.0, 100.0, 40.0], [0.0, 0.0, 1.0]])
    return Camera.from_krt(0, 100, 80, K, np.eye(3), np.zeros(3))


def write_views(directory, images):
    """Save photos and a views.json with one square-projection camera each."""
    cameras = []
    for cam_id, image in enumerate(images):
        name = f"img_{cam_id}.png"
        Image.fromarray(image).save(directory / name)
        cameras.append({"id": cam_id, "width": image.shape[1], "height": image.shape[0],
                        "image": name, "P": SQUARE_PROJECTION})
    path = directory / "views.json"
    path.write_text(json.dumps({"cameras": cameras}))
    return path


class TestCamera:
    """Tests for Camera."""

    def test_project(self, pinhole):
        pix = pinhole.project(np.array([[0.0, 0.0, 2.0], [1.0, -0.5, 2.0]]))

        np.testing.assert_allclose(pix, [[50.0, 40.0], [100.0, 15.0]])

    def test_project_single_point(self, pinhole):
        np.testing.assert_allclose(pinhole.project([0.2, 0.1, 1.0]), [70.0, 50.0])

    def test_behind_camera_is_nan(self, pinhole):
        pix = pinhole.project(np.array([[0.0, 0.0, -1.0], [0.0, 0.0, 0.0]]))

        assert np.isnan(pix).all()
        assert not pinhole.is_pixel_in_image(pix).any()

    def test_is_pixel_in_image(self, pinhole):
        pix = np.array([[0.0, 0.0], [99.5, 79.5], [100.0, 10.0], [-0.1, 10.0]])

        np.testing.assert_array_equal(pinhole.is_pixel_in_image(pix),
                                      [True, True, False, False])

    def test_border(self, pinhole):
        pix = np.array([[1.0, 1.0], [2.0, 2.0], [97.5, 50.0]])

        np.testing.assert_array_equal(pinhole.is_pixel_in_image(pix, border=2),
                                      [False, True, True])

    def test_invalid_matrix(self):
        with pytest.raises(ValueError, match="3x4"):
            Camera(0, 10, 10, np.eye(3))


class TestViewSet:
    """Tests for ViewSet."""

    def test_sorted_by_id(self):
        P = np.array(SQUARE_PROJECTION)
        views = ViewSet([Camera(3, 16, 16, P), Camera(1, 16, 16, P)])

        assert [c.id for c in views] == [1, 3]
        assert len(views) == views.ncams == 2
        assert 3 in views and 2 not in views

    def test_unknown_camera(self):
        views = ViewSet([Camera(0, 16, 16, np.array(SQUARE_PROJECTION))])

        with pytest.raises(ValueError, match="Unknown camera"):
            views.camera(7)

    def test_duplicate_id(self):
        P = np.array(SQUARE_PROJECTION)
        with pytest.raises(ValueError, match="Duplicate"):
            ViewSet([Camera(0, 16, 16, P), Camera(0, 16, 16, P)])


class TestLoadViews:
    """Tests for load_views."""

    def test_projection_and_krt(self, tmp_path):
        data = {
            "border": 1,
            "cameras": [
                {"id": 0, "width": 16, "height": 16, "image": "a.png", "P": SQUARE_PROJECTION},
                {"id": 1, "width": 100, "height": 80,
                 "K": [[100, 0, 50], [0, 100, 40], [0, 0, 1]],
                 "R": [[1, 0, 0], [0, 1, 0], [0, 0, 1]], "t": [0, 0, 0]},
            ],
        }
        path = tmp_path / "views.json"
        path.write_text(json.dumps(data))

        views = load_views(path)

        assert views.border == 1
        assert views.camera(0).image_path == tmp_path / "a.png"
        assert views.camera(1).image_path is None
        np.testing.assert_allclose(views.project(1, [0.0, 0.0, 2.0]), [50.0, 40.0])

    def test_camera_without_projection(self, tmp_path):
        path = tmp_path / "views.json"
        path.write_text(json.dumps({"cameras": [{"id": 0, "width": 4, "height": 4}]}))

        with pytest.raises(ValueError):
            load_views(path)

    def test_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_views(tmp_path / "views.json")


class TestImageCache:
    """Tests for ImageCache."""

    def test_lru_eviction_and_reload(self, tmp_path):
        images = [np.full((4, 4, 3), 10 * (i + 1), dtype=np.uint8) for i in range(3)]
        views = load_views(write_views(tmp_path, images))
        cache = ImageCache(views, max_size=2)

        cache.get(0)
        cache.get(1)
        cache.get(0)
        cache.get(2)  # Evicts camera 1, the least recently used

        assert list(cache._cache) == [0, 2]
        np.testing.assert_array_equal(cache.get(1)[0, 0], [20, 20, 20])
        assert list(cache._cache) == [2, 1]

    def test_no_caching(self, tmp_path):
        views = load_views(write_views(tmp_path, [np.zeros((4, 4, 3), dtype=np.uint8)]))
        cache = ImageCache(views, max_size=0)

        assert cache.get(0).shape == (4, 4, 3)
        assert len(cache._cache) == 0

    def test_bilinear_sampling(self, tmp_path):
        rng = np.random.default_rng(3)
        image = rng.integers(0, 256, (6, 5, 3), dtype=np.uint8)
        views = load_views(write_views(tmp_path, [image]))
        cache = ImageCache(views)

        pixels = np.array([[2.0, 3.0], [1.5, 2.5], [0.25, 4.75]])
        samples = cache.sample_bilinear(0, pixels)

        expected = [bilinear(image.astype(np.float64), x, y) for x, y in pixels]
        np.testing.assert_allclose(samples, expected, atol=1e-3)

    def test_sampling_clamps_to_image(self, tmp_path):
        image = np.zeros((4, 4, 3), dtype=np.uint8)
        image[3, 3] = [200, 100, 50]
        views = load_views(write_views(tmp_path, [image]))

        samples = ImageCache(views).sample_bilinear(0, np.array([[3.9, 3.9]]))

        np.testing.assert_allclose(samples[0], [200, 100, 50], atol=1e-3)

    def test_missing_image(self, tmp_path):
        views = load_views(write_views(tmp_path, [np.zeros((4, 4, 3), dtype=np.uint8)]))
        (tmp_path / "img_0.png").unlink()

        with pytest.raises(FileNotFoundError):
            ImageCache(views).get(0)

    def test_clear(self, tmp_path):
        views = load_views(write_views(tmp_path, [np.zeros((4, 4, 3), dtype=np.uint8)]))
        cache = ImageCache(views)
        cache.get(0)

        cache.clear()

        assert len(cache._cache) == 0
