"""
Tests for the pipeline configuration, orchestrator and command line.
"""

import json
import logging

import pytest

from pipeline.cli import main
from pipeline.config import PipelineConfig
from pipeline.orchestrator import Pipeline
from texturing.params import ImageFileType, UnwrapMethod
from utils.logging_utils import LOGGER_NAME, Timer, TimingStats, setup_logging


@pytest.fixture
def chart_layout(tmp_path):
    """Both square triangles in one chart, placed from camera 0."""
    path = tmp_path / "charts.json"
    path.write_text(json.dumps({"atlases": [[{"triangle_ids": [0, 1], "ref_camera": 0}]]}))
    return path


def make_config(scene, output_dir, **overrides):
    values = dict(
        input_mesh=scene['mesh'],
        visibilities_file=scene['visibilities'],
        views_file=scene['views'],
        output_dir=output_dir,
        texture_side=16,
        padding=2,
        downscale=1,
    )
    values.update(overrides)
    return PipelineConfig(**values)


class TestPipelineConfig:
    """Tests for PipelineConfig dataclass."""

    def test_defaults(self, square_scene, chart_layout, tmp_path):
        output_dir = tmp_path / "output"

        config = PipelineConfig(
            input_mesh=square_scene['mesh'],
            visibilities_file=square_scene['visibilities'],
            views_file=square_scene['views'],
            output_dir=output_dir,
            chart_layout=chart_layout,
        )

        assert output_dir.exists()  # Should be created
        assert config.method == UnwrapMethod.BASIC
        assert config.file_type == ImageFileType.PNG
        params = config.to_texturing_params()
        assert params.texture_side == 8192
        assert params.padding == 15
        assert params.downscale == 2
        assert params.fill_holes is False

    def test_nonexistent_input(self, square_scene, tmp_path):
        with pytest.raises(FileNotFoundError):
            make_config(square_scene, tmp_path / "out",
                        input_mesh=tmp_path / "missing.ply", unwrap_method='LSCM')

    def test_basic_requires_layout(self, square_scene, tmp_path):
        with pytest.raises(ValueError, match="chart layout"):
            make_config(square_scene, tmp_path / "out")

    def test_invalid_unwrap_method(self, square_scene, tmp_path):
        with pytest.raises(ValueError, match="Invalid unwrap method"):
            make_config(square_scene, tmp_path / "out", unwrap_method='invalid')

    def test_invalid_file_type(self, square_scene, tmp_path):
        with pytest.raises(ValueError, match="Invalid texture file type"):
            make_config(square_scene, tmp_path / "out", unwrap_method='LSCM',
                        texture_file_type='exr')

    def test_invalid_texture_side(self, square_scene, tmp_path):
        with pytest.raises(ValueError, match="Texture side"):
            make_config(square_scene, tmp_path / "out", unwrap_method='LSCM', texture_side=8)

    def test_invalid_downscale(self, square_scene, tmp_path):
        with pytest.raises(ValueError, match="downscale"):
            make_config(square_scene, tmp_path / "out", unwrap_method='LSCM', downscale=3)

    def test_replacement_without_uvs_needs_layout(self, square_scene, tmp_path):
        """Basic unwrapping of a UV-less replacement mesh is rejected before any loading."""
        obj_file = tmp_path / "retopo.obj"
        obj_file.write_text("v 0 0 0\nv 1 0 0\nv 1 1 0\nf 1 2 3\n")

        with pytest.raises(ValueError, match="no UV coordinates"):
            make_config(square_scene, tmp_path / "out", replacement_mesh=obj_file)

    def test_replacement_without_uvs_and_layout(self, square_scene, chart_layout, tmp_path):
        obj_file = tmp_path / "retopo.obj"
        obj_file.write_text("v 0 0 0\nv 1 0 0\nv 1 1 0\nf 1 2 3\n")

        config = make_config(square_scene, tmp_path / "out", replacement_mesh=obj_file,
                             chart_layout=chart_layout)

        assert config.replacement_mesh == obj_file

    def test_replacement_mesh_must_be_obj(self, square_scene, tmp_path):
        with pytest.raises(ValueError, match="Unsupported replacement mesh"):
            make_config(square_scene, tmp_path / "out",
                        replacement_mesh=square_scene['mesh'])


class TestPipelineIntegration:
    """Integration tests for the complete pipeline."""

    def test_basic_pipeline(self, square_scene, chart_layout, tmp_path):
        output_dir = tmp_path / "output"
        config = make_config(square_scene, output_dir, chart_layout=chart_layout)

        output_files = Pipeline(config).run()

        names = [f.name for f in output_files]
        assert names == ["texture_0.png", "texturedMesh.obj", "texturedMesh.mtl"]
        for f in output_files:
            assert f.exists()
            assert f.stat().st_size > 0
        assert "map_Kd texture_0.png" in (output_dir / "texturedMesh.mtl").read_text()

    def test_replacement_mesh_skips_unwrap(self, square_scene, tmp_path, caplog):
        obj_file = tmp_path / "retopo.obj"
        obj_file.write_text("v 0 0 0\nv 1 0 0\nv 1 1 0\nv 0 1 0\n"
                            "vt 0 0\nvt 1 0\nvt 1 1\nvt 0 1\n"
                            "f 1/1 2/2 3/3\nf 1/1 3/3 4/4\n")
        output_dir = tmp_path / "output"
        config = make_config(square_scene, output_dir, replacement_mesh=obj_file,
                             texture_file_type='jpg', output_basename='retopo_textured')

        with caplog.at_level(logging.INFO, logger=LOGGER_NAME):
            output_files = Pipeline(config).run()

        assert "skipping unwrap" in caplog.text
        assert [f.name for f in output_files] == [
            "texture_0.jpg", "retopo_textured.obj", "retopo_textured.mtl"
        ]

    def test_failure_is_logged_and_raised(self, square_scene, tmp_path, caplog):
        layout = tmp_path / "bad_charts.json"
        layout.write_text(json.dumps({"atlases": [[{"triangle_ids": [7], "ref_camera": 0}]]}))
        config = make_config(square_scene, tmp_path / "output", chart_layout=layout)

        with pytest.raises(ValueError, match="out of range"):
            Pipeline(config).run()
        assert "PIPELINE FAILED" in caplog.text


class TestCli:
    """Tests for the command line entry point."""

    def test_success(self, square_scene, chart_layout, tmp_path):
        output_dir = tmp_path / "output"

        with pytest.raises(SystemExit) as exc:
            main([str(square_scene['mesh']), str(square_scene['visibilities']),
                  str(square_scene['views']), str(output_dir),
                  '--chart-layout', str(chart_layout),
                  '--texture-side', '16', '--padding', '1', '--downscale', '1', '--quiet'])

        assert exc.value.code == 0
        assert (output_dir / "texture_0.png").exists()
        assert (output_dir / "texturedMesh.obj").exists()

    def test_missing_layout_exits_with_error(self, square_scene, tmp_path):
        with pytest.raises(SystemExit) as exc:
            main([str(square_scene['mesh']), str(square_scene['visibilities']),
                  str(square_scene['views']), str(tmp_path / "output"), '--quiet'])

        assert exc.value.code == 1


class TestLoggingUtils:
    """Tests for logging helpers."""

    def test_setup_logging_levels(self):
        assert setup_logging(verbose=True).level == logging.DEBUG
        assert setup_logging(quiet=True).level == logging.WARNING
        logger = setup_logging()
        assert logger.level == logging.INFO
        assert len(logger.handlers) == 1

    def test_timer(self):
        with Timer("work") as timer:
            pass

        assert timer.elapsed is not None
        assert timer.elapsed >= 0

    def test_timing_tree(self):
        stats = TimingStats("Loading", 2.0)
        stats.add_substep("Mesh loading", 0.5)

        lines = stats.format_tree(4.0).split('\n')

        assert len(lines) == 2
        assert lines[0].startswith("Loading")
        assert "50.0%" in lines[0]
        assert lines[1].startswith("  Mesh loading")
        assert "500ms" in lines[1]
