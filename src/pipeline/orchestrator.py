# ABOUTME: Main pipeline orchestrator
# ABOUTME: Coordinates mesh loading, unwrapping, texture baking and OBJ export with timing

import logging
import traceback
from pathlib import Path
from typing import List
import time

from .config import PipelineConfig
from texturing.cameras import ImageCache, load_views
from texturing.params import UnwrapMethod
from texturing.texturing import Texturing
from texturing.uv_atlas import load_chart_layout
from utils.logging_utils import Timer, TimingStats


class Pipeline:
    """Main pipeline orchestrator for mesh texturing."""

    def __init__(self, config: PipelineConfig):
        """Initialize pipeline with configuration."""
        self.config = config
        self.logger = logging.getLogger('mesh_texturing')
        self.timing_stats = []  # Track timing for each stage
        self.texturing = Texturing(config.to_texturing_params())
        self.views = None

    def run(self) -> List[Path]:
        """Execute the complete pipeline."""
        start_time = time.time()

        self.logger.info("="*70)
        self.logger.info("MESH TEXTURING PIPELINE")
        self.logger.info("="*70)
        self.logger.info("Input mesh: %s", self.config.input_mesh)
        if self.config.replacement_mesh:
            self.logger.info("Replacement mesh: %s", self.config.replacement_mesh)
        self.logger.info("Output: %s", self.config.output_dir)
        self.logger.info("Unwrap method: %s", self.config.method)
        self.logger.info("Texture side: %d (padding: %d, downscale: %d, fill holes: %s)",
                         self.config.texture_side, self.config.padding,
                         self.config.downscale, self.config.fill_holes)
        self.logger.info("="*70)

        try:
            self._load()
            self._unwrap()
            output_files = self._generate_textures()
            output_files.extend(self._export())

            self._print_summary(start_time, output_files)
            return output_files

        except Exception as e:
            self.logger.error("")
            self.logger.error("PIPELINE FAILED: %s", e)
            self.logger.error("Traceback:\n%s", traceback.format_exc())
            raise

    def _stage_header(self, title: str):
        self.logger.info("")
        self.logger.info("-"*70)
        self.logger.info(title)
        self.logger.info("-"*70)

    def _load(self):
        """Load calibration, the dense mesh and (optionally) the replacement mesh."""
        self._stage_header("STAGE 1: LOADING")

        with Timer("Loading", self.logger) as timer:
            with Timer("Views loading", self.logger) as views_timer:
                self.views = load_views(self.config.views_file)
            self.logger.info("Loaded %d cameras", self.views.ncams)

            with Timer("Mesh loading", self.logger) as mesh_timer:
                self.texturing.load_from_meshing(self.config.input_mesh,
                                                 self.config.visibilities_file)
                if self.config.replacement_mesh:
                    self.texturing.replace_mesh(self.config.replacement_mesh,
                                                self.config.flip_normals)

        stats = TimingStats("Loading", timer.elapsed)
        stats.add_substep("Views loading", views_timer.elapsed)
        stats.add_substep("Mesh loading", mesh_timer.elapsed)
        self.timing_stats.append(stats)

    def _unwrap(self):
        """Generate UVs unless the mesh already has them."""
        if self.texturing.has_uvs:
            self.logger.info("")
            self.logger.info("Mesh already has UV coordinates, skipping unwrap")
            return

        self._stage_header("STAGE 2: UNWRAP")

        method = self.config.method
        with Timer(f"Unwrap ({method})", self.logger) as timer:
            atlases = None
            if method == UnwrapMethod.BASIC:
                if self.config.chart_layout is None:
                    raise ValueError("Basic unwrapping requires a chart layout")
                atlases = load_chart_layout(self.config.chart_layout)
            self.texturing.unwrap(self.views, method, atlases)

        self.timing_stats.append(TimingStats(f"Unwrap ({method})", timer.elapsed))
        self.logger.info("Unwrapped into %d atlases", len(self.texturing.atlases))

    def _generate_textures(self) -> List[Path]:
        """Bake one texture per atlas."""
        self._stage_header("STAGE 3: TEXTURE GENERATION")

        image_cache = ImageCache(self.views, max_size=self.config.image_cache_size)
        with Timer("Texture generation", self.logger) as timer:
            try:
                textures = self.texturing.generate_textures(
                    self.views, self.config.output_dir, self.config.file_type, image_cache
                )
            finally:
                image_cache.clear()

        self.timing_stats.append(TimingStats("Texture generation", timer.elapsed))
        return textures

    def _export(self) -> List[Path]:
        """Write the textured mesh."""
        self._stage_header("STAGE 4: EXPORT")

        with Timer("OBJ export", self.logger) as timer:
            obj_path, mtl_path = self.texturing.save_as_obj(
                self.config.output_dir, self.config.output_basename, self.config.file_type
            )

        self.timing_stats.append(TimingStats("OBJ export", timer.elapsed))
        return [obj_path, mtl_path]

    def _print_summary(self, start_time: float, output_files: List[Path]):
        """Print performance summary."""
        total_time = time.time() - start_time

        self.logger.info("")
        self.logger.info("="*70)
        self.logger.info("PIPELINE COMPLETE in %.1fs", total_time)
        self.logger.info("="*70)
        self.logger.info("")

        if self.timing_stats:
            self.logger.info("TIMING BREAKDOWN:")
            for stat in self.timing_stats:
                self.logger.info(stat.format_tree(total_time))
            self.logger.info("")
            self.logger.info("Total: %.1fs", total_time)
            self.logger.info("")

        self.logger.info("OUTPUT FILES:")
        for f in output_files:
            size_mb = f.stat().st_size / 1e6
            self.logger.info("  %s (%.1f MB)", f.name, size_mb)

        self.logger.info("")
        self.logger.info("="*70)
