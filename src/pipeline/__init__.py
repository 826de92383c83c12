"""Texturing pipeline - Orchestrates mesh loading, unwrapping and texture baking."""

from .config import PipelineConfig
from .orchestrator import Pipeline

__all__ = ['PipelineConfig', 'Pipeline']
