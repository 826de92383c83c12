"""Shared helpers for the texturing pipeline."""
