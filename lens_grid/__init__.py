"""Lens similarity grid: spatial binning, normalization and map helpers."""

__version__ = "0.1.0"
