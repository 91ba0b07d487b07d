"""Flat Viewer: normalization, commit metadata and ad-hoc queries for flat data files."""

__version__ = "0.1.0"
