"""I/O utilities for loading mechanisms from robot description files.

This module provides functions for parsing standard robotics file formats
and converting them to Mechanism trees.
"""

from .urdf_parser import load_urdf, parse_urdf

__all__ = ["load_urdf", "parse_urdf"]
