"""
Spatial algebra for rigid body dynamics.

This module provides JAX implementations of:
- SO(3) rotations (so3 module)
- SE(3) rigid body transforms and spatial vector transforms (se3 module)
- Spatial cross products, spatial inertias and Newton-Euler (spatial module)

All functions are pure and stateless.
"""

from . import so3
from . import se3
from . import spatial
from .spatial import SpatialInertia

__all__ = [
    "so3",
    "se3",
    "spatial",
    "SpatialInertia",
]
