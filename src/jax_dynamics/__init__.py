"""
JAX Dynamics: rigid body dynamics of articulated mechanisms.

This library computes body poses and twists, the joint-space mass matrix,
inverse dynamics (recursive Newton-Euler) and forward dynamics for kinematic
trees, using spatial vector algebra on JAX arrays.
"""

import jax
jax.config.update("jax_enable_x64", True)

from . import transforms
from . import core
from . import io
from .core import (
    Fixed,
    Joint,
    Mechanism,
    MechanismState,
    Prismatic,
    QuaternionFloating,
    Revolute,
    RigidBody,
    remove_fixed_joints,
)
from .chain import (
    center_of_mass,
    forward_kinematics,
    geometric_jacobian,
    relative_acceleration,
    transform_point,
)
from .dynamics import (
    dynamics,
    dynamics_vector,
    inverse_dynamics,
    kinetic_energy,
    mass_matrix,
    momentum_matrix,
    potential_energy,
)
from .exceptions import (
    DimensionMismatchError,
    DuplicateNameError,
    MechanismError,
    SingularMassMatrixError,
    UnknownEntityError,
    ZeroMassError,
)
from .io import load_urdf, parse_urdf

__version__ = "0.1.0"
__all__ = [
    "transforms", "core", "io",
    "Fixed", "Joint", "Mechanism", "MechanismState", "Prismatic",
    "QuaternionFloating", "Revolute", "RigidBody", "remove_fixed_joints",
    "center_of_mass", "forward_kinematics", "geometric_jacobian",
    "relative_acceleration", "transform_point",
    "dynamics", "dynamics_vector", "inverse_dynamics", "kinetic_energy",
    "mass_matrix", "momentum_matrix", "potential_energy",
    "DimensionMismatchError", "DuplicateNameError", "MechanismError",
    "SingularMassMatrixError", "UnknownEntityError", "ZeroMassError",
    "load_urdf", "parse_urdf",
]
