"""Core data structures for JAX Dynamics.

This module provides the mechanism topology (bodies, joints and the tree
connecting them), the joint types, and the mutable MechanismState that caches
derived spatial quantities.
"""

from .joints import Fixed, JointType, Prismatic, QuaternionFloating, Revolute
from .mechanism import (
    DEFAULT_GRAVITY,
    BodyLike,
    Joint,
    JointLike,
    Mechanism,
    RigidBody,
    TreePath,
    remove_fixed_joints,
)
from .state import MechanismState

__all__ = [
    "DEFAULT_GRAVITY",
    "BodyLike",
    "Fixed",
    "Joint",
    "JointLike",
    "JointType",
    "Mechanism",
    "MechanismState",
    "Prismatic",
    "QuaternionFloating",
    "Revolute",
    "RigidBody",
    "TreePath",
    "remove_fixed_joints",
]
