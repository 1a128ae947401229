"""Joint types: what a joint's configuration and velocity coordinates mean.

Each joint type maps its configuration vector ``q`` to a transform from the
frame after the joint to the frame before it, exposes its motion subspace in
the frame after the joint, and maps velocities to configuration derivatives.
Spatial vectors follow the ``[angular; linear]`` convention of
:mod:`jax_dynamics.transforms.spatial`.
"""

from typing import Tuple

import jax
import jax.numpy as jnp
from flax import struct
from jax import Array

from ..transforms import se3, so3


def _unit(axis) -> Tuple[float, float, float]:
    axis = jnp.asarray(axis, dtype=jnp.float64)
    norm = jnp.linalg.norm(axis)
    if norm == 0:
        raise ValueError("Joint axis must be non-zero")
    return tuple(float(a) for a in axis / norm)


@struct.dataclass
class JointType:
    """Interface shared by all joint types."""

    @property
    def num_positions(self) -> int:
        raise NotImplementedError

    @property
    def num_velocities(self) -> int:
        raise NotImplementedError

    def joint_transform(self, q: Array) -> Array:
        """4x4 transform from the frame after the joint to the frame before it."""
        raise NotImplementedError

    def motion_subspace(self) -> Array:
        """6 x num_velocities motion subspace, expressed in the frame after the joint."""
        raise NotImplementedError

    def velocity_to_configuration_derivative(self, q: Array, v: Array) -> Array:
        return v

    def zero_configuration(self) -> Array:
        return jnp.zeros(self.num_positions)

    def rand_configuration(self, key: Array) -> Array:
        return jax.random.uniform(key, (self.num_positions,), minval=-jnp.pi, maxval=jnp.pi)


@struct.dataclass
class Revolute(JointType):
    """Rotation about a fixed unit axis; one configuration and velocity coordinate."""
    axis: Tuple[float, float, float] = struct.field(pytree_node=False)

    @classmethod
    def create(cls, axis) -> "Revolute":
        return cls(_unit(axis))

    @property
    def num_positions(self) -> int:
        return 1

    @property
    def num_velocities(self) -> int:
        return 1

    def joint_transform(self, q: Array) -> Array:
        R = so3.exp(jnp.asarray(self.axis) * q[0])
        return se3.from_position_and_rotation(jnp.zeros(3), R)

    def motion_subspace(self) -> Array:
        return jnp.concatenate([jnp.asarray(self.axis), jnp.zeros(3)])[:, None]


@struct.dataclass
class Prismatic(JointType):
    """Translation along a fixed unit axis; one configuration and velocity coordinate."""
    axis: Tuple[float, float, float] = struct.field(pytree_node=False)

    @classmethod
    def create(cls, axis) -> "Prismatic":
        return cls(_unit(axis))

    @property
    def num_positions(self) -> int:
        return 1

    @property
    def num_velocities(self) -> int:
        return 1

    def joint_transform(self, q: Array) -> Array:
        return se3.from_translation(jnp.asarray(self.axis) * q[0])

    def motion_subspace(self) -> Array:
        return jnp.concatenate([jnp.zeros(3), jnp.asarray(self.axis)])[:, None]

    def rand_configuration(self, key: Array) -> Array:
        return jax.random.uniform(key, (1,), minval=-1.0, maxval=1.0)


@struct.dataclass
class QuaternionFloating(JointType):
    """Unconstrained 6-DOF joint.

    Configuration is ``[w, x, y, z, px, py, pz]``: the orientation quaternion
    and position of the frame after the joint in the frame before it.
    Velocity is the twist of the frame after the joint with respect to the
    frame before it, expressed in the frame after: ``[omega; v]``.
    """

    @property
    def num_positions(self) -> int:
        return 7

    @property
    def num_velocities(self) -> int:
        return 6

    def joint_transform(self, q: Array) -> Array:
        return se3.from_position_and_rotation(q[4:], so3.from_quaternion(q[:4]))

    def motion_subspace(self) -> Array:
        return jnp.eye(6)

    def velocity_to_configuration_derivative(self, q: Array, v: Array) -> Array:
        quat = q[:4]
        omega_quat = jnp.concatenate([jnp.zeros(1), v[:3]])
        quat_dot = 0.5 * so3.quaternion_multiply(quat, omega_quat)
        position_dot = so3.from_quaternion(quat) @ v[3:]
        return jnp.concatenate([quat_dot, position_dot])

    def zero_configuration(self) -> Array:
        return jnp.array([1.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0])

    def rand_configuration(self, key: Array) -> Array:
        quat_key, position_key = jax.random.split(key)
        quat = jax.random.normal(quat_key, (4,))
        quat = quat / jnp.linalg.norm(quat)
        position = jax.random.uniform(position_key, (3,), minval=-1.0, maxval=1.0)
        return jnp.concatenate([quat, position])


@struct.dataclass
class Fixed(JointType):
    """Rigid attachment; no configuration or velocity coordinates."""

    @property
    def num_positions(self) -> int:
        return 0

    @property
    def num_velocities(self) -> int:
        return 0

    def joint_transform(self, q: Array) -> Array:
        return se3.identity()

    def motion_subspace(self) -> Array:
        return jnp.zeros((6, 0))
