"""Spatial vector algebra: cross products, spatial inertia, Newton-Euler.

Spatial vectors are 6-vectors ordered ``[angular; linear]``. Motion vectors
(twists, spatial accelerations, motion subspace columns) and force vectors
(wrenches) transform with :func:`se3.adjoint` and :func:`se3.force_adjoint`
respectively. Spatial inertias are 6x6 symmetric matrices acting on motion
vectors and producing force vectors.
"""

import jax
import jax.numpy as jnp
from flax import struct

from . import se3, so3

Array = jax.Array


def motion_cross_matrix(v: Array) -> Array:
    """
    Matrix form of ``v x`` acting on motion vectors.

    ``[[w]_x, 0], [[u]_x, [w]_x]]`` for ``v = [w; u]``.
    """
    w_skew = so3.skew_symmetric(v[..., :3])
    u_skew = so3.skew_symmetric(v[..., 3:])
    zeros = jnp.zeros_like(w_skew)
    top = jnp.concatenate([w_skew, zeros], axis=-1)
    bottom = jnp.concatenate([u_skew, w_skew], axis=-1)
    return jnp.concatenate([top, bottom], axis=-2)


def force_cross_matrix(v: Array) -> Array:
    """Matrix form of ``v x*`` acting on force vectors (``-motion_cross_matrix(v)^T``)."""
    return -jnp.swapaxes(motion_cross_matrix(v), -1, -2)


def cross(v1: Array, v2: Array) -> Array:
    """Spatial motion cross product ``v1 x v2``. ``v2`` may be a 6xN matrix."""
    return motion_cross_matrix(v1) @ v2


def transform_inertia(inertia: Array, T: Array) -> Array:
    """
    Re-express a 6x6 spatial inertia given in the source frame of ``T`` in its
    target frame: ``X^-T I X^-1`` with ``X = adjoint(T)``.
    """
    X_inv = se3.adjoint(se3.inverse(T))
    return jnp.swapaxes(X_inv, -1, -2) @ inertia @ X_inv


def newton_euler(inertia: Array, acceleration: Array, twist: Array) -> Array:
    """
    Net wrench on a rigid body: ``I a + v x* (I v)``.

    All three arguments must be expressed in the same frame. ``acceleration``
    is the spatial acceleration (including bias terms), ``twist`` the body's
    spatial velocity.
    """
    return inertia @ acceleration + force_cross_matrix(twist) @ (inertia @ twist)


def kinetic_energy(inertia: Array, twist: Array) -> Array:
    """Kinetic energy ``1/2 v' I v`` of a body with the given inertia and twist."""
    return 0.5 * twist @ (inertia @ twist)


def joint_torque(motion_subspace: Array, wrench: Array) -> Array:
    """Project a joint wrench onto the joint's motion subspace: ``S' w``."""
    return motion_subspace.T @ wrench


@struct.dataclass
class SpatialInertia:
    """Mass distribution of a rigid body, expressed in a body-fixed frame.

    Attributes:
        moment: (3, 3) moment of inertia about the frame origin.
        cross_part: (3,) mass times the center of mass position.
        mass: scalar mass.
    """
    moment: Array
    cross_part: Array
    mass: Array

    @classmethod
    def zero(cls) -> "SpatialInertia":
        return cls(jnp.zeros((3, 3)), jnp.zeros(3), jnp.asarray(0.0))

    @classmethod
    def from_com(cls, mass, com=None, inertia_com=None, rotation=None) -> "SpatialInertia":
        """Build from a rotational inertia about the center of mass.

        Args:
            mass: body mass.
            com: (3,) center of mass position in the body frame.
            inertia_com: (3, 3) rotational inertia about the center of mass,
                expressed in a frame rotated by ``rotation`` w.r.t. the body
                frame (URDF ``<inertial><origin rpy=...>``).
            rotation: (3, 3) rotation of the inertia frame, identity if omitted.
        """
        mass = jnp.asarray(mass, dtype=jnp.float64)
        com = jnp.zeros(3) if com is None else jnp.asarray(com, dtype=jnp.float64)
        inertia_com = jnp.zeros((3, 3)) if inertia_com is None else jnp.asarray(inertia_com, dtype=jnp.float64)
        if rotation is not None:
            inertia_com = rotation @ inertia_com @ rotation.T
        c_skew = so3.skew_symmetric(com)
        # parallel axis theorem
        moment = inertia_com - mass * c_skew @ c_skew
        return cls(moment, mass * com, mass)

    @classmethod
    def from_matrix(cls, matrix: Array) -> "SpatialInertia":
        return cls(matrix[:3, :3], so3.unskew(matrix[:3, 3:]), matrix[3, 3])

    def to_matrix(self) -> Array:
        """6x6 matrix ``[[J, [mc]_x], [[mc]_x^T, m 1]]``."""
        c_skew = so3.skew_symmetric(jnp.asarray(self.cross_part, dtype=jnp.float64))
        moment = jnp.asarray(self.moment, dtype=jnp.float64)
        top = jnp.concatenate([moment, c_skew], axis=-1)
        bottom = jnp.concatenate([c_skew.T, self.mass * jnp.eye(3)], axis=-1)
        return jnp.concatenate([top, bottom], axis=-2)

    @property
    def center_of_mass(self) -> Array:
        return jnp.where(self.mass > 0, self.cross_part / jnp.where(self.mass > 0, self.mass, 1.0), 0.0)

    def transform(self, T: Array) -> "SpatialInertia":
        """The same inertia expressed in the target frame of ``T``."""
        return SpatialInertia.from_matrix(transform_inertia(self.to_matrix(), T))

    def __add__(self, other: "SpatialInertia") -> "SpatialInertia":
        return SpatialInertia(self.moment + other.moment,
                              self.cross_part + other.cross_part,
                              self.mass + other.mass)
