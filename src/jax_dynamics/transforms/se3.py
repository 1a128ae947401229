"""SE(3) rigid body transforms and their action on spatial vectors.

Transforms are 4x4 homogeneous matrices. A transform ``T_a_b`` maps
coordinates expressed in frame ``b`` into frame ``a``. Spatial vectors are
6-vectors ordered ``[angular; linear]``; :func:`adjoint` maps motion vectors
(twists, accelerations) and :func:`force_adjoint` maps force vectors
(wrenches) between frames.
"""


import jax
import jax.numpy as jnp

from . import so3

Array = jax.Array


def from_position_and_rotation(p: Array, R: Array) -> Array:
    """
    Construct SE(3) transform from position and rotation.

    Args:
        p: (..., 3) position vector
        R: (..., 3, 3) rotation matrix

    Returns:
        (..., 4, 4) homogeneous transformation matrix
    """
    p = jnp.asarray(p)
    R = jnp.asarray(R)
    batch_shape = jnp.broadcast_shapes(p.shape[:-1], R.shape[:-2])
    dtype = jnp.result_type(p, R, jnp.float64)
    p = jnp.broadcast_to(p, batch_shape + (3,)).astype(dtype)
    R = jnp.broadcast_to(R, batch_shape + (3, 3)).astype(dtype)

    T = jnp.zeros(batch_shape + (4, 4), dtype=dtype)
    T = T.at[..., :3, :3].set(R)
    T = T.at[..., :3, 3].set(p)
    T = T.at[..., 3, 3].set(1.0)

    return T


def identity() -> Array:
    """The identity transform."""
    return jnp.eye(4, dtype=jnp.float64)


def from_translation(p: Array) -> Array:
    """Pure translation by ``p``."""
    return from_position_and_rotation(jnp.asarray(p, dtype=jnp.float64), jnp.eye(3))


def multiply(T1: Array, T2: Array) -> Array:
    """Compose transforms: ``multiply(T_a_b, T_b_c) = T_a_c``."""
    return jnp.matmul(T1, T2)


def inverse(T: Array) -> Array:
    """
    Compute inverse of SE(3) transformation matrix.

    Uses the block structure for efficient computation:
    T^-1 = [[R^T, -R^T @ t], [0, 1]]

    Args:
        T: (..., 4, 4) transformation matrix

    Returns:
        (..., 4, 4) inverse transformation matrix
    """
    R = T[..., :3, :3]
    t = T[..., :3, 3]

    R_inv = jnp.swapaxes(R, -1, -2)
    t_inv = -jnp.einsum("...ij,...j->...i", R_inv, t)

    return from_position_and_rotation(t_inv, R_inv)


def apply(T: Array, points: Array) -> Array:
    """
    Apply SE(3) transformation to points.

    Args:
        T: (..., 4, 4) transformation matrix
        points: (..., 3) points to transform

    Returns:
        (..., 3) transformed points
    """
    return jnp.einsum("...ij,...j->...i", T[..., :3, :3], points) + T[..., :3, 3]


def get_position(T: Array) -> Array:
    return T[..., :3, 3]


def get_rotation(T: Array) -> Array:
    return T[..., :3, :3]


def adjoint(T: Array) -> Array:
    """
    Compute the adjoint matrix of an SE(3) transformation.

    The adjoint maps motion vectors ``[angular; linear]`` expressed in the
    source frame of ``T`` into its target frame:
    ``[[R, 0], [[t]_x R, R]]``.

    Args:
        T: (..., 4, 4) transformation matrix

    Returns:
        (..., 6, 6) adjoint matrix
    """
    R = T[..., :3, :3]
    t = T[..., :3, 3]

    t_skew = so3.skew_symmetric(t)
    zeros = jnp.zeros_like(R)

    top = jnp.concatenate([R, zeros], axis=-1)
    bottom = jnp.concatenate([jnp.matmul(t_skew, R), R], axis=-1)

    return jnp.concatenate([top, bottom], axis=-2)


def force_adjoint(T: Array) -> Array:
    """
    Compute the dual adjoint used to transform wrenches ``[torque; force]``.

    This is the inverse transpose of :func:`adjoint`:
    ``[[R, [t]_x R], [0, R]]``. Power ``twist . wrench`` is invariant under a
    simultaneous change of frame.

    Args:
        T: (..., 4, 4) transformation matrix

    Returns:
        (..., 6, 6) force transformation matrix
    """
    R = T[..., :3, :3]
    t = T[..., :3, 3]

    t_skew = so3.skew_symmetric(t)
    zeros = jnp.zeros_like(R)

    top = jnp.concatenate([R, jnp.matmul(t_skew, R)], axis=-1)
    bottom = jnp.concatenate([zeros, R], axis=-1)

    return jnp.concatenate([top, bottom], axis=-2)
