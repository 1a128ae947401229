"""SO(3) and so(3) operations in JAX.

This module implements the rotation primitives used by the joint types and the
URDF loader: Rodrigues' formula, skew-symmetric matrices, quaternions and
roll-pitch-yaw angles. All functions are pure and operate on JAX arrays.
"""

import jax
import jax.numpy as jnp

Array = jax.Array


def exp(log_r: Array) -> Array:
    """
    SO(3) exponential map: convert axis-angle vector to rotation matrix.

    Implements Rodrigues' formula to convert a 3D axis-angle vector (so(3))
    to a rotation matrix (SO(3)). This is what a revolute joint applies to
    its axis scaled by the joint angle.

    Args:
        log_r: (..., 3) array of axis-angle vectors

    Returns:
        (..., 3, 3) array of rotation matrices
    """
    log_r = jnp.asarray(log_r, dtype=jnp.result_type(log_r, jnp.float64))
    angle = jnp.linalg.norm(log_r, axis=-1, keepdims=True)
    angle_sq = angle * angle

    # Taylor expansion near zero, full Rodrigues formula elsewhere
    small_angle = angle < 1e-6
    safe_angle = jnp.where(small_angle, 1.0, angle)

    # A = sin(θ) / θ,  B = (1 - cos(θ)) / θ²
    A = jnp.where(small_angle, 1.0 - angle_sq / 6.0, jnp.sin(safe_angle) / safe_angle)
    B = jnp.where(small_angle, 0.5 - angle_sq / 24.0, (1.0 - jnp.cos(safe_angle)) / (safe_angle * safe_angle))

    K = skew_symmetric(log_r)

    # R = I + A * K + B * K²
    I = jnp.eye(3, dtype=log_r.dtype)
    I = jnp.broadcast_to(I, log_r.shape[:-1] + (3, 3))

    R = (I +
         A[..., None] * K +
         B[..., None] * jnp.matmul(K, K))

    return R


def skew_symmetric(v: Array) -> Array:
    """
    Convert 3D vector to skew-symmetric matrix, so that skew(a) @ b = a x b.

    Args:
        v: (..., 3) vector

    Returns:
        (..., 3, 3) skew-symmetric matrix
    """
    zeros = jnp.zeros(v.shape[:-1], dtype=v.dtype)

    return jnp.stack([
        jnp.stack([zeros, -v[..., 2], v[..., 1]], axis=-1),
        jnp.stack([v[..., 2], zeros, -v[..., 0]], axis=-1),
        jnp.stack([-v[..., 1], v[..., 0], zeros], axis=-1)
    ], axis=-2)


def unskew(S: Array) -> Array:
    """Inverse of :func:`skew_symmetric` (reads the lower triangle)."""
    return jnp.stack([S[..., 2, 1], S[..., 0, 2], S[..., 1, 0]], axis=-1)


def from_quaternion(quaternions: Array) -> Array:
    """
    Convert quaternions to rotation matrices.

    Args:
        quaternions: (..., 4) array of quaternions in (w, x, y, z) format

    Returns:
        (..., 3, 3) array of rotation matrices
    """
    # Normalize quaternions for numerical stability
    quaternions = quaternions / jnp.linalg.norm(quaternions, axis=-1, keepdims=True)

    w, x, y, z = jnp.moveaxis(quaternions, -1, 0)

    xx, yy, zz = x*x, y*y, z*z
    wx, wy, wz = w*x, w*y, w*z
    xy, xz, yz = x*y, x*z, y*z

    matrix = jnp.stack([
        jnp.stack([1 - 2*(yy + zz), 2*(xy - wz), 2*(xz + wy)], axis=-1),
        jnp.stack([2*(xy + wz), 1 - 2*(xx + zz), 2*(yz - wx)], axis=-1),
        jnp.stack([2*(xz - wy), 2*(yz + wx), 1 - 2*(xx + yy)], axis=-1)
    ], axis=-2)

    return matrix


def quaternion_multiply(q1: Array, q2: Array) -> Array:
    """Hamilton product of two (w, x, y, z) quaternions."""
    w1, x1, y1, z1 = jnp.moveaxis(q1, -1, 0)
    w2, x2, y2, z2 = jnp.moveaxis(q2, -1, 0)
    return jnp.stack([
        w1*w2 - x1*x2 - y1*y2 - z1*z2,
        w1*x2 + x1*w2 + y1*z2 - z1*y2,
        w1*y2 - x1*z2 + y1*w2 + z1*x2,
        w1*z2 + x1*y2 - y1*x2 + z1*w2,
    ], axis=-1)


def from_rpy(rpy: Array) -> Array:
    """
    Convert roll-pitch-yaw angles to a rotation matrix.

    Uses the URDF convention R = R_z(yaw) @ R_y(pitch) @ R_x(roll).

    Args:
        rpy: (3,) array of [roll, pitch, yaw] angles in radians.

    Returns:
        (3, 3) rotation matrix.
    """
    rpy = jnp.asarray(rpy, dtype=jnp.float64)
    R_x = exp(jnp.array([1.0, 0.0, 0.0]) * rpy[0])
    R_y = exp(jnp.array([0.0, 1.0, 0.0]) * rpy[1])
    R_z = exp(jnp.array([0.0, 0.0, 1.0]) * rpy[2])
    return R_z @ R_y @ R_x
