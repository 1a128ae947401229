"""Kinematic queries on a MechanismState.

Body poses, relative twists and accelerations, geometric Jacobians along tree
paths and the center of mass. Every quantity is read from the state's cache;
spatial vectors are returned in the root frame.
"""

from typing import Dict, Iterable, Mapping, Optional, Tuple, Union

import jax.numpy as jnp
from jax import Array

from .core import BodyLike, MechanismState, TreePath
from .exceptions import DimensionMismatchError, ZeroMassError
from .transforms import se3


def forward_kinematics(state: MechanismState) -> Dict[str, Array]:
    """Pose of every body in the root frame.

    Args:
        state: MechanismState holding the current configuration

    Returns:
        Dictionary mapping body names to their 4x4 SE(3) world poses
    """
    transforms = state.transforms_to_root()
    return {body.name: transforms[i] for i, body in enumerate(state.mechanism.bodies)}


def transform_point(state: MechanismState, point: Array, from_frame: str, to_frame: str) -> Array:
    """Re-express a point given in ``from_frame`` in ``to_frame``."""
    point = jnp.asarray(point, dtype=jnp.float64)
    if from_frame == to_frame:
        return point
    return se3.apply(state.relative_transform(from_frame, to_frame), point)


def geometric_jacobian(state: MechanismState, path: TreePath) -> Array:
    """Geometric Jacobian of the joints along ``path``.

    Columns are the root-frame motion subspaces of the path's joints, negated
    for joints traversed child to parent. Multiplying by the stacked joint
    velocities along the path gives the twist of the path's target with
    respect to its source.

    Returns:
        6 x (sum of the path joints' velocity counts) matrix
    """
    subspaces = state.motion_subspaces()
    columns = [direction * subspaces[k] for k, direction in zip(path.joint_indices, path.directions)]
    return jnp.concatenate(columns + [jnp.zeros((6, 0))], axis=1)


def path_velocity(state: MechanismState, path: TreePath, vector: Array) -> Array:
    """Entries of a full velocity-space vector belonging to the joints of ``path``."""
    return jnp.concatenate([vector[state.v_range_at(k)] for k in path.joint_indices] + [jnp.zeros(0)])


def relative_acceleration(state: MechanismState, body: BodyLike, base: BodyLike,
                          v_dot: Union[Array, Mapping[str, Array]]) -> Array:
    """Spatial acceleration of ``body`` with respect to ``base`` for joint accelerations ``v_dot``.

    Args:
        state: MechanismState holding the current configuration and velocity
        body: Body whose acceleration is computed
        base: Reference body
        v_dot: Joint accelerations, flat (num_velocities,) or keyed by joint name

    Returns:
        (6,) spatial acceleration in the root frame
    """
    v_dot = velocity_vector(state, v_dot, "joint accelerations")
    path = state.mechanism.path(base, body)
    J = geometric_jacobian(state, path)
    bias = state.bias_acceleration(body) - state.bias_acceleration(base)
    return J @ path_velocity(state, path, v_dot) + bias


def velocity_vector(state: MechanismState, values: Optional[Union[Array, Mapping[str, Array]]],
                    what: str) -> Array:
    """Turn ``values`` into a flat velocity-space vector, checking its dimensions.

    ``None`` gives zeros; a mapping is keyed by joint name and missing joints
    get zeros.
    """
    nv = state.num_velocities
    if values is None:
        return jnp.zeros(nv)
    if isinstance(values, Mapping):
        vector = jnp.zeros(nv)
        for name, joint_values in values.items():
            v_range = state.v_range(name)
            joint_values = jnp.atleast_1d(jnp.asarray(joint_values, dtype=jnp.float64))
            if joint_values.shape != (v_range.stop - v_range.start,):
                raise DimensionMismatchError(f"{what} of joint '{name}'",
                                             v_range.stop - v_range.start, joint_values.size)
            vector = vector.at[v_range].set(joint_values)
        return vector
    vector = jnp.atleast_1d(jnp.asarray(values, dtype=jnp.float64))
    if vector.shape != (nv,):
        raise DimensionMismatchError(what, nv, vector.size)
    return vector


def mass_moment(state: MechanismState, bodies: Optional[Iterable[BodyLike]] = None) -> Tuple[Array, Array]:
    """Total mass of ``bodies`` and the sum of mass times center of mass, in the root frame.

    The root and bodies without inertia contribute nothing.
    """
    mechanism = state.mechanism
    indices = range(1, mechanism.num_bodies) if bodies is None else \
        [mechanism.body_index(body) for body in bodies]
    transforms = state.transforms_to_root()
    weighted = jnp.zeros(3)
    total_mass = jnp.asarray(0.0)
    for i in indices:
        inertia = mechanism.bodies[i].inertia
        if i == 0 or inertia is None:
            continue
        # R (m c) + m p
        weighted = weighted + se3.get_rotation(transforms[i]) @ inertia.cross_part \
            + inertia.mass * se3.get_position(transforms[i])
        total_mass = total_mass + inertia.mass
    return total_mass, weighted


def center_of_mass(state: MechanismState, bodies: Optional[Iterable[BodyLike]] = None) -> Array:
    """Center of mass of ``bodies`` (all non-root bodies by default) in the root frame.

    Raises:
        ZeroMassError: if the selected bodies have no mass.
    """
    total_mass, weighted = mass_moment(state, bodies)
    if not float(total_mass) > 0.0:
        raise ZeroMassError("Center of mass is undefined for bodies with zero total mass")
    return weighted / total_mass
