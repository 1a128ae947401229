"""Dynamics algorithms: energies, mass matrix, inverse and forward dynamics.

Implements the composite rigid body algorithm for the joint-space mass matrix
and the recursive Newton-Euler algorithm for inverse dynamics, both over the
root-frame quantities cached in a :class:`MechanismState`. Forward dynamics
combines the two and solves for joint accelerations with a Cholesky
factorization.
"""

import logging
from typing import Dict, Mapping, Optional, Tuple, Union

import jax.numpy as jnp
import jax.scipy.linalg
from jax import Array

from .chain import mass_moment, velocity_vector
from .core import BodyLike, MechanismState
from .exceptions import DimensionMismatchError, SingularMassMatrixError
from .transforms import se3, spatial

logger = logging.getLogger(__name__)

VelocityLike = Optional[Union[Array, Mapping[str, Array]]]
WrenchMap = Optional[Mapping[str, Array]]


def kinetic_energy(state: MechanismState, body: Optional[BodyLike] = None) -> Array:
    """Kinetic energy of one body, or of the whole mechanism if ``body`` is None."""
    if body is not None:
        return spatial.kinetic_energy(state.spatial_inertia(body), state.twist_wrt_world(body))
    inertias = state.spatial_inertias()
    twists = state.twists()
    total = jnp.asarray(0.0)
    for i in range(1, state.mechanism.num_bodies):
        total = total + spatial.kinetic_energy(inertias[i], twists[i])
    return total


def potential_energy(state: MechanismState) -> Array:
    """Gravitational potential energy, zero at the root frame origin.

    A mechanism without mass has zero potential energy.
    """
    _, weighted = mass_moment(state)
    return -jnp.dot(state.mechanism.gravity, weighted)


def mass_matrix(state: MechanismState) -> Array:
    """Joint-space mass matrix via the composite rigid body algorithm.

    For the joint ``i`` feeding each body, ``F = crb(i) S_i`` is projected
    onto ``S_i`` and onto the motion subspace of every ancestor joint. Only
    blocks at or above the diagonal are computed; the lower triangle is
    mirrored from the upper one, so the result is exactly symmetric. Joints
    without velocity coordinates contribute nothing.

    Returns:
        (num_velocities, num_velocities) symmetric matrix
    """
    mechanism = state.mechanism
    subspaces = state.motion_subspaces()
    crb = state.crb_inertias()
    moving = [k for k, joint in enumerate(mechanism.joints) if joint.num_velocities > 0]
    if not moving:
        return jnp.zeros((0, 0))

    blocks = {}
    for k in moving:
        body = k + 1
        F = crb[body] @ subspaces[k]
        blocks[k, k] = subspaces[k].T @ F
        for ancestor in mechanism.ancestor_indices(body)[:-1]:
            j = ancestor - 1
            if mechanism.joints[j].num_velocities > 0:
                # ancestors precede descendants, so (j, k) lies above the diagonal
                blocks[j, k] = subspaces[j].T @ F

    def block(j, k):
        if (j, k) in blocks:
            return blocks[j, k]
        return jnp.zeros((mechanism.joints[j].num_velocities, mechanism.joints[k].num_velocities))

    H = jnp.block([[block(j, k) for k in moving] for j in moving])
    return jnp.triu(H) + jnp.triu(H, 1).T


def momentum_matrix(state: MechanismState) -> Array:
    """Matrix ``A`` such that ``A v`` is the total spatial momentum in the root frame.

    Returns:
        6 x num_velocities matrix ``[crb(i) S_i]``
    """
    subspaces = state.motion_subspaces()
    crb = state.crb_inertias()
    columns = [crb[k + 1] @ S for k, S in enumerate(subspaces)]
    return jnp.concatenate(columns + [jnp.zeros((6, 0))], axis=1)


def _checked_external_wrenches(state: MechanismState, external_wrenches: WrenchMap) -> Dict[int, Array]:
    """Body-frame external wrenches keyed by body index, after checking names and lengths."""
    checked = {}
    for name, wrench in (external_wrenches or {}).items():
        wrench = jnp.asarray(wrench, dtype=jnp.float64)
        if wrench.shape != (6,):
            raise DimensionMismatchError(f"external wrench on body '{name}'", 6, wrench.size)
        checked[state.mechanism.body_index(name)] = wrench
    return checked


def _external_wrenches_in_root(state: MechanismState, external_wrenches: WrenchMap) -> Dict[int, Array]:
    """Validate external wrenches and re-express them in the root frame, keyed by body index."""
    checked = _checked_external_wrenches(state, external_wrenches)
    if not checked:
        return {}
    transforms = state.transforms_to_root()
    return {index: se3.force_adjoint(transforms[index]) @ wrench for index, wrench in checked.items()}


def inverse_dynamics(state: MechanismState, v_dot: VelocityLike = None,
                     external_wrenches: WrenchMap = None) -> Array:
    """Joint torques producing ``v_dot`` via the recursive Newton-Euler algorithm.

    Args:
        state: MechanismState holding the current configuration and velocity
        v_dot: Joint accelerations, flat (num_velocities,) or keyed by joint
               name. Zero if omitted.
        external_wrenches: Body name -> (6,) wrench ``[torque; force]``
                           applied to that body, expressed in the body frame.

    Returns:
        (num_velocities,) joint torques, laid out like the velocity vector
    """
    v_dot = velocity_vector(state, v_dot, "joint accelerations")
    wrenches_ext = _external_wrenches_in_root(state, external_wrenches)

    mechanism = state.mechanism
    parents = mechanism.parent_indices
    subspaces = state.motion_subspaces()
    inertias = state.spatial_inertias()
    twists = state.twists()
    biases = state.bias_accelerations()

    # Gravity enters as a fictitious upward acceleration of the root
    accels = [jnp.concatenate([jnp.zeros(3), -mechanism.gravity])]
    for k, S in enumerate(subspaces):
        accels.append(accels[parents[k + 1]] + S @ v_dot[state.v_range_at(k)])

    joint_wrenches = [jnp.zeros(6)]
    for i in range(1, mechanism.num_bodies):
        wrench = spatial.newton_euler(inertias[i], accels[i] + biases[i], twists[i])
        if i in wrenches_ext:
            wrench = wrench - wrenches_ext[i]
        joint_wrenches.append(wrench)

    torques = [None] * len(subspaces)
    for i in range(mechanism.num_bodies - 1, 0, -1):
        k = i - 1
        torques[k] = spatial.joint_torque(subspaces[k], joint_wrenches[i])
        parent = parents[i]
        if parent != 0:
            # action = -reaction
            joint_wrenches[parent] = joint_wrenches[parent] + joint_wrenches[i]
    # joints are in velocity-vector order
    return jnp.concatenate(torques + [jnp.zeros(0)])


def dynamics(state: MechanismState, torques: VelocityLike = None,
             external_wrenches: WrenchMap = None) -> Tuple[Array, Array]:
    """Forward dynamics.

    Solves ``M(q) v_dot = tau - c(q, v)`` where ``c`` is the torque needed
    for zero acceleration under the current velocity, gravity and external
    wrenches.

    Args:
        state: MechanismState holding the current configuration and velocity
        torques: Applied joint torques, flat or keyed by joint name. Zero if omitted.
        external_wrenches: As in :func:`inverse_dynamics`.

    Returns:
        Tuple ``(q_dot, v_dot)``

    Raises:
        SingularMassMatrixError: if the mass matrix is not positive definite.
    """
    torques = velocity_vector(state, torques, "joint torques")
    _checked_external_wrenches(state, external_wrenches)
    q_dot = state.configuration_derivative()
    if state.num_velocities == 0:
        return q_dot, jnp.zeros(0)

    c = inverse_dynamics(state, external_wrenches=external_wrenches)
    M = mass_matrix(state)
    factor, lower = jax.scipy.linalg.cho_factor(M)
    if not bool(jnp.all(jnp.isfinite(factor)) & jnp.all(jnp.diag(factor) > 0)):
        logger.warning("Cholesky factorization of the %dx%d mass matrix failed", M.shape[0], M.shape[1])
        raise SingularMassMatrixError("Mass matrix is singular or not positive definite")
    v_dot = jax.scipy.linalg.cho_solve((factor, lower), torques - c)
    return q_dot, v_dot


def dynamics_vector(state_vector: Array, state: MechanismState, torques: VelocityLike = None,
                    external_wrenches: WrenchMap = None) -> Array:
    """Flat-vector form of :func:`dynamics` for ODE integrators.

    Loads ``state_vector = [q; v]`` into the preallocated ``state`` and
    returns ``[q_dot; v_dot]``.
    """
    state.set_state_vector(state_vector)
    q_dot, v_dot = dynamics(state, torques=torques, external_wrenches=external_wrenches)
    return jnp.concatenate([q_dot, v_dot])
