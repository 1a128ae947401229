"""MechanismState: configuration, velocity and cached derived quantities.

A state is bound to one :class:`Mechanism`. It owns the configuration and
velocity vectors and lazily computes the spatial quantities the dynamics
algorithms need: transforms, twists, bias accelerations, motion subspaces,
spatial inertias and composite rigid body inertias. Derived quantities live
in dense arrays indexed like ``mechanism.bodies`` (or ``mechanism.joints``)
and are all expressed in the root frame.

Every mutation starts a new cache epoch. A category is recomputed for the
whole mechanism, once, on its first read after the epoch changed.
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

import jax
import jax.numpy as jnp
from jax import Array

from ..exceptions import DimensionMismatchError
from ..transforms import se3, spatial
from .mechanism import BodyLike, JointLike, Mechanism

logger = logging.getLogger(__name__)


def _ranges(sizes: Sequence[int]) -> Tuple[slice, ...]:
    ranges = []
    start = 0
    for size in sizes:
        ranges.append(slice(start, start + size))
        start += size
    return tuple(ranges)


def _stack(items: List[Array], shape: Tuple[int, ...]) -> Array:
    if not items:
        return jnp.zeros((0,) + shape)
    return jnp.stack(items)


class MechanismState:
    """Mutable state of a mechanism plus a cache of derived quantities.

    Not safe for concurrent mutation. Independent states over the same
    (immutable) mechanism may be used from different threads.
    """

    def __init__(self, mechanism: Mechanism):
        self.mechanism = mechanism
        joints = mechanism.joints
        self._q_ranges = _ranges([joint.num_positions for joint in joints])
        self._v_ranges = _ranges([joint.num_velocities for joint in joints])
        self._q = jnp.concatenate([joint.joint_type.zero_configuration() for joint in joints] + [jnp.zeros(0)])
        self._v = jnp.zeros(mechanism.num_velocities)

        self._epoch = 0
        self._computed_at: Dict[str, int] = {}
        self._transforms_to_parent: Optional[Array] = None
        self._transforms_to_root: Optional[Array] = None
        self._motion_subspaces: Optional[Tuple[Array, ...]] = None
        self._twists: Optional[Array] = None
        self._bias_accelerations: Optional[Array] = None
        self._spatial_inertias: Optional[Array] = None
        self._crb_inertias: Optional[Array] = None

    def __repr__(self) -> str:
        return (f"MechanismState(bodies={self.mechanism.num_bodies}, "
                f"nq={self.num_positions}, nv={self.num_velocities})")

    # Dimensions and coordinate layout

    @property
    def num_positions(self) -> int:
        return self._q.shape[0]

    @property
    def num_velocities(self) -> int:
        return self._v.shape[0]

    def q_range(self, joint: JointLike) -> slice:
        return self._q_ranges[self.mechanism.joint_index(joint)]

    def v_range(self, joint: JointLike) -> slice:
        return self._v_ranges[self.mechanism.joint_index(joint)]

    def v_range_at(self, joint_index: int) -> slice:
        return self._v_ranges[joint_index]

    # Configuration and velocity

    def configuration(self, joint: Optional[JointLike] = None) -> Array:
        if joint is None:
            return self._q
        return self._q[self.q_range(joint)]

    def velocity(self, joint: Optional[JointLike] = None) -> Array:
        if joint is None:
            return self._v
        return self._v[self.v_range(joint)]

    def state_vector(self) -> Array:
        """Concatenation ``[q; v]``."""
        return jnp.concatenate([self._q, self._v])

    def set_configuration(self, joint: JointLike, q) -> None:
        index = self.mechanism.joint_index(joint)
        q_range = self._q_ranges[index]
        q = self._checked(q, q_range.stop - q_range.start,
                          f"configuration of joint '{self.mechanism.joints[index].name}'")
        self._q = self._q.at[q_range].set(q)
        self._invalidate()

    def set_velocity(self, joint: JointLike, v) -> None:
        index = self.mechanism.joint_index(joint)
        v_range = self._v_ranges[index]
        v = self._checked(v, v_range.stop - v_range.start,
                          f"velocity of joint '{self.mechanism.joints[index].name}'")
        self._v = self._v.at[v_range].set(v)
        self._invalidate()

    def set_configuration_vector(self, q) -> None:
        self._q = self._checked(q, self.num_positions, "configuration vector")
        self._invalidate()

    def set_velocity_vector(self, v) -> None:
        self._v = self._checked(v, self.num_velocities, "velocity vector")
        self._invalidate()

    def set_state_vector(self, x) -> None:
        """Set configuration and velocity from ``[q; v]``."""
        x = self._checked(x, self.num_positions + self.num_velocities, "state vector")
        self._q = x[:self.num_positions]
        self._v = x[self.num_positions:]
        self._invalidate()

    def zero_velocity(self) -> None:
        self._v = jnp.zeros(self.num_velocities)
        self._invalidate()

    def zero(self) -> None:
        """Zero configuration of every joint and zero velocity."""
        self._q = jnp.concatenate(
            [joint.joint_type.zero_configuration() for joint in self.mechanism.joints] + [jnp.zeros(0)])
        self.zero_velocity()

    def randomize(self, key: Array) -> None:
        """Draw a random configuration (per joint type) and a normal random velocity."""
        keys = jax.random.split(key, len(self.mechanism.joints) + 1)
        self._q = jnp.concatenate(
            [joint.joint_type.rand_configuration(k) for joint, k in zip(self.mechanism.joints, keys[1:])]
            + [jnp.zeros(0)])
        self._v = jax.random.normal(keys[0], (self.num_velocities,))
        self._invalidate()

    @staticmethod
    def _checked(values, expected: int, what: str) -> Array:
        values = jnp.atleast_1d(jnp.asarray(values, dtype=jnp.float64))
        if values.ndim != 1 or values.shape[0] != expected:
            raise DimensionMismatchError(what, expected, values.size)
        return values

    def configuration_derivative(self) -> Array:
        """Map the current velocity to the time derivative of the configuration."""
        parts = []
        for k, joint in enumerate(self.mechanism.joints):
            parts.append(joint.joint_type.velocity_to_configuration_derivative(
                self._q[self._q_ranges[k]], self._v[self._v_ranges[k]]))
        return jnp.concatenate(parts + [jnp.zeros(0)])

    # Cache bookkeeping

    @property
    def epoch(self) -> int:
        return self._epoch

    def _invalidate(self) -> None:
        self._epoch += 1

    def _ensure(self, category: str, update) -> None:
        if self._computed_at.get(category) != self._epoch:
            logger.debug("Recomputing %s (epoch %d)", category, self._epoch)
            update()
            self._computed_at[category] = self._epoch

    def _ensure_transforms(self) -> None:
        self._ensure("transforms", self._update_transforms)

    def _ensure_motion_subspaces(self) -> None:
        self._ensure("motion_subspaces", self._update_motion_subspaces)

    def _ensure_twists(self) -> None:
        self._ensure("twists", self._update_twists)

    def _ensure_bias_accelerations(self) -> None:
        self._ensure("bias_accelerations", self._update_bias_accelerations)

    def _ensure_spatial_inertias(self) -> None:
        self._ensure("spatial_inertias", self._update_spatial_inertias)

    def _ensure_crb_inertias(self) -> None:
        self._ensure("crb_inertias", self._update_crb_inertias)

    # Recomputation passes, parents before children

    def _update_transforms(self) -> None:
        mechanism = self.mechanism
        to_parent = []
        to_root = [se3.identity()]
        for k, joint in enumerate(mechanism.joints):
            q_joint = self._q[self._q_ranges[k]]
            T = mechanism.joint_to_parent[k] @ joint.joint_type.joint_transform(q_joint)
            to_parent.append(T)
            to_root.append(to_root[mechanism.parent_indices[k + 1]] @ T)
        self._transforms_to_parent = _stack(to_parent, (4, 4))
        self._transforms_to_root = jnp.stack(to_root)

    def _update_motion_subspaces(self) -> None:
        self._ensure_transforms()
        self._motion_subspaces = tuple(
            se3.adjoint(self._transforms_to_root[k + 1]) @ joint.joint_type.motion_subspace()
            for k, joint in enumerate(self.mechanism.joints))

    def _update_twists(self) -> None:
        self._ensure_motion_subspaces()
        parents = self.mechanism.parent_indices
        twists = [jnp.zeros(6)]
        for k, S in enumerate(self._motion_subspaces):
            twists.append(twists[parents[k + 1]] + S @ self._v[self._v_ranges[k]])
        self._twists = jnp.stack(twists)

    def _update_bias_accelerations(self) -> None:
        self._ensure_twists()
        parents = self.mechanism.parent_indices
        biases = [jnp.zeros(6)]
        for k, S in enumerate(self._motion_subspaces):
            parent = parents[k + 1]
            joint_twist = S @ self._v[self._v_ranges[k]]
            # the motion subspace moves with the parent; joint-type bias is zero for all joint types
            biases.append(biases[parent] + spatial.cross(self._twists[parent], joint_twist))
        self._bias_accelerations = jnp.stack(biases)

    def _update_spatial_inertias(self) -> None:
        self._ensure_transforms()
        inertias = [jnp.zeros((6, 6))]
        for i, body in enumerate(self.mechanism.bodies[1:], start=1):
            if body.inertia is None:
                inertias.append(jnp.zeros((6, 6)))
            else:
                inertias.append(spatial.transform_inertia(body.inertia.to_matrix(), self._transforms_to_root[i]))
        self._spatial_inertias = jnp.stack(inertias)

    def _update_crb_inertias(self) -> None:
        self._ensure_spatial_inertias()
        parents = self.mechanism.parent_indices
        crb = list(self._spatial_inertias)
        for i in range(len(crb) - 1, 0, -1):
            crb[parents[i]] = crb[parents[i]] + crb[i]
        self._crb_inertias = jnp.stack(crb)

    # Getters

    def transform_to_parent(self, joint: JointLike) -> Array:
        """Transform from the frame after ``joint`` to its parent body frame."""
        index = self.mechanism.joint_index(joint)
        self._ensure_transforms()
        return self._transforms_to_parent[index]

    def transform_to_root(self, frame: str) -> Array:
        """Transform from ``frame`` (any frame of the mechanism) to the root frame."""
        body_index, frame_to_body = self.mechanism.frame_definition(frame)
        self._ensure_transforms()
        return self._transforms_to_root[body_index] @ frame_to_body

    def relative_transform(self, from_frame: str, to_frame: str) -> Array:
        return se3.inverse(self.transform_to_root(to_frame)) @ self.transform_to_root(from_frame)

    def body_transform_to_root(self, body: BodyLike) -> Array:
        index = self.mechanism.body_index(body)
        self._ensure_transforms()
        return self._transforms_to_root[index]

    def twist_wrt_world(self, body: BodyLike) -> Array:
        index = self.mechanism.body_index(body)
        self._ensure_twists()
        return self._twists[index]

    def relative_twist(self, body: BodyLike, base: BodyLike) -> Array:
        """Twist of ``body`` with respect to ``base``, in the root frame."""
        return self.twist_wrt_world(body) - self.twist_wrt_world(base)

    def bias_acceleration(self, body: BodyLike) -> Array:
        index = self.mechanism.body_index(body)
        self._ensure_bias_accelerations()
        return self._bias_accelerations[index]

    def motion_subspace(self, joint: JointLike) -> Array:
        index = self.mechanism.joint_index(joint)
        self._ensure_motion_subspaces()
        return self._motion_subspaces[index]

    def spatial_inertia(self, body: BodyLike) -> Array:
        index = self.mechanism.body_index(body)
        self._ensure_spatial_inertias()
        return self._spatial_inertias[index]

    def crb_inertia(self, body: BodyLike) -> Array:
        index = self.mechanism.body_index(body)
        self._ensure_crb_inertias()
        return self._crb_inertias[index]

    # Whole-mechanism views, indexed like mechanism.bodies / mechanism.joints

    def transforms_to_root(self) -> Array:
        self._ensure_transforms()
        return self._transforms_to_root

    def motion_subspaces(self) -> Tuple[Array, ...]:
        self._ensure_motion_subspaces()
        return self._motion_subspaces

    def twists(self) -> Array:
        self._ensure_twists()
        return self._twists

    def bias_accelerations(self) -> Array:
        self._ensure_bias_accelerations()
        return self._bias_accelerations

    def spatial_inertias(self) -> Array:
        self._ensure_spatial_inertias()
        return self._spatial_inertias

    def crb_inertias(self) -> Array:
        self._ensure_crb_inertias()
        return self._crb_inertias
