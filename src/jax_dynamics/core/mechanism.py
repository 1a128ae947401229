"""Mechanism: an immutable kinematic tree of rigid bodies connected by joints.

The tree is stored flattened. Bodies are kept in topological order with the
root at index 0, and ``joints[k]`` is the joint feeding ``bodies[k + 1]``.
Every algorithm downstream walks these arrays by index instead of following
object references.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

import jax.numpy as jnp
from flax import struct
from jax import Array

from ..exceptions import DuplicateNameError, UnknownEntityError
from ..transforms import se3
from ..transforms.spatial import SpatialInertia
from .joints import Fixed, JointType

logger = logging.getLogger(__name__)

DEFAULT_GRAVITY = (0.0, 0.0, -9.81)


@dataclass(frozen=True, eq=False)
class RigidBody:
    """A rigid body. Its default frame carries the body's name.

    Attributes:
        name: Unique name within the mechanism.
        inertia: Spatial inertia expressed in the body frame. ``None`` for the
                 root body and for massless bodies.
    """
    name: str
    inertia: Optional[SpatialInertia] = None

    @property
    def frame(self) -> str:
        return self.name


@dataclass(frozen=True, eq=False)
class Joint:
    """A joint connecting a parent body to a child body.

    The frame before the joint is fixed in the parent body; the frame after
    the joint coincides with the child body frame.
    """
    name: str
    joint_type: JointType

    @property
    def frame_before(self) -> str:
        return f"before_{self.name}"

    @property
    def frame_after(self) -> str:
        return f"after_{self.name}"

    @property
    def num_positions(self) -> int:
        return self.joint_type.num_positions

    @property
    def num_velocities(self) -> int:
        return self.joint_type.num_velocities


@dataclass(frozen=True)
class TreePath:
    """Joints traversed going from ``source`` to ``target`` in the tree.

    ``directions[i]`` is +1 when ``joint_indices[i]`` is traversed from parent
    to child and -1 when it is traversed from child to parent.
    """
    source: int
    target: int
    joint_indices: Tuple[int, ...]
    directions: Tuple[int, ...]

    def __len__(self) -> int:
        return len(self.joint_indices)


BodyLike = Union[RigidBody, str]
JointLike = Union[Joint, str]


def _name(entity) -> str:
    return entity if isinstance(entity, str) else entity.name


@struct.dataclass
class Mechanism:
    """Immutable representation of a mechanism's tree structure.

    Attributes:
        bodies: All bodies in topological order; ``bodies[0]`` is the root.
        joints: ``joints[k]`` connects ``bodies[parent_indices[k + 1]]`` to
                ``bodies[k + 1]``.
        parent_indices: ``parent_indices[i]`` is the index of the parent of
                        body ``i``. The root parents itself.
        frames: Maps every frame name to ``(body index, frame-to-body transform)``.
        joint_to_parent: Array of shape (num_joints, 4, 4); transforms from
                         each joint's frame before to its parent body frame.
        gravity: (3,) gravitational acceleration in the root frame.
    """
    bodies: Tuple[RigidBody, ...] = struct.field(pytree_node=False)
    joints: Tuple[Joint, ...] = struct.field(pytree_node=False)
    parent_indices: Tuple[int, ...] = struct.field(pytree_node=False)
    frames: Dict[str, Tuple[int, Array]] = struct.field(pytree_node=False)
    joint_to_parent: Array
    gravity: Array

    @classmethod
    def create(cls, root: Union[RigidBody, str] = "world", gravity=DEFAULT_GRAVITY) -> "Mechanism":
        """A mechanism consisting of the root body only."""
        if isinstance(root, str):
            root = RigidBody(root)
        return cls(
            bodies=(root,),
            joints=(),
            parent_indices=(0,),
            frames={root.frame: (0, se3.identity())},
            joint_to_parent=jnp.zeros((0, 4, 4)),
            gravity=jnp.asarray(gravity, dtype=jnp.float64),
        )

    def attach(self, parent: BodyLike, joint: Joint, joint_to_parent: Optional[Array],
               child: RigidBody) -> "Mechanism":
        """Return a new mechanism with ``child`` attached to ``parent`` through ``joint``.

        Args:
            parent: Body already in the mechanism.
            joint: The new joint; its name must be unused.
            joint_to_parent: 4x4 transform from the joint's frame before to the
                             parent body frame. Identity if ``None``.
            child: The new body; its name must be unused.
        """
        parent_index = self.body_index(parent)
        if child.name in self._body_names():
            raise DuplicateNameError(f"Body '{child.name}' already exists in mechanism")
        if joint.name in self._joint_names():
            raise DuplicateNameError(f"Joint '{joint.name}' already exists in mechanism")
        if joint_to_parent is None:
            joint_to_parent = se3.identity()
        joint_to_parent = jnp.asarray(joint_to_parent, dtype=jnp.float64)

        child_index = len(self.bodies)
        frames = dict(self.frames)
        for frame, definition in ((child.frame, (child_index, se3.identity())),
                                  (joint.frame_after, (child_index, se3.identity())),
                                  (joint.frame_before, (parent_index, joint_to_parent))):
            if frame in frames:
                raise DuplicateNameError(f"Frame '{frame}' already exists in mechanism")
            frames[frame] = definition

        logger.debug("Attaching body '%s' to '%s' via joint '%s'",
                     child.name, self.bodies[parent_index].name, joint.name)
        return self.replace(
            bodies=self.bodies + (child,),
            joints=self.joints + (joint,),
            parent_indices=self.parent_indices + (parent_index,),
            frames=frames,
            joint_to_parent=jnp.concatenate([self.joint_to_parent, joint_to_parent[None]], axis=0),
        )

    def add_frame(self, frame: str, body: BodyLike, frame_to_body: Array) -> "Mechanism":
        """Return a new mechanism with an extra frame fixed to ``body``."""
        if frame in self.frames:
            raise DuplicateNameError(f"Frame '{frame}' already exists in mechanism")
        frames = dict(self.frames)
        frames[frame] = (self.body_index(body), jnp.asarray(frame_to_body, dtype=jnp.float64))
        return self.replace(frames=frames)

    def _body_names(self) -> List[str]:
        return [body.name for body in self.bodies]

    def _joint_names(self) -> List[str]:
        return [joint.name for joint in self.joints]

    # Lookup

    @property
    def root_body(self) -> RigidBody:
        return self.bodies[0]

    @property
    def root_frame(self) -> str:
        return self.bodies[0].frame

    def body_index(self, body: BodyLike) -> int:
        name = _name(body)
        for i, candidate in enumerate(self.bodies):
            if candidate.name == name:
                return i
        raise UnknownEntityError("body", name)

    def joint_index(self, joint: JointLike) -> int:
        name = _name(joint)
        for i, candidate in enumerate(self.joints):
            if candidate.name == name:
                return i
        raise UnknownEntityError("joint", name)

    def find_body(self, name: str) -> RigidBody:
        return self.bodies[self.body_index(name)]

    def find_joint(self, name: str) -> Joint:
        return self.joints[self.joint_index(name)]

    def frame_definition(self, frame: str) -> Tuple[int, Array]:
        try:
            return self.frames[frame]
        except KeyError:
            raise UnknownEntityError("frame", frame) from None

    @property
    def frame_names(self) -> Tuple[str, ...]:
        return tuple(self.frames)

    # Tree structure

    def is_root(self, body: BodyLike) -> bool:
        return self.body_index(body) == 0

    def parent_of(self, body: BodyLike) -> RigidBody:
        index = self.body_index(body)
        if index == 0:
            raise ValueError("The root body has no parent")
        return self.bodies[self.parent_indices[index]]

    def joint_to_parent_of(self, body: BodyLike) -> Joint:
        index = self.body_index(body)
        if index == 0:
            raise ValueError("The root body has no joint to parent")
        return self.joints[index - 1]

    def children(self, body: BodyLike) -> List[RigidBody]:
        index = self.body_index(body)
        return [self.bodies[i] for i in range(1, len(self.bodies)) if self.parent_indices[i] == index]

    def ancestor_indices(self, body_index: int) -> List[int]:
        """Indices of the ancestors of a body, nearest first, ending at the root."""
        ancestors = []
        while body_index != 0:
            body_index = self.parent_indices[body_index]
            ancestors.append(body_index)
        return ancestors

    def ancestors(self, body: BodyLike) -> List[RigidBody]:
        return [self.bodies[i] for i in self.ancestor_indices(self.body_index(body))]

    def path(self, source: BodyLike, target: BodyLike) -> TreePath:
        """Path through the tree from ``source`` to ``target``.

        Joints between ``source`` and the common ancestor are traversed child to
        parent (direction -1), the remaining ones parent to child (+1).
        """
        source_index = self.body_index(source)
        target_index = self.body_index(target)
        source_chain = [source_index] + self.ancestor_indices(source_index)
        target_chain = [target_index] + self.ancestor_indices(target_index)
        common = next(i for i in source_chain if i in target_chain)

        up = source_chain[:source_chain.index(common)]
        down = list(reversed(target_chain[:target_chain.index(common)]))
        return TreePath(
            source=source_index,
            target=target_index,
            joint_indices=tuple(i - 1 for i in up + down),
            directions=(-1,) * len(up) + (1,) * len(down),
        )

    # Sizes

    @property
    def num_bodies(self) -> int:
        return len(self.bodies)

    @property
    def num_positions(self) -> int:
        return sum(joint.num_positions for joint in self.joints)

    @property
    def num_velocities(self) -> int:
        return sum(joint.num_velocities for joint in self.joints)

    def mass(self) -> Array:
        """Total mass of all non-root bodies."""
        total = jnp.asarray(0.0)
        for body in self.bodies[1:]:
            if body.inertia is not None:
                total = total + body.inertia.mass
        return total


def remove_fixed_joints(mechanism: Mechanism) -> Mechanism:
    """Merge every body attached through a :class:`Fixed` joint into its parent.

    The merged body's inertia is re-expressed in the surviving body's frame and
    added to it (dropped if the survivor is the root). Its children are
    re-attached to the survivor with composed transforms, and every frame that
    was fixed to it stays available, now defined relative to the survivor.
    """
    result = Mechanism.create(RigidBody(mechanism.root_body.name), gravity=mechanism.gravity)
    # old body index -> (surviving body name, old body frame to survivor frame)
    placement: Dict[int, Tuple[str, Array]] = {0: (mechanism.root_body.name, se3.identity())}
    merged_inertia: Dict[str, Optional[SpatialInertia]] = {mechanism.root_body.name: None}
    order: List[str] = [mechanism.root_body.name]
    kept_joints: Dict[str, Tuple[str, Joint, Array]] = {}

    for k, joint in enumerate(mechanism.joints):
        child_index = k + 1
        child = mechanism.bodies[child_index]
        parent_name, body_to_survivor = placement[mechanism.parent_indices[child_index]]
        joint_to_survivor = body_to_survivor @ mechanism.joint_to_parent[k]

        if isinstance(joint.joint_type, Fixed):
            child_to_survivor = joint_to_survivor @ joint.joint_type.joint_transform(jnp.zeros(0))
            placement[child_index] = (parent_name, child_to_survivor)
            if child.inertia is not None and parent_name != mechanism.root_body.name:
                moved = child.inertia.transform(child_to_survivor)
                current = merged_inertia[parent_name]
                merged_inertia[parent_name] = moved if current is None else current + moved
            logger.debug("Merging body '%s' into '%s' (fixed joint '%s')",
                         child.name, parent_name, joint.name)
        else:
            placement[child_index] = (child.name, se3.identity())
            merged_inertia[child.name] = child.inertia
            order.append(child.name)
            kept_joints[child.name] = (parent_name, joint, joint_to_survivor)

    for name in order[1:]:
        parent_name, joint, joint_to_survivor = kept_joints[name]
        result = result.attach(parent_name, joint, joint_to_survivor, RigidBody(name, merged_inertia[name]))

    for frame, (body_index, frame_to_body) in mechanism.frames.items():
        if frame in result.frames:
            continue
        survivor, body_to_survivor = placement[body_index]
        result = result.add_frame(frame, survivor, body_to_survivor @ frame_to_body)
    return result
