"""URDF parser for loading robot descriptions into Mechanism trees.

This module parses URDF files (links with inertial data, joints with origins
and axes) and builds the corresponding :class:`Mechanism`, attaching bodies
breadth-first from the root link.
"""

import logging
from collections import deque
from typing import Dict, List, Optional

import jax.numpy as jnp
import numpy as np
from lxml import etree

from jax_dynamics.core.joints import Fixed, JointType, Prismatic, QuaternionFloating, Revolute
from jax_dynamics.core.mechanism import DEFAULT_GRAVITY, Joint, Mechanism, RigidBody
from jax_dynamics.transforms import se3, so3
from jax_dynamics.transforms.spatial import SpatialInertia

logger = logging.getLogger(__name__)


def load_urdf(urdf_path: str, gravity=DEFAULT_GRAVITY) -> Mechanism:
    """Load a URDF file and convert it to a Mechanism.

    Args:
        urdf_path: Path to the URDF file to load.
        gravity: Gravitational acceleration in the root frame.

    Returns:
        Mechanism: The kinematic tree with inertial parameters.
    """
    tree = etree.parse(urdf_path)
    return _build_mechanism(tree.getroot(), gravity)


def parse_urdf(urdf: str, gravity=DEFAULT_GRAVITY) -> Mechanism:
    """Like :func:`load_urdf`, from a URDF document held in a string."""
    root = etree.fromstring(urdf.encode("utf-8") if isinstance(urdf, str) else urdf)
    return _build_mechanism(root, gravity)


def _build_mechanism(root, gravity) -> Mechanism:
    # First pass: build topology mappings
    links: Dict[str, Optional[SpatialInertia]] = {}
    for link in root.findall('link'):
        links[link.get('name')] = _parse_inertia(link.find('inertial'))

    joints_info = []
    child_links = set()
    for joint in root.findall('joint'):
        joint_name = joint.get('name')
        parent_elem = joint.find('parent')
        child_elem = joint.find('child')
        if parent_elem is None or child_elem is None:
            logger.warning("Skipping joint '%s' without parent or child", joint_name)
            continue

        parent_name = parent_elem.get('link')
        child_name = child_elem.get('link')
        if child_name in child_links:
            raise ValueError(f"Link '{child_name}' is the child of more than one joint")
        child_links.add(child_name)
        joints_info.append({
            'name': joint_name,
            'type': joint.get('type'),
            'parent': parent_name,
            'child': child_name,
            'joint_elem': joint,
        })

    # Parents that are never declared as links (e.g. an implicit "world") are still bodies
    all_links = set(links) | {info['parent'] for info in joints_info}

    # Find root link (not a child of any joint)
    root_links = all_links - child_links
    if len(root_links) != 1:
        raise ValueError(f"Expected exactly one root link, found: {root_links}")
    root_link = list(root_links)[0]

    mechanism = Mechanism.create(RigidBody(root_link), gravity=gravity)

    # Attach bodies breadth-first so every parent precedes its children
    queue = deque([root_link])
    visited = {root_link}
    while queue:
        current_link = queue.popleft()
        for joint_info in joints_info:
            if joint_info['parent'] != current_link:
                continue
            child = joint_info['child']
            visited.add(child)
            joint_elem = joint_info['joint_elem']
            joint = Joint(joint_info['name'], _parse_joint_type(joint_info['type'], joint_elem))
            mechanism = mechanism.attach(current_link, joint, _parse_origin(joint_elem.find('origin')),
                                         RigidBody(child, links.get(child)))
            queue.append(child)

    unreachable = all_links - visited
    if unreachable:
        raise ValueError(f"Links not connected to root '{root_link}': {sorted(unreachable)}")

    logger.info("Loaded URDF '%s': %d bodies, %d joints",
                root.get('name'), mechanism.num_bodies, len(mechanism.joints))
    return mechanism


def _parse_vector(text: Optional[str], default: str) -> np.ndarray:
    return np.array([float(x) for x in (text or default).split()])


def _parse_origin(origin_elem):
    """4x4 transform described by an ``<origin xyz=... rpy=...>`` element."""
    if origin_elem is None:
        return se3.identity()
    xyz = _parse_vector(origin_elem.get('xyz'), '0 0 0')
    rpy = _parse_vector(origin_elem.get('rpy'), '0 0 0')
    return se3.from_position_and_rotation(jnp.array(xyz), so3.from_rpy(jnp.array(rpy)))


def _parse_inertia(inertial_elem) -> Optional[SpatialInertia]:
    """Spatial inertia in the link frame from an ``<inertial>`` element."""
    if inertial_elem is None:
        return None
    mass_elem = inertial_elem.find('mass')
    mass = float(mass_elem.get('value')) if mass_elem is not None else 0.0

    inertia_elem = inertial_elem.find('inertia')
    values: List[float] = [0.0] * 6
    if inertia_elem is not None:
        values = [float(inertia_elem.get(key, '0'))
                  for key in ('ixx', 'ixy', 'ixz', 'iyy', 'iyz', 'izz')]
    ixx, ixy, ixz, iyy, iyz, izz = values
    inertia_com = np.array([
        [ixx, ixy, ixz],
        [ixy, iyy, iyz],
        [ixz, iyz, izz],
    ])

    origin = _parse_origin(inertial_elem.find('origin'))
    return SpatialInertia.from_com(mass, se3.get_position(origin), jnp.array(inertia_com),
                                   rotation=se3.get_rotation(origin))


def _parse_joint_type(joint_type: str, joint_elem) -> JointType:
    if joint_type == 'fixed':
        return Fixed()
    if joint_type == 'floating':
        return QuaternionFloating()

    axis_elem = joint_elem.find('axis')
    axis = _parse_vector(axis_elem.get('xyz') if axis_elem is not None else None, '0 0 1')
    if joint_type in ('revolute', 'continuous'):
        return Revolute.create(axis)
    if joint_type == 'prismatic':
        return Prismatic.create(axis)
    raise ValueError(f"Unsupported joint type '{joint_type}' for joint '{joint_elem.get('name')}'")
