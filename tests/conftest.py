"""Shared mechanisms for the test suite."""

from pathlib import Path

import jax
import jax.numpy as jnp
import pytest

from jax_dynamics.core import (
    Fixed,
    Joint,
    Mechanism,
    Prismatic,
    QuaternionFloating,
    Revolute,
    RigidBody,
)
from jax_dynamics.transforms import SpatialInertia, se3, so3

FIXTURES = Path(__file__).parent / "fixtures"

# Double pendulum parameters; moments of inertia are about the joints
LC1 = -0.5
L1 = -1.0
M1 = 1.0
I1 = 0.333
LC2 = -1.0
L2 = -2.0
M2 = 1.0
I2 = 1.33
G = -9.81


def build_double_pendulum() -> Mechanism:
    """Two links swinging about parallel y axes, hanging along -z."""
    axis = jnp.array([0.0, 1.0, 0.0])
    mechanism = Mechanism.create("world", gravity=(0.0, 0.0, G))

    # moment about the joint, mass times center of mass, mass
    inertia1 = SpatialInertia(I1 * jnp.outer(axis, axis), M1 * jnp.array([0.0, 0.0, LC1]), jnp.asarray(M1))
    upper_link = RigidBody("upper_link", inertia1)
    shoulder = Joint("shoulder", Revolute.create(axis))
    mechanism = mechanism.attach("world", shoulder, se3.identity(), upper_link)

    inertia2 = SpatialInertia(I2 * jnp.outer(axis, axis), M2 * jnp.array([0.0, 0.0, LC2]), jnp.asarray(M2))
    lower_link = RigidBody("lower_link", inertia2)
    elbow = Joint("elbow", Revolute.create(axis))
    mechanism = mechanism.attach(upper_link, elbow, se3.from_translation([0.0, 0.0, L1]), lower_link)
    return mechanism


def _random_inertia(key) -> SpatialInertia:
    key1, key2, key3 = jax.random.split(key, 3)
    mass = jax.random.uniform(key1, (), minval=0.5, maxval=2.0)
    com = jax.random.uniform(key2, (3,), minval=-0.5, maxval=0.5)
    A = jax.random.normal(key3, (3, 3))
    return SpatialInertia.from_com(mass, com, A @ A.T + 0.1 * jnp.eye(3))


def _random_transform(key):
    key1, key2 = jax.random.split(key)
    R = so3.from_quaternion(jax.random.normal(key1, (4,)))
    return se3.from_position_and_rotation(jax.random.uniform(key2, (3,), minval=-1.0, maxval=1.0), R)


def build_random_tree(key, num_bodies: int = 6, floating_base: bool = True) -> Mechanism:
    """Random tree mixing floating, revolute, prismatic and fixed joints."""
    mechanism = Mechanism.create("world")
    keys = jax.random.split(key, num_bodies)
    for i in range(num_bodies):
        k_parent, k_type, k_axis, k_inertia, k_transform = jax.random.split(keys[i], 5)
        if i == 0:
            parent = 0
            joint_type = QuaternionFloating() if floating_base else Revolute.create([0.0, 0.0, 1.0])
        else:
            parent = int(jax.random.randint(k_parent, (), 1, i + 1))
            choice = int(jax.random.randint(k_type, (), 0, 4))
            axis = jax.random.normal(k_axis, (3,))
            joint_type = (Revolute.create(axis), Revolute.create(axis), Prismatic.create(axis), Fixed())[choice]
        body = RigidBody(f"body{i}", _random_inertia(k_inertia))
        joint = Joint(f"joint{i}", joint_type)
        mechanism = mechanism.attach(mechanism.bodies[parent], joint, _random_transform(k_transform), body)
    return mechanism


@pytest.fixture
def double_pendulum() -> Mechanism:
    return build_double_pendulum()


@pytest.fixture
def acrobot_path() -> str:
    return str(FIXTURES / "Acrobot.urdf")
