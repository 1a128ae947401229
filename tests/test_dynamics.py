"""Tests for the mass matrix, inverse dynamics and forward dynamics."""

import logging

import jax
import jax.numpy as jnp
import numpy as np
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from conftest import G, I1, I2, L1, LC1, LC2, M1, M2, build_double_pendulum, build_random_tree
from jax_dynamics.core import Fixed, Joint, Mechanism, MechanismState, Revolute, RigidBody, remove_fixed_joints
from jax_dynamics.dynamics import (
    dynamics,
    dynamics_vector,
    inverse_dynamics,
    kinetic_energy,
    mass_matrix,
    momentum_matrix,
    potential_energy,
)
from jax_dynamics.exceptions import DimensionMismatchError, SingularMassMatrixError, UnknownEntityError
from jax_dynamics.io import load_urdf
from jax_dynamics.transforms import SpatialInertia, se3


def pendulum_terms(q, v):
    """Closed-form mass matrix, Coriolis matrix and gravity torques of the double pendulum."""
    q1, q2 = q
    v1, v2 = v
    c2 = jnp.cos(q2)
    s1, s2 = jnp.sin(q1), jnp.sin(q2)
    s12 = jnp.sin(q1 + q2)

    M11 = I1 + I2 + M2 * L1 ** 2 + 2 * M2 * L1 * LC2 * c2
    M12 = I2 + M2 * L1 * LC2 * c2
    M = jnp.array([[M11, M12], [M12, I2]])
    C = jnp.array([[-2 * M2 * L1 * LC2 * s2 * v2, -M2 * L1 * LC2 * s2 * v2],
                   [M2 * L1 * LC2 * s2 * v1, 0.0]])
    grav = jnp.array([M1 * G * LC1 * s1 + M2 * G * (L1 * s1 + LC2 * s12), M2 * G * LC2 * s12])
    return M, C, grav


def pendulum_kinetic_energies(q, v):
    """Closed-form kinetic energies of the upper and lower links."""
    v1, v2 = v
    c2 = jnp.cos(q[1])
    T1 = 0.5 * I1 * v1 ** 2
    T2 = (0.5 * (M2 * L1 ** 2 + I2 + 2 * M2 * L1 * LC2 * c2) * v1 ** 2 + 0.5 * I2 * v2 ** 2
          + (I2 + M2 * L1 * LC2 * c2) * v1 * v2)
    return T1, T2


def random_state(mechanism, key):
    state = MechanismState(mechanism)
    state.randomize(key)
    return state


@given(st.integers(min_value=0, max_value=10000))
@settings(deadline=None, max_examples=10)
def test_double_pendulum_closed_form(seed):
    key1, key2 = jax.random.split(jax.random.PRNGKey(seed))
    state = random_state(build_double_pendulum(), key1)
    v_dot = jax.random.normal(key2, (2,))
    q = state.configuration()
    v = state.velocity()
    M, C, grav = pendulum_terms(q, v)

    np.testing.assert_allclose(mass_matrix(state), M, atol=1e-12)
    np.testing.assert_allclose(inverse_dynamics(state, v_dot), M @ v_dot + C @ v + grav, atol=1e-12)

    T1, T2 = pendulum_kinetic_energies(q, v)
    np.testing.assert_allclose(kinetic_energy(state, "upper_link"), T1, atol=1e-12)
    np.testing.assert_allclose(kinetic_energy(state, "lower_link"), T2, atol=1e-12)
    np.testing.assert_allclose(kinetic_energy(state), T1 + T2, atol=1e-12)


def test_acrobot_urdf_matches_closed_form(acrobot_path):
    mechanism = remove_fixed_joints(load_urdf(acrobot_path))
    state = MechanismState(mechanism)
    key1, key2, key3 = jax.random.split(jax.random.PRNGKey(42), 3)
    q = jax.random.uniform(key1, (2,), minval=-jnp.pi, maxval=jnp.pi)
    v = jax.random.normal(key2, (2,))
    v_dot = jax.random.normal(key3, (2,))
    for i, name in enumerate(("shoulder", "elbow")):
        state.set_configuration(name, q[i])
        state.set_velocity(name, v[i])
    M, C, grav = pendulum_terms(q, v)

    np.testing.assert_allclose(mass_matrix(state), M, atol=1e-12)
    torques = inverse_dynamics(state, {"shoulder": v_dot[0], "elbow": v_dot[1]})
    np.testing.assert_allclose(torques, M @ v_dot + C @ v + grav, atol=1e-12)

    T1, T2 = pendulum_kinetic_energies(q, v)
    np.testing.assert_allclose(kinetic_energy(state, "upper_link"), T1, atol=1e-12)
    np.testing.assert_allclose(kinetic_energy(state, "lower_link"), T2, atol=1e-12)


@given(st.integers(min_value=0, max_value=10000))
@settings(deadline=None, max_examples=10)
def test_mass_matrix_properties(seed):
    key1, key2 = jax.random.split(jax.random.PRNGKey(seed))
    state = random_state(build_random_tree(key1, num_bodies=7), key2)
    M = mass_matrix(state)

    assert M.shape == (state.num_velocities, state.num_velocities)
    np.testing.assert_array_equal(M, M.T)
    assert jnp.all(jnp.linalg.eigvalsh(M) > 0)

    v = state.velocity()
    np.testing.assert_allclose(0.5 * v @ M @ v, kinetic_energy(state), rtol=1e-10)


@given(st.integers(min_value=0, max_value=10000))
@settings(deadline=None, max_examples=10)
def test_inverse_dynamics_is_affine_in_acceleration(seed):
    key1, key2, key3 = jax.random.split(jax.random.PRNGKey(seed), 3)
    state = random_state(build_random_tree(key1), key2)
    v_dot = jax.random.normal(key3, (state.num_velocities,))

    bias = inverse_dynamics(state)
    np.testing.assert_allclose(inverse_dynamics(state, v_dot), mass_matrix(state) @ v_dot + bias, atol=1e-9)

    # without velocity and gravity, a mechanism at rest needs no torque
    weightless = MechanismState(state.mechanism.replace(gravity=jnp.zeros(3)))
    weightless.set_configuration_vector(state.configuration())
    np.testing.assert_allclose(inverse_dynamics(weightless), jnp.zeros(state.num_velocities), atol=1e-12)
    np.testing.assert_allclose(inverse_dynamics(weightless, v_dot), mass_matrix(state) @ v_dot, atol=1e-9)


def test_gravity_torques_match_potential_energy_gradient(double_pendulum):
    state = MechanismState(double_pendulum)
    q = jnp.array([0.3, -1.1])
    state.set_configuration_vector(q)
    gravity_torques = inverse_dynamics(state)

    eps = 1e-6
    gradient = []
    for i in range(2):
        dq = jnp.zeros(2).at[i].set(eps)
        state.set_configuration_vector(q + dq)
        upper = potential_energy(state)
        state.set_configuration_vector(q - dq)
        lower = potential_energy(state)
        gradient.append((upper - lower) / (2 * eps))
    np.testing.assert_allclose(gravity_torques, jnp.array(gradient), atol=1e-7)


def test_potential_energy_of_hanging_pendulum(double_pendulum):
    state = MechanismState(double_pendulum)
    expected = -(M1 * G * LC1 + M2 * G * (L1 + LC2))
    np.testing.assert_allclose(potential_energy(state), expected, atol=1e-12)


@given(st.integers(min_value=0, max_value=10000))
@settings(deadline=None, max_examples=10)
def test_forward_inverse_dynamics_round_trip(seed):
    key1, key2, key3 = jax.random.split(jax.random.PRNGKey(seed), 3)
    state = random_state(build_random_tree(key1), key2)
    torques = jax.random.normal(key3, (state.num_velocities,))

    q_dot, v_dot = dynamics(state, torques)
    np.testing.assert_allclose(q_dot, state.configuration_derivative())
    np.testing.assert_allclose(inverse_dynamics(state, v_dot), torques, atol=1e-8)


def test_external_wrench_enters_through_jacobian_transpose():
    key1, key2, key3 = jax.random.split(jax.random.PRNGKey(5), 3)
    mechanism = build_random_tree(key1, num_bodies=5)
    state = random_state(mechanism, key2)
    v_dot = jax.random.normal(key3, (state.num_velocities,))
    body = mechanism.bodies[-1]
    wrench = jnp.array([0.1, -0.4, 0.2, 1.0, 2.0, -3.0])

    tau_free = inverse_dynamics(state, v_dot)
    tau_loaded = inverse_dynamics(state, v_dot, external_wrenches={body.name: wrench})

    wrench_world = se3.force_adjoint(state.transform_to_root(body.name)) @ wrench
    expected = tau_free
    path = mechanism.path(mechanism.root_body, body)
    subspaces = state.motion_subspaces()
    for k in path.joint_indices:
        v_range = state.v_range_at(k)
        expected = expected.at[v_range].add(-subspaces[k].T @ wrench_world)
    np.testing.assert_allclose(tau_loaded, expected, atol=1e-10)

    # forward dynamics sees the same wrench
    _, v_dot_loaded = dynamics(state, tau_loaded, external_wrenches={body.name: wrench})
    np.testing.assert_allclose(v_dot_loaded, v_dot, atol=1e-8)


def test_external_wrench_validation(double_pendulum):
    state = MechanismState(double_pendulum)
    with pytest.raises(DimensionMismatchError):
        inverse_dynamics(state, external_wrenches={"lower_link": jnp.zeros(3)})
    with pytest.raises(UnknownEntityError):
        inverse_dynamics(state, external_wrenches={"bla": jnp.zeros(6)})


def test_momentum_matrix():
    key1, key2 = jax.random.split(jax.random.PRNGKey(9))
    state = random_state(build_random_tree(key1), key2)
    A = momentum_matrix(state)
    assert A.shape == (6, state.num_velocities)

    inertias = state.spatial_inertias()
    twists = state.twists()
    momentum = sum(inertias[i] @ twists[i] for i in range(1, state.mechanism.num_bodies))
    np.testing.assert_allclose(A @ state.velocity(), momentum, atol=1e-10)


def test_dynamics_vector(double_pendulum):
    state = MechanismState(double_pendulum)
    x = jnp.array([0.2, -0.3, 1.0, 0.5])
    torques = jnp.array([0.4, -0.1])
    x_dot = dynamics_vector(x, state, torques)

    np.testing.assert_allclose(state.state_vector(), x)
    M, C, grav = pendulum_terms(x[:2], x[2:])
    np.testing.assert_allclose(x_dot[:2], x[2:])
    np.testing.assert_allclose(x_dot[2:], jnp.linalg.solve(M, torques - C @ x[2:] - grav), atol=1e-10)


def test_dynamics_input_validation(double_pendulum):
    state = MechanismState(double_pendulum)
    with pytest.raises(DimensionMismatchError):
        dynamics(state, jnp.zeros(3))
    with pytest.raises(DimensionMismatchError):
        inverse_dynamics(state, jnp.zeros(1))
    with pytest.raises(DimensionMismatchError):
        dynamics_vector(jnp.zeros(3), state)


def test_singular_mass_matrix(caplog):
    mechanism = Mechanism.create("world")
    mechanism = mechanism.attach("world", Joint("hinge", Revolute.create([0, 0, 1])), None, RigidBody("massless"))
    state = MechanismState(mechanism)

    np.testing.assert_allclose(mass_matrix(state), jnp.zeros((1, 1)))
    with caplog.at_level(logging.WARNING), pytest.raises(SingularMassMatrixError):
        dynamics(state, jnp.array([1.0]))
    assert "Cholesky" in caplog.text


def test_massless_mechanism_has_zero_potential_energy():
    mechanism = Mechanism.create("world")
    mechanism = mechanism.attach("world", Joint("hinge", Revolute.create([0, 1, 0])), None, RigidBody("massless"))
    state = MechanismState(mechanism)
    state.set_configuration("hinge", 0.3)
    np.testing.assert_allclose(potential_energy(state), 0.0)


def test_welded_mechanism():
    mechanism = Mechanism.create("world")
    mechanism = mechanism.attach("world", Joint("weld", Fixed()), se3.from_translation([0.0, 0.0, 1.0]),
                                 RigidBody("block", SpatialInertia.from_com(1.0)))
    state = MechanismState(mechanism)

    assert mass_matrix(state).shape == (0, 0)
    assert inverse_dynamics(state).shape == (0,)
    q_dot, v_dot = dynamics(state, external_wrenches={"block": jnp.ones(6)})
    assert q_dot.shape == (0,) and v_dot.shape == (0,)

    # wrenches are checked even when there is nothing to solve for
    with pytest.raises(UnknownEntityError):
        dynamics(state, external_wrenches={"nope": jnp.zeros(6)})
    with pytest.raises(DimensionMismatchError):
        dynamics(state, external_wrenches={"block": jnp.zeros(4)})


def test_mass_matrix_with_fixed_joints_between_moving_ones():
    """A weld between two hinges leaves the mass matrix of the merged tree unchanged."""
    mechanism = Mechanism.create("world")
    mechanism = mechanism.attach("world", Joint("hip", Revolute.create([0, 1, 0])), None,
                                 RigidBody("thigh", SpatialInertia.from_com(1.0, jnp.array([0.0, 0.0, -0.5]))))
    mechanism = mechanism.attach("thigh", Joint("brace", Fixed()), se3.from_translation([0.0, 0.0, -1.0]),
                                 RigidBody("plate", SpatialInertia.from_com(0.5, jnp.array([0.1, 0.0, 0.0]))))
    mechanism = mechanism.attach("plate", Joint("knee", Revolute.create([1, 0, 0])), None,
                                 RigidBody("shin", SpatialInertia.from_com(2.0, jnp.array([0.0, 0.2, -0.4]))))
    state = MechanismState(mechanism)
    flat_state = MechanismState(remove_fixed_joints(mechanism))
    q = jnp.array([0.4, -0.7])
    v = jnp.array([1.2, 0.3])
    for state_ in (state, flat_state):
        state_.set_configuration_vector(q)
        state_.set_velocity_vector(v)

    M = mass_matrix(state)
    assert M.shape == (2, 2)
    np.testing.assert_array_equal(M, M.T)
    np.testing.assert_allclose(M, mass_matrix(flat_state), atol=1e-12)
    np.testing.assert_allclose(inverse_dynamics(state, v), inverse_dynamics(flat_state, v), atol=1e-12)
