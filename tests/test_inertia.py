"""Tests for the inertia decomposer."""

import numpy as np
from hypothesis import given, settings
from hypothesis import strategies as st

from collada_kinematics.core import Inertial
from collada_kinematics.inertia import eigen_symmetric3, principal_frame
from collada_kinematics.transforms import so3


def test_diagonal_tensor():
    """A diagonal tensor has its diagonal as eigenvalues."""
    values, vectors = eigen_symmetric3(1.0, 2.0, 3.0)
    np.testing.assert_allclose(np.sort(values), [1.0, 2.0, 3.0], atol=1e-12)
    np.testing.assert_allclose(np.abs(np.linalg.det(vectors)), 1.0, atol=1e-12)


def test_frame_is_right_handed():
    """The eigenvector columns always form a rotation."""
    _, vectors = eigen_symmetric3(2.0, 2.0, 1.0, ixy=0.5, ixz=-0.1, iyz=0.3)
    np.testing.assert_allclose(np.linalg.det(vectors), 1.0, atol=1e-9)
    np.testing.assert_allclose(vectors.T @ vectors, np.eye(3), atol=1e-9)


@given(st.integers(min_value=0, max_value=100))
@settings(deadline=None)
def test_reconstruction(seed):
    """E diag(lambda) E^T gives back the tensor."""
    rng = np.random.default_rng(seed)
    a = rng.normal(size=(3, 3))
    tensor = a @ a.T + 0.1 * np.eye(3)
    values, vectors = eigen_symmetric3(
        tensor[0, 0], tensor[1, 1], tensor[2, 2], tensor[0, 1], tensor[0, 2], tensor[1, 2]
    )
    np.testing.assert_allclose(vectors @ np.diag(values) @ vectors.T, tensor, atol=1e-9)


def test_principal_frame_pose():
    """The principal frame has zero position and rotates the moments back to the tensor."""
    inertial = Inertial(mass=1.0, ixx=0.3, iyy=0.2, izz=0.1, ixy=0.05)
    moments, frame = principal_frame(inertial)
    np.testing.assert_allclose(frame.position, np.zeros(3))
    R = np.asarray(so3.from_quaternion(frame.rotation))
    np.testing.assert_allclose(R @ np.diag(moments) @ R.T, inertial.tensor(), atol=1e-9)
