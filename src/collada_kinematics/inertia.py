"""Principal axes of a 3x3 inertia tensor.

COLLADA rigid bodies store only the three principal moments plus a
`mass_frame`, so the writer diagonalizes each URDF inertia tensor. The solver
is a small closed-loop Householder tridiagonalization followed by QL
iterations with implicit shifts.
"""

import math
from typing import Tuple

import jax.numpy as jnp
import numpy as np

from .core.robot_model import Inertial
from .transforms import Pose, so3

EPSILON = 1e-15
MAX_QL_ITERATIONS = 32


def _tridiagonalize(m: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Householder reduction of a symmetric 3x3 matrix.

    Returns:
        (Q, diag, subdiag) with Q^T m Q tridiagonal.
    """
    a, b, c = m[0, 0], m[0, 1], m[0, 2]
    d, e, f = m[1, 1], m[1, 2], m[2, 2]
    diag = np.zeros(3)
    subd = np.zeros(3)
    diag[0] = a
    if abs(c) >= EPSILON:
        ell = math.sqrt(b * b + c * c)
        b /= ell
        c /= ell
        q = 2 * b * e + c * (f - d)
        diag[1] = d + c * q
        diag[2] = f - c * q
        subd[0] = ell
        subd[1] = e - b * q
        Q = np.array([[1.0, 0.0, 0.0], [0.0, b, c], [0.0, c, -b]])
    else:
        diag[1] = d
        diag[2] = f
        subd[0] = b
        subd[1] = e
        Q = np.eye(3)
    return Q, diag, subd


def _ql_implicit(Q: np.ndarray, diag: np.ndarray, subd: np.ndarray) -> bool:
    """Diagonalize a tridiagonal matrix in place, accumulating rotations in Q."""
    for i0 in range(3):
        for _ in range(MAX_QL_ITERATIONS):
            i1 = i0
            while i1 <= 1:
                total = abs(diag[i1]) + abs(diag[i1 + 1])
                if abs(subd[i1]) + total == total:
                    break
                i1 += 1
            if i1 == i0:
                break

            g = (diag[i0 + 1] - diag[i0]) / (2.0 * subd[i0])
            r = math.sqrt(g * g + 1.0)
            if g < 0.0:
                g = diag[i1] - diag[i0] + subd[i0] / (g - r)
            else:
                g = diag[i1] - diag[i0] + subd[i0] / (g + r)
            s, c, p = 1.0, 1.0, 0.0
            for i2 in range(i1 - 1, i0 - 1, -1):
                f = s * subd[i2]
                b = c * subd[i2]
                if abs(f) >= abs(g):
                    c = g / f
                    r = math.sqrt(c * c + 1.0)
                    subd[i2 + 1] = f * r
                    s = 1.0 / r
                    c *= s
                else:
                    s = f / g
                    r = math.sqrt(s * s + 1.0)
                    subd[i2 + 1] = g * r
                    c = 1.0 / r
                    s *= c
                g = diag[i2 + 1] - p
                r = (diag[i2] - g) * s + 2.0 * b * c
                p = s * r
                diag[i2 + 1] = g + p
                g = c * r - b

                column = Q[:, i2 + 1].copy()
                Q[:, i2 + 1] = s * Q[:, i2] + c * column
                Q[:, i2] = c * Q[:, i2] - s * column
            diag[i0] -= p
            subd[i0] = g
            subd[i1] = 0.0
        else:
            return False
    return True


def eigen_symmetric3(ixx: float, iyy: float, izz: float,
                     ixy: float = 0.0, ixz: float = 0.0, iyz: float = 0.0) -> Tuple[np.ndarray, np.ndarray]:
    """Eigen-decomposition of a symmetric 3x3 inertia tensor.

    Args:
        ixx, iyy, izz: Diagonal entries.
        ixy, ixz, iyz: Off-diagonal entries.

    Returns:
        (eigenvalues (3,), eigenvectors (3, 3)) with eigenvector k in column
        k. The columns form a right-handed frame.
    """
    tensor = np.array([
        [ixx, ixy, ixz],
        [ixy, iyy, iyz],
        [ixz, iyz, izz],
    ], dtype=np.float64)
    Q, diag, subd = _tridiagonalize(tensor)
    _ql_implicit(Q, diag, subd)
    if np.linalg.det(Q) < 0.0:
        Q[:, 2] = -Q[:, 2]
    return diag, Q


def principal_frame(inertial: Inertial) -> Tuple[np.ndarray, Pose]:
    """Principal moments and principal-axis frame of an inertial.

    Returns:
        (moments (3,), pose with zero position and the eigenvector frame as
        rotation). The pose is relative to `inertial.origin`.
    """
    moments, frame = eigen_symmetric3(
        inertial.ixx, inertial.iyy, inertial.izz, inertial.ixy, inertial.ixz, inertial.iyz
    )
    rotation = so3.to_quaternion(jnp.asarray(frame))
    return moments, Pose(position=jnp.zeros(3), rotation=rotation)
