"""Homogeneous 4x4 transforms in JAX.

COLLADA transform stacks (translate, rotate, matrix, scale) are composed as
4x4 matrices whose upper-left block may carry scale. Poses are extracted from
them only after the scale has been split off with `decompose_scale`.
"""

from typing import Tuple

import jax
import jax.numpy as jnp

from . import so3

Array = jax.Array


def identity(dtype=jnp.float64) -> Array:
    """The 4x4 identity transform."""
    return jnp.eye(4, dtype=dtype)


def from_position_and_rotation(p: Array, R: Array) -> Array:
    """
    Build a homogeneous transform from a translation and a 3x3 block.

    Args:
        p: (..., 3) translation
        R: (..., 3, 3) rotation (or rotation times scale)

    Returns:
        (..., 4, 4) homogeneous matrix
    """
    p = jnp.asarray(p, dtype=jnp.float64)
    R = jnp.asarray(R, dtype=jnp.float64)
    batch_shape = jnp.broadcast_shapes(p.shape[:-1], R.shape[:-2])
    p = jnp.broadcast_to(p, batch_shape + (3,))
    R = jnp.broadcast_to(R, batch_shape + (3, 3))

    T = jnp.zeros(batch_shape + (4, 4), dtype=p.dtype)
    T = T.at[..., :3, :3].set(R)
    T = T.at[..., :3, 3].set(p)
    return T.at[..., 3, 3].set(1.0)


def from_translation(p) -> Array:
    """Pure translation."""
    return from_position_and_rotation(jnp.asarray(p, dtype=jnp.float64), jnp.eye(3))


def from_axis_angle(axis, angle) -> Array:
    """Pure rotation of `angle` radians about `axis`."""
    return from_position_and_rotation(jnp.zeros(3), so3.from_axis_angle(axis, angle))


def from_scale(s) -> Array:
    """Axis-aligned scale."""
    return from_position_and_rotation(jnp.zeros(3), jnp.diag(jnp.asarray(s, dtype=jnp.float64)))


def from_matrix_rows(values) -> Array:
    """
    Transform from 12 or 16 row-major values, as found in a <matrix> element.

    Only the upper three rows are used; the last row is always [0, 0, 0, 1].
    """
    values = jnp.asarray(values, dtype=jnp.float64)
    rows = values[:12].reshape(3, 4)
    return from_position_and_rotation(rows[:, 3], rows[:, :3])


def exp(twist: Array) -> Array:
    """
    Exponential map from a twist to a transform.

    Used by forward kinematics to turn `axis * q` into joint motion.

    Args:
        twist: (..., 6) [vx, vy, vz, wx, wy, wz]

    Returns:
        (..., 4, 4) transforms
    """
    v, w = twist[..., :3], twist[..., 3:]
    angle = jnp.linalg.norm(w, axis=-1, keepdims=True)
    eps = jnp.finfo(twist.dtype).eps
    small = angle < 1e-6
    angle_sq = angle * angle

    R = so3.exp(w)
    # V = I + A*K + B*K^2 with series expansions near zero
    A = jnp.where(small, 0.5 - angle_sq / 24.0, (1.0 - jnp.cos(angle)) / (angle_sq + eps))
    B = jnp.where(small, 1.0 / 6.0 - angle_sq / 120.0, (angle - jnp.sin(angle)) / (angle_sq * angle + eps))
    K = so3.skew_symmetric(w)
    I = jnp.broadcast_to(jnp.eye(3, dtype=twist.dtype), K.shape)
    V = I + A[..., None] * K + B[..., None] * jnp.matmul(K, K)

    return from_position_and_rotation(jnp.einsum("...ij,...j->...i", V, v), R)


def multiply(T1: Array, T2: Array) -> Array:
    """Compose two transforms, T1 applied after T2."""
    return jnp.matmul(T1, T2)


def inverse(T: Array) -> Array:
    """
    Inverse of a rigid transform.

    Uses the block form [[R^T, -R^T t], [0, 1]]; callers strip scale first.
    """
    R_inv = jnp.swapaxes(T[..., :3, :3], -1, -2)
    t_inv = -jnp.einsum("...ij,...j->...i", R_inv, T[..., :3, 3])
    return from_position_and_rotation(t_inv, R_inv)


def apply(T: Array, points: Array) -> Array:
    """
    Transform points, including any scale held in T.

    Args:
        T: (4, 4) transform
        points: (3,) or (N, 3) points

    Returns:
        Transformed points with the shape of points
    """
    points = jnp.asarray(points, dtype=T.dtype)
    return jnp.einsum("ij,...j->...i", T[:3, :3], points) + T[:3, 3]


def get_position(T: Array) -> Array:
    """Translation column of T."""
    return T[..., :3, 3]


def get_rotation(T: Array) -> Array:
    """Upper-left 3x3 block of T."""
    return T[..., :3, :3]


def decompose_scale(T: Array) -> Tuple[Array, Array]:
    """
    Split a transform into a rigid part and a per-axis scale.

    Args:
        T: (4, 4) transform whose 3x3 block is rotation times diag(scale)

    Returns:
        (rigid (4, 4) transform, scale (3,))
    """
    scale = so3.column_scale(T[:3, :3])
    rigid = from_position_and_rotation(T[:3, 3], so3.orthonormalize(T[:3, :3]))
    return rigid, scale
