"""Quaternion utilities in JAX. Quaternions are stored as (w, x, y, z)."""

import jax
import jax.numpy as jnp
from typing import Tuple

Array = jax.Array


def identity(dtype=jnp.float64) -> Array:
    """The identity rotation."""
    return jnp.array([1.0, 0.0, 0.0, 0.0], dtype=dtype)


def normalize(quaternions: Array) -> Array:
    """Normalize quaternions to unit length."""
    return quaternions / jnp.linalg.norm(quaternions, axis=-1, keepdims=True)


def conjugate(quaternions: Array) -> Array:
    """Conjugate, which is the inverse for unit quaternions."""
    return quaternions * jnp.array([1.0, -1.0, -1.0, -1.0], dtype=quaternions.dtype)


def multiply(q0: Array, q1: Array) -> Array:
    """
    Hamilton product q0 * q1 (rotation q0 applied after q1).

    Args:
        q0: (..., 4) quaternion
        q1: (..., 4) quaternion

    Returns:
        (..., 4) product, not renormalized
    """
    w0, x0, y0, z0 = jnp.moveaxis(q0, -1, 0)
    w1, x1, y1, z1 = jnp.moveaxis(q1, -1, 0)
    return jnp.stack([
        w0 * w1 - x0 * x1 - y0 * y1 - z0 * z1,
        w0 * x1 + x0 * w1 + y0 * z1 - z0 * y1,
        w0 * y1 + y0 * w1 + z0 * x1 - x0 * z1,
        w0 * z1 + z0 * w1 + x0 * y1 - y0 * x1,
    ], axis=-1)


def rotate(q: Array, v: Array) -> Array:
    """
    Rotate vector(s) by a unit quaternion.

    Args:
        q: (4,) quaternion
        v: (3,) or (N, 3) vectors

    Returns:
        Rotated vectors with the shape of v
    """
    w = q[..., 0]
    u = q[..., 1:]
    t = 2.0 * jnp.cross(u, v)
    return v + w * t + jnp.cross(u, t)


def from_axis_angle(axis: Array, angle: float) -> Array:
    """
    Quaternion for a rotation of `angle` radians about `axis`.

    A zero-length axis gives the identity.
    """
    axis = jnp.asarray(axis, dtype=jnp.float64)
    norm = jnp.linalg.norm(axis)
    half = 0.5 * angle
    unit = jnp.where(norm > 0, axis / jnp.where(norm > 0, norm, 1.0), 0.0)
    q = jnp.concatenate([jnp.array([jnp.cos(half)]), jnp.sin(half) * unit])
    return jnp.where(norm > 0, q, identity())


def to_axis_angle(q: Array) -> Tuple[Array, Array]:
    """
    Axis and angle of a unit quaternion.

    The sign is chosen so that w >= 0; the identity maps to axis (1, 0, 0) and
    angle 0, matching what the scene writer emits for untransformed frames.

    Returns:
        (axis (3,), angle in radians)
    """
    q = jnp.where(q[0] < 0, -q, q)
    sin_half = jnp.linalg.norm(q[1:])
    small = sin_half < 1e-10
    axis = jnp.where(small, jnp.array([1.0, 0.0, 0.0]), q[1:] / jnp.where(small, 1.0, sin_half))
    angle = jnp.where(small, 0.0, 2.0 * jnp.arctan2(sin_half, q[0]))
    return axis, angle
