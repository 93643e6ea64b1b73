"""SO(3) rotation matrix operations in JAX.

Rotation matrices are the working representation for COLLADA transform
stacks; quaternions (w, x, y, z) are the storage representation of poses.
Everything here is pure and batch-friendly over leading dimensions.
"""

import jax
import jax.numpy as jnp

Array = jax.Array


def skew_symmetric(v: Array) -> Array:
    """
    Cross-product matrix of a vector.

    Args:
        v: (..., 3) vector

    Returns:
        (..., 3, 3) matrix K with K @ u == cross(v, u)
    """
    zeros = jnp.zeros(v.shape[:-1], dtype=v.dtype)
    vx, vy, vz = v[..., 0], v[..., 1], v[..., 2]
    return jnp.stack([
        jnp.stack([zeros, -vz, vy], axis=-1),
        jnp.stack([vz, zeros, -vx], axis=-1),
        jnp.stack([-vy, vx, zeros], axis=-1),
    ], axis=-2)


def exp(log_r: Array) -> Array:
    """
    Exponential map from an axis-angle vector to a rotation matrix.

    Rodrigues' formula, with a Taylor expansion below 1e-8 rad.

    Args:
        log_r: (..., 3) axis scaled by angle

    Returns:
        (..., 3, 3) rotation matrices
    """
    angle = jnp.linalg.norm(log_r, axis=-1, keepdims=True)
    tiny = angle < 1e-8

    c = jnp.where(tiny, 1.0 - 0.5 * angle**2, jnp.cos(angle))
    s = jnp.where(tiny, angle - angle**3 / 6.0, jnp.sin(angle))
    unit = jnp.where(tiny, log_r, log_r / jnp.where(tiny, 1.0, angle))

    K = skew_symmetric(unit)
    I = jnp.broadcast_to(jnp.eye(3, dtype=log_r.dtype), log_r.shape[:-1] + (3, 3))
    return I + s[..., None] * K + (1.0 - c)[..., None] * jnp.matmul(K, K)


def from_axis_angle(axis: Array, angle: Array) -> Array:
    """
    Rotation about an arbitrary (not necessarily unit) axis.

    A zero axis yields the identity, which is what a degenerate COLLADA
    <rotate> element is expected to mean.

    Args:
        axis: (..., 3) rotation axis
        angle: (...) angle in radians

    Returns:
        (..., 3, 3) rotation matrices
    """
    axis = jnp.asarray(axis, dtype=jnp.float64)
    norm = jnp.linalg.norm(axis, axis=-1, keepdims=True)
    unit = jnp.where(norm > 0, axis / jnp.where(norm > 0, norm, 1.0), 0.0)
    return exp(unit * jnp.asarray(angle, dtype=jnp.float64)[..., None])


def multiply(R1: Array, R2: Array) -> Array:
    """Compose two rotations, R1 applied after R2."""
    return jnp.matmul(R1, R2)


def inverse(R: Array) -> Array:
    """Transpose of a rotation matrix."""
    return jnp.swapaxes(R, -1, -2)


def apply(R: Array, v: Array) -> Array:
    """
    Rotate one vector or a stack of vectors.

    Args:
        R: (..., 3, 3) rotation matrix
        v: (..., 3) or (..., N, 3) vectors

    Returns:
        Rotated vectors with the shape of v
    """
    if v.ndim == R.ndim - 1:
        return jnp.einsum('...ij,...j->...i', R, v)
    return jnp.einsum('...ij,...nj->...ni', R, v)


def column_scale(M: Array) -> Array:
    """
    Per-axis scale of a linear 3x3 block, taken as its column norms.

    Args:
        M: (..., 3, 3) rotation times scale

    Returns:
        (..., 3) scale factors
    """
    return jnp.linalg.norm(M, axis=-2)


def orthonormalize(M: Array) -> Array:
    """
    Strip scale from a 3x3 block by normalizing its columns.

    Args:
        M: (..., 3, 3) rotation times per-axis scale

    Returns:
        (..., 3, 3) rotation matrix
    """
    scale = column_scale(M)
    return M / jnp.where(scale > 0, scale, 1.0)[..., None, :]


def from_quaternion(quaternions: Array) -> Array:
    """
    Rotation matrices from (w, x, y, z) quaternions.

    Args:
        quaternions: (..., 4) quaternions, normalized here

    Returns:
        (..., 3, 3) rotation matrices
    """
    q = quaternions / jnp.linalg.norm(quaternions, axis=-1, keepdims=True)
    w, x, y, z = jnp.moveaxis(q, -1, 0)

    xx, yy, zz = x * x, y * y, z * z
    wx, wy, wz = w * x, w * y, w * z
    xy, xz, yz = x * y, x * z, y * z

    return jnp.stack([
        jnp.stack([1 - 2 * (yy + zz), 2 * (xy - wz), 2 * (xz + wy)], axis=-1),
        jnp.stack([2 * (xy + wz), 1 - 2 * (xx + zz), 2 * (yz - wx)], axis=-1),
        jnp.stack([2 * (xz - wy), 2 * (yz + wx), 1 - 2 * (xx + yy)], axis=-1),
    ], axis=-2)


def to_quaternion(matrix: Array) -> Array:
    """
    Convert rotation matrices to unit (w, x, y, z) quaternions with w >= 0.

    Picks whichever of the four standard extraction formulas has the largest
    pivot, so it stays accurate near 180 degree rotations.

    Args:
        matrix: (..., 3, 3) rotation matrices

    Returns:
        (..., 4) quaternions
    """
    m00, m01, m02 = matrix[..., 0, 0], matrix[..., 0, 1], matrix[..., 0, 2]
    m10, m11, m12 = matrix[..., 1, 0], matrix[..., 1, 1], matrix[..., 1, 2]
    m20, m21, m22 = matrix[..., 2, 0], matrix[..., 2, 1], matrix[..., 2, 2]

    trace = m00 + m11 + m22
    eps = jnp.finfo(matrix.dtype).eps

    pivots = jnp.stack([
        1.0 + trace,
        1.0 + m00 - m11 - m22,
        1.0 + m11 - m00 - m22,
        1.0 + m22 - m00 - m11,
    ], axis=-1)
    candidates = jnp.stack([
        jnp.stack([pivots[..., 0], m21 - m12, m02 - m20, m10 - m01], axis=-1),
        jnp.stack([m21 - m12, pivots[..., 1], m01 + m10, m02 + m20], axis=-1),
        jnp.stack([m02 - m20, m01 + m10, pivots[..., 2], m12 + m21], axis=-1),
        jnp.stack([m10 - m01, m02 + m20, m12 + m21, pivots[..., 3]], axis=-1),
    ], axis=-2)
    candidates = candidates * (0.5 / jnp.sqrt(jnp.maximum(pivots, eps)))[..., None]

    # trace > 0 selects the w pivot, otherwise the largest diagonal entry
    diag_choice = jnp.argmax(jnp.stack([m00, m11, m22], axis=-1), axis=-1) + 1
    choice = jnp.where(trace > 0, 0, diag_choice)
    q = jnp.take_along_axis(candidates, choice[..., None, None], axis=-2)[..., 0, :]

    q = jnp.where(q[..., 0:1] < 0, -q, q)
    return q / jnp.linalg.norm(q, axis=-1, keepdims=True)
