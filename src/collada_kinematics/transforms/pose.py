"""Rigid poses: a position plus a unit quaternion.

A Pose is the URDF-side representation of a frame (joint origins, visual and
inertial origins). It is an immutable flax struct so it can be passed through
jit/vmap like any other pytree.
"""

from typing import Sequence

import jax
import jax.numpy as jnp
from flax import struct

from . import quaternion, se3, so3

Array = jax.Array


@struct.dataclass
class Pose:
    """Rigid transform stored as translation and rotation.

    Attributes:
        position: (3,) translation.
        rotation: (4,) unit quaternion in (w, x, y, z) order.
    """
    position: Array
    rotation: Array

    def __repr__(self) -> str:
        p = [round(float(v), 6) for v in self.position]
        q = [round(float(v), 6) for v in self.rotation]
        return f"Pose(position={p}, rotation={q})"


def identity() -> Pose:
    """The identity pose."""
    return Pose(position=jnp.zeros(3), rotation=quaternion.identity())


def from_position_and_quaternion(position: Sequence[float], rotation: Sequence[float]) -> Pose:
    """Build a pose, renormalizing the rotation."""
    return Pose(
        position=jnp.asarray(position, dtype=jnp.float64),
        rotation=quaternion.normalize(jnp.asarray(rotation, dtype=jnp.float64)),
    )


def from_matrix(T: Array) -> Pose:
    """
    Pose of a homogeneous transform.

    Any scale in the 3x3 block is discarded; use `se3.decompose_scale` first
    when the scale matters.
    """
    R = so3.orthonormalize(se3.get_rotation(T))
    return Pose(position=se3.get_position(T), rotation=so3.to_quaternion(R))


def to_matrix(pose: Pose) -> Array:
    """Homogeneous 4x4 matrix of a pose."""
    return se3.from_position_and_rotation(pose.position, so3.from_quaternion(pose.rotation))


def multiply(p0: Pose, p1: Pose) -> Pose:
    """
    Compose two poses: p1 expressed in the frame of p0.

    The result applies p1 first and then p0, i.e. to_matrix(p0) @ to_matrix(p1).
    """
    return Pose(
        position=p0.position + quaternion.rotate(p0.rotation, p1.position),
        rotation=quaternion.normalize(quaternion.multiply(p0.rotation, p1.rotation)),
    )


def inverse(pose: Pose) -> Pose:
    """Inverse pose."""
    q_inv = quaternion.conjugate(pose.rotation)
    return Pose(position=-quaternion.rotate(q_inv, pose.position), rotation=q_inv)


def apply(pose: Pose, points: Array) -> Array:
    """Transform (3,) or (N, 3) points by a pose."""
    return pose.position + quaternion.rotate(pose.rotation, jnp.asarray(points, dtype=jnp.float64))


def rotate(pose: Pose, vectors: Array) -> Array:
    """Rotate (3,) or (N, 3) vectors by the rotation part of a pose."""
    return quaternion.rotate(pose.rotation, jnp.asarray(vectors, dtype=jnp.float64))


def is_identity(pose: Pose, atol: float = 1e-10) -> bool:
    """Whether a pose is the identity within tolerance."""
    q = jnp.where(pose.rotation[0] < 0, -pose.rotation, pose.rotation)
    return bool(
        jnp.all(jnp.abs(pose.position) < atol)
        and jnp.all(jnp.abs(q - quaternion.identity()) < atol)
    )
