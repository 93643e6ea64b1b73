"""
JAX-based transforms used by the COLLADA reader and writer.

- so3: rotation matrices
- se3: homogeneous 4x4 transforms, including scale decomposition
- quaternion: (w, x, y, z) quaternions
- pose: rigid poses (position + quaternion)
"""

from . import so3
from . import se3
from . import quaternion
from . import pose
from .pose import Pose

__all__ = [
    "so3",
    "se3",
    "quaternion",
    "pose",
    "Pose",
]
