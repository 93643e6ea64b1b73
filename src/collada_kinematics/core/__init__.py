"""Core robot data structures.

RobotModel is the mutable link/joint tree exchanged by the readers and
writers; KinematicTree is its immutable, JAX-native array form.
"""

from .robot_model import (
    Box,
    Collision,
    Cylinder,
    Geometry,
    Inertial,
    Joint,
    JointLimits,
    JointType,
    Link,
    Material,
    Mesh,
    MeshPart,
    Mimic,
    RobotModel,
    Sphere,
    Visual,
)
from .kinematic_tree import KinematicTree

__all__ = [
    "RobotModel",
    "KinematicTree",
    "Link",
    "Joint",
    "JointType",
    "JointLimits",
    "Mimic",
    "Material",
    "Inertial",
    "Visual",
    "Collision",
    "Geometry",
    "Box",
    "Sphere",
    "Cylinder",
    "Mesh",
    "MeshPart",
]
