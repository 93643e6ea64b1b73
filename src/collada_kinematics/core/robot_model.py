"""Link/joint tree of an articulated robot.

This module defines the URDF-shaped robot description produced by the COLLADA
reader and consumed by the COLLADA and URDF writers. Links and joints are
plain mutable dataclasses: the reader creates every entity in one traversal
and then fills in mimic relations before the tree is validated.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

import numpy as np

from collada_kinematics.errors import AmbiguousOrMissingRoot, MalformedDocument
from collada_kinematics.geometry.tessellation import (
    tessellate_box,
    tessellate_cylinder,
    tessellate_sphere,
)
from collada_kinematics.transforms import Pose
from collada_kinematics.transforms import pose as pose_ops

console_logger = logging.getLogger(__name__)

Color = Tuple[float, float, float, float]
TriangleMesh = Tuple[np.ndarray, np.ndarray]


class JointType(str, Enum):
    REVOLUTE = "revolute"
    CONTINUOUS = "continuous"
    PRISMATIC = "prismatic"
    FIXED = "fixed"
    FLOATING = "floating"
    PLANAR = "planar"


@dataclass
class JointLimits:
    lower: float = 0.0
    upper: float = 0.0
    velocity: float = 0.0
    effort: float = 0.0


@dataclass
class Mimic:
    """Joint follows `multiplier * joint + offset`."""
    joint: str
    multiplier: float = 1.0
    offset: float = 0.0


@dataclass
class Material:
    name: str
    color: Optional[Color] = None
    texture: Optional[str] = None


def _empty_mesh() -> TriangleMesh:
    return np.zeros((0, 3)), np.zeros(0, dtype=np.int64)


@dataclass
class Geometry:
    """Base class of the geometry variants.

    Attributes:
        origin: Pose of the geometry in its visual or collision frame.
        diffuse_color: Optional RGBA hint taken from the source material.
        ambient_color: Optional RGBA hint taken from the source material.
    """
    origin: Pose = field(default_factory=pose_ops.identity)
    diffuse_color: Optional[Color] = None
    ambient_color: Optional[Color] = None
    _collision: Optional[TriangleMesh] = field(default=None, init=False, repr=False, compare=False)

    def collision_mesh(self, tessellation: float = 1.0) -> TriangleMesh:
        """Triangle soup of the geometry in its own frame, computed once."""
        if self._collision is None:
            self._collision = self._tessellate(tessellation)
        return self._collision

    def invalidate(self) -> None:
        """Drop the cached triangle soup after the shape was changed."""
        self._collision = None

    def _tessellate(self, tessellation: float) -> TriangleMesh:
        return _empty_mesh()


@dataclass
class Box(Geometry):
    size: Tuple[float, float, float] = (0.0, 0.0, 0.0)

    def _tessellate(self, tessellation: float) -> TriangleMesh:
        return tessellate_box(0.5 * np.asarray(self.size, dtype=np.float64))


@dataclass
class Sphere(Geometry):
    radius: float = 0.0

    def _tessellate(self, tessellation: float) -> TriangleMesh:
        return tessellate_sphere(self.radius, tessellation)


@dataclass
class Cylinder(Geometry):
    radius: float = 0.0
    length: float = 0.0

    def _tessellate(self, tessellation: float) -> TriangleMesh:
        return tessellate_cylinder(self.radius, self.length, tessellation)


@dataclass
class MeshPart:
    """One colored triangle group of a combined mesh."""
    vertices: np.ndarray
    indices: np.ndarray
    ambient_color: Optional[Color] = None
    diffuse_color: Optional[Color] = None


@dataclass
class Mesh(Geometry):
    """Triangle mesh, either held in memory or referenced by filename.

    Attributes:
        vertices: (N, 3) positions, or None for a file-only mesh.
        indices: (3M,) triangle indices.
        filename: URI of the mesh file, if any.
        scale: Per-axis scale applied to the vertices.
        parts: Colored groups making up `vertices`/`indices`, if known.
    """
    vertices: Optional[np.ndarray] = None
    indices: Optional[np.ndarray] = None
    filename: Optional[str] = None
    scale: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    parts: List[MeshPart] = field(default_factory=list)

    @property
    def has_buffers(self) -> bool:
        return self.vertices is not None and len(self.vertices) > 0

    def _tessellate(self, tessellation: float) -> TriangleMesh:
        if not self.has_buffers:
            return _empty_mesh()
        vertices = np.asarray(self.vertices, dtype=np.float64) * np.asarray(self.scale, dtype=np.float64)
        return vertices, np.asarray(self.indices, dtype=np.int64)

    @classmethod
    def from_parts(cls, parts: List[MeshPart], **kwargs) -> "Mesh":
        """Concatenate colored groups into a single mesh."""
        vertices, indices, offset = [], [], 0
        for part in parts:
            vertices.append(np.asarray(part.vertices, dtype=np.float64).reshape(-1, 3))
            indices.append(np.asarray(part.indices, dtype=np.int64) + offset)
            offset += len(vertices[-1])
        return cls(
            vertices=np.concatenate(vertices) if vertices else np.zeros((0, 3)),
            indices=np.concatenate(indices) if indices else np.zeros(0, dtype=np.int64),
            parts=list(parts),
            **kwargs,
        )


@dataclass
class Inertial:
    origin: Pose = field(default_factory=pose_ops.identity)
    mass: float = 0.0
    ixx: float = 0.0
    ixy: float = 0.0
    ixz: float = 0.0
    iyy: float = 0.0
    iyz: float = 0.0
    izz: float = 0.0

    def tensor(self) -> np.ndarray:
        """Symmetric 3x3 inertia matrix."""
        return np.array([
            [self.ixx, self.ixy, self.ixz],
            [self.ixy, self.iyy, self.iyz],
            [self.ixz, self.iyz, self.izz],
        ])


@dataclass
class Visual:
    geometry: Geometry
    origin: Pose = field(default_factory=pose_ops.identity)
    material: Optional[Material] = None
    name: Optional[str] = None


@dataclass
class Collision:
    geometry: Geometry
    origin: Pose = field(default_factory=pose_ops.identity)
    name: Optional[str] = None


@dataclass
class Link:
    name: str
    inertial: Optional[Inertial] = None
    visual: Optional[Visual] = None
    collision: Optional[Collision] = None


@dataclass
class Joint:
    """Joint between two links.

    Attributes:
        name: Unique joint name.
        type: Joint type.
        parent: Name of the parent link.
        child: Name of the child link.
        origin: Pose of the joint frame in the parent link frame.
        axis: (3,) unit axis in the joint frame.
        limits: Position, velocity and effort limits, if any.
        mimic: Mimic relation, if any.
    """
    name: str
    type: JointType
    parent: str
    child: str
    origin: Pose = field(default_factory=pose_ops.identity)
    axis: np.ndarray = field(default_factory=lambda: np.array([1.0, 0.0, 0.0]))
    limits: Optional[JointLimits] = None
    mimic: Optional[Mimic] = None


@dataclass
class RobotModel:
    """Named tree of links connected by joints.

    Attributes:
        name: Robot name.
        links: Links by name, in creation order.
        joints: Joints by name, in creation order.
        materials: Named materials shared between visuals.
        root: Name of the root link, set by `init_root`.
    """
    name: str = ""
    links: Dict[str, Link] = field(default_factory=dict)
    joints: Dict[str, Joint] = field(default_factory=dict)
    materials: Dict[str, Material] = field(default_factory=dict)
    root: Optional[str] = None
    _parent_joint: Dict[str, str] = field(default_factory=dict, repr=False)
    _child_joints: Dict[str, List[str]] = field(default_factory=dict, repr=False)

    def add_link(self, link: Link) -> Link:
        if link.name in self.links:
            raise ValueError(f"Duplicate link name: {link.name}")
        self.links[link.name] = link
        return link

    def add_joint(self, joint: Joint) -> Joint:
        if joint.name in self.joints:
            raise ValueError(f"Duplicate joint name: {joint.name}")
        self.joints[joint.name] = joint
        return joint

    def get_link(self, name: str) -> Optional[Link]:
        return self.links.get(name)

    def get_joint(self, name: str) -> Optional[Joint]:
        return self.joints.get(name)

    def get_or_create_link(self, name: str) -> Link:
        link = self.links.get(name)
        if link is None:
            link = self.add_link(Link(name=name))
        return link

    def init_tree(self) -> None:
        """Index parent and child joints, rejecting links with two parents.

        Raises:
            MalformedDocument: A joint names a link that does not exist.
            AmbiguousOrMissingRoot: A link is the child of more than one joint.
        """
        self._parent_joint = {}
        self._child_joints = {name: [] for name in self.links}
        for joint in self.joints.values():
            for link_name in (joint.parent, joint.child):
                if link_name not in self.links:
                    raise MalformedDocument(f"Joint {joint.name} references unknown link {link_name}")
            if joint.child in self._parent_joint:
                raise AmbiguousOrMissingRoot(
                    f"Link {joint.child} has two parent joints: "
                    f"{self._parent_joint[joint.child]} and {joint.name}"
                )
            self._parent_joint[joint.child] = joint.name
            self._child_joints[joint.parent].append(joint.name)

    def init_root(self) -> str:
        """Find the unique root link and check every link is reachable from it.

        Raises:
            AmbiguousOrMissingRoot: There are zero or several roots, or a cycle.
        """
        roots = [name for name in self.links if name not in self._parent_joint]
        if len(roots) != 1:
            raise AmbiguousOrMissingRoot(f"Expected exactly one root link, found: {roots}")
        self.root = roots[0]
        reached = self.ordered_links()
        if len(reached) != len(self.links):
            unreachable = sorted(set(self.links) - set(reached))
            raise AmbiguousOrMissingRoot(f"Links not reachable from root {self.root}: {unreachable}")
        return self.root

    def parent_joint(self, link_name: str) -> Optional[Joint]:
        name = self._parent_joint.get(link_name)
        return self.joints[name] if name is not None else None

    def child_joints(self, link_name: str) -> List[Joint]:
        return [self.joints[name] for name in self._child_joints.get(link_name, [])]

    def ordered_links(self) -> List[str]:
        """Link names in breadth-first order from the root."""
        if self.root is None:
            return []
        ordered = []
        visited = set()
        queue = deque([self.root])
        while queue:
            current = queue.popleft()
            if current in visited:
                continue
            visited.add(current)
            ordered.append(current)
            for joint in self.child_joints(current):
                if joint.child not in visited:
                    queue.append(joint.child)
        return ordered

    def finalize(self) -> "RobotModel":
        """Run `init_tree` and `init_root`."""
        self.init_tree()
        self.init_root()
        console_logger.debug(f"robot {self.name}: {len(self.links)} links, {len(self.joints)} joints, root {self.root}")
        return self
