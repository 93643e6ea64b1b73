"""URDF serialization of a RobotModel.

In-memory meshes cannot be inlined in URDF. When an ArtifactStore is given,
each such mesh is written to it as `<link>.dae` and referenced by that
relative filename; without a store the geometry is dropped with a warning.
"""

import logging
from typing import Optional

import numpy as np
from lxml import etree

from collada_kinematics.artifacts import ArtifactStore
from collada_kinematics.core.robot_model import (
    Box,
    Cylinder,
    Geometry,
    Inertial,
    Joint,
    JointType,
    Link,
    Material,
    Mesh,
    RobotModel,
    Sphere,
)
from collada_kinematics.io.collada_reader import export_link_meshes
from collada_kinematics.transforms import Pose, so3
from collada_kinematics.transforms import pose as pose_ops

console_logger = logging.getLogger(__name__)

Element = etree._Element


def _fmt(values) -> str:
    return " ".join(repr(float(v)) for v in np.asarray(values).reshape(-1))


def _rotation_matrix_to_rpy(R: np.ndarray) -> np.ndarray:
    """Roll, pitch and yaw of a rotation matrix, with R = Rz(yaw) Ry(pitch) Rx(roll)."""
    R = np.asarray(R, dtype=np.float64)
    sy = np.hypot(R[0, 0], R[1, 0])
    if sy > 1e-9:
        roll = np.arctan2(R[2, 1], R[2, 2])
        pitch = np.arctan2(-R[2, 0], sy)
        yaw = np.arctan2(R[1, 0], R[0, 0])
    else:
        # gimbal lock, put everything in roll
        roll = np.arctan2(-R[1, 2], R[1, 1])
        pitch = np.arctan2(-R[2, 0], sy)
        yaw = 0.0
    return np.array([roll, pitch, yaw])


def _write_origin(parent: Element, pose: Pose) -> None:
    if pose_ops.is_identity(pose):
        return
    rpy = _rotation_matrix_to_rpy(np.asarray(so3.from_quaternion(pose.rotation)))
    etree.SubElement(parent, "origin", xyz=_fmt(pose.position), rpy=_fmt(rpy))


def _write_geometry(parent: Element, geometry: Geometry) -> bool:
    if isinstance(geometry, Box):
        shape = etree.Element("box", size=_fmt(geometry.size))
    elif isinstance(geometry, Sphere):
        shape = etree.Element("sphere", radius=repr(float(geometry.radius)))
    elif isinstance(geometry, Cylinder):
        shape = etree.Element("cylinder", radius=repr(float(geometry.radius)), length=repr(float(geometry.length)))
    elif isinstance(geometry, Mesh) and geometry.filename:
        shape = etree.Element("mesh", filename=geometry.filename)
        if tuple(geometry.scale) != (1.0, 1.0, 1.0):
            shape.set("scale", _fmt(geometry.scale))
    else:
        return False
    etree.SubElement(parent, "geometry").append(shape)
    return True


def _write_material(parent: Element, material: Material) -> None:
    element = etree.SubElement(parent, "material", name=material.name)
    if material.color is not None:
        etree.SubElement(element, "color", rgba=_fmt(material.color))
    if material.texture is not None:
        etree.SubElement(element, "texture", filename=material.texture)


def _write_inertial(parent: Element, inertial: Inertial) -> None:
    element = etree.SubElement(parent, "inertial")
    _write_origin(element, inertial.origin)
    etree.SubElement(element, "mass", value=repr(float(inertial.mass)))
    etree.SubElement(element, "inertia", **{
        key: repr(float(getattr(inertial, key))) for key in ("ixx", "ixy", "ixz", "iyy", "iyz", "izz")
    })


def _write_link(robot: Element, link: Link) -> None:
    element = etree.SubElement(robot, "link", name=link.name)
    if link.inertial is not None:
        _write_inertial(element, link.inertial)

    for tag, part in (("visual", link.visual), ("collision", link.collision)):
        if part is None:
            continue
        child = etree.Element(tag)
        if part.name:
            child.set("name", part.name)
        _write_origin(child, pose_ops.multiply(part.origin, part.geometry.origin))
        if not _write_geometry(child, part.geometry):
            console_logger.warning(f"link {link.name}: {tag} geometry has no file reference, skipping it")
            continue
        if tag == "visual" and part.material is not None:
            _write_material(child, part.material)
        element.append(child)


def _write_joint(robot: Element, joint: Joint) -> None:
    element = etree.SubElement(robot, "joint", name=joint.name, type=joint.type.value)
    _write_origin(element, joint.origin)
    etree.SubElement(element, "parent", link=joint.parent)
    etree.SubElement(element, "child", link=joint.child)
    if joint.type != JointType.FIXED:
        etree.SubElement(element, "axis", xyz=_fmt(joint.axis))
    if joint.limits is not None:
        etree.SubElement(
            element, "limit",
            lower=repr(float(joint.limits.lower)),
            upper=repr(float(joint.limits.upper)),
            effort=repr(float(joint.limits.effort)),
            velocity=repr(float(joint.limits.velocity)),
        )
    if joint.mimic is not None:
        etree.SubElement(
            element, "mimic",
            joint=joint.mimic.joint,
            multiplier=repr(float(joint.mimic.multiplier)),
            offset=repr(float(joint.mimic.offset)),
        )


def to_urdf_element(model: RobotModel, artifacts: Optional[ArtifactStore] = None) -> Element:
    """Build the `<robot>` element of a model."""
    if artifacts is not None:
        export_link_meshes(model, artifacts)
    robot = etree.Element("robot", name=model.name)
    for material in model.materials.values():
        _write_material(robot, material)
    for name in model.ordered_links() or list(model.links):
        _write_link(robot, model.links[name])
    for joint in model.joints.values():
        _write_joint(robot, joint)
    return robot


def to_urdf_string(model: RobotModel, artifacts: Optional[ArtifactStore] = None) -> str:
    """Serialize a model as URDF text.

    Args:
        model: The robot to write.
        artifacts: Store receiving `<link>.dae` documents for meshes that
            only exist in memory.

    Returns:
        The URDF document.
    """
    robot = to_urdf_element(model, artifacts)
    return etree.tostring(robot, pretty_print=True, xml_declaration=True, encoding="utf-8").decode("utf-8")
