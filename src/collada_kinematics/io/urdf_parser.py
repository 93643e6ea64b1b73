"""URDF parser for loading robot models into RobotModel trees.

This module reads links, joints, materials and geometry from URDF XML and
builds the same RobotModel the COLLADA reader produces, so either source can
be written out with the COLLADA writer.
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Union

import jax.numpy as jnp
import numpy as np
from lxml import etree

from collada_kinematics.core.robot_model import (
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
    Mimic,
    RobotModel,
    Sphere,
    Visual,
)
from collada_kinematics.transforms import Pose, so3
from collada_kinematics.transforms import pose as pose_ops

console_logger = logging.getLogger(__name__)

Element = etree._Element


def load_urdf(urdf_path: Union[str, Path]) -> RobotModel:
    """Load a URDF file and convert it to a RobotModel.

    Args:
        urdf_path: Path to the URDF file to load.

    Returns:
        RobotModel: The finalized link/joint tree.
    """
    # Parse the URDF XML file
    tree = etree.parse(str(urdf_path))
    return _build_model(tree.getroot())


def parse_urdf(text: Union[str, bytes]) -> RobotModel:
    """Parse URDF XML text into a RobotModel."""
    if isinstance(text, str):
        text = text.encode("utf-8")
    return _build_model(etree.fromstring(text))


def _floats(text: Optional[str], default: str) -> np.ndarray:
    return np.array([float(x) for x in (text or default).split()])


def _parse_origin(parent: Element) -> Pose:
    origin_elem = parent.find("origin")
    if origin_elem is None:
        return pose_ops.identity()
    xyz = _floats(origin_elem.get("xyz"), "0 0 0")
    rpy = _floats(origin_elem.get("rpy"), "0 0 0")

    # Convert RPY to rotation matrix
    R = _rpy_to_rotation_matrix(rpy)
    return pose_ops.from_position_and_quaternion(xyz, so3.to_quaternion(jnp.asarray(R)))


def _parse_material(material_elem: Element) -> Material:
    color_elem = material_elem.find("color")
    texture_elem = material_elem.find("texture")
    color = tuple(_floats(color_elem.get("rgba"), "0 0 0 0")) if color_elem is not None else None
    return Material(
        name=material_elem.get("name", ""),
        color=color,
        texture=texture_elem.get("filename") if texture_elem is not None else None,
    )


def _parse_geometry(parent: Element) -> Optional[Geometry]:
    geometry_elem = parent.find("geometry")
    if geometry_elem is None:
        return None
    for shape in geometry_elem:
        if not isinstance(shape.tag, str):
            continue
        if shape.tag == "box":
            return Box(size=tuple(_floats(shape.get("size"), "0 0 0")))
        if shape.tag == "sphere":
            return Sphere(radius=float(shape.get("radius", 0.0)))
        if shape.tag == "cylinder":
            return Cylinder(radius=float(shape.get("radius", 0.0)), length=float(shape.get("length", 0.0)))
        if shape.tag == "mesh":
            return Mesh(filename=shape.get("filename"), scale=tuple(_floats(shape.get("scale"), "1 1 1")))
        console_logger.warning(f"unknown geometry type <{shape.tag}>")
    return None


def _parse_inertial(inertial_elem: Element) -> Inertial:
    mass_elem = inertial_elem.find("mass")
    inertia_elem = inertial_elem.find("inertia")
    values = {}
    if inertia_elem is not None:
        values = {key: float(inertia_elem.get(key, 0.0)) for key in ("ixx", "ixy", "ixz", "iyy", "iyz", "izz")}
    return Inertial(
        origin=_parse_origin(inertial_elem),
        mass=float(mass_elem.get("value", 0.0)) if mass_elem is not None else 0.0,
        **values,
    )


def _parse_link(link_elem: Element, materials: Dict[str, Material]) -> Link:
    link = Link(name=link_elem.get("name"))

    inertial_elem = link_elem.find("inertial")
    if inertial_elem is not None:
        link.inertial = _parse_inertial(inertial_elem)

    visual_elem = link_elem.find("visual")
    if visual_elem is not None:
        geometry = _parse_geometry(visual_elem)
        if geometry is not None:
            material = None
            material_elem = visual_elem.find("material")
            if material_elem is not None:
                material = _parse_material(material_elem)
                if material.color is None and material.name in materials:
                    material = materials[material.name]
            link.visual = Visual(
                geometry=geometry,
                origin=_parse_origin(visual_elem),
                material=material,
                name=visual_elem.get("name"),
            )

    collision_elem = link_elem.find("collision")
    if collision_elem is not None:
        geometry = _parse_geometry(collision_elem)
        if geometry is not None:
            link.collision = Collision(
                geometry=geometry,
                origin=_parse_origin(collision_elem),
                name=collision_elem.get("name"),
            )
    return link


def _parse_joint(joint_elem: Element) -> Joint:
    joint_name = joint_elem.get("name")
    try:
        joint_type = JointType(joint_elem.get("type"))
    except ValueError as e:
        raise ValueError(f"Joint {joint_name} has unknown type {joint_elem.get('type')}") from e

    parent_elem = joint_elem.find("parent")
    child_elem = joint_elem.find("child")
    if parent_elem is None or child_elem is None:
        raise ValueError(f"Joint {joint_name} needs both <parent> and <child>")

    joint = Joint(
        name=joint_name,
        type=joint_type,
        parent=parent_elem.get("link"),
        child=child_elem.get("link"),
        origin=_parse_origin(joint_elem),
    )

    # Parse joint axis, URDF default is x
    axis_elem = joint_elem.find("axis")
    if axis_elem is not None:
        joint.axis = _floats(axis_elem.get("xyz"), "1 0 0")

    limit_elem = joint_elem.find("limit")
    if limit_elem is not None:
        joint.limits = JointLimits(
            lower=float(limit_elem.get("lower", 0.0)),
            upper=float(limit_elem.get("upper", 0.0)),
            velocity=float(limit_elem.get("velocity", 0.0)),
            effort=float(limit_elem.get("effort", 0.0)),
        )

    mimic_elem = joint_elem.find("mimic")
    if mimic_elem is not None:
        joint.mimic = Mimic(
            joint=mimic_elem.get("joint"),
            multiplier=float(mimic_elem.get("multiplier", 1.0)),
            offset=float(mimic_elem.get("offset", 0.0)),
        )
    return joint


def _build_model(root: Element) -> RobotModel:
    if root.tag != "robot":
        raise ValueError(f"Expected a <robot> root element, found <{root.tag}>")
    model = RobotModel(name=root.get("name", ""))

    # Shared materials are declared at the top level
    for material_elem in root.findall("material"):
        material = _parse_material(material_elem)
        model.materials[material.name] = material

    for link_elem in root.findall("link"):
        model.add_link(_parse_link(link_elem, model.materials))
    for joint_elem in root.findall("joint"):
        model.add_joint(_parse_joint(joint_elem))

    model.finalize()
    console_logger.debug(f"parsed URDF robot {model.name}")
    return model


def _rpy_to_rotation_matrix(rpy: np.ndarray) -> np.ndarray:
    """Convert roll-pitch-yaw angles to rotation matrix.

    Args:
        rpy: Array of [roll, pitch, yaw] angles in radians.

    Returns:
        3x3 rotation matrix.
    """
    roll, pitch, yaw = rpy

    # Individual rotation matrices
    R_x = np.array([
        [1, 0, 0],
        [0, np.cos(roll), -np.sin(roll)],
        [0, np.sin(roll), np.cos(roll)]
    ])

    R_y = np.array([
        [np.cos(pitch), 0, np.sin(pitch)],
        [0, 1, 0],
        [-np.sin(pitch), 0, np.cos(pitch)]
    ])

    R_z = np.array([
        [np.cos(yaw), -np.sin(yaw), 0],
        [np.sin(yaw), np.cos(yaw), 0],
        [0, 0, 1]
    ])

    # Combined rotation: R = R_z * R_y * R_x
    return R_z @ R_y @ R_x
