"""COLLADA 1.5 scene writer for a RobotModel.

The writer emits one visual node per link, one kinematics model holding the
joints and the nested link/attachment tree, a motion and a kinematics
articulated system wrapping it, and a physics model with one rigid body per
link. The kinematics scene instance binds every joint axis to the `rotate` or
`translate` element of its child node through a chain of newparam SIDREFs.

Ids follow a fixed scheme (`kmodel0`, `visual0`, `vkmodel0_node<i>`,
`gkmodel0_<link>_geom0`, ...) so writing the same model twice gives the same
document apart from the asset timestamps.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
from lxml import etree

from collada_kinematics.chain import link_poses
from collada_kinematics.config import ConversionOptions, DEFAULT_OPTIONS
from collada_kinematics.core.robot_model import (
    Box,
    Cylinder,
    Geometry,
    JointType,
    Link,
    Material,
    Mesh,
    RobotModel,
    Sphere,
)
from collada_kinematics.errors import UnsupportedShape
from collada_kinematics.geometry.tessellation import tessellate_box, tessellate_cylinder, tessellate_sphere
from collada_kinematics.inertia import principal_frame
from collada_kinematics.io.collada_document import COLLADA_NAMESPACE, local_name
from collada_kinematics.io.mesh_import import load_mesh
from collada_kinematics.transforms import Pose, quaternion
from collada_kinematics.transforms import pose as pose_ops

console_logger = logging.getLogger(__name__)

Element = etree._Element
Color = Tuple[float, float, float, float]

COLLADA14_NAMESPACE = "http://www.collada.org/2005/11/COLLADASchema"
MATHML_NAMESPACE = "http://www.w3.org/1998/Math/MathML"
AUTHORING_TOOL = "collada_kinematics"

DEFAULT_AMBIENT: Color = (0.1, 0.1, 0.1, 0.0)
DEFAULT_DIFFUSE: Color = (1.0, 1.0, 1.0, 0.0)


def compute_id(name: str) -> str:
    """COLLADA-safe id or sid for a URDF name: `/`, space and `.` become `_`."""
    return name.replace("/", "_").replace(" ", "_").replace(".", "_")


def format_floats(values: Sequence[float]) -> str:
    return " ".join(repr(float(v)) for v in values)


def _sub(parent: Element, tag: str, text: Optional[str] = None, /,
         namespace: str = COLLADA_NAMESPACE, **attrib) -> Element:
    element = etree.SubElement(parent, f"{{{namespace}}}{tag}", {k: str(v) for k, v in attrib.items()})
    if text is not None:
        element.text = text
    return element


def _transform_index(element: Element) -> int:
    index = 0
    for child in element:
        if isinstance(child.tag, str) and local_name(child) == "asset":
            index += 1
        else:
            break
    return index


def write_transformation(element: Element, pose: Pose) -> None:
    """Prepend a `translate` and `rotate` pair for `pose` to the transforms of `element`.

    The rotation is written as axis plus angle in degrees, with the identity
    written as `1 0 0 0`.
    """
    axis, angle = quaternion.to_axis_angle(pose.rotation)
    namespace = etree.QName(element).namespace or COLLADA_NAMESPACE
    translate = etree.Element(f"{{{namespace}}}translate")
    translate.text = format_floats(np.asarray(pose.position))
    rotate = etree.Element(f"{{{namespace}}}rotate")
    rotate.text = format_floats(list(np.asarray(axis)) + [math.degrees(float(angle))])
    index = _transform_index(element)
    element.insert(index, rotate)
    element.insert(index, translate)


def _shape_triangles(geometry: Geometry, options: ConversionOptions,
                     base_dir: Optional[Path]) -> List[Tuple[np.ndarray, np.ndarray]]:
    if isinstance(geometry, Mesh):
        if geometry.has_buffers:
            vertices = np.asarray(geometry.vertices, dtype=np.float64) * np.asarray(geometry.scale)
            return [(vertices, np.asarray(geometry.indices, dtype=np.int64))]
        if geometry.filename:
            return [(v, f.reshape(-1)) for v, f in load_mesh(geometry.filename, geometry.scale, base_dir)]
        return []
    if isinstance(geometry, Box):
        return [tessellate_box(0.5 * np.asarray(geometry.size, dtype=np.float64))]
    if isinstance(geometry, Sphere):
        return [tessellate_sphere(geometry.radius, options.tessellation)]
    if isinstance(geometry, Cylinder):
        return [tessellate_cylinder(geometry.radius, geometry.length, options.writer_cylinder_tessellation)]
    raise UnsupportedShape(f"undefined geometry type {type(geometry).__name__}")


def _triangles(geometry: Geometry, options: ConversionOptions,
               base_dir: Optional[Path]) -> List[Tuple[np.ndarray, np.ndarray]]:
    """Triangle groups of a geometry in its visual or collision frame."""
    groups = _shape_triangles(geometry, options, base_dir)
    if pose_ops.is_identity(geometry.origin):
        return groups
    return [(np.asarray(pose_ops.apply(geometry.origin, v)), f) if len(v) else (v, f) for v, f in groups]


def joint_range(joint) -> Tuple[float, float]:
    """Position limits of a joint in radians or meters; fixed and unlimited joints give (0, 0)."""
    if joint.type == JointType.FIXED or joint.limits is None:
        return 0.0, 0.0
    return float(joint.limits.lower), float(joint.limits.upper)


def _write_mesh(parent: Element, geometry_id: str, groups: List[Tuple[np.ndarray, np.ndarray]],
                material_symbol: str, namespace: str = COLLADA_NAMESPACE) -> Element:
    """Write `<mesh>` with one position source and one `<triangles>` per group."""
    vertices = np.concatenate([v.reshape(-1, 3) for v, _ in groups]) if groups else np.zeros((0, 3))
    mesh = _sub(parent, "mesh", namespace=namespace)
    source = _sub(mesh, "source", namespace=namespace, id=f"{geometry_id}_positions")
    _sub(source, "float_array", format_floats(vertices.reshape(-1)), namespace=namespace,
         id=f"{geometry_id}_positions-array", count=vertices.size)
    technique = _sub(source, "technique_common", namespace=namespace)
    accessor = _sub(technique, "accessor", namespace=namespace,
                    source=f"#{geometry_id}_positions-array", count=len(vertices), stride=3)
    for axis in "XYZ":
        _sub(accessor, "param", namespace=namespace, name=axis, type="float")
    vertices_el = _sub(mesh, "vertices", namespace=namespace, id=f"{geometry_id}_vertices")
    _sub(vertices_el, "input", namespace=namespace, semantic="POSITION", source=f"#{geometry_id}_positions")

    offset = 0
    for group_vertices, indices in groups:
        indices = np.asarray(indices, dtype=np.int64).reshape(-1)
        if len(indices):
            triangles = _sub(mesh, "triangles", namespace=namespace, count=len(indices) // 3, material=material_symbol)
            _sub(triangles, "input", namespace=namespace, semantic="VERTEX", offset=0, source=f"#{geometry_id}_vertices")
            _sub(triangles, "p", " ".join(str(int(i)) for i in indices + offset), namespace=namespace)
        offset += len(group_vertices.reshape(-1, 3))
    return mesh


def _write_effect(library: Element, effect_id: str, ambient: Color, diffuse: Color,
                  namespace: str = COLLADA_NAMESPACE) -> Element:
    effect = _sub(library, "effect", namespace=namespace, id=effect_id)
    profile = _sub(effect, "profile_COMMON", namespace=namespace)
    technique = _sub(profile, "technique", namespace=namespace, sid="common")
    phong = _sub(technique, "phong", namespace=namespace)
    _sub(_sub(phong, "ambient", namespace=namespace), "color", format_floats(ambient), namespace=namespace)
    _sub(_sub(phong, "diffuse", namespace=namespace), "color", format_floats(diffuse), namespace=namespace)
    return effect


def write_mesh_document(mesh: Mesh, name: str) -> bytes:
    """Standalone COLLADA 1.4.1 document holding the triangles of a mesh.

    Each colored part of the mesh gets its own material, effect and
    geometry, all instantiated by a single node named `name`.

    Returns:
        The serialized document.
    """
    ns = COLLADA14_NAMESPACE
    root = etree.Element(f"{{{ns}}}COLLADA", nsmap={None: ns}, version="1.4.1")
    asset = _sub(root, "asset", namespace=ns)
    contributor = _sub(asset, "contributor", namespace=ns)
    _sub(contributor, "authoring_tool", AUTHORING_TOOL, namespace=ns)
    _sub(asset, "unit", namespace=ns, name="meter", meter="1.0")
    _sub(asset, "up_axis", "Z_UP", namespace=ns)

    parts = mesh.parts or [None]
    materials = _sub(root, "library_materials", namespace=ns)
    effects = _sub(root, "library_effects", namespace=ns)
    geometries = _sub(root, "library_geometries", namespace=ns)
    scenes = _sub(root, "library_visual_scenes", namespace=ns)
    vscene = _sub(scenes, "visual_scene", namespace=ns, id="VisualSceneNode", name=name)
    node = _sub(vscene, "node", namespace=ns, id=compute_id(name), name=name, type="NODE")

    for i, part in enumerate(parts):
        if part is None:
            vertices, indices = np.asarray(mesh.vertices), np.asarray(mesh.indices)
            ambient, diffuse = None, None
        else:
            vertices, indices = np.asarray(part.vertices), np.asarray(part.indices)
            ambient, diffuse = part.ambient_color, part.diffuse_color
        material_id = f"{compute_id(name)}_mat{i}"
        effect_id = f"{compute_id(name)}_eff{i}"
        geometry_id = f"{compute_id(name)}_geom{i}"

        material = _sub(materials, "material", namespace=ns, id=material_id, name=material_id)
        _sub(material, "instance_effect", namespace=ns, url=f"#{effect_id}")
        _write_effect(effects, effect_id, ambient or (0.0, 0.0, 0.0, 1.0), diffuse or (0.0, 0.0, 0.0, 1.0), namespace=ns)

        geometry = _sub(geometries, "geometry", namespace=ns, id=geometry_id, name=geometry_id)
        _write_mesh(geometry, geometry_id, [(vertices, indices)], "mat0", namespace=ns)

        instance = _sub(node, "instance_geometry", namespace=ns, url=f"#{geometry_id}")
        bind = _sub(_sub(instance, "bind_material", namespace=ns), "technique_common", namespace=ns)
        _sub(bind, "instance_material", namespace=ns, symbol="mat0", target=f"#{material_id}")

    scene = _sub(root, "scene", namespace=ns)
    _sub(scene, "instance_visual_scene", namespace=ns, url="#VisualSceneNode")
    return etree.tostring(root, xml_declaration=True, encoding="utf-8", pretty_print=True)


@dataclass
class _AxisOutput:
    """Per-joint sids gathered while writing, used by the bindings."""
    joint: str
    axis_ref: str
    ikm_sid: str = ""
    value_sid: str = ""
    node_target: str = ""


class ColladaWriter:
    """Writes a RobotModel as a COLLADA 1.5 kinematics scene.

    Args:
        model: A finalized RobotModel.
        options: Conversion options.
        base_dir: Directory relative mesh filenames are resolved against.
    """

    def __init__(self, model: RobotModel, options: Optional[ConversionOptions] = None,
                 base_dir: Optional[Union[str, Path]] = None):
        self.model = model
        self.options = options or DEFAULT_OPTIONS
        self.base_dir = Path(base_dir) if base_dir is not None else None
        self.kmodel_id = compute_id("kmodel0")
        self.visual_id = compute_id("visual0")
        self._link_indices: Dict[str, int] = {}
        self._axes: List[_AxisOutput] = []

    def write(self) -> Element:
        """Build the document.

        Returns:
            The `COLLADA` root element.
        """
        if self.model.root is None:
            self.model.finalize()
        console_logger.debug(f"writing robot {self.model.name}")

        root = etree.Element(f"{{{COLLADA_NAMESPACE}}}COLLADA",
                             nsmap={None: COLLADA_NAMESPACE, "math": MATHML_NAMESPACE}, version="1.5.0")
        self._write_asset(root)
        self.libraries = {
            tag: _sub(root, tag, id=library_id)
            for tag, library_id in (
                ("library_visual_scenes", "vscenes"),
                ("library_geometries", "geometries"),
                ("library_effects", "effects"),
                ("library_materials", "materials"),
                ("library_kinematics_models", "kmodels"),
                ("library_articulated_systems", "asystems"),
                ("library_kinematics_scenes", "kscenes"),
                ("library_physics_scenes", "pscenes"),
                ("library_physics_models", "pmodels"),
            )
        }
        vscene = _sub(self.libraries["library_visual_scenes"], "visual_scene", id="vscene", name="URDF Visual Scene")
        kscene = _sub(self.libraries["library_kinematics_scenes"], "kinematics_scene", id="kscene", name="URDF Kinematics Scene")
        pscene = _sub(self.libraries["library_physics_scenes"], "physics_scene", id="pscene", name="URDF Physics Scene")

        self._link_indices = {name: i for i, name in enumerate(sorted(self.model.links))}
        self._axes = []
        ias, ikm = self._write_robot(vscene, kscene)
        self._write_physics(pscene)

        scene = _sub(root, "scene")
        _sub(scene, "instance_physics_scene", url=f"#{pscene.get('id')}")
        _sub(scene, "instance_visual_scene", url=f"#{vscene.get('id')}")
        kscene_instance = _sub(scene, "instance_kinematics_scene", url=f"#{kscene.get('id')}")
        self._write_scene_bindings(kscene_instance, kscene, ikm)

        sensors = _sub(root, "extra", id="sensors", type="library_sensors")
        _sub(sensors, "technique", profile="OpenRAVE")
        return root

    def _write_asset(self, root: Element) -> None:
        now = datetime.now().isoformat(timespec="seconds")
        asset = _sub(root, "asset")
        contributor = _sub(asset, "contributor")
        _sub(contributor, "authoring_tool", AUTHORING_TOOL)
        _sub(asset, "created", now)
        _sub(asset, "modified", now)
        _sub(asset, "unit", name="meter", meter="1")
        _sub(asset, "up_axis", "Z_UP")

    # ------------------------------------------------------------------
    # kinematics

    def _write_robot(self, vscene: Element, kscene: Element) -> Tuple[Element, Element]:
        asid = compute_id("robot0")
        askid = compute_id(f"{asid}_kinematics")
        asmid = compute_id(f"{asid}_motion")
        iassid = compute_id(f"{asmid}_inst")

        ias = _sub(kscene, "instance_articulated_system", sid=iassid, url=f"#{asmid}", name=self.model.name)

        systems = self.libraries["library_articulated_systems"]
        motion_system = _sub(systems, "articulated_system", id=asmid)
        motion = _sub(motion_system, "motion")
        ias_motion = _sub(motion, "instance_articulated_system", url=f"#{askid}")
        motion_technique = _sub(motion, "technique_common")

        kinematics_system = _sub(systems, "articulated_system", id=askid)
        kinematics = _sub(kinematics_system, "kinematics")

        self._write_kinematics_model(vscene)
        ikm = self._write_instance_kinematics_model(kinematics, askid)
        kinematics_technique = _sub(kinematics, "technique_common")

        for index, axis in enumerate(self._axes):
            joint = self.model.joints[axis.joint]
            axis_info_sid = compute_id(f"axis_info_inst{index}")
            kai = _sub(kinematics_technique, "axis_info", axis=f"{self.kmodel_id}/{axis.axis_ref}", sid=axis_info_sid)
            active = joint.mimic is None
            if joint.type != JointType.CONTINUOUS:
                lower, upper = joint_range(joint)
                if lower == upper:
                    active = False
                scale = 1.0 if joint.type == JointType.PRISMATIC else 180.0 / math.pi
                limits = _sub(kai, "limits")
                _sub(_sub(limits, "min"), "float", repr(lower * scale))
                _sub(_sub(limits, "max"), "float", repr(upper * scale))
            _sub(_sub(kai, "active"), "bool", "true" if active else "false")
            _sub(_sub(kai, "locked"), "bool", "false")

            mai = _sub(motion_technique, "axis_info", axis=f"{askid}/{axis_info_sid}")
            if joint.limits is not None:
                _sub(_sub(mai, "speed"), "float", repr(float(joint.limits.velocity)))
                _sub(_sub(mai, "acceleration"), "float", repr(float(joint.limits.effort)))

        asmsym = compute_id(f"{asmid}_{ikm.get('sid')}")
        self._model_symbol = compute_id(f"{kscene.get('id')}_{ikm.get('sid')}")
        newparam = _sub(ias_motion, "newparam", sid=asmsym)
        _sub(newparam, "SIDREF", f"{askid}/{self._model_param}")
        bind = _sub(ias, "bind", symbol=self._model_symbol)
        _sub(bind, "param", ref=f"{asmid}/{asmsym}")

        for axis in self._axes:
            for kind in ("ikm_sid", "value_sid"):
                sid = getattr(axis, kind)
                newparam = _sub(ias_motion, "newparam", sid=compute_id(f"{asmid}_{sid}"))
                _sub(newparam, "SIDREF", f"{askid}/{sid}")
                symbol = compute_id(f"{self._model_symbol}_{sid}")
                bind = _sub(ias, "bind", symbol=symbol)
                _sub(bind, "param", ref=f"{asmid}/{compute_id(f'{asmid}_{sid}')}")
                setattr(axis, kind, symbol)
        return ias, ikm

    def _write_instance_kinematics_model(self, kinematics: Element, sidscope: str) -> Element:
        ikm_sid = compute_id(f"{self.kmodel_id}_inst")
        ikm = _sub(kinematics, "instance_kinematics_model", url=f"#{self.kmodel_id}", sid=ikm_sid)

        self._model_param = compute_id(f"{sidscope}_{ikm_sid}")
        newparam = _sub(ikm, "newparam", sid=self._model_param)
        _sub(newparam, "SIDREF", f"{sidscope}/{ikm_sid}")

        for axis in self._axes:
            joint = self.model.joints[axis.joint]
            sid = compute_id(f"{sidscope}_{ikm_sid}_{axis.axis_ref.replace('/', '.')}")
            newparam = _sub(ikm, "newparam", sid=sid)
            _sub(newparam, "SIDREF", f"{sidscope}/{ikm_sid}/{axis.axis_ref}")

            value = 0.0
            lower, upper = joint_range(joint)
            if lower > 0 or upper < 0:
                value = 0.5 * (lower + upper)
            value_param = _sub(ikm, "newparam", sid=f"{sid}_value")
            _sub(value_param, "float", repr(value))
            axis.ikm_sid = sid
            axis.value_sid = f"{sid}_value"
        return ikm

    def _write_kinematics_model(self, vscene: Element) -> Element:
        kmodel = _sub(self.libraries["library_kinematics_models"], "kinematics_model",
                      id=self.kmodel_id, name=self.model.name)
        technique = _sub(kmodel, "technique_common")
        root_node = _sub(vscene, "node", id=self.visual_id, sid=self.visual_id, name=self.model.name)

        for name in sorted(self.model.joints):
            axis_ref = self._write_joint(technique, self.model.joints[name])
            if axis_ref is not None:
                self._axes.append(_AxisOutput(joint=name, axis_ref=axis_ref))

        self._write_links(technique, root_node)
        self._write_formulas(technique)
        return kmodel

    def _write_joint(self, technique: Element, joint) -> Optional[str]:
        if joint.type in (JointType.REVOLUTE, JointType.CONTINUOUS, JointType.FIXED):
            tag, scale = "revolute", 180.0 / math.pi
        elif joint.type == JointType.PRISMATIC:
            tag, scale = "prismatic", 1.0
        else:
            console_logger.warning(f"unsupported joint type specified {joint.type.value} for joint {joint.name}")
            return None

        joint_sid = compute_id(joint.name)
        element = _sub(technique, "joint", sid=joint_sid, name=joint.name)
        axis_sid = compute_id("axis0")
        axis = _sub(element, tag, sid=axis_sid)
        _sub(axis, "axis", format_floats(np.asarray(joint.axis)))
        if joint.type != JointType.CONTINUOUS:
            lower, upper = (scale * v for v in joint_range(joint))
            limits = _sub(axis, "limits")
            _sub(limits, "min", repr(float(lower)))
            _sub(limits, "max", repr(float(upper)))
        return f"{joint_sid}/{axis_sid}"

    def _link_geometry(self, link: Link) -> Tuple[Optional[Geometry], Optional[Material], Pose]:
        if link.visual is not None:
            return link.visual.geometry, link.visual.material, link.visual.origin
        if link.collision is not None:
            return link.collision.geometry, None, link.collision.origin
        return None, None, pose_ops.identity()

    def _write_links(self, technique: Element, root_node: Element) -> None:
        """Walk the link tree, writing kinematics links, attachments and visual nodes."""
        model = self.model
        joint_targets = {axis.joint: axis for axis in self._axes}
        node_paths: Dict[str, str] = {}
        geometry_origins: Dict[str, Pose] = {}

        # (link name, kinematics parent, visual parent node, joint from the parent link)
        stack = [(model.root, technique, root_node, None)]
        while stack:
            link_name, kinematics_parent, node_parent, joint = stack.pop()
            link = model.links[link_name]
            index = self._link_indices[link_name]
            link_sid = compute_id(link_name)

            link_element = _sub(kinematics_parent, "link", sid=link_sid, name=link_name)
            node_sid = compute_id(f"node{index}")
            node = _sub(node_parent, "node", id=compute_id(f"v{self.kmodel_id}_node{index}"),
                        sid=node_sid, name=link_name)

            geometry, material, geometry_origin = self._link_geometry(link)
            if geometry is not None:
                self._write_link_geometry(node, link_sid, geometry, material)
            write_transformation(node, geometry_origin)
            geometry_origins[link_name] = geometry_origin

            if joint is None:
                node_paths[link_name] = f"{self.visual_id}/{node_sid}"
            else:
                node_paths[link_name] = f"{node_paths[joint.parent]}/{node_sid}"
                self._write_joint_node(node, kinematics_parent, joint, geometry_origins[joint.parent])
                if joint.name in joint_targets:
                    joint_targets[joint.name].node_target = (
                        f"{node_paths[link_name]}/{compute_id(f'node_{joint.name}_axis0')}"
                    )

            for child_joint in reversed(model.child_joints(link_name)):
                attachment = _sub(link_element, "attachment_full",
                                  joint=f"{self.kmodel_id}/{compute_id(child_joint.name)}")
                stack.append((child_joint.child, attachment, node, child_joint))

    def _write_joint_node(self, node: Element, attachment: Element, joint, parent_geometry_origin: Pose) -> None:
        namespace = etree.QName(node).namespace
        sid = compute_id(f"node_{joint.name}_axis0")
        if joint.type == JointType.PRISMATIC:
            element = etree.Element(f"{{{namespace}}}translate", sid=sid)
            element.text = "0.0 0.0 0.0"
        elif joint.type in (JointType.REVOLUTE, JointType.CONTINUOUS, JointType.FIXED):
            element = etree.Element(f"{{{namespace}}}rotate", sid=sid)
            element.text = format_floats(list(np.asarray(joint.axis)) + [0.0])
        else:
            element = None
            console_logger.warning(f"unsupported joint type specified {joint.type.value} for joint {joint.name}")
        if element is not None:
            node.insert(_transform_index(node), element)

        write_transformation(attachment, joint.origin)
        write_transformation(node, joint.origin)
        # geometry origins are not part of the node hierarchy
        write_transformation(node, pose_ops.inverse(parent_geometry_origin))

    def _write_link_geometry(self, node: Element, link_sid: str, geometry: Geometry,
                             material: Optional[Material]) -> None:
        geometry_id = compute_id(f"g{self.kmodel_id}_{link_sid}_geom0")
        try:
            groups = _triangles(geometry, self.options, self.base_dir)
        except UnsupportedShape as e:
            console_logger.warning(f"skipping geometry {geometry_id}: {e}")
            return
        geometry_element = _sub(self.libraries["library_geometries"], "geometry", id=geometry_id)
        _write_mesh(geometry_element, geometry_id, groups, "mat0")
        self._write_material(geometry_id, material)

        instance = _sub(node, "instance_geometry", url=f"#{geometry_id}")
        bind = _sub(_sub(instance, "bind_material"), "technique_common")
        _sub(bind, "instance_material", symbol="mat0", target=f"#{geometry_id}_mat")

    def _material_color(self, material: Optional[Material]) -> Optional[Color]:
        if material is None:
            return None
        if material.color is not None:
            return tuple(material.color)
        shared = self.model.materials.get(material.name)
        if shared is not None and shared.color is not None:
            return tuple(shared.color)
        return None

    def _write_material(self, geometry_id: str, material: Optional[Material]) -> None:
        effect_id = f"{geometry_id}_eff"
        material_element = _sub(self.libraries["library_materials"], "material", id=f"{geometry_id}_mat")
        _sub(material_element, "instance_effect", url=f"#{effect_id}")
        color = self._material_color(material)
        ambient = color if color is not None else DEFAULT_AMBIENT
        diffuse = color if color is not None else DEFAULT_DIFFUSE
        _write_effect(self.libraries["library_effects"], effect_id, ambient, diffuse)

    def _write_formulas(self, technique: Element) -> None:
        for name in sorted(self.model.joints):
            joint = self.model.joints[name]
            if joint.mimic is None:
                continue
            joint_sid = compute_id(name)
            symbol = f"{self.kmodel_id}/{compute_id(joint.mimic.joint)}"
            formula = _sub(technique, "formula", sid=compute_id(f"{joint_sid}_formula"))
            target = _sub(formula, "target")
            _sub(target, "param", f"{self.kmodel_id}/{joint_sid}")

            common = _sub(formula, "technique_common")
            self._write_linear_math(common, symbol, joint.mimic.multiplier, joint.mimic.offset)

            openrave = _sub(formula, "technique", profile="OpenRAVE")
            position = _sub(openrave, "equation", type="position")
            self._write_linear_math(position, symbol, joint.mimic.multiplier, joint.mimic.offset)
            first = _sub(openrave, "equation", type="first_partial", target=symbol)
            _sub(first, "cn", "%f" % joint.mimic.multiplier, namespace=MATHML_NAMESPACE)
            second = _sub(openrave, "equation", type="second_partial", target=symbol)
            _sub(second, "cn", "0", namespace=MATHML_NAMESPACE)

    @staticmethod
    def _write_linear_math(parent: Element, symbol: str, multiplier: float, offset: float) -> None:
        """apply(plus, apply(times, cn multiplier, csymbol), cn offset)"""
        ns = MATHML_NAMESPACE
        apply = _sub(_sub(parent, "math", namespace=ns), "apply", namespace=ns)
        _sub(apply, "plus", namespace=ns)
        product = _sub(apply, "apply", namespace=ns)
        _sub(product, "times", namespace=ns)
        _sub(product, "cn", "%f" % multiplier, namespace=ns)
        _sub(product, "csymbol", symbol, namespace=ns, encoding="COLLADA")
        _sub(apply, "cn", "%f" % offset, namespace=ns)

    # ------------------------------------------------------------------
    # physics and scene bindings

    def _write_physics(self, pscene: Element) -> None:
        pmodel_id = "pmodel0"
        pmodel = _sub(self.libraries["library_physics_models"], "physics_model", id=pmodel_id, name=self.model.name)
        poses = link_poses(self.model)

        rigid_sids = []
        for name, index in sorted(self._link_indices.items(), key=lambda item: item[1]):
            link = self.model.links[name]
            rigid_sid = f"rigid{index}"
            rigid_sids.append((rigid_sid, index))
            rigid_body = _sub(pmodel, "rigid_body", sid=rigid_sid, name=name)
            technique = _sub(rigid_body, "technique_common")
            inertial = link.inertial
            if inertial is None:
                continue
            _sub(technique, "dynamic", "true")
            _sub(technique, "mass", repr(float(inertial.mass)))
            moments, frame = principal_frame(inertial)
            mass_frame = _sub(technique, "mass_frame")
            write_transformation(mass_frame, pose_ops.multiply(poses[name], pose_ops.multiply(inertial.origin, frame)))
            _sub(technique, "inertia", format_floats(moments))

        ipm = _sub(pscene, "instance_physics_model", url=f"#{pmodel_id}", sid=f"{pmodel_id}_inst",
                   parent=f"#{self.visual_id}")
        for rigid_sid, index in rigid_sids:
            _sub(ipm, "instance_rigid_body", body=rigid_sid, target=f"#v{self.kmodel_id}_node{index}")
        gravity = _sub(pscene, "technique_common")
        _sub(gravity, "gravity", "0 0 0")

    def _write_scene_bindings(self, kscene_instance: Element, kscene: Element, ikm: Element) -> None:
        root_index = self._link_indices[self.model.root]
        bind_model = _sub(kscene_instance, "bind_kinematics_model",
                          node=f"{self.visual_id}/{compute_id(f'node{root_index}')}")
        _sub(bind_model, "param", self._model_symbol)
        for axis in self._axes:
            bind_axis = _sub(kscene_instance, "bind_joint_axis", target=axis.node_target)
            _sub(_sub(bind_axis, "axis"), "param", axis.ikm_sid)
            _sub(_sub(bind_axis, "value"), "param", axis.value_sid)


def write_collada(model: RobotModel, path: Union[str, Path], options: Optional[ConversionOptions] = None,
                  base_dir: Optional[Union[str, Path]] = None) -> None:
    """Write `model` as a COLLADA document at `path`."""
    root = ColladaWriter(model, options, base_dir).write()
    etree.ElementTree(root).write(str(path), xml_declaration=True, encoding="utf-8", pretty_print=True)
    console_logger.info(f"Document successfully written to {path}")
