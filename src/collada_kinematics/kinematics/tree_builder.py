"""Reconstruction of a RobotModel from a COLLADA kinematics scene.

The builder walks the first articulated system (or bare kinematics model)
that can be resolved, creates one Link per kinematics `link` and one Joint
per axis of every `attachment_full`, and bakes the geometry of the bound
visual nodes into one mesh per link.

Per-element failures are logged and skipped. A document without a scene,
without an extractable model, or without a unique root raises.
"""

import logging
import math
from typing import Dict, List, Optional, Tuple

import numpy as np
from lxml import etree

from collada_kinematics.config import ConversionOptions
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
    MeshPart,
    Mimic,
    RobotModel,
    Sphere,
    Visual,
)
from collada_kinematics.errors import MalformedDocument, UnresolvedReference, UnsupportedShape
from collada_kinematics.geometry.mesh_decoding import decode_mesh
from collada_kinematics.io.collada_document import ColladaDocument, find_ancestor, local_name, parse_floats
from collada_kinematics.kinematics.bindings import (
    KinematicsSceneBindings,
    add_axis_info,
    extract_physics_bindings,
    extract_visual_bindings,
    resolve_bool,
    resolve_float,
)
from collada_kinematics.kinematics.mimic import parse_formula
from collada_kinematics.transforms import Pose, se3
from collada_kinematics.transforms import pose as pose_ops

console_logger = logging.getLogger(__name__)

Element = etree._Element

AXIS_TAGS = ("revolute", "prismatic")
# a worklist item: (link element, visual node, parent world pose, parent link pose)
LinkTask = Tuple[Element, Optional[Element], Pose, Pose]


def _openrave_technique(element: Element) -> Optional[Element]:
    for technique in element.iterfind("technique"):
        if technique.get("profile") == "OpenRAVE":
            return technique
    return None


def interface_type(element: Element) -> Optional[str]:
    """Interface name of an `extra type="interface_type"`, if present."""
    for extra in element.iterfind("extra"):
        if extra.get("type") != "interface_type":
            continue
        technique = _openrave_technique(extra)
        interface = technique.find("interface") if technique is not None else None
        if interface is not None:
            return (interface.text or "").strip()
    return None


def _scale_primitive(geometry: Geometry, scale: np.ndarray) -> None:
    sx, sy, sz = (float(s) for s in scale)
    if isinstance(geometry, Box):
        geometry.size = (geometry.size[0] * sx, geometry.size[1] * sy, geometry.size[2] * sz)
    elif isinstance(geometry, Sphere):
        geometry.radius *= max(sx, sy, sz)
    elif isinstance(geometry, Cylinder):
        geometry.radius *= max(sx, sy)
        geometry.length *= sz
    geometry.invalidate()


def _ambient_for_mesh(color, scale: float):
    r, g, b, a = color if color is not None else (0.0, 0.0, 0.0, 1.0)
    channels = [c * scale for c in (r, g, b)]
    return tuple(c if c != 0.0 else 0.0001 for c in channels) + (a,)


class ColladaModelBuilder:
    """Builds a RobotModel from a ColladaDocument.

    Args:
        document: The parsed document.
        options: Conversion options.
    """

    def __init__(self, document: ColladaDocument, options: Optional[ConversionOptions] = None):
        self.document = document
        self.options = options or document.options
        self.model = RobotModel()
        self._root_origin = pose_ops.identity()
        self._visual_root_origin = pose_ops.identity()
        self._dummy_counts: Dict[str, int] = {}

    def build(self) -> RobotModel:
        """Extract the first resolvable robot.

        Raises:
            MalformedDocument: No scene, or no model could be extracted.
            AmbiguousOrMissingRoot: The extracted links do not form a tree.
        """
        document = self.document
        scene = document.root.find("scene")
        if scene is None:
            raise MalformedDocument("COLLADA document has no <scene>")

        visual_scene_instance = scene.find("instance_visual_scene")
        candidates: List[Tuple[Element, KinematicsSceneBindings]] = []
        for kscene_instance in scene.iterfind("instance_kinematics_scene"):
            kscene = document.url_target(kscene_instance)
            if kscene is None or local_name(kscene) != "kinematics_scene":
                continue
            bindings = KinematicsSceneBindings()
            extract_visual_bindings(document, visual_scene_instance, kscene_instance, bindings)
            extract_physics_bindings(document, scene, bindings)
            for ias in kscene.iterfind("instance_articulated_system"):
                self._reset()
                if self._extract_articulated_system(ias, bindings):
                    return self._post_process()
            for ikm in kscene.iterfind("instance_kinematics_model"):
                candidates.append((ikm, bindings))

        for ikm, bindings in candidates:
            self._reset()
            if self._extract_kinematics_model(ikm, bindings):
                return self._post_process()
        raise MalformedDocument("no kinematics model could be extracted from the document")

    def _reset(self) -> None:
        self.model = RobotModel()
        self._root_origin = pose_ops.identity()
        self._visual_root_origin = pose_ops.identity()
        self._dummy_counts = {}

    def _post_process(self) -> RobotModel:
        return self.model.finalize()

    # ------------------------------------------------------------------
    # articulated systems and kinematics models

    def _extract_articulated_system(self, ias: Optional[Element], bindings: KinematicsSceneBindings) -> bool:
        if ias is None:
            return False
        document = self.document
        system = document.url_target(ias)
        if system is None or local_name(system) != "articulated_system":
            return False
        console_logger.debug(f"instance articulated system sid {ias.get('sid')}")

        robot_type = interface_type(ias) or interface_type(system)
        if robot_type:
            console_logger.debug(f"robot type: {robot_type}")

        if not self.model.name:
            self.model.name = ias.get("name") or ias.get("sid") or system.get("name") or system.get("id") or ""

        motion = system.find("motion")
        if motion is not None:
            ias_new = motion.find("instance_articulated_system")
            target_system = document.url_target(ias_new)
            for motion_axis_info in motion.iterfind("technique_common/axis_info"):
                kinematics_axis_info = document.resolve_sidref(motion_axis_info.get("axis"), target_system)
                if kinematics_axis_info is None or local_name(kinematics_axis_info) != "axis_info":
                    console_logger.warning(f"failed to find kinematics axis {motion_axis_info.get('axis')}")
                    continue
                kinematics = find_ancestor(kinematics_axis_info, "kinematics")
                if kinematics is None:
                    console_logger.warning(f"axis_info {motion_axis_info.get('axis')} is not inside <kinematics>")
                    continue
                add_axis_info(document, list(kinematics.iterfind("instance_kinematics_model")),
                              kinematics_axis_info, motion_axis_info, bindings)
            if not self._extract_articulated_system(ias_new, bindings):
                return False
        else:
            kinematics = system.find("kinematics")
            if kinematics is None:
                console_logger.warning(f"collada <kinematics> tag empty? instance_articulated_system={ias.get('sid')}")
                return True
            ikms = list(kinematics.iterfind("instance_kinematics_model"))
            for kinematics_axis_info in kinematics.iterfind("technique_common/axis_info"):
                add_axis_info(document, ikms, kinematics_axis_info, None, bindings)
            for ikm in ikms:
                self._extract_kinematics_model(ikm, bindings)

        self._extract_actuators(system)
        return True

    def _extract_kinematics_model(self, ikm: Element, bindings: KinematicsSceneBindings) -> bool:
        kmodel = self.document.url_target(ikm)
        if kmodel is None or local_name(kmodel) != "kinematics_model":
            console_logger.warning(f"{ikm.get('sid')} does not reference valid kinematics")
            return False
        model_type = interface_type(ikm) or interface_type(kmodel)
        if model_type:
            console_logger.debug(f"kinbody interface type: {model_type}")

        visual_node = bindings.visual_node_for_model(ikm)
        if visual_node is None:
            console_logger.warning(f"failed to find visual node for instance kinematics model {ikm.get('sid')}")
            return False

        if not self.model.name:
            self.model.name = ikm.get("name") or ikm.get("id") or ""

        if not self._extract_model_links(kmodel, visual_node, bindings):
            console_logger.warning(f"failed to load kinbody from kinematics model {kmodel.get('id')}")
            return False
        return True

    def _extract_model_links(self, kmodel: Element, visual_node: Element, bindings: KinematicsSceneBindings) -> bool:
        document = self.document
        technique = kmodel.find("technique_common")
        if technique is None:
            return False

        for ilink, link in enumerate(technique.iterfind("link")):
            self._root_origin = pose_ops.from_matrix(document.full_transform(link))
            for node, _ in bindings.visual_models:
                if node.get("name") is not None and node.get("name") == link.get("name"):
                    self._visual_root_origin = pose_ops.from_matrix(document.node_parent_transform(node))
                    break
            self._extract_links(link, visual_node if ilink == 0 else None, bindings)

        for formula in technique.iterfind("formula"):
            self._extract_formula(formula)
        return True

    # ------------------------------------------------------------------
    # links and joints

    def _link_name(self, link: Element, node: Optional[Element]) -> str:
        name = link.get("name") or link.get("id") or ""
        if not name:
            console_logger.warning("<link> has no name or id, falling back to <node>!")
            if node is not None:
                name = node.get("name") or node.get("id") or ""
        return name

    def _extract_links(self, root_link: Element, root_node: Optional[Element], bindings: KinematicsSceneBindings) -> None:
        """Extract a link subtree depth first over an explicit stack."""
        stack: List[LinkTask] = [(root_link, root_node, pose_ops.identity(), pose_ops.identity())]
        while stack:
            children = self._extract_link(*stack.pop(), bindings)
            stack.extend(reversed(children))

    def _extract_link(self, link_element: Element, node: Optional[Element], t_parent_world: Pose,
                      t_parent_link: Pose, bindings: KinematicsSceneBindings) -> List[LinkTask]:
        document = self.document
        link = self.model.get_or_create_link(self._link_name(link_element, node))
        tlink = pose_ops.from_matrix(document.full_transform(link_element))
        t_world_link = pose_ops.multiply(t_parent_world, tlink)

        self._extract_inertial(link, node, t_world_link, bindings)

        visual_origin = pose_ops.multiply(t_parent_link, tlink)
        geometries = self._extract_geometry(node, bindings, pose_ops.multiply(t_world_link, visual_origin))

        children: List[LinkTask] = []
        for attachment in link_element.iterfind("attachment_full"):
            try:
                children.append(self._extract_attachment(link, attachment, t_world_link, bindings))
            except UnresolvedReference as e:
                console_logger.warning(str(e))

        if link_element.find("attachment_start") is not None:
            console_logger.warning("urdf collada reader does not support attachment_start")
        if link_element.find("attachment_end") is not None:
            console_logger.warning("urdf collada reader does not support attachment_end")

        mesh = self._combine_geometry(geometries)
        if mesh is None:
            link.visual = None
            link.collision = None
        else:
            material = Material(self.options.default_material_name, tuple(self.options.default_material_color))
            link.visual = Visual(geometry=mesh, origin=visual_origin, material=material)
            link.collision = Collision(geometry=mesh, origin=visual_origin)
        return children

    def _extract_inertial(self, link: Link, node: Optional[Element], t_world_link: Pose,
                          bindings: KinematicsSceneBindings) -> None:
        binding = bindings.link_binding(node)
        if binding is None:
            return
        rigid = binding.rigid_body.find("technique_common")
        if rigid is None:
            return
        mass = rigid.find("mass")
        if mass is not None:
            link.inertial = link.inertial or Inertial()
            link.inertial.mass = float((mass.text or "0").strip())
        inertia = rigid.find("inertia")
        if inertia is not None:
            link.inertial = link.inertial or Inertial()
            values = parse_floats(inertia.text) + [0.0, 0.0, 0.0]
            link.inertial.ixx, link.inertial.iyy, link.inertial.izz = values[:3]
        mass_frame = rigid.find("mass_frame")
        if mass_frame is not None:
            link.inertial = link.inertial or Inertial()
            frame = pose_ops.from_matrix(self.document.full_transform(mass_frame))
            link_in_root = pose_ops.multiply(pose_ops.inverse(self._root_origin), t_world_link)
            link.inertial.origin = pose_ops.multiply(pose_ops.inverse(link_in_root), frame)

    def _resolve_joint(self, attachment: Element) -> Optional[Element]:
        element = self.document.resolve_sidref(attachment.get("joint"), attachment)
        if element is not None and local_name(element) == "instance_joint":
            element = self.document.url_target(element)
        if element is None or local_name(element) != "joint":
            return None
        return element

    def _extract_attachment(self, link: Link, attachment: Element, t_world_link: Pose,
                            bindings: KinematicsSceneBindings) -> LinkTask:
        """Create the joints of one attachment.

        Raises:
            UnresolvedReference: The joint or the child link is missing.
        """
        document = self.document
        tatt = pose_ops.from_matrix(document.full_transform(attachment))

        dom_joint = self._resolve_joint(attachment)
        if dom_joint is None:
            raise UnresolvedReference(f"could not find attached joint {attachment.get('joint')}!")
        child_element = attachment.find("link")
        if child_element is None:
            raise UnresolvedReference(f"joint {dom_joint.get('sid')} needs to be attached to a valid link")

        axes = [child for child in dom_joint if local_name(child) in AXIS_TAGS]
        child_node = None
        for binding in bindings.axes:
            if any(binding.axis is axis for axis in axes):
                child_node = binding.visual_node
                break
        if child_node is None:
            console_logger.debug(f"joint {dom_joint.get('id')} has no visual binding")

        child_name = self._link_name(child_element, child_node)
        trans_joint_to_child = pose_ops.from_matrix(document.full_transform(child_element))
        base_name = dom_joint.get("name") or f"dummy{len(self.model.joints)}"

        parent_name = link.name
        for index, axis in enumerate(axes):
            if index + 1 < len(axes):
                next_name = self._create_dummy_link(link.name)
                console_logger.warning(f"creating dummy link {next_name}, num joints {index}")
            else:
                next_name = child_name
            joint = Joint(
                name=base_name if index == 0 else f"{base_name}_axis{index}",
                type=JointType.REVOLUTE if local_name(axis) == "revolute" else JointType.PRISMATIC,
                parent=parent_name,
                child=next_name,
                limits=JointLimits(),
            )
            if index == 0:
                joint.origin = pose_ops.multiply(tatt, trans_joint_to_child)
            self._fill_axis(joint, axis, trans_joint_to_child, bindings)
            if joint.name in self.model.joints:
                console_logger.warning(f"duplicate joint name {joint.name}, keeping the first")
            else:
                self.model.add_joint(joint)
            parent_name = next_name

        t_child_world = pose_ops.multiply(t_world_link, tatt)
        return child_element, child_node, t_child_world, tatt

    def _create_dummy_link(self, parent_name: str) -> str:
        """Add `<parent>_dummy<k>`, numbering dummies per parent link across attachments."""
        count = self._dummy_counts.get(parent_name, 0)
        name = f"{parent_name}_dummy{count}"
        while name in self.model.links:
            count += 1
            name = f"{parent_name}_dummy{count}"
        self._dummy_counts[parent_name] = count + 1
        return self.model.get_or_create_link(name).name

    def _fill_axis(self, joint: Joint, axis: Element, trans_joint_to_child: Pose,
                   bindings: KinematicsSceneBindings) -> None:
        document = self.document
        binding = bindings.axis_binding(axis)
        kinematics_axis_info = binding.kinematics_axis_info if binding is not None else None
        motion_axis_info = binding.motion_axis_info if binding is not None else None

        if kinematics_axis_info is not None and kinematics_axis_info.find("active") is not None:
            if not resolve_bool(document, kinematics_axis_info.find("active"), kinematics_axis_info):
                console_logger.info(f"joint {joint.name} is passive, but adding to hierarchy")

        raw_axis = (parse_floats(axis.findtext("axis")) + [0.0, 0.0, 0.0])[:3]
        rotation = pose_ops.inverse(trans_joint_to_child)
        direction = np.asarray(pose_ops.rotate(rotation, np.asarray(raw_axis, dtype=np.float64)))
        norm = np.linalg.norm(direction)
        if norm > 0.0:
            direction = direction / norm
        else:
            console_logger.warning(f"joint {joint.name} has a zero axis")
        joint.axis = direction

        limits = joint.limits
        if motion_axis_info is None:
            console_logger.warning(f"No motion axis info for joint {joint.name}")
        else:
            if motion_axis_info.find("speed") is not None:
                limits.velocity = resolve_float(document, motion_axis_info.find("speed"), motion_axis_info)
            if motion_axis_info.find("acceleration") is not None:
                limits.effort = resolve_float(document, motion_axis_info.find("acceleration"), motion_axis_info)

        locked = False
        kinematics_limits = False
        if kinematics_axis_info is not None:
            if kinematics_axis_info.find("locked") is not None:
                locked = resolve_bool(document, kinematics_axis_info.find("locked"), kinematics_axis_info)
            if locked:
                console_logger.warning(f"lock joint {joint.name}!")
                limits.lower = limits.upper = 0.0
            elif kinematics_axis_info.find("limits") is not None:
                kinematics_limits = True
                scale = math.pi / 180.0 if joint.type == JointType.REVOLUTE else document.unit_scale(kinematics_axis_info)
                info_limits = kinematics_axis_info.find("limits")
                limits.lower = scale * resolve_float(document, info_limits.find("min"), kinematics_axis_info)
                limits.upper = scale * resolve_float(document, info_limits.find("max"), kinematics_axis_info)
                if limits.lower == 0.0 and limits.upper == 0.0:
                    joint.type = JointType.FIXED

        if kinematics_axis_info is None or (not locked and not kinematics_limits):
            axis_limits = axis.find("limits")
            if axis_limits is None:
                console_logger.debug(f"There are NO LIMITS in joint {joint.name}")
                if joint.type == JointType.REVOLUTE:
                    joint.type = JointType.CONTINUOUS
                    limits.lower, limits.upper = -math.pi, math.pi
                else:
                    limits.lower = -self.options.unlimited_range
                    limits.upper = self.options.unlimited_range
            else:
                scale = math.pi / 180.0 if joint.type == JointType.REVOLUTE else document.unit_scale(axis)
                limits.lower = scale * float(axis_limits.findtext("min", "0").strip())
                limits.upper = scale * float(axis_limits.findtext("max", "0").strip())
                if limits.lower == 0.0 and limits.upper == 0.0:
                    joint.type = JointType.FIXED

        if limits.velocity == 0.0:
            if joint.type == JointType.PRISMATIC:
                limits.velocity = self.options.prismatic_velocity
            else:
                limits.velocity = self.options.revolute_velocity

    # ------------------------------------------------------------------
    # geometry

    def _primitive(self, geometry_element: Element) -> Optional[Geometry]:
        unit = self.document.unit_scale(geometry_element)
        box = geometry_element.find("box")
        if box is not None:
            half = (parse_floats(box.findtext("half_extents")) + [0.0, 0.0, 0.0])[:3]
            return Box(size=tuple(2.0 * unit * h for h in half))
        sphere = geometry_element.find("sphere")
        if sphere is not None:
            return Sphere(radius=unit * float(sphere.findtext("radius", "0")))
        cylinder = geometry_element.find("cylinder")
        if cylinder is not None:
            radius = parse_floats(cylinder.findtext("radius")) or [0.0]
            return Cylinder(radius=unit * radius[0], length=unit * float(cylinder.findtext("height", "0")))
        return None

    def _node_geometries(self, node: Element) -> List[Geometry]:
        document = self.document
        geometries: List[Geometry] = []
        for instance in node.iterfind("instance_geometry"):
            geometry_element = document.url_target(instance)
            if geometry_element is None:
                continue
            materials = {}
            for instance_material in instance.iterfind("bind_material/technique_common/instance_material"):
                material = document.resolve_url(instance_material.get("target"))
                if material is not None:
                    materials[instance_material.get("symbol")] = material

            primitive = self._primitive(geometry_element)
            if primitive is not None:
                geometries.append(primitive)
                continue
            for decoded in decode_mesh(document, geometry_element, materials):
                geometries.append(Mesh(
                    vertices=decoded.vertices,
                    indices=decoded.indices,
                    ambient_color=decoded.ambient_color,
                    diffuse_color=decoded.diffuse_color,
                ))
        return geometries

    def _extract_geometry(self, node: Optional[Element], bindings: KinematicsSceneBindings,
                          tlink: Pose) -> List[Geometry]:
        """Geometry of a node and its non-joint descendants, in the frame `tlink`.

        Descendants are visited before their parent, matching a post-order walk.
        """
        if node is None:
            return []
        document = self.document
        t_inv_link = pose_ops.to_matrix(pose_ops.inverse(tlink))
        t_inv_root = pose_ops.to_matrix(pose_ops.inverse(self._visual_root_origin))

        geometries: List[Geometry] = []
        stack = [(node, False)]
        while stack:
            current, expanded = stack.pop()
            if not expanded:
                stack.append((current, True))
                children = [
                    child for child in current.iterfind("node")
                    if not bindings.is_joint_node(child)
                ]
                stack.extend((child, False) for child in reversed(children))
                continue

            found = self._node_geometries(current)
            if not found:
                continue
            tm = se3.multiply(
                t_inv_link,
                se3.multiply(
                    se3.multiply(t_inv_root, document.node_parent_transform(current)),
                    document.full_transform(current),
                ),
            )
            rigid, scale = se3.decompose_scale(tm)
            node_pose = pose_ops.from_matrix(rigid)
            for geometry in found:
                if isinstance(geometry, Mesh):
                    geometry.vertices = np.asarray(se3.apply(tm, geometry.vertices))
                    geometry.origin = pose_ops.identity()
                else:
                    geometry.origin = node_pose
                    _scale_primitive(geometry, np.asarray(scale))
                geometries.append(geometry)
        return geometries

    def _combine_geometry(self, geometries: List[Geometry]) -> Optional[Mesh]:
        """Bake geometries into one mesh of colored parts; None when there are no vertices."""
        parts = []
        for geometry in geometries:
            vertices, indices = geometry.collision_mesh(self.options.tessellation)
            vertices = np.asarray(pose_ops.apply(geometry.origin, vertices)) if len(vertices) else vertices
            parts.append(MeshPart(
                vertices=vertices,
                indices=indices,
                ambient_color=_ambient_for_mesh(geometry.ambient_color, self.options.mesh_ambient_scale),
                diffuse_color=geometry.diffuse_color or (0.0, 0.0, 0.0, 1.0),
            ))
        if sum(len(part.vertices) for part in parts) == 0:
            return None
        return Mesh.from_parts(parts)

    # ------------------------------------------------------------------
    # formulas and actuators

    def _joint_from_ref(self, ref: Optional[str], start: Element) -> Optional[Joint]:
        element = self.document.resolve_sidref(ref, start)
        if element is not None and local_name(element) == "instance_joint":
            element = self.document.url_target(element)
        if element is None or local_name(element) != "joint" or not element.get("name"):
            console_logger.warning(f"could not find collada joint {ref}!")
            return None
        joint = self.model.get_joint(element.get("name"))
        if joint is None:
            console_logger.warning(f"could not find extracted joint {element.get('name')}!")
        return joint

    def _extract_formula(self, formula: Element) -> None:
        param = formula.find("target/param")
        if param is None or not (param.text or "").strip():
            console_logger.warning("formula target not valid")
            return
        joint = self._joint_from_ref(param.text.strip(), formula)
        if joint is None:
            return
        try:
            relation = parse_formula(formula)
        except UnsupportedShape as e:
            console_logger.warning(f"skipping formula {formula.get('sid')}: {e}")
            return
        if relation is None:
            return
        symbol, multiplier, offset = relation
        base = self._joint_from_ref(symbol, formula)
        if base is None:
            return
        joint.mimic = Mimic(joint=base.name, multiplier=multiplier, offset=offset)
        console_logger.debug(f"assigning joint {joint.name} to mimic {base.name} {multiplier} {offset}")

    def _extract_actuators(self, system: Element) -> None:
        document = self.document
        for extra in system.iterfind("extra"):
            if extra.get("type") != "attach_actuator":
                continue
            technique = _openrave_technique(extra)
            if technique is None:
                continue
            bind = technique.find("bind_actuator")
            if bind is None:
                continue
            joint = self._joint_from_ref(bind.get("joint"), system)
            if joint is None:
                continue
            actuator = document.url_target(technique.find("instance_actuator"))
            if actuator is None:
                continue
            torque = actuator.find("nominal_torque")
            if torque is not None and joint.limits is not None:
                joint.limits.effort = float((torque.text or "0").strip())
                console_logger.debug(f"effort limit at joint ({joint.name}) is over written by {joint.limits.effort}")
