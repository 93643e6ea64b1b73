"""Bind tables connecting kinematics, visual and physics scenes.

A COLLADA kinematics scene says which visual node draws each kinematics
model (`bind_kinematics_model`) and which visual transform element moves with
each joint axis (`bind_joint_axis`). The physics scene says which rigid body
belongs to which node. Symbols are resolved through the bind and newparam
tables of the instantiating elements.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from lxml import etree

from collada_kinematics.io.collada_document import ColladaDocument, find_ancestor, local_name

console_logger = logging.getLogger(__name__)

Element = etree._Element


@dataclass
class AxisBinding:
    """A joint axis together with the visual element it drives.

    Attributes:
        target: Visual transform element (rotate/translate) bound to the axis.
        axis: `revolute` or `prismatic` axis constraint of a joint.
        value: The bind_joint_axis value element, if any.
        visual_node: Nearest `node` ancestor of `target`.
        kinematics_axis_info: `axis_info` of the articulated system's kinematics.
        motion_axis_info: `axis_info` of the articulated system's motion.
    """
    target: Element
    axis: Element
    value: Optional[Element] = None
    visual_node: Optional[Element] = None
    kinematics_axis_info: Optional[Element] = None
    motion_axis_info: Optional[Element] = None

    def __post_init__(self):
        if self.visual_node is None:
            self.visual_node = find_ancestor(self.target, "node")
            if self.visual_node is None:
                console_logger.warning(f"no visual node for target {self.target.get('sid')}")


@dataclass
class LinkBinding:
    """A rigid body bound to the visual node it moves."""
    node: Element
    instance_rigid_body: Element
    rigid_body: Element
    physics_offset_node: Optional[Element] = None


@dataclass
class KinematicsSceneBindings:
    """Every binding of one `instance_kinematics_scene`.

    Attributes:
        visual_models: (visual node, instance_kinematics_model) pairs.
        axes: Axis bindings in document order.
        links: Rigid body bindings from the physics scenes.
    """
    visual_models: List[Tuple[Element, Element]] = field(default_factory=list)
    axes: List[AxisBinding] = field(default_factory=list)
    links: List[LinkBinding] = field(default_factory=list)

    def visual_node_for_model(self, ikm: Element) -> Optional[Element]:
        for node, bound_ikm in self.visual_models:
            if bound_ikm is ikm:
                return node
        return None

    def axis_binding(self, axis: Element) -> Optional[AxisBinding]:
        for binding in self.axes:
            if binding.axis is axis:
                return binding
        return None

    def is_joint_node(self, node: Element) -> bool:
        return any(binding.visual_node is node for binding in self.axes)

    def link_binding(self, node: Optional[Element]) -> Optional[LinkBinding]:
        """Binding of the node with the same id; the last match wins."""
        if node is None or node.get("id") is None:
            return None
        found = None
        for binding in self.links:
            if binding.node.get("id") == node.get("id"):
                found = binding
        return found


def _search_bind_scope(document: ColladaDocument, ref: str, scope: Element) -> Optional[Element]:
    target = document.url_target(scope)
    if target is None:
        return None
    for bind in scope.iterfind("bind"):
        if bind.get("symbol") != ref:
            continue
        param = bind.find("param")
        if param is not None:
            return document.resolve_sidref(param.get("ref"), target)
        sidref = bind.find("SIDREF")
        if sidref is not None:
            return document.resolve_sidref(sidref.text, target)
    for newparam in scope.iterfind("newparam"):
        if newparam.get("sid") != ref:
            continue
        sidref = newparam.find("SIDREF")
        if sidref is not None:
            return document.resolve_sidref(sidref.text, target)
        console_logger.warning(f"newparam sid={ref} does not have SIDREF")
    return None


def search_binding(document: ColladaDocument, ref: Optional[str], scope: Optional[Element]) -> Optional[Element]:
    """Resolve a bound symbol within a binding scope.

    Args:
        document: The owning document.
        ref: Symbol to look up.
        scope: A `kinematics_scene`, `articulated_system`,
            `instance_articulated_system` or `instance_kinematics_model`.

    Returns:
        The element the symbol is bound to, or None.
    """
    if scope is None or not ref:
        return None
    kind = local_name(scope)
    if kind == "kinematics_scene":
        for instance in list(scope.iterfind("instance_articulated_system")) + list(scope.iterfind("instance_kinematics_model")):
            found = search_binding(document, ref, instance)
            if found is not None:
                return found
        return None
    if kind == "articulated_system":
        for ikm in scope.iterfind("kinematics/instance_kinematics_model"):
            found = search_binding(document, ref, ikm)
            if found is not None:
                return found
        motion_ias = scope.find("motion/instance_articulated_system")
        if motion_ias is not None:
            return search_binding(document, ref, motion_ias)
        return None
    if kind in ("instance_articulated_system", "instance_kinematics_model"):
        found = _search_bind_scope(document, ref, scope)
        if found is not None:
            return found
    console_logger.warning(f"failed to get binding '{ref}' for element: {kind}")
    return None


def search_binding_element(document: ColladaDocument, element: Optional[Element], scope: Element) -> Optional[Element]:
    """Resolve a `common_sidref_or_param` element: a SIDREF child or a bound param."""
    if element is None:
        return None
    sidref = element.find("SIDREF")
    if sidref is not None:
        return document.resolve_sidref(sidref.text, scope)
    param = element.find("param")
    if param is not None:
        return search_binding(document, (param.text or "").strip(), scope)
    return None


def _resolve_newparam_value(document: ColladaDocument, element: Element, parent: Element, kind: str):
    param = element.find("param")
    if param is None:
        console_logger.warning("param not specified, setting to 0")
        return None
    name = (param.text or "").strip()
    for newparam in parent.iterfind("newparam"):
        if newparam.get("sid") != name:
            continue
        literal = newparam.find(kind)
        if literal is not None:
            return literal.text
        sidref = newparam.find("SIDREF")
        if sidref is not None:
            target = document.resolve_sidref(sidref.text, newparam)
            if target is not None and local_name(target) == "newparam":
                target = target.find(kind)
            if target is None or local_name(target) != kind:
                console_logger.warning(f"failed to resolve {sidref.text} from {name}")
                continue
            return target.text
    console_logger.warning(f"failed to resolve {name}")
    return None


def resolve_bool(document: ColladaDocument, element: Optional[Element], parent: Element) -> bool:
    """Value of a `common_bool_or_param`; False when it cannot be resolved."""
    if element is None:
        return False
    literal = element.find("bool")
    text = literal.text if literal is not None else _resolve_newparam_value(document, element, parent, "bool")
    return (text or "").strip().lower() in ("true", "1")


def resolve_float(document: ColladaDocument, element: Optional[Element], parent: Element) -> float:
    """Value of a `common_float_or_param`; 0.0 when it cannot be resolved."""
    if element is None:
        return 0.0
    literal = element.find("float")
    text = literal.text if literal is not None else _resolve_newparam_value(document, element, parent, "float")
    try:
        return float((text or "").strip())
    except ValueError:
        return 0.0


def extract_visual_bindings(document: ColladaDocument, visual_scene_instance: Optional[Element],
                            kinematics_scene_instance: Element, bindings: KinematicsSceneBindings) -> None:
    """Collect the visual model and joint axis bindings of a kinematics scene instance."""
    kscene = document.url_target(kinematics_scene_instance)
    if kscene is None:
        return
    vscene = document.url_target(visual_scene_instance)

    for bind_model in kinematics_scene_instance.iterfind("bind_kinematics_model"):
        if not bind_model.get("node"):
            console_logger.warning("do not support kinematics models without references to nodes")
            continue
        node = document.resolve_sidref(bind_model.get("node"), vscene)
        if node is None or local_name(node) != "node":
            console_logger.warning(f"bind_kinematics_model does not reference valid node {bind_model.get('node')}")
            continue
        ikm = search_binding_element(document, bind_model, kscene)
        if ikm is None or local_name(ikm) != "instance_kinematics_model":
            if ikm is None:
                console_logger.warning("bind_kinematics_model does not reference element")
            else:
                console_logger.warning(f"bind_kinematics_model cannot find reference to {local_name(ikm)}")
            continue
        bindings.visual_models.append((node, ikm))

    for bind_axis in kinematics_scene_instance.iterfind("bind_joint_axis"):
        target = document.resolve_sidref(bind_axis.get("target"), vscene)
        if target is None:
            console_logger.error(f"Target Node {bind_axis.get('target')} NOT found!!!")
            continue
        axis = search_binding_element(document, bind_axis.find("axis"), kscene)
        if axis is None or local_name(axis) not in ("revolute", "prismatic"):
            continue
        bindings.axes.append(AxisBinding(target=target, axis=axis, value=bind_axis.find("value")))


def extract_physics_bindings(document: ColladaDocument, scene: Element, bindings: KinematicsSceneBindings) -> None:
    """Collect rigid body to node bindings from every instantiated physics scene."""
    for pscene in document.iter_instances(scene, "instance_physics_scene"):
        for ipmodel in pscene.iterfind("instance_physics_model"):
            pmodel = document.url_target(ipmodel)
            if pmodel is None:
                console_logger.warning(f"failed to resolve physics model {ipmodel.get('url')}")
                continue
            offset_node = document.resolve_url(ipmodel.get("parent"))
            for irigid in ipmodel.iterfind("instance_rigid_body"):
                node = document.resolve_url(irigid.get("target"))
                rigid_body = document.resolve_sidref(irigid.get("body"), pmodel)
                if node is not None and rigid_body is not None:
                    bindings.links.append(LinkBinding(node, irigid, rigid_body, offset_node))


def add_axis_info(document: ColladaDocument, ikms: List[Element], kinematics_axis_info: Element,
                  motion_axis_info: Optional[Element], bindings: KinematicsSceneBindings) -> bool:
    """Attach an articulated system's axis_info to the binding of the axis it names."""
    axis_ref = kinematics_axis_info.get("axis")
    if not axis_ref:
        return False
    for ikm in ikms:
        axis = document.resolve_sidref(axis_ref, document.url_target(ikm))
        if axis is None:
            continue
        binding = bindings.axis_binding(axis)
        if binding is not None:
            binding.kinematics_axis_info = kinematics_axis_info
            if motion_axis_info is not None:
                binding.motion_axis_info = motion_axis_info
            return True
        console_logger.warning(f"could not find binding for axis: {axis_ref}")
        return False
    console_logger.warning(f"could not find kinematics axis target: {axis_ref}")
    return False
