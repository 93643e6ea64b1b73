"""Tests for writing RobotModels as COLLADA and reading them back."""

import math
from pathlib import Path

import numpy as np
import pytest
from lxml import etree

from collada_kinematics.core import Geometry, Joint, JointType, Link, Mesh, MeshPart, RobotModel, Visual
from collada_kinematics.geometry.mesh_decoding import decode_mesh
from collada_kinematics.io.collada_document import COLLADA_NAMESPACE, ColladaDocument, local_name, parse_floats
from collada_kinematics.io.collada_reader import load_collada
from collada_kinematics.io.collada_writer import ColladaWriter, compute_id, write_mesh_document, write_transformation
from collada_kinematics.io.urdf_parser import load_urdf
from collada_kinematics.transforms import pose as pose_ops
from collada_kinematics.transforms import quaternion, so3

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def gripper():
    return load_urdf(FIXTURES / "two_link.urdf")


@pytest.fixture
def roundtrip(gripper):
    root = ColladaWriter(gripper).write()
    return load_collada(etree.tostring(root))


def _extent(link):
    vertices = np.asarray(pose_ops.apply(link.visual.origin, np.asarray(link.visual.geometry.vertices)))
    low, high = vertices.min(axis=0), vertices.max(axis=0)
    return 0.5 * (low + high), high - low


def test_compute_id():
    """Separators that are not valid in ids become underscores."""
    assert compute_id("robot/left arm.link") == "robot_left_arm_link"
    assert compute_id("plain") == "plain"


def test_write_transformation_order():
    """translate comes before rotate, both after the asset."""
    node = etree.Element(f"{{{COLLADA_NAMESPACE}}}node")
    etree.SubElement(node, f"{{{COLLADA_NAMESPACE}}}asset")
    etree.SubElement(node, f"{{{COLLADA_NAMESPACE}}}instance_geometry")
    pose = pose_ops.from_position_and_quaternion(
        [1.0, 2.0, 3.0], quaternion.from_axis_angle(np.array([0.0, 0.0, 1.0]), math.pi / 2)
    )
    write_transformation(node, pose)

    assert [local_name(child) for child in node] == ["asset", "translate", "rotate", "instance_geometry"]
    np.testing.assert_allclose(parse_floats(node[1].text), [1.0, 2.0, 3.0])
    np.testing.assert_allclose(parse_floats(node[2].text), [0.0, 0.0, 1.0, 90.0], atol=1e-9)


def test_write_transformation_identity():
    """The identity rotation is written as 1 0 0 0."""
    node = etree.Element(f"{{{COLLADA_NAMESPACE}}}node")
    write_transformation(node, pose_ops.identity())
    assert parse_floats(node[1].text) == [1.0, 0.0, 0.0, 0.0]


def test_document_layout(gripper):
    """Libraries and scene instances follow the schema order."""
    root = ColladaWriter(gripper).write()
    document = ColladaDocument.from_element(root)
    tags = [local_name(child) for child in document.root]
    assert tags[0] == "asset"
    assert tags[-2:] == ["scene", "extra"]
    assert tags.index("library_visual_scenes") < tags.index("library_kinematics_models")
    scene = document.root.find("scene")
    assert [local_name(child) for child in scene] == [
        "instance_physics_scene", "instance_visual_scene", "instance_kinematics_scene"
    ]
    pscene = document.get_by_id("pscene")
    (instance,) = pscene.findall("instance_physics_model")
    assert (instance.get("url"), instance.get("parent")) == ("#pmodel0", "#visual0")
    assert len(instance.findall("instance_rigid_body")) == 4
    assert len(pscene.findall("technique_common")) == 1
    assert local_name(pscene[-1]) == "technique_common"
    assert parse_floats(pscene.findtext("technique_common/gravity")) == [0.0, 0.0, 0.0]
    assert document.get_by_id("kmodel0") is not None
    assert document.get_by_id("robot0_motion") is not None
    assert document.get_by_id("gkmodel0_base_geom0") is not None
    # right_finger has no geometry
    assert document.get_by_id("gkmodel0_right_finger_geom0") is None


def test_output_is_deterministic(gripper):
    """Writing the same model twice differs only in the asset timestamps."""
    first = ColladaWriter(gripper).write()
    second = ColladaWriter(gripper).write()
    for root in (first, second):
        root.remove(root[0])
    assert etree.tostring(first) == etree.tostring(second)


def test_roundtrip_structure(roundtrip):
    """Links, joints, names and the root survive."""
    assert roundtrip.name == "gripper"
    assert roundtrip.root == "base"
    assert set(roundtrip.links) == {"base", "arm", "left_finger", "right_finger"}
    assert set(roundtrip.joints) == {"shoulder", "left_slide", "right_slide"}
    shoulder = roundtrip.joints["shoulder"]
    assert (shoulder.parent, shoulder.child) == ("base", "arm")
    assert shoulder.type == JointType.REVOLUTE
    assert roundtrip.joints["left_slide"].type == JointType.PRISMATIC


def test_roundtrip_joint_frames(roundtrip, gripper):
    """Joint origins and axes are preserved."""
    for name, joint in gripper.joints.items():
        restored = roundtrip.joints[name]
        np.testing.assert_allclose(restored.origin.position, joint.origin.position, atol=1e-9)
        np.testing.assert_allclose(
            so3.from_quaternion(restored.origin.rotation), so3.from_quaternion(joint.origin.rotation), atol=1e-9
        )
        np.testing.assert_allclose(restored.axis, joint.axis, atol=1e-9)


def test_roundtrip_limits(roundtrip):
    """Position limits, velocity and effort survive through the axis infos."""
    shoulder = roundtrip.joints["shoulder"].limits
    assert (shoulder.lower, shoulder.upper) == pytest.approx((-1.0, 1.5))
    assert shoulder.velocity == pytest.approx(1.2)
    assert shoulder.effort == pytest.approx(20.0)
    slide = roundtrip.joints["left_slide"].limits
    assert (slide.lower, slide.upper) == pytest.approx((0.0, 0.04))
    assert slide.velocity == pytest.approx(0.1)


def test_roundtrip_mimic(roundtrip):
    """The mimic relation is written as a formula and read back."""
    mimic = roundtrip.joints["right_slide"].mimic
    assert mimic.joint == "left_slide"
    assert mimic.multiplier == pytest.approx(2.0)
    assert mimic.offset == pytest.approx(0.5)
    assert roundtrip.joints["left_slide"].mimic is None


def test_roundtrip_inertia(roundtrip):
    """Mass, center of mass and tensor survive the principal axis decomposition."""
    inertial = roundtrip.links["base"].inertial
    assert inertial.mass == pytest.approx(2.0)
    np.testing.assert_allclose(inertial.origin.position, [0.0, 0.0, 0.05], atol=1e-9)
    R = np.asarray(so3.from_quaternion(inertial.origin.rotation))
    tensor = R @ np.diag([inertial.ixx, inertial.iyy, inertial.izz]) @ R.T
    np.testing.assert_allclose(tensor, np.diag([0.02, 0.03, 0.04]), atol=1e-9)

    arm = roundtrip.links["arm"].inertial
    np.testing.assert_allclose(arm.origin.position, np.zeros(3), atol=1e-9)
    assert roundtrip.links["right_finger"].inertial is None


def test_roundtrip_geometry_placement(roundtrip):
    """Geometry ends up where its visual origin put it."""
    center, size = _extent(roundtrip.links["base"])
    np.testing.assert_allclose(center, [0.0, 0.0, 0.05], atol=1e-9)
    np.testing.assert_allclose(size, [0.2, 0.2, 0.1], atol=1e-9)

    center, size = _extent(roundtrip.links["arm"])
    assert center[2] == pytest.approx(0.25)
    assert size[2] == pytest.approx(0.5)
    assert size[0] == pytest.approx(0.06, abs=1e-3)

    center, _ = _extent(roundtrip.links["left_finger"])
    np.testing.assert_allclose(center, np.zeros(3), atol=1e-9)
    assert roundtrip.links["right_finger"].visual is None


def test_roundtrip_colors(roundtrip):
    """Material colors come back as the diffuse color of the mesh parts."""
    (base_part,) = roundtrip.links["base"].visual.geometry.parts
    assert base_part.diffuse_color == pytest.approx((0.5, 0.5, 0.5, 1.0))
    (arm_part,) = roundtrip.links["arm"].visual.geometry.parts
    assert arm_part.diffuse_color == pytest.approx((1.0, 0.0, 0.0, 1.0))


def test_fixed_and_continuous_joints():
    """Zero limits read back as fixed, missing limits as continuous."""
    model = RobotModel(name="hinge")
    for name in ("a", "b", "c"):
        model.add_link(Link(name))
    model.add_joint(Joint(name="weld", type=JointType.FIXED, parent="a", child="b"))
    model.add_joint(Joint(name="spin", type=JointType.CONTINUOUS, parent="a", child="c",
                          axis=np.array([0.0, 0.0, 1.0])))
    model.finalize()

    restored = load_collada(etree.tostring(ColladaWriter(model).write()))
    assert restored.joints["weld"].type == JointType.FIXED
    spin = restored.joints["spin"]
    assert spin.type == JointType.CONTINUOUS
    assert (spin.limits.lower, spin.limits.upper) == pytest.approx((-math.pi, math.pi))


def test_unsupported_geometry_is_skipped():
    """A geometry the writer cannot triangulate leaves the node empty."""
    model = RobotModel(name="odd")
    model.add_link(Link("a", visual=Visual(geometry=Geometry())))
    model.finalize()
    document = ColladaDocument.from_element(ColladaWriter(model).write())
    assert document.root.find("library_geometries/geometry") is None
    node = document.get_by_id("vkmodel0_node0")
    assert node.find("instance_geometry") is None


def test_mesh_document():
    """Each colored part becomes its own material and geometry."""
    mesh = Mesh.from_parts([
        MeshPart(np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0]], dtype=float), np.array([0, 1, 2]),
                 ambient_color=(0.1, 0.1, 0.1, 1.0), diffuse_color=(1.0, 0.0, 0.0, 1.0)),
        MeshPart(np.array([[0, 0, 1], [1, 0, 1], [0, 1, 1]], dtype=float), np.array([0, 1, 2]),
                 ambient_color=(0.1, 0.1, 0.1, 1.0), diffuse_color=(0.0, 0.0, 1.0, 1.0)),
    ])
    document = ColladaDocument.parse(write_mesh_document(mesh, "my link"))
    assert document.root.get("version") == "1.4.1"
    assert document.root.findtext("asset/up_axis") == "Z_UP"

    node = document.get_by_id("my_link")
    decoded = []
    for instance in node.iterfind("instance_geometry"):
        target = instance.find("bind_material/technique_common/instance_material").get("target")
        decoded.extend(decode_mesh(document, document.url_target(instance), {"mat0": document.resolve_url(target)}))
    assert len(decoded) == 2
    assert decoded[1].diffuse_color == pytest.approx((0.0, 0.0, 1.0, 1.0))
    np.testing.assert_allclose(decoded[1].vertices[:, 2], [1.0, 1.0, 1.0])
