"""Tests for building a RobotModel from COLLADA kinematics scenes."""

import math
from pathlib import Path

import numpy as np
import pytest
from lxml import etree

from collada_kinematics.core import JointType, Mesh
from collada_kinematics.errors import MalformedDocument
from collada_kinematics.io.collada_document import COLLADA_NAMESPACE, ColladaDocument
from collada_kinematics.io.collada_reader import load_collada
from collada_kinematics.io.collada_writer import ColladaWriter
from collada_kinematics.io.urdf_parser import load_urdf
from collada_kinematics.kinematics import ColladaModelBuilder
from collada_kinematics.transforms import pose as pose_ops

FIXTURES = Path(__file__).parent / "fixtures"


def test_two_link_structure():
    """One revolute joint between links A and B."""
    model = load_collada(FIXTURES / "two_link.dae")
    assert set(model.links) == {"A", "B"}
    assert list(model.joints) == ["j1"]
    assert model.root == "A"

    joint = model.joints["j1"]
    assert joint.type == JointType.REVOLUTE
    assert (joint.parent, joint.child) == ("A", "B")
    np.testing.assert_allclose(joint.origin.position, [0.0, 0.0, 1.0], atol=1e-12)
    np.testing.assert_allclose(joint.axis, [0.0, 0.0, 1.0], atol=1e-12)


def test_two_link_limits_and_default_velocity():
    """Degree limits become radians; missing velocity gets the revolute default."""
    model = load_collada(FIXTURES / "two_link.dae")
    limits = model.joints["j1"].limits
    assert limits.lower == pytest.approx(-math.pi / 2)
    assert limits.upper == pytest.approx(math.pi / 2)
    assert limits.velocity == 0.5


def test_two_link_name_from_kinematics_model():
    """Without an articulated system the robot takes the model instance name."""
    model = load_collada(FIXTURES / "two_link.dae")
    assert model.name == "two_link"


def test_two_link_geometry():
    """Each link gets one combined mesh shared by visual and collision."""
    model = load_collada(FIXTURES / "two_link.dae")

    a = model.links["A"]
    assert isinstance(a.visual.geometry, Mesh)
    assert a.collision.geometry is a.visual.geometry
    assert len(a.visual.geometry.vertices) == 3
    assert a.visual.material.name == "Red"
    (part,) = a.visual.geometry.parts
    assert part.diffuse_color == pytest.approx((0.0, 0.0, 1.0, 1.0))
    # ambient is halved and zero channels are lifted
    assert part.ambient_color == pytest.approx((0.1, 0.0001, 0.2, 1.0))

    b = model.links["B"]
    vertices = np.asarray(b.visual.geometry.vertices)
    assert len(vertices) == 8
    in_link = np.asarray(pose_ops.apply(b.visual.origin, vertices))
    np.testing.assert_allclose(in_link.mean(axis=0), [0.0, 0.0, 0.0], atol=1e-9)
    np.testing.assert_allclose(in_link.max(axis=0) - in_link.min(axis=0), [0.2, 0.4, 0.6], atol=1e-9)


def test_dual_axis_creates_dummy_link():
    """A joint with two axes is split through a dummy link."""
    model = load_collada(FIXTURES / "dual_axis.dae")
    assert list(model.links) == ["base", "base_dummy0", "tool"]
    assert set(model.joints) == {"wrist", "wrist_axis1"}

    first = model.joints["wrist"]
    second = model.joints["wrist_axis1"]
    assert (first.parent, first.child) == ("base", "base_dummy0")
    assert (second.parent, second.child) == ("base_dummy0", "tool")
    np.testing.assert_allclose(first.origin.position, [0.5, 0.0, 0.0], atol=1e-12)
    assert pose_ops.is_identity(second.origin)


def test_dual_axis_limits():
    """An axis without limits becomes continuous, the limited one stays revolute."""
    model = load_collada(FIXTURES / "dual_axis.dae")
    first = model.joints["wrist"]
    second = model.joints["wrist_axis1"]
    assert first.type == JointType.CONTINUOUS
    assert (first.limits.lower, first.limits.upper) == pytest.approx((-math.pi, math.pi))
    assert second.type == JointType.REVOLUTE
    assert second.limits.upper == pytest.approx(math.pi / 4)
    np.testing.assert_allclose(second.axis, [0.0, 1.0, 0.0], atol=1e-12)


def test_links_without_geometry_have_no_visual():
    """Nodes without geometry give links without visual or collision."""
    model = load_collada(FIXTURES / "dual_axis.dae")
    for link in model.links.values():
        assert link.visual is None
        assert link.collision is None


def test_no_scene_is_malformed():
    """A document without a scene cannot be converted."""
    document = ColladaDocument.parse('<COLLADA version="1.5.0"><asset/></COLLADA>')
    with pytest.raises(MalformedDocument):
        ColladaModelBuilder(document).build()


def test_no_kinematics_scene_is_malformed():
    """A scene with only visuals holds no robot."""
    text = """
<COLLADA version="1.5.0">
  <library_visual_scenes><visual_scene id="vs"><node id="n"/></visual_scene></library_visual_scenes>
  <scene><instance_visual_scene url="#vs"/></scene>
</COLLADA>"""
    with pytest.raises(MalformedDocument):
        load_collada(text)


def test_unresolvable_attachment_is_skipped():
    """An attachment naming an unknown joint is warned about and dropped."""
    text = (FIXTURES / "two_link.dae").read_text().replace('joint="kmodel/j1"', 'joint="kmodel/missing"')
    model = load_collada(text)
    assert list(model.links) == ["A"]
    assert model.joints == {}


def test_unknown_formula_is_skipped():
    """A formula outside the linear forms leaves the joint without mimic."""
    formula = """
        <formula sid="f">
          <target><param>kmodel/j1</param></target>
          <technique_common>
            <math xmlns="http://www.w3.org/1998/Math/MathML"><apply><sin/><ci>x</ci></apply></math>
          </technique_common>
        </formula>
      </technique_common>"""
    text = (FIXTURES / "two_link.dae").read_text().replace("</technique_common>\n    </kinematics_model>",
                                                           formula + "\n    </kinematics_model>")
    model = load_collada(text)
    assert model.joints["j1"].mimic is None


def test_formula_falls_back_to_common_math():
    """An OpenRAVE equation outside the linear forms gives way to technique_common."""
    formula = """
        <formula sid="f">
          <target><param>kmodel/j1</param></target>
          <technique_common>
            <math xmlns="http://www.w3.org/1998/Math/MathML">
              <apply><plus/>
                <apply><times/><cn>2.0</cn><csymbol encoding="COLLADA">kmodel/j1</csymbol></apply>
                <cn>0.5</cn>
              </apply>
            </math>
          </technique_common>
          <technique profile="OpenRAVE">
            <equation type="position">
              <math xmlns="http://www.w3.org/1998/Math/MathML"><apply><sin/><ci>x</ci></apply></math>
            </equation>
          </technique>
        </formula>
      </technique_common>"""
    text = (FIXTURES / "two_link.dae").read_text().replace("</technique_common>\n    </kinematics_model>",
                                                           formula + "\n    </kinematics_model>")
    mimic = load_collada(text).joints["j1"].mimic
    assert mimic is not None
    assert (mimic.joint, mimic.multiplier, mimic.offset) == ("j1", 2.0, 0.5)


def test_two_multi_axis_attachments_on_one_link():
    """Dummy links are numbered per parent across attachments."""
    elbow = """
        <joint sid="elbow" name="elbow">
          <revolute sid="axis0"><axis>1 0 0</axis></revolute>
          <prismatic sid="axis1"><axis>0 0 2</axis><limits><min>0</min><max>0.1</max></limits></prismatic>
        </joint>
        <link sid="base" name="base">"""
    attachment = """
          <attachment_full joint="kmodel/elbow">
            <translate>0 0.5 0</translate>
            <link sid="hand" name="hand"/>
          </attachment_full>
        </link>"""
    text = (FIXTURES / "dual_axis.dae").read_text()
    text = text.replace('<link sid="base" name="base">', elbow, 1)
    text = text.replace("</attachment_full>\n        </link>", "</attachment_full>" + attachment, 1)

    model = load_collada(text)
    assert set(model.links) == {"base", "base_dummy0", "base_dummy1", "tool", "hand"}
    assert (model.joints["wrist"].child, model.joints["wrist_axis1"].parent) == ("base_dummy0", "base_dummy0")
    assert (model.joints["elbow"].child, model.joints["elbow_axis1"].parent) == ("base_dummy1", "base_dummy1")
    assert model.joints["elbow_axis1"].child == "hand"
    assert model.joints["elbow_axis1"].type == JointType.PRISMATIC
    # axes are stored as unit vectors
    np.testing.assert_allclose(model.joints["elbow_axis1"].axis, [0.0, 0.0, 1.0], atol=1e-12)


def _q(tag):
    return f"{{{COLLADA_NAMESPACE}}}{tag}"


@pytest.fixture
def written_gripper():
    return ColladaWriter(load_urdf(FIXTURES / "two_link.urdf")).write()


def test_locked_axis_info_overrides_limits(written_gripper):
    """A locked kinematics axis_info pins the joint at zero whatever the inline limits say."""
    root = written_gripper
    axis_info = next(e for e in root.iter(_q("axis_info")) if e.get("axis") == "kmodel0/shoulder/axis0")
    axis_info.find(f"{_q('locked')}/{_q('bool')}").text = "true"

    limits = load_collada(etree.tostring(root)).joints["shoulder"].limits
    assert (limits.lower, limits.upper) == (0.0, 0.0)


def test_prismatic_limits_use_unit_scale(written_gripper):
    """Prismatic limits are scaled by the document unit, revolute ones by degrees."""
    root = written_gripper
    root.find(f"{_q('asset')}/{_q('unit')}").set("meter", "0.01")

    model = load_collada(etree.tostring(root))
    slide = model.joints["left_slide"].limits
    assert (slide.lower, slide.upper) == pytest.approx((0.0, 0.0004))
    shoulder = model.joints["shoulder"].limits
    assert (shoulder.lower, shoulder.upper) == pytest.approx((-1.0, 1.5))


def test_actuator_torque_becomes_effort(written_gripper):
    """nominal_torque of an attached actuator replaces the joint effort."""
    root = written_gripper
    motion = next(e for e in root.iter(_q("articulated_system")) if e.get("id") == "robot0_motion")
    extra = etree.SubElement(motion, _q("extra"), type="attach_actuator")
    technique = etree.SubElement(extra, _q("technique"), profile="OpenRAVE")
    etree.SubElement(technique, _q("instance_actuator"), url="#actuator0")
    etree.SubElement(technique, _q("bind_actuator"), joint="kmodel0/shoulder")

    library = etree.SubElement(etree.SubElement(root, _q("extra"), type="library_actuators"),
                               _q("technique"), profile="OpenRAVE")
    actuator = etree.SubElement(library, _q("actuator"), id="actuator0")
    etree.SubElement(actuator, _q("nominal_torque")).text = "42"

    model = load_collada(etree.tostring(root))
    assert model.joints["shoulder"].limits.effort == 42.0
    assert model.joints["left_slide"].limits.effort == 5.0
