"""Tests for decoding COLLADA mesh primitives."""

import numpy as np
import pytest

from collada_kinematics.geometry.mesh_decoding import decode_mesh
from collada_kinematics.io.collada_document import ColladaDocument

QUAD_SOURCE = """
<source id="quad_positions">
  <float_array id="quad_positions_array" count="12">0 0 0 1 0 0 1 1 0 0 1 0</float_array>
</source>
<vertices id="quad_vertices">
  <input semantic="POSITION" source="#quad_positions"/>
</vertices>
"""


def _document(primitives, unit=1.0, extra=""):
    return ColladaDocument.parse(f"""
<COLLADA xmlns="http://www.collada.org/2008/03/COLLADASchema" version="1.5.0">
  <asset><unit meter="{unit}"/></asset>
  {extra}
  <library_geometries>
    <geometry id="quad">
      <mesh>
        {QUAD_SOURCE}
        {primitives}
      </mesh>
    </geometry>
  </library_geometries>
</COLLADA>
""")


def _decode(document, materials=None):
    return decode_mesh(document, document.get_by_id("quad"), materials or {})


def test_triangles():
    """Each triangle gets three fresh vertices."""
    document = _document("""
<triangles count="2">
  <input semantic="VERTEX" source="#quad_vertices" offset="0"/>
  <input semantic="NORMAL" source="#quad_normals" offset="1"/>
  <p>0 0 1 0 2 0 0 0 2 0 3 0</p>
</triangles>""")
    (decoded,) = _decode(document)
    assert decoded.vertices.shape == (6, 3)
    np.testing.assert_array_equal(decoded.indices, np.arange(6))
    np.testing.assert_allclose(decoded.vertices[2], [1.0, 1.0, 0.0])
    np.testing.assert_allclose(decoded.vertices[5], [0.0, 1.0, 0.0])


def test_triangles_short_index_list_is_truncated():
    """A count larger than the index list decodes what is there."""
    document = _document("""
<triangles count="3">
  <input semantic="VERTEX" source="#quad_vertices" offset="0"/>
  <p>0 1 2 0 2 3</p>
</triangles>""")
    (decoded,) = _decode(document)
    assert len(decoded.vertices) == 6


def test_polylist_quad_is_fanned():
    """A four sided polygon becomes two triangles."""
    document = _document("""
<polylist count="1">
  <input semantic="VERTEX" source="#quad_vertices" offset="0"/>
  <vcount>4</vcount>
  <p>0 1 2 3</p>
</polylist>""")
    (decoded,) = _decode(document)
    assert len(decoded.vertices) == 4
    np.testing.assert_array_equal(decoded.indices, [0, 1, 2, 0, 2, 3])


def test_tristrips_alternate_winding():
    """Every second strip triangle is flipped."""
    document = _document("""
<tristrips count="1">
  <input semantic="VERTEX" source="#quad_vertices" offset="0"/>
  <p>0 1 3 2</p>
</tristrips>""")
    (decoded,) = _decode(document)
    np.testing.assert_array_equal(decoded.indices, [0, 1, 2, 1, 3, 2])


def test_trifans():
    """A fan shares its first vertex."""
    document = _document("""
<trifans count="1">
  <input semantic="VERTEX" source="#quad_vertices" offset="0"/>
  <p>0 1 2 3</p>
</trifans>""")
    (decoded,) = _decode(document)
    np.testing.assert_array_equal(decoded.indices, [0, 1, 2, 0, 2, 3])


def test_unit_scale_applies_to_positions():
    """Positions are converted to meters."""
    document = _document("""
<triangles count="1">
  <input semantic="VERTEX" source="#quad_vertices" offset="0"/>
  <p>0 1 2</p>
</triangles>""", unit=0.01)
    (decoded,) = _decode(document)
    np.testing.assert_allclose(decoded.vertices[2], [0.01, 0.01, 0.0])


def test_material_colors_are_attached():
    """Phong ambient and diffuse colors of the bound material are kept."""
    effects = """
<library_effects>
  <effect id="eff">
    <profile_COMMON><technique sid="common"><phong>
      <ambient><color>0.1 0.2 0.3 1</color></ambient>
      <diffuse><color>0.4 0.5 0.6 1</color></diffuse>
    </phong></technique></profile_COMMON>
  </effect>
</library_effects>
<library_materials>
  <material id="mat"><instance_effect url="#eff"/></material>
</library_materials>"""
    document = _document("""
<triangles count="1" material="paint">
  <input semantic="VERTEX" source="#quad_vertices" offset="0"/>
  <p>0 1 2</p>
</triangles>""", extra=effects)
    (decoded,) = _decode(document, {"paint": document.get_by_id("mat")})
    assert decoded.ambient_color == pytest.approx((0.1, 0.2, 0.3, 1.0))
    assert decoded.diffuse_color == pytest.approx((0.4, 0.5, 0.6, 1.0))


def test_polygons_are_skipped():
    """Unsupported primitives produce nothing."""
    document = _document("""
<polygons count="1">
  <input semantic="VERTEX" source="#quad_vertices" offset="0"/>
  <p>0 1 2 3</p>
</polygons>""")
    assert _decode(document) == []
