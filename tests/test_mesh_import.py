"""Tests for loading mesh files referenced from URDF."""

from pathlib import Path

import numpy as np
import pytest

from collada_kinematics.core import Mesh, MeshPart
from collada_kinematics.io import ColladaWriter, parse_urdf, write_mesh_document
from collada_kinematics.io.collada_document import ColladaDocument, parse_floats
from collada_kinematics.io.mesh_import import load_mesh, resolve_uri

TRIANGLE_OBJ = """v 0 0 0
v 1 0 0
v 0 1 0
f 1 2 3
"""


@pytest.fixture
def triangle_obj(tmp_path):
    path = tmp_path / "triangle.obj"
    path.write_text(TRIANGLE_OBJ)
    return path


def test_resolve_uri(tmp_path):
    """file:// and relative paths resolve, package:// is left alone."""
    assert resolve_uri("file:///meshes/a.stl") == Path("/meshes/a.stl")
    assert resolve_uri("a.stl", tmp_path) == tmp_path / "a.stl"
    assert resolve_uri("/abs/a.stl", tmp_path) == Path("/abs/a.stl")
    assert resolve_uri("package://robot/a.stl", tmp_path) == Path("package://robot/a.stl")


def test_load_obj_with_scale(triangle_obj):
    """Meshes loaded through trimesh are scaled per axis."""
    (mesh,) = load_mesh(str(triangle_obj), scale=(2.0, 3.0, 1.0))
    vertices, faces = mesh
    assert faces.shape == (1, 3)
    np.testing.assert_allclose(vertices.max(axis=0), [2.0, 3.0, 0.0])


def test_load_collada_mesh(tmp_path):
    """Mesh documents written for link geometry load back."""
    mesh = Mesh.from_parts([
        MeshPart(np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0]], dtype=float), np.array([0, 1, 2])),
    ])
    path = tmp_path / "link.dae"
    path.write_bytes(write_mesh_document(mesh, "link"))

    (loaded,) = load_mesh(path.name, base_dir=tmp_path)
    vertices, faces = loaded
    assert faces.shape == (1, 3)
    np.testing.assert_allclose(vertices[faces[0]], mesh.vertices)


def test_missing_file_gives_nothing(tmp_path):
    """Unloadable resources are warned about and skipped."""
    assert load_mesh("missing.stl", base_dir=tmp_path) == []
    assert load_mesh("package://robot/meshes/a.stl") == []


def test_writer_embeds_referenced_mesh(triangle_obj):
    """A URDF mesh reference is loaded relative to the input and written inline."""
    model = parse_urdf(f"""
<robot name="r">
  <link name="a">
    <visual><geometry><mesh filename="{triangle_obj.name}" scale="0.5 0.5 0.5"/></geometry></visual>
  </link>
</robot>""")
    root = ColladaWriter(model, base_dir=triangle_obj.parent).write()
    document = ColladaDocument.from_element(root)
    positions = document.get_by_id("gkmodel0_a_geom0_positions")
    values = np.array(parse_floats(positions.findtext("float_array"))).reshape(-1, 3)
    assert len(values) == 3
    np.testing.assert_allclose(values.max(axis=0), [0.5, 0.5, 0.0])
