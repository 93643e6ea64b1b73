"""Tests for primitive triangulation."""

import numpy as np
import pytest

from collada_kinematics.geometry.tessellation import (
    cylinder_segments,
    signed_volumes,
    sphere_levels,
    tessellate_box,
    tessellate_cylinder,
    tessellate_sphere,
)


def test_box_counts_and_winding():
    """A (2, 4, 6) box has 8 corners, 36 indices and outward faces."""
    vertices, indices = tessellate_box(0.5 * np.array([2.0, 4.0, 6.0]))
    assert vertices.shape == (8, 3)
    assert indices.shape == (36,)
    np.testing.assert_allclose(np.abs(vertices).max(axis=0), [1.0, 2.0, 3.0])
    assert np.all(signed_volumes(vertices, indices) >= 0.0)


@pytest.mark.parametrize("tessellation,levels,count", [
    (1.0, 3, 642),
    (0.5, 2, 162),
    (0.25, 1, 42),
    (0.1, 0, 12),
])
def test_sphere_subdivision_levels(tessellation, levels, count):
    """Each level of subdivision refines 12 -> 42 -> 162 -> 642 vertices."""
    assert sphere_levels(tessellation) == levels
    vertices, indices = tessellate_sphere(1.0, tessellation)
    assert len(vertices) == count
    assert len(indices) == 3 * 20 * 4 ** levels


def test_sphere_vertices_are_unique_and_on_surface():
    """Shared edge midpoints are not duplicated and lie on the radius."""
    vertices, _ = tessellate_sphere(2.5)
    unique = np.unique(np.round(vertices, 9), axis=0)
    assert len(unique) == len(vertices)
    np.testing.assert_allclose(np.linalg.norm(vertices, axis=1), 2.5, atol=1e-9)


def test_sphere_faces_point_outwards():
    """Subdivision keeps the icosahedron winding."""
    vertices, indices = tessellate_sphere(1.0, 0.5)
    assert np.all(signed_volumes(vertices, indices) > 0.0)


def test_cylinder_dimensions():
    """The cylinder spans +-length/2 along z at the given radius."""
    vertices, indices = tessellate_cylinder(0.5, 2.0)
    segments = cylinder_segments(1.0)
    assert segments == 27
    assert len(vertices) == 4 + 2 * (segments + 1)
    assert len(indices) == 12 * (segments + 1)
    np.testing.assert_allclose(vertices[:, 2].min(), -1.0)
    np.testing.assert_allclose(vertices[:, 2].max(), 1.0)
    radii = np.linalg.norm(vertices[2:, :2], axis=1)
    np.testing.assert_allclose(radii, 0.5, atol=1e-9)


def test_tessellation_is_clamped():
    """Tiny or negative factors fall back to the minimum resolution."""
    assert cylinder_segments(-1.0) == cylinder_segments(0.01)
    assert sphere_levels(0.0) == 0
