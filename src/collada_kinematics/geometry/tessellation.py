"""Triangle soups for the analytic primitives.

Boxes, spheres and cylinders are turned into (vertices, indices) pairs so
they can be baked into a single link mesh. Vertices are (N, 3) float64 arrays
and indices are flat int arrays, three per triangle.
"""

import math
from typing import Dict, List, Sequence, Tuple

import numpy as np

MIN_TESSELLATION = 0.01

# icosahedron coordinates
_ICO_X = 0.850650808352039932
_ICO_Y = 0.525731112119133606
_ICO_Z = 0.0

_BOX_SIGNS = np.array([
    [1, 1, 1], [1, 1, -1], [1, -1, 1], [1, -1, -1],
    [-1, 1, 1], [-1, 1, -1], [-1, -1, 1], [-1, -1, -1],
], dtype=np.float64)

_BOX_INDICES = (
    0, 1, 2, 1, 2, 3, 4, 5, 6, 5, 6, 7, 0, 1, 4, 1, 4, 5,
    2, 3, 6, 3, 6, 7, 0, 2, 4, 2, 4, 6, 1, 3, 5, 3, 5, 7,
)

_ICO_INDICES = (
    0, 1, 2, 1, 3, 4, 3, 5, 6, 2, 4, 7, 5, 6, 8, 2, 7, 9, 0, 5, 8,
    7, 9, 10, 0, 1, 5, 7, 10, 11, 1, 3, 5, 6, 10, 11, 3, 6, 11,
    9, 10, 8, 3, 4, 11, 6, 8, 10, 4, 7, 11, 1, 2, 4, 0, 8, 9, 0, 2, 9,
)

Mesh = Tuple[np.ndarray, np.ndarray]


def _clamp_tessellation(tessellation: float) -> float:
    return max(float(tessellation), MIN_TESSELLATION)


def signed_volumes(vertices: np.ndarray, indices: np.ndarray) -> np.ndarray:
    """Signed volume of the tetrahedron spanned by the origin and each triangle.

    Args:
        vertices: (N, 3) vertex positions.
        indices: (3M,) triangle indices.

    Returns:
        (M,) values of dot(v0, cross(v1, v2)).
    """
    tris = vertices[np.asarray(indices).reshape(-1, 3)]
    return np.einsum("ij,ij->i", tris[:, 0], np.cross(tris[:, 1], tris[:, 2]))


def tessellate_box(half_extents: Sequence[float]) -> Mesh:
    """Triangulate an axis-aligned box centred at the origin.

    Args:
        half_extents: Half of the box size along x, y and z.

    Returns:
        8 corner vertices and 36 indices, every face wound outwards.
    """
    vertices = _BOX_SIGNS * np.asarray(half_extents, dtype=np.float64)
    indices = np.array(_BOX_INDICES, dtype=np.int64)
    for i in range(0, len(indices), 3):
        v1, v2, v3 = vertices[indices[i:i + 3]]
        if np.dot(v1, np.cross(v2, v3)) < 0:
            indices[i], indices[i + 1] = indices[i + 1], indices[i]
    return vertices, indices


def _icosahedron() -> Tuple[List[np.ndarray], List[int]]:
    X, Y, Z = _ICO_X, _ICO_Y, _ICO_Z
    vertices = [np.array(v, dtype=np.float64) for v in (
        (Z, X, -Y), (X, Y, Z), (Y, Z, -X), (Y, Z, X), (X, -Y, Z), (Z, X, Y),
        (-Y, Z, X), (Z, -X, -Y), (-X, Y, Z), (-Y, Z, -X), (-X, -Y, Z), (Z, -X, Y),
    )]
    indices = list(_ICO_INDICES)
    for i in range(0, len(indices), 3):
        v0, v1, v2 = (vertices[j] for j in indices[i:i + 3])
        if np.dot(v0, np.cross(v1 - v0, v2 - v0)) < 0:
            indices[i], indices[i + 1] = indices[i + 1], indices[i]
    return vertices, indices


def _subdivide(vertices: List[np.ndarray], indices: List[int]) -> Tuple[List[np.ndarray], List[int]]:
    """One round of 4-way subdivision with midpoints pushed onto the unit sphere."""
    vertices = list(vertices)
    midpoints: Dict[Tuple[int, int], int] = {}
    new_indices: List[int] = []
    for i in range(0, len(indices), 3):
        tri = indices[i:i + 3]
        mids = []
        for j in range(3):
            a, b = tri[j], tri[(j + 1) % 3]
            key = (min(a, b), max(a, b))
            if key not in midpoints:
                midpoint = vertices[a] + vertices[b]
                midpoints[key] = len(vertices)
                vertices.append(midpoint / np.linalg.norm(midpoint))
            mids.append(midpoints[key])
        m0, m1, m2 = mids
        new_indices.extend((
            tri[0], m0, m2,
            m0, tri[1], m1,
            m2, m0, m1,
            m2, m1, tri[2],
        ))
    return vertices, new_indices


def sphere_levels(tessellation: float = 1.0) -> int:
    """Number of subdivision rounds used for a tessellation factor."""
    return max(0, 3 + int(math.floor(math.log2(_clamp_tessellation(tessellation)))))


def tessellate_sphere(radius: float, tessellation: float = 1.0) -> Mesh:
    """Triangulate a sphere by subdividing an icosahedron.

    Args:
        radius: Sphere radius.
        tessellation: Resolution factor; 1.0 gives three subdivision rounds
            (642 vertices, 1280 triangles).

    Returns:
        Vertices and indices of the sphere surface.
    """
    vertices, indices = _icosahedron()
    for _ in range(sphere_levels(tessellation)):
        vertices, indices = _subdivide(vertices, indices)
    return np.stack(vertices) * float(radius), np.array(indices, dtype=np.int64)


def cylinder_segments(tessellation: float = 1.0) -> int:
    """Number of ring segments used for a tessellation factor."""
    return int(math.ceil(24.0 * _clamp_tessellation(tessellation))) + 3


def tessellate_cylinder(radius: float, length: float, tessellation: float = 1.0) -> Mesh:
    """Triangulate a closed cylinder whose axis is z.

    The two cap centres come first, followed by one vertex pair (top, bottom)
    per ring step. Caps fan out from the centres.

    Args:
        radius: Cylinder radius.
        length: Full length along z.
        tessellation: Resolution factor for the ring.

    Returns:
        Vertices and indices of the cylinder surface.
    """
    half = 0.5 * float(length)
    r = float(radius)
    numverts = cylinder_segments(tessellation)
    dtheta = 2.0 * math.pi / numverts

    vertices = [(0.0, 0.0, half), (0.0, 0.0, -half), (r, 0.0, half), (r, 0.0, -half)]
    indices: List[int] = []
    for i in range(numverts + 1):
        c = r * math.cos(dtheta * i)
        s = r * math.sin(dtheta * i)
        off = len(vertices)
        vertices.append((c, s, half))
        vertices.append((c, s, -half))
        indices.extend((
            0, off, off - 2,
            1, off - 1, off + 1,
            off - 2, off, off - 1,
            off, off - 1, off + 1,
        ))
    return np.array(vertices, dtype=np.float64), np.array(indices, dtype=np.int64)
