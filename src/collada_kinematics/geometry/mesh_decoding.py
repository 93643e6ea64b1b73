"""Decoding of COLLADA `<mesh>` primitives into triangle buffers.

Every supported primitive (`triangles`, `trifans`, `tristrips`, `polylist`)
is flattened into fresh, unshared vertices plus sequential triangle indices,
one `DecodedMesh` per primitive element so material colors stay attached.

Functions here take the owning `ColladaDocument` for url resolution and unit
scale lookups.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np
from lxml import etree

console_logger = logging.getLogger(__name__)

Color = Tuple[float, float, float, float]
Element = etree._Element


@dataclass
class DecodedMesh:
    """Triangles of one mesh primitive.

    Attributes:
        vertices: (N, 3) positions in meters.
        indices: (3M,) triangle indices into `vertices`.
        ambient_color: Phong ambient color of the bound material, if any.
        diffuse_color: Phong diffuse color of the bound material, if any.
    """
    vertices: np.ndarray
    indices: np.ndarray
    ambient_color: Optional[Color] = None
    diffuse_color: Optional[Color] = None


def _ints(element: Optional[Element]) -> np.ndarray:
    if element is None or not element.text:
        return np.zeros(0, dtype=np.int64)
    return np.array(element.text.split(), dtype=np.int64)


def _floats(element: Optional[Element]) -> np.ndarray:
    if element is None or not element.text:
        return np.zeros(0, dtype=np.float64)
    return np.array(element.text.split(), dtype=np.float64)


def _color(element: Optional[Element]) -> Optional[Color]:
    values = _floats(element)
    if len(values) < 4:
        return None
    return tuple(float(v) for v in values[:4])


def material_colors(document, material: Optional[Element]) -> Tuple[Optional[Color], Optional[Color]]:
    """Ambient and diffuse colors of the phong technique of a material's effect.

    Returns:
        (ambient, diffuse), either of which may be None.
    """
    if material is None:
        return None, None
    effect = document.url_target(material.find("instance_effect"))
    if effect is None:
        return None, None
    phong = next(effect.iter("phong"), None)
    if phong is None:
        return None, None
    return _color(phong.find("ambient/color")), _color(phong.find("diffuse/color"))


def read_positions(document, vertices: Optional[Element]) -> np.ndarray:
    """(N, 3) positions of the POSITION source of a `<vertices>` element, in meters."""
    if vertices is None:
        return np.zeros((0, 3))
    for source_input in vertices.iterfind("input[@semantic='POSITION']"):
        source = document.resolve_url(source_input.get("source"))
        if source is None:
            continue
        float_array = source.find("float_array")
        if float_array is None:
            console_logger.warning("float array not defined!")
            return np.zeros((0, 3))
        values = _floats(float_array)
        count = len(values) // 3
        return values[:3 * count].reshape(count, 3) * document.unit_scale(source)
    return np.zeros((0, 3))


def _index_layout(primitive: Element) -> Tuple[int, int]:
    """(stride, vertex offset) of the interleaved index list of a primitive."""
    stride = 0
    vertex_offset = 0
    for primitive_input in primitive.iterfind("input"):
        offset = int(primitive_input.get("offset", "0"))
        if primitive_input.get("semantic") == "VERTEX":
            vertex_offset = offset
        stride = max(stride, offset)
    return stride + 1, vertex_offset


def _gather(positions: np.ndarray, p: np.ndarray, start: int, stride: int, count: int) -> np.ndarray:
    picks = p[start:start + stride * count:stride]
    return positions[picks]


def decode_triangles(positions: np.ndarray, primitive: Element) -> Tuple[np.ndarray, np.ndarray]:
    """Decode a `<triangles>` element.

    Every triangle whose three index tuples fit in `<p>` yields three new
    vertices.
    """
    stride, k = _index_layout(primitive)
    p = _ints(primitive.find("p"))
    count = int(primitive.get("count", "0"))
    chunks = []
    for _ in range(count):
        if k + 2 * stride < len(p):
            chunks.append(_gather(positions, p, k, stride, 3))
            k += 3 * stride
    vertices = np.concatenate(chunks) if chunks else np.zeros((0, 3))
    if len(vertices) != 3 * count:
        console_logger.warning("triangles declares wrong count!")
    return vertices, np.arange(len(vertices), dtype=np.int64)


def _primitive_lists(primitive: Element, kind: str) -> List[np.ndarray]:
    lists = [_ints(p) for p in primitive.iterfind("p")]
    count = int(primitive.get("count", "0"))
    if count > len(lists):
        console_logger.warning(f"{kind} has incorrect count")
        count = len(lists)
    return lists[:count]


def decode_trifans(positions: np.ndarray, primitive: Element) -> Tuple[np.ndarray, np.ndarray]:
    """Decode a `<trifans>` element; each `<p>` fans out from its first vertex."""
    stride, vertex_offset = _index_layout(primitive)
    chunks, indices, start = [], [], 0
    for p in _primitive_lists(primitive, "trifans"):
        fan = positions[p[vertex_offset::stride]]
        chunks.append(fan)
        for i in range(start + 2, start + len(fan)):
            indices.extend((start, i - 1, i))
        start += len(fan)
    vertices = np.concatenate(chunks) if chunks else np.zeros((0, 3))
    return vertices, np.array(indices, dtype=np.int64)


def decode_tristrips(positions: np.ndarray, primitive: Element) -> Tuple[np.ndarray, np.ndarray]:
    """Decode a `<tristrips>` element; winding alternates along each strip."""
    stride, vertex_offset = _index_layout(primitive)
    chunks, indices, start = [], [], 0
    for p in _primitive_lists(primitive, "tristrips"):
        strip = positions[p[vertex_offset::stride]]
        chunks.append(strip)
        flip = False
        for i in range(start + 2, start + len(strip)):
            if flip:
                indices.extend((i - 2, i, i - 1))
            else:
                indices.extend((i - 2, i - 1, i))
            flip = not flip
        start += len(strip)
    vertices = np.concatenate(chunks) if chunks else np.zeros((0, 3))
    return vertices, np.array(indices, dtype=np.int64)


def decode_polylist(positions: np.ndarray, primitive: Element) -> Tuple[np.ndarray, np.ndarray]:
    """Decode a `<polylist>` element; each polygon fans out from its first vertex."""
    stride, k = _index_layout(primitive)
    p = _ints(primitive.find("p"))
    chunks, indices, start = [], [], 0
    for n in _ints(primitive.find("vcount")):
        n = int(n)
        if n > 0 and k + (n - 1) * stride < len(p):
            chunks.append(_gather(positions, p, k, stride, n))
            for i in range(start + 2, start + n):
                indices.extend((start, i - 1, i))
            start += n
            k += n * stride
    vertices = np.concatenate(chunks) if chunks else np.zeros((0, 3))
    return vertices, np.array(indices, dtype=np.int64)


PRIMITIVE_DECODERS = {
    "triangles": decode_triangles,
    "trifans": decode_trifans,
    "tristrips": decode_tristrips,
    "polylist": decode_polylist,
}


def convex_hull_vertices(document, convex_mesh: Element) -> np.ndarray:
    """Vertices a `<convex_mesh>` is the hull of, in meters.

    Uses the mesh named by `convex_hull_of` if present, otherwise the inline
    `<vertices>`.
    """
    hull_of = convex_mesh.get("convex_hull_of")
    if hull_of:
        geometry = document.resolve_url(hull_of)
        mesh = geometry.find("mesh") if geometry is not None else None
        if mesh is None:
            return np.zeros((0, 3))
        return read_positions(document, mesh.find("vertices"))
    return read_positions(document, convex_mesh.find("vertices"))


def decode_mesh(document, geometry: Element, materials: Dict[str, Element]) -> List[DecodedMesh]:
    """Decode the triangle primitives of a `<geometry>`.

    Args:
        document: The owning ColladaDocument.
        geometry: A `<geometry>` element.
        materials: Material elements by the symbol bound in `instance_geometry`.

    Returns:
        One DecodedMesh per supported primitive element, in document order.
    """
    mesh = geometry.find("mesh")
    if mesh is None:
        convex = geometry.find("convex_mesh")
        if convex is not None:
            hull = convex_hull_vertices(document, convex)
            console_logger.warning(
                f"convex_mesh {geometry.get('id')}: collected {len(hull)} hull vertices, hull computation is not supported"
            )
        return []

    positions = read_positions(document, mesh.find("vertices"))
    decoded = []
    for primitive in mesh.iterchildren(*PRIMITIVE_DECODERS):
        vertices, indices = PRIMITIVE_DECODERS[primitive.tag](positions, primitive)
        ambient, diffuse = material_colors(document, materials.get(primitive.get("material", "")))
        decoded.append(DecodedMesh(vertices, indices, ambient, diffuse))
    if mesh.find("polygons") is not None:
        console_logger.warning("collada polygons are not supported")
    return decoded
