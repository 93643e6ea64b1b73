"""Mesh file import for URDF `<mesh filename=...>` geometries."""

import logging
from pathlib import Path
from typing import List, Sequence, Tuple
from urllib.parse import urlparse

import numpy as np
import trimesh

from collada_kinematics.errors import MalformedDocument
from collada_kinematics.geometry.mesh_decoding import decode_mesh
from collada_kinematics.io.collada_document import ColladaDocument

console_logger = logging.getLogger(__name__)


def resolve_uri(uri: str, base_dir: Path = None) -> Path:
    """Filesystem path of a mesh URI.

    `file://` URIs and plain paths are supported; relative paths are taken
    relative to `base_dir`. `package://` URIs cannot be resolved without a
    package index and are returned unchanged, so loading them fails.
    """
    parsed = urlparse(uri)
    if parsed.scheme == "file":
        return Path(parsed.path)
    path = Path(uri)
    if not path.is_absolute() and not parsed.scheme and base_dir is not None:
        path = Path(base_dir) / path
    return path


def load_mesh(uri: str, scale: Sequence[float] = (1.0, 1.0, 1.0),
              base_dir: Path = None) -> List[Tuple[np.ndarray, np.ndarray]]:
    """Load the triangle meshes of a mesh file.

    Scenes are flattened: every Trimesh geometry is returned with its scene
    graph transform applied, and each vertex is multiplied by `scale`.
    COLLADA files are decoded with the package's own primitive decoders.

    Args:
        uri: Mesh file URI.
        scale: Per-axis scale of the URDF mesh element.
        base_dir: Directory relative paths are resolved against.

    Returns:
        List of (vertices (N, 3), faces (M, 3)) in mesh-local space. Empty if
        the resource cannot be loaded.
    """
    path = resolve_uri(uri, base_dir)
    if not path.exists():
        console_logger.warning(f"failed to load resource {uri}")
        return []

    scale = np.asarray(scale, dtype=np.float64)
    if path.suffix.lower() == ".dae":
        return _load_collada_mesh(path, scale)

    try:
        loaded = trimesh.load(str(path), force="scene")
    except (ValueError, OSError) as e:
        console_logger.warning(f"failed to load resource {uri}: {e}")
        return []

    meshes = []
    for node_name in loaded.graph.nodes_geometry:
        transform, geometry_name = loaded.graph[node_name]
        geometry = loaded.geometry[geometry_name]
        if not isinstance(geometry, trimesh.Trimesh) or len(geometry.vertices) == 0:
            continue
        vertices = trimesh.transformations.transform_points(geometry.vertices, transform)
        meshes.append((np.asarray(vertices, dtype=np.float64) * scale, np.asarray(geometry.faces, dtype=np.int64)))

    if not meshes:
        console_logger.warning(f"No meshes found in file {uri}")
    return meshes


def _load_collada_mesh(path: Path, scale: np.ndarray) -> List[Tuple[np.ndarray, np.ndarray]]:
    """Triangles of every geometry in a COLLADA file, decoded in-process."""
    try:
        document = ColladaDocument.parse(path)
    except MalformedDocument as e:
        console_logger.warning(f"failed to load resource {path}: {e}")
        return []
    meshes = []
    for geometry in document.root.iterfind("library_geometries/geometry"):
        for decoded in decode_mesh(document, geometry, {}):
            meshes.append((decoded.vertices * scale, np.asarray(decoded.indices, dtype=np.int64).reshape(-1, 3)))
    if not meshes:
        console_logger.warning(f"No meshes found in file {path}")
    return meshes
