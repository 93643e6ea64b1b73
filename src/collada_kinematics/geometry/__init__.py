"""Triangulation of COLLADA/URDF geometry."""

from .tessellation import tessellate_box, tessellate_cylinder, tessellate_sphere
from .mesh_decoding import DecodedMesh, decode_mesh

__all__ = [
    "tessellate_box",
    "tessellate_sphere",
    "tessellate_cylinder",
    "DecodedMesh",
    "decode_mesh",
]
