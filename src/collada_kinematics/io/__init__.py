"""I/O utilities for reading and writing robot models.

This module provides the COLLADA reader and writer, the URDF parser and
writer, and mesh file import.
"""

from .collada_document import ColladaDocument
from .collada_reader import load_collada
from .collada_writer import ColladaWriter, compute_id, write_collada, write_mesh_document
from .mesh_import import load_mesh
from .urdf_parser import load_urdf, parse_urdf
from .urdf_writer import to_urdf_string

__all__ = [
    "ColladaDocument",
    "ColladaWriter",
    "compute_id",
    "load_collada",
    "load_mesh",
    "load_urdf",
    "parse_urdf",
    "to_urdf_string",
    "write_collada",
    "write_mesh_document",
]
