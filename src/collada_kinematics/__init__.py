"""
COLLADA Kinematics: conversion between COLLADA kinematics scenes and URDF robots.

This library resolves the scoped bindings of a COLLADA 1.5 document into a
strict link/joint tree, and writes such a tree back out as a COLLADA scene.
Pose algebra is implemented with JAX.
"""

import jax
jax.config.update("jax_enable_x64", True)

# Import core modules
from . import transforms
from . import core
from . import io
from .artifacts import ArtifactStore
from .config import ConversionOptions
from .errors import (
    AmbiguousOrMissingRoot,
    ColladaError,
    MalformedDocument,
    UnresolvedReference,
    UnsupportedShape,
)
from .io import ColladaWriter, load_collada, load_urdf, parse_urdf, to_urdf_string, write_collada

__version__ = "0.1.0"
__all__ = [
    "transforms",
    "core",
    "io",
    "ArtifactStore",
    "ConversionOptions",
    "ColladaWriter",
    "load_collada",
    "load_urdf",
    "parse_urdf",
    "to_urdf_string",
    "write_collada",
    "ColladaError",
    "UnresolvedReference",
    "UnsupportedShape",
    "MalformedDocument",
    "AmbiguousOrMissingRoot",
]
