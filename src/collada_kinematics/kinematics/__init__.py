"""
Reconstruction of a link/joint tree from a COLLADA kinematics scene.

- bindings: kinematics/visual/physics bind tables
- mimic: mimic formula interpreter
- tree_builder: the ColladaModelBuilder traversal
"""

from .bindings import KinematicsSceneBindings
from .mimic import parse_formula, parse_formula_math
from .tree_builder import ColladaModelBuilder

__all__ = [
    "KinematicsSceneBindings",
    "ColladaModelBuilder",
    "parse_formula",
    "parse_formula_math",
]
