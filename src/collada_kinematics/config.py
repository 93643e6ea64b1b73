"""Conversion options shared by the reader, the writer and the CLI."""

import dataclasses
from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class ConversionOptions:
    """Tunables for COLLADA/URDF conversion.

    Attributes:
        tessellation: Resolution factor for sphere and cylinder triangulation.
        revolute_velocity: Velocity limit used when a revolute joint has none.
        prismatic_velocity: Velocity limit used when a prismatic joint has none.
        unlimited_range: Half-width of the limit range given to non-revolute
            joints without limits.
        max_sidref_hops: Maximum number of newparam SIDREF indirections
            followed by the resolver.
        default_material_name: Material name given to newly created links.
        default_material_color: RGBA color of the default material.
        mesh_ambient_scale: Factor applied to ambient colors of combined meshes.
        writer_cylinder_tessellation: Tessellation used when the writer emits
            cylinders as triangle soups.
    """
    tessellation: float = 1.0
    revolute_velocity: float = 0.5
    prismatic_velocity: float = 0.01
    unlimited_range: float = 100000.0
    max_sidref_hops: int = 8
    default_material_name: str = "Red"
    default_material_color: Tuple[float, float, float, float] = (0.0, 1.0, 0.0, 1.0)
    mesh_ambient_scale: float = 0.5
    writer_cylinder_tessellation: float = 1.0

    def with_overrides(self, **kwargs) -> "ConversionOptions":
        """Return a copy with the given fields replaced."""
        return dataclasses.replace(self, **kwargs)


DEFAULT_OPTIONS = ConversionOptions()
