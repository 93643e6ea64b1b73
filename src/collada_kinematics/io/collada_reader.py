"""Forward conversion: COLLADA kinematics scene to RobotModel."""

import logging
from pathlib import Path
from typing import Optional, Union

from collada_kinematics.artifacts import ArtifactStore
from collada_kinematics.config import ConversionOptions
from collada_kinematics.core.robot_model import Mesh, RobotModel
from collada_kinematics.io.collada_document import ColladaDocument
from collada_kinematics.io.collada_writer import compute_id, write_mesh_document
from collada_kinematics.kinematics.tree_builder import ColladaModelBuilder

console_logger = logging.getLogger(__name__)


def export_link_meshes(model: RobotModel, artifacts: ArtifactStore) -> int:
    """Store every in-memory link mesh as `<link>.dae` and point the mesh at it.

    Returns:
        Number of meshes stored.
    """
    count = 0
    for link in model.links.values():
        if link.visual is None or not isinstance(link.visual.geometry, Mesh):
            continue
        mesh = link.visual.geometry
        if not mesh.has_buffers or mesh.filename:
            continue
        mesh.filename = artifacts.put(f"{compute_id(link.name)}.dae", write_mesh_document(mesh, link.name))
        count += 1
    return count


def load_collada(source: Union[str, Path, bytes], options: Optional[ConversionOptions] = None,
                 artifacts: Optional[ArtifactStore] = None) -> RobotModel:
    """Load the first robot of a COLLADA document.

    Args:
        source: Path to a `.dae` file, or the document text.
        options: Conversion options.
        artifacts: If given, every link mesh is also stored in it as a
            standalone mesh document and referenced by filename.

    Returns:
        The finalized RobotModel.

    Raises:
        MalformedDocument: The document cannot be parsed or holds no robot.
        AmbiguousOrMissingRoot: The extracted links do not form a tree.
    """
    document = ColladaDocument.parse(source, options)
    model = ColladaModelBuilder(document, options).build()
    if artifacts is not None:
        stored = export_link_meshes(model, artifacts)
        console_logger.debug(f"stored {stored} link meshes")
    console_logger.info(f"loaded robot {model.name} with {len(model.links)} links and {len(model.joints)} joints")
    return model
