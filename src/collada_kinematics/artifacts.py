"""In-memory store for files produced during a conversion.

The COLLADA reader bakes each link's geometry into a small mesh document.
Those documents are kept here, keyed by file name, until the caller decides
where (or whether) to write them.
"""

import logging
from pathlib import Path
from typing import Dict, Iterator, List, Union

console_logger = logging.getLogger(__name__)


class ArtifactStore:
    """Named byte blobs owned by the caller.

    Example:
        >>> with ArtifactStore() as store:
        ...     model = load_collada("robot.dae", artifacts=store)
        ...     store.materialize("meshes")
    """

    def __init__(self):
        self._artifacts: Dict[str, bytes] = {}

    def put(self, name: str, data: Union[bytes, str]) -> str:
        """Store `data` under `name`, replacing any previous artifact.

        Returns:
            The name, for use as a relative file reference.
        """
        if isinstance(data, str):
            data = data.encode("utf-8")
        if name in self._artifacts:
            console_logger.debug(f"replacing artifact {name}")
        self._artifacts[name] = data
        return name

    def get(self, name: str) -> bytes:
        """Stored bytes of an artifact.

        Raises:
            KeyError: No artifact has that name.
        """
        return self._artifacts[name]

    def __contains__(self, name: str) -> bool:
        return name in self._artifacts

    def __iter__(self) -> Iterator[str]:
        return iter(self._artifacts)

    def __len__(self) -> int:
        return len(self._artifacts)

    def names(self) -> List[str]:
        """Artifact names in insertion order."""
        return list(self._artifacts)

    def materialize(self, directory: Union[str, Path]) -> List[Path]:
        """Write every artifact into `directory`, creating it if needed.

        Returns:
            Paths of the written files.
        """
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        written = []
        for name, data in self._artifacts.items():
            path = directory / name
            path.write_bytes(data)
            written.append(path)
        console_logger.info(f"wrote {len(written)} artifacts to {directory}")
        return written

    def clear(self) -> None:
        self._artifacts.clear()

    def __enter__(self) -> "ArtifactStore":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.clear()
