# book_ingest/pages/workspace.py
# ============================================================
# Scratch Workspace — Run-Scoped Temporary Directory
# ============================================================
# Holds page images between download and upload. Each pipeline
# run creates its own directory under the scratch root, named
# with a millisecond timestamp and a random suffix so concurrent
# runs never share one.
#
# Used as a context manager: on every exit path each file handed
# out by file_for() is deleted, then the directory is removed if
# (and only if) it is empty. Deletion problems become
# CleanupWarning entries in the log and never replace the error
# that ended the run.
#
# Usage:
#   with ScratchWorkspace.create(Path("/tmp/book_ingest")) as ws:
#       dest = ws.file_for("page-1.jpg")
# ============================================================

import time
import uuid
from pathlib import Path
from typing import Optional, Union

from book_ingest.errors import CleanupWarning
from book_ingest.utils.logger import get_logger

logger = get_logger(__name__)


class ScratchWorkspace:
    """
    A directory exclusively owned by one pipeline run.

    Attributes:
        path: The run directory.
        warnings: CleanupWarning instances from the last cleanup().
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.warnings: list[CleanupWarning] = []
        self._files: list[Path] = []

    @classmethod
    def create(cls, root: Union[str, Path], run_id: Optional[str] = None) -> "ScratchWorkspace":
        """Create a fresh run directory under ``root``."""
        run_id = run_id or f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"
        path = Path(root) / f"run-{run_id}"
        path.mkdir(parents=True, exist_ok=False)
        logger.debug(f"Created scratch workspace {path}")
        return cls(path)

    def file_for(self, name: str) -> Path:
        """Reserve a file path inside the workspace; it is deleted at cleanup."""
        target = self.path / name
        if target.parent != self.path:
            raise ValueError(f"Scratch file name must not contain directories: {name!r}")
        if target not in self._files:
            self._files.append(target)
        return target

    @property
    def files(self) -> list[Path]:
        return list(self._files)

    def cleanup(self) -> list[CleanupWarning]:
        """
        Delete every reserved file, then the directory if it is empty.

        Returns:
            The warnings raised along the way (also logged). Never raises.
        """
        self.warnings = []

        for file_path in self._files:
            try:
                file_path.unlink(missing_ok=True)
            except OSError as e:
                self._warn(f"Could not delete scratch file {file_path}: {e}")
        self._files = []

        try:
            if self.path.exists():
                if any(self.path.iterdir()):
                    self._warn(f"Scratch workspace {self.path} is not empty; leaving it in place")
                else:
                    self.path.rmdir()
                    logger.debug(f"Removed scratch workspace {self.path}")
        except OSError as e:
            self._warn(f"Could not remove scratch workspace {self.path}: {e}")

        return self.warnings

    def _warn(self, message: str) -> None:
        warning = CleanupWarning(message)
        self.warnings.append(warning)
        logger.warning(f"[yellow]CleanupWarning[/yellow]: {message}")

    def __enter__(self) -> "ScratchWorkspace":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.cleanup()
        return False
