"""Per-job scratch workspaces with guaranteed cleanup"""

from __future__ import annotations

import logging
import secrets
import shutil
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

logger = logging.getLogger(__name__)


def new_job_id() -> str:
    """Timestamp plus random suffix; unique across threads and processes."""
    return f"{time.time_ns()}_{secrets.token_hex(4)}"


class Workspace:
    """
    Ephemeral directory owned by exactly one execution job.

    Every artifact the job produces lives under ``directory``, which is named
    after the job id, so two concurrent jobs in the same language never touch
    each other's files even though they share one scratch root.
    """

    def __init__(self, root: Path, job_id: str):
        self.root = root
        self.job_id = job_id
        self.directory = root / f"job_{job_id}"
        self._artifacts: List[Path] = []
        self._closed = False

    @classmethod
    def allocate(cls, root: Path, job_id: Optional[str] = None) -> "Workspace":
        root.mkdir(parents=True, exist_ok=True)
        workspace = cls(root, job_id or new_job_id())
        # exist_ok=False: an existing directory means an id collision
        workspace.directory.mkdir(mode=0o700)
        logger.debug("Allocated workspace %s", workspace.directory)
        return workspace

    def path(self, name: str) -> Path:
        return self.directory / name

    def write_source(self, file_name: str, text: str) -> Path:
        source_path = self.path(file_name)
        with open(source_path, "x", encoding="utf-8") as f:
            f.write(text)
        return source_path

    def track(self, paths: Iterable[Path]) -> None:
        """Register extra artifacts (binaries, class files) for removal."""
        self._artifacts.extend(paths)

    def cleanup(self) -> bool:
        """
        Remove every artifact and the workspace directory.

        Never raises: a failed cleanup is logged so it cannot mask the
        execution error that may already be propagating.

        Returns:
            True if the directory is gone afterwards
        """
        if self._closed:
            return True
        for artifact in self._artifacts:
            try:
                artifact.unlink(missing_ok=True)
            except OSError as e:
                logger.error(f"Failed to remove artifact {artifact}: {e}")
        try:
            shutil.rmtree(self.directory)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Failed to cleanup workspace {self.directory}: {e}")
            return False
        self._closed = True
        return True


@contextmanager
def workspace_scope(root: Path, job_id: Optional[str] = None) -> Iterator[Workspace]:
    """Allocate a workspace and release it on every exit path."""
    workspace = Workspace.allocate(root, job_id)
    try:
        yield workspace
    finally:
        workspace.cleanup()
