from __future__ import annotations

import logging
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path


logger = logging.getLogger(__name__)

WORKSPACE_PREFIX = "ytt_"


class WorkspaceError(RuntimeError):
    pass


def create_workspace(temp_root: Path | None = None, prefix: str = WORKSPACE_PREFIX) -> Path:
    """Create a uniquely named scratch directory for one pipeline run."""
    try:
        work_dir = Path(tempfile.mkdtemp(prefix=prefix, dir=temp_root))
    except OSError as exc:
        location = temp_root or tempfile.gettempdir()
        raise WorkspaceError(f"cannot create workspace under {location}: {exc}") from exc

    logger.debug("Created workspace %s", work_dir)
    return work_dir


def destroy_workspace(work_dir: Path) -> bool:
    """Remove the workspace and everything in it.

    Never raises: a failed removal is logged as a warning and reported
    through the return value.
    """
    try:
        shutil.rmtree(work_dir)
    except FileNotFoundError:
        return True
    except OSError as exc:
        logger.warning("Could not remove workspace %s: %s", work_dir, exc)
        return False

    logger.debug("Removed workspace %s", work_dir)
    return True


@contextmanager
def workspace(temp_root: Path | None = None, prefix: str = WORKSPACE_PREFIX) -> Iterator[Path]:
    work_dir = create_workspace(temp_root, prefix)
    try:
        yield work_dir
    finally:
        destroy_workspace(work_dir)
