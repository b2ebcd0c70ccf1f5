"""
Workspace discovery for rl4track.

A workspace root is any directory containing the reserved metadata
directory (".rl4" by default). Discovery walks upward from the editing
agent's working directory; the nearest ancestor wins. When nothing is
found the working directory itself becomes a new root and its metadata
directory is created, so a capture always has somewhere to go.

Layout:
    <root>/.rl4/evidence/activity.jsonl
    <root>/.rl4/snapshots/<sha256>.content.gz
    <root>/.rl4/snapshots/file_index.json
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from rl4track.errors import PathTraversalError, WorkspaceCreateError
from rl4track.schema import CaptureConfig

logger = logging.getLogger(__name__)

EVIDENCE_DIR = "evidence"
SNAPSHOTS_DIR = "snapshots"


@dataclass(frozen=True)
class Workspace:
    """
    A located workspace. Paths are absolute but symlinks are kept as given.

    Attributes:
        root: Absolute workspace root directory
        metadata_dir: Absolute path of the reserved metadata directory
        created: Whether this resolution created the metadata directory
    """

    root: Path
    metadata_dir: Path
    created: bool = False

    @property
    def evidence_dir(self) -> Path:
        return self.metadata_dir / EVIDENCE_DIR

    @property
    def snapshots_dir(self) -> Path:
        return self.metadata_dir / SNAPSHOTS_DIR

    def relative_path(self, file_path: str | Path) -> str:
        """
        Workspace-relative, forward-slash form of a file path.

        Symlinks are not followed: a file reached through a linked
        directory keeps the path it was reached by. The root is tried as
        given, then with its own symlinks resolved.
        """
        key = normalize_path(file_path, self.root)
        if Path(key).is_absolute():
            real_root = self.root.resolve()
            if real_root != self.root:
                key = normalize_path(file_path, real_root)
        return key


def absolute_path(path: str | Path) -> Path:
    """Absolute, normalized form of path without following symlinks."""
    return Path(os.path.normpath(os.path.abspath(path)))


def find_workspace_root(start: str | Path, metadata_dir: str = ".rl4") -> Path | None:
    """
    Find the nearest ancestor of start (inclusive) holding metadata_dir.

    Args:
        start: Directory to start the upward walk from
        metadata_dir: Name of the reserved directory

    Returns:
        The workspace root, or None if no ancestor has one
    """
    start = absolute_path(start)
    for directory in (start, *start.parents):
        if (directory / metadata_dir).is_dir():
            return directory
    return None


def resolve_workspace(
    start: str | Path | None = None,
    config: CaptureConfig | None = None,
) -> Workspace:
    """
    Locate the workspace for a capture, creating one if needed.

    Args:
        start: Working directory at trigger time (defaults to cwd)
        config: Capture config; workspace_root pins the root

    Returns:
        The resolved Workspace with its evidence directory in place

    Raises:
        WorkspaceCreateError: If the metadata directory cannot be created
    """
    config = config or CaptureConfig()
    start_dir = absolute_path(start or Path.cwd())

    if config.workspace_root:
        root = absolute_path(config.workspace_root)
    else:
        root = find_workspace_root(start_dir, config.metadata_dir) or start_dir

    if not root.is_dir():
        raise WorkspaceCreateError(
            root=str(root),
            underlying_error="directory does not exist",
        )

    metadata = root / config.metadata_dir
    created = not metadata.is_dir()
    try:
        (metadata / EVIDENCE_DIR).mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise WorkspaceCreateError(root=str(root), underlying_error=str(e)) from e

    if created:
        logger.info("Created workspace metadata at %s", metadata)
    return Workspace(root=root, metadata_dir=metadata, created=created)


def normalize_path(path: str | Path, root: str | Path | None = None) -> str:
    """
    Normalize a file path into an index/log key.

    Backslashes become forward slashes and "./" segments collapse.
    Absolute paths under root become root-relative; absolute paths
    outside root are kept absolute.

    Args:
        path: Path as reported by the editing agent or a peer
        root: Workspace root to relativize against

    Returns:
        The normalized key
    """
    raw = str(path).replace("\\", "/")
    candidate = Path(raw)
    if candidate.is_absolute():
        if root is not None:
            try:
                return candidate.relative_to(Path(root)).as_posix()
            except ValueError:
                pass
        return candidate.as_posix()
    return PurePosixPath(raw).as_posix()


def resolve_under_root(root: str | Path, *segments: str) -> Path:
    """
    Join segments under root, refusing anything that escapes it.

    Args:
        root: Directory the result must stay inside
        segments: Relative path segments

    Returns:
        The resolved absolute path

    Raises:
        PathTraversalError: If a segment contains ".." or the result is outside root
    """
    root_resolved = Path(root).resolve()
    for segment in segments:
        if ".." in PurePosixPath(segment.replace("\\", "/")).parts:
            raise PathTraversalError(root=str(root_resolved), path=segment)

    resolved = root_resolved.joinpath(*segments).resolve()
    try:
        resolved.relative_to(root_resolved)
    except ValueError as e:
        raise PathTraversalError(root=str(root_resolved), path=str(resolved)) from e
    return resolved
