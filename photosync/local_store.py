import logging
import os
from pathlib import Path
from typing import List

from photosync.config import OrganizationScheme, SyncConfig
from photosync.errors import FileSystemError, LocalIOError
from photosync.models import LocalFileEntry, Manifest, RemoteMediaItem

logger = logging.getLogger(__name__)

UNKNOWN_YEAR = "UNKNOWN"


def scan_files(root: Path) -> List[LocalFileEntry]:
    """
    Walk root depth-first and return an entry for every regular file below it.
    Entries are in sorted name order within each directory; symlinks are skipped.
    """
    found: List[LocalFileEntry] = []
    pending = [root]
    while pending:
        directory = pending.pop()
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            raise LocalIOError(f"Cannot read directory {directory}: {e}") from e

        subdirs = []
        for entry in entries:
            if entry.is_symlink():
                continue
            full_path = Path(entry.path)
            if entry.is_dir():
                subdirs.append(full_path)
            elif entry.is_file():
                try:
                    size = entry.stat().st_size
                except OSError as e:
                    raise LocalIOError(f"Cannot stat {full_path}: {e}") from e
                found.append(LocalFileEntry(
                    relative_path=full_path.relative_to(root).as_posix(),
                    full_path=full_path,
                    basename=entry.name,
                    size_bytes=size,
                ))
        # reversed so the pop() order visits subdirectories alphabetically
        pending.extend(reversed(subdirs))
    return found


def build_manifest(destination_root: Path) -> Manifest:
    """
    Scan the destination directory into a Manifest of existing files.
    Raises LocalIOError if the root is missing or unreadable.
    """
    root = Path(destination_root)
    if not root.exists():
        raise LocalIOError(f"Destination directory {root} does not exist")
    if not root.is_dir():
        raise LocalIOError(f"Destination {root} is not a directory")

    files = scan_files(root)
    logger.debug("Scanned %d files under %s", len(files), root)
    return Manifest(destination_root=root, files=tuple(files))


def compute_local_path(config: SyncConfig, item: RemoteMediaItem) -> Path:
    """
    Given a remote item, figure out where it belongs under the destination root.
    BY_YEAR => <root>/<first 4 chars of creationTime>/<filename>, or UNKNOWN/ if no date.
    """
    if config.organization_scheme is OrganizationScheme.BY_YEAR:
        year = item.creation_time[:4] if item.creation_time else UNKNOWN_YEAR
        return config.destination_root / year / item.filename
    raise ValueError(f"Unsupported organization scheme: {config.organization_scheme}")


def ensure_parent_dir(path: Path):
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise LocalIOError(f"Cannot create directory {path.parent}: {e}") from e


def move_local_file(old_path: Path, new_path: Path):
    """
    Rename a local file from old_path to new_path. Never overwrites new_path.
    """
    try:
        # on case-insensitive filesystems a case-only rename sees itself at new_path
        if new_path.exists() and not os.path.samefile(old_path, new_path):
            raise FileSystemError(f"Cannot move {old_path}: {new_path} already exists")
        os.rename(old_path, new_path)
    except OSError as e:
        raise FileSystemError(f"Cannot move {old_path} to {new_path}: {e}") from e
