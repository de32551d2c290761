import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocalFileEntry:
    """
    One regular file found under the destination root when the manifest was built.
    """
    relative_path: str
    full_path: Path
    basename: str
    size_bytes: int


@dataclass(frozen=True)
class Manifest:
    """
    Snapshot of the files under the destination root at sync start.
    Never refreshed or mutated while a sync is running.
    """
    destination_root: Path
    files: Tuple[LocalFileEntry, ...] = ()
    _by_basename: Dict[str, Tuple[LocalFileEntry, ...]] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self):
        index: Dict[str, List[LocalFileEntry]] = {}
        for entry in self.files:
            key = entry.basename.lower()
            if key in index:
                logger.warning(
                    "Duplicate basename %s: %s and %s",
                    entry.basename, index[key][0].relative_path, entry.relative_path,
                )
            index.setdefault(key, []).append(entry)
        # frozen dataclass, so bypass __setattr__ for the derived index
        object.__setattr__(
            self, "_by_basename", {key: tuple(entries) for key, entries in index.items()}
        )

    def find_matches(self, filename: str) -> Tuple[LocalFileEntry, ...]:
        """
        Return every entry whose basename equals filename, ignoring case,
        in traversal order.
        """
        return self._by_basename.get(filename.lower(), ())

    def find_match(self, filename: str) -> Optional[LocalFileEntry]:
        """
        Return the first entry whose basename equals filename, ignoring case.
        """
        matches = self.find_matches(filename)
        return matches[0] if matches else None

    def __len__(self):
        return len(self.files)


@dataclass(frozen=True)
class RemoteMediaItem:
    id: str
    base_url: str
    mime_type: str
    filename: str
    creation_time: Optional[str] = None
    is_video: bool = False

    @classmethod
    def from_api(cls, data: dict) -> "RemoteMediaItem":
        """
        Build an item from a mediaItems JSON record.
        """
        metadata = data.get("mediaMetadata", {}) or {}
        mime_type = data.get("mimeType", "")
        is_video = mime_type.startswith("video/") or "video" in metadata
        return cls(
            id=data["id"],
            base_url=data.get("baseUrl", ""),
            mime_type=mime_type,
            filename=data["filename"],
            creation_time=metadata.get("creationTime") or None,
            is_video=is_video,
        )


# -----------------------------
# Reconciliation outcomes
# -----------------------------

@dataclass(frozen=True)
class AlreadyCurrent:
    item: RemoteMediaItem
    path: Path


@dataclass(frozen=True)
class Moved:
    item: RemoteMediaItem
    source: Path
    destination: Path


@dataclass(frozen=True)
class Downloaded:
    item: RemoteMediaItem
    destination: Path


@dataclass(frozen=True)
class Failed:
    item: RemoteMediaItem
    error: BaseException


ReconciliationOutcome = Union[AlreadyCurrent, Moved, Downloaded, Failed]


@dataclass
class SyncSummary:
    """
    Totals for a finished run. Item failures are listed but do not make the run fail.
    """
    already_current: int = 0
    moved: int = 0
    downloaded: int = 0
    failures: List[Failed] = field(default_factory=list)

    def record(self, outcome: ReconciliationOutcome):
        if isinstance(outcome, AlreadyCurrent):
            self.already_current += 1
        elif isinstance(outcome, Moved):
            self.moved += 1
        elif isinstance(outcome, Downloaded):
            self.downloaded += 1
        elif isinstance(outcome, Failed):
            self.failures.append(outcome)
        else:
            raise TypeError(f"Unknown outcome: {outcome!r}")

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def total(self) -> int:
        return self.already_current + self.moved + self.downloaded + self.failed
