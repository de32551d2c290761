import logging
import threading
from pathlib import Path
from typing import Iterable, Optional, Set, Tuple

import requests

from photosync.auth import TokenProvider, authorized_session
from photosync.config import SyncConfig
from photosync.errors import FileSystemError
from photosync.google_photos_api import MediaItemCatalog, download_media_item
from photosync.local_store import (
    build_manifest,
    compute_local_path,
    ensure_parent_dir,
    move_local_file,
)
from photosync.models import (
    AlreadyCurrent,
    Downloaded,
    Failed,
    LocalFileEntry,
    Manifest,
    Moved,
    ReconciliationOutcome,
    RemoteMediaItem,
    SyncSummary,
)
from photosync.worker_pool import BoundedExecutor

logger = logging.getLogger(__name__)


class PhotoSync:
    """
    Main class orchestrating the photo sync:
     - scan the destination directory into a manifest
     - stream the matching items from Google Photos
     - download what's missing, move what's in the wrong folder
    """

    def __init__(
        self,
        config: SyncConfig,
        token_provider: Optional[TokenProvider] = None,
        session: Optional[requests.Session] = None,
    ):
        self.config = config
        self.token_provider = token_provider or TokenProvider()
        self.session = session
        self.manifest: Optional[Manifest] = None

        # destinations already taken by an item in this run
        self._claimed: Set[Path] = set()
        # local files already kept in place or moved by an item
        self._used_sources: Set[Path] = set()
        self._claim_lock = threading.Lock()

    def authenticate(self):
        creds = self.token_provider.get_credentials()
        self.session = authorized_session(creds)

    def load_manifest(self) -> Manifest:
        print(f"\nScanning {self.config.destination_root} for existing files...")
        self.manifest = build_manifest(self.config.destination_root)
        print(f"Manifest built: {len(self.manifest)} files.")
        return self.manifest

    def catalog(self) -> Iterable[RemoteMediaItem]:
        return MediaItemCatalog(self.session, self.config)

    # -----------------------------
    # RECONCILE ONE ITEM
    # -----------------------------

    def _claim(self, path: Path) -> bool:
        with self._claim_lock:
            if path in self._claimed:
                return False
            self._claimed.add(path)
            return True

    def _claim_source(
        self, candidates: Tuple[LocalFileEntry, ...], planned: Path
    ) -> Optional[LocalFileEntry]:
        """
        Pick the local file this item should use: the one already at planned,
        else the first one no other item has used. Each file is used at most once.
        """
        ordered = sorted(candidates, key=lambda entry: entry.full_path != planned)
        with self._claim_lock:
            for entry in ordered:
                if entry.full_path not in self._used_sources:
                    self._used_sources.add(entry.full_path)
                    return entry
        return None

    def reconcile_item(self, item: RemoteMediaItem) -> ReconciliationOutcome:
        """
        Compare one remote item to the manifest and download or move it as needed.
        Errors are returned as a Failed outcome rather than raised.
        """
        planned = compute_local_path(self.config, item)

        if not self._claim(planned):
            error = FileSystemError(f"{planned} is already the destination of another item")
            return self._report(Failed(item, error))

        match = self._claim_source(self.manifest.find_matches(item.filename), planned)

        try:
            if match is None:
                ensure_parent_dir(planned)
                download_media_item(self.session, item, planned)
                outcome = Downloaded(item, planned)
            elif match.full_path == planned:
                outcome = AlreadyCurrent(item, planned)
            else:
                ensure_parent_dir(planned)
                move_local_file(match.full_path, planned)
                outcome = Moved(item, match.full_path, planned)
        except Exception as e:
            outcome = Failed(item, e)
        return self._report(outcome)

    def _report(self, outcome: ReconciliationOutcome) -> ReconciliationOutcome:
        name = outcome.item.filename
        if isinstance(outcome, AlreadyCurrent):
            logger.debug("Already current: %s", outcome.path)
            print(f"Already current: {name}")
        elif isinstance(outcome, Moved):
            print(f"Moved {outcome.source} -> {outcome.destination}")
        elif isinstance(outcome, Downloaded):
            print(f"Downloaded {name} -> {outcome.destination}")
        else:
            logger.warning("Item %s (%s) failed: %r", name, outcome.item.id, outcome.error)
            print(f"Failed {name}: {outcome.error}")
        return outcome

    # -----------------------------
    # FULL RUN
    # -----------------------------

    def sync(self) -> SyncSummary:
        """
        Reconcile every item in the catalog against the manifest.

        Manifest, auth and catalog errors propagate and end the run; failures
        for individual items are collected in the summary.
        """
        if self.session is None:
            self.authenticate()
        if self.manifest is None:
            self.load_manifest()

        print(f"\nQuerying Google Photos ({self.config.media_type.value})...")
        submitted = []
        with BoundedExecutor(self.config.concurrency_limit) as pool:
            try:
                for item in self.catalog():
                    submitted.append(item)
                    pool.submit(self.reconcile_item, item)
            finally:
                # let in-flight items settle before a fatal catalog error escapes
                results = pool.drain()

        summary = SyncSummary()
        for item, result in zip(submitted, results):
            if isinstance(result, Exception):
                result = self._report(Failed(item, result))
            summary.record(result)

        print(
            f"\nSync complete: {summary.downloaded} downloaded, {summary.moved} moved, "
            f"{summary.already_current} already current, {summary.failed} failed."
        )
        return summary
