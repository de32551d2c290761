#!/usr/bin/env python3
"""
Entry point for the photo sync tool.
"""

import logging
import sys

from photosync.config import load_sync_config
from photosync.errors import PhotoSyncError
from photosync.syncer import PhotoSync


def main() -> int:
    try:
        config = load_sync_config()
        logging.basicConfig(
            level=config.log_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

        # Instantiate the PhotoSync orchestrator
        syncer = PhotoSync(config)

        # 1) Snapshot what's already on disk
        syncer.load_manifest()

        # Authenticate with Google Photos
        syncer.authenticate()

        # 2) Download missing items, move misplaced ones
        syncer.sync()
    except PhotoSyncError as e:
        print(f"Sync failed: {e}", file=sys.stderr)
        return 1

    print("\nAll sync operations complete!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
