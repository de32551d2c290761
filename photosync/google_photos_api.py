import datetime
import logging
import os
import re
from pathlib import Path
from typing import Iterator, Optional

import requests
from google.auth.exceptions import GoogleAuthError

from photosync.config import SyncConfig
from photosync.errors import AuthError, DownloadError, LocalIOError, RemoteRequestError
from photosync.models import RemoteMediaItem

logger = logging.getLogger(__name__)

SEARCH_URL = "https://photoslibrary.googleapis.com/v1/mediaItems:search"
PAGE_SIZE = 100
REQUEST_TIMEOUT = 60
CHUNK_SIZE = 1024 * 1024

# fromisoformat before 3.11 wants exactly 3 or 6 fractional digits
FRACTION_RE = re.compile(r"\.(\d+)")


def _date_dict(day: datetime.date) -> dict:
    return {"year": day.year, "month": day.month, "day": day.day}


def build_search_filters(config: SyncConfig) -> dict:
    """
    Build the mediaItems:search "filters" object for the configured media type and dates.
    """
    filters = {
        "mediaTypeFilter": {"mediaTypes": [config.media_type.value]}
    }
    if config.start_date and config.end_date:
        filters["dateFilter"] = {
            "ranges": [{
                "startDate": _date_dict(config.start_date),
                "endDate": _date_dict(config.end_date),
            }]
        }
    return filters


def search_media_items(session: requests.Session, body: dict) -> dict:
    """
    Call mediaItems:search with a given request body and return the JSON page.
    """
    try:
        resp = session.post(SEARCH_URL, json=body, timeout=REQUEST_TIMEOUT)
    except requests.RequestException as e:
        raise RemoteRequestError(f"Error searching media items: {e}") from e
    except GoogleAuthError as e:
        raise AuthError(f"Unable to refresh access token: {e}") from e

    if resp.status_code in (401, 403):
        raise AuthError(f"Google Photos rejected credentials: {resp.status_code} {resp.text}")
    if resp.status_code != 200:
        raise RemoteRequestError(f"Error searching media items: {resp.status_code} {resp.text}")
    try:
        return resp.json()
    except ValueError as e:
        raise RemoteRequestError(f"Malformed search response: {e}") from e


class MediaItemCatalog:
    """
    Lazily pages through mediaItems:search. Each iteration starts again from
    the first page; only the current page and the next cursor are kept.
    """

    def __init__(self, session: requests.Session, config: SyncConfig):
        self.session = session
        self.filters = build_search_filters(config)

    def pages(self) -> Iterator[dict]:
        page_token: Optional[str] = None
        page_number = 0
        while True:
            body = {"pageSize": PAGE_SIZE, "filters": self.filters}
            if page_token:
                body["pageToken"] = page_token

            data = search_media_items(self.session, body)
            page_number += 1
            logger.debug("Fetched catalog page %d (%d items)",
                         page_number, len(data.get("mediaItems", [])))
            yield data

            page_token = data.get("nextPageToken")
            if not page_token:
                break

    def __iter__(self) -> Iterator[RemoteMediaItem]:
        for data in self.pages():
            for item in data.get("mediaItems", []):
                try:
                    media_item = RemoteMediaItem.from_api(item)
                except KeyError as e:
                    raise RemoteRequestError(f"Media item missing field {e}: {item!r}") from e
                yield media_item


def download_url(item: RemoteMediaItem) -> str:
    """
    Original-quality download URL: "=dv" for videos, "=d" for photos.
    """
    return item.base_url + ("=dv" if item.is_video else "=d")


def _remove_partial(path: Path):
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not remove partial download %s: %s", path, e)


def parse_creation_time(creation_time: str) -> datetime.datetime:
    """
    Parse an API creationTime such as "2021-05-01T08:00:00.123456789Z".
    """
    value = creation_time.replace("Z", "+00:00")
    value = FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value, count=1)
    return datetime.datetime.fromisoformat(value)


def _set_mtime(path: Path, creation_time: Optional[str]):
    """
    Attempt to set OS mod time from the item's creationTime.
    """
    if not creation_time:
        return
    try:
        ts = parse_creation_time(creation_time).timestamp()
        os.utime(path, (ts, ts))
    except (ValueError, OSError) as e:
        logger.debug("Could not set mtime on %s: %s", path, e)


def download_media_item(session: requests.Session, item: RemoteMediaItem, destination: Path):
    """
    Stream the bytes of item into destination.

    Raises DownloadError for a non-2xx response and LocalIOError when the file
    can't be written. Whatever was written is removed before the error propagates.
    """
    url = download_url(item)
    try:
        resp = session.get(url, stream=True, timeout=REQUEST_TIMEOUT)
    except requests.RequestException as e:
        raise DownloadError(f"Download failed for {item.filename}: {e}") from e

    with resp:
        if not 200 <= resp.status_code < 300:
            raise DownloadError(
                f"Download failed for {item.filename}: {resp.status_code}",
                status_code=resp.status_code,
            )
        try:
            with open(destination, "xb") as f:
                for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
        except FileExistsError as e:
            # another file already sits here; it is not ours to remove
            raise LocalIOError(f"Refusing to overwrite existing file {destination}") from e
        except requests.RequestException as e:
            _remove_partial(destination)
            raise DownloadError(f"Download interrupted for {item.filename}: {e}") from e
        except OSError as e:
            _remove_partial(destination)
            raise LocalIOError(f"Cannot write {destination}: {e}") from e

    _set_mtime(destination, item.creation_time)
