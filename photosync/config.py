import datetime
import enum
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from photosync.errors import ConfigError

# === PATH CONFIGURATION ===
DATA_DIR = Path("data")
TOKEN_FILE = DATA_DIR / "token.json"

CONFIG_FILE = Path("sync_config.json")

# === SCOPES ===
SCOPES = [
    "https://www.googleapis.com/auth/photoslibrary.readonly"
]

DEFAULT_CONCURRENCY = 10
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class MediaType(enum.Enum):
    PHOTO = "PHOTO"
    VIDEO = "VIDEO"
    ALL_MEDIA = "ALL_MEDIA"


class OrganizationScheme(enum.Enum):
    """
    How downloaded items are laid out under the destination root.
    """
    BY_YEAR = "BY_YEAR"


@dataclass(frozen=True)
class SyncConfig:
    destination_root: Path
    media_type: MediaType = MediaType.ALL_MEDIA
    start_date: Optional[datetime.date] = None
    end_date: Optional[datetime.date] = None
    organization_scheme: OrganizationScheme = OrganizationScheme.BY_YEAR
    concurrency_limit: int = DEFAULT_CONCURRENCY
    log_level: str = "WARNING"


# env var -> sync_config.json key
ENV_KEYS = {
    "GOOGLE_PHOTOS_DEST_DIR": "destinationDirectory",
    "PHOTOSYNC_CONCURRENCY": "concurrencyLimit",
    "PHOTOSYNC_MEDIA_TYPE": "mediaType",
    "PHOTOSYNC_START_DATE": "startDate",
    "PHOTOSYNC_END_DATE": "endDate",
    "PHOTOSYNC_ORGANIZATION": "organizationScheme",
    "PHOTOSYNC_LOG_LEVEL": "logLevel",
}


def load_user_config(config_file: Path = CONFIG_FILE) -> dict:
    """
    Load the user's sync_config.json, if there is one.
    Returns an empty dict when the file doesn't exist.
    """
    if not config_file.exists():
        return {}
    try:
        with open(config_file, "r") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigError(f"Cannot read {config_file}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{config_file} must contain a JSON object")
    return data


def _parse_date(value, name: str) -> Optional[datetime.date]:
    if value in (None, ""):
        return None
    try:
        return datetime.datetime.strptime(str(value), "%Y-%m-%d").date()
    except ValueError:
        raise ConfigError(f"{name} must be a YYYY-MM-DD date, got {value!r}")


def _parse_enum(enum_cls, value, name: str):
    try:
        return enum_cls(str(value).upper())
    except ValueError:
        choices = ", ".join(m.value for m in enum_cls)
        raise ConfigError(f"{name} must be one of {choices}, got {value!r}")


def load_sync_config(
    environ: Optional[Mapping[str, str]] = None,
    config_file: Path = CONFIG_FILE,
) -> SyncConfig:
    """
    Build the SyncConfig for this run.

    Values come from the environment; anything not set there falls back to
    sync_config.json and then to the defaults. GOOGLE_PHOTOS_DEST_DIR is required.
    """
    if environ is None:
        environ = os.environ

    raw = load_user_config(config_file)
    for env_name, key in ENV_KEYS.items():
        if environ.get(env_name):
            raw[key] = environ[env_name]

    dest = raw.get("destinationDirectory")
    if not dest:
        raise ConfigError("GOOGLE_PHOTOS_DEST_DIR not set")

    try:
        concurrency = int(raw.get("concurrencyLimit", DEFAULT_CONCURRENCY))
    except (TypeError, ValueError):
        raise ConfigError(f"concurrencyLimit must be an integer, got {raw['concurrencyLimit']!r}")
    if concurrency < 1:
        raise ConfigError("concurrencyLimit must be at least 1")

    start = _parse_date(raw.get("startDate"), "startDate")
    end = _parse_date(raw.get("endDate"), "endDate")
    if (start is None) != (end is None):
        raise ConfigError("startDate and endDate must be set together")
    if start and end and start > end:
        raise ConfigError(f"startDate {start} is after endDate {end}")

    log_level = str(raw.get("logLevel", "WARNING")).upper()
    if log_level not in LOG_LEVELS:
        raise ConfigError(f"logLevel must be one of {', '.join(LOG_LEVELS)}, got {log_level!r}")

    return SyncConfig(
        destination_root=Path(dest).expanduser(),
        media_type=_parse_enum(MediaType, raw.get("mediaType", "ALL_MEDIA"), "mediaType"),
        start_date=start,
        end_date=end,
        organization_scheme=_parse_enum(
            OrganizationScheme, raw.get("organizationScheme", "BY_YEAR"), "organizationScheme"
        ),
        concurrency_limit=concurrency,
        log_level=log_level,
    )
