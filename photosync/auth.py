import logging
import os
from pathlib import Path
from typing import Mapping, Optional

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import AuthorizedSession, Request
from google.oauth2.credentials import Credentials

from photosync.config import SCOPES, TOKEN_FILE
from photosync.errors import AuthError

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"


class TokenProvider:
    """
    Produces Google Photos credentials for one sync run.

    Uses GOOGLE_PHOTOS_CLIENT_ID / GOOGLE_PHOTOS_CLIENT_SECRET /
    GOOGLE_PHOTOS_REFRESH_TOKEN when the refresh token is set, otherwise the
    authorized-user file saved by an earlier consent flow (data/token.json).
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None, token_file: Path = TOKEN_FILE):
        self.environ = os.environ if environ is None else environ
        self.token_file = token_file

    def _load_credentials(self) -> Credentials:
        refresh_token = self.environ.get("GOOGLE_PHOTOS_REFRESH_TOKEN")
        if refresh_token:
            client_id = self.environ.get("GOOGLE_PHOTOS_CLIENT_ID")
            client_secret = self.environ.get("GOOGLE_PHOTOS_CLIENT_SECRET")
            if not client_id or not client_secret:
                raise AuthError(
                    "GOOGLE_PHOTOS_CLIENT_ID and GOOGLE_PHOTOS_CLIENT_SECRET must be set "
                    "alongside GOOGLE_PHOTOS_REFRESH_TOKEN"
                )
            return Credentials(
                token=None,
                refresh_token=refresh_token,
                client_id=client_id,
                client_secret=client_secret,
                token_uri=TOKEN_URI,
                scopes=SCOPES,
            )

        if self.token_file.exists():
            try:
                return Credentials.from_authorized_user_file(str(self.token_file), SCOPES)
            except ValueError as e:
                raise AuthError(f"Token file {self.token_file} is invalid: {e}") from e

        raise AuthError(
            f"No credentials: set GOOGLE_PHOTOS_REFRESH_TOKEN or provide {self.token_file}"
        )

    def get_credentials(self) -> Credentials:
        """
        Load credentials and refresh the access token. Called once per run.
        """
        creds = self._load_credentials()
        if creds.valid:
            return creds
        if not creds.refresh_token:
            raise AuthError("Credentials are expired and have no refresh token")
        try:
            creds.refresh(Request())
        except GoogleAuthError as e:
            raise AuthError(f"Unable to acquire access token: {e}") from e
        logger.debug("Refreshed access token, expires %s", creds.expiry)
        return creds


def authorized_session(creds: Credentials) -> AuthorizedSession:
    """
    Return a requests session that sends the bearer token on every request,
    refreshing it when it expires mid-run.
    """
    session = AuthorizedSession(creds)
    session.headers.update({"Content-Type": "application/json"})
    return session
