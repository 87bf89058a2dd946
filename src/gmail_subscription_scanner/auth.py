"""OAuth helpers for read-only Gmail access."""

from __future__ import annotations

import logging
from pathlib import Path

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import Resource, build

from .constants import CONFIG_DIR, CREDENTIALS_PATH, SCOPES, TOKEN_PATH

logger = logging.getLogger(__name__)


def load_credentials(
    credentials_path: Path | None = None,
    token_path: Path | None = None,
) -> Credentials:
    """Return valid OAuth credentials for the gmail.readonly scope.

    A cached token is refreshed when expired. Without a usable token the
    browser consent flow runs, which needs the OAuth client file at
    *credentials_path*. The resulting token is written back to *token_path*.
    """
    credentials_path = credentials_path or CREDENTIALS_PATH
    token_path = token_path or TOKEN_PATH
    token_path.parent.mkdir(parents=True, exist_ok=True)

    creds: Credentials | None = None
    if token_path.exists():
        creds = Credentials.from_authorized_user_file(str(token_path), SCOPES)
        if not creds.has_scopes(SCOPES):
            logger.info("Cached token lacks the read-only Gmail scope, re-authorizing")
            creds = None

    if creds and creds.expired and creds.refresh_token:
        logger.debug("Refreshing expired Gmail token")
        creds.refresh(Request())
    elif not creds or not creds.valid:
        if not credentials_path.exists():
            raise FileNotFoundError(
                f"Credentials file not found at {credentials_path}.\n"
                "Download your OAuth client credentials from the Google Cloud Console "
                "and save them as:\n"
                f"  {credentials_path}"
            )
        flow = InstalledAppFlow.from_client_secrets_file(str(credentials_path), SCOPES)
        creds = flow.run_local_server(port=0)

    token_path.write_text(creds.to_json())
    return creds


def get_gmail_service() -> Resource:
    """Return an authenticated Gmail API service object."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    return build("gmail", "v1", credentials=load_credentials(), cache_discovery=False)


def check_auth() -> str:
    """Verify Gmail access and return the authenticated address.

    Raises FileNotFoundError when no OAuth client file is available; any
    other failure from the API propagates.
    """
    service = get_gmail_service()
    profile = service.users().getProfile(userId="me").execute()
    return profile["emailAddress"]
