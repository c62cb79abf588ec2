from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Iterable

from google.auth.exceptions import GoogleAuthError, RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from oauthlib.oauth2.rfc6749.errors import OAuth2Error

from utils.config import AccountConfig

LOGGER = logging.getLogger(__name__)
SCOPES: Iterable[str] = ("https://www.googleapis.com/auth/gmail.modify",)


class BootstrapError(RuntimeError):
    """The OAuth client secret could not be loaded; nothing can be polled."""


class AuthorizationError(RuntimeError):
    """Obtaining an access token failed."""


def load_client_config(path: Path) -> Dict:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise BootstrapError(f"Error loading client secret file {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise BootstrapError(f"Client secret file {path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict) or not ({"installed", "web"} & data.keys()):
        raise BootstrapError(f"Client secret file {path} has no 'installed' or 'web' section")
    return data


class AuthService:
    """Handle the OAuth2 credential lifecycle for the Gmail account."""

    def __init__(self, account: AccountConfig, client_config: Dict | None = None):
        self._account = account
        self._client_config = client_config

    @property
    def client_config(self) -> Dict:
        if self._client_config is None:
            self._client_config = load_client_config(self._account.credentials_file)
        return self._client_config

    def _save_credentials(self, creds: Credentials) -> None:
        LOGGER.debug("Persisting OAuth tokens to %s", self._account.token_file)
        try:
            self._account.token_file.parent.mkdir(parents=True, exist_ok=True)
            self._account.token_file.write_text(creds.to_json(), encoding="utf-8")
        except OSError as exc:
            LOGGER.error("Error storing access token in %s: %s", self._account.token_file, exc)
            return
        LOGGER.info("Token stored to %s", self._account.token_file)

    def _load_existing_credentials(self) -> Credentials | None:
        token_path: Path = self._account.token_file
        if not token_path.exists():
            return None
        LOGGER.debug("Loading cached credential from %s", token_path)
        try:
            data = json.loads(token_path.read_text(encoding="utf-8"))
            return Credentials.from_authorized_user_info(data, SCOPES)
        except (OSError, ValueError) as exc:
            LOGGER.warning("Ignoring unreadable token file %s: %s", token_path, exc)
            return None

    def _run_flow(self) -> Credentials:
        LOGGER.info("Initiating OAuth flow using %s", self._account.credentials_file)
        flow = InstalledAppFlow.from_client_config(self.client_config, scopes=SCOPES)
        try:
            return flow.run_local_server(port=0, access_type="offline")
        except (OAuth2Error, GoogleAuthError, ValueError) as exc:
            raise AuthorizationError(f"Error retrieving access token: {exc}") from exc

    def authorize(self) -> Credentials:
        """Return valid credentials, refreshing or re-authorizing as needed."""

        creds = self._load_existing_credentials()
        if creds and creds.expired and creds.refresh_token:
            LOGGER.info("Refreshing expired Gmail token")
            try:
                creds.refresh(Request())
            except RefreshError as exc:
                LOGGER.warning("Token refresh failed, re-authorizing: %s", exc)
            except TransportError as exc:
                raise AuthorizationError(f"Could not reach Google to refresh the token: {exc}") from exc
            else:
                self._save_credentials(creds)
                return creds

        if creds and creds.valid:
            return creds

        creds = self._run_flow()
        self._save_credentials(creds)
        return creds
