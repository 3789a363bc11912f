"""Credential providers for the Google Sheets driver.

The driver asks its provider for credentials at the start of every operation
and drops them afterwards; providers own refresh and persistence.
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Optional

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2 import service_account
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from .base import AuthRecoverableError

logger = logging.getLogger(__name__)

SCOPES = [
    'https://www.googleapis.com/auth/drive',
    'https://www.googleapis.com/auth/spreadsheets',
]


class CredentialProvider(ABC):
    """Supplies valid Google credentials on demand."""

    @abstractmethod
    def get_credentials(self):
        """Return credentials usable for one operation.

        Raises:
            AuthRecoverableError: If the user must (re-)authorize
        """
        pass


class ServiceAccountProvider(CredentialProvider):
    """Service account credentials from a key file or environment variable.

    If ``GOOGLE_SERVICE_ACCOUNT_JSON`` holds the key as a single-line JSON
    string (the form used for containers), it takes precedence over the file.
    """

    def __init__(self, service_account_file: str = "service_account_key.json") -> None:
        self.service_account_file = service_account_file
        self._creds = None

    def get_credentials(self):
        if self._creds is None:
            self._creds = self._load()
        return self._creds

    def _load(self):
        key_json = os.environ.get("GOOGLE_SERVICE_ACCOUNT_JSON")
        try:
            if key_json:
                return service_account.Credentials.from_service_account_info(
                    json.loads(key_json), scopes=SCOPES
                )
            return service_account.Credentials.from_service_account_file(
                self.service_account_file, scopes=SCOPES
            )
        except FileNotFoundError:
            raise AuthRecoverableError(
                f"Service account key not found: {self.service_account_file}"
            )
        except ValueError as e:
            raise AuthRecoverableError(f"Invalid service account key: {e}")


class InstalledAppProvider(CredentialProvider):
    """User OAuth credentials persisted in a token file.

    ``get_credentials`` only loads and refreshes; it never opens a browser.
    Run ``authorize()`` (``main.py --auth``) to go through the consent flow.
    """

    def __init__(self, client_secrets_file: str = "credentials.json",
                 token_file: str = "token.json") -> None:
        self.client_secrets_file = client_secrets_file
        self.token_file = token_file

    def get_credentials(self):
        creds = self._load_token()
        if creds is None:
            raise AuthRecoverableError(
                f"No authorization token at {self.token_file}; run with --auth"
            )
        if creds.valid:
            return creds
        if creds.expired and creds.refresh_token:
            try:
                creds.refresh(Request())
            except RefreshError as e:
                raise AuthRecoverableError(f"Token refresh failed, re-authorize: {e}")
            self._save_token(creds)
            return creds
        raise AuthRecoverableError("Stored token is invalid; run with --auth")

    def authorize(self):
        """Run the browser consent flow and store the resulting token."""
        flow = InstalledAppFlow.from_client_secrets_file(self.client_secrets_file, SCOPES)
        creds = flow.run_local_server(port=0)
        self._save_token(creds)
        logger.info("Stored authorization token in %s", self.token_file)
        return creds

    def _load_token(self) -> Optional[Credentials]:
        if not os.path.exists(self.token_file):
            return None
        try:
            return Credentials.from_authorized_user_file(self.token_file, SCOPES)
        except ValueError as e:
            logger.warning("Ignoring unreadable token file %s: %s", self.token_file, e)
            return None

    def _save_token(self, creds) -> None:
        with open(self.token_file, "w") as f:
            f.write(creds.to_json())
