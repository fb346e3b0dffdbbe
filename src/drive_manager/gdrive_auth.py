# gdrive_auth.py
import json
import logging
from typing import Any

import httplib2
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from pydantic import BaseModel, ConfigDict

from .exceptions import AuthenticationError

# The scope for Google Drive API
SCOPES = ["https://www.googleapis.com/auth/drive"]


class AuthContext(BaseModel):
    """
    Immutable authentication context shared by all Drive operations.
    Token acquisition happens elsewhere; this only loads what it produced.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    credentials: Any

    @classmethod
    def from_json(cls, credentials_json: str, token_json: str) -> "AuthContext":
        """
        Builds the context from an OAuth client config and an authorized-user token.

        The client config may be the raw download from the cloud console
        (wrapped in "installed" or "web") or a flat dict.
        """
        try:
            token_info = json.loads(token_json)
            # The credentials_json can come from a file or environment variable.
            # It should contain the client_id and client_secret.
            credentials_data = json.loads(credentials_json)
        except (TypeError, ValueError) as e:
            raise AuthenticationError(f"Could not parse Google Drive credentials: {e}") from e

        client_config = (
            credentials_data.get("installed")
            or credentials_data.get("web")
            or credentials_data
        )
        if "client_id" in client_config and "client_secret" in client_config:
            token_info = {
                **token_info,
                "client_id": client_config["client_id"],
                "client_secret": client_config["client_secret"],
            }
        else:
            logging.warning(
                "client_id or client_secret not found in GDRIVE_CREDENTIALS_JSON. Using existing from token_json if available."
            )

        try:
            creds = Credentials.from_authorized_user_info(
                info=token_info, scopes=token_info.get("scopes", SCOPES)
            )
        except ValueError as e:
            raise AuthenticationError(f"Invalid Google Drive token: {e}") from e

        logging.info("Google Drive credentials loaded.")
        return cls(credentials=creds)

    @classmethod
    def from_settings(cls, settings) -> "AuthContext":
        if not settings.GDRIVE_CREDENTIALS_JSON or not settings.GDRIVE_TOKEN_JSON:
            raise AuthenticationError(
                "GDRIVE_CREDENTIALS_JSON and GDRIVE_TOKEN_JSON are required."
            )
        return cls.from_json(settings.GDRIVE_CREDENTIALS_JSON, settings.GDRIVE_TOKEN_JSON)

    def authorized_http(self) -> AuthorizedHttp:
        """A fresh authorized transport. httplib2 connections must not be shared across threads."""
        return AuthorizedHttp(self.credentials, http=httplib2.Http())
