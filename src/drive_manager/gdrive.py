# gdrive.py
import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from googleapiclient.discovery import build

from .config import Settings, get_settings
from .download import StreamDownloader
from .exceptions import MissingParameterError
from .gdrive_auth import AuthContext
from .pager import fetch_all, with_page_token_field
from .retry import DEFAULT_ERRORS, UPDATE_ERRORS, ErrorPolicy, RetryOperation, RetryPolicy

ROOT_FOLDER_ID = "root"
ABOUT_FIELDS = "user(permissionId)"
PROPERTIES_FIELDS = "id,parents,properties"
# Permission types that address a single account and therefore need an email address.
ACCOUNT_PERMISSION_TYPES = ("user", "group")


def _require(**params):
    missing = [name for name, value in params.items() if value is None or value == ""]
    if missing:
        raise MissingParameterError(f"Missing required parameter(s): {', '.join(missing)}")


def _quote(value: str) -> str:
    """Escapes a literal for use inside a Drive search query."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


class GoogleDriveManager:
    """
    Asynchronous client for the Google Drive v3 API.

    Every operation sends one request per attempt through a retry loop with
    exponential backoff. Listings follow page tokens until the last page and
    return all items at once.
    """

    def __init__(
        self,
        auth: AuthContext,
        settings: Optional[Settings] = None,
        service=None,
    ):
        self.auth = auth
        self.settings = settings or get_settings()
        self.policy = self.settings.retry_policy()
        self.extended_policy = self.settings.retry_policy(extended=True)
        try:
            self.service = service or build(
                "drive", "v3", credentials=auth.credentials, cache_discovery=False
            )
        except Exception as e:
            logging.error(f"Failed to initialize Google Drive client. Error: {e}")
            raise
        self.downloader = StreamDownloader(
            self.service,
            auth.authorized_http,
            self.extended_policy,
            chunk_size=self.settings.DOWNLOAD_CHUNK_SIZE,
        )
        logging.info("Google Drive manager initialized successfully.")

    async def _execute(
        self,
        build_request: Callable,
        policy: RetryPolicy,
        errors: ErrorPolicy = DEFAULT_ERRORS,
        label: str = "",
    ) -> Any:
        """
        Runs one API call with retries.

        :param build_request: Returns a fresh googleapiclient HttpRequest for each attempt.
        """

        async def attempt():
            request = build_request()
            return await asyncio.to_thread(
                request.execute, http=self.auth.authorized_http()
            )

        return await RetryOperation(policy, errors, label).run(attempt)

    # --- Identity and retrieval ---

    async def about(self) -> Dict[str, Any]:
        """Returns the permission ID of the authenticated user."""
        return await self._execute(
            lambda: self.service.about().get(fields=ABOUT_FIELDS),
            self.policy,
            label="about",
        )

    async def get_file(self, file_id: str, fields: Optional[str] = None) -> Dict[str, Any]:
        _require(file_id=file_id)
        params = {"fileId": file_id}
        if fields:
            params["fields"] = fields
        return await self._execute(
            lambda: self.service.files().get(**params),
            self.policy,
            label=f"get file '{file_id}'",
        )

    async def get_files(
        self,
        q: Optional[str] = None,
        fields: Optional[str] = None,
        user: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Lists every file matching a search query, following all result pages.

        :param q: Drive search query, e.g. "'<folder id>' in parents and trashed=false".
        :param fields: Partial response mask. nextPageToken is added when missing.
        :param user: Only used to label progress logs.
        :return: All matching files in server order.
        """
        params = {"pageSize": self.settings.PAGE_SIZE}
        if q:
            params["q"] = q
        if fields:
            params["fields"] = with_page_token_field(fields)
        label = user or q or "all files"

        async def fetch_page(page_token):
            page_params = dict(params, pageToken=page_token) if page_token else params
            return await self._execute(
                lambda: self.service.files().list(**page_params),
                self.policy,
                label=f"list files for {label}",
            )

        return await fetch_all(fetch_page, "files", label=label)

    async def get_root_folder_id(self) -> str:
        response = await self._execute(
            lambda: self.service.files().get(fileId=ROOT_FOLDER_ID, fields="id"),
            self.policy,
            label="get root folder",
        )
        return response["id"]

    async def get_root_files(
        self, owner: str, fields: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Lists the files owned by ``owner`` that sit directly in the root folder."""
        _require(owner=owner)
        q = f"'{_quote(owner)}' in owners and '{ROOT_FOLDER_ID}' in parents"
        return await self.get_files(q=q, fields=fields, user=owner)

    # --- File mutations ---

    async def create_file(
        self,
        name: Optional[str] = None,
        mime_type: Optional[str] = None,
        parents: Optional[List[str]] = None,
        fields: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Creates a metadata-only file, e.g. a folder when mime_type is the folder type."""
        body = {}
        if name:
            body["name"] = name
        if mime_type:
            body["mimeType"] = mime_type
        if parents:
            body["parents"] = list(parents)
        params = {"body": body}
        if fields:
            params["fields"] = fields

        logging.info(f"Creating file '{name}' in {parents or 'root'}...")
        return await self._execute(
            lambda: self.service.files().create(**params),
            self.policy,
            label=f"create file '{name}'",
        )

    async def copy(
        self,
        file_id: str,
        name: Optional[str] = None,
        parents: Optional[List[str]] = None,
        fields: Optional[str] = None,
    ) -> Dict[str, Any]:
        _require(file_id=file_id)
        body = {}
        if name:
            body["name"] = name
        if parents:
            body["parents"] = list(parents)
        params = {"fileId": file_id, "body": body}
        if fields:
            params["fields"] = fields

        logging.info(f"Copying file ID '{file_id}'...")
        return await self._execute(
            lambda: self.service.files().copy(**params),
            self.extended_policy,
            label=f"copy file '{file_id}'",
        )

    async def update(
        self,
        file_id: str,
        resource: Optional[Mapping[str, Any]] = None,
        fields: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Updates file metadata.

        A file that no longer exists is not an error: the call resolves to None.
        """
        _require(file_id=file_id)
        params = {"fileId": file_id, "body": dict(resource or {})}
        if fields:
            params["fields"] = fields
        return await self._execute(
            lambda: self.service.files().update(**params),
            self.policy,
            UPDATE_ERRORS,
            label=f"update file '{file_id}'",
        )

    async def delete_file(self, file_id: str) -> None:
        """Deletes a file permanently. A missing file counts as already deleted."""
        _require(file_id=file_id)
        logging.info(f"Deleting file with ID '{file_id}'...")
        await self._execute(
            lambda: self.service.files().delete(fileId=file_id),
            self.policy,
            UPDATE_ERRORS,
            label=f"delete file '{file_id}'",
        )

    async def add_parents(
        self,
        file_id: str,
        new_parents: List[str],
        remove_parents: Optional[List[str]] = None,
        fields: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Adds the file to folders, optionally removing it from others in the same
        request (a move).
        """
        _require(file_id=file_id)
        if not new_parents:
            raise MissingParameterError("Missing required parameter(s): new_parents")
        params = {"fileId": file_id, "addParents": ",".join(new_parents)}
        if remove_parents:
            params["removeParents"] = ",".join(remove_parents)
        if fields:
            params["fields"] = fields

        logging.info(f"Adding file ID '{file_id}' to folder(s) {new_parents}...")
        return await self._execute(
            lambda: self.service.files().update(**params),
            self.policy,
            label=f"add parents of '{file_id}'",
        )

    async def delete_parents(
        self,
        file_id: str,
        parents: List[str],
        fields: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        _require(file_id=file_id)
        if not parents:
            raise MissingParameterError("Missing required parameter(s): parents")
        params = {"fileId": file_id, "removeParents": ",".join(parents)}
        if fields:
            params["fields"] = fields

        logging.info(f"Removing file ID '{file_id}' from folder(s) {parents}...")
        return await self._execute(
            lambda: self.service.files().update(**params),
            self.policy,
            UPDATE_ERRORS,
            label=f"delete parents of '{file_id}'",
        )

    async def set_properties(
        self, file_id: str, properties: Union[Mapping[str, Any], str]
    ) -> Dict[str, Any]:
        """
        Merges custom properties into the file's metadata.

        :param properties: A mapping, or a JSON object as a string. A None value
                           removes that property.
        :return: The file's id, parents and properties.
        """
        _require(file_id=file_id)
        if isinstance(properties, str):
            try:
                properties = json.loads(properties)
            except ValueError as e:
                raise MissingParameterError(f"properties is not valid JSON: {e}") from e
        if not isinstance(properties, Mapping):
            raise MissingParameterError("properties must be a JSON object or a mapping")

        body = {"properties": dict(properties)}
        return await self._execute(
            lambda: self.service.files().update(
                fileId=file_id, body=body, fields=PROPERTIES_FIELDS
            ),
            self.extended_policy,
            label=f"set properties of '{file_id}'",
        )

    # --- Permissions ---

    async def get_permissions(
        self, file_id: str, fields: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Lists all permissions of a file, following all result pages."""
        _require(file_id=file_id)
        params = {"fileId": file_id, "pageSize": self.settings.PERMISSIONS_PAGE_SIZE}
        if fields:
            params["fields"] = with_page_token_field(fields)

        async def fetch_page(page_token):
            page_params = dict(params, pageToken=page_token) if page_token else params
            return await self._execute(
                lambda: self.service.permissions().list(**page_params),
                self.extended_policy,
                label=f"list permissions of '{file_id}'",
            )

        return await fetch_all(fetch_page, "permissions", label=file_id)

    async def add_permission(
        self,
        file_id: str,
        role: str,
        type: str,
        email_address: Optional[str] = None,
        domain: Optional[str] = None,
        transfer_ownership: bool = False,
        fields: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Shares a file.

        :param role: owner, organizer, fileOrganizer, writer, commenter or reader.
        :param type: user, group, domain or anyone.
        :param email_address: Required for user and group permissions.
        :param domain: Required for domain permissions.
        """
        _require(file_id=file_id, role=role, type=type)
        body = {"role": role, "type": type}
        if type in ACCOUNT_PERMISSION_TYPES:
            _require(email_address=email_address)
            body["emailAddress"] = email_address
        elif type == "domain":
            _require(domain=domain)
            body["domain"] = domain
        params = {"fileId": file_id, "body": body}
        if transfer_ownership:
            params["transferOwnership"] = True
        if fields:
            params["fields"] = fields

        logging.info(f"Granting {role} on '{file_id}' to {email_address or domain or type}...")
        return await self._execute(
            lambda: self.service.permissions().create(**params),
            self.policy,
            label=f"add permission on '{file_id}'",
        )

    async def update_permission(
        self,
        file_id: str,
        permission_id: Optional[str],
        role: str,
        transfer_ownership: bool = False,
        fields: Optional[str] = None,
    ) -> Dict[str, Any]:
        _require(file_id=file_id, permission_id=permission_id, role=role)
        params = {"fileId": file_id, "permissionId": permission_id, "body": {"role": role}}
        if transfer_ownership:
            params["transferOwnership"] = True
        if fields:
            params["fields"] = fields

        logging.info(f"Changing permission '{permission_id}' on '{file_id}' to {role}...")
        return await self._execute(
            lambda: self.service.permissions().update(**params),
            self.extended_policy,
            label=f"update permission '{permission_id}' on '{file_id}'",
        )

    async def delete_permission(self, file_id: str, permission_id: Optional[str]) -> None:
        """Revokes a permission. A permission that no longer exists counts as revoked."""
        _require(file_id=file_id, permission_id=permission_id)
        logging.info(f"Deleting permission '{permission_id}' on '{file_id}'...")
        await self._execute(
            lambda: self.service.permissions().delete(
                fileId=file_id, permissionId=permission_id
            ),
            self.policy,
            UPDATE_ERRORS,
            label=f"delete permission '{permission_id}' on '{file_id}'",
        )

    # --- Content ---

    async def download(self, file_id: str, path: Union[str, Path]) -> Path:
        """Downloads a file's content to ``path``, overwriting it."""
        _require(file_id=file_id, path=path)
        return await self.downloader.download(file_id, path)
