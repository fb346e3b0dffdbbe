# download.py
import asyncio
import io
import logging
from pathlib import Path
from typing import Callable, Union

from googleapiclient.http import MediaIoBaseDownload

from .retry import DEFAULT_ERRORS, ErrorPolicy, RetryOperation, RetryPolicy

DEFAULT_CHUNK_SIZE = 100 * 1024 * 1024


class StreamDownloader:
    """
    Streams a Drive file's content into a local file.

    A failed request and a stream broken mid-transfer share one attempt limit.
    Every attempt truncates the destination and starts over from the first byte.
    """

    def __init__(
        self,
        service,
        http_factory: Callable,
        policy: RetryPolicy,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        errors: ErrorPolicy = DEFAULT_ERRORS,
    ):
        self.service = service
        self.http_factory = http_factory
        self.policy = policy
        self.chunk_size = chunk_size
        self.errors = errors

    async def download(self, file_id: str, path: Union[str, Path]) -> Path:
        """
        Downloads a file by ID to ``path``.

        :return: The destination path once the file is fully written and closed.
        """
        path = Path(path)
        logging.info(f"Downloading file with ID '{file_id}' to {path}...")
        operation = RetryOperation(
            self.policy, self.errors, label=f"download of '{file_id}' to {path}"
        )
        await operation.run(lambda: asyncio.to_thread(self._download_once, file_id, path))
        logging.info(f"Saved {path}")
        return path

    def _download_once(self, file_id: str, path: Path):
        with io.FileIO(str(path), "wb") as fh:
            request = self.service.files().get_media(fileId=file_id)
            request.http = self.http_factory()
            downloader = MediaIoBaseDownload(fh, request, chunksize=self.chunk_size)

            # Until the first chunk arrives a failure belongs to the request itself.
            fault_point = "request"
            done = False
            try:
                while not done:
                    status, done = downloader.next_chunk()
                    fault_point = "stream"
                    if status:
                        logging.debug(
                            f"Downloaded {int(status.progress() * 100)}% of '{file_id}'"
                        )
            except Exception as e:
                logging.warning(
                    f"Download {fault_point} error for '{file_id}' ({path}): {e}"
                )
                raise
