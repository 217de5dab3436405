# camfleet/agent/uploader.py
"""
Upload Pipeline — ships a finished recording to the coordinator.

FileMissing  the recording is not on disk (never a transport problem)
Transport    non-2xx or connection failure; the local file is kept

The local file is deleted only after the coordinator confirmed the upload.
There is no retry here — the session manager calls again on its next tick.
"""

import os

from camfleet.agent.client import CoordinatorClient
from camfleet.exceptions import FileMissing
from camfleet.utils.logger import get_logger

logger = get_logger(__name__)


class UploadPipeline:
    def __init__(self, client: CoordinatorClient, device_id: str):
        self.client = client
        self.device_id = device_id

    def upload(self, file_path: str, session_id: str, camera_id: str) -> str:
        """Returns the storage path reported by the coordinator."""
        if not os.path.isfile(file_path):
            raise FileMissing(file_path)

        size_mb = round(os.path.getsize(file_path) / 1024 / 1024, 2)
        logger.info(f"⬆️  Uploading {file_path} ({size_mb} MB) for session {session_id}, camera {camera_id}")
        try:
            response = self.client.upload_file(file_path, self.device_id, session_id, camera_id)
        except FileNotFoundError:
            raise FileMissing(file_path)

        logger.info(f"Upload successful: {session_id} → {response.get('path')}")
        self._discard(file_path)
        return response.get("path", "")

    def _discard(self, file_path: str) -> None:
        try:
            os.remove(file_path)
            logger.info(f"Temporary file deleted: {file_path}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not delete uploaded file {file_path}: {e}")
