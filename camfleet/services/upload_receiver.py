# camfleet/services/upload_receiver.py
"""
Upload Receiver — persists an uploaded recording.

Saves to:  <STORAGE_PATH>/<device_id>/<camera_id>/<YYYYmmdd-HHMMSS-ffffff>_<session_id>.<ext>
Returns:   the path relative to STORAGE_PATH, e.g. "AGENT-1/cam1/20260101-120000-000001_S1.mp4"

The payload is streamed to a temp file in the target directory and renamed
into place, so a partially written file is never visible under its final name.
"""

import os
import shutil
import tempfile
from datetime import datetime
from typing import BinaryIO, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from camfleet.exceptions import InvalidUpload, WriteFailed
from camfleet.models.upload_artifact import UploadArtifact
from camfleet.utils.logger import get_logger
from camfleet.utils.paths import is_safe_component

logger = get_logger(__name__)

DEFAULT_EXTENSION = "mp4"
ALLOWED_EXTENSIONS = {"mp4", "mkv", "avi", "mov", "ts", "h264"}


def _check_component(name: str, value: Optional[str]) -> str:
    if not value:
        raise InvalidUpload(f"Invalid file upload: missing {name}")
    if not is_safe_component(value):
        raise InvalidUpload(f"Invalid file upload: bad {name}")
    return value


def _extension(filename: Optional[str]) -> str:
    ext = os.path.splitext(filename or "")[1].lstrip(".").lower()
    return ext if ext in ALLOWED_EXTENSIONS else DEFAULT_EXTENSION


def accept_upload(db: Session, storage_root: str, device_id: Optional[str], camera_id: str,
                  session_id: str, fileobj: Optional[BinaryIO],
                  filename: Optional[str] = None, max_bytes: Optional[int] = None) -> str:
    logger.info(f"Upload from {device_id}/camera:{camera_id}, session: {session_id}")

    if fileobj is None:
        logger.error("Upload failed: No file")
        raise InvalidUpload("Invalid file upload: No file")
    device_id = _check_component("device_id", device_id)
    camera_id = _check_component("camera_id", camera_id)
    session_id = _check_component("session_id", session_id)

    target_dir = os.path.join(storage_root, device_id, camera_id)
    stamp = datetime.utcnow().strftime("%Y%m%d-%H%M%S-%f")
    ext = _extension(filename)
    name = f"{stamp}_{session_id}.{ext}"
    n = 1
    while os.path.exists(os.path.join(target_dir, name)):
        name = f"{stamp}-{n}_{session_id}.{ext}"
        n += 1
    target_path = os.path.join(target_dir, name)
    relative_path = f"{device_id}/{camera_id}/{name}"

    tmp_path = None
    try:
        if not os.path.isdir(target_dir):
            os.makedirs(target_dir, exist_ok=True)
            logger.info(f"Created storage directory: {target_dir}")

        fd, tmp_path = tempfile.mkstemp(dir=target_dir, prefix=".upload-", suffix=".part")
        with os.fdopen(fd, "wb") as out:
            shutil.copyfileobj(fileobj, out)
        size = os.path.getsize(tmp_path)
        if size == 0:
            raise InvalidUpload("Invalid file upload: empty file")
        if max_bytes and size > max_bytes:
            raise InvalidUpload("Invalid file upload: file too large")
        os.replace(tmp_path, target_path)
        tmp_path = None
    except OSError as e:
        logger.error(f"File write failed: {target_path}: {e}", exc_info=True)
        raise WriteFailed("File move failed")
    finally:
        if tmp_path and os.path.exists(tmp_path):
            os.remove(tmp_path)

    try:
        db.add(UploadArtifact(device_id=device_id, camera_id=camera_id, session_id=session_id,
                              path=relative_path, size_bytes=size,
                              uploaded_at=datetime.utcnow()))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        os.remove(target_path)
        logger.error(f"Upload index write failed for {relative_path}: {e}", exc_info=True)
        raise WriteFailed("Failed to record upload")

    logger.info(f"📼 Upload successful: {name} ({round(size / 1024 / 1024, 2)} MB)")
    return relative_path
