"""Recording upload endpoint (multipart, file field 'video')."""

from typing import Optional
from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session
from camfleet.config import settings
from camfleet.database import get_db
from camfleet.services.upload_receiver import accept_upload

router = APIRouter()


@router.post("/upload", summary="Receive a finished recording from an agent")
def upload_video(
    device_id: Optional[str] = Form(None),
    camera_id: str = Form("default"),
    session_id: str = Form("unknown"),
    video: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
):
    path = accept_upload(
        db,
        settings.STORAGE_PATH,
        device_id=device_id,
        camera_id=camera_id,
        session_id=session_id,
        fileobj=video.file if video is not None else None,
        filename=video.filename if video is not None else None,
        max_bytes=settings.MAX_UPLOAD_MB * 1024 * 1024,
    )
    return {"status": "success", "path": path}
