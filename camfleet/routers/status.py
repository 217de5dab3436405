"""
Coordinator status endpoint.
Returns the registered devices with camera count and last_seen.
"""

from datetime import datetime
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from camfleet.database import get_db
from camfleet.services.device_registry import summarize

router = APIRouter()


@router.get("/status", summary="Coordinator status")
def server_status(db: Session = Depends(get_db)):
    """
    Returns:
    - status: always "running" when the coordinator answers
    - devices: registered device ids
    - devices_info: per-device camera count and last_seen
    - time: server time (ISO 8601, UTC)
    """
    devices_info = summarize(db)
    return {
        "status": "running",
        "devices": list(devices_info.keys()),
        "devices_info": devices_info,
        "time": datetime.utcnow().isoformat(),
    }
