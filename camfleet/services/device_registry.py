# camfleet/services/device_registry.py
"""
Device Registry — persistent map of device_id → device record.

Each /register overwrites the whole record for one device (no partial
update). Updates are keyed per row, so registrations of different devices
never touch each other's data; registrations of the same device are
serialised by device_locks and the last writer wins.
"""

from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session
from camfleet.exceptions import DeviceNotFound, MissingField
from camfleet.models.device import Device
from camfleet.utils.locks import device_locks
from camfleet.utils.logger import get_logger

logger = get_logger(__name__)


def register_device(db: Session, device_id: Optional[str], version: Optional[str] = None,
                    cameras: Optional[List[str]] = None, ip: Optional[str] = None,
                    capabilities: Optional[List[str]] = None) -> Device:
    if not device_id:
        logger.error("Registration failed: Missing device_id")
        raise MissingField("device_id")

    with device_locks.hold(device_id):
        device = db.get(Device, device_id)
        if device is None:
            device = Device(device_id=device_id)
            db.add(device)

        device.ip = ip
        device.last_seen = datetime.utcnow()
        device.status = "online"
        device.version = version or "1.0"
        device.cameras = list(cameras or [])
        device.capabilities = list(capabilities or [])
        db.commit()

    logger.info(f"📟 Device registered: {device_id} with {len(device.cameras)} cameras")
    return device


def get_device(db: Session, device_id: str) -> Device:
    device = db.get(Device, device_id) if device_id else None
    if device is None:
        raise DeviceNotFound(device_id)
    return device


def list_devices(db: Session) -> List[Device]:
    return db.query(Device).order_by(Device.device_id).all()


def summarize(db: Session) -> dict:
    """device_id → {cameras: <count>, last_seen: <iso>} for /status."""
    return {
        d.device_id: {
            "cameras": len(d.cameras or []),
            "last_seen": d.last_seen.isoformat(),
        }
        for d in list_devices(db)
    }
