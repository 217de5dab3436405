"""Device registration endpoint."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from camfleet.database import get_db
from camfleet.schemas.device import DeviceRegister
from camfleet.services.device_registry import register_device
from camfleet.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.post("/register", summary="Agent registration — upserts the full device record")
def register(body: DeviceRegister, request: Request, db: Session = Depends(get_db)):
    logger.info(f"Registration attempt: {body.model_dump()}")
    register_device(
        db,
        device_id=body.device_id,
        version=body.version,
        cameras=body.cameras,
        ip=request.client.host if request.client else None,
        capabilities=body.capabilities,
    )
    return {"status": "success"}
