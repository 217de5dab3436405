"""
Command mailbox endpoints.
POST /command        — operator queues a command for a registered device.
POST /check-commands — agent drains its pending commands (oldest first).
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from camfleet.database import get_db
from camfleet.schemas.command import CommandCreate, CommandPoll
from camfleet.services.command_mailbox import drain_commands, enqueue_command
from camfleet.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.post("/command", summary="Queue a command for a device")
def queue_command(body: CommandCreate, db: Session = Depends(get_db)):
    command = enqueue_command(
        db,
        device_id=body.device_id,
        action=body.action,
        camera_id=body.camera_id,
        session_id=body.session_id,
        duration=body.duration,
    )
    return {"status": "queued", "command_id": command.command_id}


@router.post("/check-commands", summary="Agent poll — returns and removes pending commands")
def check_commands(body: CommandPoll, db: Session = Depends(get_db)):
    logger.info(f"Command check from {body.device_id}")
    return {"commands": drain_commands(db, body.device_id)}
