# camfleet/services/command_mailbox.py
"""
Command Mailbox — durable per-device queue of pending commands.

enqueue: only for registered devices; each entry gets a per-device token
         (enqueued_ns) that is strictly greater than the previous one.
drain:   reads every pending entry for the device, deletes exactly those
         rows and commits, and only then returns the commands. A failed
         commit rolls back, so the commands are still queued for the next
         poll. Delivery is at most once per stored entry — there is no ack.
"""

import time
from datetime import datetime
from typing import List, Optional
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from camfleet.exceptions import CommandQueueError, DeviceNotFound, EnqueueFailed, InvalidCommand
from camfleet.models.device import Device
from camfleet.models.queued_command import QueuedCommand
from camfleet.schemas.command import CommandAction
from camfleet.utils.locks import device_locks
from camfleet.utils.logger import get_logger
from camfleet.utils.paths import is_safe_component

logger = get_logger(__name__)

# A concurrent drainer (another worker process) can delete rows between our
# read and our delete; re-read this many times before giving up.
_MAX_DRAIN_ATTEMPTS = 3


def _next_token(db: Session, device_id: str) -> int:
    last = db.query(func.max(QueuedCommand.enqueued_ns)).filter(
        QueuedCommand.device_id == device_id
    ).scalar()
    now_ns = time.time_ns()
    return now_ns if last is None or now_ns > last else last + 1


def enqueue_command(db: Session, device_id: Optional[str], action: Optional[str],
                    camera_id: str = "default", session_id: Optional[str] = None,
                    duration: Optional[int] = None) -> QueuedCommand:
    if not device_id:
        raise InvalidCommand("Missing device_id")
    for name, value in (("camera_id", camera_id), ("session_id", session_id)):
        if value and not is_safe_component(value):
            logger.warning(f"Command rejected for {device_id}: bad {name} {value!r}")
            raise InvalidCommand(f"Invalid {name}: {value}")
    try:
        action = CommandAction(action).value
    except ValueError:
        logger.warning(f"Command rejected for {device_id}: unknown action {action!r}")
        raise InvalidCommand(f"Unknown action: {action}")

    logger.info(f"Command for {device_id}/camera:{camera_id}: {action}")

    with device_locks.hold(device_id):
        if db.get(Device, device_id) is None:
            logger.error(f"Command failed: Device {device_id} not found")
            raise DeviceNotFound(device_id)

        command = QueuedCommand(
            device_id=device_id,
            action=action,
            camera_id=camera_id or "default",
            session_id=session_id,
            duration=duration,
            enqueued_ns=_next_token(db, device_id),
            enqueued_at=datetime.utcnow(),
        )
        db.add(command)
        try:
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Command enqueue failed for {device_id}: {e}", exc_info=True)
            raise EnqueueFailed("Failed to queue command")

    logger.info(f"📨 Command queued: {command.command_id}")
    return command


def drain_commands(db: Session, device_id: str) -> List[dict]:
    """Remove and return every pending command for device_id, oldest first."""
    if not device_id:
        return []

    with device_locks.hold(device_id):
        for attempt in range(1, _MAX_DRAIN_ATTEMPTS + 1):
            pending = (
                db.query(QueuedCommand)
                .filter(QueuedCommand.device_id == device_id)
                .order_by(QueuedCommand.enqueued_ns, QueuedCommand.id)
                .all()
            )
            if not pending:
                return []

            # Buffer the payloads before anything is deleted
            payloads = [c.to_payload() for c in pending]
            ids = [c.id for c in pending]

            try:
                deleted = (
                    db.query(QueuedCommand)
                    .filter(QueuedCommand.id.in_(ids))
                    .delete(synchronize_session=False)
                )
                if deleted != len(ids):
                    db.rollback()
                    logger.warning(
                        f"Drain race for {device_id}: expected {len(ids)} rows, "
                        f"deleted {deleted} (attempt {attempt})"
                    )
                    continue
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Drain failed for {device_id}: {e}", exc_info=True)
                raise CommandQueueError("Failed to read command queue")

            for payload in payloads:
                logger.info(f"Command dispatched: {payload['command_id']}")
            logger.info(f"Sent {len(payloads)} commands to {device_id}")
            return payloads

    raise CommandQueueError("Command queue is busy, retry")


def pending_count(db: Session, device_id: str) -> int:
    return db.query(QueuedCommand).filter(QueuedCommand.device_id == device_id).count()
