# camfleet/agent/session_store.py
"""
Session Store — the agent's table of recording sessions.

Only the SessionManager writes to it. Status changes go through
SessionStore.transition(), which enforces the lifecycle edges:

    Active     → Completed | Stopped
    Completed  → Uploading | Failed
    Stopped    → Uploading | Failed
    Uploading  → Uploaded | Completed | Stopped   (back to finished_as on failure)

Leaving Active always drops the process handle. The table is snapshotted to
STATE_FILE as JSON after every tick so a restarted agent can reconcile
capture processes that outlived it.
"""

import os
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel

from camfleet.agent.supervisor import ProcessHandle
from camfleet.utils.logger import get_logger

logger = get_logger(__name__)


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    STOPPED = "stopped"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    FAILED = "failed"


TERMINAL_STATUSES = {
    SessionStatus.COMPLETED,
    SessionStatus.STOPPED,
    SessionStatus.UPLOADED,
    SessionStatus.FAILED,
}

UPLOADABLE_STATUSES = {SessionStatus.COMPLETED, SessionStatus.STOPPED}

ALLOWED_TRANSITIONS = {
    SessionStatus.ACTIVE: {SessionStatus.COMPLETED, SessionStatus.STOPPED},
    SessionStatus.COMPLETED: {SessionStatus.UPLOADING, SessionStatus.FAILED},
    SessionStatus.STOPPED: {SessionStatus.UPLOADING, SessionStatus.FAILED},
    SessionStatus.UPLOADING: {SessionStatus.UPLOADED, SessionStatus.COMPLETED, SessionStatus.STOPPED},
    SessionStatus.UPLOADED: set(),
    SessionStatus.FAILED: set(),
}


class InvalidTransition(Exception):
    pass


@dataclass
class RecordingSession:
    session_id: str
    camera_id: str
    output_path: str
    start_time: float
    requested_duration: int
    process_handle: Optional[ProcessHandle] = None
    status: SessionStatus = SessionStatus.ACTIVE
    stop_requested: bool = False
    finished_as: Optional[SessionStatus] = None
    upload_attempts: int = 0
    last_error: Optional[str] = None
    # Kept after the handle is dropped so the snapshot can name the process
    pid: Optional[int] = field(default=None)

    def age(self, now: float) -> float:
        return now - self.start_time


class SessionRecord(BaseModel):
    """On-disk form of a RecordingSession."""
    session_id: str
    camera_id: str
    output_path: str
    start_time: float
    requested_duration: int
    status: SessionStatus
    stop_requested: bool = False
    finished_as: Optional[SessionStatus] = None
    upload_attempts: int = 0
    last_error: Optional[str] = None
    pid: Optional[int] = None


class SessionSnapshot(BaseModel):
    sessions: List[SessionRecord] = []


class SessionStore:
    def __init__(self, state_file: Optional[str] = None):
        self.state_file = state_file
        self._sessions: Dict[str, RecordingSession] = {}

    # ── Queries ──────────────────────────────────────────────────────────
    def get(self, session_id: str) -> Optional[RecordingSession]:
        return self._sessions.get(session_id)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def all(self) -> List[RecordingSession]:
        return list(self._sessions.values())

    def with_status(self, *statuses: SessionStatus) -> List[RecordingSession]:
        return [s for s in self._sessions.values() if s.status in statuses]

    def count_by_status(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for s in self._sessions.values():
            counts[s.status.value] = counts.get(s.status.value, 0) + 1
        return counts

    # ── Mutations ────────────────────────────────────────────────────────
    def add(self, session: RecordingSession) -> None:
        if session.session_id in self._sessions:
            raise KeyError(f"Session {session.session_id} already exists")
        if session.status is SessionStatus.ACTIVE and session.process_handle is None:
            raise InvalidTransition(f"Active session {session.session_id} needs a process handle")
        if session.process_handle is not None:
            session.pid = session.process_handle.pid
        self._sessions[session.session_id] = session

    def transition(self, session: RecordingSession, new_status: SessionStatus) -> None:
        if new_status not in ALLOWED_TRANSITIONS[session.status]:
            raise InvalidTransition(
                f"Session {session.session_id}: {session.status.value} → {new_status.value} not allowed"
            )
        old = session.status
        session.status = new_status
        if old is SessionStatus.ACTIVE:
            session.process_handle = None
            session.finished_as = new_status
        logger.debug(f"Session {session.session_id}: {old.value} → {new_status.value}")

    def remove(self, session_id: str) -> Optional[RecordingSession]:
        return self._sessions.pop(session_id, None)

    # ── Persistence ──────────────────────────────────────────────────────
    def save(self) -> None:
        if not self.state_file:
            return
        snapshot = SessionSnapshot(sessions=[
            SessionRecord(
                session_id=s.session_id,
                camera_id=s.camera_id,
                output_path=s.output_path,
                start_time=s.start_time,
                requested_duration=s.requested_duration,
                status=s.status,
                stop_requested=s.stop_requested,
                finished_as=s.finished_as,
                upload_attempts=s.upload_attempts,
                last_error=s.last_error,
                pid=s.pid,
            )
            for s in self._sessions.values()
        ])
        directory = os.path.dirname(os.path.abspath(self.state_file))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".sessions-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(snapshot.model_dump_json(indent=2))
            os.replace(tmp_path, self.state_file)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def load(self) -> List[SessionRecord]:
        """Read the last snapshot. The SessionManager decides how to restore each record."""
        if not self.state_file or not os.path.exists(self.state_file):
            return []
        with open(self.state_file, encoding="utf-8") as f:
            snapshot = SessionSnapshot.model_validate_json(f.read())
        logger.info(f"Loaded {len(snapshot.sessions)} sessions from {self.state_file}")
        return snapshot.sessions

    def restore(self, record: SessionRecord, handle: Optional[ProcessHandle] = None) -> RecordingSession:
        """Insert a persisted session as-is. Only the SessionManager's reconcile step calls this."""
        session = RecordingSession(
            session_id=record.session_id,
            camera_id=record.camera_id,
            output_path=record.output_path,
            start_time=record.start_time,
            requested_duration=record.requested_duration,
            process_handle=handle,
            status=record.status,
            stop_requested=record.stop_requested,
            finished_as=record.finished_as,
            upload_attempts=record.upload_attempts,
            last_error=record.last_error,
            pid=record.pid,
        )
        self.add(session)
        return session
