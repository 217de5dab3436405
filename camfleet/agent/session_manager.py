# camfleet/agent/session_manager.py
"""
Session Manager — the agent's recording lifecycle.

Single writer of the SessionStore. One tick():
  1. probes every Active session once      (exited → Completed)
  2. tries one upload per Completed/Stopped (ok → Uploaded, missing file → Failed,
                                             transport error → unchanged, retried next tick)
  3. drops terminal sessions older than RETENTION_SECONDS
  4. snapshots the store to disk

A session dropped before it was uploaded is logged as [ABANDONED] and
counted; its file stays on local storage.

Nothing in tick() raises — every per-session failure is logged and recorded
on the session.
"""

import os
import time
import uuid
from typing import Callable, Dict, Iterable, Optional

from camfleet.agent.session_store import (
    TERMINAL_STATUSES,
    UPLOADABLE_STATUSES,
    RecordingSession,
    SessionStatus,
    SessionStore,
)
from camfleet.agent.supervisor import ProcessSupervisor
from camfleet.agent.uploader import UploadPipeline
from camfleet.exceptions import (
    FileMissing,
    SessionNotFound,
    SignalFailure,
    SpawnFailure,
    UploadError,
)
from camfleet.utils.logger import get_logger
from camfleet.utils.paths import is_safe_component

logger = get_logger(__name__)


class SessionManager:
    def __init__(
        self,
        cameras: Dict[str, str],
        supervisor: ProcessSupervisor,
        uploader: UploadPipeline,
        store: Optional[SessionStore] = None,
        temp_dir: str = "tmp",
        default_duration: int = 300,
        retention_seconds: int = 3600,
        clock: Callable[[], float] = time.time,
    ):
        self.cameras = dict(cameras)
        self.supervisor = supervisor
        self.uploader = uploader
        self.store = store if store is not None else SessionStore()
        self.temp_dir = temp_dir
        self.default_duration = default_duration
        self.retention_seconds = retention_seconds
        self.clock = clock
        self.abandoned_count = 0

    # ── Commands ─────────────────────────────────────────────────────────
    def start_recording(self, camera_id: str, session_id: Optional[str] = None,
                        params: Optional[dict] = None) -> Optional[RecordingSession]:
        """Spawn a capture for camera_id. Returns None when the request is rejected."""
        params = params or {}
        session_id = session_id or f"rec_{uuid.uuid4().hex[:13]}"

        if not is_safe_component(session_id):
            logger.error(f"Invalid session id {session_id!r} — start_recording rejected")
            return None

        camera_url = self.cameras.get(camera_id)
        if camera_url is None:
            logger.error(f"Camera {camera_id} not found — start_recording for {session_id} rejected")
            return None
        if session_id in self.store:
            logger.warning(f"Session {session_id} already exists — start_recording ignored")
            return None

        duration = params.get("duration") or self.default_duration
        try:
            duration = int(duration)
        except (TypeError, ValueError):
            logger.warning(f"Invalid duration {duration!r} for {session_id}, using {self.default_duration}s")
            duration = self.default_duration

        os.makedirs(self.temp_dir, exist_ok=True)
        output_path = os.path.join(self.temp_dir, f"{session_id}.mp4")

        try:
            handle = self.supervisor.spawn(camera_url, output_path, duration)
        except SpawnFailure as e:
            logger.error(f"Recording not started for {session_id}: {e}")
            return None

        session = RecordingSession(
            session_id=session_id,
            camera_id=camera_id,
            output_path=output_path,
            start_time=self.clock(),
            requested_duration=duration,
            process_handle=handle,
        )
        self.store.add(session)
        logger.info(f"🔴 Recording started. Session: {session_id}, PID: {handle.pid}, Camera: {camera_id}")
        return session

    def stop_recording(self, session_id: str) -> RecordingSession:
        """
        Stop an Active session.
        Live process + signal delivered → Stopped; process already gone → Completed.
        A failed signal leaves the session Active. Raises SessionNotFound otherwise.
        """
        logger.info(f"Stop recording request for session: {session_id}")
        session = self.store.get(session_id)
        if session is None or session.status is not SessionStatus.ACTIVE:
            logger.error(f"Recording session {session_id} not found")
            raise SessionNotFound(session_id)

        session.stop_requested = True
        handle = session.process_handle
        if self.supervisor.is_live(handle):
            try:
                self.supervisor.terminate(handle)
            except SignalFailure as e:
                session.last_error = str(e)
                return session
            self.store.transition(session, SessionStatus.STOPPED)
            logger.info(f"⏹  Recording stopped: {session_id} (PID: {handle.pid})")
        else:
            self.store.transition(session, SessionStatus.COMPLETED)
            logger.info(f"Process already terminated: {session_id} (PID: {session.pid})")
        self.supervisor.release(handle)
        return session

    def process_commands(self, commands: Iterable[dict]) -> None:
        commands = list(commands)
        if commands:
            logger.info(f"Processing {len(commands)} commands")
        for command in commands:
            try:
                camera_id = command.get("camera_id") or "default"
                session_id = command.get("session_id") or f"rec_{uuid.uuid4().hex[:13]}"
                action = command.get("action") or "unknown"
                logger.info(f"Command: {action} for camera:{camera_id}, session:{session_id}")

                if action == "start_recording":
                    self.start_recording(camera_id, session_id, command)
                elif action == "stop_recording":
                    self.stop_recording(session_id)
                else:
                    logger.warning(f"Unknown command: {action}")
            except SessionNotFound:
                pass
            except Exception as e:
                logger.error(f"Command processing failed: {e}", exc_info=True)

    # ── Cycle ────────────────────────────────────────────────────────────
    def tick(self) -> None:
        counts = self.store.count_by_status()
        logger.debug(f"Sessions: {counts or 'none'}")

        for session in self.store.with_status(SessionStatus.ACTIVE):
            self._guarded(session, self._probe)
        for session in self.store.with_status(*UPLOADABLE_STATUSES):
            self._guarded(session, self._upload)
        self._collect_expired()

        try:
            self.store.save()
        except OSError as e:
            logger.error(f"Could not persist sessions: {e}")

    def _guarded(self, session: RecordingSession, step: Callable[[RecordingSession], None]) -> None:
        try:
            step(session)
        except Exception as e:
            session.last_error = str(e)
            logger.error(f"Session {session.session_id}: {step.__name__} failed: {e}", exc_info=True)

    def _probe(self, session: RecordingSession) -> None:
        handle = session.process_handle
        if self.supervisor.is_live(handle):
            return
        self.store.transition(session, SessionStatus.COMPLETED)
        self.supervisor.release(handle)
        logger.info(f"Recording finished: {session.session_id}")

    def _upload(self, session: RecordingSession) -> None:
        if not os.path.isfile(session.output_path):
            logger.error(f"File missing for {session.session_id}: {session.output_path}")
            session.last_error = "output file missing"
            self.store.transition(session, SessionStatus.FAILED)
            return

        self.store.transition(session, SessionStatus.UPLOADING)
        session.upload_attempts += 1
        try:
            self.uploader.upload(session.output_path, session.session_id, session.camera_id)
        except FileMissing as e:
            # Vanished between the check and the read
            logger.error(f"File missing for {session.session_id}: {e}")
            session.last_error = str(e)
            self.store.transition(session, session.finished_as)
            self.store.transition(session, SessionStatus.FAILED)
            return
        except UploadError as e:
            logger.error(f"Upload failed for {session.session_id} "
                         f"(attempt {session.upload_attempts}): {e}")
            session.last_error = str(e)
            self.store.transition(session, session.finished_as)
            return
        except Exception:
            self.store.transition(session, session.finished_as)
            raise

        session.last_error = None
        self.store.transition(session, SessionStatus.UPLOADED)
        logger.info(f"✅ Upload successful: {session.session_id}")

    def _collect_expired(self) -> None:
        now = self.clock()
        for session in self.store.with_status(*TERMINAL_STATUSES):
            if session.age(now) <= self.retention_seconds:
                continue
            self.store.remove(session.session_id)
            if session.status is SessionStatus.UPLOADED:
                logger.info(f"Removing old recording: {session.session_id}")
            else:
                self.abandoned_count += 1
                logger.warning(
                    f"[ABANDONED] Session {session.session_id} dropped as {session.status.value} "
                    f"after {session.upload_attempts} upload attempts; file kept at {session.output_path}"
                )

    # ── Startup ──────────────────────────────────────────────────────────
    def reconcile(self) -> None:
        """Restore persisted sessions; reattach capture processes that are still running."""
        try:
            records = self.store.load()
        except (OSError, ValueError) as e:
            logger.error(f"Could not read persisted sessions, starting empty: {e}")
            return
        for record in records:
            if record.session_id in self.store:
                continue
            if record.status is SessionStatus.ACTIVE:
                handle = self.supervisor.attach(record.pid) if record.pid else None
                if self.supervisor.is_live(handle):
                    self.store.restore(record, handle)
                    logger.info(f"Reattached session {record.session_id} (PID: {record.pid})")
                    continue
                record = record.model_copy(update={
                    "status": SessionStatus.COMPLETED,
                    "finished_as": SessionStatus.COMPLETED,
                })
                logger.info(f"Session {record.session_id} ended while the agent was down")
            elif record.status is SessionStatus.UPLOADING:
                outcome = record.finished_as or SessionStatus.COMPLETED
                record = record.model_copy(update={"status": outcome, "finished_as": outcome})
            elif record.status in UPLOADABLE_STATUSES and record.finished_as is None:
                record = record.model_copy(update={"finished_as": record.status})
            self.store.restore(record)
