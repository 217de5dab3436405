"""Unit tests for the command mailbox."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import threading
import pytest
from unittest.mock import patch
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Query, sessionmaker
from camfleet.database import create_tables
from camfleet.exceptions import CommandQueueError, DeviceNotFound, InvalidCommand
from camfleet.services import command_mailbox
from camfleet.services.command_mailbox import drain_commands, enqueue_command, pending_count
from camfleet.services.device_registry import register_device


@pytest.fixture
def registered(db):
    register_device(db, "AGENT-1", cameras=["cam1", "cam2"])
    register_device(db, "AGENT-2", cameras=["cam1"])
    return db


class TestEnqueue:
    def test_unknown_device_rejected(self, db):
        with pytest.raises(DeviceNotFound):
            enqueue_command(db, "GHOST", "start_recording", camera_id="cam1")
        assert pending_count(db, "GHOST") == 0

    def test_unknown_action_rejected(self, registered):
        with pytest.raises(InvalidCommand):
            enqueue_command(registered, "AGENT-1", "self_destruct")
        assert pending_count(registered, "AGENT-1") == 0

    def test_command_id_uses_device_and_token(self, registered):
        command = enqueue_command(registered, "AGENT-1", "start_recording",
                                  camera_id="cam1", session_id="S1", duration=10)
        assert command.command_id == f"AGENT-1_{command.enqueued_ns}"

    def test_tokens_strictly_increase(self, registered):
        with patch("camfleet.services.command_mailbox.time.time_ns", return_value=1000):
            first = enqueue_command(registered, "AGENT-1", "start_recording")
            second = enqueue_command(registered, "AGENT-1", "stop_recording")
        assert second.enqueued_ns > first.enqueued_ns
        assert first.command_id != second.command_id


class TestDrain:
    def test_drain_returns_commands_in_enqueue_order(self, registered):
        enqueue_command(registered, "AGENT-1", "start_recording", camera_id="cam1", session_id="S1", duration=10)
        enqueue_command(registered, "AGENT-1", "start_recording", camera_id="cam2", session_id="S2")
        enqueue_command(registered, "AGENT-1", "stop_recording", camera_id="cam1", session_id="S1")

        commands = drain_commands(registered, "AGENT-1")
        assert [(c["action"], c["session_id"]) for c in commands] == [
            ("start_recording", "S1"),
            ("start_recording", "S2"),
            ("stop_recording", "S1"),
        ]
        assert commands[0]["duration"] == 10
        assert "duration" not in commands[1]

    def test_second_drain_is_empty(self, registered):
        enqueue_command(registered, "AGENT-1", "start_recording", camera_id="cam1", session_id="S1")

        assert len(drain_commands(registered, "AGENT-1")) == 1
        assert drain_commands(registered, "AGENT-1") == []
        assert pending_count(registered, "AGENT-1") == 0

    def test_drain_only_touches_own_device(self, registered):
        enqueue_command(registered, "AGENT-1", "start_recording", session_id="S1")
        enqueue_command(registered, "AGENT-2", "start_recording", session_id="S9")

        commands = drain_commands(registered, "AGENT-1")
        assert [c["session_id"] for c in commands] == ["S1"]
        assert pending_count(registered, "AGENT-2") == 1

    def test_failed_commit_keeps_commands_queued(self, registered):
        enqueue_command(registered, "AGENT-1", "start_recording", session_id="S1")

        with patch.object(registered, "commit", side_effect=OperationalError("COMMIT", {}, Exception("disk I/O error"))):
            with pytest.raises(CommandQueueError):
                drain_commands(registered, "AGENT-1")

        assert pending_count(registered, "AGENT-1") == 1
        assert [c["session_id"] for c in drain_commands(registered, "AGENT-1")] == ["S1"]

    def test_unknown_device_drains_nothing(self, db):
        assert drain_commands(db, "NOPE") == []
        assert drain_commands(db, None) == []

    def test_delete_shortfall_rereads_queue(self, registered):
        enqueue_command(registered, "AGENT-1", "start_recording", session_id="S1")
        real_delete = Query.delete
        calls = []

        def short_once(query, *args, **kwargs):
            calls.append(1)
            if len(calls) == 1:
                return 0
            return real_delete(query, *args, **kwargs)

        with patch.object(Query, "delete", short_once):
            commands = drain_commands(registered, "AGENT-1")

        assert len(calls) == 2
        assert [c["session_id"] for c in commands] == ["S1"]
        assert pending_count(registered, "AGENT-1") == 0

    def test_persistent_shortfall_gives_up_and_keeps_commands(self, registered):
        enqueue_command(registered, "AGENT-1", "start_recording", session_id="S1")

        with patch.object(Query, "delete", return_value=0) as delete:
            with pytest.raises(CommandQueueError):
                drain_commands(registered, "AGENT-1")

        assert delete.call_count == command_mailbox._MAX_DRAIN_ATTEMPTS
        assert pending_count(registered, "AGENT-1") == 1

    def test_concurrent_drains_deliver_each_command_once(self, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path / 'mailbox.db'}",
                               connect_args={"check_same_thread": False, "timeout": 30})
        create_tables(bind=engine)
        factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

        session = factory()
        try:
            register_device(session, "D", cameras=["cam1"])
            queued = {
                enqueue_command(session, "D", "start_recording", session_id=f"S{n}").command_id
                for n in range(100)
            }
        finally:
            session.close()

        delivered = []
        errors = []
        start = threading.Barrier(8)

        def worker():
            db = factory()
            try:
                start.wait()
                for _ in range(5):
                    delivered.extend(c["command_id"] for c in drain_commands(db, "D"))
            except Exception as e:
                errors.append(e)
            finally:
                db.close()

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        engine.dispose()

        assert errors == []
        assert len(delivered) == len(set(delivered))
        assert set(delivered) == queued


class TestCommandValidation:
    @pytest.mark.parametrize("session_id", ["../evil", "a/b", "a\\b", ".."])
    def test_unsafe_session_id_rejected(self, registered, session_id):
        with pytest.raises(InvalidCommand):
            enqueue_command(registered, "AGENT-1", "start_recording", camera_id="cam1", session_id=session_id)
        assert pending_count(registered, "AGENT-1") == 0

    def test_unsafe_camera_id_rejected(self, registered):
        with pytest.raises(InvalidCommand):
            enqueue_command(registered, "AGENT-1", "start_recording", camera_id="../cam1", session_id="S1")
        assert pending_count(registered, "AGENT-1") == 0

    def test_missing_device_id_is_invalid_command(self, registered):
        with pytest.raises(InvalidCommand) as exc:
            enqueue_command(registered, None, "start_recording")
        assert exc.value.message == "Missing device_id"
        assert exc.value.status_code == 400
