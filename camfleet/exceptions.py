# camfleet/exceptions.py
"""
Error taxonomy shared by the coordinator and the agent.

Coordinator errors carry the HTTP status they map to; main.py turns any
CamfleetError into {"error": <message>} with that status. Agent errors are
caught by the session manager and recorded on the affected session.
"""

from typing import Optional


class CamfleetError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# ── Coordinator ──────────────────────────────────────────────────────────────
class RegistrationError(CamfleetError):
    status_code = 400
    default_message = "Registration failed"


class MissingField(RegistrationError):
    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Missing {field}")


class AuthError(CamfleetError):
    status_code = 401
    default_message = "Unauthorized"


class Unauthorized(AuthError):
    pass


class DeviceNotFound(CamfleetError):
    status_code = 404
    default_message = "Device not found"

    def __init__(self, device_id: str):
        self.device_id = device_id
        super().__init__(f"Device {device_id} not found")


class CommandQueueError(CamfleetError):
    status_code = 500
    default_message = "Command queue failure"


class EnqueueFailed(CommandQueueError):
    pass


class InvalidCommand(CommandQueueError):
    status_code = 400
    default_message = "Invalid command"


class InvalidUpload(CamfleetError):
    status_code = 400
    default_message = "Invalid file upload"


class StorageError(CamfleetError):
    status_code = 500
    default_message = "Storage failure"


class WriteFailed(StorageError):
    pass


# ── Agent ────────────────────────────────────────────────────────────────────
class RecordingProcessError(CamfleetError):
    default_message = "Recording process error"


class SpawnFailure(RecordingProcessError):
    pass


class SignalFailure(RecordingProcessError):
    pass


class SessionNotFound(CamfleetError):
    status_code = 404

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Recording session {session_id} not found")


class UploadError(CamfleetError):
    default_message = "Upload failed"


class FileMissing(UploadError):
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"File not found: {path}")


class Transport(UploadError):
    """Non-2xx response or connection failure. status is 0 when no response arrived."""

    def __init__(self, status: int, detail: str = ""):
        self.status = status
        self.detail = detail
        super().__init__(f"HTTP {status}: {detail}")
