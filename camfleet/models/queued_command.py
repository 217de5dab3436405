# camfleet/models/queued_command.py
"""
Command mailbox table.
Rows are written by /command and deleted by the /check-commands drain that
delivers them. enqueued_ns is strictly increasing per device and doubles as
the public command token.
"""

from sqlalchemy import Column, Integer, BigInteger, String, DateTime, UniqueConstraint
from camfleet.database import Base


class QueuedCommand(Base):
    __tablename__ = "queued_commands"
    __table_args__ = (UniqueConstraint("device_id", "enqueued_ns", name="uq_command_token"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(String(100), nullable=False, index=True)
    action = Column(String(50), nullable=False)
    camera_id = Column(String(100), nullable=False, default="default")
    session_id = Column(String(100))
    duration = Column(Integer)
    enqueued_ns = Column(BigInteger, nullable=False)
    enqueued_at = Column(DateTime, nullable=False)

    @property
    def command_id(self) -> str:
        return f"{self.device_id}_{self.enqueued_ns}"

    def to_payload(self) -> dict:
        """The command as delivered to the agent."""
        payload = {
            "command_id": self.command_id,
            "device_id": self.device_id,
            "action": self.action,
            "camera_id": self.camera_id,
        }
        if self.session_id is not None:
            payload["session_id"] = self.session_id
        if self.duration is not None:
            payload["duration"] = self.duration
        return payload

    def __repr__(self):
        return f"<QueuedCommand {self.command_id} action={self.action}>"
