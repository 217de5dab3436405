from enum import Enum
from pydantic import BaseModel
from typing import Optional


class CommandAction(str, Enum):
    START_RECORDING = "start_recording"
    STOP_RECORDING = "stop_recording"


class CommandCreate(BaseModel):
    device_id: Optional[str] = None
    camera_id: str = "default"
    action: Optional[str] = None
    session_id: Optional[str] = None
    duration: Optional[int] = None


class CommandPoll(BaseModel):
    device_id: Optional[str] = None
