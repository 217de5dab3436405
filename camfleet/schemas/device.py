from pydantic import BaseModel
from typing import List, Optional


class DeviceRegister(BaseModel):
    # Optional so a missing id is reported as a 400 by the registry, not a 422
    device_id: Optional[str] = None
    version: Optional[str] = None
    cameras: List[str] = []
    capabilities: List[str] = []
