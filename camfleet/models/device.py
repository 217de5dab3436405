# camfleet/models/device.py
"""
Device registry table.
One row per agent, overwritten wholesale by device_registry on every /register.
"""

from sqlalchemy import Column, String, DateTime, JSON
from camfleet.database import Base


class Device(Base):
    __tablename__ = "devices"

    device_id = Column(String(100), primary_key=True)
    ip = Column(String(64))
    last_seen = Column(DateTime, nullable=False, index=True)
    status = Column(String(20), default="online", nullable=False)
    version = Column(String(50), default="1.0", nullable=False)
    cameras = Column(JSON, default=list, nullable=False)
    capabilities = Column(JSON, default=list, nullable=False)

    def __repr__(self):
        return f"<Device {self.device_id} cameras={len(self.cameras or [])} status={self.status}>"
