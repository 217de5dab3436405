# camfleet/models/upload_artifact.py
"""
Index of uploaded recordings.
The file itself lives under STORAGE_PATH; path is relative to it. Rows are
insert-only.
"""

from sqlalchemy import Column, Integer, BigInteger, String, DateTime
from camfleet.database import Base


class UploadArtifact(Base):
    __tablename__ = "upload_artifacts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(String(100), nullable=False, index=True)
    camera_id = Column(String(100), nullable=False)
    session_id = Column(String(100), nullable=False, index=True)
    path = Column(String(500), unique=True, nullable=False)
    size_bytes = Column(BigInteger, nullable=False)
    uploaded_at = Column(DateTime, nullable=False)

    def __repr__(self):
        return f"<UploadArtifact {self.path} size={self.size_bytes}>"
