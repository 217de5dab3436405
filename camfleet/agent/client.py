# camfleet/agent/client.py
"""
HTTP client for the coordinator.

Control calls (register, check-commands) use the short CONTROL_TIMEOUT;
uploads use UPLOAD_TIMEOUT so a stalled transfer cannot hold up liveness
probes for longer than that. Every call carries the bearer token.
"""

import os
from typing import List, Optional

import httpx

from camfleet.exceptions import Transport
from camfleet.utils.logger import get_logger

logger = get_logger(__name__)


class CoordinatorClient:
    def __init__(self, base_url: str, auth_token: str, control_timeout: float = 10.0,
                 upload_timeout: float = 300.0, transport: Optional[httpx.BaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.control_timeout = control_timeout
        self.upload_timeout = upload_timeout
        self._http = httpx.Client(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {auth_token}"},
            transport=transport,
        )

    def close(self):
        self._http.close()

    def _post(self, path: str, timeout: float, **kwargs) -> dict:
        logger.debug(f"HTTP request: POST {self.base_url}{path}")
        try:
            response = self._http.post(path, timeout=timeout, **kwargs)
        except httpx.HTTPError as e:
            raise Transport(0, f"{type(e).__name__}: {e}")
        if not response.is_success:
            raise Transport(response.status_code, response.text[:200])
        try:
            return response.json()
        except ValueError:
            raise Transport(response.status_code, "Invalid JSON in response")

    def register(self, device_id: str, version: str, cameras: List[str]) -> bool:
        payload = {
            "device_id": device_id,
            "version": version,
            "capabilities": ["video_recording", "camera_control"],
            "cameras": cameras,
        }
        data = self._post("/register", self.control_timeout, json=payload)
        return data.get("status") == "success"

    def fetch_commands(self, device_id: str) -> List[dict]:
        data = self._post("/check-commands", self.control_timeout, json={"device_id": device_id})
        return data.get("commands") or []

    def upload_file(self, file_path: str, device_id: str, session_id: str, camera_id: str) -> dict:
        with open(file_path, "rb") as f:
            return self._post(
                "/upload",
                self.upload_timeout,
                data={"device_id": device_id, "session_id": session_id, "camera_id": camera_id},
                files={"video": (os.path.basename(file_path), f, "video/mp4")},
            )
