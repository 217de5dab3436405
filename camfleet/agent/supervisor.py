# camfleet/agent/supervisor.py
"""
Process Supervisor — one external capture process (ffmpeg) per session.

spawn      start the capture in its own process group, stdio discarded
is_live    non-invasive probe; reaps our own finished children via poll()
terminate  send SIGTERM and return immediately

Termination is optimistic: success means the signal was delivered, not that
the process has exited. ffmpeg keeps writing its trailer for a moment after
SIGTERM, so callers must not treat the output file as final at that point.
"""

import os
import signal
import subprocess
from dataclasses import dataclass, field
from typing import List, Optional

from camfleet.exceptions import SignalFailure, SpawnFailure
from camfleet.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class ProcessHandle:
    pid: int
    # None when the process was reattached by pid after an agent restart
    popen: Optional[subprocess.Popen] = field(default=None, repr=False, compare=False)


class ProcessSupervisor:
    def __init__(self, ffmpeg_bin: str = "ffmpeg"):
        self.ffmpeg_bin = ffmpeg_bin

    def build_command(self, camera_url: str, output_path: str, duration: int) -> List[str]:
        return [
            self.ffmpeg_bin,
            "-nostdin",
            "-rtsp_transport", "tcp",
            "-i", camera_url,
            "-t", str(duration),
            "-c:v", "copy",
            "-y", output_path,
        ]

    def spawn(self, camera_url: str, output_path: str, duration: int) -> ProcessHandle:
        cmd = self.build_command(camera_url, output_path, duration)
        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            logger.error(f"Failed to start capture process {cmd[0]}: {e}")
            raise SpawnFailure(f"Failed to start {cmd[0]}: {e}")

        logger.info(f"🎬 Capture process started (PID: {proc.pid})")
        return ProcessHandle(pid=proc.pid, popen=proc)

    def attach(self, pid: int) -> ProcessHandle:
        """Handle for a process started by a previous agent run."""
        return ProcessHandle(pid=pid)

    def is_live(self, handle: Optional[ProcessHandle]) -> bool:
        if handle is None:
            return False
        if handle.popen is not None:
            return handle.popen.poll() is None
        try:
            os.kill(handle.pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            # Exists, owned by someone else
            return True
        return True

    def terminate(self, handle: ProcessHandle) -> None:
        try:
            if handle.popen is not None:
                handle.popen.send_signal(signal.SIGTERM)
            else:
                os.kill(handle.pid, signal.SIGTERM)
        except OSError as e:
            logger.error(f"Failed to send SIGTERM to process: {handle.pid}: {e}")
            raise SignalFailure(f"Failed to send SIGTERM to process {handle.pid}")
        logger.info(f"SIGTERM sent to PID {handle.pid}")

    def release(self, handle: Optional[ProcessHandle]) -> None:
        """Drop a handle after its session left Active; reaps the child if it already exited."""
        if handle is not None and handle.popen is not None:
            handle.popen.poll()
