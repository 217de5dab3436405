# camfleet/agent/runner.py
"""
Agent main loop.

Registers with the coordinator (fatal on failure), then repeats forever:
tick the session manager, poll /check-commands, run the commands, sleep
CHECK_INTERVAL. Any error escaping a cycle is logged and the next wait is
ERROR_BACKOFF instead — that is the loop's only retry mechanism.
"""

import time
from typing import Callable, Optional

from camfleet.agent.client import CoordinatorClient
from camfleet.agent.session_manager import SessionManager
from camfleet.agent.session_store import SessionStore
from camfleet.agent.supervisor import ProcessSupervisor
from camfleet.agent.uploader import UploadPipeline
from camfleet.config import AgentSettings
from camfleet.exceptions import CamfleetError, Transport
from camfleet.utils.logger import get_logger

logger = get_logger(__name__)


class RegistrationFailed(SystemExit):
    def __init__(self):
        super().__init__(1)


class AgentRunner:
    def __init__(self, config: AgentSettings, client: CoordinatorClient, manager: SessionManager,
                 sleep: Callable[[float], None] = time.sleep):
        self.config = config
        self.client = client
        self.manager = manager
        self.sleep = sleep

    @classmethod
    def from_settings(cls, config: Optional[AgentSettings] = None) -> "AgentRunner":
        config = config or AgentSettings()
        client = CoordinatorClient(
            config.CENTRAL_SERVER,
            config.AUTH_TOKEN,
            control_timeout=config.CONTROL_TIMEOUT,
            upload_timeout=config.UPLOAD_TIMEOUT,
        )
        manager = SessionManager(
            cameras=config.CAMERAS,
            supervisor=ProcessSupervisor(config.FFMPEG_BIN),
            uploader=UploadPipeline(client, config.DEVICE_ID),
            store=SessionStore(config.STATE_FILE),
            temp_dir=config.TEMP_DIR,
            default_duration=config.DEFAULT_DURATION,
            retention_seconds=config.RETENTION_SECONDS,
        )
        return cls(config, client, manager)

    def register(self) -> bool:
        logger.info("Registering device...")
        try:
            return self.client.register(self.config.DEVICE_ID, self.config.VERSION,
                                        list(self.config.CAMERAS.keys()))
        except CamfleetError as e:
            logger.error(f"Registration error: {e}")
            return False

    def run_cycle(self) -> None:
        self.manager.tick()
        try:
            commands = self.client.fetch_commands(self.config.DEVICE_ID)
        except Transport as e:
            logger.error(f"Fetch commands error: {e}")
            return
        if commands:
            logger.info(f"📨 Received {len(commands)} commands")
            self.manager.process_commands(commands)

    def run(self, max_cycles: Optional[int] = None) -> None:
        logger.info(f"🚀 Starting agent: {self.config.DEVICE_ID}")
        logger.info(f"Agent version: {self.config.VERSION}")
        logger.info(f"Central server: {self.config.CENTRAL_SERVER}")
        logger.info(f"Cameras: {', '.join(self.config.CAMERAS.keys())}")

        self.manager.reconcile()

        if not self.register():
            logger.error("Registration failed. Exiting.")
            raise RegistrationFailed()
        logger.info("✅ Registered successfully")

        cycles = 0
        while max_cycles is None or cycles < max_cycles:
            cycles += 1
            try:
                self.run_cycle()
                self.sleep(self.config.CHECK_INTERVAL)
            except Exception as e:
                logger.error(f"Main loop error: {e}", exc_info=True)
                self.sleep(self.config.ERROR_BACKOFF)
