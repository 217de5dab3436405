"""Entry point: python -m camfleet.agent"""

from camfleet.agent.runner import AgentRunner
from camfleet.config import AgentSettings
from camfleet.utils.logger import configure_logging, get_logger

logger = get_logger(__name__)


def main():
    config = AgentSettings()
    log_path = configure_logging(config.LOG_LEVEL, config.LOG_DIR, config.LOG_FILE)
    logger.info(f"📝 Agent {config.DEVICE_ID} logging to {log_path}")

    runner = AgentRunner.from_settings(config)
    try:
        runner.run()
    except KeyboardInterrupt:
        logger.info("🛑 Agent stopped")
    finally:
        runner.client.close()


if __name__ == "__main__":
    main()
