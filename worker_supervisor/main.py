"""
Worker supervisor entry point.

Configures logging, builds the supervisor from the environment, wires SIGINT
and SIGTERM to a shutdown request and exits with the supervisor's status:
0 for a clean stop, 1 when the restart budget is exhausted.
"""

import asyncio
import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from .config import Config
from .process import WorkerLauncher
from .supervisor import Supervisor

logger = logging.getLogger(__name__)

EXIT_CONFIG_ERROR = 2

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
log_formatter = logging.Formatter(LOG_FORMAT)


def configure_logging(config: Config):
    """Console logging, plus a rotating file when SUPERVISOR_LOG_FILE is set."""
    handlers: list[logging.Handler] = []

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(log_formatter)
    handlers.append(console_handler)

    if config.log_file:
        config.log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            config.log_file,
            maxBytes=config.log_max_bytes,
            backupCount=config.log_backup_count,
        )
        file_handler.setFormatter(log_formatter)
        handlers.append(file_handler)

    logging.basicConfig(level=config.log_level, handlers=handlers, force=True)


async def supervise(config: Config) -> int:
    """Run one supervisor until it stops and return its exit status."""
    supervisor = Supervisor(
        WorkerLauncher(config),
        max_restarts=config.max_restarts,
        restart_delay=config.restart_delay,
    )
    supervisor.install_signal_handlers()

    logger.info(f"Starting worker supervisor: {' '.join(config.command)}")

    def banner(_supervisor: Supervisor):
        logger.info("Worker supervisor started")
        logger.info(f"Worker will be available at: {config.worker_url}")
        logger.info(f"Health endpoint: {config.worker_url}/api/health")
        logger.info("Press Ctrl+C to stop")

    try:
        return await supervisor.run(on_started=banner)
    finally:
        supervisor.remove_signal_handlers()


def main(argv: Optional[list[str]] = None) -> int:
    """Run the supervisor. Extra command-line arguments replace WORKER_COMMAND."""
    if argv is None:
        argv = sys.argv[1:]

    try:
        config = Config.from_env(argv)
    except ValueError as e:  # ConfigError or a malformed number
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
        logger.error(f"Invalid configuration: {e}")
        return EXIT_CONFIG_ERROR

    configure_logging(config)
    return asyncio.run(supervise(config))
