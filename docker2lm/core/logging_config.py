import logging
import sys
import os
import socket

# Get container hostname to detect self-monitoring
CONTAINER_HOSTNAME = socket.gethostname()

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class SelfMonitoringFilter(logging.Filter):
    """Filter out per-record logs that would feed back into our own log stream.

    When the agent runs as a container on the host it watches, everything it
    prints is tailed and shipped again. Per-record diagnostics then multiply.
    """

    PER_RECORD_PREFIXES = (
        "Dropped log chunk",
        "Dropped stats sample",
        "Dropped docker event",
        "Write skipped",
    )

    def __init__(self, in_container=None):
        super().__init__()
        if in_container is None:
            in_container = os.path.exists("/.dockerenv") or any(
                pattern in CONTAINER_HOSTNAME.lower()
                for pattern in ['docker2lm', 'log-agent']
            )
        self.in_container = in_container

    def filter(self, record):
        # Outside a container nothing loops back
        if not self.in_container:
            return True

        if record.levelno <= logging.DEBUG and record.getMessage().startswith(self.PER_RECORD_PREFIXES):
            return False

        return True


def setup_logging(level=logging.INFO):
    """Configure logging with self-monitoring filter."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    # Root logger configuration
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Create console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    # Create formatter
    formatter = logging.Formatter(LOG_FORMAT)
    console_handler.setFormatter(formatter)

    # Add self-monitoring filter to prevent loops
    console_handler.addFilter(SelfMonitoringFilter())

    # Clear existing handlers and add our configured handler
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)

    # aiohttp access/client chatter is not useful for the agent
    logging.getLogger("aiohttp").setLevel(max(level, logging.WARNING))

    return root_logger
