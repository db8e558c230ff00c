import logging
from docker2lm.core.logging_config import setup_logging

# Use centralized logging configuration
setup_logging()

# Create logger for this module
logger = logging.getLogger("docker2lm")
