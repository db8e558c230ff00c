"""docker2lm - ships Docker container logs and stats to a remote log intake"""

__version__ = "0.1.0"
