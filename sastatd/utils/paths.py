"""Default filesystem locations for the sastatd daemon.

Every default is derived from the program name so that a renamed
installation keeps its state apart from other instances.
"""

from pathlib import Path

PROGRAM_NAME = "sastatd"

# Base directories
STATE_DIR = Path("/var/lib") / PROGRAM_NAME
RUN_DIR = Path("/var/run")

# Specific files
DATABASE_PATH = STATE_DIR / f"{PROGRAM_NAME}.db"
PID_PATH = RUN_DIR / f"{PROGRAM_NAME}.pid"

# Network
DEFAULT_PORT = 4321
