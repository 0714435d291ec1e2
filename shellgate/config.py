"""
Application configuration module.

Centralizes all configuration values and constants. Every tunable except
TERMINAL_ENV can be overridden from the environment (or a .env file at the
project root); variables are prefixed SHELLGATE_.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Project paths
PROJECT_ROOT = Path(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Load environment variables from .env file
load_dotenv(os.path.join(PROJECT_ROOT, ".env"))


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return [item.strip() for item in raw.split(",") if item.strip()]


# Server configuration
DEFAULT_PORT = int(os.environ.get("SHELLGATE_PORT", "8000"))

# Terminal configuration
TERMINAL_NAME = os.environ.get("SHELLGATE_TERMINAL_NAME", "ShellGate")
# Keeps commands like `git log` out of interactive pagers
TERMINAL_ENV = {"PAGER": "cat"}

# How long run_command waits for a terminal's shell integration to activate
# before falling back to plain text injection (seconds)
CAPABILITY_WAIT_TIMEOUT = int(os.environ.get("SHELLGATE_CAPABILITY_WAIT_MS", "3000")) / 1000.0

# Hard ceiling for one command in either execution mode (seconds)
COMMAND_EXECUTION_TIMEOUT = float(os.environ.get("SHELLGATE_COMMAND_TIMEOUT", str(60 * 60)))

# A process stays "hot" this long after its last output chunk (seconds)
PROCESS_HOT_TIMEOUT_NORMAL = float(os.environ.get("SHELLGATE_HOT_TIMEOUT", "2.0"))
PROCESS_HOT_TIMEOUT_COMPILING = float(
    os.environ.get("SHELLGATE_HOT_TIMEOUT_COMPILING", str(60 * 60.0))
)

# Legacy completion inference: poll terminal contents until they settle
OUTPUT_CHECK_MAX_ATTEMPTS = int(os.environ.get("SHELLGATE_OUTPUT_CHECK_ATTEMPTS", "30"))
OUTPUT_CHECK_INTERVAL = float(os.environ.get("SHELLGATE_OUTPUT_CHECK_INTERVAL", "0.1"))
OUTPUT_CHECK_STABLE_COUNT = int(os.environ.get("SHELLGATE_OUTPUT_CHECK_STABLE_COUNT", "3"))

# Output size limits for the legacy path
MAX_OUTPUT_LENGTH = int(os.environ.get("SHELLGATE_MAX_OUTPUT_LENGTH", "1000000"))
MAX_OUTPUT_PREVIEW_LENGTH = int(os.environ.get("SHELLGATE_MAX_OUTPUT_PREVIEW_LENGTH", "100000"))

# Allow-list used by the HTTP API when a request does not supply one
DEFAULT_ALLOWED_COMMANDS = _env_list(
    "SHELLGATE_ALLOWED_COMMANDS",
    ["npm test", "npm install", "tsc", "git log", "git diff", "git show"],
)
