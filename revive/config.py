"""Environment-driven defaults."""

import os
from pathlib import Path

DEFAULT_REGISTRY_PATH = Path(__file__).parent / "data" / "package-replacements.json"


class Config:
    # Validation loop
    MAX_ITERATIONS = int(os.getenv("REVIVE_MAX_ITERATIONS", "10"))
    BUILD_TIMEOUT = float(os.getenv("REVIVE_BUILD_TIMEOUT", "300"))  # seconds
    NO_PROGRESS_THRESHOLD = 3

    # Network checks
    URL_TIMEOUT = float(os.getenv("REVIVE_URL_TIMEOUT", "5"))  # seconds

    # Storage
    HISTORY_DIR = os.getenv("REVIVE_HISTORY_DIR", ".revive")
    HISTORY_FILE = "fix-history.json"
    REGISTRY_PATH = Path(os.getenv("REVIVE_REGISTRY_PATH", str(DEFAULT_REGISTRY_PATH)))

    # Logging
    LOG_LEVEL = os.getenv("REVIVE_LOG_LEVEL", "WARNING")
