"""
Settings read from the environment.
"""

import os
from pathlib import Path
from typing import Optional

WORKSPACE_ENV = "NBCARDS_WORKSPACE"
HOME_ENV = "NBCARDS_HOME"
LOG_LEVEL_ENV = "NBCARDS_LOG_LEVEL"


def get_workspace(override: Optional[str] = None) -> Optional[Path]:
    """Export workspace root: the override, else NBCARDS_WORKSPACE, else None."""
    value = override or os.environ.get(WORKSPACE_ENV)
    return Path(value) if value else None


def get_home() -> Path:
    """Directory holding nbcards data such as saved sessions."""
    value = os.environ.get(HOME_ENV)
    return Path(value) if value else Path.home() / ".nbcards"


def get_log_level() -> str:
    return os.environ.get(LOG_LEVEL_ENV, "WARNING").upper()
