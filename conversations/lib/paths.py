import os
from pathlib import Path

_DB_FILE = "messages.db"


def home_dir() -> Path:
    """Returns the data directory, ~/.conversations unless CONVERSATIONS_HOME is set."""
    override = os.environ.get("CONVERSATIONS_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".conversations"


def db_path() -> Path:
    """Returns the message database path.

    CONVERSATIONS_DB_PATH wins over the home directory default.
    """
    override = os.environ.get("CONVERSATIONS_DB_PATH")
    if override:
        return Path(override).expanduser()
    return home_dir() / _DB_FILE


def config_file() -> Path:
    return home_dir() / "config.yaml"
