"""
Database path utilities for Bridge API services.
"""
from pathlib import Path

from config.settings import settings


def get_crm_db_path() -> str:
    """
    Get the path to the CRM database.

    Creates the parent directory if it doesn't exist.

    Returns:
        Absolute path to the configured SQLite file
    """
    db_path = Path(settings.db_path).expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return str(db_path.resolve())
