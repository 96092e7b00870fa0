# Bridge API Utilities
"""
Shared utility functions for Bridge API services.
"""

from api.utils.datetime_utils import make_aware, utc_now, days_between
from api.utils.db_paths import get_crm_db_path

__all__ = ["make_aware", "utc_now", "days_between", "get_crm_db_path"]
