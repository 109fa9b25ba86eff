"""
Configuration for the memo data layer.
"""

import os
import stat
from enum import Enum

# --- CONFIGURATION ---
DATA_DIR = os.environ.get("MEMO_DATA_DIR", ".")
LOG_LEVEL = os.environ.get("MEMO_LOG_LEVEL", "INFO")

# --- STORE ---
STORE_NAME = "MemoDB.db"
STORE_VERSION = 1
TABLE_NAME = "memo"
COLUMNS = ("id", "title", "content", "created_date", "modified_date")


class SecurityLevel(Enum):
    """
    Isolation level of the store file, expressed as its POSIX mode.
    """

    S1 = stat.S_IRUSR | stat.S_IWUSR
    S2 = stat.S_IRUSR | stat.S_IWUSR | stat.S_IRGRP
    S3 = stat.S_IRUSR | stat.S_IWUSR | stat.S_IRGRP | stat.S_IROTH


STORE_SECURITY_LEVEL = SecurityLevel.S1

# --- PREFERENCES ---
PREF_FILE_NAME = "memo_settings"
KEY_TITLE_FONT_SIZE = "title_font_size"
KEY_CONTENT_FONT_SIZE = "content_font_size"
DEFAULT_TITLE_FONT_SIZE = 18
DEFAULT_CONTENT_FONT_SIZE = 14

# Negative identity returned by an insert that did not happen
FAILURE_SENTINEL = -1
