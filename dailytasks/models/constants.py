"""Constants for dailytasks.

This module centralizes all magic numbers and default values used throughout the application.
"""

import re


# Task text
MAX_TASK_TEXT_LENGTH = 140

# Day partition keys (zero-padded, sort lexicographically)
DATE_KEY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# Aggregate document
SCHEMA_VERSION = 1

# Durable store
DEFAULT_MAX_BACKUPS = 10
DEFAULT_LOCK_RETRIES = 3
DEFAULT_LOCK_RETRY_DELAY_SEC = 0.1
BACKUP_PREFIX = "tasks.backup."
BACKUP_SUFFIX = ".json"

# Legacy migration
DEFAULT_RETENTION_DAYS = 30

# ID generation
ID_RANDOM_BYTES = 8
