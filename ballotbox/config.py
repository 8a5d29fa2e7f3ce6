# ballotbox/config.py

import os
import logging

# Snapshot directory used by the default service
DATA_DIR = os.getenv("BALLOTBOX_DATA_DIR", "data")

# Directory holding the hash-chained audit log
AUDIT_LOG_DIR = os.getenv("BALLOTBOX_AUDIT_LOG_DIR", "logs")

# Out-of-band PIN checked on every admin login
ADMIN_PIN = os.getenv("BALLOTBOX_ADMIN_PIN", "1234")

# Account seeded on first start when no admin exists
DEFAULT_ADMIN_NAME = os.getenv("BALLOTBOX_DEFAULT_ADMIN_NAME", "admin")
DEFAULT_ADMIN_EMAIL = os.getenv("BALLOTBOX_DEFAULT_ADMIN_EMAIL", "admin@example.com")
DEFAULT_ADMIN_PASSWORD = os.getenv("BALLOTBOX_DEFAULT_ADMIN_PASSWORD", "admin")

# Argon2id cost parameters
ARGON2_TIME_COST = int(os.getenv("BALLOTBOX_ARGON2_TIME_COST", "3"))
ARGON2_MEMORY_COST = int(os.getenv("BALLOTBOX_ARGON2_MEMORY_COST", "65536"))
ARGON2_PARALLELISM = int(os.getenv("BALLOTBOX_ARGON2_PARALLELISM", "4"))

# Credential widths in bytes; persisted as fixed-width hex
SALT_LEN = 16
HASH_LEN = 32

# Field limits
MAX_NAME_LEN = 63
MAX_EMAIL_LEN = 127
MAX_TITLE_LEN = 127
MAX_DESCRIPTION_LEN = 511
MAX_CANDIDATE_NAME_LEN = 63
MAX_CANDIDATES = 128

# Joins candidate names in elections.csv; not allowed inside a name
CANDIDATE_DELIMITER = "|"

LOG_LEVEL = os.getenv("BALLOTBOX_LOG_LEVEL", "INFO")
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level=None):
    """Apply the package log format to the root logger."""
    logging.basicConfig(
        level=level or LOG_LEVEL,
        format=LOG_FORMAT
    )
