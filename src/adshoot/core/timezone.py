"""UTC timezone enforcement and timestamp helper.

Importing this module sets the TZ environment variable to UTC so datetime
behavior is consistent across environments. All persisted timestamps are
naive UTC values produced by utcnow().
"""

import os
from datetime import datetime, timezone

os.environ["TZ"] = "UTC"


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime (database convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
