"""Prefixed ID generation utility."""

import uuid

NOTIFICATION_PREFIX = "ntf_"
RULE_PREFIX = "rule_"
HISTORY_PREFIX = "esch_"
QUEUE_ITEM_PREFIX = "nq_"
BATCH_PREFIX = "batch_"
JOB_RUN_PREFIX = "run_"


def generate_id(prefix: str) -> str:
    """Generate a prefixed unique ID.

    Args:
        prefix: The prefix (e.g., "ntf_", "rule_", "nq_").

    Returns:
        A string like "ntf_a1b2c3d4e5f6a7b8".
    """
    short_uuid = uuid.uuid4().hex[:16]
    return f"{prefix}{short_uuid}"
