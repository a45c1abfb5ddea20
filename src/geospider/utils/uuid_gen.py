"""
Record id generation using UUID v7 (time-ordered).
"""

from uuid6 import uuid7


def generate_record_id() -> str:
    """
    Generate an id for a stored sample.

    UUID v7 ids sort by creation time, so ids appended in one session keep
    their insertion order. Uses the uuid6 package (native uuid.uuid7() only
    exists from Python 3.14).

    Returns:
        UUID string (lowercase with hyphens)
    """
    return str(uuid7())
