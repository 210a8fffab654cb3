"""
ID generation utilities for the Flight Training Tracker.

Every entity id is a client-generated UUID string so that retried operations
(and records created on two devices) never collide.
"""

from uuid import uuid4


def generate_entity_id() -> str:
    """
    Generate a unique ID for any entity.

    Returns:
        Lower-case canonical UUID string

    Examples:
        >>> id = generate_entity_id()
        >>> len(id)
        36
    """
    return str(uuid4())
