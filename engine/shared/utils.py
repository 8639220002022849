"""Utility functions for the rules engine."""
from uuid import uuid4


def generate_id() -> str:
    """Generate a unique ID for resources.

    Returns:
        UUID string
    """
    return str(uuid4())
