"""
Utility helpers for the recovery core

Simple utility functions for ID and timestamp generation.
"""

import uuid
from datetime import datetime, timezone


def generate_form_instance_id(short=True):
    """
    Generate unique form instance identifier

    Args:
        short (bool): If True, return 8-char hex. If False, return full UUID.

    Returns:
        str: Form instance ID

    Examples:
        >>> generate_form_instance_id()
        'a3f7e2b9'

        >>> generate_form_instance_id(short=False)
        'a3f7e2b9c1d2e3f4a5b6c7d8e9f0a1b2'
    """
    full_id = uuid.uuid4().hex
    return full_id[:8] if short else full_id


def utc_now_iso():
    """
    Current UTC time as ISO-8601 string

    Returns:
        str: e.g. '2025-11-26T15:30:45.123456+00:00'
    """
    return datetime.now(timezone.utc).isoformat()
