# camfleet/utils/paths.py
"""
Identifiers that end up as path components.

session_id names the agent's local output file and, with device_id and
camera_id, the stored upload on the coordinator. Both sides apply the
same rule so an id the coordinator queues is one it will later accept.
"""

from typing import Optional

_FORBIDDEN = ("/", "\\", "\x00")


def is_safe_component(value: Optional[str]) -> bool:
    """True when value is a non-empty single path segment."""
    if not value or value in (".", ".."):
        return False
    return not any(ch in value for ch in _FORBIDDEN)
