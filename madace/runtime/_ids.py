"""ID generators for the runtime package."""

from __future__ import annotations

import secrets
import string
import time

SessionId = str

_ALPHABET = string.ascii_lowercase + string.digits


def generate_session_id() -> SessionId:
    """Generate a unique agent session ID.

    Creates IDs in the format: session-<epoch-ms>-xxxxxxxxx
    where xxxxxxxxx is a random 9-character alphanumeric suffix.

    Example:
        >>> generate_session_id()  # e.g., "session-1760870400123-k3v9q0z1m"
    """
    millis = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(9))
    return f"session-{millis}-{suffix}"
