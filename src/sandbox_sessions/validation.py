"""Input validation for identifiers received from callers."""

from __future__ import annotations

import re

from sandbox_sessions.exceptions import InvalidRequestError

MAX_ID_LENGTH = 255

# Alphanumerics, underscores and hyphens only. Identifiers end up in
# container lookups and shell argv, so nothing else is accepted.
SAFE_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,255}$")


def validate_id(value: str | None, id_type: str = "ID") -> str:
    """Validate that an identifier is present and contains only safe characters.

    Raises:
        InvalidRequestError: If the value is empty or contains unsafe characters
    """
    if not value or not value.strip():
        raise InvalidRequestError(f"{id_type} required")

    if not SAFE_ID_PATTERN.match(value):
        raise InvalidRequestError(f"Invalid {id_type}: contains unsafe characters")

    return value


def validate_sandbox_id(sandbox_id: str | None) -> str:
    return validate_id(sandbox_id, "Sandbox ID")


def validate_session_id(session_id: str | None) -> str:
    return validate_id(session_id, "Session ID")


def validate_external_id(external_id: str | None) -> str:
    """Validate a verified identity subject id.

    Subjects are opaque (e.g. "auth0|abc", email-style ids), so only presence
    and the column length are checked.

    Raises:
        InvalidRequestError: If the value is empty or too long
    """
    if not external_id or not external_id.strip():
        raise InvalidRequestError("User ID required")

    if len(external_id) > MAX_ID_LENGTH:
        raise InvalidRequestError(f"Invalid User ID: longer than {MAX_ID_LENGTH} characters")

    return external_id
