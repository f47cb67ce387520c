"""
questline.engine.validation — Identifier Format Checks
=======================================================

Format checks applied at the edge of every public operation that takes a
user or organization id.
"""

from __future__ import annotations

import re

from questline.exceptions import ValidationError

USER_ID_PATTERN = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}",
    re.IGNORECASE,
)
ORGANIZATION_ID_PATTERN = re.compile(r"[a-zA-Z0-9_-]{3,50}")


def validate_user_id(user_id: object) -> str:
    """Return *user_id* if it is a UUID string, else raise :class:`ValidationError`."""
    if not isinstance(user_id, str) or not USER_ID_PATTERN.fullmatch(user_id):
        raise ValidationError("Invalid user ID format", field="user_id")
    return user_id


def validate_organization_id(organization_id: object) -> str:
    """Return *organization_id* if it is 3-50 of ``[a-zA-Z0-9_-]``."""
    if not isinstance(organization_id, str) or not ORGANIZATION_ID_PATTERN.fullmatch(
        organization_id
    ):
        raise ValidationError("Invalid organization ID format", field="organization_id")
    return organization_id
