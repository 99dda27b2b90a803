"""Authentication collaborator: bearer token verification."""

from transcoder.modules.auth.jwt import (
    create_access_token,
    get_current_user_id,
    validate_token,
)

__all__ = [
    "create_access_token",
    "get_current_user_id",
    "validate_token",
]
