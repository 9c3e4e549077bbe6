"""Session-aware dependencies for member APIs."""

from __future__ import annotations

from fastapi import Header, HTTPException, status

MAX_USER_ID_LENGTH = 64


async def require_member_session(
    session_user: str | None = Header(None, alias="X-Session-User"),
) -> str:
    """Resolve the authenticated user id forwarded by the upstream gateway."""

    user_id = (session_user or "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing session user context",
        )
    if len(user_id) > MAX_USER_ID_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid session user identifier",
        )
    return user_id
