# fellowship/api/dependencies/current_user.py
from typing import Optional

from fastapi import Header, HTTPException, status


async def get_current_user_id(
    user_id: Optional[int] = Header(
        default=None,
        alias="X-User-Id",
        description="Authenticated user id, set by the upstream auth gateway.",
    ),
) -> int:
    """
    Resolve the requesting user.

    Sign-in and session handling live in the auth gateway in front of this
    service; it forwards the verified user id in ``X-User-Id``.
    """
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header.",
        )
    return user_id
