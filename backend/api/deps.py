"""
API Dependencies
================
Shared FastAPI dependencies.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Header, HTTPException, status

from backend.services.notifications import NotificationDispatcher
from backend.services.senders import NotificationSender


async def get_user_id(
    x_user_id: Annotated[str | None, Header(max_length=255)] = None,
) -> str:
    """
    Caller identity, set by the authentication layer in front of the API.
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return x_user_id


@lru_cache
def get_dispatcher() -> NotificationDispatcher:
    """Process-wide dispatcher for on-demand alert evaluation."""
    return NotificationDispatcher(NotificationSender())
