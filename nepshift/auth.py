"""
Caller identity for API requests.

Authentication happens upstream; it forwards the verified user id in the
``X-User-Id`` header.
"""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from nepshift.database import get_db
from nepshift.models import User


async def get_current_user(
    x_user_id: Annotated[str | None, Header()] = None,
) -> User:
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    user = get_db().users.get(x_user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown user",
        )
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]
