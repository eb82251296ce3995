"""
Dependency wiring shared by the routers: the auth gate, pagination and the
per-request notification outbox.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from cliper.database import get_db
from cliper.errors import AuthError
from cliper.realtime import ConnectionManager, NotificationOutbox, get_connection_manager
from cliper.security import decode_access_token

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """Resolve the bearer token to a user id or fail with 401."""
    if credentials is None or not credentials.credentials:
        raise AuthError("No token provided")
    return decode_access_token(credentials.credentials)["sub"]


async def get_optional_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    if credentials is None or not credentials.credentials:
        return None
    return decode_access_token(credentials.credentials)["sub"]


@dataclass
class Page:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def pagination(default_limit: int):
    def _pagination(
        page: int = Query(1, ge=1),
        limit: int = Query(default_limit, ge=1, le=100),
    ) -> Page:
        return Page(page=page, limit=limit)

    return _pagination


async def get_outbox(
    db: AsyncSession = Depends(get_db),
    manager: ConnectionManager = Depends(get_connection_manager),
):
    """
    Yield an outbox for notifications created during the request. Its pushes
    go out only after the transaction commits; a failed request pushes nothing.
    """
    outbox = NotificationOutbox(manager)
    yield outbox
    if outbox.pending:
        await db.commit()
        await outbox.flush()
