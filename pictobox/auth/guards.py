"""Route guards and owner resolution.

Users are authenticated elsewhere; the session only carries the owner's id.
"""

from __future__ import annotations

from uuid import UUID

from litestar.connection import ASGIConnection
from litestar.exceptions import NotAuthorizedException
from litestar.handlers.base import BaseRouteHandler

from pictobox.auth.session_keys import SESSION_USER_ID


def _session_owner(connection: ASGIConnection) -> UUID | None:
    session = connection.session
    if not session:
        return None
    raw = session.get(SESSION_USER_ID)
    if not raw:
        return None
    try:
        return UUID(str(raw))
    except ValueError:
        return None


async def auth_guard(connection: ASGIConnection, _: BaseRouteHandler) -> None:
    """Reject requests whose session carries no valid owner id."""
    if _session_owner(connection) is None:
        raise NotAuthorizedException("Authentication required")


def get_owner_id(connection: ASGIConnection) -> UUID:
    """Return the current owner's id; only call behind :func:`auth_guard`."""
    owner_id = _session_owner(connection)
    if owner_id is None:
        raise NotAuthorizedException("Authentication required")
    return owner_id
