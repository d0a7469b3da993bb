"""Session cookie handling."""
import secrets

from fastapi import Request, Response

from mpserver.config import settings


def get_session_id(request: Request, response: Response) -> str:
    """
    Session id from the session cookie.

    A new opaque id is minted when the client has none yet. The cookie is
    re-issued on every successful response with a fresh max-age of one
    retention period, so it never expires before the session's latest
    artifact write.
    """
    session_id = request.cookies.get(settings.session_cookie) or secrets.token_urlsafe(24)
    response.set_cookie(
        settings.session_cookie,
        session_id,
        max_age=settings.retention_period,
        httponly=True,
        samesite="lax",
    )
    return session_id
