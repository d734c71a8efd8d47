"""Session cookie issuance and clearing"""

from fastapi import Response

from fitsession.config import Settings
from fitsession.services.session_service import CookieDirective


def apply_cookie(response: Response, directive: CookieDirective, settings: Settings) -> None:
    """Set or clear the session cookie; both use the same attributes so browsers match them."""
    if directive.clears:
        response.delete_cookie(
            settings.SESSION_COOKIE_NAME,
            path="/",
            secure=settings.is_production,
            httponly=True,
            samesite="strict",
        )
        return

    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        directive.session_id,
        max_age=settings.SESSION_COOKIE_MAX_AGE,
        path="/",
        secure=settings.is_production,
        httponly=True,
        samesite="strict",
    )
