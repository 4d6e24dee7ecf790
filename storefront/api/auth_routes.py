"""
Browser authentication routes for Google sign-in.

Handles the OAuth redirect flow, the profile page and logout. Login
failures always end in a silent redirect to the landing page.
"""

from html import escape

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from structlog import get_logger

from storefront.api.dependencies import get_auth_service, get_session, get_session_manager
from storefront.exceptions import StoreUnavailableError
from storefront.models.domain import Session
from storefront.services.auth import (
    LANDING_PATH,
    STATE_COOKIE_NAME,
    STATE_MAX_AGE_SECONDS,
    AuthService,
    CallbackParams,
)
from storefront.services.sessions import SessionManager

logger = get_logger(__name__)
router = APIRouter(tags=["auth"])

DEFAULT_AVATAR = "/default-avatar.png"

LANDING_HTML = """<!DOCTYPE html>
<html>
<head><title>Storefront</title></head>
<body>
    <h1>Storefront</h1>
    <a href="/auth/login-start">Login with Google</a>
</body>
</html>
"""


@router.get("/", response_class=HTMLResponse)
async def landing() -> HTMLResponse:
    """Landing page with the login link."""
    return HTMLResponse(LANDING_HTML)


@router.get("/auth/login-start")
async def login_start(
    auth_service: AuthService = Depends(get_auth_service),
    manager: SessionManager = Depends(get_session_manager),
) -> RedirectResponse:
    """
    Initiate Google OAuth login flow.

    Returns:
        Redirect to the Google consent screen, with the signed state cookie
    """
    login = auth_service.begin_login()

    response = RedirectResponse(url=login.url, status_code=status.HTTP_302_FOUND)
    response.set_cookie(
        key=STATE_COOKIE_NAME,
        value=login.state_cookie,
        max_age=STATE_MAX_AGE_SECONDS,
        path="/",
        httponly=True,
        secure=manager.cookie_secure,
        samesite="lax",
    )
    return response


@router.get("/auth/login-callback")
async def login_callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    session: Session = Depends(get_session),
    auth_service: AuthService = Depends(get_auth_service),
    manager: SessionManager = Depends(get_session_manager),
) -> RedirectResponse:
    """
    Handle Google OAuth callback.

    Query params:
        code: Authorization code from Google
        state: State token echoed back for CSRF protection
        error: Set by Google when the user denies consent

    Returns:
        Redirect to /profile on success, / on any failure
    """
    outcome = await auth_service.complete_login(
        session,
        CallbackParams(code=code, state=state, error=error),
        request.cookies.get(STATE_COOKIE_NAME),
    )

    response = RedirectResponse(url=outcome.redirect_to, status_code=status.HTTP_302_FOUND)
    # The state is single use
    response.delete_cookie(
        STATE_COOKIE_NAME,
        path="/",
        secure=manager.cookie_secure,
        httponly=True,
        samesite="lax",
    )
    return response


@router.get("/profile", response_model=None)
async def profile(session: Session = Depends(get_session)) -> HTMLResponse | RedirectResponse:
    """Show the signed-in identity, or send anonymous visitors home."""
    identity = AuthService.current_identity(session)
    if identity is None:
        return RedirectResponse(url=LANDING_PATH, status_code=status.HTTP_302_FOUND)

    name = escape(identity.display_name)
    email = escape(identity.primary_email or "No Email")
    photo = escape(identity.primary_photo or DEFAULT_AVATAR, quote=True)

    return HTMLResponse(
        f"""<!DOCTYPE html>
<html>
<head><title>Profile</title></head>
<body>
    <h1>Welcome, {name}</h1>
    <p>Email: {email}</p>
    <img src="{photo}" alt="Profile Photo" style="border-radius:50%; width:100px;">
    <br><br>
    <a href="/logout">Logout</a>
</body>
</html>
"""
    )


@router.get("/logout", response_model=None)
async def logout(
    session: Session = Depends(get_session),
    auth_service: AuthService = Depends(get_auth_service),
) -> RedirectResponse | JSONResponse:
    """Clear the identity, invalidate the session and go home."""
    try:
        redirect_to = await auth_service.logout(session)
    except StoreUnavailableError as e:
        logger.error("logout_failed", error=str(e))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": "Logout failed"},
        )

    return RedirectResponse(url=redirect_to, status_code=status.HTTP_302_FOUND)
