"""Authentication for the NB Studio API.

Sign-in uses Google OAuth through Authlib's Starlette integration.  After a
successful callback the user's email and name are stored in the signed
session cookie (Starlette ``SessionMiddleware``), and every generation route
depends on :func:`require_session`, which answers 401 before any remote call
is attempted when no session is present.

Access can be restricted with ``NBSTUDIO_ALLOWED_EMAILS``.  Unverified Google
accounts are always rejected.

Endpoints
---------
========  =======================  ====================================
Method    Path                     Purpose
========  =======================  ====================================
GET       ``/api/auth/session``    Current session (or unauthenticated)
GET       ``/api/auth/login``      Redirect to Google sign-in
GET       ``/api/auth/callback``   OAuth callback, establishes session
POST      ``/api/auth/logout``     Clear the session
========  =======================  ====================================
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from authlib.integrations.starlette_client import OAuth, OAuthError
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import RedirectResponse

from nbstudio.api.models import SessionInfo
from nbstudio.core.config import StudioConfig, config

logger = logging.getLogger(__name__)

GOOGLE_DISCOVERY_URL = "https://accounts.google.com/.well-known/openid-configuration"

SESSION_USER_KEY = "user"


@dataclass(frozen=True)
class SessionUser:
    """The signed-in user stored in the session."""

    email: str
    name: str | None = None


def build_oauth(cfg: StudioConfig) -> OAuth:
    """Create the OAuth registry, registering Google when credentials exist."""
    oauth = OAuth()
    if cfg.has_google_auth:
        oauth.register(
            name="google",
            client_id=cfg.google_client_id,
            client_secret=cfg.google_client_secret,
            server_metadata_url=GOOGLE_DISCOVERY_URL,
            client_kwargs={"scope": "openid email profile"},
        )
    else:
        logger.warning("Google OAuth client id/secret are not configured; sign-in is disabled.")
    return oauth


oauth = build_oauth(config)


def is_sign_in_allowed(
    email: str | None,
    email_verified: bool | None,
    allowed_emails: frozenset[str],
) -> bool:
    """Decide whether a Google profile may sign in.

    Args:
        email: Email from the Google profile.
        email_verified: Google's verification flag.  A missing flag is
            treated as verified.
        allowed_emails: Lower-cased allow-list.  Empty allows everyone.

    Returns:
        ``True`` if the user may sign in.
    """
    if not email:
        return False
    if email_verified is False:
        return False
    if not allowed_emails:
        return True
    return email.strip().lower() in allowed_emails


def require_session(request: Request) -> SessionUser:
    """FastAPI dependency returning the signed-in user.

    Raises:
        HTTPException: 401 if there is no active session.
    """
    user = request.session.get(SESSION_USER_KEY)
    if not user or not user.get("email"):
        raise HTTPException(status_code=401, detail="Authentication required.")
    return SessionUser(email=user["email"], name=user.get("name"))


router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.get("/session")
async def get_session(request: Request) -> SessionInfo:
    """Return the current session state."""
    user = request.session.get(SESSION_USER_KEY)
    if not user:
        return SessionInfo(authenticated=False)
    return SessionInfo(authenticated=True, email=user.get("email"), name=user.get("name"))


@router.get("/login")
async def login(request: Request):
    """Redirect the browser to Google sign-in.

    Raises:
        HTTPException: 503 if Google OAuth is not configured.
    """
    google = oauth.create_client("google")
    if google is None:
        raise HTTPException(status_code=503, detail="Google sign-in is not configured.")
    redirect_uri = request.url_for("auth_callback")
    return await google.authorize_redirect(request, str(redirect_uri))


@router.get("/callback", name="auth_callback")
async def auth_callback(request: Request) -> RedirectResponse:
    """Complete the OAuth flow and store the user in the session.

    Raises:
        HTTPException: 503 if Google OAuth is not configured, 401 if the
            OAuth exchange fails, 403 if the account is not allowed.
    """
    google = oauth.create_client("google")
    if google is None:
        raise HTTPException(status_code=503, detail="Google sign-in is not configured.")

    try:
        token = await google.authorize_access_token(request)
    except OAuthError as e:
        logger.warning("OAuth callback failed: %s", e)
        raise HTTPException(status_code=401, detail="Sign-in failed.") from e

    profile = token.get("userinfo") or {}
    email = profile.get("email")
    if not is_sign_in_allowed(email, profile.get("email_verified"), config.allowed_email_set):
        logger.warning("Rejected sign-in for %r", email)
        raise HTTPException(status_code=403, detail="This account is not allowed to sign in.")

    request.session[SESSION_USER_KEY] = {"email": email, "name": profile.get("name")}
    logger.info("User %s signed in", email)
    return RedirectResponse(url="/")


@router.post("/logout")
async def logout(request: Request) -> dict:
    """Clear the session."""
    request.session.pop(SESSION_USER_KEY, None)
    return {"success": True}
