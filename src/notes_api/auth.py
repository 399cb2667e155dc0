from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Mapping, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import ValidationError as PydanticValidationError

from .deps import AppContext, get_app_context, run_store
from .errors import ValidationError
from .models import PrincipalEntity
from .schemas import Identity, SessionPayload

logger = logging.getLogger(__name__)

LOGIN_PATH = "/login"


class LoginRequired(Exception):
    """Raised by the session gate; rendered as a redirect to the login page."""


# PUBLIC_INTERFACE
class IdentityProvider(ABC):
    """
    External identity provider collaborator.

    The provider owns the actual sign-in exchange; the app only needs the URL to
    send users to and the identity asserted when they come back to /callback.
    """

    @abstractmethod
    def login_url(self, callback_url: str) -> str:
        """URL that starts the provider sign-in and eventually redirects to callback_url."""

    @abstractmethod
    def identify(self, params: Mapping[str, str]) -> Identity:
        """Return the identity carried by the callback request. ValidationError if there is none."""


class DevIdentityProvider(IdentityProvider):
    """
    Development provider: trusts 'sub' and 'name' query parameters on the callback.

    With an authorize_url, users are sent there with a redirect_uri; otherwise
    the login link points straight at the callback as a fixed development user.
    """

    def __init__(self, authorize_url: str = "", default_sub: str = "dev|local", default_name: str = "Developer") -> None:
        self._authorize_url = authorize_url
        self._default_sub = default_sub
        self._default_name = default_name

    def login_url(self, callback_url: str) -> str:
        if self._authorize_url:
            return f"{self._authorize_url}?{urlencode({'redirect_uri': callback_url})}"
        return f"{callback_url}?{urlencode({'sub': self._default_sub, 'name': self._default_name})}"

    def identify(self, params: Mapping[str, str]) -> Identity:
        try:
            return Identity(
                external_auth_id=params.get("sub", ""),
                display_name=params.get("name", ""),
            )
        except PydanticValidationError as e:
            raise ValidationError("login callback carried no identity", field="sub") from e


async def resolve_principal(request: Request, app_ctx: AppContext) -> Optional[PrincipalEntity]:
    """
    Resolve the session cookie to a principal.

    Absent or malformed session data, or a principal that no longer exists,
    resolves to None. Store failures propagate.
    """
    payload = SessionPayload.decode(request.session)
    if payload is None:
        if request.session:
            logger.debug("discarding malformed session payload")
            request.session.clear()
        return None
    principal = await run_store(app_ctx, app_ctx.principals.get, payload.principal_id)
    if principal is None:
        logger.info("session references unknown principal %s", payload.principal_id)
        request.session.clear()
    return principal


# PUBLIC_INTERFACE
async def require_principal(
    request: Request, app_ctx: AppContext = Depends(get_app_context)
) -> PrincipalEntity:
    """
    FastAPI dependency guarding every note route.

    Raises LoginRequired (-> 307 redirect to /login) for unauthenticated
    requests, so the route body and its store call never run.
    """
    principal = await resolve_principal(request, app_ctx)
    if principal is None:
        raise LoginRequired()
    return principal


router = APIRouter(tags=["auth"])


# the gate answers with 307, which keeps the method of a redirected form post
@router.api_route(LOGIN_PATH, methods=["GET", "POST"], response_class=HTMLResponse, summary="Login page")
def login(request: Request, app_ctx: AppContext = Depends(get_app_context)) -> HTMLResponse:
    callback_url = str(request.url_for("callback"))
    html = app_ctx.templates.render(
        "login", {"login_url": app_ctx.identity.login_url(callback_url), "principal": None}
    )
    return HTMLResponse(html)


@router.get("/callback", summary="Identity provider callback")
async def callback(request: Request, app_ctx: AppContext = Depends(get_app_context)) -> RedirectResponse:
    """
    Register the principal on first login (a lost registration race counts as
    success) and start a session holding its internal id.
    """
    identity = app_ctx.identity.identify(request.query_params)
    principal = await run_store(
        app_ctx,
        app_ctx.principals.register,
        identity.external_auth_id,
        identity.display_name or identity.external_auth_id,
    )
    request.session.clear()
    request.session.update(SessionPayload(principal_id=principal["id"]).encode())
    logger.info("principal %s signed in", principal["id"])
    return RedirectResponse("/", status_code=303)


@router.get("/logout", summary="Log out")
def logout(request: Request) -> RedirectResponse:
    request.session.clear()
    return RedirectResponse(LOGIN_PATH, status_code=303)
