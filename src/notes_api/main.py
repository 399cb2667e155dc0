from __future__ import annotations

import logging
import os
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from starlette.middleware.sessions import SessionMiddleware

from .auth import LOGIN_PATH, DevIdentityProvider, IdentityProvider, LoginRequired
from .auth import router as auth_router
from .deps import AppContext
from .errors import ApplicationError
from .logging_config import RequestLoggingMiddleware, configure_logging
from .repositories import NoteRepository, PrincipalRepository, build_repositories
from .routers import notes as notes_router
from .settings import Settings, get_settings
from .templating import TemplateProvider, build_template_provider

logger = logging.getLogger(__name__)

GENERIC_ERROR = "There was an unexpected error"
PUBLIC_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "public")

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {"name": "auth", "description": "Login, identity-provider callback and logout."},
    {"name": "notes", "description": "Session-gated note feed, search, creation, toggling and deletion."},
]


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(LoginRequired)
    async def login_required_handler(request: Request, exc: LoginRequired) -> RedirectResponse:
        return RedirectResponse(LOGIN_PATH, status_code=307)

    @app.exception_handler(ApplicationError)
    async def application_error_handler(request: Request, exc: ApplicationError) -> PlainTextResponse:
        """
        Client errors carry their message; store failures are logged in full
        and the client gets a generic message.
        """
        status = exc.http_status_code
        if status >= 500:
            logger.error(
                "store failure on %s %s: %s",
                request.method,
                request.url.path,
                exc,
                exc_info=exc.cause or exc,
            )
            return PlainTextResponse(GENERIC_ERROR, status_code=status)
        logger.warning("request failed on %s %s: %s", request.method, request.url.path, exc)
        return PlainTextResponse(exc.message, status_code=status)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> PlainTextResponse:
        logger.warning("invalid request on %s %s: %s", request.method, request.url.path, exc.errors())
        return PlainTextResponse("Request validation failed", status_code=400)


# PUBLIC_INTERFACE
def create_app(
    settings: Optional[Settings] = None,
    notes: Optional[NoteRepository] = None,
    principals: Optional[PrincipalRepository] = None,
    templates: Optional[TemplateProvider] = None,
    identity: Optional[IdentityProvider] = None,
    configure_logs: bool = True,
) -> FastAPI:
    """
    Build the application and its AppContext.

    Collaborators not passed in are built from settings. The development
    identity provider is only used by default when ENV=development; production
    deployments must pass their own IdentityProvider.
    """
    settings = settings or get_settings()
    if configure_logs:
        configure_logging(settings.log_level, settings.log_format)

    if notes is None or principals is None:
        default_notes, default_principals = build_repositories(settings)
        notes = notes or default_notes
        principals = principals or default_principals

    if identity is None:
        if not settings.development:
            raise RuntimeError("an IdentityProvider is required outside development")
        identity = DevIdentityProvider(authorize_url=settings.login_url)

    context = AppContext(
        settings=settings,
        notes=notes,
        principals=principals,
        templates=templates or build_template_provider(settings.development),
        identity=identity,
    )

    app = FastAPI(
        title="Notes",
        description="Single-user note feed behind a cookie-session gate.",
        version="0.1.0",
        openapi_tags=openapi_tags,
    )
    app.state.context = context

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_key,
        session_cookie=settings.session_cookie,
        https_only=settings.session_https_only,
        same_site="lax",
    )
    register_exception_handlers(app)

    @app.get("/health", summary="Health Check", tags=["health"])
    def health_check():
        """
        Health check endpoint.

        Returns:
            A JSON object indicating service health.
        """
        return {"message": "Healthy", "backend": settings.persistence_backend}

    app.mount("/public", StaticFiles(directory=PUBLIC_DIR), name="public")
    app.include_router(auth_router)
    app.include_router(notes_router.router)

    logger.info(
        "application configured: env=%s backend=%s", settings.environment, settings.persistence_backend
    )
    return app
