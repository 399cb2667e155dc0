"""
Per-application dependencies.

AppContext is built once by create_app() and stored on app.state; handlers
reach it through the get_app_context dependency instead of module globals.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, TypeVar

from fastapi import Request

from .context import CallContext
from .repositories import NoteRepository, PrincipalRepository
from .settings import Settings
from .templating import TemplateProvider

if TYPE_CHECKING:
    from .auth import IdentityProvider

T = TypeVar("T")


@dataclass(frozen=True)
class AppContext:
    settings: Settings
    notes: NoteRepository
    principals: PrincipalRepository
    templates: TemplateProvider
    identity: "IdentityProvider"


def get_app_context(request: Request) -> AppContext:
    return request.app.state.context


async def run_store(app_ctx: AppContext, func: Callable[..., T], *args) -> T:
    """
    Run a blocking store call in a worker thread with a fresh CallContext.

    The context carries the configured store deadline. If the awaiting request
    task is cancelled, the context is cancelled too so the store aborts the
    in-flight call instead of finishing orphaned work.
    """
    call = CallContext.with_timeout(app_ctx.settings.store_timeout)
    try:
        return await asyncio.to_thread(func, call, *args)
    except asyncio.CancelledError:
        call.cancel()
        raise
