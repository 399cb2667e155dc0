from __future__ import annotations

import re
from datetime import date, datetime, time
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Form, Query
from fastapi.responses import HTMLResponse, RedirectResponse

from ..auth import require_principal
from ..deps import AppContext, get_app_context, run_store
from ..errors import ValidationError
from ..models import NoteEntity, PrincipalEntity
from ..settings import Settings

_DAY_RE = re.compile(r"\d{4}-\d{2}-\d{2}", re.ASCII)

router = APIRouter(
    tags=["notes"],
    dependencies=[Depends(require_principal)],
)


def start_of_day(day: date, settings: Settings) -> datetime:
    """Midnight at the start of `day` in the configured timezone."""
    return datetime.combine(day, time.min, tzinfo=settings.tzinfo)


def parse_day(value: str) -> date:
    try:
        if not _DAY_RE.fullmatch(value):
            raise ValueError(value)
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"invalid date {value!r}, expected YYYY-MM-DD", field="date") from None


def render_list(
    app_ctx: AppContext,
    notes: List[NoteEntity],
    principal: PrincipalEntity,
    **extra: Any,
) -> HTMLResponse:
    return HTMLResponse(app_ctx.templates.render("home", {"notes": notes, "principal": principal, **extra}))


def render_single(app_ctx: AppContext, note: NoteEntity, principal: PrincipalEntity) -> HTMLResponse:
    return HTMLResponse(app_ctx.templates.render("view", {"notes": [note], "principal": principal}))


# PUBLIC_INTERFACE
@router.get("/", response_class=HTMLResponse, summary="Today's notes")
async def home(
    app_ctx: AppContext = Depends(get_app_context),
    principal: PrincipalEntity = Depends(require_principal),
) -> HTMLResponse:
    """
    Notes created since the start of the current day in the configured timezone.
    """
    today = datetime.now(app_ctx.settings.tzinfo).date()
    notes = await run_store(app_ctx, app_ctx.notes.get_all_since, start_of_day(today, app_ctx.settings))
    return render_list(app_ctx, notes, principal, heading="Today")


# PUBLIC_INTERFACE
@router.get("/t/{day}", response_class=HTMLResponse, summary="Notes since a date")
async def home_since(
    day: str,
    app_ctx: AppContext = Depends(get_app_context),
    principal: PrincipalEntity = Depends(require_principal),
) -> HTMLResponse:
    """
    Notes created since 00:00 of `day` (YYYY-MM-DD) in the configured timezone.
    """
    since = start_of_day(parse_day(day), app_ctx.settings)
    notes = await run_store(app_ctx, app_ctx.notes.get_all_since, since)
    return render_list(app_ctx, notes, principal, heading=f"Since {day}")


@router.get("/submit", response_class=HTMLResponse, summary="New note form")
def submit(
    app_ctx: AppContext = Depends(get_app_context),
    principal: PrincipalEntity = Depends(require_principal),
) -> HTMLResponse:
    return HTMLResponse(app_ctx.templates.render("submit", {"principal": principal}))


async def _search(app_ctx: AppContext, principal: PrincipalEntity, query: str) -> HTMLResponse:
    notes = await run_store(app_ctx, app_ctx.notes.search, query)
    return render_list(app_ctx, notes, principal, query=query, heading=f"Search: {query}")


# PUBLIC_INTERFACE
@router.get("/search", response_class=HTMLResponse, summary="Search notes")
async def search(
    query: str = Query("", description="Text to find in note bodies and tags"),
    app_ctx: AppContext = Depends(get_app_context),
    principal: PrincipalEntity = Depends(require_principal),
) -> HTMLResponse:
    return await _search(app_ctx, principal, query)


@router.post("/search", response_class=HTMLResponse, summary="Search notes (form post)")
async def search_form(
    query: str = Form(""),
    app_ctx: AppContext = Depends(get_app_context),
    principal: PrincipalEntity = Depends(require_principal),
) -> HTMLResponse:
    return await _search(app_ctx, principal, query)


# PUBLIC_INTERFACE
@router.post("/note", summary="Create note")
async def add_note(
    body: str = Form(""),
    tags: Optional[str] = Form(""),
    app_ctx: AppContext = Depends(get_app_context),
) -> RedirectResponse:
    """
    Create a note from the submit form and go back to the feed.
    """
    await run_store(app_ctx, app_ctx.notes.add, body, tags or "")
    return RedirectResponse("/", status_code=303)


# PUBLIC_INTERFACE
@router.get("/note/{note_id}", response_class=HTMLResponse, summary="View note")
async def view_note(
    note_id: int,
    app_ctx: AppContext = Depends(get_app_context),
    principal: PrincipalEntity = Depends(require_principal),
) -> HTMLResponse:
    note = await run_store(app_ctx, app_ctx.notes.get, note_id)
    return render_single(app_ctx, note, principal)


# PUBLIC_INTERFACE
@router.post("/note/toggle", summary="Toggle note done flag")
async def toggle_note(
    id: int = Form(...),
    app_ctx: AppContext = Depends(get_app_context),
) -> RedirectResponse:
    await run_store(app_ctx, app_ctx.notes.toggle_done, id)
    return RedirectResponse(f"/#{id}", status_code=303)


# PUBLIC_INTERFACE
@router.post("/note/{note_id}/delete", summary="Delete note")
async def delete_note(
    note_id: int,
    app_ctx: AppContext = Depends(get_app_context),
) -> RedirectResponse:
    await run_store(app_ctx, app_ctx.notes.delete, note_id)
    return RedirectResponse("/", status_code=303)
