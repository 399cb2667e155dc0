from __future__ import annotations

from datetime import datetime
from typing import List, TypedDict


# PUBLIC_INTERFACE
class NoteEntity(TypedDict):
    """
    A note as returned by the note stores.

    Fields:
    - id: unique integer identifier, assigned at creation, never reused
    - body: non-empty free text
    - tags: normalized tag list, fixed at creation (see tags.parse_tags)
    - done: completion flag, False at creation
    - created_at: timezone-aware UTC creation timestamp, immutable
    """

    id: int
    body: str
    tags: List[str]
    done: bool
    created_at: datetime


# PUBLIC_INTERFACE
class PrincipalEntity(TypedDict):
    """
    An authenticated user.

    Fields:
    - id: internal identifier, stored in the session cookie
    - external_auth_id: identifier issued by the identity provider (unique)
    - display_name: name shown in the page header
    """

    id: int
    external_auth_id: str
    display_name: str
