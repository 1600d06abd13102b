"""
bracketeer/roster.py - The saved list of competitors

Every function returns a new list; the caller decides when to persist it.
"""

import base64
import logging
import time
from dataclasses import replace

from .bracket import Competitor

logger = logging.getLogger(__name__)

MAX_COMPETITORS = 1024
PLACEHOLDER_IMAGE = "https://placehold.co/200x200/4f46e5/ffffff?text={n}"
IMAGE_TYPES = ("image/png", "image/jpeg", "image/gif", "image/webp")


class RosterError(ValueError):
    """Raised for roster edits that can't be applied (blank name, full roster, unknown id)."""


def new_competitor(name: str, subtitle: str = "", position: int = 1, taken: set[str] | None = None) -> Competitor:
    """Build a competitor with a time-based id and a numbered placeholder image."""
    name = name.strip()
    if not name:
        raise RosterError("Competitor name can't be blank")

    taken = taken or set()
    stamp = int(time.time() * 1000)
    competitor_id = f"competitor_{stamp}"
    while competitor_id in taken:
        stamp += 1
        competitor_id = f"competitor_{stamp}"

    return Competitor(
        id=competitor_id,
        name=name,
        subtitle=subtitle.strip(),
        image_url=PLACEHOLDER_IMAGE.format(n=position),
    )


def add_competitor(
    roster: list[Competitor],
    name: str,
    subtitle: str = "",
    max_competitors: int = MAX_COMPETITORS,
) -> list[Competitor]:
    if len(roster) >= max_competitors:
        raise RosterError(f"Roster is full ({max_competitors} competitors)")
    competitor = new_competitor(
        name, subtitle, position=len(roster) + 1, taken={c.id for c in roster}
    )
    logger.info(f"Added {competitor.name} ({competitor.id})")
    return roster + [competitor]


def remove_competitor(roster: list[Competitor], competitor_id: str) -> list[Competitor]:
    remaining = [c for c in roster if c.id != competitor_id]
    if len(remaining) == len(roster):
        raise RosterError(f"No competitor with id {competitor_id}")
    logger.info(f"Removed {competitor_id}")
    return remaining


def edit_competitor(roster: list[Competitor], competitor_id: str, field: str, value: str) -> list[Competitor]:
    """Change name or subtitle of one roster entry."""
    if field not in ("name", "subtitle"):
        raise RosterError(f"Can't edit {field!r}")
    if field == "name" and not value.strip():
        raise RosterError("Competitor name can't be blank")
    return _update(roster, competitor_id, **{field: value})


def set_competitor_image(
    roster: list[Competitor],
    competitor_id: str,
    data: bytes,
    content_type: str = "image/png",
) -> list[Competitor]:
    """Store an uploaded picture inline as a data URL."""
    if content_type not in IMAGE_TYPES:
        raise RosterError(f"Unsupported image type {content_type}")
    if not data:
        raise RosterError("Empty image upload")
    encoded = base64.b64encode(data).decode("ascii")
    return _update(roster, competitor_id, image_url=f"data:{content_type};base64,{encoded}")


def _update(roster: list[Competitor], competitor_id: str, **changes) -> list[Competitor]:
    if not any(c.id == competitor_id for c in roster):
        raise RosterError(f"No competitor with id {competitor_id}")
    return [replace(c, **changes) if c.id == competitor_id else c for c in roster]
