"""Notifier and navigator collaborators injected into the listing views."""

from __future__ import annotations

import html
from dataclasses import dataclass, field
from typing import Protocol
from urllib.parse import quote


class Notifier(Protocol):
    async def success(self, text: str) -> None:
        """Report a successful action."""

    async def error(self, text: str) -> None:
        """Report a failed action (destructive style)."""


@dataclass(frozen=True)
class Note:
    ok: bool
    text: str


@dataclass
class NoteNotifier:
    """Collects notes to be rendered into the next UI message."""

    notes: list[Note] = field(default_factory=list)

    async def success(self, text: str) -> None:
        self.notes.append(Note(ok=True, text=text))

    async def error(self, text: str) -> None:
        self.notes.append(Note(ok=False, text=text))

    def render(self) -> str:
        lines = [f"{'✅' if note.ok else '❌'} {html.escape(note.text)}" for note in self.notes]
        return "\n".join(lines)

    @property
    def failed(self) -> bool:
        return any(not note.ok for note in self.notes)


class EditNavigator:
    """Builds links to the external listing editor."""

    path_template = "/business/{business_id}/edit"

    def __init__(self, site_url: str = "") -> None:
        self.site_url = site_url.rstrip("/")

    def edit_url(self, business_id: str) -> str:
        return f"{self.site_url}{self.path_template.format(business_id=quote(str(business_id), safe=''))}"

    def is_absolute(self) -> bool:
        return self.site_url.startswith(("http://", "https://"))
