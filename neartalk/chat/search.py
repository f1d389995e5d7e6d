"""Find-in-conversation over the messages currently loaded in a chat."""

from __future__ import annotations

import re
from typing import Callable, Protocol, Sequence


class _HasText(Protocol):
    text: str


class ConversationSearch:
    """Substring search with a wrapping cursor over the matching messages.

    ``matches`` holds indices into the message list. ``on_focus`` receives the
    message index the view should centre whenever the query or the cursor
    changes (None when nothing matches).
    """

    def __init__(self, on_focus: Callable[[int | None], None] | None = None) -> None:
        self.on_focus = on_focus
        self.query = ""
        self.cursor = 0
        self.matches: list[int] = []
        self._messages: Sequence[_HasText] = ()

    @property
    def needle(self) -> str:
        return self.query.strip().lower()

    @property
    def active(self) -> bool:
        return bool(self.needle)

    @property
    def current(self) -> int | None:
        """Index of the focused message, if any."""
        if not self.matches:
            return None
        return self.matches[self.cursor]

    @property
    def status(self) -> str:
        if not self.active:
            return ""
        if not self.matches:
            return "No results"
        return f"{self.cursor + 1}/{len(self.matches)}"

    def _recompute(self) -> None:
        needle = self.needle
        if not needle:
            self.matches = []
            return
        self.matches = [
            i for i, message in enumerate(self._messages)
            if needle in (message.text or "").lower()
        ]

    def _focus(self) -> None:
        if self.on_focus is not None:
            self.on_focus(self.current)

    def set_query(self, query: str) -> None:
        self.query = query
        self.cursor = 0
        self._recompute()
        self._focus()

    def update_messages(self, messages: Sequence[_HasText]) -> None:
        """Re-run the query against a new message list, keeping the cursor in range."""
        self._messages = messages
        self._recompute()
        if self.cursor >= len(self.matches):
            self.cursor = max(0, len(self.matches) - 1)

    def _move(self, step: int) -> int | None:
        if not self.matches:
            return None
        self.cursor = (self.cursor + step) % len(self.matches)
        self._focus()
        return self.current

    def next(self) -> int | None:
        return self._move(1)

    def previous(self) -> int | None:
        return self._move(-1)

    def handle_key(self, key: str, shift: bool = False) -> int | None:
        """Enter goes forward, Shift+Enter back, Escape clears the search."""
        if key == "Enter":
            return self.previous() if shift else self.next()
        if key == "Escape":
            self.clear()
        return self.current

    def clear(self) -> None:
        self.query = ""
        self.cursor = 0
        self.matches = []

    def is_match(self, index: int) -> bool:
        return index in self.matches

    def is_current(self, index: int) -> bool:
        return self.current == index

    def highlight(self, text: str) -> list[tuple[str, bool]]:
        """Split ``text`` into ``(segment, matched)`` pairs, marking every hit."""
        needle = self.needle
        if not needle or not text:
            return [(text, False)] if text else []
        segments = []
        position = 0
        for hit in re.finditer(re.escape(needle), text, flags=re.IGNORECASE):
            if hit.start() > position:
                segments.append((text[position : hit.start()], False))
            segments.append((hit.group(0), True))
            position = hit.end()
        if position < len(text):
            segments.append((text[position:], False))
        return segments
