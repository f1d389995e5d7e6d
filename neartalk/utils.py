"""Utility functions for the application."""

from __future__ import annotations

from urllib.parse import quote

from flask import current_app, has_app_context

from .constants import (
    AVATAR_BACKGROUNDS,
    AVATAR_BASE_URL,
    AVATAR_STYLES,
    DEFAULT_AVATAR_STYLE,
    ELLIPSIS,
    LAST_MESSAGE_MAX_LENGTH,
)


def avatar_url(
    seed: str, style: str = DEFAULT_AVATAR_STYLE, base_url: str = AVATAR_BASE_URL
) -> str:
    """Build a deterministic DiceBear avatar URL for ``seed``."""
    encoded = quote(seed, safe="!*'()")
    return (
        f"{base_url}/{style}/svg?seed={encoded}"
        f"&backgroundColor={AVATAR_BACKGROUNDS}"
    )


def avatar_options(
    name: str, base_url: str = AVATAR_BASE_URL
) -> list[dict[str, str]]:
    """One avatar per supported style, all seeded with the group name."""
    seed = name or "default"
    return [
        {"style": style, "url": avatar_url(seed, style, base_url)}
        for style in AVATAR_STYLES
    ]


def group_avatar(
    group_id: str, avatar: str | None, base_url: str | None = None
) -> str:
    """Stored avatar, or the bottts fallback seeded with the group id.

    Without an explicit ``base_url`` the running app's ``AVATAR_BASE_URL`` is
    used, falling back to the default service outside an app context.
    """
    if avatar:
        return avatar
    if base_url is None:
        base_url = (
            current_app.config.get("AVATAR_BASE_URL", AVATAR_BASE_URL)
            if has_app_context()
            else AVATAR_BASE_URL
        )
    return avatar_url(group_id, DEFAULT_AVATAR_STYLE, base_url)


def summarize_message(text: str, limit: int = LAST_MESSAGE_MAX_LENGTH) -> str:
    """Shorten a message for the group's "last message" preview."""
    if len(text) > limit:
        return text[:limit] + ELLIPSIS
    return text


def clean_text(value: str | None) -> str:
    return (value or "").strip()


def api_response(data=None, message="", success=True):
    """Standard JSON envelope for API routes."""
    return {"success": success, "message": message, "data": data}


def strip_filter(value):
    """WTForms filter that trims input, coercing JSON scalars to text."""
    if value is None:
        return value
    if not isinstance(value, str):
        value = str(value)
    return value.strip()


def form_error(form) -> str:
    """The first validation message of a submitted form."""
    for errors in form.errors.values():
        if errors:
            return errors[0]
    return "Invalid request."
