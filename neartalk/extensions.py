"""Flask extensions for the application."""

from __future__ import annotations

from flask import current_app
from flask_wtf.csrf import CSRFProtect

from .core.store import DocumentStore

csrf = CSRFProtect()

STORE_EXTENSION = "neartalk.store"


def get_store() -> DocumentStore:
    """The app's document store, created on first use unless one was injected."""
    store = current_app.extensions.get(STORE_EXTENSION)
    if store is None:
        from .core.firestore_store import FirestoreStore

        store = FirestoreStore()
        current_app.extensions[STORE_EXTENSION] = store
    return store
