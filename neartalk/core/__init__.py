"""Core module for the neartalk application."""

from .store import DocumentStore, StoreError, Subscription, SubscriptionScope
from .types import APIResponse, FirestoreDocument

__all__ = [
    "APIResponse",
    "DocumentStore",
    "FirestoreDocument",
    "StoreError",
    "Subscription",
    "SubscriptionScope",
]
