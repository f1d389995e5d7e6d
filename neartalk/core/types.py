"""Core data types for the neartalk application."""

from typing import Any, Dict, Optional, TypedDict  # noqa: UP035


class _FirestoreDocumentBase(TypedDict):
    id: str


class FirestoreDocument(_FirestoreDocumentBase, total=False):
    """Generic Firestore document structure."""

    createdAt: Any
    updatedAt: Any


class GroupDocument(FirestoreDocument, total=False):
    """A `groups/{gid}` document."""

    name: str
    avatar: str
    latitude: Any
    longitude: Any
    memberCount: int
    lastMessage: str
    createdBy: str


class MemberDocument(FirestoreDocument, total=False):
    """A `groups/{gid}/members/{uid}` document."""

    nickname: str
    joinedAt: Any


class MessageDocument(FirestoreDocument, total=False):
    """A `groups/{gid}/messages/{mid}` document."""

    text: str
    senderId: str
    senderName: str


class JoinedGroupDocument(FirestoreDocument, total=False):
    """A `users/{uid}/joinedGroups/{gid}` document."""

    groupId: str
    name: str
    avatar: str
    joinedAt: Any
    lastSeen: Any


class TypingDocument(FirestoreDocument, total=False):
    """A `groups/{gid}/typing/{uid}` document."""

    typing: bool
    nickname: str


class APIResponse(TypedDict):
    """Generic API response structure."""

    success: bool
    message: str
    data: Optional[Dict[str, Any]]  # noqa: UP006
