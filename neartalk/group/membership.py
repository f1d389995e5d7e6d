"""Create, join and leave groups.

Each operation touches up to three denormalized records: the group's
``memberCount``, the ``members`` roster and the user's ``joinedGroups`` index.
None of the sequences is transactional. They run in a fixed order, the counter
only ever moves through the store's atomic increment, and a failure part way
through is reported without rolling back what already succeeded.
"""

from __future__ import annotations

import asyncio
import logging

from neartalk.constants import (
    AVATAR_BASE_URL,
    AVATAR_STYLES,
    DEFAULT_AVATAR_STYLE,
    DEFAULT_NICKNAME,
    GROUP_NAME_MAX_LENGTH,
    GROUPS,
    JOINED_GROUPS,
    MEMBERS,
    NICKNAME_MAX_LENGTH,
    USERS,
)
from neartalk.core.store import DocumentStore, StoreError, join_path
from neartalk.core.types import MemberDocument
from neartalk.errors import (
    LocationRequired,
    NotFoundError,
    OperationFailed,
    ValidationError,
)
from neartalk.geo.location import Location
from neartalk.utils import avatar_url, clean_text, group_avatar

from .models import GroupListing

logger = logging.getLogger(__name__)


def validate_group_name(name: str | None) -> str:
    name = clean_text(name)
    if not name:
        raise ValidationError("Please enter a group name.")
    if len(name) > GROUP_NAME_MAX_LENGTH:
        raise ValidationError(
            f"Group name must be at most {GROUP_NAME_MAX_LENGTH} characters."
        )
    return name


def validate_nickname(nickname: str | None) -> str:
    nickname = clean_text(nickname)
    if not nickname:
        raise ValidationError("Please enter a nickname.")
    if len(nickname) > NICKNAME_MAX_LENGTH:
        raise ValidationError(
            f"Nickname must be at most {NICKNAME_MAX_LENGTH} characters."
        )
    return nickname


class MembershipLedger:
    """Membership operations for one signed-in user."""

    def __init__(
        self,
        store: DocumentStore,
        user_id: str,
        *,
        avatar_base_url: str = AVATAR_BASE_URL,
    ) -> None:
        self.store = store
        self.user_id = user_id
        self.avatar_base_url = avatar_base_url

    def _group_path(self, group_id: str) -> str:
        return join_path(GROUPS, group_id)

    def _member_path(self, group_id: str) -> str:
        return join_path(GROUPS, group_id, MEMBERS, self.user_id)

    def _index_path(self, group_id: str) -> str:
        return join_path(USERS, self.user_id, JOINED_GROUPS, group_id)

    async def member(self, group_id: str) -> MemberDocument | None:
        """The caller's roster entry in ``group_id``, None when not a member."""
        return await self.store.get(self._member_path(group_id))

    async def nickname(self, group_id: str) -> str:
        """The caller's nickname in ``group_id``."""
        member = await self.member(group_id)
        return (member or {}).get("nickname") or DEFAULT_NICKNAME

    async def create_group(
        self,
        name: str,
        nickname: str,
        location: Location,
        avatar_style: str = DEFAULT_AVATAR_STYLE,
    ) -> GroupListing:
        """Create a group at ``location`` with the caller as its first member."""
        name = validate_group_name(name)
        nickname = validate_nickname(nickname)
        if avatar_style not in AVATAR_STYLES:
            raise ValidationError("Unknown avatar style.")
        if not location.is_available:
            raise LocationRequired()

        avatar = avatar_url(name, avatar_style, self.avatar_base_url)
        now = self.store.SERVER_TIMESTAMP
        try:
            group_id = await self.store.add(
                GROUPS,
                {
                    "name": name,
                    "avatar": avatar,
                    "latitude": location.latitude,  # type: ignore[union-attr]
                    "longitude": location.longitude,  # type: ignore[union-attr]
                    "createdBy": self.user_id,
                    "memberCount": 1,
                    "lastMessage": "",
                    "createdAt": now,
                    "updatedAt": now,
                },
            )
        except StoreError as e:
            logger.error(f"Error creating group {name!r}: {e}")
            raise OperationFailed("Failed to create group. Please try again.") from e

        try:
            await self.store.set(
                self._member_path(group_id), {"nickname": nickname, "joinedAt": now}
            )
            await self.store.set(
                self._index_path(group_id),
                {"groupId": group_id, "name": name, "avatar": avatar, "joinedAt": now},
            )
        except StoreError as e:
            # The group document stays behind without members.
            logger.error(f"Group {group_id} created but membership failed: {e}")
            raise OperationFailed("Failed to create group. Please try again.") from e

        logger.info(f"User {self.user_id} created group {group_id}")
        return GroupListing(
            id=group_id,
            name=name,
            avatar=avatar,
            latitude=location.latitude,  # type: ignore[union-attr]
            longitude=location.longitude,  # type: ignore[union-attr]
            member_count=1,
            is_joined=True,
        )

    async def join(self, group_id: str, nickname: str) -> bool:
        """Join ``group_id``; returns False when the user was already a member.

        A repeat join never touches the counter or the roster, but it always
        rewrites the ``joinedGroups`` entry so a lost index entry comes back.
        ``joinedAt`` is only written when the entry is new.
        """
        nickname = validate_nickname(nickname)
        try:
            group = await self.store.get(self._group_path(group_id))
            if group is None:
                raise NotFoundError("Group not found.")

            created = await self.store.get(self._member_path(group_id)) is None
            if created:
                await self.store.set(
                    self._member_path(group_id),
                    {"nickname": nickname, "joinedAt": self.store.SERVER_TIMESTAMP},
                )
                await self.store.increment(self._group_path(group_id), "memberCount", 1)

            index = {
                "groupId": group_id,
                "name": group.get("name", ""),
                "avatar": group_avatar(
                    group_id, group.get("avatar"), self.avatar_base_url
                ),
            }
            if created or await self.store.get(self._index_path(group_id)) is None:
                index["joinedAt"] = self.store.SERVER_TIMESTAMP
            await self.store.set(self._index_path(group_id), index, merge=True)
        except StoreError as e:
            logger.error(f"Error joining group {group_id} for {self.user_id}: {e}")
            raise OperationFailed("Failed to join group. Please try again.") from e

        logger.info(
            f"User {self.user_id} joined group {group_id}"
            + ("" if created else " (already a member)")
        )
        return created

    async def leave(self, group_id: str) -> None:
        """Leave ``group_id``.

        The counter is read before the decrement and left alone when it is
        already zero. Concurrent leaves can still race between the read and
        the decrement; that drift is tolerated, never recomputed.
        """
        group_path = self._group_path(group_id)
        try:
            group, member = await asyncio.gather(
                self.store.get(group_path),
                self.store.get(self._member_path(group_id)),
            )
            await self.store.delete(self._member_path(group_id))
            await self.store.delete(self._index_path(group_id))

            count = (group or {}).get("memberCount") or 0
            if member is not None and count > 0:
                await self.store.increment(group_path, "memberCount", -1)
            else:
                logger.info(
                    f"Skipped memberCount decrement for {group_id} "
                    f"(count={count}, member={member is not None})"
                )
        except StoreError as e:
            logger.error(f"Error leaving group {group_id} for {self.user_id}: {e}")
            raise OperationFailed("Failed to leave group. Please try again.") from e

        logger.info(f"User {self.user_id} left group {group_id}")
