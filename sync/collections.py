"""Collection-level reads: collections, members, invites and the current user."""

from __future__ import annotations

import config
from api.client import PhotoApiClient
from api.schemas import CollectionOut, CurrentUserOut, InviteDetailsOut, InviteOut, MemberOut
from sync.cache import Query, QueryCache
from sync.keys import (
    collection_key,
    collections_key,
    current_user_key,
    invite_details_key,
    invites_key,
    members_key,
)


class CollectionQueries:
    """Factories for the cached reads around collections and their membership.

    A missing id or token gives a disabled query instead of a request.
    """

    def __init__(self, client: PhotoApiClient, cache: QueryCache) -> None:
        self._client = client
        self._cache = cache

    def _disabled(self) -> Query:
        return Query(self._cache, None, None)

    def collections(self) -> Query[list[CollectionOut]]:
        return Query(self._cache, collections_key(), self._client.list_collections)

    def collection(self, collection_id: str | None) -> Query[CollectionOut]:
        if not collection_id:
            return self._disabled()

        async def load() -> CollectionOut:
            return await self._client.get_collection(collection_id)

        return Query(self._cache, collection_key(collection_id), load)

    def members(self, collection_id: str | None) -> Query[list[MemberOut]]:
        if not collection_id:
            return self._disabled()

        async def load() -> list[MemberOut]:
            return await self._client.list_members(collection_id)

        return Query(self._cache, members_key(collection_id), load)

    def pending_invites(self, collection_id: str | None) -> Query[list[InviteOut]]:
        if not collection_id:
            return self._disabled()

        async def load() -> list[InviteOut]:
            return await self._client.list_pending_invites(collection_id)

        return Query(self._cache, invites_key(collection_id), load)

    def invite_details(self, token: str | None) -> Query[InviteDetailsOut]:
        """Public preview of an invite; works without being signed in."""
        if not token:
            return self._disabled()

        async def load() -> InviteDetailsOut:
            return await self._client.get_invite_details(token)

        return Query(self._cache, invite_details_key(token), load)

    def current_user(self) -> Query[CurrentUserOut]:
        if not self._client.has_token:
            return self._disabled()
        return Query(
            self._cache,
            current_user_key(),
            self._client.get_current_user,
            max_age=config.CURRENT_USER_STALE_SECONDS,
        )
