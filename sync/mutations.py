"""
Write operations and the cache invalidation that follows them.

Every operation validates its input, issues exactly one request, and only
after that request succeeds invalidates the cached reads it could have made
stale. Transport failures come back as ``MutationResult.error``; they are
never raised to the caller. Invalid input raises ``ValueError`` before any
request is made.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Iterable, TypeVar

from api.client import PhotoApiClient
from api.errors import ApiError
from api.schemas import (
    AcceptInviteResponse,
    BboxOut,
    FaceTagIn,
    FavoriteResponse,
    InviteOut,
    InviteRequest,
    MemberOut,
    MergePeopleResponse,
    PersonOut,
    PhotoOut,
    UpdateFacesResponse,
    YearEstimationUpdate,
)
from geometry import UiBoundingBox, ui_bbox_to_api
from sync.cache import QueryCache, QueryKey
from sync.keys import (
    clusters_key,
    collections_key,
    invites_key,
    members_key,
    people_key,
    photo_detail_key,
    photos_key,
)
from sync.paging import PagedData

logger = logging.getLogger(__name__)

T = TypeVar("T")

FavoriteListener = Callable[[str, bool], None]

INVITABLE_ROLES = ("admin", "viewer")
ASSIGNABLE_ROLES = ("owner", "admin", "viewer")


@dataclass(frozen=True)
class MutationResult(Generic[T]):
    """Outcome of one write: ``data`` on success, ``error`` on transport failure."""

    data: T | None = None
    error: ApiError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class YearCorrection:
    """A user's correction of a photo's estimated year.

    Either an exact ``year`` or a ``year_min``/``year_max`` range (or both).
    """

    year: int | None = None
    year_min: int | None = None
    year_max: int | None = None
    reasoning: str | None = None

    def __post_init__(self) -> None:
        if self.year is None and self.year_min is None and self.year_max is None:
            raise ValueError("Year correction needs a year or a year range")
        if self.year_min is not None and self.year_max is not None and self.year_min > self.year_max:
            raise ValueError(f"Invalid year range: {self.year_min}-{self.year_max}")

    def to_wire(self) -> YearEstimationUpdate:
        return YearEstimationUpdate(
            user_corrected_year=self.year,
            user_corrected_year_min=self.year_min,
            user_corrected_year_max=self.year_max,
            user_year_reasoning=self.reasoning,
        )


def _require(**values: Any) -> None:
    for name, value in values.items():
        if not value:
            raise ValueError(f"{name} is required")


def _entity_id(item: Any) -> str | None:
    """Id of a cached people/cluster page item (entity or (raw, entity) pair)."""
    if isinstance(item, tuple):
        item = item[-1]
    return getattr(item, "id", None)


class MutationCoordinator:
    """Issues writes through the API client and invalidates the QueryCache."""

    def __init__(self, client: PhotoApiClient, cache: QueryCache) -> None:
        self._client = client
        self._cache = cache
        self._favorite_listeners: list[FavoriteListener] = []
        self._writes: set[asyncio.Task] = set()

    def add_favorite_listener(self, listener: FavoriteListener) -> Callable[[], None]:
        """Register ``listener(photo_id, is_favorite)`` for optimistic updates.

        Returns a function that removes the listener again.
        """
        self._favorite_listeners.append(listener)

        def remove() -> None:
            if listener in self._favorite_listeners:
                self._favorite_listeners.remove(listener)

        return remove

    async def _perform(
        self,
        operation: str,
        write: Awaitable[T],
        invalidate: Iterable[QueryKey] = (),
    ) -> MutationResult[T]:
        try:
            data = await write
        except ApiError as e:
            logger.warning("%s failed: %s", operation, e)
            return MutationResult(error=e)

        prefixes = list(invalidate)
        logger.debug("%s succeeded; invalidating %s", operation, prefixes)
        await asyncio.gather(*(self._cache.invalidate(prefix) for prefix in prefixes))
        return MutationResult(data=data)

    # -------------------------------------------------------------------------
    # Photos
    # -------------------------------------------------------------------------

    def toggle_favorite(
        self,
        photo_id: str,
        desired_state: bool,
        *,
        collection_id: str | None = None,
    ) -> Awaitable[MutationResult[FavoriteResponse]]:
        """Set the favorite flag of a photo.

        Listeners see the new state before this returns, ahead of any
        response; they are not rolled back when the write fails.

        Inside a running event loop the write is scheduled right away and the
        returned task may be dropped: the request is sent regardless and
        ``wait_for_writes()`` waits for it. Outside a loop the returned
        coroutine must be run by the caller (e.g. with ``asyncio.run``),
        otherwise nothing is sent.
        """
        _require(photo_id=photo_id)
        for listener in list(self._favorite_listeners):
            listener(photo_id, desired_state)

        write = self._perform(
            f"Favorite {photo_id}",
            self._client.set_favorite(photo_id, desired_state),
            [photos_key(collection_id), photo_detail_key(photo_id)],
        )
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return write
        task = asyncio.ensure_future(write)
        self._writes.add(task)
        task.add_done_callback(self._writes.discard)
        return task

    async def wait_for_writes(self) -> None:
        """Wait for scheduled favorite writes that nobody awaited."""
        while self._writes:
            await asyncio.gather(*list(self._writes))

    async def correct_year(
        self,
        photo_id: str,
        correction: YearCorrection,
        *,
        collection_id: str | None = None,
    ) -> MutationResult[PhotoOut]:
        _require(photo_id=photo_id)
        return await self._perform(
            f"Year correction of {photo_id}",
            self._client.update_year_estimation(photo_id, correction.to_wire()),
            [photos_key(collection_id), photo_detail_key(photo_id)],
        )

    async def tag_faces(
        self,
        collection_id: str,
        photo_id: str,
        faces: Iterable[tuple[str | None, UiBoundingBox]],
    ) -> MutationResult[UpdateFacesResponse]:
        """Replace the face tags of a photo.

        ``faces`` holds ``(person_id, box)`` pairs with boxes in UI (0-100)
        coordinates, as drawn by the user.
        """
        _require(collection_id=collection_id, photo_id=photo_id)
        tags = [
            FaceTagIn(person_id=person_id, bbox=BboxOut(**ui_bbox_to_api(bbox).to_dict()))
            for person_id, bbox in faces
        ]
        return await self._perform(
            f"Face tagging of {photo_id}",
            self._client.update_photo_faces(photo_id, tags),
            [
                photos_key(collection_id),
                photo_detail_key(photo_id),
                people_key(collection_id),
                clusters_key(collection_id),
            ],
        )

    # -------------------------------------------------------------------------
    # People
    # -------------------------------------------------------------------------

    async def merge_entities(
        self, collection_id: str, source_id: str, target_id: str
    ) -> MutationResult[MergePeopleResponse]:
        """Fold person or cluster ``source_id`` into named person ``target_id``.

        One request; the backend moves every face of the source. On success
        the source disappears from the cached people and cluster pages right
        away and both lists, plus the collection's photos, are refetched.
        """
        _require(collection_id=collection_id, source_id=source_id, target_id=target_id)
        if source_id == target_id:
            raise ValueError("Cannot merge an entity into itself")

        result = await self._perform(
            f"Merge of {source_id} into {target_id}",
            self._client.merge_people(collection_id, source_id, target_id),
        )
        if not result.ok:
            return result

        def drop_source(data: Any) -> Any:
            if isinstance(data, PagedData):
                return data.without(lambda item: _entity_id(item) == source_id)
            return data

        self._cache.update(people_key(collection_id), drop_source)
        self._cache.update(clusters_key(collection_id), drop_source)
        await asyncio.gather(
            self._cache.invalidate(people_key(collection_id)),
            self._cache.invalidate(clusters_key(collection_id)),
            self._cache.invalidate(photos_key(collection_id)),
        )
        return result

    async def assign_thumbnail(
        self, collection_id: str, person_id: str, face_id: str
    ) -> MutationResult[PersonOut]:
        _require(collection_id=collection_id, person_id=person_id, face_id=face_id)
        return await self._perform(
            f"Thumbnail of {person_id}",
            self._client.set_person_thumbnail(person_id, face_id),
            [people_key(collection_id)],
        )

    async def rename_person(
        self, collection_id: str, person_id: str, name: str
    ) -> MutationResult[PersonOut]:
        _require(collection_id=collection_id, person_id=person_id)
        name = (name or "").strip()
        if not name:
            raise ValueError("name must not be empty")
        return await self._perform(
            f"Rename of {person_id}",
            self._client.update_person(person_id, name),
            [people_key(collection_id), photos_key(collection_id)],
        )

    async def create_person(self, collection_id: str, name: str) -> MutationResult[PersonOut]:
        _require(collection_id=collection_id)
        name = (name or "").strip()
        if not name:
            raise ValueError("name must not be empty")
        return await self._perform(
            f"Creation of person {name!r}",
            self._client.create_person(collection_id, name),
            [people_key(collection_id)],
        )

    # -------------------------------------------------------------------------
    # Membership
    # -------------------------------------------------------------------------

    async def invite(
        self, collection_id: str, email: str, role: str = "viewer"
    ) -> MutationResult[InviteOut]:
        _require(collection_id=collection_id)
        email = (email or "").strip()
        if "@" not in email:
            raise ValueError(f"Invalid email address: {email!r}")
        if role not in INVITABLE_ROLES:
            raise ValueError(f"Invalid role for invite: {role!r}")
        return await self._perform(
            f"Invite of {email} to {collection_id}",
            self._client.invite_to_collection(collection_id, InviteRequest(email=email, role=role)),
            [members_key(collection_id), invites_key(collection_id)],
        )

    async def remove_member(self, collection_id: str, user_id: str) -> MutationResult[None]:
        _require(collection_id=collection_id, user_id=user_id)
        return await self._perform(
            f"Removal of {user_id} from {collection_id}",
            self._client.remove_member(collection_id, user_id),
            [members_key(collection_id)],
        )

    async def change_role(
        self, collection_id: str, user_id: str, role: str
    ) -> MutationResult[MemberOut]:
        _require(collection_id=collection_id, user_id=user_id)
        if role not in ASSIGNABLE_ROLES:
            raise ValueError(f"Invalid role: {role!r}")
        return await self._perform(
            f"Role change of {user_id} in {collection_id}",
            self._client.change_member_role(collection_id, user_id, role),
            [members_key(collection_id)],
        )

    async def cancel_invite(self, collection_id: str, invite_id: str) -> MutationResult[None]:
        _require(collection_id=collection_id, invite_id=invite_id)
        return await self._perform(
            f"Cancellation of invite {invite_id}",
            self._client.cancel_invite(collection_id, invite_id),
            [invites_key(collection_id)],
        )

    async def accept_invite(self, token: str) -> MutationResult[AcceptInviteResponse]:
        _require(token=token)
        return await self._perform(
            "Invite acceptance",
            self._client.accept_invite(token),
            [collections_key()],
        )
