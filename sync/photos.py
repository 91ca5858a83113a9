"""Photo sequences and photo detail for grids and the lightbox."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

import config
from api.client import PhotoApiClient
from api.errors import ApiError
from api.schemas import PhotoDetailOut, PhotoOut
from geometry import api_bbox_to_ui
from sync.cache import Query, QueryCache
from sync.keys import photo_detail_key, photos_key
from sync.paging import CursorPagedFetcher, Page
from sync.types import FaceAnnotation, Photo, PhotoDetail

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PhotoFilters:
    """Grid filters. Frozen and hashable so it can be part of a query key."""

    year_range: tuple[int, int] | None = None
    person_ids: tuple[str, ...] = ()
    cluster_ids: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    favorite_only: bool = False

    def __post_init__(self) -> None:
        if self.year_range is not None and self.year_range[0] > self.year_range[1]:
            raise ValueError(f"Invalid year range: {self.year_range}")

    def to_params(self) -> dict[str, Any]:
        """Transport query params.

        The backend filters on a single person and a single cluster; only the
        first of each is sent.
        """
        params: dict[str, Any] = {}
        if self.year_range is not None:
            params["year_min"], params["year_max"] = self.year_range
        if self.person_ids:
            params["person_id"] = self.person_ids[0]
        if self.cluster_ids:
            params["cluster_ids"] = self.cluster_ids[0]
        if self.tags:
            params["tags"] = ",".join(self.tags)
        if self.favorite_only:
            params["favorite"] = "true"
        return params


def photo_from_wire(photo: PhotoOut, faces: list[FaceAnnotation] | None = None) -> Photo:
    """Map a backend photo to the domain Photo, converting face boxes to UI form."""
    if faces is None:
        faces = [
            FaceAnnotation(
                person_id=person.id,
                person_name=person.name,
                bbox=api_bbox_to_ui(person.face_bbox.to_api_bbox()),
                cluster_id=person.cluster_id,
                face_id=person.face_id,
            )
            for person in photo.people
            if person.face_bbox is not None
        ]
    return Photo(
        id=photo.id,
        collection_id=photo.collection_id,
        path=photo.path,
        thumbnail_url=photo.thumbnail_url,
        original_filename=photo.original_filename,
        title=photo.title,
        description=photo.description,
        created_at=photo.created_at,
        width=photo.width,
        height=photo.height,
        rotation=photo.rotation,
        display_year=photo.display_year,
        estimated_year=photo.estimated_year,
        estimated_year_min=photo.estimated_year_min,
        estimated_year_max=photo.estimated_year_max,
        user_corrected_year=photo.user_corrected_year,
        is_favorite=photo.is_favorite,
        tags=frozenset(photo.tags),
        faces=tuple(faces),
    )


def detail_from_wire(detail: PhotoDetailOut) -> PhotoDetail:
    faces = [
        FaceAnnotation(
            person_id=face.person_id,
            person_name=face.person_name,
            bbox=api_bbox_to_ui(face.bbox.to_api_bbox()),
            cluster_id=face.cluster_id,
            face_id=face.id,
        )
        for face in detail.faces
    ]
    return PhotoDetail(
        photo=photo_from_wire(detail, faces=faces),
        year_reasoning=detail.year_reasoning,
        year_confidence=detail.year_confidence,
        taken_at=detail.taken_at,
    )


class CollectionPhotos:
    """Cursor-paged photos of one collection under the active filters."""

    def __init__(
        self,
        client: PhotoApiClient,
        cache: QueryCache,
        collection_id: str | None = None,
        filters: PhotoFilters | None = None,
        *,
        page_limit: int | None = config.PHOTO_PAGE_LIMIT,
    ) -> None:
        self._client = client
        self._page_limit = page_limit
        self.collection_id = collection_id
        self.filters = filters or PhotoFilters()
        self.fetcher: CursorPagedFetcher[Photo] = CursorPagedFetcher(cache, *self._key_and_loader())

    def _key_and_loader(self) -> tuple[tuple | None, Callable | None]:
        if not self.collection_id:
            return None, None
        collection_id, filters = self.collection_id, self.filters

        async def load_page(cursor: str | None) -> Page[Photo]:
            response = await self._client.list_collection_photos(
                collection_id,
                cursor=cursor,
                filters=filters.to_params(),
                limit=self._page_limit,
            )
            return Page(
                items=tuple(photo_from_wire(p) for p in response.photos),
                next_param=response.next_cursor,
                total=response.total,
            )

        return photos_key(collection_id, filters), load_page

    @property
    def photos(self) -> list[Photo]:
        return self.fetcher.items

    @property
    def total_count(self) -> int | None:
        data = self.fetcher.data
        return data.total if data else None

    @property
    def is_loading(self) -> bool:
        return self.fetcher.is_loading

    @property
    def is_loading_more(self) -> bool:
        return self.fetcher.is_loading_more

    @property
    def has_more(self) -> bool:
        return self.fetcher.has_more

    @property
    def error(self) -> ApiError | None:
        return self.fetcher.error

    async def load(self) -> None:
        await self.fetcher.load()

    async def load_more(self) -> None:
        await self.fetcher.load_more()

    async def refetch(self) -> None:
        await self.fetcher.refetch()

    def set_collection(self, collection_id: str | None) -> None:
        if collection_id == self.collection_id:
            return
        self.collection_id = collection_id
        self.fetcher.set_key(*self._key_and_loader())

    def set_filters(self, filters: PhotoFilters) -> None:
        if filters == self.filters:
            return
        self.filters = filters
        self.fetcher.set_key(*self._key_and_loader())

    def find(self, photo_id: str) -> Photo | None:
        for photo in self.photos:
            if photo.id == photo_id:
                return photo
        return None

    def close(self) -> None:
        self.fetcher.close()


class PhotoDetails:
    """Full photo detail (year reasoning, face boxes), cached per photo."""

    def __init__(
        self,
        client: PhotoApiClient,
        cache: QueryCache,
        *,
        max_age: float | None = config.PHOTO_DETAIL_STALE_SECONDS,
    ) -> None:
        self._client = client
        self._cache = cache
        self._max_age = max_age

    def _loader(self, photo_id: str):
        async def load() -> PhotoDetail:
            return detail_from_wire(await self._client.get_photo_detail(photo_id))
        return load

    def query(self, photo_id: str | None) -> Query[PhotoDetail]:
        """Observable detail query; a None id gives a disabled query."""
        if not photo_id:
            return Query(self._cache, None, None, max_age=self._max_age)
        return Query(
            self._cache, photo_detail_key(photo_id), self._loader(photo_id), max_age=self._max_age
        )

    async def get(self, photo_id: str) -> PhotoDetail:
        """Return detail for ``photo_id``; raises ApiError on failure."""
        return await self._cache.fetch(
            photo_detail_key(photo_id), self._loader(photo_id), max_age=self._max_age
        )

    async def prefetch(self, photo_id: str) -> None:
        """Warm the cache for ``photo_id``; failures are logged, not raised."""
        try:
            await self.get(photo_id)
        except ApiError as e:
            logger.warning("Prefetch of photo %s failed: %s", photo_id, e)

    def cached(self, photo_id: str | None) -> PhotoDetail | None:
        """Cached detail without triggering a fetch."""
        if not photo_id:
            return None
        return self._cache.get(photo_detail_key(photo_id))
