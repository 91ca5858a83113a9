"""Named people and anonymous face clusters unified into one entity list.

Named people and unnamed clusters are paginated independently by the
backend. ``EntityUnifier`` pages through both and presents a single ranked
list: named people first, then clusters, with one id space across both.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

import config
from api.client import PhotoApiClient
from api.errors import ApiError
from api.schemas import ClusterFaceOut, ClusterOut, PersonOut
from geometry import api_bbox_to_ui
from sync.cache import Query, QueryCache
from sync.keys import cluster_metadata_key, clusters_key, people_key
from sync.paging import OffsetPagedFetcher, TieredPageSize
from sync.types import PersonLikeEntity, Photo
from utils import extract_id, normalize_thumbnail_path

logger = logging.getLogger(__name__)

PEOPLE_PAGE_SIZE = TieredPageSize(config.PEOPLE_FIRST_PAGE_SIZE, config.PEOPLE_PAGE_SIZE)
CLUSTERS_PAGE_SIZE = TieredPageSize(config.CLUSTERS_FIRST_PAGE_SIZE, config.CLUSTERS_PAGE_SIZE)


def person_to_entity(person: PersonOut) -> PersonLikeEntity:
    """Named person, keeping the backend's thumbnail and photo count."""
    bbox = person.thumbnail_bbox
    return PersonLikeEntity(
        id=person.id,
        name=person.name,
        thumbnail_path=normalize_thumbnail_path(person.thumbnail_url),
        thumbnail_bbox=api_bbox_to_ui(bbox.to_api_bbox()) if bbox else None,
        photo_count=person.photo_count,
        representative_face_id=person.representative_face_id,
    )


def representative_face(cluster: ClusterOut) -> ClusterFaceOut | None:
    """The face chosen to stand in for a cluster, else its first face."""
    for face in cluster.faces:
        if face.id == cluster.representative_face_id or face.is_representative:
            return face
    return cluster.faces[0] if cluster.faces else None


def cluster_to_entity(cluster: ClusterOut) -> PersonLikeEntity:
    """Anonymous cluster.

    ``photo_count`` counts distinct photos, not faces: two faces of the same
    cluster on one photo count once. Summary responses carry no faces and
    report the count directly.
    """
    photo_ids = tuple(dict.fromkeys(extract_id(face.photo_id) for face in cluster.faces))
    if cluster.faces:
        photo_count = len(photo_ids)
    else:
        photo_count = cluster.photo_count if cluster.photo_count is not None else (cluster.face_count or 0)

    face = representative_face(cluster)
    thumbnail = cluster.representative_thumbnail_url or (extract_id(face.photo_id) if face else "")
    return PersonLikeEntity(
        id=cluster.id,
        name=None,
        thumbnail_path=thumbnail,
        thumbnail_bbox=api_bbox_to_ui(face.bbox.to_api_bbox()) if face else None,
        photo_count=photo_count,
        photo_ids=photo_ids,
        representative_face_id=cluster.representative_face_id or (face.id if face else None),
    )


def unify(
    people: Iterable[PersonLikeEntity],
    clusters: Iterable[tuple[ClusterOut, PersonLikeEntity]],
) -> list[PersonLikeEntity]:
    """Named people first, then clusters, each id at most once.

    A cluster already assigned to a person, or whose id collides with a
    person id, is left out so the same identity never shows twice.
    """
    result: list[PersonLikeEntity] = []
    seen: set[str] = set()
    for person in people:
        if person.id in seen:
            continue
        seen.add(person.id)
        result.append(person)
    for raw, entity in clusters:
        if entity.id in seen or raw.person_id:
            continue
        seen.add(entity.id)
        result.append(entity)
    return result


def extract_cluster_ids(photos: Iterable[Photo]) -> list[str]:
    """Unique cluster ids referenced by faces on ``photos``, in first-seen order."""
    ids: dict[str, None] = {}
    for photo in photos:
        for face in photo.faces:
            if face.cluster_id:
                ids.setdefault(face.cluster_id, None)
    return list(ids)


class EntityUnifier:
    """Paged named people + paged clusters of one collection as one list."""

    def __init__(
        self,
        client: PhotoApiClient,
        cache: QueryCache,
        collection_id: str | None = None,
        *,
        include_clusters: bool = True,
        people_page_size: TieredPageSize = PEOPLE_PAGE_SIZE,
        clusters_page_size: TieredPageSize = CLUSTERS_PAGE_SIZE,
    ) -> None:
        self._client = client
        self.collection_id = collection_id
        self.include_clusters = include_clusters
        self.people: OffsetPagedFetcher[PersonLikeEntity] = OffsetPagedFetcher(
            cache, *self._people_source(), page_size=people_page_size
        )
        self.clusters: OffsetPagedFetcher[tuple[ClusterOut, PersonLikeEntity]] = OffsetPagedFetcher(
            cache, *self._clusters_source(), page_size=clusters_page_size
        )

    def _people_source(self):
        collection_id = self.collection_id
        if not collection_id:
            return None, None

        async def load(limit: int, offset: int) -> list[PersonLikeEntity]:
            people = await self._client.list_people(collection_id, limit=limit, offset=offset)
            return [person_to_entity(p) for p in people]

        return people_key(collection_id), load

    def _clusters_source(self):
        collection_id = self.collection_id
        if not collection_id or not self.include_clusters:
            return None, None

        async def load(limit: int, offset: int) -> list[tuple[ClusterOut, PersonLikeEntity]]:
            clusters = await self._client.list_clusters(
                collection_id, limit=limit, offset=offset, summary=True
            )
            # Raw cluster kept alongside for the person_id binding check
            return [(c, cluster_to_entity(c)) for c in clusters]

        return clusters_key(collection_id), load

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def entities(self) -> list[PersonLikeEntity]:
        return unify(self.people.items, self.clusters.items)

    @property
    def named(self) -> list[PersonLikeEntity]:
        return [e for e in self.entities if e.is_named]

    @property
    def anonymous(self) -> list[PersonLikeEntity]:
        return [e for e in self.entities if e.is_cluster]

    @property
    def is_loading(self) -> bool:
        return self.people.is_loading or self.clusters.is_loading

    @property
    def is_loading_more(self) -> bool:
        return self.people.is_loading_more or self.clusters.is_loading_more

    @property
    def has_more(self) -> bool:
        return self.people.has_more or self.clusters.has_more

    @property
    def error(self) -> ApiError | None:
        """First failure of either side; the other side's entities stay usable."""
        return self.people.error or self.clusters.error

    def get(self, entity_id: str) -> PersonLikeEntity | None:
        for entity in self.entities:
            if entity.id == entity_id:
                return entity
        return None

    # -------------------------------------------------------------------------
    # Intents
    # -------------------------------------------------------------------------

    async def load(self) -> None:
        """Load the first page of both sides concurrently."""
        await asyncio.gather(self.people.load(), self.clusters.load())

    async def load_more(self) -> None:
        """Next page in display order: named people until exhausted, then clusters.

        A side without a first page (never loaded, or its first request
        failed) is loaded before anything else.
        """
        for side in (self.people, self.clusters):
            if side.has_more or (side.enabled and side.data is None):
                await side.load_more()
                return

    async def refresh(self) -> None:
        """Refetch both sides; a failure on one side leaves the other intact."""
        await asyncio.gather(self.people.refetch(), self.clusters.refetch())
        if self.error:
            logger.warning("Refresh of people for %s incomplete: %s", self.collection_id, self.error)

    def set_collection(self, collection_id: str | None) -> None:
        if collection_id == self.collection_id:
            return
        self.collection_id = collection_id
        self.people.set_key(*self._people_source())
        self.clusters.set_key(*self._clusters_source())

    def close(self) -> None:
        self.people.close()
        self.clusters.close()


class ClusterMetadata:
    """Metadata for specific clusters, fetched on demand for album headers."""

    def __init__(
        self,
        client: PhotoApiClient,
        cache: QueryCache,
        *,
        max_age: float | None = config.CLUSTER_METADATA_STALE_SECONDS,
    ) -> None:
        self._client = client
        self._cache = cache
        self._max_age = max_age

    def query(self, collection_id: str | None, cluster_ids: Iterable[str]) -> Query[list[PersonLikeEntity]]:
        ids = tuple(sorted(set(cluster_ids)))
        if not collection_id or not ids:
            return Query(self._cache, None, None, max_age=self._max_age)

        async def load() -> list[PersonLikeEntity]:
            clusters = await self._client.get_clusters_by_ids(collection_id, list(ids))
            return [cluster_to_entity(c) for c in clusters]

        return Query(
            self._cache, cluster_metadata_key(collection_id, ids), load, max_age=self._max_age
        )
