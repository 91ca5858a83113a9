"""
Session context for the sync layer.

One ``SyncSession`` exists per signed-in user. It owns the API client and
the query cache and hands both to every sync object it creates, so nothing
in the sync layer keeps module-level state. Logging out tears the cache
down; anything still in flight completes without committing.
"""

from __future__ import annotations

import logging

import httpx

from api.client import PhotoApiClient
from sync.cache import QueryCache
from sync.collections import CollectionQueries
from sync.lightbox import LightboxNavigator, PhotoSequence, Presentation
from sync.mutations import MutationCoordinator
from sync.people import ClusterMetadata, EntityUnifier
from sync.photos import CollectionPhotos, PhotoDetails, PhotoFilters
from sync.thumbnails import ImageLoader

logger = logging.getLogger(__name__)


class SyncSession:
    """Client, cache and the shared sync services of one login session."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        client: PhotoApiClient | None = None,
        cache: QueryCache | None = None,
    ) -> None:
        self.client = client or PhotoApiClient(base_url, timeout=timeout, transport=transport)
        self.cache = cache or QueryCache()
        self.mutations = MutationCoordinator(self.client, self.cache)
        self.photo_details = PhotoDetails(self.client, self.cache)
        self.cluster_metadata = ClusterMetadata(self.client, self.cache)
        self.queries = CollectionQueries(self.client, self.cache)

    @property
    def is_authenticated(self) -> bool:
        return self.client.has_token

    # -------------------------------------------------------------------------
    # Auth bridge
    # -------------------------------------------------------------------------

    def start(self, token: str) -> None:
        """Begin the session with ``token`` as the bearer credential."""
        if not token:
            raise ValueError("token is required")
        self.client.set_token(token)
        logger.info("Sync session started")

    def on_auth_change(self, token: str | None) -> None:
        """Callback for the auth provider's login/logout notification.

        A new token replaces the old one (token refresh keeps the cache);
        ``None`` means logout: the token and every cached read are dropped.
        """
        if token:
            self.client.set_token(token)
            logger.debug("Bearer token updated")
            return
        self.client.clear_token()
        self.cache.clear()
        logger.info("Signed out; query cache cleared")

    async def close(self) -> None:
        """Finish pending favorite writes, then drop the cache and the client."""
        await self.mutations.wait_for_writes()
        self.cache.clear()
        await self.client.aclose()

    async def __aenter__(self) -> SyncSession:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Factories
    # -------------------------------------------------------------------------

    def collection_photos(
        self, collection_id: str | None = None, filters: PhotoFilters | None = None
    ) -> CollectionPhotos:
        return CollectionPhotos(self.client, self.cache, collection_id, filters)

    def entities(self, collection_id: str | None = None, *, include_clusters: bool = True) -> EntityUnifier:
        return EntityUnifier(self.client, self.cache, collection_id, include_clusters=include_clusters)

    def lightbox(
        self, sequence: PhotoSequence, presentation: Presentation | None = None
    ) -> LightboxNavigator:
        return LightboxNavigator(
            sequence, presentation, details=self.photo_details, mutations=self.mutations
        )

    def image_loader(self) -> ImageLoader:
        return ImageLoader(self.client)
