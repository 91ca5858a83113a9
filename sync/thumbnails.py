"""Image byte loaders for photos and face crops."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from api.client import PhotoApiClient
from api.errors import ApiError, NotFoundError

logger = logging.getLogger(__name__)


class ImageLoader:
    """Loads one image at a time into ``data``.

    Starting another load, or ``cancel()``, makes any response still in
    flight irrelevant: it completes but is not stored.

    A face thumbnail that no longer exists (face deleted or merged away)
    resolves to ``data=None`` with no error.
    """

    def __init__(self, client: PhotoApiClient) -> None:
        self._client = client
        self._generation = 0
        self.target: str | None = None
        self.data: bytes | None = None
        self.error: ApiError | None = None
        self.is_loading = False

    async def load_photo(self, photo_id: str | None, *, thumbnail: bool = False) -> bytes | None:
        if not photo_id:
            self.cancel()
            return None
        return await self._load(
            f"photo:{photo_id}:{'thumb' if thumbnail else 'full'}",
            lambda: self._client.fetch_photo(photo_id, thumbnail=thumbnail),
            missing_ok=False,
        )

    async def load_face(self, face_id: str | None) -> bytes | None:
        if not face_id:
            self.cancel()
            return None
        return await self._load(
            f"face:{face_id}",
            lambda: self._client.fetch_face_thumbnail(face_id),
            missing_ok=True,
        )

    def cancel(self) -> None:
        self._generation += 1
        self.target = None
        self.data = None
        self.error = None
        self.is_loading = False

    async def _load(
        self,
        target: str,
        fetch: Callable[[], Awaitable[bytes]],
        *,
        missing_ok: bool,
    ) -> bytes | None:
        self._generation += 1
        generation = self._generation
        self.target = target
        self.data = None
        self.error = None
        self.is_loading = True
        try:
            data = await fetch()
        except NotFoundError as e:
            if generation != self._generation:
                return None
            self.is_loading = False
            if missing_ok:
                logger.debug("No image for %s: %s", target, e)
            else:
                logger.warning("Image load for %s failed: %s", target, e)
                self.error = e
            return None
        except ApiError as e:
            if generation != self._generation:
                return None
            self.is_loading = False
            logger.warning("Image load for %s failed: %s", target, e)
            self.error = e
            return None

        if generation != self._generation:
            logger.debug("Discarding stale image for %s", target)
            return None
        self.is_loading = False
        self.data = data
        return data
