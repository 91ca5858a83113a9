"""
Lightbox navigation over a photo sequence.

The navigator is either closed or showing one photo. Moving past either end
of the loaded sequence wraps around. After every move the neighbors'
details are prefetched, and when the last loaded photo is shown the next
page of the sequence is requested.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Awaitable, Protocol, Sequence

from sync.mutations import MutationCoordinator, MutationResult
from sync.photos import PhotoDetails
from sync.types import Photo

logger = logging.getLogger(__name__)


class PhotoSequence(Protocol):
    """What the navigator needs from a paged photo source (CollectionPhotos)."""

    @property
    def photos(self) -> Sequence[Photo]: ...

    @property
    def has_more(self) -> bool: ...

    async def load_more(self) -> None: ...


class Presentation(Protocol):
    """Fullscreen control of the surface the lightbox is drawn on."""

    @property
    def is_fullscreen(self) -> bool: ...

    def request_fullscreen(self) -> None: ...

    def exit_fullscreen(self) -> None: ...


class NullPresentation:
    """Presentation that just tracks the requested mode."""

    def __init__(self) -> None:
        self.is_fullscreen = False

    def request_fullscreen(self) -> None:
        self.is_fullscreen = True

    def exit_fullscreen(self) -> None:
        self.is_fullscreen = False


class LightboxNavigator:
    """Closed / Open(photo) state machine over ``sequence.photos``."""

    def __init__(
        self,
        sequence: PhotoSequence,
        presentation: Presentation | None = None,
        *,
        details: PhotoDetails | None = None,
        mutations: MutationCoordinator | None = None,
    ) -> None:
        self._sequence = sequence
        self._presentation = presentation or NullPresentation()
        self._details = details
        self._mutations = mutations
        self._current: Photo | None = None
        self._tasks: set[asyncio.Task] = set()
        self._remove_listener = (
            mutations.add_favorite_listener(self.apply_favorite) if mutations else None
        )

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def current(self) -> Photo | None:
        return self._current

    @property
    def is_open(self) -> bool:
        return self._current is not None

    @property
    def is_fullscreen(self) -> bool:
        return self._presentation.is_fullscreen

    @property
    def current_index(self) -> int:
        """Position of the open photo in the sequence, -1 if absent or closed."""
        if self._current is None:
            return -1
        for index, photo in enumerate(self._sequence.photos):
            if photo.id == self._current.id:
                return index
        return -1

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def open(self, photo: Photo) -> None:
        """Show ``photo``, entering fullscreen first if not already in it.

        Fullscreen is requested before anything else happens, within this
        call.
        """
        if not self._presentation.is_fullscreen:
            try:
                self._presentation.request_fullscreen()
            except Exception as e:
                logger.warning("Fullscreen request failed: %s", e)
        self._current = photo
        self._after_move()

    def close(self) -> None:
        if self._presentation.is_fullscreen:
            try:
                self._presentation.exit_fullscreen()
            except Exception as e:
                logger.warning("Leaving fullscreen failed: %s", e)
        self._current = None

    def next(self) -> None:
        self._step(1)

    def previous(self) -> None:
        self._step(-1)

    def _step(self, delta: int) -> None:
        photos = self._sequence.photos
        if self._current is None or not photos:
            return
        index = self.current_index
        if index == -1:
            # Open photo dropped out of the sequence (refetch, filter change)
            target = photos[0] if delta > 0 else photos[-1]
        else:
            target = photos[(index + delta) % len(photos)]
        self._current = target
        self._after_move()

    # -------------------------------------------------------------------------
    # Favorites
    # -------------------------------------------------------------------------

    def apply_favorite(self, photo_id: str, is_favorite: bool) -> None:
        """Reflect a favorite change on the open photo immediately."""
        if self._current is not None and self._current.id == photo_id:
            self._current = replace(self._current, is_favorite=is_favorite)

    def toggle_favorite(self) -> Awaitable[MutationResult]:
        """Flip the favorite flag of the open photo.

        The open photo shows the new flag as soon as this returns; the
        returned awaitable carries the write.
        """
        if self._current is None:
            raise ValueError("No photo is open")
        if self._mutations is None:
            raise RuntimeError("Navigator has no mutation coordinator")
        photo = self._current
        return self._mutations.toggle_favorite(
            photo.id, not photo.is_favorite, collection_id=photo.collection_id
        )

    # -------------------------------------------------------------------------
    # Prefetch
    # -------------------------------------------------------------------------

    def _after_move(self) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # Navigation outside an event loop: nothing to schedule on
            return

        photos = self._sequence.photos
        index = self.current_index
        if index == -1 or not photos:
            return

        if self._details is not None and len(photos) > 1:
            neighbors = {photos[(index - 1) % len(photos)].id, photos[(index + 1) % len(photos)].id}
            neighbors.discard(photos[index].id)
            for photo_id in neighbors:
                self._spawn(self._details.prefetch(photo_id))

        if index == len(photos) - 1 and self._sequence.has_more:
            logger.debug("Lightbox reached last loaded photo; loading more")
            self._spawn(self._sequence.load_more())

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Lightbox background load failed: %s", error, exc_info=error)

    async def wait_for_prefetch(self) -> None:
        """Wait until scheduled prefetches and page loads have finished.

        Failures are logged when the task ends and are not raised here.
        """
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def dispose(self) -> None:
        """Detach from the mutation coordinator. Requests in flight finish on their own."""
        if self._remove_listener:
            self._remove_listener()
            self._remove_listener = None
