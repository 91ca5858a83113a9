"""
Domain types handed to the view layer.

All records are frozen: the sync layer replaces whole records (and whole
cached pages) instead of mutating them, so a view holding a reference never
sees a half-applied update. Boxes are always in UI (0-100) coordinates here.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from geometry import UiBoundingBox


@dataclass(frozen=True)
class FaceAnnotation:
    """A face on a photo; ``person_id`` is None while the face is unresolved."""

    person_id: str | None
    bbox: UiBoundingBox
    person_name: str | None = None
    cluster_id: str | None = None
    face_id: str | None = None


@dataclass(frozen=True)
class Photo:
    """A photo as shown in grids and the lightbox."""

    id: str
    collection_id: str
    path: str = ""
    thumbnail_url: str | None = None
    original_filename: str | None = None
    title: str | None = None
    description: str | None = None
    created_at: str | None = None

    width: int | None = None
    height: int | None = None
    rotation: int = 0

    display_year: int | None = None
    estimated_year: int | None = None
    estimated_year_min: int | None = None
    estimated_year_max: int | None = None
    user_corrected_year: int | None = None

    is_favorite: bool = False
    tags: frozenset[str] = field(default_factory=frozenset)
    faces: tuple[FaceAnnotation, ...] = ()

    @property
    def year(self) -> int | None:
        """User correction wins over the backend's display/estimated year."""
        if self.user_corrected_year is not None:
            return self.user_corrected_year
        if self.display_year is not None:
            return self.display_year
        return self.estimated_year

    @property
    def cluster_ids(self) -> set[str]:
        return {f.cluster_id for f in self.faces if f.cluster_id}


@dataclass(frozen=True)
class PhotoDetail:
    """Photo plus the detail-only fields (year reasoning, face boxes)."""

    photo: Photo
    year_reasoning: str | None = None
    year_confidence: float | None = None
    taken_at: str | None = None


@dataclass(frozen=True)
class PersonLikeEntity:
    """A named person or an anonymous face cluster.

    Both variants share one id space inside a unified collection; a cluster
    that has been named is only ever represented as the named person.
    """

    id: str
    name: str | None
    thumbnail_path: str = ""
    thumbnail_bbox: UiBoundingBox | None = None
    photo_count: int = 0
    photo_ids: tuple[str, ...] = ()
    representative_face_id: str | None = None

    @property
    def is_named(self) -> bool:
        return self.name is not None

    @property
    def is_cluster(self) -> bool:
        return self.name is None
