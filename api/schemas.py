"""Pydantic schemas for photo API request bodies and response models.

Domain types the sync layer hands to views (Photo, PersonLikeEntity, ...)
live in sync/types.py. These schemas define the exact wire format sent to /
returned by each backend endpoint. Bounding boxes on the wire are always in
API (0-1) coordinates; conversion happens in the sync layer.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from geometry import ApiBoundingBox, create_api_bbox

Role = Literal["owner", "admin", "viewer"]


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------

class BboxOut(_WireModel):
    """Bounding box as sent by the backend (normalised 0-1)."""
    x: float
    y: float
    width: float
    height: float

    def to_api_bbox(self) -> ApiBoundingBox:
        """Validate into the typed API box; raises CoordinateRangeError."""
        return create_api_bbox(self.x, self.y, self.width, self.height)


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------

class CollectionOut(_WireModel):
    id: str
    name: str
    shopify_order_id: str | None = None
    created_at: str | None = None
    photo_count: int = 0
    member_count: int = 0
    user_role: Role = "viewer"


class CollectionsResponse(_WireModel):
    """Response for GET /v1/collections."""
    collections: list[CollectionOut] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Photos
# ---------------------------------------------------------------------------

class PhotoPersonOut(_WireModel):
    """Lean person reference embedded in a photo list item."""
    id: str | None = None  # None for unresolved faces
    name: str | None = None
    cluster_id: str | None = None
    face_id: str | None = None
    face_bbox: BboxOut | None = None


class PhotoOut(_WireModel):
    id: str
    collection_id: str
    path: str = ""
    thumbnail_url: str | None = None
    original_filename: str | None = None
    created_at: str | None = None
    title: str | None = None
    description: str | None = None

    display_year: int | None = None
    estimated_year: int | None = None
    estimated_year_min: int | None = None
    estimated_year_max: int | None = None
    user_corrected_year: int | None = None

    width: int | None = None
    height: int | None = None
    rotation: int = 0

    is_favorite: bool = False
    tags: list[str] = Field(default_factory=list)
    people: list[PhotoPersonOut] = Field(default_factory=list)


class PhotoPageResponse(_WireModel):
    """Response for GET /v1/collections/{id}/photos (cursor paginated)."""
    photos: list[PhotoOut] = Field(default_factory=list)
    cursor: str | None = None
    has_more: bool = False
    total: int | None = None

    @property
    def next_cursor(self) -> str | None:
        """Cursor for the following page, or None once exhausted."""
        return self.cursor if self.has_more and self.cursor else None


class FaceOut(_WireModel):
    """Face with its box, as returned by photo detail and face tagging."""
    id: str
    person_id: str | None = None
    person_name: str | None = None
    cluster_id: str | None = None
    bbox: BboxOut


class PhotoDetailOut(PhotoOut):
    """Response for GET /v1/photos/{id}."""
    year_reasoning: str | None = None
    year_confidence: float | None = None
    taken_at: str | None = None
    faces: list[FaceOut] = Field(default_factory=list)


class FavoriteResponse(_WireModel):
    photo_id: str
    is_favorite: bool


class YearEstimationUpdate(_WireModel):
    """Body for PATCH /v1/photos/{id}/year-estimation."""
    user_corrected_year: int | None = None
    user_corrected_year_min: int | None = None
    user_corrected_year_max: int | None = None
    user_year_reasoning: str | None = None


class FaceTagIn(_WireModel):
    """One face in the body of POST /v1/photos/{id}/faces."""
    person_id: str | None = None
    bbox: BboxOut


class UpdateFacesRequest(_WireModel):
    faces: list[FaceTagIn] = Field(default_factory=list)


class UpdateFacesResponse(_WireModel):
    photo_id: str
    faces: list[FaceOut] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# People and clusters
# ---------------------------------------------------------------------------

class PersonOut(_WireModel):
    """Named person."""
    id: str
    name: str
    collection_id: str | None = None
    thumbnail_url: str | None = None
    thumbnail_bbox: BboxOut | None = None
    representative_face_id: str | None = None
    photo_count: int = 0


class CreatePersonRequest(_WireModel):
    name: str
    collection_id: str


class UpdatePersonRequest(_WireModel):
    name: str


class MergePeopleRequest(_WireModel):
    """Body for POST /v1/collections/{id}/people/{target}/merge."""
    source_id: str


class MergePeopleResponse(_WireModel):
    target_id: str
    source_id: str
    moved_face_count: int = 0


class SetThumbnailRequest(_WireModel):
    face_id: str


class ClusterFaceOut(_WireModel):
    id: str
    photo_id: str  # sometimes a bare id, sometimes a URL embedding it
    bbox: BboxOut
    is_representative: bool = False


class ClusterOut(_WireModel):
    """Automatically grouped faces not (yet) assigned to a named person."""
    id: str
    collection_id: str | None = None
    person_id: str | None = None
    representative_face_id: str | None = None
    representative_thumbnail_url: str | None = None
    face_count: int | None = None
    photo_count: int | None = None  # only in summary responses
    faces: list[ClusterFaceOut] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Members, invites, users
# ---------------------------------------------------------------------------

class MemberOut(_WireModel):
    user_id: str
    email: str | None = None
    name: str | None = None
    role: Role
    joined_at: str | None = None


class InviteRequest(_WireModel):
    email: str
    role: Literal["admin", "viewer"] = "viewer"


class InviteOut(_WireModel):
    id: str
    email: str
    role: Role
    created_at: str | None = None
    expires_at: str | None = None


class InviteDetailsOut(_WireModel):
    """Public invite preview (no auth required)."""
    collection_id: str
    collection_name: str
    inviter_name: str | None = None
    role: Role = "viewer"
    expires_at: str | None = None


class AcceptInviteResponse(_WireModel):
    collection_id: str
    role: Role = "viewer"


class ChangeRoleRequest(_WireModel):
    role: Role


class CurrentUserOut(_WireModel):
    id: str
    email: str | None = None
    name: str | None = None
