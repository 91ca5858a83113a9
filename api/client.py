"""Async HTTP client for the photo backend.

Handles bearer-token auth, error mapping and response validation. Every
method issues exactly one HTTP request. Bounding boxes are passed and
returned in API (0-1) coordinates.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import TypeAdapter

import config
from api.errors import ApiError, TransportError, error_for_status
from api.schemas import (
    AcceptInviteResponse,
    ChangeRoleRequest,
    ClusterOut,
    CollectionOut,
    CollectionsResponse,
    CreatePersonRequest,
    CurrentUserOut,
    FaceTagIn,
    FavoriteResponse,
    InviteDetailsOut,
    InviteOut,
    InviteRequest,
    MemberOut,
    MergePeopleRequest,
    MergePeopleResponse,
    PersonOut,
    PhotoDetailOut,
    PhotoOut,
    PhotoPageResponse,
    Role,
    SetThumbnailRequest,
    UpdateFacesRequest,
    UpdateFacesResponse,
    UpdatePersonRequest,
    YearEstimationUpdate,
)

logger = logging.getLogger(__name__)

_PEOPLE = TypeAdapter(list[PersonOut])
_CLUSTERS = TypeAdapter(list[ClusterOut])
_MEMBERS = TypeAdapter(list[MemberOut])
_INVITES = TypeAdapter(list[InviteOut])


def _clean_params(params: dict[str, Any] | None) -> dict[str, Any] | None:
    """Drop unset query parameters."""
    if not params:
        return None
    return {k: v for k, v in params.items() if v is not None and v != ""}


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        detail = body.get("message") or body.get("detail")
        if detail:
            return str(detail)
    return response.reason_phrase or f"HTTP {response.status_code}"


class PhotoApiClient:
    """Typed request/response operations against the photo backend."""

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or config.API_BASE_URL).rstrip("/")
        self._token = token
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else config.HTTP_TIMEOUT_SECONDS,
            transport=transport,
        )

    # -------------------------------------------------------------------------
    # Auth / lifecycle
    # -------------------------------------------------------------------------

    @property
    def has_token(self) -> bool:
        return self._token is not None

    def set_token(self, token: str) -> None:
        """Use ``token`` as bearer token for subsequent requests."""
        self._token = token

    def clear_token(self) -> None:
        self._token = None

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> PhotoApiClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # -------------------------------------------------------------------------
    # Plumbing
    # -------------------------------------------------------------------------

    async def _send(
        self,
        method: str,
        endpoint: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        authenticated: bool = True,
    ) -> httpx.Response:
        headers = {}
        if authenticated and self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        try:
            response = await self._http.request(
                method, endpoint, params=_clean_params(params), json=json, headers=headers
            )
        except httpx.HTTPError as e:
            logger.error("API error [%s %s]: %s", method, endpoint, e)
            raise TransportError(str(e) or type(e).__name__, endpoint=endpoint) from e

        if not response.is_success:
            message = _error_message(response)
            # 404s are routine for faces that were merged or deleted
            level = logging.DEBUG if response.status_code == 404 else logging.ERROR
            logger.log(level, "API error [%s %s]: HTTP %s %s",
                       method, endpoint, response.status_code, message)
            raise error_for_status(response.status_code, message, endpoint)
        return response

    async def _json(self, method: str, endpoint: str, **kwargs) -> Any:
        response = await self._send(method, endpoint, **kwargs)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ApiError(f"Invalid JSON response: {e}", response.status_code, endpoint) from e

    # -------------------------------------------------------------------------
    # Collections
    # -------------------------------------------------------------------------

    async def list_collections(self) -> list[CollectionOut]:
        data = await self._json("GET", "/v1/collections")
        return CollectionsResponse.model_validate(data).collections

    async def get_collection(self, collection_id: str) -> CollectionOut:
        data = await self._json("GET", f"/v1/collections/{collection_id}")
        return CollectionOut.model_validate(data)

    # -------------------------------------------------------------------------
    # Photos
    # -------------------------------------------------------------------------

    async def list_collection_photos(
        self,
        collection_id: str,
        *,
        cursor: str | None = None,
        filters: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> PhotoPageResponse:
        """Fetch one cursor page of a collection's photos.

        Args:
            collection_id: Collection to list.
            cursor: Opaque token from the previous page, None for the first.
            filters: Transport-level filter params (see PhotoFilters.to_params).
            limit: Page size override.
        """
        params = dict(filters or {})
        params["cursor"] = cursor
        params["limit"] = limit
        data = await self._json("GET", f"/v1/collections/{collection_id}/photos", params=params)
        return PhotoPageResponse.model_validate(data)

    async def get_photo_detail(self, photo_id: str) -> PhotoDetailOut:
        data = await self._json("GET", f"/v1/photos/{photo_id}")
        return PhotoDetailOut.model_validate(data)

    async def set_favorite(self, photo_id: str, is_favorite: bool) -> FavoriteResponse:
        """Add or remove a favorite; one request either way."""
        method = "POST" if is_favorite else "DELETE"
        data = await self._json(method, f"/v1/photos/{photo_id}/favorite")
        if data is None:
            return FavoriteResponse(photo_id=photo_id, is_favorite=is_favorite)
        return FavoriteResponse.model_validate(data)

    async def update_year_estimation(
        self, photo_id: str, update: YearEstimationUpdate
    ) -> PhotoOut:
        data = await self._json(
            "PATCH",
            f"/v1/photos/{photo_id}/year-estimation",
            json=update.model_dump(exclude_none=True),
        )
        return PhotoOut.model_validate(data)

    async def update_photo_faces(
        self, photo_id: str, faces: list[FaceTagIn]
    ) -> UpdateFacesResponse:
        body = UpdateFacesRequest(faces=faces)
        data = await self._json("POST", f"/v1/photos/{photo_id}/faces", json=body.model_dump())
        return UpdateFacesResponse.model_validate(data)

    async def fetch_photo(self, photo_id: str, *, thumbnail: bool = False) -> bytes:
        """Download photo bytes (full size or grid thumbnail)."""
        params = {"thumbnail": "true"} if thumbnail else None
        response = await self._send("GET", f"/v1/photos/{photo_id}/image", params=params)
        return response.content

    async def fetch_face_thumbnail(self, face_id: str) -> bytes:
        """Download a face crop. Raises NotFoundError for merged/deleted faces."""
        response = await self._send("GET", f"/v1/faces/{face_id}/thumbnail")
        return response.content

    # -------------------------------------------------------------------------
    # People and clusters
    # -------------------------------------------------------------------------

    async def list_people(
        self, collection_id: str, *, limit: int | None = None, offset: int | None = None
    ) -> list[PersonOut]:
        data = await self._json(
            "GET",
            f"/v1/collections/{collection_id}/people",
            params={"limit": limit, "offset": offset},
        )
        return _PEOPLE.validate_python(data or [])

    async def list_clusters(
        self,
        collection_id: str,
        *,
        limit: int | None = None,
        offset: int | None = None,
        summary: bool = False,
    ) -> list[ClusterOut]:
        """List unnamed clusters.

        With ``summary`` the backend omits face lists and reports
        ``photo_count`` directly, which keeps pages small.
        """
        params = {"limit": limit, "offset": offset, "summary": "true" if summary else None}
        data = await self._json("GET", f"/v1/collections/{collection_id}/clusters", params=params)
        return _CLUSTERS.validate_python(data or [])

    async def get_clusters_by_ids(
        self, collection_id: str, cluster_ids: list[str]
    ) -> list[ClusterOut]:
        data = await self._json(
            "GET",
            f"/v1/collections/{collection_id}/clusters",
            params={"ids": ",".join(cluster_ids)},
        )
        return _CLUSTERS.validate_python(data or [])

    async def create_person(self, collection_id: str, name: str) -> PersonOut:
        body = CreatePersonRequest(name=name, collection_id=collection_id)
        data = await self._json("POST", "/v1/people", json=body.model_dump())
        return PersonOut.model_validate(data)

    async def update_person(self, person_id: str, name: str) -> PersonOut:
        body = UpdatePersonRequest(name=name)
        data = await self._json("PATCH", f"/v1/people/{person_id}", json=body.model_dump())
        return PersonOut.model_validate(data)

    async def merge_people(
        self, collection_id: str, source_id: str, target_id: str
    ) -> MergePeopleResponse:
        """Fold ``source_id`` (person or cluster) into named person ``target_id``."""
        body = MergePeopleRequest(source_id=source_id)
        data = await self._json(
            "POST",
            f"/v1/collections/{collection_id}/people/{target_id}/merge",
            json=body.model_dump(),
        )
        return MergePeopleResponse.model_validate(data)

    async def set_person_thumbnail(self, person_id: str, face_id: str) -> PersonOut:
        body = SetThumbnailRequest(face_id=face_id)
        data = await self._json("PUT", f"/v1/people/{person_id}/thumbnail", json=body.model_dump())
        return PersonOut.model_validate(data)

    # -------------------------------------------------------------------------
    # Members and invites
    # -------------------------------------------------------------------------

    async def list_members(self, collection_id: str) -> list[MemberOut]:
        data = await self._json("GET", f"/v1/collections/{collection_id}/members")
        return _MEMBERS.validate_python(data or [])

    async def remove_member(self, collection_id: str, user_id: str) -> None:
        await self._json("DELETE", f"/v1/collections/{collection_id}/members/{user_id}")

    async def change_member_role(self, collection_id: str, user_id: str, role: Role) -> MemberOut:
        body = ChangeRoleRequest(role=role)
        data = await self._json(
            "PATCH",
            f"/v1/collections/{collection_id}/members/{user_id}",
            json=body.model_dump(),
        )
        return MemberOut.model_validate(data)

    async def invite_to_collection(self, collection_id: str, request: InviteRequest) -> InviteOut:
        data = await self._json(
            "POST", f"/v1/collections/{collection_id}/invites", json=request.model_dump()
        )
        return InviteOut.model_validate(data)

    async def list_pending_invites(self, collection_id: str) -> list[InviteOut]:
        data = await self._json("GET", f"/v1/collections/{collection_id}/invites")
        return _INVITES.validate_python(data or [])

    async def cancel_invite(self, collection_id: str, invite_id: str) -> None:
        await self._json("DELETE", f"/v1/collections/{collection_id}/invites/{invite_id}")

    async def get_invite_details(self, token: str) -> InviteDetailsOut:
        data = await self._json("GET", f"/v1/invites/{token}", authenticated=False)
        return InviteDetailsOut.model_validate(data)

    async def accept_invite(self, token: str) -> AcceptInviteResponse:
        data = await self._json("POST", f"/v1/invites/{token}/accept")
        return AcceptInviteResponse.model_validate(data)

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    async def get_current_user(self) -> CurrentUserOut:
        data = await self._json("GET", "/v1/users/me")
        return CurrentUserOut.model_validate(data)
