"""In-memory photo backend used by transport and sync tests.

Serves the same routes as the real API from plain dicts, records every
request, and can be told to fail a route with ``fail(method, path, status)``.
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Header, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from api.schemas import (
    ChangeRoleRequest,
    CreatePersonRequest,
    InviteRequest,
    MergePeopleRequest,
    SetThumbnailRequest,
    UpdateFacesRequest,
    UpdatePersonRequest,
    YearEstimationUpdate,
)

BASE_URL = "http://testserver"
TOKEN = "secret-token"


def make_photo(photo_id: str, collection_id: str = "c1", **fields: Any) -> dict:
    photo = {
        "id": photo_id,
        "collection_id": collection_id,
        "path": f"{photo_id}.jpg",
        "thumbnail_url": f"/v1/photos/{photo_id}/image?thumbnail=true",
        "is_favorite": False,
        "tags": [],
        "people": [],
    }
    photo.update(fields)
    return photo


def make_cluster(cluster_id: str, photo_ids: list[str], **fields: Any) -> dict:
    faces = [
        {
            "id": f"{cluster_id}-f{i}",
            "photo_id": photo_id,
            "bbox": {"x": 0.1, "y": 0.2, "width": 0.3, "height": 0.4},
        }
        for i, photo_id in enumerate(photo_ids)
    ]
    cluster = {"id": cluster_id, "collection_id": "c1", "face_count": len(faces), "faces": faces}
    cluster.update(fields)
    return cluster


class FakeBackend:
    def __init__(self) -> None:
        self.collections: dict[str, dict] = {
            "c1": {"id": "c1", "name": "Family"},
            "c2": {"id": "c2", "name": "Holidays"},
        }
        self.photos: dict[str, list[dict]] = {"c1": [], "c2": []}
        self.people: dict[str, list[dict]] = {"c1": [], "c2": []}
        self.clusters: dict[str, list[dict]] = {"c1": [], "c2": []}
        self.members: dict[str, list[dict]] = {
            "c1": [{"user_id": "u1", "email": "owner@example.com", "role": "owner"}],
        }
        self.invites: dict[str, list[dict]] = {"c1": []}
        self.face_thumbnails: dict[str, bytes] = {}
        self.photo_page_size = 2
        self.requests: list[tuple[str, str, dict]] = []
        self.authorizations: list[str | None] = []
        self._failures: dict[tuple[str, str], int] = {}
        self.app = self._create_app()

    # -------------------------------------------------------------------------
    # Test controls
    # -------------------------------------------------------------------------

    def fail(self, method: str, path: str, status: int = 500) -> None:
        self._failures[(method, path)] = status

    def recover(self, method: str, path: str) -> None:
        self._failures.pop((method, path), None)

    def calls(self, method: str, path: str) -> list[dict]:
        """Query params of every recorded request to ``method path``."""
        return [params for m, p, params in self.requests if m == method and p == path]

    def find_photo(self, photo_id: str) -> dict:
        for photos in self.photos.values():
            for photo in photos:
                if photo["id"] == photo_id:
                    return photo
        raise HTTPException(status_code=404, detail=f"Photo {photo_id} not found")

    # -------------------------------------------------------------------------
    # App
    # -------------------------------------------------------------------------

    def _create_app(self) -> FastAPI:
        app = FastAPI()
        backend = self

        @app.middleware("http")
        async def record(request: Request, call_next):
            backend.requests.append((request.method, request.url.path, dict(request.query_params)))
            backend.authorizations.append(request.headers.get("authorization"))
            status = backend._failures.get((request.method, request.url.path))
            if status is not None:
                return JSONResponse(status_code=status, content={"detail": "Injected failure"})
            return await call_next(request)

        # ---------------------------------------------------------------------
        # Collections and photos
        # ---------------------------------------------------------------------

        @app.get("/v1/collections")
        async def list_collections():
            return {"collections": list(backend.collections.values())}

        @app.get("/v1/collections/{collection_id}")
        async def get_collection(collection_id: str):
            if collection_id not in backend.collections:
                raise HTTPException(status_code=404, detail="Collection not found")
            return backend.collections[collection_id]

        @app.get("/v1/collections/{collection_id}/photos")
        async def list_photos(
            collection_id: str,
            cursor: str | None = None,
            limit: int | None = None,
            favorite: str | None = None,
            person_id: str | None = None,
        ):
            photos = backend.photos.get(collection_id, [])
            if favorite == "true":
                photos = [p for p in photos if p["is_favorite"]]
            if person_id:
                photos = [p for p in photos if any(x["id"] == person_id for x in p["people"])]
            start = int(cursor or 0)
            size = limit or backend.photo_page_size
            page = photos[start:start + size]
            has_more = start + size < len(photos)
            return {
                "photos": page,
                "cursor": str(start + size) if has_more else None,
                "has_more": has_more,
                "total": len(photos),
            }

        @app.get("/v1/photos/{photo_id}")
        async def get_photo(photo_id: str):
            photo = backend.find_photo(photo_id)
            return {**photo, "year_reasoning": "Clothing style", "faces": photo.get("faces", [])}

        @app.post("/v1/photos/{photo_id}/favorite")
        async def add_favorite(photo_id: str):
            backend.find_photo(photo_id)["is_favorite"] = True
            return {"photo_id": photo_id, "is_favorite": True}

        @app.delete("/v1/photos/{photo_id}/favorite", status_code=204)
        async def remove_favorite(photo_id: str):
            backend.find_photo(photo_id)["is_favorite"] = False
            return Response(status_code=204)

        @app.patch("/v1/photos/{photo_id}/year-estimation")
        async def update_year(photo_id: str, update: YearEstimationUpdate):
            photo = backend.find_photo(photo_id)
            photo.update(update.model_dump(exclude_none=True))
            return photo

        @app.post("/v1/photos/{photo_id}/faces")
        async def update_faces(photo_id: str, request: UpdateFacesRequest):
            photo = backend.find_photo(photo_id)
            photo["faces"] = [
                {"id": f"{photo_id}-face{i}", "person_id": face.person_id, "bbox": face.bbox.model_dump()}
                for i, face in enumerate(request.faces)
            ]
            return {"photo_id": photo_id, "faces": photo["faces"]}

        @app.get("/v1/photos/{photo_id}/image")
        async def photo_image(photo_id: str, thumbnail: str | None = None):
            backend.find_photo(photo_id)
            suffix = b"-thumb" if thumbnail == "true" else b"-full"
            return Response(content=photo_id.encode() + suffix, media_type="image/jpeg")

        @app.get("/v1/faces/{face_id}/thumbnail")
        async def face_thumbnail(face_id: str):
            if face_id not in backend.face_thumbnails:
                raise HTTPException(status_code=404, detail="Face not found")
            return Response(content=backend.face_thumbnails[face_id], media_type="image/jpeg")

        # ---------------------------------------------------------------------
        # People and clusters
        # ---------------------------------------------------------------------

        @app.get("/v1/collections/{collection_id}/people")
        async def list_people(collection_id: str, limit: int = 100, offset: int = 0):
            return backend.people.get(collection_id, [])[offset:offset + limit]

        @app.get("/v1/collections/{collection_id}/clusters")
        async def list_clusters(
            collection_id: str,
            limit: int = 100,
            offset: int = 0,
            summary: str | None = None,
            ids: str | None = None,
        ):
            clusters = backend.clusters.get(collection_id, [])
            if ids:
                wanted = ids.split(",")
                return [c for c in clusters if c["id"] in wanted]
            page = clusters[offset:offset + limit]
            if summary == "true":
                return [
                    {**{k: v for k, v in c.items() if k != "faces"},
                     "photo_count": len({f["photo_id"] for f in c["faces"]})}
                    for c in page
                ]
            return page

        @app.post("/v1/people")
        async def create_person(request: CreatePersonRequest):
            person = {
                "id": f"person-{sum(len(p) for p in backend.people.values()) + 1}",
                "name": request.name,
                "collection_id": request.collection_id,
                "photo_count": 0,
            }
            backend.people.setdefault(request.collection_id, []).append(person)
            return person

        def find_person(person_id: str) -> dict:
            for people in backend.people.values():
                for person in people:
                    if person["id"] == person_id:
                        return person
            raise HTTPException(status_code=404, detail="Person not found")

        @app.patch("/v1/people/{person_id}")
        async def update_person(person_id: str, request: UpdatePersonRequest):
            person = find_person(person_id)
            person["name"] = request.name
            return person

        @app.put("/v1/people/{person_id}/thumbnail")
        async def set_thumbnail(person_id: str, request: SetThumbnailRequest):
            person = find_person(person_id)
            person["representative_face_id"] = request.face_id
            person["thumbnail_url"] = f"/api/faces/{request.face_id}/thumbnail"
            return person

        @app.post("/v1/collections/{collection_id}/people/{target_id}/merge")
        async def merge(collection_id: str, target_id: str, request: MergePeopleRequest):
            target = find_person(target_id)
            people = backend.people[collection_id]
            clusters = backend.clusters[collection_id]
            moved = 0
            for cluster in [c for c in clusters if c["id"] == request.source_id]:
                moved += len(cluster["faces"])
                target["photo_count"] += len({f["photo_id"] for f in cluster["faces"]})
                clusters.remove(cluster)
            for person in [p for p in people if p["id"] == request.source_id]:
                target["photo_count"] += person["photo_count"]
                people.remove(person)
            return {"target_id": target_id, "source_id": request.source_id, "moved_face_count": moved}

        # ---------------------------------------------------------------------
        # Members, invites, users
        # ---------------------------------------------------------------------

        @app.get("/v1/collections/{collection_id}/members")
        async def list_members(collection_id: str):
            return backend.members.get(collection_id, [])

        @app.delete("/v1/collections/{collection_id}/members/{user_id}", status_code=204)
        async def remove_member(collection_id: str, user_id: str):
            members = backend.members.get(collection_id, [])
            backend.members[collection_id] = [m for m in members if m["user_id"] != user_id]
            return Response(status_code=204)

        @app.patch("/v1/collections/{collection_id}/members/{user_id}")
        async def change_role(collection_id: str, user_id: str, request: ChangeRoleRequest):
            for member in backend.members.get(collection_id, []):
                if member["user_id"] == user_id:
                    member["role"] = request.role
                    return member
            raise HTTPException(status_code=404, detail="Member not found")

        @app.post("/v1/collections/{collection_id}/invites")
        async def invite(collection_id: str, request: InviteRequest):
            invites = backend.invites.setdefault(collection_id, [])
            created = {"id": f"inv-{len(invites) + 1}", "email": request.email, "role": request.role}
            invites.append(created)
            return created

        @app.get("/v1/collections/{collection_id}/invites")
        async def list_invites(collection_id: str):
            return backend.invites.get(collection_id, [])

        @app.delete("/v1/collections/{collection_id}/invites/{invite_id}", status_code=204)
        async def cancel_invite(collection_id: str, invite_id: str):
            invites = backend.invites.get(collection_id, [])
            backend.invites[collection_id] = [i for i in invites if i["id"] != invite_id]
            return Response(status_code=204)

        @app.get("/v1/invites/{token}")
        async def invite_details(token: str):
            if token != "inv-token":
                raise HTTPException(status_code=404, detail="Invite not found")
            return {"collection_id": "c2", "collection_name": "Holidays", "role": "viewer"}

        @app.post("/v1/invites/{token}/accept")
        async def accept_invite(token: str):
            if token != "inv-token":
                raise HTTPException(status_code=404, detail="Invite not found")
            return {"collection_id": "c2", "role": "viewer"}

        @app.get("/v1/users/me")
        async def current_user(authorization: str | None = Header(default=None)):
            if authorization != f"Bearer {TOKEN}":
                raise HTTPException(status_code=401, detail="Not authenticated")
            return {"id": "u1", "email": "owner@example.com", "name": "Owner"}

        return app
