"""Tests for the unified people/cluster entity list."""

import asyncio

import pytest

from api.errors import ApiError
from api.schemas import ClusterOut, PersonOut
from sync.paging import TieredPageSize
from sync.people import (
    ClusterMetadata,
    EntityUnifier,
    cluster_to_entity,
    extract_cluster_ids,
    person_to_entity,
    unify,
)
from sync.types import FaceAnnotation, Photo
from geometry import create_ui_bbox
from tests.fake_backend import make_cluster


def cluster(cluster_id, photo_ids, **fields):
    return ClusterOut.model_validate(make_cluster(cluster_id, photo_ids, **fields))


class TestClusterToEntity:
    def test_counts_distinct_photos(self):
        entity = cluster_to_entity(cluster("k1", ["p1", "p1", "p2"]))
        assert entity.photo_count == 2
        assert entity.photo_ids == ("p1", "p2")
        assert entity.is_cluster

    def test_photo_ids_from_urls(self):
        entity = cluster_to_entity(
            cluster("k1", ["http://x/api/photos/aa11/image", "aa11", "bb22"])
        )
        assert entity.photo_count == 2

    def test_summary_falls_back_to_backend_count(self):
        summary = ClusterOut(id="k1", photo_count=7, face_count=9)
        assert cluster_to_entity(summary).photo_count == 7
        assert cluster_to_entity(ClusterOut(id="k2", face_count=4)).photo_count == 4
        assert cluster_to_entity(ClusterOut(id="k3")).photo_count == 0

    def test_representative_face_flagged(self):
        raw = make_cluster("k1", ["p1", "p2"])
        raw["faces"][1]["is_representative"] = True
        raw["faces"][1]["bbox"] = {"x": 0.5, "y": 0.5, "width": 0.25, "height": 0.25}
        entity = cluster_to_entity(ClusterOut.model_validate(raw))
        assert entity.thumbnail_path == "p2"
        assert entity.thumbnail_bbox.as_tuple() == pytest.approx((50, 50, 25, 25))

    def test_representative_face_defaults_to_first(self):
        entity = cluster_to_entity(cluster("k1", ["p1", "p2"]))
        assert entity.thumbnail_path == "p1"
        assert entity.representative_face_id == "k1-f0"
        assert entity.thumbnail_bbox.as_tuple() == pytest.approx((10, 20, 30, 40))

    def test_backend_thumbnail_preferred(self):
        entity = cluster_to_entity(
            cluster("k1", ["p1"], representative_thumbnail_url="/api/faces/ff/thumbnail")
        )
        assert entity.thumbnail_path == "/api/faces/ff/thumbnail"


class TestPersonToEntity:
    def test_keeps_backend_values(self):
        person = PersonOut(
            id="alice",
            name="Alice",
            thumbnail_url="https://host/api/faces/ab12/thumbnail?v=2",
            thumbnail_bbox={"x": 0.1, "y": 0.1, "width": 0.5, "height": 0.5},
            photo_count=12,
        )
        entity = person_to_entity(person)
        assert entity.is_named
        assert entity.photo_count == 12
        assert entity.thumbnail_path == "/api/faces/ab12/thumbnail"
        assert entity.thumbnail_bbox.as_tuple() == pytest.approx((10, 10, 50, 50))


class TestUnify:
    def test_named_first_without_collisions(self):
        people = [person_to_entity(PersonOut(id=i, name=i.upper())) for i in ("a", "b")]
        clusters = [(c, cluster_to_entity(c)) for c in (cluster(k, ["p1"]) for k in ("k1", "k2", "k3"))]
        entities = unify(people, clusters)
        assert [e.id for e in entities] == ["a", "b", "k1", "k2", "k3"]
        assert len({e.id for e in entities}) == 5

    def test_skips_bound_and_colliding_clusters(self):
        people = [person_to_entity(PersonOut(id="a", name="A"))]
        raw = [cluster("a", ["p1"]), cluster("k1", ["p1"], person_id="a"), cluster("k2", ["p2"])]
        entities = unify(people, [(c, cluster_to_entity(c)) for c in raw])
        assert [e.id for e in entities] == ["a", "k2"]

    def test_duplicates_within_side_keep_first(self):
        people = [
            person_to_entity(PersonOut(id="a", name="First")),
            person_to_entity(PersonOut(id="a", name="Second")),
        ]
        assert [e.name for e in unify(people, [])] == ["First"]


def test_extract_cluster_ids():
    box = create_ui_bbox(1, 1, 10, 10)
    photos = [
        Photo(id="p1", collection_id="c1", faces=(
            FaceAnnotation(person_id=None, bbox=box, cluster_id="k2"),
            FaceAnnotation(person_id="a", bbox=box),
        )),
        Photo(id="p2", collection_id="c1", faces=(
            FaceAnnotation(person_id=None, bbox=box, cluster_id="k1"),
            FaceAnnotation(person_id=None, bbox=box, cluster_id="k2"),
        )),
    ]
    assert extract_cluster_ids(photos) == ["k2", "k1"]


class TestEntityUnifier:
    @pytest.fixture
    def populated(self, backend):
        backend.people["c1"] = [
            {"id": "alice", "name": "Alice", "photo_count": 3},
            {"id": "bob", "name": "Bob", "photo_count": 1},
        ]
        backend.clusters["c1"] = [
            make_cluster("k1", ["p1", "p1", "p2"]),
            make_cluster("k2", ["p3"]),
            make_cluster("k3", ["p4", "p5"]),
        ]
        backend.people["c2"] = [{"id": "carol", "name": "Carol", "photo_count": 2}]
        return backend

    def test_unified_list(self, api_client, cache, populated):
        unifier = EntityUnifier(api_client, cache, "c1")
        asyncio.run(unifier.load())

        entities = unifier.entities
        assert len(entities) == 5
        assert [e.id for e in entities] == ["alice", "bob", "k1", "k2", "k3"]
        assert unifier.get("k1").photo_count == 2
        assert [e.id for e in unifier.named] == ["alice", "bob"]
        assert populated.calls("GET", "/v1/collections/c1/clusters")[0]["summary"] == "true"

    def test_first_page_uses_small_tier(self, api_client, cache, populated):
        unifier = EntityUnifier(api_client, cache, "c1")
        asyncio.run(unifier.load())
        assert populated.calls("GET", "/v1/collections/c1/people")[0] == {"limit": "25", "offset": "0"}

    def test_load_more_named_first(self, api_client, cache, backend):
        backend.people["c1"] = [{"id": f"n{i}", "name": f"N{i}", "photo_count": 1} for i in range(3)]
        backend.clusters["c1"] = [make_cluster(f"k{i}", ["p1"]) for i in range(3)]
        unifier = EntityUnifier(
            api_client, cache, "c1",
            people_page_size=TieredPageSize(2, 2),
            clusters_page_size=TieredPageSize(2, 2),
        )

        async def scenario():
            await unifier.load()
            await unifier.load_more()
            assert [e.id for e in unifier.named] == ["n0", "n1", "n2"]
            assert len(unifier.anonymous) == 2
            await unifier.load_more()

        asyncio.run(scenario())
        assert len(unifier.anonymous) == 3
        assert not unifier.has_more

    def test_partial_failure_keeps_other_side(self, api_client, cache, populated):
        populated.fail("GET", "/v1/collections/c1/clusters", 500)
        unifier = EntityUnifier(api_client, cache, "c1")
        asyncio.run(unifier.load())

        assert isinstance(unifier.error, ApiError)
        assert [e.id for e in unifier.entities] == ["alice", "bob"]

    def test_load_more_before_load_fetches_first_page(self, api_client, cache, backend):
        backend.people["c1"] = [{"id": "alice", "name": "Alice", "photo_count": 3}]
        unifier = EntityUnifier(api_client, cache, "c1")
        asyncio.run(unifier.load_more())
        assert [e.id for e in unifier.entities] == ["alice"]

    def test_load_more_retries_failed_first_people_page(self, api_client, cache, populated):
        populated.fail("GET", "/v1/collections/c1/people", 503)
        unifier = EntityUnifier(api_client, cache, "c1")
        asyncio.run(unifier.load())
        assert isinstance(unifier.error, ApiError)
        assert [e.id for e in unifier.entities] == ["k1", "k2", "k3"]

        populated.recover("GET", "/v1/collections/c1/people")
        asyncio.run(unifier.load_more())
        assert unifier.error is None
        assert [e.id for e in unifier.entities] == ["alice", "bob", "k1", "k2", "k3"]
        assert len(populated.calls("GET", "/v1/collections/c1/people")) == 2
        assert len(populated.calls("GET", "/v1/collections/c1/clusters")) == 1

    def test_refresh_recomputes(self, api_client, cache, populated):
        unifier = EntityUnifier(api_client, cache, "c1")
        asyncio.run(unifier.load())
        populated.people["c1"][0]["name"] = "Alicia"
        asyncio.run(unifier.refresh())
        assert unifier.get("alice").name == "Alicia"

    def test_set_collection(self, api_client, cache, populated):
        unifier = EntityUnifier(api_client, cache, "c1")
        asyncio.run(unifier.load())
        unifier.set_collection("c2")
        assert unifier.entities == []
        asyncio.run(unifier.load())
        assert [e.id for e in unifier.entities] == ["carol"]

    def test_without_clusters(self, api_client, cache, populated):
        unifier = EntityUnifier(api_client, cache, "c1", include_clusters=False)
        asyncio.run(unifier.load())
        assert [e.id for e in unifier.entities] == ["alice", "bob"]
        assert populated.calls("GET", "/v1/collections/c1/clusters") == []


class TestClusterMetadata:
    def test_fetches_requested_ids(self, api_client, cache, backend):
        backend.clusters["c1"] = [make_cluster("k1", ["p1"]), make_cluster("k2", ["p2", "p3"])]
        query = ClusterMetadata(api_client, cache).query("c1", ["k2", "k2"])
        entities = asyncio.run(query.load())
        assert [e.id for e in entities] == ["k2"]
        assert entities[0].photo_count == 2
        assert backend.calls("GET", "/v1/collections/c1/clusters")[-1] == {"ids": "k2"}

    def test_disabled_for_no_ids(self, api_client, cache):
        query = ClusterMetadata(api_client, cache).query("c1", [])
        assert not query.enabled
