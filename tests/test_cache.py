"""Tests for the shared query cache and cached queries."""

import asyncio

import pytest

from api.errors import ApiError
from sync.cache import Query, QueryCache, key_matches


def test_key_matches_prefix():
    assert key_matches(("photos", "c1", "f"), ("photos", "c1"))
    assert key_matches(("photos", "c1"), ("photos",))
    assert not key_matches(("photos", "c2"), ("photos", "c1"))
    assert not key_matches(("photos",), ("photos", "c1"))


class TestQueryCache:
    def test_fetch_dedupes_concurrent_callers(self, cache):
        calls = []

        async def loader():
            calls.append(1)
            await asyncio.sleep(0)
            return "value"

        async def scenario():
            return await asyncio.gather(cache.fetch(("k",), loader), cache.fetch(("k",), loader))

        assert asyncio.run(scenario()) == ["value", "value"]
        assert len(calls) == 1

    def test_fresh_value_served_from_cache(self, cache, clock):
        calls = []

        async def loader():
            calls.append(1)
            return len(calls)

        async def scenario():
            first = await cache.fetch(("k",), loader, max_age=60)
            clock.advance(30)
            second = await cache.fetch(("k",), loader, max_age=60)
            clock.advance(31)
            third = await cache.fetch(("k",), loader, max_age=60)
            return first, second, third

        assert asyncio.run(scenario()) == (1, 1, 2)

    def test_forced_fetch_supersedes_older_request(self, cache):
        slow_release = asyncio.Event()

        async def slow():
            await slow_release.wait()
            return "old"

        async def fast():
            return "new"

        async def scenario():
            old_task = asyncio.ensure_future(cache.fetch(("k",), slow))
            await asyncio.sleep(0)
            assert await cache.fetch(("k",), fast, force=True) == "new"
            slow_release.set()
            assert await old_task == "old"

        asyncio.run(scenario())
        assert cache.get(("k",)) == "new"

    def test_clear_discards_inflight_result(self, cache):
        release = asyncio.Event()

        async def loader():
            await release.wait()
            return "value"

        async def scenario():
            task = asyncio.ensure_future(cache.fetch(("k",), loader))
            await asyncio.sleep(0)
            cache.clear()
            release.set()
            await task

        asyncio.run(scenario())
        assert not cache.has(("k",))

    def test_loader_error_propagates(self, cache):
        async def loader():
            raise ApiError("boom", 500)

        with pytest.raises(ApiError):
            asyncio.run(cache.fetch(("k",), loader))
        assert not cache.is_fetching(("k",))

    def test_tracked_task_released_when_done(self, cache):
        release = asyncio.Event()

        async def scenario():
            task = asyncio.ensure_future(release.wait())
            cache.track(("photos", "c1"), task)
            assert cache.inflight(("photos", "c1")) is task
            assert cache.is_fetching(("photos", "c1"))
            release.set()
            await task
            await asyncio.sleep(0)

        asyncio.run(scenario())
        assert cache.inflight(("photos", "c1")) is None

    def test_finished_task_keeps_newer_registration(self, cache):
        async def scenario():
            old = asyncio.ensure_future(asyncio.sleep(0))
            cache.track(("photos", "c1"), old)
            newer = asyncio.ensure_future(asyncio.Event().wait())
            cache.track(("photos", "c1"), newer)
            await old
            await asyncio.sleep(0)
            assert cache.inflight(("photos", "c1")) is newer
            newer.cancel()

        asyncio.run(scenario())

    def test_invalidate_marks_stale_and_notifies(self, cache):
        cache.set(("photos", "c1", "a"), 1)
        cache.set(("photos", "c1", "b"), 2)
        cache.set(("photos", "c2"), 3)
        notified = []

        async def on_invalidate():
            notified.append("c1")

        cache.subscribe(("photos", "c1", "a"), on_invalidate)
        count = asyncio.run(cache.invalidate(("photos", "c1")))

        assert count == 2
        assert notified == ["c1"]
        assert not cache.is_fresh(("photos", "c1", "a"))
        assert cache.is_fresh(("photos", "c2"))
        # Stale values stay readable until replaced
        assert cache.get(("photos", "c1", "a")) == 1

    def test_unsubscribe(self, cache):
        notified = []

        async def on_invalidate():
            notified.append(1)

        unsubscribe = cache.subscribe(("k",), on_invalidate)
        unsubscribe()
        asyncio.run(cache.invalidate(("k",)))
        assert notified == []

    def test_update_replaces_matching_values(self, cache):
        cache.set(("people", "c1"), (1, 2, 3))
        cache.set(("people", "c2"), (1,))
        replaced = cache.update(("people", "c1"), lambda v: tuple(x for x in v if x != 2))
        assert replaced == 1
        assert cache.get(("people", "c1")) == (1, 3)
        assert cache.get(("people", "c2")) == (1,)


class TestQuery:
    def test_disabled_without_key(self, cache):
        query = Query(cache, None, None)
        assert not query.enabled
        assert asyncio.run(query.load()) is None

    def test_error_captured_and_data_kept(self, cache):
        responses = ["first"]

        async def loader():
            if responses:
                return responses.pop()
            raise ApiError("down", 503)

        query = Query(cache, ("k",), loader)
        assert asyncio.run(query.load()) == "first"
        assert asyncio.run(query.refetch()) == "first"
        assert query.error is not None
        assert query.error.status_code == 503
        assert query.data == "first"
        assert not query.is_loading

    def test_refetches_on_invalidation(self, cache):
        values = iter(["v1", "v2"])

        async def loader():
            return next(values)

        query = Query(cache, ("members", "c1"), loader)

        async def scenario():
            await query.load()
            await cache.invalidate(("members",))

        asyncio.run(scenario())
        assert query.data == "v2"

    def test_close_stops_refetching(self, cache):
        calls = []

        async def loader():
            calls.append(1)
            return len(calls)

        query = Query(cache, ("k",), loader)

        async def scenario():
            await query.load()
            query.close()
            await cache.invalidate(("k",))

        asyncio.run(scenario())
        assert calls == [1]
