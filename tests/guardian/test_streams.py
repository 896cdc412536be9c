"""
Stream Combinator Tests.

============================================================
PURPOSE
============================================================
Ordering, completion, failure and cancellation behavior of the
async-iterator combinators.

============================================================
"""

import asyncio

import pytest

from guardian.streams import (
    combine_latest,
    concat_all,
    distinct,
    distinct_until_changed,
    filter_none,
    first,
    from_iterable,
    merge_map,
    poll,
)


async def to_list(stream):
    return [item async for item in stream]


async def failing(error, *values):
    for value in values:
        yield value
    raise error


# ============================================================
# SIMPLE OPERATORS
# ============================================================

class TestSimpleOperators:
    """Tests for single-source operators."""

    @pytest.mark.asyncio
    async def test_from_iterable(self):
        assert await to_list(from_iterable([1, 2, 3])) == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_filter_none(self):
        assert await to_list(filter_none(from_iterable([1, None, 2]))) == [1, 2]

    @pytest.mark.asyncio
    async def test_concat_all(self):
        assert await to_list(concat_all(from_iterable([[1, 2], [], [3]]))) == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_distinct(self):
        stream = distinct(from_iterable(["0", "1", "0", "2", "1"]))
        assert await to_list(stream) == ["0", "1", "2"]

    @pytest.mark.asyncio
    async def test_distinct_with_key(self):
        stream = distinct(from_iterable(["a", "A", "b"]), key=str.lower)
        assert await to_list(stream) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_distinct_until_changed(self):
        stream = distinct_until_changed(from_iterable([1, 1, 2, 2, 1]))
        assert await to_list(stream) == [1, 2, 1]

    @pytest.mark.asyncio
    async def test_first(self):
        assert await first(from_iterable([7, 8])) == 7
        assert await first(from_iterable([])) is None


# ============================================================
# MERGE MAP
# ============================================================

class TestMergeMap:
    """Tests for merge_map."""

    @pytest.mark.asyncio
    async def test_merges_every_inner_stream(self):
        def project(n):
            return from_iterable([n] * n)

        result = await to_list(merge_map(from_iterable([1, 2, 3]), project))

        assert sorted(result) == [1, 2, 2, 3, 3, 3]

    @pytest.mark.asyncio
    async def test_completes_with_empty_source(self):
        assert await to_list(merge_map(from_iterable([]), from_iterable)) == []

    @pytest.mark.asyncio
    async def test_inner_failure_reported_when_handler_set(self):
        errors = []

        def project(n):
            if n == 2:
                return failing(RuntimeError("inner"), "partial")
            return from_iterable([n])

        result = await to_list(merge_map(from_iterable([1, 2, 3]), project, on_error=errors.append))

        assert sorted(result, key=str) == [1, 3, "partial"]
        assert len(errors) == 1
        assert str(errors[0]) == "inner"

    @pytest.mark.asyncio
    async def test_inner_failure_raises_without_handler(self):
        def project(n):
            return failing(RuntimeError("inner"))

        with pytest.raises(RuntimeError, match="inner"):
            await to_list(merge_map(from_iterable([1]), project))

    @pytest.mark.asyncio
    async def test_source_failure_raises(self):
        with pytest.raises(ValueError, match="outer"):
            await to_list(merge_map(failing(ValueError("outer"), 1), from_iterable))

    @pytest.mark.asyncio
    async def test_close_cancels_inner_streams(self):
        closed = []

        async def endless(n):
            try:
                yield n
                await asyncio.Event().wait()
            finally:
                closed.append(n)

        stream = merge_map(from_iterable([1, 2]), endless)
        received = {await anext(stream), await anext(stream)}
        await stream.aclose()

        assert received == {1, 2}
        assert sorted(closed) == [1, 2]


# ============================================================
# COMBINE LATEST
# ============================================================

class TestCombineLatest:
    """Tests for combine_latest."""

    @pytest.mark.asyncio
    async def test_waits_for_every_source(self, feed):
        a, b = feed(), feed()
        stream = combine_latest(a.stream(), b.stream())
        pending = asyncio.ensure_future(anext(stream))
        a.push(1)
        await asyncio.sleep(0.05)

        assert not pending.done()

        b.push("x")
        assert await asyncio.wait_for(pending, 1) == (1, "x")
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_emits_latest_tuple_on_every_change(self, feed):
        a, b = feed(1), feed("x")
        stream = combine_latest(a.stream(), b.stream())

        assert await asyncio.wait_for(anext(stream), 1) == (1, "x")
        a.push(2)
        assert await asyncio.wait_for(anext(stream), 1) == (2, "x")
        b.push("y")
        assert await asyncio.wait_for(anext(stream), 1) == (2, "y")

        await stream.aclose()

    @pytest.mark.asyncio
    async def test_completes_when_a_source_ends_empty(self, feed):
        live = feed(1)
        result = await asyncio.wait_for(
            to_list(combine_latest(live.stream(), from_iterable([]))),
            1,
        )

        assert result == []
        await asyncio.sleep(0)
        assert live.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_completes_when_every_source_ends(self):
        result = await to_list(combine_latest(from_iterable([1]), from_iterable(["a"])))

        assert result[-1] == (1, "a")

    @pytest.mark.asyncio
    async def test_source_failure_raises(self, feed):
        live = feed(1)

        with pytest.raises(RuntimeError, match="gone"):
            await asyncio.wait_for(
                to_list(combine_latest(live.stream(), failing(RuntimeError("gone"), 2))),
                1,
            )

    @pytest.mark.asyncio
    async def test_no_sources(self):
        assert await to_list(combine_latest()) == []


# ============================================================
# POLLING
# ============================================================

class TestPoll:
    """Tests for poll."""

    @pytest.mark.asyncio
    async def test_emits_changed_non_null_values(self):
        values = iter([None, "1", "1", None, "2", "2", "3"])

        async def fetch():
            return next(values, "3")

        stream = poll(fetch, period_ms=1)
        result = [await asyncio.wait_for(anext(stream), 1) for _ in range(3)]
        await stream.aclose()

        assert result == ["1", "2", "3"]

    @pytest.mark.asyncio
    async def test_fetch_error_ends_stream(self):
        async def fetch():
            raise ConnectionError("down")

        with pytest.raises(ConnectionError):
            await anext(poll(fetch, period_ms=1))
