"""Tests for multi-provider resolution and combine-latest watching."""

from __future__ import annotations

import asyncio
import functools

import pytest

from layerconf.combine import combine_latest
from layerconf.errors import ValueNotConvertibleError
from layerconf.multi import MultiProvider, MultiSnapshot
from layerconf.provider import LookupResult
from layerconf.providers.environment import EnvironmentVariablesProvider
from layerconf.providers.memory import InMemoryProvider, MutableInMemoryProvider
from layerconf.updates import UpdateStream
from layerconf.values import ConfigType, ConfigValue
from tests.utils import RaisingProvider, key, watching


@pytest.fixture
def env_memory_chain() -> MultiProvider:
    """Environment {"a": 1} in front of memory {"a": 2, "b": 3}."""
    return MultiProvider([
        EnvironmentVariablesProvider({"A": "1"}),
        InMemoryProvider({"a": 2, "b": 3}),
    ])


class TestMultiProviderValue:
    """Test first-match-wins resolution for get and fetch."""

    def test_empty_chain_rejected(self) -> None:
        with pytest.raises(ValueError):
            MultiProvider([])

    def test_env_memory_chain(self, env_memory_chain: MultiProvider) -> None:
        """Test the earlier provider winning and falling through to later ones."""
        assert env_memory_chain.value(key("a"), ConfigType.INT).value == ConfigValue.of(1)
        assert env_memory_chain.value(key("b"), ConfigType.INT).value == ConfigValue.of(3)
        assert env_memory_chain.value(key("c"), ConfigType.INT) == LookupResult("c", None)

    def test_later_providers_not_consulted(self) -> None:
        """Test that resolution stops at the first value."""
        trailing = RaisingProvider(RuntimeError("never reached"))
        chain = MultiProvider([InMemoryProvider({"a": "x"}), trailing])
        assert chain.value(key("a"), ConfigType.STRING).value == ConfigValue.of("x")
        assert trailing.lookups == 0

    def test_error_aborts_chain(self) -> None:
        """Test that a raising provider short-circuits later providers."""
        failing = RaisingProvider(ValueNotConvertibleError("a", ConfigType.INT))
        trailing = InMemoryProvider({"a": 1})
        chain = MultiProvider([InMemoryProvider({}), failing, trailing])
        with pytest.raises(ValueNotConvertibleError):
            chain.value(key("a"), ConfigType.INT)
        assert failing.lookups == 1

    def test_resolution_records_consulted_providers(self, env_memory_chain: MultiProvider) -> None:
        """Test the per-provider results kept for access reporting."""
        resolution = env_memory_chain.resolve_value(key("b"), ConfigType.INT)
        assert [r.provider_name for r in resolution.provider_results] == [
            "EnvironmentVariablesProvider",
            "InMemoryProvider[]",
        ]
        assert resolution.provider_results[0].result.unwrap().value is None
        assert resolution.result.unwrap() == ConfigValue.of(3)

    def test_value_is_idempotent(self, env_memory_chain: MultiProvider) -> None:
        first = env_memory_chain.value(key("a"), ConfigType.INT)
        assert all(env_memory_chain.value(key("a"), ConfigType.INT) == first for _ in range(5))

    @pytest.mark.asyncio
    async def test_fetch_matches_value(self, env_memory_chain: MultiProvider) -> None:
        fetched = await env_memory_chain.fetch_value(key("b"), ConfigType.INT)
        assert fetched == env_memory_chain.value(key("b"), ConfigType.INT)

    @pytest.mark.asyncio
    async def test_fetch_error_aborts_chain(self) -> None:
        chain = MultiProvider([RaisingProvider(RuntimeError("down")), InMemoryProvider({"a": "x"})])
        with pytest.raises(RuntimeError, match="down"):
            await chain.fetch_value(key("a"), ConfigType.STRING)


class TestMultiSnapshot:
    """Test composite snapshots."""

    def test_snapshot_resolves_in_order(self, env_memory_chain: MultiProvider) -> None:
        snapshot = env_memory_chain.snapshot()
        assert isinstance(snapshot, MultiSnapshot)
        assert snapshot.value(key("a"), ConfigType.INT).value == ConfigValue.of(1)
        assert snapshot.value(key("b"), ConfigType.INT).value == ConfigValue.of(3)

    def test_snapshot_is_stable(self) -> None:
        """Test that a snapshot keeps answering from the values it captured."""
        mutable = MutableInMemoryProvider({"a": 1, "b": 1})
        chain = MultiProvider([mutable])
        snapshot = chain.snapshot()
        mutable.set_value("a", 2)
        mutable.set_value("b", 2)
        assert snapshot.value(key("a"), ConfigType.INT).value == ConfigValue.of(1)
        assert snapshot.value(key("b"), ConfigType.INT).value == ConfigValue.of(1)


class TestMultiProviderWatch:
    """Test combine-latest watching across providers."""

    @pytest.mark.asyncio
    async def test_first_element_is_resolved_value(self, env_memory_chain: MultiProvider) -> None:
        async with watching(lambda h: env_memory_chain.watch_value(key("b"), ConfigType.INT, h)) as updates:
            first = await updates.next()
            assert first.unwrap().value == ConfigValue.of(3)

    @pytest.mark.asyncio
    async def test_higher_priority_change_wins(self) -> None:
        """Test recomputation when an upstream provider changes."""
        front = MutableInMemoryProvider({}, name="front")
        back = InMemoryProvider({"a": "back"})
        chain = MultiProvider([front, back])
        async with watching(lambda h: chain.watch_value(key("a"), ConfigType.STRING, h)) as updates:
            assert (await updates.next()).unwrap().value == ConfigValue.of("back")
            front.set_value("a", "front")
            assert (await updates.next()).unwrap().value == ConfigValue.of("front")
            front.set_value("a", None)
            assert (await updates.next()).unwrap().value == ConfigValue.of("back")

    @pytest.mark.asyncio
    async def test_lower_value_wins_over_higher_failure(self) -> None:
        """Test that a failing provider does not hide a later provider's value."""
        front = MutableInMemoryProvider({"a": "text"})
        back = InMemoryProvider({"a": 1})
        chain = MultiProvider([front, back])
        async with watching(lambda h: chain.watch_resolutions(key("a"), ConfigType.INT, h)) as updates:
            first = await updates.next()
            assert first.result.unwrap() == ConfigValue.of(1)
            assert not first.provider_results[0].result.ok
            front.set_value("a", 2)
            assert (await updates.next()).result.unwrap() == ConfigValue.of(2)

    @pytest.mark.asyncio
    async def test_failure_surfaces_when_no_value(self) -> None:
        """Test that an error surfaces only when no provider has a value."""
        front = MutableInMemoryProvider({"a": "text"})
        middle = InMemoryProvider({})
        back = MutableInMemoryProvider({})
        chain = MultiProvider([front, middle, back])
        async with watching(lambda h: chain.watch_value(key("a"), ConfigType.INT, h)) as updates:
            first = await updates.next()
            assert isinstance(first.error, ValueNotConvertibleError)
            back.set_value("a", 3)
            assert (await updates.next()).unwrap().value == ConfigValue.of(3)
            front.set_value("a", None)
            assert (await updates.next()).unwrap().value == ConfigValue.of(3)

    @pytest.mark.asyncio
    async def test_first_failure_surfaces_when_all_fail(self) -> None:
        front = InMemoryProvider({"a": "front"}, name="front")
        back = InMemoryProvider({"a": True}, name="back")
        chain = MultiProvider([front, back])
        async with watching(lambda h: chain.watch_resolutions(key("a"), ConfigType.INT, h)) as updates:
            first = await updates.next()
            assert first.result.error is first.provider_results[0].result.error
            assert len(first.provider_results) == 2

    @pytest.mark.asyncio
    async def test_all_absent_is_success_none(self) -> None:
        chain = MultiProvider([InMemoryProvider({}), InMemoryProvider({})])
        async with watching(lambda h: chain.watch_value(key("a"), ConfigType.INT, h)) as updates:
            first = await updates.next()
            assert first.ok
            assert first.value.value is None

    @pytest.mark.asyncio
    async def test_repeated_emissions_not_deduplicated(self) -> None:
        """Test that upstream changes re-emit even if the result is the same."""
        front = InMemoryProvider({"a": "front"})
        back = MutableInMemoryProvider({"b": 1})
        chain = MultiProvider([front, back])
        async with watching(lambda h: chain.watch_value(key("a"), ConfigType.STRING, h)) as updates:
            await updates.next()
            # Watchers of "a" on the back provider are notified by a change to "a"
            back.set_value("a", "back")
            again = await updates.next()
            assert again.unwrap().value == ConfigValue.of("front")

    @pytest.mark.asyncio
    async def test_watch_snapshot(self) -> None:
        mutable = MutableInMemoryProvider({"a": 1})
        chain = MultiProvider([mutable, InMemoryProvider({"b": 2})])
        async with watching(chain.watch_snapshot) as updates:
            first = await updates.next()
            assert isinstance(first, MultiSnapshot)
            assert first.value(key("b"), ConfigType.INT).value == ConfigValue.of(2)
            mutable.set_value("a", 5)
            second = await updates.next()
            assert second.value(key("a"), ConfigType.INT).value == ConfigValue.of(5)

    @pytest.mark.asyncio
    async def test_watchers_released(self) -> None:
        """Test that upstream registrations end with the handler."""
        mutable = MutableInMemoryProvider({"a": 1})
        chain = MultiProvider([mutable, InMemoryProvider({})])

        async def take_first(updates):
            return await updates.first()

        first = await chain.watch_value(key("a"), ConfigType.INT, take_first)
        assert first.unwrap().value == ConfigValue.of(1)
        assert mutable.watcher_count == 0


class TestCombineLatest:
    """Test the combine-latest fan-in directly."""

    @pytest.mark.asyncio
    async def test_gating_waits_for_all_sources(self) -> None:
        """Test that nothing is emitted until every source has emitted."""
        release = asyncio.Event()

        async def slow_source(handler):
            await release.wait()
            return await InMemoryProvider({"a": "slow"}).watch_value(key("a"), ConfigType.STRING, handler)

        fast = functools.partial(InMemoryProvider({"a": "fast"}).watch_value, key("a"), ConfigType.STRING)
        async with watching(lambda h: combine_latest([fast, slow_source], h)) as updates:
            assert await updates.quiet()
            release.set()
            combined = await updates.next()
            assert [r.unwrap().value.content for r in combined] == ["fast", "slow"]

    @pytest.mark.asyncio
    async def test_requires_sources(self) -> None:
        async def handler(updates):
            return None

        with pytest.raises(ValueError):
            await combine_latest([], handler)

    @pytest.mark.asyncio
    async def test_source_error_reaches_handler(self) -> None:
        """Test that a raising source fails the combined stream."""

        async def broken_source(handler):
            raise RuntimeError("source failed")

        async def consume(updates):
            async for _ in updates:
                pass

        with pytest.raises(RuntimeError, match="source failed"):
            await combine_latest([broken_source], consume)

    @pytest.mark.asyncio
    async def test_source_end_ends_stream(self) -> None:
        """Test that the combined stream ends when a source's stream ends."""

        async def finite_source(handler):
            async def one():
                yield 1

            return await handler(UpdateStream(one()))

        async def consume(updates):
            return [item async for item in updates]

        assert await combine_latest([finite_source], consume) == [[1]]
