"""Tests for the release store and auto-refresh services."""

import asyncio

from release_notes_dashboard.auto_refresh import RefreshCoordinator, SheetPoller
from release_notes_dashboard.release_store import ReleaseStore

LONG_TEXT = "Release notes body with enough words to count. " * 6


class StubClient:
    def __init__(self, batches):
        self.url = "https://sheet.test"
        self.batches = list(batches)
        self.last_error = None

    def fetch_rows(self):
        return self.batches.pop(0) if self.batches else []


def test_store_refresh_replaces_threads():
    store = ReleaseStore()

    assert store.refresh([["100", "a.b", LONG_TEXT]]) is True
    assert [thread.key for thread in store.threads] == ["100"]

    assert store.refresh([["100", "a.b", LONG_TEXT]]) is False

    assert store.refresh([["200", "a.b", LONG_TEXT]]) is True
    assert [thread.key for thread in store.threads] == ["200"]
    assert store.last_refresh is not None


def test_stage_changes_are_in_memory_only():
    store = ReleaseStore()
    rows = [["100", "a.b", LONG_TEXT, "", "", "", "", "Beta"]]
    store.refresh(rows)

    assert store.set_stage("100", "Generally Available") is True
    assert store.get("100").stage == "Generally Available"
    assert store.set_stage("999", "Beta") is False

    store.refresh(rows)
    assert store.get("100").stage == "Beta"


def test_store_stats():
    store = ReleaseStore()
    store.refresh(
        [
            ["100", "a.b", LONG_TEXT + " <https://a.test>", "", "", "", "", "Beta"],
            ["101", "c.d", "ok", "", "", "", "100"],
            ["200", "a.b", LONG_TEXT],
        ]
    )

    stats = store.stats()
    assert stats == {
        "total": 2,
        "withReplies": 1,
        "replies": 1,
        "links": 1,
        "byStage": {"Beta": 1, "Unstaged": 1},
    }


def test_coordinator_delivers_events_to_subscribers():
    async def scenario():
        coordinator = RefreshCoordinator()
        stream = coordinator.subscribe()
        heartbeat = await stream.__anext__()
        assert coordinator.subscriber_count == 1

        coordinator.trigger_refresh("https://sheet.test", reason="manual", thread_count=3)
        event = await stream.__anext__()
        await stream.aclose()
        return heartbeat, event, coordinator

    heartbeat, event, coordinator = asyncio.run(scenario())

    assert heartbeat["type"] == "heartbeat"
    assert event["type"] == "releases:updated"
    assert event["reason"] == "manual"
    assert event["threads"] == 3
    assert coordinator.subscriber_count == 0
    assert coordinator.get_stats()["refresh_count"] == 1


def test_poller_notifies_only_on_change():
    client = StubClient(
        [
            [["100", "a.b", LONG_TEXT]],
            [["100", "a.b", LONG_TEXT]],
            [],
        ]
    )
    store = ReleaseStore()
    coordinator = RefreshCoordinator()
    poller = SheetPoller(client, store, interval=60, coordinator=coordinator)

    async def scenario():
        return [await poller.poll_once() for _ in range(3)]

    results = asyncio.run(scenario())

    assert results == [True, False, True]
    assert store.threads == []
    stats = poller.get_stats()
    assert stats["fetch_count"] == 3
    assert stats["last_error"] == "Sheet returned no rows"
    assert coordinator.get_stats()["refresh_count"] == 2


class FailingClient:
    url = "https://sheet.test"

    def __init__(self):
        self.last_error = None

    def fetch_rows(self):
        self.last_error = "Fetch failed: 503 error"
        return []


def test_poller_counts_failed_fetches():
    poller = SheetPoller(FailingClient(), ReleaseStore(), coordinator=RefreshCoordinator())

    async def scenario():
        for _ in range(4):
            await poller.poll_once()

    asyncio.run(scenario())

    stats = poller.get_stats()
    assert stats["error_count"] == 4
    assert stats["last_error"] == "Fetch failed: 503 error"


def test_empty_sheet_is_not_an_error():
    poller = SheetPoller(StubClient([[], []]), ReleaseStore(), coordinator=RefreshCoordinator())

    async def scenario():
        await poller.poll_once()
        await poller.poll_once()

    asyncio.run(scenario())

    assert poller.get_stats()["error_count"] == 0


def test_coordinator_drops_streams_that_fall_behind():
    async def scenario():
        coordinator = RefreshCoordinator()
        coordinator.QUEUE_SIZE = 1
        stream = coordinator.subscribe()
        await stream.__anext__()

        first = coordinator.publish("releases:staged", key="100", stage="Beta")
        second = coordinator.publish("releases:staged", key="100", stage=None)
        try:
            await stream.__anext__()
        except StopAsyncIteration:
            closed = True
        else:
            closed = False
        return coordinator, first, second, closed

    coordinator, first, second, closed = asyncio.run(scenario())

    assert (first, second) == (1, 0)
    assert closed
    assert coordinator.subscriber_count == 0
