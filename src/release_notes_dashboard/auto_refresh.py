"""Auto-refresh service for the release notes dashboard.

Polls the release sheet and pushes change events to connected browsers so
the dashboard stays current without manual reloads.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, AsyncGenerator, Optional

from release_notes_dashboard.release_store import ReleaseStore
from release_notes_dashboard.sheet_client import SheetClient

logger = logging.getLogger(__name__)

# Failed fetches in a row before the poller doubles its wait.
BACKOFF_AFTER = 3


class RefreshCoordinator:
    """Broadcasts release events to every open event stream.

    Each stream owns a bounded queue. A stream that falls a full queue
    behind is closed rather than allowed to stall the others, and the browser
    reconnects. Use get_instance() for the shared one.
    """

    QUEUE_SIZE = 100

    _instance: Optional[RefreshCoordinator] = None

    def __init__(self):
        self._streams: set[asyncio.Queue] = set()
        self._last_refresh: Optional[datetime] = None
        self._refresh_count = 0

    @classmethod
    def get_instance(cls) -> RefreshCoordinator:
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @property
    def subscriber_count(self) -> int:
        return len(self._streams)

    async def subscribe(self) -> AsyncGenerator[dict, None]:
        """Yield a heartbeat, then every event published while subscribed."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.QUEUE_SIZE)
        self._streams.add(queue)
        try:
            yield self._event("heartbeat")
            while True:
                event = await queue.get()
                if event is None:
                    return
                yield event
        finally:
            self._streams.discard(queue)

    def publish(self, event_type: str, **data: Any) -> int:
        """Queue an event for every stream and return how many received it."""
        event = self._event(event_type, **data)
        delivered = 0
        for queue in list(self._streams):
            try:
                queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(f"Dropping event stream that is {self.QUEUE_SIZE} events behind")
                self._streams.discard(queue)
                self._close(queue)
        return delivered

    @staticmethod
    def _close(queue: asyncio.Queue):
        while not queue.empty():
            queue.get_nowait()
        queue.put_nowait(None)

    def trigger_refresh(self, source: str, reason: str = "update", thread_count: int = 0):
        """Announce that the release list was rebuilt.

        Args:
            source: Sheet URL the rows came from.
            reason: "startup", "sheet-update" or "manual".
            thread_count: Number of threads after the rebuild.
        """
        self._last_refresh = datetime.now()
        self._refresh_count += 1
        logger.info(f"Releases rebuilt ({reason}) from {source}, refresh #{self._refresh_count}")
        self.publish(
            "releases:updated",
            source=source,
            reason=reason,
            threads=thread_count,
            count=self._refresh_count,
        )

    def announce_stage(self, key: str, stage: Optional[str]):
        """Tell other open dashboards that a release moved stage."""
        self.publish("releases:staged", key=key, stage=stage)

    @staticmethod
    def _event(event_type: str, **data: Any) -> dict:
        return {"type": event_type, "timestamp": datetime.now().isoformat(), **data}

    def get_stats(self) -> dict:
        return {
            "subscribers": len(self._streams),
            "last_refresh": self._last_refresh.isoformat() if self._last_refresh else None,
            "refresh_count": self._refresh_count,
        }


class SheetPoller:
    """Background service that re-fetches the sheet on an interval."""

    def __init__(
        self,
        client: SheetClient,
        store: ReleaseStore,
        interval: int = 60,
        coordinator: Optional[RefreshCoordinator] = None,
    ):
        """Initialize the poller.

        Args:
            client: Sheet client used to fetch rows
            store: Store that receives the rebuilt threads
            interval: Polling interval in seconds (default: 60)
            coordinator: RefreshCoordinator instance (uses the singleton if None)
        """
        self.client = client
        self.store = store
        self.interval = interval
        self.coordinator = coordinator or RefreshCoordinator.get_instance()

        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._last_fetch: Optional[datetime] = None
        self._last_error: Optional[str] = None
        self._error_count = 0
        self._fetch_count = 0

    async def start(self):
        """Fetch once, then start the polling loop."""
        if self._running:
            logger.warning(f"Poller already running for {self.client.url}")
            return

        self._running = True
        await self.poll_once(reason="startup")
        self._task = asyncio.create_task(self._poll_loop())
        logger.info(f"Started polling {self.client.url} every {self.interval}s")

    async def stop(self):
        """Stop the polling loop."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        logger.info(f"Stopped polling {self.client.url}")

    async def _poll_loop(self):
        while self._running:
            try:
                wait = self.interval * 2 if self._error_count > BACKOFF_AFTER else self.interval
                await asyncio.sleep(wait)

                if not self._running:
                    break

                await self.poll_once()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in poll loop: {e}")
                self._record_error(str(e))

    async def poll_once(self, reason: str = "sheet-update") -> bool:
        """Fetch the sheet and refresh the store.

        A fetch the client reports as failed counts toward ``error_count``;
        a sheet that is merely empty does not.

        Returns:
            True if the sheet content changed and subscribers were notified.
        """
        # requests is blocking; keep it off the event loop.
        rows = await asyncio.to_thread(self.client.fetch_rows)

        self._last_fetch = datetime.now()
        self._fetch_count += 1
        fetch_error = self.client.last_error
        if fetch_error:
            self._record_error(fetch_error)
        elif rows:
            self._error_count = 0
            self._last_error = None
        else:
            self._error_count = 0
            self._last_error = "Sheet returned no rows"

        changed = self.store.refresh(rows)
        if changed:
            self.coordinator.trigger_refresh(
                self.client.url,
                reason=reason,
                thread_count=len(self.store.threads),
            )
        return changed

    def _record_error(self, message: str):
        self._last_error = message
        self._error_count += 1
        if self._error_count == BACKOFF_AFTER + 1:
            logger.warning(f"{self._error_count} errors in a row, backing off to {self.interval * 2}s")

    def get_stats(self) -> dict:
        """Get poller statistics."""
        return {
            "sheet_url": self.client.url,
            "running": self._running,
            "interval": self.interval,
            "last_fetch": self._last_fetch.isoformat() if self._last_fetch else None,
            "fetch_count": self._fetch_count,
            "error_count": self._error_count,
            "last_error": self._last_error,
        }
