"""Periodic refresh of processes and applications into one snapshot."""

import asyncio
import threading
import time
from collections.abc import Callable
from dataclasses import replace

import structlog

from missionbar.config import Config
from missionbar.models import InstalledApplication, ProcessEntry, Snapshot
from missionbar.sampler import ProcessSampler
from missionbar.scanner import ApplicationScanner

log = structlog.get_logger()

SnapshotCallback = Callable[[Snapshot], None]


class MonitorScheduler:
    """Owns the refresh timer and the published snapshot.

    State machine: idle -> refreshing -> idle, once per interval, plus any
    explicit refresh(). Ticks never overlap: each one holds the tick lock from
    start to publish. Within a tick, process sampling and application
    discovery run concurrently in executor threads; running state is joined
    only after both finish, so every snapshot pairs processes and
    applications from the same tick.
    """

    def __init__(
        self,
        config: Config,
        sampler: ProcessSampler,
        scanner: ApplicationScanner,
    ):
        self.config = config
        self.sampler = sampler
        self.scanner = scanner

        self._snapshot = Snapshot()
        self._publish_lock = threading.RLock()  # Guards snapshot swaps and tombstones
        self._tick_lock: asyncio.Lock | None = None
        self._subscribers: list[SnapshotCallback] = []

        # path -> tick number at removal. Ticks that started at or before it
        # may still carry the removed bundle.
        self._tombstones: dict[str, int] = {}
        self._ticks_started = 0

        self._timer_task: asyncio.Task | None = None
        self._inflight: set[asyncio.Task] = set()
        # Executor work from a tick that timed out; its threads are still running
        self._straggler: asyncio.Future | None = None
        self._stopping = False

    # ─────────────────────────────────────────────────────────────────────
    # Snapshot access
    # ─────────────────────────────────────────────────────────────────────

    @property
    def snapshot(self) -> Snapshot:
        """The current published snapshot. Never mutated in place."""
        return self._snapshot

    @property
    def is_running(self) -> bool:
        """True while the timer is scheduled."""
        return self._timer_task is not None and not self._timer_task.done()

    def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        """Call callback with every published snapshot.

        Returns:
            A function that removes the subscription.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self, snapshot: Snapshot) -> None:
        """Swap in a new snapshot and notify subscribers.

        Caller must hold _publish_lock.
        """
        self._snapshot = snapshot
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception as e:
                log.exception("subscriber_failed", error=str(e))

    # ─────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start periodic refreshes, beginning with an immediate one.

        Must be called from a running event loop.
        """
        if self.is_running:
            return
        self._stopping = False
        self._timer_task = asyncio.create_task(self._timer_loop(), name="missionbar-timer")
        log.info("scheduler_started", interval=self.config.monitor.interval)

    async def stop(self) -> None:
        """Stop scheduling ticks.

        A tick already in flight is not cancelled: it finishes and publishes
        before this returns. Safe to call more than once.
        """
        self._stopping = True
        if self._timer_task is not None:
            self._timer_task.cancel()
            try:
                await self._timer_task
            except asyncio.CancelledError:
                pass
            self._timer_task = None

        if self._inflight:
            await asyncio.wait(set(self._inflight))
        await self._drain_straggler()
        log.info("scheduler_stopped")

    async def _timer_loop(self) -> None:
        """Run a tick every interval, measured between tick starts."""
        loop = asyncio.get_running_loop()
        interval = self.config.monitor.interval
        while not self._stopping:
            started = loop.time()
            # Shielded so cancelling the timer never interrupts a tick
            await asyncio.shield(self._spawn_tick())
            remaining = interval - (loop.time() - started)
            await asyncio.sleep(max(0.0, remaining))

    # ─────────────────────────────────────────────────────────────────────
    # Ticks
    # ─────────────────────────────────────────────────────────────────────

    def _spawn_tick(self) -> asyncio.Task:
        """Start a tick as its own task so it survives timer cancellation."""
        task = asyncio.create_task(self._tick(), name="missionbar-tick")
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def refresh(self) -> Snapshot:
        """Run one tick now and return the snapshot it published.

        If a tick is already running, this one starts after it finishes.
        """
        return await asyncio.shield(self._spawn_tick())

    async def _tick(self) -> Snapshot:
        if self._tick_lock is None:
            self._tick_lock = asyncio.Lock()

        async with self._tick_lock:
            with self._publish_lock:
                self._ticks_started += 1
                tick = self._ticks_started
                self._publish(replace(self._snapshot, is_loading=True))

            start = time.monotonic()
            try:
                processes, applications = await self._collect()
            except Exception as e:
                log.exception("tick_failed", tick=tick, error=str(e))
                with self._publish_lock:
                    self._publish(replace(self._snapshot, is_loading=False))
                    return self._snapshot

            running = {p.bundle_id for p in processes if p.bundle_id}
            applications = self.scanner.mark_running(applications, running)

            with self._publish_lock:
                applications = self._drop_tombstoned(applications, tick)
                snapshot = Snapshot(
                    processes=tuple(processes),
                    applications=tuple(applications),
                    is_loading=False,
                    generation=self._snapshot.generation + 1,
                    updated_at=time.time(),
                )
                self._publish(snapshot)

            log.debug(
                "tick_published",
                tick=tick,
                processes=len(processes),
                applications=len(applications),
                elapsed_ms=int((time.monotonic() - start) * 1000),
            )
            return snapshot

    async def _collect(self) -> tuple[list[ProcessEntry], list[InstalledApplication]]:
        """Sample processes and discover applications concurrently.

        Executor threads cannot be interrupted, so on timeout the work is kept
        as the straggler and the next pass waits for it before starting.
        """
        await self._drain_straggler()

        loop = asyncio.get_running_loop()
        gathered = asyncio.gather(
            loop.run_in_executor(None, self.sampler.sample),
            loop.run_in_executor(None, self.scanner.discover),
        )
        timeout = self.config.monitor.tick_timeout
        if timeout <= 0:
            return await gathered
        try:
            return await asyncio.wait_for(asyncio.shield(gathered), timeout=timeout)
        except TimeoutError:
            self._straggler = gathered
            raise

    async def _drain_straggler(self) -> None:
        """Wait for executor work left behind by a timed-out tick."""
        straggler, self._straggler = self._straggler, None
        if straggler is None:
            return
        if not straggler.done():
            log.debug("waiting_for_straggler")
        try:
            await straggler
        except Exception as e:
            log.warning("straggler_failed", error=str(e))

    # ─────────────────────────────────────────────────────────────────────
    # Optimistic removal
    # ─────────────────────────────────────────────────────────────────────

    def _drop_tombstoned(
        self, applications: list[InstalledApplication], tick: int
    ) -> list[InstalledApplication]:
        """Filter removed bundles out of a tick that began before the removal.

        A tick that began after the removal scanned the disk without the
        bundle, so its result is authoritative and the tombstone is cleared.
        Caller must hold _publish_lock.
        """
        if not self._tombstones:
            return applications
        stale = {path for path, removed_at in self._tombstones.items() if removed_at >= tick}
        for path in [p for p in self._tombstones if p not in stale]:
            del self._tombstones[path]
        if not stale:
            return applications
        return [app for app in applications if app.path not in stale]

    def remove_application(self, path: str) -> bool:
        """Remove an application from the published snapshot immediately.

        Only call this after the OS confirmed the bundle is gone. Thread-safe.

        Returns:
            True if the application was listed.
        """
        with self._publish_lock:
            self._tombstones[path] = self._ticks_started
            current = self._snapshot
            remaining = tuple(app for app in current.applications if app.path != path)
            if len(remaining) == len(current.applications):
                return False
            self._publish(replace(current, applications=remaining))
        log.info("application_removed", path=path)
        return True
