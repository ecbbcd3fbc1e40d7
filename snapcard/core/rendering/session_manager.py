"""
Session Manager
===============

Owns the single browser engine handle of the process.

- Launches lazily on first demand; concurrent callers share one in-flight launch.
- Counts borrows so that idle eviction never terminates an engine a job is using.
- Evicts the engine after ``idle_timeout`` seconds without use and relaunches on
  the next demand.
- All state transitions happen under one asyncio lock.
"""

import asyncio
import contextlib
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Callable, Optional

from snapcard.config.logging import get_logger
from snapcard.config.settings import Settings, get_settings
from snapcard.core.errors import EngineLaunchError
from snapcard.core.rendering.engine import EngineHandle, EngineLauncher, PlaywrightEngineLauncher
from snapcard.models.schemas import EngineState, EngineStatus

logger = get_logger(__name__)


class SessionManager:
    """Lifecycle owner of the shared browser engine."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        launcher: Optional[EngineLauncher] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or get_settings()
        self.launcher: EngineLauncher = launcher or PlaywrightEngineLauncher(self.settings)
        self.idle_timeout = self.settings.idle_timeout
        self.idle_check_interval = self.settings.idle_check_interval
        self.logger: Any = logger.bind(component="session_manager")  # structlog.BoundLoggerBase
        self._clock = clock

        self._lock = asyncio.Lock()
        self._state = EngineState.ABSENT
        self._handle: Optional[EngineHandle] = None
        self._launch_task: Optional["asyncio.Task[EngineHandle]"] = None
        self._borrows = 0
        self._last_used: Optional[float] = None
        self._last_used_at: Optional[datetime] = None
        self._last_error: Optional[str] = None
        self._launch_count = 0
        self._eviction_count = 0
        self._closed = False

        self._monitor_task: Optional["asyncio.Task[None]"] = None
        self._stop_event = asyncio.Event()

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def active_borrows(self) -> int:
        return self._borrows

    @property
    def launch_count(self) -> int:
        return self._launch_count

    @property
    def eviction_count(self) -> int:
        return self._eviction_count

    def _touch(self) -> None:
        self._last_used = self._clock()
        self._last_used_at = datetime.now(timezone.utc)

    async def acquire(self) -> EngineHandle:
        """
        Borrow the engine, launching it if needed.

        Every successful call must be paired with ``release()``.

        Returns:
            The ready engine handle

        Raises:
            EngineLaunchError: If the launch this call waited on failed, or after shutdown
        """
        while True:
            async with self._lock:
                if self._closed:
                    raise EngineLaunchError("Session manager is shut down")

                if self._state is EngineState.READY and self._handle is not None:
                    if self._handle.is_connected:
                        self._borrows += 1
                        self._touch()
                        return self._handle
                    await self._discard_disconnected()

                if self._launch_task is None:
                    self._state = EngineState.LAUNCHING
                    self._launch_task = asyncio.create_task(self._launch())
                    self._launch_task.add_done_callback(_consume_result)
                launch = self._launch_task

            # A cancelled waiter must not cancel the launch other callers share
            handle = await asyncio.shield(launch)

            async with self._lock:
                if (
                    not self._closed
                    and self._handle is handle
                    and self._state is EngineState.READY
                ):
                    self._borrows += 1
                    self._touch()
                    return handle

    async def release(self) -> None:
        """End a borrow and stamp the last-use time."""
        async with self._lock:
            if self._borrows > 0:
                self._borrows -= 1
            self._touch()

    @asynccontextmanager
    async def borrow(self) -> AsyncGenerator[EngineHandle, None]:
        """Acquire the engine for the duration of a block."""
        handle = await self.acquire()
        try:
            yield handle
        finally:
            await self.release()

    async def _launch(self) -> EngineHandle:
        """Run the launch sequence. Only ever one instance in flight."""
        self.logger.info("Launching browser engine")
        started = time.perf_counter()

        try:
            handle = await asyncio.wait_for(self.launcher(), timeout=self.settings.launch_timeout)
        except asyncio.CancelledError:
            async with self._lock:
                self._state = EngineState.ABSENT
                self._launch_task = None
            raise
        except Exception as e:
            if isinstance(e, EngineLaunchError):
                error = e
            elif isinstance(e, asyncio.TimeoutError):
                error = EngineLaunchError(
                    f"Browser launch timed out after {self.settings.launch_timeout}s"
                )
            else:
                error = EngineLaunchError(f"Browser launch failed: {e}")

            async with self._lock:
                # Back to absent so the next acquire() retries immediately
                self._state = EngineState.ABSENT
                self._handle = None
                self._launch_task = None
                self._last_error = error.message

            self.logger.error("Browser engine launch failed", error=error.message)
            raise error

        async with self._lock:
            self._handle = handle
            self._state = EngineState.READY
            self._launch_task = None
            self._last_error = None
            self._launch_count += 1
            self._touch()

        self.logger.info(
            "Browser engine ready",
            launch_ms=int((time.perf_counter() - started) * 1000),
            launch_count=self._launch_count,
        )
        return handle

    async def _discard_disconnected(self) -> None:
        """Drop a handle whose browser went away. Caller holds the lock."""
        handle = self._handle
        self._handle = None
        self._state = EngineState.ABSENT
        self.logger.warning("Browser engine disconnected; relaunching")
        if handle is not None:
            await handle.terminate()

    async def evict_if_idle(self) -> bool:
        """
        Terminate the engine if it has been unused for longer than the idle timeout.

        Returns:
            True if the engine was evicted
        """
        async with self._lock:
            if self._state is not EngineState.READY or self._handle is None:
                return False
            if self._borrows > 0 or self._last_used is None:
                return False

            idle = self._clock() - self._last_used
            if idle < self.idle_timeout:
                return False

            handle = self._handle
            self._handle = None
            self._state = EngineState.ABSENT
            self._eviction_count += 1
            self.logger.info("Evicting idle browser engine", idle_seconds=round(idle, 1))
            await handle.terminate()
            return True

    def start_idle_monitor(self) -> None:
        """Start the background idle eviction loop."""
        if self._monitor_task is not None and not self._monitor_task.done():
            return
        self._stop_event.clear()
        self._monitor_task = asyncio.create_task(self._idle_monitor_loop())
        self.logger.info(
            "Idle monitor started",
            interval=self.idle_check_interval,
            idle_timeout=self.idle_timeout,
        )

    async def stop_idle_monitor(self) -> None:
        """Stop the background idle eviction loop."""
        task = self._monitor_task
        if task is None:
            return

        self._stop_event.set()
        try:
            await asyncio.wait_for(task, timeout=5.0)
        except asyncio.TimeoutError:
            self.logger.warning("Idle monitor did not stop within timeout, cancelling")
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        finally:
            self._monitor_task = None

    async def _idle_monitor_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.idle_check_interval)
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self.evict_if_idle()
            except Exception as e:
                self.logger.error("Idle check failed", error=str(e))

    async def warm_start(self) -> bool:
        """
        Launch the engine ahead of the first job.

        Returns:
            True if the engine is ready; a failure is logged and left for the next job to retry
        """
        try:
            async with self.borrow():
                pass
        except EngineLaunchError as e:
            self.logger.warning("Warm start failed; next job will retry", error=e.message)
            return False
        return True

    async def shutdown(self) -> None:
        """Terminate the engine unconditionally. Idempotent."""
        self._closed = True
        await self.stop_idle_monitor()

        while True:
            async with self._lock:
                launch = self._launch_task
                if launch is None:
                    handle = self._handle
                    self._handle = None
                    self._state = EngineState.ABSENT
                    if handle is not None:
                        self.logger.info("Shutting down browser engine")
                        await handle.terminate()
                    return

            # Let an in-flight launch settle so its process is not leaked
            with contextlib.suppress(EngineLaunchError):
                await asyncio.shield(launch)

    def status(self) -> EngineStatus:
        """Read-only snapshot of the engine lifecycle."""
        state = self._state
        if state is EngineState.ABSENT and self._last_error is not None:
            state = EngineState.FAILED

        idle_seconds = None
        if self._handle is not None and self._last_used is not None:
            idle_seconds = round(self._clock() - self._last_used, 3)

        return EngineStatus(
            state=state,
            launched_at=self._handle.launched_at if self._handle is not None else None,
            last_used_at=self._last_used_at,
            idle_seconds=idle_seconds,
            active_borrows=self._borrows,
            launch_count=self._launch_count,
        )


def _consume_result(task: "asyncio.Task[EngineHandle]") -> None:
    # Marks a launch failure as retrieved when every waiter was cancelled
    if not task.cancelled():
        task.exception()
