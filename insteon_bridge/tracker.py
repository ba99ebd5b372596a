"""Polls ramping devices and reports their level until they settle."""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from .messages import EVENT, device_event

# Extra time allowed past the ramp duration for hub latency.
RAMP_TIMEOUT_MARGIN = 5000

SendFn = Callable[[str, Any], Awaitable[Any]]


def get_poll_interval(ramp_time: float) -> int:
    """Pick a polling interval (ms) suited to a ramp duration (ms)."""
    if ramp_time <= 2000:
        return 500
    if ramp_time <= 60000:
        return 1000
    return 30000


def ramp_timeout(ramp_time: float) -> float:
    return ramp_time + RAMP_TIMEOUT_MARGIN


class SessionState(enum.Enum):
    SCHEDULED = "scheduled"
    SAMPLING = "sampling"
    TERMINATED = "terminated"


class LevelTrackingSession:
    """Samples one device's level until it hits ``expected_level`` or ``timeout`` (ms) passes."""

    def __init__(
        self,
        device: Any,
        send: SendFn,
        *,
        expected_level: Optional[int] = None,
        poll_interval: float = 500,
        timeout: Optional[float] = None,
        read_timeout: Optional[float] = None,
    ):
        if expected_level is None and timeout is None:
            raise ValueError("Level tracking needs an expected level or a timeout")
        self.device = device
        self.send = send
        self.expected_level = expected_level
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.read_timeout = read_timeout
        self.state = SessionState.SCHEDULED
        self.log = logging.getLogger("insteon_bridge.tracker")
        self._loop = asyncio.get_running_loop()
        self._started = self._loop.time()
        self.task: Optional[asyncio.Task] = None

    def next_delay(self) -> float:
        if self.timeout is not None and self.timeout < self.poll_interval:
            return self.timeout
        return self.poll_interval

    def elapsed(self) -> float:
        return (self._loop.time() - self._started) * 1000

    def should_stop(self, level: Any) -> bool:
        if self.expected_level is not None and level == self.expected_level:
            self.log.debug("Device=[%s] reached expectedLevel=%s", self.device.name, self.expected_level)
            return True
        if self.timeout is not None and self.elapsed() > self.timeout:
            self.log.debug("Device=[%s] level tracking reached timeout=%s", self.device.name, self.timeout)
            return True
        return False

    async def run(self) -> None:
        try:
            while self.state is SessionState.SCHEDULED:
                delay = self.next_delay()
                self.log.debug(
                    "Device=[%s] status will be updated in %.1f second (timeout=%s expectedLevel=%s)",
                    self.device.name, delay / 1000, self.timeout, self.expected_level,
                )
                await asyncio.sleep(delay / 1000)
                await self._sample()
        finally:
            self.state = SessionState.TERMINATED

    async def _sample(self) -> None:
        self.state = SessionState.SAMPLING
        try:
            level = await asyncio.wait_for(self.device.capability.level(), timeout=self.read_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.log.warning("Level tracking for device=[%s] stopped: %s", self.device.name, exc)
            self.state = SessionState.TERMINATED
            return
        await self.send(EVENT, device_event(self.device, level))
        self.state = SessionState.TERMINATED if self.should_stop(level) else SessionState.SCHEDULED


class LevelTracker:
    """Starts tracking sessions and keeps hold of the ones still running."""

    def __init__(self, *, read_timeout: Optional[float] = None):
        self.read_timeout = read_timeout
        self._sessions: Dict[asyncio.Task, LevelTrackingSession] = {}
        self.log = logging.getLogger("insteon_bridge.tracker")

    def track(
        self,
        device: Any,
        send: SendFn,
        expected_level: Optional[int] = None,
        poll_interval: float = 500,
        timeout: Optional[float] = None,
    ) -> LevelTrackingSession:
        session = LevelTrackingSession(
            device,
            send,
            expected_level=expected_level,
            poll_interval=poll_interval,
            timeout=timeout,
            read_timeout=self.read_timeout,
        )
        task = asyncio.get_running_loop().create_task(session.run(), name=f"track-{device.device_id}")
        session.task = task
        self._sessions[task] = session
        task.add_done_callback(self._forget)
        return session

    def _forget(self, task: asyncio.Task) -> None:
        session = self._sessions.pop(task, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            name = session.device.name if session is not None else task.get_name()
            self.log.warning("Level tracking for device=[%s] failed: %s: %s", name, type(exc).__name__, exc)

    def track_ramp(self, device: Any, send: SendFn, expected_level: Optional[int], ramp_time: float) -> LevelTrackingSession:
        return self.track(
            device,
            send,
            expected_level=expected_level,
            poll_interval=get_poll_interval(ramp_time),
            timeout=ramp_timeout(ramp_time),
        )

    @property
    def active(self) -> int:
        return len(self._sessions)

    async def wait_idle(self) -> None:
        while self._sessions:
            await asyncio.gather(*list(self._sessions), return_exceptions=True)

    async def cancel_all(self) -> None:
        tasks = list(self._sessions)
        for task in tasks:
            self._sessions[task].state = SessionState.TERMINATED
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        if tasks:
            self.log.info("Cancelled %s level tracking sessions", len(tasks))


__all__ = [
    "LevelTracker",
    "LevelTrackingSession",
    "RAMP_TIMEOUT_MARGIN",
    "SessionState",
    "get_poll_interval",
    "ramp_timeout",
]
