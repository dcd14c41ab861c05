"""Countdown and auto-stop scheduling for clip playback."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from musical_wheelhouse.domain.errors import RoomNotFound
from musical_wheelhouse.domain.models import COUNTDOWN_START
from musical_wheelhouse.services import engine
from musical_wheelhouse.services.sync import SessionSynchronizer

_logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass
class PlaybackTimer:
    """Runs at most one countdown-then-play cycle per room.

    A cycle is bound to the round index it was started for. Each step goes
    through the synchronizer, so a cycle whose round has moved on, or whose
    clip was paused by a buzz, finds itself stale and ends without writing.
    """

    synchronizer: SessionSynchronizer
    step_seconds: float = 1.0
    clock: Callable[[], int] = now_ms
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    _tasks: dict[str, asyncio.Task] = field(default_factory=dict)

    def start(self, room_code: str) -> asyncio.Task:
        """Start a new cycle for the room's current round, superseding any other."""
        self.cancel(room_code)
        round_index = self.synchronizer.load(room_code).round
        task = asyncio.get_running_loop().create_task(
            self._run_cycle(room_code, round_index)
        )
        self._tasks[room_code] = task
        task.add_done_callback(lambda done: self._forget(room_code, done))
        return task

    def cancel(self, room_code: str) -> None:
        task = self._tasks.pop(room_code, None)
        if task is not None and not task.done():
            task.cancel()

    def active(self, room_code: str) -> bool:
        task = self._tasks.get(room_code)
        return task is not None and not task.done()

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    async def _run_cycle(self, room_code: str, round_index: int) -> None:
        try:
            for value in range(COUNTDOWN_START, 0, -1):
                if not self._step(
                    room_code,
                    round_index,
                    engine.CountdownTick(value, round_index),
                ):
                    return
                await self.sleep(self.step_seconds)

            started_at = self.clock()
            if not self._step(
                room_code,
                round_index,
                engine.BeginPlayback(started_at, round_index),
            ):
                return
            session = self.synchronizer.load(room_code)
            await self.sleep(session.playback.duration / 1000)
            self.synchronizer.mutate(
                room_code,
                lambda s: engine.apply(s, engine.AutoStop(round_index, started_at)),
            )
        except RoomNotFound:
            _logger.info("Room %s closed during playback cycle", room_code)

    def _step(
        self,
        room_code: str,
        round_index: int,
        action: engine.Action,
    ) -> bool:
        """Apply one cycle step; return False once the cycle has gone stale."""
        current: list[bool] = []

        def guarded(session):
            current.append(engine.is_cycle_current(session, round_index))
            return engine.apply(session, action)

        self.synchronizer.mutate(room_code, guarded)
        if not current[0]:
            _logger.info(
                "Ignoring stale playback cycle for room %s round %s",
                room_code,
                round_index,
            )
            return False
        return True

    def _forget(self, room_code: str, task: asyncio.Task) -> None:
        if self._tasks.get(room_code) is task:
            del self._tasks[room_code]
