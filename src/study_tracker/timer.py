"""Client-side Pomodoro countdown.

``PomodoroTimer`` is a plain state machine; it never schedules anything.
``TickDriver`` owns the single repeating asyncio task that calls ``tick``
once a second, and ``FocusController`` ties both to the REST client so
phase changes and early ends reach the server.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from study_tracker.client import StudyApiClient
from study_tracker.db_models import TimerPreferences
from study_tracker.errors import InvalidSessionState, StudyError
from study_tracker.pomodoro import PHASE_WORK, format_clock, next_phase, normalize_phase, phase_minutes, progress_ratio

logger = logging.getLogger(__name__)

PhaseCallback = Callable[[str, str], None]


class PomodoroTimer:
    def __init__(
        self,
        prefs: TimerPreferences,
        on_phase_complete: PhaseCallback | None = None,
    ) -> None:
        self.prefs = prefs
        self.on_phase_complete = on_phase_complete
        self.phase = PHASE_WORK
        self.cycle_count = 0
        self.remaining_seconds = self.total_seconds
        self.running = False

    @property
    def total_seconds(self) -> int:
        return phase_minutes(self.phase, self.prefs) * 60

    @property
    def progress(self) -> float:
        return progress_ratio(self.total_seconds, self.remaining_seconds)

    @property
    def clock(self) -> str:
        return format_clock(self.remaining_seconds)

    def start(self) -> None:
        self.running = True

    def pause(self) -> None:
        self.running = False

    def reset(self) -> None:
        self.running = False
        self.remaining_seconds = self.total_seconds

    def restore(self, phase: str, cycle_count: int, remaining_seconds: int) -> None:
        self.running = False
        self.phase = normalize_phase(phase)
        self.cycle_count = max(0, int(cycle_count))
        self.remaining_seconds = min(max(0, int(remaining_seconds)), self.total_seconds)

    def elapsed_work_minutes(self) -> int:
        if self.phase != PHASE_WORK:
            return 0
        return (self.total_seconds - self.remaining_seconds) // 60

    def tick(self) -> bool:
        """Advance one second. Returns True when this tick finished the phase."""
        if not self.running:
            return False
        if self.remaining_seconds > 0:
            self.remaining_seconds -= 1
        if self.remaining_seconds > 0:
            return False

        finished = self.phase
        self.phase, self.cycle_count = next_phase(finished, self.cycle_count)
        self.remaining_seconds = self.total_seconds
        self.running = False
        if self.on_phase_complete is not None:
            self.on_phase_complete(finished, self.phase)
        return True


class TickDriver:
    def __init__(
        self,
        on_tick: Callable[[], Awaitable[Any] | Any],
        interval: float = 1.0,
    ) -> None:
        self.on_tick = on_tick
        self.interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                result = self.on_tick()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("tick callback failed, stopping the countdown")
                if self._task is asyncio.current_task():
                    self._task = None
                return


class FocusController:
    def __init__(
        self,
        client: StudyApiClient,
        prefs: TimerPreferences,
        interval: float = 1.0,
        on_phase_complete: PhaseCallback | None = None,
    ) -> None:
        self.client = client
        self.timer = PomodoroTimer(prefs, on_phase_complete=on_phase_complete)
        self.driver = TickDriver(self._tick, interval=interval)
        self.session_id: int | None = None
        self.last_error: str | None = None

    async def begin(self, session_name: str, subject: str | None = None) -> dict[str, Any]:
        session = await asyncio.to_thread(self.client.start_session, session_name, subject)
        self.session_id = int(session["id"])
        self.timer.restore(PHASE_WORK, 0, self.timer.prefs.work_minutes * 60)
        self.play()
        return session

    async def resume(self) -> dict[str, Any] | None:
        data = await asyncio.to_thread(self.client.active_session)
        session = data.get("session")
        if not session:
            return None
        self.session_id = int(session["id"])
        timer = data.get("timer")
        if timer is None:
            raise InvalidSessionState(data.get("timer_error") or "Session timer cannot be restored")
        self.timer.restore(timer["phase"], timer["cycle_count"], timer["remaining_seconds"])
        return session

    def play(self) -> None:
        if self.session_id is None:
            raise InvalidSessionState("No active session")
        self.timer.start()
        self.driver.start()

    def pause(self) -> None:
        self.timer.pause()
        self.driver.stop()

    def reset(self) -> None:
        self.timer.reset()
        self.driver.stop()

    async def end(self) -> dict[str, Any]:
        if self.session_id is None:
            raise InvalidSessionState("No active session")
        self.driver.stop()
        self.timer.pause()
        session = await asyncio.to_thread(
            self.client.end_session,
            self.session_id,
            self.timer.elapsed_work_minutes(),
        )
        self.session_id = None
        self.timer.restore(PHASE_WORK, 0, self.timer.prefs.work_minutes * 60)
        return session

    async def _tick(self) -> None:
        finished, cycle = self.timer.phase, self.timer.cycle_count
        if not self.timer.tick():
            return
        if self.session_id is not None:
            try:
                await asyncio.to_thread(self.client.complete_phase, self.session_id, finished)
                self.last_error = None
            except InvalidSessionState as exc:
                logger.warning("phase rejected for session=%s: %s", self.session_id, exc.message)
                self.last_error = exc.message
                await self._adopt_server_state()
            except StudyError as exc:
                # The finished phase stays pending until a later play syncs it.
                logger.warning("phase sync failed for session=%s: %s", self.session_id, exc.message)
                self.last_error = exc.message
                self.timer.restore(finished, cycle, 0)
        self.driver.stop()

    async def _adopt_server_state(self) -> None:
        try:
            await self.resume()
        except StudyError as exc:
            logger.warning("could not reload session=%s: %s", self.session_id, exc.message)
