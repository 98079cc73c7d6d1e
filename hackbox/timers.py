"""
Per-team timing: the manual stopwatch and the automatic per-challenge timer.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .errors import ConflictError
from .locks import TeamLocks
from .models import ManualTimerState, TimerState, to_iso, utcnow
from .repositories import TimerRepository

logger = logging.getLogger(__name__)


def manual_payload(manual: ManualTimerState) -> Dict[str, Any]:
    return {
        "status": manual.status,
        "startedAt": to_iso(manual.started_at),
        "elapsed": manual.accumulated_seconds,
    }


def timer_payload(state: TimerState) -> Dict[str, Any]:
    return {
        "automatic": {
            "timerStartedAt": to_iso(state.timer_started_at),
            "challengeTimes": dict(state.challenge_times),
        },
        "manual": manual_payload(state.manual_timer),
    }


class TimerService:
    """
    Manual stopwatch plus the automatic-timing primitives used by the
    challenge service.

    Every mutation holds the team's lock for the read-modify-write cycle.
    """

    def __init__(
        self,
        timer_repository: TimerRepository,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.repository = timer_repository
        self.clock = clock
        self._locks = TeamLocks()

    async def get_timer_state(self, team_name: str) -> TimerState:
        return await self.repository.get_timer_state(team_name)

    async def get_all_timer_states(self) -> List[TimerState]:
        return await self.repository.get_all_timer_states()

    async def start_manual_timer(self, team_name: str) -> ManualTimerState:
        """
        Start the team's stopwatch.

        @param team_name: Team whose stopwatch to start
        @return: Updated manual timer state
        @raise ConflictError: The stopwatch is already running
        """
        async with self._locks.get(team_name):
            state = await self.repository.get_timer_state(team_name)
            if state.manual_timer.running:
                raise ConflictError("Timer is already running")

            state.manual_timer.status = "running"
            state.manual_timer.started_at = self.clock()
            await self.repository.save_timer_state(state)

        logger.info("Manual timer started for team %s", team_name)
        return state.manual_timer

    async def stop_manual_timer(self, team_name: str) -> ManualTimerState:
        """
        Stop the team's stopwatch, banking the elapsed whole seconds.

        @param team_name: Team whose stopwatch to stop
        @return: Updated manual timer state
        @raise ConflictError: The stopwatch is already stopped
        """
        async with self._locks.get(team_name):
            state = await self.repository.get_timer_state(team_name)
            manual = state.manual_timer
            if not manual.running:
                raise ConflictError("Timer is already stopped")

            if manual.started_at is not None:
                manual.accumulated_seconds += self._seconds_since(manual.started_at)

            manual.status = "stopped"
            manual.started_at = None
            await self.repository.save_timer_state(state)

        logger.info(
            "Manual timer stopped for team %s at %ds", team_name, manual.accumulated_seconds
        )
        return manual

    async def reset_manual_timer(self, team_name: str) -> ManualTimerState:
        async with self._locks.get(team_name):
            state = await self.repository.get_timer_state(team_name)
            state.manual_timer = ManualTimerState()
            await self.repository.save_timer_state(state)
        return state.manual_timer

    def elapsed_seconds(self, manual: ManualTimerState) -> int:
        """Accumulated seconds plus the live segment of a running stopwatch."""
        elapsed = manual.accumulated_seconds
        if manual.running and manual.started_at is not None:
            elapsed += self._seconds_since(manual.started_at)
        return elapsed

    def _seconds_since(self, moment: datetime) -> int:
        # Whole seconds, never negative
        return max(0, int((self.clock() - moment).total_seconds()))

    # Automatic timing

    async def record_challenge_time(
        self,
        team_name: str,
        challenge_number: int,
        seconds: int,
    ) -> None:
        async with self._locks.get(team_name):
            state = await self.repository.get_timer_state(team_name)
            state.challenge_times[str(challenge_number)] = seconds
            await self.repository.save_timer_state(state)

    async def set_timer_started_at(
        self,
        team_name: str,
        timestamp: Optional[datetime],
    ) -> None:
        async with self._locks.get(team_name):
            state = await self.repository.get_timer_state(team_name)
            state.timer_started_at = timestamp
            await self.repository.save_timer_state(state)

    async def get_timer_started_at(self, team_name: str) -> Optional[datetime]:
        state = await self.repository.get_timer_state(team_name)
        return state.timer_started_at

    async def clear_challenge_time(self, team_name: str, challenge_number: int) -> None:
        async with self._locks.get(team_name):
            state = await self.repository.get_timer_state(team_name)
            state.challenge_times.pop(str(challenge_number), None)
            await self.repository.save_timer_state(state)

    async def clear_all_challenge_times(self, team_name: str) -> None:
        """Drop every recorded challenge time and the automatic anchor."""
        async with self._locks.get(team_name):
            state = await self.repository.get_timer_state(team_name)
            state.challenge_times.clear()
            state.timer_started_at = None
            await self.repository.save_timer_state(state)
