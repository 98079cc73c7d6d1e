"""Tests for the manual stopwatch and timer persistence."""

import pytest

from hackbox.errors import ConflictError
from hackbox.file_store import FileTimerRepository
from hackbox.timers import TimerService, timer_payload


class TestManualTimer:
    """Tests for start, stop and reset."""

    async def test_start_sets_running(self, timer_service, clock):
        manual = await timer_service.start_manual_timer("Alpha")

        assert manual.status == "running"
        assert manual.started_at == clock()

    async def test_start_while_running_conflicts(self, timer_service):
        await timer_service.start_manual_timer("Alpha")

        with pytest.raises(ConflictError, match="Timer is already running"):
            await timer_service.start_manual_timer("Alpha")

    async def test_stop_while_stopped_conflicts(self, timer_service):
        with pytest.raises(ConflictError, match="Timer is already stopped"):
            await timer_service.stop_manual_timer("Alpha")

    async def test_stop_accumulates_waited_seconds(self, timer_service, clock):
        await timer_service.start_manual_timer("Alpha")
        clock.advance(42.9)
        manual = await timer_service.stop_manual_timer("Alpha")

        assert manual.status == "stopped"
        assert manual.started_at is None
        assert manual.accumulated_seconds == 42

        await timer_service.start_manual_timer("Alpha")
        clock.advance(8)
        manual = await timer_service.stop_manual_timer("Alpha")
        assert manual.accumulated_seconds == 50

    async def test_accumulated_never_negative(self, timer_service, clock):
        await timer_service.start_manual_timer("Alpha")
        clock.advance(-30)

        manual = await timer_service.stop_manual_timer("Alpha")

        assert manual.accumulated_seconds == 0

    async def test_elapsed_includes_live_segment(self, timer_service, clock):
        await timer_service.start_manual_timer("Alpha")
        clock.advance(5)

        state = await timer_service.get_timer_state("Alpha")

        assert state.manual_timer.accumulated_seconds == 0
        assert timer_service.elapsed_seconds(state.manual_timer) == 5

    async def test_reset_is_idempotent(self, timer_service, clock):
        await timer_service.start_manual_timer("Alpha")
        clock.advance(12)

        first = await timer_service.reset_manual_timer("Alpha")
        second = await timer_service.reset_manual_timer("Alpha")

        for manual in (first, second):
            assert manual.status == "stopped"
            assert manual.started_at is None
            assert manual.accumulated_seconds == 0

    async def test_reset_keeps_challenge_times(self, timer_service):
        await timer_service.record_challenge_time("Alpha", 1, 120)

        await timer_service.reset_manual_timer("Alpha")

        state = await timer_service.get_timer_state("Alpha")
        assert state.challenge_times == {"1": 120}


class TestAutomaticTiming:
    """Tests for the per-challenge timing primitives."""

    async def test_clear_all_drops_times_and_anchor(self, timer_service, clock):
        await timer_service.set_timer_started_at("Alpha", clock())
        await timer_service.record_challenge_time("Alpha", 1, 10)
        await timer_service.record_challenge_time("Alpha", 2, 20)

        await timer_service.clear_all_challenge_times("Alpha")

        state = await timer_service.get_timer_state("Alpha")
        assert state.challenge_times == {}
        assert state.timer_started_at is None

    async def test_clear_single_time(self, timer_service):
        await timer_service.record_challenge_time("Alpha", 1, 10)
        await timer_service.record_challenge_time("Alpha", 2, 20)

        await timer_service.clear_challenge_time("Alpha", 2)

        state = await timer_service.get_timer_state("Alpha")
        assert state.challenge_times == {"1": 10}

    async def test_payload_shape(self, timer_service, clock):
        await timer_service.set_timer_started_at("Alpha", clock())
        await timer_service.record_challenge_time("Alpha", 1, 10)

        payload = timer_payload(await timer_service.get_timer_state("Alpha"))

        assert payload == {
            "automatic": {
                "timerStartedAt": "2024-05-01T09:00:00+00:00",
                "challengeTimes": {"1": 10},
            },
            "manual": {"status": "stopped", "startedAt": None, "elapsed": 0},
        }


class TestPersistence:
    """Tests for timers surviving a restart."""

    async def test_state_reloads_from_disk(self, timer_service, data_dir, clock):
        await timer_service.start_manual_timer("Alpha")
        await timer_service.record_challenge_time("Alpha", 1, 33)

        repository = FileTimerRepository(str(data_dir))
        await repository.load()
        reloaded = TimerService(repository, clock=clock)

        state = await reloaded.get_timer_state("Alpha")
        assert state.manual_timer.status == "running"
        assert state.manual_timer.started_at == clock()
        assert state.challenge_times == {"1": 33}

    async def test_unknown_team_gets_default_state(self, timer_service):
        state = await timer_service.get_timer_state("Nobody")

        assert state.team_name == "Nobody"
        assert state.manual_timer.status == "stopped"
        assert await timer_service.get_all_timer_states() == []
