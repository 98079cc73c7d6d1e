"""
Event lifecycle: configuration, launch and pause.
"""

import logging
from datetime import datetime
from typing import Callable

from .errors import ConflictError
from .models import HackConfig, HackState, utcnow
from .repositories import HackConfigRepository, HackStateRepository

logger = logging.getLogger(__name__)

LAUNCHABLE_STATUSES = ("not_started", "configuration", "waiting")


class HackStateService:
    def __init__(
        self,
        state_repository: HackStateRepository,
        config_repository: HackConfigRepository,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.states = state_repository
        self.configs = config_repository
        self.clock = clock

    async def get_state(self) -> HackState:
        return await self.states.get_state()

    async def get_config(self) -> HackConfig:
        return await self.configs.get_config()

    async def save_config(self, config: HackConfig, configured_by: str) -> HackState:
        """
        Persist the event configuration.

        The first save of a fresh event moves it from ``not_started`` to
        ``waiting``.

        @param config: New configuration
        @param configured_by: Username of the organizer
        @return: Event state after the save
        """
        now = self.clock()
        config.updated_at = now
        await self.configs.save_config(config)

        state = await self.states.get_state()
        if state.status == "not_started":
            state.status = "waiting"
            state.configured_by = configured_by
            state.updated_at = now
            await self.states.update_state(state)
            logger.info("Hack configured by %s, state changed to waiting", configured_by)
        return state

    async def launch(self, launched_by: str) -> HackState:
        state = await self.states.get_state()
        if state.status not in LAUNCHABLE_STATUSES:
            logger.warning("Cannot launch hack from status %s", state.status)
            raise ConflictError("Hack can only be started when it is not started or waiting.")

        now = self.clock()
        state.status = "active"
        state.started_at = now
        state.configured_by = launched_by
        state.updated_at = now
        await self.states.update_state(state)
        logger.info("Hack launched by %s at %s", launched_by, now.isoformat())
        return state

    async def pause(self, paused_by: str) -> HackState:
        state = await self.states.get_state()
        if state.status != "active":
            logger.warning("Cannot pause hack from status %s", state.status)
            raise ConflictError("Hack is not currently active.")

        state.status = "waiting"
        state.configured_by = paused_by
        state.updated_at = self.clock()
        await self.states.update_state(state)
        logger.info("Hack paused by %s", paused_by)
        return state

    async def is_active(self) -> bool:
        state = await self.states.get_state()
        return state.status == "active"
