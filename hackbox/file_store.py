"""
JSON-file repositories.

Each store is loaded once at startup with ``load()`` and writes through to
disk on every save. Malformed files degrade to default state with a warning.
"""

import asyncio
import copy
import json
import logging
import os
import re
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles

from .models import HackConfig, HackState, TeamProgress, TimerState
from .repositories import (
    HackConfigRepository,
    HackStateRepository,
    ProgressRepository,
    TimerRepository,
)

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def safe_filename(name: str) -> str:
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", name).strip(".")
    return cleaned or "_"


async def read_json(path: Path) -> Optional[Any]:
    """
    Read and parse a JSON file.

    @param path: File to read
    @return: Parsed JSON, or None when the file is missing or malformed
    """
    if not path.is_file():
        return None
    try:
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            return json.loads(await f.read())
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning("Corrupted JSON file %s, using defaults: %s", path, e)
        return None


async def write_json(path: Path, data: Any) -> None:
    """
    Write JSON to a file, replacing it atomically.

    Each call writes its own temp file, so concurrent writers never share one.

    @param path: Destination file
    @param data: JSON-serializable payload
    """
    tmp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(data, indent=2))
        os.replace(tmp_path, path)
    except OSError:
        logger.exception("Failed to persist %s", path)
        if tmp_path.exists():
            tmp_path.unlink()
        raise


class FileProgressRepository(ProgressRepository):
    """One ``<team>.json`` file per team inside the progress directory."""

    def __init__(self, progress_dir: str) -> None:
        self.progress_dir = Path(progress_dir)
        self._cache: Dict[str, TeamProgress] = {}
        self._write_lock = asyncio.Lock()

    async def load(self) -> None:
        self._cache.clear()
        if not self.progress_dir.is_dir():
            return

        for path in sorted(self.progress_dir.glob("*.json")):
            data = await read_json(path)
            if not isinstance(data, dict):
                if data is not None:
                    logger.warning("Unexpected progress file layout: %s", path)
                continue
            try:
                progress = TeamProgress.from_dict(data)
            except (TypeError, ValueError) as e:
                logger.warning("Corrupted progress file %s, treating as step 1: %s", path, e)
                continue
            if progress.team_id:
                self._cache[progress.team_id] = progress

        logger.info("Loaded progress for %d teams", len(self._cache))

    async def get_progress(self, team_id: str) -> Optional[TeamProgress]:
        progress = self._cache.get(team_id)
        return copy.deepcopy(progress) if progress is not None else None

    async def get_all_progress(self) -> Dict[str, TeamProgress]:
        return copy.deepcopy(self._cache)

    async def save_progress(self, progress: TeamProgress) -> None:
        path = self.progress_dir / f"{safe_filename(progress.team_id)}.json"
        async with self._write_lock:
            await write_json(path, progress.to_dict())
            self._cache[progress.team_id] = copy.deepcopy(progress)


class FileTimerRepository(TimerRepository):
    """All timer states in a single ``timers.json`` list."""

    FILE_NAME = "timers.json"

    def __init__(self, data_dir: str) -> None:
        self.path = Path(data_dir) / self.FILE_NAME
        self._cache: Dict[str, TimerState] = {}
        self._write_lock = asyncio.Lock()

    async def load(self) -> None:
        self._cache.clear()
        data = await read_json(self.path)
        if data is None:
            return
        if not isinstance(data, list):
            logger.warning("Failed to load timer states from %s: expected a list", self.path)
            return

        for entry in data:
            if not isinstance(entry, dict):
                continue
            try:
                state = TimerState.from_dict(entry)
            except (TypeError, ValueError, AttributeError) as e:
                logger.warning("Skipping malformed timer entry in %s: %s", self.path, e)
                continue
            if state.team_name:
                self._cache[state.team_name] = state

    async def get_timer_state(self, team_name: str) -> TimerState:
        state = self._cache.get(team_name)
        if state is None:
            return TimerState(team_name=team_name)
        return copy.deepcopy(state)

    async def get_all_timer_states(self) -> List[TimerState]:
        return [copy.deepcopy(state) for state in self._cache.values()]

    async def save_timer_state(self, state: TimerState) -> None:
        # The whole list is rewritten, so snapshot and write under one lock
        async with self._write_lock:
            states = dict(self._cache)
            states[state.team_name] = copy.deepcopy(state)
            await write_json(self.path, [s.to_dict() for s in states.values()])
            self._cache = states


class FileHackStateRepository(HackStateRepository):
    FILE_NAME = "hack-state.json"

    def __init__(self, data_dir: str) -> None:
        self.path = Path(data_dir) / self.FILE_NAME
        self._state = HackState()
        self._write_lock = asyncio.Lock()

    async def load(self) -> None:
        data = await read_json(self.path)
        if isinstance(data, dict):
            self._state = HackState.from_dict(data)
        else:
            if data is not None:
                logger.warning("Corrupted hack state file, resetting to not_started")
            self._state = HackState()

    async def get_state(self) -> HackState:
        return copy.deepcopy(self._state)

    async def update_state(self, state: HackState) -> None:
        async with self._write_lock:
            await write_json(self.path, state.to_dict())
            self._state = copy.deepcopy(state)


class FileHackConfigRepository(HackConfigRepository):
    FILE_NAME = "hack-config.json"

    def __init__(self, data_dir: str) -> None:
        self.path = Path(data_dir) / self.FILE_NAME
        self._config = HackConfig()
        self._write_lock = asyncio.Lock()

    async def load(self) -> None:
        data = await read_json(self.path)
        if isinstance(data, dict):
            self._config = HackConfig.from_dict(data)
        else:
            if data is not None:
                logger.warning("Corrupted hack config file, resetting to empty")
            self._config = HackConfig()

    async def get_config(self) -> HackConfig:
        return copy.deepcopy(self._config)

    async def save_config(self, config: HackConfig) -> None:
        async with self._write_lock:
            await write_json(self.path, config.to_dict())
            self._config = copy.deepcopy(config)
