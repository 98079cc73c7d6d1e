"""
Per-team lock table.
"""

import asyncio
from typing import Dict


class TeamLocks:
    """Maps a team id to an asyncio.Lock, created on first access."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}

    def get(self, team_id: str) -> asyncio.Lock:
        lock = self._locks.get(team_id)
        if lock is None:
            lock = self._locks[team_id] = asyncio.Lock()
        return lock

    def __len__(self) -> int:
        return len(self._locks)
