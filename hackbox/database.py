"""
SQLite-backed repositories for the hackbox portal.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import aiosqlite

from .models import (
    AuthSession,
    HackConfig,
    HackState,
    ManualTimerState,
    TeamProgress,
    TimerState,
    User,
    parse_iso,
    to_iso,
    utcnow,
)
from .repositories import (
    HackConfigRepository,
    HackStateRepository,
    ProgressRepository,
    SessionRepository,
    TimerRepository,
    UserRepository,
    distinct_teams,
)

logger = logging.getLogger(__name__)

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS team_progress (
        team_id TEXT PRIMARY KEY,
        current_step INTEGER NOT NULL DEFAULT 1,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS timer_states (
        team_name TEXT PRIMARY KEY,
        manual_timer_status TEXT NOT NULL DEFAULT 'stopped',
        manual_timer_started_at TEXT,
        manual_timer_accumulated_seconds INTEGER NOT NULL DEFAULT 0,
        timer_started_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS challenge_times (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        team_name TEXT NOT NULL REFERENCES timer_states(team_name) ON DELETE CASCADE,
        challenge_number INTEGER NOT NULL,
        seconds INTEGER NOT NULL,
        UNIQUE (team_name, challenge_number)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS auth_sessions (
        session_id TEXT PRIMARY KEY,
        username TEXT NOT NULL COLLATE NOCASE,
        role TEXT NOT NULL,
        team TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_auth_sessions_username
    ON auth_sessions(username)
    """,
    """
    CREATE TABLE IF NOT EXISTS users (
        username TEXT PRIMARY KEY COLLATE NOCASE,
        password TEXT NOT NULL,
        role TEXT NOT NULL,
        team TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS hack_state (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        status TEXT NOT NULL,
        started_at TEXT,
        configured_by TEXT,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS hack_config (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        payload TEXT NOT NULL
    )
    """,
)


class DatabaseManager:
    """Owns the SQLite file and its schema."""

    def __init__(
        self,
        db_path: str,
    ) -> None:
        self.db_path = db_path

    def connect(self) -> aiosqlite.Connection:
        """
        Open a connection to the database file.

        @return: Un-awaited aiosqlite connection, for use with ``async with``
        """
        return aiosqlite.connect(self.db_path)

    async def init_db(self) -> None:
        """
        Initialize the SQLite database.

        Creates tables and indexes if they do not exist yet.
        """
        async with self.connect() as db:
            await db.execute("PRAGMA journal_mode=WAL")
            await db.execute("PRAGMA synchronous=NORMAL")
            for statement in SCHEMA:
                await db.execute(statement)
            await db.commit()

        logger.info("SQLite schema ready at %s", self.db_path)


class SqliteRepository:
    def __init__(self, db: DatabaseManager) -> None:
        self.db = db


class SqliteProgressRepository(SqliteRepository, ProgressRepository):
    @staticmethod
    def _to_model(row: Any) -> TeamProgress:
        return TeamProgress(
            team_id=row[0],
            current_step=row[1],
            updated_at=parse_iso(row[2]) or utcnow(),
        )

    async def get_progress(self, team_id: str) -> Optional[TeamProgress]:
        async with self.db.connect() as db:
            cursor = await db.execute(
                "SELECT team_id, current_step, updated_at FROM team_progress WHERE team_id = ?",
                (team_id,),
            )
            row = await cursor.fetchone()
        return self._to_model(row) if row else None

    async def get_all_progress(self) -> Dict[str, TeamProgress]:
        async with self.db.connect() as db:
            cursor = await db.execute(
                "SELECT team_id, current_step, updated_at FROM team_progress"
            )
            rows = await cursor.fetchall()
        return {row[0]: self._to_model(row) for row in rows}

    async def save_progress(self, progress: TeamProgress) -> None:
        async with self.db.connect() as db:
            await db.execute(
                """
                INSERT INTO team_progress (team_id, current_step, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(team_id) DO UPDATE SET
                    current_step = excluded.current_step,
                    updated_at = excluded.updated_at
                """,
                (progress.team_id, progress.current_step, to_iso(progress.updated_at)),
            )
            await db.commit()


class SqliteTimerRepository(SqliteRepository, TimerRepository):
    async def _load(self, db: aiosqlite.Connection, row: Any) -> TimerState:
        cursor = await db.execute(
            "SELECT challenge_number, seconds FROM challenge_times WHERE team_name = ?",
            (row[0],),
        )
        times = await cursor.fetchall()
        return TimerState(
            team_name=row[0],
            manual_timer=ManualTimerState(
                status=row[1],
                started_at=parse_iso(row[2]),
                accumulated_seconds=row[3],
            ),
            timer_started_at=parse_iso(row[4]),
            challenge_times={str(number): seconds for number, seconds in times},
        )

    async def get_timer_state(self, team_name: str) -> TimerState:
        async with self.db.connect() as db:
            cursor = await db.execute(
                """
                SELECT team_name, manual_timer_status, manual_timer_started_at,
                       manual_timer_accumulated_seconds, timer_started_at
                FROM timer_states WHERE team_name = ?
                """,
                (team_name,),
            )
            row = await cursor.fetchone()
            if row is None:
                return TimerState(team_name=team_name)
            return await self._load(db, row)

    async def get_all_timer_states(self) -> List[TimerState]:
        async with self.db.connect() as db:
            cursor = await db.execute(
                """
                SELECT team_name, manual_timer_status, manual_timer_started_at,
                       manual_timer_accumulated_seconds, timer_started_at
                FROM timer_states ORDER BY team_name
                """
            )
            rows = await cursor.fetchall()
            return [await self._load(db, row) for row in rows]

    async def save_timer_state(self, state: TimerState) -> None:
        manual = state.manual_timer
        async with self.db.connect() as db:
            await db.execute(
                """
                INSERT INTO timer_states (
                    team_name, manual_timer_status, manual_timer_started_at,
                    manual_timer_accumulated_seconds, timer_started_at
                ) VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(team_name) DO UPDATE SET
                    manual_timer_status = excluded.manual_timer_status,
                    manual_timer_started_at = excluded.manual_timer_started_at,
                    manual_timer_accumulated_seconds = excluded.manual_timer_accumulated_seconds,
                    timer_started_at = excluded.timer_started_at
                """,
                (
                    state.team_name,
                    manual.status,
                    to_iso(manual.started_at),
                    manual.accumulated_seconds,
                    to_iso(state.timer_started_at),
                ),
            )
            # Challenge times are replaced wholesale to mirror the in-memory map
            await db.execute(
                "DELETE FROM challenge_times WHERE team_name = ?", (state.team_name,)
            )
            await db.executemany(
                "INSERT INTO challenge_times (team_name, challenge_number, seconds) VALUES (?, ?, ?)",
                [
                    (state.team_name, int(number), seconds)
                    for number, seconds in state.challenge_times.items()
                ],
            )
            await db.commit()


class SqliteSessionRepository(SqliteRepository, SessionRepository):
    async def get_session(self, session_id: str) -> Optional[AuthSession]:
        async with self.db.connect() as db:
            cursor = await db.execute(
                "SELECT session_id, username, role, team, created_at FROM auth_sessions WHERE session_id = ?",
                (session_id,),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return AuthSession(
            session_id=row[0],
            username=row[1],
            role=row[2],
            team=row[3],
            created_at=parse_iso(row[4]) or utcnow(),
        )

    async def save_session(self, session: AuthSession) -> None:
        async with self.db.connect() as db:
            await db.execute(
                "INSERT OR REPLACE INTO auth_sessions (session_id, username, role, team, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    session.session_id,
                    session.username,
                    session.role,
                    session.team,
                    to_iso(session.created_at),
                ),
            )
            await db.commit()

    async def remove_session(self, session_id: str) -> None:
        async with self.db.connect() as db:
            await db.execute("DELETE FROM auth_sessions WHERE session_id = ?", (session_id,))
            await db.commit()

    async def remove_sessions_by_username(self, username: str) -> None:
        async with self.db.connect() as db:
            await db.execute("DELETE FROM auth_sessions WHERE username = ?", (username,))
            await db.commit()


class SqliteUserRepository(SqliteRepository, UserRepository):
    async def get_user(self, username: str) -> Optional[User]:
        async with self.db.connect() as db:
            cursor = await db.execute(
                "SELECT username, password, role, team FROM users WHERE username = ?",
                (username,),
            )
            row = await cursor.fetchone()
        return User(*row) if row else None

    async def get_all_users(self) -> List[User]:
        async with self.db.connect() as db:
            cursor = await db.execute(
                "SELECT username, password, role, team FROM users ORDER BY username"
            )
            rows = await cursor.fetchall()
        return [User(*row) for row in rows]

    async def get_all_teams(self) -> List[str]:
        return distinct_teams(await self.get_all_users())

    async def has_users(self) -> bool:
        async with self.db.connect() as db:
            cursor = await db.execute("SELECT 1 FROM users LIMIT 1")
            return await cursor.fetchone() is not None

    async def seed_users(self, users: List[User]) -> None:
        async with self.db.connect() as db:
            await db.executemany(
                "INSERT INTO users (username, password, role, team) VALUES (?, ?, ?, ?)",
                [(u.username, u.password, u.role, u.team) for u in users],
            )
            await db.commit()
        logger.info("Seeded %d users into %s", len(users), self.db.db_path)


class SqliteHackStateRepository(SqliteRepository, HackStateRepository):
    async def get_state(self) -> HackState:
        async with self.db.connect() as db:
            cursor = await db.execute(
                "SELECT status, started_at, configured_by, updated_at FROM hack_state WHERE id = 1"
            )
            row = await cursor.fetchone()
        if row is None:
            return HackState()
        return HackState(
            status=row[0],
            started_at=parse_iso(row[1]),
            configured_by=row[2],
            updated_at=parse_iso(row[3]) or utcnow(),
        )

    async def update_state(self, state: HackState) -> None:
        async with self.db.connect() as db:
            await db.execute(
                "INSERT OR REPLACE INTO hack_state (id, status, started_at, configured_by, updated_at) "
                "VALUES (1, ?, ?, ?, ?)",
                (
                    state.status,
                    to_iso(state.started_at),
                    state.configured_by,
                    to_iso(state.updated_at),
                ),
            )
            await db.commit()


class SqliteHackConfigRepository(SqliteRepository, HackConfigRepository):
    async def get_config(self) -> HackConfig:
        async with self.db.connect() as db:
            cursor = await db.execute("SELECT payload FROM hack_config WHERE id = 1")
            row = await cursor.fetchone()
        if row is None:
            return HackConfig()
        try:
            return HackConfig.from_dict(json.loads(row[0]))
        except (json.JSONDecodeError, TypeError, AttributeError) as e:
            logger.warning("Corrupted hack config row, resetting to empty: %s", e)
            return HackConfig()

    async def save_config(self, config: HackConfig) -> None:
        async with self.db.connect() as db:
            await db.execute(
                "INSERT OR REPLACE INTO hack_config (id, payload) VALUES (1, ?)",
                (json.dumps(config.to_dict()),),
            )
            await db.commit()
