"""
Repository interfaces shared by the file and SQLite providers, plus the
in-memory user and session stores used by the file provider.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from .models import AuthSession, HackConfig, HackState, TeamProgress, TimerState, User


class ProgressRepository(ABC):
    @abstractmethod
    async def get_progress(self, team_id: str) -> Optional[TeamProgress]:
        """Return the stored progress, or None if the team has none yet."""

    @abstractmethod
    async def get_all_progress(self) -> Dict[str, TeamProgress]:
        ...

    @abstractmethod
    async def save_progress(self, progress: TeamProgress) -> None:
        ...


class TimerRepository(ABC):
    @abstractmethod
    async def get_timer_state(self, team_name: str) -> TimerState:
        """Return the stored timer state, or a fresh default one."""

    @abstractmethod
    async def get_all_timer_states(self) -> List[TimerState]:
        ...

    @abstractmethod
    async def save_timer_state(self, state: TimerState) -> None:
        ...


class SessionRepository(ABC):
    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[AuthSession]:
        ...

    @abstractmethod
    async def save_session(self, session: AuthSession) -> None:
        ...

    @abstractmethod
    async def remove_session(self, session_id: str) -> None:
        ...

    @abstractmethod
    async def remove_sessions_by_username(self, username: str) -> None:
        ...


class UserRepository(ABC):
    @abstractmethod
    async def get_user(self, username: str) -> Optional[User]:
        """Look up a user by name, ignoring case."""

    @abstractmethod
    async def get_all_users(self) -> List[User]:
        ...

    @abstractmethod
    async def get_all_teams(self) -> List[str]:
        """Distinct team names, sorted case-insensitively."""

    @abstractmethod
    async def has_users(self) -> bool:
        ...

    @abstractmethod
    async def seed_users(self, users: List[User]) -> None:
        ...


class HackStateRepository(ABC):
    @abstractmethod
    async def get_state(self) -> HackState:
        ...

    @abstractmethod
    async def update_state(self, state: HackState) -> None:
        ...


class HackConfigRepository(ABC):
    @abstractmethod
    async def get_config(self) -> HackConfig:
        ...

    @abstractmethod
    async def save_config(self, config: HackConfig) -> None:
        ...


def distinct_teams(users: List[User]) -> List[str]:
    seen: Dict[str, str] = {}
    for user in users:
        if user.team and user.team.lower() not in seen:
            seen[user.team.lower()] = user.team
    return sorted(seen.values(), key=str.lower)


class InMemoryUserRepository(UserRepository):
    """User store backed by a list, loaded from users.json at startup."""

    def __init__(self, users: Optional[List[User]] = None) -> None:
        self._users: List[User] = list(users or [])

    async def get_user(self, username: str) -> Optional[User]:
        wanted = username.lower()
        for user in self._users:
            if user.username.lower() == wanted:
                return user
        return None

    async def get_all_users(self) -> List[User]:
        return list(self._users)

    async def get_all_teams(self) -> List[str]:
        return distinct_teams(self._users)

    async def has_users(self) -> bool:
        return bool(self._users)

    async def seed_users(self, users: List[User]) -> None:
        self._users.extend(users)


class InMemorySessionRepository(SessionRepository):
    """Session store that keeps at most one session per username."""

    def __init__(self) -> None:
        self._sessions: Dict[str, AuthSession] = {}
        self._user_sessions: Dict[str, str] = {}  # lower(username) -> session id

    async def get_session(self, session_id: str) -> Optional[AuthSession]:
        return self._sessions.get(session_id)

    async def save_session(self, session: AuthSession) -> None:
        self._sessions[session.session_id] = session
        self._user_sessions[session.username.lower()] = session.session_id

    async def remove_session(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            key = session.username.lower()
            if self._user_sessions.get(key) == session_id:
                del self._user_sessions[key]

    async def remove_sessions_by_username(self, username: str) -> None:
        old_session_id = self._user_sessions.pop(username.lower(), None)
        if old_session_id is not None:
            self._sessions.pop(old_session_id, None)
