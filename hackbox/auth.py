"""
User credentials and cookie sessions.
"""

import json
import logging
import uuid
from pathlib import Path
from typing import List, Optional

from .errors import ConfigurationError, NotFoundError
from .models import VALID_ROLES, AuthSession, User, utcnow
from .repositories import SessionRepository, UserRepository

logger = logging.getLogger(__name__)

TEAM_ROLES = ("participant", "coach")


def validate_users(users: List[User]) -> None:
    """
    Check user seed data; any problem aborts startup.

    @param users: Users to validate
    @raise ConfigurationError: On duplicate names, unknown roles or bad teams
    """
    seen = set()
    for user in users:
        key = user.username.lower()
        if key in seen:
            raise ConfigurationError(f"Duplicate username detected: {user.username}")
        seen.add(key)

        if user.role not in VALID_ROLES:
            raise ConfigurationError(
                f"Invalid role '{user.role}' for user '{user.username}'"
            )
        if user.role in TEAM_ROLES and not user.team:
            raise ConfigurationError(
                f"User '{user.username}' with role '{user.role}' must have a team"
            )
        if user.role == "techlead" and user.team is not None:
            raise ConfigurationError(
                f"User '{user.username}' with role 'techlead' must not have a team"
            )


def load_users_file(users_file: str) -> List[User]:
    """
    Read and validate ``{"users": [...]}`` from disk.

    @param users_file: Path to users.json
    @return: Validated users; empty when the file does not exist
    """
    path = Path(users_file)
    if not path.is_file():
        logger.warning("Users file not found: %s", users_file)
        return []

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Malformed users file {users_file}: {e}") from e

    entries = data.get("users", []) if isinstance(data, dict) else None
    if not isinstance(entries, list):
        raise ConfigurationError(f"Users file {users_file} must contain a 'users' list")

    users = [User.from_dict(entry) for entry in entries if isinstance(entry, dict)]
    validate_users(users)
    logger.info("Loaded %d users from %s", len(users), users_file)
    return users


async def seed_from_file_if_empty(user_repository: UserRepository, users_file: str) -> None:
    if await user_repository.has_users():
        return
    users = load_users_file(users_file)
    if users:
        await user_repository.seed_users(users)


class AuthService:
    """Checks credentials and keeps one live session per username."""

    def __init__(
        self,
        user_repository: UserRepository,
        session_repository: SessionRepository,
    ) -> None:
        self.users = user_repository
        self.sessions = session_repository

    async def validate_credentials(self, username: str, password: str) -> Optional[User]:
        # Username lookup ignores case, the password comparison does not
        user = await self.users.get_user(username)
        if user is None or user.password != password:
            return None
        return user

    async def create_session(self, user: User) -> AuthSession:
        """
        Open a new session, dropping any previous one for the same user.

        @param user: Authenticated user
        @return: Session with a 32 character lowercase hex id
        """
        await self.sessions.remove_sessions_by_username(user.username)

        session = AuthSession(
            session_id=uuid.uuid4().hex,
            username=user.username,
            role=user.role,
            team=user.team,
            created_at=utcnow(),
        )
        await self.sessions.save_session(session)
        logger.info("Session created for %s (%s)", user.username, user.role)
        return session

    async def get_session(self, session_id: str) -> Optional[AuthSession]:
        return await self.sessions.get_session(session_id)

    async def remove_session(self, session_id: str) -> None:
        await self.sessions.remove_session(session_id)

    async def get_all_teams(self) -> List[str]:
        return await self.users.get_all_teams()

    async def resolve_team(self, team_name: str) -> str:
        """
        Canonical spelling of a known team, matched ignoring case.

        @raise NotFoundError: No user belongs to such a team
        """
        wanted = team_name.lower()
        for team in await self.users.get_all_teams():
            if team.lower() == wanted:
                return team
        raise NotFoundError("Team not found")
