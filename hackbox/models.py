"""
Data model for the hackbox portal.

Every persisted model serializes to camelCase JSON via ``to_dict`` and is
rebuilt with ``from_dict``, which also accepts snake_case keys.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

VALID_ROLES = ("participant", "coach", "techlead")
HACK_STATUSES = ("not_started", "configuration", "waiting", "active", "completed")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


def parse_iso(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    @param value: String timestamp, datetime or None
    @return: Aware datetime, or None when value is empty or unparseable
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return default


@dataclass
class Challenge:
    number: int
    title: str
    raw_markdown: str


@dataclass
class Solution:
    number: int
    title: str
    file_name: str
    raw_markdown: str


@dataclass
class TeamProgress:
    team_id: str
    current_step: int = 1
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "teamId": self.team_id,
            "currentStep": self.current_step,
            "updatedAt": to_iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TeamProgress":
        return cls(
            team_id=str(_pick(data, "teamId", "team_id", default="")),
            current_step=int(_pick(data, "currentStep", "current_step", default=1)),
            updated_at=parse_iso(_pick(data, "updatedAt", "updated_at")) or utcnow(),
        )


@dataclass
class ManualTimerState:
    status: str = "stopped"
    started_at: Optional[datetime] = None
    accumulated_seconds: int = 0

    @property
    def running(self) -> bool:
        return self.status == "running"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "startedAt": to_iso(self.started_at),
            "accumulatedSeconds": self.accumulated_seconds,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ManualTimerState":
        status = _pick(data, "status", default="stopped")
        return cls(
            status=status if status in ("running", "stopped") else "stopped",
            started_at=parse_iso(_pick(data, "startedAt", "started_at")),
            accumulated_seconds=int(
                _pick(data, "accumulatedSeconds", "accumulated_seconds", default=0)
            ),
        )


@dataclass
class TimerState:
    team_name: str
    manual_timer: ManualTimerState = field(default_factory=ManualTimerState)
    timer_started_at: Optional[datetime] = None
    # Keyed by str(challenge number) so the mapping survives JSON round trips
    challenge_times: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "teamName": self.team_name,
            "manualTimer": self.manual_timer.to_dict(),
            "timerStartedAt": to_iso(self.timer_started_at),
            "challengeTimes": dict(self.challenge_times),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimerState":
        manual = _pick(data, "manualTimer", "manual_timer") or {}
        times = _pick(data, "challengeTimes", "challenge_times") or {}
        return cls(
            team_name=str(_pick(data, "teamName", "team_name", default="")),
            manual_timer=ManualTimerState.from_dict(manual),
            timer_started_at=parse_iso(_pick(data, "timerStartedAt", "timer_started_at")),
            challenge_times={str(k): int(v) for k, v in times.items()},
        )


@dataclass
class User:
    username: str
    password: str
    role: str
    team: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            username=str(data.get("username", "")),
            password=str(data.get("password", "")),
            role=str(data.get("role", "")),
            team=data.get("team") or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "username": self.username,
            "password": self.password,
            "role": self.role,
            "team": self.team,
        }


@dataclass
class AuthSession:
    session_id: str
    username: str
    role: str
    team: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    def identity(self) -> Dict[str, Any]:
        """Public view of the session, as returned by login and /me."""
        return {"username": self.username, "role": self.role, "team": self.team}


@dataclass
class HackState:
    status: str = "not_started"
    started_at: Optional[datetime] = None
    configured_by: Optional[str] = None
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "startedAt": to_iso(self.started_at),
            "configuredBy": self.configured_by,
            "updatedAt": to_iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HackState":
        status = _pick(data, "status", default="not_started")
        return cls(
            status=status if status in HACK_STATUSES else "not_started",
            started_at=parse_iso(_pick(data, "startedAt", "started_at")),
            configured_by=_pick(data, "configuredBy", "configured_by"),
            updated_at=parse_iso(_pick(data, "updatedAt", "updated_at")) or utcnow(),
        )


@dataclass
class TeamConfig:
    name: str
    members: List[str] = field(default_factory=list)


@dataclass
class HackConfig:
    content_path: Optional[str] = None
    teams: List[TeamConfig] = field(default_factory=list)
    coaches: List[str] = field(default_factory=list)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contentPath": self.content_path,
            "teams": [{"name": t.name, "members": list(t.members)} for t in self.teams],
            "coaches": list(self.coaches),
            "updatedAt": to_iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HackConfig":
        teams = []
        for team in _pick(data, "teams", default=[]) or []:
            if not isinstance(team, dict):
                continue
            teams.append(
                TeamConfig(
                    name=str(team.get("name", "")),
                    members=[str(m) for m in team.get("members", []) or []],
                )
            )
        return cls(
            content_path=_pick(data, "contentPath", "content_path"),
            teams=teams,
            coaches=[str(c) for c in _pick(data, "coaches", default=[]) or []],
            updated_at=parse_iso(_pick(data, "updatedAt", "updated_at")) or utcnow(),
        )
