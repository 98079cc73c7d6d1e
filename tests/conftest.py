"""Shared fixtures: temp content, users, file-backed services and an HTTP client."""

import json
from datetime import datetime, timedelta, timezone

import pytest
from aiohttp.test_utils import TestClient, TestServer

from hackbox.challenges import ChallengeService
from hackbox.config import HackboxConfig
from hackbox.file_store import (
    FileHackConfigRepository,
    FileHackStateRepository,
    FileProgressRepository,
    FileTimerRepository,
)
from hackbox.hack_state import HackStateService
from hackbox.portal import HackboxPortal
from hackbox.timers import TimerService

USERS = [
    {"username": "alice", "password": "alice-pw", "role": "participant", "team": "Alpha"},
    {"username": "coach-alpha", "password": "coach-pw", "role": "coach", "team": "Alpha"},
    {"username": "bob", "password": "bob-pw", "role": "participant", "team": "Beta"},
    {"username": "coach-beta", "password": "coach-pw", "role": "coach", "team": "Beta"},
    {"username": "lead", "password": "lead-pw", "role": "techlead", "team": None},
]

PASSWORDS = {user["username"]: user["password"] for user in USERS}


class FakeClock:
    """Controllable clock passed to services instead of utcnow."""

    def __init__(self) -> None:
        self.now = datetime(2024, 5, 1, 9, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def challenges_dir(tmp_path):
    directory = tmp_path / "hackcontent" / "challenges"
    directory.mkdir(parents=True)
    (directory / "challenge-001.md").write_text(
        "# Set up the environment\n\nCreate a resource group.\n", encoding="utf-8"
    )
    (directory / "challenge-002.md").write_text(
        "Intro line\n\n# Deploy the API\n\nShip it.\n", encoding="utf-8"
    )
    # Gap in the file numbering on purpose
    (directory / "challenge-004.md").write_text("No heading here.\n", encoding="utf-8")
    (directory / "challenge-5.md").write_text("# Ignored\n", encoding="utf-8")
    (directory / "notes.md").write_text("# Not a challenge\n", encoding="utf-8")
    (directory / "diagram.png").write_bytes(b"\x89PNG\r\n\x1a\nfake")
    return directory


@pytest.fixture
def solutions_dir(tmp_path):
    directory = tmp_path / "hackcontent" / "solutions"
    (directory / "media").mkdir(parents=True)
    (directory / "solution-001.md").write_text("# Environment walkthrough\n", encoding="utf-8")
    (directory / "solution-003.md").write_text("Just the steps.\n", encoding="utf-8")
    (directory / "media" / "architecture.png").write_bytes(b"\x89PNG\r\n\x1a\nfake")
    (directory / "media" / "notes.txt").write_text("secret", encoding="utf-8")
    return directory


@pytest.fixture
def users_file(tmp_path):
    path = tmp_path / "users.json"
    path.write_text(json.dumps({"users": USERS}), encoding="utf-8")
    return path


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "config-data"


@pytest.fixture
async def timer_service(data_dir, clock):
    repository = FileTimerRepository(str(data_dir))
    await repository.load()
    return TimerService(repository, clock=clock)


@pytest.fixture
async def challenge_service(challenges_dir, data_dir, timer_service, clock):
    repository = FileProgressRepository(str(data_dir / "progress"))
    await repository.load()
    return ChallengeService(str(challenges_dir), repository, timer_service, clock=clock)


@pytest.fixture
async def hack_state_service(data_dir, clock):
    states = FileHackStateRepository(str(data_dir))
    configs = FileHackConfigRepository(str(data_dir))
    await states.load()
    await configs.load()
    return HackStateService(states, configs, clock=clock)


@pytest.fixture
def config(challenges_dir, solutions_dir, users_file, data_dir):
    return HackboxConfig.from_dict(
        {
            "hack_name": "Test Microhack",
            "storage": {"data_provider": "file", "data_dir": str(data_dir)},
            "content": {
                "challenges_dir": str(challenges_dir),
                "solutions_dir": str(solutions_dir),
            },
            "auth": {"users_file": str(users_file)},
            "server": {"secure_cookies": False},
        }
    )


@pytest.fixture
async def portal(config):
    portal = HackboxPortal(config)
    await portal.init_services()
    return portal


@pytest.fixture
async def client(portal):
    async with TestClient(TestServer(portal.create_app())) as test_client:
        yield test_client


@pytest.fixture
def login(client):
    """Log the test client in as the given user; returns the response body."""

    async def _login(username):
        client.session.cookie_jar.clear()
        resp = await client.post(
            "/api/auth/login",
            json={"username": username, "password": PASSWORDS[username]},
        )
        assert resp.status == 200
        return await resp.json()

    return _login
