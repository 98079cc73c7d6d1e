"""HTTP tests through aiohttp's test client."""

from aiohttp.test_utils import TestClient, TestServer

from hackbox import __version__
from hackbox.portal import HackboxPortal


class TestServiceInfo:
    """Tests for public endpoints."""

    async def test_health(self, client):
        resp = await client.get("/health")

        assert resp.status == 200
        assert (await resp.json())["status"] == "healthy"

    async def test_info(self, client):
        data = await (await client.get("/api/info")).json()

        assert data == {"version": __version__, "hackName": "Test Microhack", "dataProvider": "file"}

    async def test_unknown_route_is_json_404(self, client):
        resp = await client.get("/api/nope")

        assert resp.status == 404
        assert "error" in await resp.json()


class TestAuth:
    """Tests for login, logout and /me."""

    async def test_login_requires_fields(self, client):
        resp = await client.post("/api/auth/login", json={"username": "alice"})

        assert resp.status == 400
        assert await resp.json() == {"error": "Username and password are required"}

    async def test_login_rejects_bad_password(self, client):
        resp = await client.post(
            "/api/auth/login", json={"username": "alice", "password": "wrong"}
        )

        assert resp.status == 401
        assert await resp.json() == {"error": "Invalid username or password"}

    async def test_login_rejects_malformed_body(self, client):
        resp = await client.post(
            "/api/auth/login", data="not json", headers={"Content-Type": "application/json"}
        )

        assert resp.status == 400

    async def test_login_sets_session_cookie(self, client):
        resp = await client.post(
            "/api/auth/login", json={"username": "Alice", "password": "alice-pw"}
        )

        assert resp.status == 200
        assert await resp.json() == {"username": "alice", "role": "participant", "team": "Alpha"}
        cookie = resp.headers["Set-Cookie"]
        assert cookie.startswith("hackbox_session=")
        assert "HttpOnly" in cookie
        assert "SameSite=Strict" in cookie
        assert "Path=/" in cookie
        assert "Secure" not in cookie

    async def test_secure_cookie_flag(self, config):
        config.config["server"]["secure_cookies"] = True
        portal = HackboxPortal(config)
        await portal.init_services()

        async with TestClient(TestServer(portal.create_app())) as secure_client:
            resp = await secure_client.post(
                "/api/auth/login", json={"username": "lead", "password": "lead-pw"}
            )

        assert resp.status == 200
        assert "Secure" in resp.headers["Set-Cookie"]

    async def test_me_and_logout(self, client, login):
        resp = await client.get("/api/auth/me")
        assert resp.status == 401

        await login("lead")
        me = await (await client.get("/api/auth/me")).json()
        assert me == {"username": "lead", "role": "techlead", "team": None}

        resp = await client.post("/api/auth/logout")
        assert resp.status == 200
        assert (await client.get("/api/auth/me")).status == 401


class TestChallenges:
    """Tests for challenge content and team progress."""

    async def test_requires_authentication(self, client):
        resp = await client.get("/api/challenges")

        assert resp.status == 401
        assert await resp.json() == {"error": "Authentication required"}

    async def test_list_and_detail(self, client, login):
        await login("alice")

        items = await (await client.get("/api/challenges")).json()
        assert [item["status"] for item in items] == ["current", "locked", "locked"]
        assert items[1]["title"] is None

        resp = await client.get("/api/challenges/1")
        assert resp.status == 200
        assert (await resp.json())["title"] == "Set up the environment"

        resp = await client.get("/api/challenges/2")
        assert resp.status == 403
        assert await resp.json() == {"error": "Challenge is locked"}

        resp = await client.get("/api/challenges/9")
        assert resp.status == 404

    async def test_media(self, client, login):
        await login("alice")

        resp = await client.get("/api/challenges/media/diagram.png")
        assert resp.status == 200
        assert (await resp.read()).startswith(b"\x89PNG")

        assert (await client.get("/api/challenges/media/missing.png")).status == 404
        assert (await client.get("/api/challenges/media/..secret")).status == 404

    async def test_media_does_not_serve_locked_markdown(self, client, login):
        await login("alice")
        assert (await client.get("/api/challenges/3")).status == 403

        for name in ("challenge-004.md", "challenge-001.md", "notes.md"):
            resp = await client.get(f"/api/challenges/media/{name}")
            assert resp.status == 404
            assert await resp.json() == {"error": "File not found"}

    async def test_coach_drives_progress(self, client, login):
        await login("alice")
        resp = await client.post("/api/teams/progress/approve")
        assert resp.status == 403

        await login("coach-alpha")
        resp = await client.post("/api/teams/progress/approve")
        assert resp.status == 200
        assert (await resp.json())["currentStep"] == 2

        resp = await client.post("/api/teams/progress/revert")
        assert (await resp.json())["currentStep"] == 1

        resp = await client.post("/api/teams/progress/revert")
        assert resp.status == 409
        assert await resp.json() == {"error": "Already at first challenge"}

        await client.post("/api/teams/progress/approve")
        await login("alice")
        progress = await (await client.get("/api/teams/progress")).json()
        assert progress["currentStep"] == 2
        assert progress["completed"] is False

    async def test_approve_past_last_challenge_conflicts(self, client, login):
        await login("coach-beta")
        for _ in range(3):
            assert (await client.post("/api/teams/progress/approve")).status == 200

        resp = await client.post("/api/teams/progress/approve")

        assert resp.status == 409
        assert await resp.json() == {"error": "All challenges already completed"}

    async def test_organizer_is_not_a_coach(self, client, login):
        await login("lead")

        resp = await client.post("/api/teams/progress/reset")

        assert resp.status == 403


class TestTimer:
    """Tests for the team stopwatch endpoints."""

    async def test_start_stop_cycle(self, client, login):
        await login("alice")

        resp = await client.post("/api/timer/start")
        assert resp.status == 200
        assert (await resp.json())["status"] == "running"

        resp = await client.post("/api/timer/start")
        assert resp.status == 409
        assert await resp.json() == {"error": "Timer is already running"}

        timer = await (await client.get("/api/timer")).json()
        assert timer["manual"]["status"] == "running"
        assert set(timer["automatic"]) == {"timerStartedAt", "challengeTimes"}

        resp = await client.post("/api/timer/stop")
        assert resp.status == 200
        assert (await resp.json())["elapsed"] >= 0

        resp = await client.post("/api/timer/stop")
        assert resp.status == 409

        resp = await client.post("/api/timer/reset")
        assert await resp.json() == {"status": "stopped", "startedAt": None, "elapsed": 0}

    async def test_organizer_has_no_own_timer(self, client, login):
        await login("lead")

        resp = await client.get("/api/timer")

        assert resp.status == 403

    async def test_admin_team_timer(self, client, login):
        await login("lead")

        resp = await client.post("/api/admin/teams/alpha/timer/start")
        assert resp.status == 200

        timer = await (await client.get("/api/admin/teams/Alpha/timer")).json()
        assert timer["manual"]["status"] == "running"

        resp = await client.post("/api/admin/teams/Gamma/timer/start")
        assert resp.status == 404
        assert await resp.json() == {"error": "Team not found"}

    async def test_bulk_timer_results(self, client, login):
        await login("lead")

        data = await (await client.post("/api/admin/timer/start-all")).json()
        assert data["action"] == "start"
        assert data["results"] == [
            {"teamName": "Alpha", "success": True},
            {"teamName": "Beta", "success": True},
        ]

        data = await (await client.post("/api/admin/timer/start-all")).json()
        assert all(not r["success"] for r in data["results"])
        assert data["results"][0]["error"] == "Timer is already running"

        data = await (await client.post("/api/admin/timer/reset-all")).json()
        assert all(r["success"] for r in data["results"])


class TestDashboard:
    """Tests for organizer dashboard endpoints."""

    async def test_access(self, client, login):
        assert (await client.get("/api/admin/teams")).status == 401

        await login("coach-alpha")
        assert (await client.get("/api/admin/teams")).status == 403

    async def test_overview(self, client, login):
        await login("lead")
        await client.post("/api/admin/teams/Alpha/challenges/approve")

        data = await (await client.get("/api/admin/teams")).json()

        assert data["totalChallenges"] == 3
        alpha, beta = data["teams"]
        assert alpha["teamName"] == "Alpha"
        assert alpha["currentStep"] == 2
        assert alpha["isCompleted"] is False
        assert alpha["manualTimerStatus"] == "stopped"
        assert alpha["elapsedSeconds"] == 0
        assert alpha["challengeTimes"] == {"1": 0}
        assert beta["currentStep"] == 1

    async def test_per_team_operations(self, client, login):
        await login("lead")

        resp = await client.post("/api/admin/teams/beta/challenges/approve")
        assert resp.status == 200
        assert (await resp.json())["teamId"] == "Beta"

        resp = await client.post("/api/admin/teams/Beta/challenges/reset")
        assert (await resp.json())["currentStep"] == 1

        resp = await client.post("/api/admin/teams/Beta/challenges/revert")
        assert resp.status == 409

        resp = await client.post("/api/admin/teams/Nobody/challenges/approve")
        assert resp.status == 404

    async def test_bulk_operations_continue_past_conflicts(self, client, login):
        await login("lead")
        await client.post("/api/admin/teams/Alpha/challenges/approve")

        data = await (await client.post("/api/admin/challenges/revert-all")).json()

        assert data["action"] == "revert"
        assert data["results"] == [
            {"teamName": "Alpha", "success": True},
            {"teamName": "Beta", "success": False, "error": "Already at first challenge"},
        ]

        data = await (await client.post("/api/admin/challenges/approve-all")).json()
        assert all(r["success"] for r in data["results"])

        data = await (await client.post("/api/admin/challenges/reset-all")).json()
        assert all(r["success"] for r in data["results"])


class TestHackLifecycle:
    """Tests for event configuration, launch and pause."""

    async def test_state_is_public(self, client):
        data = await (await client.get("/api/hack/state")).json()

        assert data["status"] == "not_started"

    async def test_configure_launch_pause(self, client, login):
        await login("lead")

        resp = await client.post(
            "/api/hack/config",
            json={"contentPath": "hackcontent", "teams": [{"name": "Alpha", "members": ["alice"]}]},
        )
        assert resp.status == 200
        assert await resp.json() == {"success": True, "message": "Configuration saved"}

        config = await (await client.get("/api/hack/config")).json()
        assert config["teams"] == [{"name": "Alpha", "members": ["alice"]}]
        assert (await (await client.get("/api/hack/state")).json())["status"] == "waiting"

        resp = await client.post("/api/hack/launch")
        assert resp.status == 200
        assert (await resp.json())["startedAt"] is not None

        resp = await client.post("/api/hack/launch")
        assert resp.status == 409

        resp = await client.post("/api/hack/pause")
        assert resp.status == 200
        assert (await (await client.get("/api/hack/state")).json())["status"] == "waiting"

        resp = await client.post("/api/hack/pause")
        assert resp.status == 409

    async def test_organizer_only(self, client, login):
        await login("coach-alpha")

        assert (await client.post("/api/hack/launch")).status == 403
        assert (await client.get("/api/hack/config")).status == 403

    async def test_config_body_must_be_object(self, client, login):
        await login("lead")

        resp = await client.post("/api/hack/config", json=["not", "an", "object"])
        assert resp.status == 400

        resp = await client.post("/api/hack/config", json={"coaches": 5})
        assert resp.status == 400
        assert await resp.json() == {"error": "Invalid hack configuration"}


class TestSolutions:
    """Tests for coach-only solutions."""

    async def test_participants_are_forbidden(self, client, login):
        await login("alice")

        assert (await client.get("/api/solutions")).status == 403

    async def test_list_and_detail(self, client, login):
        await login("coach-alpha")

        data = await (await client.get("/api/solutions")).json()
        assert data["totalCount"] == 2
        assert data["currentStep"] == 1
        assert data["solutions"] == [
            {"number": 1, "title": "Environment walkthrough", "fileName": "solution-001.md"},
            {"number": 3, "title": "solution-003.md", "fileName": "solution-003.md"},
        ]

        resp = await client.get("/api/solutions/3")
        assert resp.status == 200
        assert (await resp.json())["content"] == "Just the steps.\n"

        resp = await client.get("/api/solutions/2")
        assert resp.status == 404
        assert await resp.json() == {"error": "Solution not found"}

    async def test_organizer_may_read(self, client, login):
        await login("lead")

        assert (await client.get("/api/solutions/1")).status == 200

    async def test_media(self, client, login):
        await login("coach-beta")

        resp = await client.get("/api/solutions/media/architecture.png")
        assert resp.status == 200
        assert resp.headers["Content-Type"] == "image/png"

        resp = await client.get("/api/solutions/media/notes.txt")
        assert resp.status == 400
        assert await resp.json() == {"error": "Unsupported file type"}

        resp = await client.get("/api/solutions/media/..evil.png")
        assert resp.status == 400

        resp = await client.get("/api/solutions/media/missing.png")
        assert resp.status == 404
