"""
Main HackboxPortal class that wires storage, services and the web app.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import aiohttp_cors
from aiohttp import web, web_runner

from .auth import AuthService, load_users_file, seed_from_file_if_empty
from .challenges import ChallengeService
from .config import HackboxConfig
from .database import (
    DatabaseManager,
    SqliteHackConfigRepository,
    SqliteHackStateRepository,
    SqliteProgressRepository,
    SqliteSessionRepository,
    SqliteTimerRepository,
    SqliteUserRepository,
)
from .errors import ConfigurationError
from .file_store import (
    FileHackConfigRepository,
    FileHackStateRepository,
    FileProgressRepository,
    FileTimerRepository,
)
from .hack_state import HackStateService
from .hub import ProgressHub
from .middleware import error_middleware, logging_middleware, session_middleware
from .repositories import InMemorySessionRepository, InMemoryUserRepository
from .solutions import SolutionService
from .timers import TimerService
from .web_handlers import WebHandlers

logger = logging.getLogger(__name__)


async def build_repositories(config: HackboxConfig) -> Dict[str, Any]:
    """
    Create and load the repositories of the configured storage provider.

    @param config: Portal configuration
    @return: Mapping of repository role to repository instance
    @raise ConfigurationError: Unsupported provider or bad user seed data
    """
    provider = config.data_provider
    users_file = config.get("auth", "users_file")

    if provider == "file":
        data_dir = config.get("storage", "data_dir")
        progress = FileProgressRepository(str(Path(data_dir) / "progress"))
        timers = FileTimerRepository(data_dir)
        hack_state = FileHackStateRepository(data_dir)
        hack_config = FileHackConfigRepository(data_dir)
        for store in (progress, timers, hack_state, hack_config):
            await store.load()

        return {
            "progress": progress,
            "timers": timers,
            "sessions": InMemorySessionRepository(),
            "users": InMemoryUserRepository(load_users_file(users_file)),
            "hack_state": hack_state,
            "hack_config": hack_config,
        }

    if provider == "sqlite":
        db = DatabaseManager(config.get("storage", "db_path"))
        await db.init_db()
        users = SqliteUserRepository(db)
        await seed_from_file_if_empty(users, users_file)

        return {
            "progress": SqliteProgressRepository(db),
            "timers": SqliteTimerRepository(db),
            "sessions": SqliteSessionRepository(db),
            "users": users,
            "hack_state": SqliteHackStateRepository(db),
            "hack_config": SqliteHackConfigRepository(db),
        }

    raise ConfigurationError(f"Unsupported data provider: {provider}")


class HackboxPortal:
    """Async hackbox portal exposing the JSON API and the progress hub."""

    def __init__(
        self,
        config: HackboxConfig,
        host: str = "0.0.0.0",
        web_port: int = 8080,
    ) -> None:
        self.config = config
        self.host = host
        self.web_port = web_port
        self.hub = ProgressHub()

        self.auth_service: Optional[AuthService] = None
        self.challenge_service: Optional[ChallengeService] = None
        self.timer_service: Optional[TimerService] = None
        self.hack_state_service: Optional[HackStateService] = None
        self.solution_service: Optional[SolutionService] = None
        self.web_handlers: Optional[WebHandlers] = None

    async def init_services(self) -> None:
        """
        Load storage and build the services.

        Must run before ``create_app``.
        """
        repos = await build_repositories(self.config)

        self.auth_service = AuthService(repos["users"], repos["sessions"])
        self.timer_service = TimerService(repos["timers"])
        self.challenge_service = ChallengeService(
            self.config.get("content", "challenges_dir"),
            repos["progress"],
        )
        self.challenge_service.set_timer_service(self.timer_service)
        self.hack_state_service = HackStateService(repos["hack_state"], repos["hack_config"])
        self.solution_service = SolutionService(self.config.get("content", "solutions_dir"))

        self.web_handlers = WebHandlers(
            self.config,
            self.auth_service,
            self.challenge_service,
            self.timer_service,
            self.hack_state_service,
            self.solution_service,
            self.hub,
        )
        logger.info(
            "Services ready: provider=%s, challenges=%d",
            self.config.data_provider,
            self.challenge_service.total_challenges,
        )

    def create_app(self) -> web.Application:
        """
        Build the aiohttp application with middlewares, routes and CORS.

        @return: Configured application
        """
        if self.web_handlers is None:
            raise RuntimeError("init_services() must be awaited before create_app()")
        h = self.web_handlers

        app = web.Application(
            middlewares=[
                logging_middleware,
                error_middleware,
                session_middleware(self.auth_service),
            ]
        )

        # Setup CORS
        cors = aiohttp_cors.setup(
            app,
            defaults={
                origin: aiohttp_cors.ResourceOptions(
                    allow_credentials=True,
                    expose_headers="*",
                    allow_headers="*",
                    allow_methods="*",
                )
                for origin in self.config.allowed_origins
            },
        )

        # Service info
        app.router.add_get("/health", h.health)
        app.router.add_get("/api/info", h.info)

        # Authentication
        app.router.add_post("/api/auth/login", h.login)
        app.router.add_post("/api/auth/logout", h.logout)
        app.router.add_get("/api/auth/me", h.me)

        # Challenges and progress
        app.router.add_get("/api/challenges", h.get_challenges)
        app.router.add_get("/api/challenges/media/{filename}", h.get_challenge_media)
        app.router.add_get(r"/api/challenges/{number:\d+}", h.get_challenge)
        app.router.add_get("/api/teams/progress", h.get_progress)
        app.router.add_post("/api/teams/progress/approve", h.approve_progress)
        app.router.add_post("/api/teams/progress/revert", h.revert_progress)
        app.router.add_post("/api/teams/progress/reset", h.reset_progress)

        # Timers
        app.router.add_get("/api/timer", h.get_timer)
        app.router.add_post("/api/timer/start", h.start_timer)
        app.router.add_post("/api/timer/stop", h.stop_timer)
        app.router.add_post("/api/timer/reset", h.reset_timer)
        app.router.add_get("/api/admin/teams/{team}/timer", h.admin_get_timer)
        app.router.add_post("/api/admin/teams/{team}/timer/start", h.admin_start_timer)
        app.router.add_post("/api/admin/teams/{team}/timer/stop", h.admin_stop_timer)
        app.router.add_post("/api/admin/teams/{team}/timer/reset", h.admin_reset_timer)
        app.router.add_post("/api/admin/timer/start-all", h.admin_start_all_timers)
        app.router.add_post("/api/admin/timer/stop-all", h.admin_stop_all_timers)
        app.router.add_post("/api/admin/timer/reset-all", h.admin_reset_all_timers)

        # Organizer dashboard
        app.router.add_get("/api/admin/teams", h.admin_get_teams)
        app.router.add_post("/api/admin/teams/{team}/challenges/approve", h.admin_approve)
        app.router.add_post("/api/admin/teams/{team}/challenges/revert", h.admin_revert)
        app.router.add_post("/api/admin/teams/{team}/challenges/reset", h.admin_reset)
        app.router.add_post("/api/admin/challenges/approve-all", h.admin_approve_all)
        app.router.add_post("/api/admin/challenges/revert-all", h.admin_revert_all)
        app.router.add_post("/api/admin/challenges/reset-all", h.admin_reset_all)

        # Event lifecycle
        app.router.add_get("/api/hack/state", h.get_hack_state)
        app.router.add_get("/api/hack/config", h.get_hack_config)
        app.router.add_post("/api/hack/config", h.save_hack_config)
        app.router.add_post("/api/hack/launch", h.launch_hack)
        app.router.add_post("/api/hack/pause", h.pause_hack)

        # Solutions
        app.router.add_get("/api/solutions", h.get_solutions)
        app.router.add_get("/api/solutions/media/{filename}", h.get_solution_media)
        app.router.add_get(r"/api/solutions/{number:\d+}", h.get_solution)

        # Add CORS to all HTTP routes
        for route in list(app.router.routes()):
            cors.add(route)

        # WebSocket hub stays outside CORS handling
        app.router.add_get("/hubs/progress", self.hub.handle)

        app.on_shutdown.append(self._on_shutdown)
        return app

    async def _on_shutdown(self, _: web.Application) -> None:
        await self.hub.close_all()

    async def start_web_server(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
    ) -> web_runner.AppRunner:
        """
        Start the web server.

        @param host: Host address to bind (default uses the configured host)
        @param port: Port number to use (default uses the configured web_port)
        @return: AppRunner instance for the web server
        """
        if host is None:
            host = self.host
        if port is None:
            port = self.web_port

        app = self.create_app()
        app_runner = web_runner.AppRunner(app)
        await app_runner.setup()

        site = web_runner.TCPSite(app_runner, host, port)
        await site.start()

        logger.info("Web server running on http://%s:%d", host, port)
        return app_runner

    async def run(self) -> None:
        """Initialize everything and serve until cancelled."""
        await self.init_services()
        runner = await self.start_web_server()

        logger.info("%s portal running, press Ctrl+C to stop", self.config.get("hack_name"))
        try:
            await asyncio.Event().wait()
        finally:
            logger.info("Shutting down web server")
            await runner.cleanup()
