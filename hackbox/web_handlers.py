"""
Web route handlers for the hackbox portal API.
"""

import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

from aiohttp import web

from . import __version__
from .auth import AuthService
from .challenges import ChallengeService
from .errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from .hack_state import HackStateService
from .hub import HACK_LAUNCHED, HACK_STATE_CHANGED, PROGRESS_UPDATED, TIMER_UPDATED, ProgressHub
from .middleware import COOKIE_NAME
from .models import AuthSession, HackConfig, ManualTimerState, to_iso, utcnow
from .solutions import SolutionService
from .timers import TimerService, manual_payload, timer_payload

logger = logging.getLogger(__name__)

MEDIA_CONTENT_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
}


def _is_plain_filename(filename: str) -> bool:
    return bool(filename) and ".." not in filename and "/" not in filename and "\\" not in filename


def _resolve_inside(directory: str, filename: str) -> Optional[Path]:
    base = Path(directory).resolve()
    candidate = (base / filename).resolve()
    if base not in candidate.parents:
        return None
    return candidate


class WebHandlers:
    """Handles web routes and responses."""

    def __init__(
        self,
        config: Any,
        auth_service: AuthService,
        challenge_service: ChallengeService,
        timer_service: TimerService,
        hack_state_service: HackStateService,
        solution_service: SolutionService,
        hub: ProgressHub,
    ) -> None:
        self.config = config
        self.auth = auth_service
        self.challenges = challenge_service
        self.timers = timer_service
        self.hack_state = hack_state_service
        self.solutions = solution_service
        self.hub = hub

    # Access helpers

    @staticmethod
    def _session(request: web.Request) -> AuthSession:
        session = request.get("user")
        if session is None:
            raise AuthenticationError("Authentication required")
        return session

    def _require_role(self, request: web.Request, *roles: str) -> AuthSession:
        session = self._session(request)
        if session.role not in roles:
            raise AuthorizationError("Insufficient permissions")
        return session

    def _require_organizer(self, request: web.Request) -> AuthSession:
        return self._require_role(request, "techlead")

    @staticmethod
    def _require_team(session: AuthSession) -> str:
        if not session.team:
            raise AuthorizationError("No team assigned")
        return session.team

    @staticmethod
    async def _read_json(request: web.Request) -> Dict[str, Any]:
        if not request.body_exists:
            return {}
        try:
            body = await request.json()
        except ValueError:
            raise ValidationError("Invalid JSON body")
        if not isinstance(body, dict):
            raise ValidationError("JSON object expected")
        return body

    @staticmethod
    def _path_number(request: web.Request, key: str = "number") -> int:
        try:
            return int(request.match_info[key])
        except ValueError:
            raise NotFoundError()

    async def _team_from_path(self, request: web.Request) -> str:
        return await self.auth.resolve_team(request.match_info["team"])

    def _manual_response(self, manual: ManualTimerState) -> Dict[str, Any]:
        payload = manual_payload(manual)
        payload["elapsed"] = self.timers.elapsed_seconds(manual)
        return payload

    async def _notify_progress(self, team: str, progress: Dict[str, Any]) -> None:
        await self.hub.send_to_group(team, PROGRESS_UPDATED, progress)

    async def _notify_timer(self, team: str, manual: ManualTimerState) -> None:
        data = {"teamName": team}
        data.update(self._manual_response(manual))
        await self.hub.send_to_group(team, TIMER_UPDATED, data)

    # Service info

    async def health(self, _: web.Request) -> web.Response:
        return web.json_response({"status": "healthy", "timestamp": to_iso(utcnow())})

    async def info(self, _: web.Request) -> web.Response:
        """
        API information endpoint.

        @param _: Unused request parameter
        @return: JSON response with version, event name and storage provider
        """
        return web.json_response(
            {
                "version": __version__,
                "hackName": self.config.get("hack_name"),
                "dataProvider": self.config.data_provider,
            }
        )

    # Authentication

    async def login(self, request: web.Request) -> web.Response:
        """
        Validate credentials and open a cookie session.

        @param request: HTTP request with ``{"username", "password"}`` body
        @return: JSON identity of the user, with the session cookie set
        """
        body = await self._read_json(request)
        username = body.get("username")
        password = body.get("password")
        if (
            not isinstance(username, str)
            or not isinstance(password, str)
            or not username.strip()
            or not password.strip()
        ):
            raise ValidationError("Username and password are required")

        user = await self.auth.validate_credentials(username, password)
        if user is None:
            logger.warning("Failed login attempt for %s", username)
            raise AuthenticationError("Invalid username or password")

        session = await self.auth.create_session(user)
        response = web.json_response(session.identity())
        response.set_cookie(
            COOKIE_NAME,
            session.session_id,
            path="/",
            httponly=True,
            samesite="Strict",
            secure=bool(self.config.get("server", "secure_cookies")),
        )
        return response

    async def logout(self, request: web.Request) -> web.Response:
        session_id = request.cookies.get(COOKIE_NAME)
        if session_id:
            await self.auth.remove_session(session_id)

        response = web.json_response({"message": "Logged out"})
        response.del_cookie(COOKIE_NAME, path="/")
        return response

    async def me(self, request: web.Request) -> web.Response:
        return web.json_response(self._session(request).identity())

    # Challenges and team progress

    async def get_challenges(self, request: web.Request) -> web.Response:
        """
        Challenge list for the caller's team.

        @param request: Authenticated HTTP request
        @return: JSON list of ``{challengeNumber, title, status}``
        """
        session = self._session(request)
        items = await self.challenges.get_challenge_list(session.team or "")
        return web.json_response(items)

    async def get_challenge(self, request: web.Request) -> web.Response:
        """
        One challenge with its markdown content.

        @param request: Authenticated HTTP request with the challenge number
        @return: JSON challenge detail; 404 when unknown, 403 when locked
        """
        session = self._session(request)
        number = self._path_number(request)
        detail = await self.challenges.get_challenge_for_team(session.team or "", number)
        return web.json_response(detail)

    async def get_challenge_media(self, request: web.Request) -> web.StreamResponse:
        self._session(request)
        filename = request.match_info["filename"]
        if not _is_plain_filename(filename):
            raise NotFoundError("File not found")

        # Only images; challenge markdown is gated by progress
        content_type = MEDIA_CONTENT_TYPES.get(Path(filename).suffix.lower())
        if content_type is None:
            raise NotFoundError("File not found")

        path = _resolve_inside(self.challenges.challenges_dir, filename)
        if path is None or not path.is_file():
            raise NotFoundError("File not found")
        return web.FileResponse(path, headers={"Content-Type": content_type})

    async def get_progress(self, request: web.Request) -> web.Response:
        session = self._session(request)
        progress = await self.challenges.get_team_progress(session.team or "")
        return web.json_response(progress)

    async def _coach_progress_action(
        self,
        request: web.Request,
        action: Callable[[str], Awaitable[Dict[str, Any]]],
    ) -> web.Response:
        session = self._require_role(request, "coach")
        team = self._require_team(session)
        progress = await action(team)
        await self._notify_progress(team, progress)
        return web.json_response(progress)

    async def approve_progress(self, request: web.Request) -> web.Response:
        """
        Coach approves the current challenge of their team.

        @param request: Authenticated coach request
        @return: JSON progress after the step; 409 when nothing is left to approve
        """
        return await self._coach_progress_action(request, self.challenges.approve)

    async def revert_progress(self, request: web.Request) -> web.Response:
        return await self._coach_progress_action(request, self.challenges.revert)

    async def reset_progress(self, request: web.Request) -> web.Response:
        return await self._coach_progress_action(request, self.challenges.reset)

    # Manual timer, own team

    async def get_timer(self, request: web.Request) -> web.Response:
        """
        Timer state of the caller's team.

        @param request: Authenticated HTTP request
        @return: JSON with the ``automatic`` and ``manual`` timer sections
        """
        team = self._require_team(self._session(request))
        state = await self.timers.get_timer_state(team)
        payload = timer_payload(state)
        payload["manual"] = self._manual_response(state.manual_timer)
        return web.json_response(payload)

    async def _timer_action(
        self,
        team: str,
        action: Callable[[str], Awaitable[ManualTimerState]],
    ) -> web.Response:
        manual = await action(team)
        await self._notify_timer(team, manual)
        return web.json_response(self._manual_response(manual))

    async def start_timer(self, request: web.Request) -> web.Response:
        team = self._require_team(self._session(request))
        return await self._timer_action(team, self.timers.start_manual_timer)

    async def stop_timer(self, request: web.Request) -> web.Response:
        team = self._require_team(self._session(request))
        return await self._timer_action(team, self.timers.stop_manual_timer)

    async def reset_timer(self, request: web.Request) -> web.Response:
        team = self._require_team(self._session(request))
        return await self._timer_action(team, self.timers.reset_manual_timer)

    # Manual timer, organizer

    async def admin_get_timer(self, request: web.Request) -> web.Response:
        self._require_organizer(request)
        team = await self._team_from_path(request)
        state = await self.timers.get_timer_state(team)
        payload = timer_payload(state)
        payload["manual"] = self._manual_response(state.manual_timer)
        return web.json_response(payload)

    async def admin_start_timer(self, request: web.Request) -> web.Response:
        self._require_organizer(request)
        team = await self._team_from_path(request)
        return await self._timer_action(team, self.timers.start_manual_timer)

    async def admin_stop_timer(self, request: web.Request) -> web.Response:
        self._require_organizer(request)
        team = await self._team_from_path(request)
        return await self._timer_action(team, self.timers.stop_manual_timer)

    async def admin_reset_timer(self, request: web.Request) -> web.Response:
        self._require_organizer(request)
        team = await self._team_from_path(request)
        return await self._timer_action(team, self.timers.reset_manual_timer)

    async def _bulk(
        self,
        action: Callable[[str], Awaitable[Any]],
        notify: Callable[[str, Any], Awaitable[None]],
    ) -> List[Dict[str, Any]]:
        """
        Apply an operation to every known team, collecting per-team results.

        A conflict on one team is recorded and does not stop the others.

        @param action: Per-team operation
        @param notify: Called with the team and the operation result on success
        @return: List of ``{teamName, success, error?}``
        """
        results = []
        for team in await self.auth.get_all_teams():
            try:
                outcome = await action(team)
            except ConflictError as e:
                results.append({"teamName": team, "success": False, "error": e.message})
                continue
            await notify(team, outcome)
            results.append({"teamName": team, "success": True})
        return results

    async def admin_start_all_timers(self, request: web.Request) -> web.Response:
        self._require_organizer(request)
        results = await self._bulk(self.timers.start_manual_timer, self._notify_timer)
        return web.json_response({"action": "start", "results": results})

    async def admin_stop_all_timers(self, request: web.Request) -> web.Response:
        self._require_organizer(request)
        results = await self._bulk(self.timers.stop_manual_timer, self._notify_timer)
        return web.json_response({"action": "stop", "results": results})

    async def admin_reset_all_timers(self, request: web.Request) -> web.Response:
        self._require_organizer(request)
        results = await self._bulk(self.timers.reset_manual_timer, self._notify_timer)
        return web.json_response({"action": "reset", "results": results})

    # Organizer dashboard

    async def admin_get_teams(self, request: web.Request) -> web.Response:
        """
        Dashboard overview of every team.

        @param request: Authenticated organizer request
        @return: JSON with ``totalChallenges`` and one status row per team
        """
        self._require_organizer(request)
        total = self.challenges.total_challenges

        teams = []
        for team in await self.auth.get_all_teams():
            progress = await self.challenges.get_team_progress(team)
            state = await self.timers.get_timer_state(team)
            teams.append(
                {
                    "teamName": team,
                    "currentStep": progress["currentStep"],
                    "totalChallenges": total,
                    "isCompleted": progress["completed"],
                    "manualTimerStatus": state.manual_timer.status,
                    "elapsedSeconds": self.timers.elapsed_seconds(state.manual_timer),
                    "challengeTimes": dict(state.challenge_times),
                }
            )

        return web.json_response({"totalChallenges": total, "teams": teams})

    async def _admin_progress_action(
        self,
        request: web.Request,
        action: Callable[[str], Awaitable[Dict[str, Any]]],
    ) -> web.Response:
        self._require_organizer(request)
        team = await self._team_from_path(request)
        progress = await action(team)
        await self._notify_progress(team, progress)
        return web.json_response(progress)

    async def admin_approve(self, request: web.Request) -> web.Response:
        return await self._admin_progress_action(request, self.challenges.approve)

    async def admin_revert(self, request: web.Request) -> web.Response:
        return await self._admin_progress_action(request, self.challenges.revert)

    async def admin_reset(self, request: web.Request) -> web.Response:
        return await self._admin_progress_action(request, self.challenges.reset)

    async def admin_approve_all(self, request: web.Request) -> web.Response:
        self._require_organizer(request)
        results = await self._bulk(self.challenges.approve, self._notify_progress)
        return web.json_response({"action": "approve", "results": results})

    async def admin_revert_all(self, request: web.Request) -> web.Response:
        self._require_organizer(request)
        results = await self._bulk(self.challenges.revert, self._notify_progress)
        return web.json_response({"action": "revert", "results": results})

    async def admin_reset_all(self, request: web.Request) -> web.Response:
        self._require_organizer(request)
        results = await self._bulk(self.challenges.reset, self._notify_progress)
        return web.json_response({"action": "reset", "results": results})

    # Event lifecycle

    async def get_hack_state(self, _: web.Request) -> web.Response:
        state = await self.hack_state.get_state()
        return web.json_response(state.to_dict())

    async def get_hack_config(self, request: web.Request) -> web.Response:
        self._require_organizer(request)
        config = await self.hack_state.get_config()
        return web.json_response(config.to_dict())

    async def save_hack_config(self, request: web.Request) -> web.Response:
        """
        Store the event configuration and announce the resulting state.

        @param request: Organizer request with a HackConfig JSON body
        @return: JSON confirmation
        """
        session = self._require_organizer(request)
        body = await self._read_json(request)
        try:
            config = HackConfig.from_dict(body)
        except (TypeError, ValueError, AttributeError):
            raise ValidationError("Invalid hack configuration")
        state = await self.hack_state.save_config(config, session.username)
        await self.hub.broadcast(HACK_STATE_CHANGED, state.to_dict())
        return web.json_response({"success": True, "message": "Configuration saved"})

    async def launch_hack(self, request: web.Request) -> web.Response:
        session = self._require_organizer(request)
        state = await self.hack_state.launch(session.username)
        await self.hub.broadcast(HACK_STATE_CHANGED, state.to_dict())
        await self.hub.broadcast(HACK_LAUNCHED, state.to_dict())
        return web.json_response(
            {"success": True, "message": "Hack launched!", "startedAt": to_iso(state.started_at)}
        )

    async def pause_hack(self, request: web.Request) -> web.Response:
        session = self._require_organizer(request)
        state = await self.hack_state.pause(session.username)
        await self.hub.broadcast(HACK_STATE_CHANGED, state.to_dict())
        return web.json_response({"success": True, "message": "Hack paused"})

    # Solutions

    async def get_solutions(self, request: web.Request) -> web.Response:
        """
        Solution index for coaches and organizers.

        @param request: Authenticated coach or organizer request
        @return: JSON with the solution list and the caller's current step
        """
        session = self._require_role(request, "coach", "techlead")
        solutions = self.solutions.get_solutions()
        progress = await self.challenges.get_team_progress(session.team or "")
        return web.json_response(
            {
                "solutions": [
                    {"number": s.number, "title": s.title, "fileName": s.file_name}
                    for s in solutions
                ],
                "totalCount": len(solutions),
                "currentStep": progress["currentStep"],
            }
        )

    async def get_solution(self, request: web.Request) -> web.Response:
        self._require_role(request, "coach", "techlead")
        solution = self.solutions.get_solution(self._path_number(request))
        if solution is None:
            raise NotFoundError("Solution not found")
        return web.json_response(
            {
                "number": solution.number,
                "title": solution.title,
                "fileName": solution.file_name,
                "content": solution.raw_markdown,
            }
        )

    async def get_solution_media(self, request: web.Request) -> web.StreamResponse:
        """
        Image referenced by a solution, served from ``<solutions_dir>/media``.

        @param request: Coach or organizer request with the file name
        @return: File response; 400 for unsafe names or types, 404 when missing
        """
        self._require_role(request, "coach", "techlead")
        filename = request.match_info["filename"]
        if not _is_plain_filename(filename):
            raise ValidationError("Invalid filename")

        content_type = MEDIA_CONTENT_TYPES.get(Path(filename).suffix.lower())
        if content_type is None:
            raise ValidationError("Unsupported file type")

        media_dir = str(Path(self.solutions.solutions_dir) / "media")
        path = _resolve_inside(media_dir, filename)
        if path is None:
            raise ValidationError("Invalid filename")
        if not path.is_file():
            raise NotFoundError("Media file not found")
        return web.FileResponse(path, headers={"Content-Type": content_type})
