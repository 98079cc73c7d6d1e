"""
Challenge content and team progression.

Challenges are markdown files named ``challenge-NNN.md``. They are scanned
once at startup, sorted by file name and numbered 1..N in that order, so gaps
in the file numbering never reach clients.

Team progression is a single integer step per team: step ``n`` means
challenge ``n`` is current, and ``total + 1`` means the team has finished.
"""

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .errors import AuthorizationError, ConflictError, NotFoundError
from .locks import TeamLocks
from .models import Challenge, TeamProgress, utcnow
from .repositories import ProgressRepository
from .timers import TimerService

logger = logging.getLogger(__name__)

CHALLENGE_FILE_PATTERN = re.compile(r"^challenge-(\d{3})\.md$")
TITLE_PATTERN = re.compile(r"^#\s+(.+)$", re.MULTILINE)


def extract_heading(markdown: str) -> Optional[str]:
    match = TITLE_PATTERN.search(markdown)
    return match.group(1).strip() if match else None


def extract_title(markdown: str, number: int) -> str:
    """
    Title of a challenge: its first level-one heading, else a default.

    @param markdown: Raw challenge markdown
    @param number: Sequential challenge number used for the default
    @return: Title string
    """
    return extract_heading(markdown) or f"Challenge {number}"


def compute_status(challenge_number: int, current_step: int) -> str:
    if challenge_number < current_step:
        return "completed"
    if challenge_number == current_step:
        return "current"
    return "locked"


def load_challenges(challenges_dir: str) -> List[Challenge]:
    """
    Scan a directory for challenge markdown files.

    @param challenges_dir: Directory holding ``challenge-NNN.md`` files
    @return: Challenges numbered sequentially by sorted file name
    """
    directory = Path(challenges_dir)
    if not directory.is_dir():
        logger.warning("Challenges directory not found: %s", challenges_dir)
        return []

    files = sorted(
        path
        for path in directory.glob("challenge-*.md")
        if CHALLENGE_FILE_PATTERN.match(path.name)
    )

    challenges = []
    for number, path in enumerate(files, start=1):
        content = path.read_text(encoding="utf-8")
        challenges.append(
            Challenge(
                number=number,
                title=extract_title(content, number),
                raw_markdown=content,
            )
        )

    logger.info("Loaded %d challenges from %s", len(challenges), challenges_dir)
    return challenges


class ChallengeService:
    """Serves challenge content and runs the per-team progression."""

    def __init__(
        self,
        challenges_dir: str,
        progress_repository: ProgressRepository,
        timer_service: Optional[TimerService] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.challenges_dir = challenges_dir
        self.repository = progress_repository
        self.timer_service = timer_service
        self.clock = clock
        self._challenges = load_challenges(challenges_dir)
        self._locks = TeamLocks()

    def set_timer_service(self, timer_service: TimerService) -> None:
        self.timer_service = timer_service

    @property
    def total_challenges(self) -> int:
        return len(self._challenges)

    def get_challenges(self) -> List[Challenge]:
        return list(self._challenges)

    def get_challenge(self, number: int) -> Optional[Challenge]:
        if 1 <= number <= len(self._challenges):
            return self._challenges[number - 1]
        return None

    async def _get_or_create_progress(self, team_id: str) -> TeamProgress:
        progress = await self.repository.get_progress(team_id)
        if progress is not None:
            return progress
        return TeamProgress(
            team_id=team_id,
            current_step=1 if self._challenges else 0,
            updated_at=self.clock(),
        )

    def build_progress_response(self, team_id: str, progress: TeamProgress) -> Dict[str, Any]:
        total = self.total_challenges
        current_step = 0 if total == 0 else progress.current_step
        return {
            "teamId": team_id,
            "currentStep": current_step,
            "totalChallenges": total,
            "completedChallenges": 0 if total == 0 else max(0, current_step - 1),
            "completed": total > 0 and current_step > total,
        }

    async def get_team_progress(self, team_id: str) -> Dict[str, Any]:
        progress = await self._get_or_create_progress(team_id)
        return self.build_progress_response(team_id, progress)

    async def get_challenge_list(self, team_id: str) -> List[Dict[str, Any]]:
        """
        Challenge list as seen by a team; locked entries hide their title.

        @param team_id: Team whose progress decides each status
        @return: List of ``{challengeNumber, title, status}`` items
        """
        progress = await self._get_or_create_progress(team_id)
        items = []
        for challenge in self._challenges:
            status = compute_status(challenge.number, progress.current_step)
            items.append(
                {
                    "challengeNumber": challenge.number,
                    "title": None if status == "locked" else challenge.title,
                    "status": status,
                }
            )
        return items

    async def get_challenge_for_team(self, team_id: str, number: int) -> Dict[str, Any]:
        challenge = self.get_challenge(number)
        if challenge is None:
            raise NotFoundError("Challenge not found")

        progress = await self._get_or_create_progress(team_id)
        status = compute_status(number, progress.current_step)
        if status == "locked":
            raise AuthorizationError("Challenge is locked")

        return {
            "challengeNumber": challenge.number,
            "title": challenge.title,
            "status": status,
            "content": challenge.raw_markdown,
        }

    async def approve(self, team_id: str) -> Dict[str, Any]:
        """
        Advance a team past its current challenge.

        Records the elapsed time of the approved challenge and restarts the
        automatic timer for the next one (or stops it after the last).

        @param team_id: Team to advance
        @return: Progress response after the step
        @raise ConflictError: No challenges loaded, or all already completed
        """
        if not self._challenges:
            raise ConflictError("No challenges loaded")

        async with self._locks.get(team_id):
            progress = await self._get_or_create_progress(team_id)
            if progress.current_step > self.total_challenges:
                raise ConflictError("All challenges already completed")

            approved = progress.current_step
            now = self.clock()

            if self.timer_service is not None:
                started_at = await self.timer_service.get_timer_started_at(team_id)
                if started_at is None:
                    started_at = now
                elapsed = max(0, int((now - started_at).total_seconds()))
                await self.timer_service.record_challenge_time(team_id, approved, elapsed)

                is_last = approved >= self.total_challenges
                await self.timer_service.set_timer_started_at(
                    team_id, None if is_last else now
                )

            progress.current_step = approved + 1
            progress.updated_at = now
            await self.repository.save_progress(progress)

        logger.info("Team %s approved challenge %d", team_id, approved)
        return self.build_progress_response(team_id, progress)

    async def revert(self, team_id: str) -> Dict[str, Any]:
        """
        Step a team back to its previous challenge.

        @raise ConflictError: No challenges loaded, or already at the first
        """
        if not self._challenges:
            raise ConflictError("No challenges loaded")

        async with self._locks.get(team_id):
            progress = await self._get_or_create_progress(team_id)
            if progress.current_step <= 1:
                raise ConflictError("Already at first challenge")

            reverted = progress.current_step - 1
            now = self.clock()

            if self.timer_service is not None:
                await self.timer_service.clear_challenge_time(team_id, reverted)
                await self.timer_service.set_timer_started_at(team_id, now)

            progress.current_step = reverted
            progress.updated_at = now
            await self.repository.save_progress(progress)

        logger.info("Team %s reverted to challenge %d", team_id, reverted)
        return self.build_progress_response(team_id, progress)

    async def reset(self, team_id: str) -> Dict[str, Any]:
        if not self._challenges:
            raise ConflictError("No challenges loaded")

        async with self._locks.get(team_id):
            progress = await self._get_or_create_progress(team_id)

            if self.timer_service is not None:
                await self.timer_service.clear_all_challenge_times(team_id)

            progress.current_step = 1
            progress.updated_at = self.clock()
            await self.repository.save_progress(progress)

        logger.info("Team %s reset to challenge 1", team_id)
        return self.build_progress_response(team_id, progress)
