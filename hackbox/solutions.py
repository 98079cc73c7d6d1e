"""
Coach-only solution content, loaded from ``solution-NNN.md`` files.
"""

import logging
import re
from pathlib import Path
from typing import List, Optional

from .challenges import extract_heading
from .models import Solution

logger = logging.getLogger(__name__)

SOLUTION_FILE_PATTERN = re.compile(r"^solution-(\d{3})\.md$")


class SolutionService:
    """Unlike challenges, solutions keep the number from their file name."""

    def __init__(self, solutions_dir: str) -> None:
        self.solutions_dir = solutions_dir
        self._solutions = self._load(solutions_dir)

    @staticmethod
    def _load(solutions_dir: str) -> List[Solution]:
        directory = Path(solutions_dir)
        if not directory.is_dir():
            logger.warning("Solutions directory not found: %s", solutions_dir)
            return []

        solutions = []
        for path in sorted(directory.glob("solution-*.md")):
            match = SOLUTION_FILE_PATTERN.match(path.name)
            if not match:
                continue
            content = path.read_text(encoding="utf-8")
            solutions.append(
                Solution(
                    number=int(match.group(1)),
                    title=extract_heading(content) or path.name,
                    file_name=path.name,
                    raw_markdown=content,
                )
            )

        logger.info("Loaded %d solutions from %s", len(solutions), solutions_dir)
        return solutions

    def get_solutions(self) -> List[Solution]:
        return list(self._solutions)

    def get_solution(self, number: int) -> Optional[Solution]:
        for solution in self._solutions:
            if solution.number == number:
                return solution
        return None
