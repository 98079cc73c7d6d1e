"""
Hackbox Portal - An event portal for running microhacks.

This package provides:
- Sequential markdown challenges with coach-approved team progression
- Automatic per-challenge timing and a manual stopwatch per team
- Organizer dashboard with per-team and bulk operations
- Event lifecycle (configure, launch, pause) and coach-only solutions
- Real-time progress push over WebSockets
- JSON file or SQLite storage
"""

__version__ = "1.0.0"
__author__ = "Hackbox Portal Contributors"

from .config import HackboxConfig
from .errors import (
    AuthenticationError,
    AuthorizationError,
    ConfigurationError,
    ConflictError,
    HackboxError,
    NotFoundError,
    ValidationError,
)
from .challenges import ChallengeService
from .timers import TimerService
from .auth import AuthService
from .hack_state import HackStateService
from .solutions import SolutionService
from .hub import ProgressHub
from .web_handlers import WebHandlers
from .portal import HackboxPortal

__all__ = [
    "HackboxConfig",
    "HackboxError",
    "ValidationError",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
    "ConflictError",
    "ConfigurationError",
    "ChallengeService",
    "TimerService",
    "AuthService",
    "HackStateService",
    "SolutionService",
    "ProgressHub",
    "WebHandlers",
    "HackboxPortal",
]
