"""
aiohttp middlewares: request logging, error mapping and session lookup.
"""

import logging
from datetime import datetime
from typing import Any, Awaitable, Callable

from aiohttp import web

from .errors import HackboxError

logger = logging.getLogger(__name__)
http_logger = logging.getLogger("hackbox.http")

COOKIE_NAME = "hackbox_session"

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

QUIET_PATH_PREFIXES = ("/hubs/", "/health")


def client_ip(request: web.Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
    if forwarded:
        return forwarded
    return request.headers.get("X-Real-IP", "") or request.remote or "unknown"


@web.middleware
async def logging_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Log every HTTP request and its outcome."""
    if request.method == "OPTIONS" or request.path.startswith(QUIET_PATH_PREFIXES):
        return await handler(request)

    started = datetime.now()
    ip = client_ip(request)
    http_logger.info("-> %s %s | IP: %s", request.method, request.path_qs, ip)

    try:
        response = await handler(request)
    except web.HTTPException as ex:
        duration = (datetime.now() - started).total_seconds() * 1000
        http_logger.warning(
            "<- %s %s | IP: %s | Status: %d | Duration: %.2fms | Error: %s",
            request.method,
            request.path,
            ip,
            ex.status,
            duration,
            ex.reason,
        )
        raise

    duration = (datetime.now() - started).total_seconds() * 1000
    http_logger.info(
        "<- %s %s | IP: %s | Status: %d | Duration: %.2fms",
        request.method,
        request.path,
        ip,
        response.status,
        duration,
    )
    return response


def error_response(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status)


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Turn business errors and HTTP errors into ``{"error": ...}`` JSON."""
    try:
        return await handler(request)
    except HackboxError as e:
        return error_response(e.message, e.status)
    except web.HTTPException as ex:
        if ex.status < 400:
            raise
        return error_response(ex.reason, ex.status)
    except Exception:
        logger.exception("Unhandled error for %s %s", request.method, request.path)
        return error_response("Internal server error", 500)


def session_middleware(auth_service: Any) -> Callable:
    """
    Build the middleware resolving the session cookie into ``request["user"]``.

    @param auth_service: AuthService used to look sessions up
    @return: aiohttp middleware
    """

    @web.middleware
    async def middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
        request["user"] = None
        session_id = request.cookies.get(COOKIE_NAME)
        if session_id:
            request["user"] = await auth_service.get_session(session_id)
        return await handler(request)

    return middleware
