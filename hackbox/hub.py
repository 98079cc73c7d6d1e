"""
Real-time push over WebSockets, grouped by team name.

Clients connect to ``/hubs/progress``; a session with a team joins that
team's group automatically. Organizers may subscribe to any team with
``{"action": "join", "team": "<name>"}`` (and ``"leave"``).
Events are sent as ``{"type": <event>, "data": <payload>}``.
"""

import json
import logging
from typing import Any, Dict, Iterable, Set

from aiohttp import WSMsgType, web

logger = logging.getLogger(__name__)

PROGRESS_UPDATED = "progressUpdated"
TIMER_UPDATED = "timerUpdated"
HACK_STATE_CHANGED = "hackStateChanged"
HACK_LAUNCHED = "hackLaunched"


class ProgressHub:
    def __init__(self) -> None:
        self._groups: Dict[str, Set[web.WebSocketResponse]] = {}
        self._clients: Set[web.WebSocketResponse] = set()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def group_size(self, team: str) -> int:
        return len(self._groups.get(team, ()))

    def join(self, ws: web.WebSocketResponse, team: str) -> None:
        self._groups.setdefault(team, set()).add(ws)

    def leave(self, ws: web.WebSocketResponse, team: str) -> None:
        members = self._groups.get(team)
        if members is None:
            return
        members.discard(ws)
        if not members:
            del self._groups[team]

    def discard(self, ws: web.WebSocketResponse) -> None:
        self._clients.discard(ws)
        for team in list(self._groups):
            self.leave(ws, team)

    async def handle(self, request: web.Request) -> web.WebSocketResponse:
        """
        WebSocket endpoint.

        @param request: Upgrade request; ``request["user"]`` holds the session if any
        @return: The closed WebSocket response
        """
        ws = web.WebSocketResponse(heartbeat=30)
        await ws.prepare(request)

        session = request.get("user")
        self._clients.add(ws)
        if session is not None and session.team:
            self.join(ws, session.team)
        logger.info("Hub client connected. Total clients: %d", len(self._clients))

        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    await self._handle_message(ws, session, msg.data)
                elif msg.type == WSMsgType.ERROR:
                    logger.warning("Hub connection closed with error: %s", ws.exception())
        finally:
            self.discard(ws)
            logger.info("Hub client disconnected. Remaining clients: %d", len(self._clients))

        return ws

    async def _handle_message(self, ws: web.WebSocketResponse, session: Any, raw: str) -> None:
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            await ws.send_json({"type": "error", "data": {"error": "Invalid message"}})
            return

        action = message.get("action") if isinstance(message, dict) else None
        team = message.get("team") if isinstance(message, dict) else None
        if action not in ("join", "leave") or not isinstance(team, str) or not team:
            await ws.send_json({"type": "error", "data": {"error": "Unknown action"}})
            return

        if session is None or session.role != "techlead":
            await ws.send_json({"type": "error", "data": {"error": "Forbidden"}})
            return

        if action == "join":
            self.join(ws, team)
        else:
            self.leave(ws, team)
        await ws.send_json({"type": action, "data": {"team": team}})

    async def _send(self, targets: Iterable[web.WebSocketResponse], event: str, data: Any) -> int:
        payload = {"type": event, "data": data}
        delivered = 0
        dead = []
        for ws in list(targets):
            if ws.closed:
                dead.append(ws)
                continue
            try:
                await ws.send_json(payload)
                delivered += 1
            except (ConnectionError, RuntimeError) as e:
                logger.warning("Dropping hub client after send failure: %s", e)
                dead.append(ws)

        for ws in dead:
            self.discard(ws)
        return delivered

    async def send_to_group(self, team: str, event: str, data: Any) -> int:
        delivered = await self._send(self._groups.get(team, ()), event, data)
        logger.debug("Sent %s to %d clients in group %s", event, delivered, team)
        return delivered

    async def broadcast(self, event: str, data: Any) -> int:
        delivered = await self._send(self._clients, event, data)
        logger.info("Broadcasted %s to %d clients", event, delivered)
        return delivered

    async def close_all(self) -> None:
        for ws in list(self._clients):
            await ws.close(code=1001, message=b"Server shutdown")
        self._clients.clear()
        self._groups.clear()
