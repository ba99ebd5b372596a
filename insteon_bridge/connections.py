"""Client WebSocket connections, broadcast and the ping/pong heartbeat."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional

from aiohttp import WSCloseCode, web

from .messages import BRIDGE_STATUS, bridge_status, create_message


class ClientConnection:
    """One connected client and its heartbeat liveness flag."""

    def __init__(self, ws: web.WebSocketResponse, remote: Optional[str]):
        self.ws = ws
        self.remote = (remote or "unknown").replace("::ffff:", "")
        self.alive = True
        self.log = logging.getLogger("insteon_bridge.connections")

    @property
    def closed(self) -> bool:
        return self.ws.closed

    def mark_alive(self) -> None:
        self.alive = True

    async def send(self, message_type: str, data: Any) -> bool:
        if self.closed:
            self.log.debug("Dropping type=%s for closed client=[%s]", message_type, self.remote)
            return False
        message = create_message(message_type, data)
        self.log.info("Sending to client=[%s] type=%s message=%s", self.remote, message_type, message)
        try:
            await self.ws.send_str(message)
        except (ConnectionError, RuntimeError) as exc:
            self.log.warning("Failed to send to client=[%s]: %s", self.remote, exc)
            return False
        return True

    async def ping(self) -> None:
        self.log.debug("Sending PING request to client=[%s]", self.remote)
        await self.ws.ping()

    async def pong(self, payload: bytes = b"") -> None:
        await self.ws.pong(payload)

    async def close(self, message: bytes = b"server shutdown") -> None:
        await self.ws.close(code=WSCloseCode.GOING_AWAY, message=message)

    async def terminate(self) -> None:
        await self.close(b"heartbeat timeout")

    def __repr__(self) -> str:
        return f"ClientConnection(remote={self.remote!r}, alive={self.alive})"


class ConnectionManager:
    """Tracks live client connections for the bridge."""

    def __init__(self, context: Any, *, heartbeat_interval: float = 30.0):
        self.context = context
        self.heartbeat_interval = heartbeat_interval
        self.log = logging.getLogger("insteon_bridge.connections")
        self._clients: List[Any] = []
        self._heartbeat_task: Optional[asyncio.Task] = None

    @property
    def clients(self) -> List[Any]:
        return list(self._clients)

    async def attach(self, connection: Any) -> None:
        self._clients.append(connection)
        self.log.info("Client [%s] connected to websocket", connection.remote)
        await connection.send(
            BRIDGE_STATUS,
            bridge_status("Bridge connection established", self.context.hub_connected),
        )

    def detach(self, connection: Any) -> None:
        try:
            self._clients.remove(connection)
        except ValueError:
            return
        connection.alive = False
        self.log.info("Websocket closed by client=[%s]", connection.remote)

    async def broadcast(self, message_type: str, data: Any) -> None:
        self.log.info("Sending to all clients type=%s message=%s", message_type, data)
        stale: List[Any] = []
        for connection in list(self._clients):
            if connection.closed or not await connection.send(message_type, data):
                stale.append(connection)
        for connection in stale:
            self.detach(connection)

    async def heartbeat_round(self) -> None:
        stale: List[Any] = []
        for connection in list(self._clients):
            if not connection.alive:
                self.log.info("Terminating stale connection to client=[%s]", connection.remote)
                self.detach(connection)
                stale.append(connection)
                continue
            # The client must answer with a pong before the next round
            connection.alive = False
            try:
                await connection.ping()
            except Exception as exc:
                self.log.debug("Ping to client=[%s] failed: %s", connection.remote, exc)
        # Closing waits for the peer, so dead clients are closed together once every ping is out
        results = await asyncio.gather(*(connection.terminate() for connection in stale), return_exceptions=True)
        for connection, result in zip(stale, results):
            if isinstance(result, Exception):
                self.log.debug("Error closing client=[%s]: %s", connection.remote, result)

    async def run_heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            await self.heartbeat_round()

    def start(self) -> None:
        if self._heartbeat_task is None:
            self._heartbeat_task = asyncio.get_running_loop().create_task(self.run_heartbeat(), name="bridge-heartbeat")

    async def stop(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        for connection in list(self._clients):
            self.detach(connection)
            try:
                await connection.close()
            except Exception as exc:
                self.log.debug("Error closing client=[%s]: %s", connection.remote, exc)


__all__ = ["ClientConnection", "ConnectionManager"]
