from __future__ import annotations

import asyncio
import contextlib
import os
import stat
from pathlib import Path

from loguru import logger

from agent_monitor.protocol import (
    CanonicalEvent,
    FrameError,
    HookEvent,
    HookResponse,
    decode_frame,
    default_socket_path,
    encode_frame,
    generate_tool_use_id,
)
from agent_monitor.sessions.engine import SessionEngine
from agent_monitor.transport.tool_use_cache import ToolUseIdCache

STREAM_LIMIT = 16 * 1024 * 1024
DEFAULT_DEBOUNCE_SECONDS = 0.05

REGISTER_FRAME = "session:register"
STDIN_FRAME = "session:stdin"
RESIZE_FRAME = "session:resize"
KILL_FRAME = "session:kill"

CRITICAL_EVENTS = frozenset({
    CanonicalEvent.SESSION_START,
    CanonicalEvent.SESSION_END,
    CanonicalEvent.PRE_TOOL_USE,
    CanonicalEvent.PERMISSION_REQUEST,
})


class HookSocketServer:
    """Unix socket endpoint the hook adapters report to.

    Each adapter invocation opens one connection and writes one NDJSON frame.
    Permission frames keep the connection open until the user decides or the
    adapter gives up; everything else is applied to the engine and forgotten.
    """

    def __init__(
        self,
        engine: SessionEngine,
        *,
        socket_path: str | Path | None = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        cache: ToolUseIdCache | None = None,
    ):
        self._engine = engine
        self._socket_path = Path(socket_path) if socket_path else default_socket_path()
        self._debounce_seconds = max(0.0, debounce_seconds)
        self._cache = cache or ToolUseIdCache()
        self._server: asyncio.AbstractServer | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._writers: dict[str, asyncio.StreamWriter] = {}
        self._connections: set[asyncio.Task] = set()
        self._debounced: dict[tuple[str, str], tuple[asyncio.TimerHandle, HookEvent]] = {}

    @property
    def socket_path(self) -> Path:
        return self._socket_path

    @property
    def is_serving(self) -> bool:
        return self._server is not None and self._server.is_serving()

    def is_registered(self, session_id: str) -> bool:
        writer = self._writers.get(session_id)
        return writer is not None and not writer.is_closing()

    async def start(self) -> None:
        if self._server is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._socket_path.parent.mkdir(parents=True, exist_ok=True)
        self._unlink_stale()
        self._server = await asyncio.start_unix_server(
            self._handle_connection,
            path=str(self._socket_path),
            limit=STREAM_LIMIT,
        )
        os.chmod(self._socket_path, 0o600)
        logger.info(f"Listening for hook events on {self._socket_path}")

    async def close(self) -> None:
        if self._server is None:
            return
        for key in list(self._debounced):
            self._fire_debounced(key)
        self._server.close()
        connections = list(self._connections)
        for task in connections:
            task.cancel()
        if connections:
            await asyncio.gather(*connections, return_exceptions=True)
        await self._server.wait_closed()
        self._server = None
        self._writers.clear()
        self._unlink_stale()
        logger.info("Hook socket closed")

    def _unlink_stale(self) -> None:
        try:
            mode = self._socket_path.lstat().st_mode
        except FileNotFoundError:
            return
        if not stat.S_ISSOCK(mode):
            raise FileExistsError(f"{self._socket_path} exists and is not a socket")
        self._socket_path.unlink()

    # -- connections --

    async def _handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._connections.add(task)
        registered: set[str] = set()
        try:
            while True:
                try:
                    line = await reader.readline()
                except ValueError as ex:
                    logger.warning(f"Dropping connection with an oversized frame: {ex}")
                    break
                except ConnectionError:
                    break
                if not line:
                    break
                if not line.strip():
                    continue
                try:
                    await self._dispatch(decode_frame(line), reader, writer, registered)
                except FrameError as ex:
                    logger.warning(f"Skipping hook frame: {ex}")
        except Exception:
            logger.exception("Hook connection failed")
        finally:
            for session_id in registered:
                if self._writers.get(session_id) is writer:
                    del self._writers[session_id]
            if task is not None:
                self._connections.discard(task)
            writer.close()
            with contextlib.suppress(OSError):
                await writer.wait_closed()

    async def _dispatch(
        self,
        frame: dict,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        registered: set[str],
    ) -> None:
        if frame.get("type") == REGISTER_FRAME:
            session_id = frame.get("sessionId")
            if not isinstance(session_id, str) or not session_id:
                raise FrameError("register frame has no sessionId")
            self._register(session_id, writer, registered)
            return

        event = HookEvent.from_frame(frame)
        logger.debug(f"{event.agent} {event.event} for {event.session_id[:8]} ({event.status or '-'})")

        if event.is_permission_request:
            await self._handle_permission(event, reader, writer, registered)
            return

        if event.event == CanonicalEvent.PRE_TOOL_USE:
            self._cache.put(event)
        elif event.event == CanonicalEvent.SESSION_END:
            self._cache.clear_session(event.session_id)
        self._submit(event)

    def _register(self, session_id: str, writer: asyncio.StreamWriter, registered: set[str]) -> None:
        self._writers[session_id] = writer
        registered.add(session_id)

    async def _handle_permission(
        self,
        event: HookEvent,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        registered: set[str],
    ) -> None:
        if not event.tool_use_id:
            event.tool_use_id = self._cache.pop(event) or generate_tool_use_id(
                event.agent, event.session_id, event.tool or "unknown"
            )
        self._register(event.session_id, writer, registered)
        self._flush_session(event.session_id)

        loop = asyncio.get_running_loop()
        decision: asyncio.Future[HookResponse] = loop.create_future()

        def responder(response: HookResponse) -> None:
            def settle() -> None:
                if not decision.done():
                    decision.set_result(response)

            loop.call_soon_threadsafe(settle)

        self._apply(event, responder)

        closed = asyncio.ensure_future(reader.read())
        try:
            await asyncio.wait({decision, closed}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not closed.done():
                closed.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await closed
            if not decision.done():
                decision.cancel()
                self._engine.cancel_permission(event.session_id, event.tool_use_id)

        if decision.cancelled():
            logger.info(f"Adapter for {event.session_id[:8]} stopped waiting on {event.tool}")
            return

        response = decision.result()
        try:
            writer.write(encode_frame(response.to_frame()))
            await writer.drain()
        except (ConnectionError, OSError) as ex:
            logger.warning(f"Could not deliver {response.decision} to {event.session_id[:8]}: {ex}")

    # -- debounce --

    def _submit(self, event: HookEvent) -> None:
        if self._debounce_seconds <= 0 or self._loop is None:
            self._apply(event)
            return
        if event.event in CRITICAL_EVENTS:
            self._flush_session(event.session_id)
            self._apply(event)
            return

        key = (event.session_id, event.status)
        # Earlier events of another status must land first to keep ordering.
        self._flush_session(event.session_id, keep=key)
        pending = self._debounced.pop(key, None)
        if pending is not None:
            pending[0].cancel()
        handle = self._loop.call_later(self._debounce_seconds, self._fire_debounced, key)
        self._debounced[key] = (handle, event)

    def _fire_debounced(self, key: tuple[str, str]) -> None:
        pending = self._debounced.pop(key, None)
        if pending is None:
            return
        handle, event = pending
        handle.cancel()
        self._apply(event)

    def _flush_session(self, session_id: str, keep: tuple[str, str] | None = None) -> None:
        for key in [k for k in self._debounced if k[0] == session_id and k != keep]:
            self._fire_debounced(key)

    def _apply(self, event: HookEvent, responder=None) -> None:
        try:
            self._engine.apply(event, responder=responder)
        except Exception:
            logger.exception(f"Failed to apply {event.event} for {event.session_id[:8]}")

    # -- control frames --

    def send_stdin(self, session_id: str, data: str) -> bool:
        return self._send_control(session_id, {"type": STDIN_FRAME, "sessionId": session_id, "data": data})

    def send_resize(self, session_id: str, cols: int, rows: int) -> bool:
        return self._send_control(
            session_id,
            {"type": RESIZE_FRAME, "sessionId": session_id, "cols": cols, "rows": rows},
        )

    def send_kill(self, session_id: str) -> bool:
        return self._send_control(session_id, {"type": KILL_FRAME, "sessionId": session_id})

    def _send_control(self, session_id: str, frame: dict) -> bool:
        writer = self._writers.get(session_id)
        if writer is None or writer.is_closing():
            return False
        try:
            writer.write(encode_frame(frame))
        except (ConnectionError, OSError, RuntimeError) as ex:
            logger.warning(f"Control frame {frame['type']} to {session_id[:8]} failed: {ex}")
            return False
        return True
