from __future__ import annotations

import asyncio
import contextlib
from pathlib import Path

from loguru import logger

from agent_monitor.protocol import (
    FrameError,
    HookEvent,
    HookResponse,
    decode_frame,
    default_socket_path,
    encode_frame,
)

DEFAULT_CONNECT_TIMEOUT = 2.0


async def _open(socket_path: str | Path | None, connect_timeout: float):
    path = str(socket_path or default_socket_path())
    return await asyncio.wait_for(asyncio.open_unix_connection(path), timeout=connect_timeout)


async def _close(writer: asyncio.StreamWriter) -> None:
    writer.close()
    with contextlib.suppress(OSError):
        await writer.wait_closed()


async def send_event(
    event: HookEvent,
    *,
    socket_path: str | Path | None = None,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
) -> bool:
    """Deliver one frame without waiting for a reply. False when the monitor is not reachable."""
    try:
        _, writer = await _open(socket_path, connect_timeout)
    except (OSError, asyncio.TimeoutError) as ex:
        logger.debug(f"Monitor not reachable: {ex}")
        return False
    try:
        writer.write(encode_frame(event.to_frame()))
        await writer.drain()
        return True
    except (ConnectionError, OSError) as ex:
        logger.debug(f"Sending {event.event} failed: {ex}")
        return False
    finally:
        await _close(writer)


async def request_decision(
    event: HookEvent,
    *,
    socket_path: str | Path | None = None,
    timeout: float,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
) -> HookResponse:
    """Send a permission frame and wait for the user's decision.

    Anything short of a well-formed reply within ``timeout`` means "ask", which
    hands the decision back to the agent's own prompt.
    """
    try:
        reader, writer = await _open(socket_path, connect_timeout)
    except (OSError, asyncio.TimeoutError) as ex:
        logger.debug(f"Monitor not reachable: {ex}")
        return HookResponse.ask()
    try:
        writer.write(encode_frame(event.to_frame()))
        await writer.drain()
        line = await asyncio.wait_for(reader.readline(), timeout=timeout)
        if not line.strip():
            logger.debug("Monitor closed the connection without a decision")
            return HookResponse.ask()
        return HookResponse.from_frame(decode_frame(line))
    except asyncio.TimeoutError:
        logger.info(f"No decision for {event.tool} within {timeout:g}s")
        return HookResponse.ask()
    except FrameError as ex:
        logger.warning(f"Unusable decision frame: {ex}")
        return HookResponse.ask()
    except (ConnectionError, OSError, ValueError) as ex:
        logger.debug(f"Decision request failed: {ex}")
        return HookResponse.ask()
    finally:
        await _close(writer)
