"""Shared runner for the per-agent hook adapters.

An adapter turns the agent's stdin payload into a canonical frame (``plan``)
and turns the monitor's decision back into the agent's stdout envelope
(``render``). The runner owns everything in between: process info, the socket
round trip, logging, and degrading to "ask" whenever anything goes wrong.
"""

from __future__ import annotations

import asyncio
import json
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, TextIO, runtime_checkable

from loguru import logger

from agent_monitor.app_config import resolve_runtime_env
from agent_monitor.hooks.utils import get_tty, read_stdin_json
from agent_monitor.logging_config import hook_consumers, setup_logging
from agent_monitor.protocol import HookEvent, HookResponse, default_socket_path
from agent_monitor.transport.client import request_decision, send_event


@dataclass
class HookPlan:
    event: HookEvent | None
    wait_for_decision: bool = False


@runtime_checkable
class HookAdapter(Protocol):
    agent: str
    permission_timeout: float

    def plan(self, payload: dict[str, Any], *, pid: int | None, tty: str | None) -> HookPlan: ...

    def render(self, response: HookResponse) -> dict[str, Any] | None: ...


async def run_hook(
    adapter: HookAdapter,
    plan: HookPlan,
    *,
    socket_path: str | Path | None = None,
) -> dict[str, Any] | None:
    if plan.event is None:
        return None
    if plan.wait_for_decision:
        response = await request_decision(
            plan.event,
            socket_path=socket_path,
            timeout=adapter.permission_timeout,
        )
        logger.debug(f"{adapter.agent} {plan.event.tool}: {response.decision}")
        return adapter.render(response)
    await send_event(plan.event, socket_path=socket_path)
    return None


def main_for(adapter: HookAdapter, stdin: TextIO | None = None, stdout: TextIO | None = None) -> int:
    setup_logging(consumers=hook_consumers(resolve_runtime_env().hook_debug))
    out = stdout or sys.stdout

    try:
        payload = read_stdin_json(stdin)
    except (ValueError, OSError) as ex:
        logger.warning(f"{adapter.agent} hook: unreadable payload ({ex})")
        return 1
    if not isinstance(payload, dict):
        logger.warning(f"{adapter.agent} hook: payload is not a JSON object")
        return 1

    plan: HookPlan | None = None
    try:
        plan = adapter.plan(payload, pid=os.getppid(), tty=get_tty())
        output = asyncio.run(run_hook(adapter, plan, socket_path=default_socket_path()))
    except Exception:
        logger.exception(f"{adapter.agent} hook failed")
        output = adapter.render(HookResponse.ask()) if plan is not None and plan.wait_for_decision else None

    if output is not None:
        out.write(json.dumps(output) + "\n")
        out.flush()
    return 0
