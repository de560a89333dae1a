from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Callable

from loguru import logger

from agent_monitor.phases import is_suppressed, phase_for_event
from agent_monitor.protocol import CanonicalEvent, Decision, HookEvent, HookResponse, Phase, generate_tool_use_id
from agent_monitor.sessions.activity_log import ActivityEntry, ActivityKind, ActivityLog
from agent_monitor.sessions.auto_allow import AutoAllowStore
from agent_monitor.sessions.models import (
    PermissionRequest,
    Responder,
    Session,
    SessionChange,
    TransitionKind,
    extract_question,
    format_tool_input,
)

SessionListener = Callable[[SessionChange], None]

# The agent has moved past whatever it was asking about.
_CLEARS_PENDING = frozenset({
    CanonicalEvent.PRE_TOOL_USE,
    CanonicalEvent.POST_TOOL_USE,
    CanonicalEvent.USER_PROMPT_SUBMIT,
    CanonicalEvent.STOP,
    CanonicalEvent.SUBAGENT_STOP,
    CanonicalEvent.SESSION_START,
    CanonicalEvent.SESSION_END,
})

_INTERRUPTIBLE = frozenset({
    Phase.PROCESSING,
    Phase.RUNNING_TOOL,
    Phase.WAITING_FOR_APPROVAL,
    Phase.COMPACTING,
})

_ATTENTION_ORDER = {
    Phase.WAITING_FOR_APPROVAL: 0,
    Phase.WAITING_FOR_INPUT: 1,
    Phase.ERROR: 2,
    Phase.RUNNING_TOOL: 3,
    Phase.PROCESSING: 4,
    Phase.COMPACTING: 5,
    Phase.IDLE: 6,
    Phase.ENDED: 7,
}


def derive_phase(event: HookEvent) -> str | None:
    """Phase for an event, or None to leave the session's phase alone."""
    if event.status == Phase.ERROR:
        return Phase.ERROR
    if event.is_permission_request:
        return Phase.WAITING_FOR_APPROVAL
    phase = phase_for_event(event.event, event.notification_type, event.tool)
    if phase is not None:
        return phase
    if event.status in Phase.ALL:
        return event.status
    return None


class SessionEngine:
    """Authoritative in-memory session table fed by canonical hook events."""

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        ended_retention_seconds: float = 3600.0,
        cleanup_interval_seconds: float = 60.0,
        activity_log: ActivityLog | None = None,
        auto_allow: AutoAllowStore | None = None,
    ):
        self._clock = clock
        self._ended_retention_seconds = max(0.0, ended_retention_seconds)
        self._cleanup_interval_seconds = max(0.05, cleanup_interval_seconds)
        self._activity = activity_log or ActivityLog()
        self._auto_allow = auto_allow or AutoAllowStore()
        self._sessions: dict[str, Session] = {}
        self._listeners: list[SessionListener] = []
        self._lock = threading.RLock()
        self._task: asyncio.Task | None = None

    @property
    def auto_allow(self) -> AutoAllowStore:
        return self._auto_allow

    # -- lifecycle --

    async def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run_cleanup())

    async def close(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _run_cleanup(self) -> None:
        while True:
            await asyncio.sleep(self._cleanup_interval_seconds)
            self.sweep()

    # -- subscribers --

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, changes: list[SessionChange]) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for change in changes:
            for listener in listeners:
                try:
                    listener(change)
                except Exception:
                    logger.exception(f"Session listener failed on {change.kind} for {change.session.session_id[:8]}")

    @staticmethod
    def _complete(responder: Responder, response: HookResponse) -> None:
        try:
            responder(response)
        except Exception:
            logger.exception("Permission responder failed")

    # -- events --

    def apply(self, event: HookEvent, responder: Responder | None = None) -> tuple[Session | None, str | None]:
        if is_suppressed(event.event, event.notification_type):
            logger.debug(f"Suppressed {event.event}/{event.notification_type} for {event.session_id[:8]}")
            if responder is not None:
                self._complete(responder, HookResponse.ask())
            with self._lock:
                return self._sessions.get(event.session_id), None

        changes: list[SessionChange] = []
        completions: list[tuple[Responder, HookResponse]] = []

        with self._lock:
            now = self._clock()
            session = self._sessions.get(event.session_id)
            created = session is None
            if session is None:
                session = Session(
                    session_id=event.session_id,
                    agent=event.agent,
                    cwd=event.cwd,
                    phase=Phase.IDLE,
                    started_at=now,
                    last_activity=now,
                )
                self._sessions[event.session_id] = session
                self._record(session, ActivityKind.SESSION_START, f"{event.agent} session started", now)
                logger.info(f"Session {event.session_id[:8]} added ({event.agent}, {event.cwd or '?'})")

            previous_phase = session.phase
            phase = derive_phase(event)

            session.last_activity = now
            if event.cwd:
                session.cwd = event.cwd
            if event.pid is not None:
                session.pid = event.pid
            if event.tty:
                session.tty = event.tty
            if event.tool:
                session.last_tool = event.tool
            self._update_last_message(session, event)

            if phase == Phase.WAITING_FOR_APPROVAL and self._auto_allow.is_allowed(session.session_id, event.tool):
                phase = Phase.RUNNING_TOOL
                if responder is not None:
                    completions.append((responder, HookResponse(decision=Decision.ALLOW)))
                    responder = None
                self._record(session, ActivityKind.PERMISSION_RESOLVED, "auto-allowed", now, event.tool)

            is_permission_event = phase == Phase.WAITING_FOR_APPROVAL or (
                phase == Phase.WAITING_FOR_INPUT and event.event == CanonicalEvent.PERMISSION_REQUEST
            )

            request_created = False
            request_discarded = False
            if is_permission_event:
                superseded = session.pending_permission
                if superseded is not None and superseded.responder is not None:
                    completions.append((superseded.responder, HookResponse.ask()))
                tool_name = event.tool or "unknown"
                session.pending_permission = PermissionRequest(
                    tool_name=tool_name,
                    tool_input=dict(event.tool_input or {}),
                    tool_use_id=event.tool_use_id or generate_tool_use_id(event.agent, event.session_id, tool_name),
                    created_at=now,
                    question=extract_question(event.tool_input) if phase == Phase.WAITING_FOR_INPUT else None,
                    responder=responder,
                )
                request_created = True
                self._record(session, ActivityKind.PERMISSION_REQUEST, f"{tool_name} needs attention", now, tool_name)
            else:
                if responder is not None:
                    completions.append((responder, HookResponse.ask()))
                stale = session.pending_permission
                if stale is not None and (event.event in _CLEARS_PENDING or phase == Phase.ENDED):
                    session.pending_permission = None
                    request_discarded = True
                    if stale.responder is not None:
                        completions.append((stale.responder, HookResponse.ask()))
                    self._record(session, ActivityKind.PERMISSION_RESOLVED, "superseded by agent activity", now, stale.tool_name)

            if phase is not None:
                session.phase = phase
            if session.phase == Phase.ENDED and previous_phase != Phase.ENDED:
                session.ended_at = now
                self._auto_allow.clear_session(session.session_id)
                self._record(session, ActivityKind.SESSION_END, "session ended", now)
            elif session.phase != Phase.ENDED:
                session.ended_at = None

            if event.event == CanonicalEvent.PRE_TOOL_USE and event.tool:
                self._record(session, ActivityKind.TOOL_START, format_tool_input(event.tool, event.tool_input), now, event.tool)
            elif event.event == CanonicalEvent.POST_TOOL_USE and event.tool:
                self._record(session, ActivityKind.TOOL_COMPLETE, format_tool_input(event.tool, event.tool_input), now, event.tool)

            if created:
                kind = TransitionKind.ADD
            elif session.phase != previous_phase:
                kind = TransitionKind.PHASE_CHANGE
                self._record(session, ActivityKind.PHASE_CHANGE, f"{previous_phase} -> {session.phase}", now)
            else:
                kind = TransitionKind.UPDATE

            changes.append(
                SessionChange(kind=kind, session=session, previous_phase=None if created else previous_phase, event=event)
            )
            if request_created:
                changes.append(SessionChange(kind=TransitionKind.PERMISSION_REQUEST, session=session))
            if request_discarded:
                changes.append(SessionChange(kind=TransitionKind.PERMISSION_RESOLVED, session=session))

        for pending_responder, response in completions:
            self._complete(pending_responder, response)
        self._emit(changes)
        return session, kind

    @staticmethod
    def _update_last_message(session: Session, event: HookEvent) -> None:
        if event.message:
            session.last_message = event.message
        elif event.tool and event.event in (CanonicalEvent.PRE_TOOL_USE, CanonicalEvent.PERMISSION_REQUEST):
            session.last_message = format_tool_input(event.tool, event.tool_input) or event.tool

    def _record(self, session: Session, kind: str, detail: str, now: float, tool_name: str | None = None) -> None:
        self._activity.record(session.session_id, ActivityEntry(kind=kind, timestamp=now, detail=detail, tool_name=tool_name))

    # -- permissions --

    def respond(
        self,
        session_id: str,
        decision: str,
        *,
        reason: str | None = None,
        updated_input: dict | None = None,
        interrupt: bool = False,
        always_allow: bool = False,
    ) -> bool:
        """Record the user's decision for the session's pending request."""
        if decision not in (Decision.ALLOW, Decision.DENY, Decision.ASK):
            raise ValueError(f"Unknown decision: {decision!r}")

        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.pending_permission is None:
                return False
            request = session.pending_permission
            session.pending_permission = None
            now = self._clock()
            session.last_activity = now
            if always_allow and decision == Decision.ALLOW:
                self._auto_allow.allow(session_id, request.tool_name)
            self._record(session, ActivityKind.PERMISSION_RESOLVED, decision, now, request.tool_name)

        logger.info(f"Permission {decision} for {request.tool_name} in {session_id[:8]}")
        if request.responder is not None:
            self._complete(
                request.responder,
                HookResponse(decision=decision, reason=reason, updated_input=updated_input, interrupt=interrupt),
            )
        self._emit([SessionChange(kind=TransitionKind.PERMISSION_RESOLVED, session=session)])
        return True

    def cancel_permission(self, session_id: str, tool_use_id: str | None = None) -> bool:
        """Drop a pending request whose adapter stopped waiting.

        The agent carries on with its own prompt, so a session still shown as
        waiting for approval goes back to processing.
        """
        changes: list[SessionChange] = []
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.pending_permission is None:
                return False
            request = session.pending_permission
            if tool_use_id is not None and request.tool_use_id != tool_use_id:
                return False
            session.pending_permission = None
            now = self._clock()
            previous_phase = session.phase
            self._record(session, ActivityKind.PERMISSION_RESOLVED, "adapter stopped waiting", now, request.tool_name)
            if previous_phase == Phase.WAITING_FOR_APPROVAL:
                session.phase = Phase.PROCESSING
                session.last_activity = now
                self._record(session, ActivityKind.PHASE_CHANGE, f"{previous_phase} -> {session.phase}", now)
                changes.append(SessionChange(kind=TransitionKind.PHASE_CHANGE, session=session, previous_phase=previous_phase))
            changes.append(SessionChange(kind=TransitionKind.PERMISSION_RESOLVED, session=session, previous_phase=previous_phase))

        logger.info(f"Permission for {request.tool_name} in {session_id[:8]} abandoned by the adapter")
        self._emit(changes)
        return True

    def handle_interrupt(self, session_id: str) -> bool:
        """The user interrupted the agent; it is back at its prompt."""
        changes: list[SessionChange] = []
        stale: PermissionRequest | None = None
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.phase not in _INTERRUPTIBLE:
                return False
            now = self._clock()
            previous_phase = session.phase
            session.phase = Phase.WAITING_FOR_INPUT
            session.last_activity = now
            self._record(session, ActivityKind.PHASE_CHANGE, f"{previous_phase} -> {session.phase} (interrupted)", now)
            changes.append(SessionChange(kind=TransitionKind.PHASE_CHANGE, session=session, previous_phase=previous_phase))
            if session.pending_permission is not None:
                stale = session.pending_permission
                session.pending_permission = None
                changes.append(SessionChange(kind=TransitionKind.PERMISSION_RESOLVED, session=session))

        logger.info(f"Session {session_id[:8]} interrupted by the user")
        if stale is not None and stale.responder is not None:
            self._complete(stale.responder, HookResponse.ask())
        self._emit(changes)
        return True

    # -- removal --

    def remove(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.pop(session_id, None)
            if session is None:
                return False
            stale = session.pending_permission
            session.pending_permission = None
            self._activity.clear(session_id)
            self._auto_allow.clear_session(session_id)

        logger.info(f"Session {session_id[:8]} removed")
        if stale is not None and stale.responder is not None:
            self._complete(stale.responder, HookResponse.ask())
        self._emit([SessionChange(kind=TransitionKind.REMOVE, session=session)])
        return True

    def sweep(self, now: float | None = None) -> list[str]:
        """Purge ended sessions whose retention window has passed."""
        with self._lock:
            current = self._clock() if now is None else now
            expired = [
                s.session_id
                for s in self._sessions.values()
                if s.phase == Phase.ENDED and current - s.last_activity >= self._ended_retention_seconds
            ]
        removed = [sid for sid in expired if self.remove(sid)]
        if removed:
            logger.debug(f"Swept {len(removed)} ended session(s)")
        return removed

    # -- queries --

    def get(self, session_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(session_id)

    def sessions(self) -> list[Session]:
        with self._lock:
            return list(self._sessions.values())

    def sorted_sessions(self) -> list[Session]:
        with self._lock:
            return sorted(
                self._sessions.values(),
                key=lambda s: (_ATTENTION_ORDER.get(s.phase, len(_ATTENTION_ORDER)), -s.last_activity),
            )

    def find_by_pid(self, pid: int) -> Session | None:
        with self._lock:
            matches = [s for s in self._sessions.values() if s.pid == pid and s.phase != Phase.ENDED]
        return max(matches, key=lambda s: s.last_activity, default=None)

    def activity(self, session_id: str) -> list[ActivityEntry]:
        return self._activity.entries(session_id)
