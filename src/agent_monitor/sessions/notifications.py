from __future__ import annotations

from typing import Protocol, runtime_checkable

from loguru import logger

from agent_monitor.protocol import Phase
from agent_monitor.sessions.models import PermissionRequest, Session, SessionChange, TransitionKind, format_tool_input


@runtime_checkable
class NotificationDispatcher(Protocol):
    def notify_permission(self, session: Session, request: PermissionRequest) -> None: ...

    def notify_session_ended(self, session: Session) -> None: ...


class LogNotificationDispatcher:
    """Writes user-facing alerts to the log instead of a desktop notifier."""

    def notify_permission(self, session: Session, request: PermissionRequest) -> None:
        if request.question is not None:
            logger.info(f"[{session.display_title}] {session.agent} asks: {request.question.question}")
            return
        summary = format_tool_input(request.tool_name, request.tool_input)
        suffix = f": {summary}" if summary else ""
        logger.info(f"[{session.display_title}] {session.agent} wants to run {request.tool_name}{suffix}")

    def notify_session_ended(self, session: Session) -> None:
        logger.info(f"[{session.display_title}] {session.agent} session ended")


class NotificationBridge:
    """Session listener that forwards attention-worthy changes to a dispatcher."""

    def __init__(self, dispatcher: NotificationDispatcher):
        self._dispatcher = dispatcher

    def __call__(self, change: SessionChange) -> None:
        session = change.session
        if change.kind == TransitionKind.PERMISSION_REQUEST and session.pending_permission is not None:
            self._dispatcher.notify_permission(session, session.pending_permission)
        elif change.kind in (TransitionKind.ADD, TransitionKind.PHASE_CHANGE) and session.phase == Phase.ENDED:
            self._dispatcher.notify_session_ended(session)
