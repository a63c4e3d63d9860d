"""
Tutoring session states.

    scheduled --reschedule--> scheduled   (times only)
    scheduled --complete----> completed   (one-way, audited)

cancelled is reserved: no edge produces it.
"""

from typing import Dict, Tuple

from app.core.enums import SessionAction, SessionStatus
from app.core.exceptions import InvalidStateError

SESSION_TRANSITIONS: Dict[Tuple[SessionAction, SessionStatus], SessionStatus] = {
    (SessionAction.RESCHEDULE, SessionStatus.SCHEDULED): SessionStatus.SCHEDULED,
    (SessionAction.COMPLETE, SessionStatus.SCHEDULED): SessionStatus.COMPLETED,
    # TODO: (CANCEL, SCHEDULED) -> CANCELLED once product decides who may cancel
    # and whether cancelled hours are released from the weekly quota.
}

_GUARD_MESSAGES = {
    SessionAction.RESCHEDULE: "Can not reschedule non-scheduled session",
    SessionAction.COMPLETE: "Session not scheduled",
}


def next_session_status(action: SessionAction, current: SessionStatus) -> SessionStatus:
    try:
        return SESSION_TRANSITIONS[(action, current)]
    except KeyError:
        raise InvalidStateError(_GUARD_MESSAGES[action]) from None
