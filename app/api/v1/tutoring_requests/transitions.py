"""
Tutoring request lifecycle.

    pending       --assign-->  pending_tutor   (admin; tutor must exist and be active)
    pending_tutor --assign-->  pending_tutor   (admin; reassignment)
    pending       --deny---->  denied          (admin)
    pending_tutor --deny---->  denied          (admin)
    pending_tutor --accept-->  approved        (assigned tutor)
    pending_tutor --decline->  pending         (assigned tutor; tutor cleared)
    denied        --reopen-->  pending         (admin recovery)

approved is terminal. denied is terminal for assign/deny/respond and only leaves
through the administrative reopen.
"""

from typing import Dict, Tuple

from app.core.enums import RequestAction, RequestStatus
from app.core.exceptions import InvalidTransitionError

TRANSITIONS: Dict[Tuple[RequestAction, RequestStatus], RequestStatus] = {
    (RequestAction.ASSIGN, RequestStatus.PENDING): RequestStatus.PENDING_TUTOR,
    (RequestAction.ASSIGN, RequestStatus.PENDING_TUTOR): RequestStatus.PENDING_TUTOR,
    (RequestAction.DENY, RequestStatus.PENDING): RequestStatus.DENIED,
    (RequestAction.DENY, RequestStatus.PENDING_TUTOR): RequestStatus.DENIED,
    (RequestAction.ACCEPT, RequestStatus.PENDING_TUTOR): RequestStatus.APPROVED,
    (RequestAction.DECLINE, RequestStatus.PENDING_TUTOR): RequestStatus.PENDING,
    (RequestAction.REOPEN, RequestStatus.DENIED): RequestStatus.PENDING,
}

TERMINAL_STATUSES = frozenset({RequestStatus.APPROVED, RequestStatus.DENIED})


def can_apply(action: RequestAction, current: RequestStatus) -> bool:
    return (action, current) in TRANSITIONS


def next_status(action: RequestAction, current: RequestStatus) -> RequestStatus:
    """Target status for `action` from `current`; InvalidTransitionError when no edge exists."""
    try:
        return TRANSITIONS[(action, current)]
    except KeyError:
        raise InvalidTransitionError(
            f"Cannot {action.value} a request when status is {current.value}"
        ) from None


def allowed_actions(current: RequestStatus) -> Tuple[RequestAction, ...]:
    return tuple(action for action in RequestAction if (action, current) in TRANSITIONS)
