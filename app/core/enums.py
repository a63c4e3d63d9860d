from enum import Enum


class UserRole(str, Enum):
    STUDENT = "student"
    ADMIN = "admin"


class RequestStatus(str, Enum):
    PENDING = "pending"
    PENDING_TUTOR = "pending_tutor"
    APPROVED = "approved"
    DENIED = "denied"


class RequestAction(str, Enum):
    ASSIGN = "assign"
    DENY = "deny"
    ACCEPT = "accept"
    DECLINE = "decline"
    REOPEN = "reopen"


class SessionStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    # Reserved; no transition produces it yet.
    CANCELLED = "cancelled"


class SessionAction(str, Enum):
    RESCHEDULE = "reschedule"
    COMPLETE = "complete"


# Statuses in which TutoringRequest.requested_tutor_id is authoritative
TUTOR_BOUND_REQUEST_STATUSES = frozenset({RequestStatus.PENDING_TUTOR, RequestStatus.APPROVED})

# Session statuses that consume a tutor's weekly quota
QUOTA_SESSION_STATUSES = frozenset({SessionStatus.SCHEDULED, SessionStatus.COMPLETED})
