"""Status Configuration and Transition Rules

Defines valid work order statuses and priorities and the allowed
transitions between statuses. The work order lifecycle validates every
status change against this graph.
"""
from enum import Enum
from typing import Dict, List, Set

from app.exceptions import AlreadyClosedError, InvalidTransitionError


# =============================================================================
# Work Order Status
# =============================================================================

class WorkOrderStatus(str, Enum):
    """Valid status values for maintenance work orders"""
    REQUESTED = "requested"
    APPROVED = "approved"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CLOSED = "closed"
    CANCELLED = "cancelled"


# Allowed transitions: current_status -> set of allowed next statuses.
# requested -> scheduled is further gated on approval_required (see below).
WORK_ORDER_TRANSITIONS: Dict[str, Set[str]] = {
    WorkOrderStatus.REQUESTED: {
        WorkOrderStatus.APPROVED,
        WorkOrderStatus.SCHEDULED,
        WorkOrderStatus.CANCELLED,
    },
    WorkOrderStatus.APPROVED: {
        WorkOrderStatus.SCHEDULED,
        WorkOrderStatus.CANCELLED,
    },
    WorkOrderStatus.SCHEDULED: {
        WorkOrderStatus.IN_PROGRESS,
        WorkOrderStatus.CANCELLED,
    },
    WorkOrderStatus.IN_PROGRESS: {
        WorkOrderStatus.COMPLETED,
        WorkOrderStatus.CANCELLED,
    },
    WorkOrderStatus.COMPLETED: {
        WorkOrderStatus.CLOSED,
        WorkOrderStatus.CANCELLED,
    },
    WorkOrderStatus.CLOSED: set(),  # Terminal - audit trail, notes only
    WorkOrderStatus.CANCELLED: set(),  # Terminal
}

TERMINAL_WORK_ORDER_STATUSES: Set[str] = {
    WorkOrderStatus.CLOSED.value,
    WorkOrderStatus.CANCELLED.value,
}

# Statuses whose orders count as finished work for evidence and costs
FINISHED_WORK_ORDER_STATUSES: Set[str] = {
    WorkOrderStatus.COMPLETED.value,
    WorkOrderStatus.CLOSED.value,
}


def get_allowed_work_order_transitions(current_status: str, approval_required: bool = False) -> List[str]:
    """Get sorted list of allowed next statuses for a work order"""
    allowed = {s.value for s in WORK_ORDER_TRANSITIONS.get(current_status, set())}
    if current_status == WorkOrderStatus.REQUESTED.value and approval_required:
        allowed.discard(WorkOrderStatus.SCHEDULED.value)
    return sorted(allowed)


def is_valid_work_order_transition(current_status: str, new_status: str, approval_required: bool = False) -> bool:
    """Check if a work order status transition is valid. Same-state moves are not."""
    return new_status in get_allowed_work_order_transitions(current_status, approval_required)


def validate_work_order_transition(current: str, new: str, approval_required: bool = False) -> None:
    """Validate and raise error if transition is invalid"""
    if current == WorkOrderStatus.CLOSED.value and new == WorkOrderStatus.CLOSED.value:
        raise AlreadyClosedError("Work order")
    if not is_valid_work_order_transition(current, new, approval_required):
        allowed = get_allowed_work_order_transitions(current, approval_required)
        reason = ""
        if (
            current == WorkOrderStatus.REQUESTED.value
            and new == WorkOrderStatus.SCHEDULED.value
            and approval_required
        ):
            reason = " (approval required before scheduling)"
        raise InvalidTransitionError(
            f"Invalid work order status transition: '{current}' -> '{new}'{reason}. "
            f"Allowed: {allowed if allowed else 'none (terminal state)'}",
            current_state=current,
            target_state=new,
            allowed_states=allowed,
        )


# =============================================================================
# Work Order Priority
# =============================================================================

class WorkOrderPriority(str, Enum):
    """Valid priority values for work orders"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    EMERGENCY = "emergency"


# Lower rank sorts first
PRIORITY_RANK: Dict[str, int] = {
    WorkOrderPriority.EMERGENCY.value: 0,
    WorkOrderPriority.HIGH.value: 1,
    WorkOrderPriority.MEDIUM.value: 2,
    WorkOrderPriority.LOW.value: 3,
}
