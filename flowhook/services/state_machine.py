from enum import Enum
from typing import Optional


class ExecutionStatus(str, Enum):
    RUNNING = "Running"
    WAITING = "Waiting"
    WAITING_FOR_QR_CODE = "WaitingForQRCode"
    WAITING_FOR_FORM_APPROVAL = "WaitingForFormApproval"
    COMPLETED = "Completed"
    FAILED = "Failed"


class StepStatus(str, Enum):
    RUNNING = "Running"
    WAITING = "Waiting"
    COMPLETED = "Completed"
    FAILED = "Failed"


class DeliveryStatus(str, Enum):
    PENDING = "Pending"
    SENT = "Sent"
    DELIVERED = "Delivered"
    READ = "Read"
    FAILED = "Failed"
    RETRYING = "Retrying"


class BatchStatus(str, Enum):
    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    FAILED = "Failed"
    PARTIALLY_FAILED = "PartiallyFailed"


class FormStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


# Target status -> statuses it may be entered from. None means from any status.
VALID_DELIVERY_TRANSITIONS: dict[DeliveryStatus, Optional[set[DeliveryStatus]]] = {
    DeliveryStatus.SENT: {DeliveryStatus.PENDING},
    DeliveryStatus.DELIVERED: {DeliveryStatus.PENDING, DeliveryStatus.SENT},
    DeliveryStatus.READ: None,
    DeliveryStatus.FAILED: None,
}

PROVIDER_STATUS_MAP = {
    "sent": DeliveryStatus.SENT,
    "delivered": DeliveryStatus.DELIVERED,
    "read": DeliveryStatus.READ,
    "failed": DeliveryStatus.FAILED,
}

SUCCESS_STATUSES = {DeliveryStatus.SENT, DeliveryStatus.DELIVERED, DeliveryStatus.READ}


class InvalidTransitionError(Exception):
    def __init__(self, from_state: DeliveryStatus, to_state: DeliveryStatus):
        self.from_state = from_state
        self.to_state = to_state
        self.message = f"Invalid transition: {from_state.value} -> {to_state.value}"
        super().__init__(self.message)


def can_transition(from_state: DeliveryStatus, to_state: DeliveryStatus) -> bool:
    """Check if a recipient may move from one delivery status to another."""
    if to_state not in VALID_DELIVERY_TRANSITIONS:
        return False
    allowed = VALID_DELIVERY_TRANSITIONS[to_state]
    return allowed is None or from_state in allowed


def transition(from_state: DeliveryStatus, to_state: DeliveryStatus) -> DeliveryStatus:
    """Perform delivery transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_state, to_state):
        raise InvalidTransitionError(from_state, to_state)
    return to_state


def derive_batch_status(total: int, success_count: int, failed_count: int) -> BatchStatus:
    """Aggregate status of a send batch from its recipient counts."""
    if total == 0:
        return BatchStatus.PENDING
    if failed_count == total:
        return BatchStatus.FAILED
    if failed_count > 0 and success_count > 0:
        return BatchStatus.PARTIALLY_FAILED
    if success_count == total:
        return BatchStatus.COMPLETED
    return BatchStatus.IN_PROGRESS
