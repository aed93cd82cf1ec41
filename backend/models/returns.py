from enum import Enum
from pydantic import BaseModel
from typing import List, Optional


class ReturnStatus(str, Enum):
    REQUESTED = "Requested"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    RECEIVED = "Received"
    REFUNDED = "Refunded"


TERMINAL_RETURN_STATUSES = {ReturnStatus.REFUNDED, ReturnStatus.REJECTED}

# forward path; Rejected is additionally reachable from any non-terminal state
RETURN_TRANSITIONS = {
    ReturnStatus.REQUESTED: {ReturnStatus.APPROVED},
    ReturnStatus.APPROVED: {ReturnStatus.RECEIVED},
    ReturnStatus.RECEIVED: {ReturnStatus.REFUNDED},
    ReturnStatus.REFUNDED: set(),
    ReturnStatus.REJECTED: set(),
}

ALLOWED_FROM_ANY = {ReturnStatus.REJECTED}


def is_transition_allowed(current: ReturnStatus | None, target: ReturnStatus, *, strict: bool) -> bool:
    """
    Permissive mode lets any status move to any status, so staff can undo
    mis-clicks. Strict mode enforces the table above.
    """
    if not strict:
        return True

    if current is None:
        return target == ReturnStatus.REQUESTED

    if target in ALLOWED_FROM_ANY and current not in TERMINAL_RETURN_STATUSES:
        return True

    return target in RETURN_TRANSITIONS.get(current, set())


class ReturnItemIn(BaseModel):
    product_id: str
    quantity: int
    reason: Optional[str] = ""


class ReturnCreate(BaseModel):
    order_id: str
    items: List[ReturnItemIn]
    notes: Optional[str] = ""


class ReturnStatusUpdate(BaseModel):
    status: str
    note: Optional[str] = ""
    expected_revision: Optional[int] = None
