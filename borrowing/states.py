"""
Lifecycle states for borrow transactions, return verifications and
return inspections, with the transition tables that govern them.

Every status change in the app goes through ``next_status`` so illegal
transitions are rejected in one place.
"""

from django.db import models

from .exceptions import InvalidStateError


class BorrowStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    APPROVED = 'approved', 'Approved'
    BORROWED = 'borrowed', 'Borrowed'
    OVERDUE = 'overdue', 'Overdue'
    PENDING_RETURN_VERIFICATION = 'pending_return_verification', 'Pending Return Verification'
    RETURNED = 'returned', 'Returned'
    REJECTED = 'rejected', 'Rejected'


class VerificationStatus(models.TextChoices):
    PENDING_VERIFICATION = 'pending_verification', 'Pending Verification'
    VERIFIED = 'verified', 'Verified'
    REJECTED = 'rejected', 'Rejected'


class InspectionStatus(models.TextChoices):
    PENDING_INSPECTION = 'pending_inspection', 'Pending Inspection'
    GOOD_CONDITION = 'good_condition', 'Good Condition'
    MINOR_DAMAGE = 'minor_damage', 'Minor Damage'
    MAJOR_DAMAGE = 'major_damage', 'Major Damage'
    LOST = 'lost', 'Lost'
    UNUSABLE = 'unusable', 'Unusable'


class Condition(models.TextChoices):
    GOOD = 'good', 'Good'
    FAIR = 'fair', 'Fair'
    POOR = 'poor', 'Poor'
    SLIGHTLY_DAMAGED = 'slightly_damaged', 'Slightly Damaged'
    DAMAGED = 'damaged', 'Damaged'
    LOST = 'lost', 'Lost'


class StockStatus(models.TextChoices):
    AVAILABLE = 'available', 'Available'
    LOW_STOCK = 'low_stock', 'Low Stock'
    OUT_OF_STOCK = 'out_of_stock', 'Out of Stock'


class Trigger(models.TextChoices):
    APPROVE = 'approve', 'Approve'
    REJECT = 'reject', 'Reject'
    MARK_OVERDUE = 'mark_overdue', 'Mark Overdue'
    SUBMIT_CLAIM = 'submit_claim', 'Submit Return Claim'
    REJECT_CLAIM = 'reject_claim', 'Reject Return Claim'
    INSPECT = 'inspect', 'Inspect'
    DIRECT_RETURN = 'direct_return', 'Direct Return'


# (current status, trigger) -> new status
BORROW_TRANSITIONS = {
    (BorrowStatus.PENDING, Trigger.APPROVE): BorrowStatus.BORROWED,
    (BorrowStatus.PENDING, Trigger.REJECT): BorrowStatus.REJECTED,
    (BorrowStatus.BORROWED, Trigger.MARK_OVERDUE): BorrowStatus.OVERDUE,
    (BorrowStatus.BORROWED, Trigger.SUBMIT_CLAIM): BorrowStatus.PENDING_RETURN_VERIFICATION,
    (BorrowStatus.OVERDUE, Trigger.SUBMIT_CLAIM): BorrowStatus.PENDING_RETURN_VERIFICATION,
    (BorrowStatus.PENDING_RETURN_VERIFICATION, Trigger.REJECT_CLAIM): BorrowStatus.BORROWED,
    (BorrowStatus.PENDING_RETURN_VERIFICATION, Trigger.INSPECT): BorrowStatus.RETURNED,
    (BorrowStatus.BORROWED, Trigger.DIRECT_RETURN): BorrowStatus.RETURNED,
    (BorrowStatus.OVERDUE, Trigger.DIRECT_RETURN): BorrowStatus.RETURNED,
}

# Borrows that still hold (or may soon hold) stock of their item.
OPEN_BORROW_STATUSES = (
    BorrowStatus.PENDING,
    BorrowStatus.BORROWED,
    BorrowStatus.OVERDUE,
    BorrowStatus.PENDING_RETURN_VERIFICATION,
)

VERIFICATION_TRANSITIONS = {
    VerificationStatus.PENDING_VERIFICATION: (VerificationStatus.VERIFIED, VerificationStatus.REJECTED),
}

INSPECTION_OUTCOMES = tuple(
    s for s in InspectionStatus if s != InspectionStatus.PENDING_INSPECTION
)

# Fixed inspection outcome -> recorded condition
INSPECTION_CONDITION_MAP = {
    InspectionStatus.GOOD_CONDITION: Condition.GOOD,
    InspectionStatus.MINOR_DAMAGE: Condition.SLIGHTLY_DAMAGED,
    InspectionStatus.MAJOR_DAMAGE: Condition.DAMAGED,
    InspectionStatus.LOST: Condition.LOST,
    InspectionStatus.UNUSABLE: Condition.DAMAGED,
}

# Self-reported condition -> inspection outcome, for the direct-return path
CONDITION_INSPECTION_MAP = {
    Condition.GOOD: InspectionStatus.GOOD_CONDITION,
    Condition.FAIR: InspectionStatus.MINOR_DAMAGE,
    Condition.POOR: InspectionStatus.MINOR_DAMAGE,
    Condition.SLIGHTLY_DAMAGED: InspectionStatus.MINOR_DAMAGE,
    Condition.DAMAGED: InspectionStatus.MAJOR_DAMAGE,
    Condition.LOST: InspectionStatus.LOST,
}


def can_transition(from_status, to_status, trigger):
    """Return True if ``trigger`` moves a borrow from ``from_status`` to ``to_status``."""
    return BORROW_TRANSITIONS.get((from_status, trigger)) == to_status


def next_status(current, trigger):
    """Resolve the status ``trigger`` leads to, or raise InvalidStateError."""
    try:
        return BORROW_TRANSITIONS[(current, trigger)]
    except KeyError:
        label = dict(BorrowStatus.choices).get(current, current)
        raise InvalidStateError(
            f'Cannot {Trigger(trigger).label.lower()} a transaction that is {label.lower()}'
        ) from None


def can_resolve_verification(current, to_status):
    return to_status in VERIFICATION_TRANSITIONS.get(current, ())


def condition_for_inspection(inspection_status):
    return INSPECTION_CONDITION_MAP[inspection_status]
