"""
Borrow requests: create, approve, reject, extend, the overdue sweep, and
the direct "mark as returned" path that skips return verification.
"""

import logging
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from . import activity, ledger
from .exceptions import InsufficientStockError, InvalidStateError, NotFoundError, ValidationError
from .models import Borrower, BorrowTransaction, InventoryItem, ReturnTransaction
from .states import (
    CONDITION_INSPECTION_MAP,
    BorrowStatus,
    Condition,
    Trigger,
    condition_for_inspection,
    next_status,
)

logger = logging.getLogger(__name__)


def lock_borrow(transaction_id):
    try:
        return (
            BorrowTransaction.objects.select_for_update()
            .select_related('inventory_item')
            .get(pk=transaction_id)
        )
    except BorrowTransaction.DoesNotExist:
        raise NotFoundError('Transaction not found') from None


def _check_fee(damage_fee):
    fee = Decimal(str(damage_fee or 0))
    if fee < 0:
        raise ValidationError('Damage fee cannot be negative.')
    return fee


def create_request(borrower_id, item_id, quantity, expected_return_date, purpose='',
                   borrow_date=None, location='', notes=''):
    """Open a pending borrow request. Stock is not touched until approval."""
    borrow_date = borrow_date or timezone.localdate()

    if quantity is None or quantity <= 0:
        raise ValidationError('Quantity must be at least 1.', {'quantity': ['Quantity must be at least 1.']})
    if expected_return_date <= borrow_date:
        raise ValidationError(
            'Expected return date must be after the borrow date.',
            {'expected_return_date': ['Expected return date must be after the borrow date.']},
        )

    try:
        borrower = Borrower.objects.get(pk=borrower_id)
    except Borrower.DoesNotExist:
        raise NotFoundError('Borrower not found') from None
    if not borrower.is_active:
        raise ValidationError('Borrower account is not active. Please contact the administrator.')

    try:
        item = InventoryItem.objects.get(pk=item_id, archived=False)
    except InventoryItem.DoesNotExist:
        raise NotFoundError('Inventory item not found') from None

    if not item.is_available(quantity):
        raise InsufficientStockError(
            f"Insufficient quantity for {item.name}. Available: {item.available_quantity}"
        )

    with transaction.atomic():
        borrow = BorrowTransaction.objects.create(
            borrower=borrower,
            borrower_type=borrower.borrower_type,
            borrower_name=borrower.full_name,
            borrower_id_number=borrower.id_number,
            borrower_email=borrower.email,
            borrower_contact=borrower.contact_number,
            inventory_item=item,
            quantity=quantity,
            borrow_date=borrow_date,
            expected_return_date=expected_return_date,
            purpose=purpose,
            location=location,
            notes=notes,
            status=BorrowStatus.PENDING,
        )
        activity.record(
            'borrow_requested',
            f"{borrow.borrower_name} requested {quantity} x {item.name}",
            borrow_transaction=borrow,
            inventory_item=item,
            actor_type=borrower.borrower_type,
            actor_id=borrower.pk,
            actor_name=borrow.borrower_name,
            metadata={'quantity': quantity, 'expected_return_date': expected_return_date.isoformat()},
        )

    logger.info('Borrow request %s created: %s x%s for %s', borrow.transaction_id, item.pk, quantity, borrower.pk)
    return borrow


@transaction.atomic
def approve(transaction_id, approved_by, return_date=None):
    """Approve a pending request: take the stock out and mark it borrowed."""
    borrow = lock_borrow(transaction_id)
    new_status = next_status(borrow.status, Trigger.APPROVE)

    if return_date is not None and return_date <= borrow.borrow_date:
        raise ValidationError('Return date must be after the borrow date.')

    item = ledger.reserve_and_borrow(borrow.inventory_item_id, borrow.quantity)

    borrow.status = new_status
    borrow.approved_by = str(approved_by)
    borrow.approved_at = timezone.now()
    if return_date is not None:
        borrow.expected_return_date = return_date
    borrow.save()

    activity.record(
        'borrow_approved',
        f"Borrow request {borrow.transaction_id} approved ({borrow.quantity} x {item.name})",
        borrow_transaction=borrow,
        inventory_item=item,
        actor_type='admin',
        actor_id=approved_by,
        metadata={'available_quantity': item.available_quantity},
    )
    logger.info('Borrow %s approved by %s', borrow.transaction_id, approved_by)
    return borrow


@transaction.atomic
def reject(transaction_id, reason='', rejected_by=''):
    borrow = lock_borrow(transaction_id)
    borrow.status = next_status(borrow.status, Trigger.REJECT)
    borrow.append_note(f"Rejection reason: {reason or 'Not specified'}")
    borrow.save()

    activity.record(
        'borrow_rejected',
        f"Borrow request {borrow.transaction_id} rejected",
        borrow_transaction=borrow,
        inventory_item=borrow.inventory_item,
        actor_type='admin',
        actor_id=rejected_by,
        metadata={'reason': reason},
    )
    logger.info('Borrow %s rejected: %s', borrow.transaction_id, reason or 'no reason given')
    return borrow


@transaction.atomic
def extend_return_date(transaction_id, new_return_date, extended_by, reason=''):
    borrow = lock_borrow(transaction_id)
    if borrow.status != BorrowStatus.BORROWED:
        raise InvalidStateError('Item is not currently borrowed')
    if new_return_date <= timezone.localdate():
        raise ValidationError('New return date must be after today.')

    old_date = borrow.expected_return_date
    borrow.expected_return_date = new_return_date
    note = f"Return date extended to {new_return_date.isoformat()} by {extended_by}"
    if reason:
        note += f". Reason: {reason}"
    borrow.notes = (f"{borrow.notes}\n" if borrow.notes else '') + f"[{timezone.now():%Y-%m-%d %H:%M:%S}] {note}"
    borrow.save()

    activity.record(
        'return_date_extended',
        note,
        borrow_transaction=borrow,
        inventory_item=borrow.inventory_item,
        actor_type='admin',
        actor_name=extended_by,
        metadata={'old_date': old_date.isoformat(), 'new_date': new_return_date.isoformat()},
    )
    return borrow


def overdue_candidates(today=None):
    today = today or timezone.localdate()
    return BorrowTransaction.objects.filter(
        status=BorrowStatus.BORROWED, expected_return_date__lt=today
    ).select_related('inventory_item')


def mark_overdue_transactions(today=None):
    """Flip every borrowed transaction past its expected return date to overdue."""
    today = today or timezone.localdate()
    marked = []
    for candidate in overdue_candidates(today):
        with transaction.atomic():
            borrow = lock_borrow(candidate.pk)
            # Claimed or returned since the candidate query ran
            if not borrow.is_overdue(today):
                continue
            borrow.status = next_status(borrow.status, Trigger.MARK_OVERDUE)
            borrow.save(update_fields=['status', 'updated_at'])
            activity.record(
                'borrow_overdue',
                f"{borrow.transaction_id} is overdue (expected {borrow.expected_return_date.isoformat()})",
                borrow_transaction=borrow,
                inventory_item=borrow.inventory_item,
                actor_type='system',
                metadata={'days_overdue': borrow.days_overdue},
            )
        marked.append(borrow)

    if marked:
        logger.info('Overdue sweep marked %s transaction(s)', len(marked))
    return marked


def complete_return(borrow, return_tx, inspection_status, inspected_by, trigger,
                    notes='', damage_fee=0):
    """
    Record the inspection outcome on ``return_tx``, credit stock through the
    ledger and close ``borrow``. Callers hold the row locks and the transaction.
    """
    return_tx.inspection_status = inspection_status
    return_tx.condition = condition_for_inspection(inspection_status)
    return_tx.inspected_by = str(inspected_by)
    return_tx.inspected_at = timezone.now()
    return_tx.inspection_notes = notes or ''
    return_tx.damage_fee = _check_fee(damage_fee)

    item, credited = ledger.credit_on_inspection(
        borrow.inventory_item_id, return_tx.returned_quantity, inspection_status
    )
    return_tx.quantity_credited = credited
    return_tx.save()

    borrow.status = next_status(borrow.status, trigger)
    borrow.actual_return_date = return_tx.return_date
    borrow.save()
    return item, credited


@transaction.atomic
def mark_returned(transaction_id, received_by, condition=Condition.GOOD, notes='',
                  damage_fee=0, return_date=None):
    """
    Close a borrow without the verification step.

    The reported condition is mapped to an inspection outcome and the return
    is created already inspected, so it can never be inspected and credited
    again. Its stored condition follows the outcome like any inspected return.
    """
    borrow = lock_borrow(transaction_id)
    next_status(borrow.status, Trigger.DIRECT_RETURN)

    try:
        inspection_status = CONDITION_INSPECTION_MAP[condition]
    except KeyError:
        raise ValidationError(f"Unknown condition: {condition}") from None

    return_tx = ReturnTransaction.objects.create(
        borrow_transaction=borrow,
        return_date=return_date or timezone.localdate(),
        condition=condition,
        return_notes=notes or '',
        received_by=str(received_by),
        damage_fee=_check_fee(damage_fee),
    )
    item, credited = complete_return(
        borrow, return_tx, inspection_status, received_by, Trigger.DIRECT_RETURN,
        notes=notes, damage_fee=damage_fee,
    )

    activity.record(
        'item_returned_direct',
        f"{borrow.transaction_id} marked returned ({condition}), {credited} of {borrow.quantity} back in stock",
        borrow_transaction=borrow,
        return_transaction=return_tx,
        inventory_item=item,
        actor_type='admin',
        actor_name=received_by,
        metadata={
            'reported_condition': condition,
            'inspection_status': inspection_status,
            'condition': return_tx.condition,
            'quantity_credited': credited,
        },
    )
    logger.info('Borrow %s returned directly, %s unit(s) credited', borrow.transaction_id, credited)
    return return_tx
