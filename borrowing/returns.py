"""
Return claims, their admin verification, and the inspection that closes a loan.

A claim only records that the borrower says the item is back. Stock is
credited when an admin inspects the return created by a verified claim.
"""

import logging

from django.db import IntegrityError, transaction
from django.utils import timezone

from . import activity
from .borrow import complete_return, lock_borrow
from .exceptions import InvalidStateError, NotFoundError, ValidationError
from .models import ReturnTransaction, ReturnVerification
from .states import (
    INSPECTION_OUTCOMES,
    BorrowStatus,
    Condition,
    Trigger,
    VerificationStatus,
    can_resolve_verification,
    next_status,
)

logger = logging.getLogger(__name__)

VERIFICATION_ID_ATTEMPTS = 3


def _lock_verification(verification_id):
    try:
        return ReturnVerification.objects.select_for_update().get(pk=verification_id)
    except ReturnVerification.DoesNotExist:
        raise NotFoundError('Return verification not found') from None


def _lock_return(return_transaction_id):
    try:
        return ReturnTransaction.objects.select_for_update().get(pk=return_transaction_id)
    except ReturnTransaction.DoesNotExist:
        raise NotFoundError('Return transaction not found') from None


def _create_verification(**fields):
    """Insert a verification under the next free RV id, retrying if another request took it."""
    for attempt in range(1, VERIFICATION_ID_ATTEMPTS + 1):
        verification_id = ReturnVerification.next_verification_id()
        try:
            with transaction.atomic():
                return ReturnVerification.objects.create(verification_id=verification_id, **fields)
        except IntegrityError:
            if attempt == VERIFICATION_ID_ATTEMPTS:
                raise
            logger.warning('Verification id %s already taken, retrying (%s)', verification_id, attempt)


@transaction.atomic
def submit_claim(borrow_transaction_id, quantity_returned=None, returned_by='', borrower_id=None, notes=''):
    """Record a borrower's return claim and park the loan in pending_return_verification."""
    borrow = lock_borrow(borrow_transaction_id)
    new_status = next_status(borrow.status, Trigger.SUBMIT_CLAIM)

    if borrower_id is not None and borrow.borrower_id != int(borrower_id):
        logger.warning(
            'Return claim for %s rejected: borrower %s does not own it', borrow.transaction_id, borrower_id
        )
        raise ValidationError('This transaction does not belong to the borrower')

    if quantity_returned is None:
        quantity_returned = borrow.quantity
    # Inspection closes the loan, so a claim must cover every borrowed unit
    if quantity_returned != borrow.quantity:
        raise ValidationError(
            f"Quantity returned ({quantity_returned}) must equal quantity borrowed ({borrow.quantity}).",
            {'quantity_returned': [f'Return all {borrow.quantity} borrowed unit(s) in one claim.']},
        )

    item = borrow.inventory_item
    verification = _create_verification(
        borrow_transaction=borrow,
        inventory_item=item,
        borrower_type=borrow.borrower_type,
        borrower_name=borrow.borrower_name,
        borrower_id_number=borrow.borrower_id_number,
        borrower_email=borrow.borrower_email,
        borrower_contact=borrow.borrower_contact,
        item_name=item.name,
        item_category=item.category,
        quantity_returned=quantity_returned,
        return_date=timezone.localdate(),
        returned_by=returned_by or borrow.borrower_name,
        return_notes=notes or '',
    )

    borrow.status = new_status
    borrow.save(update_fields=['status', 'updated_at'])

    activity.record(
        'return_claim_submitted',
        f"{verification.returned_by} claims return of {quantity_returned} x {item.name} ({verification.verification_id})",
        borrow_transaction=borrow,
        return_verification=verification,
        inventory_item=item,
        actor_type=borrow.borrower_type,
        actor_id=borrow.borrower_id,
        actor_name=verification.returned_by,
        metadata={'quantity_returned': quantity_returned},
    )
    logger.info('Return claim %s submitted for %s', verification.verification_id, borrow.transaction_id)
    return verification


@transaction.atomic
def verify_claim(verification_id, admin_id, notes='', condition=Condition.GOOD):
    """
    Confirm a claim and open its return for inspection.

    Creates exactly one ReturnTransaction in pending_inspection. No stock is
    credited here.
    """
    verification = _lock_verification(verification_id)
    if not can_resolve_verification(verification.verification_status, VerificationStatus.VERIFIED):
        raise InvalidStateError('Return verification already processed')

    borrow = lock_borrow(verification.borrow_transaction_id)
    if borrow.status != BorrowStatus.PENDING_RETURN_VERIFICATION:
        raise InvalidStateError(
            f"Transaction {borrow.transaction_id} is {borrow.get_status_display().lower()}, not awaiting verification"
        )
    if condition not in Condition.values:
        raise ValidationError(f"Unknown condition: {condition}")

    verification.verification_status = VerificationStatus.VERIFIED
    verification.verified_by = str(admin_id)
    verification.verified_at = timezone.now()
    verification.verification_notes = notes or ''
    verification.save()

    return_tx = ReturnTransaction.objects.create(
        borrow_transaction=borrow,
        return_verification=verification,
        return_date=verification.return_date,
        condition=condition,
        return_notes=verification.return_notes,
        received_by=str(admin_id),
        damage_fee=0,
    )

    activity.record(
        'return_verified',
        f"Return {verification.verification_id} verified, awaiting inspection",
        borrow_transaction=borrow,
        return_transaction=return_tx,
        return_verification=verification,
        inventory_item=borrow.inventory_item,
        actor_type='admin',
        actor_id=admin_id,
    )
    logger.info('Return claim %s verified by %s', verification.verification_id, admin_id)
    return verification, return_tx


@transaction.atomic
def reject_claim(verification_id, admin_id, reason):
    """Void a claim. The loan goes back to borrowed; the borrower may claim again."""
    if not reason or not str(reason).strip():
        raise ValidationError('A rejection reason is required.', {'rejection_reason': ['This field is required.']})

    verification = _lock_verification(verification_id)
    if not can_resolve_verification(verification.verification_status, VerificationStatus.REJECTED):
        raise InvalidStateError('Return verification already processed')

    borrow = lock_borrow(verification.borrow_transaction_id)
    borrow.status = next_status(borrow.status, Trigger.REJECT_CLAIM)
    borrow.save(update_fields=['status', 'updated_at'])

    verification.verification_status = VerificationStatus.REJECTED
    verification.verified_by = str(admin_id)
    verification.verified_at = timezone.now()
    verification.rejection_reason = reason
    verification.save()

    activity.record(
        'return_claim_rejected',
        f"Return {verification.verification_id} rejected: {reason}",
        borrow_transaction=borrow,
        return_verification=verification,
        inventory_item=borrow.inventory_item,
        actor_type='admin',
        actor_id=admin_id,
        metadata={'reason': reason},
    )
    logger.info('Return claim %s rejected by %s', verification.verification_id, admin_id)
    return verification


@transaction.atomic
def inspect(return_transaction_id, admin_id, inspection_status, notes='', damage_fee=0):
    """Final step: record the condition, credit stock per policy, mark the loan returned."""
    if inspection_status not in INSPECTION_OUTCOMES:
        raise ValidationError(f"Invalid inspection status: {inspection_status}")

    return_tx = _lock_return(return_transaction_id)
    if not return_tx.is_pending_inspection:
        raise InvalidStateError(f"Item already inspected ({return_tx.inspection_status})")

    borrow = lock_borrow(return_tx.borrow_transaction_id)
    item, credited = complete_return(
        borrow, return_tx, inspection_status, admin_id, Trigger.INSPECT,
        notes=notes, damage_fee=damage_fee,
    )

    activity.record(
        'return_inspected',
        f"{borrow.transaction_id} inspected as {inspection_status}, {credited} unit(s) back in stock",
        borrow_transaction=borrow,
        return_transaction=return_tx,
        return_verification=return_tx.return_verification,
        inventory_item=item,
        actor_type='admin',
        actor_id=admin_id,
        metadata={
            'inspection_status': inspection_status,
            'condition': return_tx.condition,
            'quantity_credited': credited,
            'damage_fee': str(return_tx.damage_fee),
        },
    )
    logger.info('Return %s inspected as %s by %s', return_tx.pk, inspection_status, admin_id)
    return return_tx


def check_verification_status(verification_ids):
    """Status summary a borrower can poll while waiting on the admin."""
    if not verification_ids:
        raise ValidationError('verification_ids must not be empty.')

    verifications = list(ReturnVerification.objects.filter(pk__in=verification_ids).order_by('pk'))
    all_verified = bool(verifications) and all(
        v.verification_status == VerificationStatus.VERIFIED for v in verifications
    )
    any_rejected = any(v.verification_status == VerificationStatus.REJECTED for v in verifications)
    return {
        'verifications': verifications,
        'all_verified': all_verified,
        'any_rejected': any_rejected,
        'can_close': all_verified or any_rejected,
    }
