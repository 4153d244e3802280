"""
Inventory ledger: the only code that changes an item's available quantity.

``reserve_and_borrow`` takes stock out when a request is approved and
``credit_on_inspection`` puts it back once a return has been inspected.
Both lock the item row and re-check their precondition inside the
transaction, so concurrent approvals against the same item serialize on
the database.
"""

import logging
from datetime import timedelta
from decimal import Decimal, ROUND_FLOOR

from django.db import transaction
from django.db.models import ProtectedError
from django.utils import timezone

from . import activity, conf
from .exceptions import InsufficientStockError, InvalidStateError, NotFoundError, ValidationError
from .models import InventoryItem
from .states import OPEN_BORROW_STATUSES, BorrowStatus, StockStatus

logger = logging.getLogger(__name__)


def compute_stock_status(available, total, threshold):
    if available <= 0:
        return StockStatus.OUT_OF_STOCK
    if total > 0 and available * 100 <= total * threshold:
        return StockStatus.LOW_STOCK
    return StockStatus.AVAILABLE


def credit_for(quantity, inspection_status):
    """Units to put back on the shelf for ``quantity`` returned units with this outcome."""
    fraction = conf.return_credit_policy().get(inspection_status, Decimal('0'))
    fraction = min(max(fraction, Decimal('0')), Decimal('1'))
    return int((Decimal(quantity) * fraction).to_integral_value(rounding=ROUND_FLOOR))


def _lock_item(item_id):
    try:
        return InventoryItem.objects.select_for_update().get(pk=item_id)
    except InventoryItem.DoesNotExist:
        raise NotFoundError('Inventory item not found') from None


@transaction.atomic
def reserve_and_borrow(item_id, quantity):
    """Take ``quantity`` units out of available stock. Returns the locked, updated item."""
    if quantity <= 0:
        raise ValidationError('Quantity must be at least 1.')

    item = _lock_item(item_id)
    if item.available_quantity < quantity:
        logger.warning(
            'Stock check failed for item %s: requested %s, available %s',
            item.pk, quantity, item.available_quantity,
        )
        raise InsufficientStockError(
            f"Insufficient inventory quantity for {item.name}. "
            f"Available: {item.available_quantity}, Requested: {quantity}"
        )

    item.available_quantity -= quantity
    item.save(update_fields=['available_quantity', 'updated_at'])
    logger.info('Item %s: -%s (available %s/%s)', item.pk, quantity, item.available_quantity, item.total_quantity)
    return item


@transaction.atomic
def credit_on_inspection(item_id, quantity, inspection_status):
    """
    Put returned units back into available stock according to the credit policy.

    Returns ``(item, credited)``. The credit never lifts available above total;
    any excess is dropped and logged.
    """
    item = _lock_item(item_id)
    credited = credit_for(quantity, inspection_status)

    headroom = item.total_quantity - item.available_quantity
    if credited > headroom:
        logger.warning(
            'Item %s: credit of %s exceeds headroom %s, clamping', item.pk, credited, headroom
        )
        credited = headroom

    if credited:
        item.available_quantity += credited
        item.save(update_fields=['available_quantity', 'updated_at'])
    logger.info(
        'Item %s: +%s of %s returned as %s (available %s/%s)',
        item.pk, credited, quantity, inspection_status, item.available_quantity, item.total_quantity,
    )
    return item, credited


@transaction.atomic
def archive_item(item_id, archived_by=''):
    item = _lock_item(item_id)
    if item.archived:
        raise InvalidStateError('Item is already archived')

    open_count = item.borrow_transactions.filter(status__in=OPEN_BORROW_STATUSES).count()
    if open_count:
        raise InvalidStateError(
            f"Cannot archive {item.name}: {open_count} borrow transaction(s) still open"
        )

    now = timezone.now()
    item.archived = True
    item.archived_at = now
    item.archived_by = archived_by
    item.auto_delete_at = now + timedelta(days=conf.archive_retention_days())
    item.save()

    activity.record(
        'item_archived',
        f"Inventory item archived: {item.name} (Category: {item.category or 'n/a'})",
        category='inventory',
        inventory_item=item,
        actor_type='admin',
        actor_name=archived_by,
        metadata={'auto_delete_at': item.auto_delete_at.isoformat()},
    )
    return item


@transaction.atomic
def restore_item(item_id, restored_by=''):
    item = _lock_item(item_id)
    if not item.archived:
        raise InvalidStateError('Item is not archived')

    item.archived = False
    item.archived_at = None
    item.archived_by = ''
    item.auto_delete_at = None
    item.save()

    activity.record(
        'item_restored',
        f"Inventory item restored: {item.name}",
        category='inventory',
        inventory_item=item,
        actor_type='admin',
        actor_name=restored_by,
    )
    return item


def purge_archived_items(now=None, dry_run=False):
    """
    Delete archived items whose retention period has passed.

    Returns ``(deleted, skipped)`` lists of item names. Items that still have
    borrow history are protected by their foreign keys and are skipped.
    """
    now = now or timezone.now()
    due = InventoryItem.objects.filter(archived=True, auto_delete_at__lte=now).order_by('pk')

    deleted, skipped = [], []
    for item in due:
        if dry_run:
            deleted.append(item.name)
            continue
        name, pk = item.name, item.pk
        try:
            with transaction.atomic():
                item.delete()
        except ProtectedError:
            logger.warning('Archived item %s (%s) still has borrow history, skipping purge', pk, name)
            skipped.append(name)
            continue
        activity.record(
            'item_purged',
            f"Archived inventory item permanently deleted: {name}",
            category='inventory',
            actor_type='system',
            metadata={'inventory_item_id': pk},
        )
        deleted.append(name)

    if deleted or skipped:
        logger.info('Archive purge: %s deleted, %s skipped (dry_run=%s)', len(deleted), len(skipped), dry_run)
    return deleted, skipped


def borrowed_units(item):
    """Units of ``item`` currently out with borrowers (approved and not yet credited back)."""
    return sum(
        item.borrow_transactions.filter(
            status__in=[s for s in OPEN_BORROW_STATUSES if s != BorrowStatus.PENDING]
        ).values_list('quantity', flat=True)
    )
