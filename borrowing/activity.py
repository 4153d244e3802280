import logging

from django.db import DatabaseError, transaction

from .models import ActivityLog

logger = logging.getLogger(__name__)


def record(activity_type, description, *, category='transaction', borrow_transaction=None,
           return_transaction=None, return_verification=None, inventory_item=None,
           actor_type='', actor_id='', actor_name='', metadata=None):
    """
    Append an audit entry for a lifecycle transition.

    The write runs in its own savepoint: if it fails, the error is logged and
    the caller's transition still commits.
    """
    try:
        with transaction.atomic():
            return ActivityLog.objects.create(
                activity_type=activity_type,
                activity_category=category,
                description=description,
                borrow_transaction=borrow_transaction,
                return_transaction=return_transaction,
                return_verification=return_verification,
                inventory_item=inventory_item,
                actor_type=actor_type or '',
                actor_id=str(actor_id) if actor_id is not None else '',
                actor_name=actor_name or '',
                metadata=metadata or {},
            )
    except DatabaseError:
        logger.exception('Failed to write activity log entry %r: %s', activity_type, description)
        return None
