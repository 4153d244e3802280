"""Plain-dict renderings of the borrowing models for JsonResponse."""

from . import ledger


def _iso(value):
    return value.isoformat() if value else None


def item_to_dict(item, with_usage=False):
    data = {
        'id': item.id,
        'display_id': item.display_id,
        'name': item.name,
        'category': item.category,
        'location': item.location,
        'total_quantity': item.total_quantity,
        'available_quantity': item.available_quantity,
        'low_stock_threshold': item.low_stock_threshold,
        'stock_status': item.stock_status,
        'stock_status_display': item.get_stock_status_display(),
        'archived': item.archived,
        'archived_at': _iso(item.archived_at),
        'auto_delete_at': _iso(item.auto_delete_at),
        'days_until_auto_delete': item.days_until_auto_delete,
        'last_updated': _iso(item.updated_at),
    }
    if with_usage:
        data['borrowed_quantity'] = ledger.borrowed_units(item)
    return data


def borrow_to_dict(borrow):
    return {
        'id': borrow.id,
        'transaction_id': borrow.transaction_id,
        'borrower_id': borrow.borrower_id,
        'borrower_type': borrow.borrower_type,
        'borrower_name': borrow.borrower_name,
        'borrower_id_number': borrow.borrower_id_number,
        'inventory_item_id': borrow.inventory_item_id,
        'item_name': borrow.inventory_item.name,
        'quantity': borrow.quantity,
        'borrow_date': _iso(borrow.borrow_date),
        'expected_return_date': _iso(borrow.expected_return_date),
        'actual_return_date': _iso(borrow.actual_return_date),
        'purpose': borrow.purpose,
        'location': borrow.location,
        'notes': borrow.notes,
        'status': borrow.status,
        'status_display': borrow.get_status_display(),
        'approved_by': borrow.approved_by,
        'approved_at': _iso(borrow.approved_at),
        'days_overdue': borrow.days_overdue,
    }


def verification_to_dict(verification):
    return {
        'id': verification.id,
        'verification_id': verification.verification_id,
        'borrow_transaction_id': verification.borrow_transaction_id,
        'inventory_item_id': verification.inventory_item_id,
        'borrower_name': verification.borrower_name,
        'borrower_id_number': verification.borrower_id_number,
        'item_name': verification.item_name,
        'item_category': verification.item_category,
        'quantity_returned': verification.quantity_returned,
        'return_date': _iso(verification.return_date),
        'returned_by': verification.returned_by,
        'return_notes': verification.return_notes,
        'verification_status': verification.verification_status,
        'verified_by': verification.verified_by,
        'verified_at': _iso(verification.verified_at),
        'verification_notes': verification.verification_notes,
        'rejection_reason': verification.rejection_reason,
    }


def return_to_dict(return_tx):
    borrow = return_tx.borrow_transaction
    return {
        'id': return_tx.id,
        'borrow_transaction_id': borrow.id,
        'transaction_id': borrow.transaction_id,
        'return_verification_id': return_tx.return_verification_id,
        'borrower_name': borrow.borrower_name,
        'item_name': borrow.inventory_item.name,
        'returned_quantity': return_tx.returned_quantity,
        'return_date': _iso(return_tx.return_date),
        'condition': return_tx.condition,
        'received_by': return_tx.received_by,
        'damage_fee': str(return_tx.damage_fee),
        'has_damage_fee': return_tx.has_damage_fee,
        'is_damaged': return_tx.is_damaged,
        'inspection_status': return_tx.inspection_status,
        'inspected_by': return_tx.inspected_by,
        'inspected_at': _iso(return_tx.inspected_at),
        'inspection_notes': return_tx.inspection_notes,
        'quantity_credited': return_tx.quantity_credited,
        'days_late': return_tx.days_late,
    }


def activity_to_dict(entry):
    return {
        'id': entry.id,
        'activity_type': entry.activity_type,
        'activity_category': entry.activity_category,
        'description': entry.description,
        'borrow_transaction_id': entry.borrow_transaction_id,
        'return_transaction_id': entry.return_transaction_id,
        'return_verification_id': entry.return_verification_id,
        'inventory_item_id': entry.inventory_item_id,
        'actor_type': entry.actor_type,
        'actor_id': entry.actor_id,
        'actor_name': entry.actor_name,
        'metadata': entry.metadata,
        'activity_date': _iso(entry.activity_date),
    }
