"""
Test suite for the campus borrowing lifecycle.

Covers the transition table, the inventory ledger, borrow requests, return
claims and their verification, inspection, the direct-return path, the
overdue sweep, archiving, the activity log, and the JSON API envelope.
"""

import json
from datetime import timedelta
from io import StringIO
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.management import call_command
from django.db import DatabaseError, IntegrityError, transaction
from django.test import Client, TestCase, override_settings
from django.utils import timezone

from . import borrow, ledger, returns
from .exceptions import InsufficientStockError, InvalidStateError, NotFoundError, ValidationError
from .models import ActivityLog, Borrower, BorrowTransaction, InventoryItem, ReturnTransaction, ReturnVerification
from .states import Trigger, can_transition, next_status


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _today():
    return timezone.localdate()


def _make_item(total=10, available=None, **overrides):
    data = {
        'name': 'Projector',
        'category': 'AV Equipment',
        'total_quantity': total,
        'available_quantity': total if available is None else available,
    }
    data.update(overrides)
    return InventoryItem.objects.create(**data)


def _make_borrower(id_number='2021-00001', **overrides):
    data = {
        'borrower_type': 'student',
        'id_number': id_number,
        'first_name': 'Maria',
        'last_name': 'Santos',
        'email': 'msantos@example.edu',
    }
    data.update(overrides)
    return Borrower.objects.create(**data)


def _request(borrower, item, quantity=3, days=7, **kwargs):
    return borrow.create_request(
        borrower.pk, item.pk, quantity, _today() + timedelta(days=days), purpose='Lab session', **kwargs
    )


def _borrowed(borrower, item, quantity=3, **kwargs):
    """Create and approve a request, returning the borrowed transaction."""
    tx = _request(borrower, item, quantity, **kwargs)
    return borrow.approve(tx.pk, 'admin-1')


def _verified_return(tx, quantity=None):
    verification = returns.submit_claim(tx.pk, quantity_returned=quantity)
    return returns.verify_claim(verification.pk, 'admin-1')


def _available(item):
    item.refresh_from_db()
    return item.available_quantity


# ===================================================================
# 1. Transition Table
# ===================================================================

class TestTransitionTable(TestCase):
    """Category 1 -- the borrow state machine in isolation."""

    def test_allowed_transitions(self):
        self.assertTrue(can_transition('pending', 'borrowed', Trigger.APPROVE))
        self.assertTrue(can_transition('overdue', 'pending_return_verification', Trigger.SUBMIT_CLAIM))
        self.assertTrue(can_transition('pending_return_verification', 'returned', Trigger.INSPECT))

    def test_disallowed_transitions(self):
        self.assertFalse(can_transition('pending', 'returned', Trigger.INSPECT))
        self.assertFalse(can_transition('returned', 'borrowed', Trigger.REJECT_CLAIM))

    def test_next_status_raises_for_illegal_trigger(self):
        with self.assertRaises(InvalidStateError):
            next_status('returned', Trigger.APPROVE)
        with self.assertRaises(InvalidStateError):
            next_status('rejected', Trigger.SUBMIT_CLAIM)

    def test_rejected_claim_goes_back_to_borrowed(self):
        self.assertEqual(next_status('pending_return_verification', Trigger.REJECT_CLAIM), 'borrowed')


# ===================================================================
# 2. Inventory Ledger
# ===================================================================

class TestLedger(TestCase):
    """Category 2 -- stock status, credit policy, reserve and credit."""

    def test_compute_stock_status(self):
        self.assertEqual(ledger.compute_stock_status(0, 10, 30), 'out_of_stock')
        self.assertEqual(ledger.compute_stock_status(3, 10, 30), 'low_stock')
        self.assertEqual(ledger.compute_stock_status(4, 10, 30), 'available')

    def test_stock_status_recomputed_on_save(self):
        item = _make_item(total=10)
        self.assertEqual(item.stock_status, 'available')
        ledger.reserve_and_borrow(item.pk, 8)
        item.refresh_from_db()
        self.assertEqual(item.available_quantity, 2)
        self.assertEqual(item.stock_status, 'low_stock')

    def test_default_credit_policy(self):
        self.assertEqual(ledger.credit_for(3, 'good_condition'), 3)
        self.assertEqual(ledger.credit_for(3, 'minor_damage'), 3)
        self.assertEqual(ledger.credit_for(3, 'major_damage'), 0)
        self.assertEqual(ledger.credit_for(3, 'lost'), 0)
        self.assertEqual(ledger.credit_for(3, 'unusable'), 0)

    @override_settings(BORROWING_RETURN_CREDIT_POLICY={'major_damage': 0.5})
    def test_credit_policy_override_floors(self):
        self.assertEqual(ledger.credit_for(3, 'major_damage'), 1)
        self.assertEqual(ledger.credit_for(3, 'good_condition'), 3)

    def test_reserve_rejects_non_positive_quantity(self):
        item = _make_item()
        with self.assertRaises(ValidationError):
            ledger.reserve_and_borrow(item.pk, 0)

    def test_reserve_more_than_available(self):
        item = _make_item(total=5)
        with self.assertRaises(InsufficientStockError):
            ledger.reserve_and_borrow(item.pk, 6)
        self.assertEqual(_available(item), 5)

    def test_credit_clamped_to_total(self):
        item = _make_item(total=5)
        ledger.reserve_and_borrow(item.pk, 3)
        # Restocked by hand while the loan was out
        InventoryItem.objects.filter(pk=item.pk).update(available_quantity=5)
        item, credited = ledger.credit_on_inspection(item.pk, 3, 'good_condition')
        self.assertEqual(credited, 0)
        self.assertEqual(_available(item), 5)

    def test_database_rejects_available_above_total(self):
        item = _make_item(total=10)
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                InventoryItem.objects.filter(pk=item.pk).update(available_quantity=11)

    def test_total_below_available_is_a_validation_error(self):
        item = _make_item(total=10)
        item.total_quantity = 4
        with self.assertRaises(DjangoValidationError) as ctx:
            item.full_clean()
        self.assertIn('total_quantity', ctx.exception.message_dict)

    def test_admin_form_rejects_total_below_available(self):
        item = _make_item(total=10)
        client = Client()
        client.force_login(get_user_model().objects.create_superuser('admin', 'admin@example.edu', 'pw-12345'))
        resp = client.post(f'/admin/borrowing/inventoryitem/{item.pk}/change/', {
            'name': item.name,
            'category': item.category,
            'description': '',
            'location': '',
            'total_quantity': '4',
            'low_stock_threshold': '30',
            'archived_by': '',
        })
        self.assertEqual(resp.status_code, 200)
        item.refresh_from_db()
        self.assertEqual(item.total_quantity, 10)

    def test_missing_item(self):
        with self.assertRaises(NotFoundError):
            ledger.reserve_and_borrow(9999, 1)


# ===================================================================
# 3. Borrow Requests
# ===================================================================

class TestBorrowRequests(TestCase):
    """Category 3 -- create, approve, reject, extend."""

    def setUp(self):
        self.item = _make_item(total=10)
        self.borrower = _make_borrower()

    def test_request_is_pending_and_does_not_touch_stock(self):
        tx = _request(self.borrower, self.item, 3)
        self.assertEqual(tx.status, 'pending')
        self.assertEqual(tx.borrower_name, 'Maria Santos')
        self.assertEqual(tx.borrower_id_number, '2021-00001')
        self.assertTrue(tx.transaction_id.startswith('BRW-'))
        self.assertEqual(_available(self.item), 10)

    def test_request_more_than_available(self):
        """Scenario C: 12 of 10 is refused and nothing is written."""
        with self.assertRaises(InsufficientStockError):
            _request(self.borrower, self.item, 12)
        self.assertEqual(BorrowTransaction.objects.count(), 0)
        self.assertEqual(_available(self.item), 10)

    def test_request_zero_quantity(self):
        with self.assertRaises(ValidationError):
            _request(self.borrower, self.item, 0)

    def test_request_return_date_not_after_borrow_date(self):
        with self.assertRaises(ValidationError):
            borrow.create_request(self.borrower.pk, self.item.pk, 1, _today())

    def test_request_inactive_borrower(self):
        inactive = _make_borrower('2021-00002', is_active=False)
        with self.assertRaises(ValidationError):
            _request(inactive, self.item, 1)

    def test_request_archived_item(self):
        ledger.archive_item(self.item.pk, archived_by='admin-1')
        with self.assertRaises(NotFoundError):
            _request(self.borrower, self.item, 1)

    def test_approve_decrements_by_quantity(self):
        tx = _borrowed(self.borrower, self.item, 3)
        self.assertEqual(tx.status, 'borrowed')
        self.assertEqual(tx.approved_by, 'admin-1')
        self.assertIsNotNone(tx.approved_at)
        self.assertEqual(_available(self.item), 7)

    def test_approve_twice(self):
        tx = _borrowed(self.borrower, self.item, 3)
        with self.assertRaises(InvalidStateError):
            borrow.approve(tx.pk, 'admin-2')
        self.assertEqual(_available(self.item), 7)

    def test_approve_when_stock_ran_out(self):
        first = _request(self.borrower, self.item, 6)
        second = _request(_make_borrower('2021-00003'), self.item, 6)
        borrow.approve(first.pk, 'admin-1')
        with self.assertRaises(InsufficientStockError):
            borrow.approve(second.pk, 'admin-1')
        second.refresh_from_db()
        self.assertEqual(second.status, 'pending')
        self.assertEqual(_available(self.item), 4)

    def test_approve_with_new_return_date(self):
        tx = _request(self.borrower, self.item, 1)
        new_date = _today() + timedelta(days=14)
        tx = borrow.approve(tx.pk, 'admin-1', return_date=new_date)
        self.assertEqual(tx.expected_return_date, new_date)

    def test_approve_missing_transaction(self):
        with self.assertRaises(NotFoundError):
            borrow.approve(9999, 'admin-1')

    def test_reject_leaves_stock_alone(self):
        tx = _request(self.borrower, self.item, 3)
        tx = borrow.reject(tx.pk, reason='Item reserved for exams')
        self.assertEqual(tx.status, 'rejected')
        self.assertIn('Rejection reason: Item reserved for exams', tx.notes)
        self.assertEqual(_available(self.item), 10)

    def test_reject_borrowed_transaction(self):
        tx = _borrowed(self.borrower, self.item, 3)
        with self.assertRaises(InvalidStateError):
            borrow.reject(tx.pk, reason='Too late')

    def test_extend_return_date(self):
        tx = _borrowed(self.borrower, self.item, 1)
        new_date = _today() + timedelta(days=21)
        tx = borrow.extend_return_date(tx.pk, new_date, 'admin-1', reason='Thesis defense')
        self.assertEqual(tx.expected_return_date, new_date)
        self.assertIn('Return date extended', tx.notes)
        self.assertIn('Thesis defense', tx.notes)

    def test_extend_pending_transaction(self):
        tx = _request(self.borrower, self.item, 1)
        with self.assertRaises(InvalidStateError):
            borrow.extend_return_date(tx.pk, _today() + timedelta(days=21), 'admin-1')

    def test_extend_to_past_date(self):
        tx = _borrowed(self.borrower, self.item, 1)
        with self.assertRaises(ValidationError):
            borrow.extend_return_date(tx.pk, _today(), 'admin-1')


# ===================================================================
# 4. Return Claims and Verification
# ===================================================================

class TestReturnVerification(TestCase):
    """Category 4 -- submit, verify, reject; each claim resolves once."""

    def setUp(self):
        self.item = _make_item(total=10)
        self.borrower = _make_borrower()
        self.tx = _borrowed(self.borrower, self.item, 3)

    def test_submit_claim(self):
        verification = returns.submit_claim(self.tx.pk, borrower_id=self.borrower.pk, notes='Left at front desk')
        self.tx.refresh_from_db()
        self.assertEqual(self.tx.status, 'pending_return_verification')
        self.assertEqual(verification.verification_status, 'pending_verification')
        self.assertEqual(verification.quantity_returned, 3)
        self.assertEqual(verification.item_name, 'Projector')
        self.assertEqual(verification.returned_by, 'Maria Santos')
        # Claim alone does not put stock back
        self.assertEqual(_available(self.item), 7)

    def test_claim_on_pending_request(self):
        pending = _request(self.borrower, self.item, 1)
        with self.assertRaises(InvalidStateError):
            returns.submit_claim(pending.pk)

    def test_claim_by_other_borrower(self):
        other = _make_borrower('2021-00009')
        with self.assertRaises(ValidationError):
            returns.submit_claim(self.tx.pk, borrower_id=other.pk)
        self.assertEqual(ReturnVerification.objects.count(), 0)

    def test_claim_more_than_borrowed(self):
        with self.assertRaises(ValidationError):
            returns.submit_claim(self.tx.pk, quantity_returned=4)

    def test_partial_claim_is_refused(self):
        with self.assertRaises(ValidationError) as ctx:
            returns.submit_claim(self.tx.pk, quantity_returned=1)
        self.assertIn('quantity_returned', ctx.exception.errors)
        self.tx.refresh_from_db()
        self.assertEqual(self.tx.status, 'borrowed')
        self.assertEqual(ReturnVerification.objects.count(), 0)

    def test_second_claim_while_pending(self):
        returns.submit_claim(self.tx.pk)
        with self.assertRaises(InvalidStateError):
            returns.submit_claim(self.tx.pk)

    def test_verify_creates_one_pending_return(self):
        verification = returns.submit_claim(self.tx.pk)
        verification, return_tx = returns.verify_claim(verification.pk, 'admin-1', notes='Checked at desk')
        self.assertEqual(verification.verification_status, 'verified')
        self.assertEqual(verification.verified_by, 'admin-1')
        self.assertEqual(return_tx.inspection_status, 'pending_inspection')
        self.assertEqual(return_tx.return_verification_id, verification.pk)
        self.assertEqual(ReturnTransaction.objects.filter(borrow_transaction=self.tx).count(), 1)
        self.tx.refresh_from_db()
        self.assertEqual(self.tx.status, 'pending_return_verification')
        self.assertEqual(_available(self.item), 7)

    def test_verify_twice(self):
        verification = returns.submit_claim(self.tx.pk)
        returns.verify_claim(verification.pk, 'admin-1')
        with self.assertRaises(InvalidStateError):
            returns.verify_claim(verification.pk, 'admin-2')
        self.assertEqual(ReturnTransaction.objects.count(), 1)

    def test_reject_claim(self):
        """Scenario B: rejected claim puts the loan back to borrowed, stock unchanged."""
        verification = returns.submit_claim(self.tx.pk)
        verification = returns.reject_claim(verification.pk, 'admin-1', 'Item not at the desk')
        self.assertEqual(verification.verification_status, 'rejected')
        self.assertEqual(verification.rejection_reason, 'Item not at the desk')
        self.tx.refresh_from_db()
        self.assertEqual(self.tx.status, 'borrowed')
        self.assertEqual(_available(self.item), 7)
        self.assertEqual(ReturnTransaction.objects.count(), 0)

    def test_reject_then_verify(self):
        verification = returns.submit_claim(self.tx.pk)
        returns.reject_claim(verification.pk, 'admin-1', 'Not returned')
        with self.assertRaises(InvalidStateError):
            returns.verify_claim(verification.pk, 'admin-1')
        with self.assertRaises(InvalidStateError):
            returns.reject_claim(verification.pk, 'admin-1', 'Again')

    def test_reject_requires_reason(self):
        verification = returns.submit_claim(self.tx.pk)
        with self.assertRaises(ValidationError):
            returns.reject_claim(verification.pk, 'admin-1', '   ')

    def test_claim_again_after_rejection(self):
        first = returns.submit_claim(self.tx.pk)
        returns.reject_claim(first.pk, 'admin-1', 'Not returned')
        second = returns.submit_claim(self.tx.pk)
        self.assertNotEqual(first.verification_id, second.verification_id)

    def test_verification_ids_increase_within_year(self):
        year = _today().year
        other_tx = _borrowed(_make_borrower('2021-00004'), self.item, 1)
        first = returns.submit_claim(self.tx.pk)
        second = returns.submit_claim(other_tx.pk)
        self.assertEqual(first.verification_id, f'RV-{year}-001')
        self.assertEqual(second.verification_id, f'RV-{year}-002')

    def test_next_verification_id_skips_past_highest(self):
        year = _today().year
        verification = returns.submit_claim(self.tx.pk)
        ReturnVerification.objects.filter(pk=verification.pk).update(verification_id=f'RV-{year}-041')
        self.assertEqual(ReturnVerification.next_verification_id(), f'RV-{year}-042')
        self.assertEqual(ReturnVerification.next_verification_id(year=year + 1), f'RV-{year + 1}-001')

    def test_check_verification_status(self):
        other_tx = _borrowed(_make_borrower('2021-00005'), self.item, 1)
        first = returns.submit_claim(self.tx.pk)
        second = returns.submit_claim(other_tx.pk)

        result = returns.check_verification_status([first.pk, second.pk])
        self.assertFalse(result['all_verified'])
        self.assertFalse(result['can_close'])

        returns.verify_claim(first.pk, 'admin-1')
        returns.verify_claim(second.pk, 'admin-1')
        result = returns.check_verification_status([first.pk, second.pk])
        self.assertTrue(result['all_verified'])
        self.assertFalse(result['any_rejected'])
        self.assertTrue(result['can_close'])

    def test_check_verification_status_empty(self):
        with self.assertRaises(ValidationError):
            returns.check_verification_status([])


# ===================================================================
# 5. Inspection
# ===================================================================

class TestInspection(TestCase):
    """Category 5 -- condition mapping, credit policy, single inspection."""

    def setUp(self):
        self.item = _make_item(total=10)
        self.borrower = _make_borrower()
        self.tx = _borrowed(self.borrower, self.item, 3)

    def test_full_lifecycle(self):
        """Scenario A: 10 -> 7 on approval, 7 through verification, 10 after inspection."""
        self.assertEqual(_available(self.item), 7)
        _, return_tx = _verified_return(self.tx)
        self.assertEqual(_available(self.item), 7)

        return_tx = returns.inspect(return_tx.pk, 'admin-1', 'good_condition', notes='All parts present')
        self.assertEqual(return_tx.condition, 'good')
        self.assertEqual(return_tx.quantity_credited, 3)
        self.assertEqual(_available(self.item), 10)
        self.tx.refresh_from_db()
        self.assertEqual(self.tx.status, 'returned')
        self.assertEqual(self.tx.actual_return_date, _today())

    def test_condition_mapping(self):
        cases = [
            ('minor_damage', 'slightly_damaged'),
            ('major_damage', 'damaged'),
            ('lost', 'lost'),
            ('unusable', 'damaged'),
        ]
        for status, condition in cases:
            with self.subTest(status=status):
                tx = _borrowed(_make_borrower(f'ID-{status}'), self.item, 1)
                _, return_tx = _verified_return(tx)
                return_tx = returns.inspect(return_tx.pk, 'admin-1', status)
                self.assertEqual(return_tx.condition, condition)
                self.assertEqual(return_tx.inspection_status, status)

    def test_major_damage_not_credited_by_default(self):
        _, return_tx = _verified_return(self.tx)
        returns.inspect(return_tx.pk, 'admin-1', 'major_damage', damage_fee='250.00')
        return_tx.refresh_from_db()
        self.assertEqual(return_tx.quantity_credited, 0)
        self.assertEqual(str(return_tx.damage_fee), '250.00')
        self.assertEqual(_available(self.item), 7)

    @override_settings(BORROWING_RETURN_CREDIT_POLICY={'major_damage': '0.5'})
    def test_major_damage_with_partial_credit_policy(self):
        _, return_tx = _verified_return(self.tx)
        returns.inspect(return_tx.pk, 'admin-1', 'major_damage')
        self.assertEqual(_available(self.item), 8)

    def test_every_unit_accounted_for_after_return(self):
        self.assertEqual(_available(self.item) + ledger.borrowed_units(self.item), 10)
        with self.assertRaises(ValidationError):
            _verified_return(self.tx, quantity=1)
        _, return_tx = _verified_return(self.tx)
        returns.inspect(return_tx.pk, 'admin-1', 'good_condition')
        self.assertEqual(ledger.borrowed_units(self.item), 0)
        self.assertEqual(_available(self.item), self.item.total_quantity)

    def test_inspect_twice(self):
        _, return_tx = _verified_return(self.tx)
        returns.inspect(return_tx.pk, 'admin-1', 'good_condition')
        with self.assertRaises(InvalidStateError):
            returns.inspect(return_tx.pk, 'admin-1', 'good_condition')
        self.assertEqual(_available(self.item), 10)

    def test_invalid_inspection_status(self):
        _, return_tx = _verified_return(self.tx)
        with self.assertRaises(ValidationError):
            returns.inspect(return_tx.pk, 'admin-1', 'pending_inspection')

    def test_negative_damage_fee(self):
        _, return_tx = _verified_return(self.tx)
        with self.assertRaises(ValidationError):
            returns.inspect(return_tx.pk, 'admin-1', 'minor_damage', damage_fee=-5)
        return_tx.refresh_from_db()
        self.assertEqual(return_tx.inspection_status, 'pending_inspection')

    def test_missing_return(self):
        with self.assertRaises(NotFoundError):
            returns.inspect(9999, 'admin-1', 'good_condition')


# ===================================================================
# 6. Direct Return
# ===================================================================

class TestDirectReturn(TestCase):
    """Category 6 -- mark-returned without verification, no double credit."""

    def setUp(self):
        self.item = _make_item(total=10)
        self.tx = _borrowed(_make_borrower(), self.item, 3)

    def test_mark_returned_good(self):
        return_tx = borrow.mark_returned(self.tx.pk, 'admin-1', condition='good')
        self.assertEqual(return_tx.inspection_status, 'good_condition')
        self.assertEqual(return_tx.condition, 'good')
        self.assertEqual(return_tx.quantity_credited, 3)
        self.assertEqual(_available(self.item), 10)
        self.tx.refresh_from_db()
        self.assertEqual(self.tx.status, 'returned')

    def test_mark_returned_condition_follows_outcome(self):
        return_tx = borrow.mark_returned(self.tx.pk, 'admin-1', condition='poor')
        self.assertEqual(return_tx.inspection_status, 'minor_damage')
        self.assertEqual(return_tx.condition, 'slightly_damaged')
        return_tx.refresh_from_db()
        self.assertEqual(return_tx.condition, 'slightly_damaged')
        entry = ActivityLog.objects.get(activity_type='item_returned_direct')
        self.assertEqual(entry.metadata['reported_condition'], 'poor')

    def test_mark_returned_lost(self):
        borrow.mark_returned(self.tx.pk, 'admin-1', condition='lost')
        self.assertEqual(_available(self.item), 7)

    def test_no_second_credit_through_inspection(self):
        return_tx = borrow.mark_returned(self.tx.pk, 'admin-1')
        with self.assertRaises(InvalidStateError):
            returns.inspect(return_tx.pk, 'admin-1', 'good_condition')
        self.assertEqual(_available(self.item), 10)

    def test_mark_returned_twice(self):
        borrow.mark_returned(self.tx.pk, 'admin-1')
        with self.assertRaises(InvalidStateError):
            borrow.mark_returned(self.tx.pk, 'admin-1')
        self.assertEqual(ReturnTransaction.objects.count(), 1)

    def test_mark_returned_while_claim_pending(self):
        returns.submit_claim(self.tx.pk)
        with self.assertRaises(InvalidStateError):
            borrow.mark_returned(self.tx.pk, 'admin-1')

    def test_mark_returned_unknown_condition(self):
        with self.assertRaises(ValidationError):
            borrow.mark_returned(self.tx.pk, 'admin-1', condition='sparkling')


# ===================================================================
# 7. Overdue Sweep
# ===================================================================

class TestOverdue(TestCase):
    """Category 7 -- check_overdue command and overdue returns."""

    def setUp(self):
        self.item = _make_item(total=10)
        self.borrower = _make_borrower()
        tx = borrow.create_request(
            self.borrower.pk, self.item.pk, 2, _today() - timedelta(days=3),
            borrow_date=_today() - timedelta(days=10),
        )
        self.tx = borrow.approve(tx.pk, 'admin-1')

    def test_sweep_marks_overdue(self):
        out = StringIO()
        call_command('check_overdue', stdout=out)
        self.tx.refresh_from_db()
        self.assertEqual(self.tx.status, 'overdue')
        self.assertEqual(self.tx.days_overdue, 3)
        self.assertIn('Marked 1 transaction(s) as overdue', out.getvalue())

    def test_dry_run_changes_nothing(self):
        out = StringIO()
        call_command('check_overdue', '--dry-run', stdout=out)
        self.tx.refresh_from_db()
        self.assertEqual(self.tx.status, 'borrowed')
        self.assertIn('1 transaction(s) would be marked overdue', out.getvalue())

    def test_sweep_ignores_current_loans(self):
        _borrowed(_make_borrower('2021-00010'), self.item, 1)
        marked = borrow.mark_overdue_transactions()
        self.assertEqual([tx.pk for tx in marked], [self.tx.pk])

    def test_overdue_loan_can_be_claimed_and_returned(self):
        borrow.mark_overdue_transactions()
        _, return_tx = _verified_return(self.tx)
        return_tx = returns.inspect(return_tx.pk, 'admin-1', 'good_condition')
        self.assertTrue(return_tx.is_late_return)
        self.assertEqual(return_tx.days_late, 3)
        self.assertEqual(_available(self.item), 10)

    def test_rejected_overdue_claim_is_swept_again(self):
        borrow.mark_overdue_transactions()
        verification = returns.submit_claim(self.tx.pk)
        returns.reject_claim(verification.pk, 'admin-1', 'Not returned')
        self.tx.refresh_from_db()
        self.assertEqual(self.tx.status, 'borrowed')
        borrow.mark_overdue_transactions()
        self.tx.refresh_from_db()
        self.assertEqual(self.tx.status, 'overdue')


# ===================================================================
# 8. Archive and Purge
# ===================================================================

class TestArchive(TestCase):
    """Category 8 -- archive, restore, purge_archived command."""

    def setUp(self):
        self.item = _make_item(total=4)

    def test_archive_and_restore(self):
        item = ledger.archive_item(self.item.pk, archived_by='admin-1')
        self.assertTrue(item.archived)
        self.assertEqual(item.days_until_auto_delete, 29)
        with self.assertRaises(InvalidStateError):
            ledger.archive_item(self.item.pk)

        item = ledger.restore_item(self.item.pk, restored_by='admin-1')
        self.assertFalse(item.archived)
        self.assertIsNone(item.auto_delete_at)
        with self.assertRaises(InvalidStateError):
            ledger.restore_item(self.item.pk)

    def test_archive_with_open_borrow(self):
        _request(_make_borrower(), self.item, 1)
        with self.assertRaises(InvalidStateError):
            ledger.archive_item(self.item.pk)

    def test_purge_deletes_expired_items(self):
        ledger.archive_item(self.item.pk)
        InventoryItem.objects.filter(pk=self.item.pk).update(auto_delete_at=timezone.now() - timedelta(days=1))
        out = StringIO()
        call_command('purge_archived', stdout=out)
        self.assertFalse(InventoryItem.objects.filter(pk=self.item.pk).exists())
        self.assertIn('1 archived item(s) deleted', out.getvalue())
        self.assertTrue(ActivityLog.objects.filter(activity_type='item_purged').exists())

    def test_purge_dry_run(self):
        ledger.archive_item(self.item.pk)
        InventoryItem.objects.filter(pk=self.item.pk).update(auto_delete_at=timezone.now() - timedelta(days=1))
        call_command('purge_archived', '--dry-run', stdout=StringIO())
        self.assertTrue(InventoryItem.objects.filter(pk=self.item.pk).exists())

    def test_purge_keeps_items_with_history(self):
        tx = _borrowed(_make_borrower(), self.item, 1)
        borrow.mark_returned(tx.pk, 'admin-1')
        ledger.archive_item(self.item.pk)
        InventoryItem.objects.filter(pk=self.item.pk).update(auto_delete_at=timezone.now() - timedelta(days=1))
        deleted, skipped = ledger.purge_archived_items()
        self.assertEqual(deleted, [])
        self.assertEqual(skipped, ['Projector'])
        self.assertTrue(InventoryItem.objects.filter(pk=self.item.pk).exists())

    def test_purge_ignores_items_in_retention(self):
        ledger.archive_item(self.item.pk)
        deleted, skipped = ledger.purge_archived_items()
        self.assertEqual((deleted, skipped), ([], []))


# ===================================================================
# 9. Activity Log
# ===================================================================

class TestActivityLog(TestCase):
    """Category 9 -- entries per transition, append-only, failures swallowed."""

    def setUp(self):
        self.item = _make_item(total=10)
        self.borrower = _make_borrower()

    def test_lifecycle_entries(self):
        tx = _borrowed(self.borrower, self.item, 3)
        _, return_tx = _verified_return(tx)
        returns.inspect(return_tx.pk, 'admin-1', 'good_condition')
        types = list(
            ActivityLog.objects.filter(borrow_transaction=tx).order_by('activity_date', 'id')
            .values_list('activity_type', flat=True)
        )
        self.assertEqual(types, [
            'borrow_requested',
            'borrow_approved',
            'return_claim_submitted',
            'return_verified',
            'return_inspected',
        ])
        entry = ActivityLog.objects.get(activity_type='return_inspected')
        self.assertEqual(entry.actor_id, 'admin-1')
        self.assertEqual(entry.metadata['quantity_credited'], 3)

    def test_entries_are_append_only(self):
        _request(self.borrower, self.item, 1)
        entry = ActivityLog.objects.first()
        entry.description = 'edited'
        with self.assertRaises(ValueError):
            entry.save()

    def test_admin_cannot_delete_entries(self):
        _request(self.borrower, self.item, 1)
        entry = ActivityLog.objects.first()
        client = Client()
        client.force_login(get_user_model().objects.create_superuser('admin', 'admin@example.edu', 'pw-12345'))
        resp = client.post(f'/admin/borrowing/activitylog/{entry.pk}/delete/', {'post': 'yes'})
        self.assertEqual(resp.status_code, 403)
        self.assertTrue(ActivityLog.objects.filter(pk=entry.pk).exists())

    def test_log_failure_does_not_block_transition(self):
        tx = _request(self.borrower, self.item, 3)
        with mock.patch.object(ActivityLog.objects, 'create', side_effect=DatabaseError('log table down')):
            with self.assertLogs('borrowing.activity', level='ERROR'):
                tx = borrow.approve(tx.pk, 'admin-1')
        self.assertEqual(tx.status, 'borrowed')
        self.assertEqual(_available(self.item), 7)
        self.assertFalse(ActivityLog.objects.filter(activity_type='borrow_approved').exists())


# ===================================================================
# 10. JSON API
# ===================================================================

class TestJsonApi(TestCase):
    """Category 10 -- envelope, status codes and the end-to-end flow over HTTP."""

    def setUp(self):
        self.client = Client()
        self.item = _make_item(total=10)
        self.borrower = _make_borrower()

    def _post(self, path, data):
        return self.client.post(path, data=json.dumps(data), content_type='application/json')

    def _borrow_payload(self, **overrides):
        data = {
            'borrower_id': self.borrower.pk,
            'inventory_item_id': self.item.pk,
            'quantity': 3,
            'expected_return_date': (_today() + timedelta(days=7)).isoformat(),
            'purpose': 'Org event',
        }
        data.update(overrides)
        return data

    def test_borrow_request_created(self):
        resp = self._post('/transactions/borrow-request/', self._borrow_payload())
        self.assertEqual(resp.status_code, 201)
        body = resp.json()
        self.assertTrue(body['success'])
        self.assertEqual(body['data']['status'], 'pending')
        self.assertEqual(body['data']['quantity'], 3)

    def test_borrow_request_missing_fields(self):
        resp = self._post('/transactions/borrow-request/', {'borrower_id': self.borrower.pk})
        self.assertEqual(resp.status_code, 422)
        body = resp.json()
        self.assertFalse(body['success'])
        self.assertEqual(body['error'], 'validation_error')
        self.assertIn('quantity', body['errors'])
        self.assertIn('expected_return_date', body['errors'])

    def test_borrow_request_insufficient_stock(self):
        resp = self._post('/transactions/borrow-request/', self._borrow_payload(quantity=12))
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()['error'], 'insufficient_stock')
        self.assertEqual(BorrowTransaction.objects.count(), 0)

    def test_invalid_json(self):
        resp = self.client.post('/transactions/borrow-request/', data='{not json', content_type='application/json')
        self.assertEqual(resp.status_code, 422)
        self.assertEqual(resp.json()['message'], 'Invalid JSON data')

    def test_get_on_post_endpoint(self):
        resp = self.client.get('/transactions/borrow-request/')
        self.assertEqual(resp.status_code, 405)

    def test_approve_unknown_transaction(self):
        resp = self._post('/transactions/approve/9999/', {'approved_by': 'admin-1'})
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()['error'], 'not_found')

    def test_approve_twice_is_conflict(self):
        tx = _request(self.borrower, self.item, 3)
        self.assertEqual(self._post(f'/transactions/approve/{tx.pk}/', {'approved_by': 'admin-1'}).status_code, 200)
        resp = self._post(f'/transactions/approve/{tx.pk}/', {'approved_by': 'admin-1'})
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()['error'], 'invalid_state')
        self.assertEqual(_available(self.item), 7)

    def test_full_flow_over_http(self):
        tx_id = self._post('/transactions/borrow-request/', self._borrow_payload()).json()['data']['id']
        self._post(f'/transactions/approve/{tx_id}/', {'approved_by': 'admin-1'})

        resp = self._post('/return-verifications/create/', {
            'borrow_transaction_id': tx_id,
            'borrower_id': self.borrower.pk,
            'notes': 'Returned to the AV office',
        })
        self.assertEqual(resp.status_code, 201)
        verification_pk = resp.json()['data']['id']

        pending = self.client.get('/return-verifications/').json()['data']
        self.assertEqual(pending['count'], 1)

        resp = self._post(f'/return-verifications/{verification_pk}/verify/', {'admin_id': 'admin-1'})
        self.assertEqual(resp.status_code, 200)
        return_pk = resp.json()['data']['return_transaction']['id']

        status = self._post('/return-verifications/status/', {'verification_ids': [verification_pk]}).json()
        self.assertTrue(status['data']['can_close'])

        inspections = self.client.get('/return-inspections/').json()['data']
        self.assertEqual([r['id'] for r in inspections['results']], [return_pk])

        resp = self._post(f'/return-inspections/{return_pk}/inspect/', {
            'admin_id': 'admin-1',
            'inspection_status': 'good_condition',
        })
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()['data']['quantity_credited'], 3)

        item = self.client.get(f'/inventory/{self.item.pk}/').json()['data']
        self.assertEqual(item['available_quantity'], 10)
        self.assertEqual(item['borrowed_quantity'], 0)
        self.assertEqual(item['stock_status'], 'available')

    def test_reject_claim_requires_reason(self):
        tx = _borrowed(self.borrower, self.item, 1)
        verification = returns.submit_claim(tx.pk)
        resp = self._post(f'/return-verifications/{verification.pk}/reject/', {'admin_id': 'admin-1'})
        self.assertEqual(resp.status_code, 422)
        self.assertIn('rejection_reason', resp.json()['errors'])

    def test_inspect_with_unknown_status(self):
        tx = _borrowed(self.borrower, self.item, 1)
        _, return_tx = _verified_return(tx)
        resp = self._post(f'/return-inspections/{return_tx.pk}/inspect/', {
            'admin_id': 'admin-1', 'inspection_status': 'pristine',
        })
        self.assertEqual(resp.status_code, 422)

    def test_mark_returned_endpoint(self):
        tx = _borrowed(self.borrower, self.item, 3)
        resp = self._post(f'/transactions/mark-returned/{tx.pk}/', {
            'received_by': 'admin-1', 'condition': 'damaged', 'damage_fee': '150.00',
        })
        self.assertEqual(resp.status_code, 201)
        data = resp.json()['data']
        self.assertEqual(data['condition'], 'damaged')
        self.assertEqual(data['damage_fee'], '150.00')
        self.assertTrue(data['has_damage_fee'])
        self.assertTrue(data['is_damaged'])
        self.assertEqual(_available(self.item), 7)

    def test_transaction_list_filters(self):
        _borrowed(self.borrower, self.item, 1)
        _request(_make_borrower('2021-00020'), self.item, 1)
        resp = self.client.get('/transactions/', {'status': 'borrowed'})
        data = resp.json()['data']
        self.assertEqual(data['count'], 1)
        self.assertEqual(data['results'][0]['status'], 'borrowed')

        resp = self.client.get('/transactions/', {'date_from': 'yesterday'})
        self.assertEqual(resp.status_code, 422)

    def test_overdue_list(self):
        tx = borrow.create_request(
            self.borrower.pk, self.item.pk, 1, _today() - timedelta(days=1),
            borrow_date=_today() - timedelta(days=5),
        )
        borrow.approve(tx.pk, 'admin-1')
        data = self.client.get('/transactions/overdue/').json()['data']
        self.assertEqual(data['count'], 1)
        self.assertEqual(data['results'][0]['days_overdue'], 1)

    def test_archive_endpoints(self):
        resp = self._post(f'/inventory/{self.item.pk}/archive/', {'performed_by': 'admin-1'})
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()['data']['archived'])
        resp = self._post(f'/inventory/{self.item.pk}/archive/', {})
        self.assertEqual(resp.status_code, 409)
        resp = self._post(f'/inventory/{self.item.pk}/restore/', {})
        self.assertFalse(resp.json()['data']['archived'])

    def test_activity_feed(self):
        tx = _borrowed(self.borrower, self.item, 1)
        data = self.client.get('/activity/', {'type': 'borrow_approved'}).json()['data']
        self.assertEqual(data['count'], 1)
        self.assertEqual(data['results'][0]['borrow_transaction_id'], tx.pk)

    def test_database_failure_is_500(self):
        tx = _request(self.borrower, self.item, 1)
        with mock.patch('borrowing.borrow.approve', side_effect=DatabaseError('connection lost')):
            with self.assertLogs('borrowing.api_views', level='ERROR'):
                resp = self._post(f'/transactions/approve/{tx.pk}/', {'approved_by': 'admin-1'})
        self.assertEqual(resp.status_code, 500)
        body = resp.json()
        self.assertFalse(body['success'])
        self.assertEqual(body['error'], 'server_error')
