# borrowing/api_views.py
# JSON endpoints that change lifecycle state. Every view returns the
# {"success", "data", "message"} envelope; failures add "error" and "errors".

import json
import logging
from functools import wraps

from django.db import DatabaseError
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from . import borrow, ledger, returns
from .exceptions import LifecycleError, ValidationError
from .forms import (
    ApproveForm,
    ArchiveForm,
    BorrowRequestForm,
    ExtendForm,
    InspectForm,
    MarkReturnedForm,
    RejectClaimForm,
    RejectForm,
    ReturnClaimForm,
    VerificationStatusForm,
    VerifyClaimForm,
    clean_payload,
)
from .serializers import borrow_to_dict, item_to_dict, return_to_dict, verification_to_dict

logger = logging.getLogger(__name__)


def success(data=None, message='', status=200):
    return JsonResponse({'success': True, 'data': data, 'message': message}, status=status)


def failure(error, message, status, errors=None):
    body = {'success': False, 'data': None, 'message': message, 'error': error}
    if errors:
        body['errors'] = errors
    return JsonResponse(body, status=status)


def json_endpoint(view):
    """Turn service exceptions raised by ``view`` into failure envelopes."""
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        try:
            return view(request, *args, **kwargs)
        except LifecycleError as e:
            logger.info('%s %s -> %s: %s', request.method, request.path, e.code, e.message)
            return failure(e.code, e.message, e.status, e.errors)
        except DatabaseError:
            logger.exception('Database error handling %s %s', request.method, request.path)
            return failure('server_error', 'A database error occurred. Please try again.', 500)
    return wrapper


def _json_body(request):
    try:
        data = json.loads(request.body or b'{}')
    except json.JSONDecodeError:
        raise ValidationError('Invalid JSON data') from None
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


# ---- Borrow requests ----

@csrf_exempt
@require_http_methods(["POST"])
@json_endpoint
def create_borrow_request(request):
    """
    Expected POST data:
    {
        "borrower_id": 1,
        "inventory_item_id": 3,
        "quantity": 2,
        "expected_return_date": "2026-10-24",
        "purpose": "Lab session"
    }
    """
    data = clean_payload(BorrowRequestForm, _json_body(request))
    tx = borrow.create_request(
        borrower_id=data['borrower_id'],
        item_id=data['inventory_item_id'],
        quantity=data['quantity'],
        expected_return_date=data['expected_return_date'],
        purpose=data['purpose'],
        borrow_date=data['borrow_date'],
        location=data['location'],
        notes=data['notes'],
    )
    return success(borrow_to_dict(tx), 'Borrow request submitted', status=201)


@csrf_exempt
@require_http_methods(["POST"])
@json_endpoint
def approve_borrow(request, transaction_id):
    data = clean_payload(ApproveForm, _json_body(request))
    tx = borrow.approve(transaction_id, data['approved_by'], return_date=data['return_date'])
    return success(borrow_to_dict(tx), 'Borrow request approved')


@csrf_exempt
@require_http_methods(["POST"])
@json_endpoint
def reject_borrow(request, transaction_id):
    data = clean_payload(RejectForm, _json_body(request))
    tx = borrow.reject(transaction_id, reason=data['reason'], rejected_by=data['rejected_by'])
    return success(borrow_to_dict(tx), 'Borrow request rejected')


@csrf_exempt
@require_http_methods(["POST"])
@json_endpoint
def extend_borrow(request, transaction_id):
    data = clean_payload(ExtendForm, _json_body(request))
    tx = borrow.extend_return_date(
        transaction_id, data['new_return_date'], data['extended_by'], reason=data['reason']
    )
    return success(borrow_to_dict(tx), 'Return date extended')


@csrf_exempt
@require_http_methods(["POST"])
@json_endpoint
def mark_returned(request, transaction_id):
    """Direct return without the borrower claim / admin verification round trip."""
    data = clean_payload(MarkReturnedForm, _json_body(request))
    return_tx = borrow.mark_returned(
        transaction_id,
        data['received_by'],
        condition=data['condition'],
        notes=data['notes'],
        damage_fee=data['damage_fee'],
        return_date=data['return_date'],
    )
    return success(return_to_dict(return_tx), 'Item marked as returned', status=201)


# ---- Return verifications ----

@csrf_exempt
@require_http_methods(["POST"])
@json_endpoint
def create_return_verification(request):
    data = clean_payload(ReturnClaimForm, _json_body(request))
    verification = returns.submit_claim(
        data['borrow_transaction_id'],
        quantity_returned=data['quantity_returned'],
        returned_by=data['returned_by'],
        borrower_id=data['borrower_id'],
        notes=data['notes'],
    )
    return success(
        verification_to_dict(verification),
        'Return submitted. Waiting for admin verification.',
        status=201,
    )


@csrf_exempt
@require_http_methods(["POST"])
@json_endpoint
def verify_return(request, verification_id):
    data = clean_payload(VerifyClaimForm, _json_body(request))
    verification, return_tx = returns.verify_claim(
        verification_id, data['admin_id'], notes=data['notes'], condition=data['condition']
    )
    return success(
        {
            'verification': verification_to_dict(verification),
            'return_transaction': return_to_dict(return_tx),
        },
        'Return verified. Item is now pending inspection.',
    )


@csrf_exempt
@require_http_methods(["POST"])
@json_endpoint
def reject_return(request, verification_id):
    data = clean_payload(RejectClaimForm, _json_body(request))
    verification = returns.reject_claim(verification_id, data['admin_id'], data['rejection_reason'])
    return success(verification_to_dict(verification), 'Return verification rejected')


@csrf_exempt
@require_http_methods(["POST"])
@json_endpoint
def verification_status(request):
    data = clean_payload(VerificationStatusForm, _json_body(request))
    result = returns.check_verification_status(data['verification_ids'])
    return success({
        'verifications': [verification_to_dict(v) for v in result['verifications']],
        'all_verified': result['all_verified'],
        'any_rejected': result['any_rejected'],
        'can_close': result['can_close'],
    })


# ---- Inspection ----

@csrf_exempt
@require_http_methods(["POST"])
@json_endpoint
def inspect_return(request, return_id):
    data = clean_payload(InspectForm, _json_body(request))
    return_tx = returns.inspect(
        return_id,
        data['admin_id'],
        data['inspection_status'],
        notes=data['notes'],
        damage_fee=data['damage_fee'],
    )
    return success(return_to_dict(return_tx), 'Item inspection completed')


# ---- Inventory archive ----

@csrf_exempt
@require_http_methods(["POST"])
@json_endpoint
def archive_item(request, item_id):
    data = clean_payload(ArchiveForm, _json_body(request))
    item = ledger.archive_item(item_id, archived_by=data['performed_by'])
    return success(item_to_dict(item), 'Item archived')


@csrf_exempt
@require_http_methods(["POST"])
@json_endpoint
def restore_item(request, item_id):
    data = clean_payload(ArchiveForm, _json_body(request))
    item = ledger.restore_item(item_id, restored_by=data['performed_by'])
    return success(item_to_dict(item), 'Item restored')
