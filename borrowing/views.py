from django.core.paginator import Paginator
from django.db.models import Q
from django.utils import timezone
from django.utils.dateparse import parse_date
from django.views.decorators.http import require_http_methods

from .api_views import json_endpoint, success
from .exceptions import NotFoundError, ValidationError
from .models import ActivityLog, BorrowTransaction, InventoryItem, ReturnTransaction, ReturnVerification
from .serializers import (
    activity_to_dict,
    borrow_to_dict,
    item_to_dict,
    return_to_dict,
    verification_to_dict,
)
from .states import BorrowStatus, InspectionStatus, VerificationStatus

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def _date_param(request, name):
    raw = request.GET.get(name, '').strip()
    if not raw:
        return None
    try:
        value = parse_date(raw)
    except ValueError:
        value = None
    if value is None:
        raise ValidationError(f"Invalid date for {name}: {raw}", {name: ['Use YYYY-MM-DD.']})
    return value


def _int_param(request, name, default):
    raw = request.GET.get(name, '')
    if raw == '':
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer", {name: ['Enter a whole number.']}) from None


def _paginate(request, queryset, to_dict):
    page_size = min(max(_int_param(request, 'page_size', DEFAULT_PAGE_SIZE), 1), MAX_PAGE_SIZE)
    paginator = Paginator(queryset, page_size)
    page = paginator.get_page(request.GET.get('page', 1))
    return {
        'results': [to_dict(obj) for obj in page.object_list],
        'count': paginator.count,
        'page': page.number,
        'num_pages': paginator.num_pages,
    }


@require_http_methods(["GET"])
@json_endpoint
def transaction_list(request):
    """Borrow transactions filtered by ?status=, ?date_from=, ?date_to=, ?borrower_id=, ?item_id="""
    qs = BorrowTransaction.objects.select_related('inventory_item')

    status = request.GET.get('status', '')
    if status:
        if status not in BorrowStatus.values:
            raise ValidationError(f"Unknown status: {status}")
        qs = qs.filter(status=status)

    date_from = _date_param(request, 'date_from')
    date_to = _date_param(request, 'date_to')
    if date_from:
        qs = qs.filter(borrow_date__gte=date_from)
    if date_to:
        qs = qs.filter(borrow_date__lte=date_to)

    borrower_id = _int_param(request, 'borrower_id', None)
    if borrower_id is not None:
        qs = qs.filter(borrower_id=borrower_id)
    item_id = _int_param(request, 'item_id', None)
    if item_id is not None:
        qs = qs.filter(inventory_item_id=item_id)

    return success(_paginate(request, qs, borrow_to_dict))


@require_http_methods(["GET"])
@json_endpoint
def overdue_list(request):
    """Overdue loans, including borrowed ones the sweep has not flagged yet."""
    today = timezone.localdate()
    qs = BorrowTransaction.objects.filter(
        Q(status=BorrowStatus.OVERDUE)
        | Q(status=BorrowStatus.BORROWED, expected_return_date__lt=today)
    ).select_related('inventory_item').order_by('expected_return_date')

    overdue = [borrow_to_dict(tx) for tx in qs]
    return success({'results': overdue, 'count': len(overdue)})


@require_http_methods(["GET"])
@json_endpoint
def verification_list(request):
    """Return claims; pending ones by default, ?status=all for everything."""
    status = request.GET.get('status', VerificationStatus.PENDING_VERIFICATION)
    qs = ReturnVerification.objects.all()
    if status != 'all':
        if status not in VerificationStatus.values:
            raise ValidationError(f"Unknown verification status: {status}")
        qs = qs.filter(verification_status=status)
    return success(_paginate(request, qs, verification_to_dict))


@require_http_methods(["GET"])
@json_endpoint
def inspection_list(request):
    status = request.GET.get('status', InspectionStatus.PENDING_INSPECTION)
    qs = ReturnTransaction.objects.select_related(
        'borrow_transaction__inventory_item', 'return_verification'
    )
    if status != 'all':
        if status not in InspectionStatus.values:
            raise ValidationError(f"Unknown inspection status: {status}")
        qs = qs.filter(inspection_status=status)
    return success(_paginate(request, qs, return_to_dict))


@require_http_methods(["GET"])
@json_endpoint
def inventory_detail(request, item_id):
    try:
        item = InventoryItem.objects.get(pk=item_id)
    except InventoryItem.DoesNotExist:
        raise NotFoundError('Inventory item not found') from None
    return success(item_to_dict(item, with_usage=True))


@require_http_methods(["GET"])
@json_endpoint
def activity_feed(request):
    """Most recent activity log entries, optionally filtered by ?type= and ?category="""
    limit = min(max(_int_param(request, 'limit', 20), 1), MAX_PAGE_SIZE)
    qs = ActivityLog.objects.all()
    activity_type = request.GET.get('type', '')
    if activity_type:
        qs = qs.filter(activity_type=activity_type)
    category = request.GET.get('category', '')
    if category:
        qs = qs.filter(activity_category=category)

    entries = [activity_to_dict(e) for e in qs.order_by('-activity_date', '-id')[:limit]]
    return success({'results': entries, 'count': len(entries)})
