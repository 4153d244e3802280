from django.contrib import admin

from .models import ActivityLog, Borrower, BorrowTransaction, InventoryItem, ReturnTransaction, ReturnVerification


@admin.register(Borrower)
class BorrowerAdmin(admin.ModelAdmin):
    list_display = ['id_number', 'first_name', 'last_name', 'borrower_type', 'email', 'is_active']
    list_filter = ['borrower_type', 'is_active']
    search_fields = ['id_number', 'first_name', 'last_name', 'email']


@admin.register(InventoryItem)
class InventoryItemAdmin(admin.ModelAdmin):
    list_display = ['name', 'category', 'available_quantity', 'total_quantity', 'stock_status', 'archived']
    list_filter = ['stock_status', 'archived', 'category']
    search_fields = ['name', 'category', 'location']
    # Stock moves only through approvals and inspections
    readonly_fields = ['available_quantity', 'stock_status', 'archived_at', 'auto_delete_at']

    def get_readonly_fields(self, request, obj=None):
        # Opening stock is entered once, on creation
        if obj is None:
            return ['stock_status', 'archived_at', 'auto_delete_at']
        return self.readonly_fields


@admin.register(BorrowTransaction)
class BorrowTransactionAdmin(admin.ModelAdmin):
    list_display = ['transaction_id', 'borrower_name', 'inventory_item', 'quantity', 'status',
                    'borrow_date', 'expected_return_date']
    list_filter = ['status', 'borrower_type']
    search_fields = ['transaction_id', 'borrower_name', 'borrower_id_number']
    readonly_fields = ['transaction_id', 'status', 'approved_by', 'approved_at', 'actual_return_date']


@admin.register(ReturnVerification)
class ReturnVerificationAdmin(admin.ModelAdmin):
    list_display = ['verification_id', 'borrower_name', 'item_name', 'quantity_returned',
                    'verification_status', 'return_date']
    list_filter = ['verification_status']
    search_fields = ['verification_id', 'borrower_name', 'item_name']
    readonly_fields = ['verification_id', 'verification_status', 'verified_by', 'verified_at']


@admin.register(ReturnTransaction)
class ReturnTransactionAdmin(admin.ModelAdmin):
    list_display = ['borrow_transaction', 'return_date', 'condition', 'inspection_status',
                    'quantity_credited', 'damage_fee']
    list_filter = ['inspection_status', 'condition']
    search_fields = ['borrow_transaction__transaction_id', 'received_by', 'inspected_by']
    readonly_fields = ['inspection_status', 'inspected_by', 'inspected_at', 'quantity_credited']


@admin.register(ActivityLog)
class ActivityLogAdmin(admin.ModelAdmin):
    list_display = ['activity_type', 'activity_category', 'actor_type', 'actor_name', 'activity_date']
    list_filter = ['activity_type', 'activity_category']
    search_fields = ['description', 'actor_name', 'actor_id']
    readonly_fields = ['activity_type', 'activity_category', 'description', 'borrow_transaction',
                       'return_transaction', 'return_verification', 'inventory_item', 'actor_type',
                       'actor_id', 'actor_name', 'metadata', 'activity_date']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
