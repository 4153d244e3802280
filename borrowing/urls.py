from django.urls import path

from . import api_views, views

app_name = 'borrowing'

urlpatterns = [
    # Borrow transactions
    path('transactions/', views.transaction_list, name='transaction_list'),
    path('transactions/overdue/', views.overdue_list, name='overdue_list'),
    path('transactions/borrow-request/', api_views.create_borrow_request, name='borrow_request'),
    path('transactions/approve/<int:transaction_id>/', api_views.approve_borrow, name='approve'),
    path('transactions/reject/<int:transaction_id>/', api_views.reject_borrow, name='reject'),
    path('transactions/extend/<int:transaction_id>/', api_views.extend_borrow, name='extend'),
    path('transactions/mark-returned/<int:transaction_id>/', api_views.mark_returned, name='mark_returned'),

    # Return verifications (borrower claim, admin verify/reject)
    path('return-verifications/', views.verification_list, name='verification_list'),
    path('return-verifications/create/', api_views.create_return_verification, name='verification_create'),
    path('return-verifications/status/', api_views.verification_status, name='verification_status'),
    path('return-verifications/<int:verification_id>/verify/', api_views.verify_return, name='verification_verify'),
    path('return-verifications/<int:verification_id>/reject/', api_views.reject_return, name='verification_reject'),

    # Inspections
    path('return-inspections/', views.inspection_list, name='inspection_list'),
    path('return-inspections/<int:return_id>/inspect/', api_views.inspect_return, name='inspect'),

    # Inventory
    path('inventory/<int:item_id>/', views.inventory_detail, name='inventory_detail'),
    path('inventory/<int:item_id>/archive/', api_views.archive_item, name='archive_item'),
    path('inventory/<int:item_id>/restore/', api_views.restore_item, name='restore_item'),

    # Activity log
    path('activity/', views.activity_feed, name='activity'),
]
