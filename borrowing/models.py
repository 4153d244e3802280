import uuid

from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from . import conf
from .states import (
    BorrowStatus,
    Condition,
    InspectionStatus,
    StockStatus,
    VerificationStatus,
)


def generate_transaction_id():
    return f"BRW-{uuid.uuid4().hex[:13].upper()}"


class Borrower(models.Model):
    """A student, employee or generic user who can borrow items."""

    TYPE_CHOICES = [
        ('student', 'Student'),
        ('employee', 'Employee'),
        ('user', 'User'),
    ]

    borrower_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='student')
    id_number = models.CharField(max_length=50, unique=True)
    first_name = models.CharField(max_length=100)
    middle_name = models.CharField(max_length=100, blank=True, default='')
    last_name = models.CharField(max_length=100)
    email = models.EmailField(blank=True, default='')
    contact_number = models.CharField(max_length=50, blank=True, default='')
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['last_name', 'first_name']

    def __str__(self):
        return f"{self.full_name} ({self.id_number})"

    @property
    def full_name(self):
        parts = [self.first_name, self.middle_name, self.last_name]
        return ' '.join(p.strip() for p in parts if p and p.strip())


class InventoryItem(models.Model):
    name = models.CharField(max_length=255)
    category = models.CharField(max_length=100, blank=True, default='')
    description = models.TextField(blank=True, default='')
    location = models.CharField(max_length=255, blank=True, default='')
    total_quantity = models.PositiveIntegerField(default=0)
    # Written only by borrowing.ledger
    available_quantity = models.PositiveIntegerField(default=0)
    low_stock_threshold = models.PositiveSmallIntegerField(
        default=conf.low_stock_threshold,
        help_text='Percentage of total quantity at or below which the item is low on stock',
    )
    stock_status = models.CharField(
        max_length=20, choices=StockStatus.choices, default=StockStatus.OUT_OF_STOCK
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    # Archiving
    archived = models.BooleanField(default=False)
    archived_at = models.DateTimeField(null=True, blank=True)
    archived_by = models.CharField(max_length=255, blank=True, default='')
    auto_delete_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = "Inventory Item"
        verbose_name_plural = "Inventory Items"
        ordering = ['name']
        constraints = [
            models.CheckConstraint(
                condition=models.Q(available_quantity__gte=0),
                name='inventory_available_non_negative',
            ),
            models.CheckConstraint(
                condition=models.Q(available_quantity__lte=models.F('total_quantity')),
                name='inventory_available_lte_total',
            ),
        ]

    def __str__(self):
        return f"{self.name} ({self.available_quantity}/{self.total_quantity})"

    @property
    def display_id(self):
        return f"INV-{self.pk:03d}" if self.pk else ''

    def is_available(self, quantity):
        return self.available_quantity >= quantity

    def clean(self):
        super().clean()
        if self.available_quantity is not None and self.total_quantity is not None \
                and self.available_quantity > self.total_quantity:
            raise DjangoValidationError({
                'total_quantity': f"Total quantity cannot be less than the {self.available_quantity} unit(s) available.",
            })

    def save(self, *args, **kwargs):
        from .ledger import compute_stock_status

        self.stock_status = compute_stock_status(
            self.available_quantity, self.total_quantity, self.low_stock_threshold
        )
        update_fields = kwargs.get('update_fields')
        if update_fields is not None and 'stock_status' not in update_fields:
            kwargs['update_fields'] = list(update_fields) + ['stock_status']
        super().save(*args, **kwargs)

    @property
    def days_until_auto_delete(self):
        if not self.archived or not self.auto_delete_at:
            return None
        return max((self.auto_delete_at - timezone.now()).days, 0)


class BorrowTransaction(models.Model):
    transaction_id = models.CharField(max_length=50, unique=True, default=generate_transaction_id)

    # Borrower snapshot, copied at request time and never refreshed
    borrower = models.ForeignKey(
        Borrower, on_delete=models.SET_NULL, null=True, blank=True, related_name='borrow_transactions'
    )
    borrower_type = models.CharField(max_length=20, choices=Borrower.TYPE_CHOICES)
    borrower_name = models.CharField(max_length=255)
    borrower_id_number = models.CharField(max_length=50, blank=True, default='')
    borrower_email = models.CharField(max_length=255, blank=True, default='')
    borrower_contact = models.CharField(max_length=50, blank=True, default='')

    inventory_item = models.ForeignKey(
        InventoryItem, on_delete=models.PROTECT, related_name='borrow_transactions'
    )
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    borrow_date = models.DateField()
    expected_return_date = models.DateField()
    actual_return_date = models.DateField(null=True, blank=True)
    purpose = models.CharField(max_length=255, blank=True, default='')
    location = models.CharField(max_length=255, blank=True, default='')
    notes = models.TextField(blank=True, default='')

    status = models.CharField(max_length=32, choices=BorrowStatus.choices, default=BorrowStatus.PENDING)
    approved_by = models.CharField(max_length=255, blank=True, default='')
    approved_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'expected_return_date'], name='borrow_status_due_idx'),
            models.Index(fields=['inventory_item', 'status'], name='borrow_item_status_idx'),
        ]
        constraints = [
            models.CheckConstraint(condition=models.Q(quantity__gt=0), name='borrow_quantity_positive'),
        ]

    def __str__(self):
        return f"{self.transaction_id} - {self.borrower_name} x{self.quantity} {self.inventory_item_id}"

    def is_overdue(self, today=None):
        today = today or timezone.localdate()
        return self.status == BorrowStatus.BORROWED and today > self.expected_return_date

    @property
    def days_overdue(self):
        if self.status == BorrowStatus.OVERDUE or self.is_overdue():
            return max((timezone.localdate() - self.expected_return_date).days, 0)
        return 0

    def append_note(self, text):
        self.notes = f"{self.notes}\n\n{text}" if self.notes else text


class ReturnVerification(models.Model):
    verification_id = models.CharField(max_length=32, unique=True)

    borrow_transaction = models.ForeignKey(
        BorrowTransaction, on_delete=models.CASCADE, related_name='return_verifications'
    )
    inventory_item = models.ForeignKey(
        InventoryItem, on_delete=models.PROTECT, related_name='return_verifications'
    )

    borrower_type = models.CharField(max_length=20, choices=Borrower.TYPE_CHOICES)
    borrower_name = models.CharField(max_length=255)
    borrower_id_number = models.CharField(max_length=50, blank=True, default='')
    borrower_email = models.CharField(max_length=255, blank=True, default='')
    borrower_contact = models.CharField(max_length=50, blank=True, default='')
    item_name = models.CharField(max_length=255)
    item_category = models.CharField(max_length=100, blank=True, default='')

    quantity_returned = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    return_date = models.DateField()
    returned_by = models.CharField(max_length=255, blank=True, default='')
    return_notes = models.TextField(blank=True, default='')

    verification_status = models.CharField(
        max_length=32,
        choices=VerificationStatus.choices,
        default=VerificationStatus.PENDING_VERIFICATION,
    )
    verified_by = models.CharField(max_length=255, blank=True, default='')
    verified_at = models.DateTimeField(null=True, blank=True)
    verification_notes = models.TextField(blank=True, default='')
    rejection_reason = models.TextField(blank=True, default='')

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.verification_id} - {self.item_name} x{self.quantity_returned} ({self.verification_status})"

    @classmethod
    def next_verification_id(cls, year=None):
        """Next ``RV-YYYY-NNN`` id for the given calendar year."""
        year = year or timezone.localdate().year
        prefix = f"{conf.verification_prefix()}-{year}-"
        numbers = (
            cls.objects.filter(verification_id__startswith=prefix)
            .values_list('verification_id', flat=True)
        )
        last = max((int(v[len(prefix):]) for v in numbers if v[len(prefix):].isdigit()), default=0)
        return f"{prefix}{last + 1:03d}"


class ReturnTransaction(models.Model):
    borrow_transaction = models.OneToOneField(
        BorrowTransaction, on_delete=models.CASCADE, related_name='return_transaction'
    )
    return_verification = models.OneToOneField(
        ReturnVerification,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='return_transaction',
    )
    return_date = models.DateField()
    condition = models.CharField(max_length=20, choices=Condition.choices, default=Condition.GOOD)
    return_notes = models.TextField(blank=True, default='')
    received_by = models.CharField(max_length=255, blank=True, default='')
    damage_fee = models.DecimalField(
        max_digits=10, decimal_places=2, default=0, validators=[MinValueValidator(0)]
    )

    inspection_status = models.CharField(
        max_length=20,
        choices=InspectionStatus.choices,
        default=InspectionStatus.PENDING_INSPECTION,
    )
    inspected_by = models.CharField(max_length=255, blank=True, default='')
    inspected_at = models.DateTimeField(null=True, blank=True)
    inspection_notes = models.TextField(blank=True, default='')
    quantity_credited = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-return_date', '-created_at']
        constraints = [
            models.CheckConstraint(condition=models.Q(damage_fee__gte=0), name='return_damage_fee_non_negative'),
        ]

    def __str__(self):
        return f"Return of {self.borrow_transaction.transaction_id} ({self.inspection_status})"

    @property
    def is_pending_inspection(self):
        return self.inspection_status == InspectionStatus.PENDING_INSPECTION

    @property
    def is_damaged(self):
        return self.condition in (Condition.DAMAGED, Condition.LOST)

    @property
    def has_damage_fee(self):
        return self.damage_fee > 0

    @property
    def returned_quantity(self):
        """Units physically handed back: the verified claim, else the whole loan."""
        if self.return_verification_id:
            return self.return_verification.quantity_returned
        return self.borrow_transaction.quantity

    @property
    def is_late_return(self):
        return self.return_date > self.borrow_transaction.expected_return_date

    @property
    def days_late(self):
        if not self.is_late_return:
            return 0
        return (self.return_date - self.borrow_transaction.expected_return_date).days


class ActivityLog(models.Model):
    """Append-only audit trail. Rows are written by borrowing.activity and never edited."""

    activity_type = models.CharField(max_length=50)
    activity_category = models.CharField(max_length=50, default='transaction')
    description = models.TextField()

    borrow_transaction = models.ForeignKey(
        BorrowTransaction, on_delete=models.SET_NULL, null=True, blank=True, related_name='activity_logs'
    )
    return_transaction = models.ForeignKey(
        ReturnTransaction, on_delete=models.SET_NULL, null=True, blank=True, related_name='activity_logs'
    )
    return_verification = models.ForeignKey(
        ReturnVerification, on_delete=models.SET_NULL, null=True, blank=True, related_name='activity_logs'
    )
    inventory_item = models.ForeignKey(
        InventoryItem, on_delete=models.SET_NULL, null=True, blank=True, related_name='activity_logs'
    )

    actor_type = models.CharField(max_length=20, blank=True, default='')
    actor_id = models.CharField(max_length=100, blank=True, default='')
    actor_name = models.CharField(max_length=255, blank=True, default='')
    metadata = models.JSONField(default=dict, blank=True)
    activity_date = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['-activity_date', '-id']
        indexes = [
            models.Index(fields=['activity_type', 'activity_date'], name='activity_type_date_idx'),
        ]

    def __str__(self):
        return f"{self.activity_type} @ {self.activity_date:%Y-%m-%d %H:%M}"

    def save(self, *args, **kwargs):
        if self.pk is not None and not kwargs.get('force_insert'):
            raise ValueError('Activity log entries are append-only')
        super().save(*args, **kwargs)
