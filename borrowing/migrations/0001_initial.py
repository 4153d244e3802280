from django.db import migrations, models
import django.core.validators
import django.db.models.deletion
import django.utils.timezone

import borrowing.conf
import borrowing.models


BORROWER_TYPE_CHOICES = [('student', 'Student'), ('employee', 'Employee'), ('user', 'User')]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='Borrower',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('borrower_type', models.CharField(choices=BORROWER_TYPE_CHOICES, default='student', max_length=20)),
                ('id_number', models.CharField(max_length=50, unique=True)),
                ('first_name', models.CharField(max_length=100)),
                ('middle_name', models.CharField(blank=True, default='', max_length=100)),
                ('last_name', models.CharField(max_length=100)),
                ('email', models.EmailField(blank=True, default='', max_length=254)),
                ('contact_number', models.CharField(blank=True, default='', max_length=50)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'ordering': ['last_name', 'first_name'],
            },
        ),
        migrations.CreateModel(
            name='InventoryItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('category', models.CharField(blank=True, default='', max_length=100)),
                ('description', models.TextField(blank=True, default='')),
                ('location', models.CharField(blank=True, default='', max_length=255)),
                ('total_quantity', models.PositiveIntegerField(default=0)),
                ('available_quantity', models.PositiveIntegerField(default=0)),
                ('low_stock_threshold', models.PositiveSmallIntegerField(default=borrowing.conf.low_stock_threshold, help_text='Percentage of total quantity at or below which the item is low on stock')),
                ('stock_status', models.CharField(choices=[('available', 'Available'), ('low_stock', 'Low Stock'), ('out_of_stock', 'Out of Stock')], default='out_of_stock', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('archived', models.BooleanField(default=False)),
                ('archived_at', models.DateTimeField(blank=True, null=True)),
                ('archived_by', models.CharField(blank=True, default='', max_length=255)),
                ('auto_delete_at', models.DateTimeField(blank=True, null=True)),
            ],
            options={
                'verbose_name': 'Inventory Item',
                'verbose_name_plural': 'Inventory Items',
                'ordering': ['name'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('available_quantity__gte', 0)), name='inventory_available_non_negative'),
                    models.CheckConstraint(condition=models.Q(('available_quantity__lte', models.F('total_quantity'))), name='inventory_available_lte_total'),
                ],
            },
        ),
        migrations.CreateModel(
            name='BorrowTransaction',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('transaction_id', models.CharField(default=borrowing.models.generate_transaction_id, max_length=50, unique=True)),
                ('borrower_type', models.CharField(choices=BORROWER_TYPE_CHOICES, max_length=20)),
                ('borrower_name', models.CharField(max_length=255)),
                ('borrower_id_number', models.CharField(blank=True, default='', max_length=50)),
                ('borrower_email', models.CharField(blank=True, default='', max_length=255)),
                ('borrower_contact', models.CharField(blank=True, default='', max_length=50)),
                ('quantity', models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ('borrow_date', models.DateField()),
                ('expected_return_date', models.DateField()),
                ('actual_return_date', models.DateField(blank=True, null=True)),
                ('purpose', models.CharField(blank=True, default='', max_length=255)),
                ('location', models.CharField(blank=True, default='', max_length=255)),
                ('notes', models.TextField(blank=True, default='')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('approved', 'Approved'), ('borrowed', 'Borrowed'), ('overdue', 'Overdue'), ('pending_return_verification', 'Pending Return Verification'), ('returned', 'Returned'), ('rejected', 'Rejected')], default='pending', max_length=32)),
                ('approved_by', models.CharField(blank=True, default='', max_length=255)),
                ('approved_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('borrower', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='borrow_transactions', to='borrowing.borrower')),
                ('inventory_item', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='borrow_transactions', to='borrowing.inventoryitem')),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['status', 'expected_return_date'], name='borrow_status_due_idx'),
                    models.Index(fields=['inventory_item', 'status'], name='borrow_item_status_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('quantity__gt', 0)), name='borrow_quantity_positive'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ReturnVerification',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('verification_id', models.CharField(max_length=32, unique=True)),
                ('borrower_type', models.CharField(choices=BORROWER_TYPE_CHOICES, max_length=20)),
                ('borrower_name', models.CharField(max_length=255)),
                ('borrower_id_number', models.CharField(blank=True, default='', max_length=50)),
                ('borrower_email', models.CharField(blank=True, default='', max_length=255)),
                ('borrower_contact', models.CharField(blank=True, default='', max_length=50)),
                ('item_name', models.CharField(max_length=255)),
                ('item_category', models.CharField(blank=True, default='', max_length=100)),
                ('quantity_returned', models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ('return_date', models.DateField()),
                ('returned_by', models.CharField(blank=True, default='', max_length=255)),
                ('return_notes', models.TextField(blank=True, default='')),
                ('verification_status', models.CharField(choices=[('pending_verification', 'Pending Verification'), ('verified', 'Verified'), ('rejected', 'Rejected')], default='pending_verification', max_length=32)),
                ('verified_by', models.CharField(blank=True, default='', max_length=255)),
                ('verified_at', models.DateTimeField(blank=True, null=True)),
                ('verification_notes', models.TextField(blank=True, default='')),
                ('rejection_reason', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('borrow_transaction', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='return_verifications', to='borrowing.borrowtransaction')),
                ('inventory_item', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='return_verifications', to='borrowing.inventoryitem')),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='ReturnTransaction',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('return_date', models.DateField()),
                ('condition', models.CharField(choices=[('good', 'Good'), ('fair', 'Fair'), ('poor', 'Poor'), ('slightly_damaged', 'Slightly Damaged'), ('damaged', 'Damaged'), ('lost', 'Lost')], default='good', max_length=20)),
                ('return_notes', models.TextField(blank=True, default='')),
                ('received_by', models.CharField(blank=True, default='', max_length=255)),
                ('damage_fee', models.DecimalField(decimal_places=2, default=0, max_digits=10, validators=[django.core.validators.MinValueValidator(0)])),
                ('inspection_status', models.CharField(choices=[('pending_inspection', 'Pending Inspection'), ('good_condition', 'Good Condition'), ('minor_damage', 'Minor Damage'), ('major_damage', 'Major Damage'), ('lost', 'Lost'), ('unusable', 'Unusable')], default='pending_inspection', max_length=20)),
                ('inspected_by', models.CharField(blank=True, default='', max_length=255)),
                ('inspected_at', models.DateTimeField(blank=True, null=True)),
                ('inspection_notes', models.TextField(blank=True, default='')),
                ('quantity_credited', models.PositiveIntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('borrow_transaction', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='return_transaction', to='borrowing.borrowtransaction')),
                ('return_verification', models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='return_transaction', to='borrowing.returnverification')),
            ],
            options={
                'ordering': ['-return_date', '-created_at'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('damage_fee__gte', 0)), name='return_damage_fee_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ActivityLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('activity_type', models.CharField(max_length=50)),
                ('activity_category', models.CharField(default='transaction', max_length=50)),
                ('description', models.TextField()),
                ('actor_type', models.CharField(blank=True, default='', max_length=20)),
                ('actor_id', models.CharField(blank=True, default='', max_length=100)),
                ('actor_name', models.CharField(blank=True, default='', max_length=255)),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('activity_date', models.DateTimeField(default=django.utils.timezone.now)),
                ('borrow_transaction', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='activity_logs', to='borrowing.borrowtransaction')),
                ('return_transaction', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='activity_logs', to='borrowing.returntransaction')),
                ('return_verification', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='activity_logs', to='borrowing.returnverification')),
                ('inventory_item', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='activity_logs', to='borrowing.inventoryitem')),
            ],
            options={
                'ordering': ['-activity_date', '-id'],
                'indexes': [
                    models.Index(fields=['activity_type', 'activity_date'], name='activity_type_date_idx'),
                ],
            },
        ),
    ]
