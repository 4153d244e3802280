from django.core.management.base import BaseCommand

from borrowing.borrow import mark_overdue_transactions, overdue_candidates


class Command(BaseCommand):
    help = 'Mark borrowed transactions past their expected return date as overdue'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='List the transactions that would be marked without changing them',
        )

    def handle(self, *args, **options):
        if options['dry_run']:
            candidates = list(overdue_candidates())
            for tx in candidates:
                self.stdout.write(
                    f'{tx.transaction_id}: {tx.borrower_name}, {tx.inventory_item.name} '
                    f'(due {tx.expected_return_date.isoformat()})'
                )
            self.stdout.write(self.style.SUCCESS(f'{len(candidates)} transaction(s) would be marked overdue'))
            return

        marked = mark_overdue_transactions()
        for tx in marked:
            self.stdout.write(f'{tx.transaction_id}: {tx.days_overdue} day(s) overdue')
        self.stdout.write(self.style.SUCCESS(f'Marked {len(marked)} transaction(s) as overdue'))
