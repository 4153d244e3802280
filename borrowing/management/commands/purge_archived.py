from django.core.management.base import BaseCommand

from borrowing.ledger import purge_archived_items


class Command(BaseCommand):
    help = 'Permanently delete archived inventory items whose retention period has passed'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='List the items that are due without deleting them',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        deleted, skipped = purge_archived_items(dry_run=dry_run)

        for name in deleted:
            self.stdout.write(f'{"Would delete" if dry_run else "Deleted"}: {name}')
        for name in skipped:
            self.stderr.write(self.style.WARNING(f'Skipped (has borrow history): {name}'))

        verb = 'would be deleted' if dry_run else 'deleted'
        self.stdout.write(self.style.SUCCESS(f'{len(deleted)} archived item(s) {verb}, {len(skipped)} skipped'))
