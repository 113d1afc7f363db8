# Recover Hires Management Command
from django.core.management.base import BaseCommand, CommandError
from django.db import DEFAULT_DB_ALIAS

from tuitions.gateway import get_payment_gateway
from tuitions.reconciler import PaymentReconciler


class Command(BaseCommand):
    help = (
        'Repairs hired listings that have no payment recorded by reading the paid '
        'checkout session back from the gateway, and rejects applications left '
        'pending on hired listings.'
    )

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Report what would be repaired without saving changes to the database.',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=100,
            help='Number of hired listings fetched per database round trip.',
        )
        parser.add_argument(
            '--database',
            default=DEFAULT_DB_ALIAS,
            help='Database alias to repair.',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        batch_size = options['batch_size']

        if batch_size < 1:
            raise CommandError('--batch-size must be at least 1.')

        self.stdout.write('Scanning hired listings...')
        reconciler = PaymentReconciler(gateway=get_payment_gateway(), using=options['database'])
        report = reconciler.recover(dry_run=dry_run, batch_size=batch_size)

        prefix = '[DRY-RUN] ' if dry_run else ''
        if report.closed_applications:
            self.stdout.write(
                f'{prefix}Rejected {report.closed_applications} pending application(s) on hired listings.'
            )
        for listing_id, transaction_ref in report.completed:
            self.stdout.write(f'{prefix}Listing {listing_id}: recorded payment {transaction_ref}.')
        for listing_id, reason in report.unresolved:
            self.stdout.write(self.style.ERROR(f'Listing {listing_id}: unresolved. {reason}'))

        if report.unresolved:
            raise CommandError(
                f'{len(report.unresolved)} hired listing(s) need manual reconciliation.'
            )

        if report.clean:
            self.stdout.write(self.style.SUCCESS('No inconsistencies found.'))
        elif dry_run:
            self.stdout.write(self.style.SUCCESS('Dry run completed. No changes saved.'))
        else:
            self.stdout.write(self.style.SUCCESS('Recovery completed successfully.'))
