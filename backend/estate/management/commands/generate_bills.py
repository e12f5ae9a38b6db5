"""
Generate the Pending bills of a billing period for every apartment.
Metered fees are billed from the period's stored meter readings.

Usage:
    python manage.py generate_bills
    python manage.py generate_bills --month 3 --year 2025 --dry-run

Can be added to crontab to run at the start of each month:
    0 1 1 * * cd /path/to/backend && python manage.py generate_bills
"""
from django.core.management.base import BaseCommand, CommandError

from estate.exceptions import InvalidInputError
from estate.services.billing import generate_bills
from estate.services.ledger import current_period


class Command(BaseCommand):
    help = 'Generate Pending bills for every apartment and active fee of a period'

    def add_arguments(self, parser):
        parser.add_argument('--month', type=int, help='Billing month (defaults to the current month)')
        parser.add_argument('--year', type=int, help='Billing year (defaults to the current year)')
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be created without actually creating records',
        )

    def handle(self, *args, **options):
        month, year = current_period()
        month = options['month'] or month
        year = options['year'] or year
        dry_run = options['dry_run']

        self.stdout.write(f"\n{'=' * 60}")
        self.stdout.write(f'  BILL GENERATION - {month:02d}/{year}')
        self.stdout.write(f"{'=' * 60}\n")

        if dry_run:
            self.stdout.write(self.style.WARNING('DRY RUN MODE - No records will be created\n'))

        try:
            run = generate_bills(month, year, dry_run=dry_run)
        except InvalidInputError as exc:
            raise CommandError('; '.join(e['message'] for e in exc.errors) or exc.message)

        for bill in run.created:
            self.stdout.write(self.style.SUCCESS(
                f'  + {bill.apartment.name} - {bill.fee.title}: {bill.total_amount}'
            ))
        for error in run.errors:
            self.stdout.write(self.style.ERROR(
                f"  ! {error['apartment']} - {error['fee']}: {error['error']}"
            ))

        self.stdout.write(f"\n{'=' * 60}")
        self.stdout.write('  SUMMARY')
        self.stdout.write(f"{'=' * 60}")
        self.stdout.write(f'  Skipped: {run.skipped}')
        self.stdout.write(f'  Errors: {len(run.errors)}')
        if dry_run:
            self.stdout.write(self.style.WARNING(f'  Would create: {run.created_count}'))
        else:
            self.stdout.write(self.style.SUCCESS(f'  Created: {run.created_count}'))
        self.stdout.write(f"{'=' * 60}\n")
