"""
Monthly bill generation.

For one period, every active fee is calculated for every apartment and a
Pending transaction is written unless the pair is already billed. The run
is best effort: a failing pair is reported and the loop goes on.
"""
import logging
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import DataError, IntegrityError, transaction as db_transaction

from estate.exceptions import InvalidInputError
from estate.models import Apartment, Fee, MeterReading, Transaction
from .calculation import calculate

logger = logging.getLogger(__name__)

MISSING_READING = 'Meter reading required'


def validate_period(month, year):
    errors = []
    try:
        month = int(month)
    except (TypeError, ValueError):
        month = None
    if month is None or not 1 <= month <= 12:
        errors.append({'field': 'month', 'message': 'Month must be between 1 and 12'})
    try:
        year = int(year)
    except (TypeError, ValueError):
        year = None
    if year is None or not settings.BILLING_MIN_YEAR <= year <= settings.BILLING_MAX_YEAR:
        errors.append({
            'field': 'year',
            'message': f'Year must be between {settings.BILLING_MIN_YEAR} and {settings.BILLING_MAX_YEAR}',
        })
    if errors:
        raise InvalidInputError(errors=errors)
    return month, year


class BillingRun:
    """Outcome of generate_bills()."""

    def __init__(self, month, year):
        self.month = month
        self.year = year
        self.created = []
        self.skipped = 0
        self.errors = []

    @property
    def created_count(self):
        return len(self.created)

    def add_error(self, apartment, fee, message):
        self.errors.append({'apartment': apartment.name, 'fee': fee.title, 'error': message})


def record_readings(month, year, readings, recorded_by=None):
    """
    Upsert meter readings for a period.
    `readings` is an iterable of dicts with apartment, fee and usage.
    """
    month, year = validate_period(month, year)
    saved = []
    for reading in readings:
        fee = reading['fee']
        if not fee.is_metered:
            raise InvalidInputError.for_field('feeId', f'Fee "{fee.title}" is not metered')
        usage = Decimal(str(reading['usage']))
        if usage < 0:
            raise InvalidInputError.for_field('usage', 'Usage cannot be negative')
        obj, _ = MeterReading.objects.update_or_create(
            apartment=reading['apartment'], fee=fee, month=month, year=year,
            defaults={'usage': usage, 'recorded_by': recorded_by},
        )
        saved.append(obj)
    return saved


def _clean_error_message(exc):
    if isinstance(exc, ValidationError):
        return '; '.join(exc.messages)
    return str(exc)


def generate_bills(month, year, readings=None, created_by=None, dry_run=False):
    """
    Create Pending bills for (month, year). Safe to re-run: pairs already
    billed are skipped and a duplicate insert racing another run is
    treated the same way.
    """
    month, year = validate_period(month, year)
    if readings and not dry_run:
        record_readings(month, year, readings, recorded_by=created_by)

    run = BillingRun(month, year)
    fees = list(Fee.objects.filter(is_active=True).order_by('created_at'))
    apartments = Apartment.objects.with_member_count().order_by('name')
    billed = set(
        Transaction.objects.filter(month=month, year=year).values_list('apartment_id', 'fee_id')
    )
    stored_usage = {
        (r.apartment_id, r.fee_id): r.usage
        for r in MeterReading.objects.filter(month=month, year=year)
    }

    for apartment in apartments:
        for fee in fees:
            key = (apartment.pk, fee.pk)
            if key in billed:
                run.skipped += 1
                continue

            usage = None
            if fee.is_metered:
                usage = stored_usage.get(key)
                if usage is None:
                    run.add_error(apartment, fee, MISSING_READING)
                    continue

            result = calculate(fee, apartment, usage)
            if not result.is_billable:
                run.skipped += 1
                continue

            bill = Transaction(
                apartment=apartment,
                fee=fee,
                month=month,
                year=year,
                status=Transaction.STATUS_PENDING,
                total_amount=result.total_amount,
                quantity=result.quantity,
                usage=result.usage,
                unit_price=fee.amount,
                created_by=created_by,
            )
            if dry_run:
                run.created.append(bill)
                continue

            try:
                bill.full_clean(validate_unique=False, validate_constraints=False)
                with db_transaction.atomic():
                    bill.save(force_insert=True)
            except IntegrityError:
                logger.info('Bill for %s / %s %02d/%d already exists, skipped',
                            apartment.name, fee.title, month, year)
                run.skipped += 1
            except (ValidationError, DataError) as exc:
                message = _clean_error_message(exc)
                logger.warning('Bill for %s / %s failed: %s', apartment.name, fee.title, message)
                run.add_error(apartment, fee, message)
            else:
                run.created.append(bill)

    logger.info('Billing %02d/%d: %d created, %d skipped, %d errors%s',
                month, year, run.created_count, run.skipped, len(run.errors),
                ' (dry run)' if dry_run else '')
    return run
