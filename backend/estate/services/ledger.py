"""
Payment recording and transaction maintenance.

Bills and payments share one key: (apartment, fee, month, year). A payment
settles the period's Pending or Cancelled bill in place. A second payment on
a Completed period is refused for Service and Utility fees and added to the
existing record for Contribution fees.
"""
import logging
from decimal import Decimal, InvalidOperation

from django.db import IntegrityError, transaction as db_transaction
from django.utils import timezone

from estate.exceptions import AlreadyPaidError, InvalidInputError, NotFoundError
from estate.models import Apartment, Fee, Transaction
from .billing import validate_period

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    Transaction.STATUS_PENDING: {Transaction.STATUS_COMPLETED, Transaction.STATUS_CANCELLED},
    Transaction.STATUS_COMPLETED: {Transaction.STATUS_CANCELLED},
    Transaction.STATUS_CANCELLED: {Transaction.STATUS_PENDING},
}


def current_period(today=None):
    today = today or timezone.localdate()
    return today.month, today.year


def _positive_amount(value):
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return None
    return amount if amount > 0 else None


def _locked_period_record(period):
    return Transaction.objects.select_for_update().filter(**period).first()


def _apply_payment(txn, fee, amount, payer_name, usage, unit_price, created_by):
    if txn.status == Transaction.STATUS_COMPLETED:
        if fee.fee_type != Fee.TYPE_CONTRIBUTION:
            raise AlreadyPaidError()
        txn.total_amount += amount
    else:
        txn.total_amount = amount
        txn.status = Transaction.STATUS_COMPLETED
    txn.payer_name = payer_name
    txn.date = timezone.now()
    if created_by is not None:
        txn.created_by = created_by
    if usage is not None:
        txn.usage = usage
    if unit_price is not None:
        txn.unit_price = unit_price
    txn.save()
    return txn


@db_transaction.atomic
def record_payment(apartment_id, fee_id, total_amount, payer_name, month=None, year=None,
                   usage=None, unit_price=None, created_by=None):
    """
    Record a completed payment. Returns (transaction, created).
    Raises InvalidInputError, NotFoundError or AlreadyPaidError.
    """
    amount = _positive_amount(total_amount)
    payer_name = (payer_name or '').strip()
    errors = []
    if amount is None:
        errors.append({'field': 'totalAmount', 'message': 'Invalid total amount'})
    if not payer_name:
        errors.append({'field': 'payerName', 'message': 'Payer name is required'})
    if errors:
        raise InvalidInputError(errors=errors)

    fee = Fee.objects.filter(pk=fee_id).first()
    if fee is None:
        raise NotFoundError('Fee not found')
    apartment = Apartment.objects.filter(pk=apartment_id).first()
    if apartment is None:
        raise NotFoundError('Apartment not found')

    if month is None or year is None:
        default_month, default_year = current_period()
        month = default_month if month is None else month
        year = default_year if year is None else year
    month, year = validate_period(month, year)

    period = {'apartment': apartment, 'fee': fee, 'month': month, 'year': year}
    existing = _locked_period_record(period)
    if existing is not None:
        txn = _apply_payment(existing, fee, amount, payer_name, usage, unit_price, created_by)
        logger.info('Payment settled %s', txn)
        return txn, False

    try:
        with db_transaction.atomic():
            txn = Transaction.objects.create(
                total_amount=amount,
                payer_name=payer_name,
                status=Transaction.STATUS_COMPLETED,
                usage=usage,
                unit_price=fee.amount if unit_price is None else unit_price,
                created_by=created_by,
                date=timezone.now(),
                **period,
            )
    except IntegrityError:
        # another request created the period's record in between
        existing = Transaction.objects.select_for_update().get(**period)
        txn = _apply_payment(existing, fee, amount, payer_name, usage, unit_price, created_by)
        return txn, False

    logger.info('Payment recorded %s', txn)
    return txn, True


def update_transaction(txn, changes):
    """
    Apply `changes` (model field names) to a transaction, enforcing the
    status lifecycle and the payer requirement of completed payments.
    """
    new_status = changes.get('status', txn.status)
    if new_status != txn.status and new_status not in ALLOWED_TRANSITIONS.get(txn.status, ()):
        raise InvalidInputError.for_field(
            'status', f'Cannot change status from {txn.status} to {new_status}'
        )

    changes = dict(changes)
    payer_name = (changes.get('payer_name', txn.payer_name) or '').strip()
    if new_status == Transaction.STATUS_COMPLETED and not payer_name:
        raise InvalidInputError.for_field('payerName', 'Payer name is required for a completed payment')
    changes['payer_name'] = payer_name

    for field, value in changes.items():
        setattr(txn, field, value)
    txn.save()
    logger.info('Transaction %s updated: %s', txn.pk, ', '.join(sorted(changes)))
    return txn


def delete_transaction(txn):
    logger.info('Transaction %s deleted (%s)', txn.pk, txn)
    txn.delete()
