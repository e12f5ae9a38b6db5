"""
Fee calculation.

They read a fee and an apartment shape (`area`, `member_count`) and never
write anything. Load apartments with Apartment.objects.with_member_count();
an apartment without the annotation costs one members query per call.
"""
import logging
from collections import namedtuple
from decimal import Decimal, ROUND_HALF_UP

from estate.models import Fee

logger = logging.getLogger(__name__)

WHOLE_UNIT = Decimal('1')


def _decimal(value):
    if value is None:
        return Decimal('0')
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def member_count(apartment):
    """Household size from the `member_count` annotation, or the members relation."""
    count = getattr(apartment, 'member_count', None)
    if count is None:
        members = getattr(apartment, 'members', None)
        if members is None:
            raise ValueError('Apartment has neither member_count nor members')
        count = members.count()
    return Decimal(count)


def round_amount(value):
    """Round to a whole currency unit, halves going up."""
    return _decimal(value).quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP)


class FeeCalculation(namedtuple('FeeCalculation', ['quantity', 'total_amount', 'usage'])):
    __slots__ = ()

    @property
    def is_billable(self):
        return self.total_amount > 0


def calculate(fee, apartment, usage=None):
    """
    Amount owed by `apartment` for `fee`.

    `usage` is the meter reading for kWh / m³ fees and is ignored for the
    other units; a missing reading counts as 0.
    """
    price = _decimal(fee.amount)
    reading = None

    if fee.unit == Fee.UNIT_AREA:
        quantity = _decimal(apartment.area)
    elif fee.unit == Fee.UNIT_PERSON:
        quantity = member_count(apartment)
    elif fee.unit == Fee.UNIT_APARTMENT:
        quantity = Decimal('1')
    elif fee.unit in Fee.METERED_UNITS:
        reading = _decimal(usage)
        if reading < 0:
            raise ValueError('Usage cannot be negative')
        quantity = reading
    else:
        logger.warning('Fee %s has unrecognized unit %r, billed as a flat fee',
                       getattr(fee, 'pk', None), fee.unit)
        quantity = Decimal('1')

    return FeeCalculation(
        quantity=quantity,
        total_amount=round_amount(price * quantity),
        usage=reading,
    )


def calculate_all(fees, apartment, usage_map=None):
    """
    Calculate every fee in `fees` for one apartment.
    `usage_map` maps str(fee.pk) to a reading.
    Returns (rows, grand_total) where rows are (fee, FeeCalculation).
    """
    usage_map = usage_map or {}
    rows = []
    grand_total = Decimal('0')
    for fee in fees:
        result = calculate(fee, apartment, usage_map.get(str(fee.pk)))
        rows.append((fee, result))
        grand_total += result.total_amount
    return rows, round_amount(grand_total)
