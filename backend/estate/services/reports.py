"""
Read-only aggregations over the ledger. Nothing is cached: every call
reflects the database at query time. Dashboard revenue adds up every
transaction amount; PAID status and the per-apartment summary count
Completed transactions only.
"""
from decimal import Decimal

from django.db.models import Count, Max, Q, Sum
from django.utils import timezone

from estate.models import Apartment, Resident, Transaction

UNKNOWN_BUILDING = 'Unknown'
RECENT_LIMIT = 5


def _completed():
    return Transaction.objects.filter(status=Transaction.STATUS_COMPLETED)


def fee_payment_status(fee, month=None, year=None):
    """
    PAID / UNPAID per apartment for one fee, optionally within a period.

    Shape: {feeInfo: {title, totalCollected}, apartments: [{apartmentId,
    name, ownerName, status, paidAmount, paidDate}]}
    """
    payments = _completed().filter(fee=fee)
    if month is not None:
        payments = payments.filter(month=month)
    if year is not None:
        payments = payments.filter(year=year)

    per_apartment = {
        row['apartment_id']: row
        for row in payments.values('apartment_id').annotate(paid=Sum('total_amount'), last_paid=Max('date'))
    }
    total_collected = payments.aggregate(total=Sum('total_amount'))['total'] or Decimal('0')

    apartments = []
    for apartment in Apartment.objects.select_related('owner').order_by('name'):
        paid = per_apartment.get(apartment.pk)
        apartments.append({
            'apartmentId': apartment.pk,
            'name': apartment.name,
            'ownerName': apartment.owner_name or 'N/A',
            'status': 'PAID' if paid else 'UNPAID',
            'paidAmount': paid['paid'] if paid else Decimal('0'),
            'paidDate': paid['last_paid'] if paid else None,
        })

    return {
        'feeInfo': {'title': fee.title, 'totalCollected': total_collected},
        'apartments': apartments,
    }


def dashboard_summary(now=None):
    """
    Shape: {totalResidents, totalApartments, totalRevenue,
    currentMonthRevenue, recentTransactions[], apartmentStats: {total,
    status[], byBuilding[]}}
    """
    now = timezone.localtime(now or timezone.now())
    start_of_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    total_residents = Resident.objects.exclude(residency_status=Resident.STATUS_MOVED_OUT).count()
    total_apartments = Apartment.objects.count()

    transactions = Transaction.objects.all()
    total_revenue = transactions.aggregate(total=Sum('total_amount'))['total'] or Decimal('0')
    month_revenue = transactions.filter(
        date__gte=start_of_month
    ).aggregate(total=Sum('total_amount'))['total'] or Decimal('0')

    recent = Transaction.objects.select_related('apartment', 'fee').order_by('-date')[:RECENT_LIMIT]
    recent_transactions = [
        {
            'apartment': txn.apartment.name,
            'fee': txn.fee.title,
            'amount': txn.total_amount,
            'date': txn.date,
        }
        for txn in recent
    ]

    occupied = Apartment.objects.filter(owner__isnull=False).count()
    status = [
        {'status': label, 'count': count}
        for label, count in (('Occupied', occupied), ('Vacant', total_apartments - occupied))
        if count
    ]

    by_building = {}
    for row in Apartment.objects.values('building').annotate(count=Count('id')):
        building = row['building'] or UNKNOWN_BUILDING
        by_building[building] = by_building.get(building, 0) + row['count']

    return {
        'totalResidents': total_residents,
        'totalApartments': total_apartments,
        'totalRevenue': total_revenue,
        'currentMonthRevenue': month_revenue,
        'recentTransactions': recent_transactions,
        'apartmentStats': {
            'total': total_apartments,
            'status': status,
            'byBuilding': [
                {'building': building, 'count': count}
                for building, count in sorted(by_building.items())
            ],
        },
    }


def apartment_revenue_summary():
    """Collected amount and payment count per apartment (zeros when unpaid)."""
    completed = Q(transactions__status=Transaction.STATUS_COMPLETED)
    apartments = Apartment.objects.select_related('owner').annotate(
        collected=Sum('transactions__total_amount', filter=completed),
        payment_count=Count('transactions', filter=completed),
    ).order_by('name')
    return [
        {
            'apartmentId': apartment.pk,
            'name': apartment.name,
            'building': apartment.building,
            'area': apartment.area,
            'ownerName': apartment.owner_name,
            'totalCollected': apartment.collected or Decimal('0'),
            'transactionCount': apartment.payment_count,
        }
        for apartment in apartments
    ]
