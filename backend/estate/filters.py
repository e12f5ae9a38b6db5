"""
BlueMoon — django-filter FilterSets (query params are camelCase where the model is not).
"""
import django_filters

from .models import Fee, MeterReading, Transaction


class FeeFilter(django_filters.FilterSet):
    type = django_filters.ChoiceFilter(field_name='fee_type', choices=Fee.TYPE_CHOICES)
    unit = django_filters.ChoiceFilter(choices=Fee.UNIT_CHOICES)
    isActive = django_filters.BooleanFilter(field_name='is_active')

    class Meta:
        model = Fee
        fields = ['type', 'unit', 'isActive']


class TransactionFilter(django_filters.FilterSet):
    apartment = django_filters.UUIDFilter(field_name='apartment_id')
    fee = django_filters.UUIDFilter(field_name='fee_id')
    month = django_filters.NumberFilter()
    year = django_filters.NumberFilter()
    status = django_filters.ChoiceFilter(choices=Transaction.STATUS_CHOICES)

    class Meta:
        model = Transaction
        fields = ['apartment', 'fee', 'month', 'year', 'status']


class MeterReadingFilter(django_filters.FilterSet):
    apartment = django_filters.UUIDFilter(field_name='apartment_id')
    fee = django_filters.UUIDFilter(field_name='fee_id')

    class Meta:
        model = MeterReading
        fields = ['apartment', 'fee', 'month', 'year']
