"""
Household membership.

Apartment.members is the source of truth; Resident.apartment and
Resident.role_in_apartment are updated here so both sides agree.
"""
import logging

from django.db import transaction as db_transaction

from estate.exceptions import ConflictError, NotFoundError
from estate.models import Apartment, Resident

logger = logging.getLogger(__name__)


def _ensure_free(resident, apartment=None):
    if resident.apartment_id and (apartment is None or resident.apartment_id != apartment.pk):
        raise ConflictError(f'{resident.full_name} already belongs to another apartment')


@db_transaction.atomic
def create_apartment(name, area, owner=None, apartment_number='', building=''):
    if Apartment.objects.filter(name=name).exists():
        raise ConflictError('Apartment name already exists in the system',
                            errors=[{'field': 'name', 'message': 'Apartment name already exists'}])
    if owner is not None:
        _ensure_free(owner)
    apartment = Apartment.objects.create(
        name=name, area=area,
        apartment_number=apartment_number, building=building,
    )
    if owner is not None:
        add_member(apartment, owner, as_owner=True)
    logger.info('Apartment %s created', apartment.name)
    return apartment


@db_transaction.atomic
def add_member(apartment, resident, as_owner=False):
    """Attach a resident to a household, optionally as its head."""
    _ensure_free(resident, apartment)
    if as_owner and apartment.owner_id and apartment.owner_id != resident.pk:
        raise ConflictError(f'{apartment.name} already has an owner')

    is_owner = as_owner or apartment.owner_id == resident.pk
    apartment.members.add(resident)
    resident.apartment = apartment
    resident.role_in_apartment = Resident.ROLE_OWNER if is_owner else Resident.ROLE_MEMBER
    resident.save(update_fields=['apartment', 'role_in_apartment', 'updated_at'])
    if as_owner and apartment.owner_id != resident.pk:
        apartment.owner = resident
        apartment.save(update_fields=['owner', 'updated_at'])
    return apartment


@db_transaction.atomic
def set_owner(apartment, resident):
    """Hand the household over to `resident` (None clears it). The previous head stays a member."""
    previous = apartment.owner
    if previous is not None and (resident is None or previous.pk != resident.pk):
        previous.role_in_apartment = Resident.ROLE_MEMBER
        previous.save(update_fields=['role_in_apartment', 'updated_at'])
        apartment.owner = None
        apartment.save(update_fields=['owner', 'updated_at'])
    if resident is not None:
        add_member(apartment, resident, as_owner=True)
    return apartment


@db_transaction.atomic
def remove_member(apartment, resident):
    if not apartment.members.filter(pk=resident.pk).exists():
        raise NotFoundError(f'{resident.full_name} is not a member of {apartment.name}')
    apartment.members.remove(resident)
    if apartment.owner_id == resident.pk:
        apartment.owner = None
        apartment.save(update_fields=['owner', 'updated_at'])
    resident.apartment = None
    resident.role_in_apartment = Resident.ROLE_MEMBER
    resident.save(update_fields=['apartment', 'role_in_apartment', 'updated_at'])
    return apartment
