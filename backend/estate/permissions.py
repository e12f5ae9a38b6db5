"""
BlueMoon — Role-based access control.

Every view declares the capability each action needs; HasCapability checks
it against one table instead of comparing role strings in each view.
"""
from rest_framework.permissions import BasePermission, SAFE_METHODS

from .models import User

VIEW = 'view'
CALCULATE = 'calculate'
MANAGE_REGISTRY = 'manage_registry'
MANAGE_FEES = 'manage_fees'
GENERATE_BILLS = 'generate_bills'
RECORD_READINGS = 'record_readings'
RECORD_PAYMENT = 'record_payment'
EDIT_TRANSACTIONS = 'edit_transactions'
DELETE_TRANSACTIONS = 'delete_transactions'
MANAGE_USERS = 'manage_users'

_ALL_ROLES = frozenset({User.ROLE_ADMIN, User.ROLE_LEADER, User.ROLE_ACCOUNTANT})

CAPABILITIES = {
    VIEW: _ALL_ROLES,
    CALCULATE: _ALL_ROLES,
    MANAGE_REGISTRY: frozenset({User.ROLE_ADMIN, User.ROLE_LEADER}),
    MANAGE_FEES: frozenset({User.ROLE_ADMIN}),
    GENERATE_BILLS: frozenset({User.ROLE_ADMIN, User.ROLE_ACCOUNTANT}),
    RECORD_READINGS: frozenset({User.ROLE_ADMIN, User.ROLE_ACCOUNTANT}),
    RECORD_PAYMENT: frozenset({User.ROLE_ADMIN, User.ROLE_ACCOUNTANT}),
    EDIT_TRANSACTIONS: frozenset({User.ROLE_ADMIN, User.ROLE_ACCOUNTANT}),
    DELETE_TRANSACTIONS: frozenset({User.ROLE_ADMIN}),
    MANAGE_USERS: frozenset({User.ROLE_ADMIN}),
}


def can_perform(role, action):
    """True when `role` holds the capability `action`. Unknown actions are denied."""
    return role in CAPABILITIES.get(action, ())


class HasCapability(BasePermission):
    """
    Reads `view.capabilities` ({action_name: capability}). Actions not listed
    fall back to VIEW for safe methods and `view.write_capability` otherwise.
    """

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False
        if user.is_superuser:
            return True
        required = getattr(view, 'capabilities', {}).get(getattr(view, 'action', None))
        if required is None:
            if request.method in SAFE_METHODS:
                required = VIEW
            else:
                required = getattr(view, 'write_capability', None)
        return required is not None and can_perform(user.role, required)
