"""
BlueMoon — Data Models (PostgreSQL optimized)

Model hierarchy:
  User (custom auth, role per account)
  Resident (individual)
  └── Apartment (household: owner + members)
       ├── MeterReading (metered usage per fee and period)
       └── Transaction (bill / payment per fee and period)
            └── Fee (catalog entry)
"""

import uuid
from decimal import Decimal
from django.db import models
from django.db.models import Count
from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin
from django.core.validators import MinValueValidator, MaxValueValidator, MinLengthValidator
from django.utils import timezone


# ═══════════════════════════════════════════════════════════
#  CUSTOM USER
# ═══════════════════════════════════════════════════════════

class UserManager(BaseUserManager):
    use_in_migrations = True

    def create_user(self, username, name='', password=None, **extra):
        if not username:
            raise ValueError('Username is required')
        user = self.model(username=username.strip().lower(), name=name, **extra)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, username, name='', password=None, **extra):
        extra.setdefault('is_staff', True)
        extra.setdefault('is_superuser', True)
        extra.setdefault('role', User.ROLE_ADMIN)
        return self.create_user(username, name, password, **extra)


class User(AbstractBaseUser, PermissionsMixin):
    """
    Back-office account. The role decides which operations are allowed,
    see estate.permissions.can_perform.
    """
    ROLE_ADMIN = 'admin'
    ROLE_LEADER = 'leader'
    ROLE_ACCOUNTANT = 'accountant'
    ROLE_CHOICES = [
        (ROLE_ADMIN, 'Administrator'),
        (ROLE_LEADER, 'Leader'),
        (ROLE_ACCOUNTANT, 'Accountant'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    username = models.CharField(max_length=150, unique=True, db_index=True)
    name = models.CharField(max_length=200, blank=True, default='')
    email = models.EmailField(blank=True, default='')
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_LEADER)
    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UserManager()
    USERNAME_FIELD = 'username'
    REQUIRED_FIELDS = []

    class Meta:
        db_table = 'users'
        ordering = ['username']

    def __str__(self):
        return f'{self.username} ({self.role})'


# ═══════════════════════════════════════════════════════════
#  RESIDENT
# ═══════════════════════════════════════════════════════════

class Resident(models.Model):
    """
    A person living in the complex. `apartment` mirrors membership and is
    kept in sync by estate.services.registry; Apartment.members is the
    source of truth.
    """
    ROLE_OWNER = 'Owner'
    ROLE_MEMBER = 'Member'
    ROLE_CHOICES = [
        (ROLE_OWNER, 'Head of household'),
        (ROLE_MEMBER, 'Member'),
    ]
    STATUS_PERMANENT = 'permanent'
    STATUS_TEMPORARY = 'temporary'
    STATUS_ABSENT = 'absent'
    STATUS_MOVED_OUT = 'moved_out'
    RESIDENCY_STATUS_CHOICES = [
        (STATUS_PERMANENT, 'Permanent resident'),
        (STATUS_TEMPORARY, 'Temporary resident'),
        (STATUS_ABSENT, 'Temporarily absent'),
        (STATUS_MOVED_OUT, 'Moved out'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    full_name = models.CharField(max_length=200)
    dob = models.DateField()
    gender = models.CharField(max_length=20)
    identity_card = models.CharField(max_length=12, unique=True,
                                     validators=[MinLengthValidator(9)])
    hometown = models.CharField(max_length=200)
    job = models.CharField(max_length=200)
    phone = models.CharField(max_length=30, blank=True, default='')
    apartment = models.ForeignKey('Apartment', on_delete=models.SET_NULL, null=True, blank=True,
                                  related_name='residents')
    role_in_apartment = models.CharField(max_length=10, choices=ROLE_CHOICES, default=ROLE_MEMBER)
    residency_status = models.CharField(max_length=15, choices=RESIDENCY_STATUS_CHOICES,
                                        default=STATUS_PERMANENT, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'residents'
        ordering = ['full_name']

    def __str__(self):
        return f'{self.full_name} ({self.identity_card})'


# ═══════════════════════════════════════════════════════════
#  APARTMENT (Household)
# ═══════════════════════════════════════════════════════════

class ApartmentQuerySet(models.QuerySet):
    def with_member_count(self):
        """Annotate `member_count`, the shape the fee calculation reads."""
        return self.annotate(member_count=Count('members', distinct=True))


class Apartment(models.Model):
    """
    The billing unit: an area, an optional head of household and a set of
    member residents.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=100, unique=True)
    area = models.DecimalField(max_digits=10, decimal_places=2,
                               validators=[MinValueValidator(Decimal('0.01'))],
                               help_text='Floor area in m²')
    owner = models.OneToOneField(Resident, on_delete=models.SET_NULL, null=True, blank=True,
                                 related_name='owned_apartment')
    members = models.ManyToManyField(Resident, blank=True, related_name='households')
    apartment_number = models.CharField(max_length=20, blank=True, default='')
    building = models.CharField(max_length=50, blank=True, default='', db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ApartmentQuerySet.as_manager()

    class Meta:
        db_table = 'apartments'
        ordering = ['name']

    def __str__(self):
        return self.name

    @property
    def owner_name(self):
        return self.owner.full_name if self.owner_id else None


# ═══════════════════════════════════════════════════════════
#  FEE (Catalog)
# ═══════════════════════════════════════════════════════════

class Fee(models.Model):
    """
    A billable category. Disabled instead of deleted so that historical
    transactions keep their reference.
    """
    TYPE_SERVICE = 'Service'
    TYPE_CONTRIBUTION = 'Contribution'
    TYPE_UTILITY = 'Utility'
    TYPE_CHOICES = [
        (TYPE_SERVICE, 'Service'),
        (TYPE_CONTRIBUTION, 'Contribution'),
        (TYPE_UTILITY, 'Utility'),
    ]
    UNIT_APARTMENT = 'apartment'
    UNIT_PERSON = 'person'
    UNIT_AREA = 'm2'
    UNIT_KWH = 'kWh'
    UNIT_WATER_CUBE = 'm3'
    UNIT_CHOICES = [
        (UNIT_APARTMENT, 'Per apartment'),
        (UNIT_PERSON, 'Per person'),
        (UNIT_AREA, 'Per m²'),
        (UNIT_KWH, 'Per kWh'),
        (UNIT_WATER_CUBE, 'Per m³ of water'),
    ]
    METERED_UNITS = (UNIT_KWH, UNIT_WATER_CUBE)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    title = models.CharField(max_length=200, validators=[MinLengthValidator(5)])
    description = models.TextField(blank=True, default='')
    fee_type = models.CharField(max_length=15, choices=TYPE_CHOICES, db_index=True)
    unit = models.CharField(max_length=10, choices=UNIT_CHOICES)
    amount = models.DecimalField(max_digits=12, decimal_places=2,
                                 validators=[MinValueValidator(0)],
                                 help_text='Unit price')
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'fees'
        ordering = ['-created_at']

    def __str__(self):
        return f'{self.title} ({self.fee_type}, {self.unit})'

    @property
    def is_metered(self):
        return self.unit in self.METERED_UNITS


# ═══════════════════════════════════════════════════════════
#  METER READING
# ═══════════════════════════════════════════════════════════

class MeterReading(models.Model):
    """Usage of a metered fee (kWh, m³) for one apartment and period."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    apartment = models.ForeignKey(Apartment, on_delete=models.CASCADE, related_name='meter_readings')
    fee = models.ForeignKey(Fee, on_delete=models.PROTECT, related_name='meter_readings')
    month = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(12)])
    year = models.PositiveIntegerField()
    usage = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(0)])
    recorded_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'meter_readings'
        ordering = ['-year', '-month']
        constraints = [
            models.UniqueConstraint(fields=['apartment', 'fee', 'month', 'year'],
                                    name='unique_reading_per_period'),
        ]

    def __str__(self):
        return f'{self.apartment.name} {self.fee.unit} {self.month:02d}/{self.year}: {self.usage}'


# ═══════════════════════════════════════════════════════════
#  TRANSACTION (Bill / Payment)
# ═══════════════════════════════════════════════════════════

class Transaction(models.Model):
    """
    One bill or payment for an apartment, a fee and a period.
    Created Pending by the billing batch or Completed by direct payment.
    """
    STATUS_PENDING = 'Pending'
    STATUS_COMPLETED = 'Completed'
    STATUS_CANCELLED = 'Cancelled'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    apartment = models.ForeignKey(Apartment, on_delete=models.PROTECT, related_name='transactions')
    fee = models.ForeignKey(Fee, on_delete=models.PROTECT, related_name='transactions')
    total_amount = models.DecimalField(max_digits=14, decimal_places=2,
                                       validators=[MinValueValidator(0)])
    quantity = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    usage = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True,
                                validators=[MinValueValidator(0)])
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True,
                                     validators=[MinValueValidator(0)],
                                     help_text='Fee amount at calculation time')
    month = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(12)])
    year = models.PositiveIntegerField()
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_COMPLETED,
                              db_index=True)
    payer_name = models.CharField(max_length=200, blank=True, default='')
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='transactions')
    date = models.DateTimeField(default=timezone.now, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'transactions'
        ordering = ['-date']
        constraints = [
            models.UniqueConstraint(fields=['apartment', 'fee', 'month', 'year'],
                                    name='unique_bill_per_period'),
        ]
        indexes = [
            models.Index(fields=['apartment', 'month', 'year'], name='txn_apartment_period_idx'),
            models.Index(fields=['fee', 'status'], name='txn_fee_status_idx'),
        ]

    def __str__(self):
        return f'{self.apartment.name} / {self.fee.title} {self.month:02d}/{self.year} ({self.status})'

    @property
    def is_completed(self):
        return self.status == self.STATUS_COMPLETED
