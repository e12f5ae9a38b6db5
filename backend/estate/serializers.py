"""
BlueMoon — REST API Serializers
The front-end speaks camelCase; model fields are mapped with `source`.
"""
from decimal import Decimal

from django.db import transaction as db_transaction
from rest_framework import serializers
from rest_framework.validators import UniqueValidator

from .models import User, Resident, Apartment, Fee, MeterReading, Transaction
from .services import registry


# ═══════════════════════════════════════════════════════════
#  AUTH
# ═══════════════════════════════════════════════════════════

class LoginSerializer(serializers.Serializer):
    username = serializers.CharField()
    password = serializers.CharField(write_only=True)

    def validate(self, data):
        username = data['username'].strip().lower()
        try:
            user = User.objects.get(username=username)
        except User.DoesNotExist:
            raise serializers.ValidationError('Invalid credentials.')

        if not user.check_password(data['password']):
            raise serializers.ValidationError('Invalid credentials.')

        if not user.is_active:
            raise serializers.ValidationError('Account disabled.')

        data['user'] = user
        return data


class UserSerializer(serializers.ModelSerializer):
    isActive = serializers.BooleanField(source='is_active', read_only=True)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)

    class Meta:
        model = User
        fields = ['id', 'username', 'name', 'email', 'role', 'isActive', 'createdAt']
        read_only_fields = fields


class UserWriteSerializer(serializers.ModelSerializer):
    """Admin-side account management: POST / PUT / PATCH /api/users/"""
    username = serializers.CharField(
        min_length=6, max_length=150,
        validators=[UniqueValidator(queryset=User.objects.all(), lookup='iexact',
                                    message='Username already exists.')],
    )
    password = serializers.CharField(write_only=True, min_length=6, required=False)
    role = serializers.ChoiceField(choices=User.ROLE_CHOICES)
    isActive = serializers.BooleanField(source='is_active', required=False)

    class Meta:
        model = User
        fields = ['id', 'username', 'name', 'email', 'password', 'role', 'isActive']
        read_only_fields = ['id']

    def validate_username(self, value):
        return value.strip().lower()

    def validate(self, data):
        if self.instance is None and not data.get('password'):
            raise serializers.ValidationError({'password': 'This field is required.'})
        return data

    def create(self, validated_data):
        password = validated_data.pop('password')
        return User.objects.create_user(password=password, **validated_data)

    def update(self, instance, validated_data):
        password = validated_data.pop('password', None)
        instance = super().update(instance, validated_data)
        if password:
            instance.set_password(password)
            instance.save(update_fields=['password', 'updated_at'])
        return instance


# ═══════════════════════════════════════════════════════════
#  RESIDENT
# ═══════════════════════════════════════════════════════════

class ResidentSerializer(serializers.ModelSerializer):
    fullName = serializers.CharField(source='full_name', max_length=200)
    identityCard = serializers.CharField(
        source='identity_card', min_length=9, max_length=12,
        validators=[UniqueValidator(queryset=Resident.objects.all(),
                                    message='Resident already exists (identityCard).')],
    )
    apartmentId = serializers.PrimaryKeyRelatedField(
        source='apartment', queryset=Apartment.objects.all(),
        required=False, allow_null=True,
    )
    roleInApartment = serializers.CharField(source='role_in_apartment', read_only=True)
    residencyStatus = serializers.ChoiceField(
        source='residency_status', choices=Resident.RESIDENCY_STATUS_CHOICES, required=False,
    )
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)

    class Meta:
        model = Resident
        fields = ['id', 'fullName', 'dob', 'gender', 'identityCard', 'hometown', 'job',
                  'phone', 'apartmentId', 'roleInApartment', 'residencyStatus', 'createdAt']
        read_only_fields = ['id']

    def create(self, validated_data):
        apartment = validated_data.pop('apartment', None)
        resident = Resident.objects.create(**validated_data)
        if apartment is not None:
            registry.add_member(apartment, resident)
        return resident

    def update(self, instance, validated_data):
        if 'apartment' in validated_data:
            apartment = validated_data.pop('apartment')
            if (apartment.pk if apartment else None) != instance.apartment_id:
                raise serializers.ValidationError(
                    {'apartmentId': 'Use the apartment member endpoints to move a resident.'}
                )
        return super().update(instance, validated_data)


# ═══════════════════════════════════════════════════════════
#  APARTMENT
# ═══════════════════════════════════════════════════════════

class ApartmentSerializer(serializers.ModelSerializer):
    name = serializers.CharField(
        max_length=100,
        validators=[UniqueValidator(queryset=Apartment.objects.all(),
                                    message='Apartment name already exists in the system.')],
    )
    area = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.01'),
                                    error_messages={'min_value': 'Area must be a positive number.'})
    ownerId = serializers.PrimaryKeyRelatedField(
        source='owner', queryset=Resident.objects.all(), required=False, allow_null=True,
    )
    ownerName = serializers.CharField(source='owner_name', read_only=True)
    members = serializers.PrimaryKeyRelatedField(many=True, read_only=True)
    memberCount = serializers.SerializerMethodField()
    apartmentNumber = serializers.CharField(source='apartment_number', required=False,
                                            allow_blank=True, max_length=20)
    building = serializers.CharField(required=False, allow_blank=True, max_length=50)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)

    class Meta:
        model = Apartment
        fields = ['id', 'name', 'area', 'ownerId', 'ownerName', 'members', 'memberCount',
                  'apartmentNumber', 'building', 'createdAt']
        read_only_fields = ['id']

    def get_memberCount(self, obj):
        count = getattr(obj, 'member_count', None)
        return obj.members.count() if count is None else count

    def create(self, validated_data):
        return registry.create_apartment(
            name=validated_data['name'],
            area=validated_data['area'],
            owner=validated_data.get('owner'),
            apartment_number=validated_data.get('apartment_number', ''),
            building=validated_data.get('building', ''),
        )

    def update(self, instance, validated_data):
        owner_given = 'owner' in validated_data
        owner = validated_data.pop('owner', None)
        with db_transaction.atomic():
            instance = super().update(instance, validated_data)
            if owner_given and (owner.pk if owner else None) != instance.owner_id:
                registry.set_owner(instance, owner)
        return instance


class MembershipSerializer(serializers.Serializer):
    residentId = serializers.PrimaryKeyRelatedField(queryset=Resident.objects.all())
    asOwner = serializers.BooleanField(required=False, default=False)


# ═══════════════════════════════════════════════════════════
#  FEE
# ═══════════════════════════════════════════════════════════

class FeeSerializer(serializers.ModelSerializer):
    title = serializers.CharField(max_length=200, min_length=5, error_messages={
        'min_length': 'Title must be at least 5 characters.',
    })
    type = serializers.ChoiceField(source='fee_type', choices=Fee.TYPE_CHOICES)
    unit = serializers.ChoiceField(choices=Fee.UNIT_CHOICES)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'),
                                      error_messages={'min_value': 'Amount cannot be negative.'})
    isActive = serializers.BooleanField(source='is_active', required=False)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)
    updatedAt = serializers.DateTimeField(source='updated_at', read_only=True)

    class Meta:
        model = Fee
        fields = ['id', 'title', 'description', 'type', 'unit', 'amount', 'isActive',
                  'createdAt', 'updatedAt']
        read_only_fields = ['id']


# ═══════════════════════════════════════════════════════════
#  METER READINGS
# ═══════════════════════════════════════════════════════════

class MeterReadingInputSerializer(serializers.Serializer):
    apartmentId = serializers.PrimaryKeyRelatedField(source='apartment', queryset=Apartment.objects.all())
    feeId = serializers.PrimaryKeyRelatedField(source='fee', queryset=Fee.objects.all())
    usage = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'))

    def validate(self, data):
        if not data['fee'].is_metered:
            raise serializers.ValidationError({'feeId': f'Fee "{data["fee"].title}" is not metered.'})
        return data


class MeterReadingCreateSerializer(MeterReadingInputSerializer):
    month = serializers.IntegerField(min_value=1, max_value=12)
    year = serializers.IntegerField()


class MeterReadingSerializer(serializers.ModelSerializer):
    apartmentId = serializers.UUIDField(source='apartment_id', read_only=True)
    apartmentName = serializers.CharField(source='apartment.name', read_only=True)
    feeId = serializers.UUIDField(source='fee_id', read_only=True)
    feeTitle = serializers.CharField(source='fee.title', read_only=True)
    recordedBy = serializers.UUIDField(source='recorded_by_id', read_only=True)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)

    class Meta:
        model = MeterReading
        fields = ['id', 'apartmentId', 'apartmentName', 'feeId', 'feeTitle',
                  'month', 'year', 'usage', 'recordedBy', 'createdAt']
        read_only_fields = fields


# ═══════════════════════════════════════════════════════════
#  TRANSACTIONS
# ═══════════════════════════════════════════════════════════

class TransactionSerializer(serializers.ModelSerializer):
    apartmentId = serializers.UUIDField(source='apartment_id', read_only=True)
    apartmentName = serializers.CharField(source='apartment.name', read_only=True)
    building = serializers.CharField(source='apartment.building', read_only=True)
    feeId = serializers.UUIDField(source='fee_id', read_only=True)
    feeTitle = serializers.CharField(source='fee.title', read_only=True)
    feeType = serializers.CharField(source='fee.fee_type', read_only=True)
    unit = serializers.CharField(source='fee.unit', read_only=True)
    totalAmount = serializers.DecimalField(source='total_amount', max_digits=14, decimal_places=2,
                                           read_only=True)
    unitPrice = serializers.DecimalField(source='unit_price', max_digits=12, decimal_places=2,
                                         read_only=True)
    payerName = serializers.CharField(source='payer_name', read_only=True)
    createdBy = serializers.UUIDField(source='created_by_id', read_only=True)

    class Meta:
        model = Transaction
        fields = ['id', 'apartmentId', 'apartmentName', 'building', 'feeId', 'feeTitle',
                  'feeType', 'unit', 'totalAmount', 'quantity', 'usage', 'unitPrice',
                  'month', 'year', 'status', 'payerName', 'createdBy', 'date']
        read_only_fields = fields


class PaymentSerializer(serializers.Serializer):
    """Direct payment: POST /api/transactions/"""
    apartmentId = serializers.UUIDField()
    feeId = serializers.UUIDField()
    totalAmount = serializers.DecimalField(max_digits=14, decimal_places=2)
    payerName = serializers.CharField(required=False, allow_blank=True, default='')
    month = serializers.IntegerField(required=False, min_value=1, max_value=12)
    year = serializers.IntegerField(required=False)
    usage = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'),
                                     required=False)
    unitPrice = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'),
                                         required=False)


class TransactionUpdateSerializer(serializers.Serializer):
    totalAmount = serializers.DecimalField(source='total_amount', max_digits=14, decimal_places=2,
                                           min_value=Decimal('0.01'), required=False)
    payerName = serializers.CharField(source='payer_name', min_length=1, required=False)
    usage = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'),
                                     required=False)
    unitPrice = serializers.DecimalField(source='unit_price', max_digits=12, decimal_places=2,
                                         min_value=Decimal('0'), required=False)
    status = serializers.ChoiceField(choices=Transaction.STATUS_CHOICES, required=False)
    date = serializers.DateTimeField(required=False)


class CalculateSerializer(serializers.Serializer):
    apartmentId = serializers.UUIDField()
    feeId = serializers.UUIDField()
    usage = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'),
                                     required=False, allow_null=True)


class CalculateAllSerializer(serializers.Serializer):
    apartmentId = serializers.UUIDField()
    usageMap = serializers.DictField(
        child=serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0')),
        required=False, default=dict,
    )


class GenerateBillsSerializer(serializers.Serializer):
    month = serializers.IntegerField(min_value=1, max_value=12)
    year = serializers.IntegerField()
    readings = MeterReadingInputSerializer(many=True, required=False)
