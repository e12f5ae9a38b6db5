"""
BlueMoon — API Views
Registry, fee catalog, billing, payments and dashboard endpoints.
"""
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db.models import ProtectedError
from rest_framework import viewsets, status, permissions
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.tokens import RefreshToken

from .exceptions import ConflictError, InvalidInputError, NotFoundError
from .filters import FeeFilter, MeterReadingFilter, TransactionFilter
from .models import User, Resident, Apartment, Fee, MeterReading, Transaction
from .permissions import (
    HasCapability, VIEW, CALCULATE, MANAGE_REGISTRY, MANAGE_FEES, GENERATE_BILLS,
    RECORD_READINGS, RECORD_PAYMENT, EDIT_TRANSACTIONS, DELETE_TRANSACTIONS, MANAGE_USERS,
)
from .serializers import (
    LoginSerializer, UserSerializer, UserWriteSerializer,
    ResidentSerializer, ApartmentSerializer, MembershipSerializer, FeeSerializer,
    MeterReadingSerializer, MeterReadingCreateSerializer,
    TransactionSerializer, PaymentSerializer, TransactionUpdateSerializer,
    CalculateSerializer, CalculateAllSerializer, GenerateBillsSerializer,
)
from .services import billing, calculation, ledger, registry, reports


def _get_or_404(queryset, pk, message):
    try:
        obj = queryset.filter(pk=pk).first()
    except DjangoValidationError:
        obj = None
    if obj is None:
        raise NotFoundError(message)
    return obj


def _int_param(request, name):
    value = request.query_params.get(name)
    if value in (None, ''):
        return None
    try:
        return int(value)
    except ValueError:
        raise InvalidInputError.for_field(name, f'{name} must be an integer')


def _calculation_row(fee, result):
    row = {
        'feeId': fee.pk,
        'fee': fee.title,
        'type': fee.fee_type,
        'unit': fee.unit,
        'unitPrice': fee.amount,
        'quantity': result.quantity,
        'totalAmount': result.total_amount,
    }
    if result.usage is not None:
        row['usage'] = result.usage
    return row


# ═══════════════════════════════════════════════════════════
#  AUTH
# ═══════════════════════════════════════════════════════════

class LoginView(APIView):
    """POST /api/auth/login/"""
    permission_classes = [permissions.AllowAny]

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = serializer.validated_data['user']
        refresh = RefreshToken.for_user(user)
        refresh['role'] = user.role

        return Response({
            'success': True,
            'access': str(refresh.access_token),
            'refresh': str(refresh),
            'user': UserSerializer(user).data,
            'role': user.role,
        })


# ═══════════════════════════════════════════════════════════
#  BASE
# ═══════════════════════════════════════════════════════════

class EnvelopeModelViewSet(viewsets.ModelViewSet):
    """
    ModelViewSet whose single-object responses use the
    {success, message?, data} envelope. Lists are wrapped by the paginator.
    """
    permission_classes = [HasCapability]
    write_capability = None
    object_label = 'Record'

    def retrieve(self, request, *args, **kwargs):
        response = super().retrieve(request, *args, **kwargs)
        response.data = {'success': True, 'data': response.data}
        return response

    def create(self, request, *args, **kwargs):
        response = super().create(request, *args, **kwargs)
        response.data = {
            'success': True,
            'message': f'{self.object_label} created successfully',
            'data': response.data,
        }
        return response

    def update(self, request, *args, **kwargs):
        response = super().update(request, *args, **kwargs)
        response.data = {
            'success': True,
            'message': f'{self.object_label} updated successfully',
            'data': response.data,
        }
        return response

    def destroy(self, request, *args, **kwargs):
        instance = self.get_object()
        try:
            self.perform_destroy(instance)
        except ProtectedError:
            raise ConflictError(f'{self.object_label} has transactions and cannot be deleted')
        return Response({'success': True, 'message': f'{self.object_label} deleted successfully'})


# ═══════════════════════════════════════════════════════════
#  REGISTRY
# ═══════════════════════════════════════════════════════════

class ResidentViewSet(EnvelopeModelViewSet):
    """CRUD /api/residents/"""
    serializer_class = ResidentSerializer
    write_capability = MANAGE_REGISTRY
    object_label = 'Resident'

    def get_queryset(self):
        qs = Resident.objects.select_related('apartment').order_by('full_name')

        apartment_id = self.request.query_params.get('apartment')
        if apartment_id:
            qs = qs.filter(apartment_id=apartment_id)

        residency_status = self.request.query_params.get('residencyStatus')
        if residency_status:
            qs = qs.filter(residency_status=residency_status)

        search = self.request.query_params.get('search')
        if search:
            qs = qs.filter(full_name__icontains=search)

        return qs

    def perform_destroy(self, instance):
        if instance.apartment_id:
            registry.remove_member(instance.apartment, instance)
        instance.delete()


class ApartmentViewSet(EnvelopeModelViewSet):
    """CRUD /api/apartments/"""
    serializer_class = ApartmentSerializer
    write_capability = MANAGE_REGISTRY
    object_label = 'Apartment'
    capabilities = {'calculate_all_fees': CALCULATE}

    def get_queryset(self):
        qs = Apartment.objects.with_member_count().select_related('owner').prefetch_related('members')

        building = self.request.query_params.get('building')
        if building:
            qs = qs.filter(building=building)

        return qs.order_by('name')

    def _membership(self, request):
        serializer = MembershipSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return serializer.validated_data

    def _refreshed(self, pk):
        return ApartmentSerializer(self.get_queryset().get(pk=pk)).data

    @action(detail=True, methods=['post'], url_path='add-member')
    def add_member(self, request, pk=None):
        """POST /api/apartments/{id}/add-member/"""
        apartment = self.get_object()
        data = self._membership(request)
        registry.add_member(apartment, data['residentId'], as_owner=data['asOwner'])
        return Response({
            'success': True,
            'message': 'Member added successfully',
            'data': self._refreshed(apartment.pk),
        })

    @action(detail=True, methods=['post'], url_path='remove-member')
    def remove_member(self, request, pk=None):
        """POST /api/apartments/{id}/remove-member/"""
        apartment = self.get_object()
        data = self._membership(request)
        registry.remove_member(apartment, data['residentId'])
        return Response({
            'success': True,
            'message': 'Member removed successfully',
            'data': self._refreshed(apartment.pk),
        })

    @action(detail=True, methods=['get'], url_path='calculate-all-fees')
    def calculate_all_fees(self, request, pk=None):
        """
        GET /api/apartments/{id}/calculate-all-fees/?month=&year=
        Metered fees use the period's stored readings when a period is given.
        """
        apartment = self.get_object()
        month, year = _int_param(request, 'month'), _int_param(request, 'year')
        usage_map = {}
        if month is not None and year is not None:
            month, year = billing.validate_period(month, year)
            usage_map = {
                str(fee_id): usage
                for fee_id, usage in MeterReading.objects.filter(
                    apartment=apartment, month=month, year=year
                ).values_list('fee_id', 'usage')
            }

        fees = Fee.objects.filter(is_active=True).order_by('created_at')
        rows, grand_total = calculation.calculate_all(fees, apartment, usage_map)
        return Response({
            'success': True,
            'data': {
                'apartmentId': apartment.pk,
                'apartment': apartment.name,
                'fees': [_calculation_row(fee, result) for fee, result in rows],
                'grandTotal': grand_total,
            },
        })


# ═══════════════════════════════════════════════════════════
#  FEE CATALOG
# ═══════════════════════════════════════════════════════════

class FeeViewSet(EnvelopeModelViewSet):
    """CRUD /api/fees/. DELETE disables the fee instead of removing it."""
    queryset = Fee.objects.all()
    serializer_class = FeeSerializer
    filterset_class = FeeFilter
    write_capability = MANAGE_FEES
    object_label = 'Fee'

    def destroy(self, request, *args, **kwargs):
        fee = self.get_object()
        if fee.is_active:
            fee.is_active = False
            fee.save(update_fields=['is_active', 'updated_at'])
        return Response({'success': True, 'message': 'Fee disabled successfully'})

    @action(detail=True, methods=['get'])
    def status(self, request, pk=None):
        """GET /api/fees/{id}/status/?month=&year="""
        fee = self.get_object()
        data = reports.fee_payment_status(
            fee, month=_int_param(request, 'month'), year=_int_param(request, 'year'),
        )
        return Response({'success': True, 'data': data})


# ═══════════════════════════════════════════════════════════
#  METER READINGS
# ═══════════════════════════════════════════════════════════

class MeterReadingViewSet(EnvelopeModelViewSet):
    """/api/meter-readings/. POST upserts the reading of the period."""
    serializer_class = MeterReadingSerializer
    filterset_class = MeterReadingFilter
    write_capability = RECORD_READINGS
    object_label = 'Meter reading'
    http_method_names = ['get', 'post', 'delete', 'head', 'options']

    def get_queryset(self):
        return MeterReading.objects.select_related('apartment', 'fee').order_by(
            '-year', '-month', 'apartment__name'
        )

    def create(self, request, *args, **kwargs):
        serializer = MeterReadingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        reading, = billing.record_readings(
            data['month'], data['year'], [data], recorded_by=request.user,
        )
        return Response({
            'success': True,
            'message': 'Meter reading recorded successfully',
            'data': MeterReadingSerializer(reading).data,
        }, status=status.HTTP_201_CREATED)


# ═══════════════════════════════════════════════════════════
#  TRANSACTIONS
# ═══════════════════════════════════════════════════════════

class TransactionViewSet(EnvelopeModelViewSet):
    """
    /api/transactions/
    POST records a payment; billing and calculation live under actions.
    """
    serializer_class = TransactionSerializer
    filterset_class = TransactionFilter
    object_label = 'Transaction'
    capabilities = {
        'create': RECORD_PAYMENT,
        'update': EDIT_TRANSACTIONS,
        'partial_update': EDIT_TRANSACTIONS,
        'destroy': DELETE_TRANSACTIONS,
        'calculate': CALCULATE,
        'calculate_all': CALCULATE,
        'generate_bills': GENERATE_BILLS,
        'apartment_history': VIEW,
        'apartments_summary': VIEW,
    }

    def get_queryset(self):
        return Transaction.objects.select_related('apartment', 'fee').order_by('-date')

    def create(self, request, *args, **kwargs):
        serializer = PaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        txn, created = ledger.record_payment(
            apartment_id=data['apartmentId'],
            fee_id=data['feeId'],
            total_amount=data['totalAmount'],
            payer_name=data['payerName'],
            month=data.get('month'),
            year=data.get('year'),
            usage=data.get('usage'),
            unit_price=data.get('unitPrice'),
            created_by=request.user,
        )
        return Response({
            'success': True,
            'message': 'Payment recorded successfully',
            'data': TransactionSerializer(txn).data,
        }, status=status.HTTP_201_CREATED if created else status.HTTP_200_OK)

    def update(self, request, *args, **kwargs):
        txn = self.get_object()
        serializer = TransactionUpdateSerializer(data=request.data, partial=kwargs.get('partial', False))
        serializer.is_valid(raise_exception=True)
        txn = ledger.update_transaction(txn, serializer.validated_data)
        return Response({
            'success': True,
            'message': 'Transaction updated successfully',
            'data': TransactionSerializer(txn).data,
        })

    def perform_destroy(self, instance):
        ledger.delete_transaction(instance)

    @action(detail=False, methods=['post'])
    def calculate(self, request):
        """POST /api/transactions/calculate/"""
        serializer = CalculateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        apartment = _get_or_404(Apartment.objects.with_member_count(), data['apartmentId'],
                                'Apartment not found')
        fee = _get_or_404(Fee.objects.all(), data['feeId'], 'Fee not found')
        result = calculation.calculate(fee, apartment, data.get('usage'))

        payload = {
            'apartment': apartment.name,
            'fee': fee.title,
            'unitPrice': fee.amount,
            'quantity': result.quantity,
            'totalAmount': result.total_amount,
        }
        if result.usage is not None:
            payload['usage'] = result.usage
        return Response({'success': True, 'data': payload})

    @action(detail=False, methods=['post'], url_path='calculate-all')
    def calculate_all(self, request):
        """POST /api/transactions/calculate-all/"""
        serializer = CalculateAllSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        apartment = _get_or_404(Apartment.objects.with_member_count(), data['apartmentId'],
                                'Apartment not found')
        fees = Fee.objects.filter(is_active=True).order_by('created_at')
        rows, grand_total = calculation.calculate_all(fees, apartment, data['usageMap'])
        return Response({
            'success': True,
            'data': {
                'apartmentId': apartment.pk,
                'apartment': apartment.name,
                'fees': [_calculation_row(fee, result) for fee, result in rows],
                'grandTotal': grand_total,
            },
        })

    @action(detail=False, methods=['post'], url_path='generate-bills')
    def generate_bills(self, request):
        """POST /api/transactions/generate-bills/ {month, year, readings?}"""
        serializer = GenerateBillsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        run = billing.generate_bills(
            data['month'], data['year'],
            readings=data.get('readings'),
            created_by=request.user,
        )
        payload = {
            'success': True,
            'message': f'Generated {run.created_count} bills.',
            'created': run.created_count,
            'skipped': run.skipped,
        }
        if run.errors:
            payload['errors'] = run.errors
        return Response(payload)

    @action(detail=False, methods=['get'], url_path=r'apartment/(?P<apartment_id>[^/.]+)')
    def apartment_history(self, request, apartment_id=None):
        """GET /api/transactions/apartment/{apartment_id}/"""
        apartment = _get_or_404(Apartment.objects.all(), apartment_id, 'Apartment not found')
        qs = self.get_queryset().filter(apartment=apartment)
        return Response({
            'success': True,
            'count': qs.count(),
            'data': TransactionSerializer(qs, many=True).data,
        })

    @action(detail=False, methods=['get'], url_path='apartments-summary')
    def apartments_summary(self, request):
        """GET /api/transactions/apartments-summary/"""
        return Response({'success': True, 'data': reports.apartment_revenue_summary()})


# ═══════════════════════════════════════════════════════════
#  USERS
# ═══════════════════════════════════════════════════════════

class UserViewSet(EnvelopeModelViewSet):
    """CRUD /api/users/ (admin only)"""
    write_capability = MANAGE_USERS
    object_label = 'User'
    capabilities = {'list': MANAGE_USERS, 'retrieve': MANAGE_USERS}

    def get_queryset(self):
        qs = User.objects.order_by('-created_at')
        role = self.request.query_params.get('role')
        if role:
            qs = qs.filter(role=role)
        return qs

    def get_serializer_class(self):
        if self.action in ('create', 'update', 'partial_update'):
            return UserWriteSerializer
        return UserSerializer

    def perform_destroy(self, instance):
        if instance.pk == self.request.user.pk:
            raise InvalidInputError('Cannot delete yourself')
        instance.delete()


# ═══════════════════════════════════════════════════════════
#  DASHBOARD
# ═══════════════════════════════════════════════════════════

class DashboardView(APIView):
    """GET /api/stats/dashboard/"""
    permission_classes = [HasCapability]

    def get(self, request):
        return Response({'success': True, 'data': reports.dashboard_summary()})
