"""
BlueMoon — Tests
Fee calculation, billing, payments, reports and the REST endpoints.
"""
import uuid
from datetime import date
from decimal import Decimal
from io import StringIO
from types import SimpleNamespace
from unittest import mock

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import SimpleTestCase, TestCase
from rest_framework.test import APIClient

from estate.exceptions import AlreadyPaidError, ConflictError, InvalidInputError, NotFoundError
from estate.models import User, Resident, Apartment, Fee, MeterReading, Transaction
from estate.permissions import can_perform
from estate.services import billing, calculation, ledger, registry, reports
from estate.services.calculation import calculate, calculate_all, member_count, round_amount


def fee_shape(unit, amount, pk=None):
    return SimpleNamespace(pk=pk or uuid.uuid4(), unit=unit, amount=Decimal(amount))


def apartment_shape(area='0', member_count=0):
    return SimpleNamespace(area=Decimal(area), member_count=member_count)


class BaseTestCase(TestCase):
    """Users, a small catalog and two apartments."""

    def setUp(self):
        self.client = APIClient()

        self.admin = User.objects.create_user('admin', 'Admin', 'Admin123', role=User.ROLE_ADMIN)
        self.leader = User.objects.create_user('leader', 'To truong', 'Leader123', role=User.ROLE_LEADER)
        self.accountant = User.objects.create_user('accountant', 'Ke toan', 'Account123',
                                                   role=User.ROLE_ACCOUNTANT)

        self.service_fee = Fee.objects.create(
            title='Management fee', fee_type=Fee.TYPE_SERVICE,
            unit=Fee.UNIT_AREA, amount=Decimal('5000'),
        )
        self.apt_a = Apartment.objects.create(name='A101', area=Decimal('80'), building='A')
        self.apt_b = Apartment.objects.create(name='B202', area=Decimal('60'), building='B')

    def make_resident(self, full_name, identity_card, **extra):
        return Resident.objects.create(
            full_name=full_name, dob=date(1990, 1, 1), gender='Male',
            identity_card=identity_card, hometown='Ha Noi', job='Engineer', **extra
        )

    def make_fee(self, title, fee_type, unit, amount, **extra):
        return Fee.objects.create(title=title, fee_type=fee_type, unit=unit,
                                  amount=Decimal(amount), **extra)

    def login_as(self, username, password):
        """Helper to login and set auth token."""
        response = self.client.post('/api/auth/login/', {
            'username': username, 'password': password,
        }, format='json')
        if response.status_code == 200:
            token = response.data['access']
            self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
        return response


# ═══════════════════════════════════════════════════════════
#  FEE CALCULATION
# ═══════════════════════════════════════════════════════════

class CalculationTests(SimpleTestCase):

    def test_area_fee(self):
        result = calculate(fee_shape(Fee.UNIT_AREA, '5000'), apartment_shape(area='80'))
        self.assertEqual(result.quantity, Decimal('80'))
        self.assertEqual(result.total_amount, Decimal('400000'))
        self.assertTrue(result.is_billable)

    def test_person_fee(self):
        result = calculate(fee_shape(Fee.UNIT_PERSON, '20000'), apartment_shape(member_count=3))
        self.assertEqual(result.quantity, 3)
        self.assertEqual(result.total_amount, Decimal('60000'))

    def test_person_fee_without_members_is_not_billable(self):
        result = calculate(fee_shape(Fee.UNIT_PERSON, '20000'), apartment_shape(member_count=0))
        self.assertEqual(result.total_amount, Decimal('0'))
        self.assertFalse(result.is_billable)

    def test_flat_fee_per_apartment(self):
        result = calculate(fee_shape(Fee.UNIT_APARTMENT, '150000'), apartment_shape(area='45'))
        self.assertEqual(result.quantity, 1)
        self.assertEqual(result.total_amount, Decimal('150000'))

    def test_metered_fee_uses_reading(self):
        result = calculate(fee_shape(Fee.UNIT_KWH, '3500'), apartment_shape(), usage=Decimal('120.5'))
        self.assertEqual(result.total_amount, Decimal('421750'))
        self.assertEqual(result.usage, Decimal('120.5'))

    def test_metered_fee_without_reading_is_zero(self):
        result = calculate(fee_shape(Fee.UNIT_WATER_CUBE, '15000'), apartment_shape())
        self.assertEqual(result.total_amount, Decimal('0'))
        self.assertEqual(result.usage, Decimal('0'))

    def test_negative_usage_rejected(self):
        with self.assertRaises(ValueError):
            calculate(fee_shape(Fee.UNIT_KWH, '3500'), apartment_shape(), usage=Decimal('-1'))

    def test_unknown_unit_billed_flat_with_warning(self):
        with self.assertLogs('estate.services.calculation', level='WARNING'):
            result = calculate(fee_shape('hour', '7000'), apartment_shape(area='50'))
        self.assertEqual(result.quantity, 1)
        self.assertEqual(result.total_amount, Decimal('7000'))

    def test_rounding_half_up(self):
        self.assertEqual(round_amount(Decimal('2.5')), Decimal('3'))
        self.assertEqual(round_amount(Decimal('2.49')), Decimal('2'))
        result = calculate(fee_shape(Fee.UNIT_AREA, '1.25'), apartment_shape(area='2'))
        self.assertEqual(result.total_amount, Decimal('3'))

    def test_calculate_all_grand_total(self):
        electricity = fee_shape(Fee.UNIT_KWH, '3000')
        fees = [fee_shape(Fee.UNIT_AREA, '5000'), fee_shape(Fee.UNIT_APARTMENT, '100000'), electricity]
        rows, total = calculate_all(fees, apartment_shape(area='80'),
                                    {str(electricity.pk): Decimal('10')})
        self.assertEqual(len(rows), 3)
        self.assertEqual(total, Decimal('530000'))

    def test_person_fee_needs_a_household_size(self):
        with self.assertRaises(ValueError):
            calculate(fee_shape(Fee.UNIT_PERSON, '20000'), SimpleNamespace(area=Decimal('10')))


# ═══════════════════════════════════════════════════════════
#  REGISTRY
# ═══════════════════════════════════════════════════════════

class RegistryTests(BaseTestCase):

    def test_owner_is_added_to_members(self):
        owner = self.make_resident('Nguyen Van A', '001090000001')
        apartment = registry.create_apartment('C303', Decimal('70'), owner=owner)
        owner.refresh_from_db()
        self.assertEqual(apartment.owner, owner)
        self.assertTrue(apartment.members.filter(pk=owner.pk).exists())
        self.assertEqual(owner.apartment, apartment)
        self.assertEqual(owner.role_in_apartment, Resident.ROLE_OWNER)

    def test_duplicate_apartment_name(self):
        with self.assertRaises(ConflictError):
            registry.create_apartment('A101', Decimal('50'))

    def test_resident_belongs_to_one_apartment(self):
        resident = self.make_resident('Tran Thi B', '001090000002')
        registry.add_member(self.apt_a, resident)
        with self.assertRaises(ConflictError):
            registry.add_member(self.apt_b, resident)

    def test_second_owner_rejected(self):
        first = self.make_resident('Le Van C', '001090000003')
        second = self.make_resident('Pham Van D', '001090000004')
        registry.add_member(self.apt_a, first, as_owner=True)
        with self.assertRaises(ConflictError):
            registry.add_member(self.apt_a, second, as_owner=True)

    def test_removing_owner_clears_owner(self):
        owner = self.make_resident('Le Van C', '001090000003')
        registry.add_member(self.apt_a, owner, as_owner=True)
        registry.remove_member(self.apt_a, owner)
        self.apt_a.refresh_from_db()
        owner.refresh_from_db()
        self.assertIsNone(self.apt_a.owner)
        self.assertIsNone(owner.apartment)
        self.assertEqual(self.apt_a.members.count(), 0)

    def test_remove_non_member(self):
        stranger = self.make_resident('Hoang Van E', '001090000005')
        with self.assertRaises(NotFoundError):
            registry.remove_member(self.apt_a, stranger)

    def test_set_owner_demotes_previous_owner(self):
        first = self.make_resident('Le Van C', '001090000003')
        second = self.make_resident('Pham Van D', '001090000004')
        registry.add_member(self.apt_a, first, as_owner=True)
        registry.add_member(self.apt_a, second)
        registry.set_owner(self.apt_a, second)
        first.refresh_from_db()
        second.refresh_from_db()
        self.assertEqual(self.apt_a.owner, second)
        self.assertEqual(first.role_in_apartment, Resident.ROLE_MEMBER)
        self.assertEqual(second.role_in_apartment, Resident.ROLE_OWNER)
        self.assertEqual(self.apt_a.members.count(), 2)

    def test_person_fee_counts_members_without_annotation(self):
        registry.add_member(self.apt_a, self.make_resident('Tran Thi B', '001090000002'))
        registry.add_member(self.apt_a, self.make_resident('Le Van C', '001090000003'))
        apartment = Apartment.objects.get(pk=self.apt_a.pk)
        self.assertEqual(member_count(apartment), 2)

        person_fee = self.make_fee('Sanitation fee', Fee.TYPE_SERVICE, Fee.UNIT_PERSON, '6000')
        result = calculate(person_fee, apartment)
        self.assertEqual(result.quantity, 2)
        self.assertEqual(result.total_amount, Decimal('12000'))


# ═══════════════════════════════════════════════════════════
#  BILLING
# ═══════════════════════════════════════════════════════════

class BillingTests(BaseTestCase):

    def test_generates_pending_bills(self):
        run = billing.generate_bills(3, 2025)
        self.assertEqual(run.created_count, 2)
        self.assertEqual(run.errors, [])
        bill = Transaction.objects.get(apartment=self.apt_a, fee=self.service_fee, month=3, year=2025)
        self.assertEqual(bill.status, Transaction.STATUS_PENDING)
        self.assertEqual(bill.total_amount, Decimal('400000'))
        self.assertEqual(bill.unit_price, Decimal('5000'))
        self.assertEqual(bill.payer_name, '')

    def test_rerun_creates_nothing(self):
        billing.generate_bills(3, 2025)
        run = billing.generate_bills(3, 2025)
        self.assertEqual(run.created_count, 0)
        self.assertEqual(run.skipped, 2)
        self.assertEqual(Transaction.objects.filter(month=3, year=2025).count(), 2)

    def test_paid_pair_is_not_billed_again(self):
        ledger.record_payment(self.apt_a.pk, self.service_fee.pk, Decimal('400000'), 'Nguyen Van A',
                              month=3, year=2025)
        run = billing.generate_bills(3, 2025)
        self.assertEqual(run.created_count, 1)
        self.assertEqual(Transaction.objects.filter(apartment=self.apt_a, month=3, year=2025).count(), 1)

    def test_person_fee_without_members_is_skipped(self):
        person_fee = self.make_fee('Sanitation fee', Fee.TYPE_SERVICE, Fee.UNIT_PERSON, '6000')
        registry.add_member(self.apt_a, self.make_resident('Tran Thi B', '001090000002'))
        registry.add_member(self.apt_a, self.make_resident('Le Van C', '001090000003'))
        billing.generate_bills(3, 2025)
        self.assertEqual(
            Transaction.objects.get(apartment=self.apt_a, fee=person_fee).total_amount, Decimal('12000')
        )
        self.assertFalse(Transaction.objects.filter(apartment=self.apt_b, fee=person_fee).exists())

    def test_inactive_fee_ignored(self):
        self.make_fee('Old parking fee', Fee.TYPE_SERVICE, Fee.UNIT_APARTMENT, '100000', is_active=False)
        run = billing.generate_bills(3, 2025)
        self.assertEqual(run.created_count, 2)

    def test_missing_meter_reading_reported(self):
        self.make_fee('Electricity', Fee.TYPE_UTILITY, Fee.UNIT_KWH, '3500')
        run = billing.generate_bills(3, 2025)
        self.assertEqual(run.created_count, 2)
        self.assertEqual(len(run.errors), 2)
        self.assertEqual(run.errors[0]['error'], billing.MISSING_READING)
        self.assertEqual(run.errors[0]['fee'], 'Electricity')

    def test_readings_are_stored_and_billed(self):
        electricity = self.make_fee('Electricity', Fee.TYPE_UTILITY, Fee.UNIT_KWH, '3500')
        readings = [
            {'apartment': self.apt_a, 'fee': electricity, 'usage': Decimal('100')},
            {'apartment': self.apt_b, 'fee': electricity, 'usage': Decimal('0')},
        ]
        run = billing.generate_bills(3, 2025, readings=readings)
        self.assertEqual(run.errors, [])
        self.assertEqual(MeterReading.objects.filter(month=3, year=2025).count(), 2)
        bill = Transaction.objects.get(apartment=self.apt_a, fee=electricity)
        self.assertEqual(bill.total_amount, Decimal('350000'))
        self.assertEqual(bill.usage, Decimal('100'))
        # zero usage is not billable
        self.assertFalse(Transaction.objects.filter(apartment=self.apt_b, fee=electricity).exists())

    def test_dry_run_writes_nothing(self):
        run = billing.generate_bills(3, 2025, dry_run=True)
        self.assertEqual(run.created_count, 2)
        self.assertEqual(Transaction.objects.count(), 0)

    def test_invalid_period(self):
        with self.assertRaises(InvalidInputError):
            billing.generate_bills(13, 2025)
        with self.assertRaises(InvalidInputError):
            billing.generate_bills(1, 1999)

    def test_reading_for_flat_fee_rejected(self):
        with self.assertRaises(InvalidInputError):
            billing.record_readings(3, 2025, [
                {'apartment': self.apt_a, 'fee': self.service_fee, 'usage': Decimal('5')},
            ])

    def test_management_command(self):
        out = StringIO()
        call_command('generate_bills', month=3, year=2025, stdout=out)
        self.assertIn('Created: 2', out.getvalue())
        self.assertEqual(Transaction.objects.count(), 2)

    def test_management_command_invalid_month(self):
        with self.assertRaises(CommandError):
            call_command('generate_bills', month=13, year=2025, stdout=StringIO())

    def test_bill_inserted_concurrently_is_skipped(self):
        def calculate_after_competing_insert(fee, apartment, usage=None):
            if apartment.pk == self.apt_b.pk:
                Transaction.objects.create(apartment=self.apt_b, fee=fee, month=3, year=2025,
                                           status=Transaction.STATUS_PENDING,
                                           total_amount=Decimal('1'))
            return calculation.calculate(fee, apartment, usage)

        with mock.patch('estate.services.billing.calculate',
                        side_effect=calculate_after_competing_insert):
            run = billing.generate_bills(3, 2025)

        self.assertEqual(run.created_count, 1)
        self.assertEqual(run.skipped, 1)
        self.assertEqual(run.errors, [])
        competing = Transaction.objects.get(apartment=self.apt_b, month=3, year=2025)
        self.assertEqual(competing.total_amount, Decimal('1'))


# ═══════════════════════════════════════════════════════════
#  LEDGER
# ═══════════════════════════════════════════════════════════

class LedgerTests(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.contribution = self.make_fee('Flood relief fund', Fee.TYPE_CONTRIBUTION,
                                          Fee.UNIT_APARTMENT, '0')

    def pay(self, fee, amount, apartment=None, **extra):
        return ledger.record_payment((apartment or self.apt_a).pk, fee.pk, Decimal(amount),
                                     'Nguyen Van A', month=3, year=2025, **extra)

    def test_service_fee_paid_once(self):
        txn, created = self.pay(self.service_fee, '400000')
        self.assertTrue(created)
        self.assertEqual(txn.status, Transaction.STATUS_COMPLETED)
        with self.assertRaises(AlreadyPaidError):
            self.pay(self.service_fee, '400000')

    def test_contribution_accumulates(self):
        self.pay(self.contribution, '150000')
        txn, created = self.pay(self.contribution, '50000')
        self.assertFalse(created)
        self.assertEqual(txn.total_amount, Decimal('200000'))
        self.assertEqual(Transaction.objects.filter(fee=self.contribution).count(), 1)

    def test_concurrent_service_payment_refused(self):
        self.pay(self.service_fee, '400000')
        # the period record appears only after the pre-check
        with mock.patch('estate.services.ledger._locked_period_record', return_value=None):
            with self.assertRaises(AlreadyPaidError):
                self.pay(self.service_fee, '400000')
        self.assertEqual(Transaction.objects.filter(fee=self.service_fee).count(), 1)

    def test_concurrent_contribution_accumulates(self):
        self.pay(self.contribution, '150000')
        with mock.patch('estate.services.ledger._locked_period_record', return_value=None):
            txn, created = self.pay(self.contribution, '50000')
        self.assertFalse(created)
        self.assertEqual(txn.total_amount, Decimal('200000'))
        self.assertEqual(Transaction.objects.filter(fee=self.contribution).count(), 1)

    def test_payment_settles_pending_bill(self):
        billing.generate_bills(3, 2025)
        txn, created = self.pay(self.service_fee, '400000', created_by=self.accountant)
        self.assertFalse(created)
        self.assertEqual(txn.status, Transaction.STATUS_COMPLETED)
        self.assertEqual(txn.payer_name, 'Nguyen Van A')
        self.assertEqual(txn.created_by, self.accountant)
        self.assertEqual(Transaction.objects.filter(apartment=self.apt_a, month=3, year=2025).count(), 1)

    def test_invalid_payment(self):
        with self.assertRaises(InvalidInputError) as ctx:
            ledger.record_payment(self.apt_a.pk, self.service_fee.pk, Decimal('0'), '  ')
        fields = {e['field'] for e in ctx.exception.errors}
        self.assertEqual(fields, {'totalAmount', 'payerName'})

    def test_unknown_fee_or_apartment(self):
        with self.assertRaises(NotFoundError):
            ledger.record_payment(self.apt_a.pk, uuid.uuid4(), Decimal('10'), 'X')
        with self.assertRaises(NotFoundError):
            ledger.record_payment(uuid.uuid4(), self.service_fee.pk, Decimal('10'), 'X')

    def test_period_defaults_to_current_month(self):
        txn, _ = ledger.record_payment(self.apt_a.pk, self.service_fee.pk, Decimal('10'), 'X')
        self.assertEqual((txn.month, txn.year), ledger.current_period())

    def test_status_transitions(self):
        txn, _ = self.pay(self.service_fee, '400000')
        with self.assertRaises(InvalidInputError):
            ledger.update_transaction(txn, {'status': Transaction.STATUS_PENDING})
        ledger.update_transaction(txn, {'status': Transaction.STATUS_CANCELLED})
        ledger.update_transaction(txn, {'status': Transaction.STATUS_PENDING})
        txn.refresh_from_db()
        self.assertEqual(txn.status, Transaction.STATUS_PENDING)

    def test_completing_requires_payer(self):
        billing.generate_bills(3, 2025)
        bill = Transaction.objects.get(apartment=self.apt_a, fee=self.service_fee)
        with self.assertRaises(InvalidInputError):
            ledger.update_transaction(bill, {'status': Transaction.STATUS_COMPLETED})
        ledger.update_transaction(bill, {'status': Transaction.STATUS_COMPLETED, 'payer_name': 'Tran B'})
        bill.refresh_from_db()
        self.assertTrue(bill.is_completed)


# ═══════════════════════════════════════════════════════════
#  REPORTS
# ═══════════════════════════════════════════════════════════

class ReportTests(BaseTestCase):

    def test_dashboard_single_payment(self):
        self.apt_b.delete()
        self.apt_a.building = ''
        self.apt_a.save()
        Transaction.objects.create(apartment=self.apt_a, fee=self.service_fee, month=3, year=2025,
                                   total_amount=Decimal('1000'), payer_name='Nguyen Van A')

        data = reports.dashboard_summary()
        self.assertEqual(data['totalApartments'], 1)
        self.assertEqual(data['totalRevenue'], Decimal('1000'))
        self.assertEqual(data['currentMonthRevenue'], Decimal('1000'))
        self.assertEqual(len(data['recentTransactions']), 1)
        self.assertEqual(data['recentTransactions'][0]['apartment'], 'A101')
        self.assertEqual(data['apartmentStats']['status'], [{'status': 'Vacant', 'count': 1}])
        self.assertEqual(data['apartmentStats']['byBuilding'], [{'building': 'Unknown', 'count': 1}])

    def test_pending_bills_count_as_revenue(self):
        billing.generate_bills(3, 2025)
        data = reports.dashboard_summary()
        self.assertEqual(data['totalRevenue'], Decimal('700000'))
        self.assertEqual(len(data['recentTransactions']), 2)

    def test_moved_out_residents_not_counted(self):
        self.make_resident('Nguyen Van A', '001090000001')
        self.make_resident('Tran Thi B', '001090000002', residency_status=Resident.STATUS_MOVED_OUT)
        self.assertEqual(reports.dashboard_summary()['totalResidents'], 1)

    def test_fee_payment_status(self):
        ledger.record_payment(self.apt_a.pk, self.service_fee.pk, Decimal('400000'), 'Nguyen Van A',
                              month=3, year=2025)
        data = reports.fee_payment_status(self.service_fee, month=3, year=2025)
        self.assertEqual(data['feeInfo'], {'title': 'Management fee', 'totalCollected': Decimal('400000')})
        by_name = {row['name']: row for row in data['apartments']}
        self.assertEqual(by_name['A101']['status'], 'PAID')
        self.assertEqual(by_name['A101']['paidAmount'], Decimal('400000'))
        self.assertEqual(by_name['B202']['status'], 'UNPAID')
        self.assertEqual(by_name['B202']['ownerName'], 'N/A')

        other_period = reports.fee_payment_status(self.service_fee, month=4, year=2025)
        self.assertEqual(other_period['apartments'][0]['status'], 'UNPAID')

    def test_apartment_revenue_summary(self):
        ledger.record_payment(self.apt_a.pk, self.service_fee.pk, Decimal('400000'), 'Nguyen Van A',
                              month=3, year=2025)
        billing.generate_bills(3, 2025)
        rows = reports.apartment_revenue_summary()
        self.assertEqual([r['name'] for r in rows], ['A101', 'B202'])
        self.assertEqual(rows[0]['totalCollected'], Decimal('400000'))
        self.assertEqual(rows[0]['transactionCount'], 1)
        self.assertEqual(rows[1]['totalCollected'], Decimal('0'))
        self.assertEqual(rows[1]['transactionCount'], 0)


# ═══════════════════════════════════════════════════════════
#  AUTH & PERMISSIONS
# ═══════════════════════════════════════════════════════════

class AuthTests(BaseTestCase):

    def test_login(self):
        resp = self.login_as('accountant', 'Account123')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['role'], 'accountant')
        self.assertIn('access', resp.data)
        self.assertIn('refresh', resp.data)

    def test_invalid_password(self):
        resp = self.login_as('accountant', 'wrong')
        self.assertEqual(resp.status_code, 400)
        self.assertFalse(resp.data['success'])

    def test_unauthenticated_request(self):
        resp = self.client.get('/api/fees/')
        self.assertEqual(resp.status_code, 401)
        self.assertFalse(resp.data['success'])

    def test_capability_table(self):
        self.assertTrue(can_perform('admin', 'manage_fees'))
        self.assertFalse(can_perform('leader', 'manage_fees'))
        self.assertTrue(can_perform('leader', 'manage_registry'))
        self.assertFalse(can_perform('accountant', 'manage_registry'))
        self.assertTrue(can_perform('accountant', 'generate_bills'))
        self.assertFalse(can_perform('accountant', 'delete_transactions'))
        self.assertTrue(can_perform('admin', 'manage_users'))
        self.assertFalse(can_perform('leader', 'manage_users'))
        self.assertFalse(can_perform('accountant', 'manage_users'))
        self.assertFalse(can_perform('admin', 'unknown'))

    def test_leader_cannot_generate_bills(self):
        self.login_as('leader', 'Leader123')
        resp = self.client.post('/api/transactions/generate-bills/', {'month': 3, 'year': 2025}, format='json')
        self.assertEqual(resp.status_code, 403)

    def test_leader_cannot_manage_fees(self):
        self.login_as('leader', 'Leader123')
        resp = self.client.post('/api/fees/', {
            'title': 'Parking fee', 'type': 'Service', 'unit': 'apartment', 'amount': 100000,
        }, format='json')
        self.assertEqual(resp.status_code, 403)

    def test_accountant_cannot_edit_registry(self):
        self.login_as('accountant', 'Account123')
        resp = self.client.post('/api/apartments/', {'name': 'C303', 'area': 50}, format='json')
        self.assertEqual(resp.status_code, 403)


# ═══════════════════════════════════════════════════════════
#  API
# ═══════════════════════════════════════════════════════════

class FeeApiTests(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.login_as('admin', 'Admin123')

    def test_create_fee(self):
        resp = self.client.post('/api/fees/', {
            'title': 'Parking fee', 'type': 'Service', 'unit': 'apartment', 'amount': 100000,
        }, format='json')
        self.assertEqual(resp.status_code, 201)
        self.assertTrue(resp.data['success'])
        self.assertEqual(resp.data['data']['type'], 'Service')
        self.assertTrue(resp.data['data']['isActive'])

    def test_negative_amount_rejected(self):
        resp = self.client.post('/api/fees/', {
            'title': 'Parking fee', 'type': 'Service', 'unit': 'apartment', 'amount': -1,
        }, format='json')
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data['message'], 'Validation failed')
        self.assertIn('amount', [e['field'] for e in resp.data['errors']])

    def test_short_title_rejected(self):
        resp = self.client.post('/api/fees/', {
            'title': 'Fee', 'type': 'Service', 'unit': 'apartment', 'amount': 1,
        }, format='json')
        self.assertEqual(resp.status_code, 400)

    def test_filter_by_type(self):
        self.make_fee('Electricity', Fee.TYPE_UTILITY, Fee.UNIT_KWH, '3500')
        resp = self.client.get('/api/fees/?type=Utility')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['count'], 1)
        self.assertEqual(resp.data['data'][0]['title'], 'Electricity')

    def test_delete_disables_fee(self):
        resp = self.client.delete(f'/api/fees/{self.service_fee.id}/')
        self.assertEqual(resp.status_code, 200)
        self.service_fee.refresh_from_db()
        self.assertFalse(self.service_fee.is_active)
        resp = self.client.get('/api/fees/?isActive=true')
        self.assertEqual(resp.data['count'], 0)

    def test_fee_status(self):
        Transaction.objects.create(apartment=self.apt_a, fee=self.service_fee, month=3, year=2025,
                                   total_amount=Decimal('400000'), payer_name='Nguyen Van A')
        resp = self.client.get(f'/api/fees/{self.service_fee.id}/status/?month=3&year=2025')
        self.assertEqual(resp.status_code, 200)
        statuses = {row['name']: row['status'] for row in resp.data['data']['apartments']}
        self.assertEqual(statuses, {'A101': 'PAID', 'B202': 'UNPAID'})


class RegistryApiTests(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.login_as('leader', 'Leader123')

    def test_create_resident_in_apartment(self):
        resp = self.client.post('/api/residents/', {
            'fullName': 'Nguyen Van A', 'dob': '1990-01-01', 'gender': 'Male',
            'identityCard': '001090000001', 'hometown': 'Ha Noi', 'job': 'Engineer',
            'apartmentId': str(self.apt_a.id),
        }, format='json')
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(self.apt_a.members.count(), 1)

    def test_duplicate_identity_card(self):
        self.make_resident('Nguyen Van A', '001090000001')
        resp = self.client.post('/api/residents/', {
            'fullName': 'Someone Else', 'dob': '1990-01-01', 'gender': 'Female',
            'identityCard': '001090000001', 'hometown': 'Hue', 'job': 'Teacher',
        }, format='json')
        self.assertEqual(resp.status_code, 400)

    def test_create_apartment_with_owner(self):
        owner = self.make_resident('Nguyen Van A', '001090000001')
        resp = self.client.post('/api/apartments/', {
            'name': 'C303', 'area': 70, 'ownerId': str(owner.id), 'building': 'C',
        }, format='json')
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.data['data']['ownerName'], 'Nguyen Van A')
        self.assertEqual(resp.data['data']['memberCount'], 1)

    def test_non_positive_area_rejected(self):
        resp = self.client.post('/api/apartments/', {'name': 'C303', 'area': 0}, format='json')
        self.assertEqual(resp.status_code, 400)

    def test_add_and_remove_member(self):
        resident = self.make_resident('Tran Thi B', '001090000002')
        resp = self.client.post(f'/api/apartments/{self.apt_a.id}/add-member/',
                                {'residentId': str(resident.id)}, format='json')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['data']['memberCount'], 1)

        resp = self.client.post(f'/api/apartments/{self.apt_b.id}/add-member/',
                                {'residentId': str(resident.id)}, format='json')
        self.assertEqual(resp.status_code, 409)

        resp = self.client.post(f'/api/apartments/{self.apt_a.id}/remove-member/',
                                {'residentId': str(resident.id)}, format='json')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['data']['memberCount'], 0)

    def test_failed_owner_change_keeps_apartment_unchanged(self):
        resident = self.make_resident('Tran Thi B', '001090000002')
        registry.add_member(self.apt_b, resident)
        resp = self.client.patch(f'/api/apartments/{self.apt_a.id}/', {
            'name': 'A101-renamed', 'area': 999, 'ownerId': str(resident.id),
        }, format='json')
        self.assertEqual(resp.status_code, 409)
        self.apt_a.refresh_from_db()
        self.assertEqual(self.apt_a.name, 'A101')
        self.assertEqual(self.apt_a.area, Decimal('80'))
        self.assertIsNone(self.apt_a.owner)

    def test_calculate_all_fees(self):
        resp = self.client.get(f'/api/apartments/{self.apt_a.id}/calculate-all-fees/')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['data']['grandTotal'], Decimal('400000'))


class TransactionApiTests(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.login_as('accountant', 'Account123')

    def test_billing_then_payment(self):
        resp = self.client.post('/api/transactions/generate-bills/', {'month': 3, 'year': 2025}, format='json')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['message'], 'Generated 2 bills.')
        self.assertNotIn('errors', resp.data)

        resp = self.client.post('/api/transactions/generate-bills/', {'month': 3, 'year': 2025}, format='json')
        self.assertEqual(resp.data['message'], 'Generated 0 bills.')

        payment = {
            'apartmentId': str(self.apt_a.id), 'feeId': str(self.service_fee.id),
            'totalAmount': 400000, 'payerName': 'Nguyen Van A', 'month': 3, 'year': 2025,
        }
        resp = self.client.post('/api/transactions/', payment, format='json')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['data']['status'], 'Completed')

        resp = self.client.post('/api/transactions/', payment, format='json')
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.data['message'], 'Fee already paid for this apartment')

    def test_generate_bills_reports_missing_readings(self):
        self.make_fee('Electricity', Fee.TYPE_UTILITY, Fee.UNIT_KWH, '3500')
        resp = self.client.post('/api/transactions/generate-bills/', {'month': 3, 'year': 2025}, format='json')
        self.assertEqual(resp.data['message'], 'Generated 2 bills.')
        self.assertEqual(len(resp.data['errors']), 2)

    def test_generate_bills_with_readings(self):
        electricity = self.make_fee('Electricity', Fee.TYPE_UTILITY, Fee.UNIT_KWH, '3500')
        resp = self.client.post('/api/transactions/generate-bills/', {
            'month': 3, 'year': 2025,
            'readings': [
                {'apartmentId': str(self.apt_a.id), 'feeId': str(electricity.id), 'usage': 100},
                {'apartmentId': str(self.apt_b.id), 'feeId': str(electricity.id), 'usage': 50},
            ],
        }, format='json')
        self.assertEqual(resp.data['message'], 'Generated 4 bills.')

    def test_generate_bills_invalid_month(self):
        resp = self.client.post('/api/transactions/generate-bills/', {'month': 13, 'year': 2025}, format='json')
        self.assertEqual(resp.status_code, 400)
        self.assertFalse(resp.data['success'])

    def test_new_payment_created(self):
        resp = self.client.post('/api/transactions/', {
            'apartmentId': str(self.apt_b.id), 'feeId': str(self.service_fee.id),
            'totalAmount': 300000, 'payerName': 'Tran Thi B',
        }, format='json')
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.data['data']['totalAmount'], Decimal('300000'))

    def test_payment_validation(self):
        resp = self.client.post('/api/transactions/', {
            'apartmentId': str(self.apt_a.id), 'feeId': str(self.service_fee.id),
            'totalAmount': -5, 'payerName': '',
        }, format='json')
        self.assertEqual(resp.status_code, 400)
        self.assertEqual({e['field'] for e in resp.data['errors']}, {'totalAmount', 'payerName'})

    def test_payment_unknown_fee(self):
        resp = self.client.post('/api/transactions/', {
            'apartmentId': str(self.apt_a.id), 'feeId': str(uuid.uuid4()),
            'totalAmount': 10, 'payerName': 'X',
        }, format='json')
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.data['message'], 'Fee not found')

    def test_calculate(self):
        resp = self.client.post('/api/transactions/calculate/', {
            'apartmentId': str(self.apt_a.id), 'feeId': str(self.service_fee.id),
        }, format='json')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['data']['totalAmount'], Decimal('400000'))
        self.assertEqual(resp.data['data']['apartment'], 'A101')

    def test_calculate_all(self):
        electricity = self.make_fee('Electricity', Fee.TYPE_UTILITY, Fee.UNIT_KWH, '3500')
        resp = self.client.post('/api/transactions/calculate-all/', {
            'apartmentId': str(self.apt_a.id),
            'usageMap': {str(electricity.id): 10},
        }, format='json')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['data']['grandTotal'], Decimal('435000'))

    def test_filter_and_history(self):
        billing.generate_bills(3, 2025)
        resp = self.client.get(f'/api/transactions/?apartment={self.apt_a.id}&status=Pending')
        self.assertEqual(resp.data['count'], 1)

        resp = self.client.get(f'/api/transactions/apartment/{self.apt_b.id}/')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['count'], 1)
        self.assertEqual(resp.data['data'][0]['apartmentName'], 'B202')

    def test_apartments_summary(self):
        resp = self.client.get('/api/transactions/apartments-summary/')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(len(resp.data['data']), 2)

    def test_update_and_delete(self):
        billing.generate_bills(3, 2025)
        bill = Transaction.objects.get(apartment=self.apt_a, fee=self.service_fee)

        resp = self.client.patch(f'/api/transactions/{bill.id}/', {'status': 'Completed'}, format='json')
        self.assertEqual(resp.status_code, 400)

        resp = self.client.patch(f'/api/transactions/{bill.id}/', {
            'status': 'Completed', 'payerName': 'Nguyen Van A',
        }, format='json')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['data']['payerName'], 'Nguyen Van A')

        resp = self.client.delete(f'/api/transactions/{bill.id}/')
        self.assertEqual(resp.status_code, 403)

        self.client.credentials()
        self.login_as('admin', 'Admin123')
        resp = self.client.delete(f'/api/transactions/{bill.id}/')
        self.assertEqual(resp.status_code, 200)
        self.assertFalse(Transaction.objects.filter(pk=bill.id).exists())

    def test_meter_readings(self):
        electricity = self.make_fee('Electricity', Fee.TYPE_UTILITY, Fee.UNIT_KWH, '3500')
        resp = self.client.post('/api/meter-readings/', {
            'apartmentId': str(self.apt_a.id), 'feeId': str(electricity.id),
            'month': 3, 'year': 2025, 'usage': 120,
        }, format='json')
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.data['data']['usage'], Decimal('120'))

        resp = self.client.post('/api/meter-readings/', {
            'apartmentId': str(self.apt_a.id), 'feeId': str(self.service_fee.id),
            'month': 3, 'year': 2025, 'usage': 1,
        }, format='json')
        self.assertEqual(resp.status_code, 400)


class DashboardApiTests(BaseTestCase):

    def test_dashboard(self):
        self.login_as('leader', 'Leader123')
        Transaction.objects.create(apartment=self.apt_a, fee=self.service_fee, month=3, year=2025,
                                   total_amount=Decimal('1000'), payer_name='Nguyen Van A')
        resp = self.client.get('/api/stats/dashboard/')
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.data['success'])
        data = resp.data['data']
        self.assertEqual(data['totalApartments'], 2)
        self.assertEqual(data['totalRevenue'], Decimal('1000'))
        self.assertEqual(data['apartmentStats']['byBuilding'],
                         [{'building': 'A', 'count': 1}, {'building': 'B', 'count': 1}])


class UserApiTests(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.login_as('admin', 'Admin123')

    def test_admin_creates_account(self):
        resp = self.client.post('/api/users/', {
            'username': 'Cashier1', 'password': 'Cashier123', 'name': 'Thu ngan',
            'role': 'accountant',
        }, format='json')
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.data['data']['username'], 'cashier1')
        self.assertNotIn('password', resp.data['data'])

        user = User.objects.get(username='cashier1')
        self.assertNotEqual(user.password, 'Cashier123')
        self.assertTrue(user.check_password('Cashier123'))
        self.assertEqual(self.login_as('cashier1', 'Cashier123').status_code, 200)

    def test_list_users(self):
        resp = self.client.get('/api/users/', {'role': 'leader'})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual([u['username'] for u in resp.data['data']], ['leader'])

    def test_leader_cannot_manage_users(self):
        self.login_as('leader', 'Leader123')
        self.assertEqual(self.client.get('/api/users/').status_code, 403)
        resp = self.client.post('/api/users/', {
            'username': 'cashier1', 'password': 'Cashier123', 'role': 'accountant',
        }, format='json')
        self.assertEqual(resp.status_code, 403)

    def test_short_credentials_rejected(self):
        resp = self.client.post('/api/users/', {
            'username': 'cashier1', 'password': '123', 'role': 'accountant',
        }, format='json')
        self.assertEqual(resp.status_code, 400)
        resp = self.client.post('/api/users/', {
            'username': 'abc', 'password': 'Cashier123', 'role': 'accountant',
        }, format='json')
        self.assertEqual(resp.status_code, 400)

    def test_password_required_on_create(self):
        resp = self.client.post('/api/users/', {'username': 'cashier1', 'role': 'accountant'},
                                format='json')
        self.assertEqual(resp.status_code, 400)

    def test_duplicate_username(self):
        resp = self.client.post('/api/users/', {
            'username': 'Accountant', 'password': 'Cashier123', 'role': 'accountant',
        }, format='json')
        self.assertEqual(resp.status_code, 400)

    def test_unknown_role(self):
        resp = self.client.post('/api/users/', {
            'username': 'cashier1', 'password': 'Cashier123', 'role': 'janitor',
        }, format='json')
        self.assertEqual(resp.status_code, 400)

    def test_change_role_and_password(self):
        resp = self.client.patch(f'/api/users/{self.leader.id}/', {
            'role': 'accountant', 'password': 'NewPass123',
        }, format='json')
        self.assertEqual(resp.status_code, 200)
        self.leader.refresh_from_db()
        self.assertEqual(self.leader.role, User.ROLE_ACCOUNTANT)
        self.assertTrue(self.leader.check_password('NewPass123'))

    def test_cannot_delete_yourself(self):
        resp = self.client.delete(f'/api/users/{self.admin.id}/')
        self.assertEqual(resp.status_code, 400)
        self.assertTrue(User.objects.filter(pk=self.admin.pk).exists())

    def test_delete_other_user(self):
        resp = self.client.delete(f'/api/users/{self.leader.id}/')
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.data['success'])
        self.assertFalse(User.objects.filter(pk=self.leader.pk).exists())


class MigrationTests(TestCase):

    def test_migrations_match_models(self):
        # exits non-zero when a model change has no migration
        call_command('makemigrations', 'estate', '--check', '--dry-run', stdout=StringIO())
