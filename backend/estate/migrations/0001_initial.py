import decimal
import uuid

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

import estate.models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('auth', '0012_alter_user_first_name_max_length'),
    ]

    operations = [
        migrations.CreateModel(
            name='User',
            fields=[
                ('password', models.CharField(max_length=128, verbose_name='password')),
                ('last_login', models.DateTimeField(blank=True, null=True, verbose_name='last login')),
                ('is_superuser', models.BooleanField(
                    default=False,
                    help_text='Designates that this user has all permissions without explicitly assigning them.',
                    verbose_name='superuser status',
                )),
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('username', models.CharField(db_index=True, max_length=150, unique=True)),
                ('name', models.CharField(blank=True, default='', max_length=200)),
                ('email', models.EmailField(blank=True, default='', max_length=254)),
                ('role', models.CharField(
                    choices=[('admin', 'Administrator'), ('leader', 'Leader'), ('accountant', 'Accountant')],
                    default='leader', max_length=20,
                )),
                ('is_active', models.BooleanField(default=True)),
                ('is_staff', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('groups', models.ManyToManyField(
                    blank=True,
                    help_text='The groups this user belongs to. A user will get all permissions granted to each of their groups.',
                    related_name='user_set', related_query_name='user', to='auth.group', verbose_name='groups',
                )),
                ('user_permissions', models.ManyToManyField(
                    blank=True, help_text='Specific permissions for this user.',
                    related_name='user_set', related_query_name='user', to='auth.permission',
                    verbose_name='user permissions',
                )),
            ],
            options={
                'db_table': 'users',
                'ordering': ['username'],
            },
            managers=[
                ('objects', estate.models.UserManager()),
            ],
        ),
        migrations.CreateModel(
            name='Resident',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('full_name', models.CharField(max_length=200)),
                ('dob', models.DateField()),
                ('gender', models.CharField(max_length=20)),
                ('identity_card', models.CharField(
                    max_length=12, unique=True,
                    validators=[django.core.validators.MinLengthValidator(9)],
                )),
                ('hometown', models.CharField(max_length=200)),
                ('job', models.CharField(max_length=200)),
                ('phone', models.CharField(blank=True, default='', max_length=30)),
                ('role_in_apartment', models.CharField(
                    choices=[('Owner', 'Head of household'), ('Member', 'Member')],
                    default='Member', max_length=10,
                )),
                ('residency_status', models.CharField(
                    choices=[
                        ('permanent', 'Permanent resident'),
                        ('temporary', 'Temporary resident'),
                        ('absent', 'Temporarily absent'),
                        ('moved_out', 'Moved out'),
                    ],
                    db_index=True, default='permanent', max_length=15,
                )),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'residents',
                'ordering': ['full_name'],
            },
        ),
        migrations.CreateModel(
            name='Apartment',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=100, unique=True)),
                ('area', models.DecimalField(
                    decimal_places=2, help_text='Floor area in m²', max_digits=10,
                    validators=[django.core.validators.MinValueValidator(decimal.Decimal('0.01'))],
                )),
                ('apartment_number', models.CharField(blank=True, default='', max_length=20)),
                ('building', models.CharField(blank=True, db_index=True, default='', max_length=50)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('owner', models.OneToOneField(
                    blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                    related_name='owned_apartment', to='estate.resident',
                )),
                ('members', models.ManyToManyField(blank=True, related_name='households', to='estate.resident')),
            ],
            options={
                'db_table': 'apartments',
                'ordering': ['name'],
            },
        ),
        migrations.AddField(
            model_name='resident',
            name='apartment',
            field=models.ForeignKey(
                blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                related_name='residents', to='estate.apartment',
            ),
        ),
        migrations.CreateModel(
            name='Fee',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('title', models.CharField(
                    max_length=200, validators=[django.core.validators.MinLengthValidator(5)],
                )),
                ('description', models.TextField(blank=True, default='')),
                ('fee_type', models.CharField(
                    choices=[('Service', 'Service'), ('Contribution', 'Contribution'), ('Utility', 'Utility')],
                    db_index=True, max_length=15,
                )),
                ('unit', models.CharField(
                    choices=[
                        ('apartment', 'Per apartment'),
                        ('person', 'Per person'),
                        ('m2', 'Per m²'),
                        ('kWh', 'Per kWh'),
                        ('m3', 'Per m³ of water'),
                    ],
                    max_length=10,
                )),
                ('amount', models.DecimalField(
                    decimal_places=2, help_text='Unit price', max_digits=12,
                    validators=[django.core.validators.MinValueValidator(0)],
                )),
                ('is_active', models.BooleanField(db_index=True, default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'fees',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='MeterReading',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('month', models.PositiveSmallIntegerField(validators=[
                    django.core.validators.MinValueValidator(1),
                    django.core.validators.MaxValueValidator(12),
                ])),
                ('year', models.PositiveIntegerField()),
                ('usage', models.DecimalField(
                    decimal_places=2, max_digits=12,
                    validators=[django.core.validators.MinValueValidator(0)],
                )),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('apartment', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='meter_readings', to='estate.apartment',
                )),
                ('fee', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='meter_readings', to='estate.fee',
                )),
                ('recorded_by', models.ForeignKey(
                    blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                    to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={
                'db_table': 'meter_readings',
                'ordering': ['-year', '-month'],
                'constraints': [
                    models.UniqueConstraint(fields=('apartment', 'fee', 'month', 'year'),
                                            name='unique_reading_per_period'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Transaction',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('total_amount', models.DecimalField(
                    decimal_places=2, max_digits=14,
                    validators=[django.core.validators.MinValueValidator(0)],
                )),
                ('quantity', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('usage', models.DecimalField(
                    blank=True, decimal_places=2, max_digits=12, null=True,
                    validators=[django.core.validators.MinValueValidator(0)],
                )),
                ('unit_price', models.DecimalField(
                    blank=True, decimal_places=2, help_text='Fee amount at calculation time',
                    max_digits=12, null=True,
                    validators=[django.core.validators.MinValueValidator(0)],
                )),
                ('month', models.PositiveSmallIntegerField(validators=[
                    django.core.validators.MinValueValidator(1),
                    django.core.validators.MaxValueValidator(12),
                ])),
                ('year', models.PositiveIntegerField()),
                ('status', models.CharField(
                    choices=[('Pending', 'Pending'), ('Completed', 'Completed'), ('Cancelled', 'Cancelled')],
                    db_index=True, default='Completed', max_length=10,
                )),
                ('payer_name', models.CharField(blank=True, default='', max_length=200)),
                ('date', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('apartment', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='transactions', to='estate.apartment',
                )),
                ('fee', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='transactions', to='estate.fee',
                )),
                ('created_by', models.ForeignKey(
                    blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                    related_name='transactions', to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={
                'db_table': 'transactions',
                'ordering': ['-date'],
                'indexes': [
                    models.Index(fields=['apartment', 'month', 'year'], name='txn_apartment_period_idx'),
                    models.Index(fields=['fee', 'status'], name='txn_fee_status_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('apartment', 'fee', 'month', 'year'),
                                            name='unique_bill_per_period'),
                ],
            },
        ),
    ]
