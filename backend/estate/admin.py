from django.contrib import admin
from .models import User, Resident, Apartment, Fee, MeterReading, Transaction

@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ['username', 'name', 'role', 'is_active', 'created_at']
    search_fields = ['username', 'name', 'email']
    list_filter = ['role', 'is_active']

@admin.register(Resident)
class ResidentAdmin(admin.ModelAdmin):
    list_display = ['full_name', 'identity_card', 'apartment', 'role_in_apartment', 'residency_status']
    list_filter = ['residency_status', 'role_in_apartment']
    search_fields = ['full_name', 'identity_card', 'phone']

@admin.register(Apartment)
class ApartmentAdmin(admin.ModelAdmin):
    list_display = ['name', 'building', 'apartment_number', 'area', 'owner']
    list_filter = ['building']
    search_fields = ['name', 'apartment_number', 'owner__full_name']
    filter_horizontal = ['members']

@admin.register(Fee)
class FeeAdmin(admin.ModelAdmin):
    list_display = ['title', 'fee_type', 'unit', 'amount', 'is_active']
    list_filter = ['fee_type', 'unit', 'is_active']
    search_fields = ['title']

@admin.register(MeterReading)
class MeterReadingAdmin(admin.ModelAdmin):
    list_display = ['apartment', 'fee', 'month', 'year', 'usage']
    list_filter = ['year', 'month', 'fee']

@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = ['apartment', 'fee', 'month', 'year', 'total_amount', 'status', 'payer_name', 'date']
    list_filter = ['status', 'year', 'month', 'fee']
    search_fields = ['apartment__name', 'payer_name']
