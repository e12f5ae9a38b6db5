"""
BlueMoon — API URL Configuration
"""
from django.urls import path, include
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenRefreshView

from . import views

router = DefaultRouter()
router.register(r'residents', views.ResidentViewSet, basename='residents')
router.register(r'apartments', views.ApartmentViewSet, basename='apartments')
router.register(r'fees', views.FeeViewSet, basename='fees')
router.register(r'transactions', views.TransactionViewSet, basename='transactions')
router.register(r'meter-readings', views.MeterReadingViewSet, basename='meter-readings')
router.register(r'users', views.UserViewSet, basename='users')

urlpatterns = [
    # Auth
    path('auth/login/', views.LoginView.as_view(), name='login'),
    path('auth/refresh/', TokenRefreshView.as_view(), name='token-refresh'),

    path('', include(router.urls)),

    # Dashboard
    path('stats/dashboard/', views.DashboardView.as_view(), name='dashboard'),
]
