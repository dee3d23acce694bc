from django.urls import path
from .views import (
    DriverStatusView,
    DriverLocationUpdateView,
    DriverSubscriptionView,
    DriverOvertimeView,
    DriverWalletView,
    DriverWalletTransactionsView,
)

urlpatterns = [
    path("status/", DriverStatusView.as_view(), name="driver-status"),
    path("location/", DriverLocationUpdateView.as_view(), name="driver-location"),
    path("subscription/", DriverSubscriptionView.as_view(), name="driver-subscription"),
    path("overtime/apply/", DriverOvertimeView.as_view(), name="driver-overtime-apply"),
    path("wallet/", DriverWalletView.as_view(), name="driver-wallet"),
    path("wallet/transactions/", DriverWalletTransactionsView.as_view(), name="driver-wallet-transactions"),
]
