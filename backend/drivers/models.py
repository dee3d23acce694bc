from decimal import Decimal

from django.db import models
from django.utils import timezone
from django.conf import settings

User = settings.AUTH_USER_MODEL


class ImmutableTransactionError(Exception):
    """Raised when code tries to change or remove a recorded wallet transaction."""
    pass


class DriverProfile(models.Model):
    """Driver-specific details and availability status"""
    STATUS_CHOICES = [
        ('available', 'Available'),
        ('busy', 'Busy'),
        ('offline', 'Offline'),
    ]
    
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='driver_profile')
    
    # Vehicle details
    vehicle_number = models.CharField(max_length=20, unique=True)
    vehicle_type = models.CharField(max_length=30, default='sedan')  # free text, normalized by the fee schedule
    
    # Status & location
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='offline')
    current_latitude = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    current_longitude = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    last_location_update = models.DateTimeField(default=timezone.now)

    # Push token registered by the driver app
    fcm_token = models.TextField(null=True, blank=True)
    
    class Meta:
        db_table = 'driver_profiles'
        
    def __str__(self):
        return f"{self.user.username} - {self.vehicle_number}"


class DriverSubscription(models.Model):
    """A paid period during which the driver may go online."""
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('expired', 'Expired'),
    ]

    driver = models.ForeignKey(User, on_delete=models.CASCADE, related_name='subscriptions')
    start_time = models.DateTimeField(default=timezone.now)
    expire = models.DateTimeField()
    amount_paid = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0'))
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='active')

    # Overtime is billed up to this instant; advanced by whole hours only.
    last_overtime_billing_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'driver_subscriptions'
        ordering = ['-expire']
        indexes = [
            models.Index(fields=['driver', 'expire'], name='driver_sub_driver_expire_idx'),
        ]

    def __str__(self):
        return f"Subscription #{self.id} - {self.driver} - expires {self.expire:%Y-%m-%d %H:%M}"


class DriverWallet(models.Model):
    """Driver balance. May go negative while overtime is being billed."""
    driver = models.OneToOneField(User, on_delete=models.CASCADE, related_name='wallet')
    balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    currency = models.CharField(max_length=3, default='INR')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'driver_wallets'

    def __str__(self):
        return f"Wallet of {self.driver} - {self.balance} {self.currency}"


class DriverWalletTransaction(models.Model):
    """Append-only wallet ledger entry."""
    TYPE_CHOICES = [
        ('credit', 'Credit'),
        ('debit', 'Debit'),
    ]

    wallet = models.ForeignKey(DriverWallet, on_delete=models.CASCADE, related_name='transactions')
    type = models.CharField(max_length=10, choices=TYPE_CHOICES)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    balance_before = models.DecimalField(max_digits=12, decimal_places=2)
    balance_after = models.DecimalField(max_digits=12, decimal_places=2)
    description = models.TextField(null=True, blank=True)

    # What caused the entry, e.g. ("overtime", <subscription id>)
    reference_type = models.CharField(max_length=40, null=True, blank=True)
    reference_id = models.CharField(max_length=64, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'driver_wallet_transactions'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['wallet', 'created_at'], name='wallet_txn_wallet_created_idx'),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableTransactionError("Wallet transactions cannot be modified")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableTransactionError("Wallet transactions cannot be deleted")

    def __str__(self):
        return f"{self.type} {self.amount} ({self.balance_before} -> {self.balance_after})"
