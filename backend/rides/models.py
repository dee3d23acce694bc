from django.db import models
from django.conf import settings


class RideRequest(models.Model):
    """Ride request with the facts the cancellation policy needs."""

    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('accepted', 'Accepted'),
        ('completed', 'Completed'),
        ('cancelled_user', 'Cancelled by User'),
        ('cancelled_driver', 'Cancelled by Driver'),
    ]

    STRIKE_CHOICES = [
        ('none', 'None'),
        ('light', 'Light'),
        ('full', 'Full'),
    ]

    # Foreign keys
    passenger = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='ride_requests'
    )

    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='accepted_rides'
    )

    # Pickup location
    pickup_latitude = models.DecimalField(max_digits=9, decimal_places=6)
    pickup_longitude = models.DecimalField(max_digits=9, decimal_places=6)
    pickup_address = models.TextField(null=True, blank=True)

    # Dropoff location
    dropoff_address = models.TextField(null=True, blank=True)

    requested_vehicle_type = models.CharField(max_length=30, null=True, blank=True)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')

    # Timestamps
    requested_at = models.DateTimeField(auto_now_add=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    # Driver position when the ride was accepted
    driver_lat_at_accept = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    driver_lng_at_accept = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)

    # No-show evidence
    driver_arrived_at_pickup_at = models.DateTimeField(null=True, blank=True)
    rider_call_attempted_at = models.DateTimeField(null=True, blank=True)

    # Cancellation outcome
    cancellation_reason = models.TextField(null=True, blank=True)
    cancellation_category = models.CharField(max_length=30, null=True, blank=True)
    rider_charged_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    driver_compensation_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    driver_strike_type = models.CharField(max_length=10, choices=STRIKE_CHOICES, null=True, blank=True)
    driver_cancellation_reason_type = models.CharField(max_length=40, null=True, blank=True)

    class Meta:
        db_table = 'ride_requests'
        ordering = ['-requested_at']

    def __str__(self):
        return f"Ride #{self.id} - {self.passenger} - {self.status}"


class DriverCancellationStrike(models.Model):
    """Fault marker left on a driver by a penalised cancellation."""

    STRIKE_CHOICES = [
        ('light', 'Light'),
        ('full', 'Full'),
    ]

    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='cancellation_strikes'
    )
    ride = models.ForeignKey(
        RideRequest,
        on_delete=models.CASCADE,
        related_name='strikes'
    )
    strike_type = models.CharField(max_length=10, choices=STRIKE_CHOICES)
    cancelled_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'driver_cancellation_strikes'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['driver', 'created_at'], name='strike_driver_created_idx'),
        ]

    def __str__(self):
        return f"{self.strike_type} strike - {self.driver} - ride {self.ride_id}"


class DriverValidReasonCancel(models.Model):
    """Cancellation waived because the driver cited a valid operational reason."""

    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='valid_reason_cancels'
    )
    ride = models.ForeignKey(
        RideRequest,
        on_delete=models.CASCADE,
        related_name='valid_reason_cancels'
    )
    reason_type = models.CharField(max_length=40)
    cancelled_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'driver_valid_reason_cancels'
        ordering = ['-cancelled_at']
        indexes = [
            models.Index(fields=['driver', 'cancelled_at'], name='valid_cancel_driver_at_idx'),
        ]

    def __str__(self):
        return f"{self.reason_type} - {self.driver} - ride {self.ride_id}"
