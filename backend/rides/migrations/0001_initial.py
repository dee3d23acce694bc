import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='RideRequest',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('pickup_latitude', models.DecimalField(decimal_places=6, max_digits=9)),
                ('pickup_longitude', models.DecimalField(decimal_places=6, max_digits=9)),
                ('pickup_address', models.TextField(blank=True, null=True)),
                ('dropoff_address', models.TextField(blank=True, null=True)),
                ('requested_vehicle_type', models.CharField(blank=True, max_length=30, null=True)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('accepted', 'Accepted'), ('completed', 'Completed'), ('cancelled_user', 'Cancelled by User'), ('cancelled_driver', 'Cancelled by Driver')], default='pending', max_length=20)),
                ('requested_at', models.DateTimeField(auto_now_add=True)),
                ('accepted_at', models.DateTimeField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('driver_lat_at_accept', models.DecimalField(blank=True, decimal_places=6, max_digits=10, null=True)),
                ('driver_lng_at_accept', models.DecimalField(blank=True, decimal_places=6, max_digits=10, null=True)),
                ('driver_arrived_at_pickup_at', models.DateTimeField(blank=True, null=True)),
                ('rider_call_attempted_at', models.DateTimeField(blank=True, null=True)),
                ('cancellation_reason', models.TextField(blank=True, null=True)),
                ('cancellation_category', models.CharField(blank=True, max_length=30, null=True)),
                ('rider_charged_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ('driver_compensation_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ('driver_strike_type', models.CharField(blank=True, choices=[('none', 'None'), ('light', 'Light'), ('full', 'Full')], max_length=10, null=True)),
                ('driver_cancellation_reason_type', models.CharField(blank=True, max_length=40, null=True)),
                ('driver', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='accepted_rides', to=settings.AUTH_USER_MODEL)),
                ('passenger', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='ride_requests', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'ride_requests',
                'ordering': ['-requested_at'],
            },
        ),
        migrations.CreateModel(
            name='DriverCancellationStrike',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('strike_type', models.CharField(choices=[('light', 'Light'), ('full', 'Full')], max_length=10)),
                ('cancelled_at', models.DateTimeField()),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('driver', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='cancellation_strikes', to=settings.AUTH_USER_MODEL)),
                ('ride', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='strikes', to='rides.riderequest')),
            ],
            options={
                'db_table': 'driver_cancellation_strikes',
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['driver', 'created_at'], name='strike_driver_created_idx')],
            },
        ),
        migrations.CreateModel(
            name='DriverValidReasonCancel',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('reason_type', models.CharField(max_length=40)),
                ('cancelled_at', models.DateTimeField()),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('driver', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='valid_reason_cancels', to=settings.AUTH_USER_MODEL)),
                ('ride', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='valid_reason_cancels', to='rides.riderequest')),
            ],
            options={
                'db_table': 'driver_valid_reason_cancels',
                'ordering': ['-cancelled_at'],
                'indexes': [models.Index(fields=['driver', 'cancelled_at'], name='valid_cancel_driver_at_idx')],
            },
        ),
    ]
