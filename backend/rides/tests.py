from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from drivers.models import DriverProfile, DriverWalletTransaction
from services.ride_management import count_recent_valid_reason_cancels
from .models import RideRequest, DriverCancellationStrike, DriverValidReasonCancel
from .views import accept_ride, arrived_at_pickup, rider_call_attempt, driver_cancel_ride, driver_current_ride

PICKUP_LAT = 28.6139
PICKUP_LNG = 77.2090
METERS_PER_DEGREE = 6371000 * 3.141592653589793 / 180


def south_of_pickup(meters):
	return round(PICKUP_LAT - meters / METERS_PER_DEGREE, 6)


class RideHandlerTestCase(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.passenger = User.objects.create_user(
			username='passenger',
			password='pass1234',
			role='user',
			phone_number='9000000000'
		)
		self.driver = User.objects.create_user(
			username='driver_one',
			password='driver1234',
			role='driver',
			phone_number='9000000001'
		)
		self.profile = DriverProfile.objects.create(
			user=self.driver,
			vehicle_number='WB-1001',
			vehicle_type='Sedan',
			status='available',
			current_latitude=south_of_pickup(2000),
			current_longitude=PICKUP_LNG
		)
		self.ride = RideRequest.objects.create(
			passenger=self.passenger,
			pickup_latitude=PICKUP_LAT,
			pickup_longitude=PICKUP_LNG,
			pickup_address='Connaught Place',
			dropoff_address='India Gate',
			requested_vehicle_type='sedan',
			status='pending'
		)

	def post(self, view, data=None, user=None, path='/handle/'):
		request = self.factory.post(path, data or {}, format='json')
		force_authenticate(request, user=user or self.driver)
		return view(request, ride_id=self.ride.id)

	def accept_in_past(self, seconds_ago=60, accept_meters=2000):
		RideRequest.objects.filter(id=self.ride.id).update(
			driver=self.driver,
			status='accepted',
			accepted_at=timezone.now() - timedelta(seconds=seconds_ago),
			driver_lat_at_accept=south_of_pickup(accept_meters),
			driver_lng_at_accept=PICKUP_LNG,
		)
		self.profile.status = 'busy'
		self.profile.save(update_fields=['status'])

	def move_driver(self, meters_from_pickup):
		self.profile.current_latitude = south_of_pickup(meters_from_pickup)
		self.profile.current_longitude = PICKUP_LNG
		self.profile.save(update_fields=['current_latitude', 'current_longitude'])


class AcceptRideTests(RideHandlerTestCase):
	def test_accept_stores_position_and_marks_driver_busy(self):
		response = self.post(accept_ride)

		self.assertEqual(response.status_code, 200)
		self.ride.refresh_from_db()
		self.profile.refresh_from_db()
		self.assertEqual(self.ride.status, 'accepted')
		self.assertEqual(self.ride.driver, self.driver)
		self.assertIsNotNone(self.ride.accepted_at)
		self.assertEqual(self.ride.driver_lat_at_accept, Decimal(str(south_of_pickup(2000))))
		self.assertEqual(self.profile.status, 'busy')

	def test_accept_uses_posted_position(self):
		response = self.post(accept_ride, {'latitude': '28.500000', 'longitude': '77.100000'})

		self.assertEqual(response.status_code, 200)
		self.ride.refresh_from_db()
		self.assertEqual(self.ride.driver_lat_at_accept, Decimal('28.5'))
		self.assertEqual(self.ride.driver_lng_at_accept, Decimal('77.1'))

	def test_accept_requires_both_coordinates(self):
		response = self.post(accept_ride, {'latitude': '28.5'})
		self.assertEqual(response.status_code, 400)

	def test_offline_driver_cannot_accept(self):
		self.profile.status = 'offline'
		self.profile.save(update_fields=['status'])

		response = self.post(accept_ride)

		self.assertEqual(response.status_code, 400)
		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, 'pending')

	def test_already_taken_ride_conflicts(self):
		RideRequest.objects.filter(id=self.ride.id).update(status='cancelled_user')
		response = self.post(accept_ride)
		self.assertEqual(response.status_code, 409)

	def test_passenger_cannot_accept(self):
		response = self.post(accept_ride, user=self.passenger)
		self.assertEqual(response.status_code, 403)


class PickupEvidenceTests(RideHandlerTestCase):
	def setUp(self):
		super().setUp()
		self.accept_in_past()

	def test_arrival_is_recorded_once(self):
		response = self.post(arrived_at_pickup)
		self.assertEqual(response.status_code, 200)
		self.ride.refresh_from_db()
		first = self.ride.driver_arrived_at_pickup_at
		self.assertIsNotNone(first)

		response = self.post(arrived_at_pickup)
		self.assertEqual(response.status_code, 200)
		self.ride.refresh_from_db()
		self.assertEqual(self.ride.driver_arrived_at_pickup_at, first)

	def test_call_attempt_is_recorded_once(self):
		self.post(rider_call_attempt)
		self.ride.refresh_from_db()
		first = self.ride.rider_call_attempted_at
		self.assertIsNotNone(first)

		self.post(rider_call_attempt)
		self.ride.refresh_from_db()
		self.assertEqual(self.ride.rider_call_attempted_at, first)

	def test_other_drivers_ride_is_not_found(self):
		other = User.objects.create_user(
			username='driver_two',
			password='driver1234',
			role='driver',
			phone_number='9000000002'
		)
		DriverProfile.objects.create(user=other, vehicle_number='WB-1002')

		response = self.post(arrived_at_pickup, user=other)

		self.assertEqual(response.status_code, 404)

	def test_current_ride(self):
		request = self.factory.get('/handle/current/')
		force_authenticate(request, user=self.driver)
		response = driver_current_ride(request)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['id'], self.ride.id)


class DriverCancelTests(RideHandlerTestCase):
	def assert_cancelled(self, response, category, charged, strike):
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['outcome']['category'], category)
		self.assertEqual(response.data['outcome']['rider_charged_amount'], charged)
		self.assertEqual(response.data['outcome']['driver_compensation_amount'], charged)
		self.assertEqual(response.data['outcome']['driver_strike_type'], strike)

		self.ride.refresh_from_db()
		self.profile.refresh_from_db()
		self.assertEqual(self.ride.status, 'cancelled_driver')
		self.assertIsNotNone(self.ride.cancelled_at)
		self.assertEqual(self.ride.cancellation_category, category)
		self.assertEqual(self.ride.rider_charged_amount, Decimal(charged))
		self.assertEqual(self.ride.driver_compensation_amount, Decimal(charged))
		self.assertEqual(self.ride.driver_strike_type, strike)
		self.assertEqual(self.profile.status, 'available')

	def test_moderate_effort_charges_and_compensates(self):
		self.accept_in_past(seconds_ago=120, accept_meters=2000)
		self.move_driver(1500)

		response = self.post(driver_cancel_ride, {'reason': 'Too far'})

		self.assert_cancelled(response, 'moderate_effort', 30, 'light')
		self.assertEqual(self.ride.cancellation_reason, 'Too far')

		strike = DriverCancellationStrike.objects.get()
		self.assertEqual(strike.strike_type, 'light')
		self.assertEqual(strike.ride_id, self.ride.id)

		entry = DriverWalletTransaction.objects.get()
		self.assertEqual(entry.type, 'credit')
		self.assertEqual(entry.amount, Decimal('30'))
		self.assertEqual(entry.reference_type, 'cancellation_compensation')
		self.assertEqual(entry.reference_id, str(self.ride.id))
		self.assertEqual(self.driver.wallet.balance, Decimal('30'))

	def test_high_effort_with_posted_position(self):
		self.accept_in_past(seconds_ago=300, accept_meters=2000)

		response = self.post(driver_cancel_ride, {
			'latitude': str(south_of_pickup(200)),
			'longitude': str(PICKUP_LNG),
		})

		self.assert_cancelled(response, 'high_effort', 50, 'light')

	def test_low_movement_is_full_strike(self):
		self.accept_in_past(seconds_ago=50)

		response = self.post(driver_cancel_ride)

		self.assert_cancelled(response, 'low_movement_fault', 0, 'full')
		self.assertEqual(DriverCancellationStrike.objects.get().strike_type, 'full')
		self.assertFalse(DriverWalletTransaction.objects.exists())
		self.assertEqual(self.ride.cancellation_reason, 'Cancelled by driver')

	def test_free_window(self):
		self.accept_in_past(seconds_ago=10)

		response = self.post(driver_cancel_ride)

		self.assert_cancelled(response, 'free_window', 0, 'none')
		self.assertFalse(DriverCancellationStrike.objects.exists())

	def test_valid_reason_is_recorded_without_penalty(self):
		self.accept_in_past(seconds_ago=600)

		response = self.post(driver_cancel_ride, {'reason': 'Flat tyre', 'reason_type': 'vehicle_breakdown'})

		self.assert_cancelled(response, 'valid_reason', 0, 'none')
		self.assertEqual(self.ride.driver_cancellation_reason_type, 'vehicle_breakdown')
		self.assertEqual(response.data['valid_reason_cancels_last_7_days'], 1)
		self.assertEqual(DriverValidReasonCancel.objects.get().reason_type, 'vehicle_breakdown')
		self.assertFalse(DriverCancellationStrike.objects.exists())

	def test_unknown_reason_type_is_not_waived(self):
		self.accept_in_past(seconds_ago=600)

		response = self.post(driver_cancel_ride, {'reason_type': 'traffic'})

		self.assert_cancelled(response, 'low_movement_fault', 0, 'full')
		self.assertFalse(DriverValidReasonCancel.objects.exists())

	def test_rider_noshow(self):
		self.accept_in_past(seconds_ago=900)
		RideRequest.objects.filter(id=self.ride.id).update(
			driver_arrived_at_pickup_at=timezone.now() - timedelta(minutes=6),
			rider_call_attempted_at=timezone.now() - timedelta(minutes=2),
		)
		self.move_driver(50)

		response = self.post(driver_cancel_ride)

		self.assert_cancelled(response, 'rider_noshow', 50, 'none')
		self.assertEqual(self.driver.wallet.balance, Decimal('50'))

	def test_missing_location_is_rejected(self):
		self.accept_in_past()
		self.profile.current_latitude = None
		self.profile.current_longitude = None
		self.profile.save(update_fields=['current_latitude', 'current_longitude'])

		response = self.post(driver_cancel_ride)

		self.assertEqual(response.status_code, 400)
		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, 'accepted')

	def test_ride_not_accepted_by_driver(self):
		response = self.post(driver_cancel_ride)
		self.assertEqual(response.status_code, 404)

	@patch('realtime.notifications.notify_passenger_event', side_effect=RuntimeError('layer down'))
	def test_notification_failure_does_not_block_cancel(self, mock_notify):
		self.accept_in_past(seconds_ago=120)
		self.move_driver(1500)

		response = self.post(driver_cancel_ride)

		mock_notify.assert_called_once()
		self.assert_cancelled(response, 'moderate_effort', 30, 'light')

	def test_valid_reason_count_window(self):
		now = timezone.now()
		DriverValidReasonCancel.objects.create(
			driver=self.driver, ride=self.ride, reason_type='accident', cancelled_at=now - timedelta(days=8)
		)
		DriverValidReasonCancel.objects.create(
			driver=self.driver, ride=self.ride, reason_type='accident', cancelled_at=now - timedelta(days=2)
		)

		self.assertEqual(count_recent_valid_reason_cancels(self.driver.id, now=now), 1)
		self.assertEqual(count_recent_valid_reason_cancels(self.driver.id, days=30, now=now), 2)
