from datetime import timedelta
from decimal import Decimal
from io import StringIO
from unittest.mock import patch

from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from services.billing import credit_wallet, debit_wallet
from .models import DriverProfile, DriverSubscription, DriverWalletTransaction
from .tasks import apply_overtime_billing_task, sweep_overtime_billing_task
from .views import (
	DriverStatusView,
	DriverSubscriptionView,
	DriverOvertimeView,
	DriverWalletView,
	DriverWalletTransactionsView,
	DriverLocationUpdateView,
)


class DriverApiTestCase(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.driver = User.objects.create_user(
			username='driver_one',
			password='driver1234',
			role='driver',
			phone_number='9000000001'
		)
		self.profile = DriverProfile.objects.create(
			user=self.driver,
			vehicle_number='WB-1001',
			status='offline',
			current_latitude=28.6139,
			current_longitude=77.2090
		)
		self.passenger = User.objects.create_user(
			username='passenger',
			password='pass1234',
			role='user',
			phone_number='9000000000'
		)

	def subscribe(self, expire, **kwargs):
		return DriverSubscription.objects.create(driver=self.driver, expire=expire, **kwargs)

	def call(self, view, method='get', user=None, data=None, path='/api/driver/'):
		if method == 'get':
			request = self.factory.get(path, data)
		else:
			request = getattr(self.factory, method)(path, data, format='json')
		force_authenticate(request, user=user or self.driver)
		return view.as_view()(request)


class DriverStatusTests(DriverApiTestCase):
	def test_passenger_is_refused(self):
		response = self.call(DriverStatusView, user=self.passenger)
		self.assertEqual(response.status_code, 403)

	def test_go_online_with_active_subscription(self):
		self.subscribe(timezone.now() + timedelta(days=10))

		response = self.call(DriverStatusView, 'put', data={'status': 'available'})

		self.assertEqual(response.status_code, 200)
		self.assertNotIn('overtime', response.data)
		self.profile.refresh_from_db()
		self.assertEqual(self.profile.status, 'available')

	def test_go_online_in_grace_bills_overtime(self):
		self.subscribe(timezone.now() - timedelta(hours=1, minutes=10))

		response = self.call(DriverStatusView, 'put', data={'status': 'available'})

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['overtime']['hours'], 1)
		self.assertEqual(Decimal(response.data['overtime']['charged']), Decimal('10'))
		self.assertFalse(response.data['overtime']['grace_period_ended'])
		self.profile.refresh_from_db()
		self.assertEqual(self.profile.status, 'available')

	def test_go_online_after_grace_is_refused(self):
		self.profile.status = 'available'
		self.profile.save(update_fields=['status'])
		self.subscribe(timezone.now() - timedelta(hours=5))

		response = self.call(DriverStatusView, 'put', data={'status': 'available'})

		self.assertEqual(response.status_code, 403)
		self.assertTrue(response.data['grace_period_ended'])
		self.profile.refresh_from_db()
		self.assertEqual(self.profile.status, 'offline')
		# Remaining grace hours are still billed before refusing.
		self.assertEqual(self.driver.wallet.balance, Decimal('-40'))

	def test_driver_without_any_subscription_is_not_gated(self):
		response = self.call(DriverStatusView, 'put', data={'status': 'available'})
		self.assertEqual(response.status_code, 200)

	def test_going_offline_never_bills(self):
		self.subscribe(timezone.now() - timedelta(hours=5))

		response = self.call(DriverStatusView, 'put', data={'status': 'offline'})

		self.assertEqual(response.status_code, 200)
		self.assertFalse(DriverWalletTransaction.objects.exists())

	def test_invalid_status(self):
		response = self.call(DriverStatusView, 'put', data={'status': 'busy'})
		self.assertEqual(response.status_code, 400)


class DriverLocationTests(DriverApiTestCase):
	def test_location_update(self):
		response = self.call(DriverLocationUpdateView, 'post', data={'latitude': '28.700000', 'longitude': '77.100000'})

		self.assertEqual(response.status_code, 200)
		self.profile.refresh_from_db()
		self.assertEqual(self.profile.current_latitude, Decimal('28.700000'))

	def test_location_requires_both_coordinates(self):
		response = self.call(DriverLocationUpdateView, 'post', data={'latitude': '28.7'})
		self.assertEqual(response.status_code, 400)

	def test_location_on_the_equator_is_reported(self):
		self.profile.current_latitude = 0
		self.profile.current_longitude = 0
		self.profile.save(update_fields=['current_latitude', 'current_longitude'])

		response = self.call(DriverLocationUpdateView)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['latitude'], 0.0)
		self.assertEqual(response.data['longitude'], 0.0)

	def test_missing_location_is_none(self):
		self.profile.current_latitude = None
		self.profile.current_longitude = None
		self.profile.save(update_fields=['current_latitude', 'current_longitude'])

		response = self.call(DriverLocationUpdateView)

		self.assertIsNone(response.data['latitude'])


class DriverSubscriptionTests(DriverApiTestCase):
	def test_no_subscription(self):
		response = self.call(DriverSubscriptionView)
		self.assertEqual(response.status_code, 200)
		self.assertIsNone(response.data['subscription'])

	def test_expired_subscription_in_grace(self):
		subscription = self.subscribe(timezone.now() - timedelta(minutes=90))

		response = self.call(DriverSubscriptionView)

		self.assertEqual(response.status_code, 200)
		data = response.data['subscription']
		self.assertTrue(data['in_grace_period'])
		self.assertEqual(data['status'], 'expired')
		self.assertGreater(data['grace_hours_remaining'], 2)
		subscription.refresh_from_db()
		self.assertEqual(subscription.status, 'expired')
		self.assertIsNotNone(subscription.last_overtime_billing_at)

	def test_active_subscription(self):
		self.subscribe(timezone.now() + timedelta(days=1))
		response = self.call(DriverSubscriptionView)
		self.assertEqual(response.data['message'], 'Subscription active')
		self.assertFalse(response.data['subscription']['in_grace_period'])


class DriverOvertimeViewTests(DriverApiTestCase):
	def test_nothing_to_bill(self):
		response = self.call(DriverOvertimeView, 'post')
		self.assertEqual(response.status_code, 200)
		self.assertIsNone(response.data['overtime'])

	def test_bills_on_demand(self):
		self.subscribe(timezone.now() - timedelta(hours=3, minutes=1))

		response = self.call(DriverOvertimeView, 'post')

		self.assertEqual(response.data['overtime']['hours'], 3)
		self.assertEqual(Decimal(response.data['overtime']['wallet_balance_after']), Decimal('-30'))


class DriverWalletTests(DriverApiTestCase):
	def test_wallet_created_on_first_read(self):
		response = self.call(DriverWalletView)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(Decimal(response.data['balance']), Decimal('0'))
		self.assertEqual(response.data['currency'], 'INR')

	def test_transactions_are_paginated_newest_first(self):
		credit_wallet(self.driver.id, 100, description='top up')
		for _ in range(3):
			debit_wallet(self.driver.id, 10, description='overtime')

		response = self.call(DriverWalletTransactionsView, data={'limit': 2, 'offset': 1})

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['count'], 4)
		self.assertEqual(response.data['limit'], 2)
		self.assertEqual(response.data['offset'], 1)
		balances = [Decimal(t['balance_after']) for t in response.data['transactions']]
		self.assertEqual(balances, [Decimal('80'), Decimal('90')])

	def test_limit_is_clamped(self):
		response = self.call(DriverWalletTransactionsView, data={'limit': 500, 'offset': -3})
		self.assertEqual(response.data['limit'], 100)
		self.assertEqual(response.data['offset'], 0)

		response = self.call(DriverWalletTransactionsView, data={'limit': 'abc'})
		self.assertEqual(response.data['limit'], 50)


class OvertimeJobTests(DriverApiTestCase):
	def test_task_bills_driver(self):
		self.subscribe(timezone.now() - timedelta(hours=2, minutes=1))

		result = apply_overtime_billing_task(self.driver.id)

		self.assertEqual(result['hours'], 2)
		self.assertEqual(Decimal(result['charged']), Decimal('20'))

	def test_task_without_expired_subscription(self):
		self.assertIsNone(apply_overtime_billing_task(self.driver.id))

	@patch('drivers.tasks.apply_overtime_billing_task.delay')
	def test_sweep_queues_billable_drivers(self, mock_delay):
		self.subscribe(timezone.now() - timedelta(hours=1, minutes=30))

		queued = sweep_overtime_billing_task()

		self.assertEqual(queued, 1)
		mock_delay.assert_called_once_with(self.driver.id)

	def test_management_command(self):
		self.subscribe(timezone.now() - timedelta(hours=2, minutes=30))
		out = StringIO()

		call_command('apply_overtime_billing', stdout=out)

		self.assertIn('Checked 1 driver(s); billed 1 for a total of 20', out.getvalue())
		self.assertEqual(self.driver.wallet.balance, Decimal('-20'))

		out = StringIO()
		call_command('apply_overtime_billing', driver=self.driver.id, stdout=out)
		self.assertIn('billed 0', out.getvalue())

	def go_online(self, status='available'):
		self.profile.status = status
		self.profile.save(update_fields=['status'])

	@patch('realtime.notifications.notify_driver_event')
	def test_task_forces_driver_offline_after_grace(self, mock_notify):
		self.go_online()
		self.subscribe(timezone.now() - timedelta(hours=5))

		result = apply_overtime_billing_task(self.driver.id)

		self.assertTrue(result['grace_period_ended'])
		self.assertTrue(result['forced_offline'])
		self.profile.refresh_from_db()
		self.assertEqual(self.profile.status, 'offline')
		self.assertEqual(mock_notify.call_args[0][0], 'forced_offline')

	def test_task_keeps_driver_online_during_grace(self):
		self.go_online()
		self.subscribe(timezone.now() - timedelta(hours=2, minutes=1))

		result = apply_overtime_billing_task(self.driver.id)

		self.assertFalse(result['forced_offline'])
		self.profile.refresh_from_db()
		self.assertEqual(self.profile.status, 'available')

	def test_renewed_driver_stays_online(self):
		self.go_online()
		expire = timezone.now() - timedelta(hours=5)
		self.subscribe(expire)
		self.subscribe(expire + timedelta(days=30), start_time=expire + timedelta(minutes=5))

		result = apply_overtime_billing_task(self.driver.id)

		self.assertEqual(result['hours'], 0)
		self.assertFalse(result['forced_offline'])
		self.profile.refresh_from_db()
		self.assertEqual(self.profile.status, 'available')

	@patch('drivers.tasks.apply_overtime_billing_task.delay')
	def test_sweep_queues_online_driver_past_grace(self, mock_delay):
		self.go_online('busy')
		expire = timezone.now() - timedelta(hours=8)
		self.subscribe(expire, last_overtime_billing_at=expire + timedelta(hours=4))

		queued = sweep_overtime_billing_task()

		self.assertEqual(queued, 1)
		mock_delay.assert_called_once_with(self.driver.id)

	@patch('drivers.tasks.apply_overtime_billing_task.delay')
	def test_sweep_skips_offline_driver_past_grace(self, mock_delay):
		expire = timezone.now() - timedelta(hours=8)
		self.subscribe(expire, last_overtime_billing_at=expire + timedelta(hours=4))

		self.assertEqual(sweep_overtime_billing_task(), 0)
		mock_delay.assert_not_called()

	@patch('realtime.notifications.notify_driver_event')
	def test_management_command_forces_offline(self, mock_notify):
		self.go_online()
		expire = timezone.now() - timedelta(hours=8)
		self.subscribe(expire, last_overtime_billing_at=expire + timedelta(hours=4))
		out = StringIO()

		call_command('apply_overtime_billing', stdout=out)

		self.assertIn('Checked 1 driver(s); billed 0', out.getvalue())
		self.assertIn('forced 1 offline', out.getvalue())
		self.profile.refresh_from_db()
		self.assertEqual(self.profile.status, 'offline')
