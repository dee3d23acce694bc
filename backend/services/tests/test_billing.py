from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch

import requests
from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.utils import timezone

from accounts.models import User
from drivers.models import (
	DriverProfile,
	DriverSubscription,
	DriverWallet,
	DriverWalletTransaction,
	ImmutableTransactionError,
)
from realtime.push import send_push, send_push_to_driver
from services.billing import (
	InvalidWalletAmountError,
	apply_overtime_billing,
	credit_wallet,
	debit_wallet,
	drivers_with_billable_overtime,
	get_wallet_balance,
	is_in_grace_period,
)


def make_driver(username, vehicle_number):
	driver = User.objects.create_user(
		username=username,
		password='driver1234',
		role='driver',
		phone_number='9000000%03d' % (User.objects.count() + 1)
	)
	DriverProfile.objects.create(
		user=driver,
		vehicle_number=vehicle_number,
		status='available',
		fcm_token='device-token-%s' % username
	)
	return driver


class WalletTests(TestCase):
	def setUp(self):
		self.driver = make_driver('wallet_driver', 'KA-2001')

	def test_debit_creates_ledger_entry_and_may_go_negative(self):
		wallet, entry = debit_wallet(self.driver.id, 25, description='test', reference_type='manual', reference_id=9)

		self.assertEqual(wallet.balance, Decimal('-25'))
		self.assertEqual(entry.type, 'debit')
		self.assertEqual(entry.balance_before, Decimal('0'))
		self.assertEqual(entry.balance_after, Decimal('-25'))
		self.assertEqual(entry.reference_id, '9')
		self.assertEqual(get_wallet_balance(self.driver.id), Decimal('-25'))

	def test_credit_then_debit_chain_balances(self):
		credit_wallet(self.driver.id, Decimal('100'))
		debit_wallet(self.driver.id, Decimal('30'))

		entries = list(DriverWalletTransaction.objects.order_by('id'))
		self.assertEqual([e.type for e in entries], ['credit', 'debit'])
		self.assertEqual(entries[1].balance_before, entries[0].balance_after)
		for entry in entries:
			delta = entry.amount if entry.type == 'credit' else -entry.amount
			self.assertEqual(entry.balance_after, entry.balance_before + delta)
		self.assertEqual(get_wallet_balance(self.driver.id), Decimal('70'))

	def test_non_positive_amount_is_rejected(self):
		for amount in (0, -5):
			with self.subTest(amount=amount):
				with self.assertRaises(InvalidWalletAmountError):
					debit_wallet(self.driver.id, amount)
		self.assertFalse(DriverWalletTransaction.objects.exists())

	def test_balance_without_wallet_is_zero(self):
		self.assertEqual(get_wallet_balance(self.driver.id), Decimal('0'))
		self.assertFalse(DriverWallet.objects.filter(driver=self.driver).exists())

	def test_ledger_entries_are_append_only(self):
		_, entry = credit_wallet(self.driver.id, 10)

		entry.description = 'edited'
		with self.assertRaises(ImmutableTransactionError):
			entry.save()
		with self.assertRaises(ImmutableTransactionError):
			entry.delete()

		entry.refresh_from_db()
		self.assertEqual(entry.description, '')


class OvertimeBillingTests(TestCase):
	def setUp(self):
		self.driver = make_driver('overtime_driver', 'KA-3001')
		self.now = timezone.now().replace(microsecond=0)

	def subscribe(self, expire, **kwargs):
		return DriverSubscription.objects.create(
			driver=self.driver,
			start_time=expire - timedelta(days=30),
			expire=expire,
			amount_paid=Decimal('499'),
			**kwargs
		)

	def test_no_expired_subscription_returns_none(self):
		self.assertIsNone(apply_overtime_billing(self.driver.id, now=self.now))

		self.subscribe(self.now + timedelta(days=2))
		self.assertIsNone(apply_overtime_billing(self.driver.id, now=self.now))
		self.assertIsNone(is_in_grace_period(self.driver.id, now=self.now))

	def test_bills_whole_hours_and_advances_checkpoint_by_hours_billed(self):
		expire = self.now - timedelta(hours=2, minutes=10)
		subscription = self.subscribe(expire)

		result = apply_overtime_billing(self.driver.id, now=self.now)

		self.assertEqual(result.hours, 2)
		self.assertEqual(result.charged, Decimal('20'))
		self.assertEqual(result.wallet_balance_after, Decimal('-20'))
		self.assertFalse(result.grace_period_ended)
		self.assertAlmostEqual(result.grace_hours_remaining, 1 + 50 / 60)

		subscription.refresh_from_db()
		self.assertEqual(subscription.last_overtime_billing_at, expire + timedelta(hours=2))

		entry = DriverWalletTransaction.objects.get()
		self.assertEqual(entry.type, 'debit')
		self.assertEqual(entry.amount, Decimal('20'))
		self.assertEqual(entry.balance_before, Decimal('0'))
		self.assertEqual(entry.balance_after, Decimal('-20'))
		self.assertEqual(entry.reference_type, 'overtime')
		self.assertEqual(entry.reference_id, str(subscription.id))
		self.assertIn('2 hr', entry.description)

	def test_rerun_in_same_hour_bills_nothing(self):
		self.subscribe(self.now - timedelta(hours=2, minutes=10))
		apply_overtime_billing(self.driver.id, now=self.now)

		result = apply_overtime_billing(self.driver.id, now=self.now + timedelta(minutes=30))

		self.assertEqual(result.hours, 0)
		self.assertEqual(result.charged, Decimal('0'))
		self.assertEqual(result.wallet_balance_after, Decimal('-20'))
		self.assertEqual(DriverWalletTransaction.objects.count(), 1)

	def test_leftover_minutes_carry_over(self):
		expire = self.now - timedelta(hours=6)
		subscription = self.subscribe(expire)

		hours = []
		for offset in (timedelta(minutes=30), timedelta(hours=1, minutes=20),
				timedelta(hours=2, minutes=59), timedelta(hours=6)):
			result = apply_overtime_billing(self.driver.id, now=expire + offset)
			hours.append(result.hours)

		self.assertEqual(hours, [0, 1, 1, 2])
		subscription.refresh_from_db()
		self.assertEqual(subscription.last_overtime_billing_at, expire + timedelta(hours=4))
		self.assertEqual(get_wallet_balance(self.driver.id), Decimal('-40'))

	def test_grace_period_caps_billing(self):
		expire = self.now - timedelta(hours=5)
		subscription = self.subscribe(expire, last_overtime_billing_at=expire + timedelta(hours=3))

		result = apply_overtime_billing(self.driver.id, now=self.now)

		self.assertEqual(result.hours, 1)
		self.assertEqual(result.charged, Decimal('10'))
		self.assertTrue(result.grace_period_ended)
		self.assertEqual(result.grace_hours_remaining, 0)
		subscription.refresh_from_db()
		self.assertEqual(subscription.last_overtime_billing_at, expire + timedelta(hours=4))

		later = apply_overtime_billing(self.driver.id, now=self.now + timedelta(days=1))
		self.assertEqual(later.hours, 0)
		self.assertTrue(later.grace_period_ended)

	def test_existing_balance_is_debited(self):
		credit_wallet(self.driver.id, Decimal('100'))
		self.subscribe(self.now - timedelta(hours=2, minutes=10))

		result = apply_overtime_billing(self.driver.id, now=self.now)

		self.assertEqual(result.wallet_balance_after, Decimal('80'))

	@override_settings(OVERTIME_RATE_PER_HOUR=15, OVERTIME_GRACE_HOURS=2)
	def test_rate_and_grace_come_from_settings(self):
		self.subscribe(self.now - timedelta(hours=3))

		result = apply_overtime_billing(self.driver.id, now=self.now)

		self.assertEqual(result.hours, 2)
		self.assertEqual(result.charged, Decimal('30'))
		self.assertTrue(result.grace_period_ended)

	def test_latest_expired_subscription_is_billed(self):
		self.subscribe(self.now - timedelta(days=40))
		recent = self.subscribe(self.now - timedelta(hours=1, minutes=5))

		apply_overtime_billing(self.driver.id, now=self.now)

		entry = DriverWalletTransaction.objects.get()
		self.assertEqual(entry.reference_id, str(recent.id))
		self.assertEqual(entry.amount, Decimal('10'))

	def test_failure_rolls_back_debit_and_checkpoint(self):
		subscription = self.subscribe(self.now - timedelta(hours=2, minutes=10))

		with patch.object(DriverWalletTransaction.objects, 'create', side_effect=DatabaseError('disk full')):
			with self.assertRaises(DatabaseError):
				apply_overtime_billing(self.driver.id, now=self.now)

		subscription.refresh_from_db()
		self.assertIsNone(subscription.last_overtime_billing_at)
		self.assertEqual(get_wallet_balance(self.driver.id), Decimal('0'))

		# The next run bills the same hours.
		result = apply_overtime_billing(self.driver.id, now=self.now)
		self.assertEqual(result.hours, 2)

	def test_notification_sent_after_commit(self):
		self.subscribe(self.now - timedelta(hours=1, minutes=5))

		with patch('realtime.notifications.notify_overtime_charge') as mock_notify:
			with self.captureOnCommitCallbacks(execute=True) as callbacks:
				apply_overtime_billing(self.driver.id, now=self.now)

		self.assertEqual(len(callbacks), 1)
		mock_notify.assert_called_once()
		args, kwargs = mock_notify.call_args
		self.assertEqual(args, (self.driver.id,))
		self.assertEqual(kwargs['amount'], Decimal('10'))
		self.assertEqual(kwargs['hours'], 1)
		self.assertFalse(kwargs['grace_period_ended'])

	def test_no_notification_when_nothing_billed(self):
		self.subscribe(self.now - timedelta(minutes=20))

		with self.captureOnCommitCallbacks(execute=True) as callbacks:
			result = apply_overtime_billing(self.driver.id, now=self.now)

		self.assertEqual(result.hours, 0)
		self.assertEqual(callbacks, [])

	@patch('realtime.notifications.send_push_to_driver', side_effect=RuntimeError('push down'))
	def test_notification_failure_keeps_the_charge(self, mock_push):
		self.subscribe(self.now - timedelta(hours=5))

		with self.captureOnCommitCallbacks(execute=True):
			result = apply_overtime_billing(self.driver.id, now=self.now)

		mock_push.assert_called_once()
		self.assertEqual(mock_push.call_args[0][1], 'Grace period ended')
		self.assertEqual(result.charged, Decimal('40'))
		self.assertEqual(get_wallet_balance(self.driver.id), Decimal('-40'))

	def test_grace_status(self):
		self.subscribe(self.now - timedelta(hours=1))
		status = is_in_grace_period(self.driver.id, now=self.now)
		self.assertTrue(status.in_grace)
		self.assertAlmostEqual(status.grace_hours_remaining, 3.0)

		status = is_in_grace_period(self.driver.id, now=self.now + timedelta(hours=4))
		self.assertFalse(status.in_grace)
		self.assertEqual(status.grace_hours_remaining, 0)

	def test_drivers_with_billable_overtime(self):
		unbilled = self.driver
		settled = make_driver('settled_driver', 'KA-3002')
		active = make_driver('active_driver', 'KA-3003')

		self.subscribe(self.now - timedelta(hours=2))
		settled_expire = self.now - timedelta(hours=6)
		DriverSubscription.objects.create(
			driver=settled,
			expire=settled_expire,
			last_overtime_billing_at=settled_expire + timedelta(hours=4)
		)
		DriverSubscription.objects.create(driver=active, expire=self.now + timedelta(days=3))

		self.assertEqual(drivers_with_billable_overtime(now=self.now), [unbilled.id])

	def test_sweep_ignores_superseded_subscriptions(self):
		self.subscribe(self.now - timedelta(days=40))
		latest_expire = self.now - timedelta(hours=3)
		self.subscribe(latest_expire, last_overtime_billing_at=latest_expire + timedelta(hours=3))

		self.assertEqual(drivers_with_billable_overtime(now=self.now), [])

	def renew(self, start_time):
		return DriverSubscription.objects.create(
			driver=self.driver,
			start_time=start_time,
			expire=start_time + timedelta(days=30),
			amount_paid=Decimal('499')
		)

	def test_prompt_renewal_is_not_billed(self):
		expire = self.now - timedelta(hours=5)
		subscription = self.subscribe(expire)
		self.renew(expire + timedelta(minutes=5))

		result = apply_overtime_billing(self.driver.id, now=self.now)

		self.assertEqual(result.hours, 0)
		self.assertEqual(result.charged, Decimal('0'))
		self.assertFalse(result.grace_period_ended)
		self.assertFalse(DriverWalletTransaction.objects.exists())
		subscription.refresh_from_db()
		self.assertIsNone(subscription.last_overtime_billing_at)
		self.assertEqual(drivers_with_billable_overtime(now=self.now), [])

	def test_hours_before_renewal_are_billed(self):
		expire = self.now - timedelta(hours=5)
		subscription = self.subscribe(expire)
		self.renew(expire + timedelta(hours=2, minutes=30))

		self.assertEqual(drivers_with_billable_overtime(now=self.now), [self.driver.id])
		result = apply_overtime_billing(self.driver.id, now=self.now)

		self.assertEqual(result.hours, 2)
		self.assertEqual(result.charged, Decimal('20'))
		self.assertFalse(result.grace_period_ended)
		subscription.refresh_from_db()
		self.assertEqual(subscription.last_overtime_billing_at, expire + timedelta(hours=2))
		self.assertEqual(drivers_with_billable_overtime(now=self.now), [])

	def test_early_renewal_covers_from_old_expiry(self):
		expire = self.now - timedelta(hours=3)
		self.subscribe(expire)
		self.renew(expire - timedelta(days=1))

		result = apply_overtime_billing(self.driver.id, now=self.now)

		self.assertEqual(result.hours, 0)
		self.assertFalse(DriverWalletTransaction.objects.exists())


def fake_credentials(project_id='demo-project'):
	credentials = MagicMock(project_id=project_id, valid=True, token='access-token')
	return MagicMock(return_value=credentials)


class PushTests(TestCase):
	def setUp(self):
		self.driver = make_driver('push_driver', 'KA-4001')

	@override_settings(FCM_CREDENTIALS_FILE='')
	@patch('realtime.push.requests.post')
	def test_push_disabled_without_credentials(self, mock_post):
		self.assertFalse(send_push('token', 'title', 'body'))
		mock_post.assert_not_called()

	@override_settings(FCM_CREDENTIALS_FILE='/etc/fcm.json', FCM_PROJECT_ID='', FCM_TIMEOUT_SECONDS=2)
	@patch('realtime.push.requests.post')
	def test_push_uses_v1_api_with_string_data(self, mock_post):
		with patch('realtime.push._credentials', fake_credentials()):
			self.assertTrue(send_push_to_driver(self.driver.id, 'Hi', 'There', data={'hours': 2}))

		args, kwargs = mock_post.call_args
		self.assertEqual(args[0], 'https://fcm.googleapis.com/v1/projects/demo-project/messages:send')
		message = kwargs['json']['message']
		self.assertEqual(message['token'], 'device-token-push_driver')
		self.assertEqual(message['notification'], {'title': 'Hi', 'body': 'There'})
		self.assertEqual(message['data'], {'hours': '2'})
		self.assertEqual(kwargs['headers']['Authorization'], 'Bearer access-token')
		self.assertEqual(kwargs['timeout'], 2)

	@override_settings(FCM_CREDENTIALS_FILE='/etc/fcm.json', FCM_PROJECT_ID='configured-project')
	@patch('realtime.push.requests.post')
	def test_configured_project_wins(self, mock_post):
		with patch('realtime.push._credentials', fake_credentials()):
			send_push('token', 'title', 'body')

		self.assertIn('/projects/configured-project/', mock_post.call_args[0][0])

	@override_settings(FCM_CREDENTIALS_FILE='/missing/fcm.json')
	@patch('realtime.push.requests.post')
	def test_unreadable_credentials_return_false(self, mock_post):
		with patch('realtime.push._credentials', MagicMock(side_effect=FileNotFoundError('no file'))):
			self.assertFalse(send_push('token', 'title', 'body'))
		mock_post.assert_not_called()

	@override_settings(FCM_CREDENTIALS_FILE='/etc/fcm.json')
	@patch('realtime.push.requests.post', side_effect=requests.ConnectionError('unreachable'))
	def test_push_http_failure_returns_false(self, mock_post):
		with patch('realtime.push._credentials', fake_credentials()):
			self.assertFalse(send_push('token', 'title', 'body'))

	@override_settings(FCM_CREDENTIALS_FILE='/etc/fcm.json')
	@patch('realtime.push.requests.post')
	def test_driver_without_token_is_skipped(self, mock_post):
		DriverProfile.objects.filter(user=self.driver).update(fcm_token=None)
		self.assertFalse(send_push_to_driver(self.driver.id, 'Hi', 'There'))
		mock_post.assert_not_called()
