from unittest.mock import MagicMock, patch

import redis
from django.test import TestCase, override_settings
from rest_framework.test import APIRequestFactory

from drivers.tasks import sweep_overtime_billing_task
from .views import health_check


@override_settings(REDIS_URL='redis://cache:6379/0', HEALTH_CHECK_TIMEOUT_SECONDS=0.5)
class HealthCheckTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		redis_patcher = patch('app_backend.views.redis.Redis.from_url')
		self.mock_from_url = redis_patcher.start()
		self.addCleanup(redis_patcher.stop)

		self.celery = MagicMock()
		self.celery.tasks = {sweep_overtime_billing_task.name: sweep_overtime_billing_task}
		self.celery.control.ping.return_value = [{'celery@worker-1': {'ok': 'pong'}}]
		celery_patcher = patch('app_backend.views.celery_app', self.celery)
		celery_patcher.start()
		self.addCleanup(celery_patcher.stop)

	def get(self):
		return health_check(self.factory.get('/health/'))

	def test_all_services_healthy(self):
		response = self.get()

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['status'], 'healthy')
		self.assertEqual(set(response.data['services']), {'database', 'redis', 'channels', 'celery'})
		self.mock_from_url.assert_called_once_with('redis://cache:6379/0', socket_timeout=0.5)
		self.celery.control.ping.assert_called_once_with(timeout=0.5)

	def test_no_worker_reply_is_unhealthy(self):
		self.celery.control.ping.return_value = []

		response = self.get()

		self.assertEqual(response.status_code, 503)
		self.assertEqual(response.data['status'], 'unhealthy')
		self.assertEqual(response.data['services']['celery'], 'unhealthy: no worker replied')
		self.assertEqual(response.data['services']['redis'], 'healthy')

	def test_unregistered_billing_task_is_unhealthy(self):
		self.celery.tasks = {}

		response = self.get()

		self.assertEqual(response.status_code, 503)
		self.assertIn('not registered', response.data['services']['celery'])
		self.celery.control.ping.assert_not_called()

	def test_redis_down_is_unhealthy(self):
		self.mock_from_url.return_value.ping.side_effect = redis.ConnectionError('refused')

		response = self.get()

		self.assertEqual(response.status_code, 503)
		self.assertEqual(response.data['services']['redis'], 'unhealthy: refused')
		self.assertEqual(response.data['services']['celery'], 'healthy')
