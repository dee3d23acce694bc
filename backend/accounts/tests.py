from django.contrib.admin.sites import AdminSite
from django.core.exceptions import FieldDoesNotExist
from django.test import TestCase

from drivers.models import DriverProfile
from .admin import UserAdmin
from .models import User


class UserModelTests(TestCase):
	def test_user_carries_only_role_and_phone(self):
		with self.assertRaises(FieldDoesNotExist):
			User._meta.get_field('completed_rides')

		user = User.objects.create_user(username='rider', password='pass1234', role='user', phone_number='9000000000')
		self.assertEqual(str(user), 'rider (Passenger)')


class UserAdminTests(TestCase):
	def setUp(self):
		self.admin = UserAdmin(User, AdminSite())

	def test_driver_status_column(self):
		driver = User.objects.create_user(username='driver', password='driver1234', role='driver', phone_number='9000000001')
		DriverProfile.objects.create(user=driver, vehicle_number='WB-1001', status='busy')
		passenger = User.objects.create_user(username='rider', password='pass1234', role='user', phone_number='9000000002')

		self.assertEqual(self.admin.driver_status(User.objects.get(id=driver.id)), 'busy')
		self.assertEqual(self.admin.driver_status(passenger), '-')
