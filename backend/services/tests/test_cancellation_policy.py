from dataclasses import FrozenInstanceError, replace
from datetime import datetime, timedelta, timezone as dt_timezone
from unittest import TestCase

from common.utils.geo import calculate_distance, distance_toward_pickup
from services.cancellation_policy import (
	VALID_CANCELLATION_REASONS,
	DEFAULT_FEE_SCHEDULE,
	CancellationCategory,
	CancellationInput,
	FeeSchedule,
	StrikeType,
	compute_driver_cancellation_outcome,
	normalize_vehicle_type,
)

PICKUP_LAT = 12.9716
PICKUP_LNG = 77.5946
# One metre of latitude along a meridian, matching the haversine radius.
METERS_PER_DEGREE = 6371000 * 3.141592653589793 / 180
NOW = datetime(2026, 3, 1, 10, 0, 0, tzinfo=dt_timezone.utc)


def south_of_pickup(meters):
	return PICKUP_LAT - meters / METERS_PER_DEGREE


def make_input(**overrides):
	"""A sedan ride accepted 60s ago, 2 km south of pickup, still at the accept point."""
	base = CancellationInput(
		ride_id=1,
		driver_id=7,
		driver_lat=south_of_pickup(2000),
		driver_lng=PICKUP_LNG,
		pickup_latitude=PICKUP_LAT,
		pickup_longitude=PICKUP_LNG,
		driver_accepted_at=NOW - timedelta(seconds=60),
		driver_lat_at_accept=south_of_pickup(2000),
		driver_lng_at_accept=PICKUP_LNG,
		vehicle_type='sedan',
	)
	return replace(base, **overrides)


def moved(progress_meters, start=2000, **overrides):
	return make_input(
		driver_lat_at_accept=south_of_pickup(start),
		driver_lat=south_of_pickup(start - progress_meters),
		**overrides
	)


def noshow_input(**overrides):
	fields = dict(
		driver_lat=PICKUP_LAT,
		driver_arrived_at_pickup_at=NOW - timedelta(minutes=6),
		rider_call_attempted=True,
	)
	fields.update(overrides)
	return make_input(**fields)


class GeoTests(TestCase):
	def test_meridian_distance_in_meters(self):
		distance = calculate_distance(PICKUP_LAT, PICKUP_LNG, south_of_pickup(1000), PICKUP_LNG)
		self.assertAlmostEqual(distance, 1000, places=3)

	def test_distance_is_symmetric_and_zero_for_same_point(self):
		a = (12.9716, 77.5946)
		b = (13.0827, 80.2707)
		self.assertAlmostEqual(calculate_distance(*a, *b), calculate_distance(*b, *a), places=6)
		self.assertEqual(calculate_distance(*a, *a), 0)

	def test_accepts_decimals(self):
		from decimal import Decimal
		distance = calculate_distance(Decimal('12.9716'), Decimal('77.5946'), 12.9716, 77.5946)
		self.assertEqual(distance, 0)

	def test_progress_toward_pickup_is_floored_at_zero(self):
		away = distance_toward_pickup(
			south_of_pickup(1000), PICKUP_LNG,
			south_of_pickup(1500), PICKUP_LNG,
			PICKUP_LAT, PICKUP_LNG,
		)
		self.assertEqual(away, 0)

		toward = distance_toward_pickup(
			south_of_pickup(1000), PICKUP_LNG,
			south_of_pickup(400), PICKUP_LNG,
			PICKUP_LAT, PICKUP_LNG,
		)
		self.assertAlmostEqual(toward, 600, places=3)


class FeeScheduleTests(TestCase):
	def test_normalize_vehicle_type(self):
		cases = {
			'Bike': 'bike',
			'two_wheeler': 'bike',
			'2W': 'bike',
			'Auto Rickshaw': 'auto',
			'3w': 'auto',
			'SUV': 'xl',
			'Mahindra XUV': 'xl',
			'Sedan XL': 'xl',
			'Hatchback': 'mini',
			'  mini  ': 'mini',
			'Prime Sedan': 'sedan',
			'cab': 'sedan',
			'': 'sedan',
			None: 'sedan',
		}
		for raw, expected in cases.items():
			with self.subTest(raw=raw):
				self.assertEqual(normalize_vehicle_type(raw), expected)

	def test_default_amounts(self):
		schedule = DEFAULT_FEE_SCHEDULE
		self.assertEqual(
			[schedule.partial(v) for v in ('bike', 'auto', 'mini', 'sedan', 'suv')],
			[15, 20, 30, 30, 40],
		)
		self.assertEqual(
			[schedule.full(v) for v in ('bike', 'auto', 'mini', 'sedan', 'suv')],
			[25, 30, 50, 50, 70],
		)
		self.assertEqual(
			[schedule.noshow(v) for v in ('bike', 'auto', 'mini', 'sedan', 'suv')],
			[25, 30, 50, 50, 80],
		)
		self.assertEqual(
			[schedule.noshow_wait(v) for v in ('bike', 'auto', 'mini', 'sedan', 'xl')],
			[3, 4, 5, 5, 5],
		)

	def test_lookup_falls_back_to_sedan_then_fifty(self):
		only_sedan = FeeSchedule(partial_fee={'sedan': 33})
		self.assertEqual(only_sedan.partial('suv'), 33)

		no_sedan = FeeSchedule(partial_fee={'bike': 5})
		self.assertEqual(no_sedan.partial('auto'), 50)
		self.assertEqual(no_sedan.partial('bike'), 5)

	def test_schedule_is_immutable(self):
		with self.assertRaises(TypeError):
			DEFAULT_FEE_SCHEDULE.partial_fee['bike'] = 1
		with self.assertRaises(FrozenInstanceError):
			DEFAULT_FEE_SCHEDULE.full_fee = {}

	def test_caller_dict_is_copied(self):
		table = {'sedan': 10}
		schedule = FeeSchedule(full_fee=table)
		table['sedan'] = 99
		self.assertEqual(schedule.full('sedan'), 10)


class ValidReasonTests(TestCase):
	def test_every_valid_reason_waives_penalty(self):
		# Would otherwise be a full strike: no movement after the free window.
		for reason in VALID_CANCELLATION_REASONS:
			with self.subTest(reason=reason):
				outcome = compute_driver_cancellation_outcome(
					make_input(cancellation_reason_type=reason, driver_accepted_at=NOW - timedelta(hours=1)),
					NOW,
				)
				self.assertEqual(outcome.category, CancellationCategory.VALID_REASON)
				self.assertEqual(outcome.rider_charged_amount, 0)
				self.assertEqual(outcome.driver_compensation_amount, 0)
				self.assertEqual(outcome.driver_strike_type, StrikeType.NONE)
				self.assertEqual(outcome.driver_cancellation_reason_type, reason)

	def test_valid_reason_beats_noshow_and_effort(self):
		outcome = compute_driver_cancellation_outcome(
			noshow_input(cancellation_reason_type='accident'), NOW
		)
		self.assertEqual(outcome.category, CancellationCategory.VALID_REASON)

		outcome = compute_driver_cancellation_outcome(
			moved(1800, cancellation_reason_type='road_blockage'), NOW
		)
		self.assertEqual(outcome.category, CancellationCategory.VALID_REASON)

	def test_free_text_reason_is_not_a_valid_reason(self):
		outcome = compute_driver_cancellation_outcome(
			make_input(cancellation_reason_type='traffic jam'), NOW
		)
		self.assertEqual(outcome.category, CancellationCategory.LOW_MOVEMENT_FAULT)
		self.assertIsNone(outcome.driver_cancellation_reason_type)


class FreeWindowTests(TestCase):
	def test_within_45_seconds_is_free(self):
		for seconds in (0, 10, 45):
			with self.subTest(seconds=seconds):
				outcome = compute_driver_cancellation_outcome(
					make_input(driver_accepted_at=NOW - timedelta(seconds=seconds)), NOW
				)
				self.assertEqual(outcome.category, CancellationCategory.FREE_WINDOW)
				self.assertEqual(outcome.rider_charged_amount, 0)
				self.assertEqual(outcome.driver_strike_type, StrikeType.NONE)

	def test_46_seconds_is_outside_window(self):
		outcome = compute_driver_cancellation_outcome(
			make_input(driver_accepted_at=NOW - timedelta(seconds=46)), NOW
		)
		self.assertNotEqual(outcome.category, CancellationCategory.FREE_WINDOW)

	def test_missing_accept_time_counts_as_zero_elapsed(self):
		outcome = compute_driver_cancellation_outcome(make_input(driver_accepted_at=None), NOW)
		self.assertEqual(outcome.category, CancellationCategory.FREE_WINDOW)

	def test_free_window_beats_noshow(self):
		outcome = compute_driver_cancellation_outcome(
			noshow_input(driver_accepted_at=NOW - timedelta(seconds=30)), NOW
		)
		self.assertEqual(outcome.category, CancellationCategory.FREE_WINDOW)


class RiderNoShowTests(TestCase):
	def test_noshow_charges_rider_and_compensates_driver(self):
		outcome = compute_driver_cancellation_outcome(noshow_input(), NOW)
		self.assertEqual(outcome.category, CancellationCategory.RIDER_NOSHOW)
		self.assertEqual(outcome.rider_charged_amount, 50)
		self.assertEqual(outcome.driver_compensation_amount, 50)
		self.assertEqual(outcome.driver_strike_type, StrikeType.NONE)

	def test_noshow_fee_and_wait_depend_on_vehicle(self):
		bike = compute_driver_cancellation_outcome(
			noshow_input(vehicle_type='bike', driver_arrived_at_pickup_at=NOW - timedelta(minutes=3)), NOW
		)
		self.assertEqual(bike.category, CancellationCategory.RIDER_NOSHOW)
		self.assertEqual(bike.rider_charged_amount, 25)

		suv = compute_driver_cancellation_outcome(noshow_input(vehicle_type='SUV'), NOW)
		self.assertEqual(suv.rider_charged_amount, 80)

	def test_call_timestamp_is_enough_evidence(self):
		outcome = compute_driver_cancellation_outcome(
			noshow_input(rider_call_attempted=False, rider_call_attempted_at=NOW - timedelta(minutes=2)),
			NOW,
		)
		self.assertEqual(outcome.category, CancellationCategory.RIDER_NOSHOW)

	def test_each_condition_is_required(self):
		# The accept point is 2 km away, so without no-show the driver lands in high effort.
		broken = {
			'not arrived': dict(driver_arrived_at_pickup_at=None),
			'too far from pickup': dict(driver_lat=south_of_pickup(130)),
			'did not wait long enough': dict(driver_arrived_at_pickup_at=NOW - timedelta(minutes=4, seconds=59)),
			'no call evidence': dict(rider_call_attempted=False, rider_call_attempted_at=None),
		}
		for label, override in broken.items():
			with self.subTest(label):
				outcome = compute_driver_cancellation_outcome(noshow_input(**override), NOW)
				self.assertNotEqual(outcome.category, CancellationCategory.RIDER_NOSHOW)

	def test_within_wait_radius(self):
		outcome = compute_driver_cancellation_outcome(
			noshow_input(driver_lat=south_of_pickup(110)), NOW
		)
		self.assertEqual(outcome.category, CancellationCategory.RIDER_NOSHOW)


class DistanceFaultTests(TestCase):
	def test_low_movement_is_full_strike_without_charge(self):
		outcome = compute_driver_cancellation_outcome(moved(299), NOW)
		self.assertEqual(outcome.category, CancellationCategory.LOW_MOVEMENT_FAULT)
		self.assertEqual(outcome.rider_charged_amount, 0)
		self.assertEqual(outcome.driver_compensation_amount, 0)
		self.assertEqual(outcome.driver_strike_type, StrikeType.FULL)

	def test_moderate_effort_charges_partial_fee(self):
		outcome = compute_driver_cancellation_outcome(moved(301), NOW)
		self.assertEqual(outcome.category, CancellationCategory.MODERATE_EFFORT)
		self.assertEqual(outcome.rider_charged_amount, 30)
		self.assertEqual(outcome.driver_compensation_amount, 30)
		self.assertEqual(outcome.driver_strike_type, StrikeType.LIGHT)

	def test_high_effort_charges_full_fee(self):
		outcome = compute_driver_cancellation_outcome(moved(1501), NOW)
		self.assertEqual(outcome.category, CancellationCategory.HIGH_EFFORT)
		self.assertEqual(outcome.rider_charged_amount, 50)
		self.assertEqual(outcome.driver_strike_type, StrikeType.LIGHT)

		outcome = compute_driver_cancellation_outcome(moved(1499), NOW)
		self.assertEqual(outcome.category, CancellationCategory.MODERATE_EFFORT)

	def test_fees_by_vehicle(self):
		self.assertEqual(compute_driver_cancellation_outcome(moved(800, vehicle_type='bike'), NOW).rider_charged_amount, 15)
		self.assertEqual(compute_driver_cancellation_outcome(moved(800, vehicle_type='auto'), NOW).rider_charged_amount, 20)
		self.assertEqual(compute_driver_cancellation_outcome(moved(800, vehicle_type='xl'), NOW).rider_charged_amount, 40)
		self.assertEqual(compute_driver_cancellation_outcome(moved(1800, vehicle_type='suv'), NOW).rider_charged_amount, 70)
		self.assertEqual(compute_driver_cancellation_outcome(moved(1800, vehicle_type='auto'), NOW).rider_charged_amount, 30)

	def test_driver_vehicle_type_wins_over_requested(self):
		outcome = compute_driver_cancellation_outcome(
			moved(800, vehicle_type='bike', requested_vehicle_type='suv'), NOW
		)
		self.assertEqual(outcome.rider_charged_amount, 15)

		outcome = compute_driver_cancellation_outcome(
			moved(800, vehicle_type=None, requested_vehicle_type='suv'), NOW
		)
		self.assertEqual(outcome.rider_charged_amount, 40)

		outcome = compute_driver_cancellation_outcome(
			moved(800, vehicle_type=None, requested_vehicle_type=None), NOW
		)
		self.assertEqual(outcome.rider_charged_amount, 30)

	def test_moving_away_is_not_progress(self):
		outcome = compute_driver_cancellation_outcome(
			make_input(driver_lat_at_accept=south_of_pickup(1000), driver_lat=south_of_pickup(3000)),
			NOW,
		)
		self.assertEqual(outcome.category, CancellationCategory.LOW_MOVEMENT_FAULT)

	def test_missing_accept_position_uses_current_position(self):
		outcome = compute_driver_cancellation_outcome(
			make_input(
				driver_lat_at_accept=None,
				driver_lng_at_accept=None,
				driver_lat=south_of_pickup(100),
			),
			NOW,
		)
		self.assertEqual(outcome.category, CancellationCategory.LOW_MOVEMENT_FAULT)
		self.assertEqual(outcome.driver_strike_type, StrikeType.FULL)

	def test_fee_never_decreases_with_more_progress(self):
		previous = -1
		for progress in (0, 150, 299, 301, 900, 1499, 1501, 1999):
			with self.subTest(progress=progress):
				fee = compute_driver_cancellation_outcome(moved(progress), NOW).rider_charged_amount
				self.assertGreaterEqual(fee, previous)
				previous = fee

	def test_custom_schedule_is_used(self):
		schedule = FeeSchedule(partial_fee={'sedan': 12})
		outcome = compute_driver_cancellation_outcome(moved(800), NOW, fee_schedule=schedule)
		self.assertEqual(outcome.rider_charged_amount, 12)


class ScenarioTests(TestCase):
	def test_cancel_after_50_seconds_without_moving(self):
		outcome = compute_driver_cancellation_outcome(
			make_input(driver_accepted_at=NOW - timedelta(seconds=50)), NOW
		)
		self.assertEqual(outcome.category, CancellationCategory.LOW_MOVEMENT_FAULT)
		self.assertEqual(outcome.driver_strike_type, StrikeType.FULL)
		self.assertEqual(outcome.rider_charged_amount, 0)

	def test_sedan_moved_500m_toward_pickup_2km_away(self):
		outcome = compute_driver_cancellation_outcome(moved(500, start=2000), NOW)
		self.assertEqual(outcome.category, CancellationCategory.MODERATE_EFFORT)
		self.assertEqual(outcome.rider_charged_amount, 30)
		self.assertEqual(outcome.driver_strike_type, StrikeType.LIGHT)

	def test_outcome_is_deterministic_and_serializable(self):
		cancellation_input = moved(500)
		first = compute_driver_cancellation_outcome(cancellation_input, NOW)
		second = compute_driver_cancellation_outcome(cancellation_input, NOW)
		self.assertEqual(first, second)
		self.assertEqual(first.as_dict(), {
			'rider_charged_amount': 30,
			'driver_compensation_amount': 30,
			'driver_strike_type': 'light',
			'driver_cancellation_reason_type': None,
			'category': 'moderate_effort',
			'message': first.message,
		})
