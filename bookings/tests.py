"""
Tests for bookings app.
Tests cover: Seat normalization, Booking flow, Conflicts and races, Cancellation, Booking API.
"""
from decimal import Decimal
from datetime import datetime, time as dt_time, timedelta
from unittest.mock import patch
from django.test import TestCase, TransactionTestCase
from django.contrib.auth import get_user_model
from django.db import DatabaseError
from django.db.models import F
from django.utils import timezone
from rest_framework.test import APITestCase
from rest_framework import status

from bookings.coordinator import BookingCoordinator, normalize_seat_numbers, seat_conflict
from bookings.models import Booking
from trips.inventory import TripInventoryManager
from trips.models import Trip
from trips.seats import blank_seat
from utils.exceptions import (
    AlreadyCancelled, Forbidden, InsufficientInventory, InvalidRequest,
    NotFound, SeatConflict, StorageError,
)
from utils.storage import RecordStore

User = get_user_model()


def make_trip(total_seats=10, price=Decimal('45.00'), days_ahead=3, time='08:00'):
    return Trip.objects.create(
        source='New York',
        destination='Boston',
        date=timezone.localdate() + timedelta(days=days_ahead),
        time=time,
        price=price,
        total_seats=total_seats,
        seats=[blank_seat(n) for n in range(1, total_seats + 1)],
        available_seats=total_seats,
    )


def build_coordinator(isolation='auto'):
    store = RecordStore(isolation=isolation)
    return BookingCoordinator(store, TripInventoryManager(store))


# =============================================================================
# UNIT TESTS - Request normalization
# =============================================================================

class SeatNormalizationTests(TestCase):
    """Test seat list parsing before any trip is read."""

    def test_accepts_numbers_strings_and_labels(self):
        self.assertEqual(normalize_seat_numbers([1, '2', 'b1', ' A3 ']), [1, 2, 7, 3])

    def test_rejects_empty_selection(self):
        for value in ([], None, 'A1'):
            with self.assertRaises(InvalidRequest):
                normalize_seat_numbers(value)

    def test_rejects_unparsable_entries(self):
        with self.assertRaises(InvalidRequest) as ctx:
            normalize_seat_numbers([1, 'window', True])

        self.assertIn('window', ctx.exception.message)

    def test_rejects_duplicates(self):
        with self.assertRaises(InvalidRequest) as ctx:
            normalize_seat_numbers([4, 'A4', 5])

        self.assertIn('4', ctx.exception.message)

    def test_conflict_message_singular_and_plural(self):
        one = seat_conflict([1])
        self.assertEqual(one.message, 'Seat A1 (1) is already booked. Please select different seats.')
        self.assertEqual(one.data, {'seats': [{'number': 1, 'label': 'A1'}]})

        many = seat_conflict([8, 2], just_now=True)
        self.assertEqual(
            many.message,
            'Seats A2, B2 (2, 8) were just booked by another user. Please select different seats.'
        )


# =============================================================================
# UNIT TESTS - Booking coordinator
# =============================================================================

class CreateBookingTests(TestCase):
    """Test the all-or-nothing seat reservation."""

    def setUp(self):
        self.alice = User.objects.create_user(email='alice@example.com', password='x12345', name='Alice')
        self.bob = User.objects.create_user(email='bob@example.com', password='x12345', name='Bob')
        self.trip = make_trip(total_seats=10)
        self.coordinator = build_coordinator()

    def test_booking_reserves_seats(self):
        booking = self.coordinator.create_booking(self.alice, self.trip.id, [3, 1], 'card')

        self.assertEqual(booking.status, Booking.STATUS_CONFIRMED)
        self.assertEqual(booking.seats, [3, 1])
        self.assertEqual(booking.total_amount, Decimal('90.00'))
        self.assertEqual(booking.seat_labels, ['A3', 'A1'])

        self.trip.refresh_from_db()
        self.assertEqual(self.trip.available_seats, 8)
        self.assertEqual(self.trip.get_seat(1)['booked_by'], self.alice.id)
        self.assertEqual(self.trip.get_seat(3)['booked_by'], self.alice.id)
        self.assertFalse(self.trip.get_seat(2)['is_booked'])

    def test_booking_repairs_partial_trip_first(self):
        Trip.objects.filter(pk=self.trip.pk).update(seats=[blank_seat(1)], available_seats=0)

        self.coordinator.create_booking(self.alice, self.trip.id, [10], 'cash')

        self.trip.refresh_from_db()
        self.assertEqual(len(self.trip.seats), 10)
        self.assertEqual(self.trip.available_seats, 9)

    def test_double_booking_is_refused(self):
        """Test booking seat 3 twice fails and keeps the first owner."""
        self.coordinator.create_booking(self.alice, self.trip.id, [3], 'card')

        with self.assertRaises(SeatConflict) as ctx:
            self.coordinator.create_booking(self.bob, self.trip.id, [3], 'card')

        self.assertIn('A3', ctx.exception.message)
        self.trip.refresh_from_db()
        self.assertEqual(self.trip.get_seat(3)['booked_by'], self.alice.id)
        self.assertEqual(Booking.objects.count(), 1)

    def test_out_of_range_fails_whole_request(self):
        """Test seats [2, 3, 30] on a 10-seat trip books nothing."""
        with self.assertRaises(InvalidRequest) as ctx:
            self.coordinator.create_booking(self.alice, self.trip.id, [2, 3, 30], 'card')

        self.assertIn('30', ctx.exception.message)
        self.trip.refresh_from_db()
        self.assertFalse(self.trip.get_seat(2)['is_booked'])
        self.assertFalse(self.trip.get_seat(3)['is_booked'])
        self.assertEqual(self.trip.available_seats, 10)

    def test_every_invalid_number_is_reported(self):
        with self.assertRaises(InvalidRequest) as ctx:
            self.coordinator.create_booking(self.alice, self.trip.id, [0, 11, 12], 'card')

        for number in ('0', '11', '12'):
            self.assertIn(number, ctx.exception.message)

    def test_every_conflicting_seat_is_reported(self):
        self.coordinator.create_booking(self.alice, self.trip.id, [1, 2], 'card')

        with self.assertRaises(SeatConflict) as ctx:
            self.coordinator.create_booking(self.bob, self.trip.id, [1, 2, 5], 'card')

        self.assertEqual([s['number'] for s in ctx.exception.data['seats']], [1, 2])
        self.assertTrue(ctx.exception.message.startswith('Seats A1, A2 (1, 2) are already booked'))

    def test_insufficient_inventory(self):
        """Test a stale count lower than the request is reported as insufficient."""
        small = make_trip(total_seats=2)
        self.coordinator.create_booking(self.alice, small.id, [1], 'card')

        with patch.object(self.coordinator.inventory, 'repair', return_value=False):
            Trip.objects.filter(pk=small.pk).update(available_seats=0)
            with self.assertRaises(InsufficientInventory):
                self.coordinator.create_booking(self.bob, small.id, [2], 'card')

    def test_unknown_trip_and_payment_method(self):
        with self.assertRaises(NotFound):
            self.coordinator.create_booking(self.alice, 999999, [1], 'card')
        with self.assertRaises(InvalidRequest):
            self.coordinator.create_booking(self.alice, self.trip.id, [1], 'cheque')

    def test_seat_taken_between_check_and_write(self):
        """Test the pre-write re-read catches a seat booked by another request."""
        coordinator = build_coordinator(isolation='best_effort')
        original = coordinator.inventory.load_and_repair
        reads = []

        def racing_read(trip_id, session=None):
            trip = original(trip_id, session)
            reads.append(trip_id)
            if len(reads) == 1:
                seats = [dict(seat) for seat in trip.seats]
                seats[4] = {'number': 5, 'is_booked': True, 'booked_by': self.bob.id}
                Trip.objects.filter(pk=trip_id).update(
                    seats=seats, available_seats=F('available_seats') - 1, version=F('version') + 1
                )
            return trip

        with patch.object(coordinator.inventory, 'load_and_repair', side_effect=racing_read):
            with self.assertRaises(SeatConflict) as ctx:
                coordinator.create_booking(self.alice, self.trip.id, [5, 6], 'card')

        self.assertIn('just booked by another user', ctx.exception.message)
        self.trip.refresh_from_db()
        self.assertEqual(self.trip.get_seat(5)['booked_by'], self.bob.id)
        self.assertFalse(self.trip.get_seat(6)['is_booked'])

    def test_lost_write_is_retried(self):
        """Test a concurrent trip write forces a re-read and the booking still lands."""
        original = self.coordinator.inventory.persist
        writes = []

        def racing_persist(trip, session=None):
            writes.append(trip.version)
            if len(writes) == 1:
                Trip.objects.filter(pk=trip.pk).update(version=F('version') + 1)
            return original(trip, session)

        with patch.object(self.coordinator.inventory, 'persist', side_effect=racing_persist):
            booking = self.coordinator.create_booking(self.alice, self.trip.id, [4], 'upi')

        self.assertEqual(len(writes), 2)
        self.trip.refresh_from_db()
        self.assertTrue(self.trip.get_seat(4)['is_booked'])
        self.assertEqual(booking.trip_id, self.trip.id)

    def test_best_effort_releases_seats_when_booking_insert_fails(self):
        coordinator = build_coordinator(isolation='best_effort')

        with patch.object(coordinator.store, 'insert_booking', side_effect=DatabaseError('disk full')):
            with self.assertRaises(StorageError):
                coordinator.create_booking(self.alice, self.trip.id, [1, 2], 'card')

        self.trip.refresh_from_db()
        self.assertFalse(self.trip.get_seat(1)['is_booked'])
        self.assertEqual(self.trip.available_seats, 10)
        self.assertEqual(Booking.objects.count(), 0)


class CancelBookingTests(TestCase):
    """Test cancellation releases seats and is one-way."""

    def setUp(self):
        self.alice = User.objects.create_user(email='alice@example.com', password='x12345', name='Alice')
        self.bob = User.objects.create_user(email='bob@example.com', password='x12345', name='Bob')
        self.trip = make_trip(total_seats=10)
        self.coordinator = build_coordinator()
        self.booking = self.coordinator.create_booking(self.alice, self.trip.id, [1, 2], 'card')

    def test_cancel_restores_seats(self):
        """Test cancelling [1, 2] frees both and adds exactly 2 back."""
        self.trip.refresh_from_db()
        after_booking = self.trip.available_seats

        booking = self.coordinator.cancel_booking(self.alice, self.booking.id)

        self.assertEqual(booking.status, Booking.STATUS_CANCELLED)
        self.assertIsNotNone(booking.cancelled_at)
        self.trip.refresh_from_db()
        self.assertEqual(self.trip.available_seats, after_booking + 2)
        self.assertFalse(self.trip.get_seat(1)['is_booked'])
        self.assertIsNone(self.trip.get_seat(2)['booked_by'])

    def test_cancel_recomputes_from_seat_map(self):
        """Test a drifted count is corrected rather than incremented."""
        Trip.objects.filter(pk=self.trip.pk).update(available_seats=3)

        self.coordinator.cancel_booking(self.alice, self.booking.id)

        self.trip.refresh_from_db()
        self.assertEqual(self.trip.available_seats, 10)

    def test_only_owner_can_cancel(self):
        with self.assertRaises(Forbidden):
            self.coordinator.cancel_booking(self.bob, self.booking.id)

        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.STATUS_CONFIRMED)

    def test_second_cancel_is_an_error(self):
        self.coordinator.cancel_booking(self.alice, self.booking.id)

        with self.assertRaises(AlreadyCancelled):
            self.coordinator.cancel_booking(self.alice, self.booking.id)

    def test_missing_booking(self):
        with self.assertRaises(NotFound):
            self.coordinator.cancel_booking(self.alice, 999999)

    def test_cancel_succeeds_after_trip_deleted(self):
        self.coordinator.inventory.delete_trip(self.trip.id)

        booking = self.coordinator.cancel_booking(self.alice, self.booking.id)

        self.assertEqual(booking.status, Booking.STATUS_CANCELLED)
        self.assertIsNone(booking.trip_id)

    def test_seats_rebooked_by_someone_else_are_kept(self):
        """Test cancel only frees seats still held by the booking's owner."""
        trip = Trip.objects.get(pk=self.trip.pk)
        seats = trip.seats
        seats[1] = {'number': 2, 'is_booked': True, 'booked_by': self.bob.id}
        Trip.objects.filter(pk=trip.pk).update(seats=seats)

        self.coordinator.cancel_booking(self.alice, self.booking.id)

        self.trip.refresh_from_db()
        self.assertFalse(self.trip.get_seat(1)['is_booked'])
        self.assertEqual(self.trip.get_seat(2)['booked_by'], self.bob.id)
        self.assertEqual(self.trip.available_seats, 9)

    def test_best_effort_cancel_succeeds_when_release_fails(self):
        """Test a failed seat release still returns the cancelled booking."""
        coordinator = build_coordinator(isolation='best_effort')

        with patch.object(coordinator.inventory, 'persist', return_value=False):
            booking = coordinator.cancel_booking(self.alice, self.booking.id)

        self.assertEqual(booking.status, Booking.STATUS_CANCELLED)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.STATUS_CANCELLED)
        self.trip.refresh_from_db()
        self.assertTrue(self.trip.get_seat(1)['is_booked'])


class TransactionalRollbackTests(TransactionTestCase):
    """Test a failure inside a transactional operation leaves nothing half-applied."""

    def setUp(self):
        self.alice = User.objects.create_user(email='alice@example.com', password='x12345', name='Alice')
        self.trip = make_trip(total_seats=10)
        self.coordinator = build_coordinator(isolation='transactional')

    def test_failed_booking_insert_rolls_back_seats(self):
        with patch.object(self.coordinator.store, 'insert_booking', side_effect=DatabaseError('disk full')):
            with self.assertRaises(StorageError):
                self.coordinator.create_booking(self.alice, self.trip.id, [1, 2], 'card')

        self.trip.refresh_from_db()
        self.assertFalse(self.trip.get_seat(1)['is_booked'])
        self.assertFalse(self.trip.get_seat(2)['is_booked'])
        self.assertEqual(self.trip.available_seats, 10)
        self.assertEqual(Booking.objects.count(), 0)

    def test_failed_release_keeps_booking_confirmed(self):
        """Test the cancel can be retried after a rolled-back release."""
        booking = self.coordinator.create_booking(self.alice, self.trip.id, [1, 2], 'card')

        with patch.object(self.coordinator.inventory, 'persist', return_value=False):
            with self.assertRaises(StorageError):
                self.coordinator.cancel_booking(self.alice, booking.id)

        booking.refresh_from_db()
        self.assertEqual(booking.status, Booking.STATUS_CONFIRMED)
        self.assertIsNone(booking.cancelled_at)

        self.coordinator.cancel_booking(self.alice, booking.id)

        self.trip.refresh_from_db()
        self.assertEqual(self.trip.available_seats, 10)


class ListBookingsTests(TestCase):
    """Test upcoming/past partition and owner/admin reads."""

    def setUp(self):
        self.alice = User.objects.create_user(email='alice@example.com', password='x12345', name='Alice')
        self.admin = User.objects.create_user(email='admin@example.com', password='x12345', name='Admin', is_admin=True)
        self.coordinator = build_coordinator()

    def test_partition(self):
        future = make_trip(days_ahead=5)
        past = make_trip(days_ahead=-5)
        upcoming = self.coordinator.create_booking(self.alice, future.id, [1], 'card')
        cancelled = self.coordinator.create_booking(self.alice, future.id, [2], 'card')
        self.coordinator.cancel_booking(self.alice, cancelled.id)
        travelled = self.coordinator.create_booking(self.alice, past.id, [1], 'cash')

        groups = self.coordinator.list_bookings_for_user(self.alice)

        self.assertEqual([b.id for b in groups['upcoming']], [upcoming.id])
        self.assertEqual({b.id for b in groups['past']}, {cancelled.id, travelled.id})
        self.assertEqual([b.id for b in groups['all']], [travelled.id, cancelled.id, upcoming.id])

    def test_departure_time_of_day_counts(self):
        """Test a trip leaving earlier today is already past."""
        trip = make_trip(days_ahead=0, time='10:00')
        booking = self.coordinator.create_booking(self.alice, trip.id, [1], 'card')
        noon = timezone.make_aware(datetime.combine(trip.date, dt_time(12, 0)))

        groups = self.coordinator.list_bookings_for_user(self.alice, now=noon)

        self.assertEqual([b.id for b in groups['past']], [booking.id])

    def test_bookings_of_deleted_trips_are_past(self):
        trip = make_trip(days_ahead=5)
        booking = self.coordinator.create_booking(self.alice, trip.id, [1], 'card')
        self.coordinator.inventory.delete_trip(trip.id)

        groups = self.coordinator.list_bookings_for_user(self.alice)

        self.assertEqual([b.id for b in groups['past']], [booking.id])

    def test_get_booking_owner_or_admin(self):
        bob = User.objects.create_user(email='bob@example.com', password='x12345', name='Bob')
        booking = self.coordinator.create_booking(self.alice, make_trip().id, [1], 'card')

        self.assertEqual(self.coordinator.get_booking(self.alice, booking.id).id, booking.id)
        self.assertEqual(self.coordinator.get_booking(self.admin, booking.id).id, booking.id)
        with self.assertRaises(Forbidden):
            self.coordinator.get_booking(bob, booking.id)
        with self.assertRaises(NotFound):
            self.coordinator.get_booking(self.alice, 999999)


# =============================================================================
# INTEGRATION TESTS - Booking API
# =============================================================================

class BookingAPITests(APITestCase):
    """End-to-end booking flow over HTTP."""

    def setUp(self):
        for email, name, is_admin in [
            ('alice@example.com', 'Alice', False),
            ('bob@example.com', 'Bob', False),
            ('admin@example.com', 'Admin', True),
        ]:
            User.objects.create_user(email=email, password='TestPass123!', name=name, is_admin=is_admin)
        self.trip = make_trip(total_seats=40, price=Decimal('45.00'))

    def login(self, email):
        response = self.client.post('/api/login/', {'email': email, 'password': 'TestPass123!'}, format='json')
        token = response.data['data']['tokens']['access']
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')

    def book(self, seats, payment_method='card'):
        return self.client.post('/api/bookings/', {
            'trip_id': self.trip.id,
            'seats': seats,
            'payment_method': payment_method,
        }, format='json')

    def trip_data(self):
        return self.client.get(f'/api/trips/{self.trip.id}/').data['data']

    def test_book_conflict_cancel_scenario(self):
        """Test A books [1, 2], B is refused seat 1, A cancels and all 40 seats are free again."""
        self.login('alice@example.com')
        response = self.book([1, 2])

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        booking = response.data['data']
        self.assertEqual(booking['total_amount'], '90.00')
        self.assertEqual(booking['seat_labels'], ['A1', 'A2'])
        self.assertEqual(booking['user']['email'], 'alice@example.com')
        self.assertEqual(booking['trip']['id'], self.trip.id)

        trip = self.trip_data()
        self.assertEqual(trip['available_seats'], 38)
        alice_id = booking['user']['id']
        self.assertEqual([s['booked_by'] for s in trip['seats'][:2]], [alice_id, alice_id])

        self.login('bob@example.com')
        response = self.book([1])
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertFalse(response.data['success'])
        self.assertIn('A1', response.data['message'])
        self.assertIn('(1)', response.data['message'])
        self.assertEqual(response.data['data']['seats'], [{'number': 1, 'label': 'A1'}])

        self.login('alice@example.com')
        response = self.client.put(f"/api/bookings/{booking['id']}/cancel/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['status'], 'cancelled')

        trip = self.trip_data()
        self.assertEqual(trip['available_seats'], 40)
        self.assertFalse(trip['seats'][0]['is_booked'])
        self.assertFalse(trip['seats'][1]['is_booked'])

    def test_book_by_label(self):
        self.login('alice@example.com')

        response = self.book(['B1'])

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['seats'], [7])

    def test_invalid_requests(self):
        self.login('alice@example.com')

        self.assertEqual(self.book([]).status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self.book([41]).status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self.book([1], payment_method='cheque').status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post('/api/bookings/', {'trip_id': 999999, 'seats': [1], 'payment_method': 'card'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_booking_requires_authentication(self):
        response = self.book([1])

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.data['success'])

    def test_user_bookings_groups(self):
        self.login('alice@example.com')
        self.book([5])

        response = self.client.get('/api/bookings/user/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.data['data']
        self.assertEqual(len(data['upcoming']), 1)
        self.assertEqual(len(data['past']), 0)
        self.assertEqual(len(data['all']), 1)

    def test_cancel_rules(self):
        self.login('alice@example.com')
        booking_id = self.book([3]).data['data']['id']

        self.login('bob@example.com')
        response = self.client.put(f'/api/bookings/{booking_id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.login('alice@example.com')
        self.assertEqual(self.client.put(f'/api/bookings/{booking_id}/cancel/').status_code, status.HTTP_200_OK)
        response = self.client.put(f'/api/bookings/{booking_id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['message'], 'Booking is already cancelled.')

    def test_detail_and_admin_listing(self):
        self.login('alice@example.com')
        booking_id = self.book([3]).data['data']['id']
        self.assertEqual(self.client.get(f'/api/bookings/{booking_id}/').status_code, status.HTTP_200_OK)
        self.assertEqual(self.client.get('/api/bookings/all/').status_code, status.HTTP_403_FORBIDDEN)

        self.login('bob@example.com')
        self.assertEqual(self.client.get(f'/api/bookings/{booking_id}/').status_code, status.HTTP_403_FORBIDDEN)

        self.login('admin@example.com')
        self.assertEqual(self.client.get(f'/api/bookings/{booking_id}/').status_code, status.HTTP_200_OK)
        response = self.client.get('/api/bookings/all/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)

    def test_deleted_trip_shows_as_null(self):
        self.login('alice@example.com')
        booking_id = self.book([3]).data['data']['id']
        Trip.objects.filter(pk=self.trip.pk).delete()

        response = self.client.get(f'/api/bookings/{booking_id}/')

        self.assertIsNone(response.data['data']['trip'])
