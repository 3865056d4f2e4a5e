"""
Tests for trips app.
Tests cover: Seat labels, Seat map repair, Storage handle, Admin inventory operations, Trip API.
"""
from decimal import Decimal
from datetime import timedelta
from unittest.mock import patch
from django.core.exceptions import ImproperlyConfigured
from django.db import DatabaseError
from django.test import TestCase
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APITestCase
from rest_framework import status

from trips.inventory import TripInventoryManager
from trips.models import Trip
from trips.seats import (
    MAX_TOTAL_SEATS, blank_seat, format_seat_labels, parse_seat_label, seat_label,
)
from utils.exceptions import InvalidRequest, NotFound, StorageError
from utils.storage import IsolationMode, RecordStore

User = get_user_model()


def make_trip(total_seats=10, seats=None, available_seats=None, days_ahead=3, **kwargs):
    """Store a trip as-is, without going through the inventory manager."""
    if seats is None:
        seats = [blank_seat(n) for n in range(1, total_seats + 1)]
    if available_seats is None:
        available_seats = total_seats - sum(1 for s in seats if s.get('is_booked'))
    fields = {
        'source': 'New York',
        'destination': 'Boston',
        'date': timezone.localdate() + timedelta(days=days_ahead),
        'time': '08:00',
        'price': Decimal('45.00'),
    }
    fields.update(kwargs)
    return Trip.objects.create(
        total_seats=total_seats, seats=seats, available_seats=available_seats, **fields
    )


def booked(number, user_id):
    return {'number': number, 'is_booked': True, 'booked_by': user_id}


# =============================================================================
# UNIT TESTS - Seat labels
# =============================================================================

class SeatLabelTests(TestCase):
    """Test seat number <-> label mapping for the 6-per-row layout."""

    def test_first_row(self):
        self.assertEqual(seat_label(1), 'A1')
        self.assertEqual(seat_label(6), 'A6')

    def test_row_wraps_every_six_seats(self):
        self.assertEqual(seat_label(7), 'B1')
        self.assertEqual(seat_label(40), 'G4')
        self.assertEqual(seat_label(MAX_TOTAL_SEATS), 'Z6')

    def test_round_trip_for_every_seat(self):
        """Test parsing a label gives back the original number."""
        for number in range(1, MAX_TOTAL_SEATS + 1):
            self.assertEqual(parse_seat_label(seat_label(number)), number)

    def test_parse_is_case_and_space_insensitive(self):
        self.assertEqual(parse_seat_label(' b3 '), 9)

    def test_parse_rejects_malformed_labels(self):
        for label in ['A0', 'A7', '1A', 'AA1', '', 'seat', None, 5]:
            self.assertIsNone(parse_seat_label(label), label)

    def test_format_orders_by_row_then_column(self):
        self.assertEqual(format_seat_labels([8, 1, 2]), 'A1, A2, B2')


# =============================================================================
# UNIT TESTS - Repair
# =============================================================================

class SeatRepairTests(TestCase):
    """Test load_and_repair brings stored trips back to one seat per number."""

    def setUp(self):
        self.store = RecordStore()
        self.inventory = TripInventoryManager(self.store)

    def assertConsistent(self, trip):
        numbers = [seat['number'] for seat in trip.seats]
        self.assertEqual(numbers, list(range(1, trip.total_seats + 1)))
        booked_count = sum(1 for seat in trip.seats if seat['is_booked'])
        self.assertEqual(trip.available_seats, trip.total_seats - booked_count)

    def test_partial_seat_map_is_completed(self):
        """Test a 5-seat trip stored with only seats 1, 3, 5 gets seats 2 and 4."""
        stored = make_trip(
            total_seats=5,
            seats=[blank_seat(5), booked(3, 42), blank_seat(1)],
            available_seats=99,
        )

        trip = self.inventory.load_and_repair(stored.id)

        self.assertConsistent(trip)
        self.assertFalse(trip.get_seat(2)['is_booked'])
        self.assertFalse(trip.get_seat(4)['is_booked'])
        self.assertEqual(trip.get_seat(3)['booked_by'], 42)
        self.assertEqual(trip.available_seats, 4)

        stored.refresh_from_db()
        self.assertEqual(len(stored.seats), 5)
        self.assertEqual(stored.available_seats, 4)

    def test_empty_seat_map_is_synthesized(self):
        stored = make_trip(total_seats=12, seats=[], available_seats=0)

        trip = self.inventory.load_and_repair(stored.id)

        self.assertConsistent(trip)
        self.assertEqual(trip.available_seats, 12)

    def test_duplicates_and_out_of_range_entries_are_dropped(self):
        """Test a booked duplicate wins and seats beyond total_seats are removed."""
        stored = make_trip(
            total_seats=3,
            seats=[blank_seat(1), booked(1, 7), blank_seat(2), blank_seat(9), {'number': 'x'}],
            available_seats=3,
        )

        trip = self.inventory.load_and_repair(stored.id)

        self.assertConsistent(trip)
        self.assertTrue(trip.get_seat(1)['is_booked'])
        self.assertEqual(trip.get_seat(1)['booked_by'], 7)
        self.assertEqual(trip.available_seats, 2)

    def test_stale_count_is_recomputed(self):
        stored = make_trip(
            total_seats=4,
            seats=[booked(1, 7), booked(2, 7), blank_seat(3), blank_seat(4)],
            available_seats=4,
        )

        trip = self.inventory.load_and_repair(stored.id)

        self.assertEqual(trip.available_seats, 2)

    def test_repair_is_idempotent(self):
        """Test a second repair returns the same seats and writes nothing."""
        stored = make_trip(total_seats=6, seats=[booked(4, 1)], available_seats=0)

        first = self.inventory.load_and_repair(stored.id)
        second = self.inventory.load_and_repair(stored.id)

        self.assertEqual(first.seats, second.seats)
        self.assertEqual(first.available_seats, second.available_seats)
        self.assertEqual(first.version, second.version)

    def test_consistent_trip_is_not_rewritten(self):
        stored = make_trip(total_seats=8)

        with patch.object(self.store, 'compare_and_set_trip') as cas:
            trip = self.inventory.load_and_repair(stored.id)

        cas.assert_not_called()
        self.assertEqual(trip.version, 0)

    def test_trip_without_seats_to_offer_is_left_alone(self):
        """Test total_seats below 1 never produces a seat array."""
        stored = make_trip(total_seats=0, seats=[], available_seats=0)

        trip = self.inventory.load_and_repair(stored.id)

        self.assertEqual(trip.seats, [])
        self.assertEqual(trip.version, 0)

    def test_missing_trip_raises_not_found(self):
        with self.assertRaises(NotFound):
            self.inventory.load_and_repair(999999)

    def test_lost_write_is_retried(self):
        """Test a concurrent write during repair forces a re-read instead of clobbering it."""
        stored = make_trip(total_seats=4, seats=[], available_seats=0)
        original = self.store.compare_and_set_trip
        calls = []

        def racing_write(trip, session=None):
            calls.append(trip.version)
            if len(calls) == 1:
                Trip.objects.filter(pk=trip.pk).update(version=trip.version + 1)
            return original(trip, session)

        with patch.object(self.store, 'compare_and_set_trip', side_effect=racing_write):
            trip = self.inventory.load_and_repair(stored.id)

        self.assertEqual(len(calls), 2)
        self.assertConsistent(trip)
        self.assertEqual(trip.version, 2)

    def test_list_filters_and_orders_trips(self):
        """Test substring route filters, exact date filter and departure ordering."""
        late = make_trip(days_ahead=2, time='18:00')
        early = make_trip(days_ahead=2, time='06:30', seats=[], available_seats=0)
        make_trip(days_ahead=1, source='Chicago', destination='Los Angeles')
        later_day = make_trip(days_ahead=5)

        trips = self.inventory.list_and_repair(source='new york', destination='BOS')
        self.assertEqual([t.id for t in trips], [early.id, late.id, later_day.id])
        for trip in trips:
            self.assertConsistent(trip)

        on_day = self.inventory.list_and_repair(on_date=timezone.localdate() + timedelta(days=2))
        self.assertEqual([t.id for t in on_day], [early.id, late.id])

    def test_repair_all_reports_rewritten_trips(self):
        broken = make_trip(total_seats=3, seats=[], available_seats=0)
        healthy = make_trip(total_seats=3, days_ahead=4)

        results = {trip.id: changed for trip, changed in self.inventory.repair_all()}

        self.assertEqual(results, {broken.id: True, healthy.id: False})


# =============================================================================
# UNIT TESTS - Storage handle
# =============================================================================

class RecordStoreTests(TestCase):
    """Test isolation mode selection and compare-and-set writes."""

    def test_isolation_mode_selection(self):
        self.assertEqual(RecordStore(isolation='transactional').resolve_isolation_mode(), IsolationMode.TRANSACTIONAL)
        self.assertEqual(RecordStore(isolation='best_effort').resolve_isolation_mode(), IsolationMode.BEST_EFFORT)
        # The default test database supports transactions
        self.assertEqual(RecordStore().resolve_isolation_mode(), IsolationMode.TRANSACTIONAL)

    def test_unknown_isolation_mode_rejected(self):
        with self.assertRaises(ImproperlyConfigured):
            RecordStore(isolation='sometimes')

    def test_session_carries_mode(self):
        with RecordStore(isolation='best_effort').session() as session:
            self.assertFalse(session.transactional)
        with RecordStore().session() as session:
            self.assertTrue(session.transactional)

    def test_database_failure_becomes_storage_error(self):
        with self.assertRaises(StorageError):
            with RecordStore().session():
                raise DatabaseError('connection lost')

    def test_stale_version_write_is_refused(self):
        store = RecordStore()
        trip = make_trip(total_seats=2)
        stale = Trip.objects.get(pk=trip.pk)

        trip.price = Decimal('50.00')
        self.assertTrue(store.compare_and_set_trip(trip))

        stale.price = Decimal('10.00')
        self.assertFalse(store.compare_and_set_trip(stale))

        trip.refresh_from_db()
        self.assertEqual(trip.price, Decimal('50.00'))
        self.assertEqual(trip.version, 1)


# =============================================================================
# UNIT TESTS - Admin inventory operations
# =============================================================================

class InventoryAdminTests(TestCase):
    """Test create, update, resize and delete keep the seat map intact."""

    def setUp(self):
        self.inventory = TripInventoryManager(RecordStore())

    def _create(self, total_seats=10):
        return self.inventory.create_trip(
            source='Atlanta',
            destination='Miami',
            date=timezone.localdate() + timedelta(days=4),
            time='09:15',
            price=Decimal('75.00'),
            total_seats=total_seats,
        )

    def test_create_trip_builds_seat_map(self):
        trip = self._create(total_seats=45)

        self.assertEqual(len(trip.seats), 45)
        self.assertEqual(trip.available_seats, 45)
        self.assertFalse(any(seat['is_booked'] for seat in trip.seats))

    def test_create_trip_rejects_oversized_bus(self):
        with self.assertRaises(InvalidRequest):
            self._create(total_seats=MAX_TOTAL_SEATS + 1)

    def test_update_keeps_seat_state(self):
        """Test a price update does not clobber booked seats."""
        trip = make_trip(total_seats=4, seats=[booked(2, 9)] + [blank_seat(n) for n in (1, 3, 4)])

        updated = self.inventory.update_trip(trip.id, {'price': Decimal('50.00')})

        self.assertEqual(updated.price, Decimal('50.00'))
        self.assertTrue(updated.get_seat(2)['is_booked'])
        self.assertEqual(updated.available_seats, 3)

    def test_update_rejects_seat_fields(self):
        trip = make_trip(total_seats=4)

        for field, value in [('seats', []), ('available_seats', 99)]:
            with self.assertRaises(InvalidRequest):
                self.inventory.update_trip(trip.id, {field: value})

    def test_update_rejects_same_source_and_destination(self):
        trip = make_trip(total_seats=4)

        with self.assertRaises(InvalidRequest):
            self.inventory.update_trip(trip.id, {'destination': 'new york'})

    def test_growing_inventory_adds_free_seats(self):
        trip = make_trip(total_seats=4, seats=[booked(1, 9)] + [blank_seat(n) for n in (2, 3, 4)])

        updated = self.inventory.update_trip(trip.id, {'total_seats': 8})

        self.assertEqual([seat['number'] for seat in updated.seats], list(range(1, 9)))
        self.assertEqual(updated.available_seats, 7)

    def test_shrinking_over_booked_seat_is_refused(self):
        trip = make_trip(total_seats=8, seats=[booked(7, 9)] + [blank_seat(n) for n in range(1, 7)] + [blank_seat(8)])

        with self.assertRaises(InvalidRequest) as ctx:
            self.inventory.update_trip(trip.id, {'total_seats': 6})

        self.assertIn('B1', ctx.exception.message)
        trip.refresh_from_db()
        self.assertEqual(trip.total_seats, 8)

    def test_shrinking_free_seats_is_allowed(self):
        trip = make_trip(total_seats=8, seats=[booked(2, 9)] + [blank_seat(n) for n in (1, 3, 4, 5, 6, 7, 8)])

        updated = self.inventory.update_trip(trip.id, {'total_seats': 6})

        self.assertEqual(len(updated.seats), 6)
        self.assertEqual(updated.available_seats, 5)

    def test_delete_trip(self):
        trip = make_trip()

        self.inventory.delete_trip(trip.id)

        self.assertFalse(Trip.objects.filter(pk=trip.id).exists())
        with self.assertRaises(NotFound):
            self.inventory.delete_trip(trip.id)


# =============================================================================
# INTEGRATION TESTS - Trip API
# =============================================================================

class TripAPITests(APITestCase):
    """Test trip endpoints: public reads, admin-only writes."""

    def setUp(self):
        User.objects.create_user(email='rider@example.com', password='RiderPass123!', name='Rider')
        User.objects.create_user(email='admin@example.com', password='AdminPass123!', name='Admin', is_admin=True)
        self.trip = make_trip(total_seats=5, seats=[blank_seat(1), booked(3, 1)], available_seats=5)

    def login(self, email, password):
        response = self.client.post('/api/login/', {'email': email, 'password': password}, format='json')
        token = response.data['data']['tokens']['access']
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')

    def trip_payload(self, **overrides):
        payload = {
            'source': 'New York',
            'destination': 'Boston',
            'date': str(timezone.localdate() + timedelta(days=2)),
            'time': '08:00',
            'price': '45.00',
            'total_seats': 40,
        }
        payload.update(overrides)
        return payload

    def test_list_is_public_and_repaired(self):
        response = self.client.get('/api/trips/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['count'], 1)
        trip = response.data['data'][0]
        self.assertEqual(len(trip['seats']), 5)
        self.assertEqual(trip['available_seats'], 4)
        self.assertEqual(trip['seats'][2]['label'], 'A3')

    def test_trip_reads_are_not_cacheable(self):
        for url in ['/api/trips/', f'/api/trips/{self.trip.id}/']:
            response = self.client.get(url)
            self.assertIn('no-store', response['Cache-Control'])
            self.assertIn('no-cache', response['Cache-Control'])

    def test_list_filters(self):
        make_trip(source='Chicago', destination='Los Angeles')

        response = self.client.get('/api/trips/', {'source': 'chic'})

        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['data'][0]['destination'], 'Los Angeles')

    def test_list_rejects_bad_date(self):
        response = self.client.get('/api/trips/', {'date': '20-11-2026'})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])

    def test_detail_and_not_found(self):
        response = self.client.get(f'/api/trips/{self.trip.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['id'], self.trip.id)

        response = self.client.get('/api/trips/999999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data, {'success': False, 'message': 'Trip not found.'})

    def test_create_requires_admin(self):
        response = self.client.post('/api/trips/', self.trip_payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

        self.login('rider@example.com', 'RiderPass123!')
        response = self.client.post('/api/trips/', self.trip_payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(response.data['success'])

    def test_admin_creates_trip(self):
        self.login('admin@example.com', 'AdminPass123!')

        response = self.client.post('/api/trips/', self.trip_payload(time='8:05'), format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        data = response.data['data']
        self.assertEqual(data['available_seats'], 40)
        self.assertEqual(len(data['seats']), 40)
        self.assertEqual(data['time'], '08:05')

    def test_create_validation(self):
        self.login('admin@example.com', 'AdminPass123!')

        response = self.client.post('/api/trips/', self.trip_payload(destination='new york'), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post('/api/trips/', self.trip_payload(total_seats=200), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('total_seats', response.data['message'])

    def test_admin_patch_rejects_seat_fields(self):
        self.login('admin@example.com', 'AdminPass123!')

        response = self.client.patch(f'/api/trips/{self.trip.id}/', {'available_seats': 50}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('available_seats', response.data['message'])

    def test_admin_patch_price(self):
        self.login('admin@example.com', 'AdminPass123!')

        response = self.client.patch(f'/api/trips/{self.trip.id}/', {'price': '55.50'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['price'], '55.50')
        self.assertTrue(response.data['data']['seats'][2]['is_booked'])

    def test_admin_deletes_trip(self):
        self.login('admin@example.com', 'AdminPass123!')

        response = self.client.delete(f'/api/trips/{self.trip.id}/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(Trip.objects.filter(pk=self.trip.id).exists())
