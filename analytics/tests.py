"""
Tests for analytics app and the MongoDB request log.
Tests cover: RequestLogStore behaviour, Request logging middleware, Analytics API access control.

Tests marked requires_mongodb talk to a real server and skip when none is running:
    docker run -d -p 27017:27017 --name mongodb-test mongo:latest
    python manage.py test analytics
"""
import unittest
from unittest.mock import patch, MagicMock
from datetime import timedelta
from decimal import Decimal
from django.apps import apps
from django.test import TestCase
from django.contrib.auth import get_user_model
from django.utils import timezone
from pymongo import MongoClient
from pymongo.errors import PyMongoError, ServerSelectionTimeoutError
from rest_framework.test import APITestCase
from rest_framework import status

from trips.models import Trip
from trips.seats import blank_seat
from utils.mongo import RequestLogStore

User = get_user_model()

TEST_MONGODB_URI = 'mongodb://localhost:27017/'


def is_mongodb_available():
    """Check if MongoDB is available for testing."""
    try:
        client = MongoClient(TEST_MONGODB_URI, serverSelectionTimeoutMS=2000)
        client.admin.command('ping')
        client.close()
        return True
    except PyMongoError:
        return False


requires_mongodb = unittest.skipUnless(
    is_mongodb_available(),
    "MongoDB is not available. Start MongoDB to run these tests."
)


# =============================================================================
# UNIT TESTS - RequestLogStore (mocked client)
# =============================================================================

class RequestLogStoreTests(TestCase):
    """Test the log store against a mocked MongoClient."""

    def setUp(self):
        patcher = patch('utils.mongo.MongoClient')
        self.client_class = patcher.start()
        self.addCleanup(patcher.stop)
        self.client = self.client_class.return_value
        self.db = MagicMock()
        self.client.__getitem__.return_value = self.db
        self.store = RequestLogStore(TEST_MONGODB_URI, 'busbooking_logs_test', timeout_ms=500)

    def test_connects_lazily_once(self):
        self.client_class.assert_not_called()

        self.assertTrue(self.store.available)
        self.store.open()

        self.client_class.assert_called_once()
        self.client.admin.command.assert_called_once_with('ping')

    def test_trip_search_updates_route_analytics(self):
        self.store.log_request(
            endpoint='/api/trips/',
            method='GET',
            user_id=None,
            request_params={'source': ' new york', 'destination': 'boston '},
            response_status=200,
            execution_time_ms=12.5,
            results_count=3
        )

        entry = self.db.api_logs.insert_one.call_args[0][0]
        self.assertEqual(entry['endpoint'], '/api/trips/')
        self.assertEqual(entry['results_count'], 3)
        route_filter = self.db.route_analytics.update_one.call_args[0][0]
        self.assertEqual(route_filter, {'source': 'New York', 'destination': 'Boston'})

    def test_booking_request_does_not_touch_routes(self):
        self.store.log_request(
            endpoint='/api/bookings/',
            method='POST',
            user_id=4,
            request_params={},
            response_status=201,
            execution_time_ms=30.0
        )

        self.db.api_logs.insert_one.assert_called_once()
        self.db.route_analytics.update_one.assert_not_called()

    def test_unreachable_server_disables_logging(self):
        self.client.admin.command.side_effect = ServerSelectionTimeoutError('no server')

        self.assertFalse(self.store.available)
        self.store.log_request('/api/trips/', 'GET', None, {}, 200, 1.0)
        self.assertEqual(self.store.top_routes(), [])
        self.assertEqual(self.store.api_logs(), [])

        # Availability is remembered: no second connection attempt
        self.client_class.assert_called_once()

    def test_write_errors_are_not_raised(self):
        self.db.api_logs.insert_one.side_effect = PyMongoError('write failed')

        self.store.log_request('/api/bookings/', 'POST', 1, {}, 201, 5.0)

    def test_disabled_store_never_connects(self):
        store = RequestLogStore(TEST_MONGODB_URI, 'busbooking_logs_test', enabled=False)

        self.assertFalse(store.available)
        store.log_request('/api/trips/', 'GET', None, {}, 200, 1.0)
        self.client_class.assert_not_called()

    def test_api_logs_builds_query(self):
        cursor = self.db.api_logs.find.return_value.sort.return_value.skip.return_value.limit.return_value
        cursor.__iter__.return_value = iter([])

        self.store.api_logs(limit=10, endpoint='/api/trips/', status_code=409, method='post', min_time_ms=100)

        query = self.db.api_logs.find.call_args[0][0]
        self.assertEqual(query, {
            'endpoint': '/api/trips/',
            'response_status': 409,
            'method': 'POST',
            'execution_time_ms': {'$gte': 100},
        })


# =============================================================================
# INTEGRATION TESTS - Middleware and API
# =============================================================================

class AnalyticsAPITestBase(APITestCase):

    def setUp(self):
        User.objects.create_user(email='rider@example.com', password='RiderPass123!', name='Rider')
        User.objects.create_user(email='admin@example.com', password='AdminPass123!', name='Admin', is_admin=True)
        self.log_store = MagicMock(spec=RequestLogStore)
        patcher = patch.object(apps.get_app_config('analytics'), 'log_store', self.log_store)
        patcher.start()
        self.addCleanup(patcher.stop)

    def login(self, email, password):
        response = self.client.post('/api/login/', {'email': email, 'password': password}, format='json')
        token = response.data['data']['tokens']['access']
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')


class APILoggingMiddlewareTests(AnalyticsAPITestBase):
    """Test which requests reach the request log."""

    def test_trip_search_is_logged(self):
        Trip.objects.create(
            source='New York', destination='Boston',
            date=timezone.localdate() + timedelta(days=2), time='08:00',
            price=Decimal('45.00'), total_seats=2,
            seats=[blank_seat(1), blank_seat(2)], available_seats=2,
        )

        self.client.get('/api/trips/', {'source': 'New York', 'destination': 'Boston'})

        kwargs = self.log_store.log_request.call_args.kwargs
        self.assertEqual(kwargs['endpoint'], '/api/trips/')
        self.assertEqual(kwargs['method'], 'GET')
        self.assertEqual(kwargs['request_params'], {'source': 'New York', 'destination': 'Boston'})
        self.assertEqual(kwargs['response_status'], 200)
        self.assertEqual(kwargs['results_count'], 1)

    def test_other_endpoints_are_not_logged(self):
        self.client.get('/api/health/')

        self.log_store.log_request.assert_not_called()

    def test_logging_failure_does_not_change_response(self):
        self.log_store.log_request.side_effect = RuntimeError('log store exploded')

        response = self.client.get('/api/trips/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)


class AnalyticsAPITests(AnalyticsAPITestBase):
    """Test analytics endpoints and their access control."""

    def test_top_routes(self):
        self.log_store.top_routes.return_value = [
            {'source': 'New York', 'destination': 'Boston', 'search_count': 7},
        ]
        self.login('rider@example.com', 'RiderPass123!')

        response = self.client.get('/api/analytics/top-routes/', {'limit': 50})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['data'][0]['search_count'], 7)
        self.log_store.top_routes.assert_called_once_with(limit=20)

    def test_top_routes_requires_login(self):
        response = self.client.get('/api/analytics/top-routes/')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_logs_are_admin_only(self):
        self.login('rider@example.com', 'RiderPass123!')

        response = self.client.get('/api/analytics/logs/')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['message'], 'Admin access required.')
        self.log_store.api_logs.assert_not_called()

    def test_admin_reads_logs_with_filters(self):
        self.log_store.api_logs.return_value = [{'endpoint': '/api/bookings/', 'response_status': 409}]
        self.login('admin@example.com', 'AdminPass123!')

        response = self.client.get('/api/analytics/logs/', {'status_code': '409', 'method': 'post', 'limit': 'abc'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        filters = self.log_store.api_logs.call_args.kwargs
        self.assertEqual(filters['status_code'], 409)
        self.assertEqual(filters['method'], 'POST')
        self.assertEqual(filters['limit'], 50)


# =============================================================================
# REAL MONGODB INTEGRATION TESTS
# =============================================================================

@requires_mongodb
class RealMongoDBTests(TestCase):
    """Round trips through a real MongoDB server."""

    test_db_name = 'busbooking_logs_test'

    def setUp(self):
        self.store = RequestLogStore(TEST_MONGODB_URI, self.test_db_name, timeout_ms=2000)
        self.db = self.store.open()
        self.db.api_logs.delete_many({})
        self.db.route_analytics.delete_many({})

    def tearDown(self):
        self.store.close()

    @classmethod
    def tearDownClass(cls):
        client = MongoClient(TEST_MONGODB_URI)
        client.drop_database(cls.test_db_name)
        client.close()
        super().tearDownClass()

    def test_log_request_is_stored(self):
        self.store.log_request(
            endpoint='/api/trips/',
            method='GET',
            user_id=1,
            request_params={'source': 'Chicago', 'destination': 'Los Angeles'},
            response_status=200,
            execution_time_ms=150.5,
            results_count=2
        )

        logs = self.store.api_logs(endpoint='/api/trips/')
        self.assertEqual(len(logs), 1)
        self.assertEqual(logs[0]['request_params']['source'], 'Chicago')
        self.assertEqual(logs[0]['execution_time_ms'], 150.5)

    def test_top_routes_counts_searches(self):
        for _ in range(3):
            self.store.update_route_analytics('new york', 'boston')
        self.store.update_route_analytics('Atlanta', 'Miami')

        routes = self.store.top_routes(limit=5)

        self.assertEqual(routes[0], {'source': 'New York', 'destination': 'Boston', 'search_count': 3})
        self.assertEqual(len(routes), 2)

    def test_indexes_created(self):
        indexes = self.db.api_logs.index_information()

        self.assertIn('timestamp_-1', indexes)
        self.assertIn('endpoint_1_timestamp_-1', indexes)
