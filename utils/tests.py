"""
Tests for the shared error envelope and response helpers.
"""
from django.db import OperationalError
from django.test import SimpleTestCase, override_settings
from rest_framework import exceptions, status

from utils.exceptions import (
    AlreadyCancelled, InsufficientInventory, NotFound, SeatConflict, StorageError,
    api_exception_handler,
)
from utils.responses import success_response


class ExceptionHandlerTests(SimpleTestCase):
    """Test every failure is rendered as {success: false, message[, data]}."""

    def handle(self, exc):
        return api_exception_handler(exc, {})

    def test_domain_errors_keep_their_status(self):
        cases = [
            (NotFound('Trip not found.'), status.HTTP_404_NOT_FOUND),
            (InsufficientInventory(), status.HTTP_400_BAD_REQUEST),
            (AlreadyCancelled(), status.HTTP_400_BAD_REQUEST),
            (StorageError(), status.HTTP_503_SERVICE_UNAVAILABLE),
        ]
        for exc, expected in cases:
            response = self.handle(exc)
            self.assertEqual(response.status_code, expected)
            self.assertEqual(response.data, {'success': False, 'message': exc.message})

    def test_conflict_carries_seat_data(self):
        exc = SeatConflict('Seat A1 (1) is already booked.', data={'seats': [{'number': 1, 'label': 'A1'}]})

        response = self.handle(exc)

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['data']['seats'][0]['label'], 'A1')

    def test_validation_errors_are_flattened(self):
        exc = exceptions.ValidationError({'seats': ['This field is required.'], 'non_field_errors': ['Bad input.']})

        response = self.handle(exc)

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])
        self.assertIn('seats: This field is required.', response.data['message'])
        self.assertIn('Bad input.', response.data['message'])

    def test_database_errors_become_storage_errors(self):
        response = self.handle(OperationalError('database is locked'))

        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertNotIn('locked', response.data['message'])

    @override_settings(DEBUG=False)
    def test_unexpected_errors_hide_details(self):
        response = self.handle(KeyError('secret'))

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data, {'success': False, 'message': 'Server error'})

    @override_settings(DEBUG=True)
    def test_unexpected_errors_show_details_in_debug(self):
        response = self.handle(ValueError('boom'))

        self.assertEqual(response.data['detail'], 'boom')


class SuccessResponseTests(SimpleTestCase):

    def test_envelope(self):
        response = success_response(data=[1, 2], count=2, message='ok', status=status.HTTP_201_CREATED)

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data, {'success': True, 'count': 2, 'data': [1, 2], 'message': 'ok'})

    def test_omits_empty_fields(self):
        self.assertEqual(success_response(message='Deleted').data, {'success': True, 'message': 'Deleted'})
