"""
Record store handle for Trip and Booking documents.

One RecordStore is built per process and handed to the inventory manager
and the booking coordinator. Each core operation opens a session, which
fixes the isolation mode for that operation and is passed to every read
and write it makes.
"""
import enum
import logging
from contextlib import contextmanager

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.db import DEFAULT_DB_ALIAS, DatabaseError, connections, transaction
from django.db.models import F
from django.utils import timezone

from utils.exceptions import StorageError

logger = logging.getLogger(__name__)

ISOLATION_CHOICES = ('auto', 'transactional', 'best_effort')

# Fields written back on every trip save; `version` is handled separately.
TRIP_DOCUMENT_FIELDS = (
    'source', 'destination', 'date', 'time', 'price',
    'total_seats', 'seats', 'available_seats',
)


class IsolationMode(enum.Enum):
    TRANSACTIONAL = 'transactional'
    BEST_EFFORT = 'best_effort'


class StorageSession:
    """Isolation mode chosen for one operation."""

    def __init__(self, mode):
        self.mode = mode

    @property
    def transactional(self):
        return self.mode is IsolationMode.TRANSACTIONAL

    def __repr__(self):
        return f"<StorageSession {self.mode.value}>"


class RecordStore:
    def __init__(self, using=DEFAULT_DB_ALIAS, isolation='auto'):
        if isolation not in ISOLATION_CHOICES:
            raise ImproperlyConfigured(
                f"Isolation mode must be one of {', '.join(ISOLATION_CHOICES)}, got {isolation!r}."
            )
        self.using = using
        self.isolation = isolation

    @classmethod
    def from_settings(cls):
        return cls(
            using=getattr(settings, 'BOOKING_DATABASE_ALIAS', DEFAULT_DB_ALIAS),
            isolation=getattr(settings, 'BOOKING_ISOLATION_MODE', 'auto'),
        )

    @property
    def connection(self):
        return connections[self.using]

    def close(self):
        self.connection.close()

    def resolve_isolation_mode(self):
        if self.isolation == 'transactional':
            return IsolationMode.TRANSACTIONAL
        if self.isolation == 'best_effort':
            return IsolationMode.BEST_EFFORT
        if self.connection.features.supports_transactions:
            return IsolationMode.TRANSACTIONAL
        return IsolationMode.BEST_EFFORT

    @contextmanager
    def session(self):
        """
        Open a storage session for one operation.

        In TRANSACTIONAL mode the body runs inside a database transaction that
        is rolled back when any exception escapes. Database failures leave the
        session as StorageError.
        """
        try:
            mode = self.resolve_isolation_mode()
            if mode is IsolationMode.TRANSACTIONAL:
                with transaction.atomic(using=self.using):
                    yield StorageSession(mode)
            else:
                logger.debug("Transactions unavailable on %r, running best-effort", self.using)
                yield StorageSession(mode)
        except DatabaseError as exc:
            logger.exception("Storage failure on %r", self.using)
            raise StorageError() from exc

    # Trips

    def _trips(self, session=None):
        from trips.models import Trip

        queryset = Trip.objects.using(self.using)
        if session is not None and session.transactional:
            queryset = queryset.select_for_update()
        return queryset

    def get_trip(self, trip_id, session=None):
        from trips.models import Trip

        try:
            return self._trips(session).get(pk=trip_id)
        except (Trip.DoesNotExist, ValueError, TypeError):
            return None

    def find_trips(self, source=None, destination=None, on_date=None, session=None):
        queryset = self._trips(session)
        if source:
            queryset = queryset.filter(source__icontains=source)
        if destination:
            queryset = queryset.filter(destination__icontains=destination)
        if on_date:
            queryset = queryset.filter(date=on_date)
        return list(queryset.order_by('date', 'time', 'pk'))

    def insert_trip(self, trip, session=None):
        trip.save(using=self.using, force_insert=True)
        return trip

    def compare_and_set_trip(self, trip, session=None):
        """
        Write the whole trip document only if its stored version still equals
        `trip.version`. Returns False when another writer got there first.
        """
        from trips.models import Trip

        values = {field: getattr(trip, field) for field in TRIP_DOCUMENT_FIELDS}
        updated = Trip.objects.using(self.using).filter(pk=trip.pk, version=trip.version).update(
            version=F('version') + 1,
            updated_at=timezone.now(),
            **values
        )
        if updated:
            trip.version += 1
        return updated == 1

    def reload_trip(self, trip, session=None):
        trip.refresh_from_db(using=self.using)
        return trip

    def delete_trip(self, trip, session=None):
        trip.delete(using=self.using)

    # Bookings

    def _bookings(self):
        from bookings.models import Booking

        return Booking.objects.using(self.using)

    def get_booking(self, booking_id, session=None):
        from bookings.models import Booking

        queryset = self._bookings()
        if session is not None and session.transactional:
            queryset = queryset.select_for_update()
        try:
            return queryset.get(pk=booking_id)
        except (Booking.DoesNotExist, ValueError, TypeError):
            return None

    def insert_booking(self, booking, session=None):
        booking.save(using=self.using, force_insert=True)
        return booking

    def save_booking(self, booking, fields, session=None):
        booking.save(using=self.using, update_fields=list(fields))
        return booking

    def bookings_for_user(self, user_id):
        return list(
            self._bookings().filter(user_id=user_id)
            .select_related('trip', 'user')
            .order_by('-booking_date', '-pk')
        )

    def all_bookings(self):
        return list(self._bookings().select_related('trip', 'user').order_by('-booking_date', '-pk'))
