"""
Booking Transaction Coordinator.

Reserving seats is all-or-nothing: the request is validated as a whole
against a repaired trip, re-checked against a fresh read right before the
write, and the write itself is a compare-and-set on the trip version, so a
concurrent writer forces a re-read instead of a double booking.
"""
import logging
import re

from django.db import DatabaseError
from django.utils import timezone

from trips.seats import describe_seats, format_seat_labels, parse_seat_label
from utils.exceptions import (
    AlreadyCancelled, DomainError, Forbidden, InsufficientInventory,
    InvalidRequest, NotFound, SeatConflict, StorageError,
)
from .models import Booking

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 3
PAYMENT_METHODS = tuple(choice for choice, _ in Booking.PAYMENT_METHOD_CHOICES)

_INTEGER_RE = re.compile(r'^[+-]?\d+$')


def _parse_seat(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if _INTEGER_RE.match(text):
            return int(text)
        return parse_seat_label(text)
    return None


def normalize_seat_numbers(raw):
    """
    Turn the requested seats (ints, numeric strings or labels like "A1") into
    seat numbers. Range is checked later against the trip.
    """
    if not isinstance(raw, (list, tuple)) or not raw:
        raise InvalidRequest('Please select at least one seat.')

    numbers, unreadable = [], []
    for value in raw:
        number = _parse_seat(value)
        if number is None:
            unreadable.append(str(value))
        else:
            numbers.append(number)
    if unreadable:
        raise InvalidRequest(f"Invalid seat numbers: {', '.join(unreadable)}.")

    duplicates = sorted({number for number in numbers if numbers.count(number) > 1})
    if duplicates:
        raise InvalidRequest(f"Duplicate seat numbers: {', '.join(map(str, duplicates))}.")
    return numbers


def seat_conflict(numbers, just_now=False):
    numbers = sorted(numbers)
    labels = format_seat_labels(numbers)
    raw = ', '.join(map(str, numbers))
    single = len(numbers) == 1
    if just_now:
        verb = 'was' if single else 'were'
        tail = 'just booked by another user'
    else:
        verb = 'is' if single else 'are'
        tail = 'already booked'
    noun = 'Seat' if single else 'Seats'
    return SeatConflict(
        f"{noun} {labels} ({raw}) {verb} {tail}. Please select different seats.",
        data={'seats': describe_seats(numbers)},
    )


class BookingCoordinator:
    def __init__(self, store, inventory):
        self.store = store
        self.inventory = inventory

    def create_booking(self, user, trip_id, seat_numbers, payment_method):
        numbers = normalize_seat_numbers(seat_numbers)
        if payment_method not in PAYMENT_METHODS:
            raise InvalidRequest(
                f"Payment method must be one of: {', '.join(PAYMENT_METHODS)}."
            )

        with self.store.session() as session:
            trip = self.inventory.load_and_repair(trip_id, session)
            self._check_range(trip, numbers)
            taken = self._taken(trip, numbers)
            if taken:
                logger.info("Seat conflict on trip %s for user %s: %s", trip.pk, user.pk, taken)
                raise seat_conflict(taken)
            if trip.available_seats < len(numbers):
                raise InsufficientInventory(
                    f"Only {trip.available_seats} seats available, {len(numbers)} requested."
                )

            trip = self._reserve(trip_id, user, numbers, session)

            booking = Booking(
                user=user,
                trip=trip,
                seats=numbers,
                total_amount=trip.price * len(numbers),
                payment_method=payment_method,
                status=Booking.STATUS_CONFIRMED,
            )
            try:
                self.store.insert_booking(booking, session)
            except DatabaseError:
                if not session.transactional:
                    self._compensate(trip_id, user, numbers, session)
                raise

        logger.info(
            "Booking %s confirmed: user %s, trip %s, seats %s",
            booking.pk, user.pk, trip.pk, format_seat_labels(numbers)
        )
        return booking

    def _check_range(self, trip, numbers):
        invalid = [number for number in numbers if not 1 <= number <= trip.total_seats]
        if invalid:
            raise InvalidRequest(
                f"Invalid seat numbers: {', '.join(map(str, invalid))}. "
                f"This trip has seats 1 to {trip.total_seats}.",
                data={'seats': invalid},
            )

    def _taken(self, trip, numbers):
        return [number for number in numbers if trip.get_seat(number)['is_booked']]

    def _reserve(self, trip_id, user, numbers, session):
        wanted = set(numbers)

        def book(seats):
            for seat in seats:
                if seat['number'] in wanted:
                    seat['is_booked'] = True
                    seat['booked_by'] = user.pk
            return seats

        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            trip = self.inventory.load_and_repair(trip_id, session)
            self._check_range(trip, numbers)
            taken = self._taken(trip, numbers)
            if taken:
                logger.info("Seats %s on trip %s taken before write", taken, trip_id)
                raise seat_conflict(taken, just_now=True)

            self.inventory.apply_seat_mutation(trip, book)
            if self.inventory.persist(trip, session):
                return trip
            logger.warning("Trip %s changed while booking (attempt %d)", trip_id, attempt)

        raise StorageError('Trip is being updated by another request. Please try again.')

    def _release(self, trip_id, user_id, numbers, session):
        """Free the seats in `numbers` still held by `user_id`; count is recomputed."""
        wanted = set(numbers)

        def release(seats):
            for seat in seats:
                if seat['number'] in wanted and seat['is_booked'] and seat['booked_by'] == user_id:
                    seat['is_booked'] = False
                    seat['booked_by'] = None
            return seats

        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            trip = self.inventory.load_and_repair(trip_id, session)
            self.inventory.apply_seat_mutation(trip, release)
            if self.inventory.persist(trip, session):
                return trip
            logger.warning("Trip %s changed while releasing seats (attempt %d)", trip_id, attempt)

        raise StorageError('Trip is being updated by another request. Please try again.')

    def _compensate(self, trip_id, user, numbers, session):
        try:
            self._release(trip_id, user.pk, numbers, session)
        except (DatabaseError, DomainError):
            logger.exception("Could not release seats %s on trip %s after a failed booking", numbers, trip_id)
        else:
            logger.warning("Released seats %s on trip %s after a failed booking", numbers, trip_id)

    def cancel_booking(self, user, booking_id):
        with self.store.session() as session:
            booking = self.store.get_booking(booking_id, session)
            if booking is None:
                raise NotFound('Booking not found.')
            if booking.user_id != user.pk:
                raise Forbidden('You can only cancel your own bookings.')
            if booking.is_cancelled:
                raise AlreadyCancelled()

            booking.status = Booking.STATUS_CANCELLED
            booking.cancelled_at = timezone.now()
            self.store.save_booking(booking, ['status', 'cancelled_at'], session)

            if booking.trip_id is None:
                logger.warning("Booking %s has no trip; no seats released", booking.pk)
            else:
                try:
                    self._release(booking.trip_id, booking.user_id, booking.seats, session)
                except NotFound:
                    logger.warning("Trip %s of booking %s is gone; no seats released", booking.trip_id, booking.pk)
                except (StorageError, DatabaseError):
                    # Best-effort: the cancelled status is already stored.
                    if session.transactional:
                        raise
                    logger.exception(
                        "Booking %s cancelled but seats %s on trip %s were not released",
                        booking.pk, booking.seats, booking.trip_id,
                    )

        logger.info("Booking %s cancelled by user %s", booking.pk, user.pk)
        return booking

    def get_booking(self, user, booking_id):
        with self.store.session():
            booking = self.store.get_booking(booking_id)
        if booking is None:
            raise NotFound('Booking not found.')
        if booking.user_id != user.pk and not user.is_admin:
            raise Forbidden('You can only view your own bookings.')
        return booking

    def list_bookings_for_user(self, user, now=None):
        """
        Split the user's bookings into upcoming (confirmed, departing after
        `now`) and past (everything else). `all` keeps the newest-first order.
        """
        now = now or timezone.now()
        with self.store.session():
            bookings = self.store.bookings_for_user(user.pk)

        upcoming, past = [], []
        for booking in bookings:
            if (booking.status == Booking.STATUS_CONFIRMED
                    and booking.trip is not None
                    and booking.trip.departure > now):
                upcoming.append(booking)
            else:
                past.append(booking)
        return {'upcoming': upcoming, 'past': past, 'all': bookings}

    def list_all_bookings(self):
        with self.store.session():
            return self.store.all_bookings()
