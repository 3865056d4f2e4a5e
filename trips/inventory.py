"""
Trip Inventory Manager.

Every Trip handed out by this module has exactly one seat entry per number
in 1..total_seats, sorted by number, and an available_seats count that was
recomputed from those entries. Stored documents that drifted from that shape
are rewritten on read.
"""
import logging

from utils.exceptions import InvalidRequest, NotFound, StorageError

from .models import Trip
from .seats import MAX_TOTAL_SEATS, blank_seat, count_booked, format_seat_labels

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 3

EDITABLE_FIELDS = ('source', 'destination', 'date', 'time', 'price')
READ_ONLY_FIELDS = ('seats', 'available_seats')


def _seat_number(entry):
    if not isinstance(entry, dict):
        return None
    number = entry.get('number')
    if isinstance(number, bool):
        return None
    if isinstance(number, int):
        return number
    if isinstance(number, str) and number.strip().isdigit():
        return int(number)
    return None


def _clean_seat(number, entry):
    is_booked = bool(entry.get('is_booked'))
    return {
        'number': number,
        'is_booked': is_booked,
        'booked_by': entry.get('booked_by') if is_booked else None,
    }


class TripInventoryManager:
    def __init__(self, store):
        self.store = store

    def repair(self, trip):
        """
        Repair `trip` in memory. Returns True when the seat array or the
        available count had to change.

        Duplicate entries collapse to one (a booked copy wins), entries outside
        1..total_seats are dropped and missing numbers get a fresh unbooked seat.
        """
        total = trip.total_seats or 0
        if total < 1:
            return False

        stored = trip.seats if isinstance(trip.seats, list) else []
        by_number = {}
        dropped = 0
        for entry in stored:
            number = _seat_number(entry)
            if number is None or not 1 <= number <= total:
                dropped += 1
                continue
            current = by_number.get(number)
            if current is None or (entry.get('is_booked') and not current['is_booked']):
                by_number[number] = _clean_seat(number, entry)

        if dropped:
            logger.warning("Trip %s: dropped %d seat entries outside 1..%d", trip.pk, dropped, total)

        seats = [by_number.get(number) or blank_seat(number) for number in range(1, total + 1)]
        available = total - count_booked(seats)
        changed = seats != stored or available != trip.available_seats
        trip.seats = seats
        trip.available_seats = available
        return changed

    def load_and_repair(self, trip_id, session=None):
        if session is None:
            with self.store.session() as session:
                return self.load_and_repair(trip_id, session)

        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            trip = self.store.get_trip(trip_id, session)
            if trip is None:
                raise NotFound('Trip not found.')
            if not self.repair(trip):
                return trip
            if self.persist(trip, session):
                logger.info("Repaired seat inventory for trip %s", trip.pk)
                return self.store.reload_trip(trip, session)
            logger.warning("Trip %s changed during repair (attempt %d)", trip_id, attempt)

        raise StorageError('Trip is being updated by another request. Please try again.')

    def list_and_repair(self, source=None, destination=None, on_date=None):
        return [trip for trip, _ in self._repair_each(source, destination, on_date)]

    def repair_all(self):
        """Repair every stored trip; returns (trip, rewritten) pairs."""
        return self._repair_each()

    def _repair_each(self, source=None, destination=None, on_date=None):
        results = []
        with self.store.session() as session:
            for trip in self.store.find_trips(source, destination, on_date):
                if not self.repair(trip):
                    results.append((trip, False))
                    continue
                try:
                    trip = self.load_and_repair(trip.pk, session)
                except NotFound:
                    logger.info("Trip %s was deleted while listing", trip.pk)
                    continue
                results.append((trip, True))
        return results

    def apply_seat_mutation(self, trip, mutate):
        """
        The only path by which seat state changes. `mutate` receives a copy of
        the seat list and returns the new one; the count is recomputed here.
        The trip is not persisted.
        """
        seats = mutate([dict(seat) for seat in trip.seats or []])
        trip.seats = sorted(seats, key=lambda seat: seat['number'])
        trip.available_seats = trip.total_seats - count_booked(trip.seats)
        return trip

    def persist(self, trip, session=None):
        return self.store.compare_and_set_trip(trip, session)

    # Admin inventory operations

    def create_trip(self, source, destination, date, time, price, total_seats):
        if not 1 <= total_seats <= MAX_TOTAL_SEATS:
            raise InvalidRequest(f"Total seats must be between 1 and {MAX_TOTAL_SEATS}.")
        trip = Trip(
            source=source,
            destination=destination,
            date=date,
            time=time,
            price=price,
            total_seats=total_seats,
            seats=[blank_seat(number) for number in range(1, total_seats + 1)],
            available_seats=total_seats,
        )
        with self.store.session() as session:
            self.store.insert_trip(trip, session)
        logger.info("Created trip %s (%s seats)", trip.pk, total_seats)
        return trip

    def update_trip(self, trip_id, changes):
        locked = sorted(set(changes) & set(READ_ONLY_FIELDS))
        if locked:
            raise InvalidRequest(
                f"{', '.join(locked)} cannot be edited directly; seat state changes only through bookings."
            )
        unknown = sorted(set(changes) - set(EDITABLE_FIELDS) - {'total_seats'})
        if unknown:
            raise InvalidRequest(f"Unknown trip fields: {', '.join(unknown)}.")

        with self.store.session() as session:
            for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
                trip = self.load_and_repair(trip_id, session)
                for field in EDITABLE_FIELDS:
                    if field in changes:
                        setattr(trip, field, changes[field])
                if trip.source.strip().lower() == trip.destination.strip().lower():
                    raise InvalidRequest('Source and destination cannot be the same.')
                new_total = changes.get('total_seats', trip.total_seats)
                if new_total != trip.total_seats:
                    self.resize_inventory(trip, new_total)
                if self.persist(trip, session):
                    logger.info("Updated trip %s: %s", trip.pk, ', '.join(sorted(changes)))
                    return self.store.reload_trip(trip, session)
                logger.warning("Trip %s changed during update (attempt %d)", trip_id, attempt)

        raise StorageError('Trip is being updated by another request. Please try again.')

    def resize_inventory(self, trip, new_total):
        """
        Change total_seats on a repaired trip in memory. Shrinking is refused
        while any seat that would be removed is booked.
        """
        if not 1 <= new_total <= MAX_TOTAL_SEATS:
            raise InvalidRequest(f"Total seats must be between 1 and {MAX_TOTAL_SEATS}.")

        old_total = trip.total_seats
        if new_total < old_total:
            held = [seat['number'] for seat in trip.seats if seat['number'] > new_total and seat['is_booked']]
            if held:
                raise InvalidRequest(
                    f"Cannot reduce total seats to {new_total}: "
                    f"booked seats {format_seat_labels(held)} ({', '.join(map(str, sorted(held)))}) would be removed.",
                    data={'seats': sorted(held)},
                )

        def resize(seats):
            kept = [seat for seat in seats if seat['number'] <= new_total]
            kept.extend(blank_seat(number) for number in range(old_total + 1, new_total + 1))
            return kept

        trip.total_seats = new_total
        logger.info("Resizing trip %s from %d to %d seats", trip.pk, old_total, new_total)
        return self.apply_seat_mutation(trip, resize)

    def delete_trip(self, trip_id):
        with self.store.session() as session:
            trip = self.store.get_trip(trip_id, session)
            if trip is None:
                raise NotFound('Trip not found.')
            self.store.delete_trip(trip, session)
        logger.info("Deleted trip %s", trip_id)
