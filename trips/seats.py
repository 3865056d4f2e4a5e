"""
Seat numbering for the fixed 6-per-row bus layout.

Seat 1 is A1, seat 6 is A6, seat 7 is B1 and so on. Rows run A..Z, which
caps a trip at 156 seats.
"""
import re

SEATS_PER_ROW = 6
MAX_ROWS = 26
MAX_TOTAL_SEATS = SEATS_PER_ROW * MAX_ROWS

_LABEL_RE = re.compile(r'^([A-Z])(\d+)$')


def seat_label(number):
    """Convert a seat number to its row-letter/column label (7 -> 'B1')."""
    row_letter = chr(65 + (number - 1) // SEATS_PER_ROW)
    column = (number - 1) % SEATS_PER_ROW + 1
    return f"{row_letter}{column}"


def parse_seat_label(label):
    """Convert a label back to its seat number; None if it is not a valid label."""
    if not isinstance(label, str):
        return None
    match = _LABEL_RE.match(label.strip().upper())
    if not match:
        return None
    row_index = ord(match.group(1)) - 65
    column = int(match.group(2))
    if not 1 <= column <= SEATS_PER_ROW:
        return None
    return row_index * SEATS_PER_ROW + column


def format_seat_labels(numbers):
    """Comma-separated labels ordered by row, then column."""
    return ', '.join(seat_label(n) for n in sorted(numbers))


def blank_seat(number):
    return {'number': number, 'is_booked': False, 'booked_by': None}


def count_booked(seats):
    return sum(1 for seat in seats if seat.get('is_booked'))


def describe_seats(numbers):
    """[{number, label}] for error payloads, so clients can re-render the seat map."""
    return [{'number': n, 'label': seat_label(n)} for n in numbers]
