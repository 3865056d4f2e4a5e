"""
Trip inventory models.
"""
from datetime import datetime, time as dt_time
from decimal import Decimal

from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.utils import timezone

from .seats import MAX_TOTAL_SEATS


class Trip(models.Model):
    """
    A scheduled departure with a fixed seat inventory.
    Maps to the 'trips' table.

    `seats` embeds one entry per seat ({number, is_booked, booked_by}) and
    `available_seats` caches the unbooked count. Both are rewritten together
    by the inventory manager. `version` is bumped on every write and is the
    compare-and-set guard for concurrent writers.
    """
    source = models.CharField(max_length=100)
    destination = models.CharField(max_length=100)
    date = models.DateField()
    time = models.CharField(max_length=5)  # HH:MM
    price = models.DecimalField(
        max_digits=8,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    total_seats = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(MAX_TOTAL_SEATS)]
    )
    seats = models.JSONField(default=list, blank=True)
    available_seats = models.IntegerField(default=0)
    version = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'trips'
        ordering = ['date', 'time']
        indexes = [
            models.Index(fields=['date', 'time'], name='trips_date_time_idx'),
            models.Index(fields=['source', 'destination', 'date'], name='trips_route_date_idx'),
        ]

    def __str__(self):
        return f"{self.source} -> {self.destination} on {self.date} {self.time}"

    @property
    def departure(self):
        """Departure instant in the current timezone; midnight if `time` is unreadable."""
        try:
            departs_at = datetime.strptime(self.time, '%H:%M').time()
        except (TypeError, ValueError):
            departs_at = dt_time.min
        return timezone.make_aware(datetime.combine(self.date, departs_at))

    def get_seat(self, number):
        for seat in self.seats or []:
            if seat.get('number') == number:
                return seat
        return None
