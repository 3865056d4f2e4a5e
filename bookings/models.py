"""Booking records."""
from decimal import Decimal
from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from trips.models import Trip
from trips.seats import seat_label


class Booking(models.Model):
    """
    Historical record of one reservation. The trip's seat map is the source of
    truth for who holds a seat; `seats` only remembers which numbers this
    booking took. Bookings are never deleted.
    """
    STATUS_CONFIRMED = 'confirmed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = [(STATUS_CONFIRMED, 'Confirmed'), (STATUS_CANCELLED, 'Cancelled')]

    PAYMENT_METHOD_CHOICES = [
        ('card', 'Card'),
        ('cash', 'Cash'),
        ('upi', 'UPI'),
        ('razorpay', 'Razorpay'),
    ]

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='bookings')
    trip = models.ForeignKey(Trip, on_delete=models.SET_NULL, null=True, blank=True, related_name='bookings')
    seats = models.JSONField(default=list)
    total_amount = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal('0.00'))])
    payment_method = models.CharField(max_length=10, choices=PAYMENT_METHOD_CHOICES)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_CONFIRMED)
    booking_date = models.DateTimeField(default=timezone.now)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'bookings'
        ordering = ['-booking_date']
        indexes = [
            models.Index(fields=['user', 'booking_date'], name='bookings_user_date_idx'),
        ]

    def __str__(self):
        return f"Booking {self.pk} - {self.user_id} ({self.status})"

    @property
    def is_cancelled(self):
        return self.status == self.STATUS_CANCELLED

    @property
    def seat_labels(self):
        return [seat_label(number) for number in self.seats or []]
