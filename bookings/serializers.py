"""
Serializers for booking management.
"""
from rest_framework import serializers

from core.serializers import UserSummarySerializer
from trips.serializers import TripSummarySerializer
from .models import Booking


class BookingSerializer(serializers.ModelSerializer):
    """Serializer for viewing bookings."""
    user = UserSummarySerializer(read_only=True)
    trip = TripSummarySerializer(read_only=True, allow_null=True)
    seat_labels = serializers.ListField(child=serializers.CharField(), read_only=True)

    class Meta:
        model = Booking
        fields = [
            'id', 'user', 'trip', 'seats', 'seat_labels', 'total_amount',
            'payment_method', 'status', 'booking_date', 'cancelled_at'
        ]
        read_only_fields = fields


class BookingCreateSerializer(serializers.Serializer):
    """
    Shape of a booking request. Seats may be numbers or labels ("A1");
    they are checked against the trip by the coordinator.
    """
    trip_id = serializers.IntegerField()
    seats = serializers.ListField(allow_empty=True)
    payment_method = serializers.ChoiceField(choices=Booking.PAYMENT_METHOD_CHOICES)


class UserBookingsSerializer(serializers.Serializer):
    upcoming = BookingSerializer(many=True)
    past = BookingSerializer(many=True)
    all = BookingSerializer(many=True)
