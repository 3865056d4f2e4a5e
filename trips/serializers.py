"""
Serializers for trips and their seat maps.
"""
from datetime import datetime

from rest_framework import serializers

from .models import Trip
from .seats import MAX_TOTAL_SEATS, seat_label


class SeatSerializer(serializers.Serializer):
    """One seat of a trip's seat map, with its display label."""
    number = serializers.IntegerField()
    label = serializers.SerializerMethodField()
    is_booked = serializers.BooleanField()
    booked_by = serializers.IntegerField(allow_null=True)

    def get_label(self, obj):
        return seat_label(obj['number'])


class TripSerializer(serializers.ModelSerializer):
    """Serializer for repaired Trip documents."""
    seats = SeatSerializer(many=True, read_only=True)

    class Meta:
        model = Trip
        fields = [
            'id', 'source', 'destination', 'date', 'time', 'price',
            'total_seats', 'available_seats', 'seats'
        ]
        read_only_fields = fields


class TripSummarySerializer(serializers.ModelSerializer):
    """Trip fields shown inside a booking."""

    class Meta:
        model = Trip
        fields = ['id', 'source', 'destination', 'date', 'time', 'price']


def _normalize_time(value):
    """Accept HH:MM or HH:MM:SS and store HH:MM."""
    for fmt in ('%H:%M', '%H:%M:%S'):
        try:
            return datetime.strptime(value.strip(), fmt).strftime('%H:%M')
        except ValueError:
            continue
    raise serializers.ValidationError("Time must be in HH:MM format.")


class TripCreateSerializer(serializers.Serializer):
    """Validates the body of an admin trip creation."""
    source = serializers.CharField(max_length=100)
    destination = serializers.CharField(max_length=100)
    date = serializers.DateField()
    time = serializers.CharField(max_length=8)
    price = serializers.DecimalField(max_digits=8, decimal_places=2, min_value=0)
    total_seats = serializers.IntegerField(min_value=1, max_value=MAX_TOTAL_SEATS)

    def validate_time(self, value):
        return _normalize_time(value)

    def validate(self, attrs):
        source = attrs.get('source', '').strip()
        destination = attrs.get('destination', '').strip()

        if source and destination and source.lower() == destination.lower():
            raise serializers.ValidationError({
                'destination': "Source and destination cannot be the same."
            })

        if 'source' in attrs:
            attrs['source'] = source
        if 'destination' in attrs:
            attrs['destination'] = destination
        return attrs


class TripUpdateSerializer(TripCreateSerializer):
    """
    Validates an admin trip update. Seat state is owned by bookings, so
    `seats` and `available_seats` are refused outright.
    """

    def validate(self, attrs):
        locked = [field for field in ('seats', 'available_seats') if field in self.initial_data]
        if locked:
            raise serializers.ValidationError({
                field: "This field is read-only; seat state changes only through bookings."
                for field in locked
            })
        return super().validate(attrs)
