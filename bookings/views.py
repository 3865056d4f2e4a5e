"""Views for booking management."""
from django.apps import apps
from rest_framework import status
from rest_framework.views import APIView
from rest_framework.permissions import IsAuthenticated
from drf_spectacular.utils import extend_schema, OpenApiExample
from rest_framework import serializers as drf_serializers

from core.permissions import IsAdminUser
from utils.responses import success_response
from .serializers import BookingSerializer, BookingCreateSerializer, UserBookingsSerializer


# Response serializers for Swagger
class BookingResponseSerializer(drf_serializers.Serializer):
    success = drf_serializers.BooleanField()
    message = drf_serializers.CharField(required=False)
    data = BookingSerializer()


class BookingListResponseSerializer(drf_serializers.Serializer):
    success = drf_serializers.BooleanField()
    count = drf_serializers.IntegerField()
    data = BookingSerializer(many=True)


class UserBookingsResponseSerializer(drf_serializers.Serializer):
    success = drf_serializers.BooleanField()
    data = UserBookingsSerializer()


def get_coordinator():
    return apps.get_app_config('bookings').coordinator


class BookingCreateView(APIView):
    """Book seats on a trip."""
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Book seats on a trip",
        description="Reserve one or more seats on a trip. All requested seats are booked or none are; "
                    "seats already taken are reported with their labels (409).",
        request=BookingCreateSerializer,
        responses={201: BookingResponseSerializer},
        examples=[
            OpenApiExample(
                "Book 2 seats",
                value={
                    "trip_id": 1,
                    "seats": [1, 2],
                    "payment_method": "card"
                },
                request_only=True
            )
        ],
        tags=["Bookings"]
    )
    def post(self, request):
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = get_coordinator().create_booking(
            user=request.user,
            trip_id=serializer.validated_data['trip_id'],
            seat_numbers=serializer.validated_data['seats'],
            payment_method=serializer.validated_data['payment_method'],
        )
        return success_response(
            data=BookingSerializer(booking).data,
            message='Booking confirmed successfully',
            status=status.HTTP_201_CREATED
        )


class UserBookingsView(APIView):
    """Get the caller's bookings split into upcoming and past."""
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Get my bookings",
        description="Returns the authenticated user's bookings as upcoming, past and all (newest first)",
        responses={200: UserBookingsResponseSerializer},
        tags=["Bookings"]
    )
    def get(self, request):
        groups = get_coordinator().list_bookings_for_user(request.user)
        return success_response(data=UserBookingsSerializer(groups).data)


class AllBookingsView(APIView):
    permission_classes = [IsAuthenticated, IsAdminUser]

    @extend_schema(
        summary="List all bookings (Admin only)",
        description="Every booking, newest first. Requires admin privileges.",
        responses={200: BookingListResponseSerializer},
        tags=["Bookings (Admin)"]
    )
    def get(self, request):
        bookings = get_coordinator().list_all_bookings()
        return success_response(data=BookingSerializer(bookings, many=True).data, count=len(bookings))


class BookingDetailView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Get booking",
        description="Returns one booking. Users can only view their own bookings; admins can view any.",
        responses={200: BookingResponseSerializer},
        tags=["Bookings"]
    )
    def get(self, request, pk):
        booking = get_coordinator().get_booking(request.user, pk)
        return success_response(data=BookingSerializer(booking).data)


class BookingCancelView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Cancel booking",
        description="Cancel your own confirmed booking and release its seats.",
        request=None,
        responses={200: BookingResponseSerializer},
        tags=["Bookings"]
    )
    def put(self, request, pk):
        booking = get_coordinator().cancel_booking(request.user, pk)
        return success_response(data=BookingSerializer(booking).data, message='Booking cancelled successfully')
