"""Views for trip browsing and admin trip management."""
from django.apps import apps
from django.utils.dateparse import parse_date
from django.utils.decorators import method_decorator
from django.views.decorators.cache import never_cache
from rest_framework import status
from rest_framework.views import APIView
from rest_framework.permissions import AllowAny, IsAuthenticated
from drf_spectacular.utils import extend_schema, OpenApiParameter, OpenApiExample, inline_serializer
from rest_framework import serializers as drf_serializers

from core.permissions import IsAdminUser
from utils.exceptions import InvalidRequest
from utils.responses import success_response
from .serializers import TripSerializer, TripCreateSerializer, TripUpdateSerializer


# Response serializers for Swagger
class TripListResponseSerializer(drf_serializers.Serializer):
    success = drf_serializers.BooleanField()
    count = drf_serializers.IntegerField()
    data = TripSerializer(many=True)


class TripResponseSerializer(drf_serializers.Serializer):
    success = drf_serializers.BooleanField()
    message = drf_serializers.CharField(required=False)
    data = TripSerializer()


def get_inventory():
    return apps.get_app_config('trips').inventory


class PublicReadMixin:
    """Anyone may read trips; only admins may change them."""

    def get_permissions(self):
        if self.request.method == 'GET':
            return [AllowAny()]
        return [IsAuthenticated(), IsAdminUser()]


@method_decorator(never_cache, name='dispatch')
class TripListView(PublicReadMixin, APIView):

    @extend_schema(
        summary="Search trips",
        description="List trips with repaired seat maps, filtered by route substring and exact date, "
                    "ordered by departure. Searches with source and destination are logged to MongoDB.",
        parameters=[
            OpenApiParameter(name='source', type=str, required=False, description='Source contains (e.g., New York)'),
            OpenApiParameter(name='destination', type=str, required=False, description='Destination contains (e.g., Boston)'),
            OpenApiParameter(name='date', type=str, required=False, description='Travel date (YYYY-MM-DD)'),
        ],
        responses={200: TripListResponseSerializer},
        tags=["Trips"]
    )
    def get(self, request):
        source = request.query_params.get('source', '').strip()
        destination = request.query_params.get('destination', '').strip()
        raw_date = request.query_params.get('date', '').strip()

        on_date = None
        if raw_date:
            try:
                on_date = parse_date(raw_date)
            except ValueError:
                on_date = None
            if on_date is None:
                raise InvalidRequest('Date must be in YYYY-MM-DD format.')

        trips = get_inventory().list_and_repair(source or None, destination or None, on_date)
        return success_response(data=TripSerializer(trips, many=True).data, count=len(trips))

    @extend_schema(
        summary="Create trip (Admin only)",
        description="Create a trip with a fresh seat map. Requires admin privileges.",
        request=TripCreateSerializer,
        responses={201: TripResponseSerializer},
        examples=[
            OpenApiExample(
                "Create Trip",
                value={
                    "source": "New York",
                    "destination": "Boston",
                    "date": "2026-11-20",
                    "time": "08:00",
                    "price": "45.00",
                    "total_seats": 40
                },
                request_only=True
            )
        ],
        tags=["Trips (Admin)"]
    )
    def post(self, request):
        serializer = TripCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        trip = get_inventory().create_trip(**serializer.validated_data)
        return success_response(
            data=TripSerializer(trip).data,
            message='Trip created successfully',
            status=status.HTTP_201_CREATED
        )


@method_decorator(never_cache, name='dispatch')
class TripDetailView(PublicReadMixin, APIView):

    @extend_schema(
        summary="Get trip",
        description="Get one trip with its repaired seat map.",
        responses={200: TripResponseSerializer},
        tags=["Trips"]
    )
    def get(self, request, pk):
        trip = get_inventory().load_and_repair(pk)
        return success_response(data=TripSerializer(trip).data)

    @extend_schema(
        summary="Replace trip details (Admin only)",
        description="Update every editable trip field. Seats and available seats cannot be set; "
                    "shrinking total seats is refused while a removed seat is booked.",
        request=TripUpdateSerializer,
        responses={200: TripResponseSerializer},
        tags=["Trips (Admin)"]
    )
    def put(self, request, pk):
        return self._update(request, pk, partial=False)

    @extend_schema(
        summary="Update trip details (Admin only)",
        description="Update some trip fields. Seats and available seats cannot be set.",
        request=TripUpdateSerializer,
        responses={200: TripResponseSerializer},
        tags=["Trips (Admin)"]
    )
    def patch(self, request, pk):
        return self._update(request, pk, partial=True)

    def _update(self, request, pk, partial):
        serializer = TripUpdateSerializer(data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        trip = get_inventory().update_trip(pk, serializer.validated_data)
        return success_response(data=TripSerializer(trip).data, message='Trip updated successfully')

    @extend_schema(
        summary="Delete trip (Admin only)",
        description="Delete a trip. Existing bookings keep their history without a trip.",
        responses={200: inline_serializer(
            name='TripDeleteResponse',
            fields={
                'success': drf_serializers.BooleanField(),
                'message': drf_serializers.CharField(),
            }
        )},
        tags=["Trips (Admin)"]
    )
    def delete(self, request, pk):
        get_inventory().delete_trip(pk)
        return success_response(message='Trip deleted successfully')
