"""
Analytics views over the MongoDB request log.
"""
from datetime import datetime

from django.apps import apps
from rest_framework.views import APIView
from rest_framework.permissions import IsAuthenticated
from drf_spectacular.utils import extend_schema, OpenApiParameter, inline_serializer
from rest_framework import serializers as drf_serializers

from core.permissions import IsAdminUser
from utils.responses import success_response


# Response serializers for Swagger
class RouteSerializer(drf_serializers.Serializer):
    source = drf_serializers.CharField()
    destination = drf_serializers.CharField()
    search_count = drf_serializers.IntegerField()


class TopRoutesResponseSerializer(drf_serializers.Serializer):
    success = drf_serializers.BooleanField()
    count = drf_serializers.IntegerField()
    data = RouteSerializer(many=True)


def get_log_store():
    return apps.get_app_config('analytics').log_store


def _parse_int(value, default=None):
    try:
        return int(value) if value else default
    except (TypeError, ValueError):
        return default


def _parse_float(value):
    try:
        return float(value) if value else None
    except (TypeError, ValueError):
        return None


def _parse_datetime(value):
    try:
        return datetime.fromisoformat(value) if value else None
    except ValueError:
        return None


class TopRoutesView(APIView):
    """Get top searched routes."""
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Get top searched routes",
        description="Returns the most searched (source, destination) pairs recorded from trip searches",
        parameters=[
            OpenApiParameter(name='limit', type=int, required=False, description='Number of routes (default: 5, max: 20)')
        ],
        responses={200: TopRoutesResponseSerializer},
        tags=["Analytics"]
    )
    def get(self, request):
        limit = min(max(_parse_int(request.query_params.get('limit'), 5), 1), 20)
        routes = get_log_store().top_routes(limit=limit)
        return success_response(data=routes, count=len(routes))


class APILogsView(APIView):
    """Request logs (Admin only)."""
    permission_classes = [IsAuthenticated, IsAdminUser]

    @extend_schema(
        summary="Get API logs (Admin only)",
        description="Query request logs from MongoDB with filters. Supports pagination, date range and status filtering.",
        parameters=[
            OpenApiParameter(name='endpoint', type=str, required=False, description='Filter by endpoint path'),
            OpenApiParameter(name='user_id', type=int, required=False, description='Filter by user ID'),
            OpenApiParameter(name='status_code', type=int, required=False, description='Filter by HTTP status (200/400/409)'),
            OpenApiParameter(name='method', type=str, required=False, description='Filter by HTTP method (GET/POST)'),
            OpenApiParameter(name='min_time_ms', type=float, required=False, description='Min execution time (for slow requests)'),
            OpenApiParameter(name='start_date', type=str, required=False, description='Start date (YYYY-MM-DD)'),
            OpenApiParameter(name='end_date', type=str, required=False, description='End date (YYYY-MM-DD)'),
            OpenApiParameter(name='limit', type=int, required=False, description='Results limit (default: 50, max: 500)'),
            OpenApiParameter(name='offset', type=int, required=False, description='Pagination offset'),
        ],
        responses={
            200: inline_serializer(name='LogsResponse', fields={
                'success': drf_serializers.BooleanField(),
                'count': drf_serializers.IntegerField(),
                'data': drf_serializers.ListField(),
            }),
        },
        tags=["Analytics (Admin)"]
    )
    def get(self, request):
        filters = self._parse_filters(request.query_params)
        logs = get_log_store().api_logs(**filters)
        return success_response(data=logs, count=len(logs))

    def _parse_filters(self, params):
        return {
            'limit': min(max(_parse_int(params.get('limit'), 50), 1), 500),
            'offset': max(_parse_int(params.get('offset'), 0), 0),
            'endpoint': params.get('endpoint'),
            'user_id': _parse_int(params.get('user_id')),
            'status_code': _parse_int(params.get('status_code')),
            'method': params.get('method', '').upper() or None,
            'min_time_ms': _parse_float(params.get('min_time_ms')),
            'start_date': _parse_datetime(params.get('start_date')),
            'end_date': _parse_datetime(params.get('end_date')),
            'sort': params.get('sort', '-timestamp'),
        }
