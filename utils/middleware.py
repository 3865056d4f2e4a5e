"""
Custom middleware for API request logging.
"""
import logging
import time

from django.apps import apps

logger = logging.getLogger(__name__)


class APILoggingMiddleware:
    """
    Log trip searches and booking requests to the MongoDB request log.
    """

    # Exact paths to log
    LOGGED_ENDPOINTS = ['/api/trips/', '/api/bookings/']

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        should_log = request.path in self.LOGGED_ENDPOINTS

        if should_log:
            start_time = time.monotonic()

        response = self.get_response(request)

        if should_log:
            execution_time_ms = (time.monotonic() - start_time) * 1000
            self._log(request, response, execution_time_ms)

        return response

    def _log(self, request, response, execution_time_ms):
        log_store = getattr(apps.get_app_config('analytics'), 'log_store', None)
        if log_store is None:
            return

        user_id = None
        if hasattr(request, 'user') and request.user.is_authenticated:
            user_id = request.user.id

        request_params = {}
        if request.method == 'GET':
            request_params = {
                k: v[0] if isinstance(v, list) and len(v) == 1 else v
                for k, v in request.GET.lists()
            }

        results_count = None
        data = getattr(response, 'data', None)
        if isinstance(data, dict) and isinstance(data.get('data'), list):
            results_count = len(data['data'])

        try:
            log_store.log_request(
                endpoint=request.path,
                method=request.method,
                user_id=user_id,
                request_params=request_params,
                response_status=response.status_code,
                execution_time_ms=round(execution_time_ms, 2),
                results_count=results_count
            )
        except Exception:
            # Don't let logging errors affect the response
            logger.exception("Error logging API request")
