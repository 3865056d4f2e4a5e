"""
MongoDB request log store for API logging and route analytics.
"""
import logging
from datetime import datetime, timezone

from pymongo import MongoClient, DESCENDING, ASCENDING
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError
from django.conf import settings

logger = logging.getLogger(__name__)

TRIP_SEARCH_ENDPOINT = '/api/trips/'


class RequestLogStore:
    """
    Handle on the MongoDB log database.

    Built once by the analytics app config. The connection is opened on first
    use and availability is remembered, so an unreachable server costs a single
    timeout per process. Every write swallows PyMongoError: request logging
    must never change an API response.
    """

    def __init__(self, uri, db_name, timeout_ms=3000, enabled=True):
        self.uri = uri
        self.db_name = db_name
        self.timeout_ms = timeout_ms
        self.enabled = enabled
        self._client = None
        self._db = None
        self._available = None if enabled else False

    @classmethod
    def from_settings(cls):
        return cls(
            uri=settings.MONGODB_URI,
            db_name=settings.MONGODB_NAME,
            timeout_ms=getattr(settings, 'MONGODB_TIMEOUT_MS', 3000),
            enabled=getattr(settings, 'REQUEST_LOGGING_ENABLED', True),
        )

    @property
    def available(self):
        if self._available is None:
            self.open()
        return bool(self._available)

    def open(self):
        """Connect and ping; returns the database or None when unreachable."""
        if self._available is False:
            return None
        if self._db is not None:
            return self._db

        try:
            self._client = MongoClient(
                self.uri,
                serverSelectionTimeoutMS=self.timeout_ms,
                connectTimeoutMS=self.timeout_ms,
            )
            self._client.admin.command('ping')
            self._db = self._client[self.db_name]
            self._available = True
            self._ensure_indexes(self._db)
        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            logger.warning("MongoDB connection failed, request logging disabled: %s", e)
            self._available = False
            self._discard_client()
            return None
        return self._db

    def close(self):
        self._discard_client()
        self._db = None
        if self._available:
            self._available = None

    def _discard_client(self):
        if self._client is not None:
            self._client.close()
            self._client = None

    def _ensure_indexes(self, db):
        try:
            api_logs = db.api_logs
            api_logs.create_index([("timestamp", DESCENDING)])
            api_logs.create_index([("endpoint", ASCENDING), ("timestamp", DESCENDING)])
            api_logs.create_index([("user_id", ASCENDING), ("timestamp", DESCENDING)])
            api_logs.create_index([
                ("request_params.source", ASCENDING),
                ("request_params.destination", ASCENDING)
            ])

            db.route_analytics.create_index([("search_count", DESCENDING)])
            db.route_analytics.create_index(
                [("source", ASCENDING), ("destination", ASCENDING)],
                unique=True
            )
        except PyMongoError as e:
            logger.warning("Error creating MongoDB indexes: %s", e)

    def log_request(self, endpoint, method, user_id, request_params,
                    response_status, execution_time_ms, results_count=None):
        """
        Store one API request.

        Args:
            endpoint: request path
            method: HTTP method
            user_id: id of the authenticated user, or None
            request_params: query parameters (single values flattened)
            response_status: HTTP status code of the response
            execution_time_ms: time spent producing the response
            results_count: number of items returned, when known
        """
        db = self.open()
        if db is None:
            return

        entry = {
            "endpoint": endpoint,
            "method": method,
            "user_id": user_id,
            "request_params": request_params,
            "response_status": response_status,
            "execution_time_ms": execution_time_ms,
            "timestamp": datetime.now(timezone.utc),
        }
        if results_count is not None:
            entry["results_count"] = results_count

        try:
            db.api_logs.insert_one(entry)
            if (endpoint == TRIP_SEARCH_ENDPOINT and method == 'GET'
                    and request_params.get('source') and request_params.get('destination')):
                self.update_route_analytics(request_params['source'], request_params['destination'])
        except PyMongoError as e:
            logger.warning("Error logging request to MongoDB: %s", e)

    def update_route_analytics(self, source, destination):
        db = self.open()
        if db is None:
            return
        try:
            db.route_analytics.update_one(
                {"source": source.strip().title(), "destination": destination.strip().title()},
                {
                    "$inc": {"search_count": 1},
                    "$set": {"last_updated": datetime.now(timezone.utc)}
                },
                upsert=True
            )
        except PyMongoError as e:
            logger.warning("Error updating route analytics: %s", e)

    def top_routes(self, limit=5):
        """Most searched (source, destination) pairs, highest count first."""
        db = self.open()
        if db is None:
            return []

        pipeline = [
            {"$sort": {"search_count": -1}},
            {"$limit": limit},
            {"$project": {"_id": 0, "source": 1, "destination": 1, "search_count": 1}},
        ]
        try:
            return list(db.route_analytics.aggregate(pipeline))
        except PyMongoError as e:
            logger.warning("Error getting top routes: %s", e)
            return []

    def api_logs(self, limit=100, offset=0, endpoint=None, user_id=None,
                 status_code=None, method=None, min_time_ms=None,
                 start_date=None, end_date=None, sort='-timestamp'):
        db = self.open()
        if db is None:
            return []

        query = {}
        if endpoint:
            query["endpoint"] = endpoint
        if user_id:
            query["user_id"] = user_id
        if status_code:
            query["response_status"] = status_code
        if method:
            query["method"] = method.upper()
        if min_time_ms:
            query["execution_time_ms"] = {"$gte": min_time_ms}
        if start_date or end_date:
            query["timestamp"] = {}
            if start_date:
                query["timestamp"]["$gte"] = start_date
            if end_date:
                query["timestamp"]["$lte"] = end_date

        sort_field = sort.lstrip('-')
        sort_direction = DESCENDING if sort.startswith('-') else ASCENDING

        try:
            cursor = db.api_logs.find(query).sort(sort_field, sort_direction).skip(offset).limit(limit)
            result = []
            for log in cursor:
                log["_id"] = str(log["_id"])
                if hasattr(log.get("timestamp"), 'isoformat'):
                    log["timestamp"] = log["timestamp"].isoformat()
                result.append(log)
            return result
        except PyMongoError as e:
            logger.warning("Error getting API logs: %s", e)
            return []
