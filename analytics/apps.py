import atexit

from django.apps import AppConfig


class AnalyticsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'analytics'
    verbose_name = 'Analytics'

    def ready(self):
        from utils.mongo import RequestLogStore

        self.log_store = RequestLogStore.from_settings()
        atexit.register(self.log_store.close)
