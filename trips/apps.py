import atexit

from django.apps import AppConfig


class TripsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'trips'
    verbose_name = 'Trips'

    def ready(self):
        from utils.storage import RecordStore
        from .inventory import TripInventoryManager

        self.store = RecordStore.from_settings()
        self.inventory = TripInventoryManager(self.store)
        atexit.register(self.store.close)
