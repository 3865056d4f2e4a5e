from django.apps import AppConfig, apps


class BookingsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'bookings'
    verbose_name = 'Bookings'

    def ready(self):
        from .coordinator import BookingCoordinator

        trips_config = apps.get_app_config('trips')
        self.coordinator = BookingCoordinator(trips_config.store, trips_config.inventory)
