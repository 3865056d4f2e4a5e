"""
Management command to repair the seat map of every stored trip.

Usage:
    python manage.py initialize_seats
"""
from django.apps import apps
from django.core.management.base import BaseCommand


class Command(BaseCommand):
    help = 'Fill in missing seats and recompute available seats for every trip'

    def handle(self, *args, **options):
        inventory = apps.get_app_config('trips').inventory
        results = inventory.repair_all()

        if not results:
            self.stdout.write(self.style.WARNING('No trips found.'))
            return

        rewritten = 0
        for trip, changed in results:
            if changed:
                rewritten += 1
                self.stdout.write(
                    f'  Repaired trip {trip.id} ({trip.source} -> {trip.destination}): '
                    f'{len(trip.seats)} seats, {trip.available_seats} available'
                )
            else:
                self.stdout.write(f'  Trip {trip.id} already consistent')

        self.stdout.write(self.style.SUCCESS(
            f'✓ Checked {len(results)} trips, repaired {rewritten}.'
        ))
