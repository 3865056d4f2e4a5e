"""
Management command to seed the database with sample data.

Usage:
    python manage.py seed_db           # Seed with default data
    python manage.py seed_db --clear   # Clear existing data first
"""
from datetime import timedelta
from decimal import Decimal
from django.apps import apps
from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from core.models import User
from trips.models import Trip
from bookings.models import Booking


SAMPLE_TRIPS = [
    # (source, destination, days from today, time, price, total seats)
    ('New York', 'Boston', 2, '08:00', Decimal('45.00'), 40),
    ('Boston', 'New York', 3, '10:30', Decimal('45.00'), 40),
    ('Chicago', 'Los Angeles', 5, '06:00', Decimal('120.00'), 50),
    ('Atlanta', 'Miami', 4, '09:15', Decimal('75.00'), 45),
    ('New York', 'Boston', 7, '14:00', Decimal('45.00'), 40),
    ('Boston', 'New York', 8, '16:30', Decimal('45.00'), 40),
    ('Chicago', 'Los Angeles', 10, '08:00', Decimal('120.00'), 50),
    ('Atlanta', 'Miami', 12, '11:45', Decimal('75.00'), 45),
]


class Command(BaseCommand):
    help = 'Seed the database with sample users, trips and a booking'

    def add_arguments(self, parser):
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Clear existing data before seeding',
        )

    def handle(self, *args, **options):
        if options['clear']:
            self.stdout.write('Clearing existing data...')
            self.clear_data()

        self.stdout.write('Seeding database...')

        with transaction.atomic():
            users = self.create_users()
            trips = self.create_trips()
            self.create_sample_booking(users, trips)

        self.stdout.write(self.style.SUCCESS('✓ Database seeded successfully!'))
        self.print_summary()

    def clear_data(self):
        Booking.objects.all().delete()
        Trip.objects.all().delete()
        User.objects.filter(is_superuser=False).delete()
        self.stdout.write(self.style.WARNING('  Cleared all non-superuser data'))

    def create_users(self):
        users = []

        admin, created = User.objects.get_or_create(
            email='admin@busbooking.com',
            defaults={
                'name': 'Admin User',
                'is_admin': True,
                'is_staff': True,
            }
        )
        if created:
            admin.set_password('Admin@123')
            admin.save()
            self.stdout.write('  Created admin: admin@busbooking.com / Admin@123')
        users.append(admin)

        test_users = [
            ('user@example.com', 'Aditya Bhardwaj', 'User@123'),
            ('jane@example.com', 'Jane Smith', 'User@123'),
        ]

        for email, name, password in test_users:
            user, created = User.objects.get_or_create(
                email=email,
                defaults={'name': name}
            )
            if created:
                user.set_password(password)
                user.save()
                self.stdout.write(f'  Created user: {email} / {password}')
            users.append(user)

        return users

    def create_trips(self):
        inventory = apps.get_app_config('trips').inventory
        today = timezone.localdate()

        trips = []
        for source, destination, days, departs, price, seats in SAMPLE_TRIPS:
            run_date = today + timedelta(days=days)
            if Trip.objects.filter(source=source, destination=destination, date=run_date, time=departs).exists():
                continue
            trips.append(inventory.create_trip(
                source=source,
                destination=destination,
                date=run_date,
                time=departs,
                price=price,
                total_seats=seats,
            ))

        self.stdout.write(f'  Created {len(trips)} trips')
        return trips

    def create_sample_booking(self, users, trips):
        if not trips:
            return

        coordinator = apps.get_app_config('bookings').coordinator
        user = next(u for u in users if not u.is_admin)
        booking = coordinator.create_booking(
            user=user,
            trip_id=trips[0].id,
            seat_numbers=[1, 2],
            payment_method='card',
        )
        self.stdout.write(f'  Created booking {booking.id}: seats {", ".join(booking.seat_labels)} for {user.email}')

    def print_summary(self):
        self.stdout.write('\n' + '='*50)
        self.stdout.write('Database Summary:')
        self.stdout.write(f'  Users: {User.objects.count()}')
        self.stdout.write(f'  Trips: {Trip.objects.count()}')
        self.stdout.write(f'  Bookings: {Booking.objects.count()}')
        self.stdout.write('='*50)
        self.stdout.write('\nTest Credentials:')
        self.stdout.write('  Admin: admin@busbooking.com / Admin@123')
        self.stdout.write('  User:  user@example.com / User@123')
        self.stdout.write('='*50 + '\n')
