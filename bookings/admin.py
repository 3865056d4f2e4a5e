from django.contrib import admin
from .models import Booking


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'trip', 'seats', 'total_amount', 'payment_method', 'status', 'booking_date']
    list_filter = ['status', 'payment_method', 'booking_date']
    search_fields = ['user__email', 'trip__source', 'trip__destination']
    readonly_fields = ['user', 'trip', 'seats', 'total_amount', 'booking_date', 'cancelled_at']
    ordering = ['-booking_date']
